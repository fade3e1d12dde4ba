"""Account/role discovery and role-credential exchange.

Walks the same SSO APIs as ``aws sso login`` does after the token arrives:
ListAccounts -> ListAccountRoles -> GetRoleCredentials.  The resulting
credentials are stored on the session for the resource endpoints.
"""
import logging
import re

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import (
    InvalidAccountIdError,
    NotAuthenticatedError,
    SSOFlowError,
    provider_message,
)
from app.sessions import RoleCredentials, Session, SessionStore

logger = logging.getLogger(__name__)

# ASCII only: \d would also accept other Unicode digits.
_ACCOUNT_ID_RE = re.compile(r"[0-9]{12}")


def validate_account_id(account_id: str) -> str:
    """Return *account_id* if it is exactly 12 digits, else raise."""
    if not isinstance(account_id, str) or not _ACCOUNT_ID_RE.fullmatch(account_id):
        raise InvalidAccountIdError(account_id)
    return account_id


class CredentialService:
    """Exchanges a session's SSO access token for role credentials."""

    def __init__(self, store: SessionStore):
        self.store = store

    def _authorized_session(self, session_id: str) -> Session:
        session = self.store.get(session_id)
        if not session.is_authorized:
            raise NotAuthenticatedError()
        return session

    def list_accounts(self, session_id: str) -> list:
        """List the accounts the signed-in user can reach."""
        session = self._authorized_session(session_id)
        try:
            sso_client = boto3.client("sso", region_name=session.sso_region)
            resp = sso_client.list_accounts(accessToken=session.access_token)
        except (ClientError, BotoCoreError) as e:
            raise SSOFlowError(provider_message(e)) from e

        return [
            {
                "account_id": a["accountId"],
                "account_name": a.get("accountName", ""),
                "email_address": a.get("emailAddress", ""),
            }
            for a in resp.get("accountList", [])
        ]

    def list_roles(self, session_id: str, account_id: str) -> list:
        """List the roles available to the user in *account_id*."""
        validate_account_id(account_id)
        session = self._authorized_session(session_id)
        try:
            sso_client = boto3.client("sso", region_name=session.sso_region)
            resp = sso_client.list_account_roles(
                accessToken=session.access_token,
                accountId=account_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise SSOFlowError(provider_message(e)) from e

        return [
            {"role_name": r["roleName"], "account_id": r.get("accountId", account_id)}
            for r in resp.get("roleList", [])
        ]

    def get_credentials(self, session_id: str, account_id: str, role_name: str) -> RoleCredentials:
        """Exchange the access token for role credentials and store them.

        Any previously stored credentials on the session are replaced.

        Raises:
            InvalidAccountIdError: *account_id* is not 12 digits.
            SessionNotFoundError: Unknown session.
            NotAuthenticatedError: The session has no access token yet.
            SSOFlowError: Identity Center rejected the exchange.
        """
        validate_account_id(account_id)
        session = self._authorized_session(session_id)
        try:
            sso_client = boto3.client("sso", region_name=session.sso_region)
            resp = sso_client.get_role_credentials(
                accessToken=session.access_token,
                accountId=account_id,
                roleName=role_name,
            )
        except (ClientError, BotoCoreError) as e:
            raise SSOFlowError(provider_message(e)) from e

        role_creds = resp["roleCredentials"]
        credentials = RoleCredentials(
            access_key_id=role_creds["accessKeyId"],
            secret_access_key=role_creds["secretAccessKey"],
            session_token=role_creds["sessionToken"],
            expiration=role_creds.get("expiration", 0),
        )

        def _store(s: Session) -> None:
            s.credentials = credentials

        self.store.update(session_id, _store)
        logger.info(
            "Role credentials issued: session=%s account=%s role=%s",
            session_id, account_id, role_name,
        )
        return credentials
