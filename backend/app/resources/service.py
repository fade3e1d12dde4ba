"""EC2 and CloudFormation queries using a session's role credentials.

Each call builds a short-lived boto3 client from the credentials stored on
the session and forwards exactly one API call.  Responses are reshaped into
flat snake_case records; there is no caching, paging or retry.
"""
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.errors import (
    NotAuthenticatedError,
    ResourceQueryError,
    StackNotFoundError,
    provider_message,
)
from app.sessions import RoleCredentials, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
NOT_AVAILABLE  = "N/A"
DEFAULT_PLATFORM = "Linux"

# Every lifecycle status except DELETE_COMPLETE, so nothing live is hidden.
STACK_STATUS_FILTER = [
    "CREATE_IN_PROGRESS",
    "CREATE_COMPLETE",
    "ROLLBACK_IN_PROGRESS",
    "ROLLBACK_COMPLETE",
    "DELETE_IN_PROGRESS",
    "UPDATE_IN_PROGRESS",
    "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS",
    "UPDATE_COMPLETE",
    "UPDATE_ROLLBACK_IN_PROGRESS",
    "UPDATE_ROLLBACK_COMPLETE_CLEANUP_IN_PROGRESS",
    "UPDATE_ROLLBACK_COMPLETE",
    "REVIEW_IN_PROGRESS",
    "IMPORT_IN_PROGRESS",
    "IMPORT_COMPLETE",
    "IMPORT_ROLLBACK_IN_PROGRESS",
    "IMPORT_ROLLBACK_COMPLETE",
]


def _name_tag(tags: Optional[list]) -> str:
    for tag in tags or []:
        if tag.get("Key") == "Name":
            return tag.get("Value") or NOT_AVAILABLE
    return NOT_AVAILABLE


def _instance_record(instance: dict) -> dict:
    return {
        "id": instance["InstanceId"],
        "name": _name_tag(instance.get("Tags")),
        "instance_type": instance.get("InstanceType"),
        "state": instance.get("State", {}).get("Name"),
        "private_ip": instance.get("PrivateIpAddress") or NOT_AVAILABLE,
        "public_ip": instance.get("PublicIpAddress") or NOT_AVAILABLE,
        "availability_zone": instance.get("Placement", {}).get("AvailabilityZone"),
        "launch_time": instance.get("LaunchTime"),
        "platform": instance.get("Platform") or DEFAULT_PLATFORM,
        "vpc_id": instance.get("VpcId") or NOT_AVAILABLE,
        "subnet_id": instance.get("SubnetId") or NOT_AVAILABLE,
    }


def _stack_summary_record(stack: dict) -> dict:
    return {
        "stack_name": stack.get("StackName"),
        "stack_id": stack.get("StackId"),
        "stack_status": stack.get("StackStatus"),
        "creation_time": stack.get("CreationTime"),
        "last_updated_time": stack.get("LastUpdatedTime"),
        "deletion_time": stack.get("DeletionTime"),
        "template_description": stack.get("TemplateDescription"),
        "drift_information": stack.get("DriftInformation"),
    }


def _stack_detail_record(stack: dict) -> dict:
    return {
        "stack_name": stack.get("StackName"),
        "stack_id": stack.get("StackId"),
        "stack_status": stack.get("StackStatus"),
        "creation_time": stack.get("CreationTime"),
        "last_updated_time": stack.get("LastUpdatedTime"),
        "deletion_time": stack.get("DeletionTime"),
        "description": stack.get("Description"),
        "parameters": stack.get("Parameters", []),
        "outputs": stack.get("Outputs", []),
        "tags": stack.get("Tags", []),
        "capabilities": stack.get("Capabilities", []),
        "notification_arns": stack.get("NotificationARNs", []),
        "timeout_in_minutes": stack.get("TimeoutInMinutes"),
        "role_arn": stack.get("RoleARN"),
    }


def _is_missing_stack(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return error.get("Code") == "ValidationError" and "does not exist" in error.get("Message", "")


class ResourceService:
    """Read-only EC2/CloudFormation facade over session credentials."""

    def __init__(self, store: SessionStore, default_region: str = DEFAULT_REGION):
        self.store = store
        self.default_region = default_region

    def _credentials(self, session_id: str) -> RoleCredentials:
        session = self.store.get(session_id)
        if session.credentials is None:
            raise NotAuthenticatedError("Not authenticated or no credentials")
        return session.credentials

    def _client(self, service_name: str, session_id: str, region: Optional[str]):
        creds = self._credentials(session_id)
        try:
            return boto3.client(
                service_name,
                aws_access_key_id=creds.access_key_id,
                aws_secret_access_key=creds.secret_access_key,
                aws_session_token=creds.session_token,
                region_name=region or self.default_region,
            )
        except BotoCoreError as e:
            # e.g. InvalidRegionError for a malformed region name
            raise ResourceQueryError(provider_message(e)) from e

    def list_instances(self, session_id: str, region: Optional[str] = None) -> list:
        """Flatten DescribeInstances reservations into one record per instance."""
        ec2 = self._client("ec2", session_id, region)
        try:
            resp = ec2.describe_instances()
        except (ClientError, BotoCoreError) as e:
            raise ResourceQueryError(provider_message(e)) from e

        instances = [
            _instance_record(instance)
            for reservation in resp.get("Reservations", [])
            for instance in reservation.get("Instances", [])
        ]
        logger.info("Found %d EC2 instances in %s", len(instances), region or self.default_region)
        return instances

    def list_regions(self, session_id: str) -> list:
        """List EC2 regions.  Always asks the default region."""
        ec2 = self._client("ec2", session_id, self.default_region)
        try:
            resp = ec2.describe_regions()
        except (ClientError, BotoCoreError) as e:
            raise ResourceQueryError(provider_message(e)) from e

        return [
            {
                "name": r.get("RegionName"),
                "endpoint": r.get("Endpoint"),
                "opt_in_status": r.get("OptInStatus"),
            }
            for r in resp.get("Regions", [])
        ]

    def list_stacks(self, session_id: str, region: Optional[str] = None) -> list:
        cfn = self._client("cloudformation", session_id, region)
        try:
            resp = cfn.list_stacks(StackStatusFilter=STACK_STATUS_FILTER)
        except (ClientError, BotoCoreError) as e:
            raise ResourceQueryError(provider_message(e)) from e

        stacks = [_stack_summary_record(s) for s in resp.get("StackSummaries", [])]
        logger.info("Found %d CloudFormation stacks in %s", len(stacks), region or self.default_region)
        return stacks

    def get_stack_details(
        self, session_id: str, region: Optional[str], stack_name: str
    ) -> dict:
        """Describe one stack by name.

        Raises:
            StackNotFoundError: CloudFormation knows no stack by that name.
        """
        cfn = self._client("cloudformation", session_id, region)
        try:
            resp = cfn.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if _is_missing_stack(e):
                raise StackNotFoundError(stack_name) from e
            raise ResourceQueryError(provider_message(e)) from e
        except BotoCoreError as e:
            raise ResourceQueryError(provider_message(e)) from e

        stacks = resp.get("Stacks", [])
        if not stacks:
            raise StackNotFoundError(stack_name)
        return _stack_detail_record(stacks[0])
