"""AWS IAM Identity Center (SSO) device authorization.

Services:
    - SSOService: client registration, device authorization, token polling.
    - CredentialService: account/role discovery and role-credential exchange.
"""
