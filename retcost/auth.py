"""
Bearer token acquisition for the Cost Management API.
"""
import logging
from typing import Optional, Protocol

from .constants import ARM_TOKEN_SCOPE
from .errors import AuthError

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    def get_token(self) -> str:
        ...


class AzureCredentialProvider:
    """
    CredentialProvider backed by azure-identity.

    Uses DefaultAzureCredential, which picks up Cloud Shell managed identity,
    Azure CLI login or environment credentials. The token is not refreshed;
    one is fetched per run.
    """

    def __init__(self, credential=None, scope: str = ARM_TOKEN_SCOPE):
        if credential is None:
            from azure.identity import DefaultAzureCredential
            credential = DefaultAzureCredential()
        self.credential = credential
        self.scope = scope

    def get_token(self) -> str:
        from azure.core.exceptions import ClientAuthenticationError

        try:
            access_token = self.credential.get_token(self.scope)
        except ClientAuthenticationError as e:
            raise AuthError(f"Could not acquire a token for {self.scope}: {e}", original_error=e) from e
        logger.debug("Acquired management API token")
        return access_token.token


class StaticTokenProvider:
    """CredentialProvider for a token obtained elsewhere (e.g. ``az account get-access-token``)."""

    def __init__(self, token: Optional[str]):
        if not token:
            raise AuthError("Empty access token")
        self._token = token

    def get_token(self) -> str:
        return self._token
