"""
Identity Provider - Client-credential token acquisition.

Exchanges {client id, client secret, tenant authority, resource scope}
for a bearer token scoped to the reporting platform. One call, one token:
no caching or refresh happens here.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import aiohttp

from powerbi_connector.config import PowerBIConfig
from powerbi_connector.exceptions import AuthenticationError, TransientNetworkError
from powerbi_connector.logging_utils import mask_params, mask_text


logger = logging.getLogger(__name__)


# OAuth error codes that mean the credentials themselves are unusable
CREDENTIAL_ERRORS = {
    "invalid_client",
    "unauthorized_client",
    "invalid_grant",
    "invalid_scope",
    "invalid_request",
}

# Errors that need a human to grant consent / sign in
CONSENT_ERRORS = {
    "interaction_required",
    "consent_required",
    "login_required",
}

# AADSTS codes worth calling out
CONSENT_AADSTS_CODES = {
    "AADSTS65001",  # consent not granted
    "AADSTS70011",  # invalid scope
}


@dataclass(frozen=True)
class AccessToken:
    """Bearer token for the reporting platform API."""
    value: str = field(repr=False)
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.value}"

    def is_expired(self, leeway_seconds: float = 0.0) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) + timedelta(seconds=leeway_seconds) >= self.expires_at


def _extract_aadsts_code(description: str) -> Optional[str]:
    """Pull the leading AADSTSnnnnn code out of an error description."""
    if not description:
        return None
    for token in description.replace(":", " ").split():
        if token.startswith("AADSTS") and token[6:].isdigit():
            return token
    return None


class ClientCredentialProvider:
    """
    Acquires app-only bearer tokens from the identity provider.

    Uses an injected aiohttp session when given (never closed here),
    otherwise opens a short-lived session per acquisition.
    """

    def __init__(
        self,
        config: PowerBIConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._session = session

    @property
    def name(self) -> str:
        return "identity"

    async def acquire_token(self) -> AccessToken:
        """
        Run the client-credential exchange.

        Raises:
            AuthenticationError: Credentials rejected or consent required
            TransientNetworkError: Identity provider unreachable
        """
        form = {
            "grant_type": "client_credentials",
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "scope": self._config.scope,
        }
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
        url = self._config.token_url
        logger.debug(f"[{self.name}] Requesting token from {url} {mask_params(form)}")

        start_time = time.time()
        try:
            if self._session is not None:
                status, data = await self._post(self._session, url, form, timeout)
            else:
                async with aiohttp.ClientSession() as session:
                    status, data = await self._post(session, url, form, timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(
                message=f"Identity provider unreachable: {e.__class__.__name__}",
                request_url=url,
                operation="acquire_token",
                original_error=e,
            )

        latency_ms = (time.time() - start_time) * 1000
        logger.debug(f"[{self.name}] Token request completed in {latency_ms:.1f}ms (status={status})")

        if status >= 400 or "access_token" not in data:
            raise self._map_error(status, data, url)

        expires_in = data.get("expires_in")
        expires_at = None
        if expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

        return AccessToken(
            value=data["access_token"],
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
        )

    async def _post(
        self,
        session: aiohttp.ClientSession,
        url: str,
        form: dict[str, str],
        timeout: aiohttp.ClientTimeout,
    ) -> tuple[int, dict[str, Any]]:
        async with session.post(url, data=form, timeout=timeout) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = {"error": "invalid_response", "error_description": (await response.text())[:500]}
            return response.status, data if isinstance(data, dict) else {}

    def _map_error(self, status: int, data: dict[str, Any], url: str) -> Exception:
        error = data.get("error", "")
        description = mask_text(data.get("error_description", ""))
        aadsts = _extract_aadsts_code(description)

        if status >= 500:
            return TransientNetworkError(
                message=f"Identity provider error HTTP {status}",
                status_code=status,
                response_body=description[:1000],
                request_url=url,
                operation="acquire_token",
            )

        requires_consent = error in CONSENT_ERRORS or aadsts in CONSENT_AADSTS_CODES
        if error in CREDENTIAL_ERRORS or requires_consent or status in (400, 401, 403):
            logger.error(f"[{self.name}] Token request rejected: {error} {aadsts or ''}".rstrip())
            return AuthenticationError(
                message=f"Identity provider rejected credentials: {error or f'HTTP {status}'}",
                error_code=aadsts or error or None,
                requires_consent=requires_consent,
                operation="acquire_token",
                context={"description": description[:500]},
            )

        return TransientNetworkError(
            message=f"Unexpected identity provider response HTTP {status}",
            status_code=status,
            response_body=description[:1000],
            request_url=url,
            operation="acquire_token",
        )
