"""OAuth Refresher - renews marketplace access tokens before they expire.

Runs every 30 minutes over integrations of providers whose tokens need a
scheduled refresh (Allegro). A token is refreshed only when its expiry is
within the threshold window; otherwise no network call is made.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import httpx

from infrastructure.encryption import CredentialVault
from infrastructure.repositories import IntegrationAdminRepository, IntegrationRecord
from integrations.marketplaces import allegro_token_url
from integrations.parsing import format_rfc3339, parse_datetime, to_int
from integrations.ports import TokenRefreshError
from observability import integration_errors_total, oauth_refresh_total

from .base import SyncTask

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_SECONDS = 7200
# Allegro access tokens live 12 hours
DEFAULT_EXPIRES_IN_SECONDS = 43200

TokenURLResolver = Callable[[Dict[str, Any]], str]
TokenClient = Callable[[str, Dict[str, str], Tuple[str, str]], Dict[str, Any]]

TOKEN_URLS: Dict[str, TokenURLResolver] = {
    "allegro": allegro_token_url,
}


class HttpxTokenClient:
    """POST a refresh_token grant with HTTP basic client authentication."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def __call__(self, url: str, form: Dict[str, str], auth: Tuple[str, str]) -> Dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, data=form, auth=auth, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"token request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise TokenRefreshError(
                f"token endpoint returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise TokenRefreshError("token endpoint returned invalid JSON", status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise TokenRefreshError("token endpoint returned a non-object body", status_code=response.status_code)
        return data


class OAuthRefresher(SyncTask):
    """
    Scheduled refresh of OAuth credentials stored in the vault.

    The clock and the token client are injectable so the threshold logic is
    testable without a network or real time.
    """

    name = "oauth_refresher"

    def __init__(
        self,
        vault: CredentialVault,
        admin_repo: IntegrationAdminRepository,
        interval: float,
        threshold_seconds: int = DEFAULT_THRESHOLD_SECONDS,
        token_urls: Optional[Mapping[str, TokenURLResolver]] = None,
        token_client: Optional[TokenClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.interval = interval
        self.vault = vault
        self.admin_repo = admin_repo
        self.threshold = timedelta(seconds=threshold_seconds)
        self.token_urls = dict(TOKEN_URLS if token_urls is None else token_urls)
        self.token_client = token_client or HttpxTokenClient()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self, stop_event: threading.Event) -> Dict[str, Any]:
        stats = {"checked": 0, "refreshed": 0, "skipped": 0, "errors": 0}

        for integration in self.admin_repo.list_active_integrations(sorted(self.token_urls)):
            if stop_event.is_set():
                break
            stats["checked"] += 1
            log_extra = {
                "task": self.name,
                "provider": integration.provider,
                "tenant_id": str(integration.tenant_id),
                "integration_id": str(integration.id),
            }

            try:
                refreshed = self._refresh_integration(integration, log_extra)
            except Exception as e:
                logger.error(
                    f"Token refresh failed for integration {integration.id}: {e}",
                    exc_info=True,
                    extra=log_extra,
                )
                stats["errors"] += 1
                oauth_refresh_total.labels(provider=integration.provider, status="error").inc()
                integration_errors_total.labels(task=self.name, provider=integration.provider, stage="refresh").inc()
                continue

            if refreshed:
                stats["refreshed"] += 1
                oauth_refresh_total.labels(provider=integration.provider, status="success").inc()
            else:
                stats["skipped"] += 1

        logger.info(f"OAuth refresh completed: {stats}", extra={"task": self.name})
        return stats

    def _refresh_integration(self, integration: IntegrationRecord, log_extra: Dict[str, Any]) -> bool:
        """Refresh one integration's token if it is close to expiry.

        Returns:
            True if new credentials were stored, False if the token is still fresh

        Raises:
            VaultError, ValueError: Stored credentials cannot be read
            TokenRefreshError: Missing fields or a failed token request
        """
        credentials = self.vault.decrypt_json(integration.credentials or "")

        expiry = parse_datetime(credentials.get("token_expiry"))
        if expiry is None:
            raise TokenRefreshError(f"unparseable token_expiry {credentials.get('token_expiry')!r}")

        now = self.clock()
        if expiry - now > self.threshold:
            logger.debug(f"Token valid until {format_rfc3339(expiry)}, no refresh needed", extra=log_extra)
            return False

        refresh_token = credentials.get("refresh_token")
        if not refresh_token:
            raise TokenRefreshError("credentials have no refresh_token")

        url = self.token_urls[integration.provider](credentials)
        data = self.token_client(
            url,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            (credentials.get("client_id", ""), credentials.get("client_secret", "")),
        )

        access_token = data.get("access_token")
        if not access_token:
            raise TokenRefreshError("token response has no access_token")

        expires_in = to_int(data.get("expires_in"), DEFAULT_EXPIRES_IN_SECONDS)
        updated = dict(credentials)
        updated.update({
            "access_token": access_token,
            # Keep the old refresh token when the provider does not rotate it
            "refresh_token": data.get("refresh_token") or refresh_token,
            "token_expiry": format_rfc3339(now + timedelta(seconds=expires_in)),
        })

        self.admin_repo.update_credentials(integration.id, self.vault.encrypt_json(updated))
        logger.info(
            f"Refreshed token for integration {integration.id}, valid until {updated['token_expiry']}",
            extra=log_extra,
        )
        return True
