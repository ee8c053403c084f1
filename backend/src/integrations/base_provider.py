"""
Base Provider - Common functionality for all marketplace and carrier adapters

Provides shared utilities for credential validation, HTTP calls, error
mapping and latency logging that every provider implementation uses.
"""

import logging
import threading
import time
from typing import Any, Dict, Iterable, Optional

import httpx

from .ports import ProviderAPIError, ProviderConfigError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class BaseProvider:
    """
    Base class for provider implementations.

    Provides common functionality:
    - Credential validation helpers
    - Lazily created httpx.Client (injectable transport for tests)
    - HTTP error mapping to ProviderAPIError
    - Latency logging

    Subclasses set provider_name and call validate_required_fields() in
    their constructor before anything else.
    """

    provider_name = ""

    def __init__(
        self,
        credentials: Dict[str, Any],
        settings: Optional[Dict[str, Any]] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not isinstance(credentials, dict):
            raise ProviderConfigError(f"{self.provider_name}: credentials must be a JSON object")
        self.credentials = credentials
        self.settings = settings or {}
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        # Set by the running task so throttling sleeps end on shutdown
        self.stop_event: Optional[threading.Event] = None

    @property
    def sandbox(self) -> bool:
        return bool(self.credentials.get("sandbox", False))

    def throttle(self, seconds: float) -> bool:
        """
        Sleep between rate-limited calls.

        Returns:
            False if shutdown was requested while waiting, True otherwise
        """
        if seconds <= 0:
            return not (self.stop_event is not None and self.stop_event.is_set())
        if self.stop_event is None:
            time.sleep(seconds)
            return True
        return not self.stop_event.wait(seconds)

    def validate_required_fields(self, config: Dict[str, Any], required_fields: Iterable[str]) -> None:
        """
        Validate that all required fields are present in config.

        Args:
            config: Configuration dictionary to validate
            required_fields: Required field names

        Raises:
            ProviderConfigError: If any required field is missing or empty
        """
        missing_fields = []
        for field in required_fields:
            if field not in config or config[field] is None:
                missing_fields.append(field)
            elif isinstance(config[field], str) and not config[field].strip():
                missing_fields.append(f"{field} (empty)")

        if missing_fields:
            raise ProviderConfigError(
                f"{self.provider_name}: Missing or empty required configuration fields: "
                f"{', '.join(missing_fields)}"
            )

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def default_headers(self) -> Dict[str, str]:
        """Headers sent with every request. Subclasses add authentication."""
        return {"Accept": "application/json"}

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Perform an HTTP request against the provider API.

        Args:
            method: HTTP method
            url: Absolute URL
            **kwargs: Passed through to httpx.Client.request (params, json, data, headers, auth)

        Returns:
            The successful httpx.Response

        Raises:
            ProviderAPIError: On transport failure or a 4xx/5xx response
        """
        headers = self.default_headers()
        headers.update(kwargs.pop("headers", None) or {})

        start = time.monotonic()
        try:
            response = self.client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderAPIError(f"{self.provider_name}: {method} {url} failed: {e}") from e

        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug(
            f"{self.provider_name} {method} {url} -> {response.status_code} in {latency_ms}ms",
            extra={"provider": self.provider_name},
        )

        if response.status_code >= 400:
            raise ProviderAPIError(
                f"{self.provider_name}: {method} {url} returned {response.status_code}: "
                f"{response.text[:500]}",
                status_code=response.status_code,
            )
        return response

    def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Perform a request and decode the JSON body (None for empty bodies)."""
        response = self.request(method, url, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProviderAPIError(
                f"{self.provider_name}: invalid JSON from {url}",
                status_code=response.status_code,
            ) from e
