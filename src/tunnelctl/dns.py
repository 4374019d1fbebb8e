"""DNS record lookup and removal through the Cloudflare v4 REST API."""

from types import TracebackType
from typing import Any, Literal

import httpx

from .common.exceptions import ConfigurationError, DNSError
from .common.logging import get_logger
from .settings import Settings

logger = get_logger(__name__)


class DNSRecordManager:
    """Looks up and deletes DNS records in one zone.

    Each call is a single request: no retries, no timeout.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None):
        """Initialize DNSRecordManager.

        Args:
            settings: Supplies the zone id, API URL and credentials
            client: Pre-built HTTP client (tests pass one with a mock
                transport); one is created and owned otherwise

        Raises:
            ConfigurationError: If the zone or credentials are missing
        """
        if not settings.dns_configured:
            raise ConfigurationError(
                "DNS API is not configured: set dns_zone_id and either "
                "dns_api_token or dns_email + dns_api_key"
            )
        self.zone_id = settings.dns_zone_id
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=settings.dns_api_url, timeout=None
        )
        self._headers = self._auth_headers(settings)
        logger.debug(
            "DNSRecordManager initialized",
            zone_id=self.zone_id,
            api_url=settings.dns_api_url,
            auth_method="token" if "Authorization" in self._headers else "global_key",
            email=self._headers.get("X-Auth-Email"),
        )

    @staticmethod
    def _auth_headers(settings: Settings) -> dict[str, str]:
        if settings.dns_api_token is not None:
            return {
                "Authorization": f"Bearer {settings.dns_api_token.get_secret_value()}"
            }
        if settings.dns_api_key is None or not settings.dns_email:
            raise ConfigurationError(
                "DNS API credentials missing: set dns_api_token or "
                "dns_email + dns_api_key"
            )
        return {
            "X-Auth-Email": settings.dns_email,
            "X-Auth-Key": settings.dns_api_key.get_secret_value(),
        }

    def _request(
        self, method: str, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Send one API request and return the decoded success payload.

        Raises:
            DNSError: On transport failure, undecodable body, or a payload
                whose ``success`` flag is not true
        """
        logger.debug("DNS API request", method=method, path=path, params=params)
        try:
            response = self._client.request(
                method, path, params=params, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise DNSError(f"DNS API request failed: {method} {path}: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise DNSError(
                f"DNS API returned non-JSON response (HTTP {response.status_code})"
            ) from e

        if not isinstance(payload, dict) or payload.get("success") is not True:
            errors = payload.get("errors", []) if isinstance(payload, dict) else []
            message = "no error details provided"
            if errors and isinstance(errors[0], dict):
                message = errors[0].get("message", message)
            raise DNSError(
                f"DNS API reported failure (HTTP {response.status_code}): {message}",
                errors=errors,
            )
        return payload

    def find_record_id(self, hostname: str) -> str | None:
        """Return the id of the first record named ``hostname``.

        Names compare case-insensitively, as DNS does; the API stores them
        lowercased. Duplicates are not an error; the first match wins.

        Returns:
            Record id, or None if no record has that name

        Raises:
            DNSError: If the request fails or the record list is malformed
        """
        payload = self._request(
            "GET",
            f"/zones/{self.zone_id}/dns_records",
            params={"name": hostname.lower()},
        )
        records = payload.get("result") or []
        if not isinstance(records, list) or not all(
            isinstance(record, dict) and record.get("id") for record in records
        ):
            raise DNSError("DNS API returned a malformed record list")

        wanted = hostname.lower()
        matches = [
            record
            for record in records
            if str(record.get("name", "")).lower() == wanted
        ]
        if not matches:
            logger.info("No DNS record found", hostname=hostname)
            return None
        if len(matches) > 1:
            logger.warning(
                "Several DNS records share this name, using the first",
                hostname=hostname,
                count=len(matches),
            )
        record_id = matches[0]["id"]
        logger.debug("DNS record found", hostname=hostname, record_id=record_id)
        return str(record_id)

    def delete_record(self, record_id: str) -> None:
        """Delete one record by id.

        Raises:
            DNSError: If the API does not report success
        """
        self._request("DELETE", f"/zones/{self.zone_id}/dns_records/{record_id}")
        logger.info("DNS record deleted", record_id=record_id)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "DNSRecordManager":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.close()
        return False
