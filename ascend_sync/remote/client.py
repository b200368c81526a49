"""PostgREST client for the hosted backend."""

import logging
from typing import Any

import httpx

from ..config import RemoteConfig
from .errors import NetworkError, NotConfiguredError, RemoteValidationError

logger = logging.getLogger(__name__)

# Status codes worth retrying later; everything else in 4xx is final.
TRANSIENT_STATUS_CODES = {408, 425, 429}


def _eq(value: Any) -> str:
    return f"eq.{value}"


class RemoteStore:
    """Client for the backend's REST tables.

    Wraps select/upsert/update/delete against ``{url}/rest/v1/{table}`` and
    converts every failure into a tagged ``RemoteError`` subclass.
    """

    def __init__(
        self,
        config: RemoteConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the remote store client.

        Args:
            config: Remote connection settings.
            transport: Optional httpx transport (used by tests).
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def set_access_token(self, token: str | None) -> None:
        """Set the signed-in user's bearer token."""
        self.config.access_token = token
        if self._client is not None:
            self._client.headers["Authorization"] = f"Bearer {token or self.config.anon_key}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if not self.is_configured:
            raise NotConfiguredError("Remote store not configured")

        if self._client is None:
            token = self.config.access_token or self.config.anon_key
            self._client = httpx.AsyncClient(
                base_url=self.config.rest_url,
                timeout=self.config.timeout_seconds,
                headers={
                    "apikey": self.config.anon_key,
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | None = None,
        json_data: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (or None).

        Raises:
            NetworkError: On transport failures, timeouts and 5xx/429.
            RemoteValidationError: When the backend rejects the request.
        """
        client = await self._get_client()
        headers = {"Prefer": prefer} if prefer else None

        try:
            response = await client.request(
                method, f"/{table}", params=params, json=json_data, headers=headers
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {table} timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Connection to {table} failed: {e}") from e

        if response.status_code >= 500 or response.status_code in TRANSIENT_STATUS_CODES:
            raise NetworkError(
                f"Server error {response.status_code} on {table}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            code = details = None
            message = response.text
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                code = body.get("code")
                details = body.get("details")
                message = body.get("message") or message
            raise RemoteValidationError(
                message,
                status_code=response.status_code,
                code=code,
                details=details,
            )

        if not response.content:
            return None
        return response.json()

    async def select(
        self,
        table: str,
        user_id: str,
        deleted: bool | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Select a user's rows from a table.

        Args:
            table: Remote table name.
            user_id: Owner of the rows.
            deleted: None for all rows, False for live rows
                (``deleted_at IS NULL``), True for tombstones.
            columns: Column list for the select clause.

        Returns:
            List of row dicts.
        """
        params = {"select": columns, "user_id": _eq(user_id)}
        if deleted is False:
            params["deleted_at"] = "is.null"
        elif deleted is True:
            params["deleted_at"] = "not.is.null"

        rows = await self._request("GET", table, params=params)
        logger.debug(f"Selected {len(rows or [])} rows from {table}")
        return rows or []

    async def select_one(self, table: str, **filters: Any) -> dict[str, Any] | None:
        """Select a single row matching equality filters.

        Returns:
            The row, or None when no row matches.
        """
        params = {"select": "*", "limit": "1"}
        params.update({key: _eq(value) for key, value in filters.items()})
        rows = await self._request("GET", table, params=params)
        return rows[0] if rows else None

    async def upsert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        on_conflict: str = "id",
    ) -> None:
        """Insert or update rows keyed by ``on_conflict``."""
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            return

        await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json_data=rows,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        logger.debug(f"Upserted {len(rows)} rows into {table}")

    async def update(
        self, table: str, values: dict[str, Any], **filters: Any
    ) -> list[str]:
        """Update rows matching equality filters.

        Returns:
            Ids of the updated rows (empty if nothing matched).
        """
        params = {key: _eq(value) for key, value in filters.items()}
        params["select"] = "id"
        rows = await self._request(
            "PATCH",
            table,
            params=params,
            json_data=values,
            prefer="return=representation",
        )
        return [row["id"] for row in rows or []]

    async def delete(self, table: str, **filters: Any) -> None:
        """Physically delete rows matching equality filters."""
        params = {key: _eq(value) for key, value in filters.items()}
        await self._request("DELETE", table, params=params)

    async def health_check(self) -> bool:
        """Check whether the backend answers at all.

        Returns:
            True if the REST root responded, False otherwise.
        """
        try:
            client = await self._get_client()
            response = await client.get("/")
            return response.status_code < 500
        except (NotConfiguredError, httpx.HTTPError) as e:
            logger.debug(f"Health check failed: {e}")
            return False
