"""
ERP OData client for processed sales lines

Authenticates with the OAuth2 client-credentials flow, caches the access
token, and fetches or patches entity records by SalesId.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any

import requests
from opentelemetry import trace

from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

DEFAULT_ENTITY_NAME = "PdSalesVSCostProcesseds"
DEFAULT_FILTER_FIELD = "SalesId"
REQUEST_TIMEOUT_SECONDS = 30
TOKEN_LIFETIME_SECONDS = 3600
# Refresh this long before the cached token expires
TOKEN_REFRESH_MARGIN_SECONDS = 60
MAX_PAGE_SIZE = 5000


class ODataResponseError(Exception):
    """The OData service answered with something other than JSON."""


def escape_odata(value: Any) -> str:
    """Escape a value for use inside a quoted OData literal."""
    return str(value if value is not None else "").replace("'", "''")


@dataclass(frozen=True)
class ODataSettings:
    """Connection settings for the ERP OData service."""

    base_url: str
    token_url: str
    client_id: str
    client_secret: str
    scope: str
    entity_name: str = DEFAULT_ENTITY_NAME
    filter_field: str = DEFAULT_FILTER_FIELD
    data_area_id: str | None = None

    @classmethod
    def from_env(cls) -> "ODataSettings":
        """
        Build settings from environment variables

        Environment variables:
            BASE_URL, TOKEN_URL, CLIENT_ID, CLIENT_SECRET, SCOPE_URL (required)
            ENTITY_NAME (default: PdSalesVSCostProcesseds)
            FILTER_FIELD (default: SalesId)
            DATAAREAID (optional company key part for PATCH)

        Raises:
            ValueError: If a required variable is missing
        """
        required = {
            "BASE_URL": os.getenv("BASE_URL"),
            "TOKEN_URL": os.getenv("TOKEN_URL"),
            "CLIENT_ID": os.getenv("CLIENT_ID"),
            "CLIENT_SECRET": os.getenv("CLIENT_SECRET"),
            "SCOPE_URL": os.getenv("SCOPE_URL"),
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing OData environment variables: {', '.join(missing)}")

        return cls(
            base_url=required["BASE_URL"],
            token_url=required["TOKEN_URL"],
            client_id=required["CLIENT_ID"],
            client_secret=required["CLIENT_SECRET"],
            scope=required["SCOPE_URL"],
            entity_name=os.getenv("ENTITY_NAME", DEFAULT_ENTITY_NAME),
            filter_field=os.getenv("FILTER_FIELD", DEFAULT_FILTER_FIELD),
            data_area_id=os.getenv("DATAAREAID") or None,
        )

    @property
    def entity_endpoint(self) -> str:
        """Entity URL; ``/data`` is appended to the base URL when missing."""
        base = self.base_url.rstrip("/")
        if not base:
            return self.entity_name
        root = base if base.lower().endswith("/data") else f"{base}/data"
        return f"{root}/{self.entity_name}"


class ODataClient:
    """
    ERP OData client

    Errors from the token endpoint or the service are raised unchanged
    (``requests.HTTPError`` and friends). Nothing is retried.
    """

    def __init__(self, settings: ODataSettings):
        """
        Initialize OData client

        Args:
            settings: Connection settings
        """
        self.settings = settings
        self._token: str | None = None
        self._token_expiry = 0.0

        logger.info(f"Initialized OData client for {settings.entity_endpoint}")

    def get_token(self) -> str:
        """
        Return a cached access token, requesting a new one when close to expiry

        Returns:
            Bearer token
        """
        now = time.time()
        if self._token and self._token_expiry > now + TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token

        logger.debug("Requesting OData access token")
        response = requests.post(
            self.settings.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "scope": self.settings.scope,
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        response.raise_for_status()

        self._token = response.json().get("access_token")
        self._token_expiry = now + TOKEN_LIFETIME_SECONDS
        return self._token

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_token()}",
            "Accept": "application/json",
            **extra,
        }

    def get_by_sales_id(self, sales_id: str) -> dict[str, Any]:
        """
        Fetch all entity records of one order

        Args:
            sales_id: Order id

        Returns:
            OData body, ``{"value": [...]}``

        Raises:
            ValueError: If sales_id is empty
            ODataResponseError: If the response is not JSON
            requests.HTTPError: On a non-2xx status
        """
        if not sales_id:
            raise ValueError("sales_id is required")

        params = {"$filter": f"{self.settings.filter_field} eq '{escape_odata(sales_id)}'"}

        with trace_operation(
            "odata_fetch_by_sales_id",
            kind=trace.SpanKind.CLIENT,
            sales_id=sales_id,
            entity=self.settings.entity_name,
        ):
            response = requests.get(
                self.settings.entity_endpoint,
                params=params,
                headers=self._headers(Prefer=f"odata.maxpagesize={MAX_PAGE_SIZE}"),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()

            content_type = response.headers.get("Content-Type", "")
            if "application/json" not in content_type:
                raise ODataResponseError(f"Unexpected OData response type: {content_type!r}")

            body = response.json()
            logger.debug(
                f"Fetched {len(body.get('value') or [])} OData records for {sales_id}"
            )
            return body

    async def fetch_by_sales_id(self, sales_id: str) -> dict[str, Any]:
        """Async wrapper running ``get_by_sales_id`` in a worker thread."""
        return await asyncio.to_thread(self.get_by_sales_id, sales_id)

    def record_path(self, sales_id: str) -> str:
        """Entity key path, with the data area key part when configured."""
        key_parts = [f"{self.settings.filter_field}='{escape_odata(sales_id)}'"]
        if self.settings.data_area_id:
            key_parts.append(f"dataAreaId='{escape_odata(self.settings.data_area_id)}'")
        return f"{self.settings.entity_endpoint}({','.join(key_parts)})"

    def patch_record(self, sales_id: str, changes: dict[str, Any]) -> requests.Response:
        """
        Patch one entity record unconditionally (``If-Match: *``)

        Args:
            sales_id: Order id
            changes: Fields to update

        Returns:
            The HTTP response

        Raises:
            ValueError: If sales_id is empty or changes is not a dict
            requests.HTTPError: On a non-2xx status
        """
        if not sales_id:
            raise ValueError("sales_id is required")
        if not isinstance(changes, dict):
            raise ValueError("changes must be a dict of field values")

        with trace_operation(
            "odata_patch_record",
            kind=trace.SpanKind.CLIENT,
            sales_id=sales_id,
        ):
            response = requests.patch(
                self.record_path(sales_id),
                json=changes,
                headers=self._headers(**{"Content-Type": "application/json", "If-Match": "*"}),
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            logger.info(f"Patched OData record {sales_id}: {sorted(changes)}")
            return response
