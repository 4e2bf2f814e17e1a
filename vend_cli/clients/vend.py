"""Vend (Lightspeed Retail X-Series) API client."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from pydantic import ValidationError

from ..models import (
    AuditLogEvent,
    Customer,
    CustomerGroup,
    GiftCard,
    Outlet,
    Product,
    Register,
    Sale,
    StoreCredit,
    Supplier,
    Tag,
    User,
    VendRecord,
)
from .base import BaseClient, ProtocolViolationError, VendAPIError


logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=VendRecord)

API_V2 = "2.0"
API_V09 = "0.9"

# The 0.9 supplier endpoint caps pages at 200 records
SUPPLIER_PAGE_SIZE = 200
STORE_CREDIT_PAGE_SIZE = 1000


def parse_vend_datetime(value: str, tz: str) -> datetime:
    """Convert a Vend timestamp into the store's timezone."""
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone {tz!r}: {e}") from e

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid Vend timestamp {value!r}: {e}") from e
    if parsed.tzinfo is None:
        raise ValueError(f"Vend timestamp {value!r} has no UTC offset")

    return parsed.astimezone(zone)


def _page_data(payload: Any, url: str) -> List[Any]:
    """Pull the data list out of a 2.0 response envelope."""
    if not isinstance(payload, dict):
        raise ProtocolViolationError(f"Expected a JSON object from {url}, got {type(payload).__name__}")

    data = payload.get("data")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ProtocolViolationError(f"Expected a list under 'data' from {url}")
    return data


class VendClient(BaseClient):
    """HTTP client for the Vend 2.0 API of a single store."""

    def api_root(self, api: str = API_V2) -> str:
        """Root URL of the given API version.

        Some write endpoints (suppliers, register sales, product deletes)
        only exist on the older 0.9 API under ``/api``.
        """
        if api == API_V2:
            return self.config.api_url
        if api == API_V09:
            return f"{self.config.base_url}/api"
        raise ValueError(f"Unsupported API version {api!r}, expected {API_V2} or {API_V09}")

    def url(self, resource: str, params: Optional[Dict[str, Any]] = None, api: str = API_V2) -> str:
        """Build an API URL for a resource, e.g. ``customers``."""
        url = httpx.URL(f"{self.api_root(api)}/{resource.lstrip('/')}")
        if params:
            url = url.copy_merge_params(params)
        return str(url)

    def version_url(self, resource: str, version: int) -> str:
        return self.url(resource, {"after": version})

    def flake_url(self, resource: str, cursor: str) -> str:
        # The first page is requested without a cursor
        if not cursor:
            return self.url(resource)
        return self.url(resource, {"before": cursor})

    def local_time(self, value: str) -> datetime:
        """Convert a Vend timestamp into the configured store timezone."""
        if not self.config.timezone:
            raise ValueError("No timezone configured for this client")
        return parse_vend_datetime(value, self.config.timezone)

    # -- single pages ------------------------------------------------------

    def resource_page(self, resource: str, version: int) -> Tuple[List[Any], int]:
        """Get one page of a version-paginated resource.

        Returns the page records and the ``version.max`` of the page.
        """
        url = self.version_url(resource, version)
        payload = self.get(url)
        data = _page_data(payload, url)

        version_info = payload.get("version") or {}
        try:
            max_version = int(version_info.get("max") or 0)
        except (TypeError, ValueError, AttributeError) as e:
            raise ProtocolViolationError(f"Invalid version info from {url}: {version_info!r}") from e

        return data, max_version

    def resource_page_flake(self, resource: str, cursor: str) -> Tuple[List[Any], str]:
        """Get one page of a flake-ID-paginated resource.

        Returns the page records and the id of the last record, which is
        the cursor for the next page. The cursor is empty for an empty page.
        """
        url = self.flake_url(resource, cursor)
        data = _page_data(self.get(url), url)
        if not data:
            return data, ""

        last = data[-1]
        last_id = last.get("id") if isinstance(last, dict) else None
        if not isinstance(last_id, str) or not last_id:
            raise ProtocolViolationError(f"Last record from {url} has no string id")

        return data, last_id

    # -- whole collections -------------------------------------------------

    def fetch_all_versioned(self, resource: str, after: int = 0) -> List[Any]:
        """Fetch every record of a resource by stepping the version cursor.

        Stops on the first empty page. A non-empty page that does not move
        the version forward would loop forever, so it is an error.
        """
        records: List[Any] = []
        version = after

        try:
            while True:
                page, max_version = self.resource_page(resource, version)
                if not page:
                    break

                records.extend(page)
                logger.debug("Fetched %d %s (version %d -> %d)", len(page), resource, version, max_version)

                if max_version <= version:
                    raise ProtocolViolationError(
                        f"Version for {resource} did not advance past {version} on a non-empty page"
                    )
                version = max_version
        except VendAPIError as e:
            e.partial_results = records
            raise

        return records

    def fetch_all_flake(self, resource: str) -> List[Any]:
        """Fetch every record of a resource by stepping the flake cursor.

        After the first page the API answers with the previous page's last
        record once everything has been read, so a page of one record or
        less ends the loop and is not kept.
        """
        records: List[Any] = []

        try:
            page, cursor = self.resource_page_flake(resource, "")
            records.extend(page)

            while len(page) > 1:
                page, cursor = self.resource_page_flake(resource, cursor)
                if len(page) > 1:
                    records.extend(page)
                    logger.debug("Fetched %d %s (before %s)", len(page), resource, cursor)
        except VendAPIError as e:
            e.partial_results = records
            raise

        return records

    def fetch_all_offset(self, resource: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Fetch every record of a resource paginated by record offset."""
        records: List[Any] = []
        offset = 0

        try:
            while True:
                query = dict(params or {})
                query["offset"] = offset
                url = self.url(resource, query)
                page = _page_data(self.get(url), url)
                if not page:
                    break

                records.extend(page)
                offset += len(page)
        except VendAPIError as e:
            e.partial_results = records
            raise

        return records

    def fetch_all_numbered(self, resource: str, key: str, page_size: int) -> List[Any]:
        """Fetch every record from a 0.9 endpoint paginated by page number.

        These endpoints live on the 0.9 API root and wrap the records
        in a key named after the resource, next to a ``pagination`` block.
        """
        records: List[Any] = []
        page_number = 0

        try:
            while True:
                params: Dict[str, Any] = {"page_size": page_size}
                if page_number > 0:
                    params["page"] = page_number
                url = self.url(resource, params, api=API_V09)

                payload = self.get(url)
                if not isinstance(payload, dict):
                    raise ProtocolViolationError(f"Expected a JSON object from {url}")

                page = payload.get(key) or []
                records.extend(page)

                pagination = payload.get("pagination") or {}
                try:
                    current = int(pagination.get("page") or 0)
                    pages = int(pagination.get("pages") or 0)
                except (TypeError, ValueError, AttributeError) as e:
                    raise ProtocolViolationError(f"Invalid pagination from {url}: {pagination!r}") from e
                if current >= pages:
                    break

                if current + 1 <= page_number:
                    raise ProtocolViolationError(f"Page number for {resource} did not advance past {page_number}")
                page_number = current + 1
        except VendAPIError as e:
            e.partial_results = records
            raise

        return records

    # -- typed resources ---------------------------------------------------

    @staticmethod
    def _parse(model: Type[RecordT], records: List[Any]) -> List[RecordT]:
        try:
            return [model.model_validate(record) for record in records]
        except ValidationError as e:
            raise ProtocolViolationError(f"Unexpected {model.__name__} payload: {e}") from e

    def customers(self) -> List[Customer]:
        """Get all customers."""
        return self._parse(Customer, self.fetch_all_versioned("customers"))

    def customer_groups(self) -> Dict[str, str]:
        """Get customer group names keyed by group id."""
        groups = self._parse(CustomerGroup, self.fetch_all_versioned("customer_groups"))
        return {group.id: group.name or "" for group in groups if group.id}

    def products(self) -> List[Product]:
        """Get all products."""
        return self._parse(Product, self.fetch_all_versioned("products"))

    def tags(self) -> Dict[str, str]:
        """Get tag names keyed by tag id."""
        tags = self._parse(Tag, self.fetch_all_versioned("tags"))
        return {tag.id: tag.name or "" for tag in tags if tag.id}

    def sales(self, after: int = 0) -> List[Sale]:
        """Get all sales, or only those changed after the given version."""
        return self._parse(Sale, self.fetch_all_versioned("sales", after))

    def users(self) -> List[User]:
        """Get all users."""
        return self._parse(User, self.fetch_all_versioned("users"))

    def outlets(self) -> List[Outlet]:
        """Get all outlets."""
        return self._parse(Outlet, self.fetch_all_versioned("outlets"))

    def registers(self) -> List[Register]:
        """Get all registers."""
        return self._parse(Register, self.fetch_all_versioned("registers"))

    def gift_cards(self) -> List[GiftCard]:
        """Get all gift cards."""
        return self._parse(GiftCard, self.fetch_all_flake("balances/gift_cards"))

    def store_credits(self) -> List[StoreCredit]:
        """Get all store credits (a single large page)."""
        url = self.url("store_credits", {"page_size": STORE_CREDIT_PAGE_SIZE})
        return self._parse(StoreCredit, _page_data(self.get(url), url))

    def suppliers(self) -> List[Supplier]:
        """Get all suppliers from the 0.9 supplier endpoint."""
        return self._parse(Supplier, self.fetch_all_numbered("supplier", "suppliers", SUPPLIER_PAGE_SIZE))

    def audit_log(self, date_from: str, date_to: str) -> List[AuditLogEvent]:
        """Get audit log events between two ISO-8601 timestamps."""
        events = self.fetch_all_offset("auditlog_events", {"from": date_from, "to": date_to})
        return self._parse(AuditLogEvent, events)

    def current_user(self) -> User:
        """Get the user the token belongs to."""
        url = self.url("user")
        payload = self.get(url)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
            raise ProtocolViolationError(f"Expected a user object from {url}")
        return User.model_validate(payload["data"])

    # -- mutations ---------------------------------------------------------

    def delete_entity(self, resource: str, entity_id: str, api: str = API_V2) -> Any:
        """Delete a single record, e.g. ``delete_entity("customers", id)``."""
        return self.delete(self.url(f"{resource}/{entity_id}", api=api))

    def create_entity(self, resource: str, body: Any, api: str = API_V2) -> Any:
        """Create a record from a JSON body."""
        return self.post(self.url(resource, api=api), body)

    def update_entity(self, resource: str, entity_id: str, body: Any, api: str = API_V2) -> Any:
        """Replace fields on an existing record."""
        return self.put(self.url(f"{resource}/{entity_id}", api=api), body)
