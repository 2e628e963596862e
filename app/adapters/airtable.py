"""Airtable REST client.

Only the record endpoints are used: list (with offset pagination), get,
batch create/update/delete (at most 10 records per call, an API limit) and
single-record update.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

from app.domain.models import RawRecord
from app.logging import get_logger

from .base import BaseHTTPClient
from .exceptions import AdapterConfigurationError, AdapterResponseError

logger = get_logger(__name__, component="airtable")

AIRTABLE_API_URL = "https://api.airtable.com/v0"
MAX_RECORDS_PER_REQUEST = 10
MAX_PAGE_SIZE = 100


class AirtableClient(BaseHTTPClient):
    """Thin typed wrapper over the Airtable records API."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        timeout: int = 30,
        user_agent: str = "BuyerPropertyMatcher/1.0",
        page_size: int = MAX_PAGE_SIZE,
        api_url: str = AIRTABLE_API_URL,
    ) -> None:
        super().__init__(timeout=timeout, user_agent=user_agent)
        if not api_key:
            raise AdapterConfigurationError("Airtable API key is required")
        if not base_id:
            raise AdapterConfigurationError("Airtable base id is required")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise AdapterConfigurationError(
                f"page_size must be between 1 and {MAX_PAGE_SIZE}, got: {page_size}"
            )

        self.base_id = base_id
        self.page_size = page_size
        self.api_url = api_url.rstrip("/")
        self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    @property
    def service_name(self) -> str:
        return "airtable"

    def table_url(self, table: str) -> str:
        return f"{self.api_url}/{self.base_id}/{quote(table, safe='')}"

    def list_records(
        self,
        table: str,
        fields: Optional[Sequence[str]] = None,
        filter_formula: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> List[RawRecord]:
        """Fetch every record of ``table``, following ``offset`` until exhausted.

        Args:
            table: Table name or id
            fields: Restrict the returned fields
            filter_formula: Airtable ``filterByFormula`` expression
            page_size: Records per page (defaults to the client's page size)
        """
        records: List[RawRecord] = []
        offset: Optional[str] = None
        pages = 0

        while True:
            params: List[Tuple[str, Any]] = [("pageSize", page_size or self.page_size)]
            for name in fields or ():
                params.append(("fields[]", name))
            if filter_formula:
                params.append(("filterByFormula", filter_formula))
            if offset:
                params.append(("offset", offset))

            data = self._make_request(self.table_url(table), params=params)
            if not isinstance(data, dict):
                raise AdapterResponseError(f"Unexpected list response for table {table!r}")

            records.extend(self._parse_record(item) for item in data.get("records") or [])
            pages += 1

            offset = data.get("offset")
            if not offset:
                break

        logger.info(
            f"Fetched {len(records)} records from {table}",
            extra={
                "event": "airtable.records.listed",
                "table": table,
                "count": len(records),
                "pages": pages,
            },
        )
        return records

    def create_records(self, table: str, field_maps: Sequence[Dict[str, Any]]) -> List[RawRecord]:
        """Create up to 10 records in one request; returns them with their new ids."""
        self._check_batch(field_maps)
        if not field_maps:
            return []
        data = self._make_request(
            self.table_url(table),
            method="POST",
            json_data={"records": [{"fields": fields} for fields in field_maps], "typecast": True},
        )
        return self._parse_records(data, table)

    def update_records(
        self, table: str, updates: Sequence[Tuple[str, Dict[str, Any]]]
    ) -> List[RawRecord]:
        """Patch up to 10 ``(record_id, fields)`` pairs. Unlisted fields are left alone."""
        self._check_batch(updates)
        if not updates:
            return []
        data = self._make_request(
            self.table_url(table),
            method="PATCH",
            json_data={
                "records": [{"id": record_id, "fields": fields} for record_id, fields in updates],
                "typecast": True,
            },
        )
        return self._parse_records(data, table)

    def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> RawRecord:
        data = self._make_request(
            f"{self.table_url(table)}/{quote(record_id, safe='')}",
            method="PATCH",
            json_data={"fields": fields, "typecast": True},
        )
        return self._parse_record(data)

    def delete_records(self, table: str, record_ids: Sequence[str]) -> List[str]:
        """Delete up to 10 records; returns the ids Airtable reports as deleted."""
        self._check_batch(record_ids)
        if not record_ids:
            return []
        data = self._make_request(
            self.table_url(table),
            method="DELETE",
            params=[("records[]", record_id) for record_id in record_ids],
        )
        if not isinstance(data, dict):
            raise AdapterResponseError(f"Unexpected delete response for table {table!r}")
        return [
            item["id"]
            for item in data.get("records") or []
            if isinstance(item, dict) and item.get("deleted") and item.get("id")
        ]

    @staticmethod
    def _check_batch(items: Sequence[Any]) -> None:
        if len(items) > MAX_RECORDS_PER_REQUEST:
            raise ValueError(
                f"Airtable accepts at most {MAX_RECORDS_PER_REQUEST} records per request, got {len(items)}"
            )

    def _parse_records(self, data: Any, table: str) -> List[RawRecord]:
        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise AdapterResponseError(f"Unexpected batch response for table {table!r}")
        return [self._parse_record(item) for item in data["records"]]

    def _parse_record(self, item: Any) -> RawRecord:
        if not isinstance(item, dict) or not item.get("id"):
            raise AdapterResponseError(f"Malformed Airtable record: {str(item)[:200]}")
        return RawRecord(
            id=item["id"],
            fields=item.get("fields") or {},
            created_time=self._parse_timestamp(item.get("createdTime")),
        )
