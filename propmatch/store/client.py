"""
Airtable REST client.

Thin wrapper over the Airtable v0 API used as the record store:
    Base URL:    https://api.airtable.com/v0/{base_id}/{table}
    Auth:        Bearer token in Authorization header
    Pagination:  ?pageSize=N&offset=<opaque cursor>  (max pageSize=100)
    Filtering:   ?filterByFormula=<formula>
    Selection:   ?fields[]=Field1&fields[]=Field2
    Deletes:     DELETE ?records[]=id1&records[]=id2  (max 10 per request)

Only 429 responses are retried (exponential backoff, capped, bounded
attempts). Every other failure raises immediately.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests

from propmatch.config import DEFAULT_API_URL
from propmatch.exceptions import ConfigurationError, RateLimitExceeded, RecordStoreError
from propmatch.store.formulas import record_ids_any


@dataclass
class RecordPage:
    """One page of records plus the opaque cursor for the next page."""
    records: List[Dict[str, Any]] = field(default_factory=list)
    offset: Optional[str] = None


class AirtableClient:
    """
    Client for the Airtable REST API.

    Handles auth, query building, cursor pagination, batch deletes and
    rate-limit retries.
    """

    # API-enforced limits
    MAX_PAGE_SIZE = 100
    MAX_DELETE_BATCH = 10

    # Keeps RECORD_ID() formulas well under the URL length limit
    MAX_IDS_PER_FORMULA = 100

    def __init__(
        self,
        api_key: str,
        base_id: str,
        api_url: str = DEFAULT_API_URL,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 5.0,
        timeout: int = 30,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            api_key: Airtable personal access token
            base_id: Airtable base id (appXXXX)
            api_url: API root (defaults to DEFAULT_API_URL)
            max_retries: Retries after a 429 before giving up
            base_delay: First retry delay in seconds, doubled per retry
            max_delay: Upper bound for any single retry delay
            timeout: Request timeout in seconds
            logger: Logger to use instead of the module logger
            sleep: Sleep function (injectable for tests)
        """
        self.base_url = f"{api_url.rstrip('/')}/{base_id}"
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })

        # Requests issued (including retries) since construction.
        # Incremented from cache fan-out worker threads.
        self.request_count = 0
        self._count_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, **kwargs) -> 'AirtableClient':
        """
        Create client from a Config object.

        Raises:
            ConfigurationError: API key or base id is empty
        """
        missing = config.missing_credentials()
        if missing:
            raise ConfigurationError(f"Missing Airtable credentials: {', '.join(missing)}")
        return cls(
            api_key=config.AIRTABLE_API_KEY,
            base_id=config.AIRTABLE_BASE_ID,
            api_url=config.AIRTABLE_API_URL,
            max_retries=config.MAX_RETRIES,
            base_delay=config.RETRY_BASE_DELAY,
            max_delay=config.RETRY_MAX_DELAY,
            timeout=config.REQUEST_TIMEOUT,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _table_url(self, table: str, record_id: Optional[str] = None) -> str:
        url = f"{self.base_url}/{quote(table, safe='')}"
        if record_id:
            url = f"{url}/{record_id}"
        return url

    def _retry_delay(self, retry: int, response: requests.Response) -> float:
        retry_after = response.headers.get('Retry-After')
        if retry_after:
            try:
                return min(float(retry_after), self.max_delay)
            except ValueError:
                pass
        return min(self.base_delay * (2 ** (retry - 1)), self.max_delay)

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[List[Tuple[str, Any]]] = None,
        json_data: Optional[Dict] = None,
    ) -> Dict:
        """Issue a request, retrying only on HTTP 429."""
        for attempt in range(self.max_retries + 1):
            self.logger.debug(f"{method} {url} (attempt {attempt + 1}/{self.max_retries + 1})")
            with self._count_lock:
                self.request_count += 1
            try:
                response = self.session.request(
                    method, url, params=params, json=json_data, timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                raise RecordStoreError(f"Request to Airtable failed: {e}") from e

            if response.status_code == 429:
                if attempt < self.max_retries:
                    delay = self._retry_delay(attempt + 1, response)
                    self.logger.warning(
                        f"Rate limited (429) on attempt {attempt + 1}/{self.max_retries + 1}, "
                        f"retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)
                    continue
                raise RateLimitExceeded(
                    f"Rate limited after {self.max_retries + 1} attempts",
                    status_code=429,
                )

            if not response.ok:
                try:
                    details = response.json()
                except ValueError:
                    details = {'message': response.text}
                raise RecordStoreError(
                    f"Airtable API error: {response.status_code} {response.reason}",
                    status_code=response.status_code,
                    details=details,
                )

            if not response.content:
                return {}
            return response.json()

        # Unreachable: the last attempt either returns or raises
        raise RateLimitExceeded(f"Max retries ({self.max_retries}) exceeded", status_code=429)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_records(
        self,
        table: str,
        formula: Optional[str] = None,
        page_size: Optional[int] = None,
        offset: Optional[str] = None,
        fields: Optional[Iterable[str]] = None,
        max_records: Optional[int] = None,
    ) -> RecordPage:
        """Fetch a single page of records (one request)."""
        params: List[Tuple[str, Any]] = []
        if formula:
            params.append(('filterByFormula', formula))
        if page_size:
            params.append(('pageSize', min(int(page_size), self.MAX_PAGE_SIZE)))
        if max_records:
            params.append(('maxRecords', int(max_records)))
        if offset:
            params.append(('offset', offset))
        for name in fields or []:
            params.append(('fields[]', name))

        data = self._request('GET', self._table_url(table), params=params)
        return RecordPage(records=data.get('records', []), offset=data.get('offset'))

    def query(
        self,
        table: str,
        formula: Optional[str] = None,
        fields: Optional[Iterable[str]] = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """Fetch every record matching formula, following cursors."""
        fields = list(fields) if fields else None
        all_records: List[Dict[str, Any]] = []
        offset = None
        page = 0

        while True:
            page += 1
            result = self.list_records(table, formula=formula, page_size=page_size,
                                       offset=offset, fields=fields)
            all_records.extend(result.records)
            offset = result.offset
            if not offset:
                break

        self.logger.debug(f"Fetched {len(all_records)} records from {table} ({page} pages)")
        return all_records

    def fetch_by_ids(
        self,
        table: str,
        record_ids: Iterable[str],
        fields: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch records by id using RECORD_ID() lookups; one request per chunk."""
        unique_ids = list(dict.fromkeys(rid for rid in record_ids if rid))
        if not unique_ids:
            return []

        records: List[Dict[str, Any]] = []
        for i in range(0, len(unique_ids), self.MAX_IDS_PER_FORMULA):
            chunk = unique_ids[i:i + self.MAX_IDS_PER_FORMULA]
            records.extend(self.query(table, formula=record_ids_any(chunk), fields=fields))
        return records

    def find_first(
        self,
        table: str,
        formula: str,
        fields: Optional[Iterable[str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the first record matching formula, or None."""
        result = self.list_records(table, formula=formula, fields=fields, max_records=1)
        return result.records[0] if result.records else None

    def count(self, table: str, field: Optional[str] = None, page_size: int = MAX_PAGE_SIZE) -> int:
        """
        Count records in a table.

        Airtable has no count endpoint, so this pages through the table
        requesting a single projected field and counts what comes back.
        """
        count = 0
        offset = None
        while True:
            result = self.list_records(table, page_size=page_size, offset=offset,
                                       fields=[field] if field else None)
            count += len(result.records)
            offset = result.offset
            if not offset:
                return count

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_record(self, table: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request('POST', self._table_url(table), json_data={'fields': fields})
        self.logger.info(f"Created record {data.get('id')} in {table}")
        return data

    def update_record(self, table: str, record_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """PATCH only the given fields of one record."""
        return self._request('PATCH', self._table_url(table, record_id), json_data={'fields': fields})

    def delete_records(self, table: str, record_ids: List[str]) -> int:
        """Delete up to MAX_DELETE_BATCH records in one request."""
        if not record_ids:
            return 0
        if len(record_ids) > self.MAX_DELETE_BATCH:
            raise ValueError(
                f"Cannot delete {len(record_ids)} records at once (max {self.MAX_DELETE_BATCH})"
            )
        params = [('records[]', rid) for rid in record_ids]
        data = self._request('DELETE', self._table_url(table), params=params)
        return len(data.get('records', record_ids))
