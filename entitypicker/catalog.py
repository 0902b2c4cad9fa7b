"""
Catalog capabilities.

A catalog answers two questions:

    find_records(query) -> list of records
    resolve_by_identifier(identifier) -> record (raises NotFound)

``query`` is exactly what ``filters.build_query`` returns. Catalog
methods may be plain functions or coroutines; the selection controller
accepts both.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote

import requests

from .errors import FetchFailed, MalformedFilter, NotFound
from .filters import Query, matches, to_api_params
from .logger import get_logger
from .normalize import compute_entity_ref, parse_entity_ref
from .retry import RetryError, RetryableStatus, exponential_backoff, should_retry_http_status

logger = get_logger()


class Catalog:
    """Base class for catalog capabilities."""

    source = "catalog"

    def find_records(self, query: Query) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def resolve_by_identifier(self, identifier: str) -> Dict[str, Any]:
        raise NotImplementedError


class InMemoryCatalog(Catalog):
    """Catalog over a list of records held in memory (snapshots, tests)."""

    source = "memory"

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()):
        self._records: List[Dict[str, Any]] = [dict(r) for r in records]

    def add(self, record: Mapping[str, Any]) -> None:
        self._records.append(dict(record))

    def find_records(self, query: Query) -> List[Dict[str, Any]]:
        return [r for r in self._records if matches(r, query)]

    def resolve_by_identifier(self, identifier: str) -> Dict[str, Any]:
        wanted = str(parse_entity_ref(identifier))
        for record in self._records:
            try:
                if compute_entity_ref(record) == wanted:
                    return record
            except MalformedFilter:
                continue
        raise NotFound(f"No record for identifier '{wanted}'", identifier=wanted)


class HttpCatalog(Catalog):
    """
    Client for a REST catalog exposing ``/api/catalog/entities``.

    Transient failures (timeouts, connection errors, 408/429/5xx) are
    retried with exponential backoff; anything left over becomes
    FetchFailed.
    """

    source = "http"

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("Catalog base URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._get = exponential_backoff(
            max_retries=max_retries,
            base_delay=retry_delay,
            exceptions=(
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                RetryableStatus,
            ),
        )(self._request)

    def _request(self, url: str, params=None) -> requests.Response:
        resp = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
        if should_retry_http_status(resp.status_code):
            raise RetryableStatus(resp.status_code, url)
        return resp

    def _fetch(self, url: str, params=None) -> requests.Response:
        """GET with retry; errors become FetchFailed, 404 becomes NotFound."""
        logger.record_fetch_attempt(self.source)
        try:
            resp = self._get(url, params=params)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "HTTPError"
            if status == 404:
                raise NotFound(f"Catalog returned 404 for {url}")
            logger.record_fetch_failure(self.source, f"HTTPError_{status}")
            logger.error("Catalog request failed", url=url, status=status)
            raise FetchFailed(f"Catalog request failed ({status}): {url}") from e
        except RetryError as e:
            logger.record_fetch_failure(self.source, type(e.__cause__).__name__)
            logger.error("Catalog request failed after retries", url=url, error=str(e))
            raise FetchFailed(f"Catalog unavailable: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.record_fetch_failure(self.source, "RequestException")
            logger.error("Catalog request error", url=url, error=str(e))
            raise FetchFailed(f"Catalog request error: {e}") from e
        logger.record_fetch_success(self.source)
        return resp

    def find_records(self, query: Query) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/api/catalog/entities"
        params = to_api_params(query) or None
        resp = self._fetch(url, params=params)
        try:
            data = resp.json()
        except ValueError as e:
            raise FetchFailed(f"Catalog returned invalid JSON: {url}") from e
        items = data.get("items", []) if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise FetchFailed(f"Unexpected catalog response shape from {url}")
        logger.debug("Fetched records", count=len(items), filters=len(query))
        return items

    def resolve_by_identifier(self, identifier: str) -> Dict[str, Any]:
        ref = parse_entity_ref(identifier)
        url = "{}/api/catalog/entities/by-name/{}/{}/{}".format(
            self.base_url, quote(ref.kind, safe=""), quote(ref.namespace, safe=""), quote(ref.name, safe="")
        )
        try:
            return self._fetch(url).json()
        except NotFound:
            raise NotFound(f"No record for identifier '{ref}'", identifier=str(ref))
