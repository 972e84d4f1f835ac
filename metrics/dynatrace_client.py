"""Dynatrace Metrics API v2 client: paginated metric queries.

No retries: any transport failure or non-2xx response is raised immediately.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from config import DYNATRACE_TIMEOUT_SECONDS
from models import Observation
from normalize.series import normalize_page

QUERY_PATH = "/api/v2/metrics/query"


class DynatraceError(Exception):
    """Base exception for Dynatrace client and acquisition errors"""
    pass


class DynatraceConnectionError(DynatraceError):
    """The HTTP request could not be completed"""
    pass


class AcquisitionCancelled(DynatraceError):
    """Another metric branch failed; remaining page requests are skipped"""
    pass


class DynatraceQueryError(DynatraceError):
    """Dynatrace answered with a non-success status"""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Dynatrace API error {status_code}: {body}")


@dataclass
class MetricPage:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    next_page_key: Optional[str] = None
    metric_ids: List[str] = field(default_factory=list)


def resolution_for(window: str) -> str:
    """1m buckets for hour windows, 5m otherwise."""
    return "1m" if window.endswith("h") else "5m"


class DynatraceClient:
    """Client for the Dynatrace metrics query endpoint

    Args:
        endpoint: Environment URL, e.g. https://abc123.live.dynatrace.com
        token: API token sent as `Authorization: Api-Token <token>`
        timeout: Request timeout in seconds; None keeps the transport default
        logger: Logger for request lifecycle events
    """

    def __init__(self, endpoint: str, token: str,
                 timeout: Optional[float] = DYNATRACE_TIMEOUT_SECONDS,
                 logger: Optional[logging.Logger] = None):
        self.endpoint = endpoint.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.logger.debug(f"DynatraceClient initialized for {self.endpoint}")

    @property
    def query_url(self) -> str:
        return f"{self.endpoint}{QUERY_PATH}"

    def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        started = time.monotonic()
        self.logger.debug(
            f"Dynatrace request start: selector={params.get('metricSelector')} "
            f"from={params.get('from')} resolution={params.get('resolution')} "
            f"page_key={'nextPageKey' in params}"
        )
        try:
            r = requests.get(
                self.query_url,
                params=params,
                headers={"Authorization": f"Api-Token {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DynatraceConnectionError(f"request failed: {e}")
        elapsed_ms = int((time.monotonic() - started) * 1000)

        if not 200 <= r.status_code < 300:
            self.logger.debug(
                f"Dynatrace request failed: status={r.status_code} elapsed_ms={elapsed_ms} body={r.text[:500]}"
            )
            raise DynatraceQueryError(r.status_code, r.text)

        try:
            payload = r.json()
        except ValueError as e:
            raise DynatraceError(f"invalid JSON in Dynatrace response: {e}")
        self.logger.debug(
            f"Dynatrace request end: status={r.status_code} elapsed_ms={elapsed_ms} "
            f"results={len(payload.get('result') or [])} next_page_key={payload.get('nextPageKey')}"
        )
        return payload

    def request_page(self, selector: str, window: str, next_page_key: Optional[str] = None,
                     resolution: Optional[str] = None) -> MetricPage:
        """Fetch one page of series for `selector` over `now-<window>`.

        Follow-up pages send only the page key; the API rejects the first-page
        query parameters alongside it.
        """
        if next_page_key:
            params = {"nextPageKey": next_page_key}
        else:
            params = {
                "metricSelector": selector,
                "from": f"now-{window}",
                "resolution": resolution or resolution_for(window),
            }
        payload = self._get(params)

        page = MetricPage(next_page_key=payload.get("nextPageKey") or None)
        for result in payload.get("result") or []:
            page.metric_ids.append(result.get("metricId", ""))
            page.rows.extend(result.get("data") or [])
        return page

    def iter_pages(self, selector: str, window: str, resolution: Optional[str] = None,
                   cancel_event: Optional[threading.Event] = None) -> Iterator[MetricPage]:
        """Yield pages until a response arrives without a continuation key.

        Raises AcquisitionCancelled before any request once `cancel_event` is set.
        """
        next_page_key: Optional[str] = None
        page_number = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise AcquisitionCancelled(f"cancelled before page {page_number + 1} of {selector}")
            page_number += 1
            page = self.request_page(selector, window, next_page_key, resolution)
            yield page
            next_page_key = page.next_page_key
            self.logger.debug(
                f"Pagination step: selector={selector} page={page_number} "
                f"series={len(page.rows)} more={next_page_key is not None}"
            )
            if not next_page_key:
                return

    def query_selector(self, selector: str, window: str, namespaces: Sequence[str],
                       required_tags: Sequence[str] = (),
                       cancel_event: Optional[threading.Event] = None) -> List[Observation]:
        """Run a full paginated query and normalize every page."""
        rows: List[Observation] = []
        for page in self.iter_pages(selector, window, cancel_event=cancel_event):
            rows.extend(normalize_page(page.rows, namespaces, required_tags, logger=self.logger))
        self.logger.debug(f"Selector query end: selector={selector} rows={len(rows)}")
        return rows
