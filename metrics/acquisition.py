"""Metric acquisition: selector fallback, namespace scoping and concurrent fan-out.

Each logical metric type is resolved by a small state machine:

    pending selectors -> attempt -> succeeded | exhausted

A selector attempt fails when it raises a DynatraceError or yields no rows;
the next candidate is then tried. When every candidate failed, the metric
type raises SelectorExhaustedError listing each attempt.

With namespace scoping (tag filters present, or enabled explicitly) every
selector is filtered to one namespace per query. Under the "fatal" empty
namespace policy a namespace without rows aborts the metric type at once with
NamespaceDataError; under "tolerant" it is logged and skipped.

All metric types share one cancel event. The first failing branch sets it and
the others stop before their next selector attempt or page request.
"""
import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from config import METRIC_FETCH_WORKERS, AppConfig
from metrics.dynatrace_client import AcquisitionCancelled, DynatraceClient, DynatraceError
from metrics.selectors import METRIC_TYPES, namespace_scoped_selector, selectors_for
from models import Observation
from normalize.tags import parse_tags

NO_MATCHING_DATA = "no matching data"

# Fallback states
PENDING = "pending"
SUCCEEDED = "succeeded"
EXHAUSTED = "exhausted"


class MetricAcquisitionError(DynatraceError):
    """No usable data could be acquired for a metric type"""
    pass


class SelectorExhaustedError(MetricAcquisitionError):
    def __init__(self, metric_type: str, attempts: List[Tuple[str, str]]):
        self.metric_type = metric_type
        self.attempts = attempts
        detail = " | ".join(f"{selector} ({reason})" for selector, reason in attempts)
        super().__init__(f"No usable Dynatrace selector for {metric_type}. Attempts: {detail}")


class NamespaceDataError(MetricAcquisitionError):
    def __init__(self, metric_type: str, namespace: str, selector: str, tags: Sequence[str] = ()):
        self.metric_type = metric_type
        self.namespace = namespace
        self.selector = selector
        self.tags = list(tags)
        message = (
            f"No usable Dynatrace selector for {metric_type} in namespace {namespace}. "
            f"Attempt: {selector}"
        )
        if self.tags:
            message += f", tags: {','.join(self.tags)}"
        super().__init__(message)


@dataclass
class SelectorFallback:
    metric_type: str
    pending: Deque[str]
    attempts: List[Tuple[str, str]] = field(default_factory=list)
    state: str = PENDING
    winner: Optional[str] = None
    rows: List[Observation] = field(default_factory=list)

    @classmethod
    def start(cls, metric_type: str, selectors: Sequence[str]) -> "SelectorFallback":
        return cls(metric_type=metric_type, pending=deque(selectors))

    def next_selector(self) -> Optional[str]:
        if self.state != PENDING:
            return None
        if not self.pending:
            self.state = EXHAUSTED
            return None
        return self.pending.popleft()

    def succeed(self, selector: str, rows: List[Observation]) -> None:
        self.state = SUCCEEDED
        self.winner = selector
        self.rows = rows

    def fail(self, selector: str, reason: str) -> None:
        self.attempts.append((selector, reason))

    def error(self) -> SelectorExhaustedError:
        return SelectorExhaustedError(self.metric_type, list(self.attempts))


class MetricAcquirer:
    """Acquire normalized observations for each logical metric type

    Args:
        client: Dynatrace client used for every page request
        window: Relative time window such as "7d" or "24h"
        namespaces: Namespace allow-list
        required_tags: Tag predicates every series must satisfy
        scope_by_namespace: Force per-namespace queries even without tags
        empty_namespace_policy: "fatal" or "tolerant" for namespaces without rows
        selector_overrides: Per metric type selector lists replacing the registry
        logger: Logger for acquisition events
    """

    def __init__(self, client: DynatraceClient, window: str, namespaces: Sequence[str],
                 required_tags: Sequence[str] = (), scope_by_namespace: bool = False,
                 empty_namespace_policy: str = "fatal",
                 selector_overrides: Optional[Dict[str, List[str]]] = None,
                 logger: Optional[logging.Logger] = None):
        if empty_namespace_policy not in ("fatal", "tolerant"):
            raise ValueError(f"unknown empty namespace policy: {empty_namespace_policy}")
        self.client = client
        self.window = window
        self.namespaces = list(namespaces)
        self.required_tags = list(required_tags)
        self.scoped = scope_by_namespace or bool(parse_tags(self.required_tags))
        self.empty_namespace_policy = empty_namespace_policy
        self.selector_overrides = selector_overrides or {}
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_event = threading.Event()

    @classmethod
    def from_config(cls, client: DynatraceClient, config: AppConfig,
                    logger: Optional[logging.Logger] = None) -> "MetricAcquirer":
        return cls(
            client,
            window=config.time_window,
            namespaces=config.namespaces,
            required_tags=config.tags,
            scope_by_namespace=config.scope_by_namespace,
            empty_namespace_policy=config.empty_namespace_policy,
            selector_overrides=config.selectors,
            logger=logger,
        )

    def _query_scoped(self, metric_type: str, selector: str) -> List[Observation]:
        rows: List[Observation] = []
        for namespace in self.namespaces:
            scoped = namespace_scoped_selector(selector, namespace)
            ns_rows = self.client.query_selector(
                scoped, self.window, [namespace], self.required_tags, cancel_event=self.cancel_event
            )
            if not ns_rows:
                if self.empty_namespace_policy == "fatal":
                    raise NamespaceDataError(metric_type, namespace, selector, self.required_tags)
                self.logger.warning(
                    f"{metric_type}: namespace {namespace} returned no rows for {selector}, skipping"
                )
                continue
            self.logger.debug(f"{metric_type}: namespace {namespace} rows={len(ns_rows)}")
            rows.extend(ns_rows)
        return rows

    def _run_selector(self, metric_type: str, selector: str) -> List[Observation]:
        if self.scoped:
            return self._query_scoped(metric_type, selector)
        return self.client.query_selector(
            selector, self.window, self.namespaces, self.required_tags, cancel_event=self.cancel_event
        )

    def query_metric(self, metric_type: str) -> List[Observation]:
        """Return the first selector's observations that are non-empty.

        Raises:
            SelectorExhaustedError: every candidate errored or returned no rows
            NamespaceDataError: a namespace was empty under the fatal policy
            AcquisitionCancelled: another metric type already failed
        """
        fallback = SelectorFallback.start(metric_type, selectors_for(metric_type, self.selector_overrides))
        self.logger.debug(f"{metric_type}: start (scoped={self.scoped}, candidates={len(fallback.pending)})")

        selector = fallback.next_selector()
        while selector is not None:
            if self.cancel_event.is_set():
                raise AcquisitionCancelled(f"{metric_type}: cancelled before trying {selector}")
            try:
                rows = self._run_selector(metric_type, selector)
            except (NamespaceDataError, AcquisitionCancelled):
                raise
            except DynatraceError as e:
                self.logger.debug(f"{metric_type}: selector failed: {selector}: {e}")
                fallback.fail(selector, str(e))
            else:
                if rows:
                    fallback.succeed(selector, rows)
                    break
                self.logger.debug(f"{metric_type}: selector returned no rows: {selector}")
                fallback.fail(selector, NO_MATCHING_DATA)
            selector = fallback.next_selector()

        if fallback.state != SUCCEEDED:
            raise fallback.error()

        self.logger.info(f"{metric_type}: {len(fallback.rows)} series via {fallback.winner}")
        return fallback.rows

    def acquire_all(self, max_workers: int = METRIC_FETCH_WORKERS) -> Dict[str, List[Observation]]:
        """Query all metric types concurrently; the first failure aborts the run.

        On failure the cancel event is set and the executor is shut down
        without waiting, so sibling branches stop at their next request.
        """
        self.cancel_event.clear()
        results: Dict[str, List[Observation]] = {}
        executor = ThreadPoolExecutor(max_workers=max_workers)
        try:
            future_map = {executor.submit(self.query_metric, mt): mt for mt in METRIC_TYPES}
            for fut in as_completed(future_map):
                results[future_map[fut]] = fut.result()
        except BaseException as e:
            self.logger.debug(f"Acquisition aborted, cancelling remaining metric types: {e}")
            self.cancel_event.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown()
        return {mt: results[mt] for mt in METRIC_TYPES}
