from typing import List, Optional, Set
import logging

from metrics.dynatrace_client import DynatraceClient
from metrics.selectors import NAMESPACE_DISCOVERY_SELECTOR
from normalize.dimensions import find_by_key_needle


def discover_namespaces(client: DynatraceClient, window: str,
                        logger: Optional[logging.Logger] = None) -> List[str]:
    """
    List namespaces that reported pods during `now-<window>`.

    Single aggregate request (resolution Inf, first page only). The namespace
    comes from `k8s.namespace.name`, then any key containing "namespace",
    then the first positional dimension.
    """
    logger = logger or logging.getLogger(__name__)
    page = client.request_page(NAMESPACE_DISCOVERY_SELECTOR, window, resolution="Inf")
    namespaces: Set[str] = set()
    for series in page.rows:
        dimension_map = series.get("dimensionMap") or {}
        dimensions = series.get("dimensions") or []
        ns = (
            dimension_map.get("k8s.namespace.name")
            or find_by_key_needle(dimension_map, "namespace")
            or (dimensions[0] if dimensions else None)
        )
        if ns:
            namespaces.add(ns)
    out = sorted(namespaces)
    logger.debug(f"Discovered {len(out)} namespace(s)")
    return out
