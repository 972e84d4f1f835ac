"""Registry of Dynatrace metric selectors per logical metric type.

Candidates are listed in priority order. Every candidate for a metric type
must report the same unit and carry the workload split dimensions, since the
first one with rows wins.
"""
from typing import Dict, List, Optional, Tuple

CPU_USAGE = "cpuUsage"
MEMORY_USAGE = "memoryUsage"
CPU_REQUEST = "cpuRequest"
MEMORY_REQUEST = "memoryRequest"
POD_COUNT = "podCount"

METRIC_TYPES: Tuple[str, ...] = (CPU_USAGE, MEMORY_USAGE, CPU_REQUEST, MEMORY_REQUEST, POD_COUNT)

WORKLOAD_SPLIT = 'splitBy("k8s.namespace.name","k8s.workload.name","k8s.workload.kind"):avg'

NAMESPACE_DIMENSION = "k8s.namespace.name"

DEFAULT_SELECTORS: Dict[str, List[str]] = {
    CPU_USAGE: [
        f"builtin:kubernetes.workload.cpu_usage:{WORKLOAD_SPLIT}",
    ],
    MEMORY_USAGE: [
        f"builtin:kubernetes.workload.memory_working_set:{WORKLOAD_SPLIT}",
    ],
    CPU_REQUEST: [
        f"builtin:kubernetes.workload.requests_cpu:{WORKLOAD_SPLIT}",
    ],
    MEMORY_REQUEST: [
        f"builtin:kubernetes.workload.requests_memory:{WORKLOAD_SPLIT}",
    ],
    # Same unit (pods) in both families; only the metric key differs
    POD_COUNT: [
        f"builtin:kubernetes.workload.pods:{WORKLOAD_SPLIT}",
        f"builtin:kubernetes.pods:{WORKLOAD_SPLIT}",
    ],
}

NAMESPACE_DISCOVERY_SELECTOR = 'builtin:kubernetes.workload.pods:splitBy("k8s.namespace.name"):avg'


def selectors_for(metric_type: str, overrides: Optional[Dict[str, List[str]]] = None) -> List[str]:
    """Return the ordered selector candidates for a metric type.

    A non-empty override list replaces the built-in candidates entirely.
    """
    if metric_type not in DEFAULT_SELECTORS:
        raise KeyError(f"unknown metric type: {metric_type}")
    if overrides and overrides.get(metric_type):
        return list(overrides[metric_type])
    return list(DEFAULT_SELECTORS[metric_type])


def namespace_scoped_selector(selector: str, namespace: str) -> str:
    """Append an equality filter on the namespace dimension to a selector."""
    escaped = namespace.replace('"', '\\"')
    return f'{selector}:filter(eq("{NAMESPACE_DIMENSION}","{escaped}"))'
