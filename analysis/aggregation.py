import logging
from typing import Dict, List, Optional, Tuple

from metrics.selectors import CPU_REQUEST, CPU_USAGE, MEMORY_REQUEST, MEMORY_USAGE, METRIC_TYPES, POD_COUNT
from models import Observation, WorkloadMetrics

# metric type -> WorkloadMetrics attribute
FIELD_BY_METRIC = {
    CPU_USAGE: "cpu_usage",
    MEMORY_USAGE: "memory_usage",
    CPU_REQUEST: "cpu_request",
    MEMORY_REQUEST: "memory_request",
    POD_COUNT: "pod_count",
}


def merge_metrics(datasets: Dict[str, List[Observation]],
                  logger: Optional[logging.Logger] = None) -> List[WorkloadMetrics]:
    """
    Merge the per-metric observation lists into one record per (namespace, workload).

    Values are concatenated, never averaged. The workload kind comes from the
    first observation seen for a key (metric types in registry order); later
    disagreements are logged and ignored.
    """
    logger = logger or logging.getLogger(__name__)
    logger.debug(
        "Merging observations: " + " ".join(f"{mt}={len(datasets.get(mt, []))}" for mt in METRIC_TYPES)
    )

    merged: Dict[Tuple[str, str], WorkloadMetrics] = {}
    for metric_type in METRIC_TYPES:
        attr = FIELD_BY_METRIC[metric_type]
        for obs in datasets.get(metric_type, []):
            key = (obs.namespace, obs.workload)
            row = merged.get(key)
            if row is None:
                row = WorkloadMetrics(namespace=obs.namespace, workload=obs.workload, workload_kind=obs.workload_kind)
                merged[key] = row
            elif row.workload_kind != obs.workload_kind:
                logger.debug(
                    f"Kind conflict for {obs.namespace}/{obs.workload}: keeping {row.workload_kind}, "
                    f"ignoring {obs.workload_kind} from {metric_type}"
                )
            getattr(row, attr).extend(obs.values)

    out = list(merged.values())
    logger.debug(f"Merged {len(out)} workload(s)")
    return out
