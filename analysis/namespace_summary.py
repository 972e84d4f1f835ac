import logging
from typing import Dict, List, Optional

from models import OVER_PROVISIONED, UNDER_PROVISIONED, NamespaceSummary, WorkloadRecommendation


def summarize_by_namespace(rows: List[WorkloadRecommendation],
                           logger: Optional[logging.Logger] = None) -> List[NamespaceSummary]:
    """Roll recommendations up per namespace, most reclaimable capacity first.

    Waste is max(0, current request - percentile usage), summed separately for
    CPU and memory.
    """
    logger = logger or logging.getLogger(__name__)
    summaries: Dict[str, NamespaceSummary] = {}

    for row in rows:
        entry = summaries.setdefault(row.namespace, NamespaceSummary(namespace=row.namespace))
        entry.workload_count += 1
        if OVER_PROVISIONED in (row.cpu_status, row.memory_status):
            entry.over_provisioned_count += 1
        if UNDER_PROVISIONED in (row.cpu_status, row.memory_status):
            entry.under_provisioned_count += 1
        entry.total_cpu_waste += max(0.0, row.current_cpu_request - row.p_cpu_usage)
        entry.total_memory_waste += max(0.0, row.current_memory_request - row.p_memory_usage)

    out = sorted(summaries.values(), key=lambda s: s.total_waste, reverse=True)
    logger.debug(f"Summarized {len(out)} namespace(s)")
    return out
