"""Sizing recommendations from merged workload metrics.

Deterministic rules only:
- requests are sized from the configured usage percentile plus headroom
- memory headroom never drops below 1.3x
- provisioning status compares percentile usage against the current request
- replica counts are only recommended for deployments
"""
import logging
import math
from typing import List, Optional

from config import MEMORY_HEADROOM_FLOOR, AppConfig
from models import (
    BALANCED, DEPLOYMENT, KEEP, NOT_APPLICABLE, OVER_PROVISIONED, SCALE_DOWN, SCALE_UP,
    UNDER_PROVISIONED, UNKNOWN, WorkloadMetrics, WorkloadRecommendation,
)
from normalize.math import mean, percentile, round_half_up

# Lower bound for per-pod CPU capacity when computing supported replicas
CAPACITY_EPSILON = 1e-9


def classify_utilization(ratio: float, over_threshold: float, under_threshold: float) -> str:
    if not math.isfinite(ratio) or ratio <= 0:
        return UNKNOWN
    if ratio < over_threshold:
        return OVER_PROVISIONED
    if ratio > under_threshold:
        return UNDER_PROVISIONED
    return BALANCED


def utilization_ratio(usage: float, request: float) -> float:
    # No request set means unknown, not over-provisioned
    return usage / request if request > 0 else 0.0


def recommend_replicas(p_cpu_usage: float, recommended_cpu_request: float,
                       current_replicas: int, min_replica_floor: int) -> int:
    target_per_pod = max(CAPACITY_EPSILON, recommended_cpu_request)
    total_load = p_cpu_usage * current_replicas
    supported = max(1, math.ceil(total_load / target_per_pod))
    return max(min_replica_floor, supported)


def replica_action(recommended: int, current: int) -> str:
    if recommended < current:
        return SCALE_DOWN
    if recommended > current:
        return SCALE_UP
    return KEEP


def recommend_workload(metrics: WorkloadMetrics, config: AppConfig) -> WorkloadRecommendation:
    p_cpu = percentile(metrics.cpu_usage, config.percentile)
    p_mem = percentile(metrics.memory_usage, config.percentile)
    current_cpu = mean(metrics.cpu_request)
    current_mem = mean(metrics.memory_request)
    current_replicas = max(1, round_half_up(mean(metrics.pod_count)))

    recommended_cpu = p_cpu * config.cpu_headroom_multiplier
    recommended_mem = p_mem * max(MEMORY_HEADROOM_FLOOR, config.memory_headroom_multiplier)

    cpu_ratio = utilization_ratio(p_cpu, current_cpu)
    mem_ratio = utilization_ratio(p_mem, current_mem)

    if metrics.workload_kind == DEPLOYMENT:
        recommended_replicas = recommend_replicas(p_cpu, recommended_cpu, current_replicas, config.min_replica_floor)
        action = replica_action(recommended_replicas, current_replicas)
    else:
        recommended_replicas = current_replicas
        action = NOT_APPLICABLE

    return WorkloadRecommendation(
        namespace=metrics.namespace,
        workload=metrics.workload,
        workload_kind=metrics.workload_kind,
        p_cpu_usage=p_cpu,
        p_memory_usage=p_mem,
        current_cpu_request=current_cpu,
        current_memory_request=current_mem,
        current_replicas=current_replicas,
        recommended_cpu_request=recommended_cpu,
        recommended_memory_request=recommended_mem,
        recommended_replicas=recommended_replicas,
        cpu_utilization_vs_request=cpu_ratio,
        memory_utilization_vs_request=mem_ratio,
        cpu_status=classify_utilization(
            cpu_ratio, config.cpu_over_provisioned_threshold, config.cpu_under_provisioned_threshold
        ),
        memory_status=classify_utilization(
            mem_ratio, config.memory_over_provisioned_threshold, config.memory_under_provisioned_threshold
        ),
        replica_action=action,
    )


def generate_recommendations(workloads: List[WorkloadMetrics], config: AppConfig,
                             logger: Optional[logging.Logger] = None) -> List[WorkloadRecommendation]:
    """One recommendation per workload, sorted by (namespace, workload)."""
    logger = logger or logging.getLogger(__name__)
    logger.debug(f"Generating recommendations for {len(workloads)} workload(s) at p{config.percentile}")
    results = sorted(
        (recommend_workload(w, config) for w in workloads),
        key=lambda r: (r.namespace, r.workload),
    )
    logger.debug(f"Generated {len(results)} recommendation(s)")
    return results
