"""Data records shared across acquisition, aggregation and recommendation."""
from dataclasses import dataclass, field
from typing import List

# Workload kinds
DEPLOYMENT = "deployment"
STATEFULSET = "statefulset"
DAEMONSET = "daemonset"
CRONJOB = "cronjob"
JOB = "job"
OTHER = "other"

# Provisioning status
OVER_PROVISIONED = "over-provisioned"
UNDER_PROVISIONED = "under-provisioned"
BALANCED = "balanced"
UNKNOWN = "unknown"

# Replica actions
SCALE_DOWN = "scale-down"
SCALE_UP = "scale-up"
KEEP = "keep"
NOT_APPLICABLE = "n/a"


@dataclass
class Observation:
    """One normalized time series: numeric samples for a single workload."""
    namespace: str
    workload: str
    workload_kind: str
    values: List[float]


@dataclass
class WorkloadMetrics:
    namespace: str
    workload: str
    workload_kind: str
    cpu_usage: List[float] = field(default_factory=list)
    memory_usage: List[float] = field(default_factory=list)
    cpu_request: List[float] = field(default_factory=list)
    memory_request: List[float] = field(default_factory=list)
    pod_count: List[float] = field(default_factory=list)

    @property
    def key(self):
        return (self.namespace, self.workload)


@dataclass(frozen=True)
class WorkloadRecommendation:
    namespace: str
    workload: str
    workload_kind: str
    p_cpu_usage: float
    p_memory_usage: float
    current_cpu_request: float
    current_memory_request: float
    current_replicas: int
    recommended_cpu_request: float
    recommended_memory_request: float
    recommended_replicas: int
    cpu_utilization_vs_request: float
    memory_utilization_vs_request: float
    cpu_status: str
    memory_status: str
    replica_action: str

    @property
    def low_utilization(self) -> bool:
        return OVER_PROVISIONED in (self.cpu_status, self.memory_status)


@dataclass
class NamespaceSummary:
    namespace: str
    workload_count: int = 0
    over_provisioned_count: int = 0
    under_provisioned_count: int = 0
    total_cpu_waste: float = 0.0
    total_memory_waste: float = 0.0

    @property
    def total_waste(self) -> float:
        return self.total_cpu_waste + self.total_memory_waste
