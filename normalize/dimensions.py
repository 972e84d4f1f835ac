"""Dimension-key resolution for Dynatrace series.

The same logical attribute shows up under different dimension keys depending
on which metric family produced a series. Each attribute is described by a
`ResolutionRule` and resolved by `resolve`, which walks the cascade:

    exact keys (in order) -> key substring needles (in order)
        -> positional dimension fallback (optional) -> default
"""
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

from models import CRONJOB, DAEMONSET, DEPLOYMENT, JOB, OTHER, STATEFULSET

UNKNOWN_VALUE = "unknown"


@dataclass(frozen=True)
class ResolutionRule:
    attribute: str
    exact_keys: Tuple[str, ...]
    key_needles: Tuple[str, ...] = ()
    positional_fallback: bool = False
    default: Optional[str] = UNKNOWN_VALUE


class Resolution(NamedTuple):
    value: Optional[str]
    # "exact:<key>", "needle:<needle>", "positional" or "default"
    source: str


NAMESPACE_RULE = ResolutionRule(
    attribute="namespace",
    exact_keys=("k8s.namespace.name", "dt.entity.cloud_application_namespace.name"),
    key_needles=("namespace",),
)

WORKLOAD_RULE = ResolutionRule(
    attribute="workload",
    exact_keys=(
        "k8s.workload.name",
        "dt.entity.cloud_application.name",
        "k8s.deployment.name",
        "k8s.statefulset.name",
    ),
    key_needles=("workload", "cloud_application"),
    positional_fallback=True,
)

# No default: an unresolved kind is inferred from the whole dimension map
KIND_RULE = ResolutionRule(
    attribute="workload_kind",
    exact_keys=("k8s.workload.kind",),
    key_needles=("kind",),
    default=None,
)

# Substring -> kind, checked in order ("cron" must win over "job")
KIND_HINTS: Tuple[Tuple[str, str], ...] = (
    ("deployment", DEPLOYMENT),
    ("stateful", STATEFULSET),
    ("daemon", DAEMONSET),
    ("cron", CRONJOB),
    ("job", JOB),
)


def find_by_key_needle(dimension_map: Dict[str, str], needle: str) -> Optional[str]:
    """Value of the first key (in map order) containing `needle`, case-insensitive."""
    needle = needle.lower()
    for key, value in dimension_map.items():
        if needle in key.lower() and value is not None:
            return value
    return None


def resolve(rule: ResolutionRule, dimension_map: Dict[str, str],
            dimensions: Sequence[str] = (), exclude: Optional[str] = None) -> Resolution:
    for key in rule.exact_keys:
        value = dimension_map.get(key)
        if value is not None:
            return Resolution(value, f"exact:{key}")

    for needle in rule.key_needles:
        value = find_by_key_needle(dimension_map, needle)
        if value is not None:
            return Resolution(value, f"needle:{needle}")

    if rule.positional_fallback:
        for value in dimensions or ():
            if value and value != exclude:
                return Resolution(value, "positional")

    return Resolution(rule.default, "default")


def kind_from_label(label: str) -> str:
    """Map an explicit kind label (e.g. "Deployment", "StatefulSet") to a workload kind."""
    normalized = label.strip().lower()
    if normalized == JOB:
        return JOB
    for hint, kind in KIND_HINTS:
        if hint != JOB and hint in normalized:
            return kind
    return OTHER


def infer_kind(workload: str, dimension_map: Dict[str, str]) -> str:
    """Guess the kind from the workload name plus every dimension key and value."""
    blob = " ".join(
        [workload, " ".join(dimension_map.keys()), " ".join(v for v in dimension_map.values() if v)]
    ).lower()
    for hint, kind in KIND_HINTS:
        if hint in blob:
            return kind
    return OTHER


def resolve_namespace(dimension_map: Dict[str, str]) -> str:
    return resolve(NAMESPACE_RULE, dimension_map).value


def resolve_workload(dimension_map: Dict[str, str], dimensions: Sequence[str], namespace: str) -> str:
    return resolve(WORKLOAD_RULE, dimension_map, dimensions, exclude=namespace).value


def resolve_kind(dimension_map: Dict[str, str], workload: str) -> str:
    label = resolve(KIND_RULE, dimension_map).value
    if label is not None:
        return kind_from_label(label)
    return infer_kind(workload, dimension_map)
