import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from models import Observation
from normalize.dimensions import resolve_kind, resolve_namespace, resolve_workload
from normalize.tags import matches_tags


@dataclass
class NormalizeStats:
    """Counters for series dropped while normalizing a page."""
    emitted: int = 0
    skipped_no_values: int = 0
    skipped_by_namespace: int = 0
    skipped_by_tags: int = 0


def numeric_values(values: Optional[Iterable[Any]]) -> List[float]:
    """Keep numeric samples only.
    Drops nulls, booleans, strings and NaNs.
    """
    vals: List[float] = []
    for v in values or []:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            continue
        fv = float(v)
        if fv != fv:  # NaN
            continue
        vals.append(fv)
    return vals


def normalize_series(series: Dict[str, Any], allowed_namespaces: Sequence[str],
                     required_tags: Sequence[str] = (),
                     stats: Optional[NormalizeStats] = None) -> Optional[Observation]:
    """Turn one raw `{dimensions, dimensionMap, values}` record into an Observation.

    Returns None when the series is skipped (no numeric values, namespace not
    allowed, or a required tag does not match); `stats` records why.
    """
    stats = stats if stats is not None else NormalizeStats()

    values = numeric_values(series.get("values"))
    if not values:
        stats.skipped_no_values += 1
        return None

    dimension_map: Dict[str, str] = series.get("dimensionMap") or {}
    dimensions: List[str] = series.get("dimensions") or []

    namespace = resolve_namespace(dimension_map)
    if namespace not in allowed_namespaces:
        stats.skipped_by_namespace += 1
        return None

    workload = resolve_workload(dimension_map, dimensions, namespace)
    kind = resolve_kind(dimension_map, workload)

    if not matches_tags(dimension_map, required_tags):
        stats.skipped_by_tags += 1
        return None

    stats.emitted += 1
    return Observation(namespace=namespace, workload=workload, workload_kind=kind, values=values)


def normalize_page(rows: Iterable[Dict[str, Any]], allowed_namespaces: Sequence[str],
                   required_tags: Sequence[str] = (),
                   logger: Optional[logging.Logger] = None) -> List[Observation]:
    logger = logger or logging.getLogger(__name__)
    stats = NormalizeStats()
    out: List[Observation] = []
    for series in rows:
        obs = normalize_series(series, allowed_namespaces, required_tags, stats)
        if obs is not None:
            out.append(obs)
    logger.debug(
        f"Normalized page: rows={stats.emitted} skipped_no_values={stats.skipped_no_values} "
        f"skipped_by_namespace={stats.skipped_by_namespace} skipped_by_tags={stats.skipped_by_tags}"
    )
    return out
