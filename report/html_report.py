"""HTML report: namespace waste summary plus per-workload recommendations."""
import logging
import math
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import AppConfig
from models import NamespaceSummary, WorkloadRecommendation

BASE_DIR = Path(__file__).parent.resolve()
TEMPLATE_NAME = "report.html"
FILTER_MODES = ("all", "low-utilization")
GIB = 1024 ** 3


def fmt(value: float, digits: int = 2) -> str:
    if value is None or not math.isfinite(value):
        return "N/A"
    return f"{value:.{digits}f}"


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(BASE_DIR / "templates")),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["fmt"] = fmt
    env.filters["gib"] = lambda v: v / GIB
    return env


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    os.makedirs(dirp, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix='.tmp_report_', dir=dirp, suffix='.html')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


def render_report(config: AppConfig, recommendations: List[WorkloadRecommendation],
                  summary: List[NamespaceSummary], filter_mode: str = "all",
                  generated_at: Optional[datetime] = None) -> str:
    if filter_mode not in FILTER_MODES:
        raise ValueError(f"Invalid filter mode: {filter_mode}")
    generated_at = generated_at or datetime.now(timezone.utc)
    template = _environment().get_template(TEMPLATE_NAME)
    return template.render(
        config=config,
        recommendations=recommendations,
        summary=summary,
        low_utilization_default=(filter_mode == "low-utilization"),
        generated_at=generated_at.isoformat(),
    )


def write_report(output_path: str, config: AppConfig, recommendations: List[WorkloadRecommendation],
                 summary: List[NamespaceSummary], filter_mode: str = "all",
                 generated_at: Optional[datetime] = None,
                 logger: Optional[logging.Logger] = None) -> str:
    """Render and atomically write the report; returns the absolute path."""
    logger = logger or logging.getLogger(__name__)
    abs_path = os.path.abspath(output_path)
    html = render_report(config, recommendations, summary, filter_mode, generated_at)
    _atomic_write(abs_path, html)
    logger.debug(f"Wrote report with {len(recommendations)} row(s) to {abs_path}")
    return abs_path
