"""Orchestrator: acquire metrics -> merge -> recommend -> summarize -> write report.
Metrics are read from Dynatrace only; nothing in the cluster is changed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import click

from config import AppConfig, ConfigValidationError, load_config, setup_logging
from metrics.acquisition import MetricAcquirer
from metrics import discovery as discovery_mod
from metrics.dynatrace_client import DynatraceClient, DynatraceError
from analysis.aggregation import merge_metrics
from analysis.recommendations import generate_recommendations
from analysis.namespace_summary import summarize_by_namespace
from models import NamespaceSummary, WorkloadMetrics, WorkloadRecommendation
from report.html_report import FILTER_MODES, write_report

logger = logging.getLogger(__name__)

VERSION = "0.2.0"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunResult:
    generated_at: datetime
    workloads: List[WorkloadMetrics]
    recommendations: List[WorkloadRecommendation]
    summary: List[NamespaceSummary]
    series_counts: Dict[str, int]


def run_pipeline(config: AppConfig, client: Optional[DynatraceClient] = None,
                 log: Optional[logging.Logger] = None) -> RunResult:
    """Run acquisition and analysis for one config.

    Any acquisition failure propagates; there is no partial result.
    """
    log = log or logger
    client = client or DynatraceClient(config.endpoint, config.api_token, logger=log)

    log.info(f"Querying {len(config.namespaces)} namespace(s) over now-{config.time_window}")
    datasets = MetricAcquirer.from_config(client, config, logger=log).acquire_all()

    workloads = merge_metrics(datasets, logger=log)
    recommendations = generate_recommendations(workloads, config, logger=log)
    summary = summarize_by_namespace(recommendations, logger=log)

    return RunResult(
        generated_at=_now(),
        workloads=workloads,
        recommendations=recommendations,
        summary=summary,
        series_counts={mt: len(rows) for mt, rows in datasets.items()},
    )


@click.command(name="workload-sizer")
@click.version_option(VERSION)
@click.option('-c', '--config', 'config_path', default='config.yaml', show_default=True, help='Config file path (YAML or JSON)')
@click.option('-w', '--window', default=None, help='Override time window, e.g. 7d or 24h')
@click.option('-o', '--output', default=None, help='Override output report path')
@click.option('--filter', 'filter_mode', type=click.Choice(FILTER_MODES), default='all', show_default=True,
              help='Initial report filter')
@click.option('--discover-namespaces', is_flag=True, help='List namespaces visible in Dynatrace and exit')
@click.option('--debug', is_flag=True, help='Enable debug logging')
def cli(config_path: str, window: Optional[str], output: Optional[str], filter_mode: str,
        discover_namespaces: bool, debug: bool) -> None:
    """Dynatrace-backed CPU, memory and replica sizing recommendations."""
    setup_logging("DEBUG" if debug else None)

    try:
        config = load_config(config_path, window=window, output_path=output)
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        raise click.ClickException(str(e))

    client = DynatraceClient(config.endpoint, config.api_token, logger=logger)

    try:
        if discover_namespaces:
            namespaces = discovery_mod.discover_namespaces(client, config.time_window, logger=logger)
            if not namespaces:
                click.echo("No namespaces discovered.")
                return
            click.echo("Discovered namespaces:")
            for ns in namespaces:
                click.echo(f"- {ns}")
            return

        result = run_pipeline(config, client=client, log=logger)
    except DynatraceError as e:
        logger.error(f"Metric acquisition failed: {e}")
        raise click.ClickException(str(e))

    report_path = write_report(
        config.output_path, config, result.recommendations, result.summary, filter_mode,
        generated_at=result.generated_at, logger=logger,
    )
    click.echo(f"Recommendations generated: {len(result.recommendations)}")
    click.echo(f"Report written to: {report_path}")


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
