"""
Test fixtures and configuration for pytest
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import AppConfig  # noqa: E402


def make_series(namespace="prod", workload="api", kind="deployment", values=None, extra=None):
    """Build one raw Dynatrace series record with the standard dimension keys"""
    dimension_map = {
        "k8s.namespace.name": namespace,
        "k8s.workload.name": workload,
        "k8s.workload.kind": kind,
    }
    dimension_map.update(extra or {})
    return {
        "dimensions": [namespace, workload, kind],
        "dimensionMap": dimension_map,
        "values": [0.1, 0.2, None] if values is None else values,
    }


def make_payload(series, next_page_key=None, metric_id="builtin:kubernetes.workload.cpu_usage"):
    payload = {"result": [{"metricId": metric_id, "data": list(series)}]}
    if next_page_key:
        payload["nextPageKey"] = next_page_key
    return payload


def make_response(payload=None, status_code=200, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = payload if payload is not None else {"result": []}
    return resp


@pytest.fixture
def app_config():
    """Config with the documented defaults for a single namespace"""
    return AppConfig(
        endpoint="https://abc123.live.dynatrace.com",
        api_token="test-token",
        namespaces=["prod"],
    )


@pytest.fixture
def sample_payload():
    """One page with two workloads in prod and one in an unlisted namespace"""
    return make_payload([
        make_series("prod", "api", "deployment", [0.2, 0.3, None, 0.25]),
        make_series("prod", "db", "statefulset", [0.8, 0.9]),
        make_series("staging", "api", "deployment", [0.1]),
    ])
