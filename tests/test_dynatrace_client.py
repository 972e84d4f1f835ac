"""
Tests for the Dynatrace metrics query client
"""
import threading
from unittest.mock import patch

import pytest
import requests

from metrics.dynatrace_client import (
    AcquisitionCancelled,
    DynatraceClient,
    DynatraceConnectionError,
    DynatraceError,
    DynatraceQueryError,
    resolution_for,
)

from conftest import make_payload, make_response, make_series

SELECTOR = "builtin:kubernetes.workload.cpu_usage:avg"


class TestDynatraceClientInit:
    """Test client initialization"""

    def test_trailing_slash_is_stripped(self):
        client = DynatraceClient("https://abc.live.dynatrace.com/", "tok")
        assert client.query_url == "https://abc.live.dynatrace.com/api/v2/metrics/query"

    def test_timeout_defaults_to_none(self):
        assert DynatraceClient("https://x", "tok").timeout is None


class TestRequestPage:
    """Test single page requests"""

    @patch("metrics.dynatrace_client.requests.get")
    def test_first_page_params_and_auth_header(self, mock_get):
        mock_get.return_value = make_response(make_payload([make_series()]))
        client = DynatraceClient("https://x", "secret", timeout=5)

        page = client.request_page(SELECTOR, "7d")

        _, kwargs = mock_get.call_args
        assert kwargs["params"] == {"metricSelector": SELECTOR, "from": "now-7d", "resolution": "5m"}
        assert kwargs["headers"] == {"Authorization": "Api-Token secret"}
        assert kwargs["timeout"] == 5
        assert len(page.rows) == 1
        assert page.next_page_key is None
        assert page.metric_ids == ["builtin:kubernetes.workload.cpu_usage"]

    @patch("metrics.dynatrace_client.requests.get")
    def test_hour_window_uses_one_minute_resolution(self, mock_get):
        mock_get.return_value = make_response()
        DynatraceClient("https://x", "tok").request_page(SELECTOR, "24h")
        assert mock_get.call_args[1]["params"]["resolution"] == "1m"

    @patch("metrics.dynatrace_client.requests.get")
    def test_follow_up_page_sends_only_page_key(self, mock_get):
        mock_get.return_value = make_response()
        DynatraceClient("https://x", "tok").request_page(SELECTOR, "7d", next_page_key="abc")
        assert mock_get.call_args[1]["params"] == {"nextPageKey": "abc"}

    @patch("metrics.dynatrace_client.requests.get")
    def test_non_2xx_raises_query_error(self, mock_get):
        mock_get.return_value = make_response(status_code=400, text="bad selector")
        with pytest.raises(DynatraceQueryError) as exc:
            DynatraceClient("https://x", "tok").request_page(SELECTOR, "7d")
        assert exc.value.status_code == 400
        assert str(exc.value) == "Dynatrace API error 400: bad selector"

    @patch("metrics.dynatrace_client.requests.get")
    def test_transport_failure_raises_connection_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(DynatraceConnectionError):
            DynatraceClient("https://x", "tok").request_page(SELECTOR, "7d")

    @patch("metrics.dynatrace_client.requests.get")
    def test_invalid_json_raises(self, mock_get):
        resp = make_response()
        resp.json.side_effect = ValueError("no json")
        mock_get.return_value = resp
        with pytest.raises(DynatraceError):
            DynatraceClient("https://x", "tok").request_page(SELECTOR, "7d")


class TestPagination:
    """Test multi-page queries"""

    @patch("metrics.dynatrace_client.requests.get")
    def test_follows_page_keys_until_absent(self, mock_get):
        mock_get.side_effect = [
            make_response(make_payload([make_series(workload="a")], next_page_key="k1")),
            make_response(make_payload([make_series(workload="b")], next_page_key="k2")),
            make_response(make_payload([make_series(workload="c")])),
        ]
        client = DynatraceClient("https://x", "tok")

        rows = client.query_selector(SELECTOR, "7d", ["prod"])

        assert [r.workload for r in rows] == ["a", "b", "c"]
        assert mock_get.call_count == 3
        assert mock_get.call_args_list[1][1]["params"] == {"nextPageKey": "k1"}
        assert mock_get.call_args_list[2][1]["params"] == {"nextPageKey": "k2"}

    @patch("metrics.dynatrace_client.requests.get")
    def test_query_selector_normalizes_and_filters(self, mock_get, sample_payload):
        mock_get.return_value = make_response(sample_payload)
        rows = DynatraceClient("https://x", "tok").query_selector(SELECTOR, "7d", ["prod"])
        assert [(r.namespace, r.workload, r.workload_kind) for r in rows] == [
            ("prod", "api", "deployment"),
            ("prod", "db", "statefulset"),
        ]
        assert rows[0].values == [0.2, 0.3, 0.25]

    @patch("metrics.dynatrace_client.requests.get")
    def test_error_mid_pagination_propagates(self, mock_get):
        mock_get.side_effect = [
            make_response(make_payload([make_series()], next_page_key="k1")),
            make_response(status_code=503, text="unavailable"),
        ]
        with pytest.raises(DynatraceQueryError):
            DynatraceClient("https://x", "tok").query_selector(SELECTOR, "7d", ["prod"])

    @patch("metrics.dynatrace_client.requests.get")
    def test_cancel_event_stops_before_next_page(self, mock_get):
        mock_get.return_value = make_response(make_payload([make_series()], next_page_key="k1"))
        cancel = threading.Event()
        pages = DynatraceClient("https://x", "tok").iter_pages(SELECTOR, "7d", cancel_event=cancel)

        next(pages)
        cancel.set()
        with pytest.raises(AcquisitionCancelled):
            next(pages)
        assert mock_get.call_count == 1

    @patch("metrics.dynatrace_client.requests.get")
    def test_cancelled_query_sends_no_request(self, mock_get):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(AcquisitionCancelled):
            DynatraceClient("https://x", "tok").query_selector(SELECTOR, "7d", ["prod"], cancel_event=cancel)
        mock_get.assert_not_called()


def test_resolution_for():
    assert resolution_for("12h") == "1m"
    assert resolution_for("30d") == "5m"
