"""
Unit Tests: metrics scraping and per-minute rate calculation
"""

import time
from unittest.mock import Mock

import pytest
import requests

from cloud.errors import MetricsError
from data.metrics_collector import MetricsCollector, parse_metric_line

METRICS_URL = "http://proxy.test/metrics"

TWO_SERVICES = """
# HELP traefik_service_requests_total How many HTTP requests processed on a service.
# TYPE traefik_service_requests_total counter
traefik_service_requests_total{service="service1"} 100
traefik_service_requests_total{service="service2"} 200
"""


def collector_for(make_response, *bodies):
    session = Mock()
    session.get.side_effect = [make_response(200, text=b) for b in bodies]
    return MetricsCollector(METRICS_URL, session=session)


class TestParseMetricLine:

    @pytest.mark.parametrize("line,expected", [
        ('traefik_service_requests_total{service="svc1"} 42', ("svc1", 42.0, True)),
        ('traefik_service_requests_total{service="my-service"} 123', ("my-service", 123.0, True)),
        ('traefik_service_requests_total{code="200",method="GET",protocol="http",service="whoami@docker"} 7',
         ("whoami@docker", 7.0, True)),
        ('traefik_service_requests_total{service="svc1",code="404"} 50', ("", 0.0, False)),
        ('traefik_service_requests_total{method="GET"} 10', ("", 0.0, False)),
        ('traefik_service_requests_total{service="svc1"} abc', ("", 0.0, False)),
        ('traefik_service_requests_total{service="svc1"} NaN', ("", 0.0, False)),
        ('traefik_service_requests_total{service="svc1"} +Inf', ("", 0.0, False)),
        ('traefik_service_requests_total{service="svc1"} -Inf', ("", 0.0, False)),
        ("invalid metric line", ("", 0.0, False)),
        ("", ("", 0.0, False)),
    ])
    def test_parse(self, line, expected):
        assert parse_metric_line(line) == expected

    def test_accepts_trailing_timestamp(self):
        line = 'traefik_service_requests_total{service="svc1"} 5 1700000000000'
        assert parse_metric_line(line) == ("svc1", 5.0, True)


class TestFetchServiceRequests:

    def test_empty_response(self, make_response):
        mc = collector_for(make_response, "")
        assert mc.fetch_service_requests() == {}

    def test_valid_metrics(self, make_response):
        mc = collector_for(make_response, TWO_SERVICES)
        counts = mc.fetch_service_requests()
        assert counts == {"service1": 100.0, "service2": 200.0}

    def test_accumulates_only_successful_label_sets(self, make_response):
        body = "\n".join([
            'traefik_service_requests_total{service="svc",method="GET",code="200"} 10',
            'traefik_service_requests_total{service="svc",method="POST",code="200"} 20',
            'traefik_service_requests_total{service="svc",method="GET",code="404"} 50',
            'traefik_service_requests_bytes_total{service="svc",code="200"} 999',
            'traefik_entrypoint_requests_total{entrypoint="web",code="200"} 1000',
        ])
        mc = collector_for(make_response, body)
        assert mc.fetch_service_requests() == {"svc": 30.0}

    def test_http_error_raises_metrics_error(self, make_response):
        mc = collector_for(make_response, "")
        mc.session.get.side_effect = None
        mc.session.get.return_value = make_response(503, text="unavailable")

        with pytest.raises(MetricsError):
            mc.fetch_service_requests()

    def test_connection_error_raises_metrics_error(self):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        mc = MetricsCollector(METRICS_URL, session=session)

        with pytest.raises(MetricsError):
            mc.get_service_rates()


class TestGetServiceRates:

    def test_first_call_uses_cumulative_count(self, make_response):
        mc = collector_for(make_response, TWO_SERVICES)

        rates = mc.get_service_rates()

        assert rates["service1"].per_min == 100
        assert rates["service2"].per_min == 200
        assert rates["service1"].total == 100

    def test_unchanged_counts_give_zero_rate(self, make_response):
        mc = collector_for(make_response, TWO_SERVICES, TWO_SERVICES)

        mc.get_service_rates()
        time.sleep(0.1)
        rates = mc.get_service_rates()

        assert len(rates) == 2
        assert rates["service1"].total == 100
        assert rates["service1"].per_min == pytest.approx(0.0)
        assert rates["service1"].duration >= 0.09

    def test_rate_is_per_minute(self, make_response):
        later = TWO_SERVICES.replace("} 100", "} 130")
        mc = collector_for(make_response, TWO_SERVICES, later)

        mc.get_service_rates()
        mc.last_time -= 60  # pretend a minute passed
        rates = mc.get_service_rates()

        assert rates["service1"].per_min == pytest.approx(30.0, rel=0.01)
        assert rates["service2"].per_min == pytest.approx(0.0)

    def test_counter_reset_clamps_to_zero(self, make_response):
        reset = TWO_SERVICES.replace("} 100", "} 5")
        mc = collector_for(make_response, TWO_SERVICES, reset)

        mc.get_service_rates()
        mc.last_time -= 60
        rates = mc.get_service_rates()

        assert rates["service1"].per_min == 0.0
        assert rates["service1"].total == 5

    def test_baseline_replaced_not_merged(self, make_response):
        only_service2 = 'traefik_service_requests_total{service="service2"} 200\n'
        mc = collector_for(make_response, TWO_SERVICES, only_service2, TWO_SERVICES)

        mc.get_service_rates()
        mc.get_service_rates()
        assert mc.last_counts == {"service2": 200.0}

        mc.last_time -= 60
        rates = mc.get_service_rates()
        # service1 dropped out of the baseline, so its whole count is new traffic
        assert rates["service1"].per_min == pytest.approx(100.0, rel=0.01)
