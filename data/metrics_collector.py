# data/metrics_collector.py

import re
import math
import time
from dataclasses import dataclass

import pandas as pd
import requests

from cloud.errors import MetricsError
from cloud.logging_config import LogConfig

REQUESTS_METRIC = "traefik_service_requests_total"

_LINE_RE = re.compile(r"^(?P<name>[a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(?P<labels>.*)\})?\s+(?P<value>\S+)(?:\s+-?\d+)?\s*$")
_LABEL_RE = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')


@dataclass
class ServiceRate:
    service_name: str
    total: float
    per_min: float
    duration: float  # seconds since the previous scrape


def parse_metric_line(line: str) -> tuple[str, float, bool]:
    """
    Extract the service name and value from one metric line.

    Example:
        traefik_service_requests_total{service="svc1",code="200"} 42

    Only lines whose `code` label is "200" (or that have no code label)
    are accepted.

    Returns:
        (service, value, True) on success, ("", 0.0, False) otherwise
    """
    match = _LINE_RE.match(line.strip())
    if match is None:
        return "", 0.0, False

    try:
        value = float(match.group("value"))
    except ValueError:
        return "", 0.0, False
    if not math.isfinite(value):
        return "", 0.0, False

    labels = dict(_LABEL_RE.findall(match.group("labels") or ""))
    service = labels.get("service")
    if not service:
        return "", 0.0, False

    code = labels.get("code")
    if code is not None and code not in ("200", ""):
        return "", 0.0, False

    return service, value, True


class MetricsCollector:
    """Scrapes the proxy's metrics endpoint and turns request counters into per-minute rates."""

    def __init__(
        self,
        metrics_url: str,
        session: requests.Session | None = None,
        timeout: float = 5.0,
        log_config: LogConfig | None = None,
    ):
        self.metrics_url = metrics_url
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = (log_config or LogConfig()).get_logger("metrics")
        self.last_counts: dict[str, float] = {}
        self.last_time = time.monotonic()

    def get_service_rates(self) -> dict[str, ServiceRate]:
        """
        Fetch request counters and compute per-minute rates since the last call.

        The first call has no baseline, so the cumulative count is used as
        the rate. A counter that went backwards (proxy restart) yields 0.

        Returns:
            dict mapping service name to ServiceRate
        """
        current_counts = self.fetch_service_requests()

        now = time.monotonic()
        duration = now - self.last_time
        first_run = len(self.last_counts) == 0

        self.logger.debug(
            f"Current counts: {current_counts}, Last counts: {self.last_counts}, Duration: {duration:.3f}s"
        )

        rates = {}
        for service, count in current_counts.items():
            if first_run:
                per_min = count
            elif duration > 0:
                delta = count - self.last_counts.get(service, 0.0)
                if delta < 0:
                    self.logger.warning(
                        f"Request counter for {service} went backwards ({self.last_counts.get(service)} -> {count}), "
                        f"treating rate as 0"
                    )
                    delta = 0.0
                per_min = delta / duration * 60
            else:
                per_min = 0.0

            rates[service] = ServiceRate(
                service_name=service,
                total=count,
                per_min=per_min,
                duration=duration,
            )

        self.last_counts = current_counts
        self.last_time = now

        return rates

    def fetch_service_requests(self) -> dict[str, float]:
        """Scrape the metrics endpoint and sum accepted request counts per service."""
        try:
            r = self.session.get(self.metrics_url, timeout=self.timeout)
            r.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Failed to fetch metrics from {self.metrics_url}: {e}")
            raise MetricsError(f"failed to fetch metrics: {e}") from e

        body = r.text
        if not body:
            self.logger.warning("Metrics response body is empty")
            return {}

        rows = []
        for line in body.splitlines():
            if not line.startswith(REQUESTS_METRIC):
                continue
            rest = line[len(REQUESTS_METRIC):]
            if rest[:1] not in ("{", " ", "\t"):
                continue
            service, count, ok = parse_metric_line(line)
            if ok:
                rows.append((service, count))

        if not rows:
            return {}

        df = pd.DataFrame(rows, columns=["service", "count"])
        totals = df.groupby("service", sort=False)["count"].sum()
        return {service: float(count) for service, count in totals.items()}
