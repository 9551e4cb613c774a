# backend/cloud_saver.py
#
# Turn cloud instances off when the traffic reaching them through the proxy
# drops below a threshold. "Turn the lights off when the room is empty."

import datetime
import threading
import urllib.parse
from collections import deque
from dataclasses import dataclass, field

import requests

from backend.config import Config
from cloud.base import CloudService
from cloud.errors import CloudSaverError, ConfigError, OperationCancelledError
from cloud.logging_config import LogConfig
from cloud.service import new_service
from data.metrics_collector import MetricsCollector, ServiceRate
from decision.scaling_policy import decide_action, should_monitor_router, resource_name_for_service

HISTORY_SIZE = 100


@dataclass
class Router:
    name: str
    rule: str = ""
    service: str = ""
    provider: str = ""
    status: str = ""
    entry_points: list[str] = field(default_factory=list)
    using: list[str] = field(default_factory=list)
    priority: int = 0
    middlewares: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "Router":
        return cls(
            name=data.get("name", ""),
            rule=data.get("rule", ""),
            service=data.get("service", ""),
            provider=data.get("provider", ""),
            status=data.get("status", ""),
            entry_points=list(data.get("entryPoints") or []),
            using=list(data.get("using") or []),
            priority=int(data.get("priority") or 0),
            middlewares=list(data.get("middlewares") or []),
        )


def empty_configuration() -> dict:
    """Dynamic configuration handed back to the proxy each tick. Nothing is routed."""
    return {
        "http": {
            "routers": {},
            "services": {},
            "middlewares": {},
            "serversTransports": {},
        }
    }


class CloudSaver:
    """
    Periodic worker that scales down cloud resources behind idle services.

    Lifecycle: construct, init(), provide(queue), stop().
    """

    def __init__(
        self,
        config: Config,
        name: str = "cloud-saver",
        log_config: LogConfig | None = None,
        cloud_service: CloudService | None = None,
        session: requests.Session | None = None,
        api_timeout: float = 5.0,
    ):
        if config is None:
            raise ConfigError("config is required")

        self.name = name
        self.config = config
        self.window_size = config.window_seconds()
        self.traffic_threshold = config.traffic_threshold
        self.router_filter = config.router_filter
        self.api_url = config.api_url.rstrip("/")
        self.api_timeout = api_timeout
        self.dry_run = config.dry_run
        self.test_mode = config.test_mode

        self.log_config = log_config or LogConfig(debug=config.debug, log_file=config.log_file)
        self.logger = self.log_config.get_logger(name)

        self.session = session or requests.Session()
        self.metrics_collector = MetricsCollector(
            config.metrics_url, session=self.session, log_config=self.log_config
        )

        self._owns_cloud_service = cloud_service is None
        if cloud_service is None:
            cloud_service = new_service(config.cloud_config, log_config=self.log_config)
        self.cloud_service = cloud_service

        self.last_rates: dict[str, ServiceRate] = {}
        self._history = deque(maxlen=HISTORY_SIZE)
        self._history_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def init(self) -> None:
        """Validate runtime settings before the loop starts."""
        if self.window_size < 60 and not self.test_mode:
            raise ConfigError("window size must be at least 1 minute")
        if self.traffic_threshold < 0:
            raise ConfigError("traffic threshold must be non-negative")

    def provide(self, cfg_queue) -> None:
        """
        Start the background loop. Each tick's configuration is put on `cfg_queue`.

        Args:
            cfg_queue: queue.Queue (or anything with put()) receiving configurations
        """
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError(f"{self.name} is already running")

        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(cfg_queue,), name=f"{self.name}-loop", daemon=True
        )
        self._thread.start()
        self.logger.info(
            f"🚀 Started: window {self.window_size:.0f}s, threshold {self.traffic_threshold} req/min, "
            f"dry run {self.dry_run}"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the loop, including any in-flight scale down, and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Worker did not exit within {timeout}s, leaving cloud service open")
                return
            self._thread = None
        if self._owns_cloud_service:
            self.cloud_service.close()
        self.logger.info("Stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self, cfg_queue):
        try:
            self.load_configuration(cfg_queue)
        except Exception:
            self.logger.exception("Worker loop crashed")

    def load_configuration(self, cfg_queue) -> None:
        while not self._stop_event.wait(self.window_size):
            try:
                configuration = self.generate_configuration()
            except Exception as e:
                self.logger.error(f"Failed to generate configuration: {e}")
                continue

            cfg_queue.put(configuration)

    def generate_configuration(self) -> dict:
        """Run one tick: compute rates and scale down every idle, monitored service."""
        rates = self.metrics_collector.get_service_rates()
        self.last_rates = rates

        for service_name, rate in rates.items():
            if self._stop_event.is_set():
                self.logger.info("Stop requested, abandoning remaining services this tick")
                break
            try:
                self.evaluate_service(service_name, rate)
            except OperationCancelledError as e:
                self.logger.warning(f"Scale down of {service_name} cancelled: {e}")
            except CloudSaverError as e:
                self.logger.error(f"Scale down of {service_name} failed: {e}")
            except requests.exceptions.RequestException as e:
                self.logger.error(f"Failed to resolve router for {service_name}: {e}")
            except Exception:
                self.logger.exception(f"Unexpected error handling service {service_name}")

        return empty_configuration()

    def evaluate_service(self, service_name: str, rate: ServiceRate) -> dict | None:
        """
        Apply the scaling policy to one service.

        Returns:
            The history entry recorded for a scale down, or None if skipped
        """
        router_name = self.get_router_for_service(service_name)
        if not router_name:
            self.logger.debug(f"Skipping service {service_name} - no matching router found")
            return None

        names = self.router_filter.names if self.router_filter else None
        if not should_monitor_router(router_name, names):
            self.logger.debug(f"Skipping router {router_name} - not in filter list")
            return None

        decision = decide_action(rate.per_min, self.traffic_threshold)
        if decision["action"] != "scale_down":
            self.logger.debug(f"Service {service_name}: {decision['reason']}")
            return None

        resource = resource_name_for_service(service_name)
        self.logger.info(
            f"LOW TRAFFIC ALERT: Service {service_name} (router {router_name}) is below threshold "
            f"({rate.per_min:.2f} < {self.traffic_threshold:.2f} req/min)"
        )

        entry = {
            "timestamp": datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "service": service_name,
            "router": router_name,
            "resource": resource,
            "per_min": rate.per_min,
            "reason": decision["reason"],
            "dry_run": self.dry_run,
            "success": False,
        }

        if self.dry_run:
            self.logger.info(f"[DRY RUN] Would scale down {self.cloud_service.provider_name} resource {resource}")
            entry["success"] = True
            self._record(entry)
            return entry

        try:
            self.cloud_service.scale_down(resource, cancel=self._stop_event)
        except Exception as e:
            entry["error"] = str(e)
            self._record(entry)
            raise

        entry["success"] = True
        self._record(entry)
        self.logger.info(f"✅ Scaled down {resource} for service {service_name}")
        return entry

    def _record(self, entry):
        with self._history_lock:
            self._history.append(entry)

    def history(self) -> list[dict]:
        with self._history_lock:
            return list(self._history)

    def get_router_for_service(self, service_name: str) -> str | None:
        """
        Find the router that sends traffic to a service.

        Uses the service detail endpoint and takes the first `usedBy` entry.
        """
        url = f"{self.api_url}/http/services/{urllib.parse.quote(service_name, safe='@')}"
        resp = self.session.get(url, timeout=self.api_timeout)
        if resp.status_code == 404:
            return None
        resp.raise_for_status()

        used_by = resp.json().get("usedBy") or []
        if not used_by:
            return None
        return used_by[0]

    def get_routers_from_api(self) -> dict[str, Router]:
        """Fetch every HTTP router known to the proxy, keyed by router name."""
        resp = self.session.get(f"{self.api_url}/http/routers", timeout=self.api_timeout)
        resp.raise_for_status()
        try:
            routers = resp.json()
        except ValueError as e:
            raise ValueError(f"failed to decode routers: {e}") from e
        if not isinstance(routers, list):
            raise ValueError("failed to decode routers: expected a list")
        return {r.name: r for r in (Router.from_json(item) for item in routers)}
