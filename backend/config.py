# backend/config.py

import os
from dataclasses import dataclass, field

from cloud.config import CloudServiceConfig, CredentialsConfig, parse_duration
from cloud.errors import ConfigError

MIN_WINDOW_SECONDS = 60

DEFAULT_WINDOW_SIZE = "5m"
DEFAULT_TRAFFIC_THRESHOLD = 1.0
DEFAULT_METRICS_URL = "http://localhost:8080/metrics"
DEFAULT_API_URL = "http://localhost:8080/api"
DEFAULT_LOG_FILE = "logs/cloud_saver.log"


@dataclass
class RouterFilter:
    names: list[str] = field(default_factory=list)  # e.g. ["my-api-router", "web-router"]


@dataclass
class Config:
    traffic_threshold: float = DEFAULT_TRAFFIC_THRESHOLD  # requests per minute
    window_size: str = DEFAULT_WINDOW_SIZE
    metrics_url: str = DEFAULT_METRICS_URL
    api_url: str = DEFAULT_API_URL
    router_filter: RouterFilter | None = None
    cloud_config: CloudServiceConfig = field(default_factory=CloudServiceConfig)
    debug: bool = False
    dry_run: bool = False
    log_file: str = DEFAULT_LOG_FILE
    test_mode: bool = False  # allows windows shorter than a minute

    def window_seconds(self) -> float:
        window = parse_duration(self.window_size)
        if window <= 0:
            raise ConfigError(f"window size must be positive, got {self.window_size}")
        if window < MIN_WINDOW_SECONDS and not self.test_mode:
            raise ConfigError(f"window size must be at least 1 minute, got {self.window_size}")
        return window


def create_config() -> Config:
    """Default configuration: mock provider, 5 minute window, 1 req/min threshold."""
    return Config(cloud_config=CloudServiceConfig(type="mock"))


def _env_bool(environ, key, default="false"):
    return environ.get(key, default).strip().lower() in ("1", "true", "yes", "on")


def _env_float(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e


def _env_int(environ, key, default):
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e


def parse_initial_scale(raw: str) -> dict[str, int]:
    """Parse "web=1,api=2" into {"web": 1, "api": 2}."""
    scales = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ConfigError(f"invalid initial scale entry: {item!r}")
        try:
            scales[name.strip()] = int(value)
        except ValueError as e:
            raise ConfigError(f"invalid initial scale for {name.strip()}: {value!r}") from e
    return scales


def load_config(environ=None) -> Config:
    """
    Build a Config from environment variables, falling back to defaults.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Config
    """
    env = os.environ if environ is None else environ

    router_names = [n.strip() for n in env.get("ROUTER_FILTER", "").split(",") if n.strip()]

    credentials = None
    if env.get("GCP_CREDENTIALS_PATH"):
        credentials = CredentialsConfig(
            type=env.get("GCP_CREDENTIALS_TYPE", "service_account"),
            secret=env["GCP_CREDENTIALS_PATH"],
        )

    initial_scale = None
    if env.get("MOCK_INITIAL_SCALE"):
        initial_scale = parse_initial_scale(env["MOCK_INITIAL_SCALE"])

    cloud_config = CloudServiceConfig(
        type=env.get("CLOUD_TYPE", "mock"),
        project_id=env.get("GCP_PROJECT_ID", ""),
        zone=env.get("GCP_ZONE", ""),
        region=env.get("GCP_REGION", ""),
        endpoint=env.get("COMPUTE_ENDPOINT", ""),
        credentials=credentials,
        initial_scale=initial_scale,
        fail_after=_env_int(env, "MOCK_FAIL_AFTER", 0),
        reset_after=env.get("MOCK_RESET_AFTER", ""),
    )

    return Config(
        traffic_threshold=_env_float(env, "TRAFFIC_THRESHOLD", DEFAULT_TRAFFIC_THRESHOLD),
        window_size=env.get("WINDOW_SIZE", DEFAULT_WINDOW_SIZE),
        metrics_url=env.get("METRICS_URL", DEFAULT_METRICS_URL),
        api_url=env.get("API_URL", DEFAULT_API_URL),
        router_filter=RouterFilter(names=router_names) if router_names else None,
        cloud_config=cloud_config,
        debug=_env_bool(env, "DEBUG"),
        dry_run=_env_bool(env, "DRY_RUN"),
        log_file=env.get("LOG_FILE", DEFAULT_LOG_FILE),
        test_mode=_env_bool(env, "TEST_MODE"),
    )
