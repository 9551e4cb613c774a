# cloud/config.py

import re
from dataclasses import dataclass

from cloud.errors import ConfigError

GCP = "gcp"
MOCK = "mock"
AWS = "aws"      # placeholder, rejected by the service factory
AZURE = "azure"  # placeholder, rejected by the service factory

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """
    Parse a duration string such as "90s", "5m" or "1h30m".

    Args:
        value: Duration string, a sequence of <number><unit> pairs

    Returns:
        Duration in seconds
    """
    if not isinstance(value, str) or not value:
        raise ConfigError(f"invalid duration: {value!r}")

    text = value.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return 0.0

    pos = 0
    total = 0.0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ConfigError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return sign * total


@dataclass
class CredentialsConfig:
    """Authentication details. `secret` is a file path for service accounts."""

    type: str = ""
    secret: str = ""


@dataclass
class CloudServiceConfig:
    type: str = MOCK
    region: str = ""
    zone: str = ""
    project_id: str = ""
    endpoint: str = ""
    credentials: CredentialsConfig | None = None

    # Mock-only fields
    initial_scale: dict[str, int] | None = None
    fail_after: int = 0
    reset_after: str = ""

    def validate(self) -> None:
        """Check the fields the selected provider type needs."""
        if not self.type:
            raise ConfigError("type is required")

        if self.type == GCP:
            if not self.zone:
                raise ConfigError("zone is required")
            if not self.region:
                raise ConfigError("region is required")
            if self.credentials is None or not self.credentials.secret:
                raise ConfigError("credentials are required")
        elif self.type == MOCK:
            if self.fail_after < 0:
                raise ConfigError("failAfter must be non-negative")
            if self.reset_after:
                parse_duration(self.reset_after)
        elif self.type not in (AWS, AZURE):
            raise ConfigError(f"invalid type: {self.type}")

