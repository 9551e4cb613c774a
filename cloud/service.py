# cloud/service.py

from cloud.base import CloudService
from cloud.config import CloudServiceConfig, GCP, MOCK, AWS, AZURE
from cloud.errors import ConfigError
from cloud.gcp.service import GCPService
from cloud.logging_config import LogConfig
from cloud.mock import MockCloudService


def new_service(config: CloudServiceConfig, log_config: LogConfig | None = None, **kwargs) -> CloudService:
    """
    Create the cloud service selected by `config.type`.

    Args:
        config: Provider configuration
        log_config: Logging settings passed on to the service
        **kwargs: Extra arguments for the GCP service (session, timeout, poll_interval)

    Returns:
        A CloudService implementation
    """
    if config is None:
        raise ConfigError("cloud config is required")

    config.validate()

    if config.type == GCP:
        return GCPService(config, log_config=log_config, **kwargs)
    if config.type == MOCK:
        return MockCloudService(config, log_config=log_config)
    if config.type == AWS:
        raise ConfigError("AWS implementation not yet available")
    if config.type == AZURE:
        raise ConfigError("AZURE implementation not yet available")
    raise ConfigError(f"unknown cloud provider: {config.type}")
