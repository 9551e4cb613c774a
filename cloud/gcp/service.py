# cloud/gcp/service.py

import json
import logging

import requests

from cloud.base import CloudService
from cloud.config import CloudServiceConfig
from cloud.errors import AuthError, ConfigError
from cloud.gcp.auth import Credentials, TokenManager, TOKEN_ENDPOINT
from cloud.gcp.compute import ComputeClient
from cloud.logging_config import LogConfig

RUNNING_STATES = ("RUNNING", "PROVISIONING", "STAGING")
STOPPED_STATES = ("TERMINATED", "SUSPENDED", "STOPPING")
ALREADY_STOPPING = ("TERMINATED", "STOPPING")


def scale_for_status(status: str, logger=None) -> int:
    """
    Map a Compute Engine instance status to a binary scale.

    Unknown statuses count as scaled down and are logged.
    """
    if status in RUNNING_STATES:
        return 1
    if status in STOPPED_STATES:
        return 0
    (logger or logging.getLogger("cloud_saver")).warning(
        f"Instance in unrecognized state {status!r}, treating as scale 0"
    )
    return 0


def load_service_account_credentials(path: str) -> Credentials:
    """Load credentials from a service account JSON key file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"failed to read service account file: {e}") from e
    except ValueError as e:
        raise ConfigError(f"failed to parse service account JSON: {e}") from e

    return Credentials(
        type=data.get("type", "service_account"),
        client_email=data.get("client_email", ""),
        private_key=data.get("private_key", ""),
        private_key_id=data.get("private_key_id", ""),
        token_url=data.get("token_uri") or TOKEN_ENDPOINT,
        project_id=data.get("project_id", ""),
    )


class GCPService(CloudService):
    """Compute Engine backed cloud service. One resource is one instance."""

    provider_name = "gcp"

    def __init__(
        self,
        config: CloudServiceConfig,
        log_config: LogConfig | None = None,
        session: requests.Session | None = None,
        **compute_options,
    ):
        if config is None:
            raise ConfigError("config is required for GCP")
        if not config.zone:
            raise ConfigError("zone is required for GCP")
        if not config.region:
            raise ConfigError("region is required for GCP")
        if config.credentials is None or not config.credentials.secret:
            raise ConfigError("credentials are required for GCP")

        cred_type = config.credentials.type
        if cred_type in ("service_account", ""):
            creds = load_service_account_credentials(config.credentials.secret)
        elif cred_type == "token":
            # Secret is the PEM key itself. Only useful against a test token endpoint.
            creds = Credentials(private_key=config.credentials.secret)
        else:
            raise ConfigError(f"unsupported credentials type: {cred_type}")

        project_id = config.project_id or creds.project_id
        if not project_id:
            raise ConfigError("project ID is required for GCP")

        log_config = log_config or LogConfig()
        self.logger = log_config.get_logger(self.provider_name)

        try:
            token_manager = TokenManager(creds, session=session, log_config=log_config)
        except AuthError as e:
            raise ConfigError(f"failed to create token manager: {e}") from e

        self.compute = ComputeClient(
            token_manager,
            base_url=config.endpoint or None,
            session=session,
            log_config=log_config,
            **compute_options,
        )
        self.project_id = project_id
        self.zone = config.zone
        self.region = config.region
        self.config = config

    def scale_down(self, resource_name, cancel=None):
        """Stop the instance unless it is already stopped or stopping."""
        self.logger.info(f"ScaleDown for instance {resource_name}")

        instance = self.compute.get_instance(self.project_id, self.zone, resource_name, cancel)
        if instance.status in ALREADY_STOPPING:
            self.logger.info(f"Instance {resource_name} already {instance.status}, nothing to do")
            return

        self.compute.stop_instance(self.project_id, self.zone, resource_name, cancel)
        self.logger.info(f"✅ Instance {resource_name} stopped")

    def scale_up(self, resource_name, cancel=None):
        raise NotImplementedError("scale up operation not implemented for GCP instances")

    def get_current_scale(self, resource_name, cancel=None):
        instance = self.compute.get_instance(self.project_id, self.zone, resource_name, cancel)
        return scale_for_status(instance.status, self.logger)
