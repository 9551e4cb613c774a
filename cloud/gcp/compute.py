# cloud/gcp/compute.py

import time
import threading
import posixpath
from dataclasses import dataclass, field

import requests

from cloud.errors import (
    ProviderError,
    OperationTimeoutError,
    OperationCancelledError,
)
from cloud.gcp.auth import TokenManager
from cloud.logging_config import LogConfig

COMPUTE_BASE_URL = "https://compute.googleapis.com/compute/v1"

OPERATION_DONE = "DONE"
STATUS_TERMINATED = "TERMINATED"


@dataclass
class Instance:
    name: str
    status: str

    @classmethod
    def from_json(cls, data: dict) -> "Instance":
        return cls(name=data.get("name", ""), status=data.get("status", ""))


@dataclass
class Operation:
    name: str
    status: str
    errors: list[str] = field(default_factory=list)

    @property
    def done(self) -> bool:
        return self.status == OPERATION_DONE

    @classmethod
    def from_json(cls, data: dict) -> "Operation":
        error = data.get("error") or {}
        errors = [e.get("message", "") for e in error.get("errors", [])]
        if error and not errors:
            errors = [error.get("message", "unknown error")]
        return cls(
            name=data.get("name", ""),
            status=data.get("status", ""),
            errors=errors,
        )


class ComputeClient:
    """
    Minimal REST client for the Compute Engine instance and operation APIs.

    Every call accepts an optional `cancel` event. Stopping an instance
    waits on the returned operation until it is DONE, the client's
    overall timeout elapses, or `cancel` is set.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float = 300.0,
        poll_interval: float = 10.0,
        request_timeout: float = 30.0,
        log_config: LogConfig | None = None,
    ):
        if token_manager is None:
            raise ValueError("token manager is required")

        self.token_manager = token_manager
        self.base_url = (base_url or COMPUTE_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self.logger = (log_config or LogConfig()).get_logger("gcp-compute")

    def _do_request(self, method, url_path, cancel=None):
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(f"{method} {url_path} cancelled")

        token = self.token_manager.get_token(cancel)
        url = f"{self.base_url}/{url_path}"

        self.logger.debug(f"Request: {method} {url_path}")
        try:
            resp = self.session.request(
                method,
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self.request_timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"failed to execute request: {e}") from e

        if not 200 <= resp.status_code < 300:
            if resp.status_code == 401:
                # Revoked or expired early; the next call mints a fresh token.
                self.token_manager.invalidate()
            message = None
            try:
                message = resp.json().get("error", {}).get("message")
            except (ValueError, AttributeError):
                pass
            if message:
                raise ProviderError(message, status_code=resp.status_code)
            raise ProviderError(
                f"request failed with status {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"failed to decode response from {url_path}: {e}") from e

    def get_instance(self, project_id, zone, instance_name, cancel=None) -> Instance:
        url_path = posixpath.join("projects", project_id, "zones", zone, "instances", instance_name)
        return Instance.from_json(self._do_request("GET", url_path, cancel))

    def get_operation(self, project_id, zone, operation_name, cancel=None) -> Operation:
        url_path = posixpath.join("projects", project_id, "zones", zone, "operations", operation_name)
        return Operation.from_json(self._do_request("GET", url_path, cancel))

    def stop_instance(self, project_id, zone, instance_name, cancel=None) -> Operation:
        """
        Stop an instance and wait until it reports TERMINATED.

        Args:
            project_id: GCP project
            zone: Zone of the instance
            instance_name: Instance to stop
            cancel: Optional event that aborts the wait when set

        Returns:
            The completed Operation
        """
        url_path = posixpath.join(
            "projects", project_id, "zones", zone, "instances", instance_name, "stop"
        )
        operation = Operation.from_json(self._do_request("POST", url_path, cancel))
        self.logger.info(f"Stop requested for {instance_name}, operation {operation.name}")

        operation = self.wait_for_operation(project_id, zone, operation.name, cancel)

        instance = self.get_instance(project_id, zone, instance_name, cancel)
        if instance.status != STATUS_TERMINATED:
            raise ProviderError(f"instance failed to stop: status is {instance.status}")

        return operation

    def wait_for_operation(self, project_id, zone, operation_name, cancel=None) -> Operation:
        """Poll an operation every `poll_interval` until it is DONE."""
        waiter = cancel or threading.Event()
        deadline = time.monotonic() + self.timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise OperationTimeoutError(
                    f"timeout waiting for operation {operation_name} after {self.timeout}s"
                )

            if waiter.wait(min(self.poll_interval, remaining)):
                raise OperationCancelledError(
                    f"cancelled while waiting for operation {operation_name}"
                )

            if time.monotonic() >= deadline:
                raise OperationTimeoutError(
                    f"timeout waiting for operation {operation_name} after {self.timeout}s"
                )

            operation = self.get_operation(project_id, zone, operation_name, cancel)
            self.logger.debug(f"Operation {operation_name} status: {operation.status}")

            if operation.done:
                if operation.errors:
                    raise ProviderError(f"operation failed: {'; '.join(operation.errors)}")
                return operation
