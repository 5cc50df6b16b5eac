"""Operator settings loaded from environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from constants import DEFAULT_NAMESPACE
from models import ConfigurationError


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name, "")
    if raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "")
    if raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class OperatorSettings:
    """Runtime configuration of the operator."""

    watch_namespace: str = ""
    metrics_port: int = 9090
    sync_queue_size: int = 100
    resync_interval_seconds: float = 0.0
    sync_workers: int = 4
    event_queue_size: int = 1000
    assigned_identity_namespace: str = DEFAULT_NAMESPACE
    pod_name: str = "pod-identity-operator"
    pod_namespace: str = DEFAULT_NAMESPACE
    azure_subscription_id: str = ""
    azure_resource_group: str = ""
    azure_max_concurrent_calls: int = 10
    azure_requests_per_second: float = 20.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "OperatorSettings":
        """Read settings, raising ConfigurationError on malformed values."""
        if env is None:
            env = os.environ
        return cls(
            watch_namespace=env.get("WATCH_NAMESPACE", ""),
            metrics_port=_int(env, "METRICS_PORT", 9090, minimum=1),
            sync_queue_size=_int(env, "SYNC_QUEUE_SIZE", 100, minimum=1),
            resync_interval_seconds=_float(env, "SYNC_RESYNC_INTERVAL_SECONDS", 0.0),
            sync_workers=_int(env, "SYNC_WORKERS", 4, minimum=1),
            event_queue_size=_int(env, "EVENT_QUEUE_SIZE", 1000, minimum=1),
            assigned_identity_namespace=env.get(
                "ASSIGNED_IDENTITY_NAMESPACE", DEFAULT_NAMESPACE
            ),
            pod_name=env.get("POD_NAME", "pod-identity-operator"),
            pod_namespace=env.get("POD_NAMESPACE", DEFAULT_NAMESPACE),
            azure_subscription_id=env.get("AZURE_SUBSCRIPTION_ID", ""),
            azure_resource_group=env.get("AZURE_RESOURCE_GROUP", ""),
            azure_max_concurrent_calls=_int(env, "AZURE_MAX_CONCURRENT_CALLS", 10, minimum=1),
            azure_requests_per_second=_float(env, "AZURE_REQUESTS_PER_SECOND", 20.0),
        )

    def require_azure(self) -> None:
        """Check that the Azure target is configured."""
        missing = [
            name
            for name, value in (
                ("AZURE_SUBSCRIPTION_ID", self.azure_subscription_id),
                ("AZURE_RESOURCE_GROUP", self.azure_resource_group),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")
