"""
Readiness toggle and process metadata for the base routes.
"""

import datetime
import os
import platform
import socket
import threading
import time
from typing import Any

from x402_registry.platform.constants import SERVICE_NAME

__all__ = ["HealthCheck", "ProcessMetadata", "metadata"]


class HealthCheck:
    """Process-wide readiness flag.

    Enabled once the lifespan has built the registry; disabled by the signal
    handler so load balancers drain the instance before it stops.
    """

    _ready = threading.Event()

    @staticmethod
    def enable() -> None:
        HealthCheck._ready.set()

    @staticmethod
    def disable() -> None:
        HealthCheck._ready.clear()

    @staticmethod
    def status() -> bool:
        return HealthCheck._ready.is_set()


class ProcessMetadata:
    """Build and host facts captured once at import, plus uptime."""

    BUILD_ENV_KEYS = ("BUILD_DATE", "BUILD_VERSION", "GIT_COMMIT", "IMAGE_NAME")

    def __init__(self, service_name: str = SERVICE_NAME):
        self._started_at = datetime.datetime.now(tz=datetime.UTC).isoformat()
        self._started_ts = time.monotonic()
        self.metadata: dict[str, Any] = {key.lower(): os.environ.get(key) for key in self.BUILD_ENV_KEYS}
        self.metadata.update(
            service_name=os.environ.get("SERVICE_NAME") or service_name,
            hostname=socket.gethostname(),
            os_version=platform.platform(),
            python_version=platform.python_version(),
        )

    def info(self, **extra: Any) -> dict[str, Any]:
        return {
            **self.metadata,
            **extra,
            "started": self._started_at,
            "uptime_seconds": round(time.monotonic() - self._started_ts, 3),
        }


metadata = ProcessMetadata()
