"""Container engines for Shipyard."""

from shipyard.executors.base import (
    BuildResult,
    ContainerEngine,
    PreFlightCheck,
    PreFlightResult,
    RunResult,
    ServiceState,
)
from shipyard.executors.docker import DockerComposeEngine

__all__ = [
    "BuildResult",
    "ContainerEngine",
    "DockerComposeEngine",
    "PreFlightCheck",
    "PreFlightResult",
    "RunResult",
    "ServiceState",
]
