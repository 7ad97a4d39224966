"""Container engine boundary."""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from shipyard.models.deployment import PortMapping, ServiceUrl

OutputCallback = Callable[[str], Awaitable[None]]


class PreFlightCheck(BaseModel):
    """Result of a single pre-flight check."""

    name: str
    passed: bool
    message: str


class PreFlightResult(BaseModel):
    """Outcome of all pre-flight checks."""

    checks: list[PreFlightCheck] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failures(self) -> list[PreFlightCheck]:
        return [c for c in self.checks if not c.passed]

    def output(self) -> str:
        """Render failed checks as tool-like output for classification."""
        return "\n".join(f"ERROR: {c.name}: {c.message}" for c in self.failures)


class BuildResult(BaseModel):
    """Outcome of an image build."""

    output: str = ""
    exit_code: int = 0
    image: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class RunResult(BaseModel):
    """Outcome of bringing the services up."""

    handle: str
    output: str = ""
    exit_code: int = 0
    containers: list[str] = Field(default_factory=list)
    ports: list[PortMapping] = Field(default_factory=list)
    urls: list[ServiceUrl] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ServiceState(BaseModel):
    """Observed state of one running service."""

    service: str
    container: str
    state: str
    health: str | None = None
    exit_code: int | None = None
    ports: list[PortMapping] = Field(default_factory=list)

    @property
    def healthy(self) -> bool:
        # One-shot services that exited cleanly count as healthy
        if self.state == "exited":
            return self.exit_code == 0
        return self.state == "running" and self.health in (None, "", "healthy", "starting")

    def describe(self) -> str:
        """Render an unhealthy state the way the engine reports it."""
        if self.health == "unhealthy":
            return f"container {self.container} is unhealthy"
        if self.state == "exited":
            return f"{self.container} exited with code {self.exit_code or 0}"
        return f"container {self.container} stopped (state: {self.state})"


class ContainerEngine(ABC):
    """Builds, runs and manages the services of a deployment workdir."""

    name: str = "engine"

    @abstractmethod
    async def preflight(self, workdir: str) -> PreFlightResult:
        """Check that the engine can deploy ``workdir``."""
        pass

    @abstractmethod
    async def build(
        self,
        workdir: str,
        project: str,
        env: dict[str, str],
        on_output: OutputCallback | None = None,
    ) -> BuildResult:
        """Build the images of the workdir's services."""
        pass

    @abstractmethod
    async def run(self, workdir: str, project: str, env: dict[str, str]) -> RunResult:
        """Start the services detached."""
        pass

    @abstractmethod
    async def status(self, workdir: str, project: str) -> list[ServiceState]:
        pass

    @abstractmethod
    async def logs(self, workdir: str, project: str, tail: int = 200) -> str:
        pass

    @abstractmethod
    async def start(self, workdir: str, project: str) -> None:
        pass

    @abstractmethod
    async def stop(self, workdir: str, project: str) -> None:
        pass

    @abstractmethod
    async def restart(self, workdir: str, project: str) -> None:
        pass

    @abstractmethod
    async def down(self, workdir: str, project: str) -> None:
        """Remove containers, networks and volumes."""
        pass
