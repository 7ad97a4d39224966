"""Pytest configuration and fixtures."""

import asyncio
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from shipyard.agents.recovery_agent import RecoveryAgentInput, RecoveryAgentOutput
from shipyard.api import deps
from shipyard.config import Settings
from shipyard.core.activity import ActivityLog
from shipyard.core.orchestrator import DeploymentOrchestrator
from shipyard.core.store import DeploymentStore
from shipyard.executors.base import (
    BuildResult,
    ContainerEngine,
    PreFlightCheck,
    PreFlightResult,
    RunResult,
    ServiceState,
)
from shipyard.main import app
from shipyard.models.deployment import DeploymentCreate, PortMapping, ServiceUrl

DOCKERFILE = """FROM node:20-alpine
WORKDIR /app
COPY package*.json ./
RUN npm ci
COPY . .
RUN npm run build
CMD ["npm", "start"]
"""

COMPOSE = """services:
  web:
    build: .
    ports:
      - "3000:3000"
"""


class FakeEngine(ContainerEngine):
    """Scripted container engine.

    Build and run results are consumed in order; once exhausted every
    call succeeds.
    """

    name = "fake"

    def __init__(self):
        self.preflight_result = PreFlightResult(
            checks=[PreFlightCheck(name="docker_installed", passed=True, message="ok")]
        )
        self.build_results: list[BuildResult] = []
        self.run_results: list[RunResult] = []
        self.states = [ServiceState(service="web", container="web-1", state="running")]
        self.log_output = ""
        self.block_build = False
        self.block_preflight = False
        self.block_status = False
        self.build_started = asyncio.Event()
        self.calls: list[str] = []

    async def preflight(self, workdir: str) -> PreFlightResult:
        self.calls.append("preflight")
        if self.block_preflight:
            await asyncio.Event().wait()
        return self.preflight_result

    async def build(self, workdir, project, env, on_output=None) -> BuildResult:
        self.calls.append("build")
        self.build_started.set()
        if on_output is not None:
            await on_output("#1 building")
        if self.block_build:
            await asyncio.Event().wait()
        if self.build_results:
            return self.build_results.pop(0)
        return BuildResult(output="#1 building\n#2 DONE", exit_code=0)

    async def run(self, workdir, project, env) -> RunResult:
        self.calls.append("run")
        if self.run_results:
            return self.run_results.pop(0)
        return RunResult(
            handle=project,
            output="Container web-1 Started",
            containers=["web-1"],
            ports=[PortMapping(host=3000, container=3000)],
            urls=[ServiceUrl(service="web", url="http://localhost:3000")],
        )

    async def status(self, workdir, project) -> list[ServiceState]:
        self.calls.append("status")
        if self.block_status:
            await asyncio.Event().wait()
        return list(self.states)

    async def logs(self, workdir, project, tail=200) -> str:
        return self.log_output

    async def start(self, workdir, project) -> None:
        self.calls.append("start")

    async def stop(self, workdir, project) -> None:
        self.calls.append("stop")

    async def restart(self, workdir, project) -> None:
        self.calls.append("restart")

    async def down(self, workdir, project) -> None:
        self.calls.append("down")


class FakeAgent:
    """Recovery agent double returning queued outputs."""

    name = "recovery"

    def __init__(self, available: bool = True):
        self.available = available
        self.outputs: list[RecoveryAgentOutput] = []
        self.inputs: list[RecoveryAgentInput] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def execute(self, input_data: RecoveryAgentInput) -> RecoveryAgentOutput:
        self.inputs.append(input_data)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.outputs:
            return self.outputs.pop(0)
        return RecoveryAgentOutput(
            summary="Nothing to change",
            agent=input_data.agent,
            recoverable=False,
        )


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A generated configuration directory."""
    directory = tmp_path / "config"
    directory.mkdir()
    (directory / "Dockerfile").write_text(DOCKERFILE)
    (directory / "docker-compose.yml").write_text(COMPOSE)
    return directory


@pytest.fixture
def config() -> Settings:
    """Settings with short deadlines and no monitor delay."""
    return Settings(
        anthropic_api_key="",
        max_attempts=3,
        auto_fix_confidence="high",
        preflight_timeout_seconds=5,
        build_timeout_seconds=5,
        deploy_timeout_seconds=5,
        agent_timeout_seconds=5,
        monitor_delay_seconds=0,
        debug_dump_dir=None,
    )


@pytest.fixture
def store() -> DeploymentStore:
    """Create a fresh deployment store."""
    return DeploymentStore()


@pytest.fixture
def activity() -> ActivityLog:
    """Create a fresh activity log."""
    return ActivityLog()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def orchestrator(
    store: DeploymentStore,
    activity: ActivityLog,
    engine: FakeEngine,
    agent: FakeAgent,
    config: Settings,
) -> DeploymentOrchestrator:
    """Orchestrator wired to the fakes."""
    return DeploymentOrchestrator(
        store=store,
        activity=activity,
        engine=engine,
        agent=agent,
        config=config,
    )


@pytest.fixture
def deployment_data(workdir: Path) -> DeploymentCreate:
    """Sample deployment creation data."""
    return DeploymentCreate(
        name="todo-app",
        project_id="proj-1",
        config_id="cfg-1",
        workdir=str(workdir),
        env_vars={"NODE_ENV": "production"},
    )


@pytest.fixture
async def client(
    orchestrator: DeploymentOrchestrator,
    store: DeploymentStore,
    activity: ActivityLog,
) -> AsyncClient:
    """Create an async test client bound to the test orchestrator."""
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_activity] = lambda: activity
    app.dependency_overrides[deps.get_deployment_orchestrator] = lambda: orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await orchestrator.shutdown()
    app.dependency_overrides.clear()
