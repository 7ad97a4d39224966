"""Unit tests for the Docker Compose engine."""

import asyncio
import json
import os

import pytest

from shipyard.core.exceptions import EngineError
from shipyard.executors.base import PreFlightCheck, PreFlightResult, ServiceState
from shipyard.executors.docker import (
    DockerComposeEngine,
    find_compose_file,
    parse_ps_output,
    service_state,
    service_urls,
)
from shipyard.models.deployment import PortMapping

PS_ROW = {
    "ID": "abc123",
    "Name": "shipyard-1234-web-1",
    "Service": "web",
    "State": "running",
    "Health": "",
    "ExitCode": 0,
    "Publishers": [
        {"URL": "0.0.0.0", "TargetPort": 3000, "PublishedPort": 3000, "Protocol": "tcp"},
        {"URL": "", "TargetPort": 9229, "PublishedPort": 0, "Protocol": "tcp"},
    ],
}


class TestParsePsOutput:
    def test_json_array(self):
        rows = parse_ps_output(json.dumps([PS_ROW, {**PS_ROW, "Service": "db"}]))

        assert [r["Service"] for r in rows] == ["web", "db"]

    def test_ndjson(self):
        text = "\n".join(json.dumps({**PS_ROW, "Service": s}) for s in ("web", "worker"))

        assert [r["Service"] for r in parse_ps_output(text)] == ["web", "worker"]

    def test_garbage_lines_are_skipped(self):
        text = "WARN[0000] something\n" + json.dumps(PS_ROW)

        assert len(parse_ps_output(text)) == 1

    def test_empty(self):
        assert parse_ps_output("  \n") == []


class TestServiceState:
    def test_from_row(self):
        state = service_state(PS_ROW)

        assert state.service == "web"
        assert state.container == "shipyard-1234-web-1"
        assert state.health is None
        assert state.ports == [PortMapping(host=3000, container=3000)]
        assert state.healthy

    def test_service_urls(self):
        states = [
            service_state(PS_ROW),
            ServiceState(service="worker", container="w-1", state="running"),
        ]

        urls = service_urls(states)

        assert len(urls) == 1
        assert urls[0].service == "web"
        assert urls[0].url == "http://localhost:3000"

    @pytest.mark.parametrize(
        "state,health,exit_code,healthy",
        [
            ("running", None, None, True),
            ("running", "starting", None, True),
            ("running", "unhealthy", None, False),
            ("exited", None, 0, True),
            ("exited", None, 1, False),
            ("restarting", None, None, False),
        ],
    )
    def test_healthy(self, state, health, exit_code, healthy):
        service = ServiceState(
            service="web", container="web-1", state=state, health=health, exit_code=exit_code
        )

        assert service.healthy is healthy

    def test_describe(self):
        unhealthy = ServiceState(service="web", container="web-1", state="running", health="unhealthy")
        exited = ServiceState(service="web", container="web-1", state="exited", exit_code=2)
        dead = ServiceState(service="web", container="web-1", state="dead")

        assert unhealthy.describe() == "container web-1 is unhealthy"
        assert exited.describe() == "web-1 exited with code 2"
        assert dead.describe() == "container web-1 stopped (state: dead)"


class TestPreFlightResult:
    def test_output_lists_failures(self):
        result = PreFlightResult(
            checks=[
                PreFlightCheck(name="docker_installed", passed=True, message="ok"),
                PreFlightCheck(name="compose_file", passed=False, message="docker-compose.yml not found"),
            ]
        )

        assert not result.passed
        assert result.output() == "ERROR: compose_file: docker-compose.yml not found"


class TestDockerComposeEngine:
    """Tests for DockerComposeEngine."""

    def test_compose_args(self, workdir):
        engine = DockerComposeEngine(binary="docker")

        args = engine._compose_args(str(workdir), "shipyard-abc", "up", "-d")

        assert args == [
            "docker",
            "compose",
            "-p",
            "shipyard-abc",
            "-f",
            str(workdir / "docker-compose.yml"),
            "up",
            "-d",
        ]

    def test_find_compose_file(self, tmp_path):
        assert find_compose_file(str(tmp_path)) is None
        (tmp_path / "compose.yaml").write_text("services: {}\n")

        assert find_compose_file(str(tmp_path)).name == "compose.yaml"

    @pytest.mark.asyncio
    async def test_preflight_without_binary(self, workdir):
        """Test pre-flight stops at a missing docker binary."""
        engine = DockerComposeEngine(binary="shipyard-missing-docker-binary")

        result = await engine.preflight(str(workdir))

        assert not result.passed
        assert [c.name for c in result.checks] == ["docker_installed"]
        assert "not found on PATH" in result.output()

    @pytest.mark.asyncio
    async def test_exec_streams_output(self):
        engine = DockerComposeEngine(binary="sh")
        seen: list[str] = []

        async def on_output(line: str) -> None:
            seen.append(line)

        code, output = await engine._exec(
            ["sh", "-c", "echo one; echo two >&2; exit 3"], on_output=on_output
        )

        assert code == 3
        assert output == "one\ntwo"
        assert seen == ["one", "two"]

    @pytest.mark.asyncio
    async def test_exec_checked_raises(self):
        engine = DockerComposeEngine(binary="sh")

        with pytest.raises(EngineError) as exc_info:
            await engine._exec_checked("stop", ["sh", "-c", "echo nope; exit 1"])

        assert exc_info.value.command == "stop"
        assert exc_info.value.details["output"] == "nope"

    @pytest.mark.asyncio
    async def test_exec_is_killed_on_cancel(self):
        engine = DockerComposeEngine(binary="sh")
        task = asyncio.create_task(engine._exec(["sh", "-c", "sleep 30"]))
        await asyncio.sleep(0.1)

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)

    @pytest.mark.asyncio
    async def test_exec_accepts_long_lines(self):
        """Test a line longer than the stream buffer does not break reading."""
        engine = DockerComposeEngine(binary="sh")

        code, output = await engine._exec(
            ["sh", "-c", "head -c 200000 /dev/zero | tr '\\000' a; echo; echo done"]
        )

        lines = output.split("\n")
        assert code == 0
        assert len(lines[0]) == 200000
        assert lines[1] == "done"

    @pytest.mark.asyncio
    async def test_exec_is_killed_when_output_handler_fails(self, tmp_path):
        engine = DockerComposeEngine(binary="sh")
        pid_file = tmp_path / "pid"

        async def on_output(line: str) -> None:
            raise ValueError("handler failed")

        with pytest.raises(ValueError):
            await asyncio.wait_for(
                engine._exec(
                    ["sh", "-c", f"echo $$ > {pid_file}; echo one; sleep 30"],
                    on_output=on_output,
                ),
                timeout=5,
            )

        pid = int(pid_file.read_text().strip())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
