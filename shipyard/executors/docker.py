"""Docker Compose container engine."""

import asyncio
import json
import os
import shutil
from pathlib import Path
from typing import Any

from shipyard.config import settings
from shipyard.core.exceptions import EngineError
from shipyard.executors.base import (
    BuildResult,
    ContainerEngine,
    OutputCallback,
    PreFlightCheck,
    PreFlightResult,
    RunResult,
    ServiceState,
)
from shipyard.models.deployment import PortMapping, ServiceUrl
from shipyard.utils.logging import get_logger

READ_CHUNK_SIZE = 64 * 1024

COMPOSE_FILES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")


def find_compose_file(workdir: str) -> Path | None:
    for name in COMPOSE_FILES:
        path = Path(workdir) / name
        if path.is_file():
            return path
    return None


def parse_ps_output(stdout: str) -> list[dict[str, Any]]:
    """Parse ``docker compose ps --format json`` output.

    Older Compose releases print a JSON array, newer ones one object per line.
    """
    text = stdout.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            return [row for row in json.loads(text) if isinstance(row, dict)]
        except json.JSONDecodeError:
            return []

    rows = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(row, dict):
            rows.append(row)
    return rows


def service_state(row: dict[str, Any]) -> ServiceState:
    """Build a ``ServiceState`` from one ps row."""
    ports = []
    for pub in row.get("Publishers") or []:
        published = pub.get("PublishedPort") or 0
        target = pub.get("TargetPort") or 0
        if published and target:
            protocol = pub.get("Protocol") or "tcp"
            ports.append(
                PortMapping(
                    host=int(published),
                    container=int(target),
                    protocol="udp" if protocol == "udp" else "tcp",
                )
            )

    exit_code = row.get("ExitCode")
    return ServiceState(
        service=row.get("Service") or row.get("Name") or "unknown",
        container=row.get("Name") or row.get("ID") or "unknown",
        state=(row.get("State") or "unknown").lower(),
        health=row.get("Health") or None,
        exit_code=int(exit_code) if exit_code is not None else None,
        ports=ports,
    )


def service_urls(states: list[ServiceState]) -> list[ServiceUrl]:
    """First published port of every service as a localhost URL."""
    urls = []
    seen = set()
    for state in states:
        if state.service in seen:
            continue
        for port in state.ports:
            if port.protocol == "tcp":
                urls.append(ServiceUrl(service=state.service, url=f"http://localhost:{port.host}"))
                seen.add(state.service)
                break
    return urls


class DockerComposeEngine(ContainerEngine):
    """Drives ``docker compose`` through subprocesses."""

    name = "docker"

    def __init__(self, binary: str | None = None, min_free_disk_mb: int | None = None):
        self.binary = binary or settings.docker_binary
        self.min_free_disk_mb = (
            min_free_disk_mb if min_free_disk_mb is not None else settings.min_free_disk_mb
        )
        self.logger = get_logger("executor.docker")

    def _compose_args(self, workdir: str, project: str, *args: str) -> list[str]:
        compose_file = find_compose_file(workdir) or Path(workdir) / COMPOSE_FILES[0]
        return [self.binary, "compose", "-p", project, "-f", str(compose_file), *args]

    async def _exec(
        self,
        args: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        on_output: OutputCallback | None = None,
    ) -> tuple[int, str]:
        """Run a command, returning its exit code and combined output.

        Output is read in chunks so arbitrarily long lines are accepted.
        The process is killed if reading stops early for any reason,
        including cancellation of the calling task.
        """
        self.logger.info("executor.docker.command", cmd=" ".join(args[1:]), cwd=cwd)

        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            env={**os.environ, **(env or {})},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )

        lines: list[str] = []

        async def emit(raw: bytes) -> None:
            line = raw.decode(errors="replace").rstrip("\r")
            lines.append(line)
            if on_output is not None:
                await on_output(line)

        try:
            assert process.stdout is not None
            pending = b""
            while chunk := await process.stdout.read(READ_CHUNK_SIZE):
                *complete, pending = (pending + chunk).split(b"\n")
                for raw in complete:
                    await emit(raw)
            if pending:
                await emit(pending)
            await process.wait()
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()
                self.logger.warning("executor.docker.killed", cmd=" ".join(args[1:]))

        return process.returncode or 0, "\n".join(lines)

    async def _exec_checked(self, command: str, args: list[str], cwd: str | None = None) -> str:
        try:
            code, output = await self._exec(args, cwd=cwd)
        except OSError as e:
            raise EngineError(command, str(e)) from e
        if code != 0:
            raise EngineError(command, f"exit code {code}", output[-2000:])
        return output

    async def preflight(self, workdir: str) -> PreFlightResult:
        result = PreFlightResult()
        checks = result.checks

        binary = shutil.which(self.binary)
        checks.append(
            PreFlightCheck(
                name="docker_installed",
                passed=binary is not None,
                message=f"Docker found at {binary}" if binary else f"'{self.binary}' not found on PATH",
            )
        )
        if binary is None:
            return result

        code, output = await self._exec([self.binary, "info", "--format", "{{.ServerVersion}}"])
        checks.append(
            PreFlightCheck(
                name="docker_daemon",
                passed=code == 0,
                message=f"Docker daemon {output.strip()}" if code == 0 else output.strip() or "Docker daemon not running",
            )
        )

        code, output = await self._exec([self.binary, "compose", "version", "--short"])
        checks.append(
            PreFlightCheck(
                name="compose_plugin",
                passed=code == 0,
                message=f"Docker Compose {output.strip()}" if code == 0 else "Docker Compose plugin not available",
            )
        )

        compose_file = find_compose_file(workdir)
        checks.append(
            PreFlightCheck(
                name="compose_file",
                passed=compose_file is not None,
                message=f"{compose_file.name} found" if compose_file else "docker-compose.yml not found in deployment directory",
            )
        )

        if compose_file is not None and code == 0:
            code, output = await self._exec(
                [self.binary, "compose", "-f", str(compose_file), "config", "-q"], cwd=workdir
            )
            checks.append(
                PreFlightCheck(
                    name="compose_valid",
                    passed=code == 0,
                    message="docker-compose.yml syntax is valid" if code == 0 else output.strip(),
                )
            )

        try:
            free_mb = shutil.disk_usage(workdir).free // (1024 * 1024)
            checks.append(
                PreFlightCheck(
                    name="disk_space",
                    passed=free_mb >= self.min_free_disk_mb,
                    message=(
                        f"{free_mb} MB free"
                        if free_mb >= self.min_free_disk_mb
                        else f"no space left on device: {free_mb} MB free, {self.min_free_disk_mb} MB required"
                    ),
                )
            )
        except OSError as e:
            self.logger.warning("executor.docker.disk_check_failed", error=str(e))

        return result

    async def build(
        self,
        workdir: str,
        project: str,
        env: dict[str, str],
        on_output: OutputCallback | None = None,
    ) -> BuildResult:
        code, output = await self._exec(
            self._compose_args(workdir, project, "build"),
            cwd=workdir,
            env=env,
            on_output=on_output,
        )
        return BuildResult(output=output, exit_code=code)

    async def run(self, workdir: str, project: str, env: dict[str, str]) -> RunResult:
        code, output = await self._exec(
            self._compose_args(workdir, project, "up", "-d"),
            cwd=workdir,
            env=env,
        )
        if code != 0:
            return RunResult(handle=project, output=output, exit_code=code)

        states = await self.status(workdir, project)
        return RunResult(
            handle=project,
            output=output,
            exit_code=code,
            containers=[s.container for s in states],
            ports=[p for s in states for p in s.ports],
            urls=service_urls(states),
        )

    async def status(self, workdir: str, project: str) -> list[ServiceState]:
        output = await self._exec_checked(
            "ps", self._compose_args(workdir, project, "ps", "-a", "--format", "json"), cwd=workdir
        )
        return [service_state(row) for row in parse_ps_output(output)]

    async def logs(self, workdir: str, project: str, tail: int = 200) -> str:
        return await self._exec_checked(
            "logs",
            self._compose_args(workdir, project, "logs", "--no-color", "--tail", str(tail)),
            cwd=workdir,
        )

    async def start(self, workdir: str, project: str) -> None:
        await self._exec_checked("start", self._compose_args(workdir, project, "start"), cwd=workdir)

    async def stop(self, workdir: str, project: str) -> None:
        await self._exec_checked("stop", self._compose_args(workdir, project, "stop"), cwd=workdir)

    async def restart(self, workdir: str, project: str) -> None:
        await self._exec_checked("restart", self._compose_args(workdir, project, "restart"), cwd=workdir)

    async def down(self, workdir: str, project: str) -> None:
        await self._exec_checked(
            "down", self._compose_args(workdir, project, "down", "-v", "--remove-orphans"), cwd=workdir
        )
