"""Deployment Orchestrator.

Drives deployments through bounded attempts. Each attempt (session) runs
pre-flight checks, builds, deploys and monitors the services. A failed
attempt is classified, and depending on the recovery plan the recovery
agent either implements the top suggestion or reasons about the whole
analysis; its edits are applied and the next attempt starts.
"""

import asyncio
import os
import re
import time
from pathlib import Path
from uuid import UUID

from shipyard.agents.recovery_agent import (
    FileEdit,
    RecoveryAgent,
    RecoveryAgentInput,
    RecoveryAgentOutput,
)
from shipyard.config import Settings, settings
from shipyard.core.activity import ActivityLog, get_activity_log
from shipyard.core.classifier import timed_out
from shipyard.core.exceptions import (
    AgentExecutionError,
    EngineError,
    InvalidTransitionError,
    SessionConflictError,
)
from shipyard.core.lifecycle import DeploymentLifecycle
from shipyard.core.retry import RecoveryAction, is_transient, plan_recovery
from shipyard.core.store import DeploymentStore, get_deployment_store
from shipyard.core.suggestions import analysis_for, analyze
from shipyard.executors.base import ContainerEngine
from shipyard.executors.docker import DockerComposeEngine
from shipyard.models.activity import ActivityType
from shipyard.models.deployment import Deployment, DeploymentCreate, DeploymentStatus
from shipyard.models.errors import ErrorAnalysis, ErrorStage, FixConfidence
from shipyard.models.session import AgentPayload, DeploymentSession, FileChange, SessionStatus
from shipyard.utils.debug import save_attempt_analysis
from shipyard.utils.logging import bind_attempt, get_logger

ENV_VAR_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Aggregated logs kept on the deployment
MAX_LOG_CHARS = 200_000
MAX_FILE_TREE = 500
IGNORED_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".next"}


class StageFailed(Exception):
    """An attempt stage failed with a classified error."""

    def __init__(self, analysis: ErrorAnalysis):
        super().__init__(analysis.error.message)
        self.analysis = analysis


def file_tree(workdir: str, limit: int = MAX_FILE_TREE) -> list[str]:
    """Relative paths of the files under ``workdir``."""
    root = Path(workdir)
    files: list[str] = []
    for current, dirs, names in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
        for name in sorted(names):
            files.append((Path(current) / name).relative_to(root).as_posix())
            if len(files) >= limit:
                return files
    return files


def _tail(text: str, limit: int = MAX_LOG_CHARS) -> str:
    return text if len(text) <= limit else text[-limit:]


class DeploymentOrchestrator:
    """Orchestrates deployment attempts.

    Attempt stages:
    1. pre_flight - Validate configuration and engine readiness
    2. build - Build the images
    3. deploy - Start the services
    4. monitor - Check the services stayed up
    """

    def __init__(
        self,
        store: DeploymentStore | None = None,
        activity: ActivityLog | None = None,
        engine: ContainerEngine | None = None,
        agent: RecoveryAgent | None = None,
        config: Settings | None = None,
    ):
        self.store = store or get_deployment_store()
        self.activity = activity or get_activity_log()
        self.config = config or settings
        self.engine = engine or DockerComposeEngine(
            binary=self.config.docker_binary,
            min_free_disk_mb=self.config.min_free_disk_mb,
        )
        self.agent = agent or RecoveryAgent()
        self.lifecycle = DeploymentLifecycle(self.store, self.activity)
        self.logger = get_logger("orchestrator")
        self._tasks: dict[UUID, asyncio.Task] = {}

    @property
    def auto_fix_confidence(self) -> FixConfidence:
        return FixConfidence(self.config.auto_fix_confidence)

    # Orchestration-facing operations

    async def create_deployment(self, data: DeploymentCreate) -> Deployment:
        """Register a new deployment in ``pending`` state."""
        deployment = await self.store.create_deployment(data)
        self.logger.info(
            "orchestrator.deployment.created",
            deployment_id=str(deployment.id),
            name=deployment.name,
            workdir=deployment.workdir,
        )
        return deployment

    async def start_attempt(
        self,
        deployment_id: UUID,
        max_attempts: int | None = None,
        custom_instructions: str | None = None,
    ) -> DeploymentSession:
        """Start a new attempt series in the background.

        A re-attempt on a failed deployment gets a fresh budget of
        ``max_attempts`` on top of the attempts already made.

        Raises:
            SessionConflictError: if an attempt is already in flight
            InvalidTransitionError: if the deployment cannot be (re)deployed
        """
        deployment = await self.store.get_deployment(deployment_id)

        active = await self.store.active_session(deployment_id)
        if active is not None:
            raise SessionConflictError(deployment_id, active.id)
        if deployment.status not in (DeploymentStatus.PENDING, DeploymentStatus.FAILED):
            raise InvalidTransitionError(
                deployment_id, deployment.status.value, DeploymentStatus.PRE_FLIGHT.value
            )

        latest = await self.store.latest_session(deployment_id)
        requested = max_attempts or self.config.max_attempts
        budget = (latest.attempt_number if latest else 0) + requested

        session = await self.store.create_session(
            deployment_id,
            max_attempts=budget,
            custom_instructions=custom_instructions,
            agent=latest.agent if latest else None,
        )

        deployment.error_message = None
        deployment.last_analysis = None
        await self.activity.append(
            session.id,
            ActivityType.USER_ACTION,
            "attempt.requested",
            input={
                "max_attempts": budget,
                "custom_instructions": custom_instructions,
            },
        )
        await self.lifecycle.transition(
            deployment,
            DeploymentStatus.PRE_FLIGHT,
            session.id,
            kind=ActivityType.USER_ACTION,
            reason="attempt_requested",
        )

        self._tasks[deployment_id] = asyncio.create_task(
            self._run(deployment_id, session.id),
            name=f"deployment-{deployment_id}",
        )
        return session

    async def join(self, deployment_id: UUID) -> None:
        """Wait until the deployment's background attempts settle."""
        task = self._tasks.get(deployment_id)
        if task is not None:
            await asyncio.wait({task})

    async def get_status(
        self, deployment_id: UUID
    ) -> tuple[Deployment, DeploymentSession | None]:
        """Current deployment and its latest session."""
        deployment = await self.store.get_deployment(deployment_id)
        return deployment, await self.store.latest_session(deployment_id)

    async def list_sessions(self, deployment_id: UUID) -> list[DeploymentSession]:
        return await self.store.list_sessions(deployment_id)

    async def cancel_session(self, session_id: UUID) -> DeploymentSession:
        """Cancel an active session."""
        session = await self.store.get_session(session_id)
        if session.status != SessionStatus.ACTIVE:
            raise InvalidTransitionError(
                session.deployment_id, session.status.value, SessionStatus.CANCELLED.value
            )
        await self.stop(session.deployment_id)
        return await self.store.get_session(session_id)

    async def stop(self, deployment_id: UUID) -> Deployment:
        """Cancel the in-flight attempt, or stop a running deployment."""
        deployment = await self.store.get_deployment(deployment_id)

        if await self._cancel_attempt(deployment_id):
            return await self.store.get_deployment(deployment_id)

        if deployment.status != DeploymentStatus.RUNNING:
            raise InvalidTransitionError(
                deployment_id, deployment.status.value, DeploymentStatus.STOPPED.value
            )

        await self.engine.stop(deployment.workdir, deployment.compose_project)
        return await self._user_transition(deployment, DeploymentStatus.STOPPED, "stop")

    async def start(self, deployment_id: UUID) -> Deployment:
        """Start a stopped deployment."""
        deployment = await self.store.get_deployment(deployment_id)
        if deployment.status != DeploymentStatus.STOPPED:
            raise InvalidTransitionError(
                deployment_id, deployment.status.value, DeploymentStatus.RUNNING.value
            )

        await self.engine.start(deployment.workdir, deployment.compose_project)
        return await self._user_transition(deployment, DeploymentStatus.RUNNING, "start")

    async def restart(self, deployment_id: UUID) -> Deployment:
        """Restart the containers of a running or stopped deployment."""
        deployment = await self.store.get_deployment(deployment_id)
        if deployment.status not in (DeploymentStatus.RUNNING, DeploymentStatus.STOPPED):
            raise InvalidTransitionError(
                deployment_id, deployment.status.value, DeploymentStatus.RUNNING.value
            )

        await self.engine.restart(deployment.workdir, deployment.compose_project)

        if deployment.status == DeploymentStatus.STOPPED:
            return await self._user_transition(deployment, DeploymentStatus.RUNNING, "restart")

        latest = await self.store.latest_session(deployment_id)
        if latest is not None:
            await self.activity.append(
                latest.id,
                ActivityType.USER_ACTION,
                "deployment.restarted",
            )
        self.logger.info("orchestrator.deployment.restarted", deployment_id=str(deployment_id))
        return await self.store.update_deployment(deployment)

    async def terminate(self, deployment_id: UUID) -> Deployment:
        """Tear down the deployment's containers."""
        await self._cancel_attempt(deployment_id)
        deployment = await self.store.get_deployment(deployment_id)
        if deployment.status not in (
            DeploymentStatus.RUNNING,
            DeploymentStatus.STOPPED,
            DeploymentStatus.FAILED,
        ):
            raise InvalidTransitionError(
                deployment_id, deployment.status.value, DeploymentStatus.TERMINATED.value
            )

        await self.engine.down(deployment.workdir, deployment.compose_project)
        deployment.containers = []
        return await self._user_transition(deployment, DeploymentStatus.TERMINATED, "terminate")

    async def shutdown(self) -> None:
        """Cancel all background attempts."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    # Attempt loop

    async def _run(self, deployment_id: UUID, session_id: UUID) -> None:
        session: DeploymentSession | None = await self.store.get_session(session_id)
        try:
            while session is not None:
                session = await self._run_session(session)
        except asyncio.CancelledError:
            await self._on_cancelled(deployment_id)
            raise
        finally:
            if self._tasks.get(deployment_id) is asyncio.current_task():
                del self._tasks[deployment_id]

    async def _run_session(self, session: DeploymentSession) -> DeploymentSession | None:
        """Run one attempt; return the next session when a retry follows."""
        deployment = await self.store.get_deployment(session.deployment_id)
        bind_attempt(deployment.id, session.id)

        self.logger.info(
            "orchestrator.attempt.started",
            deployment_id=str(deployment.id),
            session_id=str(session.id),
            attempt=session.attempt_number,
            max_attempts=session.max_attempts,
        )

        try:
            await self._pre_flight(deployment, session)
            await self._build(deployment, session)
            await self._deploy(deployment, session)
            await self._monitor(deployment, session)
        except StageFailed as failure:
            analysis = failure.analysis
        except Exception as e:
            self.logger.error(
                "orchestrator.attempt.crashed",
                deployment_id=str(deployment.id),
                error=str(e),
            )
            stage = session.stage or ErrorStage.PRE_FLIGHT
            analysis = self._analyze(self._error_output(e), stage, deployment)
        else:
            await self._complete(deployment, session)
            return None

        try:
            return await self._handle_failure(deployment, session, analysis)
        except Exception as e:
            self.logger.exception(
                "orchestrator.recovery.crashed",
                deployment_id=str(deployment.id),
                session_id=str(session.id),
                error=str(e),
            )
            orphan = await self.store.active_session(deployment.id)
            if orphan is not None and orphan.id != session.id:
                orphan.status = SessionStatus.FAILED
                await self.store.update_session(orphan)
                await self.activity.close(orphan.id, SessionStatus.FAILED.value)
            return await self._give_up(deployment, session, analysis, "recovery_crashed")

    async def _enter_stage(self, session: DeploymentSession, stage: ErrorStage) -> None:
        session.stage = stage
        await self.store.update_session(session)

    async def _pre_flight(self, deployment: Deployment, session: DeploymentSession) -> None:
        await self._enter_stage(session, ErrorStage.PRE_FLIGHT)
        started = time.monotonic()

        invalid = [name for name in deployment.env_vars if not ENV_VAR_NAME.match(name)]
        if invalid:
            raise StageFailed(
                self._analyze(
                    f"ERROR: invalid environment variable name(s): {', '.join(invalid)}",
                    ErrorStage.PRE_FLIGHT,
                    deployment,
                )
            )

        try:
            result = await asyncio.wait_for(
                self.engine.preflight(deployment.workdir),
                timeout=self.config.preflight_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise StageFailed(
                self._timed_out(
                    ErrorStage.PRE_FLIGHT, deployment, self.config.preflight_timeout_seconds
                )
            )
        await self.activity.append(
            session.id,
            ActivityType.TOOL_CALL,
            "preflight.checked",
            output={"checks": [c.model_dump() for c in result.checks]},
            duration_ms=_elapsed_ms(started),
        )
        if not result.passed:
            raise StageFailed(self._analyze(result.output(), ErrorStage.PRE_FLIGHT, deployment))

    async def _build(self, deployment: Deployment, session: DeploymentSession) -> None:
        await self.lifecycle.transition(deployment, DeploymentStatus.BUILDING, session.id)
        await self._enter_stage(session, ErrorStage.BUILD)
        started = time.monotonic()
        lines: list[str] = []

        async def collect(line: str) -> None:
            lines.append(line)

        try:
            result = await asyncio.wait_for(
                self.engine.build(
                    deployment.workdir,
                    deployment.compose_project,
                    deployment.env_vars,
                    on_output=collect,
                ),
                timeout=self.config.build_timeout_seconds,
            )
        except asyncio.TimeoutError:
            output = "\n".join(lines)
            deployment.build_logs = _tail(output)
            await self.store.update_deployment(deployment)
            raise StageFailed(
                self._timed_out(ErrorStage.BUILD, deployment, self.config.build_timeout_seconds, output)
            )

        deployment.build_logs = _tail(result.output)
        if result.image:
            deployment.image = result.image
        await self.store.update_deployment(deployment)

        await self.activity.append(
            session.id,
            ActivityType.TOOL_CALL,
            "build.completed",
            output={"exit_code": result.exit_code},
            duration_ms=_elapsed_ms(started),
        )
        if not result.success:
            raise StageFailed(self._analyze(result.output, ErrorStage.BUILD, deployment))

    async def _deploy(self, deployment: Deployment, session: DeploymentSession) -> None:
        await self.lifecycle.transition(deployment, DeploymentStatus.DEPLOYING, session.id)
        await self._enter_stage(session, ErrorStage.DEPLOY)
        started = time.monotonic()

        try:
            result = await asyncio.wait_for(
                self.engine.run(deployment.workdir, deployment.compose_project, deployment.env_vars),
                timeout=self.config.deploy_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise StageFailed(
                self._timed_out(ErrorStage.DEPLOY, deployment, self.config.deploy_timeout_seconds)
            )

        await self.activity.append(
            session.id,
            ActivityType.TOOL_CALL,
            "deploy.completed",
            output={
                "exit_code": result.exit_code,
                "containers": result.containers,
                "urls": [u.url for u in result.urls],
            },
            duration_ms=_elapsed_ms(started),
        )
        if not result.success:
            deployment.runtime_logs = _tail(result.output)
            await self.store.update_deployment(deployment)
            raise StageFailed(self._analyze(result.output, ErrorStage.DEPLOY, deployment))

        deployment.containers = result.containers
        deployment.ports = result.ports
        deployment.service_urls = result.urls
        deployment.deploy_url = result.urls[0].url if result.urls else None
        await self.store.update_deployment(deployment)

    async def _monitor(self, deployment: Deployment, session: DeploymentSession) -> None:
        await self._enter_stage(session, ErrorStage.RUNTIME)
        if self.config.monitor_delay_seconds > 0:
            await asyncio.sleep(self.config.monitor_delay_seconds)

        try:
            states = await asyncio.wait_for(
                self.engine.status(deployment.workdir, deployment.compose_project),
                timeout=self.config.deploy_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise StageFailed(
                self._timed_out(ErrorStage.RUNTIME, deployment, self.config.deploy_timeout_seconds)
            )
        unhealthy = [s for s in states if not s.healthy]

        await self.activity.append(
            session.id,
            ActivityType.TOOL_CALL,
            "monitor.checked",
            output={
                "services": [
                    {"service": s.service, "state": s.state, "health": s.health} for s in states
                ]
            },
        )
        if states and not unhealthy:
            return

        lines = [s.describe() for s in unhealthy] or ["container stopped: no services are running"]
        try:
            logs = await asyncio.wait_for(
                self.engine.logs(deployment.workdir, deployment.compose_project),
                timeout=self.config.deploy_timeout_seconds,
            )
        except EngineError as e:
            self.logger.warning("orchestrator.logs_unavailable", error=e.message)
            logs = ""
        except asyncio.TimeoutError:
            self.logger.warning("orchestrator.logs_unavailable", error="timed out")
            logs = ""

        deployment.runtime_logs = _tail(logs)
        await self.store.update_deployment(deployment)
        output = "\n".join(lines + ([logs] if logs else []))
        raise StageFailed(self._analyze(output, ErrorStage.RUNTIME, deployment))

    async def _complete(self, deployment: Deployment, session: DeploymentSession) -> None:
        session.status = SessionStatus.COMPLETED
        session.summary = (
            f"Deployment running at {deployment.deploy_url}"
            if deployment.deploy_url
            else "Deployment running"
        )
        await self.store.update_session(session)

        deployment.error_message = None
        await self.lifecycle.transition(deployment, DeploymentStatus.RUNNING, session.id)
        await self.activity.close(session.id, SessionStatus.COMPLETED.value)

        self.logger.info(
            "orchestrator.attempt.completed",
            deployment_id=str(deployment.id),
            session_id=str(session.id),
            attempt=session.attempt_number,
            deploy_url=deployment.deploy_url,
        )

    # Failure handling

    def _analyze(self, output: str, stage: ErrorStage, deployment: Deployment) -> ErrorAnalysis:
        return analyze(output, stage, deployment.id, ai_available=self.agent.available)

    def _timed_out(
        self,
        stage: ErrorStage,
        deployment: Deployment,
        seconds: float,
        output: str = "",
    ) -> ErrorAnalysis:
        error = timed_out(stage, deployment.id, seconds, output)
        return analysis_for(error, ai_available=self.agent.available)

    @staticmethod
    def _error_output(error: Exception) -> str:
        if isinstance(error, EngineError):
            return "\n".join(filter(None, [error.message, error.details.get("output")]))
        return f"ERROR: {error}"

    async def _handle_failure(
        self,
        deployment: Deployment,
        session: DeploymentSession,
        analysis: ErrorAnalysis,
    ) -> DeploymentSession | None:
        error = analysis.error
        session.error_message = error.message
        session.error_analysis = analysis
        await self.store.update_session(session)

        await self.activity.append(
            session.id,
            ActivityType.ERROR,
            f"{error.stage.value}.failed",
            output={
                "type": error.type.value,
                "message": error.message,
                "exit_code": error.exit_code,
                "location": error.location.model_dump() if error.location else None,
            },
        )
        self._dump(deployment, session, analysis)

        action = plan_recovery(
            analysis,
            session.attempt_number,
            session.max_attempts,
            self.auto_fix_confidence,
        )
        self.logger.warning(
            "orchestrator.attempt.failed",
            deployment_id=str(deployment.id),
            attempt=session.attempt_number,
            error_type=error.type.value,
            stage=error.stage.value,
            action=action.value,
        )

        if action == RecoveryAction.GIVE_UP:
            return await self._give_up(deployment, session, analysis, "attempts_exhausted")

        output: RecoveryAgentOutput | None = None
        if self.agent.available:
            try:
                output = await self._consult_agent(deployment, session, analysis, action)
            except asyncio.TimeoutError:
                analysis = self._timed_out(
                    error.stage, deployment, self.config.agent_timeout_seconds
                )
                await self.activity.append(
                    session.id,
                    ActivityType.ERROR,
                    "agent.timed_out",
                    output={"seconds": self.config.agent_timeout_seconds},
                )
            except AgentExecutionError as e:
                await self.activity.append(
                    session.id,
                    ActivityType.ERROR,
                    "agent.failed",
                    output={"message": e.message},
                )
                return await self._give_up(deployment, session, analysis, "agent_failed")

            if output is not None and not output.recoverable:
                session.summary = output.summary
                return await self._give_up(deployment, session, analysis, "not_recoverable")

        changes = self._apply_edits(deployment, output.edits) if output else []
        for change in changes:
            await self.activity.append(
                session.id,
                ActivityType.TOOL_CALL,
                "file_modified",
                input={"file": change.file, "reason": change.reason},
                output={"created": change.before is None},
            )
        rejected = len(output.edits) - len(changes) if output else 0
        if rejected:
            await self.activity.append(
                session.id,
                ActivityType.ERROR,
                "file_rejected",
                output={"count": rejected},
            )

        if not changes and not is_transient(analysis):
            if output is not None:
                session.summary = output.summary
            return await self._give_up(deployment, session, analysis, "no_usable_edits")

        return await self._retry(deployment, session, changes, output)

    async def _consult_agent(
        self,
        deployment: Deployment,
        session: DeploymentSession,
        analysis: ErrorAnalysis,
        action: RecoveryAction,
    ) -> RecoveryAgentOutput:
        started = time.monotonic()
        mode = "apply_fix" if action == RecoveryAction.APPLY_FIX else "delegate"
        input_data = RecoveryAgentInput(
            analysis=analysis,
            workdir=deployment.workdir,
            file_tree=file_tree(deployment.workdir),
            custom_instructions=session.custom_instructions,
            agent=session.agent,
            mode=mode,
            suggestion=analysis.top_suggestion if mode == "apply_fix" else None,
            attempt_number=session.attempt_number,
        )
        await self.activity.append(
            session.id,
            ActivityType.TOOL_CALL,
            "agent.requested",
            input={
                "mode": mode,
                "error_type": analysis.error.type.value,
                "suggestion": input_data.suggestion.description if input_data.suggestion else None,
            },
        )

        output = await asyncio.wait_for(
            self.agent.execute(input_data),
            timeout=self.config.agent_timeout_seconds,
        )

        await self.activity.append(
            session.id,
            ActivityType.AI_RESPONSE,
            "agent.proposal",
            output={
                "summary": output.summary,
                "files": [e.file for e in output.edits],
                "recoverable": output.recoverable,
            },
            duration_ms=_elapsed_ms(started),
        )
        return output

    def _apply_edits(self, deployment: Deployment, edits: list[FileEdit]) -> list[FileChange]:
        """Write proposed edits inside the workdir, rejecting anything outside it."""
        root = Path(deployment.workdir).resolve()
        changes: list[FileChange] = []

        for edit in edits:
            target = (root / edit.file).resolve()
            if target == root or not target.is_relative_to(root):
                self.logger.warning(
                    "orchestrator.edit_rejected",
                    deployment_id=str(deployment.id),
                    file=edit.file,
                    reason="outside_workdir",
                )
                continue

            try:
                before = target.read_text(encoding="utf-8") if target.is_file() else None
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(edit.content, encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                self.logger.warning(
                    "orchestrator.edit_rejected",
                    deployment_id=str(deployment.id),
                    file=edit.file,
                    reason="unwritable",
                    error=str(e),
                )
                continue

            changes.append(
                FileChange(
                    file=target.relative_to(root).as_posix(),
                    before=before,
                    after=edit.content,
                    reason=edit.reason,
                )
            )
            self.logger.info(
                "orchestrator.file_modified",
                deployment_id=str(deployment.id),
                file=edit.file,
            )

        return changes

    async def _retry(
        self,
        deployment: Deployment,
        session: DeploymentSession,
        changes: list[FileChange],
        output: RecoveryAgentOutput | None,
    ) -> DeploymentSession:
        session.file_changes.extend(changes)
        session.status = SessionStatus.FAILED
        if output is not None:
            session.summary = output.summary
        await self.store.update_session(session)

        payload: AgentPayload = output.agent if output is not None else session.agent
        next_session = await self.store.create_session(
            deployment.id,
            max_attempts=session.max_attempts,
            custom_instructions=session.custom_instructions,
            agent=payload,
        )
        await self.lifecycle.transition(
            deployment,
            DeploymentStatus.PRE_FLIGHT,
            next_session.id,
            reason=f"retry_after_attempt_{session.attempt_number}",
        )
        await self.activity.close(
            session.id,
            SessionStatus.FAILED.value,
            next_session_id=str(next_session.id),
        )

        self.logger.info(
            "orchestrator.attempt.retrying",
            deployment_id=str(deployment.id),
            attempt=next_session.attempt_number,
            files_changed=len(changes),
        )
        return next_session

    async def _give_up(
        self,
        deployment: Deployment,
        session: DeploymentSession,
        analysis: ErrorAnalysis,
        reason: str,
    ) -> None:
        session.status = SessionStatus.FAILED
        await self.store.update_session(session)

        deployment.error_message = analysis.error.message
        deployment.last_analysis = analysis
        if deployment.status != DeploymentStatus.FAILED:
            await self.lifecycle.transition(
                deployment, DeploymentStatus.FAILED, session.id, reason=reason
            )
        else:
            await self.store.update_deployment(deployment)
        await self.activity.close(session.id, SessionStatus.FAILED.value, reason=reason)

        self.logger.error(
            "orchestrator.deployment.failed",
            deployment_id=str(deployment.id),
            attempt=session.attempt_number,
            error_type=analysis.error.type.value,
            reason=reason,
        )
        return None

    def _dump(
        self,
        deployment: Deployment,
        session: DeploymentSession,
        analysis: ErrorAnalysis,
    ) -> None:
        if not self.config.debug_dump_dir:
            return
        try:
            save_attempt_analysis(
                self.config.debug_dump_dir,
                str(deployment.id),
                session.attempt_number,
                analysis,
            )
        except OSError as e:
            self.logger.warning("orchestrator.debug_dump_failed", error=str(e))

    # Cancellation and user actions

    async def _cancel_attempt(self, deployment_id: UUID) -> bool:
        """Cancel the in-flight attempt, if any."""
        cancelled = False
        task = self._tasks.get(deployment_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
            cancelled = True

        # Tasks cancelled before they started never ran their cleanup
        if await self.store.active_session(deployment_id) is not None:
            await self._on_cancelled(deployment_id)
            cancelled = True
        return cancelled

    async def _on_cancelled(self, deployment_id: UUID) -> None:
        session = await self.store.active_session(deployment_id)
        if session is not None:
            session.status = SessionStatus.CANCELLED
            await self.store.update_session(session)

        deployment = await self.store.get_deployment(deployment_id)
        if deployment.status.in_flight:
            sessions = await self.store.list_sessions(deployment_id)
            reached_running = any(s.status == SessionStatus.COMPLETED for s in sessions)
            target = DeploymentStatus.STOPPED if reached_running else DeploymentStatus.FAILED
            if target == DeploymentStatus.FAILED:
                deployment.error_message = "Deployment attempt cancelled"
            await self.lifecycle.transition(
                deployment,
                target,
                session.id if session else None,
                kind=ActivityType.USER_ACTION,
                reason="cancelled",
            )

        if session is not None:
            await self.activity.close(session.id, SessionStatus.CANCELLED.value)

        self.logger.info(
            "orchestrator.attempt.cancelled",
            deployment_id=str(deployment_id),
            session_id=str(session.id) if session else None,
        )

    async def _user_transition(
        self,
        deployment: Deployment,
        target: DeploymentStatus,
        action: str,
    ) -> Deployment:
        latest = await self.store.latest_session(deployment.id)
        return await self.lifecycle.transition(
            deployment,
            target,
            latest.id if latest else None,
            kind=ActivityType.USER_ACTION,
            reason=action,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator()
    return _orchestrator


async def shutdown_orchestrator() -> None:
    """Cancel in-flight attempts of the singleton, if it was created."""
    if _orchestrator is not None:
        await _orchestrator.shutdown()
