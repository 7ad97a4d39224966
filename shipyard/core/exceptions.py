"""Custom exceptions for Shipyard."""

from typing import Any


class ShipyardError(Exception):
    """Base exception for Shipyard."""

    status_code = 500
    code = "SHIPYARD_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ShipyardError):
    """Validation error."""

    status_code = 422
    code = "VALIDATION_ERROR"


class DeploymentNotFoundError(ShipyardError):
    """Deployment not found."""

    status_code = 404
    code = "DEPLOYMENT_NOT_FOUND"

    def __init__(self, deployment_id: Any):
        super().__init__(
            f"Deployment not found: {deployment_id}",
            {"deployment_id": str(deployment_id)},
        )


class SessionNotFoundError(ShipyardError):
    """Deployment session not found."""

    status_code = 404
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: Any):
        super().__init__(
            f"Session not found: {session_id}",
            {"session_id": str(session_id)},
        )


class SessionConflictError(ShipyardError):
    """A deployment already has an active session."""

    status_code = 409
    code = "SESSION_CONFLICT"

    def __init__(self, deployment_id: Any, active_session_id: Any):
        super().__init__(
            f"Deployment {deployment_id} already has an active session",
            {
                "deployment_id": str(deployment_id),
                "active_session_id": str(active_session_id),
            },
        )


class InvalidTransitionError(ShipyardError):
    """Deployment status transition not allowed."""

    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, deployment_id: Any, current: str, target: str):
        super().__init__(
            f"Cannot transition deployment from '{current}' to '{target}'",
            {"deployment_id": str(deployment_id), "from": current, "to": target},
        )
        self.current = current
        self.target = target


class AttemptsExhaustedError(ShipyardError):
    """Attempt number would exceed the attempt budget."""

    status_code = 409
    code = "ATTEMPTS_EXHAUSTED"

    def __init__(self, deployment_id: Any, attempt_number: int, max_attempts: int):
        super().__init__(
            f"Attempt {attempt_number} exceeds the budget of {max_attempts}",
            {
                "deployment_id": str(deployment_id),
                "attempt_number": attempt_number,
                "max_attempts": max_attempts,
            },
        )


class EngineError(ShipyardError):
    """Container engine command failed outside of a deployment attempt."""

    status_code = 502
    code = "ENGINE_ERROR"

    def __init__(self, command: str, message: str, output: str | None = None):
        details: dict[str, Any] = {"command": command}
        if output:
            details["output"] = output
        super().__init__(f"Engine command '{command}' failed: {message}", details)
        self.command = command


class AgentExecutionError(ShipyardError):
    """Agent failed during execution."""

    status_code = 502
    code = "AGENT_EXECUTION_ERROR"

    def __init__(self, agent: str, phase: str, message: str):
        super().__init__(
            f"Agent '{agent}' failed in phase '{phase}': {message}",
            {"agent": agent, "phase": phase},
        )
        self.agent = agent
        self.phase = phase
