"""Deterministic fix suggestions for classified deployment errors.

Suggestions are plain lookup tables keyed by error type. They are meant as
a first, cheap layer: the recovery agent can reason about anything the
tables do not cover.
"""

from typing import Callable
from uuid import UUID

from shipyard.core.classifier import classify
from shipyard.models.errors import (
    DeploymentError,
    DeploymentErrorType,
    ErrorAnalysis,
    ErrorStage,
    FixConfidence,
    FixDetails,
    FixSuggestion,
    FixType,
)

SuggestionFactory = Callable[[DeploymentError], list[FixSuggestion]]

AI_DELEGATION_DESCRIPTION = "Use AI to analyze and fix this error"


def _suggestion(
    description: str,
    confidence: FixConfidence,
    fix_type: FixType,
    **details: str | None,
) -> FixSuggestion:
    return FixSuggestion(
        description=description,
        confidence=confidence,
        type=fix_type,
        details=FixDetails(**details),
    )


def _line(error: DeploymentError) -> int | None:
    return error.location.line if error.location else None


def _build_failed(error: DeploymentError) -> list[FixSuggestion]:
    line = _line(error)
    return [
        _suggestion(
            "Review the build command in Dockerfile",
            FixConfidence.MEDIUM,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions=(
                f"Check line {line} of the Dockerfile"
                if line
                else "Review the RUN commands in Dockerfile"
            ),
        )
    ]


def _dockerfile_invalid(error: DeploymentError) -> list[FixSuggestion]:
    line = _line(error)
    return [
        _suggestion(
            "Fix Dockerfile syntax",
            FixConfidence.HIGH,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions=(
                f"Fix syntax error on line {line}"
                if line
                else "Review Dockerfile for syntax errors"
            ),
            documentation_url="https://docs.docker.com/reference/dockerfile/",
        )
    ]


def _compose_invalid(error: DeploymentError) -> list[FixSuggestion]:
    line = _line(error)
    return [
        _suggestion(
            "Fix docker-compose.yml syntax",
            FixConfidence.HIGH,
            FixType.FILE_EDIT,
            file="docker-compose.yml",
            instructions=(
                f"Fix YAML error on line {line}"
                if line
                else "Review docker-compose.yml for YAML syntax errors and unsupported properties"
            ),
            documentation_url="https://docs.docker.com/reference/compose-file/",
        )
    ]


def _dependency_missing(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Check package.json or requirements file for missing dependencies",
            FixConfidence.MEDIUM,
            FixType.MANUAL,
            instructions="Verify all dependencies are listed in your package manager configuration",
        )
    ]


def _dependency_conflict(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Resolve dependency version conflicts",
            FixConfidence.MEDIUM,
            FixType.MANUAL,
            instructions="Check for conflicting peer dependencies and update versions accordingly",
        ),
        _suggestion(
            "Install with relaxed peer dependency resolution",
            FixConfidence.LOW,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions="Use 'npm install --legacy-peer-deps' in the install step",
        ),
    ]


def _image_not_found(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Verify the Docker image name and tag",
            FixConfidence.HIGH,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions="Check the FROM instruction for correct image name and tag",
        )
    ]


def _image_pull_failed(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Retry pulling the image",
            FixConfidence.MEDIUM,
            FixType.MANUAL,
            instructions="Registry failures are often transient; retry the deployment",
        ),
        _suggestion(
            "Authenticate with the registry",
            FixConfidence.LOW,
            FixType.MANUAL,
            instructions="Run 'docker login' for private registries",
        ),
    ]


def _port_conflict(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Change the port mapping to avoid conflict",
            FixConfidence.HIGH,
            FixType.CONFIG_CHANGE,
            file="docker-compose.yml",
            config_key="ports",
            instructions="Modify the port mapping in docker-compose.yml to use a different host port",
        )
    ]


def _memory_exceeded(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Increase container memory limit",
            FixConfidence.HIGH,
            FixType.FILE_EDIT,
            file="docker-compose.yml",
            config_key="mem_limit",
            instructions="Add or increase mem_limit in the service definition",
        )
    ]


def _disk_full(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Free disk space on the host",
            FixConfidence.HIGH,
            FixType.MANUAL,
            instructions="Remove unused images and build cache with 'docker system prune'",
        )
    ]


def _permission_denied(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Fix file permissions in Dockerfile",
            FixConfidence.MEDIUM,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions="Add appropriate chmod/chown commands or run as non-root user",
        )
    ]


def _network_error(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Retry the deployment",
            FixConfidence.MEDIUM,
            FixType.MANUAL,
            instructions="Check network connectivity of the host and retry",
        )
    ]


def _timeout(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Increase build or startup timeout",
            FixConfidence.MEDIUM,
            FixType.CONFIG_CHANGE,
            config_key="build_timeout_seconds",
            instructions=(
                "The build process is taking longer than expected. "
                "Consider optimizing the build or increasing the timeout."
            ),
        )
    ]


def _env_var_missing(error: DeploymentError) -> list[FixSuggestion]:
    name = None
    if error.message.startswith("Missing environment variable: "):
        name = error.message.split(": ", 1)[1]
    return [
        _suggestion(
            "Add the missing environment variable",
            FixConfidence.HIGH,
            FixType.ENV_VAR,
            env_var=name,
            instructions="Add the required environment variable in the deployment configuration",
        )
    ]


def _healthcheck_failed(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Review the service healthcheck",
            FixConfidence.MEDIUM,
            FixType.FILE_EDIT,
            file="docker-compose.yml",
            config_key="healthcheck",
            instructions="Check the healthcheck command, interval and start_period",
        )
    ]


def _startup_failed(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            "Inspect the container start command",
            FixConfidence.MEDIUM,
            FixType.FILE_EDIT,
            file="Dockerfile",
            instructions="Check CMD/ENTRYPOINT and the container logs for the startup error",
        )
    ]


def _delegate_to_ai(error: DeploymentError) -> list[FixSuggestion]:
    return [
        _suggestion(
            AI_DELEGATION_DESCRIPTION,
            FixConfidence.MEDIUM,
            FixType.MANUAL,
            instructions="Start a recovery attempt to have the AI analyze this error and propose fixes",
        )
    ]


SUGGESTIONS: dict[DeploymentErrorType, SuggestionFactory] = {
    DeploymentErrorType.BUILD_FAILED: _build_failed,
    DeploymentErrorType.DOCKERFILE_INVALID: _dockerfile_invalid,
    DeploymentErrorType.COMPOSE_INVALID: _compose_invalid,
    DeploymentErrorType.DEPENDENCY_MISSING: _dependency_missing,
    DeploymentErrorType.DEPENDENCY_CONFLICT: _dependency_conflict,
    DeploymentErrorType.IMAGE_NOT_FOUND: _image_not_found,
    DeploymentErrorType.IMAGE_PULL_FAILED: _image_pull_failed,
    DeploymentErrorType.PORT_CONFLICT: _port_conflict,
    DeploymentErrorType.MEMORY_EXCEEDED: _memory_exceeded,
    DeploymentErrorType.DISK_FULL: _disk_full,
    DeploymentErrorType.PERMISSION_DENIED: _permission_denied,
    DeploymentErrorType.NETWORK_ERROR: _network_error,
    DeploymentErrorType.TIMEOUT: _timeout,
    DeploymentErrorType.ENV_VAR_MISSING: _env_var_missing,
    DeploymentErrorType.HEALTHCHECK_FAILED: _healthcheck_failed,
    DeploymentErrorType.STARTUP_FAILED: _startup_failed,
}

POSSIBLE_CAUSES: dict[DeploymentErrorType, list[str]] = {
    DeploymentErrorType.BUILD_FAILED: [
        "Build command in Dockerfile failed to execute",
        "Missing dependencies not installed before build",
        "Incorrect working directory in Dockerfile",
        "Build script error in the application code",
    ],
    DeploymentErrorType.DOCKERFILE_INVALID: [
        "Invalid Dockerfile syntax",
        "Unsupported Dockerfile instruction",
        "Missing required instruction (FROM, etc.)",
    ],
    DeploymentErrorType.COMPOSE_INVALID: [
        "YAML syntax error in docker-compose.yml",
        "Invalid property name (check for Kubernetes-only properties)",
        "Missing required fields in service definition",
    ],
    DeploymentErrorType.DEPENDENCY_MISSING: [
        "Package not listed in dependencies",
        "Private package without authentication",
        "Typo in package name",
        "Package removed from registry",
    ],
    DeploymentErrorType.DEPENDENCY_CONFLICT: [
        "Conflicting peer dependency versions",
        "Runtime version incompatibility",
        "Lock file out of sync with the manifest",
    ],
    DeploymentErrorType.IMAGE_NOT_FOUND: [
        "Typo in image name or tag",
        "Image was removed from registry",
        "Private registry without authentication",
        "Architecture mismatch (amd64 vs arm64)",
    ],
    DeploymentErrorType.IMAGE_PULL_FAILED: [
        "Registry temporarily unavailable",
        "Rate limit reached on the registry",
        "Missing registry credentials",
    ],
    DeploymentErrorType.PORT_CONFLICT: [
        "Another container or process is using this port",
        "Previous deployment not properly cleaned up",
        "Host firewall blocking the port",
    ],
    DeploymentErrorType.MEMORY_EXCEEDED: [
        "Application memory leak",
        "Container memory limit too low",
        "Large build process exhausting memory",
    ],
    DeploymentErrorType.DISK_FULL: [
        "Accumulated images and build cache",
        "Large volumes or log files on the host",
    ],
    DeploymentErrorType.PERMISSION_DENIED: [
        "File ownership issues in container",
        "Running as non-root without proper permissions",
        "Volume mount permission issues",
    ],
    DeploymentErrorType.NETWORK_ERROR: [
        "No network access from the build host",
        "DNS resolution failure",
        "Dependent service not reachable",
    ],
    DeploymentErrorType.TIMEOUT: [
        "Slow network causing image pull timeout",
        "Large codebase taking too long to build",
        "Application hanging during startup",
    ],
    DeploymentErrorType.ENV_VAR_MISSING: [
        "Required environment variable not configured",
        "Typo in environment variable name",
        "Secret not properly linked to deployment",
    ],
    DeploymentErrorType.HEALTHCHECK_FAILED: [
        "Application not listening on the expected port",
        "Healthcheck runs before the application is ready",
        "Healthcheck command missing from the image",
    ],
    DeploymentErrorType.STARTUP_FAILED: [
        "Application crashed on startup",
        "Incorrect start command",
        "Missing runtime configuration",
    ],
    DeploymentErrorType.UNKNOWN: [
        "Unable to automatically determine the cause",
        "AI analysis may provide more insight",
    ],
}

DEFAULT_CAUSES = ["Unknown cause - AI analysis recommended"]


def suggest(error: DeploymentError) -> list[FixSuggestion]:
    """Deterministic suggestions for an error, never empty."""
    factory = SUGGESTIONS.get(error.type, _delegate_to_ai)
    return factory(error)


def possible_causes(error: DeploymentError) -> list[str]:
    return list(POSSIBLE_CAUSES.get(error.type, DEFAULT_CAUSES))


def analysis_for(error: DeploymentError, ai_available: bool = False) -> ErrorAnalysis:
    """Build the full analysis of an already classified error."""
    return ErrorAnalysis(
        error=error,
        possible_causes=possible_causes(error),
        suggested_fixes=suggest(error),
        ai_analysis_available=ai_available,
    )


def analyze(
    raw_output: str,
    stage: ErrorStage,
    deployment_id: UUID,
    ai_available: bool = False,
) -> ErrorAnalysis:
    """Classify raw output and attach causes and suggestions."""
    return analysis_for(classify(raw_output, stage, deployment_id), ai_available)
