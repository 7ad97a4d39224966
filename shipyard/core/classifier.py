"""Deployment error classifier.

Turns raw container tool output (BuildKit, Compose, registries, npm, pip)
into a structured ``DeploymentError``. Classification is driven by an
ordered table of patterns evaluated first-match-wins; adding support for a
new failure is a matter of adding a row to ``ERROR_PATTERNS``.

The classifier never inspects the deployed project's sources, only the
output of the tools that built and ran it.
"""

import re
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from shipyard.models.errors import (
    DeploymentError,
    DeploymentErrorType,
    ErrorLocation,
    ErrorStage,
)
from shipyard.utils.logging import get_logger

logger = get_logger(__name__)

MessageExtractor = Callable[[re.Match, str], str]
LocationExtractor = Callable[[re.Match, str], ErrorLocation | None]

UNKNOWN_MESSAGE = "Unknown deployment error"
MAX_MESSAGE_LENGTH = 200
CONTEXT_BEFORE = 3
CONTEXT_AFTER = 7


@dataclass(frozen=True)
class ErrorPattern:
    """A row of the classification table."""

    pattern: re.Pattern
    type: DeploymentErrorType
    message: MessageExtractor | None = None
    location: LocationExtractor | None = None


def _rx(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def _search(pattern: str, text: str) -> re.Match | None:
    return re.search(pattern, text, re.IGNORECASE)


def _matched_line(match: re.Match, output: str) -> str:
    start = output.rfind("\n", 0, match.start()) + 1
    end = output.find("\n", match.end())
    return output[start:] if end == -1 else output[start:end]


# Message extractors


def _dockerfile_syntax_message(match: re.Match, output: str) -> str:
    line = _search(r"line (\d+):", output)
    if line:
        return f"Dockerfile syntax error on line {line.group(1)}"
    return "Dockerfile syntax error"


def _build_step_message(match: re.Match, output: str) -> str:
    step = _search(r">>>\s*(RUN|COPY|ADD|CMD|ENTRYPOINT)\s+(.+)", output)
    if step:
        return f"Build failed at: {step.group(1).upper()} {step.group(2).strip()[:100]}"
    return f"Build failed at Dockerfile line {match.group(1)}"


def _build_exit_message(match: re.Match, output: str) -> str:
    return f"Build process failed with exit code {match.group(1)}"


def _compose_yaml_message(match: re.Match, output: str) -> str:
    return f"docker-compose.yml YAML error: {match.group(0)[:100]}"


def _compose_property_message(match: re.Match, output: str) -> str:
    return f"Invalid property in docker-compose.yml: {match.group(0)[:100]}"


def _npm_conflict_message(match: re.Match, output: str) -> str:
    peer = _search(r"Could not resolve dependency.*\n.*peer\s+(\S+)", output)
    if peer:
        return f"Dependency conflict with {peer.group(1)}"
    return "npm dependency resolution conflict"


def _pip_conflict_message(match: re.Match, output: str) -> str:
    return "pip could not resolve conflicting dependency versions"


def _npm_404_message(match: re.Match, output: str) -> str:
    pkg = re.search(r"404[^\n']*'([^']+)'", output)
    if pkg:
        return f"Package not found: {pkg.group(1)}"
    return "npm package not found"


def _npm_enoent_message(match: re.Match, output: str) -> str:
    return "npm could not find a required file or package"


def _pip_missing_message(match: re.Match, output: str) -> str:
    req = _search(r"satisfies the requirement (\S+)", output)
    if req:
        return f"Package not found: {req.group(1)}"
    return "pip could not find a matching distribution"


def _module_missing_message(match: re.Match, output: str) -> str:
    module = _search(r"(?:No module named|Cannot find module)\s+['\"]([^'\"]+)['\"]", output)
    if module:
        return f"Module not found: {module.group(1)}"
    return "A required module could not be found"


def _image_not_found_message(match: re.Match, output: str) -> str:
    image = _search(
        r"(?:manifest|image)\s+(?:for\s+)?[\"']?([^\"'\s]+)[\"']?.*not found", output
    )
    if image:
        return f"Docker image not found: {image.group(1)}"
    return "Docker image not found"


def _port_message(match: re.Match, output: str) -> str:
    port = _search(r"(?:port\s+|:)(\d{2,5})\b", _matched_line(match, output))
    if port:
        return f"Port {port.group(1)} is already in use"
    return "Port conflict detected"


def _permission_message(match: re.Match, output: str) -> str:
    path = _search(r"permission denied.*['\"]([^'\"]+)['\"]", output)
    if path:
        return f"Permission denied: {path.group(1)}"
    return "Permission denied"


def _env_var_message(match: re.Match, output: str) -> str:
    line = _matched_line(match, output)
    var = _search(r"['\"]([A-Za-z_][A-Za-z0-9_]*)['\"]\s+variable", line) or _search(
        r"variable\s+['\"]?(?!is\b)([A-Za-z_][A-Za-z0-9_]*)", line
    )
    if var:
        return f"Missing environment variable: {var.group(1)}"
    return "Required environment variable not set"


def _startup_message(match: re.Match, output: str) -> str:
    code = _search(r"exited with code (\d+)", output)
    if code:
        return f"Container exited with code {code.group(1)}"
    return "Container failed to start"


def _fixed(message: str) -> MessageExtractor:
    return lambda match, output: message


# Location extractors


def _dockerfile_syntax_location(match: re.Match, output: str) -> ErrorLocation | None:
    line = _search(r"line (\d+):", output)
    return ErrorLocation(file="Dockerfile", line=int(line.group(1))) if line else None


def _build_step_location(match: re.Match, output: str) -> ErrorLocation | None:
    return ErrorLocation(file="Dockerfile", line=int(match.group(1)))


def _compose_location(match: re.Match, output: str) -> ErrorLocation | None:
    line = _search(r"line\s+(\d+)", output)
    return ErrorLocation(file="docker-compose.yml", line=int(line.group(1))) if line else None


def _compose_file_location(match: re.Match, output: str) -> ErrorLocation | None:
    return ErrorLocation(file="docker-compose.yml")


ERROR_PATTERNS: list[ErrorPattern] = [
    # Port conflicts are checked first so any output mentioning them wins
    ErrorPattern(
        _rx(r"address already in use|port.*already allocated"),
        DeploymentErrorType.PORT_CONFLICT,
        _port_message,
    ),
    # Dockerfile syntax
    ErrorPattern(
        _rx(r"dockerfile parse error|unknown instruction"),
        DeploymentErrorType.DOCKERFILE_INVALID,
        _dockerfile_syntax_message,
        _dockerfile_syntax_location,
    ),
    # Compose file
    ErrorPattern(
        _rx(r"yaml:\s*(line\s+\d+:|.*did not find expected)"),
        DeploymentErrorType.COMPOSE_INVALID,
        _compose_yaml_message,
        _compose_location,
    ),
    ErrorPattern(
        _rx(r"services\.[^:]+:\s+Additional property.*not allowed"),
        DeploymentErrorType.COMPOSE_INVALID,
        _compose_property_message,
        _compose_file_location,
    ),
    # Package managers
    ErrorPattern(
        _rx(r"npm ERR!.*ERESOLVE"),
        DeploymentErrorType.DEPENDENCY_CONFLICT,
        _npm_conflict_message,
    ),
    ErrorPattern(
        _rx(r"ResolutionImpossible|conflicting dependencies"),
        DeploymentErrorType.DEPENDENCY_CONFLICT,
        _pip_conflict_message,
    ),
    ErrorPattern(
        _rx(r"npm ERR! code E404"),
        DeploymentErrorType.DEPENDENCY_MISSING,
        _npm_404_message,
    ),
    ErrorPattern(
        _rx(r"npm ERR!.*ENOENT"),
        DeploymentErrorType.DEPENDENCY_MISSING,
        _npm_enoent_message,
    ),
    ErrorPattern(
        _rx(r"Could not find a version that satisfies the requirement|No matching distribution found"),
        DeploymentErrorType.DEPENDENCY_MISSING,
        _pip_missing_message,
    ),
    ErrorPattern(
        _rx(r"ModuleNotFoundError|Cannot find module"),
        DeploymentErrorType.DEPENDENCY_MISSING,
        _module_missing_message,
    ),
    # Images
    ErrorPattern(
        _rx(r"manifest.*not found|image.*not found|pull access denied"),
        DeploymentErrorType.IMAGE_NOT_FOUND,
        _image_not_found_message,
    ),
    ErrorPattern(
        _rx(r"error.*pulling.*image|failed to pull"),
        DeploymentErrorType.IMAGE_PULL_FAILED,
        _fixed("Failed to pull Docker image from registry"),
    ),
    # Resources
    ErrorPattern(
        _rx(r"\bOOM\b|OOMKilled|out of memory|memory.*exceeded|\bkilled\b|exit code:? 137\b"),
        DeploymentErrorType.MEMORY_EXCEEDED,
        _fixed("Container ran out of memory"),
    ),
    ErrorPattern(
        _rx(r"no space left on device|disk.*full"),
        DeploymentErrorType.DISK_FULL,
        _fixed("No disk space available"),
    ),
    ErrorPattern(
        _rx(r"permission denied|EACCES|access denied"),
        DeploymentErrorType.PERMISSION_DENIED,
        _permission_message,
    ),
    ErrorPattern(
        _rx(r"network.*unreachable|connection.*refused|ECONNREFUSED|ETIMEDOUT|could not resolve host|temporary failure in name resolution"),
        DeploymentErrorType.NETWORK_ERROR,
        _fixed("Network connection failed"),
    ),
    # Build steps
    ErrorPattern(
        _rx(r"Dockerfile:(\d+)[\s\S]*?(?:failed|error|exit code)"),
        DeploymentErrorType.BUILD_FAILED,
        _build_step_message,
        _build_step_location,
    ),
    ErrorPattern(
        _rx(r"failed to solve:.*did not complete successfully.*exit code:\s*(\d+)"),
        DeploymentErrorType.BUILD_FAILED,
        _build_exit_message,
    ),
    # Runtime
    ErrorPattern(
        _rx(r"timeout|timed out|deadline exceeded"),
        DeploymentErrorType.TIMEOUT,
        _fixed("Operation timed out"),
    ),
    ErrorPattern(
        _rx(r"environment variable.*not set|missing.*env|undefined.*variable|variable is not set"),
        DeploymentErrorType.ENV_VAR_MISSING,
        _env_var_message,
    ),
    ErrorPattern(
        _rx(r"health.*check.*fail|unhealthy"),
        DeploymentErrorType.HEALTHCHECK_FAILED,
        _fixed("Container healthcheck failed"),
    ),
    ErrorPattern(
        _rx(r"exited with code [1-9]|container.*stopped|failed to start"),
        DeploymentErrorType.STARTUP_FAILED,
        _startup_message,
    ),
]

_FALSE_POSITIVES = [
    _rx(r"easier to read"),
    _rx(r"for more information"),
    _rx(r"learn how to"),
    _rx(r"visit https?:"),
    _rx(r"docker scan"),
    _rx(r"snyk tests"),
]

_ERROR_LINES = [
    re.compile(r"^(?:>?\s*)?(?:\[\d+/\d+\]\s+)?(?:ERROR|Error|error)[\s:]+(.+)"),
    re.compile(r"^(?:>?\s*)?(?:FAILED|Failed|failed)[\s:]+(.+)"),
    re.compile(r"^(?:>?\s*)?(?:FATAL|Fatal|fatal)[\s:]+(.+)"),
    re.compile(r"^(?:>?\s*)?npm ERR!\s*(.+)"),
    _rx(r"^(?:>?\s*)?failed to solve:\s*(.+)"),
    _rx(r"^(?:>?\s*)?exit code:\s*(\d+)"),
]

_EXIT_CODE = _rx(r"exit(?:ed with)?\s*(?:code|status)?\s*[:\s]*(\d+)")
_DOCKERFILE_REF = re.compile(r"Dockerfile:(\d+)")


def classify(raw_output: str, stage: ErrorStage, deployment_id: UUID) -> DeploymentError:
    """Classify raw tool output into a structured deployment error.

    Total: every input, including the empty string, yields an error. Output
    matching no known pattern is classified as ``unknown`` with a message
    picked by a line heuristic.
    """
    output = raw_output or ""

    for row in ERROR_PATTERNS:
        match = row.pattern.search(output)
        if not match:
            continue

        message = row.message(match, output) if row.message else ""
        location = row.location(match, output) if row.location else None

        return DeploymentError(
            deployment_id=deployment_id,
            type=row.type,
            stage=stage,
            message=message or match.group(0)[:MAX_MESSAGE_LENGTH],
            location=location or extract_dockerfile_location(output),
            context=extract_context(output, match.start()),
            raw_output=output,
            exit_code=extract_exit_code(output),
        )

    logger.debug("classifier.unmatched", stage=stage.value, length=len(output))
    return DeploymentError(
        deployment_id=deployment_id,
        type=DeploymentErrorType.UNKNOWN,
        stage=stage,
        message=extract_first_error(output) or UNKNOWN_MESSAGE,
        location=extract_dockerfile_location(output),
        context=extract_context(output, 0),
        raw_output=output,
        exit_code=extract_exit_code(output),
    )


def timed_out(
    stage: ErrorStage,
    deployment_id: UUID,
    seconds: float,
    output: str = "",
) -> DeploymentError:
    """Build a timeout error for a stage that overran its deadline."""
    return DeploymentError(
        deployment_id=deployment_id,
        type=DeploymentErrorType.TIMEOUT,
        stage=stage,
        message=f"Operation timed out after {seconds:g}s during {stage.value}",
        context=extract_context(output, len(output)) if output else [],
        raw_output=output,
    )


def extract_context(output: str, index: int) -> list[str]:
    """Non-blank lines around the line containing ``index``."""
    lines = output.split("\n")
    line_index = output.count("\n", 0, index)
    start = max(0, line_index - CONTEXT_BEFORE)
    end = min(len(lines), line_index + CONTEXT_AFTER + 1)
    return [line for line in lines[start:end] if line.strip()]


def extract_exit_code(output: str) -> int | None:
    match = _EXIT_CODE.search(output)
    return int(match.group(1)) if match else None


def extract_dockerfile_location(output: str) -> ErrorLocation | None:
    match = _DOCKERFILE_REF.search(output)
    return ErrorLocation(file="Dockerfile", line=int(match.group(1))) if match else None


def _is_false_positive(line: str) -> bool:
    return any(p.search(line) for p in _FALSE_POSITIVES)


def extract_first_error(output: str) -> str | None:
    """Pick the most relevant error line from unrecognized output."""
    lines = output.split("\n")

    for raw in lines:
        line = raw.strip()
        if not line or _is_false_positive(line):
            continue
        for pattern in _ERROR_LINES:
            match = pattern.match(line)
            if match:
                message = match.group(1).strip()
                if len(message) > 5:
                    return message[:MAX_MESSAGE_LENGTH]

    solve = _search(r"failed to solve[^.]*\.\s*([^.]+)", output)
    if solve and solve.group(1).strip():
        return solve.group(1).strip()[:MAX_MESSAGE_LENGTH]

    for raw in reversed(lines):
        line = raw.strip()
        if len(line) > 20 and ("error" in line or "failed" in line):
            if not _is_false_positive(line):
                return line[:MAX_MESSAGE_LENGTH]

    return None
