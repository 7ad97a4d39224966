"""Recovery Agent.

Reads a failed deployment's configuration and proposes file edits that
should make the next attempt succeed. The agent only proposes; applying
edits is left to the orchestrator.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from shipyard.agents.base import BaseAgent
from shipyard.config import settings
from shipyard.core.exceptions import AgentExecutionError
from shipyard.models.errors import ErrorAnalysis, FixSuggestion
from shipyard.models.session import AgentPayload

# Payload version written by this agent
PAYLOAD_VERSION = 1
MAX_CONTEXT_LINES = 40
MAX_RAW_OUTPUT = 4000
MAX_REMEMBERED_MESSAGES = 20


class FileEdit(BaseModel):
    """Full replacement content for one file of the workdir."""

    file: str = Field(..., min_length=1)
    content: str
    reason: str = ""


class RecoveryAgentInput(BaseModel):
    """Input for the recovery agent."""

    analysis: ErrorAnalysis
    workdir: str
    file_tree: list[str] = Field(default_factory=list)
    custom_instructions: str | None = None
    agent: AgentPayload = Field(default_factory=AgentPayload)
    mode: Literal["apply_fix", "delegate"] = "delegate"
    suggestion: FixSuggestion | None = None
    attempt_number: int = 1


class RecoveryAgentOutput(BaseModel):
    """Output from the recovery agent."""

    edits: list[FileEdit] = Field(default_factory=list)
    summary: str = ""
    agent: AgentPayload = Field(default_factory=AgentPayload)
    recoverable: bool = True


class _Proposal(BaseModel):
    edits: list[FileEdit] = Field(default_factory=list)
    summary: str = ""
    recoverable: bool = True


def _extract_json(text: str) -> str:
    """Pull a JSON object out of a model response (may be fenced)."""
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        return text[start:end if end != -1 else None].strip()
    if "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        return text[start:end if end != -1 else None].strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def parse_proposal(text: str) -> _Proposal:
    """Parse the agent's JSON proposal.

    Raises:
        AgentExecutionError: if the response holds no valid proposal
    """
    try:
        data = json.loads(_extract_json(text))
    except json.JSONDecodeError as e:
        raise AgentExecutionError("recovery", "parse", f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AgentExecutionError("recovery", "parse", "expected a JSON object")
    try:
        return _Proposal.model_validate(data)
    except ValidationError as e:
        raise AgentExecutionError("recovery", "parse", str(e)) from e


def _configure_tracing() -> None:
    from langsmith.integrations.claude_agent_sdk import configure_claude_agent_sdk

    configure_claude_agent_sdk()


class RecoveryAgent(BaseAgent[RecoveryAgentInput, RecoveryAgentOutput]):
    """Agent for recovering failed container deployments.

    This agent:
    1. Reads the error analysis of the failed attempt
    2. Inspects the Dockerfile, compose file and project files (read-only)
    3. Proposes complete replacement content for the files to change
    4. Reports whether another attempt is worth making
    """

    def __init__(self):
        super().__init__()
        if settings.langsmith_tracing:
            _configure_tracing()

    @property
    def name(self) -> str:
        return "recovery"

    @property
    def description(self) -> str:
        return "Proposes configuration edits to recover failed deployments"

    @property
    def system_prompt(self) -> str:
        return """You are a DevOps engineer fixing failed Docker Compose deployments.

## Your Task
A deployment attempt failed. You receive the classified error, its likely
causes and deterministic fix suggestions. Inspect the files in the current
working directory and propose the smallest set of file changes that makes
the next attempt succeed.

## Rules
1. You can only read files. Do not try to write or run anything.
2. Paths are relative to the current working directory.
3. Prefer editing the Dockerfile and docker-compose.yml over application code.
4. Never invent secrets or credentials.
5. If the failure cannot be fixed by editing files (missing credentials,
   host problems, registry outages), say so by setting "recoverable" to false.

## Response Format
Respond with ONLY a JSON object:
{
  "summary": "one or two sentences describing the fix",
  "recoverable": true,
  "edits": [
    {"file": "Dockerfile", "content": "<complete new file content>", "reason": "why"}
  ]
}
"""

    async def execute(self, input_data: RecoveryAgentInput) -> RecoveryAgentOutput:
        """Ask Claude for a recovery proposal."""
        if not self.available:
            self.logger.warning("recovery_agent.skipped", reason="No API key")
            return RecoveryAgentOutput(
                summary="AI-assisted recovery is not configured",
                agent=input_data.agent,
                recoverable=False,
            )

        from claude_agent_sdk import (
            AssistantMessage,
            ClaudeAgentOptions,
            ResultMessage,
            TextBlock,
            ToolUseBlock,
            query,
        )

        previous_session = input_data.agent.context.get("claude_session_id")
        options = ClaudeAgentOptions(
            system_prompt=self.system_prompt,
            allowed_tools=self.tools,
            permission_mode="default",
            cwd=input_data.workdir,
            model=self.model,
            max_turns=settings.agent_max_turns,
            resume=previous_session,
            env={"ANTHROPIC_API_KEY": settings.anthropic_api_key},
        )
        prompt = self._build_prompt(input_data)

        self.logger.info(
            "recovery_agent.started",
            mode=input_data.mode,
            error_type=input_data.analysis.error.type.value,
            attempt=input_data.attempt_number,
            resumed=previous_session is not None,
        )

        response_text = ""
        result: ResultMessage | None = None
        try:
            async for message in query(prompt=prompt, options=options):
                if isinstance(message, AssistantMessage):
                    for block in message.content:
                        if isinstance(block, TextBlock):
                            response_text += block.text
                        elif isinstance(block, ToolUseBlock):
                            self.logger.debug(
                                "recovery_agent.tool_use",
                                tool=block.name,
                                file_path=block.input.get("file_path") or block.input.get("pattern"),
                            )
                elif isinstance(message, ResultMessage):
                    result = message
        except Exception as e:
            self.logger.error("recovery_agent.query_failed", error=str(e))
            raise AgentExecutionError(self.name, "query", str(e)) from e

        if result is not None and result.is_error:
            raise AgentExecutionError(self.name, "query", result.result or "agent returned an error")

        text = (result.result if result is not None and result.result else "") or response_text
        proposal = parse_proposal(text)

        self.logger.info(
            "recovery_agent.completed",
            edits=len(proposal.edits),
            recoverable=proposal.recoverable,
            num_turns=result.num_turns if result else None,
        )

        return RecoveryAgentOutput(
            edits=proposal.edits,
            summary=proposal.summary,
            agent=self._next_payload(
                input_data,
                proposal,
                result.session_id if result is not None else previous_session,
            ),
            recoverable=proposal.recoverable,
        )

    def _build_prompt(self, input_data: RecoveryAgentInput) -> str:
        analysis = input_data.analysis
        error = analysis.error
        location = ""
        if error.location:
            location = f"{error.location.file}"
            if error.location.line:
                location += f":{error.location.line}"

        context = "\n".join(error.context[:MAX_CONTEXT_LINES])
        raw = error.raw_output
        if len(raw) > MAX_RAW_OUTPUT:
            raw = "... (truncated)\n" + raw[-MAX_RAW_OUTPUT:]

        causes = "\n".join(f"- {c}" for c in analysis.possible_causes)
        suggestions = "\n".join(
            f"- [{s.confidence.value}/{s.type.value}] {s.description}"
            + (f": {s.details.instructions}" if s.details.instructions else "")
            for s in analysis.suggested_fixes
        )
        files = "\n".join(input_data.file_tree) or "(empty)"

        if input_data.mode == "apply_fix" and input_data.suggestion is not None:
            task = (
                "Implement this fix as file edits:\n"
                f"{input_data.suggestion.description}"
                + (
                    f"\n{input_data.suggestion.details.instructions}"
                    if input_data.suggestion.details.instructions
                    else ""
                )
            )
        else:
            task = "Analyze the failure and propose the file edits that fix it."

        prompt = f"""Deployment attempt {input_data.attempt_number} failed.

## Error
- Type: {error.type.value}
- Stage: {error.stage.value}
- Message: {error.message}
- Location: {location or "unknown"}
- Exit code: {error.exit_code if error.exit_code is not None else "unknown"}

## Context
```
{context}
```

## Raw Output
```
{raw}
```

## Possible Causes
{causes}

## Suggested Fixes
{suggestions}

## Files
{files}

## Task
{task}
"""
        if input_data.custom_instructions:
            prompt += f"\n## Instructions From The User\n{input_data.custom_instructions}\n"
        return prompt

    def _next_payload(
        self,
        input_data: RecoveryAgentInput,
        proposal: _Proposal,
        claude_session_id: str | None,
    ) -> AgentPayload:
        error = input_data.analysis.error
        messages = list(input_data.agent.messages)
        messages.append(
            {
                "attempt": input_data.attempt_number,
                "error_type": error.type.value,
                "error_message": error.message,
                "summary": proposal.summary,
                "files": [e.file for e in proposal.edits],
            }
        )
        context: dict[str, Any] = dict(input_data.agent.context)
        if claude_session_id:
            context["claude_session_id"] = claude_session_id

        return AgentPayload(
            version=PAYLOAD_VERSION,
            state="proposed" if proposal.edits else "no_edits",
            context=context,
            messages=messages[-MAX_REMEMBERED_MESSAGES:],
        )
