"""Core functionality for Shipyard."""

from shipyard.core.exceptions import (
    AgentExecutionError,
    AttemptsExhaustedError,
    DeploymentNotFoundError,
    EngineError,
    InvalidTransitionError,
    SessionConflictError,
    SessionNotFoundError,
    ShipyardError,
    ValidationError,
)
from shipyard.core.activity import ActivityLog, get_activity_log
from shipyard.core.classifier import classify, timed_out
from shipyard.core.lifecycle import TRANSITIONS, DeploymentLifecycle, can_transition
from shipyard.core.retry import RecoveryAction, plan_recovery
from shipyard.core.store import DeploymentStore, get_deployment_store
from shipyard.core.suggestions import analysis_for, analyze, possible_causes, suggest

__all__ = [
    "ShipyardError",
    "AgentExecutionError",
    "AttemptsExhaustedError",
    "DeploymentNotFoundError",
    "EngineError",
    "InvalidTransitionError",
    "SessionConflictError",
    "SessionNotFoundError",
    "ValidationError",
    "ActivityLog",
    "get_activity_log",
    "classify",
    "timed_out",
    "TRANSITIONS",
    "DeploymentLifecycle",
    "can_transition",
    "RecoveryAction",
    "plan_recovery",
    "DeploymentStore",
    "get_deployment_store",
    "analysis_for",
    "analyze",
    "possible_causes",
    "suggest",
]
