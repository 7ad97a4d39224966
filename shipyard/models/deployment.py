"""Deployment data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from shipyard.models.errors import ErrorAnalysis


class DeploymentStatus(str, Enum):
    """Coarse external status of a deployment."""

    PENDING = "pending"
    PRE_FLIGHT = "pre_flight"
    BUILDING = "building"
    DEPLOYING = "deploying"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def in_flight(self) -> bool:
        """Whether an attempt is progressing through its stages."""
        return self in (
            DeploymentStatus.PRE_FLIGHT,
            DeploymentStatus.BUILDING,
            DeploymentStatus.DEPLOYING,
        )


class PortMapping(BaseModel):
    """A published container port."""

    host: int
    container: int
    protocol: Literal["tcp", "udp"] = "tcp"


class ServiceUrl(BaseModel):
    """A reachable URL of a deployed service."""

    service: str
    url: str


class DeploymentCreate(BaseModel):
    """Request model for creating a deployment."""

    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9-]+$")
    project_id: str = Field(..., min_length=1)
    config_id: str = Field(..., min_length=1)
    workdir: str = Field(..., min_length=1)
    platform: Literal["docker"] = "docker"
    environment: Literal["production", "staging", "development"] = "production"
    env_vars: dict[str, str] = Field(default_factory=dict)


class Deployment(BaseModel):
    """A long-lived deployment target spanning one or more attempts."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    project_id: str
    config_id: str
    platform: Literal["docker"] = "docker"
    environment: str = "production"
    status: DeploymentStatus = DeploymentStatus.PENDING

    # Configuration
    workdir: str
    env_vars: dict[str, str] = Field(default_factory=dict)

    # Engine identifiers
    containers: list[str] = Field(default_factory=list)
    image: str | None = None
    ports: list[PortMapping] = Field(default_factory=list)

    # Results
    deploy_url: str | None = None
    service_urls: list[ServiceUrl] = Field(default_factory=list)
    build_logs: str = ""
    runtime_logs: str = ""

    # Error tracking
    error_message: str | None = None
    last_analysis: ErrorAnalysis | None = None

    # Timestamps
    started_at: datetime | None = None
    completed_at: datetime | None = None
    stopped_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def compose_project(self) -> str:
        """Engine-side project name for this deployment."""
        return f"shipyard-{self.id.hex[:12]}"


class DeploymentResponse(BaseModel):
    """API response model for a deployment."""

    deployment_id: UUID
    name: str
    project_id: str
    config_id: str
    platform: str
    environment: str
    status: DeploymentStatus
    compose_project: str
    deploy_url: str | None = None
    service_urls: list[ServiceUrl] = Field(default_factory=list)
    ports: list[PortMapping] = Field(default_factory=list)
    error_message: str | None = None
    last_analysis: ErrorAnalysis | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    stopped_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_deployment(cls, deployment: Deployment) -> "DeploymentResponse":
        """Create response from deployment model."""
        data: dict[str, Any] = deployment.model_dump(
            exclude={"id", "workdir", "env_vars", "containers", "image", "build_logs", "runtime_logs"}
        )
        return cls(
            deployment_id=deployment.id,
            compose_project=deployment.compose_project,
            **data,
        )
