"""Environment descriptor data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EnvironmentName(str, Enum):
    """Deployment targets, in promotion order."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class NetworkPolicy(BaseModel):
    """Network exposure of an environment's service."""

    model_config = ConfigDict(frozen=True)

    public: bool = False
    port: int = Field(default=8080, ge=1, le=65535)
    allowed_ingress_cidrs: tuple[str, ...] = ("10.0.0.0/8",)


class EnvironmentDescriptor(BaseModel):
    """Static configuration for one deployment target.

    Loaded once at startup and never mutated during a run. ``secrets`` maps a
    variable name to a secret-store reference; values are only looked up at
    provisioning time.
    """

    model_config = ConfigDict(frozen=True)

    name: EnvironmentName
    desired_count: int = Field(default=1, ge=1)
    cpu: int = Field(default=256, gt=0)  # CPU units (1024 = 1 vCPU)
    memory: int = Field(default=512, gt=0)  # MiB
    network_policy: NetworkPolicy = Field(default_factory=NetworkPolicy)
    variables: dict[str, str] = Field(default_factory=dict)
    secrets: dict[str, str] = Field(default_factory=dict)
    approval_required: bool = False
    auto_promote: bool = False


class TriggerRule(BaseModel):
    """Maps a branch or tag pattern (fnmatch syntax) to an environment."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., min_length=1)
    environment: EnvironmentName


class EnvironmentsConfig(BaseModel):
    """Contents of the environments file."""

    environments: list[EnvironmentDescriptor]
    triggers: list[TriggerRule] = Field(default_factory=list)
    promotion_order: list[EnvironmentName] = Field(
        default_factory=lambda: [
            EnvironmentName.DEV,
            EnvironmentName.STAGING,
            EnvironmentName.PROD,
        ]
    )
