"""Domain objects for a subnet deployment run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from subnet_deployer.domain.ids import InvalidIdError, parse_id, vm_name_to_id


class DeploymentRequest(BaseModel):
    """Operator intent for one run. Optional features are ``None`` when disabled."""

    model_config = ConfigDict(frozen=True)

    region: str = Field(min_length=1)
    s3_bucket: str = Field(min_length=1)
    s3_key_prefix: str = Field(min_length=1)
    ssm_doc: str = Field(min_length=1)
    chain_rpc_url: str = Field(min_length=1)

    staking_period_in_days: int = Field(default=15)
    staking_amount_in_avax: int = Field(default=2000, gt=0)

    subnet_config_local_path: Path | None = None
    subnet_config_remote_dir: str | None = None

    vm_binary_local_path: Path
    vm_binary_remote_dir: str = Field(min_length=1)
    vm_id: str
    chain_name: str = Field(min_length=1)
    chain_genesis_path: Path

    chain_config_local_path: Path | None = None
    chain_config_remote_dir: str | None = None

    avalanchego_config_remote_path: str = Field(min_length=1)

    node_ids_to_instance_ids: dict[str, str]

    @model_validator(mode="before")
    @classmethod
    def _derive_vm_id(cls, data: object) -> object:
        if isinstance(data, dict) and not data.get("vm_id") and data.get("chain_name"):
            data = dict(data)
            data["vm_id"] = vm_name_to_id(data["chain_name"])
        return data

    @field_validator(
        "subnet_config_local_path",
        "subnet_config_remote_dir",
        "chain_config_local_path",
        "chain_config_remote_dir",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("vm_id")
    @classmethod
    def _validate_vm_id(cls, value: str) -> str:
        try:
            return parse_id(value)
        except InvalidIdError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("staking_period_in_days")
    @classmethod
    def _validate_staking_period(cls, value: int) -> int:
        # Subnet validation ends one day before primary validation.
        if value <= 1:
            raise ValueError("staking period must be greater than 1 day")
        return value

    @field_validator("node_ids_to_instance_ids")
    @classmethod
    def _validate_node_map(cls, value: dict[str, str]) -> dict[str, str]:
        if not value:
            raise ValueError("at least one node id to instance id entry is required")
        for node_id, instance_id in value.items():
            if not node_id.strip() or not instance_id.strip():
                raise ValueError("node ids and instance ids must not be empty")
        instance_ids = list(value.values())
        duplicates = sorted({i for i in instance_ids if instance_ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"instance ids mapped to more than one node: {', '.join(duplicates)}")
        return value

    @property
    def targets(self) -> list[NodeTarget]:
        return [
            NodeTarget(node_id=node_id, instance_id=instance_id)
            for node_id, instance_id in self.node_ids_to_instance_ids.items()
        ]

    @property
    def instance_ids(self) -> list[str]:
        return list(self.node_ids_to_instance_ids.values())

    @property
    def node_ids(self) -> list[str]:
        return list(self.node_ids_to_instance_ids)


@dataclass(frozen=True)
class NodeTarget:
    node_id: str
    instance_id: str


class ArtifactKind(str, Enum):
    VM_BINARY = "vm-binary"
    SUBNET_CONFIG = "subnet-config"
    CHAIN_CONFIG = "chain-config"


@dataclass(frozen=True)
class Artifact:
    """A local file and the object key it is staged under."""

    kind: ArtifactKind
    local_path: Path
    remote_key: str


@dataclass(frozen=True)
class ValidationPeriod:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class ValidatorRegistration:
    node_id: str
    tx_id: str
    added: bool
    period: ValidationPeriod
    subnet_id: str | None = None


@dataclass(frozen=True)
class SubnetRecord:
    subnet_id: str


@dataclass(frozen=True)
class ChainRecord:
    blockchain_id: str
    vm_id: str
    subnet_id: str


class CommandStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not CommandStatus.PENDING


@dataclass(frozen=True)
class InvocationOutcome:
    """Final state of one target in a remote execution batch."""

    instance_id: str
    status: CommandStatus
    raw_status: str | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is CommandStatus.SUCCESS


@dataclass
class CommandDispatch:
    command_id: str
    targets: list[str]
    outcomes: dict[str, InvocationOutcome] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return all(
            target in self.outcomes and self.outcomes[target].status.is_terminal
            for target in self.targets
        )

    @property
    def failed_targets(self) -> list[str]:
        return [
            target
            for target in self.targets
            if target not in self.outcomes or not self.outcomes[target].succeeded
        ]

    @property
    def succeeded(self) -> bool:
        return self.complete and not self.failed_targets


class Stage(str, Enum):
    PREFLIGHT = "preflight"
    STAGE_ARTIFACTS = "stage-artifacts"
    REGISTER_PRIMARY_VALIDATORS = "register-primary-validators"
    CREATE_SUBNET = "create-subnet"
    DISPATCH_INSTALL_COMMAND = "dispatch-install-command"
    POLL_INSTALL_COMMAND = "poll-install-command"
    REGISTER_SUBNET_VALIDATORS = "register-subnet-validators"
    CREATE_CHAIN = "create-chain"
    DISPATCH_CHAIN_CONFIG_COMMAND = "dispatch-chain-config-command"
    POLL_CHAIN_CONFIG_COMMAND = "poll-chain-config-command"
    DONE = "done"


@dataclass(frozen=True)
class StageFailure:
    stage: Stage
    message: str
    error: BaseException | None = None

    def __str__(self) -> str:
        return f"stage '{self.stage.value}' failed: {self.message}"


@dataclass
class DeploymentResult:
    """Report for one run. Ids and outcomes are filled in as stages complete."""

    subnet_id: str | None = None
    blockchain_id: str | None = None
    vm_id: str | None = None
    artifacts: list[Artifact] = field(default_factory=list)
    primary_registrations: list[ValidatorRegistration] = field(default_factory=list)
    subnet_registrations: list[ValidatorRegistration] = field(default_factory=list)
    install_command_id: str | None = None
    chain_config_command_id: str | None = None
    install_outcomes: dict[str, InvocationOutcome] = field(default_factory=dict)
    chain_config_outcomes: dict[str, InvocationOutcome] = field(default_factory=dict)
    completed_stages: list[Stage] = field(default_factory=list)
    error: StageFailure | None = None
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.aborted and Stage.DONE in self.completed_stages
