"""Configuration management for the subnet deployer."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class AWSSettings(BaseModel):
    default_profile: str | None = Field(default=None)
    sdk_timeout_seconds: int = Field(default=30, ge=1, le=300)
    max_retries: int = Field(default=2, ge=0, le=10)


class FleetSettings(BaseModel):
    dispatch_settle_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Delay between SendCommand and the first invocation poll.",
    )
    poll_timeout_seconds: float = Field(default=300.0, gt=0)
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    max_concurrent_polls: int = Field(default=16, ge=1, le=256)
    command_parameter: str = Field(
        default="avalanchedArgs",
        description="SSM document parameter that receives the rendered command line.",
    )


class OrchestratorSettings(BaseModel):
    subnet_settle_seconds: float = Field(default=10.0, ge=0)
    stage_settle_seconds: float = Field(default=5.0, ge=0)


class StateSettings(BaseModel):
    enabled: bool = Field(default=True)
    path: str = Field(default="./data/run_state.sqlite")


class WalletSettings(BaseModel):
    factory: str | None = Field(
        default=None,
        description="Import path of the wallet factory, as 'package.module:callable'.",
    )
    rpc_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("factory")
    @classmethod
    def _validate_factory(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        module, sep, attr = value.partition(":")
        if not sep or not module or not attr:
            raise ValueError("wallet factory must look like 'package.module:callable'")
        return value


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    fleet: FleetSettings = Field(default_factory=FleetSettings)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)


ENV_KEYS = {
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "aws_profile": "AWS_PROFILE",
    "sdk_timeout": "SDK_TIMEOUT_SECONDS",
    "max_retries": "AWS_MAX_RETRIES",
    "dispatch_settle": "SSM_DISPATCH_SETTLE_SECONDS",
    "poll_timeout": "SSM_POLL_TIMEOUT_SECONDS",
    "poll_interval": "SSM_POLL_INTERVAL_SECONDS",
    "max_concurrent_polls": "SSM_MAX_CONCURRENT_POLLS",
    "command_parameter": "SSM_OUTPUT_PARAMETER",
    "subnet_settle": "SUBNET_SETTLE_SECONDS",
    "stage_settle": "STAGE_SETTLE_SECONDS",
    "state_enabled": "RUN_STATE_ENABLED",
    "state_path": "RUN_STATE_PATH",
    "wallet_factory": "SUBNET_DEPLOYER_WALLET_FACTORY",
    "rpc_timeout": "RPC_TIMEOUT_SECONDS",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return str(candidate.resolve())
    return str((_project_root() / candidate).resolve())


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "aws": {
            "default_profile": os.getenv(ENV_KEYS["aws_profile"]),
            "sdk_timeout_seconds": _env_int(
                ENV_KEYS["sdk_timeout"],
                AWSSettings().sdk_timeout_seconds,
            ),
            "max_retries": _env_int(ENV_KEYS["max_retries"], AWSSettings().max_retries),
        },
        "fleet": {
            "dispatch_settle_seconds": _env_float(
                ENV_KEYS["dispatch_settle"],
                FleetSettings().dispatch_settle_seconds,
            ),
            "poll_timeout_seconds": _env_float(
                ENV_KEYS["poll_timeout"],
                FleetSettings().poll_timeout_seconds,
            ),
            "poll_interval_seconds": _env_float(
                ENV_KEYS["poll_interval"],
                FleetSettings().poll_interval_seconds,
            ),
            "max_concurrent_polls": _env_int(
                ENV_KEYS["max_concurrent_polls"],
                FleetSettings().max_concurrent_polls,
            ),
            "command_parameter": os.getenv(
                ENV_KEYS["command_parameter"], FleetSettings().command_parameter
            ),
        },
        "orchestrator": {
            "subnet_settle_seconds": _env_float(
                ENV_KEYS["subnet_settle"],
                OrchestratorSettings().subnet_settle_seconds,
            ),
            "stage_settle_seconds": _env_float(
                ENV_KEYS["stage_settle"],
                OrchestratorSettings().stage_settle_seconds,
            ),
        },
        "state": {
            "enabled": _env_bool(ENV_KEYS["state_enabled"], StateSettings().enabled),
            "path": _resolve_path(os.getenv(ENV_KEYS["state_path"], StateSettings().path)),
        },
        "wallet": {
            "factory": os.getenv(ENV_KEYS["wallet_factory"]),
            "rpc_timeout_seconds": _env_float(
                ENV_KEYS["rpc_timeout"],
                WalletSettings().rpc_timeout_seconds,
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.fleet.poll_interval_seconds > settings.fleet.poll_timeout_seconds:
        raise RuntimeError(
            "Invalid configuration: SSM_POLL_INTERVAL_SECONDS must not exceed "
            "SSM_POLL_TIMEOUT_SECONDS"
        )

    return settings
