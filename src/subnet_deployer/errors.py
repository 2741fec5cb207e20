"""Error taxonomy for deployment runs."""

from __future__ import annotations

from collections.abc import Sequence


class DeploymentError(Exception):
    """Base exception for every fatal deployment failure."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PreflightError(DeploymentError):
    """Raised when a local input is missing or an option combination is invalid."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class ConfigError(DeploymentError):
    """Raised when environment configuration cannot be used."""

    pass


class ConnectivityError(DeploymentError):
    """Raised when an RPC or AWS lookup fails."""

    pass


class ArtifactUploadError(ConnectivityError):
    """Raised when an artifact cannot be written to the object store."""

    def __init__(self, bucket: str, key: str, message: str) -> None:
        super().__init__(f"failed to upload s3://{bucket}/{key}: {message}")
        self.bucket = bucket
        self.key = key


class TransactionError(DeploymentError):
    """Raised when a ledger transaction is rejected or never confirmed."""

    def __init__(self, operation: str, message: str, target: str | None = None) -> None:
        where = f" for {target}" if target else ""
        super().__init__(f"{operation}{where} failed: {message}")
        self.operation = operation
        self.target = target


class RemoteExecutionError(DeploymentError):
    """Raised when a remote command cannot be sent or did not succeed on every target."""

    def __init__(
        self,
        message: str,
        command_id: str | None = None,
        failed_targets: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.command_id = command_id
        self.failed_targets = tuple(failed_targets)
