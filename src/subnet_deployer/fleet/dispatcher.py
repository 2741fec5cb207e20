"""Sends installer commands to the fleet through SSM and waits for each node."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from subnet_deployer.domain.models import CommandDispatch, CommandStatus, InvocationOutcome
from subnet_deployer.errors import RemoteExecutionError
from subnet_deployer.execution.aws_client import call_aws_api_async

logger = logging.getLogger(__name__)

SSM_SUCCESS = "Success"
SSM_PENDING_STATES = frozenset({"Pending", "InProgress", "Delayed", "Cancelling"})
_INVOCATION_NOT_READY = "InvocationDoesNotExist"

Sleep = Callable[[float], Awaitable[None]]


def classify_status(raw_status: str, success_state: str = SSM_SUCCESS) -> CommandStatus:
    if raw_status == success_state:
        return CommandStatus.SUCCESS
    if raw_status in SSM_PENDING_STATES:
        return CommandStatus.PENDING
    return CommandStatus.FAILURE


class FleetCommandDispatcher:
    """Runs one SSM document against many instances.

    ``dispatch`` sends a single command to every target. ``poll_all`` waits
    for each target independently, at most ``max_concurrent_polls`` at a time.
    """

    def __init__(
        self,
        ssm_client,
        *,
        document_name: str,
        region: str,
        output_bucket: str,
        output_key_prefix: str,
        command_parameter: str = "avalanchedArgs",
        settle_seconds: float = 30.0,
        poll_timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 5.0,
        max_concurrent_polls: int = 16,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = ssm_client
        self._document_name = document_name
        self._region = region
        self._output_bucket = output_bucket
        self._output_key_prefix = output_key_prefix
        self._command_parameter = command_parameter
        self._settle_seconds = settle_seconds
        self._poll_timeout = poll_timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._max_concurrent_polls = max_concurrent_polls
        self._sleep = sleep
        self._clock = clock

    async def dispatch(self, command_line: str, targets: Sequence[str]) -> str:
        """Send ``command_line`` to all ``targets`` and return the shared command id."""
        if not targets:
            raise RemoteExecutionError("no targets to send the command to")
        try:
            response = await call_aws_api_async(
                self._client,
                "send_command",
                DocumentName=self._document_name,
                InstanceIds=list(targets),
                Parameters={self._command_parameter: [command_line]},
                OutputS3Region=self._region,
                OutputS3BucketName=self._output_bucket,
                OutputS3KeyPrefix=self._output_key_prefix,
            )
        except (BotoCoreError, ClientError) as exc:
            raise RemoteExecutionError(f"failed to send SSM command: {exc}") from exc

        command_id = (response.get("Command") or {}).get("CommandId")
        if not command_id:
            raise RemoteExecutionError("SSM SendCommand returned no command id")
        logger.info("sent SSM command %s to %d instances", command_id, len(targets))

        if self._settle_seconds > 0:
            await self._sleep(self._settle_seconds)
        return command_id

    async def _fetch_status(self, command_id: str, target: str) -> tuple[str | None, str | None]:
        try:
            response = await call_aws_api_async(
                self._client,
                "get_command_invocation",
                CommandId=command_id,
                InstanceId=target,
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == _INVOCATION_NOT_READY:
                return None, None
            raise
        return response.get("Status"), response.get("StatusDetails")

    async def poll(
        self,
        command_id: str,
        target: str,
        success_state: str = SSM_SUCCESS,
        timeout: float | None = None,
        interval: float | None = None,
    ) -> InvocationOutcome:
        timeout = self._poll_timeout if timeout is None else timeout
        interval = self._poll_interval if interval is None else interval
        deadline = self._clock() + timeout

        raw_status: str | None = None
        detail: str | None = None
        while True:
            try:
                raw_status, detail = await self._fetch_status(command_id, target)
            except (BotoCoreError, ClientError) as exc:
                logger.warning("status query for %s on %s failed: %s", command_id, target, exc)
                return InvocationOutcome(
                    instance_id=target,
                    status=CommandStatus.FAILURE,
                    raw_status=raw_status,
                    detail=str(exc),
                )

            if raw_status is not None:
                status = classify_status(raw_status, success_state)
                logger.debug("command %s on %s is %s", command_id, target, raw_status)
                if status.is_terminal:
                    return InvocationOutcome(
                        instance_id=target,
                        status=status,
                        raw_status=raw_status,
                        detail=detail,
                    )

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "command %s on %s timed out after %.0fs", command_id, target, timeout
                )
                return InvocationOutcome(
                    instance_id=target,
                    status=CommandStatus.TIMEOUT,
                    raw_status=raw_status,
                    detail=f"no terminal status within {timeout:.0f}s",
                )
            await self._sleep(min(interval, remaining))

    async def poll_all(
        self,
        command_id: str,
        targets: Sequence[str],
        success_state: str = SSM_SUCCESS,
    ) -> CommandDispatch:
        """Wait for every target and return the batch with one outcome per target."""
        batch = CommandDispatch(command_id=command_id, targets=list(targets))
        semaphore = asyncio.Semaphore(self._max_concurrent_polls)

        async def _poll_one(target: str) -> InvocationOutcome:
            async with semaphore:
                return await self.poll(command_id, target, success_state)

        results = await asyncio.gather(
            *(_poll_one(target) for target in batch.targets), return_exceptions=True
        )

        for target, outcome in zip(batch.targets, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "polling %s on %s failed unexpectedly: %r", command_id, target, outcome
                )
                outcome = InvocationOutcome(
                    instance_id=target,
                    status=CommandStatus.FAILURE,
                    detail=str(outcome) or type(outcome).__name__,
                )
            batch.outcomes[target] = outcome
            logger.info("status %s for instance id %s", outcome.status.value, target)
        return batch
