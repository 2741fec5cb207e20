from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from subnet_deployer.domain.models import CommandStatus
from subnet_deployer.errors import RemoteExecutionError
from subnet_deployer.fleet.dispatcher import FleetCommandDispatcher, classify_status


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _client_error(code: str, operation: str = "GetCommandInvocation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def _dispatcher(client: MagicMock, clock: FakeClock, **kwargs) -> FleetCommandDispatcher:
    options = {
        "document_name": "avalanched-install",
        "region": "us-west-2",
        "output_bucket": "my-bucket",
        "output_key_prefix": "pfx",
        "settle_seconds": 30.0,
        "poll_timeout_seconds": 20.0,
        "poll_interval_seconds": 5.0,
        "sleep": clock.sleep,
        "clock": clock,
    }
    options.update(kwargs)
    return FleetCommandDispatcher(client, **options)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Success", CommandStatus.SUCCESS),
        ("InProgress", CommandStatus.PENDING),
        ("Pending", CommandStatus.PENDING),
        ("Failed", CommandStatus.FAILURE),
        ("Cancelled", CommandStatus.FAILURE),
        ("TimedOut", CommandStatus.FAILURE),
    ],
)
def test_classify_status(raw: str, expected: CommandStatus) -> None:
    assert classify_status(raw) is expected


@pytest.mark.asyncio
async def test_dispatch_sends_one_command_and_settles() -> None:
    client = MagicMock()
    client.send_command.return_value = {"Command": {"CommandId": "cmd-1"}}
    clock = FakeClock()

    dispatcher = _dispatcher(client, clock)

    command_id = await dispatcher.dispatch("install-subnet-chain --x y", ["i1", "i2"])

    assert command_id == "cmd-1"
    client.send_command.assert_called_once_with(
        DocumentName="avalanched-install",
        InstanceIds=["i1", "i2"],
        Parameters={"avalanchedArgs": ["install-subnet-chain --x y"]},
        OutputS3Region="us-west-2",
        OutputS3BucketName="my-bucket",
        OutputS3KeyPrefix="pfx",
    )
    assert clock.sleeps == [30.0]


@pytest.mark.asyncio
async def test_dispatch_without_settle_delay() -> None:
    client = MagicMock()
    client.send_command.return_value = {"Command": {"CommandId": "cmd-1"}}
    clock = FakeClock()

    await _dispatcher(client, clock, settle_seconds=0).dispatch("cmd", ["i1"])

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_dispatch_errors() -> None:
    client = MagicMock()
    clock = FakeClock()
    dispatcher = _dispatcher(client, clock)

    with pytest.raises(RemoteExecutionError, match="no targets"):
        await dispatcher.dispatch("cmd", [])

    client.send_command.side_effect = _client_error("InvalidDocument", "SendCommand")
    with pytest.raises(RemoteExecutionError, match="failed to send"):
        await dispatcher.dispatch("cmd", ["i1"])

    client.send_command.side_effect = None
    client.send_command.return_value = {"Command": {}}
    with pytest.raises(RemoteExecutionError, match="no command id"):
        await dispatcher.dispatch("cmd", ["i1"])


@pytest.mark.asyncio
async def test_poll_treats_missing_invocation_as_pending() -> None:
    client = MagicMock()
    client.get_command_invocation.side_effect = [
        _client_error("InvocationDoesNotExist"),
        {"Status": "InProgress", "StatusDetails": "InProgress"},
        {"Status": "Success", "StatusDetails": "Success"},
    ]
    clock = FakeClock()

    outcome = await _dispatcher(client, clock).poll("cmd-1", "i1")

    assert outcome.status is CommandStatus.SUCCESS
    assert outcome.raw_status == "Success"
    assert clock.sleeps == [5.0, 5.0]
    client.get_command_invocation.assert_called_with(CommandId="cmd-1", InstanceId="i1")


@pytest.mark.asyncio
async def test_poll_times_out() -> None:
    client = MagicMock()
    client.get_command_invocation.return_value = {"Status": "InProgress"}
    clock = FakeClock()

    outcome = await _dispatcher(client, clock).poll("cmd-1", "i1")

    assert outcome.status is CommandStatus.TIMEOUT
    assert outcome.raw_status == "InProgress"
    assert outcome.detail == "no terminal status within 20s"
    assert sum(clock.sleeps) == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_poll_reports_terminal_failure() -> None:
    client = MagicMock()
    client.get_command_invocation.return_value = {
        "Status": "Failed",
        "StatusDetails": "Failed",
    }
    clock = FakeClock()

    outcome = await _dispatcher(client, clock).poll("cmd-1", "i1")

    assert outcome.status is CommandStatus.FAILURE
    assert not outcome.succeeded
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_poll_query_error_fails_target() -> None:
    client = MagicMock()
    client.get_command_invocation.side_effect = _client_error("AccessDeniedException")
    clock = FakeClock()

    outcome = await _dispatcher(client, clock).poll("cmd-1", "i1")

    assert outcome.status is CommandStatus.FAILURE
    assert "AccessDeniedException" in outcome.detail


@pytest.mark.asyncio
async def test_poll_all_reports_every_target() -> None:
    statuses = {"i1": "Success", "i2": "Failed", "i3": "Success"}
    client = MagicMock()
    client.get_command_invocation.side_effect = lambda CommandId, InstanceId: {
        "Status": statuses[InstanceId]
    }
    clock = FakeClock()

    batch = await _dispatcher(client, clock, max_concurrent_polls=2).poll_all(
        "cmd-1", ["i1", "i2", "i3"]
    )

    assert list(batch.outcomes) == ["i1", "i2", "i3"]
    assert batch.complete
    assert batch.failed_targets == ["i2"]
    assert not batch.succeeded


@pytest.mark.asyncio
async def test_poll_all_times_out_one_target_and_keeps_the_others() -> None:
    statuses = {"i1": "Success", "i2": "InProgress", "i3": "Success"}
    client = MagicMock()
    client.get_command_invocation.side_effect = lambda CommandId, InstanceId: {
        "Status": statuses[InstanceId]
    }
    clock = FakeClock()

    batch = await _dispatcher(client, clock, max_concurrent_polls=2).poll_all(
        "cmd-1", ["i1", "i2", "i3"]
    )

    assert list(batch.outcomes) == ["i1", "i2", "i3"]
    assert batch.outcomes["i1"].status is CommandStatus.SUCCESS
    assert batch.outcomes["i3"].status is CommandStatus.SUCCESS
    assert batch.outcomes["i2"].status is CommandStatus.TIMEOUT
    assert batch.outcomes["i2"].raw_status == "InProgress"
    assert batch.failed_targets == ["i2"]
    assert not batch.succeeded
    assert clock.now >= 20.0


@pytest.mark.asyncio
async def test_poll_all_turns_unexpected_errors_into_failed_targets() -> None:
    def invocation(CommandId: str, InstanceId: str) -> dict:
        if InstanceId == "i2":
            raise RuntimeError("connection pool is closed")
        return {"Status": "Success"}

    client = MagicMock()
    client.get_command_invocation.side_effect = invocation
    clock = FakeClock()

    batch = await _dispatcher(client, clock).poll_all("cmd-1", ["i1", "i2", "i3"])

    assert list(batch.outcomes) == ["i1", "i2", "i3"]
    assert batch.outcomes["i2"].status is CommandStatus.FAILURE
    assert batch.outcomes["i2"].detail == "connection pool is closed"
    assert batch.outcomes["i1"].succeeded
    assert batch.outcomes["i3"].succeeded
    assert batch.failed_targets == ["i2"]
