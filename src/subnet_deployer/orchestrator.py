"""Deployment state machine.

Stages run strictly in order and the first failure ends the run. Nothing that
was already created on the ledger or uploaded to S3 is rolled back. With a
run-state store attached, the non-idempotent ledger stages leave markers so
that a re-run of the same request skips them instead of repeating them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from subnet_deployer.config import OrchestratorSettings
from subnet_deployer.domain.models import (
    DeploymentRequest,
    DeploymentResult,
    Stage,
    StageFailure,
)
from subnet_deployer.errors import DeploymentError, RemoteExecutionError
from subnet_deployer.fleet.commands import render_install_chain, render_install_subnet_chain
from subnet_deployer.fleet.dispatcher import FleetCommandDispatcher
from subnet_deployer.ledger.transactor import LedgerTransactor
from subnet_deployer.preflight import run_preflight
from subnet_deployer.staging.keys import config_key, vm_binary_key
from subnet_deployer.staging.stager import ArtifactStager, plan_artifacts
from subnet_deployer.state.db import RunStateStore
from subnet_deployer.state.fingerprint import compute_request_fingerprint
from subnet_deployer.utils.time import parse_utc, utc_now

Confirm = Callable[[DeploymentRequest], bool]
Announce = Callable[[str], None]
Sleep = Callable[[float], Awaitable[None]]

BANNERS: dict[Stage, str] = {
    Stage.PREFLIGHT: "validating local inputs",
    Stage.STAGE_ARTIFACTS: "uploading VM binary and config files to S3",
    Stage.REGISTER_PRIMARY_VALIDATORS: (
        "adding all nodes as primary network validators if not yet"
    ),
    Stage.CREATE_SUBNET: "creating a subnet",
    Stage.DISPATCH_INSTALL_COMMAND: (
        "sending SSM command to download VM binary, track subnet id, update subnet config"
    ),
    Stage.POLL_INSTALL_COMMAND: "checking the status of SSM command",
    Stage.REGISTER_SUBNET_VALIDATORS: "adding all nodes as subnet validators",
    Stage.CREATE_CHAIN: "creating a blockchain with the genesis",
    Stage.DISPATCH_CHAIN_CONFIG_COMMAND: "sending SSM command for chain-config updates",
    Stage.POLL_CHAIN_CONFIG_COMMAND: "checking the status of SSM command",
}

MARKER_ANCHOR = "anchor"
MARKER_CREATE_SUBNET = "create-subnet"
MARKER_CREATE_CHAIN = "create-chain"


def primary_validator_marker(node_id: str) -> str:
    return f"primary-validator:{node_id}"


def subnet_validator_marker(node_id: str) -> str:
    return f"subnet-validator:{node_id}"


class _Halt(Exception):
    pass


class DeploymentOrchestrator:
    """Runs one deployment request from preflight to the final result."""

    def __init__(
        self,
        request: DeploymentRequest,
        *,
        transactor: LedgerTransactor,
        stager: ArtifactStager,
        dispatcher: FleetCommandDispatcher,
        logger: logging.Logger,
        confirm: Confirm | None = None,
        announce: Announce | None = None,
        state_store: RunStateStore | None = None,
        network_id: int | None = None,
        settings: OrchestratorSettings | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._request = request
        self._transactor = transactor
        self._stager = stager
        self._dispatcher = dispatcher
        self._logger = logger
        self._confirm = confirm
        self._announce = announce or (lambda message: logger.info("STEP: %s", message))
        self._state_store = state_store
        self._network_id = network_id
        self._settings = settings or OrchestratorSettings()
        self._sleep = sleep
        self._clock = clock

        self._fingerprint: str | None = None
        self._genesis = b""
        self._anchor: datetime | None = None

    @property
    def request(self) -> DeploymentRequest:
        return self._request

    async def run(self) -> DeploymentResult:
        result = DeploymentResult(vm_id=self._request.vm_id)
        try:
            await self._run_stage(Stage.PREFLIGHT, result, self._preflight)

            if self._confirm is not None and not self._confirm(self._request):
                self._logger.info("deployment aborted by operator before any change")
                result.aborted = True
                return result

            await self._run_stage(Stage.STAGE_ARTIFACTS, result, self._stage_artifacts)
            await self._run_stage(
                Stage.REGISTER_PRIMARY_VALIDATORS, result, self._register_primary_validators
            )
            await self._run_stage(Stage.CREATE_SUBNET, result, self._create_subnet)
            await self._run_stage(
                Stage.DISPATCH_INSTALL_COMMAND, result, self._dispatch_install_command
            )
            await self._run_stage(Stage.POLL_INSTALL_COMMAND, result, self._poll_install_command)
            await self._run_stage(
                Stage.REGISTER_SUBNET_VALIDATORS, result, self._register_subnet_validators
            )
            await self._run_stage(Stage.CREATE_CHAIN, result, self._create_chain)
            if self._request.chain_config_local_path is not None:
                await self._run_stage(
                    Stage.DISPATCH_CHAIN_CONFIG_COMMAND,
                    result,
                    self._dispatch_chain_config_command,
                )
                await self._run_stage(
                    Stage.POLL_CHAIN_CONFIG_COMMAND, result, self._poll_chain_config_command
                )
        except _Halt:
            return result

        result.completed_stages.append(Stage.DONE)
        self._logger.info(
            "deployment complete: subnet id %s, blockchain id %s",
            result.subnet_id,
            result.blockchain_id,
        )
        return result

    async def _run_stage(
        self,
        stage: Stage,
        result: DeploymentResult,
        step: Callable[[DeploymentResult], Awaitable[None]],
    ) -> None:
        self._announce(BANNERS[stage])
        try:
            await step(result)
        except DeploymentError as exc:
            self._logger.error("stage %s failed: %s", stage.value, exc.message)
            result.error = StageFailure(stage=stage, message=exc.message, error=exc)
            raise _Halt() from exc
        except Exception as exc:
            self._logger.exception("stage %s failed unexpectedly", stage.value)
            result.error = StageFailure(
                stage=stage, message=str(exc) or type(exc).__name__, error=exc
            )
            raise _Halt() from exc
        result.completed_stages.append(stage)

    def _marker(self, name: str) -> dict[str, object] | None:
        if self._state_store is None or self._fingerprint is None:
            return None
        marker = self._state_store.get_marker(self._fingerprint, name)
        return None if marker is None else marker.value

    def _mark(self, name: str, value: dict[str, object]) -> None:
        if self._state_store is None or self._fingerprint is None:
            return
        self._state_store.mark_completed(self._fingerprint, name, value)

    async def _preflight(self, result: DeploymentResult) -> None:
        self._genesis = run_preflight(self._request)
        self._anchor = self._clock()
        if self._state_store is None:
            return

        self._fingerprint = compute_request_fingerprint(
            self._request,
            self._genesis,
            network_id=self._network_id,
            wallet_address=self._transactor.wallet.address,
        )
        completed = self._state_store.list_markers(self._fingerprint)
        anchor = self._marker(MARKER_ANCHOR)
        if anchor is not None:
            self._anchor = parse_utc(str(anchor["at"]))
        if completed:
            self._logger.info(
                "resuming run %s with %d completed markers", self._fingerprint, len(completed)
            )

    async def _stage_artifacts(self, result: DeploymentResult) -> None:
        artifacts = plan_artifacts(self._request)
        await self._stager.stage_all(artifacts)
        result.artifacts.extend(artifacts)

    async def _register_primary_validators(self, result: DeploymentResult) -> None:
        request = self._request
        # Validation periods of every later registration derive from this anchor.
        if self._marker(MARKER_ANCHOR) is None:
            self._mark(MARKER_ANCHOR, {"at": self._anchor.isoformat()})
        for target in request.targets:
            marker = primary_validator_marker(target.node_id)
            if self._marker(marker) is not None:
                self._logger.info("%s already registered as primary validator", target.node_id)
                continue
            self._logger.info("adding %s in instance %s", target.node_id, target.instance_id)
            registration = await self._transactor.register_primary_validator(
                target.node_id,
                request.staking_amount_in_avax,
                request.staking_period_in_days,
                now=self._anchor,
            )
            result.primary_registrations.append(registration)
            self._mark(marker, {"tx_id": registration.tx_id, "added": registration.added})

    async def _create_subnet(self, result: DeploymentResult) -> None:
        stored = self._marker(MARKER_CREATE_SUBNET)
        if stored is not None:
            result.subnet_id = str(stored["subnet_id"])
            self._logger.info("reusing subnet %s created by an earlier run", result.subnet_id)
            return

        await self._transactor.create_subnet(dry=True)
        record = await self._transactor.create_subnet(dry=False)
        result.subnet_id = record.subnet_id
        self._mark(MARKER_CREATE_SUBNET, {"subnet_id": record.subnet_id})
        await self._sleep(self._settings.subnet_settle_seconds)

    async def _dispatch_install_command(self, result: DeploymentResult) -> None:
        request = self._request
        subnet_config_s3_key = None
        if request.subnet_config_local_path is not None:
            subnet_config_s3_key = config_key(
                request.s3_key_prefix, request.subnet_config_local_path
            )
        command_line = render_install_subnet_chain(
            region=request.region,
            s3_bucket=request.s3_bucket,
            vm_binary_s3_key=vm_binary_key(request.s3_key_prefix, request.vm_id),
            vm_binary_remote_dir=request.vm_binary_remote_dir,
            vm_id=request.vm_id,
            subnet_id=result.subnet_id,
            avalanchego_config_path=request.avalanchego_config_remote_path,
            subnet_config_s3_key=subnet_config_s3_key,
            subnet_config_remote_dir=request.subnet_config_remote_dir,
        )
        self._logger.debug("install command: %s", command_line)
        result.install_command_id = await self._dispatcher.dispatch(
            command_line, request.instance_ids
        )

    async def _poll_install_command(self, result: DeploymentResult) -> None:
        batch = await self._dispatcher.poll_all(
            result.install_command_id, self._request.instance_ids
        )
        result.install_outcomes.update(batch.outcomes)
        if not batch.succeeded:
            raise RemoteExecutionError(
                f"install command {batch.command_id} did not succeed on "
                f"{', '.join(batch.failed_targets)}",
                command_id=batch.command_id,
                failed_targets=batch.failed_targets,
            )
        await self._sleep(self._settings.stage_settle_seconds)

    async def _register_subnet_validators(self, result: DeploymentResult) -> None:
        request = self._request
        for node_id in request.node_ids:
            marker = subnet_validator_marker(node_id)
            if self._marker(marker) is not None:
                self._logger.info("%s already validates subnet %s", node_id, result.subnet_id)
                continue
            registration = await self._transactor.register_subnet_validator(
                node_id,
                result.subnet_id,
                request.staking_period_in_days - 1,
                now=self._anchor,
            )
            result.subnet_registrations.append(registration)
            self._mark(marker, {"tx_id": registration.tx_id, "added": registration.added})
        self._logger.info("added subnet validators for %s", result.subnet_id)
        await self._sleep(self._settings.stage_settle_seconds)

    async def _create_chain(self, result: DeploymentResult) -> None:
        stored = self._marker(MARKER_CREATE_CHAIN)
        if stored is not None:
            result.blockchain_id = str(stored["blockchain_id"])
            self._logger.info(
                "reusing blockchain %s created by an earlier run", result.blockchain_id
            )
            return

        request = self._request
        await self._transactor.create_chain(
            result.subnet_id, self._genesis, request.vm_id, request.chain_name, dry=True
        )
        record = await self._transactor.create_chain(
            result.subnet_id, self._genesis, request.vm_id, request.chain_name, dry=False
        )
        result.blockchain_id = record.blockchain_id
        self._mark(
            MARKER_CREATE_CHAIN,
            {"blockchain_id": record.blockchain_id, "subnet_id": record.subnet_id},
        )

    async def _dispatch_chain_config_command(self, result: DeploymentResult) -> None:
        request = self._request
        command_line = render_install_chain(
            region=request.region,
            s3_bucket=request.s3_bucket,
            chain_config_s3_key=config_key(request.s3_key_prefix, request.chain_config_local_path),
            chain_config_remote_dir=request.chain_config_remote_dir,
            blockchain_id=result.blockchain_id,
        )
        self._logger.debug("chain config command: %s", command_line)
        result.chain_config_command_id = await self._dispatcher.dispatch(
            command_line, request.instance_ids
        )

    async def _poll_chain_config_command(self, result: DeploymentResult) -> None:
        batch = await self._dispatcher.poll_all(
            result.chain_config_command_id, self._request.instance_ids
        )
        result.chain_config_outcomes.update(batch.outcomes)
        if not batch.succeeded:
            raise RemoteExecutionError(
                f"chain config command {batch.command_id} did not succeed on "
                f"{', '.join(batch.failed_targets)}",
                command_id=batch.command_id,
                failed_targets=batch.failed_targets,
            )
        await self._sleep(self._settings.stage_settle_seconds)
