"""Uploads deployment artifacts to S3 under deterministic keys."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from subnet_deployer.domain.models import Artifact, ArtifactKind, DeploymentRequest
from subnet_deployer.errors import ArtifactUploadError
from subnet_deployer.execution.aws_client import call_aws_api_async
from subnet_deployer.staging.keys import config_key, vm_binary_key

logger = logging.getLogger(__name__)


def plan_artifacts(request: DeploymentRequest) -> list[Artifact]:
    """List the artifacts a request stages, in upload order."""
    artifacts: list[Artifact] = []
    if request.subnet_config_local_path is not None:
        artifacts.append(
            Artifact(
                kind=ArtifactKind.SUBNET_CONFIG,
                local_path=request.subnet_config_local_path,
                remote_key=config_key(request.s3_key_prefix, request.subnet_config_local_path),
            )
        )
    artifacts.append(
        Artifact(
            kind=ArtifactKind.VM_BINARY,
            local_path=request.vm_binary_local_path,
            remote_key=vm_binary_key(request.s3_key_prefix, request.vm_id),
        )
    )
    if request.chain_config_local_path is not None:
        artifacts.append(
            Artifact(
                kind=ArtifactKind.CHAIN_CONFIG,
                local_path=request.chain_config_local_path,
                remote_key=config_key(request.s3_key_prefix, request.chain_config_local_path),
            )
        )
    return artifacts


class ArtifactStager:
    """Writes local files to one bucket. Re-uploading the same artifact overwrites it."""

    def __init__(self, s3_client, bucket: str) -> None:
        self._client = s3_client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    async def stage(self, artifact: Artifact) -> str:
        path = Path(artifact.local_path)
        logger.info(
            "uploading %s '%s' to s3://%s/%s",
            artifact.kind.value,
            path,
            self._bucket,
            artifact.remote_key,
        )
        try:
            await call_aws_api_async(
                self._client,
                "upload_file",
                Filename=str(path),
                Bucket=self._bucket,
                Key=artifact.remote_key,
            )
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as exc:
            raise ArtifactUploadError(self._bucket, artifact.remote_key, str(exc)) from exc
        return artifact.remote_key

    async def stage_all(self, artifacts: list[Artifact]) -> list[str]:
        """Upload every artifact concurrently; the first failure is raised."""
        results = await asyncio.gather(
            *(self.stage(artifact) for artifact in artifacts),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)
