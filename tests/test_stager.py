from __future__ import annotations

from unittest.mock import MagicMock, call

import pytest
from boto3.exceptions import S3UploadFailedError

from subnet_deployer.domain.ids import vm_name_to_id
from subnet_deployer.domain.models import ArtifactKind
from subnet_deployer.errors import ArtifactUploadError
from subnet_deployer.preflight import build_request
from subnet_deployer.staging.stager import ArtifactStager, plan_artifacts


def test_plan_without_optional_configs(request_values: dict) -> None:
    artifacts = plan_artifacts(build_request(request_values))

    assert [artifact.kind for artifact in artifacts] == [ArtifactKind.VM_BINARY]
    assert artifacts[0].remote_key == f"pfx/{vm_name_to_id('subnetevm')}"


def test_plan_with_all_configs(request_values: dict, local_files: dict) -> None:
    request = build_request(
        {
            **request_values,
            "subnet_config_local_path": str(local_files["subnet_config"]),
            "subnet_config_remote_dir": "/data/subnets",
            "chain_config_local_path": str(local_files["chain_config"]),
            "chain_config_remote_dir": "/data/chains",
        }
    )

    artifacts = plan_artifacts(request)

    assert [artifact.kind for artifact in artifacts] == [
        ArtifactKind.SUBNET_CONFIG,
        ArtifactKind.VM_BINARY,
        ArtifactKind.CHAIN_CONFIG,
    ]
    assert artifacts[0].remote_key == "pfx/subnet-config"
    assert artifacts[2].remote_key == "pfx/chain-config"


@pytest.mark.asyncio
async def test_stage_all_uploads_each_artifact(request_values: dict, local_files: dict) -> None:
    request = build_request(
        {
            **request_values,
            "subnet_config_local_path": str(local_files["subnet_config"]),
            "subnet_config_remote_dir": "/data/subnets",
        }
    )
    client = MagicMock()
    stager = ArtifactStager(client, "my-bucket")

    keys = await stager.stage_all(plan_artifacts(request))

    vm_key = f"pfx/{request.vm_id}"
    assert keys == ["pfx/subnet-config", vm_key]
    client.upload_file.assert_has_calls(
        [
            call(
                Filename=str(local_files["subnet_config"]),
                Bucket="my-bucket",
                Key="pfx/subnet-config",
            ),
            call(Filename=str(local_files["vm_binary"]), Bucket="my-bucket", Key=vm_key),
        ],
        any_order=True,
    )


@pytest.mark.asyncio
async def test_upload_failure_is_reported_with_key(request_values: dict) -> None:
    client = MagicMock()
    client.upload_file.side_effect = S3UploadFailedError("AccessDenied")
    stager = ArtifactStager(client, "my-bucket")
    request = build_request(request_values)

    with pytest.raises(ArtifactUploadError) as exc_info:
        await stager.stage_all(plan_artifacts(request))

    assert exc_info.value.bucket == "my-bucket"
    assert exc_info.value.key == f"pfx/{request.vm_id}"
    assert "AccessDenied" in exc_info.value.message
