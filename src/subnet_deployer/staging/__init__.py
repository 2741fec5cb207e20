"""Artifact key rendering and S3 staging."""

from subnet_deployer.staging.keys import append_slash, config_key, vm_binary_key
from subnet_deployer.staging.stager import ArtifactStager, plan_artifacts

__all__ = [
    "ArtifactStager",
    "append_slash",
    "config_key",
    "plan_artifacts",
    "vm_binary_key",
]
