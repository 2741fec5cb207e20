"""AWS client factory."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from subnet_deployer.config import Settings, load_settings
from subnet_deployer.errors import ConnectivityError

logger = logging.getLogger(__name__)

ClientCacheKey = tuple[str, ...]

_CLIENT_CACHE: OrderedDict[ClientCacheKey, tuple[object, float]] = OrderedDict()
_CLIENT_CACHE_LOCK = threading.Lock()
_CLIENT_TTL_SECONDS = 3600  # 1 hour
_CLIENT_CACHE_MAX_SIZE = 32


def _get_cached_client(
    key: ClientCacheKey,
    build_client: Callable[[], object],
) -> object:
    now = time.monotonic()
    with _CLIENT_CACHE_LOCK:
        cached = _CLIENT_CACHE.get(key)
        if cached is not None:
            client, created_at = cached
            if now - created_at < _CLIENT_TTL_SECONDS:
                _CLIENT_CACHE.move_to_end(key)
                return client
            del _CLIENT_CACHE[key]
        client = build_client()
        _CLIENT_CACHE[key] = (client, now)
        while len(_CLIENT_CACHE) > _CLIENT_CACHE_MAX_SIZE:
            _CLIENT_CACHE.popitem(last=False)
        return client


def get_client(
    service: str,
    region: str,
    profile: str | None = None,
):
    settings = load_settings()
    key = (service, region, profile or settings.aws.default_profile or "")
    return _get_cached_client(
        key,
        lambda: _create_client(service, region, profile, settings),
    )


def _create_client(
    service: str,
    region: str,
    profile: str | None,
    settings: Settings,
):
    session = boto3.Session(
        profile_name=profile or settings.aws.default_profile,
        region_name=region,
    )
    return session.client(service, config=_get_service_config(service, settings))


def _get_service_config(service: str, settings: Settings) -> Config:
    base: dict[str, object] = {
        "read_timeout": settings.aws.sdk_timeout_seconds,
        "connect_timeout": settings.aws.sdk_timeout_seconds,
        "retries": {"max_attempts": settings.aws.max_retries + 1, "mode": "standard"},
    }
    if service == "s3":
        base["request_checksum_calculation"] = "when_required"
        base["response_checksum_validation"] = "when_required"
    return Config(**base)


def _call_method(client, method_name: str, kwargs: dict[str, object]):
    method = getattr(client, method_name)
    return method(**kwargs)


async def get_client_async(service: str, region: str, profile: str | None = None):
    return await asyncio.to_thread(get_client, service, region, profile)


async def call_aws_api_async(client, method_name: str, **kwargs):
    return await asyncio.to_thread(_call_method, client, method_name, kwargs)


async def get_caller_identity(sts_client) -> dict[str, str]:
    """Return the STS identity the AWS calls of this run will be made as."""
    try:
        response = await call_aws_api_async(sts_client, "get_caller_identity")
    except (BotoCoreError, ClientError) as exc:
        raise ConnectivityError(f"failed to resolve AWS identity: {exc}") from exc
    identity = {
        "account": response.get("Account", ""),
        "arn": response.get("Arn", ""),
        "user_id": response.get("UserId", ""),
    }
    logger.info("current AWS identity: %s", identity)
    return identity
