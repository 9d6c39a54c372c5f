from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config

from nat_connector.core.config import get_settings

logger = logging.getLogger(__name__)


def _boto_config() -> Config:
    settings = get_settings()
    return Config(
        retries={"max_attempts": settings.aws_max_attempts, "mode": "adaptive"},
        connect_timeout=settings.aws_connect_timeout,
        read_timeout=settings.aws_read_timeout,
    )


def get_boto3_session(region: str, access_key_id: str, secret_access_key: str) -> boto3.Session:
    """
    Build a boto3 session from the static credentials carried by one request.
    Nothing is read from the process credential chain.
    """
    return boto3.Session(
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=region,
    )


def get_ec2_client(region: str, access_key_id: str, secret_access_key: str) -> Any:
    """Get an EC2 client for one request, or the in-memory simulator in mock mode."""
    settings = get_settings()
    if settings.mock_aws:
        from nat_connector.services.cloud.mock_ec2 import MockEc2Client

        logger.debug("MOCK_AWS enabled, using in-memory EC2 client for %s", region)
        return MockEc2Client(region=region)

    session = get_boto3_session(region, access_key_id, secret_access_key)
    return session.client("ec2", config=_boto_config())
