# lizexpress/infra/s3_client.py
import logging

import boto3
from botocore.config import Config

from lizexpress.core.settings import settings

logger = logging.getLogger(__name__)

_BOTO_CFG = Config(
    region_name=settings.S3_REGION,
    retries={"max_attempts": 3, "mode": "standard"},
    connect_timeout=3,
    read_timeout=25,
    s3={"addressing_style": "virtual"},
)

_s3_client = None


def get_s3():
    """Lazy singleton S3 client met standaardconfig."""
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            config=_BOTO_CFG,
        )
        logger.info(
            "S3 client initialized region=%s bucket=%s",
            settings.S3_REGION,
            settings.VERIFICATION_BUCKET,
        )
    return _s3_client
