import logging
from functools import lru_cache

from minio import Minio
from formsapi.config import config

logger = logging.getLogger(__name__)


@lru_cache()
def get_storage_client() -> Minio:
    return Minio(
        endpoint=config.MINIO_ENDPOINT,
        access_key=config.MINIO_ROOT_USER,
        secret_key=config.MINIO_ROOT_PASSWORD,
        secure=config.MINIO_SECURE,
    )


def object_url(object_name: str) -> str:
    scheme = "https" if config.MINIO_SECURE else "http"
    return f"{scheme}://{config.MINIO_ENDPOINT}/{config.MINIO_BUCKET}/{object_name}"


def setup_bucket() -> None:
    if not config.MINIO_ROOT_USER:
        logger.info("MinIO credentials not configured; file uploads are disabled.")
        return
    try:
        client = get_storage_client()
        bucket = config.MINIO_BUCKET
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
        logger.info(f"MinIO bucket '{bucket}' is ready.")
    except Exception as e:
        logger.error(f"MinIO setup failed: {e}")
