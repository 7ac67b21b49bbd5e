"""
Display URLs for complaint media in API responses.
S3 objects get a presigned HTTPS URL; local files are served by the complaints router.
"""
from typing import Optional

from core.logger import logger
from storage.s3_client import parse_s3_url
import config


def media_display_url(file_url: Optional[str], complaint_id: str, media_id: str) -> Optional[str]:
    """
    Turn a stored file_url into something a browser can load.
    Returns None for an empty file_url.
    """
    if not file_url:
        return None
    parsed = parse_s3_url(file_url)
    if parsed is None:
        return f"/api/complaints/{complaint_id}/media/{media_id}/file"
    if not config.s3_client:
        return file_url
    bucket, key = parsed
    try:
        return config.s3_client.get_presigned_url(
            key, bucket_name=bucket, expiration=config.S3_PRESIGNED_EXPIRY_SECONDS
        )
    except Exception as e:
        logger.warning(f"Could not generate presigned URL for {file_url}: {e}")
        return file_url
