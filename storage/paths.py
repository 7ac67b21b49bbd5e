"""
Storage key generation for complaint media.

S3 keys:    complaints/complaint_id=<id>/<images|videos>/<uuid>_<filename>
Local path: UPLOADS_DIR/complaints/<id>/<images|videos>/<uuid>_<filename>
"""
import uuid
from pathlib import Path

from database.models import MediaType
import config


def _folder(media_type: MediaType) -> str:
    return "videos" if media_type == MediaType.VIDEO else "images"


def complaint_media_s3_key(complaint_id: str, media_type: MediaType, safe_filename: str) -> str:
    """complaints/complaint_id=<id>/images/3f2a..._photo.jpg"""
    return f"complaints/complaint_id={complaint_id}/{_folder(media_type)}/{uuid.uuid4().hex}_{safe_filename}"


def complaint_media_local_path(complaint_id: str, media_type: MediaType, safe_filename: str) -> Path:
    return config.UPLOADS_DIR / "complaints" / complaint_id / _folder(media_type) / f"{uuid.uuid4().hex}_{safe_filename}"


def is_within_uploads(path: Path) -> bool:
    """True when path resolves inside UPLOADS_DIR."""
    try:
        path.resolve().relative_to(config.UPLOADS_DIR.resolve())
        return True
    except ValueError:
        return False
