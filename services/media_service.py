"""
Complaint attachment validation and storage (S3 with local-disk fallback).
"""
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fastapi import UploadFile

from core.exceptions import InvalidInput, InternalError
from core.logger import logger
from core.validators import sanitize_filename, validate_extension, validate_content_type, validate_file_size
from database.models import ComplaintMedia, MediaType
from storage.paths import complaint_media_s3_key, complaint_media_local_path, is_within_uploads
import config


@dataclass
class PreparedUpload:
    upload: UploadFile
    media_type: MediaType
    safe_filename: str
    size: int


def _upload_size(upload: UploadFile) -> int:
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def _prepare(upload: UploadFile, media_type: MediaType) -> PreparedUpload:
    if media_type == MediaType.IMAGE:
        prefix, extensions, max_mb = "image/", config.ALLOWED_IMAGE_EXTENSIONS, config.MAX_IMAGE_SIZE_MB
    else:
        prefix, extensions, max_mb = "video/", config.ALLOWED_VIDEO_EXTENSIONS, config.MAX_VIDEO_SIZE_MB

    try:
        safe_filename = sanitize_filename(upload.filename or "")
    except ValueError as e:
        raise InvalidInput(f"Invalid filename: {e}")

    if not validate_content_type(upload.content_type, prefix) or not validate_extension(safe_filename, extensions):
        raise InvalidInput(
            f"{safe_filename} is not a valid {media_type.value}. Allowed: {', '.join(sorted(extensions))}"
        )

    size = _upload_size(upload)
    is_valid_size, size_error = validate_file_size(size, max_mb * 1024 * 1024)
    if not is_valid_size:
        raise InvalidInput(f"{safe_filename}: {size_error}")

    return PreparedUpload(upload=upload, media_type=media_type, safe_filename=safe_filename, size=size)


class MediaService:
    """Validates, stores and removes complaint media."""

    @staticmethod
    def prepare_uploads(
        images: Optional[List[UploadFile]],
        video: Optional[UploadFile],
        existing_images: int = 0,
        existing_videos: int = 0
    ) -> List[PreparedUpload]:
        """
        Validate new attachments against the per-complaint limits.

        Raises:
            InvalidInput: too many files, wrong type or too large
        """
        images = [image for image in (images or []) if image is not None and image.filename]
        if existing_images + len(images) > config.MAX_IMAGES_PER_COMPLAINT:
            raise InvalidInput(f"A complaint can have at most {config.MAX_IMAGES_PER_COMPLAINT} images")

        prepared = [_prepare(image, MediaType.IMAGE) for image in images]

        if video is not None and video.filename:
            if existing_videos >= 1:
                raise InvalidInput("A complaint can have at most 1 video")
            prepared.append(_prepare(video, MediaType.VIDEO))

        return prepared

    @staticmethod
    def store(complaint_id: str, prepared: PreparedUpload) -> ComplaintMedia:
        """Write the file to S3 (or UPLOADS_DIR) and return an unsaved ComplaintMedia row."""
        media = ComplaintMedia(
            complaint_id=complaint_id,
            file_type=prepared.media_type,
            file_name=prepared.safe_filename,
            file_size_bytes=prepared.size
        )

        if config.s3_client:
            s3_key = complaint_media_s3_key(complaint_id, prepared.media_type, prepared.safe_filename)
            try:
                media.file_url = config.s3_client.upload_fileobj(
                    prepared.upload.file,
                    s3_key,
                    content_type=prepared.upload.content_type,
                    metadata={"complaint_id": complaint_id}
                )
                media.s3_bucket = config.s3_client.bucket_name
                media.s3_key = s3_key
                return media
            except Exception as e:
                logger.error(f"Failed to upload {prepared.safe_filename} to S3: {e}", exc_info=True)
                if config.USE_S3_ONLY:
                    raise InternalError("Failed to store attachment")
                prepared.upload.file.seek(0)
        elif config.USE_S3_ONLY:
            raise InternalError("Object storage is not available")

        local_path = complaint_media_local_path(complaint_id, prepared.media_type, prepared.safe_filename)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            with open(local_path, "wb") as buffer:
                shutil.copyfileobj(prepared.upload.file, buffer)
        except OSError as e:
            logger.error(f"Failed to save {prepared.safe_filename} locally: {e}", exc_info=True)
            raise InternalError("Failed to store attachment")
        media.file_url = str(local_path)
        return media

    @staticmethod
    def delete_stored(media: ComplaintMedia):
        """Remove the stored object behind a media row. Failures are logged, not raised."""
        if media.s3_key:
            if not config.s3_client:
                logger.warning(f"S3 unavailable; cannot delete {media.s3_bucket}/{media.s3_key}")
                return
            try:
                config.s3_client.delete_file(media.s3_key, bucket_name=media.s3_bucket)
            except Exception as e:
                logger.error(f"Failed to delete S3 object for media {media.id}: {e}")
            return

        path = Path(media.file_url) if media.file_url else None
        if path and is_within_uploads(path) and path.exists():
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"Failed to delete local media {path}: {e}")

    @staticmethod
    def local_file(media: ComplaintMedia) -> Optional[Path]:
        """Local path for a media row stored on disk, or None."""
        if media.s3_key or not media.file_url:
            return None
        path = Path(media.file_url)
        if not is_within_uploads(path) or not path.exists():
            return None
        return path
