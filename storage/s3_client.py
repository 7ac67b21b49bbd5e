"""
S3 client for complaint media storage.
"""
import boto3
from botocore.exceptions import ClientError, BotoCoreError
from typing import Optional, BinaryIO, Tuple

from core.logger import logger


def parse_s3_url(s3_url: str) -> Optional[Tuple[str, str]]:
    """Split "s3://bucket/key/path" into (bucket, key); None if not an S3 URL."""
    if not s3_url or not s3_url.startswith("s3://"):
        return None
    parts = s3_url[len("s3://"):].split("/", 1)
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


class S3Client:
    """S3 client for storing, presigning and deleting media objects in one bucket."""

    def __init__(
        self,
        bucket_name: str,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,  # For S3-compatible services (MinIO, etc.)
        auto_create_bucket: bool = True
    ):
        """
        Initialize S3 client.

        Args:
            bucket_name: Bucket holding complaint media
            aws_access_key_id: AWS access key (or from env)
            aws_secret_access_key: AWS secret key (or from env)
            region_name: AWS region
            endpoint_url: Custom endpoint URL (for MinIO, etc.)
            auto_create_bucket: Create the bucket if it doesn't exist
        """
        self.bucket_name = bucket_name
        self.region_name = region_name
        self.auto_create_bucket = auto_create_bucket

        client_kwargs = {"region_name": region_name}
        if aws_access_key_id:
            client_kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            client_kwargs["aws_secret_access_key"] = aws_secret_access_key
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self._ensure_bucket_exists()
        logger.info(f"S3 client initialized (bucket: {bucket_name})")

    def _ensure_bucket_exists(self):
        """Ensure bucket exists, create if it doesn't."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code not in ("404", "403", "NoSuchBucket") or not self.auto_create_bucket:
                logger.error(f"Error checking bucket {self.bucket_name}: {e}")
                raise
            if self.region_name == "us-east-1":
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region_name}
                )
            logger.info(f"Created bucket: {self.bucket_name}")

    def upload_fileobj(
        self,
        file_obj: BinaryIO,
        s3_key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> str:
        """
        Upload a file-like object.

        Returns:
            S3 URL of uploaded file (s3://bucket/key)
        """
        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = {str(k): str(v) for k, v in metadata.items()}

        try:
            self.s3_client.upload_fileobj(file_obj, self.bucket_name, s3_key, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload file object to S3: {e}")
            raise

        url = f"s3://{self.bucket_name}/{s3_key}"
        logger.info(f"Uploaded file object to S3: {url}")
        return url

    def delete_file(self, s3_key: str, bucket_name: Optional[str] = None) -> bool:
        """Delete an object. Deleting a missing key succeeds (S3 semantics)."""
        bucket = bucket_name or self.bucket_name
        try:
            self.s3_client.delete_object(Bucket=bucket, Key=s3_key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete file from S3: {e}")
            raise
        logger.info(f"Deleted file from S3: {bucket}/{s3_key}")
        return True

    def get_presigned_url(self, s3_key: str, bucket_name: Optional[str] = None, expiration: int = 3600) -> str:
        """
        Generate a presigned GET URL for temporary access.

        Args:
            s3_key: S3 object key (path)
            bucket_name: Bucket, defaults to the media bucket
            expiration: URL expiration time in seconds (default 1 hour)
        """
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket_name or self.bucket_name, "Key": s3_key},
                ExpiresIn=expiration
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to generate presigned URL: {e}")
            raise

    def check_bucket(self):
        """head_bucket for health checks; raises on failure."""
        self.s3_client.head_bucket(Bucket=self.bucket_name)
