import boto3
from botocore.exceptions import ClientError
from app.config import settings
from app.modules.avatars.errors import StoreError
from app.modules.avatars.storage import canonical_key, to_store_error
from typing import Optional, Set
import logging

logger = logging.getLogger(__name__)


class S3AvatarStorage:
    def __init__(self, bucket_name: Optional[str] = None, s3_client=None):
        self.bucket_name = bucket_name or settings.s3_bucket_name
        if not self.bucket_name:
            raise ValueError("s3_bucket_name must be configured for the s3 avatar backend")
        if s3_client is None:
            if not all([settings.aws_access_key_id, settings.aws_secret_access_key]):
                raise ValueError("AWS S3 credentials must be configured")
            s3_client = boto3.client(
                's3',
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region
            )
        self.s3_client = s3_client

    def public_url(self, personality_id: str) -> str:
        return f"{settings.get_avatar_public_base_url()}/{self.bucket_name}/{canonical_key(personality_id)}"

    def upload_file(self, file_content: bytes, key: str, content_type: str = "image/webp") -> str:
        """Upload file to S3 and return the S3 URL"""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=file_content,
                ContentType=content_type,
                CacheControl="max-age=3600"
            )
            return f"s3://{self.bucket_name}/{key}"
        except ClientError as e:
            logger.error(f"Failed to upload file to S3: {str(e)}")
            raise to_store_error(e, "Upload") from e

    def delete_file(self, key: str) -> None:
        """Delete file from S3"""
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            logger.error(f"Failed to delete file from S3: {str(e)}")
            raise to_store_error(e, "Delete") from e

    def list_folders(self) -> Set[str]:
        folders: Set[str] = set()
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Delimiter="/"):
                for prefix in page.get("CommonPrefixes", []):
                    folders.add(prefix["Prefix"].rstrip("/"))
        except ClientError as e:
            raise to_store_error(e, "Listing") from e
        return folders

    def ensure_bucket(self) -> bool:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return False
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in ("404", "NoSuchBucket", "NotFound"):
                raise StoreError(f"Storage setup failed: {e}") from e
        try:
            kwargs = {"Bucket": self.bucket_name}
            if settings.aws_region != "us-east-1":
                kwargs["CreateBucketConfiguration"] = {"LocationConstraint": settings.aws_region}
            self.s3_client.create_bucket(**kwargs)
            logger.info(f"Created S3 bucket {self.bucket_name}")
            return True
        except ClientError as e:
            raise StoreError(f"Storage setup failed: {e}") from e
