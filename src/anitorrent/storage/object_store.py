"""S3-compatible object storage client."""

import logging
import mimetypes
from pathlib import Path
from typing import Any
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from anitorrent.storage.models import PutResult
from anitorrent.utils.errors import StorageError

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    ".mkv": "video/x-matroska",
    ".mp4": "video/mp4",
    ".ass": "text/x-ssa",
    ".srt": "application/x-subrip",
    ".mp3": "audio/mpeg",
}


def content_type_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _CONTENT_TYPES:
        return _CONTENT_TYPES[suffix]
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


class ObjectStore:
    """Uploads, deletes and signs objects in one bucket.

    Uses path-style addressing with signature v4 and no read timeout, so
    multi-gigabyte uploads are not cut off mid-transfer.
    """

    def __init__(
        self,
        bucket: str,
        public_domain: str,
        endpoint: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region: str = "auto",
        client: Any | None = None,
    ) -> None:
        """Initialize the object store.

        Args:
            bucket: Bucket name
            public_domain: Public base URL objects are served from
            endpoint: S3 endpoint URL (R2, MinIO, ...)
            access_key_id: Access key id
            secret_access_key: Secret access key
            region: Region name passed to boto3
            client: Preconfigured boto3 S3 client (used by tests)
        """
        self.bucket = bucket
        self.public_domain = public_domain.rstrip("/")
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                    read_timeout=None,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
        self.client = client

    def public_url(self, key: str) -> str:
        """Public URL of a key: <public_domain>/<key>, percent-encoded."""
        return f"{self.public_domain}/{quote(key, safe='/')}"

    def put(self, local_path: Path, key: str, public_read: bool = True) -> PutResult:
        """Upload a file.

        Raises:
            StorageError: If the upload fails
        """
        extra_args = {"ContentType": content_type_for(local_path)}
        if public_read:
            extra_args["ACL"] = "public-read"

        logger.info(f"Uploading {local_path.name} to {key}")
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra_args)
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError, OSError) as e:
            raise StorageError(f"Upload of {key} failed: {e}") from e

        etag = (head.get("ETag") or "").strip('"') or None
        return PutResult(
            public_url=self.public_url(key),
            etag=etag,
            size_bytes=int(head.get("ContentLength") or 0),
        )

    def delete(self, key: str) -> None:
        """Delete an object.

        Raises:
            StorageError: If the delete fails
        """
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Delete of {key} failed: {e}") from e
        logger.info(f"Deleted {key} from storage")

    def signed_url(self, key: str, ttl: int = 3600) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Signing {key} failed: {e}") from e

    def copy(self, source_key: str, dest_key: str) -> PutResult:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                Key=dest_key,
                ACL="public-read",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Copy of {source_key} to {dest_key} failed: {e}") from e
        return PutResult(public_url=self.public_url(dest_key))

    def rename(self, source_key: str, dest_key: str) -> PutResult:
        result = self.copy(source_key, dest_key)
        self.delete(source_key)
        return result
