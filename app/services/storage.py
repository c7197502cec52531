"""
Object storage (Cloudflare R2, S3-compatible).

The API never handles file bytes: clients upload and download directly with
short-lived presigned URLs, and the database stores only object keys.
"""

import logging
import uuid
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import (
    PRESIGNED_URL_EXPIRATION,
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_SECRET_ACCESS_KEY,
)
from ..shared.errors import AppError, ValidationFailedError

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/heic")
DOCUMENT_TYPES = ("application/pdf",)
SPREADSHEET_TYPES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv",
)

# purpose -> accepted content types
UPLOAD_PURPOSES = {
    "visit-media": IMAGE_TYPES + ("video/mp4",),
    "blueprints": IMAGE_TYPES + DOCUMENT_TYPES,
    "costings": DOCUMENT_TYPES + SPREADSHEET_TYPES,
    "revision-references": IMAGE_TYPES + DOCUMENT_TYPES,
    "payment-proofs": IMAGE_TYPES + DOCUMENT_TYPES,
    "payment-qr-codes": IMAGE_TYPES,
    "fabrication-photos": IMAGE_TYPES,
}

DANGEROUS_FILENAME_CHARS = ("..", "/", "\\", "<", ">", ":", '"', "|", "?", "*")


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def validate_filename(filename: str) -> str:
    """Return the lowercase extension of a safe filename."""
    if not filename or len(filename) > 255:
        raise ValidationFailedError("Filename must be between 1 and 255 characters")
    for char in DANGEROUS_FILENAME_CHARS:
        if char in filename:
            raise ValidationFailedError(f"Invalid filename - contains '{char}'")
    if "." not in filename:
        raise ValidationFailedError("Filename must have an extension")
    return filename.rsplit(".", 1)[-1].lower()


class StorageService:
    def __init__(self, client=None, bucket: str = R2_BUCKET_NAME, expires_in: int = PRESIGNED_URL_EXPIRATION):
        self._client = client
        self.bucket = bucket
        self.expires_in = expires_in

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    @staticmethod
    def build_key(purpose: str, owner_id: int, extension: str) -> str:
        return f"{purpose}/{owner_id}/{uuid.uuid4()}.{extension}"

    def presign_upload(
        self, purpose: str, filename: str, content_type: str, owner_id: int
    ) -> dict:
        allowed = UPLOAD_PURPOSES.get(purpose)
        if allowed is None:
            raise ValidationFailedError(
                "Unknown upload purpose", details={"allowed": sorted(UPLOAD_PURPOSES)}
            )
        if content_type not in allowed:
            raise ValidationFailedError(
                f"Content type {content_type} is not accepted for {purpose}",
                details={"allowed": list(allowed)},
            )

        key = self.build_key(purpose, owner_id, validate_filename(filename))
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=self.expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ Failed to presign upload for {key}: {e}")
            raise AppError("Could not prepare the upload. Please try again.") from e

        logger.info(f"📤 Presigned upload for key: {key}")
        return {"uploadUrl": url, "key": key, "expiresIn": self.expires_in}

    def presign_download(self, key: str, filename: Optional[str] = None) -> dict:
        if not key or key.startswith("/") or ".." in key:
            raise ValidationFailedError("Invalid object key")
        if key.split("/", 1)[0] not in UPLOAD_PURPOSES:
            raise ValidationFailedError("Invalid object key")

        params = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'
        try:
            url = self.client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=self.expires_in
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"❌ Failed to presign download for {key}: {e}")
            raise AppError("Could not prepare the download. Please try again.") from e

        logger.info(f"✅ Generated presigned URL for key: {key}")
        return {"url": url, "key": key, "expiresIn": self.expires_in}
