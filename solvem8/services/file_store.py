"""Storage for uploaded originals and rendered PDFs.

S3 when AWS_S3_BUCKET is configured, otherwise a local directory served by
the /files route.
"""
from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Optional, Tuple

from flask import current_app

from solvem8.errors import FileStoreError

try:
    import boto3
except Exception:
    boto3 = None

logger = logging.getLogger(__name__)

ASSIGNMENTS_FOLDER = "assignments"
OUTPUTS_FOLDER = "outputs"

_KEY_RE = re.compile(r"^[a-z]+/[a-f0-9]{32}\.[a-z0-9]{1,5}$")


def aws_ready() -> Tuple[bool, str]:
    if boto3 is None:
        return False, "boto3 not installed"
    if not (current_app.config.get("AWS_S3_BUCKET") or "").strip():
        return False, "AWS_S3_BUCKET is missing"
    return True, ""


def new_key(folder: str, filename: str) -> str:
    ext = os.path.splitext((filename or "").strip())[1].lower().lstrip(".")
    if not re.fullmatch(r"[a-z0-9]{1,5}", ext or ""):
        ext = "bin"
    return f"{folder}/{uuid.uuid4().hex}.{ext}"


def local_path(key: str) -> Optional[str]:
    """Filesystem path for a locally stored key, or None for anything that
    does not look like a key we issued."""
    if not _KEY_RE.match(key or ""):
        return None
    return os.path.join(current_app.config["UPLOAD_DIR"], *key.split("/"))


def save_file(data: bytes, folder: str, filename: str, content_type: Optional[str] = None) -> str:
    """Store data and return the URL it can be fetched from."""
    key = new_key(folder, filename)
    ok, _ = aws_ready()
    if ok:
        bucket = current_app.config["AWS_S3_BUCKET"].strip()
        region = current_app.config.get("AWS_REGION") or "ap-south-1"
        try:
            s3 = boto3.client("s3", region_name=region)
            s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except Exception as e:
            raise FileStoreError(f"S3 upload failed: {type(e).__name__}: {e}") from e
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"

    path = local_path(key)
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise FileStoreError(f"Local write failed: {e}") from e
    logger.debug("Stored %d bytes at %s", len(data), path)
    return f"/files/{key}"
