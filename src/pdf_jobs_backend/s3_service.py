"""
S3 service module for mirroring job outputs and generating presigned URLs.

This module provides functionality for:
- Uploading a completed job's output artifact to S3
- Generating presigned URLs for secure, time-limited downloads

The S3 bucket name is configured via the S3_BUCKET_NAME environment variable.
When running locally without a bucket or AWS credentials, S3 operations are
skipped gracefully and outputs are served from local storage.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# S3 bucket name from environment variable
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME", "")

# S3 client (lazy initialization)
_s3_client = None


def _get_s3_client():
    """
    Get or create the S3 client.

    Returns:
        boto3 S3 client or None if bucket is not configured

    Note:
        Credentials are not checked here; credential errors surface during the
        actual upload and are handled there.
    """
    global _s3_client
    if _s3_client is None:
        if not S3_BUCKET_NAME:
            logger.debug("S3_BUCKET_NAME not configured")
            return None
        try:
            _s3_client = boto3.client("s3")
        except (BotoCoreError, ValueError) as e:
            logger.warning(f"Failed to create S3 client: {e}")
            _s3_client = None
    return _s3_client


def output_key(job_id: str, filename: str) -> str:
    return f"outputs/{job_id}/{filename}"


def upload_to_s3(path: Path, s3_key: str) -> bool:
    """
    Upload a local file to S3.

    Args:
        path: Path to the local file
        s3_key: S3 object key (path within the bucket)

    Returns:
        True if upload was successful, False otherwise
    """
    if not S3_BUCKET_NAME:
        logger.debug("S3_BUCKET_NAME not configured, skipping upload")
        return False

    client = _get_s3_client()
    if client is None:
        logger.warning("S3 client not available, skipping upload")
        return False

    try:
        logger.info(f"Uploading {path} to s3://{S3_BUCKET_NAME}/{s3_key}")
        client.upload_file(str(path), S3_BUCKET_NAME, s3_key)
        logger.info(f"Upload successful: s3://{S3_BUCKET_NAME}/{s3_key}")
        return True
    except (Boto3Error, BotoCoreError, ClientError) as e:
        logger.error(f"S3 upload failed: {e}")
        return False


def publish_output(job_id: str, path: Path) -> Optional[str]:
    """
    Mirror a job's output to S3.

    Returns:
        The S3 key on success, None when S3 is not configured or the upload failed
    """
    key = output_key(job_id, path.name)
    return key if upload_to_s3(path, key) else None


def generate_presigned_url(s3_key: str, expiration: int = 3600) -> Optional[str]:
    """
    Generate a presigned URL for downloading a file from S3.

    Args:
        s3_key: S3 object key (path within the bucket)
        expiration: URL expiration time in seconds (default: 3600 = 1 hour)

    Returns:
        Presigned URL string, or None if generation fails
    """
    if not S3_BUCKET_NAME:
        logger.debug("S3_BUCKET_NAME not configured")
        return None

    client = _get_s3_client()
    if client is None:
        logger.warning("S3 client not available")
        return None

    try:
        url = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": S3_BUCKET_NAME, "Key": s3_key},
            ExpiresIn=expiration,
        )
        logger.info(f"Generated presigned URL for {s3_key} (expires in {expiration}s)")
        return url
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to generate presigned URL: {e}")
        return None


def is_s3_configured() -> bool:
    """
    Check if S3 is properly configured and accessible.

    Returns:
        True if S3 bucket is configured and a client could be created
    """
    return bool(S3_BUCKET_NAME) and _get_s3_client() is not None
