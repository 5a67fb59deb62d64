"""Object-store key and bucket helpers."""
from typing import Optional
from urllib.parse import urlparse


def resolve_bucket_name(bucket: str) -> str:
    """
    Reduce an S3 bucket ARN to its plain name.

    Args:
        bucket: Either a bucket name or an ARN like ``arn:aws:s3:::name``

    Returns:
        The bucket name
    """
    if bucket.startswith("arn:"):
        parts = bucket.split(":::")
        if len(parts) > 1 and parts[1]:
            return parts[1]
    return bucket


def derive_object_key(file_location: Optional[str], file_name: Optional[str]) -> str:
    """
    Work out the object key of a finished recording.

    ``s3://bucket/a/b.mp4`` yields ``a/b.mp4``; a virtual-hosted S3 URL yields
    its path without the leading slash; otherwise the file name is used as-is.

    Returns:
        The object key, or an empty string when none can be derived
    """
    if file_location and file_location.startswith("s3://"):
        without_scheme = file_location[len("s3://"):]
        parts = without_scheme.split("/")
        return "/".join(parts[1:])

    if file_location and "amazonaws.com/" in file_location:
        parsed = urlparse(file_location)
        return parsed.path.lstrip("/")

    return file_name or ""


def session_prefix(session_id: str) -> str:
    """Canonical object-store prefix for every artifact of a session."""
    return f"sessions/{session_id}"
