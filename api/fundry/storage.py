"""MinIO object store for founder uploads and executed SAFE agreements.

Keys are namespaced by owner so a listing of one user's prefix never
surfaces another user's documents:

    uploads/{user_id}/{upload_type}/{upload_id}-{name}
    agreements/{investor_id}/{agreement_id}.pdf
"""

import io
import logging
import posixpath

from minio import Minio
from minio.error import S3Error

from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE

logger = logging.getLogger(__name__)

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=MINIO_SECURE,
)
_bucket_ready = False


def _ensure_bucket():
    global _bucket_ready
    if _bucket_ready:
        return
    if not _client.bucket_exists(MINIO_BUCKET):
        logger.info("creating bucket %s", MINIO_BUCKET)
        _client.make_bucket(MINIO_BUCKET)
    _bucket_ready = True


def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
    _ensure_bucket()
    _client.put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)


def get_bytes(key: str) -> bytes:
    resp = _client.get_object(MINIO_BUCKET, key)
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()


def upload_key(user_id: int, upload_type: str, upload_id: int, original_name: str) -> str:
    # client file names may carry directories
    name = posixpath.basename((original_name or "").replace("\\", "/")) or upload_type
    return f"uploads/{user_id}/{upload_type}/{upload_id}-{name}"


def agreement_key(investor_id: int, agreement_id: str) -> str:
    return f"agreements/{investor_id}/{agreement_id}.pdf"


def archive_agreement(investor_id: int, agreement_id: str, pdf: bytes) -> str:
    key = agreement_key(investor_id, agreement_id)
    put_bytes(key, pdf, content_type="application/pdf")
    logger.info("archived agreement %s (%d bytes)", agreement_id, len(pdf))
    return key


def load_agreement(key: str):
    """Archived PDF bytes, or None when the object is gone."""
    try:
        return get_bytes(key)
    except S3Error as exc:
        logger.warning("archived agreement %s unavailable: %s", key, exc.code)
        return None
