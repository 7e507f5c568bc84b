from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from minio.error import S3Error
from sqlmodel import Session, select

from ..auth import AccessContext, require_user
from ..db import get_session
from ..errors import ForbiddenError, NotFoundError
from ..models import FileUpload
from ..storage import get_bytes, put_bytes, upload_key

router = APIRouter()

MB = 1024 * 1024
UPLOAD_RULES = {
    "pitch_deck": (("application/pdf",), 25 * MB),
    "logo": (("image/png", "image/jpeg", "image/gif", "image/webp", "image/svg+xml"), 2 * MB),
    "profile_photo": (("image/png", "image/jpeg", "image/gif", "image/webp"), 2 * MB),
}


def _serialize_upload(upload: FileUpload):
    return {
        "id": upload.id,
        "original_name": upload.original_name,
        "mime_type": upload.mime_type,
        "size": upload.size,
        "url": upload.url,
        "type": upload.type,
        "created_at": upload.created_at,
    }


@router.post("", status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    type: str = Form(...),
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    if type not in UPLOAD_RULES:
        raise HTTPException(400, "upload type must be pitch_deck, logo or profile_photo")
    allowed, max_size = UPLOAD_RULES[type]
    mime_type = file.content_type or "application/octet-stream"
    if mime_type not in allowed:
        raise HTTPException(400, f"{type} must be one of: {', '.join(allowed)}")
    data = await file.read()
    if not data:
        raise HTTPException(400, "file is empty")
    if len(data) > max_size:
        raise HTTPException(413, f"{type} exceeds {max_size // MB} MB")
    upload = FileUpload(
        user_id=ctx.user_id,
        filename="pending",
        original_name=file.filename or type,
        mime_type=mime_type,
        size=len(data),
        url="pending",
        type=type,
    )
    session.add(upload)
    session.flush()
    upload.filename = upload_key(ctx.user_id, type, upload.id, upload.original_name)
    upload.url = f"/api/uploads/{upload.id}/file"
    put_bytes(upload.filename, data, content_type=mime_type)
    session.add(upload)
    session.commit()
    session.refresh(upload)
    return _serialize_upload(upload)


@router.get("")
def list_uploads(ctx: AccessContext = Depends(require_user), session: Session = Depends(get_session)):
    uploads = session.exec(
        select(FileUpload).where(FileUpload.user_id == ctx.user_id).order_by(FileUpload.created_at.desc())
    ).all()
    return [_serialize_upload(u) for u in uploads]


@router.get("/{upload_id}/file")
def get_upload_file(
    upload_id: int,
    ctx: AccessContext = Depends(require_user),
    session: Session = Depends(get_session),
):
    upload = session.get(FileUpload, upload_id)
    if not upload:
        raise NotFoundError("file not found")
    if upload.user_id != ctx.user_id and not ctx.is_admin:
        raise ForbiddenError("file belongs to another user")
    try:
        data = get_bytes(upload.filename)
    except S3Error:
        raise HTTPException(404, "file content missing")
    return Response(content=data, media_type=upload.mime_type)
