"""
Attachment store — files uploaded against a request.

Files land in ``UPLOAD_FOLDER/<request_id>/`` under a sanitised,
UUID-prefixed name; the row keeps the original filename for display.
"""

import logging
import os
import uuid

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from approvals.core.exceptions import DependencyError, ForbiddenError, NotFoundError, ValidationError
from approvals.models import db
from approvals.models.request import Attachment, Request

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def list_for(request_id: int) -> list[Attachment]:
    return list(
        db.session.execute(
            db.select(Attachment)
            .where(Attachment.request_id == request_id)
            .order_by(Attachment.created_at.asc(), Attachment.id.asc())
        ).scalars()
    )


def store(request_id: int, file_storage, uploader) -> Attachment:
    """Persist an uploaded ``werkzeug.FileStorage`` for a request.

    Only the requester may attach files to their own request.
    """
    req = db.session.get(Request, request_id)
    if req is None:
        raise NotFoundError("Request", request_id)
    if uploader is None or req.requester_id != uploader.id:
        raise ForbiddenError(getattr(uploader, "id", None), "attach", request_id)

    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file selected", details={"file": "required"})

    original = file_storage.filename
    safe_name = secure_filename(original) or "file"
    stored_name = f"{uuid.uuid4().hex}_{safe_name}"

    content = file_storage.read()
    if not content:
        raise ValidationError("Uploaded file is empty", details={"file": "empty"})

    upload_dir = os.path.join(current_app.config["UPLOAD_FOLDER"], str(request_id))
    os.makedirs(upload_dir, exist_ok=True)
    path = os.path.join(upload_dir, stored_name)
    with open(path, "wb") as fh:
        fh.write(content)

    attachment = Attachment(
        request_id=request_id,
        filename=stored_name,
        original_filename=original,
        mime_type=file_storage.mimetype or DEFAULT_MIME_TYPE,
        size=len(content),
        path=path,
    )
    try:
        db.session.add(attachment)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        os.remove(path)
        logger.error("Attachment insert failed for request %s: %s", request_id, exc)
        raise DependencyError("attach", exc) from exc

    logger.info("Attachment %s stored for request %s (%d bytes)", attachment.id, request_id, attachment.size)
    return attachment
