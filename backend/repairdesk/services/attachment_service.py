# Overview: Service request attachments (uploaded files and linked URLs).

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from ..extensions import db, query_cache
from ..models import ServiceRequest, ServiceRequestAttachment, User
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    validate_payload,
)
from .service_request_service import ensure_can_access, get_request_for

ALLOWED_FILE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

ATTACHMENT_POLICY = ModelValidationPolicy(
    writable_fields={"file_name", "file_url", "file_type", "file_size", "description", "is_customer_visible"},
    required_on_create={"file_name", "file_url"},
)
ATTACHMENT_UPDATE_POLICY = ModelValidationPolicy(writable_fields={"description", "is_customer_visible"})

CACHE_PREFIXES = ("service-requests",)


def _upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def _get_attachment_or_404(request_id: int, attachment_id: int) -> ServiceRequestAttachment:
    attachment = db.session.get(ServiceRequestAttachment, attachment_id)
    if not attachment or attachment.service_request_id != request_id:
        raise NotFoundError("Attachment not found")
    return attachment


def _can_modify(attachment: ServiceRequestAttachment, actor: User) -> bool:
    if actor.role == "admin" or attachment.uploaded_by_id == actor.id:
        return True
    return actor.role == "technician" and attachment.service_request.assigned_technician_id == actor.id


def _ensure_can_upload(service_request: ServiceRequest, actor: User) -> None:
    if actor.role in ("admin", "sales"):
        return
    if actor.role == "technician" and service_request.assigned_technician_id == actor.id:
        return
    raise PermissionDeniedError("You don't have permission to upload files to this service request")


def _validate_file_size(file_size: int | None) -> None:
    if file_size is not None and file_size <= 0:
        raise ValidationError("file_size must be > 0")


def stored_file_path(relative_path: str) -> str:
    return os.path.join(_upload_root(), relative_path)


def remove_stored_file(relative_path: str | None) -> None:
    if not relative_path:
        return
    path = stored_file_path(relative_path)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        current_app.logger.warning("Could not remove attachment file %s", path)


def list_attachments(request_id: int, *, actor: User, customer_visible: bool | None = None) -> list[dict]:
    service_request = get_request_for(request_id, actor)
    rows = [a.to_dict() for a in service_request.attachments]
    if customer_visible is not None:
        rows = [r for r in rows if r["is_customer_visible"] is customer_visible]
    rows.sort(key=lambda r: (r["created_at"] or "", r["id"]), reverse=True)
    return rows


def get_attachment(request_id: int, attachment_id: int, *, actor: User) -> dict:
    get_request_for(request_id, actor)
    return _get_attachment_or_404(request_id, attachment_id).to_dict()


def create_attachment_record(request_id: int, *, payload: dict, actor: User) -> dict:
    """Attach a file that already lives elsewhere (by URL)."""
    service_request = db.session.get(ServiceRequest, request_id)
    if not service_request:
        raise NotFoundError("Service request not found")
    _ensure_can_upload(service_request, actor)

    patch = validate_payload(model=ServiceRequestAttachment, payload=payload, policy=ATTACHMENT_POLICY, partial=False)
    if not str(patch["file_url"]).lower().startswith(("http://", "https://", "/")):
        raise ValidationError("Invalid file URL")
    _validate_file_size(patch.get("file_size"))

    attachment = ServiceRequestAttachment(
        service_request_id=service_request.id,
        uploaded_by_id=actor.id,
        **patch,
    )
    db.session.add(attachment)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return attachment.to_dict()


def upload_attachment(
    request_id: int,
    *,
    file,
    actor: User,
    description: str | None = None,
    is_customer_visible: bool = False,
) -> dict:
    """
    Store an uploaded werkzeug FileStorage under
    UPLOAD_FOLDER/service-requests/<id>/<uuid>.<ext> and record it.
    The file is removed again if the database insert fails.
    """
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    if description is not None and len(description) > 500:
        raise ValidationError("description exceeds max length 500")

    content_type = (file.mimetype or "").lower()
    if content_type not in ALLOWED_FILE_TYPES:
        raise ValidationError("File type not allowed")

    limit = current_app.config.get("MAX_ATTACHMENT_BYTES", 10 * 1024 * 1024)
    data = file.read(limit + 1)
    if len(data) > limit:
        raise ValidationError("File size exceeds 10MB limit")
    if not data:
        raise ValidationError("File is empty")

    service_request = db.session.get(ServiceRequest, request_id)
    if not service_request:
        raise NotFoundError("Service request not found")
    _ensure_can_upload(service_request, actor)

    original_name = secure_filename(file.filename) or "upload"
    extension = original_name.rsplit(".", 1)[-1].lower() if "." in original_name else "bin"
    relative_path = os.path.join("service-requests", str(service_request.id), f"{uuid.uuid4()}.{extension}")
    absolute_path = stored_file_path(relative_path)
    os.makedirs(os.path.dirname(absolute_path), exist_ok=True)
    with open(absolute_path, "wb") as fh:
        fh.write(data)

    try:
        attachment = ServiceRequestAttachment(
            service_request_id=service_request.id,
            uploaded_by_id=actor.id,
            file_name=file.filename[:255],
            file_url="",
            file_type=content_type,
            file_size=len(data),
            storage_path=relative_path,
            description=description or None,
            is_customer_visible=bool(is_customer_visible),
        )
        db.session.add(attachment)
        db.session.flush()
        attachment.file_url = f"/api/service-requests/{service_request.id}/attachments/{attachment.id}/download"
        db.session.commit()
    except Exception:
        db.session.rollback()
        remove_stored_file(relative_path)
        raise

    query_cache.invalidate(*CACHE_PREFIXES)
    current_app.logger.info(
        "Stored attachment %s (%d bytes) for service request %s", relative_path, len(data), service_request.id
    )
    return attachment.to_dict()


def update_attachment(request_id: int, attachment_id: int, *, payload: dict, actor: User) -> dict:
    attachment = _get_attachment_or_404(request_id, attachment_id)
    if not _can_modify(attachment, actor):
        raise PermissionDeniedError("You don't have permission to update this attachment")
    patch = validate_payload(
        model=ServiceRequestAttachment, payload=payload, policy=ATTACHMENT_UPDATE_POLICY, partial=True
    )
    for k, v in patch.items():
        setattr(attachment, k, v)
    db.session.commit()
    query_cache.invalidate(*CACHE_PREFIXES)
    return attachment.to_dict()


def delete_attachment(request_id: int, attachment_id: int, *, actor: User) -> None:
    attachment = _get_attachment_or_404(request_id, attachment_id)
    if not _can_modify(attachment, actor):
        raise PermissionDeniedError("You don't have permission to delete this attachment")
    relative_path = attachment.storage_path
    db.session.delete(attachment)
    db.session.commit()
    remove_stored_file(relative_path)
    query_cache.invalidate(*CACHE_PREFIXES)


def attachment_download_path(request_id: int, attachment_id: int, *, actor: User) -> tuple[str, ServiceRequestAttachment]:
    attachment = _get_attachment_or_404(request_id, attachment_id)
    ensure_can_access(attachment.service_request, actor)
    if not attachment.storage_path:
        raise NotFoundError("Attachment has no stored file")
    return attachment.storage_path, attachment
