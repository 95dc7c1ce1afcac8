"""Document review workflow: pending -> approved | rejected, both terminal.

A resubmission is a new Document. Review writes status, reviewer and
reviewed_at in one conditional UPDATE guarded by status = 'pending'.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import rbac
from app.auth.models import User
from app.auth.rbac import Action
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.email import dispatch_notification, notify_document_reviewed
from app.core.enums import DocumentAppliesTo, ReviewDecision, ReviewStatus
from app.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from app.core.models import Document, DocumentType
from app.core.storage import ArtifactStorage

from app.api.v1.users import service as user_service

from .schemas import (
    DocumentResponse,
    DocumentTypeCreate,
    DocumentTypeResponse,
    DocumentTypeUpdate,
)

logger = logging.getLogger(__name__)

# mime type -> stored file suffix
ALLOWED_MIME_TYPES = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
}


def _to_response(document: Document) -> DocumentResponse:
    return DocumentResponse.model_validate(document)


def _validate_file(size: int, mime_type: str) -> None:
    if size < 0:
        raise ValidationError("File size cannot be negative")
    if size > settings.max_upload_bytes:
        raise ValidationError(f"File exceeds the maximum size of {settings.max_upload_bytes} bytes")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError("File type not allowed; use PDF, JPEG or PNG")


def _applies_to_role(document_type: DocumentType, role: str) -> bool:
    return document_type.applies_to in (DocumentAppliesTo.BOTH.value, role)


async def _get_live_document_type(db: AsyncSession, document_type_id: UUID) -> DocumentType:
    result = await db.execute(
        select(DocumentType).where(DocumentType.id == document_type_id, DocumentType.deleted_at.is_(None))
    )
    document_type = result.scalar_one_or_none()
    if not document_type:
        raise NotFoundError("Document type not found")
    return document_type


async def _get_document(db: AsyncSession, document_id: UUID) -> Document:
    result = await db.execute(select(Document).where(Document.id == document_id, Document.deleted_at.is_(None)))
    document = result.scalar_one_or_none()
    if not document:
        raise NotFoundError("Document not found")
    return document


async def submit_document(
    db: AsyncSession,
    actor: CurrentUser,
    owner_id: UUID,
    document_type_id: UUID,
    storage_ref: str,
    size: int,
    mime_type: str,
    file_name: Optional[str] = None,
) -> DocumentResponse:
    """Record an uploaded artifact as a pending document of owner_id."""
    rbac.authorize(actor, Action.DOCUMENT_SUBMIT, owner_id=owner_id)
    _validate_file(size, mime_type)
    owner = await user_service.get_live_user(db, owner_id)
    document_type = await _get_live_document_type(db, document_type_id)
    if not _applies_to_role(document_type, owner.role):
        raise ValidationError(f"Document type '{document_type.name}' does not apply to {owner.role}s")

    document = Document(
        user_id=owner.id,
        document_type_id=document_type.id,
        storage_ref=storage_ref,
        file_name=file_name,
        size=size,
        mime_type=mime_type,
        status=ReviewStatus.PENDING.value,
    )
    db.add(document)
    await db.commit()
    await db.refresh(document)
    logger.info("Document %s submitted by %s (type %s)", document.id, owner.id, document_type.id)
    return _to_response(document)


async def upload_document(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    owner_id: UUID,
    document_type_id: UUID,
    data: bytes,
    mime_type: str,
    file_name: Optional[str] = None,
) -> DocumentResponse:
    """Validate, stage the bytes, submit, then promote the staged file.

    Nothing is written for an invalid upload. If the submit fails the staged
    file stays under temp/ until the cleanup job removes it.
    """
    rbac.authorize(actor, Action.DOCUMENT_SUBMIT, owner_id=owner_id)
    _validate_file(len(data), mime_type)
    await _get_live_document_type(db, document_type_id)
    staged_ref = await storage.put_temp(data, ALLOWED_MIME_TYPES[mime_type])
    document = await submit_document(
        db,
        actor,
        owner_id,
        document_type_id,
        storage_ref=storage.promoted_ref(staged_ref),
        size=len(data),
        mime_type=mime_type,
        file_name=file_name,
    )
    await storage.promote(staged_ref)
    return document


async def review_document(
    db: AsyncSession,
    actor: CurrentUser,
    document_id: UUID,
    decision: ReviewDecision,
    notes: Optional[str] = None,
) -> DocumentResponse:
    """Approve or reject a pending document. Admin only; a rejection needs notes."""
    rbac.authorize(actor, Action.DOCUMENT_REVIEW)
    document = await _get_document(db, document_id)
    current_status = document.status
    if current_status != ReviewStatus.PENDING.value:
        raise InvalidTransitionError(f"Document was already reviewed ({current_status})")
    if decision is ReviewDecision.REJECTED and not (notes and notes.strip()):
        raise ValidationError("A rejection reason is required")

    owner = await db.get(User, document.user_id)
    document_type = await db.get(DocumentType, document.document_type_id)

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Document)
        .where(
            Document.id == document.id,
            Document.status == ReviewStatus.PENDING.value,
            Document.deleted_at.is_(None),
        )
        .values(
            status=decision.value,
            reviewed_by=actor.id,
            reviewed_at=now,
            notes=notes,
            updated_at=now,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError(f"Document was already reviewed ({current_status})")
    await db.commit()
    await db.refresh(document)
    logger.info("Document %s %s by %s", document.id, decision.value, actor.id)

    if owner:
        dispatch_notification(
            notify_document_reviewed(
                to_email=owner.email,
                user_name=owner.name,
                document_type_name=document_type.name if document_type else "document",
                decision=decision.value,
                notes=notes,
            ),
            name=f"document-reviewed-{document.id}",
        )
    return _to_response(document)


async def find_required_outstanding(db: AsyncSession, user_id: UUID) -> List[DocumentTypeResponse]:
    """Required document types for the user's role with no approved document yet."""
    user = await user_service.get_live_user(db, user_id)
    approved = (
        select(Document.document_type_id)
        .where(
            Document.user_id == user.id,
            Document.status == ReviewStatus.APPROVED.value,
            Document.deleted_at.is_(None),
        )
    )
    result = await db.execute(
        select(DocumentType)
        .where(
            DocumentType.deleted_at.is_(None),
            DocumentType.required.is_(True),
            DocumentType.applies_to.in_((user.role, DocumentAppliesTo.BOTH.value)),
            DocumentType.id.not_in(approved),
        )
        .order_by(DocumentType.name)
    )
    return [DocumentTypeResponse.model_validate(t) for t in result.scalars().all()]


async def list_documents(
    db: AsyncSession,
    actor: CurrentUser,
    user_id: Optional[UUID] = None,
    status: Optional[ReviewStatus] = None,
) -> List[DocumentResponse]:
    rbac.authorize(actor, Action.DOCUMENT_READ)
    scope = rbac.owner_scope(actor)
    stmt = select(Document).where(Document.deleted_at.is_(None))
    if scope is not None:
        stmt = stmt.where(Document.user_id == scope)
    elif user_id is not None:
        stmt = stmt.where(Document.user_id == user_id)
    if status is not None:
        stmt = stmt.where(Document.status == status.value)
    result = await db.execute(stmt.order_by(Document.created_at.desc()))
    return [_to_response(d) for d in result.scalars().all()]


async def get_document_file(
    db: AsyncSession,
    storage: ArtifactStorage,
    actor: CurrentUser,
    document_id: UUID,
) -> Tuple[bytes, str, Optional[str]]:
    """(bytes, mime_type, file_name) of a document the actor may read."""
    document = await _get_document(db, document_id)
    rbac.authorize(actor, Action.DOCUMENT_READ, owner_id=document.user_id)
    data = await storage.get(document.storage_ref)
    return data, document.mime_type, document.file_name


async def delete_document(db: AsyncSession, actor: CurrentUser, document_id: UUID) -> None:
    """Owners may withdraw a document while it is still pending."""
    document = await _get_document(db, document_id)
    rbac.authorize(actor, Action.DOCUMENT_DELETE, owner_id=document.user_id)
    if document.status != ReviewStatus.PENDING.value:
        raise InvalidTransitionError("Only pending documents can be deleted")
    document.deleted_at = datetime.now(timezone.utc)
    await db.commit()


# ----- Document types -----
async def create_document_type(
    db: AsyncSession,
    actor: CurrentUser,
    payload: DocumentTypeCreate,
) -> DocumentTypeResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    document_type = DocumentType(
        name=payload.name.strip(),
        description=payload.description,
        applies_to=payload.applies_to.value,
        required=payload.required,
    )
    db.add(document_type)
    await db.commit()
    await db.refresh(document_type)
    return DocumentTypeResponse.model_validate(document_type)


async def list_document_types(
    db: AsyncSession,
    applies_to: Optional[DocumentAppliesTo] = None,
) -> List[DocumentTypeResponse]:
    stmt = select(DocumentType).where(DocumentType.deleted_at.is_(None))
    if applies_to is not None:
        stmt = stmt.where(DocumentType.applies_to.in_((applies_to.value, DocumentAppliesTo.BOTH.value)))
    result = await db.execute(stmt.order_by(DocumentType.name))
    return [DocumentTypeResponse.model_validate(t) for t in result.scalars().all()]


async def update_document_type(
    db: AsyncSession,
    actor: CurrentUser,
    document_type_id: UUID,
    payload: DocumentTypeUpdate,
) -> DocumentTypeResponse:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    document_type = await _get_live_document_type(db, document_type_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("applies_to") is not None:
        data["applies_to"] = data["applies_to"].value
    for key, value in data.items():
        setattr(document_type, key, value)
    await db.commit()
    await db.refresh(document_type)
    return DocumentTypeResponse.model_validate(document_type)


async def delete_document_type(db: AsyncSession, actor: CurrentUser, document_type_id: UUID) -> None:
    rbac.authorize(actor, Action.CATALOG_MANAGE)
    document_type = await _get_live_document_type(db, document_type_id)
    document_type.deleted_at = datetime.now(timezone.utc)
    await db.commit()
