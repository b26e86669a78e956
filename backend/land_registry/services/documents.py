"""Document upload and verification"""
import hashlib
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional

import aiofiles
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.config import settings
from land_registry.exceptions import FileValidationError, InvalidTransitionError, NotFoundError, ValidationError
from land_registry.models.document import Document, DocumentStatus, DocumentType
from land_registry.models.property import Property, PropertyStatus
from land_registry.models.user import User
from land_registry.services import workflow
from land_registry.services.fees import calculate_registration_fee
from land_registry.services.notifications import NotificationService
from land_registry.services.timeline import record_action
from land_registry.services.workflow import WorkflowEvent

logger = logging.getLogger(__name__)


MIME_MAP = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def validate_upload(filename: Optional[str], content_type: Optional[str], file_size: int) -> None:
    """Validate uploaded file size, extension and MIME type.

    Runs before anything is stored. Raises FileValidationError with the
    specific reason.
    """
    if file_size <= 0:
        raise FileValidationError(
            message="File is empty",
            code="EMPTY_FILE",
            status_code=422,
        )

    if file_size > settings.max_upload_size_bytes:
        max_mb = settings.MAX_UPLOAD_SIZE_MB
        raise FileValidationError(
            message=f"File too large. Maximum size is {max_mb}MB",
            code="FILE_TOO_LARGE",
            status_code=413,
            details={"file_size": file_size, "max_size": settings.max_upload_size_bytes},
        )

    file_ext = os.path.splitext(filename or "")[1].lower()
    if file_ext not in settings.allowed_extensions_list:
        allowed = ", ".join(settings.allowed_extensions_list)
        raise FileValidationError(
            message=f"File type not allowed. Allowed extensions: {allowed}",
            details={"extension": file_ext},
        )

    content_type = (content_type or "").lower()
    if content_type and content_type != "application/octet-stream" \
            and content_type not in settings.allowed_mimetypes_list:
        allowed = ", ".join(settings.allowed_mimetypes_list)
        raise FileValidationError(
            message=f"MIME type not allowed. Allowed types: {allowed}",
            details={"content_type": content_type},
        )


def detect_mime_type(file_ext: str, content_type: Optional[str]) -> str:
    """Detect MIME type from extension or content type"""
    if file_ext and file_ext.lower() in MIME_MAP:
        return MIME_MAP[file_ext.lower()]

    if content_type and content_type in settings.allowed_mimetypes_list:
        return content_type

    return "application/octet-stream"


def default_document_name(document_type: DocumentType) -> str:
    return document_type.value.replace("_", " ").title()


async def store_file(property_id: int, filename: str, content: bytes) -> Dict[str, str]:
    """Write file content under STORAGE_PATH and return path and hash"""
    file_hash = hashlib.sha256(content).hexdigest()

    storage_dir = os.path.join(settings.STORAGE_PATH, "documents", str(property_id))
    os.makedirs(storage_dir, exist_ok=True)

    file_ext = os.path.splitext(filename)[1].lower()
    stored_name = f"{file_hash[:16]}{file_ext}"
    file_path = os.path.join(storage_dir, stored_name)

    async with aiofiles.open(file_path, "wb") as f:
        await f.write(content)

    return {"file_path": file_path, "file_hash": file_hash}


class DocumentService:
    """Document operations for one database session"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)

    async def list_for_property(self, property_id: int) -> List[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.property_id == property_id)
            .order_by(Document.upload_date.desc(), Document.id.desc())
        )
        return list(result.scalars().all())

    async def get(self, document_id: int) -> Document:
        result = await self.db.execute(select(Document).where(Document.id == document_id))
        document = result.scalar_one_or_none()
        if not document:
            raise NotFoundError(message="Document not found")
        return document

    async def _slot_statuses(self, property_id: int) -> Dict[DocumentType, DocumentStatus]:
        result = await self.db.execute(
            select(Document.document_type, Document.status).where(Document.property_id == property_id)
        )
        statuses: Dict[DocumentType, DocumentStatus] = {}
        for doc_type, status in result.all():
            # Any rejected copy in a slot wins over a verified one
            if statuses.get(doc_type) != DocumentStatus.REJECTED:
                statuses[doc_type] = status
        return statuses

    async def _find_slot(self, property_id: int, document_type: DocumentType) -> Optional[Document]:
        if document_type == DocumentType.OTHER:
            return None
        result = await self.db.execute(
            select(Document).where(
                Document.property_id == property_id,
                Document.document_type == document_type,
            )
        )
        return result.scalars().first()

    async def upload(
        self,
        property_obj: Property,
        owner: User,
        document_type: DocumentType,
        filename: str,
        content_type: Optional[str],
        content: bytes,
        document_name: Optional[str] = None,
    ) -> Document:
        """Store a document in its slot, replacing any previous copy"""
        validate_upload(filename, content_type, len(content))

        existing = await self._find_slot(property_obj.id, document_type)
        slot_status = existing.status if existing else None
        if not workflow.can_upload_document(property_obj.status, slot_status):
            raise InvalidTransitionError(
                property_obj.status.value, "document_upload",
                "Documents cannot be uploaded in the property's current status",
            )

        stored = await store_file(property_obj.id, filename, content)
        file_ext = os.path.splitext(filename)[1]
        mime_type = detect_mime_type(file_ext, content_type)

        if existing:
            previous_path = existing.file_path
            existing.file_name = filename
            existing.file_path = stored["file_path"]
            existing.file_hash = stored["file_hash"]
            existing.file_size = len(content)
            existing.mime_type = mime_type
            existing.document_name = document_name or existing.document_name
            existing.status = DocumentStatus.PENDING
            existing.verification_notes = None
            existing.verified_by = None
            existing.verified_at = None
            existing.upload_date = datetime.utcnow()
            document = existing
            if previous_path != stored["file_path"] and os.path.exists(previous_path):
                os.remove(previous_path)
            action = "document_reuploaded"
        else:
            document = Document(
                property_id=property_obj.id,
                owner_id=owner.id,
                document_type=document_type,
                document_name=document_name or default_document_name(document_type),
                file_name=filename,
                file_path=stored["file_path"],
                file_hash=stored["file_hash"],
                file_size=len(content),
                mime_type=mime_type,
                status=DocumentStatus.PENDING,
            )
            self.db.add(document)
            action = "document_uploaded"

        await self.db.flush()

        previous = property_obj.status
        if workflow.tracks_document_events(property_obj.status):
            property_obj.status = workflow.next_status(
                property_obj.status,
                WorkflowEvent.DOCUMENTS_SUBMITTED,
                documents=await self._slot_statuses(property_obj.id),
            )
        property_obj.documents_validated = False
        property_obj.last_updated = datetime.utcnow()

        record_action(
            self.db, "document_uploaded", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=owner,
            previous_status=previous,
            notes=f"{document.document_name} uploaded",
            metadata={"document_id": document.id, "document_type": document_type.value, "kind": action},
        )
        logger.info(f"Document {document.id} ({document_type.value}) stored for property {property_obj.id}")
        return document

    async def delete(self, document: Document, property_obj: Property, actor: User) -> None:
        if not workflow.can_edit(property_obj.status):
            raise InvalidTransitionError(
                property_obj.status.value, "document_delete",
                "Documents cannot be deleted in the property's current status",
            )
        if os.path.exists(document.file_path):
            os.remove(document.file_path)
        await self.db.delete(document)
        property_obj.documents_validated = False
        property_obj.last_updated = datetime.utcnow()
        record_action(
            self.db, "document_deleted", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=actor,
            notes=f"{document.document_name} deleted",
            metadata={"document_id": document.id},
        )

    async def _load_property(self, property_id: int) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        property_obj = result.scalar_one_or_none()
        if not property_obj:
            raise NotFoundError(message="Property not found")
        return property_obj

    async def review(
        self,
        document: Document,
        officer: User,
        decision: DocumentStatus,
        notes: Optional[str] = None,
    ) -> Document:
        """Apply a land officer decision to a document"""
        if decision == DocumentStatus.PENDING:
            raise ValidationError(message="A review decision must be verified, rejected or needs_update")
        if decision in (DocumentStatus.REJECTED, DocumentStatus.NEEDS_UPDATE) and not (notes and notes.strip()):
            raise ValidationError(message="Notes are required when rejecting a document")

        property_obj = await self._load_property(document.property_id)
        if not workflow.can_review_documents(property_obj.status):
            raise InvalidTransitionError(
                property_obj.status.value, f"document_{decision.value}",
                "Documents can no longer be reviewed for this property",
            )

        document.status = decision
        document.verification_notes = notes
        document.verified_by = officer.id
        document.verified_at = datetime.utcnow()
        await self.db.flush()

        previous = property_obj.status
        if decision == DocumentStatus.VERIFIED:
            action = "document_verified"
            event = WorkflowEvent.DOCUMENT_VERIFIED
        elif decision == DocumentStatus.REJECTED:
            action = "document_rejected"
            event = WorkflowEvent.DOCUMENT_REJECTED
        else:
            action = "document_update_requested"
            event = WorkflowEvent.DOCUMENT_REJECTED

        if workflow.tracks_document_events(property_obj.status):
            slots = await self._slot_statuses(property_obj.id)
            property_obj.status = workflow.next_status(
                property_obj.status, event,
                documents=slots, payment_completed=property_obj.payment_completed,
            )
        property_obj.last_updated = datetime.utcnow()

        record_action(
            self.db, action, document.status.value,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=officer,
            previous_status=previous,
            notes=notes or f"{document.document_name} {decision.value}",
            metadata={"document_id": document.id, "document_type": document.document_type.value},
        )

        if decision != DocumentStatus.VERIFIED:
            await self.notifications.document_rejected(property_obj, document.document_name, notes)
        elif (
            property_obj.status in (PropertyStatus.DOCUMENTS_VALIDATED, PropertyStatus.PAYMENT_COMPLETED)
            and not property_obj.documents_validated
        ):
            await self._mark_validated(property_obj, previous)

        logger.info(f"Document {document.id} {decision.value} by officer {officer.id}")
        return document

    async def _mark_validated(self, property_obj: Property, previous: PropertyStatus) -> None:
        property_obj.documents_validated = True
        paid = property_obj.payment_completed
        record_action(
            self.db, "all_documents_validated", property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id,
            previous_status=previous,
            notes=(
                "All required documents verified; registration fee already paid" if paid
                else "All required documents verified; registration payment is now due"
            ),
        )
        if paid:
            await self.notifications.property_ready_for_approval(property_obj)
            return
        fee = calculate_registration_fee(property_obj.property_type.value, property_obj.area, property_obj.sub_city)
        await self.notifications.payment_required(property_obj, fee.total_amount, fee.currency)
