"""Property registration service"""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.exceptions import AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from land_registry.models.application_log import ApplicationLog
from land_registry.models.dispute import Dispute
from land_registry.models.document import Document, DocumentStatus, DocumentType
from land_registry.models.payment import Payment, PaymentStatus
from land_registry.models.property import Property, PropertyStatus, PropertyType
from land_registry.models.user import User
from land_registry.services import workflow
from land_registry.services.notifications import NotificationService
from land_registry.services.payment_gateway import SimulatedPaymentGateway, get_payment_gateway
from land_registry.services.payments import PaymentService
from land_registry.services.timeline import record_action
from land_registry.services.workflow import WorkflowEvent

logger = logging.getLogger(__name__)


# Statuses an officer still has to act on
OFFICER_QUEUE_STATUSES = (
    PropertyStatus.PENDING,
    PropertyStatus.DOCUMENTS_PENDING,
    PropertyStatus.PAYMENT_COMPLETED,
    PropertyStatus.UNDER_REVIEW,
)

EDITABLE_FIELDS = (
    "plot_number", "property_type", "area", "sub_city", "kebele",
    "street", "house_number", "latitude", "longitude",
)


class PropertyService:
    """Registration application operations for one database session"""

    def __init__(self, db: AsyncSession, gateway: Optional[SimulatedPaymentGateway] = None):
        self.db = db
        self.gateway = gateway
        self.notifications = NotificationService(db)

    async def get(self, property_id: int) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        property_obj = result.scalar_one_or_none()
        if not property_obj:
            raise NotFoundError(message="Property not found")
        return property_obj

    async def get_for_user(self, property_id: int, user: User) -> Property:
        """Owners see their own properties; officers see all"""
        property_obj = await self.get(property_id)
        if property_obj.owner_id != user.id and not user.is_officer:
            raise AuthorizationError(message="Not authorized to access this property")
        return property_obj

    async def get_owned(self, property_id: int, user: User) -> Property:
        property_obj = await self.get(property_id)
        if property_obj.owner_id != user.id:
            raise AuthorizationError(message="Only the property owner can perform this action")
        return property_obj

    async def _ensure_unique_plot(self, plot_number: str, exclude_id: Optional[int] = None) -> None:
        query = select(Property.id).where(Property.plot_number == plot_number)
        if exclude_id is not None:
            query = query.where(Property.id != exclude_id)
        if (await self.db.execute(query)).first():
            raise ConflictError(
                message="A property with this plot number is already registered",
                details={"plot_number": plot_number},
            )

    async def create(self, owner: User, **fields) -> Property:
        if fields.get("area") is None or fields["area"] <= 0:
            raise ValidationError(message="Area must be greater than zero")
        await self._ensure_unique_plot(fields["plot_number"])

        property_obj = Property(owner_id=owner.id, status=PropertyStatus.PENDING, **fields)
        self.db.add(property_obj)
        await self.db.flush()

        record_action(
            self.db, "application_submitted", PropertyStatus.PENDING,
            property_id=property_obj.id, owner_id=owner.id, actor=owner,
            notes=f"Property {property_obj.plot_number} registered",
        )
        logger.info(f"Property {property_obj.id} ({property_obj.plot_number}) registered by user {owner.id}")
        return property_obj

    async def list_for_owner(self, owner_id: int) -> List[Property]:
        result = await self.db.execute(
            select(Property).where(Property.owner_id == owner_id).order_by(Property.registration_date.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        status: Optional[PropertyStatus] = None,
        property_type: Optional[PropertyType] = None,
        sub_city: Optional[str] = None,
        search: Optional[str] = None,
        statuses: Optional[Tuple[PropertyStatus, ...]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Property], int]:
        filters = []
        if status:
            filters.append(Property.status == status)
        if statuses:
            filters.append(Property.status.in_(statuses))
        if property_type:
            filters.append(Property.property_type == property_type)
        if sub_city:
            filters.append(func.lower(Property.sub_city) == sub_city.lower())
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(
                func.lower(Property.plot_number).like(pattern),
                func.lower(Property.kebele).like(pattern),
                func.lower(Property.street).like(pattern),
            ))

        total = (await self.db.execute(select(func.count(Property.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(Property).where(*filters)
            .order_by(Property.last_updated.desc(), Property.id.desc())
            .offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def slot_statuses(self, property_id: int) -> Dict[DocumentType, DocumentStatus]:
        result = await self.db.execute(
            select(Document.document_type, Document.status).where(Document.property_id == property_id)
        )
        statuses: Dict[DocumentType, DocumentStatus] = {}
        for doc_type, doc_status in result.all():
            if statuses.get(doc_type) != DocumentStatus.REJECTED:
                statuses[doc_type] = doc_status
        return statuses

    async def document_count(self, property_id: int) -> int:
        result = await self.db.execute(select(func.count(Document.id)).where(Document.property_id == property_id))
        return result.scalar() or 0

    async def next_steps(self, property_obj: Property) -> List[Dict[str, Any]]:
        return workflow.next_steps(
            await self.document_count(property_obj.id) > 0,
            property_obj.documents_validated,
            property_obj.payment_completed,
            property_obj.status,
        )

    async def update(self, property_obj: Property, owner: User, changes: Dict[str, Any]) -> Property:
        """Edit an open application; a rejected one is resubmitted"""
        if not workflow.can_edit(property_obj.status):
            raise InvalidTransitionError(
                property_obj.status.value, "edit",
                "Property can only be edited while pending, rejected or awaiting updates",
            )

        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        if "area" in changes and changes["area"] <= 0:
            raise ValidationError(message="Area must be greater than zero")
        if "plot_number" in changes and changes["plot_number"] != property_obj.plot_number:
            await self._ensure_unique_plot(changes["plot_number"], exclude_id=property_obj.id)

        for field, value in changes.items():
            setattr(property_obj, field, value)

        previous = property_obj.status
        if previous in (PropertyStatus.REJECTED, PropertyStatus.NEEDS_UPDATE):
            await self._resubmit(property_obj)
        property_obj.last_updated = datetime.utcnow()

        record_action(
            self.db, "application_updated" if previous == property_obj.status else "application_resubmitted",
            property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=owner,
            previous_status=previous,
            notes="Property details updated",
            metadata={"fields": sorted(changes)},
        )
        return property_obj

    async def _resubmit(self, property_obj: Property) -> None:
        """Back to pending, then replay the document state already on file"""
        slots = await self.slot_statuses(property_obj.id)
        status = workflow.next_status(property_obj.status, WorkflowEvent.RESUBMITTED)
        status = workflow.next_status(status, WorkflowEvent.DOCUMENTS_SUBMITTED, documents=slots)
        validated = status == PropertyStatus.DOCUMENTS_PENDING and workflow.all_documents_validated(slots)
        if validated:
            status = workflow.next_status(
                status, WorkflowEvent.DOCUMENT_VERIFIED,
                documents=slots, payment_completed=property_obj.payment_completed,
            )
        property_obj.status = status
        property_obj.documents_validated = validated
        property_obj.review_notes = None

    async def delete(self, property_obj: Property, owner: User) -> None:
        if not workflow.can_delete(property_obj.status):
            raise InvalidTransitionError(
                property_obj.status.value, "delete",
                "Property can only be deleted while pending, rejected or awaiting updates",
            )

        settled = (await self.db.execute(
            select(func.count(Payment.id)).where(
                Payment.property_id == property_obj.id,
                Payment.status.in_((PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)),
            )
        )).scalar() or 0
        if settled:
            raise ConflictError(
                message="Property has settled payments on record and cannot be deleted",
                details={"settled_payments": settled},
            )

        result = await self.db.execute(select(Document.file_path).where(Document.property_id == property_obj.id))
        for (file_path,) in result.all():
            if file_path and os.path.exists(file_path):
                os.remove(file_path)

        for model in (Document, Payment, Dispute, ApplicationLog):
            await self.db.execute(delete(model).where(model.property_id == property_obj.id))

        record_action(
            self.db, "application_deleted", property_obj.status,
            owner_id=property_obj.owner_id, actor=owner,
            notes=f"Property {property_obj.plot_number} deleted",
            metadata={"property_id": property_obj.id, "plot_number": property_obj.plot_number},
        )
        await self.db.delete(property_obj)
        logger.info(f"Property {property_obj.id} deleted by user {owner.id}")

    async def _apply_officer_event(
        self,
        property_obj: Property,
        officer: User,
        event: WorkflowEvent,
        action: str,
        notes: Optional[str],
    ) -> PropertyStatus:
        previous = property_obj.status
        property_obj.status = workflow.next_status(
            property_obj.status,
            event,
            documents_validated=property_obj.documents_validated,
            payment_completed=property_obj.payment_completed,
        )
        property_obj.reviewed_by = officer.id
        if notes:
            property_obj.review_notes = notes
        property_obj.last_updated = datetime.utcnow()

        record_action(
            self.db, action, property_obj.status,
            property_id=property_obj.id, owner_id=property_obj.owner_id, actor=officer,
            previous_status=previous, notes=notes,
        )
        logger.info(f"Property {property_obj.id}: {event.value} ({previous.value} -> {property_obj.status.value})")
        return previous

    async def start_review(self, property_obj: Property, officer: User, notes: Optional[str] = None) -> Property:
        await self._apply_officer_event(property_obj, officer, WorkflowEvent.REVIEW_STARTED, "review_started", notes)
        return property_obj

    async def approve(self, property_obj: Property, officer: User, notes: Optional[str] = None) -> Property:
        await self._apply_officer_event(property_obj, officer, WorkflowEvent.OFFICER_APPROVED, "application_approved", notes)
        await self.notifications.property_decision(property_obj, approved=True, notes=notes)
        return property_obj

    async def reject(self, property_obj: Property, officer: User, reason: str) -> Property:
        if not (reason and reason.strip()):
            raise ValidationError(message="A reason is required to reject a property")
        await self._apply_officer_event(property_obj, officer, WorkflowEvent.OFFICER_REJECTED, "application_rejected", reason)
        payments = PaymentService(self.db, self.gateway or get_payment_gateway())
        await payments.cancel_open_payments(property_obj, reason="Application rejected")
        await self.notifications.property_decision(property_obj, approved=False, notes=reason)
        return property_obj

    async def request_update(self, property_obj: Property, officer: User, notes: str) -> Property:
        if not (notes and notes.strip()):
            raise ValidationError(message="Notes are required when requesting an update")
        await self._apply_officer_event(property_obj, officer, WorkflowEvent.UPDATE_REQUESTED, "update_requested", notes)
        await self.notifications.update_requested(property_obj, notes)
        return property_obj

    async def certificate(self, property_obj: Property) -> Dict[str, Any]:
        """Registration certificate data for an approved property"""
        if property_obj.status != PropertyStatus.APPROVED:
            raise InvalidTransitionError(
                property_obj.status.value, "certificate", "Certificates are issued only for approved properties"
            )
        owner = (await self.db.execute(select(User).where(User.id == property_obj.owner_id))).scalar_one()
        approved_at = (await self.db.execute(
            select(ApplicationLog.timestamp)
            .where(ApplicationLog.property_id == property_obj.id, ApplicationLog.action == "application_approved")
            .order_by(ApplicationLog.timestamp.desc())
        )).scalars().first()
        return {
            "certificate_number": f"LRC-{property_obj.id:06d}-{property_obj.plot_number}",
            "plot_number": property_obj.plot_number,
            "property_type": property_obj.property_type.value,
            "area": property_obj.area,
            "location": {
                "sub_city": property_obj.sub_city,
                "kebele": property_obj.kebele,
                "street": property_obj.street,
                "house_number": property_obj.house_number,
            },
            "owner": {"id": owner.id, "full_name": owner.full_name, "national_id": owner.national_id},
            "registration_date": property_obj.registration_date,
            "approval_date": approved_at or property_obj.last_updated,
            "approved_by": property_obj.reviewed_by,
        }
