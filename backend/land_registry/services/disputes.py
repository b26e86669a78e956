"""Dispute Service

Disputes are filed by property owners and worked by land officers. At most
one dispute per property may be active at a time, and the property's
``has_active_dispute`` flag mirrors that.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.exceptions import (
    AuthorizationError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError,
)
from land_registry.models.dispute import Dispute, DisputePriority, DisputeStatus, DisputeType
from land_registry.models.property import Property
from land_registry.models.user import User, UserRole
from land_registry.services import workflow
from land_registry.services.notifications import NotificationService
from land_registry.services.timeline import record_action

logger = logging.getLogger(__name__)


TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
EVIDENCE_TYPES = ("legal_document", "photo", "witness_statement", "other")


def _timeline_entry(action: str, actor: User, notes: Optional[str] = None) -> Dict[str, Any]:
    return {
        "action": action,
        "performed_by": actor.id,
        "performed_by_role": actor.role.value,
        "notes": notes,
        "timestamp": datetime.utcnow().isoformat(),
    }


def _append(dispute: Dispute, attr: str, item: Dict[str, Any]) -> None:
    # Reassign so the JSON column is flagged dirty
    setattr(dispute, attr, [*(getattr(dispute, attr) or []), item])


def validate_dispute_fields(title: str, description: str) -> None:
    title = (title or "").strip()
    description = (description or "").strip()
    if not title or len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(message=f"Title is required and must be at most {TITLE_MAX_LENGTH} characters")
    if not description or len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            message=f"Description is required and must be at most {DESCRIPTION_MAX_LENGTH} characters"
        )


class DisputeService:
    """Dispute operations for one database session"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)

    async def get(self, dispute_id: int) -> Dispute:
        result = await self.db.execute(select(Dispute).where(Dispute.id == dispute_id))
        dispute = result.scalar_one_or_none()
        if not dispute:
            raise NotFoundError(message="Dispute not found")
        return dispute

    async def get_for_user(self, dispute_id: int, user: User) -> Dispute:
        dispute = await self.get(dispute_id)
        if dispute.disputant_id != user.id and not user.is_officer:
            raise NotFoundError(message="Dispute not found")
        return dispute

    async def _property(self, property_id: int) -> Property:
        result = await self.db.execute(select(Property).where(Property.id == property_id))
        property_obj = result.scalar_one_or_none()
        if not property_obj:
            raise NotFoundError(message="Property not found")
        return property_obj

    async def active_count(self, property_id: int, exclude_id: Optional[int] = None) -> int:
        query = select(func.count(Dispute.id)).where(
            Dispute.property_id == property_id,
            Dispute.status.in_(workflow.ACTIVE_DISPUTE_STATUSES),
        )
        if exclude_id is not None:
            query = query.where(Dispute.id != exclude_id)
        return (await self.db.execute(query)).scalar() or 0

    async def _refresh_property_flag(self, dispute: Dispute) -> None:
        property_obj = await self._property(dispute.property_id)
        active = workflow.is_dispute_active(dispute.status)
        if not active:
            active = await self.active_count(dispute.property_id, exclude_id=dispute.id) > 0
        property_obj.has_active_dispute = active

    async def submit(
        self,
        user: User,
        property_id: int,
        dispute_type: DisputeType,
        title: str,
        description: str,
        priority: DisputePriority = DisputePriority.MEDIUM,
    ) -> Dispute:
        validate_dispute_fields(title, description)

        property_obj = await self._property(property_id)
        if property_obj.owner_id != user.id:
            raise AuthorizationError(message="You can only submit disputes for your own properties")

        if await self.active_count(property_id) > 0:
            raise ConflictError(
                message="There is already an active dispute for this property",
                details={"property_id": property_id},
            )

        dispute = Dispute(
            property_id=property_id,
            disputant_id=user.id,
            dispute_type=dispute_type,
            title=title.strip(),
            description=description.strip(),
            priority=priority,
            status=DisputeStatus.SUBMITTED,
            evidence=[],
            timeline=[_timeline_entry("Dispute submitted", user, "Initial dispute submission")],
        )
        self.db.add(dispute)
        await self.db.flush()

        property_obj.has_active_dispute = True
        record_action(
            self.db, "dispute_submitted", DisputeStatus.SUBMITTED,
            property_id=property_id, owner_id=user.id, actor=user,
            notes=f"Dispute submitted: {dispute.title}",
            metadata={"dispute_id": dispute.id, "dispute_type": dispute_type.value},
        )
        logger.info(f"Dispute {dispute.id} submitted for property {property_id}")

        await self.notifications.dispute_submitted(dispute, property_obj)
        return dispute

    async def list_for_user(self, user: User) -> List[Dispute]:
        result = await self.db.execute(
            select(Dispute).where(Dispute.disputant_id == user.id).order_by(Dispute.submission_date.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self,
        status: Optional[DisputeStatus] = None,
        dispute_type: Optional[DisputeType] = None,
        priority: Optional[DisputePriority] = None,
        assigned_to: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Dispute], int]:
        filters = []
        if status:
            filters.append(Dispute.status == status)
        if dispute_type:
            filters.append(Dispute.dispute_type == dispute_type)
        if priority:
            filters.append(Dispute.priority == priority)
        if assigned_to is not None:
            filters.append(Dispute.assigned_to == assigned_to)

        total = (await self.db.execute(select(func.count(Dispute.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(Dispute).where(*filters).order_by(Dispute.submission_date.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def withdraw(self, dispute: Dispute, user: User, reason: Optional[str]) -> Dispute:
        if dispute.disputant_id != user.id:
            raise AuthorizationError(message="Only the disputant can withdraw a dispute")
        if not workflow.can_withdraw_dispute(dispute.status, reason):
            if not (reason and reason.strip()):
                raise ValidationError(message="A reason is required to withdraw a dispute")
            raise InvalidTransitionError(
                dispute.status.value, DisputeStatus.WITHDRAWN.value, "Dispute cannot be withdrawn"
            )

        dispute.status = workflow.advance_dispute(dispute.status, DisputeStatus.WITHDRAWN)
        _append(dispute, "timeline", _timeline_entry("Dispute withdrawn by disputant", user, reason))
        await self._refresh_property_flag(dispute)

        record_action(
            self.db, "dispute_withdrawn", DisputeStatus.WITHDRAWN,
            property_id=dispute.property_id, owner_id=user.id, actor=user,
            notes=reason, metadata={"dispute_id": dispute.id},
        )
        logger.info(f"Dispute {dispute.id} withdrawn")
        return dispute

    async def add_evidence(
        self,
        dispute: Dispute,
        user: User,
        document_type: str,
        document_name: str,
        file_reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dispute:
        if dispute.disputant_id != user.id:
            raise AuthorizationError(message="Only the disputant can add evidence")
        if dispute.status not in workflow.WITHDRAWABLE_DISPUTE_STATUSES:
            raise InvalidTransitionError(
                dispute.status.value, "evidence_added", "Evidence can no longer be added to this dispute"
            )
        if document_type not in EVIDENCE_TYPES:
            raise ValidationError(
                message="Invalid evidence type",
                details={"document_type": document_type, "allowed": list(EVIDENCE_TYPES)},
            )
        if not (document_name and document_name.strip()):
            raise ValidationError(message="Evidence name is required")

        _append(dispute, "evidence", {
            "document_type": document_type,
            "document_name": document_name.strip(),
            "file_reference": file_reference,
            "description": description,
            "uploaded_by": user.id,
            "uploaded_at": datetime.utcnow().isoformat(),
        })
        _append(dispute, "timeline", _timeline_entry("Evidence added", user, f"Added evidence: {document_name}"))
        return dispute

    async def update_status(self, dispute: Dispute, officer: User, status: DisputeStatus, notes: Optional[str]) -> Dispute:
        status = DisputeStatus(status)
        if status == DisputeStatus.WITHDRAWN:
            raise ValidationError(message="Only the disputant can withdraw a dispute")
        if status == DisputeStatus.RESOLVED:
            raise ValidationError(message="Use the resolve action to resolve a dispute")

        previous = dispute.status
        dispute.status = workflow.advance_dispute(dispute.status, status)
        _append(dispute, "timeline", _timeline_entry(f"Status updated to {status.value}", officer, notes))
        await self._refresh_property_flag(dispute)

        record_action(
            self.db, "dispute_status_updated", status,
            property_id=dispute.property_id, owner_id=dispute.disputant_id, actor=officer,
            previous_status=previous, notes=notes, metadata={"dispute_id": dispute.id},
        )
        logger.info(f"Dispute {dispute.id} moved {previous.value} -> {status.value}")
        await self.notifications.dispute_status_update(dispute, notes)
        return dispute

    async def assign(self, dispute: Dispute, admin: User, officer_id: int, notes: Optional[str] = None) -> Dispute:
        result = await self.db.execute(select(User).where(User.id == officer_id))
        officer = result.scalar_one_or_none()
        if not officer or officer.role != UserRole.LAND_OFFICER or not officer.is_active:
            raise ValidationError(message="Invalid land officer assignment", details={"assigned_to": officer_id})
        if not workflow.is_dispute_active(dispute.status):
            raise InvalidTransitionError(dispute.status.value, "assigned", "Closed disputes cannot be assigned")

        dispute.assigned_to = officer.id
        dispute.assigned_date = datetime.utcnow()
        _append(dispute, "timeline", _timeline_entry(
            f"Dispute assigned to {officer.full_name or officer.email}", admin,
            notes or "Assigned to land officer for review",
        ))
        logger.info(f"Dispute {dispute.id} assigned to officer {officer.id}")
        return dispute

    async def resolve(
        self,
        dispute: Dispute,
        officer: User,
        decision: str,
        resolution_notes: Optional[str] = None,
        action_required: Optional[str] = None,
    ) -> Dispute:
        if not (decision and decision.strip()):
            raise ValidationError(message="A resolution decision is required")

        previous = dispute.status
        dispute.status = workflow.advance_dispute(dispute.status, DisputeStatus.RESOLVED)
        dispute.resolution_decision = decision.strip()
        dispute.resolution_notes = resolution_notes
        dispute.action_required = action_required or ""
        dispute.resolved_by = officer.id
        dispute.resolution_date = datetime.utcnow()
        _append(dispute, "timeline", _timeline_entry(
            f"Dispute resolved with decision: {dispute.resolution_decision}", officer, resolution_notes
        ))
        await self._refresh_property_flag(dispute)

        record_action(
            self.db, "dispute_resolved", DisputeStatus.RESOLVED,
            property_id=dispute.property_id, owner_id=dispute.disputant_id, actor=officer,
            previous_status=previous,
            notes=f"Dispute resolved: {dispute.resolution_decision}",
            metadata={"dispute_id": dispute.id, "decision": dispute.resolution_decision},
        )
        logger.info(f"Dispute {dispute.id} resolved: {dispute.resolution_decision}")
        await self.notifications.dispute_resolved(dispute)
        return dispute
