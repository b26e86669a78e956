"""Registration Workflow

Single source of truth for the status vocabularies and their legal
transitions. Routers and services never compare status strings directly;
they ask this module.

Property lifecycle::

    pending -> documents_pending -> documents_validated -> payment_pending
            -> payment_completed -> (under_review) -> approved

Any pre-approval state may be rejected by a land officer. A rejected or
needs_update application returns to pending when the owner resubmits; if
the registration fee was already paid, validating the documents again
lands it straight back on payment_completed.

Approved properties can change hands through a transfer::

    initiated -> under_review -> approved -> completed
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from land_registry.exceptions import InvalidTransitionError
from land_registry.models.document import DocumentStatus, DocumentType, REQUIRED_DOCUMENT_TYPES
from land_registry.models.dispute import DisputeStatus
from land_registry.models.payment import PaymentStatus
from land_registry.models.property import PropertyStatus
from land_registry.models.transfer import TransferStatus

logger = logging.getLogger(__name__)


class WorkflowEvent(str, Enum):
    """Events that move a property through the registration workflow"""
    DOCUMENTS_SUBMITTED = "documents_submitted"
    DOCUMENT_VERIFIED = "document_verified"
    DOCUMENT_REJECTED = "document_rejected"
    UPDATE_REQUESTED = "update_requested"
    RESUBMITTED = "resubmitted"
    PAYMENT_INITIATED = "payment_initiated"
    PAYMENT_COMPLETED = "payment_completed"
    REVIEW_STARTED = "review_started"
    OFFICER_APPROVED = "officer_approved"
    OFFICER_REJECTED = "officer_rejected"


EDITABLE_STATUSES = frozenset({
    PropertyStatus.PENDING,
    PropertyStatus.REJECTED,
    PropertyStatus.NEEDS_UPDATE,
})

DOCUMENT_UPLOAD_STATUSES = frozenset({
    PropertyStatus.PENDING,
    PropertyStatus.DOCUMENTS_PENDING,
    PropertyStatus.REJECTED,
    PropertyStatus.NEEDS_UPDATE,
})

PRE_APPROVAL_STATUSES = frozenset({
    PropertyStatus.PENDING,
    PropertyStatus.DOCUMENTS_PENDING,
    PropertyStatus.DOCUMENTS_VALIDATED,
    PropertyStatus.PAYMENT_PENDING,
    PropertyStatus.PAYMENT_COMPLETED,
    PropertyStatus.UNDER_REVIEW,
    PropertyStatus.NEEDS_UPDATE,
})

# (current, event) -> next. Events whose target depends on the document set
# are resolved in next_status().
PROPERTY_TRANSITIONS: Dict[Tuple[PropertyStatus, WorkflowEvent], PropertyStatus] = {
    (PropertyStatus.DOCUMENTS_PENDING, WorkflowEvent.DOCUMENTS_SUBMITTED): PropertyStatus.DOCUMENTS_PENDING,
    (PropertyStatus.PENDING, WorkflowEvent.DOCUMENT_REJECTED): PropertyStatus.PENDING,
    (PropertyStatus.DOCUMENTS_PENDING, WorkflowEvent.DOCUMENT_REJECTED): PropertyStatus.DOCUMENTS_PENDING,
    (PropertyStatus.DOCUMENTS_PENDING, WorkflowEvent.UPDATE_REQUESTED): PropertyStatus.NEEDS_UPDATE,
    (PropertyStatus.DOCUMENTS_VALIDATED, WorkflowEvent.UPDATE_REQUESTED): PropertyStatus.NEEDS_UPDATE,
    (PropertyStatus.UNDER_REVIEW, WorkflowEvent.UPDATE_REQUESTED): PropertyStatus.NEEDS_UPDATE,
    (PropertyStatus.REJECTED, WorkflowEvent.UPDATE_REQUESTED): PropertyStatus.NEEDS_UPDATE,
    (PropertyStatus.REJECTED, WorkflowEvent.RESUBMITTED): PropertyStatus.PENDING,
    (PropertyStatus.NEEDS_UPDATE, WorkflowEvent.RESUBMITTED): PropertyStatus.PENDING,
    (PropertyStatus.DOCUMENTS_VALIDATED, WorkflowEvent.PAYMENT_INITIATED): PropertyStatus.PAYMENT_PENDING,
    (PropertyStatus.PAYMENT_PENDING, WorkflowEvent.PAYMENT_INITIATED): PropertyStatus.PAYMENT_PENDING,
    (PropertyStatus.PAYMENT_PENDING, WorkflowEvent.PAYMENT_COMPLETED): PropertyStatus.PAYMENT_COMPLETED,
    (PropertyStatus.PAYMENT_COMPLETED, WorkflowEvent.REVIEW_STARTED): PropertyStatus.UNDER_REVIEW,
    (PropertyStatus.PAYMENT_COMPLETED, WorkflowEvent.OFFICER_APPROVED): PropertyStatus.APPROVED,
    (PropertyStatus.UNDER_REVIEW, WorkflowEvent.OFFICER_APPROVED): PropertyStatus.APPROVED,
}
for _status in PRE_APPROVAL_STATUSES:
    PROPERTY_TRANSITIONS[(_status, WorkflowEvent.OFFICER_REJECTED)] = PropertyStatus.REJECTED


def all_documents_validated(documents: Mapping[DocumentType, DocumentStatus]) -> bool:
    """True when every required slot is verified and nothing is rejected.

    ``documents`` maps each uploaded document type to its current status.
    """
    verified = sum(
        1 for doc_type in REQUIRED_DOCUMENT_TYPES
        if documents.get(doc_type) == DocumentStatus.VERIFIED
    )
    rejected = any(status == DocumentStatus.REJECTED for status in documents.values())
    return verified == len(REQUIRED_DOCUMENT_TYPES) and not rejected


def all_required_uploaded(documents: Iterable[DocumentType]) -> bool:
    return REQUIRED_DOCUMENT_TYPES.issubset(set(documents))


def missing_document_types(documents: Iterable[DocumentType]) -> List[DocumentType]:
    present = set(documents)
    return sorted(
        (doc_type for doc_type in REQUIRED_DOCUMENT_TYPES if doc_type not in present),
        key=lambda d: d.value,
    )


def next_status(
    current: PropertyStatus,
    event: WorkflowEvent,
    documents: Optional[Mapping[DocumentType, DocumentStatus]] = None,
    documents_validated: bool = False,
    payment_completed: bool = False,
) -> PropertyStatus:
    """Compute the status that follows ``event``.

    Raises InvalidTransitionError when the event is not legal from ``current``.
    """
    current = PropertyStatus(current)
    event = WorkflowEvent(event)
    documents = documents or {}

    if current == PropertyStatus.APPROVED:
        raise InvalidTransitionError(current.value, event.value, "Approved properties are read-only")

    if current == PropertyStatus.PENDING and event == WorkflowEvent.DOCUMENTS_SUBMITTED:
        if all_required_uploaded(documents.keys()):
            return PropertyStatus.DOCUMENTS_PENDING
        return PropertyStatus.PENDING

    if event == WorkflowEvent.DOCUMENT_VERIFIED:
        if current == PropertyStatus.PENDING:
            return PropertyStatus.PENDING
        if current == PropertyStatus.DOCUMENTS_PENDING:
            if not all_documents_validated(documents):
                return PropertyStatus.DOCUMENTS_PENDING
            # A resubmitted application keeps the fee it already paid
            if payment_completed:
                return PropertyStatus.PAYMENT_COMPLETED
            return PropertyStatus.DOCUMENTS_VALIDATED
        raise InvalidTransitionError(current.value, event.value)

    if event == WorkflowEvent.PAYMENT_INITIATED and not documents_validated:
        raise InvalidTransitionError(
            current.value, event.value, "All documents must be validated before payment"
        )

    if event == WorkflowEvent.OFFICER_APPROVED:
        if not documents_validated:
            raise InvalidTransitionError(
                current.value, event.value,
                "Cannot approve property. All documents must be validated first."
            )
        if not payment_completed:
            raise InvalidTransitionError(
                current.value, event.value,
                "Cannot approve property. Payment must be completed first."
            )

    target = PROPERTY_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(current.value, event.value)
    return target


def can_edit(status: PropertyStatus) -> bool:
    return PropertyStatus(status) in EDITABLE_STATUSES


def can_delete(status: PropertyStatus) -> bool:
    return PropertyStatus(status) in EDITABLE_STATUSES


def can_upload_document(status: PropertyStatus, slot_status: Optional[DocumentStatus] = None) -> bool:
    """Owners upload while the application is open; a rejected slot may be
    re-uploaded at any point before approval."""
    status = PropertyStatus(status)
    if status in DOCUMENT_UPLOAD_STATUSES:
        return True
    return (
        status != PropertyStatus.APPROVED
        and slot_status in (DocumentStatus.REJECTED, DocumentStatus.NEEDS_UPDATE)
    )


def can_review_documents(status: PropertyStatus) -> bool:
    """Officers review documents only before the property leaves the document stage"""
    return PropertyStatus(status) in DOCUMENT_UPLOAD_STATUSES


def tracks_document_events(status: PropertyStatus) -> bool:
    """Document uploads and reviews move the property only in these states"""
    return PropertyStatus(status) in (PropertyStatus.PENDING, PropertyStatus.DOCUMENTS_PENDING)


def can_initiate_payment(status: PropertyStatus, documents_validated: bool, payment_completed: bool) -> bool:
    status = PropertyStatus(status)
    return (
        documents_validated
        and not payment_completed
        and status in (PropertyStatus.DOCUMENTS_VALIDATED, PropertyStatus.PAYMENT_PENDING)
    )


def awaits_registration_payment(status: PropertyStatus) -> bool:
    """A registration fee can only be settled while the property waits for it"""
    return PropertyStatus(status) == PropertyStatus.PAYMENT_PENDING


def next_steps(
    has_documents: bool,
    documents_validated: bool,
    payment_completed: bool,
    status: PropertyStatus,
) -> List[Dict[str, object]]:
    """Describe what the owner should do next"""
    status = PropertyStatus(status)
    if status == PropertyStatus.APPROVED:
        return [{
            "step": "registration_complete",
            "title": "Registration Complete",
            "description": "Property registration has been successfully completed",
            "required": False,
        }]
    if status in (PropertyStatus.REJECTED, PropertyStatus.NEEDS_UPDATE):
        return [{
            "step": "update_application",
            "title": "Update Application",
            "description": "Review the officer's notes, correct the application and resubmit",
            "required": True,
        }]
    if not has_documents:
        return [{
            "step": "submit_documents",
            "title": "Submit Required Documents",
            "description": "Upload all required documents for property registration",
            "required": True,
        }]
    if not documents_validated:
        return [{
            "step": "await_document_validation",
            "title": "Await Document Validation",
            "description": "Wait for land officer to validate submitted documents",
            "required": True,
        }]
    if not payment_completed:
        return [{
            "step": "complete_payment",
            "title": "Complete Registration Payment",
            "description": "Pay the required registration fees using CBE Birr, TeleBirr or Chapa",
            "required": True,
        }]
    return [{
        "step": "await_approval",
        "title": "Await Final Approval",
        "description": "Wait for land officer to review and approve the property registration",
        "required": True,
    }]


# Payments

PAYMENT_TRANSITIONS: Dict[PaymentStatus, frozenset] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.CANCELLED, PaymentStatus.FAILED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}


def advance_payment(current: PaymentStatus, target: PaymentStatus) -> PaymentStatus:
    current = PaymentStatus(current)
    target = PaymentStatus(target)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


# Disputes

ACTIVE_DISPUTE_STATUSES = frozenset({
    DisputeStatus.SUBMITTED,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.INVESTIGATION,
    DisputeStatus.MEDIATION,
})

WITHDRAWABLE_DISPUTE_STATUSES = frozenset({
    DisputeStatus.SUBMITTED,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.INVESTIGATION,
})

DISPUTE_TRANSITIONS: Dict[DisputeStatus, frozenset] = {
    DisputeStatus.SUBMITTED: frozenset({
        DisputeStatus.UNDER_REVIEW, DisputeStatus.REJECTED, DisputeStatus.WITHDRAWN,
    }),
    DisputeStatus.UNDER_REVIEW: frozenset({
        DisputeStatus.INVESTIGATION, DisputeStatus.MEDIATION, DisputeStatus.RESOLVED,
        DisputeStatus.REJECTED, DisputeStatus.WITHDRAWN,
    }),
    DisputeStatus.INVESTIGATION: frozenset({
        DisputeStatus.MEDIATION, DisputeStatus.RESOLVED, DisputeStatus.REJECTED, DisputeStatus.WITHDRAWN,
    }),
    DisputeStatus.MEDIATION: frozenset({DisputeStatus.RESOLVED, DisputeStatus.REJECTED}),
    DisputeStatus.RESOLVED: frozenset(),
    DisputeStatus.REJECTED: frozenset(),
    DisputeStatus.WITHDRAWN: frozenset(),
}


def advance_dispute(current: DisputeStatus, target: DisputeStatus) -> DisputeStatus:
    current = DisputeStatus(current)
    target = DisputeStatus(target)
    if target not in DISPUTE_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


def can_withdraw_dispute(status: DisputeStatus, reason: Optional[str]) -> bool:
    return DisputeStatus(status) in WITHDRAWABLE_DISPUTE_STATUSES and bool(reason and reason.strip())


def is_dispute_active(status: DisputeStatus) -> bool:
    return DisputeStatus(status) in ACTIVE_DISPUTE_STATUSES


# Transfers

ACTIVE_TRANSFER_STATUSES = frozenset({
    TransferStatus.INITIATED,
    TransferStatus.UNDER_REVIEW,
    TransferStatus.APPROVED,
})

CANCELLABLE_TRANSFER_STATUSES = frozenset({
    TransferStatus.INITIATED,
    TransferStatus.UNDER_REVIEW,
})

TRANSFER_TRANSITIONS: Dict[TransferStatus, frozenset] = {
    TransferStatus.INITIATED: frozenset({
        TransferStatus.UNDER_REVIEW, TransferStatus.REJECTED, TransferStatus.CANCELLED,
    }),
    TransferStatus.UNDER_REVIEW: frozenset({
        TransferStatus.APPROVED, TransferStatus.REJECTED, TransferStatus.CANCELLED,
    }),
    TransferStatus.APPROVED: frozenset({TransferStatus.COMPLETED}),
    TransferStatus.REJECTED: frozenset(),
    TransferStatus.COMPLETED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}


def advance_transfer(current: TransferStatus, target: TransferStatus) -> TransferStatus:
    current = TransferStatus(current)
    target = TransferStatus(target)
    if target not in TRANSFER_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    return target


def can_initiate_transfer(status: PropertyStatus, has_active_dispute: bool) -> bool:
    """Only registered properties without an open dispute change hands"""
    return PropertyStatus(status) == PropertyStatus.APPROVED and not has_active_dispute


def is_transfer_active(status: TransferStatus) -> bool:
    return TransferStatus(status) in ACTIVE_TRANSFER_STATUSES
