"""Documents router"""
from fastapi import APIRouter, Depends, Query, status, UploadFile, File, Form
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
import os

from land_registry.database import get_db
from land_registry.exceptions import AuthorizationError, NotFoundError
from land_registry.models.document import Document, DocumentStatus, DocumentType
from land_registry.models.user import User
from land_registry.routers.auth import get_current_user, get_current_officer
from land_registry.services.documents import DocumentService
from land_registry.services.properties import PropertyService

router = APIRouter(prefix="/documents", tags=["Documents"])


class DocumentResponse(BaseModel):
    """Document response model"""
    id: int
    property_id: int
    owner_id: int
    document_type: DocumentType
    document_name: str
    file_name: str
    file_size: int
    mime_type: str
    status: DocumentStatus
    verification_notes: Optional[str]
    verified_by: Optional[int]
    verified_at: Optional[datetime]
    upload_date: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int


class VerifyRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    notes: str = Field(..., min_length=1)


async def _document_for_user(document_id: int, user: User, db: AsyncSession) -> Document:
    document = await DocumentService(db).get(document_id)
    if document.owner_id != user.id and not user.is_officer:
        raise AuthorizationError(message="Not authorized to access this document")
    return document


@router.post("/property/{property_id}", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    property_id: int,
    document_type: DocumentType = Form(...),
    document_name: Optional[str] = Form(None),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Upload a document into a property's slot, replacing any previous copy"""
    property_obj = await PropertyService(db).get_owned(property_id, current_user)
    content = await file.read()

    document = await DocumentService(db).upload(
        property_obj,
        current_user,
        document_type=document_type,
        filename=file.filename or "",
        content_type=file.content_type,
        content=content,
        document_name=document_name,
    )
    await db.commit()
    await db.refresh(document)
    return DocumentResponse.model_validate(document)


@router.get("/property/{property_id}", response_model=List[DocumentResponse])
async def list_property_documents(
    property_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await PropertyService(db).get_for_user(property_id, current_user)
    documents = await DocumentService(db).list_for_property(property_id)
    return [DocumentResponse.model_validate(d) for d in documents]


@router.get("/pending", response_model=DocumentListResponse)
async def list_pending_documents(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Documents awaiting verification"""
    condition = Document.status == DocumentStatus.PENDING
    total = (await db.execute(select(func.count(Document.id)).where(condition))).scalar() or 0
    result = await db.execute(
        select(Document).where(condition).order_by(Document.upload_date.asc()).offset(offset).limit(limit)
    )
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in result.scalars().all()],
        total=total,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get document details"""
    return DocumentResponse.model_validate(await _document_for_user(document_id, current_user, db))


@router.get("/{document_id}/download")
async def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Download document file"""
    document = await _document_for_user(document_id, current_user, db)

    if not document.file_path or not os.path.exists(document.file_path):
        raise NotFoundError(message="Document file not available")

    return FileResponse(
        path=document.file_path,
        filename=document.file_name,
        media_type=document.mime_type or "application/octet-stream"
    )


@router.put("/{document_id}/verify", response_model=DocumentResponse)
async def verify_document(
    document_id: int,
    request: VerifyRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = DocumentService(db)
    document = await service.review(await service.get(document_id), officer, DocumentStatus.VERIFIED, request.notes)
    await db.commit()
    await db.refresh(document)
    return DocumentResponse.model_validate(document)


@router.put("/{document_id}/reject", response_model=DocumentResponse)
async def reject_document(
    document_id: int,
    request: RejectRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    service = DocumentService(db)
    document = await service.review(await service.get(document_id), officer, DocumentStatus.REJECTED, request.notes)
    await db.commit()
    await db.refresh(document)
    return DocumentResponse.model_validate(document)


@router.put("/{document_id}/request-update", response_model=DocumentResponse)
async def request_document_update(
    document_id: int,
    request: RejectRequest,
    officer: User = Depends(get_current_officer),
    db: AsyncSession = Depends(get_db)
):
    """Ask the owner to re-upload a document"""
    service = DocumentService(db)
    document = await service.review(
        await service.get(document_id), officer, DocumentStatus.NEEDS_UPDATE, request.notes
    )
    await db.commit()
    await db.refresh(document)
    return DocumentResponse.model_validate(document)


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = DocumentService(db)
    document = await service.get(document_id)
    property_obj = await PropertyService(db).get_owned(document.property_id, current_user)
    await service.delete(document, property_obj, current_user)
    await db.commit()
    return {"message": "Document deleted successfully"}
