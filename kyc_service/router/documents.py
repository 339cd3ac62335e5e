# Fichier: kyc_service/router/documents.py
import asyncio
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from kyc_service import crud, schemas
from kyc_service.dependencies import get_db, get_event_publisher, get_object_store, get_vision_client
from kyc_service.enums import DocumentSide, VerificationStatus
from kyc_service.errors import DocumentProcessingError, UserInputError
from kyc_service.events import EventPublisher
from kyc_service.processor.document_processor import process_document
from kyc_service.processor.vision_client import VisionProvider
from kyc_service.storage import ObjectStore, document_object_key

router = APIRouter(prefix="/documents")

COMPLETE_REDIRECT = "/verification/complete"


def _redirect_for(record, side: DocumentSide) -> Optional[str]:
    if record.verification_status == VerificationStatus.VERIFIED:
        return COMPLETE_REDIRECT
    if side == DocumentSide.FRONT and not record.has_back:
        return f"/documents/back?documentType={record.document_type.value}"
    if side == DocumentSide.BACK and not record.has_front:
        return f"/documents/front?documentType={record.document_type.value}"
    return None


@router.post("", response_model=schemas.DocumentUploadResponse)
async def upload_document(
    payload: schemas.DocumentUploadRequest,
    db: Session = Depends(get_db),
    vision: VisionProvider = Depends(get_vision_client),
    store: ObjectStore = Depends(get_object_store),
    events: EventPublisher = Depends(get_event_publisher),
):
    """
    Traite une face (recto ou verso) d'un document d'identité.

    L'image n'est stockée qu'après un traitement réussi ; l'enregistrement
    et son statut sont mis à jour dans une seule transaction.
    """
    user_id, side = payload.userId, payload.docType

    # ───────────── 1) Contrôles préalables ─────────────
    crud.get_user_or_404(db, user_id)
    crud.check_document_side(db, user_id, payload.documentType, side)

    # ───────────── 2) Pipeline de traitement ─────────────
    try:
        result = await process_document(
            vision,
            payload.image,
            side,
            payload.documentType,
            country=payload.country,
            selfie_image=payload.selfieImage,
        )
    except DocumentProcessingError as e:
        logging.warning(
            f"Document refusé pour '{user_id}' ({payload.documentType.value}, {side.value}) : "
            f"{e.code} {e.details}"
        )
        raise

    if result.document_type != payload.documentType:
        # Le type déduit du texte peut désigner un enregistrement existant
        crud.check_document_side(db, user_id, result.document_type, side)

    # ───────────── 3) Stockage chiffré ─────────────
    key = document_object_key(user_id, result.document_type.value, side.value)
    storage_key = await asyncio.to_thread(store.put, key, payload.image)

    # ───────────── 4) Enregistrement ─────────────
    record, _ = crud.record_document_side(
        db,
        user_id,
        result.document_type,
        side,
        storage_key,
        result.extracted_fields,
        result.validation_result,
        result.additional_checks,
        country=payload.country,
    )
    events.document_side_recorded(
        user_id, record.id, record.document_type.value, side.value, record.verification_status.value
    )

    return schemas.DocumentUploadResponse(
        documentId=record.id,
        status=record.verification_status,
        documentType=record.document_type,
        side=side,
        sideStatus=record.front_status if side == DocumentSide.FRONT else record.back_status,
        extractedFields=result.extracted_fields,
        validationResult=result.validation_result,
        additionalChecks=result.additional_checks,
        redirect=_redirect_for(record, side),
    )


@router.get("", response_model=Union[schemas.DocumentResponse, List[schemas.DocumentResponse]])
def get_documents(
    documentId: Optional[int] = Query(None),
    userId: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    if documentId is not None:
        return crud.document_to_response(crud.get_document(db, documentId))
    if userId:
        return [crud.document_to_response(record) for record in crud.list_documents(db, userId)]
    raise UserInputError("Either documentId or userId is required")


@router.patch("/{document_id}/status", response_model=schemas.DocumentResponse)
def update_document_status(
    document_id: int,
    payload: schemas.DocumentStatusUpdate,
    db: Session = Depends(get_db),
):
    record = crud.update_document_status(db, document_id, payload.status)
    return crud.document_to_response(record)
