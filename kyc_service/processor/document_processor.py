# Fichier: kyc_service/processor/document_processor.py
"""
Pipeline de traitement d'une face de document d'identité.

  1. Recto uniquement : présence d'un visage (sinon NO_FACE_DETECTED).
  2. Détection de texte et de labels lancées en parallèle.
  3. Contrôle des labels (sinon INVALID_DOCUMENT).
  4. Type revendiqué, ou déduit du texte s'il est inconnu.
  5. Extraction puis validation des champs.
  6. Champs obligatoires par (type, face) (sinon EXTRACTION_FAILED).
  7. Contrôles additionnels : majorité, et comparaison au selfie si fourni.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from config import settings
from kyc_service.enums import DocumentSide, DocumentType
from kyc_service.errors import ClockSkewError, DocumentProcessingError, ProviderError
from kyc_service.processor.document_classifier import detect_document_type
from kyc_service.processor.document_validator import is_over_eighteen, validate_document
from kyc_service.processor.field_extractor import extract_relevant_fields
from kyc_service.processor.vision_client import TextDetection, TextKind, VisionProvider

# ───────────────────────────────────────────────
# Champs obligatoires par (type de document, face)
# ───────────────────────────────────────────────
REQUIRED_FIELDS: Dict[DocumentType, Dict[DocumentSide, List[str]]] = {
    DocumentType.NATIONAL_CARD: {
        DocumentSide.FRONT: ["cardNumber", "fullName"],
        DocumentSide.BACK: ["dateOfExpiry", "dateOfIssue"],
    },
    DocumentType.PASSPORT: {
        DocumentSide.FRONT: ["passportNumber", "fullName", "dateOfBirth"],
        DocumentSide.BACK: ["dateOfExpiry"],
    },
    DocumentType.DRIVERS_LICENSE: {
        DocumentSide.FRONT: ["licenseNumber", "fullName", "dateOfBirth"],
        DocumentSide.BACK: ["dateOfExpiry"],
    },
    DocumentType.VOTER_ID: {
        DocumentSide.FRONT: ["voterIdNumber", "fullName"],
        DocumentSide.BACK: ["pollingStation"],
    },
    DocumentType.UNKNOWN: {
        DocumentSide.FRONT: [],
        DocumentSide.BACK: [],
    },
}

# Labels Rekognition acceptés comme "document d'identité" (comparaison en minuscules)
VALID_DOCUMENT_LABELS = {"id cards", "id card", "driving license", "passport", "document"}


class ProcessingResult(BaseModel):
    document_type: DocumentType
    side: DocumentSide
    extracted_fields: Dict[str, str]
    validation_result: Dict[str, bool]
    additional_checks: Dict[str, Any]


def required_fields(document_type: DocumentType, side: DocumentSide) -> List[str]:
    return REQUIRED_FIELDS.get(document_type, {}).get(side, [])


def find_missing_fields(document_type: DocumentType, side: DocumentSide, fields: Dict[str, str]) -> List[str]:
    return [name for name in required_fields(document_type, side) if not fields.get(name)]


def _text_lines(detections: List[TextDetection]) -> List[str]:
    lines = [d.text for d in detections if d.kind == TextKind.LINE]
    return lines or [d.text for d in detections]


async def _detect_text_and_labels(vision: VisionProvider, image: bytes):
    text_task = asyncio.create_task(asyncio.to_thread(vision.detect_text, image))
    labels_task = asyncio.create_task(asyncio.to_thread(vision.detect_labels, image))
    try:
        detections = await text_task
    except Exception:
        # Sans texte aucune décision n'est possible : on abandonne les labels
        labels_task.cancel()
        raise
    labels = await labels_task
    return detections, labels


async def process_document(
    vision: VisionProvider,
    image: bytes,
    side: DocumentSide,
    document_type: DocumentType,
    country: Optional[str] = None,
    selfie_image: Optional[bytes] = None,
    reference_date: Optional[date] = None,
) -> ProcessingResult:
    context = {"documentType": document_type.value, "docSide": side.value}
    try:
        # 1) Visage (recto)
        if side == DocumentSide.FRONT:
            faces = await asyncio.to_thread(vision.detect_faces, image)
            if not faces.found:
                raise DocumentProcessingError(
                    "No face detected on the front of the document. Please retake the photo.",
                    code=DocumentProcessingError.NO_FACE_DETECTED,
                    details=context,
                )

        # 2) Texte + labels en parallèle
        detections, labels = await _detect_text_and_labels(vision, image)

        # 3) Contrôle des labels
        label_names = {label.name.lower() for label in labels}
        if not label_names & VALID_DOCUMENT_LABELS:
            raise DocumentProcessingError(
                "The image does not look like an identity document.",
                code=DocumentProcessingError.INVALID_DOCUMENT,
                details={**context, "labels": sorted(label.name for label in labels)},
            )

        # 4) Type de document
        lines = _text_lines(detections)
        resolved_type = document_type
        if resolved_type == DocumentType.UNKNOWN:
            resolved_type = detect_document_type(lines, side, country)
            logging.info(f"Type de document déduit du texte : {resolved_type.value}")

        # 5) Extraction + validation
        fields = extract_relevant_fields(resolved_type, lines, country)
        validation = validate_document(resolved_type, fields, country)

        # 6) Champs obligatoires
        missing = find_missing_fields(resolved_type, side, fields)
        if missing:
            raise DocumentProcessingError(
                f"Missing required fields: {', '.join(missing)}",
                code=DocumentProcessingError.EXTRACTION_FAILED,
                details={**context, "documentType": resolved_type.value, "missing": missing},
            )

        # 7) Contrôles additionnels
        additional_checks: Dict[str, Any] = {
            "ageVerified": is_over_eighteen(fields.get("dateOfBirth"), reference_date),
        }
        if selfie_image is not None and side == DocumentSide.FRONT:
            comparison = await asyncio.to_thread(
                vision.compare_faces, selfie_image, image, settings.FACE_SIMILARITY_THRESHOLD
            )
            additional_checks["faceMatch"] = comparison.model_dump()

    except DocumentProcessingError:
        raise
    except ClockSkewError:
        raise
    except ProviderError as e:
        logging.error(
            f"Échec du traitement du document ({document_type.value}, {side.value}) : {e.message}",
            exc_info=True,
        )
        raise DocumentProcessingError(
            "Failed to process the document image. Please try again.",
            code=DocumentProcessingError.EXTRACTION_FAILED,
            details={**context, "originalError": e.details.get("originalError", e.message)},
        ) from e

    return ProcessingResult(
        document_type=resolved_type,
        side=side,
        extracted_fields=fields,
        validation_result=validation,
        additional_checks=additional_checks,
    )
