# Fichier: kyc_service/crud.py
"""
Stockage transactionnel de la progression KYC.

Chaque mutation est une transaction unique qui commence par verrouiller la
ligne `users` du propriétaire (SELECT ... FOR UPDATE) : deux requêtes
concurrentes pour un même utilisateur sont donc sérialisées par la base.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from kyc_service.enums import (
    SELFIE_STEP_ORDER, DocumentSide, DocumentType, OnboardingStage, SelfieStep, SideStatus, VerificationStatus,
)
from kyc_service.errors import (
    AttemptsExhaustedError, ConflictError, DocumentCompleteError, DocumentRejectedError, KycError, NotFoundError,
    SideAlreadyUploadedError, StepOrderError, UserInputError, VerificationCompleteError,
)
from kyc_service.models import DocumentRecord, SelfieStepCapture, SelfieVerification, User
from kyc_service.schemas import UserCreate


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _database_error(e: SQLAlchemyError) -> KycError:
    logging.error(f"Erreur base de données : {e}", exc_info=True)
    return KycError("A database error occurred", code="DATABASE_ERROR")


# =====================================================================
# UTILISATEURS
# =====================================================================

def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.user_id == user_id).first()


def get_user_or_404(db: Session, user_id: str) -> User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError(f"User '{user_id}' not found", code="USER_NOT_FOUND")
    return user


def _lock_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.user_id == user_id).with_for_update().first()
    if not user:
        raise NotFoundError(f"User '{user_id}' not found", code="USER_NOT_FOUND")
    return user


def _bump_percentage(user: User, increment: int):
    current = user.verification_percentage or 0
    user.verification_percentage = min(100, current + increment)


def _selfie_milestone_reached(db: Session, user_id: str, exclude_id: int) -> bool:
    # Un enregistrement rejeté après vérification garde sa date `verified_at`
    return db.query(SelfieVerification).filter(
        SelfieVerification.user_id == user_id,
        SelfieVerification.id != exclude_id,
        SelfieVerification.verified_at.isnot(None),
    ).first() is not None


def _document_milestone_reached(db: Session, user_id: str, exclude_id: Optional[int]) -> bool:
    query = db.query(DocumentRecord).filter(
        DocumentRecord.user_id == user_id,
        DocumentRecord.front_storage_key.isnot(None),
        DocumentRecord.back_storage_key.isnot(None),
    )
    if exclude_id is not None:
        query = query.filter(DocumentRecord.id != exclude_id)
    return query.first() is not None


def create_user(db: Session, user_in: UserCreate) -> User:
    if get_user(db, user_in.userId):
        raise ConflictError("User ID already exists", details={"userId": user_in.userId})

    user = User(
        user_id=user_in.userId,
        full_name=user_in.fullName,
        country=user_in.country,
        phone_number=user_in.phoneNumber,
        verification_percentage=0,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User ID already exists", details={"userId": user_in.userId})
    db.refresh(user)
    logging.info(f"Utilisateur '{user.user_id}' créé.")
    return user


# =====================================================================
# SELFIE : PROGRESSION DES ÉTAPES
# =====================================================================

def get_active_verification(db: Session, user_id: str) -> Optional[SelfieVerification]:
    """Dernier enregistrement non rejeté de l'utilisateur."""
    return (
        db.query(SelfieVerification)
        .filter(
            SelfieVerification.user_id == user_id,
            SelfieVerification.verification_status != VerificationStatus.REJECTED,
        )
        .order_by(SelfieVerification.id.desc())
        .first()
    )


def _new_verification(db: Session, user_id: str) -> SelfieVerification:
    verification = SelfieVerification(
        user_id=user_id,
        current_step=SelfieStep.FRONT,
        verification_status=VerificationStatus.INCOMPLETE,
        attempts=0,
    )
    db.add(verification)
    db.flush()
    return verification


def completed_step_ids(verification: Optional[SelfieVerification]) -> List[SelfieStep]:
    if verification is None:
        return []
    return [capture.step for capture in verification.completed_steps]


def selfie_progress(verification: Optional[SelfieVerification]) -> int:
    return int(len(completed_step_ids(verification)) * 100 / len(SELFIE_STEP_ORDER))


def assert_step_allowed(verification: Optional[SelfieVerification], step: SelfieStep):
    """Règles d'ordre, de rejeu et d'état terminal. Ne modifie rien."""
    if verification is None:
        current, done, attempts = SelfieStep.FRONT, [], 0
    else:
        current, done, attempts = verification.current_step, completed_step_ids(verification), verification.attempts

    if verification is not None and verification.verification_status == VerificationStatus.VERIFIED \
            and len(done) == len(SELFIE_STEP_ORDER):
        raise VerificationCompleteError("Selfie verification is already complete")

    if step != current and step not in done and step.index > current.index:
        raise StepOrderError(
            f"Step '{step.value}' cannot be submitted before '{current.value}'",
            details={"currentStep": current.value, "requestedStep": step.value},
        )

    if attempts >= settings.MAX_SELFIE_ATTEMPTS:
        raise AttemptsExhaustedError(
            "Maximum number of attempts reached. Please restart the selfie verification.",
            details={"attempts": attempts},
        )


def check_selfie_step(db: Session, user_id: str, step: SelfieStep):
    """Pré-contrôle en lecture seule, avant d'appeler le fournisseur de vision."""
    get_user_or_404(db, user_id)
    assert_step_allowed(get_active_verification(db, user_id), step)


def initialize(db: Session, user_id: str, profile: Optional[UserCreate] = None) -> SelfieVerification:
    """
    Retourne l'enregistrement actif de l'utilisateur ou en crée un à l'étape
    'front'. Si `profile` est fourni, l'utilisateur est créé au besoin.
    """
    try:
        if profile is not None and not get_user(db, user_id):
            db.add(User(
                user_id=user_id,
                full_name=profile.fullName,
                country=profile.country,
                phone_number=profile.phoneNumber,
                verification_percentage=0,
            ))
            db.flush()
        _lock_user(db, user_id)
        verification = get_active_verification(db, user_id)
        if verification is None:
            verification = _new_verification(db, user_id)
            logging.info(f"Vérification selfie initialisée pour '{user_id}'.")
        db.commit()
    except KycError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise _database_error(e) from e
    db.refresh(verification)
    return verification


def update_step(
    db: Session,
    user_id: str,
    step: SelfieStep,
    storage_key: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Tuple[SelfieVerification, bool]:
    """
    Enregistre une étape validée par le moteur de vivacité.

    Retourne (enregistrement, terminé_maintenant). Tout est commité ensemble
    (étape, pointeur, statut, pourcentage) ou rien ne l'est.
    """
    metadata = metadata or {}
    just_completed = False
    try:
        user = _lock_user(db, user_id)
        verification = get_active_verification(db, user_id) or _new_verification(db, user_id)
        assert_step_allowed(verification, step)

        existing = next((c for c in verification.completed_steps if c.step == step), None)
        if existing is not None:
            # Rejeu : on remplace l'image et les métadonnées, sans doublon
            capture = existing
        else:
            capture = SelfieStepCapture(step=step, position=len(verification.completed_steps))
            verification.completed_steps.append(capture)
        capture.storage_key = storage_key
        capture.brightness = metadata.get("brightness")
        capture.face_position = metadata.get("facePosition")
        capture.confidence = metadata.get("confidence")
        capture.captured_at = _now()

        verification.attempts = (verification.attempts or 0) + 1

        if step == verification.current_step:
            next_step = step.next_step()
            if next_step is not None:
                verification.current_step = next_step
            elif set(completed_step_ids(verification)) == set(SELFIE_STEP_ORDER):
                verification.verification_status = VerificationStatus.VERIFIED
                verification.verified_at = _now()
                if not _selfie_milestone_reached(db, user_id, verification.id):
                    _bump_percentage(user, settings.SELFIE_PERCENTAGE_INCREMENT)
                just_completed = True

        db.commit()
    except KycError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise _database_error(e) from e

    db.refresh(verification)
    logging.info(
        f"Étape selfie '{step.value}' enregistrée pour '{user_id}' "
        f"(étape courante: {verification.current_step.value}, statut: {verification.verification_status.value})."
    )
    return verification, just_completed


def selfie_snapshot(user_id: str, verification: Optional[SelfieVerification]) -> Dict[str, Any]:
    if verification is None:
        return {
            "userId": user_id,
            "currentStep": SelfieStep.FRONT,
            "completedSteps": [],
            "progress": 0,
            "status": VerificationStatus.INCOMPLETE,
            "attempts": 0,
            "verifiedAt": None,
        }
    return {
        "userId": user_id,
        "currentStep": verification.current_step,
        "completedSteps": [
            {
                "step": c.step,
                "storageKey": c.storage_key,
                "brightness": c.brightness,
                "facePosition": c.face_position,
                "confidence": c.confidence,
                "capturedAt": c.captured_at,
            }
            for c in verification.completed_steps
        ],
        "progress": selfie_progress(verification),
        "status": verification.verification_status,
        "attempts": verification.attempts,
        "verifiedAt": verification.verified_at,
    }


def get_status(db: Session, user_id: str) -> Dict[str, Any]:
    get_user_or_404(db, user_id)
    return selfie_snapshot(user_id, get_active_verification(db, user_id))


def reject(db: Session, user_id: str) -> SelfieVerification:
    """Rejette l'enregistrement actif et ouvre immédiatement un nouvel enregistrement à 'front'."""
    try:
        _lock_user(db, user_id)
        current = get_active_verification(db, user_id)
        if current is not None:
            current.verification_status = VerificationStatus.REJECTED
            db.flush()
        fresh = _new_verification(db, user_id)
        db.commit()
    except KycError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise _database_error(e) from e
    db.refresh(fresh)
    logging.info(f"Vérification selfie de '{user_id}' rejetée, nouvel enregistrement ouvert.")
    return fresh


# La réinitialisation côté API est un rejet suivi d'un nouvel enregistrement
reset = reject


# =====================================================================
# DOCUMENTS
# =====================================================================

def find_document(db: Session, user_id: str, document_type: DocumentType, lock: bool = False) -> Optional[DocumentRecord]:
    query = db.query(DocumentRecord).filter(
        DocumentRecord.user_id == user_id,
        DocumentRecord.document_type == document_type,
    )
    if lock:
        query = query.with_for_update()
    return query.first()


def get_document(db: Session, document_id: int) -> DocumentRecord:
    record = db.query(DocumentRecord).filter(DocumentRecord.id == document_id).first()
    if not record:
        raise NotFoundError(f"Document '{document_id}' not found", code="DOCUMENT_NOT_FOUND")
    return record


def list_documents(db: Session, user_id: str) -> List[DocumentRecord]:
    get_user_or_404(db, user_id)
    return (
        db.query(DocumentRecord)
        .filter(DocumentRecord.user_id == user_id)
        .order_by(DocumentRecord.id)
        .all()
    )


def assert_side_open(record: Optional[DocumentRecord], side: DocumentSide):
    if record is None:
        return
    if record.verification_status == VerificationStatus.REJECTED:
        raise DocumentRejectedError(
            "Document has been rejected",
            details={"documentId": record.id, "documentType": record.document_type.value},
        )
    if record.has_front and record.has_back:
        raise DocumentCompleteError(
            "Document already complete",
            details={"documentId": record.id, "documentType": record.document_type.value},
        )
    if (side == DocumentSide.FRONT and record.has_front) or (side == DocumentSide.BACK and record.has_back):
        raise SideAlreadyUploadedError(
            f"{side.value.capitalize()} side already uploaded",
            details={"documentId": record.id, "side": side.value},
        )


def check_document_side(db: Session, user_id: str, document_type: DocumentType, side: DocumentSide):
    """Pré-contrôle en lecture seule avant traitement et stockage de l'image."""
    assert_side_open(find_document(db, user_id, document_type), side)


def _merge_checks(previous: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Any]:
    # Une valeur inconnue (None) du verso n'écrase pas un résultat du recto
    merged = dict(previous or {})
    for key, value in new.items():
        if value is not None or key not in merged:
            merged[key] = value
    return merged


def record_document_side(
    db: Session,
    user_id: str,
    document_type: DocumentType,
    side: DocumentSide,
    storage_key: str,
    extracted_fields: Dict[str, str],
    validation_result: Dict[str, bool],
    additional_checks: Dict[str, Any],
    country: Optional[str] = None,
) -> Tuple[DocumentRecord, bool]:
    """
    Crée ou complète l'enregistrement (utilisateur, type de document) avec
    une face traitée, puis recalcule le statut dans la même transaction.
    Retourne (enregistrement, document_complet_maintenant).
    """
    just_completed = False
    try:
        user = _lock_user(db, user_id)
        record = find_document(db, user_id, document_type, lock=True)
        assert_side_open(record, side)

        if record is None:
            record = DocumentRecord(
                user_id=user_id,
                document_type=document_type,
                country=country,
                extracted_data={},
                validation_result={},
                additional_checks={},
                verification_status=VerificationStatus.INCOMPLETE,
            )
            db.add(record)

        uploaded_at = _now()
        if side == DocumentSide.FRONT:
            record.front_storage_key = storage_key
            record.front_uploaded_at = uploaded_at
            record.front_status = SideStatus.COMPLETED
        else:
            record.back_storage_key = storage_key
            record.back_uploaded_at = uploaded_at
            record.back_status = SideStatus.COMPLETED

        # Nouveaux dictionnaires : SQLAlchemy ne suit pas les mutations internes du JSON
        record.extracted_data = {**(record.extracted_data or {}), **extracted_fields}
        record.validation_result = {**(record.validation_result or {}), **validation_result}
        record.additional_checks = _merge_checks(record.additional_checks, additional_checks)

        if record.has_front and record.has_back:
            record.verification_status = VerificationStatus.VERIFIED
            if not _document_milestone_reached(db, user_id, record.id):
                _bump_percentage(user, settings.DOCUMENT_PERCENTAGE_INCREMENT)
            just_completed = True

        db.commit()
    except KycError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise _database_error(e) from e

    db.refresh(record)
    logging.info(
        f"Document {document_type.value} ({side.value}) enregistré pour '{user_id}', "
        f"statut '{record.verification_status.value}'."
    )
    return record, just_completed


def update_document_status(db: Session, document_id: int, status: VerificationStatus) -> DocumentRecord:
    try:
        record = db.query(DocumentRecord).filter(DocumentRecord.id == document_id).with_for_update().first()
        if not record:
            raise NotFoundError(f"Document '{document_id}' not found", code="DOCUMENT_NOT_FOUND")
        if status == VerificationStatus.VERIFIED and not (record.has_front and record.has_back):
            raise UserInputError(
                "A document cannot be verified before both sides are uploaded",
                code="DOCUMENT_INCOMPLETE",
                details={"documentId": document_id},
            )
        record.verification_status = status
        db.commit()
    except KycError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise _database_error(e) from e
    db.refresh(record)
    logging.info(f"Document '{document_id}' mis à jour avec le statut '{status.value}'.")
    return record


def document_to_response(record: DocumentRecord) -> Dict[str, Any]:
    def side_payload(storage_key, uploaded_at, status):
        if storage_key is None:
            return None
        return {"storageKey": storage_key, "uploadedAt": uploaded_at, "status": status}

    return {
        "documentId": record.id,
        "userId": record.user_id,
        "documentType": record.document_type,
        "country": record.country,
        "front": side_payload(record.front_storage_key, record.front_uploaded_at, record.front_status),
        "back": side_payload(record.back_storage_key, record.back_uploaded_at, record.back_status),
        "extractedData": record.extracted_data or {},
        "validationResult": record.validation_result or {},
        "additionalChecks": record.additional_checks or {},
        "verificationStatus": record.verification_status,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


# =====================================================================
# PARCOURS D'ONBOARDING
# =====================================================================

def get_onboarding_stage(db: Session, user_id: str) -> OnboardingStage:
    """preload -> selfie -> recto du document -> verso -> terminé."""
    if not get_user(db, user_id):
        return OnboardingStage.PRELOAD

    verification = get_active_verification(db, user_id)
    if verification is None or verification.verification_status != VerificationStatus.VERIFIED:
        return OnboardingStage.SELFIE

    documents = db.query(DocumentRecord).filter(DocumentRecord.user_id == user_id).all()
    if any(d.has_front and d.has_back for d in documents):
        return OnboardingStage.COMPLETE
    if any(d.has_front for d in documents):
        return OnboardingStage.DOCUMENT_BACK
    return OnboardingStage.DOCUMENT_FRONT
