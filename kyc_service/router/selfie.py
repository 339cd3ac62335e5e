# Fichier: kyc_service/router/selfie.py
import asyncio
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from kyc_service import crud, schemas
from kyc_service.dependencies import get_db, get_event_publisher, get_object_store, get_vision_client
from kyc_service.enums import VerificationStatus
from kyc_service.errors import ProviderError, StepNotVerifiedError
from kyc_service.events import EventPublisher
from kyc_service.processor.liveness import FrameSample, check_capture, evaluate_step
from kyc_service.processor.vision_client import VisionProvider
from kyc_service.storage import ObjectStore, selfie_object_key

router = APIRouter(prefix="/selfie-steps")


@router.post("", response_model=schemas.SelfieStepResponse)
async def submit_selfie_step(
    payload: schemas.SelfieStepRequest,
    db: Session = Depends(get_db),
    vision: VisionProvider = Depends(get_vision_client),
    store: ObjectStore = Depends(get_object_store),
    events: EventPublisher = Depends(get_event_publisher),
):
    """
    Soumet une étape de vivacité (front, left, right, blink).

    Ordre : pré-contrôle de l'ordre -> analyse des images -> stockage de
    l'image -> mise à jour atomique de la progression.
    """
    user_id, step = payload.userId, payload.step

    # 1) Ordre / état terminal, avant tout appel au fournisseur
    crud.check_selfie_step(db, user_id, step)

    # 2) Analyse de chaque échantillon et de l'image à conserver (une fois par image distincte)
    if payload.frames:
        captures = [(frame.image, frame.capturedAt) for frame in payload.frames]
    else:
        captures = [(payload.image, 0)]
    images = list(dict.fromkeys([payload.image] + [image for image, _ in captures]))
    try:
        detections = await asyncio.gather(
            *(asyncio.to_thread(vision.detect_faces, image) for image in images)
        )
    except ProviderError as e:
        logging.error(f"Analyse du selfie impossible (utilisateur '{user_id}', étape '{step.value}') : {e.message}")
        raise
    detection_by_image = dict(zip(images, detections))

    samples = [
        FrameSample(detection=detection_by_image[image], captured_at_ms=captured_at)
        for image, captured_at in captures
    ]
    evaluation = evaluate_step(step, samples)
    if evaluation.passed and payload.frames:
        # Les échantillons ne valident pas l'image stockée : elle est contrôlée seule
        capture_check = check_capture(step, detection_by_image[payload.image])
        if not capture_check.passed:
            evaluation = capture_check
    if not evaluation.passed:
        logging.info(f"Étape '{step.value}' refusée pour '{user_id}' : {evaluation.message}")
        raise StepNotVerifiedError(
            evaluation.message,
            details={"step": step.value, "metadata": evaluation.metadata},
        )

    # 3) Stockage de l'image validée
    storage_key = await asyncio.to_thread(store.put, selfie_object_key(user_id, step.value), payload.image)

    # 4) Progression (transaction unique)
    verification, just_completed = crud.update_step(db, user_id, step, storage_key, evaluation.metadata)
    if just_completed:
        events.selfie_verified(user_id, verification.verified_at)

    verified = verification.verification_status == VerificationStatus.VERIFIED
    return schemas.SelfieStepResponse(
        step=step,
        progress=crud.selfie_progress(verification),
        nextStep=None if verified else verification.current_step,
        status=verification.verification_status,
        completedSteps=crud.completed_step_ids(verification),
        message=evaluation.message,
    )


@router.get("", response_model=schemas.SelfieStatusResponse)
def get_selfie_status(userId: str = Query(...), db: Session = Depends(get_db)):
    return crud.get_status(db, userId)


@router.post("/reset", response_model=schemas.SelfieStatusResponse)
def reset_selfie_verification(payload: schemas.SelfieResetRequest, db: Session = Depends(get_db)):
    """Rejette la tentative en cours et repart de l'étape 'front'."""
    verification = crud.reset(db, payload.userId)
    return crud.selfie_snapshot(payload.userId, verification)
