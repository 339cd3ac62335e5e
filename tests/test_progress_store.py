"""
Unit tests for the transactional verification progress store
"""
import pytest

from config import settings
from kyc_service import crud
from kyc_service.enums import (
    DocumentSide, DocumentType, OnboardingStage, SelfieStep, SideStatus, VerificationStatus,
)
from kyc_service.errors import (
    AttemptsExhaustedError, ConflictError, DocumentCompleteError, DocumentRejectedError, NotFoundError,
    SideAlreadyUploadedError, StepOrderError, UserInputError, VerificationCompleteError,
)
from kyc_service.models import SelfieVerification
from kyc_service.schemas import UserCreate

USER_ID = "user-001"
PROFILE = UserCreate(userId=USER_ID, fullName="Ama Mensah", country="Ghana", phoneNumber="+233 24 123 4567")
ALL_STEPS = [SelfieStep.FRONT, SelfieStep.LEFT, SelfieStep.RIGHT, SelfieStep.BLINK]


@pytest.fixture
def user(db_session):
    return crud.create_user(db_session, PROFILE)


def submit(db, step, key=None):
    return crud.update_step(db, USER_ID, step, key or f"{USER_ID}/selfie/{step.value}/selfie.jpg", {"brightness": 70.0})


# ───────────── users ─────────────

def test_duplicate_user_conflicts(db_session, user):
    with pytest.raises(ConflictError) as exc_info:
        crud.create_user(db_session, PROFILE)

    assert exc_info.value.message == "User ID already exists"


def test_unknown_user_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        crud.get_status(db_session, "ghost")


# ───────────── selfie steps ─────────────

def test_initialize_is_idempotent(db_session):
    first = crud.initialize(db_session, USER_ID, PROFILE)
    second = crud.initialize(db_session, USER_ID)

    assert first.id == second.id
    assert second.current_step == SelfieStep.FRONT
    assert crud.get_user(db_session, USER_ID).full_name == "Ama Mensah"


def test_steps_in_order_verify_and_bump_percentage(db_session, user):
    for step in ALL_STEPS:
        verification, just_completed = submit(db_session, step)

    assert just_completed
    assert verification.verification_status == VerificationStatus.VERIFIED
    assert verification.verified_at is not None
    assert crud.completed_step_ids(verification) == ALL_STEPS
    assert crud.selfie_progress(verification) == 100
    assert crud.get_user(db_session, USER_ID).verification_percentage == settings.SELFIE_PERCENTAGE_INCREMENT


def test_replay_overwrites_without_duplicate(db_session, user):
    submit(db_session, SelfieStep.FRONT, key="first.jpg")
    submit(db_session, SelfieStep.LEFT)
    verification, _ = submit(db_session, SelfieStep.FRONT, key="second.jpg")

    assert verification.current_step == SelfieStep.RIGHT
    assert crud.completed_step_ids(verification) == [SelfieStep.FRONT, SelfieStep.LEFT]
    assert verification.completed_steps[0].storage_key == "second.jpg"
    assert verification.attempts == 3


@pytest.mark.parametrize("ahead", [SelfieStep.LEFT, SelfieStep.RIGHT, SelfieStep.BLINK])
def test_step_ahead_of_current_is_rejected(db_session, user, ahead):
    with pytest.raises(StepOrderError) as exc_info:
        submit(db_session, ahead)

    assert exc_info.value.code == "INVALID_STEP_ORDER"
    assert exc_info.value.details["currentStep"] == "front"


def test_terminal_state_rejects_further_steps(db_session, user):
    for step in ALL_STEPS:
        verification, _ = submit(db_session, step)
    attempts_before = verification.attempts

    with pytest.raises(VerificationCompleteError):
        submit(db_session, SelfieStep.FRONT)

    db_session.expire_all()
    refreshed = crud.get_active_verification(db_session, USER_ID)
    assert refreshed.attempts == attempts_before
    assert len(refreshed.completed_steps) == 4


def test_percentage_is_capped(db_session, user):
    user.verification_percentage = 90
    db_session.commit()

    for step in ALL_STEPS:
        submit(db_session, step)

    assert crud.get_user(db_session, USER_ID).verification_percentage == 100


def test_attempts_are_bounded(db_session, user, monkeypatch):
    monkeypatch.setattr(settings, "MAX_SELFIE_ATTEMPTS", 2)
    submit(db_session, SelfieStep.FRONT)
    submit(db_session, SelfieStep.FRONT)

    with pytest.raises(AttemptsExhaustedError):
        submit(db_session, SelfieStep.LEFT)


def test_reject_opens_a_fresh_record(db_session, user):
    submit(db_session, SelfieStep.FRONT)
    old = crud.get_active_verification(db_session, USER_ID)

    fresh = crud.reject(db_session, USER_ID)

    assert fresh.id != old.id
    assert fresh.current_step == SelfieStep.FRONT
    assert fresh.verification_status == VerificationStatus.INCOMPLETE
    assert db_session.get(SelfieVerification, old.id).verification_status == VerificationStatus.REJECTED
    assert crud.get_status(db_session, USER_ID)["progress"] == 0


def test_repeated_selfie_sequence_counts_once(db_session, user):
    for _ in range(4):
        for step in ALL_STEPS:
            submit(db_session, step)
        crud.reset(db_session, USER_ID)

    assert crud.get_user(db_session, USER_ID).verification_percentage == settings.SELFIE_PERCENTAGE_INCREMENT


def test_status_before_first_step(db_session, user):
    snapshot = crud.get_status(db_session, USER_ID)

    assert snapshot["currentStep"] == SelfieStep.FRONT
    assert snapshot["completedSteps"] == []
    assert snapshot["status"] == VerificationStatus.INCOMPLETE


# ───────────── documents ─────────────

def record_side(db, side, fields=None, document_type=DocumentType.PASSPORT, checks=None):
    return crud.record_document_side(
        db, USER_ID, document_type, side, f"{USER_ID}/{document_type.value}/{side.value}/doc.jpg",
        fields or {}, {}, checks or {"ageVerified": None}, country="Ghana",
    )


def test_document_verified_only_with_both_sides(db_session, user):
    record, completed = record_side(db_session, DocumentSide.FRONT, {"passportNumber": "G12345678"}, checks={"ageVerified": True})
    assert not completed
    assert record.verification_status == VerificationStatus.INCOMPLETE
    assert record.front_status == SideStatus.COMPLETED

    record, completed = record_side(db_session, DocumentSide.BACK, {"dateOfExpiry": "01/01/2030"})

    assert completed
    assert record.verification_status == VerificationStatus.VERIFIED
    assert record.extracted_data == {"passportNumber": "G12345678", "dateOfExpiry": "01/01/2030"}
    assert record.additional_checks["ageVerified"] is True
    assert crud.get_user(db_session, USER_ID).verification_percentage == settings.DOCUMENT_PERCENTAGE_INCREMENT


def test_same_side_twice_is_rejected(db_session, user):
    record_side(db_session, DocumentSide.FRONT)

    with pytest.raises(SideAlreadyUploadedError) as exc_info:
        crud.check_document_side(db_session, USER_ID, DocumentType.PASSPORT, DocumentSide.FRONT)

    assert exc_info.value.message == "Front side already uploaded"
    with pytest.raises(SideAlreadyUploadedError):
        record_side(db_session, DocumentSide.FRONT)


def test_complete_document_rejects_any_side(db_session, user):
    record_side(db_session, DocumentSide.FRONT)
    record_side(db_session, DocumentSide.BACK)

    with pytest.raises(DocumentCompleteError):
        crud.check_document_side(db_session, USER_ID, DocumentType.PASSPORT, DocumentSide.BACK)


def test_one_record_per_document_type(db_session, user):
    record_side(db_session, DocumentSide.FRONT)
    record_side(db_session, DocumentSide.FRONT, document_type=DocumentType.VOTER_ID)

    assert len(crud.list_documents(db_session, USER_ID)) == 2


def test_verified_status_needs_both_sides(db_session, user):
    record, _ = record_side(db_session, DocumentSide.FRONT)

    with pytest.raises(UserInputError):
        crud.update_document_status(db_session, record.id, VerificationStatus.VERIFIED)

    updated = crud.update_document_status(db_session, record.id, VerificationStatus.PENDING)
    assert updated.verification_status == VerificationStatus.PENDING


def test_rejected_document_refuses_other_side(db_session, user):
    record, _ = record_side(db_session, DocumentSide.FRONT)
    crud.update_document_status(db_session, record.id, VerificationStatus.REJECTED)

    with pytest.raises(DocumentRejectedError):
        crud.check_document_side(db_session, USER_ID, DocumentType.PASSPORT, DocumentSide.BACK)
    with pytest.raises(DocumentRejectedError):
        record_side(db_session, DocumentSide.BACK)

    db_session.expire_all()
    assert crud.get_document(db_session, record.id).verification_status == VerificationStatus.REJECTED
    assert crud.get_user(db_session, USER_ID).verification_percentage == 0


def test_second_complete_document_counts_once(db_session, user):
    for document_type in (DocumentType.PASSPORT, DocumentType.VOTER_ID):
        record_side(db_session, DocumentSide.FRONT, document_type=document_type)
        record, completed = record_side(db_session, DocumentSide.BACK, document_type=document_type)
        assert completed
        assert record.verification_status == VerificationStatus.VERIFIED

    assert crud.get_user(db_session, USER_ID).verification_percentage == settings.DOCUMENT_PERCENTAGE_INCREMENT


# ───────────── onboarding stage ─────────────

def test_onboarding_stage_progression(db_session):
    assert crud.get_onboarding_stage(db_session, USER_ID) == OnboardingStage.PRELOAD

    crud.create_user(db_session, PROFILE)
    assert crud.get_onboarding_stage(db_session, USER_ID) == OnboardingStage.SELFIE

    for step in ALL_STEPS:
        submit(db_session, step)
    assert crud.get_onboarding_stage(db_session, USER_ID) == OnboardingStage.DOCUMENT_FRONT

    record_side(db_session, DocumentSide.FRONT)
    assert crud.get_onboarding_stage(db_session, USER_ID) == OnboardingStage.DOCUMENT_BACK

    record_side(db_session, DocumentSide.BACK)
    assert crud.get_onboarding_stage(db_session, USER_ID) == OnboardingStage.COMPLETE
