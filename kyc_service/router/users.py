# Fichier: kyc_service/router/users.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from kyc_service import crud, schemas
from kyc_service.dependencies import get_db
from kyc_service.models import User

router = APIRouter(prefix="/users")


def _user_response(user: User, stage=None) -> schemas.UserResponse:
    return schemas.UserResponse(
        userId=user.user_id,
        fullName=user.full_name,
        country=user.country,
        phoneNumber=user.phone_number,
        verificationPercentage=user.verification_percentage or 0,
        onboardingStage=stage,
        createdAt=user.created_at,
    )


@router.post("", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    """
    Enregistre les informations personnelles (étape "preload").
    Un userId déjà connu renvoie 409.
    """
    user = crud.create_user(db, user_in)
    return _user_response(user, crud.get_onboarding_stage(db, user.user_id))


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = crud.get_user_or_404(db, user_id)
    return _user_response(user, crud.get_onboarding_stage(db, user_id))
