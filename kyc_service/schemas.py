# Fichier: kyc_service/schemas.py

import base64
import binascii
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from config import settings
from kyc_service.enums import (
    DocumentSide, DocumentType, OnboardingStage, SelfieStep, SideStatus, VerificationStatus,
)

PHONE_PATTERN = re.compile(r"^\+?[\d\s-]{8,}$")
DATA_URL_PATTERN = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def decode_image(value: Any) -> bytes:
    """
    Décode une image reçue en base64 (avec ou sans préfixe data URL)
    et applique la limite de taille.
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        encoded = DATA_URL_PATTERN.sub("", value.strip(), count=1)
        if not encoded:
            raise ValueError("Image is empty")
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Image must be a base64 encoded string or data URL")
    else:
        raise ValueError("Image must be a base64 encoded string or data URL")

    if not raw:
        raise ValueError("Image is empty")
    if len(raw) > settings.MAX_IMAGE_SIZE:
        raise ValueError(f"Image exceeds the {settings.MAX_IMAGE_SIZE // (1024 * 1024)}MB size limit")
    return raw


def _required_text(value: str, field_name: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


# =====================================================================
# UTILISATEURS
# =====================================================================

class UserCreate(BaseModel):
    userId: str
    fullName: str
    country: str
    phoneNumber: str

    @field_validator("userId")
    @classmethod
    def check_user_id(cls, value: str) -> str:
        return _required_text(value, "userId")

    @field_validator("fullName")
    @classmethod
    def check_full_name(cls, value: str) -> str:
        value = value.strip()
        if not 2 <= len(value) <= 100:
            raise ValueError("fullName must be between 2 and 100 characters")
        return value

    @field_validator("country")
    @classmethod
    def check_country(cls, value: str) -> str:
        return _required_text(value, "country")

    @field_validator("phoneNumber")
    @classmethod
    def check_phone_number(cls, value: str) -> str:
        value = value.strip()
        if not PHONE_PATTERN.match(value):
            raise ValueError("phoneNumber must contain at least 8 digits, spaces or dashes")
        return value


class UserResponse(BaseModel):
    userId: str
    fullName: str
    country: str
    phoneNumber: str
    verificationPercentage: int
    onboardingStage: Optional[OnboardingStage] = None
    createdAt: Optional[datetime] = None


# =====================================================================
# SELFIE / VIVACITÉ
# =====================================================================

class FrameInput(BaseModel):
    image: bytes
    capturedAt: int = Field(ge=0, description="Instant de capture en millisecondes")

    @field_validator("image", mode="before")
    @classmethod
    def check_image(cls, value: Any) -> bytes:
        return decode_image(value)


class SelfieStepRequest(BaseModel):
    userId: str
    step: SelfieStep
    image: bytes
    frames: Optional[List[FrameInput]] = Field(default=None, max_length=60)

    @field_validator("userId")
    @classmethod
    def check_user_id(cls, value: str) -> str:
        return _required_text(value, "userId")

    @field_validator("image", mode="before")
    @classmethod
    def check_image(cls, value: Any) -> bytes:
        return decode_image(value)


class SelfieResetRequest(BaseModel):
    userId: str


class CompletedStepResponse(BaseModel):
    step: SelfieStep
    storageKey: str
    brightness: Optional[float] = None
    facePosition: Optional[str] = None
    confidence: Optional[float] = None
    capturedAt: datetime


class SelfieStepResponse(BaseModel):
    step: SelfieStep
    progress: int
    nextStep: Optional[SelfieStep] = None
    status: VerificationStatus
    completedSteps: List[SelfieStep]
    message: Optional[str] = None


class SelfieStatusResponse(BaseModel):
    userId: str
    currentStep: SelfieStep
    completedSteps: List[CompletedStepResponse]
    progress: int
    status: VerificationStatus
    attempts: int
    verifiedAt: Optional[datetime] = None


# =====================================================================
# DOCUMENTS
# =====================================================================

class DocumentUploadRequest(BaseModel):
    userId: str
    docType: DocumentSide
    documentType: DocumentType
    country: str
    image: bytes
    selfieImage: Optional[bytes] = None

    @field_validator("userId")
    @classmethod
    def check_user_id(cls, value: str) -> str:
        return _required_text(value, "userId")

    @field_validator("country")
    @classmethod
    def check_country(cls, value: str) -> str:
        return _required_text(value, "country")

    @field_validator("image", mode="before")
    @classmethod
    def check_image(cls, value: Any) -> bytes:
        return decode_image(value)

    @field_validator("selfieImage", mode="before")
    @classmethod
    def check_selfie_image(cls, value: Any) -> Optional[bytes]:
        return None if value is None else decode_image(value)


class DocumentStatusUpdate(BaseModel):
    status: VerificationStatus


class DocumentSideResponse(BaseModel):
    storageKey: str
    uploadedAt: Optional[datetime] = None
    status: Optional[SideStatus] = None


class DocumentResponse(BaseModel):
    documentId: int
    userId: str
    documentType: DocumentType
    country: Optional[str] = None
    front: Optional[DocumentSideResponse] = None
    back: Optional[DocumentSideResponse] = None
    extractedData: Dict[str, Any]
    validationResult: Dict[str, Any]
    additionalChecks: Dict[str, Any]
    verificationStatus: VerificationStatus
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class DocumentUploadResponse(BaseModel):
    documentId: int
    status: VerificationStatus
    documentType: DocumentType
    side: DocumentSide
    sideStatus: SideStatus
    extractedFields: Dict[str, str]
    validationResult: Dict[str, bool]
    additionalChecks: Dict[str, Any]
    redirect: Optional[str] = None
