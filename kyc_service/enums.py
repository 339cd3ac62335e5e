# Fichier: kyc_service/enums.py
import enum
from typing import Optional


class DocumentType(enum.Enum):
    NATIONAL_CARD = "NATIONAL_CARD"
    PASSPORT = "PASSPORT"
    DRIVERS_LICENSE = "DRIVERS_LICENSE"
    VOTER_ID = "VOTER_ID"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        # Alias historique de la carte nationale ghanéenne
        if isinstance(value, str):
            normalized = value.strip().upper().replace("-", "_").replace(" ", "_")
            if normalized == "GHANA_CARD":
                return cls.NATIONAL_CARD
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class DocumentSide(enum.Enum):
    FRONT = "front"
    BACK = "back"


class SelfieStep(enum.Enum):
    FRONT = "front"
    LEFT = "left"
    RIGHT = "right"
    BLINK = "blink"

    @property
    def index(self) -> int:
        return SELFIE_STEP_ORDER.index(self)

    def next_step(self) -> Optional["SelfieStep"]:
        position = self.index + 1
        return SELFIE_STEP_ORDER[position] if position < len(SELFIE_STEP_ORDER) else None


# Ordre fixe de la séquence de vivacité
SELFIE_STEP_ORDER = [SelfieStep.FRONT, SelfieStep.LEFT, SelfieStep.RIGHT, SelfieStep.BLINK]


class VerificationStatus(enum.Enum):
    INCOMPLETE = "INCOMPLETE"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class SideStatus(enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class OnboardingStage(enum.Enum):
    PRELOAD = "PRELOAD"
    SELFIE = "SELFIE"
    DOCUMENT_FRONT = "DOCUMENT_FRONT"
    DOCUMENT_BACK = "DOCUMENT_BACK"
    COMPLETE = "COMPLETE"
