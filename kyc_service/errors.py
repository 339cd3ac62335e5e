# Fichier: kyc_service/errors.py
"""
Hiérarchie d'erreurs du service KYC.

Chaque erreur porte un code machine, un message lisible, un statut HTTP et
des détails optionnels. Le gestionnaire enregistré dans main.py les
transforme en réponse JSON {"error", "message", "details"}.
"""
from typing import Any, Dict, Optional


class KycError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


# ───────────────────────────────────────────────
# 400 : erreurs de saisie, corrigeables par le client
# ───────────────────────────────────────────────
class UserInputError(KycError):
    status_code = 400
    code = "INVALID_REQUEST"


class StepOrderError(UserInputError):
    code = "INVALID_STEP_ORDER"


class VerificationCompleteError(UserInputError):
    code = "VERIFICATION_COMPLETE"


class StepNotVerifiedError(UserInputError):
    code = "STEP_NOT_VERIFIED"


class AttemptsExhaustedError(UserInputError):
    code = "ATTEMPTS_EXHAUSTED"


class SideAlreadyUploadedError(UserInputError):
    code = "SIDE_ALREADY_UPLOADED"


class DocumentCompleteError(UserInputError):
    code = "DOCUMENT_COMPLETE"


class DocumentRejectedError(UserInputError):
    code = "DOCUMENT_REJECTED"


class DocumentProcessingError(UserInputError):
    """Erreur typée du pipeline documentaire (reprendre la photo)."""

    NO_FACE_DETECTED = "NO_FACE_DETECTED"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


# ───────────────────────────────────────────────
# 404 / 409
# ───────────────────────────────────────────────
class NotFoundError(KycError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(KycError):
    status_code = 409
    code = "USER_EXISTS"


# ───────────────────────────────────────────────
# 500 / 503 : fournisseur ou infrastructure
# ───────────────────────────────────────────────
class ProviderError(KycError):
    status_code = 500
    code = "PROVIDER_ERROR"


class ClockSkewError(ProviderError):
    status_code = 503
    code = "CLOCK_SKEW"


class StorageError(KycError):
    status_code = 500
    code = "STORAGE_ERROR"
