# Fichier: kyc_service/processor/vision_client.py
"""
Adaptateur du fournisseur de vision.

`VisionProvider` décrit le contrat consommé par le pipeline documentaire et
le moteur de vivacité. `RekognitionVisionClient` l'implémente avec AWS
Rekognition via boto3. Toutes les erreurs du fournisseur sortent d'ici
normalisées en ProviderError / ClockSkewError.
"""
import enum
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from config import settings
from kyc_service.errors import ClockSkewError, ProviderError


# ───────────────────────────────────────────────
# 1) Modèles de réponse (attributs optionnels explicites)
# ───────────────────────────────────────────────
class Pose(BaseModel):
    yaw: float
    pitch: float
    roll: float


class ImageQuality(BaseModel):
    brightness: float
    sharpness: float


class EyesOpen(BaseModel):
    is_open: bool
    confidence: float


class FaceAttributes(BaseModel):
    pose: Optional[Pose] = None
    quality: Optional[ImageQuality] = None
    eyes_open: Optional[EyesOpen] = None
    confidence: Optional[float] = None


class FaceDetection(BaseModel):
    found: bool
    face_count: int = 0
    attributes: Optional[FaceAttributes] = None


class TextKind(enum.Enum):
    LINE = "LINE"
    WORD = "WORD"


class TextDetection(BaseModel):
    text: str
    kind: TextKind


class Label(BaseModel):
    name: str
    confidence: float


class FaceComparison(BaseModel):
    matched: bool
    similarity: Optional[float] = None


# ───────────────────────────────────────────────
# 2) Contrat abstrait
# ───────────────────────────────────────────────
class VisionProvider(ABC):
    """Contrat minimal d'un fournisseur de vision."""

    @abstractmethod
    def detect_faces(self, image: bytes) -> FaceDetection:
        ...

    @abstractmethod
    def detect_text(self, image: bytes) -> List[TextDetection]:
        ...

    @abstractmethod
    def detect_labels(self, image: bytes) -> List[Label]:
        ...

    @abstractmethod
    def compare_faces(self, source: bytes, target: bytes, min_similarity: float) -> FaceComparison:
        ...


# ───────────────────────────────────────────────
# 3) Implémentation AWS Rekognition
# ───────────────────────────────────────────────
# Codes d'erreur AWS qui signalent une horloge serveur désynchronisée
CLOCK_SKEW_ERROR_CODES = {"InvalidSignatureException", "RequestTimeTooSkewed"}


def _is_clock_skew(error: ClientError) -> bool:
    err = error.response.get("Error", {})
    code = err.get("Code", "")
    if code in CLOCK_SKEW_ERROR_CODES:
        return True
    return code == "SignatureDoesNotMatch" and "time" in (err.get("Message") or "").lower()


class RekognitionVisionClient(VisionProvider):

    def __init__(self, client=None, region_name: Optional[str] = None):
        if client is None:
            client = boto3.client(
                "rekognition",
                region_name=region_name or settings.AWS_REGION,
                config=Config(
                    retries={"max_attempts": settings.VISION_MAX_ATTEMPTS, "mode": "standard"},
                    connect_timeout=settings.VISION_CONNECT_TIMEOUT,
                    read_timeout=settings.VISION_READ_TIMEOUT,
                ),
            )
        self._client = client

    def _call(self, operation: str, **kwargs) -> dict:
        try:
            return getattr(self._client, operation)(**kwargs)
        except ClientError as e:
            if _is_clock_skew(e):
                logging.error(f"[Vision] Décalage d'horloge détecté sur '{operation}': {e}")
                raise ClockSkewError(
                    "Server time is out of sync with the vision provider. Please try again later.",
                    details={"operation": operation},
                ) from e
            logging.error(f"[Vision] Erreur du fournisseur sur '{operation}': {e}")
            raise ProviderError(
                f"Vision provider call '{operation}' failed",
                details={"operation": operation, "originalError": str(e)},
            ) from e
        except BotoCoreError as e:
            logging.error(f"[Vision] Erreur de transport sur '{operation}': {e}")
            raise ProviderError(
                f"Vision provider call '{operation}' failed",
                details={"operation": operation, "originalError": str(e)},
            ) from e

    def detect_faces(self, image: bytes) -> FaceDetection:
        response = self._call("detect_faces", Image={"Bytes": image}, Attributes=["ALL"])
        faces = response.get("FaceDetails") or []
        if not faces:
            return FaceDetection(found=False)
        return FaceDetection(found=True, face_count=len(faces), attributes=_to_face_attributes(faces[0]))

    def detect_text(self, image: bytes) -> List[TextDetection]:
        response = self._call("detect_text", Image={"Bytes": image})
        detections = []
        for item in response.get("TextDetections") or []:
            kind = item.get("Type")
            text = item.get("DetectedText")
            if text is None or kind not in ("LINE", "WORD"):
                continue
            detections.append(TextDetection(text=text, kind=TextKind(kind)))
        return detections

    def detect_labels(self, image: bytes) -> List[Label]:
        response = self._call(
            "detect_labels",
            Image={"Bytes": image},
            MaxLabels=settings.LABEL_MAX_RESULTS,
            MinConfidence=settings.LABEL_MIN_CONFIDENCE,
        )
        return [
            Label(name=item["Name"], confidence=item.get("Confidence", 0.0))
            for item in response.get("Labels") or []
            if item.get("Name")
        ]

    def compare_faces(self, source: bytes, target: bytes, min_similarity: float) -> FaceComparison:
        try:
            response = self._call(
                "compare_faces",
                SourceImage={"Bytes": source},
                TargetImage={"Bytes": target},
                SimilarityThreshold=min_similarity,
                QualityFilter="HIGH",
            )
        except ProviderError as e:
            # Rekognition répond InvalidParameterException quand une des images n'a aucun visage
            original = e.__cause__
            if isinstance(original, ClientError) and \
                    original.response.get("Error", {}).get("Code") == "InvalidParameterException":
                logging.warning("[Vision] compare_faces : aucun visage exploitable dans une des images.")
                return FaceComparison(matched=False)
            raise

        best_similarity = None
        for match in response.get("FaceMatches") or []:
            yaw = ((match.get("Face") or {}).get("Pose") or {}).get("Yaw")
            # Seules les correspondances quasi frontales comptent
            if yaw is None or abs(yaw) >= settings.FACE_MATCH_MAX_YAW:
                continue
            similarity = match.get("Similarity")
            if similarity is not None and (best_similarity is None or similarity > best_similarity):
                best_similarity = similarity

        return FaceComparison(matched=best_similarity is not None, similarity=best_similarity)


def _to_face_attributes(face: dict) -> FaceAttributes:
    pose = face.get("Pose")
    quality = face.get("Quality")
    eyes = face.get("EyesOpen")
    return FaceAttributes(
        pose=Pose(yaw=pose["Yaw"], pitch=pose["Pitch"], roll=pose["Roll"])
        if pose and all(k in pose for k in ("Yaw", "Pitch", "Roll")) else None,
        quality=ImageQuality(brightness=quality["Brightness"], sharpness=quality["Sharpness"])
        if quality and "Brightness" in quality and "Sharpness" in quality else None,
        eyes_open=EyesOpen(is_open=eyes["Value"], confidence=eyes.get("Confidence", 0.0))
        if eyes and "Value" in eyes else None,
        confidence=face.get("Confidence"),
    )
