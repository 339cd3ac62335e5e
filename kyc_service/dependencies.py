# Fichier: kyc_service/dependencies.py
"""Dépendances FastAPI partagées par les routeurs (surchargées dans les tests)."""
from functools import lru_cache

from kyc_service.database import get_db  # noqa: F401  (réexporté pour les routeurs)
from kyc_service.events import EventPublisher
from kyc_service.processor.vision_client import RekognitionVisionClient, VisionProvider
from kyc_service.storage import ObjectStore


@lru_cache()
def get_vision_client() -> VisionProvider:
    return RekognitionVisionClient()


@lru_cache()
def get_object_store() -> ObjectStore:
    return ObjectStore()


@lru_cache()
def get_event_publisher() -> EventPublisher:
    return EventPublisher()
