"""
Shared fixtures: in-memory SQLite store, fake vision provider and object store.
"""
import base64
import os
import tempfile

# Environment must be ready before any project module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="kyc-logs-")
os.environ["STORAGE_ENCRYPTION_KEY"] = "test-storage-password"
os.environ["KAFKA_BROKER"] = ""

import pytest

from kyc_service.database import Base, SessionLocal, engine
from kyc_service.processor.vision_client import (
    EyesOpen, FaceAttributes, FaceComparison, FaceDetection, ImageQuality, Label, Pose,
    TextDetection, TextKind, VisionProvider,
)


# ───────────────────────────────────────────────
# Builders
# ───────────────────────────────────────────────
def face(yaw=0.0, pitch=0.0, roll=0.0, brightness=80.0, sharpness=80.0, eyes_open=True, eyes_confidence=99.0):
    return FaceDetection(
        found=True,
        face_count=1,
        attributes=FaceAttributes(
            pose=Pose(yaw=yaw, pitch=pitch, roll=roll),
            quality=ImageQuality(brightness=brightness, sharpness=sharpness),
            eyes_open=EyesOpen(is_open=eyes_open, confidence=eyes_confidence),
            confidence=99.5,
        ),
    )


def no_face():
    return FaceDetection(found=False)


def text_lines(*lines):
    return [TextDetection(text=line, kind=TextKind.LINE) for line in lines]


def labels(*names):
    return [Label(name=name, confidence=95.0) for name in names]


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def data_url(data: bytes) -> str:
    return "data:image/jpeg;base64," + b64(data)


# ───────────────────────────────────────────────
# Fakes
# ───────────────────────────────────────────────
class FakeVisionProvider(VisionProvider):
    """Vision provider answering from dictionaries keyed by image bytes."""

    def __init__(self):
        self.faces = {}
        self.texts = {}
        self.labels = {}
        self.comparison = FaceComparison(matched=True, similarity=97.0)
        self.errors = {}
        self.calls = []

    def _raise_if_configured(self, operation):
        if operation in self.errors:
            raise self.errors[operation]

    def detect_faces(self, image):
        self.calls.append(("detect_faces", image))
        self._raise_if_configured("detect_faces")
        return self.faces.get(image, no_face())

    def detect_text(self, image):
        self.calls.append(("detect_text", image))
        self._raise_if_configured("detect_text")
        return self.texts.get(image, [])

    def detect_labels(self, image):
        self.calls.append(("detect_labels", image))
        self._raise_if_configured("detect_labels")
        return self.labels.get(image, [])

    def compare_faces(self, source, target, min_similarity):
        self.calls.append(("compare_faces", source))
        self._raise_if_configured("compare_faces")
        return self.comparison

    def operations(self):
        return [name for name, _ in self.calls]


class FakeObjectStore:

    def __init__(self):
        self.objects = {}

    def put(self, key, data, content_type="image/jpeg"):
        self.objects[key] = data
        return key


class FakeEventPublisher:

    def __init__(self):
        self.events = []

    def selfie_verified(self, user_id, verified_at):
        self.events.append(("selfie_verified", user_id))

    def document_side_recorded(self, user_id, document_id, document_type, side, status):
        self.events.append(("document_side_recorded", user_id, document_type, side, status))


# ───────────────────────────────────────────────
# Fixtures
# ───────────────────────────────────────────────
@pytest.fixture
def db_session():
    from kyc_service import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def vision():
    return FakeVisionProvider()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def event_publisher():
    return FakeEventPublisher()


@pytest.fixture
def client(db_session, vision, object_store, event_publisher):
    from fastapi.testclient import TestClient

    from kyc_service.dependencies import get_event_publisher, get_object_store, get_vision_client
    from kyc_service.main import app

    app.dependency_overrides[get_vision_client] = lambda: vision
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_event_publisher] = lambda: event_publisher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
