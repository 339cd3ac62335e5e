# Fichier: kyc_service/models.py

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, JSON, UniqueConstraint,
    Enum as SQLAlchemyEnum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from kyc_service.database import Base
from kyc_service.enums import (
    DocumentType, SelfieStep, SideStatus, VerificationStatus,
)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=False)
    country = Column(String, nullable=False)
    phone_number = Column(String, nullable=False)
    # 0..100, ne décroît jamais
    verification_percentage = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    selfie_verifications = relationship("SelfieVerification", back_populates="user")
    documents = relationship("DocumentRecord", back_populates="user")


class SelfieVerification(Base):
    __tablename__ = "selfie_verifications"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    current_step = Column(SQLAlchemyEnum(SelfieStep), nullable=False, default=SelfieStep.FRONT)
    verification_status = Column(
        SQLAlchemyEnum(VerificationStatus), nullable=False, default=VerificationStatus.INCOMPLETE
    )
    attempts = Column(Integer, nullable=False, default=0)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="selfie_verifications")
    completed_steps = relationship(
        "SelfieStepCapture",
        back_populates="verification",
        order_by="SelfieStepCapture.position",
        cascade="all, delete-orphan",
    )


class SelfieStepCapture(Base):
    __tablename__ = "selfie_step_captures"
    __table_args__ = (UniqueConstraint("verification_id", "step", name="uq_capture_step"),)

    id = Column(Integer, primary_key=True, index=True)
    verification_id = Column(Integer, ForeignKey("selfie_verifications.id"), nullable=False)
    step = Column(SQLAlchemyEnum(SelfieStep), nullable=False)
    position = Column(Integer, nullable=False)
    storage_key = Column(String, nullable=False)
    brightness = Column(Float, nullable=True)
    face_position = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)
    captured_at = Column(DateTime(timezone=True), nullable=False)

    verification = relationship("SelfieVerification", back_populates="completed_steps")


class DocumentRecord(Base):
    __tablename__ = "document_records"
    __table_args__ = (UniqueConstraint("user_id", "document_type", name="uq_user_document_type"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    document_type = Column(SQLAlchemyEnum(DocumentType), nullable=False)
    country = Column(String, nullable=True)

    # Recto
    front_storage_key = Column(String, nullable=True)
    front_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    front_status = Column(SQLAlchemyEnum(SideStatus), nullable=True)

    # Verso
    back_storage_key = Column(String, nullable=True)
    back_uploaded_at = Column(DateTime(timezone=True), nullable=True)
    back_status = Column(SQLAlchemyEnum(SideStatus), nullable=True)

    extracted_data = Column(JSON, nullable=False, default=dict)
    validation_result = Column(JSON, nullable=False, default=dict)
    additional_checks = Column(JSON, nullable=False, default=dict)

    verification_status = Column(
        SQLAlchemyEnum(VerificationStatus), nullable=False, default=VerificationStatus.INCOMPLETE
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="documents")

    @property
    def has_front(self) -> bool:
        return self.front_storage_key is not None

    @property
    def has_back(self) -> bool:
        return self.back_storage_key is not None
