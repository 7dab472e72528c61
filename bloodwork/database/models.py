"""SQLAlchemy models for all database tables."""

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bloodwork.core.database import Base


class Document(Base):
    """Uploaded blood-test file and its processing lifecycle."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    original_name: Mapped[str | None] = mapped_column(String, nullable=True)
    mime_type: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | uploading | processing | completed | failed
    processing_errors: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    extracted_biomarkers: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, nullable=True)
    ocr_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    processing_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    processing_started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    processing_completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    processing_updates: Mapped[list["DocumentProcessingUpdate"]] = relationship(
        "DocumentProcessingUpdate", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    readings: Mapped[list["BiomarkerReading"]] = relationship(
        "BiomarkerReading", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    analyses: Mapped[list["HealthAnalysis"]] = relationship(
        "HealthAnalysis", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )


class DocumentProcessingUpdate(Base):
    """Append-only progress row written by the document pipeline."""

    __tablename__ = "document_processing_updates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    document: Mapped["Document"] = relationship("Document", back_populates="processing_updates")


class Biomarker(Base):
    """Catalog entry for a known biomarker."""

    __tablename__ = "biomarkers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other")
    aliases: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)
    optimal_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    optimal_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    conventional_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    conventional_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    optimal_ranges: Mapped[list["BiomarkerOptimalRange"]] = relationship(
        "BiomarkerOptimalRange", back_populates="biomarker", cascade="all, delete-orphan", passive_deletes=True
    )


class BiomarkerOptimalRange(Base):
    """Demographic-specific optimal range for a catalog biomarker."""

    __tablename__ = "biomarker_optimal_ranges"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    biomarker_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("biomarkers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    gender: Mapped[str | None] = mapped_column(String, nullable=True)  # male | female | None for any
    age_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    age_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    optimal_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    optimal_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit: Mapped[str | None] = mapped_column(String, nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    source: Mapped[str | None] = mapped_column(String, nullable=True)

    biomarker: Mapped["Biomarker"] = relationship("Biomarker", back_populates="optimal_ranges")


class BiomarkerReading(Base):
    """One extracted value from one document."""

    __tablename__ = "biomarker_readings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    biomarker_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("biomarkers.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False)
    reference_range: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    matched_from_db: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="other")
    status: Mapped[str] = mapped_column(String, nullable=False, default="unknown")
    severity: Mapped[str | None] = mapped_column(String, nullable=True)
    source_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    document: Mapped["Document"] = relationship("Document", back_populates="readings")
    biomarker: Mapped["Biomarker | None"] = relationship("Biomarker")


class UserProfile(Base):
    """Demographic and health-context profile used to personalize analyses."""

    __tablename__ = "user_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, unique=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    height_cm: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight_kg: Mapped[float | None] = mapped_column(Float, nullable=True)
    activity_level: Mapped[str | None] = mapped_column(String, nullable=True)
    health_goals: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    medical_conditions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    medications: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    allergies: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    dietary_preferences: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class HealthAnalysis(Base):
    """LLM-produced assessment of one document's readings."""

    __tablename__ = "health_analyses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | completed | failed
    core_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    supplements_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    diet_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    lifestyle_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    workout_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    health_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    health_category: Mapped[str | None] = mapped_column(String, nullable=True)
    overall_assessment: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    biomarker_insights: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, nullable=True)
    root_cause_analysis: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONB, nullable=True)
    monitoring_plan: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    personalization_factors: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    evidence_summary: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    next_steps: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_update_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    document: Mapped["Document"] = relationship("Document", back_populates="analyses")
    processing_updates: Mapped[list["AnalysisProcessingUpdate"]] = relationship(
        "AnalysisProcessingUpdate", back_populates="analysis", cascade="all, delete-orphan", passive_deletes=True
    )
    supplement_recommendations: Mapped[list["SupplementRecommendation"]] = relationship(
        "SupplementRecommendation", cascade="all, delete-orphan", passive_deletes=True
    )
    diet_recommendations: Mapped[list["DietRecommendation"]] = relationship(
        "DietRecommendation", cascade="all, delete-orphan", passive_deletes=True
    )
    lifestyle_recommendations: Mapped[list["LifestyleRecommendation"]] = relationship(
        "LifestyleRecommendation", cascade="all, delete-orphan", passive_deletes=True
    )
    workout_recommendations: Mapped[list["WorkoutRecommendation"]] = relationship(
        "WorkoutRecommendation", cascade="all, delete-orphan", passive_deletes=True
    )


class AnalysisProcessingUpdate(Base):
    """Append-only progress row written by the analysis pipeline."""

    __tablename__ = "analysis_processing_updates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health_analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phase: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    analysis: Mapped["HealthAnalysis"] = relationship("HealthAnalysis", back_populates="processing_updates")


class SupplementRecommendation(Base):
    __tablename__ = "supplement_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health_analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    form: Mapped[str | None] = mapped_column(String, nullable=True)
    dosage: Mapped[str | None] = mapped_column(String, nullable=True)
    frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    timing: Mapped[str | None] = mapped_column(String, nullable=True)
    duration: Mapped[str | None] = mapped_column(String, nullable=True)
    priority: Mapped[str] = mapped_column(String, nullable=False, default="beneficial")
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_biomarkers: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    expected_improvement: Mapped[str | None] = mapped_column(Text, nullable=True)
    contraindications: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    drug_interactions: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    monitoring: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost_estimate: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class DietRecommendation(Base):
    __tablename__ = "diet_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health_analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    specific_foods: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_biomarkers: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    implementation: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_timeline: Mapped[str | None] = mapped_column(String, nullable=True)
    portion_guidance: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class LifestyleRecommendation(Base):
    __tablename__ = "lifestyle_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health_analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    specific_recommendation: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_biomarkers: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    implementation_steps: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    expected_benefits: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class WorkoutRecommendation(Base):
    __tablename__ = "workout_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("health_analyses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_type: Mapped[str] = mapped_column(String, nullable=False)
    specific_exercises: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    duration: Mapped[str | None] = mapped_column(String, nullable=True)
    intensity: Mapped[str | None] = mapped_column(String, nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_biomarkers: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    progression: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class OpenAIUsageLog(Base):
    """Token accounting for one model request."""

    __tablename__ = "openai_usage_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    request_type: Mapped[str] = mapped_column(String, nullable=False)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str] = mapped_column(String, nullable=False)
    prompt_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_per_1k_tokens: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, nullable=False)
    # "metadata" is reserved on declarative classes
    usage_metadata: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
