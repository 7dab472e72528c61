"""Structured-output models for biomarker extraction."""

from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

BiomarkerCategory = Literal[
    "vitamins", "hormones", "lipids", "metabolic", "minerals", "inflammatory", "other"
]
DocumentType = Literal["lab_report", "blood_test", "urine_test", "imaging_report", "other"]

_CATEGORIES = {"vitamins", "hormones", "lipids", "metabolic", "minerals", "inflammatory", "other"}


class ExtractedBiomarker(BaseModel):
    """One biomarker value as reported by the model."""
    name: str = Field(..., description="Biomarker name exactly as it appears in the document")
    value: float = Field(..., description="Numeric result")
    unit: str = Field(..., description="Unit of measurement")
    reference_range: Optional[str] = Field(default=None, description="Reference range text, if printed")
    confidence: float = Field(..., ge=0, le=1, description="Extraction confidence between 0 and 1")
    source_text: str = Field(default="", description="The line of the document the value was read from")
    category: BiomarkerCategory = Field(default="other")
    aliases: Optional[List[str]] = Field(default=None)

    @field_validator("category", mode="before")
    @classmethod
    def _unknown_category_is_other(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in _CATEGORIES:
            return value.lower()
        return "other"


class BiomarkerExtractionOutput(BaseModel):
    """Top-level object the extraction model must return."""
    biomarkers: List[ExtractedBiomarker]
    document_type: Optional[DocumentType] = None
    processing_notes: List[str] = Field(default_factory=list)
    total_biomarkers_found: int = Field(default=0, ge=0)


class MatchedBiomarker(ExtractedBiomarker):
    """An extracted biomarker after catalog matching."""
    biomarker_id: Optional[UUID] = None
    matched_from_db: bool = False
    reference_range: str = "Not specified"
    aliases: List[str] = Field(default_factory=list)
