"""Streaming biomarker extraction from document text."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from bloodwork.core.exceptions import StructuredResponseError
from bloodwork.core.llm_client import OpenAIStreamingClient
from bloodwork.prompts.extraction_prompts import (
    BIOMARKER_EXTRACTION_SYSTEM_PROMPT,
    build_extraction_input,
)
from bloodwork.schemas.extraction import BiomarkerExtractionOutput, MatchedBiomarker
from bloodwork.services.ai.stream_accumulator import TokenUsage
from bloodwork.services.ai.stream_consumer import consume_stream
from bloodwork.services.ai.usage_tracker import UsageTracker
from bloodwork.services.matching.biomarker_matcher import BiomarkerMatcher, CatalogEntry
from bloodwork.services.progress.reasoning_narrator import ReasoningNarrator
from bloodwork.utils.json_schema import strict_json_schema
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)

EXTRACTION_SCHEMA_NAME = "biomarker_extraction"
EXTRACTION_SCHEMA = strict_json_schema(BiomarkerExtractionOutput)


@dataclass
class BiomarkerExtractionResult:
    biomarkers: List[MatchedBiomarker]
    document_type: Optional[str]
    confidence: float
    notes: List[str]
    model: str
    usage: Optional[TokenUsage] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def matched_count(self) -> int:
        return sum(1 for biomarker in self.biomarkers if biomarker.matched_from_db)


def validate_extraction_payload(payload: Dict[str, Any]) -> BiomarkerExtractionOutput:
    """Check the parsed model output against the extraction schema.

    Raises:
        StructuredResponseError: If ``biomarkers`` is missing or not a list,
            or any field fails validation
    """
    if not isinstance(payload.get("biomarkers"), list):
        raise StructuredResponseError("Invalid AI response structure: 'biomarkers' must be a list")
    try:
        return BiomarkerExtractionOutput.model_validate(payload)
    except PydanticValidationError as e:
        raise StructuredResponseError(
            f"AI response does not match extraction schema: {e.error_count()} errors",
            original_error=e,
        ) from e


class BiomarkerExtractionClient:
    """Turns document text into matched biomarker candidates.

    One streaming structured-output request per call. Nothing is retried;
    a failure propagates to the caller.
    """

    def __init__(
        self,
        llm_client: OpenAIStreamingClient,
        matcher: Optional[BiomarkerMatcher] = None,
        usage_tracker: Optional[UsageTracker] = None,
        model: Optional[str] = None,
    ):
        self.llm_client = llm_client
        self.matcher = matcher or BiomarkerMatcher()
        self.usage_tracker = usage_tracker
        self.model = model or llm_client.model

    async def extract(
        self,
        text: str,
        catalog: Sequence[CatalogEntry],
        *,
        narrator: Optional[ReasoningNarrator] = None,
        user_id: Optional[UUID] = None,
        request_id: Optional[str] = None,
    ) -> BiomarkerExtractionResult:
        """Extract and match biomarkers.

        Args:
            text: Document text
            catalog: Known biomarkers, fetched fresh for this job
            narrator: Receives reasoning summaries for live progress
            user_id: Owner, for usage accounting
            request_id: Document id, for usage accounting

        Raises:
            AIResponseError: If the stream fails
            StructuredResponseError: If the output is not valid extraction JSON
        """
        LOGGER.info(
            "Starting biomarker extraction",
            extra={"text_length": len(text), "catalog_size": len(catalog), "model": self.model},
        )

        events = self.llm_client.stream_structured(
            instructions=BIOMARKER_EXTRACTION_SYSTEM_PROMPT,
            input_text=build_extraction_input(text, catalog),
            schema_name=EXTRACTION_SCHEMA_NAME,
            schema=EXTRACTION_SCHEMA,
            model=self.model,
        )
        stream_result = await consume_stream(events, narrator=narrator)

        if self.usage_tracker is not None:
            await self.usage_tracker.save_usage(
                stream_result.usage,
                model=self.model,
                request_type="biomarker_extraction",
                user_id=user_id,
                request_id=request_id,
                metadata={"text_length": len(text), "reasoning_chunks": stream_result.reasoning_chunks},
            )

        output = validate_extraction_payload(stream_result.payload)
        biomarkers = self._match(output, catalog)

        confidence = (
            sum(b.confidence for b in biomarkers) / len(biomarkers) if biomarkers else 0.0
        )
        matched = sum(1 for b in biomarkers if b.matched_from_db)
        notes = [
            f"AI extracted {len(biomarkers)} biomarkers using {self.model}",
            *output.processing_notes,
            f"Database matches: {matched}/{len(biomarkers)}",
        ]

        LOGGER.info(
            "Biomarker extraction finished",
            extra={"biomarkers": len(biomarkers), "matched": matched, "confidence": round(confidence, 3)},
        )
        return BiomarkerExtractionResult(
            biomarkers=biomarkers,
            document_type=output.document_type,
            confidence=confidence,
            notes=notes,
            model=self.model,
            usage=stream_result.usage,
            metadata={
                "reasoning_chunks": stream_result.reasoning_chunks,
                "total_biomarkers_reported": output.total_biomarkers_found,
            },
        )

    def _match(
        self, output: BiomarkerExtractionOutput, catalog: Sequence[CatalogEntry]
    ) -> List[MatchedBiomarker]:
        matched: List[MatchedBiomarker] = []
        for candidate in output.biomarkers:
            entry = self.matcher.match(candidate.name, catalog)
            matched.append(
                MatchedBiomarker(
                    name=candidate.name,
                    value=candidate.value,
                    unit=candidate.unit,
                    reference_range=candidate.reference_range or "Not specified",
                    confidence=candidate.confidence,
                    source_text=candidate.source_text,
                    category=candidate.category or "other",
                    aliases=candidate.aliases or [],
                    biomarker_id=entry.id if entry else None,
                    matched_from_db=entry is not None,
                )
            )
        return matched
