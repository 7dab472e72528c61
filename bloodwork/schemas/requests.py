"""Request bodies of the processing and analysis triggers."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProcessDocumentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: UUID = Field(..., alias="documentId")
    user_id: UUID = Field(..., alias="userId")


class GenerateAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: UUID = Field(..., alias="documentId")
    user_id: UUID = Field(..., alias="userId")
