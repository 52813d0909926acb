"""
Pydantic models for the Legal Memo Assistant backend.

Field names are snake_case in Python and camelCase on the wire so the
dashboard front-end can keep its existing shapes (caseName, identifiedLaws,
similarCases, ...).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model serialising to camelCase and accepting either spelling."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =========================================================================
# Analysis history
# =========================================================================

class AnalysisStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class Analysis(WireModel):
    """One row of the dashboard's recent analyses table."""
    id: str
    case_name: str
    date: str
    status: AnalysisStatus = AnalysisStatus.PENDING


# =========================================================================
# Memo result
# =========================================================================

class MemoSection(WireModel):
    title: str
    content: str


class Memo(WireModel):
    title: str
    sections: list[MemoSection] = []


class IdentifiedLaw(WireModel):
    name: str


class SimilarCase(WireModel):
    """A retrieved case summary."""
    id: str
    name: str
    summary: str


class MemoResult(WireModel):
    """Final output of a successful analysis run. Immutable once built."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    memo: Memo
    summary: str
    identified_laws: list[IdentifiedLaw] = []
    similar_cases: list[SimilarCase] = []


# =========================================================================
# Flow schemas (request/response of each generative call)
# =========================================================================

class EmbeddingRequest(WireModel):
    """Either a data URI or a URL pointing at the document."""
    document_data_uri: Optional[str] = None
    document_url: Optional[str] = None


class EmbeddingResponse(WireModel):
    embedding: list[float]


class RetrievalRequest(WireModel):
    document_embedding: list[float] = Field(..., min_length=1)
    top_k: int = Field(default=3, ge=1, le=50)


class RetrievalResponse(WireModel):
    similar_cases: list[SimilarCase]


class PreliminaryMemoInput(WireModel):
    document_text: str
    similar_cases: list[str] = []
    user_instructions: Optional[str] = None


class PreliminaryMemoOutput(WireModel):
    preliminary_memo: str
    identified_laws: list[str]
    summary: str


class RefineMemoInput(WireModel):
    original_memo: str
    user_feedback: str
    original_input: str


class RefineMemoOutput(WireModel):
    refined_memo: str


class MultiDocumentMemoInput(WireModel):
    document_texts: list[str] = Field(..., min_length=1)
    user_instructions: Optional[str] = None


class MultiDocumentMemoOutput(WireModel):
    memo: str


# =========================================================================
# REST responses
# =========================================================================

class AnalysisRunResponse(WireModel):
    """Result of POST /api/v1/analyses."""
    analysis: Analysis
    result: Optional[MemoResult] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class StorageStatusResponse(WireModel):
    """Configuration banner shown by the dashboard."""
    configured: bool
    missing: list[str] = []
    message: Optional[str] = None


class HealthResponse(WireModel):
    status: str
    version: str
    storage: str
