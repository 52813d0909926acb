"""
Legal Memo Assistant - document analysis and preliminary memo drafting

This module provides:
- Document ingestion with size validation and text extraction
- Upload to S3-compatible object storage
- Document embeddings via Voyage AI and similar-case retrieval
- Schema-validated memo flows (draft, refine, multi-document)
- A state-machine orchestrator tying the steps together for the dashboard
"""

__version__ = "0.1.0"

from .errors import ErrorKind, ServiceError
from .ingestor import DocumentIngestor
from .object_store import ObjectStoreClient
from .embeddings import DocumentEmbeddingService
from .retriever import CaseRetriever, StaticCaseRetriever, PgVectorCaseRetriever
from .flows import MemoFlows
from .history import AnalysisHistory
from .orchestrator import AnalysisOrchestrator

__all__ = [
    "ErrorKind",
    "ServiceError",
    "DocumentIngestor",
    "ObjectStoreClient",
    "DocumentEmbeddingService",
    "CaseRetriever",
    "StaticCaseRetriever",
    "PgVectorCaseRetriever",
    "MemoFlows",
    "AnalysisHistory",
    "AnalysisOrchestrator",
]
