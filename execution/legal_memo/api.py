"""
FastAPI Backend for the Legal Memo Assistant

Provides the dashboard's REST surface: run history, starting an analysis,
viewing completed results, and the standalone memo flows.

Run with: uvicorn execution.legal_memo.api:app --host 0.0.0.0 --port 8000
"""

import os
import asyncio
import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .api_models import (
    Analysis,
    AnalysisRunResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    HealthResponse,
    MemoResult,
    MultiDocumentMemoInput,
    MultiDocumentMemoOutput,
    RefineMemoInput,
    RefineMemoOutput,
    RetrievalRequest,
    RetrievalResponse,
    SimilarCase,
    StorageStatusResponse,
)
from .config import AppConfig
from .embeddings import DocumentEmbeddingService
from .errors import ErrorKind, ServiceError
from .flows import MemoFlows
from .history import AnalysisHistory, AnalysisNotFoundError, AnalysisNotReadyError, filter_similar_cases
from .ingestor import DocumentIngestor, FileTooLargeError
from .llm import GenerativeClient
from .object_store import ObjectStoreClient
from .orchestrator import AnalysisOrchestrator
from .retriever import CaseRetriever, get_case_retriever

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ErrorKind.PERMISSION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NETWORK: 502,
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.UNKNOWN: 500,
}


# =============================================================================
# Service Container - owned by the application, built once per app
# =============================================================================

class ServiceContainer:
    """Builds and caches the service clients for one application instance."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        ingestor: Optional[DocumentIngestor] = None,
        object_store: Optional[ObjectStoreClient] = None,
        embeddings: Optional[DocumentEmbeddingService] = None,
        retriever: Optional[CaseRetriever] = None,
        flows: Optional[MemoFlows] = None,
        history: Optional[AnalysisHistory] = None,
    ):
        self.config = config or AppConfig.from_env()
        self._ingestor = ingestor
        self._object_store = object_store
        self._embeddings = embeddings
        self._retriever = retriever
        self._flows = flows
        self.history = history or AnalysisHistory()
        self._orchestrator = None

    def get_ingestor(self) -> DocumentIngestor:
        if self._ingestor is None:
            self._ingestor = DocumentIngestor(max_bytes=self.config.max_upload_bytes)
        return self._ingestor

    def get_object_store(self) -> ObjectStoreClient:
        if self._object_store is None:
            self._object_store = ObjectStoreClient(self.config.storage)
        return self._object_store

    def get_embeddings(self) -> DocumentEmbeddingService:
        if self._embeddings is None:
            self._embeddings = DocumentEmbeddingService(self.config.embeddings)
        return self._embeddings

    def get_retriever(self) -> CaseRetriever:
        if self._retriever is None:
            self._retriever = get_case_retriever(
                self.config.retriever,
                dimensions=self.config.embeddings.dimensions,
            )
        return self._retriever

    def get_flows(self) -> MemoFlows:
        if self._flows is None:
            self._flows = MemoFlows(GenerativeClient(self.config.llm))
        return self._flows

    def get_orchestrator(self) -> AnalysisOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = AnalysisOrchestrator(
                ingestor=self.get_ingestor(),
                object_store=self.get_object_store(),
                embeddings=self.get_embeddings(),
                retriever=self.get_retriever(),
                flows=self.get_flows(),
                history=self.history,
                top_k=self.config.retriever.top_k,
            )
        return self._orchestrator


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _http_error(error: ServiceError) -> HTTPException:
    """Map a classified service error to an HTTP response."""
    status = ERROR_STATUS[error.kind]
    if isinstance(error, FileTooLargeError):
        status = 413
    return HTTPException(
        status_code=status,
        detail={
            "kind": error.kind.value,
            "message": error.user_message,
            "detail": error.detail,
        },
    )


def _require_analysis(container: ServiceContainer, analysis_id: str) -> Analysis:
    try:
        return container.history.get(analysis_id)
    except AnalysisNotFoundError:
        raise HTTPException(status_code=404, detail="Analysis not found")


def _require_result(container: ServiceContainer, analysis_id: str) -> MemoResult:
    try:
        return container.history.get_result(analysis_id)
    except AnalysisNotFoundError:
        raise HTTPException(status_code=404, detail="Analysis not found")
    except AnalysisNotReadyError:
        raise HTTPException(status_code=409, detail="Analysis Not Ready: This analysis is not yet complete.")


# =============================================================================
# App factory
# =============================================================================

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the FastAPI application around a service container."""
    app = FastAPI(
        title="Legal Memo Assistant API",
        description="Document analysis, similar-case retrieval and preliminary memo drafting",
        version=__version__,
    )
    app.state.container = container or ServiceContainer()

    # Configure CORS: use CORS_ORIGINS env var (comma-separated) or default to localhost
    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:9002,http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:

    @app.get("/api/v1/health", response_model=HealthResponse)
    async def health_check(container: ServiceContainer = Depends(get_container)):
        """Health check endpoint."""
        configured = container.get_object_store().is_configured
        return HealthResponse(
            status="ok",
            version=__version__,
            storage="configured" if configured else "not_configured",
        )

    @app.get("/api/v1/config/storage", response_model=StorageStatusResponse)
    async def storage_status(container: ServiceContainer = Depends(get_container)):
        """Banner data: which storage variables are missing, if any."""
        storage = container.config.storage
        return StorageStatusResponse(
            configured=storage.is_configured,
            missing=storage.missing_vars(),
            message=storage.diagnostic(),
        )

    @app.get("/api/v1/analyses", response_model=list[Analysis])
    async def list_analyses(container: ServiceContainer = Depends(get_container)):
        """Recent analyses, newest first."""
        return container.history.recent()

    @app.post("/api/v1/analyses", response_model=AnalysisRunResponse)
    async def start_analysis(
        file: UploadFile = File(...),
        user_instructions: Optional[str] = Form(None),
        container: ServiceContainer = Depends(get_container),
    ):
        """Upload a document and run the full analysis pipeline."""
        orchestrator = container.get_orchestrator()

        try:
            # Reject by declared size before reading the body
            if file.size is not None:
                orchestrator.ingestor.validate_size(file.size)
            orchestrator.check_ready()
            data = await file.read()
            outcome = await orchestrator.run(
                filename=file.filename or "document",
                data=data,
                content_type=file.content_type,
                user_instructions=user_instructions,
            )
        except ServiceError as e:
            logger.warning(f"Analysis rejected before start: {e.kind.value}: {e.detail}")
            raise _http_error(e)

        return AnalysisRunResponse(
            analysis=outcome.analysis,
            result=outcome.result,
            error=outcome.error.user_message if outcome.error else None,
            error_kind=outcome.error.kind.value if outcome.error else None,
        )

    @app.get("/api/v1/analyses/{analysis_id}", response_model=Analysis)
    async def get_analysis(analysis_id: str, container: ServiceContainer = Depends(get_container)):
        return _require_analysis(container, analysis_id)

    @app.get("/api/v1/analyses/{analysis_id}/result", response_model=MemoResult)
    async def get_analysis_result(analysis_id: str, container: ServiceContainer = Depends(get_container)):
        """Result of a completed analysis (409 until it is Completed)."""
        return _require_result(container, analysis_id)

    @app.get("/api/v1/analyses/{analysis_id}/similar-cases", response_model=list[SimilarCase])
    async def search_similar_cases(
        analysis_id: str,
        search: str = "",
        container: ServiceContainer = Depends(get_container),
    ):
        """Similar cases of a completed analysis, filtered by name or summary."""
        result = _require_result(container, analysis_id)
        return filter_similar_cases(result.similar_cases, search)

    @app.post("/api/v1/embeddings", response_model=EmbeddingResponse)
    async def generate_embedding(
        request: EmbeddingRequest,
        container: ServiceContainer = Depends(get_container),
    ):
        try:
            embedding = await asyncio.to_thread(
                container.get_embeddings().embed_document,
                document_data_uri=request.document_data_uri,
                document_url=request.document_url,
            )
        except ServiceError as e:
            raise _http_error(e)
        return EmbeddingResponse(embedding=embedding)

    @app.post("/api/v1/similar-cases", response_model=RetrievalResponse)
    async def retrieve_similar_cases(
        request: RetrievalRequest,
        container: ServiceContainer = Depends(get_container),
    ):
        try:
            cases = await asyncio.to_thread(
                container.get_retriever().retrieve,
                request.document_embedding,
                request.top_k,
            )
        except ServiceError as e:
            raise _http_error(e)
        return RetrievalResponse(similar_cases=cases)

    @app.post("/api/v1/memos/refine", response_model=RefineMemoOutput)
    async def refine_memo(
        request: RefineMemoInput,
        container: ServiceContainer = Depends(get_container),
    ):
        """Rewrite a memo according to user feedback."""
        try:
            return await asyncio.to_thread(container.get_flows().refine_memo, request)
        except ServiceError as e:
            raise _http_error(e)

    @app.post("/api/v1/memos/multi-document", response_model=MultiDocumentMemoOutput)
    async def multi_document_memo(
        request: MultiDocumentMemoInput,
        container: ServiceContainer = Depends(get_container),
    ):
        try:
            return await asyncio.to_thread(container.get_flows().generate_memo_from_documents, request)
        except ServiceError as e:
            raise _http_error(e)


app = create_app()
