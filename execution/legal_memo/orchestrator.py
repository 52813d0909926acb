"""
Analysis Orchestrator

Runs one analysis as a finite-state machine:

    IDLE -> UPLOADING -> EMBEDDING -> RETRIEVING -> DRAFTING -> FINALIZING -> COMPLETED

Any step may instead move straight to FAILED. Transitions are forward-only;
there is no retry and no cancellation.

``transition()`` is a pure function from (state, event) to (state, effect).
AnalysisOrchestrator drives it, performing each step's remote call as one
await, and records the outcome in the AnalysisHistory.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Union

from .api_models import (
    Analysis,
    IdentifiedLaw,
    Memo,
    MemoResult,
    MemoSection,
    PreliminaryMemoInput,
    PreliminaryMemoOutput,
    SimilarCase,
)
from .embeddings import DocumentEmbeddingService
from .errors import ErrorKind, ServiceError, classify_error
from .flows import MemoFlows
from .history import FINAL_STATUSES, AnalysisHistory
from .ingestor import DocumentIngestor, IngestedDocument, build_storage_key
from .object_store import ObjectStoreClient
from .retriever import DEFAULT_TOP_K, CaseRetriever

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Your preliminary case memorandum is ready for review."


# =============================================================================
# State machine
# =============================================================================

class Stage(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    DRAFTING = "drafting"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


PIPELINE = (
    Stage.UPLOADING,
    Stage.EMBEDDING,
    Stage.RETRIEVING,
    Stage.DRAFTING,
    Stage.FINALIZING,
)

STAGE_LABELS = {
    Stage.UPLOADING: "Uploading document securely...",
    Stage.EMBEDDING: "Embedding document...",
    Stage.RETRIEVING: "Retrieving similar cases...",
    Stage.DRAFTING: "Generating preliminary memo...",
    Stage.FINALIZING: "Finalizing analysis...",
}

# Progress reached when each step finishes
STAGE_PROGRESS = {
    Stage.UPLOADING: 20,
    Stage.EMBEDDING: 40,
    Stage.RETRIEVING: 60,
    Stage.DRAFTING: 80,
    Stage.FINALIZING: 100,
}


class Effect(str, Enum):
    RUN_STEP = "run_step"
    COMPLETE = "complete"
    FAIL = "fail"


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class StepSucceeded:
    pass


@dataclass(frozen=True)
class StepFailed:
    error: ServiceError


Event = Union[Start, StepSucceeded, StepFailed]


@dataclass(frozen=True)
class RunState:
    """Visible state of one run."""
    stage: Stage = Stage.IDLE
    step_index: int = 0  # always within [0, len(PIPELINE) - 1]
    progress: int = 0
    error: Optional[ServiceError] = None

    @property
    def label(self) -> str:
        if self.stage == Stage.COMPLETED:
            return "Analysis complete."
        if self.stage == Stage.FAILED:
            return "Analysis failed."
        return STAGE_LABELS.get(self.stage, STAGE_LABELS[PIPELINE[self.step_index]])

    @property
    def is_finished(self) -> bool:
        return self.stage in (Stage.COMPLETED, Stage.FAILED)


class InvalidTransition(Exception):
    """Raised when an event is not accepted in the current stage."""

    def __init__(self, state: RunState, event: Event):
        super().__init__(f"{type(event).__name__} is not valid in stage {state.stage.value}")
        self.state = state
        self.event = event


def transition(state: RunState, event: Event) -> tuple[RunState, Effect]:
    """
    Compute the next state and the effect the driver must perform.

    Returns:
        (new state, effect). RUN_STEP means execute the step for
        ``new_state.stage``; COMPLETE/FAIL mean the run is over.
    """
    if state.stage == Stage.IDLE:
        if isinstance(event, Start):
            return RunState(stage=PIPELINE[0], step_index=0, progress=0), Effect.RUN_STEP
        raise InvalidTransition(state, event)

    if state.stage not in PIPELINE:
        raise InvalidTransition(state, event)

    if isinstance(event, StepSucceeded):
        progress = max(state.progress, STAGE_PROGRESS[state.stage])
        if state.step_index == len(PIPELINE) - 1:
            return replace(state, stage=Stage.COMPLETED, progress=progress), Effect.COMPLETE
        next_index = state.step_index + 1
        return (
            replace(state, stage=PIPELINE[next_index], step_index=next_index, progress=progress),
            Effect.RUN_STEP,
        )

    if isinstance(event, StepFailed):
        return replace(state, stage=Stage.FAILED, error=event.error), Effect.FAIL

    raise InvalidTransition(state, event)


# =============================================================================
# Result assembly
# =============================================================================

def build_memo_result(
    filename: str,
    draft: PreliminaryMemoOutput,
    similar_cases: list[SimilarCase],
) -> MemoResult:
    """Assemble the dashboard result from the drafting response."""
    return MemoResult(
        memo=Memo(
            title=f"Preliminary Memo for {filename}",
            sections=[MemoSection(title="Preliminary Memorandum", content=draft.preliminary_memo)],
        ),
        summary=draft.summary,
        identified_laws=[IdentifiedLaw(name=law) for law in draft.identified_laws],
        similar_cases=list(similar_cases),
    )


def summarize_cases(similar_cases: list[SimilarCase]) -> list[str]:
    return [f"{c.name}: {c.summary}" for c in similar_cases]


# =============================================================================
# Driver
# =============================================================================

@dataclass
class RunContext:
    """Values produced by each step and consumed by the next."""
    document: IngestedDocument
    user_instructions: Optional[str] = None
    document_url: Optional[str] = None
    embedding: list[float] = field(default_factory=list)
    similar_cases: list[SimilarCase] = field(default_factory=list)
    draft: Optional[PreliminaryMemoOutput] = None
    result: Optional[MemoResult] = None


@dataclass
class AnalysisOutcome:
    """What a finished run hands back to the dashboard."""
    analysis: Analysis
    state: RunState
    result: Optional[MemoResult] = None
    error: Optional[ServiceError] = None

    @property
    def succeeded(self) -> bool:
        return self.state.stage == Stage.COMPLETED

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.user_message
        return SUCCESS_MESSAGE


ProgressListener = Callable[[RunState], None]


class AnalysisOrchestrator:
    """
    Sequences ingest, upload, embed, retrieve and draft for one run.

    All collaborators are injected by the application root.

    Usage:
        orchestrator = AnalysisOrchestrator(ingestor, store, embeddings, retriever, flows, history)
        outcome = await orchestrator.run("brief.pdf", data, user_instructions="Focus on contract law")
    """

    def __init__(
        self,
        ingestor: DocumentIngestor,
        object_store: ObjectStoreClient,
        embeddings: DocumentEmbeddingService,
        retriever: CaseRetriever,
        flows: MemoFlows,
        history: AnalysisHistory,
        top_k: int = DEFAULT_TOP_K,
        embed_by_url: bool = False,
    ):
        self.ingestor = ingestor
        self.object_store = object_store
        self.embeddings = embeddings
        self.retriever = retriever
        self.flows = flows
        self.history = history
        self.top_k = top_k
        self.embed_by_url = embed_by_url

        self._steps = {
            Stage.UPLOADING: self._upload,
            Stage.EMBEDDING: self._embed,
            Stage.RETRIEVING: self._retrieve,
            Stage.DRAFTING: self._draft,
            Stage.FINALIZING: self._finalize,
        }

    def check_ready(self) -> None:
        """Raise CONFIGURATION when uploads are impossible."""
        if not self.object_store.is_configured:
            raise ServiceError(
                ErrorKind.CONFIGURATION,
                self.object_store.config.diagnostic() or "Object store is not configured",
            )

    async def run(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
        user_instructions: Optional[str] = None,
        on_progress: Optional[ProgressListener] = None,
    ) -> AnalysisOutcome:
        """
        Run the full pipeline for one document.

        Input validation and configuration errors are raised before any
        Analysis is recorded. Once the run has started, every step failure is
        returned in the outcome and the Analysis is marked Failed. Anything
        else that escapes (a listener error, cancellation) also marks it
        Failed before propagating.

        Raises:
            ServiceError: VALIDATION (bad file) or CONFIGURATION (no storage)
        """
        document = await asyncio.to_thread(self.ingestor.ingest, filename, data, content_type)
        self.check_ready()

        analysis = self.history.start(filename)
        context = RunContext(document=document, user_instructions=user_instructions or None)

        try:
            state, effect = transition(RunState(), Start())
            self._notify(on_progress, state)

            while effect == Effect.RUN_STEP:
                stage = state.stage
                logger.info(f"[{analysis.id}] {STAGE_LABELS[stage]}")
                try:
                    await self._steps[stage](context)
                except Exception as e:
                    error = classify_error(e)
                    logger.error(f"[{analysis.id}] {stage.value} failed ({error.kind.value}): {error.detail}")
                    state, effect = transition(state, StepFailed(error))
                else:
                    state, effect = transition(state, StepSucceeded())
                self._notify(on_progress, state)

            if effect == Effect.COMPLETE:
                analysis = self.history.complete(analysis.id, context.result)
                return AnalysisOutcome(analysis=analysis, state=state, result=context.result)

            analysis = self.history.fail(analysis.id)
            return AnalysisOutcome(analysis=analysis, state=state, error=state.error)
        except BaseException:
            # Cancellation, listener errors: the Analysis must not stay In Progress
            if self.history.get(analysis.id).status not in FINAL_STATUSES:
                logger.error(f"[{analysis.id}] Run aborted, marking Failed")
                self.history.fail(analysis.id)
            raise

    @staticmethod
    def _notify(listener: Optional[ProgressListener], state: RunState) -> None:
        if listener is not None:
            listener(state)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _upload(self, ctx: RunContext) -> None:
        key = build_storage_key(ctx.document.filename, prefix=self.object_store.config.key_prefix)
        ctx.document_url = await asyncio.to_thread(
            self.object_store.upload, ctx.document.data, key, ctx.document.content_type,
        )

    async def _embed(self, ctx: RunContext) -> None:
        if self.embed_by_url:
            ctx.embedding = await asyncio.to_thread(
                self.embeddings.embed_document, document_url=ctx.document_url,
            )
        else:
            ctx.embedding = await asyncio.to_thread(self._embed_bytes, ctx.document)

    def _embed_bytes(self, document: IngestedDocument) -> list[float]:
        return self.embeddings.embed_document(document_data_uri=document.to_data_uri())

    async def _retrieve(self, ctx: RunContext) -> None:
        ctx.similar_cases = await asyncio.to_thread(
            self.retriever.retrieve, ctx.embedding, self.top_k,
        )

    async def _draft(self, ctx: RunContext) -> None:
        request = PreliminaryMemoInput(
            document_text=ctx.document.text,
            similar_cases=summarize_cases(ctx.similar_cases),
            user_instructions=ctx.user_instructions,
        )
        ctx.draft = await asyncio.to_thread(self.flows.generate_preliminary_memo, request)

    async def _finalize(self, ctx: RunContext) -> None:
        ctx.result = build_memo_result(ctx.document.filename, ctx.draft, ctx.similar_cases)
