"""
Memo flows: drafting, refinement, and multi-document memos.

A flow is a schema-validated request/response wrapper around one generative
model call. Flows register themselves in REGISTERED_FLOWS so the dev
entrypoint can preload and list them.
"""

import logging
from dataclasses import dataclass

from .api_models import (
    MultiDocumentMemoInput,
    MultiDocumentMemoOutput,
    PreliminaryMemoInput,
    PreliminaryMemoOutput,
    RefineMemoInput,
    RefineMemoOutput,
)
from .llm import GenerativeClient
from .prompts import (
    FLOW_PROMPTS,
    build_multi_document_prompt,
    build_preliminary_memo_prompt,
    build_refine_memo_prompt,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredFlow:
    """Name and schemas of a registered flow."""
    name: str
    input_schema: type
    output_schema: type


REGISTERED_FLOWS: dict[str, RegisteredFlow] = {}


def register_flow(name: str, input_schema: type, output_schema: type):
    """Decorator recording a flow method in REGISTERED_FLOWS."""
    def decorator(func):
        REGISTERED_FLOWS[name] = RegisteredFlow(name, input_schema, output_schema)
        func.flow_name = name
        return func
    return decorator


class MemoFlows:
    """
    The memo-related generative flows.

    Usage:
        flows = MemoFlows(GenerativeClient(LLMConfig.from_env()))
        out = flows.generate_preliminary_memo(PreliminaryMemoInput(document_text=..., similar_cases=[...]))
    """

    def __init__(self, client: GenerativeClient):
        self.client = client

    @register_flow("preliminary_memo", PreliminaryMemoInput, PreliminaryMemoOutput)
    def generate_preliminary_memo(self, request: PreliminaryMemoInput) -> PreliminaryMemoOutput:
        """Draft a memo from the document text and similar-case summaries."""
        logger.info(
            f"Drafting preliminary memo ({len(request.document_text)} chars, "
            f"{len(request.similar_cases)} similar cases)"
        )
        prompt = build_preliminary_memo_prompt(
            request.document_text,
            request.similar_cases,
            request.user_instructions,
        )
        return self.client.run_flow(
            "preliminary_memo",
            FLOW_PROMPTS["preliminary_memo"]["system"],
            prompt,
            PreliminaryMemoOutput,
        )

    @register_flow("refine_memo", RefineMemoInput, RefineMemoOutput)
    def refine_memo(self, request: RefineMemoInput) -> RefineMemoOutput:
        """Rewrite an existing memo according to user feedback."""
        prompt = build_refine_memo_prompt(
            request.original_memo,
            request.user_feedback,
            request.original_input,
        )
        return self.client.run_flow(
            "refine_memo",
            FLOW_PROMPTS["refine_memo"]["system"],
            prompt,
            RefineMemoOutput,
        )

    @register_flow("multi_document_memo", MultiDocumentMemoInput, MultiDocumentMemoOutput)
    def generate_memo_from_documents(self, request: MultiDocumentMemoInput) -> MultiDocumentMemoOutput:
        logger.info(f"Drafting memo from {len(request.document_texts)} documents")
        prompt = build_multi_document_prompt(request.document_texts, request.user_instructions)
        return self.client.run_flow(
            "multi_document_memo",
            FLOW_PROMPTS["multi_document_memo"]["system"],
            prompt,
            MultiDocumentMemoOutput,
        )
