"""
Prompt templates for the generative flows.

Each flow has a system prompt and a user template. Templates are plain
str.format strings; list-valued inputs are rendered by the helpers below
before formatting.
"""

from typing import Optional


JSON_INSTRUCTION = "Respond with a single JSON object only, no markdown fences."

FLOW_PROMPTS = {
    "preliminary_memo": {
        "system": (
            "You are an expert legal assistant tasked with generating a preliminary "
            "case memorandum. " + JSON_INSTRUCTION
        ),
        "user": """Synthesize the key facts, legal concepts, and relevant precedents from the provided document and similar cases to generate a well-structured memorandum.

Primary Document Text: {document_text}

Similar Cases:
{similar_cases}

User Instructions: {user_instructions}

Output the preliminary memo, a list of identified laws, and a summary of the document.

Preliminary Case Memorandum:
{{
  "preliminaryMemo": "...",
  "identifiedLaws": ["Law1", "Law2", ...],
  "summary": "..."
}}""",
    },

    "refine_memo": {
        "system": (
            "You are an expert legal assistant. You will improve an existing legal "
            "memorandum based on user feedback. " + JSON_INSTRUCTION
        ),
        "user": """Original Memorandum:
{original_memo}

User Feedback:
{user_feedback}

Original input documents:
{original_input}

Based on the user feedback and the original documents, rewrite the memorandum to address the user's concerns and improve its quality and relevance.

Return the rewritten memorandum as:
{{"refinedMemo": "..."}}""",
    },

    "multi_document_memo": {
        "system": (
            "You are an expert legal assistant tasked with generating a preliminary "
            "case memorandum based on the provided documents. " + JSON_INSTRUCTION
        ),
        "user": """Analyze the following documents and synthesize the key facts, legal concepts, and relevant precedents to generate a well-structured legal memorandum.

Documents:
{documents}
{user_instructions}
Return the memorandum as:
{{"memo": "..."}}""",
    },
}


def render_similar_cases(similar_cases: list[str]) -> str:
    """Every summary, verbatim, each preceded by a --- separator."""
    return "\n".join(f"---\n{case}" for case in similar_cases)


def render_documents(document_texts: list[str]) -> str:
    return "\n".join(
        f"--Document {i}--:\n{text}" for i, text in enumerate(document_texts)
    )


def build_preliminary_memo_prompt(
    document_text: str,
    similar_cases: list[str],
    user_instructions: Optional[str] = None,
) -> str:
    return FLOW_PROMPTS["preliminary_memo"]["user"].format(
        document_text=document_text,
        similar_cases=render_similar_cases(similar_cases),
        user_instructions=user_instructions or "None",
    )


def build_refine_memo_prompt(original_memo: str, user_feedback: str, original_input: str) -> str:
    return FLOW_PROMPTS["refine_memo"]["user"].format(
        original_memo=original_memo,
        user_feedback=user_feedback,
        original_input=original_input,
    )


def build_multi_document_prompt(
    document_texts: list[str],
    user_instructions: Optional[str] = None,
) -> str:
    instructions = f"\nUser Instructions: {user_instructions}\n" if user_instructions else ""
    return FLOW_PROMPTS["multi_document_memo"]["user"].format(
        documents=render_documents(document_texts),
        user_instructions=instructions,
    )
