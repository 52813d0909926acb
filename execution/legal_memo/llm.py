"""
Generative model client used by the memo flows.

Wraps an OpenAI-compatible chat-completions endpoint (Gemini by default).
A flow is one request/response: a prompt goes out, a JSON object comes back
and is validated against the flow's pydantic output schema. Nothing is
retried; failures are raised as ServiceError.
"""

import re
import json
import logging
import time
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from .config import LLMConfig
from .errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_json_payload(content: str) -> dict:
    """Parse a model reply as a JSON object, tolerating markdown fences."""
    text = (content or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def provider_error(exc: Exception, flow_name: str) -> ServiceError:
    """Classify an openai SDK exception."""
    from openai import (
        APIConnectionError,
        AuthenticationError,
        NotFoundError,
        PermissionDeniedError,
    )

    if isinstance(exc, APIConnectionError):  # includes APITimeoutError
        kind = ErrorKind.NETWORK
    elif isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        kind = ErrorKind.PERMISSION
    elif isinstance(exc, NotFoundError):
        kind = ErrorKind.NOT_FOUND
    else:
        kind = ErrorKind.UNKNOWN
    return ServiceError(kind, f"{flow_name}: {type(exc).__name__}: {exc}")


class GenerativeClient:
    """
    Runs schema-validated prompts against the configured model.

    Usage:
        client = GenerativeClient(LLMConfig.from_env())
        output = client.run_flow("preliminary_memo", system, user, PreliminaryMemoOutput)
    """

    def __init__(self, config: Optional[LLMConfig] = None, client=None):
        self.config = config or LLMConfig()
        self._client = client

        if self._client is None:
            self._init_client()

    def _init_client(self):
        if not self.config.api_key:
            logger.warning(
                "LLM_API_KEY not found. Memo generation will fail. "
                "Set LLM_API_KEY (or GOOGLE_API_KEY) in your .env file."
            )
            return

        from openai import OpenAI
        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            timeout=self.config.timeout,
            max_retries=0,
        )
        logger.info(f"LLM client initialized with model {self.config.model}")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def run_flow(
        self,
        flow_name: str,
        system_prompt: str,
        user_prompt: str,
        output_model: type[OutputT],
    ) -> OutputT:
        """
        Send one prompt and validate the JSON reply.

        Raises:
            ServiceError: CONFIGURATION when no client, VALIDATION when the
                reply does not match ``output_model``, otherwise the
                classified provider error.
        """
        if not self._client:
            raise ServiceError(
                ErrorKind.CONFIGURATION,
                f"{flow_name}: LLM client not initialized. Check LLM_API_KEY.",
            )

        start = time.time()
        try:
            response = self._client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            from openai import OpenAIError
            if not isinstance(e, OpenAIError):
                raise
            error = provider_error(e, flow_name)
            logger.error(f"Flow {flow_name} failed: {error.detail}")
            raise error from e

        content = response.choices[0].message.content if response.choices else None
        try:
            payload = parse_json_payload(content)
            output = output_model.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logger.error(f"Flow {flow_name} returned an invalid response: {e}")
            raise ServiceError(
                ErrorKind.VALIDATION,
                f"{flow_name}: response failed schema validation: {e}",
            ) from e

        elapsed = (time.time() - start) * 1000
        logger.info(f"Flow {flow_name} completed in {elapsed:.0f}ms")
        return output
