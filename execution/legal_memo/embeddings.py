"""
Document Embedding Service

Turns a document reference (base64 data URI or URL) into a single embedding
vector using Voyage AI (voyage-law-2 by default).

voyage-law-2: Optimized for legal documents, 6-10% better retrieval on legal benchmarks.

The reference is resolved to text locally (data URIs are decoded, URLs are
downloaded), embedded with one API call, and the returned vector is checked
against the configured dimensionality before it is handed on.
"""

import re
import math
import base64
import hashlib
import logging
from typing import Optional
from urllib.parse import unquote

import requests

from .config import EmbeddingConfig
from .errors import ErrorKind, ServiceError
from .ingestor import extract_text

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^;,]*)*?),(?P<data>.*)$", re.DOTALL)

# voyageai exception class names grouped by cause
_VOYAGE_NETWORK_ERRORS = {"APIConnectionError", "Timeout", "ServiceUnavailableError", "TryAgain"}
_VOYAGE_PERMISSION_ERRORS = {"AuthenticationError", "PermissionError"}


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """
    Split a data URI into (mime type, raw bytes).

    Raises:
        ServiceError: VALIDATION if the URI is malformed
    """
    match = _DATA_URI_RE.match(uri or "")
    if not match:
        raise ServiceError(
            ErrorKind.VALIDATION,
            "documentDataUri must look like 'data:<mimetype>;base64,<encoded_data>'",
        )
    mime = match.group("mime") or "text/plain"
    payload = match.group("data")
    try:
        if ";base64" in match.group("params"):
            data = base64.b64decode(payload, validate=True)
        else:
            data = unquote(payload).encode("utf-8")
    except (ValueError, TypeError) as e:
        raise ServiceError(ErrorKind.VALIDATION, f"Invalid base64 payload in data URI: {e}") from e
    return mime, data


def validate_embedding(values, dimensions: Optional[int] = None) -> list[float]:
    """Check the provider's vector: non-empty, finite numbers, expected length."""
    if not isinstance(values, (list, tuple)) or not values:
        raise ServiceError(ErrorKind.VALIDATION, "Embedding response is empty or not a list")
    vector = []
    for v in values:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise ServiceError(ErrorKind.VALIDATION, f"Embedding contains a non-numeric value: {v!r}")
        vector.append(float(v))
    if dimensions and len(vector) != dimensions:
        raise ServiceError(
            ErrorKind.VALIDATION,
            f"Embedding has {len(vector)} dimensions, expected {dimensions}",
        )
    return vector


class DocumentEmbeddingService:
    """
    Embedding service for whole documents using Voyage AI.

    Usage:
        service = DocumentEmbeddingService(EmbeddingConfig.from_env())
        vector = service.embed_document(document_data_uri=doc.to_data_uri())
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _input_type = "document"

    def __init__(self, config: Optional[EmbeddingConfig] = None, client=None, session=None):
        """
        Initialize embedding service.

        Args:
            config: Optional configuration. Uses defaults if not provided.
            client: Optional pre-built Voyage client (used by tests).
            session: Optional requests.Session for URL downloads.
        """
        self.config = config or EmbeddingConfig()
        self._client = client
        self._session = session or requests.Session()
        self._cache: dict[str, list[float]] = {}

        if self._client is None:
            self._init_client()

    def _init_client(self):
        """Initialize the Voyage AI client."""
        if not self.config.api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will fail. "
                "Get your free API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.Client(api_key=self.config.api_key, max_retries=0)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions

    def embed_document(
        self,
        document_data_uri: Optional[str] = None,
        document_url: Optional[str] = None,
    ) -> list[float]:
        """
        Generate the embedding for one document.

        Exactly one of ``document_data_uri`` or ``document_url`` must be given.

        Returns:
            Embedding vector

        Raises:
            ServiceError: on invalid input, download failure, provider failure
                or a response that fails validation
        """
        if bool(document_data_uri) == bool(document_url):
            raise ServiceError(
                ErrorKind.VALIDATION,
                "Provide exactly one of documentDataUri or documentUrl",
            )

        if document_data_uri:
            mime, data = decode_data_uri(document_data_uri)
        else:
            mime, data = self._download(document_url)

        text = self._to_text(data, mime)
        return self.embed_text(text)

    def embed_text(self, text: str) -> list[float]:
        """Embed already-extracted document text."""
        if not self._client:
            raise ServiceError(
                ErrorKind.CONFIGURATION,
                f"{self._provider_name} client not initialized. Check {self._env_var_name}.",
            )

        text = text[: self.config.max_chars]
        cache_key = self._get_cache_key(text)
        if self.config.use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        try:
            response = self._client.embed(
                texts=[text],
                model=self.config.model,
                input_type=self._input_type,
            )
        except Exception as e:
            error = self._provider_error(e)
            logger.error(f"{self._provider_name} embedding failed: {error.detail}")
            raise error from e

        embeddings = getattr(response, "embeddings", None) or []
        if len(embeddings) != 1:
            raise ServiceError(
                ErrorKind.VALIDATION,
                f"Expected 1 embedding from {self._provider_name}, got {len(embeddings)}",
            )
        vector = validate_embedding(embeddings[0], self.config.dimensions)

        if self.config.use_cache:
            self._cache[cache_key] = vector
        logger.info(f"Embedded document ({len(text)} chars) into {len(vector)} dimensions")
        return vector

    def _download(self, url: str) -> tuple[str, bytes]:
        """Fetch a document by URL, returning (mime type, bytes)."""
        try:
            response = self._session.get(url, timeout=self.config.download_timeout)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in (401, 403):
                kind = ErrorKind.PERMISSION
            elif status == 404:
                kind = ErrorKind.NOT_FOUND
            else:
                kind = ErrorKind.UNKNOWN
            raise ServiceError(kind, f"Downloading {url} failed with HTTP {status}") from e
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ServiceError(ErrorKind.NETWORK, f"Downloading {url} failed: network error: {e}") from e

        mime = response.headers.get("Content-Type", "application/octet-stream").split(";")[0].strip()
        return mime, response.content

    def _to_text(self, data: bytes, mime: str) -> str:
        try:
            text = extract_text(data, mime)
        except Exception as e:
            raise ServiceError(ErrorKind.VALIDATION, f"Could not extract text ({mime}): {e}") from e
        if not text.strip():
            raise ServiceError(ErrorKind.VALIDATION, "Document contains no extractable text")
        return text

    def _provider_error(self, exc: Exception) -> ServiceError:
        name = type(exc).__name__
        if name in _VOYAGE_NETWORK_ERRORS or isinstance(exc, (requests.ConnectionError, requests.Timeout)):
            kind = ErrorKind.NETWORK
        elif name in _VOYAGE_PERMISSION_ERRORS:
            kind = ErrorKind.PERMISSION
        else:
            kind = ErrorKind.UNKNOWN
        return ServiceError(kind, f"{self._provider_name}: {name}: {exc}")

    def _get_cache_key(self, text: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{self._input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]
