"""
Shared fixtures and test utilities for Legal Memo Assistant tests.

Provides fake service clients and sample data so that all tests can run
without API keys, object storage, databases, or external network access.
"""

import sys
import hashlib
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------------------------
# Sample legal document text
# ---------------------------------------------------------------------------
SAMPLE_DOCUMENT = """
COMPLAINT FOR PATENT INFRINGEMENT

Innovate Corp ("Plaintiff") brings this action against Tech Solutions ("Defendant")
for infringement of U.S. Patent No. 9,876,543 entitled "Dynamic Data Syncing".

I. PARTIES

1. Plaintiff is a Delaware corporation with its principal place of business in
Wilmington, Delaware.

2. Defendant is a California corporation with its principal place of business in
San Jose, California.

II. JURISDICTION AND VENUE

3. This action arises under the patent laws of the United States, 35 U.S.C. 271.

III. FACTS

4. On June 1, 2022, Defendant launched the "SyncMaster" software suite, which
incorporates a data synchronization feature practicing each claim of the patent.

5. In January 2022 Defendant hired three of Plaintiff's former engineers.

PRAYER FOR RELIEF

Plaintiff requests damages, a permanent injunction, and costs.
"""


@pytest.fixture
def sample_document_text():
    """Return the sample complaint text."""
    return SAMPLE_DOCUMENT


@pytest.fixture
def sample_document_bytes():
    return SAMPLE_DOCUMENT.encode("utf-8")


@pytest.fixture
def storage_config():
    """A complete StorageConfig pointing at a fake bucket."""
    from execution.legal_memo.config import StorageConfig
    return StorageConfig(
        access_key="test-access",
        secret_key="test-secret",
        bucket="legal-docs",
        region="eu-central-1",
    )


# ---------------------------------------------------------------------------
# Fake service clients
# ---------------------------------------------------------------------------

def deterministic_embedding(text: str, dimensions: int = 8) -> list[float]:
    h = hashlib.sha256(text.encode()).hexdigest()
    seed = int(h[:8], 16)
    return [((seed + i) % 1000) / 1000.0 for i in range(dimensions)]


@pytest.fixture
def mock_boto_client():
    """A boto3 S3 client double whose calls all succeed."""
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"abc"'}
    client.head_object.return_value = {"ContentLength": 10}
    return client


@pytest.fixture
def object_store(storage_config, mock_boto_client):
    from execution.legal_memo.object_store import ObjectStoreClient
    return ObjectStoreClient(storage_config, client=mock_boto_client)


@pytest.fixture
def mock_embeddings():
    """Embedding service double returning an 8-dimensional vector."""
    service = MagicMock()
    service.embed_document.side_effect = (
        lambda document_data_uri=None, document_url=None:
        deterministic_embedding(document_data_uri or document_url or "")
    )
    return service


@pytest.fixture
def static_retriever():
    from execution.legal_memo.retriever import StaticCaseRetriever
    return StaticCaseRetriever()


@pytest.fixture
def draft_output():
    from execution.legal_memo.api_models import PreliminaryMemoOutput
    return PreliminaryMemoOutput(
        preliminary_memo="M",
        identified_laws=["L1", "L2"],
        summary="S",
    )


@pytest.fixture
def mock_flows(draft_output):
    """MemoFlows double returning a fixed drafting response."""
    flows = MagicMock()
    flows.generate_preliminary_memo.return_value = draft_output
    return flows


@pytest.fixture
def history():
    from execution.legal_memo.history import AnalysisHistory
    return AnalysisHistory()


@pytest.fixture
def orchestrator(object_store, mock_embeddings, static_retriever, mock_flows, history):
    from execution.legal_memo.ingestor import DocumentIngestor
    from execution.legal_memo.orchestrator import AnalysisOrchestrator
    return AnalysisOrchestrator(
        ingestor=DocumentIngestor(),
        object_store=object_store,
        embeddings=mock_embeddings,
        retriever=static_retriever,
        flows=mock_flows,
        history=history,
    )


@pytest.fixture
def chat_response():
    """Factory for objects shaped like an openai ChatCompletion."""
    def build(content: str):
        response = MagicMock()
        choice = MagicMock()
        choice.message.content = content
        response.choices = [choice]
        return response
    return build
