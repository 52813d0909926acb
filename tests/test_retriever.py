"""
Tests for execution/legal_memo/retriever.py

Covers: StaticCaseRetriever ordering and top-k, cosine ranking when fixtures
        carry embeddings, PgVectorCaseRetriever against a mocked psycopg2
        connection, and the get_case_retriever factory.
"""

from unittest.mock import MagicMock

import pytest

from execution.legal_memo.api_models import SimilarCase
from execution.legal_memo.config import RetrieverConfig
from execution.legal_memo.errors import ErrorKind, ServiceError
from execution.legal_memo.retriever import (
    DEFAULT_FIXTURES,
    CaseFixture,
    PgVectorCaseRetriever,
    StaticCaseRetriever,
    cosine_similarity,
    get_case_retriever,
)


# ---------------------------------------------------------------------------
# Static retriever
# ---------------------------------------------------------------------------

class TestStaticCaseRetriever:

    def test_default_returns_first_three_in_order(self, static_retriever):
        cases = static_retriever.retrieve([0.1, 0.2, 0.3])
        assert [c.id for c in cases] == ["sc-01", "sc-02", "sc-03"]
        assert cases[0].name == "DataFlow Inc. v. Syncer (2019)"

    def test_top_k_respected(self, static_retriever):
        assert len(static_retriever.retrieve([0.1], top_k=1)) == 1
        assert len(static_retriever.retrieve([0.1], top_k=10)) == len(DEFAULT_FIXTURES)

    def test_empty_embedding_rejected(self, static_retriever):
        with pytest.raises(ServiceError) as exc_info:
            static_retriever.retrieve([])
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_ranked_by_cosine_similarity(self):
        fixtures = [
            CaseFixture(SimilarCase(id="a", name="A", summary="x"), embedding=[1.0, 0.0]),
            CaseFixture(SimilarCase(id="b", name="B", summary="y"), embedding=[0.0, 1.0]),
            CaseFixture(SimilarCase(id="c", name="C", summary="z"), embedding=[0.7, 0.7]),
        ]
        retriever = StaticCaseRetriever(fixtures)
        cases = retriever.retrieve([0.0, 1.0], top_k=3)
        assert [c.id for c in cases] == ["b", "c", "a"]

    def test_declared_order_when_any_fixture_lacks_embedding(self):
        fixtures = [
            CaseFixture(SimilarCase(id="a", name="A", summary="x"), embedding=[1.0, 0.0]),
            CaseFixture(SimilarCase(id="b", name="B", summary="y")),
        ]
        cases = StaticCaseRetriever(fixtures).retrieve([0.0, 1.0])
        assert [c.id for c in cases] == ["a", "b"]


class TestCosineSimilarity:

    def test_identical(self):
        assert cosine_similarity([1, 2], [1, 2]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_zero_vector(self):
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_shape_mismatch_ranks_last(self):
        assert cosine_similarity([1, 0], [1, 0, 0]) == float("-inf")


# ---------------------------------------------------------------------------
# pgvector retriever
# ---------------------------------------------------------------------------

@pytest.fixture
def pg_retriever():
    retriever = PgVectorCaseRetriever(RetrieverConfig(backend="pgvector"), dimensions=3)
    conn = MagicMock()
    conn.closed = 0
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    retriever._conn = conn
    return retriever, conn, cursor


class TestPgVectorCaseRetriever:

    def test_retrieve_maps_rows(self, pg_retriever):
        retriever, conn, cursor = pg_retriever
        cursor.fetchall.return_value = [
            {"id": "sc-09", "name": "Alpha v. Beta", "summary": "Contract case", "score": 0.9},
            {"id": "sc-02", "name": "Gamma v. Delta", "summary": "Tort case", "score": 0.7},
        ]

        cases = retriever.retrieve([0.1, 0.2, 0.3], top_k=2)

        assert [c.id for c in cases] == ["sc-09", "sc-02"]
        sql, params = cursor.execute.call_args.args
        assert "ORDER BY embedding <=> %s::vector" in sql
        assert params == ("[0.1,0.2,0.3]", "[0.1,0.2,0.3]", 2)
        conn.commit.assert_called_once()

    def test_database_error_is_rolled_back(self, pg_retriever):
        import psycopg2

        retriever, conn, cursor = pg_retriever
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        with pytest.raises(ServiceError) as exc_info:
            retriever.retrieve([0.1, 0.2, 0.3])
        assert exc_info.value.kind == ErrorKind.NETWORK
        conn.rollback.assert_called_once()

    def test_insert_case(self, pg_retriever):
        retriever, conn, cursor = pg_retriever
        retriever.insert_case(SimilarCase(id="sc-01", name="A", summary="x"), [1, 2, 3])
        params = cursor.execute.call_args.args[1]
        assert params == ("sc-01", "A", "x", "[1.0,2.0,3.0]")
        conn.commit.assert_called_once()

    def test_schema_uses_dimensions(self, pg_retriever):
        retriever, conn, cursor = pg_retriever
        retriever.initialize_schema()
        sql = cursor.execute.call_args.args[0]
        assert "VECTOR(3)" in sql
        assert "CREATE EXTENSION IF NOT EXISTS vector" in sql

    def test_empty_embedding_rejected_before_query(self, pg_retriever):
        retriever, conn, cursor = pg_retriever
        with pytest.raises(ServiceError):
            retriever.retrieve([])
        cursor.execute.assert_not_called()

    def test_close(self, pg_retriever):
        retriever, conn, _ = pg_retriever
        retriever.close()
        conn.close.assert_called_once()
        assert retriever._conn is None


class TestFactory:

    def test_default_is_static(self):
        assert isinstance(get_case_retriever(), StaticCaseRetriever)

    def test_pgvector_backend(self):
        retriever = get_case_retriever(
            RetrieverConfig(backend="pgvector", connection_string="postgresql://db/cases"),
            dimensions=512,
        )
        assert isinstance(retriever, PgVectorCaseRetriever)
        assert retriever.dimensions == 512


class TestTopKValidation:

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_static_rejects_non_positive_top_k(self, static_retriever, top_k):
        with pytest.raises(ServiceError) as exc_info:
            static_retriever.retrieve([0.1, 0.2], top_k=top_k)
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_pgvector_rejects_negative_top_k_before_query(self, pg_retriever):
        retriever, conn, cursor = pg_retriever
        with pytest.raises(ServiceError) as exc_info:
            retriever.retrieve([0.1, 0.2, 0.3], top_k=-1)
        assert exc_info.value.kind == ErrorKind.VALIDATION
        cursor.execute.assert_not_called()
