"""
Similar-Case Retriever

Given a document embedding, return case summaries ranked by similarity
(descending). Two implementations share the CaseRetriever interface:

    StaticCaseRetriever   -- fixture-backed double for development and tests
    PgVectorCaseRetriever -- PostgreSQL + pgvector nearest-neighbour search
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .api_models import SimilarCase
from .config import RetrieverConfig
from .errors import ErrorKind, ServiceError

try:
    import psycopg2
    import psycopg2.extras
except ImportError:
    psycopg2 = None  # Will be caught at connect() time

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3


@dataclass
class CaseFixture:
    """A case known to the static retriever, optionally with its embedding."""
    case: SimilarCase
    embedding: Optional[list[float]] = None


DEFAULT_FIXTURES = [
    CaseFixture(SimilarCase(
        id="sc-01",
        name="DataFlow Inc. v. Syncer (2019)",
        summary=(
            "Established a broad interpretation for claims related to real-time data "
            "synchronization technologies, favoring the patent holder."
        ),
    )),
    CaseFixture(SimilarCase(
        id="sc-02",
        name="Tectron Corp. v. InfoSys (2021)",
        summary=(
            "Lowered the evidentiary standard for proving access to trade secrets in cases "
            "involving the hiring of a competitor's former employees."
        ),
    )),
    CaseFixture(SimilarCase(
        id="sc-03",
        name="Connective v. NetLink (2018)",
        summary=(
            "A case where the court ruled against the plaintiff due to overly broad and "
            "non-specific patent claims, highlighting the importance of clear claim construction."
        ),
    )),
    CaseFixture(SimilarCase(
        id="sc-04",
        name="ByteCorp v. LogicWare (2020)",
        summary=(
            "This case addressed the \"doctrine of equivalents\" in software patent law, "
            "providing a framework for how functionally similar but non-identical code can "
            "still be found to be infringing."
        ),
    )),
]


def _check_query(embedding: Sequence[float], top_k: int) -> None:
    if embedding is None or len(embedding) == 0:
        raise ServiceError(ErrorKind.VALIDATION, "documentEmbedding must not be empty")
    if top_k < 1:
        raise ServiceError(ErrorKind.VALIDATION, f"top_k must be at least 1, got {top_k}")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        return float("-inf")
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class CaseRetriever:
    """Interface: given a vector, return ranked cases."""

    def retrieve(self, embedding: Sequence[float], top_k: int = DEFAULT_TOP_K) -> list[SimilarCase]:
        raise NotImplementedError("Subclasses must implement retrieve()")


class StaticCaseRetriever(CaseRetriever):
    """
    Returns fixed fixtures.

    Fixtures with embeddings are ranked by cosine similarity to the query;
    otherwise fixtures are returned in their declared order.
    """

    def __init__(self, fixtures: Optional[list[CaseFixture]] = None):
        self.fixtures = list(fixtures) if fixtures is not None else list(DEFAULT_FIXTURES)

    def retrieve(self, embedding: Sequence[float], top_k: int = DEFAULT_TOP_K) -> list[SimilarCase]:
        _check_query(embedding, top_k)

        if all(f.embedding is not None for f in self.fixtures) and self.fixtures:
            ranked = sorted(
                self.fixtures,
                key=lambda f: cosine_similarity(embedding, f.embedding),
                reverse=True,
            )
        else:
            ranked = self.fixtures

        results = [f.case for f in ranked[:top_k]]
        logger.info(f"Static retriever returned {len(results)} cases")
        return results


class PgVectorCaseRetriever(CaseRetriever):
    """
    Nearest-neighbour case search in PostgreSQL with pgvector.

    Table layout:
        similar_cases(id TEXT PRIMARY KEY, name TEXT, summary TEXT, embedding VECTOR(n))
    """

    def __init__(self, config: Optional[RetrieverConfig] = None, dimensions: int = 1024):
        self.config = config or RetrieverConfig(backend="pgvector")
        self.dimensions = dimensions
        self._conn = None
        self._connection_string = (
            self.config.connection_string or
            "postgresql://localhost:5432/legal_memo"
        )

    def connect(self) -> None:
        """Establish the database connection."""
        if psycopg2 is None:
            raise ImportError("psycopg2 not installed. Run: pip install psycopg2-binary")
        from psycopg2.extras import RealDictCursor

        try:
            self._conn = psycopg2.connect(self._connection_string, cursor_factory=RealDictCursor)
            self._conn.autocommit = False
            logger.info("Connected to PostgreSQL with pgvector")
        except psycopg2.OperationalError as e:
            logger.error(f"Database connection failed: {e}")
            raise ServiceError(ErrorKind.NETWORK, f"Database connection failed: {e}") from e

    def _ensure_connection(self):
        if self._conn is None or self._conn.closed:
            self.connect()
        return self._conn

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def initialize_schema(self) -> None:
        """Create the pgvector extension and cases table if missing."""
        conn = self._ensure_connection()
        schema_sql = f"""
        CREATE EXTENSION IF NOT EXISTS vector;

        CREATE TABLE IF NOT EXISTS {self.config.table_name} (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            summary TEXT NOT NULL,
            embedding VECTOR({self.dimensions}),
            created_at TIMESTAMPTZ DEFAULT NOW()
        );
        """
        try:
            with conn.cursor() as cur:
                cur.execute(schema_sql)
            conn.commit()
            logger.info("Similar-case schema initialized")
        except Exception as e:
            conn.rollback()
            logger.error(f"Schema initialization failed: {e}")
            raise

    def insert_case(self, case: SimilarCase, embedding: Sequence[float]) -> None:
        """Insert or replace a case with its embedding."""
        conn = self._ensure_connection()
        sql = f"""
        INSERT INTO {self.config.table_name} (id, name, summary, embedding)
        VALUES (%s, %s, %s, %s::vector)
        ON CONFLICT (id) DO UPDATE
            SET name = EXCLUDED.name, summary = EXCLUDED.summary, embedding = EXCLUDED.embedding
        """
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (case.id, case.name, case.summary, _vector_literal(embedding)))
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def retrieve(self, embedding: Sequence[float], top_k: int = DEFAULT_TOP_K) -> list[SimilarCase]:
        _check_query(embedding, top_k)
        conn = self._ensure_connection()

        vector = _vector_literal(embedding)
        sql = f"""
        SELECT id, name, summary, 1 - (embedding <=> %s::vector) AS score
        FROM {self.config.table_name}
        ORDER BY embedding <=> %s::vector
        LIMIT %s
        """
        try:
            with conn.cursor() as cur:
                cur.execute(sql, (vector, vector, top_k))
                rows = cur.fetchall()
            conn.commit()
        except psycopg2.OperationalError as e:
            conn.rollback()
            raise ServiceError(ErrorKind.NETWORK, f"Similar-case search failed: {e}") from e
        except psycopg2.Error as e:
            conn.rollback()
            raise ServiceError(ErrorKind.UNKNOWN, f"Similar-case search failed: {e}") from e

        results = [
            SimilarCase(id=str(row["id"]), name=row["name"], summary=row["summary"])
            for row in rows
        ]
        logger.info(f"pgvector retriever returned {len(results)} cases")
        return results


def _vector_literal(embedding: Sequence[float]) -> str:
    """pgvector text format: [0.1,0.2,...]"""
    return "[" + ",".join(str(float(v)) for v in embedding) + "]"


def get_case_retriever(config: Optional[RetrieverConfig] = None, dimensions: int = 1024) -> CaseRetriever:
    """
    Factory returning the configured retriever.

    Args:
        config: Retriever settings; backend "pgvector" selects the database
            adapter, anything else the static fixtures.
        dimensions: Embedding dimensionality for the pgvector schema
    """
    config = config or RetrieverConfig()
    if config.backend == "pgvector":
        return PgVectorCaseRetriever(config, dimensions=dimensions)
    return StaticCaseRetriever()
