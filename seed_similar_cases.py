#!/usr/bin/env python3
"""Seed the pgvector similar-cases table with the bundled case summaries."""

import logging

from dotenv import load_dotenv
load_dotenv()

from execution.legal_memo.config import AppConfig
from execution.legal_memo.embeddings import DocumentEmbeddingService
from execution.legal_memo.retriever import DEFAULT_FIXTURES, PgVectorCaseRetriever

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_cases(retriever, embeddings, fixtures=DEFAULT_FIXTURES) -> int:
    """Embed each case summary and upsert it. Returns the number of cases written."""
    retriever.initialize_schema()

    count = 0
    for fixture in fixtures:
        case = fixture.case
        embedding = fixture.embedding or embeddings.embed_text(f"{case.name}\n\n{case.summary}")
        retriever.insert_case(case, embedding)
        logger.info(f"Seeded {case.id}: {case.name}")
        count += 1
    return count


def main():
    config = AppConfig.from_env()
    embeddings = DocumentEmbeddingService(config.embeddings)
    retriever = PgVectorCaseRetriever(config.retriever, dimensions=config.embeddings.dimensions)
    try:
        count = seed_cases(retriever, embeddings)
        logger.info(f"Seeded {count} similar cases into {config.retriever.table_name}")
    finally:
        retriever.close()


if __name__ == "__main__":
    main()
