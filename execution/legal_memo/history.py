"""
In-memory analysis history for the dashboard.

Holds the recent Analysis rows and the MemoResult of each completed run.
A result is only exposed for an Analysis whose status is Completed.
"""

import logging
import threading
from datetime import date
from typing import Optional

from .api_models import Analysis, AnalysisStatus, MemoResult, SimilarCase

logger = logging.getLogger(__name__)

FINAL_STATUSES = frozenset({AnalysisStatus.COMPLETED, AnalysisStatus.FAILED})


class AnalysisNotFoundError(KeyError):
    """Raised when an analysis id is unknown."""


class AnalysisNotReadyError(Exception):
    """Raised when a result is requested for an analysis that is not Completed."""

    def __init__(self, analysis: Analysis):
        super().__init__(f"Analysis {analysis.id} is {analysis.status.value}, not Completed")
        self.analysis = analysis


class AnalysisStateError(Exception):
    """Raised when a finished analysis would be finished a second time."""


def filter_similar_cases(cases: list[SimilarCase], search_term: str) -> list[SimilarCase]:
    """Case-insensitive match of the search term on name OR summary."""
    term = (search_term or "").strip().lower()
    if not term:
        return list(cases)
    return [
        c for c in cases
        if term in c.name.lower() or term in c.summary.lower()
    ]


class AnalysisHistory:
    """
    Recent analyses, newest first, plus results for completed runs.

    Analyses are never deleted. Status moves from In Progress to Completed
    or Failed exactly once.
    """

    def __init__(self, seed: Optional[list[tuple[Analysis, Optional[MemoResult]]]] = None):
        self._lock = threading.Lock()
        self._analyses: dict[str, Analysis] = {}
        self._order: list[str] = []
        self._results: dict[str, MemoResult] = {}

        for analysis, result in seed or []:
            if (analysis.status == AnalysisStatus.COMPLETED) != (result is not None):
                raise ValueError(f"Seed analysis {analysis.id} must have a result iff Completed")
            self._analyses[analysis.id] = analysis
            self._order.append(analysis.id)
            if result is not None:
                self._results[analysis.id] = result

    def __len__(self) -> int:
        return len(self._order)

    def _next_id(self) -> str:
        n = len(self._order) + 1
        candidate = f"case-{n:03d}"
        while candidate in self._analyses:
            n += 1
            candidate = f"case-{n:03d}"
        return candidate

    def start(self, case_name: str, on_date: Optional[date] = None) -> Analysis:
        """Record a new run as In Progress and return it."""
        with self._lock:
            analysis = Analysis(
                id=self._next_id(),
                case_name=case_name,
                date=(on_date or date.today()).isoformat(),
                status=AnalysisStatus.IN_PROGRESS,
            )
            self._analyses[analysis.id] = analysis
            self._order.append(analysis.id)
        logger.info(f"Analysis {analysis.id} started for {case_name}")
        return analysis

    def complete(self, analysis_id: str, result: MemoResult) -> Analysis:
        with self._lock:
            analysis = self._finish(analysis_id, AnalysisStatus.COMPLETED)
            self._results[analysis_id] = result
        logger.info(f"Analysis {analysis_id} completed")
        return analysis

    def fail(self, analysis_id: str) -> Analysis:
        with self._lock:
            analysis = self._finish(analysis_id, AnalysisStatus.FAILED)
        logger.info(f"Analysis {analysis_id} failed")
        return analysis

    def _finish(self, analysis_id: str, status: AnalysisStatus) -> Analysis:
        current = self._get(analysis_id)
        if current.status in FINAL_STATUSES:
            raise AnalysisStateError(
                f"Analysis {analysis_id} already finished as {current.status.value}"
            )
        updated = current.model_copy(update={"status": status})
        self._analyses[analysis_id] = updated
        return updated

    def _get(self, analysis_id: str) -> Analysis:
        try:
            return self._analyses[analysis_id]
        except KeyError:
            raise AnalysisNotFoundError(analysis_id) from None

    def get(self, analysis_id: str) -> Analysis:
        with self._lock:
            return self._get(analysis_id)

    def recent(self) -> list[Analysis]:
        """All analyses, newest first."""
        with self._lock:
            return [self._analyses[i] for i in reversed(self._order)]

    def get_result(self, analysis_id: str) -> MemoResult:
        """
        Result of a completed analysis.

        Raises:
            AnalysisNotFoundError: unknown id
            AnalysisNotReadyError: status is not Completed
        """
        with self._lock:
            analysis = self._get(analysis_id)
            if analysis.status != AnalysisStatus.COMPLETED:
                raise AnalysisNotReadyError(analysis)
            return self._results[analysis_id]
