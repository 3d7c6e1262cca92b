# src/services/search_stages.py

"""Staged-fallback state machine for product search.

    PRIMARY   rows -> DONE, empty -> RELAXED, error -> SUBSTRING
    RELAXED   rows or empty -> DONE, error -> SUBSTRING
    SUBSTRING -> DONE

The transition function is pure so it can be tested without any
collaborator.
"""

from enum import Enum

from src.config.settings import Settings


class SearchStage(Enum):
    PRIMARY = "primary"
    RELAXED = "relaxed"
    SUBSTRING = "substring"
    DONE = "done"


class StageResult(Enum):
    """What a stage's collaborator call produced."""

    ROWS = "rows"
    EMPTY = "empty"
    ERROR = "error"


STAGE_THRESHOLDS: dict[SearchStage, float] = {
    SearchStage.PRIMARY: Settings.PRIMARY_SIMILARITY_THRESHOLD,
    SearchStage.RELAXED: Settings.RELAXED_SIMILARITY_THRESHOLD,
}


def classify(row_count: int, failed: bool) -> StageResult:
    if failed:
        return StageResult.ERROR
    return StageResult.ROWS if row_count else StageResult.EMPTY


def next_stage(stage: SearchStage, result: StageResult) -> SearchStage:
    """Return the stage to run after *stage* produced *result*."""
    if stage is SearchStage.PRIMARY:
        if result is StageResult.ROWS:
            return SearchStage.DONE
        if result is StageResult.EMPTY:
            return SearchStage.RELAXED
        return SearchStage.SUBSTRING
    if stage is SearchStage.RELAXED:
        if result is StageResult.ERROR:
            return SearchStage.SUBSTRING
        return SearchStage.DONE
    return SearchStage.DONE
