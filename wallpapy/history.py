"""
History aggregation and retention.

Generated items and comments are merged into one sequence ordered from most
recent to least recent, then walked with a recency index ``i`` that advances
once per event of either kind:

- a generated item is rendered verbatim while ``i < classification.threshold``;
  past its threshold but with ``i < SUMMARY_HORIZON`` it goes to the discarded
  bucket for its classification (candidates for summarization); beyond that
  it is dropped.
- a comment is rendered while ``i < COMMENT_WINDOW`` and dropped otherwise.

The rendered history string feeds prompt construction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from .summarize import HistorySummarizer, summarize_discarded
from .types import (
    COMMENT_WINDOW,
    SUMMARY_HORIZON,
    ApplicationState,
    Classification,
    CommentRecord,
    GeneratedItemRecord,
)

logger = logging.getLogger(__name__)

HistoryRecord = Union[GeneratedItemRecord, CommentRecord]


@dataclass(frozen=True)
class HistoryEvent:
    """One entry of the merged history, with its recency index."""
    index: int
    record: HistoryRecord

    @property
    def created_at(self) -> datetime:
        return self.record.created_at

    @property
    def is_comment(self) -> bool:
        return isinstance(self.record, CommentRecord)


@dataclass
class RetentionResult:
    """Rendered lines (most recent first) plus the summarization candidates."""
    lines: list[str] = field(default_factory=list)
    discarded: dict[Classification, list[str]] = field(default_factory=dict)
    dropped: int = 0

    @property
    def has_discarded(self) -> bool:
        return any(self.discarded.values())


def merge_history(state: ApplicationState) -> list[HistoryEvent]:
    """
    Merge generated items and comments, most recent first.

    Events sharing a ``created_at`` are ordered by record id (ascending
    before the reversal), so the result is deterministic.
    """
    records: list[HistoryRecord] = [
        *state.generated_items.values(),
        *state.comments.values(),
    ]
    records.sort(key=lambda r: (r.created_at, str(r.id)))
    records.reverse()
    return [HistoryEvent(index=i, record=r) for i, r in enumerate(records)]


def render_item(record: GeneratedItemRecord) -> str:
    return f"{record.classification.prefix}'{record.shortened_prompt}'"


def render_comment(record: CommentRecord) -> str:
    return f"User commented: '{record.text}'"


def apply_retention(events: list[HistoryEvent]) -> RetentionResult:
    """Split merged events into rendered lines and discarded buckets."""
    result = RetentionResult()
    for event in events:
        record = event.record
        if isinstance(record, CommentRecord):
            if event.index < COMMENT_WINDOW:
                result.lines.append(render_comment(record))
            else:
                result.dropped += 1
            continue

        if event.index < record.classification.threshold:
            result.lines.append(render_item(record))
        elif event.index < SUMMARY_HORIZON:
            result.discarded.setdefault(record.classification, []).append(
                record.shortened_prompt
            )
        else:
            result.dropped += 1
    return result


def render_history(state: ApplicationState) -> RetentionResult:
    """Merge and window the state without any summarization."""
    return apply_retention(merge_history(state))


async def aggregate_history(
    state: ApplicationState,
    summarizer: Optional[HistorySummarizer] = None,
) -> str:
    """
    Build the history text for prompt construction.

    When items fell out of the verbatim window and a summarizer is available,
    one summary line is appended. A failing summarizer only costs that line.

    Returns:
        Newline-joined rendered lines, most recent first
    """
    result = render_history(state)
    lines = list(result.lines)
    if result.has_discarded and summarizer is not None:
        summary_line = await summarize_discarded(result.discarded, summarizer)
        if summary_line:
            lines.append(summary_line)
    logger.debug(
        "History: %d rendered, %d discarded, %d dropped",
        len(result.lines),
        sum(len(v) for v in result.discarded.values()),
        result.dropped,
    )
    return "\n".join(lines)
