"""
The application-state document: style configuration, generated items and
comments, stored as a single JSON document in the ``state`` partition.

The document is always read whole and written whole. ``StateStore.update``
is the only way to change it: the mutation callback runs inside a store
transaction and the document is written back if and only if the callback
returns normally.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Optional, TypeVar

from .errors import ValidationError
from .store import KVStore
from .types import (
    ApplicationState,
    Classification,
    CommentRecord,
    GeneratedItemRecord,
    StyleVariant,
    utc_now,
)

logger = logging.getLogger(__name__)

STATE_TREE = "state"
DOCUMENT_KEY = b"document"

T = TypeVar("T")


class StateStore:
    """Read/modify/write access to the ApplicationState document."""

    def __init__(self, store: KVStore):
        self._store = store
        self._tree = store.open_tree(STATE_TREE)

    def read(self) -> ApplicationState:
        """Load the document; a store that has never been written yields defaults."""
        raw = self._tree.get(DOCUMENT_KEY)
        if raw is None:
            return ApplicationState()
        return ApplicationState.from_bytes(raw)

    def write(self, state: ApplicationState) -> None:
        self._tree.insert(DOCUMENT_KEY, state.to_bytes())

    def update(self, mutate: Callable[[ApplicationState], T]) -> T:
        """
        Apply ``mutate`` to the current document and persist the result.

        Nothing is written if ``mutate`` raises; the exception propagates.

        Returns:
            Whatever ``mutate`` returns
        """
        with self._store.transaction():
            state = self.read()
            result = mutate(state)
            self.write(state)
        return result

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    def add_comment(self, text: str, *, created_at: Optional[datetime] = None) -> CommentRecord:
        if not text.strip():
            raise ValidationError("Comment must not be empty")
        comment = CommentRecord(id=uuid.uuid4(), created_at=created_at or utc_now(), text=text)

        def _add(state: ApplicationState) -> CommentRecord:
            state.comments[comment.id] = comment
            return comment

        self.update(_add)
        logger.info("Added comment %s", comment.id)
        return comment

    def remove_comment(self, comment_id: uuid.UUID) -> bool:
        """Returns True if the comment existed."""
        return self.update(lambda state: state.comments.pop(comment_id, None) is not None)

    # -------------------------------------------------------------------------
    # Generated items
    # -------------------------------------------------------------------------

    def add_generated_item(
        self,
        prompt_text: str,
        shortened_prompt: str,
        *,
        created_at: Optional[datetime] = None,
        classification: Classification = Classification.NEUTRAL,
    ) -> GeneratedItemRecord:
        record = GeneratedItemRecord(
            id=uuid.uuid4(),
            created_at=created_at or utc_now(),
            prompt_text=prompt_text,
            shortened_prompt=shortened_prompt,
            classification=classification,
        )

        def _add(state: ApplicationState) -> GeneratedItemRecord:
            state.generated_items[record.id] = record
            return record

        self.update(_add)
        logger.info("Recorded generated item %s", record.id)
        return record

    def remove_generated_item(self, item_id: uuid.UUID) -> bool:
        """Returns True if the item existed."""
        return self.update(lambda state: state.generated_items.pop(item_id, None) is not None)

    def set_classification(self, item_id: uuid.UUID, classification: Classification) -> None:
        """
        Record the reviewer's sentiment for a generated item.

        Raises:
            ValidationError: No item with that id
        """
        def _classify(state: ApplicationState) -> None:
            record = state.generated_items.get(item_id)
            if record is None:
                raise ValidationError(f"Unknown generated item: {item_id}")
            record.classification = classification

        self.update(_classify)

    # -------------------------------------------------------------------------
    # Style
    # -------------------------------------------------------------------------

    def set_style(self, variant: StyleVariant, value: str) -> None:
        def _set(state: ApplicationState) -> None:
            setattr(state.style, variant.value, value)

        self.update(_set)
