"""Tests for the application-state document."""

import uuid

import pytest

from wallpapy.errors import PersistenceError, ValidationError
from wallpapy.state import DOCUMENT_KEY, STATE_TREE, StateStore
from wallpapy.types import ApplicationState, Classification, StyleConfig, StyleVariant

from conftest import at


class TestDocument:
    """Whole-document reads and writes."""

    def test_empty_store_reads_defaults(self, state_store):
        state = state_store.read()
        assert state.generated_items == {}
        assert state.comments == {}
        assert state.style == StyleConfig()

    def test_update_writes_back(self, state_store):
        state_store.update(lambda s: setattr(s.style, "style", "Watercolour"))
        assert state_store.read().style.style == "Watercolour"

    def test_failed_update_writes_nothing(self, state_store):
        state_store.add_comment("keep me")

        def mutate(state: ApplicationState):
            state.comments.clear()
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            state_store.update(mutate)
        assert len(state_store.read().comments) == 1

    def test_corrupt_document_is_persistence_error(self, store, state_store):
        store.insert(STATE_TREE, DOCUMENT_KEY, b"{not json")
        with pytest.raises(PersistenceError):
            state_store.read()

    def test_update_returns_callback_result(self, state_store):
        assert state_store.update(lambda s: 42) == 42

    def test_round_trip_preserves_records(self, state_store):
        item = state_store.add_generated_item(
            "A long prompt", "short", created_at=at(1), classification=Classification.LOVED,
        )
        comment = state_store.add_comment("nice", created_at=at(2))

        state = state_store.read()
        assert state.generated_items[item.id] == item
        assert state.comments[comment.id] == comment

    def test_shared_store_handle(self, store):
        StateStore(store).add_comment("from one")
        assert len(StateStore(store).read().comments) == 1


class TestComments:

    def test_add_and_remove(self, state_store):
        comment = state_store.add_comment("more oceans")
        assert state_store.remove_comment(comment.id) is True
        assert state_store.remove_comment(comment.id) is False
        assert state_store.read().comments == {}

    def test_blank_comment_rejected(self, state_store):
        with pytest.raises(ValidationError):
            state_store.add_comment("   ")


class TestGeneratedItems:

    def test_new_items_are_neutral(self, state_store):
        item = state_store.add_generated_item("prompt", "short")
        assert item.classification is Classification.NEUTRAL

    def test_set_classification(self, state_store):
        item = state_store.add_generated_item("prompt", "short")
        state_store.set_classification(item.id, Classification.DISLIKED)
        assert state_store.read().generated_items[item.id].classification is Classification.DISLIKED

    def test_set_classification_unknown_item(self, state_store):
        with pytest.raises(ValidationError):
            state_store.set_classification(uuid.uuid4(), Classification.LIKED)

    def test_remove(self, state_store):
        item = state_store.add_generated_item("prompt", "short")
        assert state_store.remove_generated_item(item.id) is True
        assert state_store.remove_generated_item(item.id) is False


class TestStyle:

    @pytest.mark.parametrize("variant", list(StyleVariant))
    def test_set_each_field(self, state_store, variant):
        state_store.set_style(variant, "custom value")
        assert getattr(state_store.read().style, variant.value) == "custom value"
