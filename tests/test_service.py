"""Tests for the request handlers."""

import asyncio
import json
import uuid
from http import HTTPStatus
from unittest.mock import patch

import pytest

from wallpapy.auth import LoginResult
from wallpapy.config import ProviderConfig, ServerConfig
from wallpapy.errors import PersistenceError
from wallpapy.service import INTERNAL_ERROR_BODY, WallpapyService
from wallpapy.state import DOCUMENT_KEY, STATE_TREE
from wallpapy.types import Classification

from conftest import MockSummarizer, fast_hasher


def raw(**fields) -> bytes:
    return json.dumps(fields).encode()


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def service(store):
    return WallpapyService(store, summarizer=MockSummarizer(), hasher=fast_hasher())


@pytest.fixture
def token(service):
    response = run(service.login(raw(username="alice", password="secret1")))
    return LoginResult.from_response(response.body).token


class TestLogin:

    def test_alice_scenario(self, service):
        first = run(service.login(raw(username="alice", password="secret1")))
        assert first.status == HTTPStatus.OK
        message, token = first.body.split("|")
        assert message == "Admin Account Created"
        assert len(token) == 20

        wrong = run(service.login(raw(username="alice", password="wrong")))
        assert wrong.status == HTTPStatus.UNAUTHORIZED
        assert wrong.body == "Incorrect username or password"

        again = run(service.login(raw(username="alice", password="secret1")))
        assert again.status == HTTPStatus.OK
        assert "|" not in again.body
        assert again.body != token
        assert len(service.credentials.get_account("alice").tokens) == 2

    def test_short_password_is_bad_request(self, service):
        response = run(service.login(raw(username="alice", password="123")))
        assert response.status == HTTPStatus.BAD_REQUEST
        assert "at least 6" in response.body

    def test_malformed_packet(self, service):
        response = run(service.login(b'{"username": "alice"}'))
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_persistence_failure_is_generic(self, service):
        with patch.object(service.credentials, "login", side_effect=PersistenceError("disk on fire")):
            response = run(service.login(raw(username="alice", password="secret1")))
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == INTERNAL_ERROR_BODY
        assert not response.ok


class TestAuthenticatedHandlers:

    def test_rejects_bad_token(self, service, token):
        response = run(service.add_comment(raw(token="nope", string="hello")))
        assert response.status == HTTPStatus.UNAUTHORIZED
        assert service.state.read().comments == {}

    def test_non_ascii_token_is_unauthorized(self, service, token):
        response = run(service.get_state(raw(token="\u00fc" * 20)))
        assert response.status == HTTPStatus.UNAUTHORIZED

    def test_corrupt_state_document_is_internal_error(self, service, store, token):
        store.insert(STATE_TREE, DOCUMENT_KEY, b"{not json")
        response = run(service.get_state(raw(token=token)))
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.body == "Internal error"

    def test_empty_username_is_bad_request(self, service):
        response = run(service.login(raw(username="", password="secret1")))
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_comments(self, service, token):
        added = run(service.add_comment(raw(token=token, string="more oceans")))
        assert added.ok
        comment_id = added.body
        assert uuid.UUID(comment_id) in service.state.read().comments

        removed = run(service.remove_comment(raw(token=token, uuid=comment_id)))
        assert removed.status == HTTPStatus.OK
        missing = run(service.remove_comment(raw(token=token, uuid=comment_id)))
        assert missing.status == HTTPStatus.NOT_FOUND

    def test_blank_comment(self, service, token):
        response = run(service.add_comment(raw(token=token, string=" ")))
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_style(self, service, token):
        response = run(service.set_style(raw(token=token, variant="contents", string="Space scenes")))
        assert response.ok
        assert service.state.read().style.contents == "Space scenes"

    def test_generated_items(self, service, token):
        recorded = run(service.record_generated_item(
            raw(token=token, prompt="A huge prompt", shortened_prompt="a lighthouse"),
        ))
        item_id = recorded.body

        classified = run(service.set_classification(
            raw(token=token, uuid=item_id, classification="Loved"),
        ))
        assert classified.ok
        item = service.state.read().generated_items[uuid.UUID(item_id)]
        assert item.classification is Classification.LOVED

        assert run(service.remove_generated_item(raw(token=token, uuid=item_id))).ok
        assert service.state.read().generated_items == {}

    def test_classify_unknown_item(self, service, token):
        response = run(service.set_classification(
            raw(token=token, uuid=str(uuid.uuid4()), classification="Liked"),
        ))
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_get_state(self, service, token):
        run(service.add_comment(raw(token=token, string="note")))
        response = run(service.get_state(raw(token=token)))
        document = json.loads(response.body)
        assert [c["text"] for c in document["comments"].values()] == ["note"]
        assert document["style"]["style"] == "Digital paintings"

    def test_query_prompt(self, service, token):
        run(service.record_generated_item(raw(token=token, prompt="p", shortened_prompt="a castle")))
        run(service.add_comment(raw(token=token, string="less castles")))

        response = run(service.query_prompt(raw(token=token, string="a forest")))

        messages = json.loads(response.body)
        assert len(messages) == 3
        history = messages[0].split("\n")[1:]
        assert history == ["User commented: 'less castles'", "'a castle'"]
        assert messages[-1] == "For this image the user requested: 'a forest'"

    def test_query_prompt_survives_summarizer_failure(self, store, token):
        failing = WallpapyService(
            store, summarizer=MockSummarizer(error=RuntimeError("offline")), hasher=fast_hasher(),
        )
        for n in range(25):
            failing.state.add_generated_item("p", f"item {n}")

        response = run(failing.query_prompt(raw(token=token, string="")))

        assert response.ok
        assert "Summary of older history" not in response.body

    def test_concurrent_comments_all_kept(self, service, token):
        async def burst():
            await asyncio.gather(*(
                service.add_comment(raw(token=token, string=f"comment {n}")) for n in range(10)
            ))

        run(burst())
        assert len(service.state.read().comments) == 10


class TestFromConfig:

    def test_opens_store_in_data_dir(self, tmp_path):
        config = ServerConfig(path=tmp_path, summarization=ProviderConfig("none"))
        service = WallpapyService.from_config(config)
        try:
            assert service.summarizer is None
            assert run(service.login(raw(username="alice", password="secret1"))).ok
        finally:
            service.close()
        assert config.database_path.exists()
