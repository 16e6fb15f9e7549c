"""
Request handlers for the wallpapy server.

Each handler takes the raw request payload (JSON bytes) and returns a
Response. Typed library errors become status codes here:

    ValidationError, PacketError  -> 400
    AuthenticationError           -> 401
    PersistenceError              -> 500 with a generic body

Store access is serialized through a single asyncio.Lock. The history
summarization request runs after the lock is released, so a slow model
never blocks logins.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from argon2 import PasswordHasher

from .auth import CredentialStore
from .config import ServerConfig
from .errors import AuthenticationError, PacketError, PersistenceError, ValidationError
from .history import aggregate_history
from .packets import (
    GeneratedItemPacket,
    LoginPacket,
    SetStylePacket,
    TokenPacket,
    TokenStringPacket,
    TokenUuidClassificationPacket,
    TokenUuidPacket,
    decode_authenticated,
    decode_packet,
)
from .prompt import build_prompt_messages
from .state import StateStore
from .store import KVStore
from .summarize import HistorySummarizer, create_summarizer

logger = logging.getLogger(__name__)

INTERNAL_ERROR_BODY = "Internal error"


@dataclass
class Response:
    """Status code plus a plain-text (or JSON) body."""
    status: HTTPStatus
    body: str = ""

    @property
    def ok(self) -> bool:
        return self.status < 400


class WallpapyService:
    """Authenticated operations over one shared KVStore."""

    def __init__(
        self,
        store: KVStore,
        summarizer: Optional[HistorySummarizer] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self._store = store
        self._credentials = CredentialStore(store, hasher=hasher)
        self._state = StateStore(store)
        self._summarizer = summarizer
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: ServerConfig) -> "WallpapyService":
        """Open the store and summarization provider named by ``config``."""
        store = KVStore(config.database_path)
        summarizer = create_summarizer(
            config.summarization.name, config.summarization.params
        )
        logger.info(
            "Service ready (store=%s, summarization=%s)",
            config.database_path, config.summarization.name,
        )
        return cls(store, summarizer=summarizer)

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    @property
    def state(self) -> StateStore:
        return self._state

    @property
    def summarizer(self) -> Optional[HistorySummarizer]:
        return self._summarizer

    def close(self) -> None:
        self._store.close()

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    async def _guarded(
        self,
        operation: str,
        handler: Callable[[bytes], Awaitable[Response]],
        raw: bytes,
    ) -> Response:
        try:
            return await handler(raw)
        except (ValidationError, PacketError) as e:
            logger.warning("%s rejected: %s", operation, e)
            return Response(HTTPStatus.BAD_REQUEST, str(e))
        except AuthenticationError as e:
            logger.warning("%s unauthorized", operation)
            return Response(HTTPStatus.UNAUTHORIZED, str(e))
        except PersistenceError as e:
            logger.error("%s failed: %s", operation, e)
            return Response(HTTPStatus.INTERNAL_SERVER_ERROR, INTERNAL_ERROR_BODY)

    def _authenticate(self, raw: bytes, packet_type):
        return decode_authenticated(raw, packet_type, self._credentials.authority)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def login(self, raw: bytes) -> Response:
        """Body: ``"<message>|<token>"`` on bootstrap or password set, else the token."""
        return await self._guarded("login", self._login, raw)

    async def _login(self, raw: bytes) -> Response:
        packet = decode_packet(raw, LoginPacket)
        async with self._lock:
            result = self._credentials.login(packet.username, packet.password)
        logger.info("Login succeeded for %s", packet.username)
        return Response(HTTPStatus.OK, result.to_response())

    async def add_comment(self, raw: bytes) -> Response:
        """Body: id of the new comment."""
        return await self._guarded("add_comment", self._add_comment, raw)

    async def _add_comment(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, TokenStringPacket)
            comment = self._state.add_comment(packet.string)
        return Response(HTTPStatus.OK, str(comment.id))

    async def remove_comment(self, raw: bytes) -> Response:
        return await self._guarded("remove_comment", self._remove_comment, raw)

    async def _remove_comment(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, TokenUuidPacket)
            removed = self._state.remove_comment(packet.uuid)
        if not removed:
            return Response(HTTPStatus.NOT_FOUND, f"Unknown comment: {packet.uuid}")
        return Response(HTTPStatus.OK)

    async def set_style(self, raw: bytes) -> Response:
        return await self._guarded("set_style", self._set_style, raw)

    async def _set_style(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, SetStylePacket)
            self._state.set_style(packet.variant, packet.string)
        logger.info("Style %s updated", packet.variant.value)
        return Response(HTTPStatus.OK)

    async def set_classification(self, raw: bytes) -> Response:
        return await self._guarded("set_classification", self._set_classification, raw)

    async def _set_classification(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, TokenUuidClassificationPacket)
            self._state.set_classification(packet.uuid, packet.classification)
        return Response(HTTPStatus.OK)

    async def record_generated_item(self, raw: bytes) -> Response:
        """Body: id of the new generated item."""
        return await self._guarded("record_generated_item", self._record_generated_item, raw)

    async def _record_generated_item(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, GeneratedItemPacket)
            record = self._state.add_generated_item(packet.prompt, packet.shortened_prompt)
        return Response(HTTPStatus.OK, str(record.id))

    async def remove_generated_item(self, raw: bytes) -> Response:
        return await self._guarded("remove_generated_item", self._remove_generated_item, raw)

    async def _remove_generated_item(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, TokenUuidPacket)
            removed = self._state.remove_generated_item(packet.uuid)
        if not removed:
            return Response(HTTPStatus.NOT_FOUND, f"Unknown generated item: {packet.uuid}")
        return Response(HTTPStatus.OK)

    async def get_state(self, raw: bytes) -> Response:
        """Body: the whole application-state document as JSON."""
        return await self._guarded("get_state", self._get_state, raw)

    async def _get_state(self, raw: bytes) -> Response:
        async with self._lock:
            self._authenticate(raw, TokenPacket)
            state = self._state.read()
        return Response(HTTPStatus.OK, json.dumps(state.to_dict()))

    async def query_prompt(self, raw: bytes) -> Response:
        """
        Assemble the prompt the next generation would use.

        The packet ``string`` is the user's explicit request (may be empty).
        Body: JSON list of instruction strings.
        """
        return await self._guarded("query_prompt", self._query_prompt, raw)

    async def _query_prompt(self, raw: bytes) -> Response:
        async with self._lock:
            packet = self._authenticate(raw, TokenStringPacket)
            state = self._state.read()
        messages = await self.assemble_prompt(state, packet.string or None)
        return Response(HTTPStatus.OK, json.dumps(messages))

    async def assemble_prompt(self, state, request: Optional[str] = None) -> list[str]:
        """History (with optional summary line), style guidance, then the request."""
        history = await aggregate_history(state, self._summarizer)
        return build_prompt_messages(history, state.style, request)
