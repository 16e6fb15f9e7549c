"""
Request packet shapes.

Packets arrive as JSON bytes. Any packet that needs authentication embeds a
``token`` field; ``decode_authenticated`` rejects the request when the payload
does not parse or the token does not verify.
"""

import logging
import uuid
from typing import TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from .auth import TokenAuthority
from .errors import AuthenticationError, PacketError
from .types import Classification, StyleVariant

logger = logging.getLogger(__name__)


class LoginPacket(BaseModel):
    username: str
    password: str


class TokenPacket(BaseModel):
    """Base for every authenticated packet."""
    token: str = Field(description="Bearer token returned by login")


class TokenStringPacket(TokenPacket):
    string: str


class TokenUuidPacket(TokenPacket):
    uuid: uuid.UUID


class TokenUuidClassificationPacket(TokenPacket):
    uuid: uuid.UUID
    classification: Classification


class SetStylePacket(TokenPacket):
    variant: StyleVariant
    string: str


class GeneratedItemPacket(TokenPacket):
    """Reports a finished generation back to the server."""
    prompt: str
    shortened_prompt: str


P = TypeVar("P", bound=BaseModel)
A = TypeVar("A", bound=TokenPacket)


def decode_packet(raw: bytes, packet_type: type[P]) -> P:
    """
    Deserialize a packet.

    Raises:
        PacketError: Payload is not valid JSON for ``packet_type``
    """
    try:
        return packet_type.model_validate_json(raw)
    except SchemaValidationError as e:
        logger.error("Failed to deserialise %s: %s", packet_type.__name__, e)
        raise PacketError(f"Malformed {packet_type.__name__}") from e


def decode_authenticated(raw: bytes, packet_type: type[A], authority: TokenAuthority) -> A:
    """
    Deserialize a packet and verify its embedded token.

    Raises:
        PacketError: Payload does not parse
        AuthenticationError: Token does not verify
    """
    packet = decode_packet(raw, packet_type)
    if not authority.verify(packet.token):
        logger.warning("Unauthorized %s request", packet_type.__name__)
        raise AuthenticationError("Unauthorized")
    return packet
