"""
Data types for wallpapy.

Records are plain dataclasses with ``to_dict``/``from_dict`` helpers; the
persistent store holds them as UTF-8 JSON.
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import PersistenceError

# Recency index at or beyond which a generated item is neither rendered nor summarized
SUMMARY_HORIZON = 100

# Recency index at or beyond which a comment is dropped
COMMENT_WINDOW = 30


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Canonical storage format for timestamps (ISO 8601, UTC offset)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def parse_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts a trailing 'Z' and naive values (treated as UTC).
    """
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Classification(str, Enum):
    """User sentiment about a generated item; drives retention and display."""

    LOVED = "Loved"
    LIKED = "Liked"
    DISLIKED = "Disliked"
    NEUTRAL = "Neutral"

    @property
    def threshold(self) -> int:
        """Recency index below which an item is rendered verbatim."""
        return _THRESHOLDS[self]

    @property
    def prefix(self) -> str:
        """Human-readable tag placed before a rendered item."""
        return _PREFIXES[self]

    @property
    def label(self) -> str:
        """Bucket label used in the summarization request."""
        return "Other" if self is Classification.NEUTRAL else self.value


_THRESHOLDS = {
    Classification.LOVED: 60,
    Classification.LIKED: 30,
    Classification.DISLIKED: 30,
    Classification.NEUTRAL: 20,
}

_PREFIXES = {
    Classification.LOVED: "(user LOVED this) ",
    Classification.LIKED: "(user liked this) ",
    Classification.DISLIKED: "(user disliked this) ",
    Classification.NEUTRAL: "",
}


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

@dataclass
class Token:
    """A bearer token issued to an account."""
    value: str
    last_used: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "last_used": format_timestamp(self.last_used)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Token":
        return cls(value=data["value"], last_used=parse_timestamp(data["last_used"]))


@dataclass
class Account:
    """
    A login account, keyed by username in the accounts partition.

    An empty ``password_hash`` means the username is reserved but no
    password has been set yet.
    """
    username: str
    password_hash: str = ""
    admin: bool = False
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    tokens: list[Token] = field(default_factory=list)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "admin": self.admin,
            "id": str(self.id),
            "username": self.username,
            "password_hash": self.password_hash,
            "tokens": [t.to_dict() for t in self.tokens],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        return cls(
            admin=bool(data.get("admin", False)),
            id=uuid.UUID(data["id"]),
            username=data["username"],
            password_hash=data.get("password_hash", ""),
            tokens=[Token.from_dict(t) for t in data.get("tokens", [])],
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Account":
        return _decode(cls, raw)


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------

@dataclass
class GeneratedItemRecord:
    """A generated wallpaper. Only ``classification`` changes after creation."""
    id: uuid.UUID
    created_at: datetime
    prompt_text: str
    shortened_prompt: str
    classification: Classification = Classification.NEUTRAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "created_at": format_timestamp(self.created_at),
            "prompt_text": self.prompt_text,
            "shortened_prompt": self.shortened_prompt,
            "classification": self.classification.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeneratedItemRecord":
        return cls(
            id=uuid.UUID(data["id"]),
            created_at=parse_timestamp(data["created_at"]),
            prompt_text=data.get("prompt_text", ""),
            shortened_prompt=data.get("shortened_prompt", ""),
            classification=Classification(data.get("classification", "Neutral")),
        )


@dataclass
class CommentRecord:
    """A free-text comment left by the user."""
    id: uuid.UUID
    created_at: datetime
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "created_at": format_timestamp(self.created_at),
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CommentRecord":
        return cls(
            id=uuid.UUID(data["id"]),
            created_at=parse_timestamp(data["created_at"]),
            text=data.get("text", ""),
        )


class StyleVariant(str, Enum):
    """Which StyleConfig field a style update targets."""
    STYLE = "style"
    CONTENTS = "contents"
    NEGATIVE_CONTENTS = "negative_contents"


@dataclass
class StyleConfig:
    """Style guidance included in every generation prompt."""
    style: str = "Digital paintings"
    contents: str = "Epic fantasy, surreal, abstract, landscapes"
    negative_contents: str = "No people, don't go for highly complex"

    def to_dict(self) -> dict[str, str]:
        return {
            "style": self.style,
            "contents": self.contents,
            "negative_contents": self.negative_contents,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StyleConfig":
        default = cls()
        return cls(
            style=data.get("style", default.style),
            contents=data.get("contents", default.contents),
            negative_contents=data.get("negative_contents", default.negative_contents),
        )


@dataclass
class ApplicationState:
    """The aggregate root, persisted as one document."""
    style: StyleConfig = field(default_factory=StyleConfig)
    generated_items: dict[uuid.UUID, GeneratedItemRecord] = field(default_factory=dict)
    comments: dict[uuid.UUID, CommentRecord] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "style": self.style.to_dict(),
            "generated_items": {str(k): v.to_dict() for k, v in self.generated_items.items()},
            "comments": {str(k): v.to_dict() for k, v in self.comments.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplicationState":
        items = (GeneratedItemRecord.from_dict(v) for v in data.get("generated_items", {}).values())
        comments = (CommentRecord.from_dict(v) for v in data.get("comments", {}).values())
        return cls(
            style=StyleConfig.from_dict(data.get("style", {})),
            generated_items={r.id: r for r in items},
            comments={c.id: c for c in comments},
        )

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ApplicationState":
        return _decode(cls, raw)


def _decode(record_type, raw: bytes):
    """Parse a stored JSON record; unreadable data is a store failure."""
    try:
        return record_type.from_dict(json.loads(raw.decode("utf-8")))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise PersistenceError(f"Corrupt {record_type.__name__} record: {e}") from e
