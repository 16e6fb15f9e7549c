"""
Summarization of history that fell out of the verbatim window.

The discarded buckets are sent as one plain-text block to a chat model that
must answer with a structured result (four lists of short phrases). The
result becomes a single ``Summary of older history: ...`` line. Any failure
here is logged and the line is simply left out.
"""

import asyncio
import logging
import os
from typing import Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaValidationError

from .errors import SummarizationError
from .types import Classification

logger = logging.getLogger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 30.0

SUMMARY_SYSTEM_PROMPT = """You compress the older history of a wallpaper generator.

You receive lists of short image descriptions grouped by how the user felt about them.
For each group return short descriptive phrases (2-7 words each) capturing the recurring
subjects, styles and moods. Merge near-duplicates, do not repeat phrases, and return an
empty list for a group with no items."""

# Bucket order in both the request block and the summary line
_BUCKET_ORDER = (
    Classification.LOVED,
    Classification.LIKED,
    Classification.DISLIKED,
    Classification.NEUTRAL,
)


class HistorySummary(BaseModel):
    """Structured result expected from the summarization model."""

    model_config = ConfigDict(extra="forbid")

    loved: list[str] = Field(description="Themes of items the user loved, 2-7 words each, deduplicated")
    liked: list[str] = Field(description="Themes of items the user liked, 2-7 words each, deduplicated")
    disliked: list[str] = Field(description="Themes of items the user disliked, 2-7 words each, deduplicated")
    others: list[str] = Field(description="Themes of the remaining items, 2-7 words each, deduplicated")

    def to_line(self) -> Optional[str]:
        """Render as one history line, omitting empty categories (None if all are empty)."""
        groups = [
            ("user LOVED", self.loved),
            ("user liked", self.liked),
            ("user disliked", self.disliked),
            ("others", self.others),
        ]
        parts = []
        for label, phrases in groups:
            cleaned = _dedupe_preserve_order(phrases)
            if cleaned:
                parts.append(f"({label}: {', '.join(cleaned)})")
        if not parts:
            return None
        return "Summary of older history: " + " ".join(parts)


def _dedupe_preserve_order(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for it in items:
        s = (it or "").strip()
        if not s or s.casefold() in seen:
            continue
        seen.add(s.casefold())
        out.append(s)
    return out


def build_summary_block(discarded: dict[Classification, list[str]]) -> str:
    """One ``"<Label>: a, b, c"`` line per non-empty bucket."""
    lines = []
    for classification in _BUCKET_ORDER:
        items = discarded.get(classification)
        if items:
            lines.append(f"{classification.label}: {', '.join(items)}")
    return "\n".join(lines)


@runtime_checkable
class HistorySummarizer(Protocol):
    """
    Compresses a block of discarded history into a HistorySummary.

    Implementations may raise anything on failure; callers treat every
    failure as "no summary".
    """

    async def summarize(self, block: str) -> HistorySummary:
        ...


async def summarize_discarded(
    discarded: dict[Classification, list[str]],
    summarizer: HistorySummarizer,
) -> Optional[str]:
    """
    Summarize the discarded buckets into one history line.

    Returns:
        The summary line, or None if there is nothing to summarize or the
        summarizer failed
    """
    block = build_summary_block(discarded)
    if not block:
        return None
    try:
        summary = await summarizer.summarize(block)
    except Exception as e:
        logger.warning("History summarization skipped: %s", e)
        return None
    return summary.to_line()


class OpenAIHistorySummarizer:
    """
    Summarizer using an OpenAI-compatible chat completions endpoint with a
    strict JSON schema response format.

    Requires: WALLPAPY_OPENAI_API_KEY or OPENAI_API_KEY environment variable
    (or an explicit api_key).
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        *,
        api_url: str = OPENAI_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_tokens: int = 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        key = api_key or os.environ.get("WALLPAPY_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set WALLPAPY_OPENAI_API_KEY or OPENAI_API_KEY"
            )
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._api_key = key
        self._transport = transport

    def _payload(self, block: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": block},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "history_summary",
                    "schema": HistorySummary.model_json_schema(),
                    "strict": True,
                },
            },
            "max_tokens": self.max_tokens,
        }

    async def summarize(self, block: str) -> HistorySummary:
        """
        Send one structured-output request, bounded by ``timeout`` seconds overall.

        Raises:
            SummarizationError: Network failure, timeout, non-2xx status,
                or a response that does not match the schema
        """
        try:
            return await asyncio.wait_for(self._request(block), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise SummarizationError(f"Summarization timed out after {self.timeout}s") from e

    async def _request(self, block: str) -> HistorySummary:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.api_url, json=self._payload(block), headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            raise SummarizationError(
                f"Summarization rejected: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SummarizationError(f"Summarization request failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise SummarizationError(f"No content found in response: {data!r:.200}") from e
        if not content:
            raise SummarizationError("Empty summarization response")

        try:
            summary = HistorySummary.model_validate_json(content)
        except SchemaValidationError as e:
            raise SummarizationError(f"Malformed summarization response: {e}") from e

        usage = data.get("usage") or {}
        logger.info(
            "Summarized older history using %s prompt tokens and %s completion tokens",
            usage.get("prompt_tokens", "?"),
            usage.get("completion_tokens", "?"),
        )
        return summary


# Summarization providers by config name; "none" disables summarization
_SUMMARIZERS: dict[str, type] = {
    "openai": OpenAIHistorySummarizer,
}


def create_summarizer(name: str, params: dict | None = None) -> Optional[HistorySummarizer]:
    """
    Create a summarizer from its config name and parameters.

    Raises:
        ValueError: Unknown provider name, or provider misconfigured
    """
    if name in ("", "none"):
        return None
    provider_class = _SUMMARIZERS.get(name)
    if provider_class is None:
        available = ", ".join(sorted(_SUMMARIZERS))
        raise ValueError(f"Unknown summarization provider: {name!r}. Available: {available}, none")
    return provider_class(**(params or {}))
