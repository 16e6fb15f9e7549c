"""Tests for the summarization fallback and its OpenAI-compatible client."""

import asyncio
import json

import httpx
import pytest

from wallpapy.errors import SummarizationError
from wallpapy.summarize import (
    HistorySummarizer,
    HistorySummary,
    OpenAIHistorySummarizer,
    build_summary_block,
    create_summarizer,
    summarize_discarded,
)
from wallpapy.types import Classification

from conftest import MockSummarizer


def completion(content, usage=None) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": usage or {"prompt_tokens": 50, "completion_tokens": 20},
    }


def summarizer_with(handler, **kwargs) -> OpenAIHistorySummarizer:
    return OpenAIHistorySummarizer(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


GOOD_SUMMARY = {
    "loved": ["stormy coastlines", "ancient forests"],
    "liked": ["desert ruins"],
    "disliked": [],
    "others": ["floating islands"],
}


class TestSummaryLine:

    def test_omits_empty_categories(self):
        summary = HistorySummary(**GOOD_SUMMARY)
        assert summary.to_line() == (
            "Summary of older history: (user LOVED: stormy coastlines, ancient forests) "
            "(user liked: desert ruins) (others: floating islands)"
        )

    def test_all_empty_gives_no_line(self):
        assert HistorySummary(loved=[], liked=[], disliked=[], others=[]).to_line() is None

    def test_duplicates_collapsed(self):
        summary = HistorySummary(loved=["Sea cliffs", "sea cliffs ", ""], liked=[], disliked=[], others=[])
        assert summary.to_line() == "Summary of older history: (user LOVED: Sea cliffs)"


class TestSummaryBlock:

    def test_labels_and_order(self):
        block = build_summary_block({
            Classification.NEUTRAL: ["a", "b"],
            Classification.LOVED: ["c"],
            Classification.DISLIKED: ["d"],
        })
        assert block == "Loved: c\nDisliked: d\nOther: a, b"

    def test_empty_buckets_skipped(self):
        assert build_summary_block({Classification.LIKED: []}) == ""


class TestSummarizeDiscarded:

    def test_success(self):
        line = asyncio.run(summarize_discarded({Classification.LOVED: ["x"]}, MockSummarizer()))
        assert line.startswith("Summary of older history: ")

    def test_nothing_to_summarize_skips_call(self):
        summarizer = MockSummarizer()
        assert asyncio.run(summarize_discarded({}, summarizer)) is None
        assert summarizer.blocks == []

    def test_failure_returns_none(self):
        summarizer = MockSummarizer(error=SummarizationError("bad"))
        assert asyncio.run(summarize_discarded({Classification.LOVED: ["x"]}, summarizer)) is None

    def test_mock_satisfies_protocol(self):
        assert isinstance(MockSummarizer(), HistorySummarizer)


class TestOpenAIHistorySummarizer:

    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=completion(json.dumps(GOOD_SUMMARY)))

        summary = asyncio.run(summarizer_with(handler).summarize("Loved: a, b"))

        assert summary == HistorySummary(**GOOD_SUMMARY)
        assert seen["auth"] == "Bearer test-key"
        payload = seen["payload"]
        assert payload["messages"][-1] == {"role": "user", "content": "Loved: a, b"}
        schema = payload["response_format"]["json_schema"]
        assert schema["strict"] is True
        assert set(schema["schema"]["properties"]) == {"loved", "liked", "disliked", "others"}

    def test_http_error(self):
        def handler(request):
            return httpx.Response(500, text="upstream exploded")

        with pytest.raises(SummarizationError, match="500"):
            asyncio.run(summarizer_with(handler).summarize("Loved: a"))

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(SummarizationError):
            asyncio.run(summarizer_with(handler).summarize("Loved: a"))

    def test_malformed_content(self):
        def handler(request):
            return httpx.Response(200, json=completion('{"loved": "not a list"}'))

        with pytest.raises(SummarizationError, match="Malformed"):
            asyncio.run(summarizer_with(handler).summarize("Loved: a"))

    def test_missing_choices(self):
        def handler(request):
            return httpx.Response(200, json={"error": "nope"})

        with pytest.raises(SummarizationError, match="No content"):
            asyncio.run(summarizer_with(handler).summarize("Loved: a"))

    def test_non_json_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(SummarizationError):
            asyncio.run(summarizer_with(handler).summarize("Loved: a"))

    def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json=completion(json.dumps(GOOD_SUMMARY)))

        summarizer = summarizer_with(handler, timeout=0.05)
        with pytest.raises(SummarizationError, match="timed out"):
            asyncio.run(summarizer.summarize("Loved: a"))

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="API key"):
            OpenAIHistorySummarizer()

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        assert OpenAIHistorySummarizer()._api_key == "env-key"


class TestCreateSummarizer:

    def test_none(self):
        assert create_summarizer("none") is None
        assert create_summarizer("") is None

    def test_openai(self):
        summarizer = create_summarizer("openai", {"api_key": "k", "model": "gpt-4o-mini", "timeout": 10.0})
        assert isinstance(summarizer, OpenAIHistorySummarizer)
        assert summarizer.timeout == 10.0

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown summarization provider"):
            create_summarizer("carrier-pigeon")
