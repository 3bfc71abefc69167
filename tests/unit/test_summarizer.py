"""Unit tests for the contextual summarizer and the LLM summary engine."""

import asyncio
import socket

import pytest
from aiohttp import web
from unittest.mock import AsyncMock, Mock

from sessionscribe.config.settings import SummarySettings
from sessionscribe.errors import SessionScribeError
from sessionscribe.transcription.assembler import TranscriptAssembler
from sessionscribe.transcription.summarizer import ContextualSummarizer, LLMSummaryEngine


LONG_TEXT = "The client described a difficult week at work and trouble sleeping. " * 3


def fake_engine(reply="summary", error=None):
    engine = Mock(spec=LLMSummaryEngine)
    engine.model = "llama3.1:8b"
    engine.summarize = AsyncMock(return_value=reply, side_effect=error)
    return engine


@pytest.mark.unit
class TestContextualSummarizer:
    """Test cases for ContextualSummarizer."""

    def test_refuses_short_content(self):
        assembler = TranscriptAssembler()
        assembler.append("Too short.")
        engine = fake_engine()

        assert asyncio.run(ContextualSummarizer(assembler, engine).summarize()) is None
        engine.summarize.assert_not_called()
        assert assembler.cursor() == 0

    def test_summarizes_only_new_text(self):
        assembler = TranscriptAssembler()
        assembler.append(LONG_TEXT)
        engine = fake_engine()
        summarizer = ContextualSummarizer(assembler, engine)

        assert asyncio.run(summarizer.summarize()) == "summary"
        assert assembler.cursor() == len(assembler.text)

        assembler.append("A brief follow-up.")
        assert asyncio.run(summarizer.summarize()) is None

        assembler.append(LONG_TEXT.upper())
        asyncio.run(summarizer.summarize())
        sent = engine.summarize.call_args[0][0]
        assert sent.startswith("A brief follow-up.")
        assert LONG_TEXT.strip() not in sent

    def test_cursor_stays_on_failure(self):
        assembler = TranscriptAssembler()
        assembler.append(LONG_TEXT)
        summarizer = ContextualSummarizer(assembler, fake_engine(error=SessionScribeError("down")))

        with pytest.raises(SessionScribeError):
            asyncio.run(summarizer.summarize())

        assert assembler.cursor() == 0

    def test_threshold_is_configurable(self):
        assembler = TranscriptAssembler()
        assembler.append("Tiny.")
        summarizer = ContextualSummarizer(assembler, fake_engine(),
                                          SummarySettings(min_new_chars=3))

        assert asyncio.run(summarizer.summarize()) == "summary"


def serve(handler, scenario):
    async def main():
        app = web.Application()
        app.add_routes([web.post("/v1/chat/completions", handler)])
        runner = web.AppRunner(app)
        await runner.setup()
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        site = web.TCPSite(runner, "127.0.0.1", port)
        await site.start()
        try:
            return await scenario(f"http://127.0.0.1:{port}")
        finally:
            await runner.cleanup()

    return asyncio.run(main())


@pytest.mark.unit
class TestLLMSummaryEngine:
    """Test cases for LLMSummaryEngine."""

    def test_send_prompt(self):
        received = {}

        async def completions(req):
            received.update(await req.json())
            return web.json_response({
                "choices": [{"message": {"role": "assistant", "content": "  Key points.  "}}]
            })

        async def scenario(url):
            engine = LLMSummaryEngine(SummarySettings(url=url, model="mistral"))
            return await engine.summarize("some transcript")

        summary = serve(completions, scenario)

        assert summary == "Key points."
        assert received["model"] == "mistral"
        assert received["messages"][0]["role"] == "system"
        assert received["messages"][1]["content"].endswith("some transcript")
        assert received["stream"] is False

    def test_error_status_raises(self):
        async def completions(req):
            return web.Response(status=503, text="no model loaded")

        async def scenario(url):
            engine = LLMSummaryEngine(SummarySettings(url=url))
            with pytest.raises(SessionScribeError, match="503"):
                await engine.send_prompt("hello")

        serve(completions, scenario)

    def test_malformed_reply_raises(self):
        async def completions(req):
            return web.json_response({"choices": []})

        async def scenario(url):
            engine = LLMSummaryEngine(SummarySettings(url=url))
            with pytest.raises(SessionScribeError, match="Unexpected"):
                await engine.send_prompt("hello")

        serve(completions, scenario)
