"""Incremental summaries of the live transcript through a local LLM bridge."""

import asyncio
import logging
from typing import Optional

import aiohttp

from ..config.settings import SummarySettings
from ..errors import SessionScribeError
from .assembler import TranscriptAssembler

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = ("You are an expert clinical transcription assistant. "
                 "Answer in a structured, professional way.")

SUMMARY_PROMPT = ("Summarize the following part of a session transcript. "
                  "List the main topics discussed, notable statements and any "
                  "follow-up items. Do not invent content that is not in the text.")


class LLMSummaryEngine:
    """Sends prompts to an OpenAI-compatible chat completions endpoint."""

    def __init__(self, settings: Optional[SummarySettings] = None, token: Optional[str] = None):
        """Initialize the summary engine.

        Args:
            settings: Bridge URL, model name and request timeout
            token: Optional bearer token for the bridge
        """
        self.settings = settings or SummarySettings()
        self.model = self.settings.model
        self.token = token
        self.base_url = f"{self.settings.url.rstrip('/')}/v1/chat/completions"

        logger.info(f"LLMSummaryEngine initialized with model: {self.model}")

    async def send_prompt(self, prompt: str, temperature: float = 0.3, max_tokens: int = 2000) -> str:
        """Send a prompt and return the assistant's reply.

        Args:
            prompt: User message, instructions followed by the transcript text
            temperature: Temperature for response generation (0.0 to 1.0)
            max_tokens: Maximum tokens in response

        Returns:
            Response text from the model

        Raises:
            SessionScribeError: If the bridge is unreachable or answers non-200
        """
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        data = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "stream": False,
            "max_tokens": max_tokens,
        }

        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.base_url, headers=headers, json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise SessionScribeError(f"LLM bridge error: {response.status} - {error_text}")
                    result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SessionScribeError(f"LLM bridge request failed: {e!r}") from e

        try:
            return result["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError) as e:
            raise SessionScribeError(f"Unexpected LLM response: {result!r}") from e

    async def summarize(self, text: str) -> str:
        return await self.send_prompt(f"{SUMMARY_PROMPT}\n\n{text}")


class ContextualSummarizer:
    """Summarizes only what was transcribed since the previous summary."""

    def __init__(self, assembler: TranscriptAssembler, engine: LLMSummaryEngine,
                 settings: Optional[SummarySettings] = None):
        self.assembler = assembler
        self.engine = engine
        self.settings = settings or SummarySettings()

    async def summarize(self) -> Optional[str]:
        """Summarize new transcript text.

        Returns:
            The summary, or None when fewer than ``min_new_chars`` characters
            arrived since the last successful summary. The cursor only moves
            when the engine succeeds.
        """
        position = len(self.assembler.text)
        new_text = self.assembler.text_since()
        if len(new_text) < self.settings.min_new_chars:
            logger.info(f"Not enough new content to summarize "
                        f"({len(new_text)}/{self.settings.min_new_chars} chars)")
            return None

        logger.info(f"Summarizing {len(new_text)} new characters with {self.engine.model}")
        summary = await self.engine.summarize(new_text)
        self.assembler.advance_cursor(position)
        return summary
