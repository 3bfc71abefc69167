"""Transcription backend talking to a local Whisper bridge over HTTP."""

import time
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..config.settings import EngineSettings
from ..errors import TranscriptionError
from ..models.transcription import TranscriptionRequest, TranscriptionResult, TranscriptSegment
from .base import AbstractTranscriptionBackend, ProgressCallback

logger = logging.getLogger(__name__)


class BridgeTranscriptionBackend(AbstractTranscriptionBackend):
    """Posts segment WAVs to ``{url}/transcribe`` as multipart form data."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        """Initialize the bridge backend.

        Args:
            settings: Bridge URL, bearer token, default model/language and timeout
        """
        self.settings = settings or EngineSettings()
        self.base_url = self.settings.url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        self.last_status: Dict[str, Any] = {}

        logger.info(f"BridgeTranscriptionBackend initialized: {self.base_url} "
                    f"(model={self.settings.model})")

    async def initialize(self) -> bool:
        """Check that the bridge answers ``GET /status``."""
        try:
            self.last_status = await self.get_status()
        except TranscriptionError as e:
            logger.error(f"Transcription bridge not reachable: {e}")
            return False
        logger.info(f"✅ Transcription bridge ready: {self.last_status}")
        return True

    async def get_status(self) -> Dict[str, Any]:
        url = f"{self.base_url}/status"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers={"Accept": "application/json"}) as response:
                    if response.status < 200 or response.status >= 300:
                        raise TranscriptionError(f"Bridge status {response.status}",
                                                 status=response.status)
                    return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TranscriptionError(f"Bridge status check failed: {e}") from e

    async def transcribe(self, request: TranscriptionRequest,
                         progress: Optional[ProgressCallback] = None) -> TranscriptionResult:
        """Send one segment to the bridge and parse its JSON answer."""
        sequence = request.segment_sequence
        form = aiohttp.FormData()
        form.add_field("audio", request.audio,
                       filename=f"segment_{sequence or 0}.wav", content_type="audio/wav")
        form.add_field("task", "transcribe")
        form.add_field("model", request.model)
        form.add_field("mode", request.mode)
        if request.language and request.language != "auto":
            form.add_field("language", request.language)

        headers = {"Authorization": f"Bearer {self.settings.token}"}
        url = f"{self.base_url}/transcribe"
        start_time = time.time()
        self._report(progress, 30)
        logger.debug(f"POST {url}: segment #{sequence}, {len(request.audio)} bytes, "
                     f"model={request.model}, language={request.language}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, data=form, headers=headers) as response:
                    if response.status < 200 or response.status >= 300:
                        error_text = await response.text()
                        raise TranscriptionError(
                            f"Bridge error {response.status}: {error_text[:200]}",
                            segment_sequence=sequence, status=response.status,
                        )
                    self._report(progress, 80)
                    payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TranscriptionError(f"Bridge request failed: {e!r}",
                                     segment_sequence=sequence) from e
        except ValueError as e:
            raise TranscriptionError(f"Bridge returned invalid JSON: {e}",
                                     segment_sequence=sequence) from e

        result = self._parse_result(payload, request)
        result.processing_time = time.time() - start_time
        self._report(progress, 100)
        return result

    async def cleanup(self) -> None:
        # sessions are per request, nothing is held between calls
        logger.debug("BridgeTranscriptionBackend cleanup")

    def _parse_result(self, payload: Any, request: TranscriptionRequest) -> TranscriptionResult:
        if not isinstance(payload, dict):
            raise TranscriptionError(f"Unexpected bridge response: {payload!r}",
                                     segment_sequence=request.segment_sequence)
        segments: List[TranscriptSegment] = []
        for item in payload.get("segments") or []:
            start = item.get("start", item.get("t0", 0.0))
            end = item.get("end", item.get("t1", start))
            segments.append(TranscriptSegment(start=float(start), end=float(end),
                                              text=str(item.get("text", "")).strip()))
        return TranscriptionResult(
            text=str(payload.get("text") or "").strip(),
            segments=segments,
            model=str(payload.get("model") or request.model),
            language=str(payload.get("language") or request.language),
            segment_sequence=request.segment_sequence,
        )

    @staticmethod
    def _report(progress: Optional[ProgressCallback], value: int) -> None:
        if progress:
            progress(value)
