"""Main application entry point for SessionScribe."""

import sys
import time
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel

from .config import ScribeConfig
from .errors import ConfigurationError, DeviceError, HallucinationSuspect, SessionScribeError
from .services.recording_service import RecordingPipeline
from .storage.file_manager import FileManager
from .transcription.bridge_backend import BridgeTranscriptionBackend
from .transcription.publisher import (
    TRANSCRIPT_TOPIC, ERROR_TOPIC, NOTICE_TOPIC, PROGRESS_TOPIC, PipelineEventPublisher,
)

logger = logging.getLogger(__name__)


class Server:
    """Records one session from the command line and prints the transcript live."""

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = ScribeConfig(config_path)
        level = log_level or self.config.get('logging.level', 'INFO')
        setup_logging(self.config, level)
        self.console = Console()
        self.should_exit = False
        self.pipeline: Optional[RecordingPipeline] = None
        self._printed_chars = 0

    def init(self, model: Optional[str] = None, language: Optional[str] = None,
             dialogue: bool = False) -> None:
        logger.info("Initializing services...")
        if model:
            self.config.set('engine.model', model)
        if language:
            self.config.set('engine.language', language)
        if dialogue:
            self.config.set('transcript.dialogue_mode', True)
        settings = self.config.settings

        logger.info(f"Capture: {settings.capture.sample_rate}Hz, {settings.capture.channels} channel(s), "
                    f"{settings.capture.chunk_seconds}s chunks; engine {settings.engine.url} "
                    f"({settings.engine.model})")

        pub.subscribe(self._on_transcript, TRANSCRIPT_TOPIC)
        pub.subscribe(self._on_error, ERROR_TOPIC)
        pub.subscribe(self._on_notice, NOTICE_TOPIC)
        pub.subscribe(self._on_progress, PROGRESS_TOPIC)

        self.pipeline = RecordingPipeline(
            settings=settings,
            file_manager=FileManager(self.config.get_data_directory()),
            events=PipelineEventPublisher(),
        )

    def run(self, duration: int, session_id: Optional[str] = None,
            client_id: Optional[str] = None) -> None:
        session_id = self.pipeline.start(session_id=session_id, client_id=client_id)
        self.console.print(f"🎙️  Recording session {session_id}", style="bold green")
        try:
            started = time.monotonic()
            while not self.should_exit:
                if duration and time.monotonic() - started >= duration:
                    break
                time.sleep(0.2)
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        if self.pipeline is None or not self.pipeline.is_recording:
            return
        self.console.print("Stopping, waiting for pending transcriptions...", style="yellow")
        self.pipeline.stop()
        transcript = self.pipeline.transcript
        self.console.print(Panel(transcript or "(no speech transcribed)",
                                 title=f"Transcript {self.pipeline.session_id}",
                                 border_style="green"))
        self.console.print(f"✅ Session saved: {self.pipeline.session_id}", style="bold green")

    def summarize(self) -> None:
        try:
            summary = asyncio.run(self.pipeline.summarizer.summarize())
        except SessionScribeError as e:
            self.console.print(f"❌ Summary failed: {e}", style="bold red")
            return
        if summary is None:
            self.console.print("Not enough new content to summarize", style="yellow")
            return
        self.console.print(Panel(summary, title="Summary", border_style="blue"))

    def _on_transcript(self, transcript: str) -> None:
        new_text = transcript[self._printed_chars:].strip()
        self._printed_chars = len(transcript)
        if new_text:
            self.console.print(new_text)

    def _on_error(self, error: Exception, fatal: bool) -> None:
        if fatal:
            self.console.print(f"❌ {error}", style="bold red")
            self.should_exit = True
        else:
            self.console.print(f"⚠️  {error}", style="yellow")

    def _on_notice(self, notice: HallucinationSuspect) -> None:
        self.console.print(f"⚠️  {notice}. {notice.hint}", style="yellow")

    def _on_progress(self, segment_sequence: int, percent: int) -> None:
        logger.debug(f"Segment #{segment_sequence}: {percent}%")


def setup_logging(config: ScribeConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/sessionscribe.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("SessionScribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def check_bridge(config: ScribeConfig) -> bool:
    backend = BridgeTranscriptionBackend(config.settings.engine)
    return asyncio.run(backend.initialize())


def main() -> None:
    """Main entry point for SessionScribe."""
    parser = argparse.ArgumentParser(
        description="SessionScribe - Real-time session transcription through a local Whisper bridge",
    )
    parser.add_argument("--config", type=str, help="Path to configuration YAML file")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Seconds to record before stopping (default: until Ctrl+C)"
    )
    parser.add_argument("--session", type=str, help="Session ID (default: timestamp-based)")
    parser.add_argument("--client", type=str, help="Client identifier stored with the session")
    parser.add_argument("--model", type=str, help="Engine model (overrides config)")
    parser.add_argument("--language", type=str, help="Language code or 'auto' (overrides config)")
    parser.add_argument("--dialogue", action="store_true",
                        help="Label transcript lines with alternating speakers")
    parser.add_argument("--summary", action="store_true",
                        help="Summarize the transcript through the LLM bridge after stopping")
    parser.add_argument("--check", action="store_true",
                        help="Only check that the transcription bridge is reachable")
    parser.add_argument("--version", action="version", version="SessionScribe v0.1.0")

    args = parser.parse_args()
    console = Console()

    try:
        server = Server(args.config, args.log_level)
    except ConfigurationError as e:
        console.print(f"❌ Configuration error: {e}", style="bold red")
        sys.exit(2)

    if args.check:
        ok = check_bridge(server.config)
        console.print("✅ Bridge reachable" if ok else "❌ Bridge not reachable",
                      style="bold green" if ok else "bold red")
        sys.exit(0 if ok else 1)

    try:
        server.init(model=args.model, language=args.language, dialogue=args.dialogue)
        server.run(args.duration, session_id=args.session, client_id=args.client)
        if args.summary:
            server.summarize()
    except KeyboardInterrupt:
        server.cleanup()
        if args.summary:
            server.summarize()
        console.print("\n👋 Goodbye!")
    except DeviceError as e:
        console.print(f"❌ Microphone error: {e}", style="bold red")
        sys.exit(1)
    except SessionScribeError as e:
        console.print(f"❌ Error: {e}", style="bold red")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
