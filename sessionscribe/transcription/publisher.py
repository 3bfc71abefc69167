"""Pub/sub publishers for transcript updates and pipeline events."""

import logging
from typing import Callable

from pubsub import pub

from ..errors import DeviceError, HallucinationSuspect
from ..models.audio import LevelReading

logger = logging.getLogger(__name__)

TRANSCRIPT_TOPIC = "transcript_updates"
ERROR_TOPIC = "pipeline_errors"
NOTICE_TOPIC = "pipeline_notices"
PROGRESS_TOPIC = "transcription_progress"
LEVEL_TOPIC = "audio_levels"


class TranscriptPublisher:
    """Publishes the full transcript after every accepted block."""

    def __init__(self, topic: str = TRANSCRIPT_TOPIC):
        """Initialize transcript publisher.

        Args:
            topic: Pub/sub topic name for transcript updates
        """
        self.topic = topic
        logger.info(f"TranscriptPublisher initialized with topic: {topic}")

    def publish_transcript(self, transcript: str) -> None:
        pub.sendMessage(self.topic, transcript=transcript)
        logger.debug(f"Published transcript update ({len(transcript)} chars)")

    def get_callback(self) -> Callable[[str], None]:
        """Get callback function for TranscriptAssembler to use."""
        return self.publish_transcript


class PipelineEventPublisher:
    """Publishes errors, hallucination notices, progress and input levels."""

    def __init__(self,
                 error_topic: str = ERROR_TOPIC,
                 notice_topic: str = NOTICE_TOPIC,
                 progress_topic: str = PROGRESS_TOPIC,
                 level_topic: str = LEVEL_TOPIC):
        self.error_topic = error_topic
        self.notice_topic = notice_topic
        self.progress_topic = progress_topic
        self.level_topic = level_topic
        logger.info(f"PipelineEventPublisher initialized with topics: "
                    f"{error_topic}, {notice_topic}, {progress_topic}, {level_topic}")

    def publish_error(self, error: Exception) -> None:
        pub.sendMessage(self.error_topic, error=error, fatal=isinstance(error, DeviceError))

    def publish_notice(self, notice: HallucinationSuspect) -> None:
        pub.sendMessage(self.notice_topic, notice=notice)

    def publish_progress(self, segment_sequence: int, percent: int) -> None:
        pub.sendMessage(self.progress_topic, segment_sequence=segment_sequence, percent=percent)

    def publish_level(self, reading: LevelReading) -> None:
        pub.sendMessage(self.level_topic, reading=reading)

    def get_error_callback(self) -> Callable[[Exception], None]:
        return self.publish_error

    def get_notice_callback(self) -> Callable[[HallucinationSuspect], None]:
        return self.publish_notice

    def get_progress_callback(self) -> Callable[[int, int], None]:
        return self.publish_progress

    def get_level_callback(self) -> Callable[[LevelReading], None]:
        return self.publish_level
