"""Detection and cleanup of repetition loops in engine output.

Small speech models sometimes get stuck and emit the same word or short
phrase over and over. Two independent mechanisms handle that:

* ``check`` looks for a 1, 2 or 3-word n-gram recurring back to back at
  least ``threshold[n]`` times and reports a ``HallucinationSuspect``;
* ``collapse_loops`` rewrites any short character sequence repeated three
  or more times in a row down to two repetitions.

The thresholds come from a named profile. Larger models hallucinate less,
so their profile tolerates longer streaks before flagging.
"""

import re
import logging
from typing import Callable, Dict, List, Optional, Tuple

from ..config.settings import HallucinationSettings
from ..errors import ConfigurationError, HallucinationSuspect
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

PROFILE_ORDER = ("fast", "balanced", "accurate")
FALLBACK_PROFILE = "balanced"

_PUNCTUATION = re.compile(r"[^\w']+")


def normalize_words(text: str) -> List[str]:
    """Lowercase words with surrounding punctuation removed."""
    words = (_PUNCTUATION.sub("", word.lower()) for word in text.split())
    return [word for word in words if word]


def profile_for_model(model: str, settings: HallucinationSettings) -> str:
    """Map an engine model name (``base.en``, ``large-v3``...) to a profile."""
    family = re.split(r"[.\-_]", model.strip().lower(), maxsplit=1)[0]
    return settings.profile_by_model.get(family, FALLBACK_PROFILE)


class HallucinationFilter:
    """Flags and cleans repetitive transcription output."""

    def __init__(self,
                 settings: Optional[HallucinationSettings] = None,
                 model: str = "tiny",
                 notice_callback: Optional[Callable[[HallucinationSuspect], None]] = None):
        self.settings = settings or HallucinationSettings()
        self.notice_callback = notice_callback
        self._loop_pattern = re.compile(
            r"(.{%d,%d}?)\1{%d,}" % (self.settings.min_loop_chars,
                                     self.settings.max_loop_chars,
                                     self.settings.loop_repeats - 1),
            re.DOTALL,
        )
        self.set_model(model)

    def resolve_profile(self, model: str) -> str:
        """Profile that ``model`` would use, pinned profile first.

        Raises:
            ConfigurationError: if the profile has no thresholds configured
        """
        profile = self.settings.profile or profile_for_model(model, self.settings)
        if profile not in self.settings.profiles:
            raise ConfigurationError(f"Unknown hallucination profile '{profile}'")
        return profile

    def set_model(self, model: str) -> None:
        """Select the profile for ``model`` unless one is pinned in settings."""
        profile = self.resolve_profile(model)
        # Swapped as one tuple so a concurrent check never mixes profiles
        self._selection = (model, profile, self.settings.profiles[profile])
        logger.info(f"Hallucination profile '{profile}' for model '{model}': {self.thresholds}")

    @property
    def model(self) -> str:
        return self._selection[0]

    @property
    def profile(self) -> str:
        return self._selection[1]

    @property
    def thresholds(self) -> Dict[int, int]:
        return self._selection[2]

    def check(self, text: str, segment_sequence: Optional[int] = None) -> Optional[HallucinationSuspect]:
        """Return a suspect if ``text`` contains an over-threshold n-gram streak."""
        _, profile, thresholds = self._selection
        words = normalize_words(text)
        for n in sorted(thresholds):
            threshold = thresholds[n]
            gram, repetitions = self._longest_streak(words, n)
            if repetitions >= threshold:
                pattern = " ".join(gram)
                return HallucinationSuspect(
                    f"'{pattern}' repeated {repetitions} times (limit {threshold} "
                    f"for {n}-word phrases, profile '{profile}')",
                    hint=self._hint(profile),
                    pattern=pattern,
                    repetitions=repetitions,
                    segment_sequence=segment_sequence,
                )
        return None

    def collapse_loops(self, text: str) -> str:
        """Reduce runs of a repeated 3-20 character sequence to two copies."""
        return self._loop_pattern.sub(r"\1" * self.settings.keep_repeats, text)

    def filter(self, result: TranscriptionResult) -> Tuple[Optional[str], Optional[HallucinationSuspect]]:
        """Apply detection and cleanup to one result.

        Returns:
            Tuple of (text to append or None, suspect or None). With the
            ``drop`` policy a suspect result yields no text.
        """
        suspect = self.check(result.text, result.segment_sequence)
        if suspect is not None:
            logger.warning(f"Hallucination suspected in segment #{result.segment_sequence}: "
                           f"{suspect} ({self.settings.policy})")
            if self.notice_callback:
                self.notice_callback(suspect)
            if self.settings.policy == "drop":
                return None, suspect

        cleaned = self.collapse_loops(result.text).strip()
        if cleaned != result.text.strip():
            logger.debug(f"Collapsed repetition loops in segment #{result.segment_sequence}")
        return (cleaned or None), suspect

    @staticmethod
    def _longest_streak(words: List[str], n: int) -> Tuple[List[str], int]:
        best: List[str] = []
        best_count = 0
        for i in range(len(words) - n + 1):
            gram = words[i:i + n]
            count = 1
            j = i + n
            while words[j:j + n] == gram:
                count += 1
                j += n
            if count > best_count:
                best, best_count = gram, count
        return best, best_count

    @staticmethod
    def _hint(profile: str) -> str:
        index = PROFILE_ORDER.index(profile) if profile in PROFILE_ORDER else -1
        if 0 <= index < len(PROFILE_ORDER) - 1:
            return (f"Output looks like a repetition loop; switch to a more robust "
                    f"profile ('{PROFILE_ORDER[index + 1]}') or a larger model.")
        return "Output looks like a repetition loop; try a larger model."
