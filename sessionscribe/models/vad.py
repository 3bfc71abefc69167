"""Voice activity detection state."""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

from .audio import AudioChunk


FLUSH_HANGOVER = "hangover"
FLUSH_CAP = "cap"
FLUSH_FINAL = "final"


@dataclass
class VADState:
    """Rolling state owned by a single ActivityMonitor."""
    window_size: int = 20
    energies: Deque[float] = field(default_factory=deque)
    threshold: float = 0.0
    last_activity: Optional[float] = None
    pending: List[AudioChunk] = field(default_factory=list)

    def __post_init__(self):
        self.energies = deque(self.energies, maxlen=self.window_size)

    @property
    def rolling_average(self) -> float:
        if not self.energies:
            return 0.0
        return sum(self.energies) / len(self.energies)

    def reset(self) -> None:
        self.energies.clear()
        self.threshold = 0.0
        self.last_activity = None
        self.pending.clear()


@dataclass
class VADDecision:
    """Outcome of classifying one chunk."""
    energy: float
    threshold: float
    active: bool
    flush: Optional[List[AudioChunk]] = None
    reason: Optional[str] = None

    @property
    def should_flush(self) -> bool:
        return bool(self.flush)
