"""Typed pipeline settings validated from the YAML configuration."""

from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class CaptureSettings(BaseModel):
    sample_rate: int = Field(default=16000, gt=0)  # rate of emitted chunks
    device_sample_rate: Optional[int] = Field(default=None, gt=0)
    channels: int = Field(default=1, ge=1, le=2)
    frames_per_buffer: int = Field(default=1024, gt=0)
    chunk_seconds: float = Field(default=3.0, gt=0)
    device_index: Optional[int] = None
    keep_session_audio: bool = True


class SignalChainSettings(BaseModel):
    pre_gain: float = Field(default=2.0, gt=0)
    threshold_db: float = Field(default=-24.0, le=0)
    ratio: float = Field(default=4.0, ge=1.0)
    attack_seconds: float = Field(default=0.003, gt=0)
    release_seconds: float = Field(default=0.25, gt=0)
    makeup_gain: float = Field(default=1.5, gt=0)
    block_size: int = Field(default=32, gt=0)


class VADSettings(BaseModel):
    window_size: int = Field(default=20, gt=0)
    threshold_ratio: float = Field(default=0.3, gt=0)
    threshold_floor: float = Field(default=0.004, ge=0)
    min_undecoded_bytes: int = Field(default=10 * 1024, ge=0)
    hangover_seconds: float = Field(default=2.0, ge=0)
    max_pending_chunks: int = Field(default=3, ge=1)


class ConcatSettings(BaseModel):
    padding_ms: float = Field(default=100.0, ge=0)


class EngineSettings(BaseModel):
    url: str = "http://127.0.0.1:27123"
    token: str = "devtoken"
    model: str = "tiny"
    language: str = "auto"
    mode: str = "auto"
    timeout_seconds: float = Field(default=60.0, gt=0)


class DispatchSettings(BaseModel):
    max_pending_segments: int = Field(default=32, ge=1)
    drain_timeout_ms: int = Field(default=5000, ge=0)


DEFAULT_PROFILE_THRESHOLDS: Dict[str, Dict[int, int]] = {
    "fast": {1: 4, 2: 3, 3: 3},
    "balanced": {1: 5, 2: 4, 3: 3},
    "accurate": {1: 6, 2: 5, 3: 4},
}

DEFAULT_MODEL_PROFILES: Dict[str, str] = {
    "tiny": "fast",
    "base": "balanced",
    "small": "accurate",
    "medium": "accurate",
    "large": "accurate",
}


class HallucinationSettings(BaseModel):
    policy: Literal["drop", "flag"] = "drop"
    profile: Optional[str] = None  # derived from the engine model when unset
    profiles: Dict[str, Dict[int, int]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_PROFILE_THRESHOLDS.items()}
    )
    profile_by_model: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODEL_PROFILES))
    min_loop_chars: int = Field(default=3, ge=1)
    max_loop_chars: int = Field(default=20, ge=1)
    loop_repeats: int = Field(default=3, ge=2)  # repetitions that trigger a collapse
    keep_repeats: int = Field(default=2, ge=1)

    @field_validator("profiles")
    @classmethod
    def _check_profiles(cls, profiles: Dict[str, Dict[int, int]]) -> Dict[str, Dict[int, int]]:
        for name, thresholds in profiles.items():
            missing = {1, 2, 3} - set(thresholds)
            if missing:
                raise ValueError(f"profile '{name}' lacks thresholds for n={sorted(missing)}")
            if any(value < 2 for value in thresholds.values()):
                raise ValueError(f"profile '{name}' thresholds must be >= 2")
        return profiles


class TranscriptSettings(BaseModel):
    dialogue_mode: bool = False
    speaker_turn_seconds: float = Field(default=30.0, gt=0)
    speaker_labels: Tuple[str, str] = ("Therapist", "Client")


class SummarySettings(BaseModel):
    url: str = "http://127.0.0.1:27123"
    model: str = "llama3.1:8b"
    min_new_chars: int = Field(default=100, ge=0)
    timeout_seconds: float = Field(default=120.0, gt=0)


class StorageSettings(BaseModel):
    data_directory: str = "data"
    archive_segments: bool = True


class PipelineSettings(BaseModel):
    """Every tunable of the pipeline, passed explicitly at construction."""
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    signal_chain: SignalChainSettings = Field(default_factory=SignalChainSettings)
    vad: VADSettings = Field(default_factory=VADSettings)
    concat: ConcatSettings = Field(default_factory=ConcatSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    hallucination: HallucinationSettings = Field(default_factory=HallucinationSettings)
    transcript: TranscriptSettings = Field(default_factory=TranscriptSettings)
    summary: SummarySettings = Field(default_factory=SummarySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
