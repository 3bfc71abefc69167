"""Unit tests for ScribeConfig and PipelineSettings."""

from pathlib import Path

import pytest

from sessionscribe.config import ScribeConfig
from sessionscribe.errors import ConfigurationError


def write_config(directory, text: str) -> str:
    path = Path(directory) / "sessionscribe.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


@pytest.mark.unit
class TestScribeConfig:
    """Test cases for ScribeConfig."""

    def test_defaults_without_file(self):
        settings = ScribeConfig().settings

        assert settings.capture.sample_rate == 16000
        assert settings.vad.hangover_seconds == 2.0
        assert settings.dispatch.max_pending_segments == 32
        assert settings.engine.url == "http://127.0.0.1:27123"
        assert settings.hallucination.policy == "drop"
        assert settings.summary.model == "llama3.1:8b"

    def test_loads_sections_and_keeps_defaults(self, temp_data_dir):
        path = write_config(temp_data_dir, """
vad:
  hangover_seconds: 1.5
engine:
  model: base
hallucination:
  policy: flag
transcript:
  speaker_labels: [Doctor, Patient]
""")
        settings = ScribeConfig(path).settings

        assert settings.vad.hangover_seconds == 1.5
        assert settings.vad.max_pending_chunks == 3
        assert settings.engine.model == "base"
        assert settings.hallucination.policy == "flag"
        assert settings.transcript.speaker_labels == ("Doctor", "Patient")

    def test_relative_paths_resolve_against_config_file(self, temp_data_dir):
        path = write_config(temp_data_dir, """
storage:
  data_directory: recordings
logging:
  file_path: logs/app.log
""")
        config = ScribeConfig(path)

        assert config.get('storage.data_directory') == str(Path(temp_data_dir) / "recordings")
        assert config.get('logging.file_path') == str(Path(temp_data_dir) / "logs/app.log")
        assert config.get_data_directory() == str((Path(temp_data_dir) / "recordings").absolute())

    def test_get_and_set_dot_paths(self):
        config = ScribeConfig()
        assert config.settings.engine.model == "tiny"

        config.set('engine.model', 'small')

        assert config.get('engine.model') == 'small'
        assert config.get('engine.missing', 'fallback') == 'fallback'
        assert config.settings.engine.model == 'small'

    def test_missing_file_raises(self, temp_data_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            ScribeConfig(str(Path(temp_data_dir) / "absent.yaml"))

    def test_invalid_yaml_raises(self, temp_data_dir):
        path = write_config(temp_data_dir, "vad: [unclosed")

        with pytest.raises(ConfigurationError):
            ScribeConfig(path)

    def test_non_mapping_root_raises(self, temp_data_dir):
        path = write_config(temp_data_dir, "- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            ScribeConfig(path)

    def test_invalid_value_raises(self, temp_data_dir):
        path = write_config(temp_data_dir, "vad:\n  threshold_ratio: -1\n")
        config = ScribeConfig(path)

        with pytest.raises(ConfigurationError, match="threshold_ratio"):
            config.settings

    def test_incomplete_hallucination_profile_raises(self, temp_data_dir):
        path = write_config(temp_data_dir, """
hallucination:
  profiles:
    custom: {1: 4, 2: 3}
""")
        with pytest.raises(ConfigurationError, match="custom"):
            ScribeConfig(path).settings

    def test_empty_file_uses_defaults(self, temp_data_dir):
        path = write_config(temp_data_dir, "")

        assert ScribeConfig(path).settings.capture.channels == 1
