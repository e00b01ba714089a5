"""
Unit tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from camcontrol.config_io import load_settings
from camcontrol.models.settings import Settings


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "camcontrol.yml")

        assert settings == Settings()
        assert settings.stream_url == "rtsp://camera-mediamtx:8554/webcam"
        assert settings.mqtt.status_topic == "camera/status"
        assert settings.probe.max_attempts == 25

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "camcontrol.yml"
        path.write_text(
            "device: /dev/video2\n"
            "mqtt:\n"
            "  host: broker.local\n"
            "  tls: false\n"
            "probe:\n"
            "  deadline: 5\n"
        )

        settings = load_settings(path)

        assert settings.device == "/dev/video2"
        assert settings.mqtt.host == "broker.local"
        assert settings.mqtt.tls is False
        assert settings.mqtt.port == 8883
        assert settings.probe.deadline == 5.0

    def test_malformed_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "camcontrol.yml"
        path.write_text("device: [unclosed\n")

        assert load_settings(path) == Settings()

    def test_non_mapping_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "camcontrol.yml"
        path.write_text("- just\n- a list\n")

        assert load_settings(path) == Settings()

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "camcontrol.yml"
        path.write_text("mqtt:\n  host: from-file\n")
        monkeypatch.setenv("MQTT_BROKER", "from-env")
        monkeypatch.setenv("MQTT_PORT", "1883")
        monkeypatch.setenv("CAMERA_DEVICE", "/dev/video1")

        settings = load_settings(path)

        assert settings.mqtt.host == "from-env"
        assert settings.mqtt.port == 1883
        assert settings.device == "/dev/video1"

    def test_invalid_stream_url_is_fatal(self, tmp_path):
        path = tmp_path / "camcontrol.yml"
        path.write_text("stream_url: http://camera/stream\n")

        with pytest.raises(ValidationError):
            load_settings(path)

    def test_invalid_video_size_is_fatal(self, tmp_path):
        path = tmp_path / "camcontrol.yml"
        path.write_text("relay:\n  video_size: big\n")

        with pytest.raises(ValidationError):
            load_settings(path)
