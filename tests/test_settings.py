"""Tests for settings models and YAML loading."""

import pytest

from swarmlib.core.errors import ConfigurationError
from swarmlib.core.settings import CommandPermissions, SwarmSettings, load_settings


class TestLoadSettings:
    """YAML configuration files."""

    def test_defaults_without_path(self):
        settings = load_settings(None)
        assert isinstance(settings, SwarmSettings)
        assert settings.api.port == 8765
        assert settings.orchestrator.spawn_priorities == ["high", "urgent"]

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "swarm.yaml"
        path.write_text(
            "log_level: DEBUG\n"
            "orchestrator:\n"
            "  loop_interval: 1.5\n"
            "commands:\n"
            "  permissions:\n"
            "    allow_network: false\n"
            "pricing:\n"
            "  gpt-4:\n"
            "    prompt: 0.03\n"
            "    completion: 0.06\n"
        )
        settings = load_settings(str(path))
        assert settings.log_level == "DEBUG"
        assert settings.orchestrator.loop_interval == 1.5
        assert settings.commands.permissions.allow_network is False
        assert settings.pricing["gpt-4"].completion == 0.06

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_settings(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("orchestrator: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_settings(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("orchestrator:\n  loop_interval: -1\n")
        with pytest.raises(ConfigurationError):
            load_settings(str(path))


class TestCommandPermissions:
    """Policy overrides."""

    def test_merge_applies_partial_overrides(self):
        base = CommandPermissions(allowed_commands=["ls", "echo"])
        merged = base.merge({"allow_network": False, "working_dir": None})
        assert merged.allowed_commands == ["ls", "echo"]
        assert merged.allow_network is False
        assert base.allow_network is True
