#!/usr/bin/env python3
"""
Test Suite for Manager Settings

Tests:
- Settings model defaults and bounds
- YAML file loading
- Environment variable overrides
- Fallback to defaults on invalid input
"""

import os
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from robot_manager.settings import LoadingSettings, ManagerSettings, RecoverySettings, load_settings

CLEAN_ENV = {"ROBOT_MANAGER_NAMESPACE": "", "LOG_LEVEL": "", "API_PORT": "", "ROBOT_CONFIG_DIR": ""}


class TestSettingsModels:

    def test_defaults(self):
        settings = ManagerSettings()

        assert settings.namespace == "robot_manager"
        assert settings.config_file_name == "robot_description.yaml"
        assert settings.api.port == 8000
        assert settings.sync.channel == "udp"
        assert settings.loading.poll_interval == 1.0
        assert settings.loading.readiness_timeout == 30.0
        assert settings.recovery.max_attempts == 3
        assert settings.peers == {}

    def test_unbounded_readiness_wait(self):
        assert LoadingSettings(readiness_timeout=None).readiness_timeout is None

    def test_forward_timeout_covers_every_wait(self):
        loading = LoadingSettings(poll_interval=1.0, readiness_timeout=30.0)
        assert loading.effective_forward_timeout() > 7 * (30.0 + 1.0)

        assert LoadingSettings(forward_timeout=90.0).effective_forward_timeout() == 90.0
        assert LoadingSettings(readiness_timeout=None).effective_forward_timeout() is None

    def test_bounds(self):
        with pytest.raises(ValidationError):
            LoadingSettings(poll_interval=0.0)
        with pytest.raises(ValidationError):
            RecoverySettings(max_attempts=0)
        with pytest.raises(ValidationError):
            ManagerSettings(sync={"channel": "carrier-pigeon"})


class TestLoadSettings:

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "manager.yaml"
        path.write_text(yaml.safe_dump({
            "namespace": "lab_a",
            "api": {"port": 8100, "public_url": "http://lab-a:8100"},
            "sync": {"channel": "local"},
            "peers": {"lab_b": "http://lab-b:8100"},
            "loading": {"readiness_timeout": 5.0},
        }))

        with patch.dict(os.environ, CLEAN_ENV):
            settings = load_settings(str(path))

        assert settings.namespace == "lab_a"
        assert settings.api.public_url == "http://lab-a:8100"
        assert settings.sync.channel == "local"
        assert settings.peers == {"lab_b": "http://lab-b:8100"}
        assert settings.loading.readiness_timeout == 5.0

    def test_missing_file_uses_defaults(self, tmp_path):
        with patch.dict(os.environ, CLEAN_ENV):
            settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings == ManagerSettings()

    def test_env_overrides(self, tmp_path):
        path = tmp_path / "manager.yaml"
        path.write_text(yaml.safe_dump({"namespace": "lab_a", "api": {"port": 8100}}))

        env = {
            "ROBOT_MANAGER_NAMESPACE": "lab_z",
            "LOG_LEVEL": "debug",
            "API_PORT": "9000",
            "ROBOT_CONFIG_DIR": "/opt/robots",
        }
        with patch.dict(os.environ, env):
            settings = load_settings(str(path))

        assert settings.namespace == "lab_z"
        assert settings.log_level == "DEBUG"
        assert settings.api.port == 9000
        assert settings.config_source_dir == "/opt/robots"

    def test_invalid_port_env_is_ignored(self, tmp_path):
        with patch.dict(os.environ, {**CLEAN_ENV, "API_PORT": "eighty"}):
            settings = load_settings(str(tmp_path / "absent.yaml"))
        assert settings.api.port == 8000

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "manager.yaml"
        path.write_text(yaml.safe_dump({"namespace": "lab_a", "recovery": {"max_attempts": -1}}))

        with patch.dict(os.environ, CLEAN_ENV):
            settings = load_settings(str(path))
        assert settings.namespace == "robot_manager"

    def test_broken_yaml_falls_back(self, tmp_path):
        path = tmp_path / "manager.yaml"
        path.write_text("namespace: [unclosed")

        with patch.dict(os.environ, CLEAN_ENV):
            settings = load_settings(str(path))
        assert settings == ManagerSettings()
