# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tests for BridgeConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from genro_bridge.config import DEFAULT_REQUEST_SCOPED, BridgeConfig
from genro_bridge.exceptions import ConfigurationError


class TestDefaults:
    """Tests for built-in defaults."""

    def test_defaults(self) -> None:
        """Defaults apply when nothing is configured."""
        config = BridgeConfig()
        assert config.cookie_validation_key == ""
        assert config.enable_cookie_validation is False
        assert config.csrf_header == "X-CSRF-Token"
        assert config.trusted_hosts == []
        assert config.request_scoped_components == DEFAULT_REQUEST_SCOPED
        assert config.reset_uploaded_files is True
        assert config.memory_threshold == 0.9
        assert config.memory_limit is None
        assert config.flush_logger is True
        assert config.use_session is True
        assert config.parsers is None
        assert config.secure_headers is None
        assert config.buffer_length is None
        assert config.max_requests is None
        assert config.components == {}


class TestOverrides:
    """Tests for caller overrides and the config file."""

    def test_keyword_overrides(self) -> None:
        """Keyword arguments override defaults."""
        config = BridgeConfig(
            cookie_validation_key="k",
            enable_cookie_validation=True,
            memory_limit="256M",
            buffer_length=8192,
            max_requests=500,
        )
        assert config.enable_cookie_validation is True
        assert config.cookie_validation_key == "k"
        assert config.memory_limit == "256M"
        assert config.buffer_length == 8192
        assert config.max_requests == 500

    def test_none_overrides_ignored(self) -> None:
        """None keyword arguments keep the default."""
        assert BridgeConfig(csrf_header=None).csrf_header == "X-CSRF-Token"

    def test_missing_file_ignored(self, tmp_path: Path) -> None:
        """A config file that does not exist is skipped."""
        assert BridgeConfig(tmp_path / "missing.yaml").use_session is True

    def test_yaml_file(self, tmp_path: Path) -> None:
        """Values from the YAML file override defaults."""
        path = tmp_path / "bridge.yaml"
        path.write_text('cookie_validation_key: "from-file"\nmemory_threshold: 0.75\n')
        config = BridgeConfig(path)
        assert config.cookie_validation_key == "from-file"
        assert config.memory_threshold == 0.75

    def test_caller_wins_over_file(self, tmp_path: Path) -> None:
        """Keyword arguments override the config file."""
        path = tmp_path / "bridge.yaml"
        path.write_text('csrf_header: "X-From-File"\n')
        assert BridgeConfig(path, csrf_header="X-From-Caller").csrf_header == "X-From-Caller"


class TestValidation:
    """Tests for configuration validation."""

    @pytest.mark.parametrize("threshold", [0, 1.5, -0.1])
    def test_threshold_range(self, threshold: float) -> None:
        """memory_threshold must be in (0, 1]."""
        with pytest.raises(ConfigurationError):
            BridgeConfig(memory_threshold=threshold)

    def test_validation_requires_key(self) -> None:
        """Cookie validation without a key is rejected."""
        with pytest.raises(ConfigurationError):
            BridgeConfig(enable_cookie_validation=True)
