# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Bridge configuration - layered options for the worker and its components.

Config precedence (later overrides earlier):

1. Built-in ``DEFAULTS``
2. Config file (YAML), if given and present
3. Environment variables ``GENRO_BRIDGE_*``
4. Explicit constructor keyword arguments

Example config.yaml::

    cookie_validation_key: "change-me"
    enable_cookie_validation: true
    trusted_hosts:
      - 10.0.0.0/8
    request_scoped_components: [request, response, error_handler, session]
    memory_threshold: 0.85
    memory_limit: 512M
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from genro_toolbox import SmartOptions  # type: ignore[import-untyped]

from .exceptions import ConfigurationError

__all__ = ["BridgeConfig", "DEFAULTS", "DEFAULT_REQUEST_SCOPED"]

DEFAULT_REQUEST_SCOPED = ["request", "response", "error_handler", "session", "user", "url_manager"]

DEFAULTS: dict[str, Any] = {
    "cookie_validation_key": "",
    "enable_cookie_validation": False,
    "csrf_header": "X-CSRF-Token",
    "trusted_hosts": [],
    "request_scoped_components": DEFAULT_REQUEST_SCOPED,
    "reset_uploaded_files": True,
    "memory_threshold": 0.9,
    "flush_logger": True,
    "use_session": True,
}


def _bridge_opts_spec(
    cookie_validation_key: str,
    enable_cookie_validation: bool,
    csrf_header: str,
    reset_uploaded_files: bool,
    memory_threshold: float,
    memory_limit: str,
    flush_logger: bool,
    use_session: bool,
    buffer_length: int,
    max_requests: int,
) -> None:
    """Reference function for SmartOptions type extraction (no defaults)."""


def _plain(value: Any) -> Any:
    """SmartOptions -> dict, anything else unchanged."""
    if hasattr(value, "as_dict"):
        return value.as_dict()
    return value


class BridgeConfig:
    """Typed view over the layered bridge options."""

    __slots__ = ("_opts",)

    def __init__(self, config_file: str | Path | None = None, **overrides: Any) -> None:
        self._opts = self._build_config(config_file, overrides)
        self._validate()

    def _build_config(self, config_file: str | Path | None, overrides: dict[str, Any]) -> SmartOptions:
        env_opts = SmartOptions(_bridge_opts_spec, env="GENRO_BRIDGE", argv=[])
        caller_opts = SmartOptions(overrides, ignore_none=True)

        if config_file is not None and Path(config_file).exists():
            file_opts = SmartOptions(str(config_file))
        else:
            file_opts = SmartOptions({})

        return SmartOptions(DEFAULTS) + file_opts + env_opts + caller_opts

    def _validate(self) -> None:
        threshold = self.memory_threshold
        if not 0 < threshold <= 1:
            raise ConfigurationError(f"memory_threshold must be in (0, 1]; received '{threshold}'.")
        if self.enable_cookie_validation and not self.cookie_validation_key:
            raise ConfigurationError(
                "cookie_validation_key must be configured when enable_cookie_validation is true."
            )

    @property
    def cookie_validation_key(self) -> str:
        return str(self._opts["cookie_validation_key"] or "")

    @property
    def enable_cookie_validation(self) -> bool:
        return bool(self._opts["enable_cookie_validation"])

    @property
    def csrf_header(self) -> str:
        return str(self._opts["csrf_header"] or DEFAULTS["csrf_header"])

    @property
    def parsers(self) -> dict[str, Any] | None:
        """Media type -> parser definitions; ``None`` keeps the built-in parsers."""
        return _plain(self._opts["parsers"])

    @property
    def trusted_hosts(self) -> list[str]:
        return list(_plain(self._opts["trusted_hosts"]) or [])

    @property
    def secure_headers(self) -> list[str] | None:
        value = _plain(self._opts["secure_headers"])
        return list(value) if value is not None else None

    @property
    def request_scoped_components(self) -> list[str]:
        value = _plain(self._opts["request_scoped_components"])
        return list(value) if value is not None else list(DEFAULT_REQUEST_SCOPED)

    @property
    def reset_uploaded_files(self) -> bool:
        return bool(self._opts["reset_uploaded_files"])

    @property
    def memory_threshold(self) -> float:
        return float(self._opts["memory_threshold"])

    @property
    def memory_limit(self) -> int | str | None:
        """Explicit limit in bytes or as ``"512M"``; ``None`` detects it."""
        return self._opts["memory_limit"]

    @property
    def flush_logger(self) -> bool:
        return bool(self._opts["flush_logger"])

    @property
    def use_session(self) -> bool:
        return bool(self._opts["use_session"])

    @property
    def buffer_length(self) -> int | None:
        value = self._opts["buffer_length"]
        return int(value) if value else None

    @property
    def max_requests(self) -> int | None:
        value = self._opts["max_requests"]
        return int(value) if value else None

    @property
    def components(self) -> dict[str, Any]:
        """Extra component definitions by name."""
        return dict(_plain(self._opts["components"]) or {})

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = self._opts.as_dict()
        return result

    def __getitem__(self, name: str) -> Any:
        """Proxy bracket access to underlying opts."""
        return self._opts[name]
