"""Configuration of the trace pipeline and its translation into collector settings."""

from __future__ import annotations

import base64
import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tempoagent.promsd import TYPE_STR, parse_scrape_configs

_RECEIVER_TYPES = frozenset({"jaeger", "zipkin", "otlp", "opencensus"})
_PROCESSOR_TYPES = frozenset({"queued_retry", "batch", "attributes", TYPE_STR})
_EXPORTER_TYPES = frozenset({"otlp"})

_DEFAULT_MAX_ELAPSED_TIME = "60s"


class ConfigError(ValueError):
    """Raised when the trace configuration is invalid or cannot be loaded."""


def _check_keys(data: Mapping[str, Any], known: set[str], what: str) -> None:
    unknown = set(data) - known
    if unknown:
        names = ", ".join(sorted(map(str, unknown)))
        raise ConfigError(f"unknown {what} fields: {names}")


def _optional_mapping(data: Mapping[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ConfigError(f"{key} must be a mapping")
    return dict(value)


@dataclass
class BasicAuth:
    """Credentials sent as an HTTP basic authorization header."""

    username: str = ""
    password: str = ""
    password_file: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BasicAuth:
        """Build credentials from their configuration mapping."""
        if not isinstance(data, Mapping):
            raise ConfigError("basic_auth must be a mapping")
        _check_keys(data, {"username", "password", "password_file"}, "basic_auth")
        return cls(
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
            password_file=str(data.get("password_file") or ""),
        )

    def resolve_password(self) -> str:
        """Return the password, read from ``password_file`` when one is set."""
        if not self.password_file:
            return self.password
        try:
            return Path(self.password_file).read_text()
        except OSError as exc:
            raise ConfigError(
                f"unable to load password file {self.password_file}: {exc}"
            ) from exc

    def header(self) -> str:
        """Return the value of the authorization header."""
        raw = f"{self.username}:{self.resolve_password()}".encode()
        return "Basic " + base64.b64encode(raw).decode("ascii")


@dataclass
class PushConfig:
    """Where and how traces are exported."""

    endpoint: str = ""
    insecure: bool = False
    insecure_skip_verify: bool = False
    basic_auth: BasicAuth | None = None
    batch: dict[str, Any] | None = None
    sending_queue: dict[str, Any] | None = None
    retry_on_failure: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PushConfig:
        """Build the push settings from their configuration mapping."""
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigError("push_config must be a mapping")
        _check_keys(
            data,
            {
                "endpoint",
                "insecure",
                "insecure_skip_verify",
                "basic_auth",
                "batch",
                "sending_queue",
                "retry_on_failure",
            },
            "push_config",
        )
        raw_auth = data.get("basic_auth")
        return cls(
            endpoint=str(data.get("endpoint") or ""),
            insecure=bool(data.get("insecure", False)),
            insecure_skip_verify=bool(data.get("insecure_skip_verify", False)),
            basic_auth=None if raw_auth is None else BasicAuth.from_dict(raw_auth),
            batch=_optional_mapping(data, "batch"),
            sending_queue=_optional_mapping(data, "sending_queue"),
            retry_on_failure=_optional_mapping(data, "retry_on_failure"),
        )


@dataclass
class Config:
    """Configuration of the trace pipeline."""

    enabled: bool = False
    push_config: PushConfig = field(default_factory=PushConfig)
    receivers: dict[str, Any] = field(default_factory=dict)
    attributes: dict[str, Any] | None = None
    scrape_configs: list[Any] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Config:
        """Build an enabled configuration from its mapping.

        A configuration that is present at all is enabled.
        """
        data = {} if data is None else data
        if not isinstance(data, Mapping):
            raise ConfigError("tempo config must be a mapping")
        _check_keys(
            data, {"push_config", "receivers", "attributes", "scrape_configs"}, "tempo config"
        )
        receivers = _optional_mapping(data, "receivers") or {}
        scrape_configs = data.get("scrape_configs")
        if scrape_configs is not None and not isinstance(scrape_configs, list):
            raise ConfigError("scrape_configs must be a list")
        return cls(
            enabled=True,
            push_config=PushConfig.from_dict(data.get("push_config")),
            receivers=receivers,
            attributes=_optional_mapping(data, "attributes"),
            scrape_configs=None if scrape_configs is None else list(scrape_configs),
        )

    def _exporter(self) -> dict[str, Any]:
        push = self.push_config
        headers: dict[str, str] = {}
        if push.basic_auth is not None:
            headers = {"authorization": push.basic_auth.header()}

        retry = copy.deepcopy(push.retry_on_failure)
        # The collector's default leaves send failures unreported for five
        # minutes; lower it.
        if retry is None:
            retry = {"max_elapsed_time": _DEFAULT_MAX_ELAPSED_TIME}
        elif retry.get("max_elapsed_time") is None:
            retry["max_elapsed_time"] = _DEFAULT_MAX_ELAPSED_TIME

        return {
            "endpoint": push.endpoint,
            "headers": headers,
            "insecure": push.insecure,
            "insecure_skip_verify": push.insecure_skip_verify,
            "sending_queue": copy.deepcopy(push.sending_queue),
            "retry_on_failure": retry,
        }

    def otel_config(self) -> dict[str, Any]:
        """Return the collector configuration for this trace pipeline."""
        if not self.enabled:
            raise ConfigError("tempo config not enabled")
        if not self.receivers:
            raise ConfigError("must have at least one configured receiver")
        if not self.push_config.endpoint:
            raise ConfigError("must have a configured remote_write.endpoint")

        processors: dict[str, Any] = {}
        processor_names: list[str] = []
        if self.scrape_configs is not None:
            processor_names.append(TYPE_STR)
            processors[TYPE_STR] = {"scrape_configs": self.scrape_configs}
        if self.attributes is not None:
            processors["attributes"] = self.attributes
            processor_names.append("attributes")
        if self.push_config.batch is not None:
            processors["batch"] = self.push_config.batch
            processor_names.append("batch")

        result = {
            "exporters": {"otlp": self._exporter()},
            "processors": processors,
            "receivers": self.receivers,
            "service": {
                "pipelines": {
                    "traces": {
                        "exporters": ["otlp"],
                        "processors": processor_names,
                        "receivers": list(self.receivers),
                    }
                }
            },
        }
        self._validate(result)
        return result

    def _validate(self, result: Mapping[str, Any]) -> None:
        for kind, known in (
            ("receivers", _RECEIVER_TYPES),
            ("processors", _PROCESSOR_TYPES),
            ("exporters", _EXPORTER_TYPES),
        ):
            for name in result[kind]:
                type_name = str(name).split("/", 1)[0]
                if type_name not in known:
                    raise ConfigError(
                        f"failed to load OTel config: unknown {kind[:-1]} type {type_name!r}"
                    )
        if self.scrape_configs is not None:
            try:
                parse_scrape_configs(self.scrape_configs)
            except ValueError as exc:
                raise ConfigError(f"failed to load OTel config: {exc}") from exc


def load_config(text: str) -> Config:
    """Parse a YAML document holding the trace configuration.

    An empty document yields a disabled configuration.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    if data is None:
        return Config()
    return Config.from_dict(data)