"""クライアント設定（pydantic BaseModel）"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .context import ContextSet
from .exceptions import PrefabError, PrefabErrorCodes
from .retry import RetryConfig

DEFAULT_API_URLS = ["https://belt.prefab.cloud", "https://suspenders.prefab.cloud"]
DEFAULT_TELEMETRY_HOST = "https://telemetry.prefab.cloud"

ENV_API_KEY = "PREFAB_API_KEY"
ENV_API_URL = "PREFAB_API_URL"
ENV_API_URL_OVERRIDE = "PREFAB_API_URL_OVERRIDE"
ENV_DATAFILE = "PREFAB_DATAFILE"


class StoreType(StrEnum):
    """設定ソースの種別。"""

    API = "api"
    LOCAL = "datafile"
    DUMP = "dump"
    MEMORY = "memory"


class OnInitializationFailure(StrEnum):
    """初期化タイムアウト時の動作。"""

    RETURN_ERROR = "RETURN_ERROR"
    UNLOCK = "UNLOCK"


class ContextTelemetryMode(StrEnum):
    """コンテキストテレメトリの収集方式。"""

    PERIODIC_EXAMPLE = "PERIODIC_EXAMPLE"
    SHAPES = "SHAPES"
    NONE = "NONE"


@dataclass(frozen=True)
class ConfigSource:
    """設定ソース。"""

    store: StoreType
    raw: str
    path: str = ""


def parse_config_source(raw: str) -> ConfigSource:
    """"datafile://path" のような設定ソース文字列を解析する。"""
    if raw in ("api", "api:prefab"):
        return ConfigSource(store=StoreType.API, raw=raw)
    scheme, sep, rest = raw.partition("://")
    if sep:
        if scheme == StoreType.LOCAL and rest:
            return ConfigSource(store=StoreType.LOCAL, raw=raw, path=rest)
        if scheme == StoreType.DUMP and rest:
            return ConfigSource(store=StoreType.DUMP, raw=raw, path=rest)
        if scheme == StoreType.MEMORY:
            return ConfigSource(store=StoreType.MEMORY, raw=raw)
    raise PrefabError(
        code=PrefabErrorCodes.CONFIG_ERROR,
        message=f"Invalid config source: {raw}",
    )


def _default_sources() -> list[ConfigSource]:
    datafile = os.environ.get(ENV_DATAFILE)
    if datafile:
        return [parse_config_source(f"datafile://{datafile}")]
    return [parse_config_source("api:prefab")]


class Options(BaseModel):
    """クライアント設定。"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    api_key: str = ""
    api_urls: list[str] = Field(default_factory=list)
    sources: list[ConfigSource] = Field(default_factory=_default_sources)
    project_env_id: int = 0
    configs: dict[str, Any] = Field(default_factory=dict)
    global_context: ContextSet = Field(default_factory=ContextSet)
    initialization_timeout_seconds: float = Field(default=10.0, ge=0)
    on_initialization_failure: OnInitializationFailure = OnInitializationFailure.RETURN_ERROR
    collect_evaluation_summaries: bool = True
    context_telemetry_mode: ContextTelemetryMode = ContextTelemetryMode.PERIODIC_EXAMPLE
    telemetry_host: str = DEFAULT_TELEMETRY_HOST
    telemetry_sync_interval_seconds: float = Field(default=60.0, gt=0)
    instance_hash: str = Field(default_factory=lambda: uuid.uuid4().hex)
    fetch_retry: RetryConfig = Field(default_factory=RetryConfig)
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("sources", mode="before")
    @classmethod
    def _parse_sources(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [parse_config_source(v) if isinstance(v, str) else v for v in value]
        return value

    @field_validator("global_context", mode="before")
    @classmethod
    def _parse_global_context(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return ContextSet.from_dict(value)
        return value

    @model_validator(mode="after")
    def _memory_source_for_configs(self) -> Options:
        if not self.configs:
            return self
        if "sources" not in self.model_fields_set:
            self.sources = [parse_config_source("memory://")]
        elif [s.store for s in self.sources] != [StoreType.MEMORY]:
            raise PrefabError(
                code=PrefabErrorCodes.CONFIG_ERROR,
                message="configs can only be used with a single memory:// source",
            )
        return self

    def api_key_setting_or_env_var(self) -> str:
        """設定値、なければ環境変数の API キーを返す。"""
        return self.api_key or os.environ.get(ENV_API_KEY, "")

    def api_urls_env_var_or_setting(self) -> list[str]:
        """API URL の一覧を返す。環境変数が設定値より優先される。"""
        from_env = os.environ.get(ENV_API_URL, "")
        urls = [u.strip().rstrip("/") for u in from_env.split(",") if u.strip()]
        if urls:
            return urls
        override = os.environ.get(ENV_API_URL_OVERRIDE, "").strip()
        if override:
            return [override.rstrip("/")]
        if self.api_urls:
            return [u.rstrip("/") for u in self.api_urls]
        return list(DEFAULT_API_URLS)

    @property
    def has_api_source(self) -> bool:
        return any(source.store == StoreType.API for source in self.sources)


def load_options(path: Path) -> Options:
    """YAML ファイルからクライアント設定を読み込む。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PrefabError(
            code=PrefabErrorCodes.READ_FILE,
            message=f"Failed to read options file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    try:
        return Options.model_validate(data)
    except ValidationError as e:
        raise PrefabError(
            code=PrefabErrorCodes.CONFIG_ERROR,
            message=f"Options validation failed: {e}",
            cause=e,
        ) from e
