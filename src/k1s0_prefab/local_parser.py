"""ローカル設定ファイルの読み込み (YAML / JSON)"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .codec import decode_configs_json
from .exceptions import PrefabError, PrefabErrorCodes
from .models import ConditionalValue, Config, ConfigRow, ConfigType, LogLevel, ValueType
from .values import create, value_type_of

_LOG_LEVEL_PREFIX = "log-level"
_UNDERSCORE = "_"


def _single_value_config(
    key: str,
    value: Any,
    config_type: ConfigType = ConfigType.CONFIG,
) -> Config:
    try:
        cv = create(value)
    except PrefabError as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Unsupported value for key {key}: {e}",
            cause=e,
        ) from e
    return Config(
        key=key,
        config_type=config_type,
        value_type=value_type_of(cv),
        rows=[ConfigRow(values=[ConditionalValue(value=cv)])],
    )


def _log_level_config(key: str, value: Any) -> Config:
    name = str(value).strip().upper()
    if name == "WARNING":
        name = "WARN"
    try:
        level = LogLevel[name]
    except KeyError as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Unknown log level for key {key}: {value}",
            cause=e,
        ) from e
    config = _single_value_config(key, level, ConfigType.LOG_LEVEL)
    config.value_type = ValueType.LOG_LEVEL
    return config


def _leaf_config(key: str, value: Any) -> Config:
    if key.startswith(_LOG_LEVEL_PREFIX):
        return _log_level_config(key, value)
    return _single_value_config(key, value)


def _is_truthy(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.lower() == "true")


def _walk(node: dict[Any, Any], prefix: str, out: list[Config]) -> None:
    for raw_key, value in node.items():
        key = str(raw_key)
        if key == _UNDERSCORE and prefix:
            continue
        full_key = f"{prefix}.{key}" if prefix else key
        if not isinstance(value, dict):
            out.append(_leaf_config(full_key, value))
            continue
        if _is_truthy(value.get("feature_flag")):
            if "value" not in value:
                raise PrefabError(
                    code=PrefabErrorCodes.PARSE_ERROR,
                    message=f"Feature flag {full_key} requires a value",
                )
            out.append(_single_value_config(full_key, value["value"], ConfigType.FEATURE_FLAG))
            continue
        if _UNDERSCORE in value:
            out.append(_leaf_config(full_key, value[_UNDERSCORE]))
        _walk(value, full_key, out)


def parse_yaml_configs(text: str) -> list[Config]:
    """YAML テキストを設定一覧に変換する。

    入れ子のキーはドット区切りに平坦化し、"_" キーはそのノード自身の値とする。
    """
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Failed to parse YAML: {e}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message="YAML document root must be a mapping",
        )
    configs: list[Config] = []
    _walk(data, "", configs)
    return configs


def load_local_file(path: Path) -> tuple[list[Config], int]:
    """拡張子に応じてローカル設定ファイルを読み込み、(設定一覧, 環境 ID) を返す。"""
    suffix = path.suffix.lower()
    if suffix not in (".yaml", ".yml", ".json"):
        raise PrefabError(
            code=PrefabErrorCodes.CONFIG_ERROR,
            message=f"Unsupported config file type: {path}",
        )
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PrefabError(
            code=PrefabErrorCodes.READ_FILE,
            message=f"Failed to read config file: {path}",
            cause=e,
        ) from e
    if suffix == ".json":
        snapshot = decode_configs_json(text)
        return snapshot.configs, snapshot.project_env_id
    return parse_yaml_configs(text), 0
