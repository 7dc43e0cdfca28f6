"""ConfigValue の生成と取り出し"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import isodate
import structlog

from .exceptions import PrefabError, PrefabErrorCodes
from .models import ConfigValue, IntRange, LogLevel, Provided, ProvidedSource, ValueKind, ValueType

logger = structlog.get_logger(__name__)

_VALUE_TYPES: dict[ValueKind, ValueType] = {
    ValueKind.INT: ValueType.INT,
    ValueKind.STRING: ValueType.STRING,
    ValueKind.BYTES: ValueType.BYTES,
    ValueKind.DOUBLE: ValueType.DOUBLE,
    ValueKind.BOOL: ValueType.BOOL,
    ValueKind.LOG_LEVEL: ValueType.LOG_LEVEL,
    ValueKind.STRING_LIST: ValueType.STRING_LIST,
    ValueKind.INT_RANGE: ValueType.INT_RANGE,
    ValueKind.DURATION: ValueType.DURATION,
    ValueKind.JSON: ValueType.JSON,
}


def create(value: Any) -> ConfigValue:
    """Python のネイティブ値から ConfigValue を生成する。"""
    if isinstance(value, ConfigValue):
        return value
    # bool は int のサブクラスなので先に判定する
    if isinstance(value, bool):
        return ConfigValue(ValueKind.BOOL, value)
    if isinstance(value, LogLevel):
        return ConfigValue(ValueKind.LOG_LEVEL, value)
    if isinstance(value, int):
        return ConfigValue(ValueKind.INT, value)
    if isinstance(value, float):
        return ConfigValue(ValueKind.DOUBLE, value)
    if isinstance(value, str):
        return ConfigValue(ValueKind.STRING, value)
    if isinstance(value, bytes):
        return ConfigValue(ValueKind.BYTES, value)
    if isinstance(value, timedelta):
        return ConfigValue(ValueKind.DURATION, isodate.duration_isoformat(value))
    if isinstance(value, IntRange):
        return ConfigValue(ValueKind.INT_RANGE, value)
    if isinstance(value, Provided):
        return ConfigValue(ValueKind.PROVIDED, value)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return ConfigValue(ValueKind.STRING_LIST, tuple(value))
    if isinstance(value, Mapping):
        try:
            return ConfigValue(ValueKind.JSON, json.dumps(value))
        except (TypeError, ValueError) as e:
            raise PrefabError(
                code=PrefabErrorCodes.UNSUPPORTED_VALUE,
                message=f"Cannot encode mapping as JSON: {e}",
                cause=e,
            ) from e
    raise PrefabError(
        code=PrefabErrorCodes.UNSUPPORTED_VALUE,
        message=f"Unsupported config value type: {type(value).__name__}",
    )


def value_type_of(cv: ConfigValue) -> ValueType:
    """ConfigValue のタグに対応する ValueType を返す。"""
    return _VALUE_TYPES.get(cv.kind, ValueType.NOT_SET_VALUE_TYPE)


def parse_duration(definition: str) -> timedelta:
    """ISO-8601 の期間表現を timedelta に変換する。

    年と月はそれぞれ 365 日と 30 日として換算する。
    """
    parsed = isodate.parse_duration(definition)
    if isinstance(parsed, isodate.Duration):
        days = float(parsed.years) * 365 + float(parsed.months) * 30
        return parsed.tdelta + timedelta(days=days)
    return parsed


def extract_value(cv: ConfigValue) -> tuple[Any, bool]:
    """ConfigValue からネイティブ値を取り出す。

    戻り値の 2 要素目は単純型として取り出せたかどうか。
    """
    if cv.kind == ValueKind.STRING_LIST:
        return list(cv.value), True
    if cv.kind == ValueKind.DURATION:
        return as_duration(cv)
    if cv.kind == ValueKind.PROVIDED:
        provided: Provided = cv.value
        if provided.source != ProvidedSource.ENV_VAR or not provided.lookup:
            return None, False
        env_value = os.environ.get(provided.lookup)
        return env_value, env_value is not None
    if cv.kind in (ValueKind.WEIGHTED_VALUES, ValueKind.INT_RANGE):
        return cv.value, False
    return cv.value, True


def as_int(cv: ConfigValue) -> tuple[int, bool]:
    if cv.kind != ValueKind.INT:
        return 0, False
    return cv.value, True


def as_float(cv: ConfigValue) -> tuple[float, bool]:
    if cv.kind != ValueKind.DOUBLE:
        return 0.0, False
    return cv.value, True


def as_bool(cv: ConfigValue) -> tuple[bool, bool]:
    if cv.kind != ValueKind.BOOL:
        return False, False
    return cv.value, True


def as_string(cv: ConfigValue) -> tuple[str, bool]:
    if cv.kind != ValueKind.STRING:
        return "", False
    return cv.value, True


def as_string_list(cv: ConfigValue) -> tuple[list[str], bool]:
    if cv.kind != ValueKind.STRING_LIST:
        return [], False
    return list(cv.value), True


def as_log_level(cv: ConfigValue) -> tuple[LogLevel, bool]:
    if cv.kind != ValueKind.LOG_LEVEL:
        return LogLevel.NOT_SET_LOG_LEVEL, False
    return cv.value, True


def as_duration(cv: ConfigValue) -> tuple[timedelta, bool]:
    """期間値を timedelta として取り出す。解析できない場合は (0, False)。"""
    if cv.kind != ValueKind.DURATION:
        return timedelta(0), False
    try:
        return parse_duration(cv.value), True
    except (isodate.ISO8601Error, ValueError) as e:
        logger.debug("invalid duration value", definition=cv.value, error=str(e))
        return timedelta(0), False


def as_json(cv: ConfigValue) -> tuple[Any, bool]:
    """JSON 値をデコードして取り出す。"""
    if cv.kind != ValueKind.JSON:
        return None, False
    try:
        return json.loads(cv.value), True
    except json.JSONDecodeError as e:
        logger.debug("invalid json value", error=str(e))
        return None, False
