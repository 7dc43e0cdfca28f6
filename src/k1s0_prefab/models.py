"""prefab データモデル"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import ContextSet


class ConfigType(IntEnum):
    """設定の種別。"""

    NOT_SET_CONFIG_TYPE = 0
    CONFIG = 1
    FEATURE_FLAG = 2
    LOG_LEVEL = 3
    SEGMENT = 4
    LIMIT_DEFINITION = 5
    DELETED = 6


class ValueType(IntEnum):
    """設定値として宣言された型。"""

    NOT_SET_VALUE_TYPE = 0
    INT = 1
    STRING = 2
    BYTES = 3
    DOUBLE = 4
    BOOL = 5
    LIMIT_DEFINITION = 7
    LOG_LEVEL = 9
    STRING_LIST = 10
    INT_RANGE = 11
    DURATION = 12
    JSON = 13


class LogLevel(IntEnum):
    """ログレベル。"""

    NOT_SET_LOG_LEVEL = 0
    TRACE = 1
    DEBUG = 2
    INFO = 3
    WARN = 5
    ERROR = 6
    FATAL = 9


class ProvidedSource(IntEnum):
    """Provided 値の取得元。"""

    PROVIDED_SOURCE_NOT_SET = 0
    ENV_VAR = 1


class CriterionOperator(IntEnum):
    """ターゲティング条件の演算子。"""

    NOT_SET = 0
    LOOKUP_KEY_IN = 1
    LOOKUP_KEY_NOT_IN = 2
    IN_SEG = 3
    NOT_IN_SEG = 4
    ALWAYS_TRUE = 5
    PROP_IS_ONE_OF = 6
    PROP_IS_NOT_ONE_OF = 7
    PROP_ENDS_WITH_ONE_OF = 8
    PROP_DOES_NOT_END_WITH_ONE_OF = 9
    HIERARCHICAL_MATCH = 10
    IN_INT_RANGE = 11
    PROP_STARTS_WITH_ONE_OF = 12
    PROP_DOES_NOT_START_WITH_ONE_OF = 13
    PROP_CONTAINS_ONE_OF = 14
    PROP_DOES_NOT_CONTAIN_ONE_OF = 15
    PROP_LESS_THAN = 16
    PROP_LESS_THAN_OR_EQUAL = 17
    PROP_GREATER_THAN = 18
    PROP_GREATER_THAN_OR_EQUAL = 19
    PROP_BEFORE = 20
    PROP_AFTER = 21
    PROP_MATCHES = 22
    PROP_DOES_NOT_MATCH = 23
    PROP_SEMVER_LESS_THAN = 24
    PROP_SEMVER_EQUAL = 25
    PROP_SEMVER_GREATER_THAN = 26


class ValueKind(StrEnum):
    """ConfigValue のタグ。値は protobuf の oneof フィールド名と一致する。"""

    INT = "int"
    STRING = "string"
    BYTES = "bytes"
    DOUBLE = "double"
    BOOL = "bool"
    WEIGHTED_VALUES = "weighted_values"
    LOG_LEVEL = "log_level"
    STRING_LIST = "string_list"
    INT_RANGE = "int_range"
    PROVIDED = "provided"
    DURATION = "duration"
    JSON = "json"


@dataclass(frozen=True)
class IntRange:
    """半開区間 [start, end)。未指定の端は int64 の最小/最大値とみなす。"""

    start: int | None = None
    end: int | None = None


@dataclass(frozen=True)
class Provided:
    """実行環境から取得する値の参照。"""

    source: ProvidedSource = ProvidedSource.PROVIDED_SOURCE_NOT_SET
    lookup: str | None = None


@dataclass(frozen=True)
class WeightedValue:
    """重み付き値の 1 エントリ。"""

    weight: int
    value: ConfigValue


@dataclass(frozen=True)
class WeightedValues:
    """重み付き値の集合。"""

    weighted_values: tuple[WeightedValue, ...]
    hash_by_property_name: str | None = None

    def __post_init__(self) -> None:
        if not self.weighted_values:
            raise ValueError("weighted_values must not be empty")
        if any(wv.weight < 0 for wv in self.weighted_values):
            raise ValueError("weights must be non-negative")
        if sum(wv.weight for wv in self.weighted_values) <= 0:
            raise ValueError("sum of weights must be positive")


@dataclass(frozen=True)
class ConfigValue:
    """設定値のタグ付きユニオン。生成後は不変。"""

    kind: ValueKind
    value: Any
    confidential: bool = False
    decrypt_with: str | None = None


@dataclass
class Criterion:
    """ターゲティング条件。"""

    operator: CriterionOperator
    property_name: str = ""
    value_to_match: ConfigValue | None = None


@dataclass
class ConditionalValue:
    """条件付き値。criteria がすべて成立したときに value を採用する。"""

    criteria: list[Criterion] = field(default_factory=list)
    value: ConfigValue | None = None


@dataclass
class ConfigRow:
    """設定の行。project_env_id が None の行は全環境共通のフォールバック。"""

    values: list[ConditionalValue] = field(default_factory=list)
    project_env_id: int | None = None


@dataclass
class Config:
    """設定 (フラグ・セグメント・ログレベルを含む)。"""

    key: str
    id: int = 0
    project_id: int = 0
    config_type: ConfigType = ConfigType.CONFIG
    value_type: ValueType = ValueType.NOT_SET_VALUE_TYPE
    rows: list[ConfigRow] = field(default_factory=list)
    send_to_client_sdk: bool = False

    @property
    def is_tombstone(self) -> bool:
        """行を持たない設定は削除マーカーとして扱う。"""
        return not self.rows


@dataclass
class ConfigsSnapshot:
    """サーバーから受信した設定スナップショット (全量または差分)。"""

    configs: list[Config] = field(default_factory=list)
    project_env_id: int = 0
    default_context: ContextSet | None = None


@dataclass
class ConfigWrapper:
    """設定ダンプの 1 エントリ。"""

    config: Config
    deleted: bool = False
    created_at: datetime | None = None
