"""ConfigValue の生成・取り出しのユニットテスト"""

from datetime import timedelta

import pytest
from k1s0_prefab.exceptions import PrefabError, PrefabErrorCodes
from k1s0_prefab.models import ConfigValue, LogLevel, Provided, ProvidedSource, ValueKind, ValueType
from k1s0_prefab.values import (
    as_bool,
    as_duration,
    as_float,
    as_int,
    as_json,
    as_log_level,
    as_string,
    as_string_list,
    create,
    extract_value,
    parse_duration,
    value_type_of,
)


@pytest.mark.parametrize(
    ("native", "kind"),
    [
        (True, ValueKind.BOOL),
        (42, ValueKind.INT),
        (1.5, ValueKind.DOUBLE),
        ("hello", ValueKind.STRING),
        (["a", "b"], ValueKind.STRING_LIST),
        (b"raw", ValueKind.BYTES),
    ],
)
def test_create_and_extract(native: object, kind: ValueKind) -> None:
    """ネイティブ値から生成して取り出すと元の値に戻る。"""
    cv = create(native)
    assert cv.kind == kind
    assert extract_value(cv) == (native, True)


def test_create_bool_is_not_int() -> None:
    """bool は INT ではなく BOOL になる。"""
    assert create(False).kind == ValueKind.BOOL


def test_create_timedelta_is_duration() -> None:
    """timedelta は ISO-8601 の期間になる。"""
    cv = create(timedelta(minutes=90))
    assert cv.kind == ValueKind.DURATION
    assert as_duration(cv) == (timedelta(minutes=90), True)


def test_create_mapping_is_json() -> None:
    """辞書は JSON 値になる。"""
    cv = create({"a": 1})
    assert cv.kind == ValueKind.JSON
    assert as_json(cv) == ({"a": 1}, True)


def test_create_unsupported_raises() -> None:
    """未対応の型はエラー。"""
    with pytest.raises(PrefabError) as exc_info:
        create(object())
    assert exc_info.value.code == PrefabErrorCodes.UNSUPPORTED_VALUE


def test_create_passthrough_config_value() -> None:
    """ConfigValue はそのまま返す。"""
    cv = ConfigValue(ValueKind.INT, 1)
    assert create(cv) is cv


def test_typed_extractors_do_not_coerce() -> None:
    """型付き取り出しは変換しない。"""
    assert as_int(create("5")) == (0, False)
    assert as_string(create(5)) == ("", False)
    assert as_bool(create(1)) == (False, False)
    assert as_float(create(1)) == (0.0, False)
    assert as_string_list(create("a")) == ([], False)
    assert as_log_level(create("INFO")) == (LogLevel.NOT_SET_LOG_LEVEL, False)


def test_typed_extractors_on_match() -> None:
    """タグが一致すれば値を返す。"""
    assert as_int(create(5)) == (5, True)
    assert as_float(create(2.5)) == (2.5, True)
    assert as_log_level(create(LogLevel.WARN)) == (LogLevel.WARN, True)


def test_as_duration_invalid_definition() -> None:
    """解析できない期間は (0, False)。"""
    cv = ConfigValue(ValueKind.DURATION, "not-a-duration")
    assert as_duration(cv) == (timedelta(0), False)


def test_parse_duration_with_days_and_time() -> None:
    """日と時刻を含む期間を解析できる。"""
    assert parse_duration("P1DT2H") == timedelta(days=1, hours=2)


def test_as_json_invalid() -> None:
    """不正な JSON は (None, False)。"""
    assert as_json(ConfigValue(ValueKind.JSON, "{oops")) == (None, False)


def test_extract_provided_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provided 値は環境変数を参照する。"""
    monkeypatch.setenv("K1S0_PREFAB_TEST_VAR", "from-env")
    cv = create(Provided(source=ProvidedSource.ENV_VAR, lookup="K1S0_PREFAB_TEST_VAR"))
    assert extract_value(cv) == ("from-env", True)


def test_extract_provided_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    """環境変数がなければ (None, False)。"""
    monkeypatch.delenv("K1S0_PREFAB_MISSING_VAR", raising=False)
    cv = create(Provided(source=ProvidedSource.ENV_VAR, lookup="K1S0_PREFAB_MISSING_VAR"))
    assert extract_value(cv) == (None, False)


def test_value_type_of() -> None:
    """タグに対応する ValueType。"""
    assert value_type_of(create(1)) == ValueType.INT
    assert value_type_of(create(["a"])) == ValueType.STRING_LIST
    assert value_type_of(create(Provided())) == ValueType.NOT_SET_VALUE_TYPE
