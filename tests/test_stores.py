"""設定ストアのユニットテスト"""

from pathlib import Path

import pytest
from google.protobuf import json_format
from k1s0_prefab import proto
from k1s0_prefab.api_store import ApiConfigStore
from k1s0_prefab.codec import config_to_proto, encode_config_dump
from k1s0_prefab.context import ContextSet
from k1s0_prefab.exceptions import PrefabError, PrefabErrorCodes
from k1s0_prefab.models import ConditionalValue, Config, ConfigRow, ConfigsSnapshot, ConfigWrapper
from k1s0_prefab.options import Options, parse_config_source
from k1s0_prefab.stores import (
    CompositeConfigStore,
    ConfigDumpConfigStore,
    ConfigStore,
    LocalConfigStore,
    MemoryConfigStore,
    build_config_store,
)
from k1s0_prefab.values import create


def make_config(key: str, value: object, config_id: int = 1) -> Config:
    return Config(key=key, id=config_id, rows=[ConfigRow(values=[ConditionalValue(value=create(value))])])


def test_memory_store_wraps_native_values() -> None:
    """ネイティブ値は単一値の設定になる。"""
    store = MemoryConfigStore(5, {"a": 1, "b": "two", "c": ["x"]})
    assert sorted(store.keys()) == ["a", "b", "c"]
    assert store.get_config("a").rows[0].values[0].value == create(1)
    assert store.get_config("a").id == 0
    assert store.get_project_env_id() == 5
    assert store.get_context_value("user.key") == (None, False)


def test_memory_store_keeps_config_instances() -> None:
    """Config インスタンスはそのまま保持する。"""
    config = make_config("flag", True, 42)
    store = MemoryConfigStore(0, {"flag": config})
    assert store.get_config("flag") is config


def test_memory_store_unsupported_value() -> None:
    """未対応の値はエラー。"""
    with pytest.raises(PrefabError) as exc_info:
        MemoryConfigStore(0, {"bad": object()})
    assert exc_info.value.code == PrefabErrorCodes.UNSUPPORTED_VALUE


def test_local_store_yaml(tmp_path: Path) -> None:
    """YAML ファイルを読み込むストア。"""
    path = tmp_path / "local.yml"
    path.write_text("a:\n  b: 1\n", encoding="utf-8")
    store = LocalConfigStore(path)
    assert store.keys() == ["a.b"]
    assert store.get_project_env_id() == 0


def test_local_store_json(tmp_path: Path) -> None:
    """protobuf JSON ファイルを読み込むストア。"""
    msg = proto.Configs()
    msg.configs.append(config_to_proto(make_config("from-json", "yes", 3)))
    msg.config_service_pointer.project_env_id = 77
    path = tmp_path / "configs.json"
    path.write_text(json_format.MessageToJson(msg), encoding="utf-8")
    store = LocalConfigStore(path)
    assert store.get_config("from-json").id == 3
    assert store.get_project_env_id() == 77


def test_dump_store_drops_deleted(tmp_path: Path) -> None:
    """ダンプの削除済みエントリは除外される。"""
    path = tmp_path / "dump.pb"
    path.write_bytes(
        encode_config_dump(
            [
                ConfigWrapper(config=make_config("live", 1, 1)),
                ConfigWrapper(config=make_config("dead", 2, 2), deleted=True),
            ]
        )
    )
    store = ConfigDumpConfigStore(path, 101)
    assert store.keys() == ["live"]
    assert store.get_config("live") == make_config("live", 1, 1)
    assert store.get_project_env_id() == 101


def test_dump_store_requires_env_id(tmp_path: Path) -> None:
    """環境 ID 0 ではダンプを読み込めない。"""
    with pytest.raises(PrefabError) as exc_info:
        ConfigDumpConfigStore(tmp_path / "dump.pb", 0)
    assert exc_info.value.code == PrefabErrorCodes.CONFIG_ERROR


def test_dump_store_missing_file(tmp_path: Path) -> None:
    """存在しないダンプは READ_FILE_ERROR。"""
    with pytest.raises(PrefabError) as exc_info:
        ConfigDumpConfigStore(tmp_path / "missing.pb", 1)
    assert exc_info.value.code == PrefabErrorCodes.READ_FILE


def test_composite_first_hit_wins() -> None:
    """先に登録したストアが優先される。"""
    first = MemoryConfigStore(0, {"shared": "first", "only-first": 1})
    second = MemoryConfigStore(0, {"shared": "second", "only-second": 2})
    composite = CompositeConfigStore(first, second)
    assert composite.get_config("shared").rows[0].values[0].value == create("first")
    assert composite.get_config("only-second") is not None
    assert composite.get_config("missing") is None
    assert sorted(composite.keys()) == ["only-first", "only-second", "shared"]


def test_composite_falls_through_after_delete() -> None:
    """先のストアで削除された設定は後のストアのものを返す。"""
    api = ApiConfigStore()
    api.set_from_snapshot(ConfigsSnapshot(configs=[make_config("shared", "api", 5)]))
    composite = CompositeConfigStore(api, MemoryConfigStore(0, {"shared": "memory"}))
    assert composite.get_config("shared").rows[0].values[0].value == create("api")

    api.set_from_snapshot(ConfigsSnapshot(configs=[Config(key="shared", id=6)]))
    assert api.get_config("shared") is None
    assert composite.get_config("shared").rows[0].values[0].value == create("memory")
    assert composite.keys() == ["shared"]


def test_composite_env_id_first_non_zero() -> None:
    """環境 ID は最初の 0 以外の値。"""
    composite = CompositeConfigStore(MemoryConfigStore(0), MemoryConfigStore(7), MemoryConfigStore(9))
    assert composite.get_project_env_id() == 7
    assert CompositeConfigStore().get_project_env_id() == 0


def test_composite_context_value_first_hit() -> None:
    """コンテキスト値も最初に見つかったストアのものを返す。"""
    api = ApiConfigStore()
    api.set_from_snapshot(
        ConfigsSnapshot(
            configs=[make_config("a", 1)],
            default_context=ContextSet().with_named_context_values("", {"region": "jp"}),
        )
    )
    composite = CompositeConfigStore(MemoryConfigStore(0), api)
    assert composite.get_context_value("region") == ("jp", True)
    assert composite.get_context_value("missing") == (None, False)


def test_stores_satisfy_protocol() -> None:
    """各ストアは ConfigStore プロトコルを満たす。"""
    assert isinstance(MemoryConfigStore(), ConfigStore)
    assert isinstance(ApiConfigStore(), ConfigStore)
    assert isinstance(CompositeConfigStore(), ConfigStore)


def test_build_config_store_by_source(tmp_path: Path) -> None:
    """設定ソースに応じたストアを生成する。"""
    path = tmp_path / "local.yaml"
    path.write_text("a: 1\n", encoding="utf-8")
    options = Options(configs={"m": 1}, project_env_id=3)
    assert isinstance(build_config_store(options, parse_config_source("api:prefab")), ApiConfigStore)
    assert isinstance(build_config_store(options, parse_config_source(f"datafile://{path}")), LocalConfigStore)
    memory = build_config_store(options, parse_config_source("memory://"))
    assert isinstance(memory, MemoryConfigStore)
    assert memory.keys() == ["m"]
