"""設定ストアの実装"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from .api_store import ApiConfigStore
from .codec import decode_config_dump
from .exceptions import PrefabError, PrefabErrorCodes
from .local_parser import load_local_file
from .models import ConditionalValue, Config, ConfigRow, ConfigType
from .options import ConfigSource, Options, StoreType
from .values import create, value_type_of


@runtime_checkable
class ConfigStore(Protocol):
    """設定ストアのインターフェース。"""

    def get_config(self, key: str) -> Config | None: ...

    def keys(self) -> list[str]: ...

    def get_context_value(self, property_name: str) -> tuple[Any, bool]: ...

    def get_project_env_id(self) -> int: ...


class _StaticConfigStore:
    """読み込み後に変化しないストアの共通実装。"""

    def __init__(self, configs: list[Config], project_env_id: int) -> None:
        self._configs = {config.key: config for config in configs}
        self._project_env_id = project_env_id

    def get_config(self, key: str) -> Config | None:
        return self._configs.get(key)

    def keys(self) -> list[str]:
        return list(self._configs)

    def get_context_value(self, property_name: str) -> tuple[Any, bool]:
        return None, False

    def get_project_env_id(self) -> int:
        return self._project_env_id


class MemoryConfigStore(_StaticConfigStore):
    """辞書で与えた設定を保持するストア。

    Config インスタンスはそのまま保持し、それ以外の値は単一値の設定に変換する。
    """

    def __init__(self, project_env_id: int = 0, raw_configs: Mapping[str, Any] | None = None) -> None:
        configs = []
        for key, value in (raw_configs or {}).items():
            if isinstance(value, Config):
                configs.append(value)
                continue
            cv = create(value)
            configs.append(
                Config(
                    key=key,
                    config_type=ConfigType.CONFIG,
                    value_type=value_type_of(cv),
                    rows=[ConfigRow(values=[ConditionalValue(value=cv)])],
                )
            )
        super().__init__(configs, project_env_id)


class LocalConfigStore(_StaticConfigStore):
    """ローカルの YAML / JSON ファイルから読み込むストア。"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        configs, project_env_id = load_local_file(self.path)
        super().__init__(configs, project_env_id)


class ConfigDumpConfigStore(_StaticConfigStore):
    """ConfigDump ファイルから読み込むストア。削除済みエントリは除外する。"""

    def __init__(self, path: str | Path, project_env_id: int) -> None:
        if project_env_id == 0:
            raise PrefabError(
                code=PrefabErrorCodes.CONFIG_ERROR,
                message="project_env_id is required to load a config dump",
            )
        self.path = Path(path)
        try:
            data = self.path.read_bytes()
        except OSError as e:
            raise PrefabError(
                code=PrefabErrorCodes.READ_FILE,
                message=f"Failed to read config dump: {self.path}",
                cause=e,
            ) from e
        configs = [w.config for w in decode_config_dump(data) if not w.deleted]
        super().__init__(configs, project_env_id)


class CompositeConfigStore:
    """複数のストアを順に参照するストア。先に見つかったものを採用する。"""

    def __init__(self, *stores: ConfigStore) -> None:
        self._stores = list(stores)

    @property
    def stores(self) -> list[ConfigStore]:
        return list(self._stores)

    def get_config(self, key: str) -> Config | None:
        for store in self._stores:
            config = store.get_config(key)
            if config is not None:
                return config
        return None

    def keys(self) -> list[str]:
        seen: dict[str, None] = {}
        for store in self._stores:
            for key in store.keys():
                seen.setdefault(key, None)
        return list(seen)

    def get_context_value(self, property_name: str) -> tuple[Any, bool]:
        for store in self._stores:
            value, ok = store.get_context_value(property_name)
            if ok:
                return value, True
        return None, False

    def get_project_env_id(self) -> int:
        for store in self._stores:
            env_id = store.get_project_env_id()
            if env_id != 0:
                return env_id
        return 0


def build_config_store(options: Options, source: ConfigSource) -> ConfigStore:
    """設定ソースに対応するストアを生成する。"""
    if source.store == StoreType.API:
        return ApiConfigStore()
    if source.store == StoreType.LOCAL:
        return LocalConfigStore(source.path)
    if source.store == StoreType.DUMP:
        return ConfigDumpConfigStore(source.path, options.project_env_id)
    if source.store == StoreType.MEMORY:
        return MemoryConfigStore(options.project_env_id, options.configs)
    raise PrefabError(
        code=PrefabErrorCodes.CONFIG_ERROR,
        message=f"Unknown config source: {source.raw}",
    )
