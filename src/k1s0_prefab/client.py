"""prefab クライアント"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import timedelta
from types import TracebackType
from typing import Any, TypeVar

import structlog

from . import values
from .api_store import ApiConfigStore
from .context import ContextSet, merge
from .exceptions import PrefabError, PrefabErrorCodes
from .loader import ApiConfigLoader
from .models import Config, ConfigValue
from .options import OnInitializationFailure, Options
from .resolver import ConfigMatch, ConfigResolver
from .stores import CompositeConfigStore, ConfigStore, build_config_store
from .submitter import TelemetrySubmitter

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class _ValueGetters:
    """型付き取得メソッド群。"""

    def _client(self) -> PrefabClient:
        raise NotImplementedError

    def _context(self) -> ContextSet | None:
        raise NotImplementedError

    def _get_typed(
        self,
        key: str,
        context: ContextSet | None,
        extractor: Callable[[ConfigValue], tuple[T, bool]],
    ) -> tuple[T, bool]:
        merged = merge(self._context(), context)
        match = self._client().internal_get_config_match(key, merged)
        if match.match is None:
            raise PrefabError(
                code=PrefabErrorCodes.NO_VALUE,
                message=f"Config {key} did not produce a value",
            )
        value, ok = extractor(match.match)
        if not ok:
            logger.debug("config value has unexpected type", key=key, kind=str(match.match.kind))
        return value, ok

    def _get_with_default(
        self,
        key: str,
        default: T,
        context: ContextSet | None,
        extractor: Callable[[ConfigValue], tuple[T, bool]],
    ) -> T:
        try:
            value, ok = self._get_typed(key, context, extractor)
        except PrefabError as e:
            logger.debug("returning default value", key=key, error=str(e))
            return default
        return value if ok else default

    def get_int_value(self, key: str, context: ContextSet | None = None) -> tuple[int, bool]:
        return self._get_typed(key, context, values.as_int)

    def get_int_value_with_default(self, key: str, default: int, context: ContextSet | None = None) -> int:
        return self._get_with_default(key, default, context, values.as_int)

    def get_float_value(self, key: str, context: ContextSet | None = None) -> tuple[float, bool]:
        return self._get_typed(key, context, values.as_float)

    def get_float_value_with_default(self, key: str, default: float, context: ContextSet | None = None) -> float:
        return self._get_with_default(key, default, context, values.as_float)

    def get_bool_value(self, key: str, context: ContextSet | None = None) -> tuple[bool, bool]:
        return self._get_typed(key, context, values.as_bool)

    def get_bool_value_with_default(self, key: str, default: bool, context: ContextSet | None = None) -> bool:
        return self._get_with_default(key, default, context, values.as_bool)

    def get_string_value(self, key: str, context: ContextSet | None = None) -> tuple[str, bool]:
        return self._get_typed(key, context, values.as_string)

    def get_string_value_with_default(self, key: str, default: str, context: ContextSet | None = None) -> str:
        return self._get_with_default(key, default, context, values.as_string)

    def get_string_list_value(self, key: str, context: ContextSet | None = None) -> tuple[list[str], bool]:
        return self._get_typed(key, context, values.as_string_list)

    def get_string_list_value_with_default(
        self, key: str, default: list[str], context: ContextSet | None = None
    ) -> list[str]:
        return self._get_with_default(key, default, context, values.as_string_list)

    def get_duration_value(self, key: str, context: ContextSet | None = None) -> tuple[timedelta, bool]:
        return self._get_typed(key, context, values.as_duration)

    def get_duration_value_with_default(
        self, key: str, default: timedelta, context: ContextSet | None = None
    ) -> timedelta:
        return self._get_with_default(key, default, context, values.as_duration)

    def get_json_value(self, key: str, context: ContextSet | None = None) -> tuple[Any, bool]:
        return self._get_typed(key, context, values.as_json)

    def get_json_value_with_default(self, key: str, default: Any, context: ContextSet | None = None) -> Any:
        return self._get_with_default(key, default, context, values.as_json)

    def get_log_level_string_value(self, key: str, context: ContextSet | None = None) -> tuple[str, bool]:
        level, ok = self._get_typed(key, context, values.as_log_level)
        return (level.name, True) if ok else ("", False)

    def feature_is_on(self, key: str, context: ContextSet | None = None) -> bool:
        """フラグが有効か判定する。取得できない場合は False。"""
        return self.get_bool_value_with_default(key, False, context)

    def get_config_match(self, key: str, context: ContextSet | None = None) -> ConfigMatch:
        """解決結果の詳細を返す。"""
        return self._client().internal_get_config_match(key, merge(self._context(), context))


class ContextBoundClient(_ValueGetters):
    """コンテキストを束縛したクライアント。"""

    def __init__(self, client: PrefabClient, context: ContextSet) -> None:
        self._parent = client
        self._bound_context = context

    def _client(self) -> PrefabClient:
        return self._parent

    def _context(self) -> ContextSet | None:
        return self._bound_context

    def with_context(self, context: ContextSet) -> ContextBoundClient:
        return ContextBoundClient(self._parent, merge(self._bound_context, context))


class PrefabClient(_ValueGetters):
    """設定とフィーチャーフラグを取得するクライアント。

    バックグラウンド処理は start() で開始し、close() で停止する。
    """

    def __init__(self, options: Options | None = None) -> None:
        self.options = options or Options()
        self._initialized = threading.Event()
        self._loaders: list[ApiConfigLoader] = []
        stores: list[ConfigStore] = []
        for source in self.options.sources:
            store = build_config_store(self.options, source)
            stores.append(store)
            if isinstance(store, ApiConfigStore):
                self._loaders.append(ApiConfigLoader(self.options, store, self._initialized.set))
        if not self.options.has_api_source:
            self._initialized.set()
        self._store = CompositeConfigStore(*stores)
        self._resolver = ConfigResolver(self._store)
        self._telemetry = TelemetrySubmitter(self.options)
        self._started = False

    def _client(self) -> PrefabClient:
        return self

    def _context(self) -> ContextSet | None:
        return self.options.global_context

    def start(self) -> PrefabClient:
        """設定の読み込みとテレメトリ送信を開始する。"""
        if self._started:
            return self
        self._started = True
        for loader in self._loaders:
            loader.start()
        if self.options.api_key_setting_or_env_var():
            self._telemetry.start()
        else:
            logger.debug("telemetry disabled without api key")
        return self

    def close(self) -> None:
        """バックグラウンド処理を停止する。"""
        for loader in self._loaders:
            loader.stop()
        self._telemetry.stop()
        self._started = False

    def __enter__(self) -> PrefabClient:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def wait_for_initialization(self) -> None:
        """初期化の完了を待つ。タイムアウト時の動作は設定に従う。"""
        if self._initialized.wait(self.options.initialization_timeout_seconds):
            return
        if self.options.on_initialization_failure == OnInitializationFailure.UNLOCK:
            logger.warning(
                "initialization timed out, continuing without config",
                timeout=self.options.initialization_timeout_seconds,
            )
            self._initialized.set()
            return
        raise PrefabError(
            code=PrefabErrorCodes.INITIALIZATION_TIMEOUT,
            message=f"Initialization did not complete within {self.options.initialization_timeout_seconds}s",
        )

    def internal_get_config_match(self, key: str, context: ContextSet) -> ConfigMatch:
        self.wait_for_initialization()
        self._telemetry.record_context(context)
        match = self._resolver.resolve_value(key, context)
        self._telemetry.record_evaluation(match)
        return match

    def with_context(self, context: ContextSet) -> ContextBoundClient:
        """コンテキストを束縛したクライアントを返す。"""
        return ContextBoundClient(self, merge(self.options.global_context, context))

    def get_config(self, key: str) -> Config | None:
        self.wait_for_initialization()
        return self._store.get_config(key)

    def keys(self) -> list[str]:
        self.wait_for_initialization()
        return self._store.keys()

    def send_telemetry(self, wait_for_queue_drain: bool = True) -> bool:
        """集計済みのテレメトリを即時送信する。"""
        return self._telemetry.submit(wait_for_queue_drain)


def new_client(options: Options | None = None) -> PrefabClient:
    """クライアントを生成して開始する。"""
    return PrefabClient(options).start()
