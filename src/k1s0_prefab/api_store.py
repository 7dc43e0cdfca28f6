"""API 由来の設定ストア"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog

from .context import ContextSet
from .models import Config, ConfigsSnapshot
from .rwlock import ReadWriteLock

logger = structlog.get_logger(__name__)


class ApiConfigStore:
    """サーバーから受信したスナップショットと差分を保持するストア。

    設定は id が既存より大きい場合のみ置き換える。行を持たない設定は削除マーカー。
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._configs: dict[str, Config] = {}
        self._high_watermark = 0
        self._project_env_id = 0
        self._context_set = ContextSet()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        with self._lock.read():
            return self._initialized

    def set_from_snapshot(self, snapshot: ConfigsSnapshot) -> None:
        """スナップショットを適用する。デフォルトコンテキストも更新する。"""
        with self._lock.write():
            if snapshot.default_context is not None:
                self._context_set = snapshot.default_context
            self._apply(snapshot.configs, snapshot.project_env_id)

    def set_configs(self, configs: Iterable[Config], project_env_id: int) -> None:
        """設定の一覧を適用する。"""
        with self._lock.write():
            self._apply(list(configs), project_env_id)

    def _apply(self, configs: list[Config], project_env_id: int) -> None:
        self._initialized = True
        if configs:
            self._project_env_id = project_env_id
        for config in configs:
            existing = self._configs.get(config.key)
            if config.is_tombstone:
                if existing is not None and config.id > existing.id:
                    del self._configs[config.key]
            elif existing is None or config.id > existing.id:
                self._configs[config.key] = config
            self._high_watermark = max(self._high_watermark, config.id)
        logger.debug(
            "applied configs",
            count=len(configs),
            high_watermark=self._high_watermark,
            project_env_id=self._project_env_id,
        )

    def get_config(self, key: str) -> Config | None:
        with self._lock.read():
            return self._configs.get(key)

    def keys(self) -> list[str]:
        with self._lock.read():
            return list(self._configs)

    def get_context_value(self, property_name: str) -> tuple[Any, bool]:
        with self._lock.read():
            return self._context_set.get_context_value(property_name)

    def get_project_env_id(self) -> int:
        with self._lock.read():
            return self._project_env_id

    def get_high_watermark(self) -> int:
        with self._lock.read():
            return self._high_watermark
