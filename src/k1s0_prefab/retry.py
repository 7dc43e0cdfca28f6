"""リトライ設定と同期リトライ実行エンジン"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .exceptions import RetryError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """リトライポリシー設定。"""

    max_attempts: int = 10
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True

    def compute_delay(self, attempt: int) -> float:
        """リトライ間隔を秒単位で計算する。"""
        base = self.initial_delay * (self.multiplier**attempt)
        capped = min(base, self.max_delay)
        if self.jitter:
            return capped * (0.9 + random.random() * 0.2)
        return capped


def call_with_retry(
    config: RetryConfig,
    fn: Callable[[], T],
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """関数をリトライ付きで実行する。

    sleep が True を返した場合 (停止イベントの wait など) は残りの試行を打ち切る。
    """
    last_error: Exception | None = None
    for attempt in range(config.max_attempts):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if attempt + 1 < config.max_attempts:
                if sleep(config.compute_delay(attempt)) is True:
                    raise RetryError(attempts=attempt + 1, last_error=last_error) from e
    raise RetryError(attempts=config.max_attempts, last_error=last_error)
