"""API ストアのバックグラウンド読み込み"""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from .api_store import ApiConfigStore
from .exceptions import RetryError
from .http_client import HttpConfigClient
from .options import Options
from .retry import call_with_retry
from .sse_client import ConfigStreamer

logger = structlog.get_logger(__name__)


class ApiConfigLoader:
    """初回取得をリトライ付きで行い、その後ストリーミングへ移行する。"""

    def __init__(
        self,
        options: Options,
        store: ApiConfigStore,
        on_initialized: Callable[[], None],
        http_client: HttpConfigClient | None = None,
        streamer: ConfigStreamer | None = None,
    ) -> None:
        self._options = options
        self._store = store
        self._on_initialized = on_initialized
        self._http_client = http_client or HttpConfigClient(options)
        self._streamer = streamer or ConfigStreamer(options, store, on_initialized=on_initialized)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def fetch_with_retry(self) -> bool:
        """設定を取得してストアに適用する。リトライ上限に達した場合は False。"""

        def fetch() -> None:
            snapshot = self._http_client.load(self._store.get_high_watermark())
            self._store.set_from_snapshot(snapshot)

        try:
            call_with_retry(self._options.fetch_retry, fetch, sleep=self._stop.wait)
        except RetryError as e:
            logger.error("config fetch gave up", attempts=e.attempts, error=str(e.last_error))
            return False
        logger.debug("config fetch complete", high_watermark=self._store.get_high_watermark())
        self._on_initialized()
        return True

    def _run(self) -> None:
        self.fetch_with_retry()
        if not self._stop.is_set():
            self._streamer.run(self._stop)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="prefab-config-loader", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
