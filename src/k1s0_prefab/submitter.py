"""テレメトリ送信"""

from __future__ import annotations

import queue
import threading
from typing import Union

import httpx
import structlog

from .codec import encode_telemetry_events
from .context import ContextSet
from .exceptions import PrefabError, PrefabErrorCodes, RetryError
from .http_client import AUTH_USERNAME
from .models import ConfigType, ValueKind
from .options import ContextTelemetryMode, Options
from .resolver import ConfigMatch
from .retry import RetryConfig, call_with_retry
from .telemetry import (
    ContextShapeAggregator,
    EvaluationSummaryAggregator,
    ExampleContextAggregator,
    TelemetryEvent,
)
from .version import CLIENT_VERSION, CLIENT_VERSION_HEADER

logger = structlog.get_logger(__name__)

QUEUE_SIZE = 10000
PROTOBUF_CONTENT_TYPE = "application/x-protobuf"

_Item = Union[ConfigMatch, ContextSet]


class TelemetrySubmitter:
    """評価結果とコンテキストを集計し、定期的にサーバーへ送信する。"""

    def __init__(
        self,
        options: Options,
        retry: RetryConfig | None = None,
        queue_size: int = QUEUE_SIZE,
    ) -> None:
        self._options = options
        self._retry = retry or RetryConfig(max_attempts=5, initial_delay=1.0, jitter=False)
        self._queue: queue.Queue[_Item] = queue.Queue(maxsize=queue_size)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._summaries = (
            EvaluationSummaryAggregator() if options.collect_evaluation_summaries else None
        )
        mode = options.context_telemetry_mode
        self._shapes = ContextShapeAggregator() if mode == ContextTelemetryMode.SHAPES else None
        self._examples = (
            ExampleContextAggregator() if mode == ContextTelemetryMode.PERIODIC_EXAMPLE else None
        )

    def _enqueue(self, item: _Item) -> None:
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            logger.debug("telemetry queue full, dropping item")

    def record_evaluation(self, match: ConfigMatch) -> None:
        """評価結果を記録する。不一致とログレベルは対象外。"""
        if self._summaries is None or not match.is_match or match.match is None:
            return
        if match.config_type == ConfigType.LOG_LEVEL or match.match.kind == ValueKind.LOG_LEVEL:
            return
        self._enqueue(match)

    def record_context(self, context_set: ContextSet) -> None:
        """評価に使われたコンテキストを記録する。"""
        if self._shapes is None and self._examples is None:
            return
        self._enqueue(context_set)

    def _process(self, item: _Item) -> None:
        try:
            self._aggregate(item)
        except Exception as e:
            logger.warning("telemetry aggregation failed", item_type=type(item).__name__, error=str(e))

    def _aggregate(self, item: _Item) -> None:
        if isinstance(item, ConfigMatch):
            if self._summaries is not None:
                self._summaries.record(item)
            return
        if self._shapes is not None:
            self._shapes.record(item)
        if self._examples is not None:
            self._examples.record(item)

    def drain_queue(self) -> None:
        """キューに溜まった項目を呼び出しスレッドで集計する。"""
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            self._process(item)

    def collect_events(self) -> list[TelemetryEvent]:
        """各集計器のスナップショットを取得してクリアする。"""
        events: list[TelemetryEvent] = []
        for aggregator in (self._summaries, self._shapes, self._examples):
            if aggregator is None:
                continue
            event = aggregator.drain()
            if event is not None:
                events.append(event)
        return events

    def submit(self, wait_for_queue_drain: bool = False) -> bool:
        """集計結果を送信する。送信するイベントがなかった場合は False。"""
        if wait_for_queue_drain:
            self.drain_queue()
        events = self.collect_events()
        if not events:
            return False
        payload = encode_telemetry_events(self._options.instance_hash, events)
        self._post(payload)
        return True

    def _post(self, payload: bytes) -> None:
        url = f"{self._options.telemetry_host.rstrip('/')}/api/v1/telemetry"
        headers = {
            "Content-Type": PROTOBUF_CONTENT_TYPE,
            "Accept": PROTOBUF_CONTENT_TYPE,
            CLIENT_VERSION_HEADER: CLIENT_VERSION,
        }
        auth = (AUTH_USERNAME, self._options.api_key_setting_or_env_var())

        def post() -> None:
            with httpx.Client(timeout=self._options.http_timeout_seconds) as client:
                resp = client.post(url, content=payload, headers=headers, auth=auth)
            if resp.status_code >= 300:
                raise PrefabError(
                    code=PrefabErrorCodes.TELEMETRY_ERROR,
                    message=f"submit telemetry: HTTP {resp.status_code}: {resp.text}",
                )

        try:
            call_with_retry(self._retry, post, sleep=self._stop.wait)
        except RetryError as e:
            raise PrefabError(
                code=PrefabErrorCodes.TELEMETRY_ERROR,
                message=f"Failed to submit telemetry: {e.last_error}",
                cause=e,
            ) from e

    def _consume(self) -> None:
        while not self._stop.is_set():
            try:
                item = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            self._process(item)

    def _tick(self) -> None:
        while not self._stop.wait(self._options.telemetry_sync_interval_seconds):
            try:
                self.submit()
            except PrefabError as e:
                logger.warning("telemetry submission failed", error=str(e))

    def start(self) -> None:
        if self._threads:
            return
        for name, target in (("prefab-telemetry-consumer", self._consume), ("prefab-telemetry-ticker", self._tick)):
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()
