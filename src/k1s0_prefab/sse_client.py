"""設定更新ストリーム (Server-Sent Events) クライアント"""

from __future__ import annotations

import base64
import binascii
import re
import threading
from collections.abc import Callable

import httpx
import structlog
from httpx_sse import connect_sse

from .api_store import ApiConfigStore
from .codec import decode_configs
from .exceptions import PrefabError, PrefabErrorCodes
from .http_client import AUTH_USERNAME
from .options import Options
from .version import CLIENT_VERSION, CLIENT_VERSION_HEADER

logger = structlog.get_logger(__name__)

START_AT_ID_HEADER = "x-prefab-start-at-id"

_API_SUBDOMAIN = re.compile(r"://(belt|suspenders)\.")


def stream_url_for(api_url: str) -> str:
    """API URL からストリーム URL を求める。"""
    base = _API_SUBDOMAIN.sub("://stream.", api_url.rstrip("/"), count=1)
    return f"{base}/api/v1/sse/config"


class ConfigStreamer:
    """SSE で設定の差分を受信し、ストアへ適用する。切断時は再接続する。"""

    def __init__(
        self,
        options: Options,
        store: ApiConfigStore,
        reconnect_delay_seconds: float = 1.0,
        read_timeout_seconds: float = 300.0,
        on_initialized: Callable[[], None] | None = None,
    ) -> None:
        self._options = options
        self._store = store
        self._on_initialized = on_initialized
        self._reconnect_delay = reconnect_delay_seconds
        self._read_timeout = read_timeout_seconds

    @property
    def url(self) -> str:
        return stream_url_for(self._options.api_urls_env_var_or_setting()[0])

    def handle_event_data(self, data: str) -> None:
        """イベントのデータ (base64 エンコードされた Configs) を適用する。"""
        data = data.strip()
        if not data:
            return
        try:
            raw = base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise PrefabError(
                code=PrefabErrorCodes.PARSE_ERROR,
                message=f"Invalid base64 in stream event: {e}",
                cause=e,
            ) from e
        self._store.set_from_snapshot(decode_configs(raw))
        if self._on_initialized is not None:
            self._on_initialized()

    def consume_once(self, stop_event: threading.Event | None = None) -> None:
        """ストリームに 1 回接続し、切断されるまでイベントを処理する。"""
        headers = {
            CLIENT_VERSION_HEADER: CLIENT_VERSION,
            START_AT_ID_HEADER: str(self._store.get_high_watermark()),
        }
        timeout = httpx.Timeout(self._options.http_timeout_seconds, read=self._read_timeout)
        with httpx.Client(
            headers=headers,
            auth=(AUTH_USERNAME, self._options.api_key_setting_or_env_var()),
            timeout=timeout,
        ) as client:
            with connect_sse(client, "GET", self.url) as event_source:
                event_source.response.raise_for_status()
                for sse in event_source.iter_sse():
                    if stop_event is not None and stop_event.is_set():
                        return
                    self.handle_event_data(sse.data)

    def run(self, stop_event: threading.Event) -> None:
        """停止されるまで接続と再接続を繰り返す。"""
        while not stop_event.is_set():
            try:
                self.consume_once(stop_event)
            except Exception as e:
                logger.warning("config stream error", url=self.url, error=str(e))
            if stop_event.wait(self._reconnect_delay):
                break
