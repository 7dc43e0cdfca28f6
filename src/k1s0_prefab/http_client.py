"""設定スナップショット取得 HTTP クライアント実装"""

from __future__ import annotations

import httpx
import structlog

from .codec import decode_configs
from .exceptions import PrefabError, PrefabErrorCodes
from .models import ConfigsSnapshot
from .options import Options
from .version import CLIENT_VERSION, CLIENT_VERSION_HEADER

logger = structlog.get_logger(__name__)

AUTH_USERNAME = "1"


class HttpConfigClient:
    """httpx を使った設定取得クライアント。API URL を順に試す。"""

    def __init__(self, options: Options) -> None:
        self._options = options
        self._headers: dict[str, str] = {CLIENT_VERSION_HEADER: CLIENT_VERSION}

    def _make_client(self, base_url: str) -> httpx.Client:
        return httpx.Client(
            base_url=base_url,
            headers=self._headers,
            auth=(AUTH_USERNAME, self._options.api_key_setting_or_env_var()),
            timeout=self._options.http_timeout_seconds,
        )

    def _handle_error(self, resp: httpx.Response, context: str) -> None:
        if resp.status_code >= 300:
            raise PrefabError(
                code=PrefabErrorCodes.HTTP_ERROR,
                message=f"{context}: HTTP {resp.status_code}: {resp.text}",
            )

    def load_from_url(self, base_url: str, offset: int) -> ConfigsSnapshot:
        """1 つの API URL から offset 以降の設定を取得する。"""
        try:
            with self._make_client(base_url) as client:
                resp = client.get(f"/api/v1/configs/{offset}")
            self._handle_error(resp, f"load({base_url})")
            return decode_configs(resp.content)
        except PrefabError:
            raise
        except Exception as e:
            raise PrefabError(
                code=PrefabErrorCodes.HTTP_ERROR,
                message=f"Failed to load configs from {base_url}: {e}",
                cause=e,
            ) from e

    def load(self, offset: int = 0) -> ConfigsSnapshot:
        """設定を取得する。すべての URL で失敗した場合は最後のエラーを送出する。"""
        last_error: PrefabError | None = None
        for base_url in self._options.api_urls_env_var_or_setting():
            try:
                return self.load_from_url(base_url, offset)
            except PrefabError as e:
                logger.warning("config fetch failed", url=base_url, error=str(e))
                last_error = e
        if last_error is None:
            raise PrefabError(code=PrefabErrorCodes.CONFIG_ERROR, message="No API URLs configured")
        raise last_error
