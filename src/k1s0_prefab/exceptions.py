"""prefab ライブラリの例外型定義"""

from __future__ import annotations


class PrefabError(Exception):
    """prefab ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class PrefabErrorCodes:
    """PrefabError のエラーコード定数。"""

    CONFIG_DOES_NOT_EXIST: str = "CONFIG_DOES_NOT_EXIST"
    ENV_VAR_NOT_EXIST: str = "ENV_VAR_NOT_EXIST"
    TYPE_COERCION_FAILED: str = "TYPE_COERCION_FAILED"
    DECRYPTION_FAILED: str = "DECRYPTION_FAILED"
    INITIALIZATION_TIMEOUT: str = "INITIALIZATION_TIMEOUT"
    NO_VALUE: str = "NO_VALUE"
    HTTP_ERROR: str = "HTTP_ERROR"
    PARSE_ERROR: str = "PARSE_ERROR"
    READ_FILE: str = "READ_FILE_ERROR"
    CONFIG_ERROR: str = "CONFIG_ERROR"
    UNSUPPORTED_VALUE: str = "UNSUPPORTED_VALUE"
    TELEMETRY_ERROR: str = "TELEMETRY_ERROR"
    RETRY_EXHAUSTED: str = "RETRY_EXHAUSTED"


class RetryError(PrefabError):
    """リトライ上限に達した場合のエラー。"""

    def __init__(self, attempts: int, last_error: Exception | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        msg = f"リトライ上限 ({attempts} 回) に達しました"
        if last_error:
            msg += f": {last_error}"
        super().__init__(code=PrefabErrorCodes.RETRY_EXHAUSTED, message=msg, cause=last_error)
