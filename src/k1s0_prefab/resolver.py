"""設定値の解決"""

from __future__ import annotations

import dataclasses
import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .context import ContextSet
from .encryption import AesGcmDecrypter, Decrypter
from .evaluator import ConfigRuleEvaluator
from .exceptions import PrefabError, PrefabErrorCodes
from .models import Config, ConfigType, ConfigValue, Provided, ProvidedSource, ValueKind, ValueType
from .values import as_string, create
from .weighted import WeightedValueResolver

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ResolverStore(Protocol):
    def get_config(self, key: str) -> Config | None: ...

    def get_context_value(self, property_name: str) -> tuple[Any, bool]: ...

    def get_project_env_id(self) -> int: ...


@dataclass
class ConfigMatch:
    """設定値の解決結果。"""

    config_key: str
    config_id: int = 0
    config_type: ConfigType = ConfigType.NOT_SET_CONFIG_TYPE
    original_match: ConfigValue | None = None
    match: ConfigValue | None = None
    row_index: int = 0
    conditional_value_index: int = 0
    weighted_value_index: int | None = None
    is_match: bool = False


class _ContextChain:
    """呼び出し元のコンテキスト、ストアのデフォルトコンテキストの順に参照する。"""

    def __init__(self, context: ContextSet | None, store: ResolverStore) -> None:
        self._context = context
        self._store = store

    def get_context_value(self, property_name: str) -> tuple[Any, bool]:
        if self._context is not None:
            value, ok = self._context.get_context_value(property_name)
            if ok:
                return value, True
        return self._store.get_context_value(property_name)


def coerce_provided(raw: str, value_type: ValueType) -> ConfigValue:
    """環境変数の文字列を設定の宣言型に変換する。"""
    if value_type in (ValueType.STRING, ValueType.NOT_SET_VALUE_TYPE):
        return create(raw)
    if value_type == ValueType.INT and _INT_PATTERN.fullmatch(raw):
        return create(int(raw))
    if value_type == ValueType.DOUBLE:
        try:
            return create(float(raw))
        except ValueError:
            pass
    if value_type == ValueType.BOOL:
        if raw in _TRUE_STRINGS:
            return create(True)
        if raw in _FALSE_STRINGS:
            return create(False)
    raise PrefabError(
        code=PrefabErrorCodes.TYPE_COERCION_FAILED,
        message=f"Cannot coerce {raw!r} to {value_type.name}",
    )


class ConfigResolver:
    """ルール評価の結果に重み付き選択・環境変数参照・復号を適用する。"""

    def __init__(
        self,
        store: ResolverStore,
        evaluator: ConfigRuleEvaluator | None = None,
        weighted_resolver: WeightedValueResolver | None = None,
        decrypter: Decrypter | None = None,
        env_lookup: Callable[[str], str | None] = os.environ.get,
    ) -> None:
        self._store = store
        self._evaluator = evaluator or ConfigRuleEvaluator(store, store.get_project_env_id)
        self._weighted = weighted_resolver or WeightedValueResolver()
        self._decrypter = decrypter or AesGcmDecrypter()
        self._env_lookup = env_lookup

    def resolve_value(self, key: str, context: ContextSet | None = None) -> ConfigMatch:
        """キーに対応する設定値を解決する。"""
        config = self._store.get_config(key)
        if config is None:
            raise PrefabError(
                code=PrefabErrorCodes.CONFIG_DOES_NOT_EXIST,
                message=f"Config does not exist: {key}",
            )
        return self.resolve_value_for_config(config, context)

    def resolve_value_for_config(self, config: Config, context: ContextSet | None = None) -> ConfigMatch:
        chain = _ContextChain(context, self._store)
        condition = self._evaluator.evaluate_config(config, chain)
        result = ConfigMatch(
            config_key=config.key,
            config_id=config.id,
            config_type=config.config_type,
            original_match=condition.match,
            match=condition.match,
            row_index=condition.row_index,
            conditional_value_index=condition.conditional_value_index,
            is_match=condition.is_match,
        )
        original = condition.match
        if original is None:
            return result

        value = original
        if value.kind == ValueKind.WEIGHTED_VALUES:
            selected, index = self._weighted.resolve(value.value, config.key, chain)
            value = selected.value
            result.weighted_value_index = index
        if value.kind == ValueKind.PROVIDED:
            value = self._resolve_provided(config, value.value)

        decrypted = False
        if value.kind == ValueKind.STRING and value.decrypt_with:
            value = self._decrypt(value, context)
            decrypted = True

        if value is not original and not decrypted and original.confidential and not value.confidential:
            value = dataclasses.replace(value, confidential=True)
        result.match = value
        return result

    def _resolve_provided(self, config: Config, provided: Provided) -> ConfigValue:
        if provided.source != ProvidedSource.ENV_VAR or not provided.lookup:
            raise PrefabError(
                code=PrefabErrorCodes.ENV_VAR_NOT_EXIST,
                message=f"Provided value of {config.key} has no environment variable",
            )
        raw = self._env_lookup(provided.lookup)
        if raw is None:
            raise PrefabError(
                code=PrefabErrorCodes.ENV_VAR_NOT_EXIST,
                message=f"Environment variable does not exist: {provided.lookup}",
            )
        return coerce_provided(raw, config.value_type)

    def _decrypt(self, value: ConfigValue, context: ContextSet | None) -> ConfigValue:
        key_name = value.decrypt_with or ""
        key_config = self._store.get_config(key_name)
        if key_config is None:
            raise PrefabError(
                code=PrefabErrorCodes.DECRYPTION_FAILED,
                message=f"No config value exists for decryption key {key_name}",
            )
        try:
            key_match = self.resolve_value_for_config(key_config, context)
        except PrefabError as e:
            raise PrefabError(
                code=PrefabErrorCodes.DECRYPTION_FAILED,
                message=f"Failed to resolve decryption key {key_name}: {e}",
                cause=e,
            ) from e
        if key_match.match is None:
            raise PrefabError(
                code=PrefabErrorCodes.DECRYPTION_FAILED,
                message=f"No match for decryption key {key_name}",
            )
        secret_key, ok = as_string(key_match.match)
        if not ok:
            raise PrefabError(
                code=PrefabErrorCodes.DECRYPTION_FAILED,
                message=f"Secret key {key_name} is not a string",
            )
        try:
            plaintext = self._decrypter.decrypt_value(secret_key, value.value)
        except Exception as e:
            raise PrefabError(
                code=PrefabErrorCodes.DECRYPTION_FAILED,
                message=f"Failed to decrypt value: {e}",
                cause=e,
            ) from e
        return ConfigValue(ValueKind.STRING, plaintext, confidential=True)
