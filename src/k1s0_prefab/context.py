"""評価コンテキスト"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any


def split_property_name(property_name: str) -> tuple[str, str]:
    """プロパティ名を最初のドットでコンテキスト名とキーに分割する。

    ドットを含まない名前は無名コンテキストのキーとして扱う。
    """
    name, sep, key = property_name.partition(".")
    if not sep:
        return "", property_name
    return name, key


class NamedContext:
    """名前付きコンテキスト (例: "user", "device")。"""

    def __init__(self, name: str = "", data: Mapping[str, Any] | None = None) -> None:
        self.name = name
        self.data: dict[str, Any] = dict(data or {})

    def __repr__(self) -> str:
        return f"NamedContext(name={self.name!r}, data={self.data!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NamedContext):
            return NotImplemented
        return self.name == other.name and self.data == other.data

    def copy(self) -> NamedContext:
        return NamedContext(self.name, self.data)


class ContextSet:
    """名前付きコンテキストの集合。"""

    def __init__(self, contexts: Iterable[NamedContext] = ()) -> None:
        self._contexts: dict[str, NamedContext] = {}
        for ctx in contexts:
            self.set_named_context(ctx)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> ContextSet:
        """{"user": {"key": ...}} 形式の辞書から生成する。"""
        return cls(NamedContext(name, values) for name, values in data.items())

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: dict(ctx.data) for name, ctx in self._contexts.items()}

    def set_named_context(self, ctx: NamedContext) -> None:
        """同名のコンテキストを置き換える。"""
        self._contexts[ctx.name] = ctx

    def with_named_context_values(self, name: str, values: Mapping[str, Any]) -> ContextSet:
        """コンテキストを追加して自身を返す (ビルダー)。"""
        self.set_named_context(NamedContext(name, values))
        return self

    def get_named_context(self, name: str) -> NamedContext | None:
        return self._contexts.get(name)

    def get_context_value(self, property_name: str) -> tuple[Any, bool]:
        """プロパティ値を取得する。存在しない場合は (None, False)。"""
        name, key = split_property_name(property_name)
        ctx = self._contexts.get(name)
        if ctx is None or key not in ctx.data:
            return None, False
        return ctx.data[key], True

    def grouped_key(self) -> str:
        """各コンテキストの key プロパティを連結した識別子を返す。

        どのコンテキストも key を持たない場合は空文字列。
        """
        ids: list[str] = []
        has_key = False
        for name, ctx in self._contexts.items():
            key = ctx.data.get("key")
            if key is None:
                ids.append(f"{name}:")
            else:
                has_key = True
                ids.append(f"{name}:{key}")
        if not has_key:
            return ""
        return "|".join(sorted(ids))

    def copy(self) -> ContextSet:
        return ContextSet(ctx.copy() for ctx in self._contexts.values())

    def __iter__(self) -> Iterator[NamedContext]:
        return iter(self._contexts.values())

    def __len__(self) -> int:
        return len(self._contexts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContextSet):
            return NotImplemented
        return self._contexts == other._contexts

    def __repr__(self) -> str:
        return f"ContextSet({list(self._contexts.values())!r})"


def merge(*context_sets: ContextSet | None) -> ContextSet:
    """コンテキストセットを順にマージした新しいセットを返す。

    同名のコンテキストは後勝ちで丸ごと置き換える。入力は変更しない。
    """
    merged = ContextSet()
    for context_set in context_sets:
        if context_set is None:
            continue
        for ctx in context_set:
            merged.set_named_context(ctx.copy())
    return merged
