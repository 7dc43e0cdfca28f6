"""テレメトリ集計"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union

from .context import ContextSet
from .models import ConfigType, ConfigValue
from .resolver import ConfigMatch

FIELD_TYPE_INT = 1
FIELD_TYPE_STRING = 2
FIELD_TYPE_DOUBLE = 4
FIELD_TYPE_BOOL = 5
FIELD_TYPE_STRING_LIST = 10


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass
class ConfigEvaluationCounter:
    """評価結果ごとの件数。"""

    count: int
    config_id: int
    selected_value: ConfigValue | None
    config_row_index: int
    conditional_value_index: int
    weighted_value_index: int | None = None


@dataclass
class ConfigEvaluationSummary:
    """設定キーと種別ごとの評価サマリ。"""

    key: str
    config_type: ConfigType
    counters: list[ConfigEvaluationCounter] = field(default_factory=list)


@dataclass
class EvaluationSummariesEvent:
    start: int
    end: int
    summaries: list[ConfigEvaluationSummary] = field(default_factory=list)


@dataclass
class ExampleContext:
    timestamp: int
    context_set: ContextSet


@dataclass
class ExampleContextsEvent:
    examples: list[ExampleContext] = field(default_factory=list)


@dataclass
class ContextShape:
    name: str
    field_types: dict[str, int] = field(default_factory=dict)


@dataclass
class ContextShapesEvent:
    shapes: list[ContextShape] = field(default_factory=list)


TelemetryEvent = Union[EvaluationSummariesEvent, ExampleContextsEvent, ContextShapesEvent]


def field_type_for_value(value: Any) -> int:
    """コンテキスト値の型タグを返す。"""
    # bool は int のサブクラスなので先に判定する
    if isinstance(value, bool):
        return FIELD_TYPE_BOOL
    if isinstance(value, int):
        return FIELD_TYPE_INT
    if isinstance(value, float):
        return FIELD_TYPE_DOUBLE
    if isinstance(value, (list, tuple)):
        return FIELD_TYPE_STRING_LIST
    return FIELD_TYPE_STRING


_CounterKey = tuple[int, int, int, int | None, ConfigValue | None]


class _Aggregator:
    """ロックと snapshot / clear / drain を共有する集計器の基底クラス。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def snapshot(self) -> TelemetryEvent | None:
        with self._lock:
            return self._build_event()

    def clear(self) -> None:
        with self._lock:
            self._reset()

    def drain(self) -> TelemetryEvent | None:
        """スナップショットを取得して集計をクリアする。"""
        with self._lock:
            event = self._build_event()
            self._reset()
            return event

    def _build_event(self) -> TelemetryEvent | None:
        raise NotImplementedError

    def _reset(self) -> None:
        raise NotImplementedError


class EvaluationSummaryAggregator(_Aggregator):
    """評価結果を (設定 ID, 行, 条件, 重み, 値) ごとに数える。"""

    def __init__(self, clock: Callable[[], int] = now_millis) -> None:
        super().__init__()
        self._clock = clock
        self._counts: dict[_CounterKey, int] = {}
        self._first: dict[_CounterKey, ConfigMatch] = {}
        self._start = 0

    def record(self, match: ConfigMatch) -> None:
        key: _CounterKey = (
            match.config_id,
            match.row_index,
            match.conditional_value_index,
            match.weighted_value_index,
            match.match,
        )
        with self._lock:
            if not self._counts:
                self._start = self._clock()
            self._counts[key] = self._counts.get(key, 0) + 1
            self._first.setdefault(key, match)

    def _build_event(self) -> EvaluationSummariesEvent | None:
        if not self._counts:
            return None
        summaries: dict[tuple[str, ConfigType], ConfigEvaluationSummary] = {}
        for key, count in self._counts.items():
            match = self._first[key]
            group = (match.config_key, match.config_type)
            summary = summaries.get(group)
            if summary is None:
                summary = ConfigEvaluationSummary(key=match.config_key, config_type=match.config_type)
                summaries[group] = summary
            summary.counters.append(
                ConfigEvaluationCounter(
                    count=count,
                    config_id=match.config_id,
                    selected_value=match.match,
                    config_row_index=match.row_index,
                    conditional_value_index=match.conditional_value_index,
                    weighted_value_index=match.weighted_value_index,
                )
            )
        return EvaluationSummariesEvent(
            start=self._start,
            end=self._clock(),
            summaries=list(summaries.values()),
        )

    def _reset(self) -> None:
        self._counts.clear()
        self._first.clear()
        self._start = 0


class ContextShapeAggregator(_Aggregator):
    """コンテキストごとのプロパティ名と型を集める。最初に観測した型を採用する。"""

    def __init__(self) -> None:
        super().__init__()
        self._shapes: dict[str, dict[str, int]] = {}

    def record(self, context_set: ContextSet) -> None:
        with self._lock:
            for ctx in context_set:
                fields = self._shapes.setdefault(ctx.name, {})
                for name, value in ctx.data.items():
                    fields.setdefault(name, field_type_for_value(value))

    def _build_event(self) -> ContextShapesEvent | None:
        if not self._shapes:
            return None
        return ContextShapesEvent(
            shapes=[ContextShape(name=name, field_types=dict(fields)) for name, fields in self._shapes.items()]
        )

    def _reset(self) -> None:
        self._shapes.clear()


class ExampleContextAggregator(_Aggregator):
    """グループキーごとに最初に観測したコンテキストを保持する。"""

    def __init__(self, clock: Callable[[], int] = now_millis) -> None:
        super().__init__()
        self._clock = clock
        self._examples: dict[str, ExampleContext] = {}

    def record(self, context_set: ContextSet) -> None:
        grouped_key = context_set.grouped_key()
        if not grouped_key:
            return
        with self._lock:
            if grouped_key in self._examples:
                return
            self._examples[grouped_key] = ExampleContext(
                timestamp=self._clock(),
                context_set=context_set.copy(),
            )

    def _build_event(self) -> ExampleContextsEvent | None:
        if not self._examples:
            return None
        return ExampleContextsEvent(examples=list(self._examples.values()))

    def _reset(self) -> None:
        self._examples.clear()
