"""ターゲティングルール評価"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import semver
import structlog

from .models import (
    ConditionalValue,
    Config,
    ConfigRow,
    ConfigValue,
    Criterion,
    CriterionOperator,
    ValueKind,
)

logger = structlog.get_logger(__name__)

CURRENT_TIME_PROPERTY = "prefab.current-time"
DEFAULT_MAX_DEPTH = 10

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_NEGATED: dict[CriterionOperator, CriterionOperator] = {
    CriterionOperator.PROP_IS_NOT_ONE_OF: CriterionOperator.PROP_IS_ONE_OF,
    CriterionOperator.PROP_DOES_NOT_END_WITH_ONE_OF: CriterionOperator.PROP_ENDS_WITH_ONE_OF,
    CriterionOperator.PROP_DOES_NOT_START_WITH_ONE_OF: CriterionOperator.PROP_STARTS_WITH_ONE_OF,
    CriterionOperator.PROP_DOES_NOT_CONTAIN_ONE_OF: CriterionOperator.PROP_CONTAINS_ONE_OF,
}

_STRING_MATCHERS: dict[CriterionOperator, Callable[[str, str], bool]] = {
    CriterionOperator.PROP_IS_ONE_OF: lambda value, candidate: value == candidate,
    CriterionOperator.PROP_ENDS_WITH_ONE_OF: str.endswith,
    CriterionOperator.PROP_STARTS_WITH_ONE_OF: str.startswith,
    CriterionOperator.PROP_CONTAINS_ONE_OF: lambda value, candidate: candidate in value,
}


class ContextValueGetter(Protocol):
    def get_context_value(self, property_name: str) -> tuple[Any, bool]: ...


class ConfigGetter(Protocol):
    def get_config(self, key: str) -> Config | None: ...


@dataclass
class ConditionMatch:
    """ルール評価の結果。"""

    is_match: bool
    match: ConfigValue | None = None
    row_index: int = 0
    conditional_value_index: int = 0
    selected_conditional_value: ConditionalValue | None = None


def stringify(value: Any) -> str:
    """コンテキスト値を比較用の文字列に変換する。"""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _epoch_millis(value: Any) -> int | None:
    if _is_number(value):
        return int(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return None


def _parse_semver(value: Any) -> semver.Version | None:
    if not isinstance(value, str):
        return None
    try:
        return semver.Version.parse(value)
    except ValueError:
        return None


class ConfigRuleEvaluator:
    """設定の行と条件を評価し、採用する値を決定する。"""

    def __init__(
        self,
        store: ConfigGetter,
        env_id_supplier: Callable[[], int],
        max_depth: int = DEFAULT_MAX_DEPTH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._env_id_supplier = env_id_supplier
        self._max_depth = max_depth
        self._clock = clock

    def evaluate_config(
        self,
        config: Config,
        context: ContextValueGetter,
        depth: int = 0,
    ) -> ConditionMatch:
        """環境行、フォールバック行の順に評価し、最初に成立した値を返す。"""
        env_id = self._env_id_supplier()
        env_row: ConfigRow | None = None
        default_row: ConfigRow | None = None
        for row in config.rows:
            if row.project_env_id is None:
                if default_row is None:
                    default_row = row
            elif row.project_env_id == env_id and env_row is None:
                env_row = row

        rows: list[tuple[int, ConfigRow]] = []
        if env_row is not None:
            rows.append((0, env_row))
        if default_row is not None:
            rows.append((len(rows), default_row))

        for row_index, row in rows:
            for cv_index, conditional_value in enumerate(row.values):
                if all(
                    self.evaluate_criterion(criterion, context, depth)
                    for criterion in conditional_value.criteria
                ):
                    return ConditionMatch(
                        is_match=True,
                        match=conditional_value.value,
                        row_index=row_index,
                        conditional_value_index=cv_index,
                        selected_conditional_value=conditional_value,
                    )
        return ConditionMatch(is_match=False)

    def _context_value(self, context: ContextValueGetter, property_name: str) -> tuple[Any, bool]:
        if property_name == CURRENT_TIME_PROPERTY:
            return int(self._clock() * 1000), True
        return context.get_context_value(property_name)

    def evaluate_criterion(
        self,
        criterion: Criterion,
        context: ContextValueGetter,
        depth: int = 0,
    ) -> bool:
        """条件を 1 つ評価する。"""
        op = criterion.operator
        if op == CriterionOperator.ALWAYS_TRUE:
            return True
        if op in (CriterionOperator.IN_SEG, CriterionOperator.NOT_IN_SEG):
            return self._evaluate_segment(criterion, context, depth)

        value, present = self._context_value(context, criterion.property_name)
        match_value = criterion.value_to_match

        if op in _NEGATED:
            if not present:
                return True
            return not self._string_match(_NEGATED[op], value, match_value)
        if op in _STRING_MATCHERS:
            if not present:
                return False
            return self._string_match(op, value, match_value)
        if op == CriterionOperator.HIERARCHICAL_MATCH:
            return (
                present
                and match_value is not None
                and match_value.kind == ValueKind.STRING
                and stringify(value).startswith(match_value.value)
            )
        if op == CriterionOperator.IN_INT_RANGE:
            return present and self._in_int_range(value, match_value)
        if op in (
            CriterionOperator.PROP_LESS_THAN,
            CriterionOperator.PROP_LESS_THAN_OR_EQUAL,
            CriterionOperator.PROP_GREATER_THAN,
            CriterionOperator.PROP_GREATER_THAN_OR_EQUAL,
        ):
            return present and self._compare_numbers(op, value, match_value)
        if op in (CriterionOperator.PROP_BEFORE, CriterionOperator.PROP_AFTER):
            return present and self._compare_dates(op, value, match_value)
        if op in (CriterionOperator.PROP_MATCHES, CriterionOperator.PROP_DOES_NOT_MATCH):
            return present and self._regex_match(op, value, match_value)
        if op in (
            CriterionOperator.PROP_SEMVER_LESS_THAN,
            CriterionOperator.PROP_SEMVER_EQUAL,
            CriterionOperator.PROP_SEMVER_GREATER_THAN,
        ):
            return present and self._compare_semver(op, value, match_value)
        return False

    def _string_match(
        self,
        op: CriterionOperator,
        value: Any,
        match_value: ConfigValue | None,
    ) -> bool:
        if match_value is None or match_value.kind != ValueKind.STRING_LIST:
            return False
        matcher = _STRING_MATCHERS[op]
        candidates = match_value.value
        # IS_ONE_OF はリストのコンテキスト値のいずれかが一致すれば成立
        if op == CriterionOperator.PROP_IS_ONE_OF and isinstance(value, (list, tuple)):
            return any(stringify(v) in candidates for v in value)
        text = stringify(value)
        return any(matcher(text, candidate) for candidate in candidates)

    def _in_int_range(self, value: Any, match_value: ConfigValue | None) -> bool:
        if match_value is None or match_value.kind != ValueKind.INT_RANGE:
            return False
        if not _is_number(value):
            return False
        start = match_value.value.start if match_value.value.start is not None else _INT64_MIN
        end = match_value.value.end if match_value.value.end is not None else _INT64_MAX
        if isinstance(value, float):
            return float(start) <= value < float(end)
        return start <= value < end

    def _compare_numbers(
        self,
        op: CriterionOperator,
        value: Any,
        match_value: ConfigValue | None,
    ) -> bool:
        if match_value is None or match_value.kind not in (ValueKind.INT, ValueKind.DOUBLE):
            return False
        if not _is_number(value):
            return False
        target = match_value.value
        if op == CriterionOperator.PROP_LESS_THAN:
            return value < target
        if op == CriterionOperator.PROP_LESS_THAN_OR_EQUAL:
            return value <= target
        if op == CriterionOperator.PROP_GREATER_THAN:
            return value > target
        return value >= target

    def _compare_dates(
        self,
        op: CriterionOperator,
        value: Any,
        match_value: ConfigValue | None,
    ) -> bool:
        if match_value is None:
            return False
        left = _epoch_millis(value)
        right = _epoch_millis(match_value.value)
        if left is None or right is None:
            return False
        if op == CriterionOperator.PROP_BEFORE:
            return left < right
        return left > right

    def _regex_match(
        self,
        op: CriterionOperator,
        value: Any,
        match_value: ConfigValue | None,
    ) -> bool:
        if match_value is None or match_value.kind != ValueKind.STRING or not isinstance(value, str):
            return False
        try:
            pattern = re.compile(match_value.value)
        except re.error:
            logger.warning("invalid regex in criterion", pattern=match_value.value)
            return False
        matched = pattern.search(value) is not None
        return matched if op == CriterionOperator.PROP_MATCHES else not matched

    def _compare_semver(
        self,
        op: CriterionOperator,
        value: Any,
        match_value: ConfigValue | None,
    ) -> bool:
        if match_value is None:
            return False
        left = _parse_semver(value)
        right = _parse_semver(match_value.value)
        if left is None or right is None:
            return False
        result = left.compare(right)
        if op == CriterionOperator.PROP_SEMVER_LESS_THAN:
            return result < 0
        if op == CriterionOperator.PROP_SEMVER_EQUAL:
            return result == 0
        return result > 0

    def _evaluate_segment(
        self,
        criterion: Criterion,
        context: ContextValueGetter,
        depth: int,
    ) -> bool:
        in_segment = criterion.operator == CriterionOperator.IN_SEG
        match_value = criterion.value_to_match
        if match_value is None or match_value.kind != ValueKind.STRING:
            return not in_segment
        segment = self._store.get_config(match_value.value)
        if segment is None:
            return not in_segment
        if depth >= self._max_depth:
            logger.warning("segment nesting too deep", segment=match_value.value, depth=depth)
            return not in_segment
        result = self.evaluate_config(segment, context, depth + 1)
        if result.match is not None and result.match.kind == ValueKind.BOOL:
            return result.match.value == in_segment
        return not in_segment
