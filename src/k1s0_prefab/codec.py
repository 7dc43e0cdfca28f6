"""Conversion between protobuf wire messages and the in-memory model.

Decoding failures of any kind surface as ``PrefabError(PARSE_ERROR)``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import timezone
from typing import Any

from google.protobuf import json_format
from google.protobuf.message import DecodeError

from . import proto
from .context import ContextSet, NamedContext
from .exceptions import PrefabError, PrefabErrorCodes
from .models import (
    ConditionalValue,
    Config,
    ConfigRow,
    ConfigsSnapshot,
    ConfigType,
    ConfigValue,
    ConfigWrapper,
    Criterion,
    CriterionOperator,
    IntRange,
    LogLevel,
    Provided,
    ProvidedSource,
    ValueKind,
    ValueType,
    WeightedValue,
    WeightedValues,
)
from .telemetry import (
    ContextShapesEvent,
    EvaluationSummariesEvent,
    ExampleContextsEvent,
    TelemetryEvent,
)
from .values import create, extract_value


def value_from_proto(msg: Any) -> ConfigValue | None:
    """Convert a ``ConfigValue`` message; ``None`` when no variant is set."""
    which = msg.WhichOneof("type")
    if which is None:
        return None
    kind = ValueKind(which)
    raw = getattr(msg, which)
    value: Any
    if kind == ValueKind.STRING_LIST:
        value = tuple(raw.values)
    elif kind == ValueKind.LOG_LEVEL:
        value = LogLevel(raw)
    elif kind == ValueKind.INT_RANGE:
        value = IntRange(
            start=raw.start if raw.HasField("start") else None,
            end=raw.end if raw.HasField("end") else None,
        )
    elif kind == ValueKind.PROVIDED:
        value = Provided(
            source=ProvidedSource(raw.source),
            lookup=raw.lookup if raw.HasField("lookup") else None,
        )
    elif kind == ValueKind.DURATION:
        value = raw.definition
    elif kind == ValueKind.JSON:
        value = raw.json
    elif kind == ValueKind.WEIGHTED_VALUES:
        entries = []
        for wv in raw.weighted_values:
            inner = value_from_proto(wv.value)
            if inner is None:
                raise ValueError("weighted value entry has no value")
            entries.append(WeightedValue(weight=wv.weight, value=inner))
        value = WeightedValues(
            weighted_values=tuple(entries),
            hash_by_property_name=(
                raw.hash_by_property_name if raw.HasField("hash_by_property_name") else None
            ),
        )
    else:
        value = raw
    return ConfigValue(
        kind=kind,
        value=value,
        confidential=msg.confidential,
        decrypt_with=msg.decrypt_with if msg.HasField("decrypt_with") else None,
    )


def value_to_proto(cv: ConfigValue) -> Any:
    """Convert a ``ConfigValue`` into its wire message."""
    msg = proto.ConfigValue()
    kind = cv.kind
    if kind == ValueKind.STRING_LIST:
        msg.string_list.values.extend(cv.value)
    elif kind == ValueKind.INT_RANGE:
        msg.int_range.SetInParent()
        if cv.value.start is not None:
            msg.int_range.start = cv.value.start
        if cv.value.end is not None:
            msg.int_range.end = cv.value.end
    elif kind == ValueKind.PROVIDED:
        msg.provided.source = int(cv.value.source)
        if cv.value.lookup is not None:
            msg.provided.lookup = cv.value.lookup
    elif kind == ValueKind.DURATION:
        msg.duration.definition = cv.value
    elif kind == ValueKind.JSON:
        msg.json.json = cv.value
    elif kind == ValueKind.WEIGHTED_VALUES:
        for wv in cv.value.weighted_values:
            entry = msg.weighted_values.weighted_values.add(weight=wv.weight)
            entry.value.CopyFrom(value_to_proto(wv.value))
        if cv.value.hash_by_property_name is not None:
            msg.weighted_values.hash_by_property_name = cv.value.hash_by_property_name
    elif kind == ValueKind.LOG_LEVEL:
        msg.log_level = int(cv.value)
    else:
        setattr(msg, kind.value, cv.value)
    if cv.confidential:
        msg.confidential = True
    if cv.decrypt_with is not None:
        msg.decrypt_with = cv.decrypt_with
    return msg


def config_from_proto(msg: Any) -> Config:
    rows = []
    for row in msg.rows:
        values = []
        for cond in row.values:
            criteria = [
                Criterion(
                    operator=CriterionOperator(c.operator),
                    property_name=c.property_name,
                    value_to_match=(
                        value_from_proto(c.value_to_match) if c.HasField("value_to_match") else None
                    ),
                )
                for c in cond.criteria
            ]
            value = value_from_proto(cond.value) if cond.HasField("value") else None
            values.append(ConditionalValue(criteria=criteria, value=value))
        rows.append(
            ConfigRow(
                values=values,
                project_env_id=row.project_env_id if row.HasField("project_env_id") else None,
            )
        )
    return Config(
        key=msg.key,
        id=msg.id,
        project_id=msg.project_id,
        config_type=ConfigType(msg.config_type),
        value_type=ValueType(msg.value_type),
        rows=rows,
        send_to_client_sdk=msg.send_to_client_sdk,
    )


def config_to_proto(config: Config) -> Any:
    msg = proto.Config(
        id=config.id,
        project_id=config.project_id,
        key=config.key,
        config_type=int(config.config_type),
        value_type=int(config.value_type),
    )
    if config.send_to_client_sdk:
        msg.send_to_client_sdk = True
    for row in config.rows:
        row_msg = msg.rows.add()
        if row.project_env_id is not None:
            row_msg.project_env_id = row.project_env_id
        for cond in row.values:
            cond_msg = row_msg.values.add()
            for criterion in cond.criteria:
                c = cond_msg.criteria.add(
                    property_name=criterion.property_name,
                    operator=int(criterion.operator),
                )
                if criterion.value_to_match is not None:
                    c.value_to_match.CopyFrom(value_to_proto(criterion.value_to_match))
            if cond.value is not None:
                cond_msg.value.CopyFrom(value_to_proto(cond.value))
    return msg


def context_set_from_proto(msg: Any) -> ContextSet:
    result = ContextSet()
    for ctx in msg.contexts:
        data: dict[str, Any] = {}
        for name, cv_msg in ctx.values.items():
            cv = value_from_proto(cv_msg)
            if cv is not None:
                data[name] = extract_value(cv)[0]
        result.set_named_context(NamedContext(ctx.type, data))
    return result


def _context_value(value: Any) -> ConfigValue:
    try:
        return create(value)
    except PrefabError:
        return create(str(value))


def context_set_to_proto(context_set: ContextSet) -> Any:
    msg = proto.ContextSet()
    for ctx in context_set:
        ctx_msg = msg.contexts.add(type=ctx.name)
        for name, value in ctx.data.items():
            ctx_msg.values[name].CopyFrom(value_to_proto(_context_value(value)))
    return msg


def _snapshot_from_proto(msg: Any) -> ConfigsSnapshot:
    return ConfigsSnapshot(
        configs=[config_from_proto(c) for c in msg.configs],
        project_env_id=msg.config_service_pointer.project_env_id,
        default_context=(
            context_set_from_proto(msg.default_context) if msg.HasField("default_context") else None
        ),
    )


def decode_configs(data: bytes) -> ConfigsSnapshot:
    """Decode a serialized ``Configs`` message."""
    try:
        msg = proto.Configs()
        msg.ParseFromString(data)
        return _snapshot_from_proto(msg)
    except (DecodeError, ValueError) as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Failed to decode configs: {e}",
            cause=e,
        ) from e


def decode_configs_json(text: str) -> ConfigsSnapshot:
    """Decode the protobuf JSON representation of ``Configs``."""
    try:
        msg = json_format.Parse(text, proto.Configs())
        return _snapshot_from_proto(msg)
    except (json_format.ParseError, ValueError) as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Failed to decode configs json: {e}",
            cause=e,
        ) from e


def encode_configs(snapshot: ConfigsSnapshot) -> bytes:
    msg = proto.Configs()
    for config in snapshot.configs:
        msg.configs.append(config_to_proto(config))
    msg.config_service_pointer.project_env_id = snapshot.project_env_id
    if snapshot.default_context is not None:
        msg.default_context.CopyFrom(context_set_to_proto(snapshot.default_context))
    return msg.SerializeToString()


def decode_config_dump(data: bytes) -> list[ConfigWrapper]:
    """Decode a serialized ``ConfigDump`` into its wrappers."""
    try:
        msg = proto.ConfigDump()
        msg.ParseFromString(data)
        return [
            ConfigWrapper(
                config=config_from_proto(w.config),
                deleted=w.deleted,
                created_at=(
                    w.created_at.ToDatetime(tzinfo=timezone.utc) if w.HasField("created_at") else None
                ),
            )
            for w in msg.wrappers
        ]
    except (DecodeError, ValueError) as e:
        raise PrefabError(
            code=PrefabErrorCodes.PARSE_ERROR,
            message=f"Failed to decode config dump: {e}",
            cause=e,
        ) from e


def encode_config_dump(wrappers: Iterable[ConfigWrapper], project_id: int = 0) -> bytes:
    msg = proto.ConfigDump(project_id=project_id)
    max_id = 0
    for wrapper in wrappers:
        w = msg.wrappers.add(deleted=wrapper.deleted)
        w.config.CopyFrom(config_to_proto(wrapper.config))
        if wrapper.created_at is not None:
            w.created_at.FromDatetime(wrapper.created_at)
        max_id = max(max_id, wrapper.config.id)
    msg.max_config_id = max_id
    return msg.SerializeToString()


def _event_to_proto(event: TelemetryEvent) -> Any:
    msg = proto.TelemetryEvent()
    if isinstance(event, EvaluationSummariesEvent):
        msg.summaries.start = event.start
        msg.summaries.end = event.end
        for summary in event.summaries:
            s = msg.summaries.summaries.add(key=summary.key, type=int(summary.config_type))
            for counter in summary.counters:
                c = s.counters.add(
                    count=counter.count,
                    config_id=counter.config_id,
                    config_row_index=counter.config_row_index,
                    conditional_value_index=counter.conditional_value_index,
                )
                if counter.weighted_value_index is not None:
                    c.weighted_value_index = counter.weighted_value_index
                if counter.selected_value is not None:
                    c.selected_value.CopyFrom(value_to_proto(counter.selected_value))
    elif isinstance(event, ExampleContextsEvent):
        msg.example_contexts.SetInParent()
        for example in event.examples:
            e = msg.example_contexts.examples.add(timestamp=example.timestamp)
            e.contextSet.CopyFrom(context_set_to_proto(example.context_set))
    elif isinstance(event, ContextShapesEvent):
        msg.context_shapes.SetInParent()
        for shape in event.shapes:
            s = msg.context_shapes.shapes.add(name=shape.name)
            for field_name, field_type in shape.field_types.items():
                s.field_types[field_name] = field_type
    else:
        raise TypeError(f"unknown telemetry event: {type(event).__name__}")
    return msg


def encode_telemetry_events(instance_hash: str, events: Iterable[TelemetryEvent]) -> bytes:
    """Serialize a ``TelemetryEvents`` upload payload."""
    msg = proto.TelemetryEvents(instance_hash=instance_hash)
    for event in events:
        msg.events.append(_event_to_proto(event))
    return msg.SerializeToString()


def decode_telemetry_events(data: bytes) -> Any:
    """Parse a ``TelemetryEvents`` payload back into its wire message."""
    msg = proto.TelemetryEvents()
    msg.ParseFromString(data)
    return msg
