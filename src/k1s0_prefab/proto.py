"""prefab ワイヤーメッセージの protobuf 定義

サーバーと交換するメッセージのうち、クライアントが利用するフィールドだけを
FileDescriptorProto として宣言し、専用の DescriptorPool からメッセージクラスを生成する。
未宣言のフィールドはデコード時に無視される。
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, timestamp_pb2

_F = descriptor_pb2.FieldDescriptorProto

_OPTIONAL = _F.LABEL_OPTIONAL
_REPEATED = _F.LABEL_REPEATED

_SCALARS = {
    "int64": _F.TYPE_INT64,
    "int32": _F.TYPE_INT32,
    "uint32": _F.TYPE_UINT32,
    "string": _F.TYPE_STRING,
    "bytes": _F.TYPE_BYTES,
    "double": _F.TYPE_DOUBLE,
    "bool": _F.TYPE_BOOL,
}

_PACKAGE = "prefab"


def _add_field(
    msg: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    type_name: str,
    repeated: bool = False,
    oneof_index: int | None = None,
) -> None:
    field = msg.field.add(name=name, number=number, label=_REPEATED if repeated else _OPTIONAL)
    if type_name in _SCALARS:
        field.type = _SCALARS[type_name]
    elif type_name.startswith("enum:"):
        field.type = _F.TYPE_ENUM
        field.type_name = type_name.removeprefix("enum:")
    else:
        field.type = _F.TYPE_MESSAGE
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index


def _add_map_field(
    msg: descriptor_pb2.DescriptorProto,
    name: str,
    number: int,
    entry_name: str,
    value_type: str,
) -> None:
    entry = msg.nested_type.add(name=entry_name)
    entry.options.map_entry = True
    _add_field(entry, "key", 1, "string")
    _add_field(entry, "value", 2, value_type)
    _add_field(msg, name, number, f".{_PACKAGE}.{msg.name}.{entry_name}", repeated=True)


def _add_enum(
    file_proto: descriptor_pb2.FileDescriptorProto | descriptor_pb2.DescriptorProto,
    name: str,
    values: list[tuple[str, int]],
) -> None:
    enum = file_proto.enum_type.add(name=name)
    for value_name, number in values:
        enum.value.add(name=value_name, number=number)


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    f = descriptor_pb2.FileDescriptorProto(
        name="k1s0_prefab/prefab.proto",
        package=_PACKAGE,
        syntax="proto2",
    )
    f.dependency.append("google/protobuf/timestamp.proto")

    _add_enum(
        f,
        "LogLevel",
        [
            ("NOT_SET_LOG_LEVEL", 0),
            ("TRACE", 1),
            ("DEBUG", 2),
            ("INFO", 3),
            ("WARN", 5),
            ("ERROR", 6),
            ("FATAL", 9),
        ],
    )
    _add_enum(f, "ProvidedSource", [("PROVIDED_SOURCE_NOT_SET", 0), ("ENV_VAR", 1)])
    _add_enum(
        f,
        "ConfigType",
        [
            ("NOT_SET_CONFIG_TYPE", 0),
            ("CONFIG", 1),
            ("FEATURE_FLAG", 2),
            ("LOG_LEVEL", 3),
            ("SEGMENT", 4),
            ("LIMIT_DEFINITION", 5),
            ("DELETED", 6),
        ],
    )
    _add_enum(
        f,
        "CriterionOperator",
        [
            ("NOT_SET", 0),
            ("LOOKUP_KEY_IN", 1),
            ("LOOKUP_KEY_NOT_IN", 2),
            ("IN_SEG", 3),
            ("NOT_IN_SEG", 4),
            ("ALWAYS_TRUE", 5),
            ("PROP_IS_ONE_OF", 6),
            ("PROP_IS_NOT_ONE_OF", 7),
            ("PROP_ENDS_WITH_ONE_OF", 8),
            ("PROP_DOES_NOT_END_WITH_ONE_OF", 9),
            ("HIERARCHICAL_MATCH", 10),
            ("IN_INT_RANGE", 11),
            ("PROP_STARTS_WITH_ONE_OF", 12),
            ("PROP_DOES_NOT_START_WITH_ONE_OF", 13),
            ("PROP_CONTAINS_ONE_OF", 14),
            ("PROP_DOES_NOT_CONTAIN_ONE_OF", 15),
            ("PROP_LESS_THAN", 16),
            ("PROP_LESS_THAN_OR_EQUAL", 17),
            ("PROP_GREATER_THAN", 18),
            ("PROP_GREATER_THAN_OR_EQUAL", 19),
            ("PROP_BEFORE", 20),
            ("PROP_AFTER", 21),
            ("PROP_MATCHES", 22),
            ("PROP_DOES_NOT_MATCH", 23),
            ("PROP_SEMVER_LESS_THAN", 24),
            ("PROP_SEMVER_EQUAL", 25),
            ("PROP_SEMVER_GREATER_THAN", 26),
        ],
    )

    p = f".{_PACKAGE}."

    m = f.message_type.add(name="StringList")
    _add_field(m, "values", 1, "string", repeated=True)

    m = f.message_type.add(name="IntRange")
    _add_field(m, "start", 1, "int64")
    _add_field(m, "end", 2, "int64")

    m = f.message_type.add(name="Provided")
    _add_field(m, "source", 1, f"enum:{p}ProvidedSource")
    _add_field(m, "lookup", 2, "string")

    m = f.message_type.add(name="IsoDuration")
    _add_field(m, "definition", 1, "string")

    m = f.message_type.add(name="Json")
    _add_field(m, "json", 1, "string")

    m = f.message_type.add(name="WeightedValue")
    _add_field(m, "weight", 1, "int32")
    _add_field(m, "value", 2, f"{p}ConfigValue")

    m = f.message_type.add(name="WeightedValues")
    _add_field(m, "weighted_values", 1, f"{p}WeightedValue", repeated=True)
    _add_field(m, "hash_by_property_name", 2, "string")

    m = f.message_type.add(name="ConfigValue")
    m.oneof_decl.add(name="type")
    _add_field(m, "int", 1, "int64", oneof_index=0)
    _add_field(m, "string", 2, "string", oneof_index=0)
    _add_field(m, "bytes", 3, "bytes", oneof_index=0)
    _add_field(m, "double", 4, "double", oneof_index=0)
    _add_field(m, "bool", 5, "bool", oneof_index=0)
    _add_field(m, "weighted_values", 6, f"{p}WeightedValues", oneof_index=0)
    _add_field(m, "log_level", 9, f"enum:{p}LogLevel", oneof_index=0)
    _add_field(m, "string_list", 10, f"{p}StringList", oneof_index=0)
    _add_field(m, "int_range", 11, f"{p}IntRange", oneof_index=0)
    _add_field(m, "provided", 12, f"{p}Provided", oneof_index=0)
    _add_field(m, "duration", 15, f"{p}IsoDuration", oneof_index=0)
    _add_field(m, "json", 16, f"{p}Json", oneof_index=0)
    _add_field(m, "confidential", 14, "bool")
    _add_field(m, "decrypt_with", 18, "string")

    m = f.message_type.add(name="Criterion")
    _add_field(m, "property_name", 1, "string")
    _add_field(m, "operator", 2, f"enum:{p}CriterionOperator")
    _add_field(m, "value_to_match", 3, f"{p}ConfigValue")

    m = f.message_type.add(name="ConditionalValue")
    _add_field(m, "criteria", 1, f"{p}Criterion", repeated=True)
    _add_field(m, "value", 2, f"{p}ConfigValue")

    m = f.message_type.add(name="ConfigRow")
    _add_field(m, "project_env_id", 1, "int64")
    _add_field(m, "values", 2, f"{p}ConditionalValue", repeated=True)
    _add_map_field(m, "properties", 3, "PropertiesEntry", "string")

    m = f.message_type.add(name="Config")
    _add_enum(
        m,
        "ValueType",
        [
            ("NOT_SET_VALUE_TYPE", 0),
            ("INT", 1),
            ("STRING", 2),
            ("BYTES", 3),
            ("DOUBLE", 4),
            ("BOOL", 5),
            ("LIMIT_DEFINITION", 7),
            ("LOG_LEVEL", 9),
            ("STRING_LIST", 10),
            ("INT_RANGE", 11),
            ("DURATION", 12),
            ("JSON", 13),
        ],
    )
    _add_field(m, "id", 1, "int64")
    _add_field(m, "project_id", 2, "int64")
    _add_field(m, "key", 3, "string")
    _add_field(m, "rows", 5, f"{p}ConfigRow", repeated=True)
    _add_field(m, "allowable_values", 6, f"{p}ConfigValue", repeated=True)
    _add_field(m, "config_type", 7, f"enum:{p}ConfigType")
    _add_field(m, "value_type", 9, f"enum:{p}Config.ValueType")
    _add_field(m, "send_to_client_sdk", 10, "bool")

    m = f.message_type.add(name="ConfigServicePointer")
    _add_field(m, "project_id", 1, "int64")
    _add_field(m, "start_at_id", 2, "int64")
    _add_field(m, "project_env_id", 3, "int64")

    m = f.message_type.add(name="Context")
    _add_field(m, "type", 1, "string")
    _add_map_field(m, "values", 2, "ValuesEntry", f"{p}ConfigValue")

    m = f.message_type.add(name="ContextSet")
    _add_field(m, "contexts", 1, f"{p}Context", repeated=True)

    m = f.message_type.add(name="Configs")
    _add_field(m, "configs", 1, f"{p}Config", repeated=True)
    _add_field(m, "config_service_pointer", 2, f"{p}ConfigServicePointer")
    _add_field(m, "default_context", 4, f"{p}ContextSet")

    m = f.message_type.add(name="ConfigWrapper")
    _add_field(m, "config", 1, f"{p}Config")
    _add_field(m, "deleted", 2, "bool")
    _add_field(m, "created_at", 3, ".google.protobuf.Timestamp")

    m = f.message_type.add(name="ConfigDump")
    _add_field(m, "project_id", 1, "int64")
    _add_field(m, "created_at", 2, ".google.protobuf.Timestamp")
    _add_field(m, "max_config_id", 3, "int64")
    _add_field(m, "wrappers", 4, f"{p}ConfigWrapper", repeated=True)

    m = f.message_type.add(name="ConfigEvaluationCounter")
    _add_field(m, "count", 1, "int64")
    _add_field(m, "config_id", 2, "int64")
    _add_field(m, "selected_value", 3, f"{p}ConfigValue")
    _add_field(m, "config_row_index", 4, "uint32")
    _add_field(m, "conditional_value_index", 5, "uint32")
    _add_field(m, "weighted_value_index", 6, "uint32")

    m = f.message_type.add(name="ConfigEvaluationSummary")
    _add_field(m, "key", 1, "string")
    _add_field(m, "type", 2, f"enum:{p}ConfigType")
    _add_field(m, "counters", 3, f"{p}ConfigEvaluationCounter", repeated=True)

    m = f.message_type.add(name="ConfigEvaluationSummaries")
    _add_field(m, "start", 1, "int64")
    _add_field(m, "end", 2, "int64")
    _add_field(m, "summaries", 3, f"{p}ConfigEvaluationSummary", repeated=True)

    m = f.message_type.add(name="ExampleContext")
    _add_field(m, "timestamp", 1, "int64")
    _add_field(m, "contextSet", 2, f"{p}ContextSet")

    m = f.message_type.add(name="ExampleContexts")
    _add_field(m, "examples", 1, f"{p}ExampleContext", repeated=True)

    m = f.message_type.add(name="ContextShape")
    _add_field(m, "name", 1, "string")
    _add_map_field(m, "field_types", 2, "FieldTypesEntry", "int32")

    m = f.message_type.add(name="ContextShapes")
    _add_field(m, "shapes", 1, f"{p}ContextShape", repeated=True)

    m = f.message_type.add(name="TelemetryEvent")
    m.oneof_decl.add(name="payload")
    _add_field(m, "summaries", 2, f"{p}ConfigEvaluationSummaries", oneof_index=0)
    _add_field(m, "example_contexts", 3, f"{p}ExampleContexts", oneof_index=0)
    _add_field(m, "context_shapes", 6, f"{p}ContextShapes", oneof_index=0)

    m = f.message_type.add(name="TelemetryEvents")
    _add_field(m, "instance_hash", 1, "string")
    _add_field(m, "events", 2, f"{p}TelemetryEvent", repeated=True)

    return f


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(timestamp_pb2.DESCRIPTOR.serialized_pb)
_pool.AddSerializedFile(_build_file().SerializeToString())


def _message(name: str) -> type:
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{_PACKAGE}.{name}"))


StringList = _message("StringList")
IntRange = _message("IntRange")
Provided = _message("Provided")
IsoDuration = _message("IsoDuration")
Json = _message("Json")
WeightedValue = _message("WeightedValue")
WeightedValues = _message("WeightedValues")
ConfigValue = _message("ConfigValue")
Criterion = _message("Criterion")
ConditionalValue = _message("ConditionalValue")
ConfigRow = _message("ConfigRow")
Config = _message("Config")
ConfigServicePointer = _message("ConfigServicePointer")
Context = _message("Context")
ContextSet = _message("ContextSet")
Configs = _message("Configs")
ConfigWrapper = _message("ConfigWrapper")
ConfigDump = _message("ConfigDump")
ConfigEvaluationCounter = _message("ConfigEvaluationCounter")
ConfigEvaluationSummary = _message("ConfigEvaluationSummary")
ConfigEvaluationSummaries = _message("ConfigEvaluationSummaries")
ExampleContext = _message("ExampleContext")
ExampleContexts = _message("ExampleContexts")
ContextShape = _message("ContextShape")
ContextShapes = _message("ContextShapes")
TelemetryEvent = _message("TelemetryEvent")
TelemetryEvents = _message("TelemetryEvents")
