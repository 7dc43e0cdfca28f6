"""k1s0 prefab library."""

from .api_store import ApiConfigStore
from .client import ContextBoundClient, PrefabClient, new_client
from .context import ContextSet, NamedContext, merge
from .encryption import AesGcmDecrypter, decrypt_value, encrypt_value
from .evaluator import ConditionMatch, ConfigRuleEvaluator
from .exceptions import PrefabError, PrefabErrorCodes, RetryError
from .models import (
    ConditionalValue,
    Config,
    ConfigRow,
    ConfigsSnapshot,
    ConfigType,
    ConfigValue,
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
from .options import (
    ConfigSource,
    ContextTelemetryMode,
    OnInitializationFailure,
    Options,
    load_options,
    parse_config_source,
)
from .resolver import ConfigMatch, ConfigResolver
from .retry import RetryConfig
from .stores import (
    CompositeConfigStore,
    ConfigDumpConfigStore,
    ConfigStore,
    LocalConfigStore,
    MemoryConfigStore,
)
from .version import __version__
from .weighted import WeightedValueResolver

__all__ = [
    "AesGcmDecrypter",
    "ApiConfigStore",
    "CompositeConfigStore",
    "ConditionMatch",
    "ConditionalValue",
    "Config",
    "ConfigDumpConfigStore",
    "ConfigMatch",
    "ConfigResolver",
    "ConfigRow",
    "ConfigRuleEvaluator",
    "ConfigSource",
    "ConfigStore",
    "ConfigType",
    "ConfigValue",
    "ConfigsSnapshot",
    "ContextBoundClient",
    "ContextSet",
    "ContextTelemetryMode",
    "Criterion",
    "CriterionOperator",
    "IntRange",
    "LocalConfigStore",
    "LogLevel",
    "MemoryConfigStore",
    "NamedContext",
    "OnInitializationFailure",
    "Options",
    "PrefabClient",
    "PrefabError",
    "PrefabErrorCodes",
    "Provided",
    "ProvidedSource",
    "RetryConfig",
    "RetryError",
    "ValueKind",
    "ValueType",
    "WeightedValue",
    "WeightedValueResolver",
    "WeightedValues",
    "__version__",
    "decrypt_value",
    "encrypt_value",
    "load_options",
    "merge",
    "new_client",
    "parse_config_source",
]
