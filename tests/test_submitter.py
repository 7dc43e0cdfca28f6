"""TelemetrySubmitter のユニットテスト（respx モック）"""

import base64
import time

import httpx
import pytest
import respx
from k1s0_prefab.codec import decode_telemetry_events
from k1s0_prefab.context import ContextSet
from k1s0_prefab.exceptions import PrefabError, PrefabErrorCodes
from k1s0_prefab.models import ConfigType, ConfigValue, LogLevel, ValueKind
from k1s0_prefab.options import ContextTelemetryMode, Options
from k1s0_prefab.resolver import ConfigMatch
from k1s0_prefab.retry import RetryConfig
from k1s0_prefab.submitter import TelemetrySubmitter
from k1s0_prefab.telemetry import ContextShapesEvent, EvaluationSummariesEvent, ExampleContextsEvent
from k1s0_prefab.values import create
from k1s0_prefab.version import CLIENT_VERSION, CLIENT_VERSION_HEADER

TELEMETRY_URL = "https://telemetry.prefab.cloud/api/v1/telemetry"
NO_WAIT_RETRY = RetryConfig(max_attempts=2, initial_delay=0, jitter=False)


def make_submitter(**overrides: object) -> TelemetrySubmitter:
    options = Options(api_key="secret-key", sources=["memory://"], instance_hash="instance-1", **overrides)
    return TelemetrySubmitter(options, retry=NO_WAIT_RETRY)


def make_match(value: object = True, is_match: bool = True, config_type: ConfigType = ConfigType.FEATURE_FLAG) -> ConfigMatch:
    return ConfigMatch(
        config_key="beta",
        config_id=7,
        config_type=config_type,
        original_match=create(value),
        match=create(value),
        is_match=is_match,
    )


def test_record_evaluation_filters() -> None:
    """不一致・値なし・ログレベルは記録しない。"""
    submitter = make_submitter()
    submitter.record_evaluation(make_match(is_match=False))
    submitter.record_evaluation(ConfigMatch(config_key="beta", is_match=True))
    submitter.record_evaluation(make_match(config_type=ConfigType.LOG_LEVEL))
    submitter.record_evaluation(make_match(value=LogLevel.INFO, config_type=ConfigType.CONFIG))
    submitter.drain_queue()
    assert submitter.collect_events() == []

    submitter.record_evaluation(make_match())
    submitter.drain_queue()
    events = submitter.collect_events()
    assert len(events) == 1
    assert isinstance(events[0], EvaluationSummariesEvent)


def test_summaries_disabled() -> None:
    """サマリ収集が無効なら評価結果を記録しない。"""
    submitter = make_submitter(collect_evaluation_summaries=False)
    submitter.record_evaluation(make_match())
    submitter.drain_queue()
    assert submitter.collect_events() == []


def test_context_modes() -> None:
    """コンテキストテレメトリの方式ごとに集計器が切り替わる。"""
    ctx = ContextSet().with_named_context_values("user", {"key": "u1"})

    examples = make_submitter()
    examples.record_context(ctx)
    examples.drain_queue()
    assert [type(e) for e in examples.collect_events()] == [ExampleContextsEvent]

    shapes = make_submitter(context_telemetry_mode=ContextTelemetryMode.SHAPES)
    shapes.record_context(ctx)
    shapes.drain_queue()
    assert [type(e) for e in shapes.collect_events()] == [ContextShapesEvent]

    disabled = make_submitter(context_telemetry_mode=ContextTelemetryMode.NONE)
    disabled.record_context(ctx)
    disabled.drain_queue()
    assert disabled.collect_events() == []


def test_queue_full_drops_items() -> None:
    """キューが満杯の場合は項目を破棄する。"""
    options = Options(api_key="k", sources=["memory://"])
    submitter = TelemetrySubmitter(options, retry=NO_WAIT_RETRY, queue_size=1)
    submitter.record_evaluation(make_match(True))
    submitter.record_evaluation(make_match(False))
    submitter.drain_queue()
    event = submitter.collect_events()[0]
    assert sum(c.count for s in event.summaries for c in s.counters) == 1


def test_submit_without_events() -> None:
    """送信するイベントがなければ False。"""
    assert make_submitter().submit(wait_for_queue_drain=True) is False


@respx.mock
def test_submit_posts_protobuf() -> None:
    """集計結果を protobuf で送信する。"""
    route = respx.post(TELEMETRY_URL).mock(return_value=httpx.Response(200))
    submitter = make_submitter()
    submitter.record_evaluation(make_match())
    submitter.record_context(ContextSet().with_named_context_values("user", {"key": "u1"}))

    assert submitter.submit(wait_for_queue_drain=True) is True
    assert route.call_count == 1
    request = route.calls.last.request
    assert request.headers["Content-Type"] == "application/x-protobuf"
    assert request.headers[CLIENT_VERSION_HEADER] == CLIENT_VERSION
    expected_auth = base64.b64encode(b"1:secret-key").decode()
    assert request.headers["Authorization"] == f"Basic {expected_auth}"

    msg = decode_telemetry_events(request.content)
    assert msg.instance_hash == "instance-1"
    assert [e.WhichOneof("payload") for e in msg.events] == ["summaries", "example_contexts"]
    assert submitter.submit() is False


@respx.mock
def test_submit_custom_host() -> None:
    """送信先ホストを変更できる。"""
    route = respx.post("http://localhost:9000/api/v1/telemetry").mock(return_value=httpx.Response(204))
    submitter = make_submitter(telemetry_host="http://localhost:9000/")
    submitter.record_evaluation(make_match())
    assert submitter.submit(wait_for_queue_drain=True) is True
    assert route.called


@respx.mock
def test_submit_retries_then_fails() -> None:
    """リトライ上限まで失敗すると TELEMETRY_ERROR。"""
    route = respx.post(TELEMETRY_URL).mock(return_value=httpx.Response(500, text="boom"))
    submitter = make_submitter()
    submitter.record_evaluation(make_match())
    with pytest.raises(PrefabError) as exc_info:
        submitter.submit(wait_for_queue_drain=True)
    assert exc_info.value.code == PrefabErrorCodes.TELEMETRY_ERROR
    assert route.call_count == 2


@respx.mock
def test_submit_recovers_after_retry() -> None:
    """一時的な失敗の後に成功すれば True。"""
    route = respx.post(TELEMETRY_URL).mock(
        side_effect=[httpx.Response(503), httpx.Response(200)]
    )
    submitter = make_submitter()
    submitter.record_evaluation(make_match())
    assert submitter.submit(wait_for_queue_drain=True) is True
    assert route.call_count == 2


def test_start_and_stop() -> None:
    """スレッドを起動・停止できる。"""
    submitter = make_submitter(telemetry_sync_interval_seconds=60)
    submitter.start()
    submitter.start()
    submitter.stop(timeout=2.0)


def test_aggregation_error_does_not_stop_processing() -> None:
    """集計に失敗した項目は捨て、後続の項目は集計を続ける。"""
    submitter = make_submitter()
    unhashable = ConfigValue(ValueKind.STRING_LIST, ["a"])
    submitter.record_evaluation(
        ConfigMatch(
            config_key="beta",
            config_id=7,
            config_type=ConfigType.FEATURE_FLAG,
            original_match=unhashable,
            match=unhashable,
            is_match=True,
        )
    )
    submitter.record_evaluation(make_match())
    submitter.drain_queue()
    events = submitter.collect_events()
    assert len(events) == 1
    counters = events[0].summaries[0].counters
    assert sum(c.count for c in counters) == 1


def test_consumer_thread_survives_aggregation_error() -> None:
    """集計中の例外で消費スレッドが止まらない。"""
    submitter = make_submitter(telemetry_sync_interval_seconds=3600)
    submitter.start()
    try:
        unhashable = ConfigValue(ValueKind.STRING_LIST, ["a"])
        submitter.record_evaluation(
            ConfigMatch(config_key="beta", config_id=7, config_type=ConfigType.FEATURE_FLAG, match=unhashable, is_match=True)
        )
        submitter.record_evaluation(make_match())
        events: list[object] = []
        deadline = time.monotonic() + 5
        while not events and time.monotonic() < deadline:
            time.sleep(0.01)
            events = submitter.collect_events()
        assert len(events) == 1
        assert all(thread.is_alive() for thread in submitter._threads)
    finally:
        submitter.stop()
