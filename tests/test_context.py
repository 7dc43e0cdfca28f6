"""評価コンテキストのユニットテスト"""

from k1s0_prefab.context import ContextSet, NamedContext, merge, split_property_name


def make_context() -> ContextSet:
    return (
        ContextSet()
        .with_named_context_values("user", {"key": "u1", "email": "a@example.com"})
        .with_named_context_values("", {"region": "jp"})
    )


def test_split_property_name_at_first_dot() -> None:
    """最初のドットで分割される。"""
    assert split_property_name("user.email") == ("user", "email")
    assert split_property_name("user.address.city") == ("user", "address.city")
    assert split_property_name(".region") == ("", "region")
    assert split_property_name("region") == ("", "region")


def test_get_context_value_from_named_context() -> None:
    """名前付きコンテキストのプロパティを取得できる。"""
    ctx = make_context()
    assert ctx.get_context_value("user.email") == ("a@example.com", True)


def test_get_context_value_from_unnamed_context() -> None:
    """ドットなし・先頭ドットは無名コンテキストを参照する。"""
    ctx = make_context()
    assert ctx.get_context_value("region") == ("jp", True)
    assert ctx.get_context_value(".region") == ("jp", True)


def test_get_context_value_missing() -> None:
    """存在しないコンテキストやプロパティは (None, False)。"""
    ctx = make_context()
    assert ctx.get_context_value("device.os") == (None, False)
    assert ctx.get_context_value("user.phone") == (None, False)


def test_merge_last_writer_wins() -> None:
    """同名コンテキストは後勝ちで丸ごと置き換わる。"""
    first = ContextSet().with_named_context_values("user", {"key": "u1", "plan": "free"})
    second = ContextSet().with_named_context_values("user", {"key": "u2"})
    merged = merge(first, second)
    assert merged.get_context_value("user.key") == ("u2", True)
    assert merged.get_context_value("user.plan") == (None, False)


def test_merge_keeps_distinct_contexts() -> None:
    """異なる名前のコンテキストは両方残る。"""
    merged = merge(
        ContextSet().with_named_context_values("user", {"key": "u1"}),
        ContextSet().with_named_context_values("team", {"key": "t1"}),
        None,
    )
    assert merged.get_context_value("user.key") == ("u1", True)
    assert merged.get_context_value("team.key") == ("t1", True)


def test_merge_does_not_mutate_inputs() -> None:
    """マージは入力を変更しない。"""
    first = ContextSet().with_named_context_values("user", {"key": "u1"})
    second = ContextSet().with_named_context_values("user", {"key": "u2"})
    merged = merge(first, second)
    merged.get_named_context("user").data["key"] = "changed"
    assert first.get_context_value("user.key") == ("u1", True)
    assert second.get_context_value("user.key") == ("u2", True)


def test_grouped_key_sorted() -> None:
    """グループキーは名前:キーをソートして連結する。"""
    ctx = ContextSet(
        [
            NamedContext("user", {"key": "u1"}),
            NamedContext("team", {"key": "t1"}),
            NamedContext("device", {"os": "ios"}),
        ]
    )
    assert ctx.grouped_key() == "device:|team:t1|user:u1"


def test_grouped_key_empty_without_keys() -> None:
    """key を持つコンテキストがなければ空文字列。"""
    ctx = ContextSet().with_named_context_values("device", {"os": "ios"})
    assert ctx.grouped_key() == ""
    assert ContextSet().grouped_key() == ""


def test_from_dict_and_to_dict() -> None:
    """辞書との相互変換。"""
    ctx = ContextSet.from_dict({"user": {"key": "u1"}})
    assert ctx.to_dict() == {"user": {"key": "u1"}}
    assert len(ctx) == 1
