"""Tests for the authorization guard chain."""

import pytest

from commandwire.authorization import AuthorizationPipeline, has_permissions, usage_hint
from commandwire.cooldowns import CooldownTracker
from commandwire.models import (
    Authorized,
    ChannelKind,
    CommandDescriptor,
    InboundMessage,
    Rejection,
    RejectionKind,
)
from commandwire.registry import CommandRegistry

NOW = 1000.0


def _noop(message, args):
    return None


def _make_pipeline(*descriptors, owners=(), blocked=None):
    registry = CommandRegistry()
    for d in descriptors:
        registry.register(d)
    tracker = CooldownTracker()
    return AuthorizationPipeline(registry, tracker, owners=owners, blocked_users=blocked)


def _msg(author="u1", channel=ChannelKind.GUILD, perms=frozenset(), bot_perms=frozenset()):
    return InboundMessage(
        content="",
        author_id=author,
        author_name="ann",
        channel_kind=channel,
        user_permissions=perms,
        bot_permissions=bot_perms,
    )


def _kind(result):
    assert isinstance(result, Rejection), result
    return result.kind


def test_unknown_command():
    pipeline = _make_pipeline()
    result = pipeline.authorize("FOO", [], _msg(), "!", now=NOW)
    assert _kind(result) is RejectionKind.UNKNOWN
    assert result.command == "foo"


def test_authorized_records_cooldown():
    pipeline = _make_pipeline(CommandDescriptor(name="ping", handler=_noop, cooldown=3))
    result = pipeline.authorize("ping", ["x"], _msg(), "!", now=NOW)
    assert isinstance(result, Authorized)
    assert result.descriptor.name == "ping"
    assert result.args == ["x"]
    assert pipeline.cooldowns.remaining("ping", "u1", NOW + 1) == pytest.approx(2.0)
    assert pipeline.cooldowns.remaining("ping", "u1", NOW + 3.1) is None


def test_rejection_does_not_record_cooldown():
    pipeline = _make_pipeline(CommandDescriptor(name="ban", handler=_noop, args=2))
    assert _kind(pipeline.authorize("ban", ["a"], _msg(), "!", now=NOW)) is RejectionKind.USAGE_MISMATCH
    assert pipeline.cooldowns.remaining("ban", "u1", NOW) is None


def test_cooldown_blocks_second_invocation():
    pipeline = _make_pipeline(CommandDescriptor(name="ping", handler=_noop))
    assert isinstance(pipeline.authorize("ping", [], _msg(), "!", now=NOW), Authorized)
    result = pipeline.authorize("ping", [], _msg(), "!", now=NOW + 0.7)
    assert _kind(result) is RejectionKind.COOLDOWN
    assert result.remaining == pytest.approx(0.3)
    assert isinstance(pipeline.authorize("ping", [], _msg(), "!", now=NOW + 1.2), Authorized)


def test_global_block_list():
    blocked = {"u1"}
    pipeline = _make_pipeline(CommandDescriptor(name="ping", handler=_noop), blocked=blocked)
    assert _kind(pipeline.authorize("ping", [], _msg(), now=NOW)) is RejectionKind.BLOCKED
    blocked.discard("u1")
    assert isinstance(pipeline.authorize("ping", [], _msg(), now=NOW), Authorized)


def test_per_command_block_list_and_allow_list_override():
    cmd = CommandDescriptor(name="ping", handler=_noop, blocked_users={"u1"})
    pipeline = _make_pipeline(cmd, blocked={"u2"})
    assert _kind(pipeline.authorize("ping", [], _msg("u1"), now=NOW)) is RejectionKind.BLOCKED
    cmd.unblocked_users.update({"u1", "u2"})
    assert isinstance(pipeline.authorize("ping", [], _msg("u1"), now=NOW), Authorized)
    assert isinstance(pipeline.authorize("ping", [], _msg("u2"), now=NOW), Authorized)


def test_blocked_precedes_cooldown():
    blocked = set()
    pipeline = _make_pipeline(CommandDescriptor(name="ping", handler=_noop), blocked=blocked)
    pipeline.authorize("ping", [], _msg(), now=NOW)
    blocked.add("u1")
    assert _kind(pipeline.authorize("ping", [], _msg(), now=NOW)) is RejectionKind.BLOCKED


def test_guild_only_in_direct_message():
    pipeline = _make_pipeline(CommandDescriptor(name="ban", handler=_noop, guild_only=True))
    result = pipeline.authorize("ban", [], _msg(channel=ChannelKind.DIRECT), now=NOW)
    assert _kind(result) is RejectionKind.WRONG_CONTEXT
    assert result.required_context is ChannelKind.GUILD


def test_dms_only_in_guild():
    pipeline = _make_pipeline(CommandDescriptor(name="secret", handler=_noop, dms_only=True))
    result = pipeline.authorize("secret", [], _msg(channel=ChannelKind.GUILD), now=NOW)
    assert _kind(result) is RejectionKind.WRONG_CONTEXT
    assert result.required_context is ChannelKind.DIRECT
    assert isinstance(pipeline.authorize("secret", [], _msg(channel=ChannelKind.DIRECT), now=NOW), Authorized)


def test_owners_only_precedes_missing_permission():
    cmd = CommandDescriptor(name="eval", handler=_noop, owners_only=True, permissions=("X",))
    pipeline = _make_pipeline(cmd, owners=["owner"])
    result = pipeline.authorize("eval", [], _msg("u1", perms=frozenset()), now=NOW)
    assert _kind(result) is RejectionKind.OWNERS_ONLY
    assert result.owner_count == 1


def test_owner_still_needs_permission():
    cmd = CommandDescriptor(name="eval", handler=_noop, owners_only=True, permissions=("X",))
    pipeline = _make_pipeline(cmd, owners=["owner"])
    result = pipeline.authorize("eval", [], _msg("owner", perms=frozenset()), now=NOW)
    assert _kind(result) is RejectionKind.MISSING_USER_PERMISSION
    assert result.permissions == ("X",)
    assert isinstance(pipeline.authorize("eval", [], _msg("owner", perms=frozenset({"X"})), now=NOW), Authorized)


def test_missing_user_permission_precedes_bot_permission():
    cmd = CommandDescriptor(name="ban", handler=_noop, permissions="ban_members", bot_permissions=["BAN_MEMBERS"])
    pipeline = _make_pipeline(cmd)
    assert _kind(pipeline.authorize("ban", [], _msg(), now=NOW)) is RejectionKind.MISSING_USER_PERMISSION
    result = pipeline.authorize("ban", [], _msg(perms=frozenset({"BAN_MEMBERS"})), now=NOW)
    assert _kind(result) is RejectionKind.MISSING_BOT_PERMISSION
    assert result.permissions == ("BAN_MEMBERS",)


def test_missing_snapshot_fails_permission_check():
    cmd = CommandDescriptor(name="ban", handler=_noop, permissions=("BAN_MEMBERS",))
    pipeline = _make_pipeline(cmd)
    message = _msg()
    message.user_permissions = None
    assert _kind(pipeline.authorize("ban", [], message, now=NOW)) is RejectionKind.MISSING_USER_PERMISSION


def test_has_permissions():
    assert has_permissions(None, ())
    assert not has_permissions(None, ("X",))
    assert has_permissions({"x", "y"}, ("X",))
    assert not has_permissions({"Y"}, ("X", "Y"))
    assert has_permissions({"ADMINISTRATOR"}, ("X", "Y"))


@pytest.mark.parametrize("count,expected", [(1, RejectionKind.USAGE_MISMATCH), (3, RejectionKind.USAGE_MISMATCH)])
def test_arity_mismatch(count, expected):
    pipeline = _make_pipeline(CommandDescriptor(name="ban", handler=_noop, args=2))
    result = pipeline.authorize("ban", ["a"] * count, _msg(), "!", now=NOW)
    assert _kind(result) is expected
    assert result.usage == "!ban <2 required arguments>"


def test_arity_exact_match_authorizes():
    pipeline = _make_pipeline(CommandDescriptor(name="ban", handler=_noop, args=2))
    assert isinstance(pipeline.authorize("ban", ["a", "b"], _msg(), "!", now=NOW), Authorized)


@pytest.mark.parametrize("count", [0, 1, 5])
def test_zero_arity_is_unchecked(count):
    pipeline = _make_pipeline(CommandDescriptor(name="help", handler=_noop, cooldown=0))
    assert isinstance(pipeline.authorize("help", ["a"] * count, _msg(), "!", now=NOW), Authorized)


def test_usage_hint():
    with_usage = CommandDescriptor(name="ban", handler=_noop, args=2, usage="<user> <reason>")
    one_arg = CommandDescriptor(name="kick", handler=_noop, args=1)
    assert usage_hint(with_usage, "?") == "?ban <user> <reason>"
    assert usage_hint(one_arg, "!") == "!kick <1 required argument>"


def test_integer_user_ids_match_configured_lists():
    cmd = CommandDescriptor(name="eval", handler=_noop, owners_only=True)
    pipeline = _make_pipeline(cmd, owners=[42], blocked={"7"})
    assert _kind(pipeline.authorize("eval", [], _msg(7), now=NOW)) is RejectionKind.BLOCKED
    assert isinstance(pipeline.authorize("eval", [], _msg(42), now=NOW), Authorized)
    assert pipeline.cooldowns.remaining("eval", "42", NOW) is not None


def test_rejection_echoes_alias_as_typed():
    cmd = CommandDescriptor(name="help", handler=_noop, aliases=frozenset({"h"}), args=1)
    pipeline = _make_pipeline(cmd)
    result = pipeline.authorize("H", [], _msg(), "!", now=NOW)
    assert _kind(result) is RejectionKind.USAGE_MISMATCH
    assert result.command == "h"
    assert result.usage == "!h <1 required argument>"

    authorized = pipeline.authorize("h", ["x"], _msg(), "!", now=NOW)
    assert authorized.invoked == "h"
    assert authorized.descriptor.name == "help"


def test_zero_cooldown_falls_back_to_default_window():
    cmd = CommandDescriptor(name="ping", handler=_noop, cooldown=0)
    assert cmd.cooldown == 1
    pipeline = _make_pipeline(cmd)
    assert isinstance(pipeline.authorize("ping", [], _msg(), now=NOW), Authorized)
    assert _kind(pipeline.authorize("ping", [], _msg(), now=NOW + 0.5)) is RejectionKind.COOLDOWN
