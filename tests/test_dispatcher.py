"""Tests for text-message dispatch."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from commandwire.cooldowns import CooldownTracker
from commandwire.dispatcher import DispatchEngine, parse_command
from commandwire.exceptions import HandlerExecutionError
from commandwire.models import (
    ChannelKind,
    CommandDescriptor,
    InboundMessage,
    OutcomeKind,
    RejectionKind,
)
from commandwire.registry import CommandRegistry
from commandwire.responses import ResponseResolver


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _make_engine(*descriptors, prefixes=("!",), overrides=None, blocked=(), owners=()):
    registry = CommandRegistry()
    for d in descriptors:
        registry.register(d)
    clock = FakeClock()
    tracker = CooldownTracker(clock)
    send_reply = AsyncMock()
    engine = DispatchEngine(
        registry,
        tracker,
        ResponseResolver(overrides),
        send_reply,
        prefixes=prefixes,
        owners=owners,
        blocked_users=blocked,
    )
    return engine, send_reply, clock, tracker


def _msg(content, author="u1", **kw):
    return InboundMessage(content=content, author_id=author, author_name="ann", **kw)


# --- parse_command ---

def test_parse_command_splits_on_whitespace():
    assert parse_command("!Help  a\tb ", ("!",)) == ("!", "help", ["a", "b"])


def test_parse_command_no_prefix():
    assert parse_command("hello", ("!", "?")) is None


def test_parse_command_empty_token():
    assert parse_command("!", ("!",)) is None
    assert parse_command("!   ", ("!",)) is None


def test_parse_command_first_declared_prefix_wins():
    assert parse_command("!!ping", ("!", "!!")) == ("!", "!ping", [])
    assert parse_command("!!ping", ("!!", "!")) == ("!!", "ping", [])


# --- dispatch ---

class TestDispatch:

    @pytest.mark.asyncio
    async def test_executes_handler_with_args(self):
        handler = AsyncMock()
        engine, send_reply, _, tracker = _make_engine(
            CommandDescriptor(name="help", handler=handler), prefixes=("!", "?")
        )
        message = _msg("?help a b")

        outcome = await engine.dispatch(message)

        assert outcome.kind is OutcomeKind.EXECUTED
        assert outcome.command == "help"
        handler.assert_awaited_once_with(message, ["a", "b"])
        send_reply.assert_not_awaited()
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_sync_handler_supported(self):
        handler = MagicMock(return_value=None)
        engine, _, _, tracker = _make_engine(CommandDescriptor(name="ping", handler=handler))
        outcome = await engine.dispatch(_msg("!PING"))
        assert outcome.kind is OutcomeKind.EXECUTED
        handler.assert_called_once()
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_alias_dispatches_to_command(self):
        handler = AsyncMock()
        engine, _, _, tracker = _make_engine(
            CommandDescriptor(name="help", handler=handler, aliases=frozenset({"h"}))
        )
        outcome = await engine.dispatch(_msg("!H"))
        assert outcome.kind is OutcomeKind.EXECUTED
        assert outcome.command == "help"
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_unknown_command_reply(self):
        engine, send_reply, _, _ = _make_engine(
            overrides={"command_unknown": ["`{{prefix}}{{command}}` is not a command"]}
        )
        message = _msg("!foo bar")

        outcome = await engine.dispatch(message)

        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.rejection.kind is RejectionKind.UNKNOWN
        send_reply.assert_awaited_once()
        sent_message, reply = send_reply.await_args.args
        assert sent_message is message
        assert reply.text == "`!foo` is not a command"
        assert reply.title == "Unknown Command"

    @pytest.mark.asyncio
    async def test_cooldown_rejects_second_invocation(self):
        handler = AsyncMock()
        engine, send_reply, clock, tracker = _make_engine(CommandDescriptor(name="ping", handler=handler))

        first = await engine.dispatch(_msg("!ping"))
        second = await engine.dispatch(_msg("!ping"))

        assert first.kind is OutcomeKind.EXECUTED
        assert second.kind is OutcomeKind.REJECTED
        assert second.rejection.kind is RejectionKind.COOLDOWN
        assert handler.await_count == 1
        reply = send_reply.await_args.args[1]
        assert reply.text == "Please wait `1` second before using this command again"

        clock.now += 0.5
        assert tracker.remaining("ping", "u1") == pytest.approx(0.5)
        clock.now += 0.6
        assert tracker.remaining("ping", "u1") is None

        third = await engine.dispatch(_msg("!ping"))
        assert third.kind is OutcomeKind.EXECUTED
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_cooldown_is_per_user(self):
        handler = AsyncMock()
        engine, _, _, tracker = _make_engine(CommandDescriptor(name="ping", handler=handler))
        await engine.dispatch(_msg("!ping", author="u1"))
        outcome = await engine.dispatch(_msg("!ping", author="u2"))
        assert outcome.kind is OutcomeKind.EXECUTED
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self):
        handler = AsyncMock(side_effect=ValueError("boom"))
        engine, send_reply, _, tracker = _make_engine(CommandDescriptor(name="ping", handler=handler))

        outcome = await engine.dispatch(_msg("!ping"))

        assert outcome.kind is OutcomeKind.FAILED
        assert isinstance(outcome.error, HandlerExecutionError)
        assert isinstance(outcome.error.original, ValueError)
        assert outcome.error.command == "ping"
        reply = send_reply.await_args.args[1]
        assert reply.text == "Something went wrong: ```boom```"
        assert reply.title == "Error"
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_send_failure_is_contained(self):
        engine, send_reply, _, _ = _make_engine()
        send_reply.side_effect = RuntimeError("network down")
        outcome = await engine.dispatch(_msg("!foo"))
        assert outcome.kind is OutcomeKind.REJECTED
        assert outcome.reply is not None

    @pytest.mark.asyncio
    async def test_usage_mismatch_reply(self):
        handler = AsyncMock()
        engine, send_reply, _, _ = _make_engine(CommandDescriptor(name="ban", handler=handler, args=2))
        outcome = await engine.dispatch(_msg("!ban someone"))
        assert outcome.rejection.kind is RejectionKind.USAGE_MISMATCH
        handler.assert_not_awaited()
        reply = send_reply.await_args.args[1]
        assert reply.text == "Please use this command correctly: `!ban <2 required arguments>`"

    @pytest.mark.asyncio
    async def test_guild_only_in_dm(self):
        handler = AsyncMock()
        engine, send_reply, _, _ = _make_engine(CommandDescriptor(name="ban", handler=handler, guild_only=True))
        outcome = await engine.dispatch(_msg("!ban", channel_kind=ChannelKind.DIRECT))
        assert outcome.rejection.kind is RejectionKind.WRONG_CONTEXT
        assert send_reply.await_args.args[1].text == "This command can only be used in a server"

    @pytest.mark.parametrize(
        "message",
        [
            _msg("!ping", author_is_bot=True),
            _msg("!ping", is_webhook=True),
            _msg("ping"),
            _msg("!"),
            _msg(""),
        ],
    )
    @pytest.mark.asyncio
    async def test_ignored_messages(self, message):
        handler = AsyncMock()
        engine, send_reply, _, _ = _make_engine(CommandDescriptor(name="ping", handler=handler))
        outcome = await engine.dispatch(message)
        assert outcome.kind is OutcomeKind.IGNORED
        handler.assert_not_awaited()
        send_reply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_block_and_unblock_user(self):
        handler = AsyncMock()
        engine, send_reply, _, tracker = _make_engine(
            CommandDescriptor(name="ping", handler=handler, cooldown=0)
        )

        engine.block_user("u1")
        blocked = await engine.dispatch(_msg("!ping"))
        assert blocked.rejection.kind is RejectionKind.BLOCKED
        assert send_reply.await_args.args[1].title == "Blocked"

        engine.unblock_user("u1")
        allowed = await engine.dispatch(_msg("!ping"))
        assert allowed.kind is OutcomeKind.EXECUTED
        tracker.cancel_timers()

    @pytest.mark.asyncio
    async def test_initial_block_list(self):
        engine, _, _, _ = _make_engine(CommandDescriptor(name="ping", handler=AsyncMock()), blocked=["u1"])
        outcome = await engine.dispatch(_msg("!ping"))
        assert outcome.rejection.kind is RejectionKind.BLOCKED

    @pytest.mark.asyncio
    async def test_listener_sees_every_message_and_errors_are_contained(self):
        engine, _, _, _ = _make_engine()
        seen = []
        failing = MagicMock(side_effect=RuntimeError("listener broke"))
        engine.add_listener(failing)
        engine.add_listener(seen.append)

        await engine.dispatch(_msg("hello"))
        await engine.dispatch(_msg("!ping", author_is_bot=True))

        assert [m.content for m in seen] == ["hello", "!ping"]
        assert failing.call_count == 2


@pytest.mark.asyncio
async def test_handler_error_reports_alias_as_typed():
    handler = AsyncMock(side_effect=ValueError("boom"))
    engine, send_reply, _, tracker = _make_engine(
        CommandDescriptor(name="help", handler=handler, aliases=frozenset({"h"})),
        overrides={"command_error": ["{{command}}: {{error}}"]},
    )

    outcome = await engine.dispatch(_msg("!h"))

    assert outcome.kind is OutcomeKind.FAILED
    assert send_reply.await_args.args[1].text == "h: boom"
    tracker.cancel_timers()


@pytest.mark.asyncio
async def test_integer_author_id_is_blocked():
    handler = AsyncMock()
    engine, _, _, _ = _make_engine(CommandDescriptor(name="ping", handler=handler), blocked=[7])
    outcome = await engine.dispatch(_msg("!ping", author=7))
    assert outcome.rejection.kind is RejectionKind.BLOCKED
    handler.assert_not_awaited()
