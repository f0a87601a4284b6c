"""Tests for the Discord transport adapter."""
import asyncio
from unittest.mock import AsyncMock, MagicMock, PropertyMock, patch

import discord
import pytest

from genbot.core import responses
from genbot.transport.discord_client import DiscordTransport

BOT_ID = 999


def make_user(mentioned=False):
    user = MagicMock()
    user.id = BOT_ID
    user.name = "genbot"
    user.mentioned_in.return_value = mentioned
    return user


def make_discord_message(content, dm=False, bot=False, channel_id=42, message_id=7):
    message = MagicMock()
    message.content = content
    message.id = message_id
    message.author.bot = bot
    message.author.name = "alice"
    message.channel = MagicMock(spec=discord.DMChannel) if dm else MagicMock(spec=discord.TextChannel)
    message.channel.id = channel_id
    message.reply = AsyncMock()
    return message


@pytest.fixture
def user_patch():
    with patch.object(DiscordTransport, "user", new_callable=PropertyMock) as user:
        user.return_value = make_user()
        yield user


class TestOnMessage:

    @pytest.mark.asyncio
    async def test_command_in_guild_channel(self, user_patch):
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message("/start"))

        message = inbound.get_nowait()
        assert message.session_key == 42
        assert message.message_id == 7
        assert message.username == "alice"
        assert message.command == "start"
        assert message.text == "/start"

    @pytest.mark.asyncio
    async def test_free_text_in_dm(self, user_patch):
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message("a red fox", dm=True))

        message = inbound.get_nowait()
        assert message.command is None
        assert message.text == "a red fox"

    @pytest.mark.asyncio
    async def test_unaddressed_guild_chatter_ignored(self, user_patch):
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message("just talking"))

        assert inbound.empty()

    @pytest.mark.asyncio
    async def test_mention_is_stripped(self, user_patch):
        user_patch.return_value = make_user(mentioned=True)
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message(f"<@{BOT_ID}> a red fox"))

        assert inbound.get_nowait().text == "a red fox"

    @pytest.mark.asyncio
    async def test_nickname_mention_is_stripped(self, user_patch):
        user_patch.return_value = make_user(mentioned=True)
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message(f"<@!{BOT_ID}> /help"))

        message = inbound.get_nowait()
        assert message.text == "/help"
        assert message.command == "help"

    @pytest.mark.asyncio
    async def test_bots_ignored(self, user_patch):
        inbound = asyncio.Queue()
        transport = DiscordTransport(inbound)

        await transport.on_message(make_discord_message("/start", bot=True))

        assert inbound.empty()

    @pytest.mark.asyncio
    async def test_full_inbound_replies_overloaded(self, user_patch):
        inbound = asyncio.Queue(maxsize=1)
        inbound.put_nowait(object())
        transport = DiscordTransport(inbound)
        message = make_discord_message("/start")

        await transport.on_message(message)

        message.reply.assert_awaited_once_with(responses.OVERLOADED, mention_author=False)
        assert inbound.qsize() == 1


class TestReplies:

    @pytest.mark.asyncio
    async def test_reply_text_splits_and_references(self):
        transport = DiscordTransport(asyncio.Queue())
        channel = MagicMock()
        channel.send = AsyncMock()

        with patch.object(transport, "get_channel", return_value=channel):
            await transport.reply_text(7, 42, "x" * 2500)

        assert channel.send.await_count == 2
        first = channel.send.await_args_list[0]
        assert first.kwargs["reference"].message_id == 7
        assert "reference" not in channel.send.await_args_list[1].kwargs

    @pytest.mark.asyncio
    async def test_reply_file(self):
        transport = DiscordTransport(asyncio.Queue())
        channel = MagicMock()
        channel.send = AsyncMock()

        with patch.object(transport, "get_channel", return_value=channel):
            await transport.reply_file(7, 42, b"png", "fox.png")

        sent = channel.send.await_args.kwargs["file"]
        assert isinstance(sent, discord.File)
        assert sent.filename == "fox.png"

    @pytest.mark.asyncio
    async def test_fetches_uncached_channel(self):
        transport = DiscordTransport(asyncio.Queue())
        channel = MagicMock()
        channel.send = AsyncMock()

        with patch.object(transport, "get_channel", return_value=None), \
                patch.object(transport, "fetch_channel", AsyncMock(return_value=channel)) as fetch:
            await transport.reply_text(7, 42, "hi")

        fetch.assert_awaited_once_with(42)
        channel.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_connected_before_login(self):
        transport = DiscordTransport(asyncio.Queue())

        assert not transport.is_connected
