"""Discord transport adapter."""
import asyncio
import io
import logging
from typing import Hashable, Iterable

import discord

from ..core.commands import COMMAND_PREFIXES, parse_command
from ..core.interfaces.transport import InboundMessage
from ..core import responses
from .utils import split_message

logger = logging.getLogger(__name__)


class DiscordTransport(discord.Client):
    """Feeds Discord messages to the dispatcher and delivers its replies.

    The session key is the channel id. Messages are taken from DMs, and
    in guild channels when they are commands or mention the bot.
    """

    def __init__(
        self,
        inbound: "asyncio.Queue[InboundMessage]",
        prefixes: Iterable[str] = COMMAND_PREFIXES,
    ):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True

        super().__init__(intents=intents)

        self._inbound = inbound
        self._prefixes = tuple(prefixes)

    @property
    def is_connected(self) -> bool:
        return self.is_ready() and not self.is_closed()

    async def on_ready(self):
        """Called when bot is ready."""
        logger.info(f"✅ Logged in as {self.user.name} ({self.user.id})")

    async def on_message(self, message: discord.Message):
        """
        Convert an incoming message and push it onto the inbound channel.

        Args:
            message: Discord message object
        """
        if message.author == self.user or message.author.bot:
            return

        content = message.content
        mentioned = self.user is not None and self.user.mentioned_in(message)
        if mentioned:
            for mention in (f"<@{self.user.id}>", f"<@!{self.user.id}>"):
                content = content.replace(mention, "")
            content = content.strip()

        _, name = parse_command(content, self._prefixes)
        is_dm = isinstance(message.channel, discord.DMChannel)
        if not (is_dm or mentioned or name is not None):
            return

        inbound = InboundMessage(
            session_key=message.channel.id,
            message_id=message.id,
            text=content,
            username=message.author.name,
            command=name,
        )

        try:
            self._inbound.put_nowait(inbound)
        except asyncio.QueueFull:
            logger.warning(f"Inbound channel full, refusing message {message.id}")
            await message.reply(responses.OVERLOADED, mention_author=False)

    async def _channel(self, session_key: Hashable) -> discord.abc.Messageable:
        channel_id = int(session_key)
        channel = self.get_channel(channel_id)
        if channel is None:
            channel = await self.fetch_channel(channel_id)
        return channel

    @staticmethod
    def _reference(message_id: int, session_key: Hashable) -> discord.MessageReference:
        return discord.MessageReference(
            message_id=message_id,
            channel_id=int(session_key),
            fail_if_not_exists=False,
        )

    async def reply_text(self, message_id: int, session_key: Hashable, text: str) -> None:
        """Reply with text, split into several messages when too long."""
        channel = await self._channel(session_key)
        for i, chunk in enumerate(split_message(text)):
            if i == 0:
                await channel.send(chunk, reference=self._reference(message_id, session_key))
            else:
                await channel.send(chunk)

    async def reply_file(
        self,
        message_id: int,
        session_key: Hashable,
        body: bytes,
        filename: str,
    ) -> None:
        """Reply with a file attachment."""
        channel = await self._channel(session_key)
        discord_file = discord.File(fp=io.BytesIO(body), filename=filename)
        await channel.send(file=discord_file, reference=self._reference(message_id, session_key))
        logger.info(f"Uploaded {filename} ({len(body)} bytes) to channel {session_key}")
