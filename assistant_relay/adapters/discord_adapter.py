"""Discord adapter — bridges discord.Client to the Relay.

DiscordNotificationAdapter implements the ChatTransport port (text and
approve / deny buttons). DiscordRelayBot is a thin discord.Client subclass
that converts Discord messages to IncomingMessage, and button presses to
Relay.handle_callback. Threads play the role of per-agent topics.
"""

from typing import List, Optional

import discord

from assistant_relay.logger import log, log_error
from assistant_relay.ports import ButtonRow, IncomingMessage
from assistant_relay.relay import Relay, split_message

DISCORD_MAX_LENGTH = 2000


def build_button_view(buttons: List[ButtonRow]) -> discord.ui.View:
    """Buttons whose custom_id is the callback token; presses arrive via on_interaction."""
    view = discord.ui.View(timeout=None)
    for row_index, row in enumerate(buttons):
        for label, token in row:
            style = discord.ButtonStyle.danger if token.startswith("action_deny_") else discord.ButtonStyle.success
            view.add_item(discord.ui.Button(label=label, custom_id=token, style=style, row=row_index))
    return view


class DiscordNotificationAdapter:
    """ChatTransport implementation using discord.Client."""

    def __init__(self, client: discord.Client):
        self._client = client

    def _channel(self, chat_id: int, thread_id: Optional[int]):
        return self._client.get_channel(thread_id or chat_id)

    async def send_text(self, chat_id: int, text: str, thread_id: Optional[int] = None) -> None:
        channel = self._channel(chat_id, thread_id)
        if channel is None:
            log("discord_channel_missing", f"Channel {thread_id or chat_id} not found", level="warn")
            return
        for chunk in split_message(text, DISCORD_MAX_LENGTH):
            await channel.send(chunk)

    async def send_buttons(
        self, chat_id: int, text: str, buttons: List[ButtonRow], thread_id: Optional[int] = None
    ) -> None:
        channel = self._channel(chat_id, thread_id)
        if channel is None:
            log("discord_channel_missing", f"Channel {thread_id or chat_id} not found", level="warn")
            return
        await channel.send(text[:DISCORD_MAX_LENGTH], view=build_button_view(buttons))


class DiscordRelayBot(discord.Client):
    """Thin Discord client that delegates every message to the Relay."""

    def __init__(self, relay: Relay, allowed_user_id: str = "", **discord_kwargs):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **discord_kwargs)
        self._relay = relay
        self._allowed_user_id = allowed_user_id

    def _is_allowed(self, user_id: int) -> bool:
        return not self._allowed_user_id or str(user_id) == self._allowed_user_id

    @staticmethod
    def _to_incoming(message: discord.Message) -> IncomingMessage:
        """Convert a Discord message to platform-agnostic IncomingMessage."""
        channel = message.channel
        if isinstance(channel, discord.Thread):
            return IncomingMessage(
                content=message.content,
                chat_id=channel.parent_id,
                author_id=message.author.id,
                author_name=str(message.author),
                thread_id=channel.id,
                thread_name=channel.name,
            )
        return IncomingMessage(
            content=message.content,
            chat_id=channel.id,
            author_id=message.author.id,
            author_name=str(message.author),
        )

    async def on_ready(self):
        log("bot_running", f"Logged in as {self.user}")
        self._relay.transport = DiscordNotificationAdapter(self)

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return
        if not self._is_allowed(message.author.id):
            log("unauthorized_access", f"Rejected user {message.author.id}", level="warn")
            await message.channel.send("This bot is private.")
            return

        try:
            async with message.channel.typing():
                await self._relay.handle_message(self._to_incoming(message))
        except Exception as e:
            log_error("message_error", "Failed to handle message", e)
            await message.channel.send("Something went wrong handling that message. Please try again.")

    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return
        token = (interaction.data or {}).get("custom_id", "")
        if not self._is_allowed(interaction.user.id):
            await interaction.response.send_message("This bot is private.", ephemeral=True)
            return

        text = await self._relay.handle_callback(token)
        if text is None:
            return
        await interaction.response.edit_message(content=text, view=None)
