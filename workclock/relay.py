from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Protocol

import discord

from .errors import CommandResult
from .events import EventKind, Notification, Severity

RELAYED_KINDS = frozenset(
    {
        EventKind.EYE_CARE_DUE,
        EventKind.LONG_SESSION_WARNING,
        EventKind.SESSION_AUTO_CLOSED,
        EventKind.PERSISTENCE_WARNING,
    }
)

SEVERITY_PREFIX = {
    Severity.SUCCESS: "✅",
    Severity.INFO: "ℹ️",
    Severity.WARNING: "⚠️",
    Severity.ERROR: "❌",
}


class ChannelBot(Protocol):
    reminder_channel: discord.TextChannel | None

    def get_user(self, user_id: int, /) -> discord.User | None: ...

    async def fetch_user(self, user_id: int, /) -> discord.User: ...


def render_notification(notification: Notification, *, mention: bool) -> str:
    prefix = SEVERITY_PREFIX.get(notification.severity, "")
    heading = f"{prefix} **{notification.title}**".strip()
    if mention:
        heading = f"<@{notification.user_id}> {heading}"
    return f"{heading}\n{notification.body}"


class NotificationActionView(discord.ui.View):
    """Single-button view that runs a notification's action for its owner only."""

    def __init__(self, notification: Notification, logger: logging.Logger) -> None:
        timeout = None if notification.persistent else max(notification.duration_ms / 1000, 1.0)
        super().__init__(timeout=timeout)
        self.notification = notification
        self.logger = logger

        button = discord.ui.Button(label=notification.action.label, style=discord.ButtonStyle.primary)
        button.callback = self._on_click
        self.add_item(button)

    async def _on_click(self, interaction: discord.Interaction) -> None:
        if str(interaction.user.id) != self.notification.user_id:
            await interaction.response.send_message("This reminder belongs to someone else.", ephemeral=True)
            return

        try:
            outcome = self.notification.action.on_click()
        except Exception as exc:
            self.logger.exception("Notification action failed: kind=%s", self.notification.kind.value)
            await interaction.response.send_message(f"Action failed: `{exc}`", ephemeral=True)
            return

        self.stop()
        if isinstance(outcome, CommandResult) and not outcome.ok:
            await interaction.response.send_message(outcome.error.message, ephemeral=True)
            return
        await interaction.response.send_message(f"{self.notification.action.label}: done.", ephemeral=True)


class _TaskRunner:
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self._pending: set[asyncio.Task] = set()

    def fire_and_forget(self, coro: Coroutine[Any, Any, None], description: str) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self.logger.warning("No running event loop; dropped %s", description)
            return None

        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda done: self._finished(done, description))
        return task

    def _finished(self, task: asyncio.Task, description: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Delivery failed for %s", description, exc_info=exc)


class ChannelToastRelay(_TaskRunner):
    """Toast bus listener that posts reminders and storage warnings to the reminder channel."""

    def __init__(
        self,
        bot: ChannelBot,
        kinds: frozenset[EventKind] = RELAYED_KINDS,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger or logging.getLogger(__name__))
        self.bot = bot
        self.kinds = kinds

    def __call__(self, notification: Notification) -> None:
        if notification.kind not in self.kinds:
            return

        channel = self.bot.reminder_channel
        if channel is None:
            self.logger.warning("Reminder channel unavailable; dropped %s", notification.kind.value)
            return

        self.fire_and_forget(self._send(channel, notification), f"channel toast {notification.kind.value}")

    async def _send(self, channel: discord.TextChannel, notification: Notification) -> None:
        kwargs: dict[str, Any] = {
            # Only ping the user the reminder is about.
            "allowed_mentions": discord.AllowedMentions(everyone=False, roles=False, users=True),
        }
        if notification.action is not None:
            kwargs["view"] = NotificationActionView(notification, self.logger)
        if not notification.persistent:
            kwargs["delete_after"] = notification.duration_ms / 1000

        await channel.send(render_notification(notification, mention=True), **kwargs)


class DirectMessageNotifier(_TaskRunner):
    """Native notification surface backed by Discord direct messages."""

    def __init__(
        self,
        bot: ChannelBot,
        kinds: frozenset[EventKind] = RELAYED_KINDS,
        on_forbidden: Callable[[str], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(logger or logging.getLogger(__name__))
        self.bot = bot
        self.kinds = kinds
        self.on_forbidden = on_forbidden

    def notify(self, notification: Notification) -> None:
        if notification.kind not in self.kinds:
            return
        self.fire_and_forget(self._send(notification), f"direct message {notification.kind.value}")

    async def _send(self, notification: Notification) -> None:
        user_id = int(notification.user_id)
        user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)

        kwargs: dict[str, Any] = {}
        if notification.action is not None:
            kwargs["view"] = NotificationActionView(notification, self.logger)

        try:
            await user.send(render_notification(notification, mention=False), **kwargs)
        except discord.Forbidden:
            self.logger.warning("Direct messages closed for user=%s; using channel only", notification.user_id)
            if self.on_forbidden is not None:
                self.on_forbidden(notification.user_id)
