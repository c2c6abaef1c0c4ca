from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .events import ToastBus
from .models import UserPreferences
from .notifications import DirectMessagePermission, NotificationGateway
from .relay import ChannelToastRelay, DirectMessageNotifier
from .reporter import Reporter
from .scheduler import ReminderService
from .tracker import WorkSessionTracker


class WorkClockBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.logger = logging.getLogger("workclock-bot")

        self.toasts = ToastBus()
        self.direct_messages = DirectMessageNotifier(self)
        self.gateway = NotificationGateway(
            self.toasts,
            native=self.direct_messages,
            permission=DirectMessagePermission(config.direct_messages),
        )
        self.direct_messages.on_forbidden = self.gateway.revoke_permission
        self.toasts.subscribe(ChannelToastRelay(self))

        self.tracker = WorkSessionTracker(
            db=db,
            gateway=self.gateway,
            tz=config.timezone,
            stale_session_hours=config.stale_session_hours,
        )
        self.reminders = ReminderService(
            self.tracker,
            long_session_hours=config.long_session_hours,
            long_session_repeat=config.long_session_repeat,
        )
        self.reporter = Reporter(self.tracker)

        # Sessions resume only after the channel checks pass.
        self.runtime_ready = False
        self.guild_obj: discord.Guild | None = None
        self.reminder_channel: discord.TextChannel | None = None

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.runtime_ready:
            return

        if await self._validate_runtime_resources():
            self.runtime_ready = True
            self.logger.info("Runtime checks passed")
            # Session state is loaded before any reminder timer starts.
            self.tracker.resume_all()

    async def _validate_runtime_resources(self) -> bool:
        problem = self._find_runtime_problem()
        if problem is not None:
            self.logger.error("Runtime check failed: %s", problem)
            await self.close()
            return False
        return True

    def _find_runtime_problem(self) -> str | None:
        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            return f"guild {self.config.guild_id} not found"

        channel = guild.get_channel(self.config.reminder_channel_id)
        if not isinstance(channel, discord.TextChannel):
            return f"reminder channel {self.config.reminder_channel_id} is missing or not a text channel"

        member = guild.me or (guild.get_member(self.user.id) if self.user is not None else None)
        if member is None:
            return f"bot member not resolvable in guild {guild.id}"

        # Reminder posts need view and send.
        perms = channel.permissions_for(member)
        if not (perms.view_channel and perms.send_messages):
            return f"missing view/send permission in reminder channel {channel.id}"

        self.guild_obj = guild
        self.reminder_channel = channel
        return None

    async def close(self) -> None:
        self.reminders.shutdown()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(
        config.database_path,
        default_preferences=UserPreferences(eye_care_interval_minutes=config.eye_care_interval_minutes),
    )
    db.initialize()

    bot = WorkClockBot(config=config, db=db)
    bot.run(config.discord_token)


if __name__ == "__main__":
    main()
