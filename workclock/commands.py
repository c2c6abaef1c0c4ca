from __future__ import annotations

from typing import Literal

import discord
from discord import app_commands

from .errors import CommandResult
from .models import Role, User
from .reporter import format_hours


def resolve_user(bot, interaction) -> User:
    """Map the invoking Discord member to an engine user; configured ids are administrators."""
    member = interaction.user
    role = Role.ADMIN if bot.config.is_admin(member.id) else Role.WORKER
    return User(user_id=str(member.id), display_name=member.display_name, role=role)


def _result_message(result: CommandResult, success: str) -> str:
    if result.ok:
        return success
    return result.error.message


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    async def _in_guild(interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message("This command can only be used in the configured server.", ephemeral=True)
            return False
        return True

    @bot.tree.command(name="clock-in", description="Start your work session", guild=guild_scope)
    async def clock_in(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        result = bot.tracker.clock_in(user.user_id)
        await interaction.response.send_message(
            _result_message(result, "Clocked in successfully!"), ephemeral=True
        )

    @bot.tree.command(name="clock-out", description="End your work session", guild=guild_scope)
    async def clock_out(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        result = bot.tracker.clock_out(user.user_id)
        if not result.ok:
            await interaction.response.send_message(result.error.message, ephemeral=True)
            return
        await interaction.response.send_message(
            f"Clocked out successfully! Total: `{format_hours(result.session.total_hours or 0.0)}`", ephemeral=True
        )

    @bot.tree.command(name="break-start", description="Start a lunch or short break", guild=guild_scope)
    @app_commands.describe(kind="Type of break")
    async def break_start(interaction, kind: Literal["lunch", "short"]):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        result = bot.tracker.start_break(user.user_id, kind)
        label = "Lunch break" if kind == "lunch" else "Break"
        await interaction.response.send_message(
            _result_message(result, f"{label} started. Enjoy!"), ephemeral=True
        )

    @bot.tree.command(name="break-end", description="End your current break", guild=guild_scope)
    async def break_end(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        result = bot.tracker.end_break(user.user_id)
        await interaction.response.send_message(_result_message(result, "Welcome back!"), ephemeral=True)

    @bot.tree.command(name="hours", description="Show your session status and hours", guild=guild_scope)
    async def hours(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        await interaction.response.send_message(bot.reporter.build_status_content(user.user_id), ephemeral=True)

    @bot.tree.command(name="eye-care", description="Turn eye care reminders on or off", guild=guild_scope)
    @app_commands.describe(enabled="Whether eye care reminders are on")
    async def eye_care(interaction, enabled: bool):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        preferences = bot.tracker.toggle_eye_care(user.user_id, enabled)
        if preferences.eye_care_enabled:
            message = f"Eye care reminders enabled, every `{preferences.eye_care_interval_minutes:g}` minutes."
        else:
            message = "Eye care reminders disabled."
        await interaction.response.send_message(message, ephemeral=True)

    @bot.tree.command(name="eye-care-interval", description="Set minutes between eye care reminders", guild=guild_scope)
    @app_commands.describe(minutes="Minutes between reminders")
    async def eye_care_interval(interaction, minutes: int):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        if not bot.tracker.set_eye_care_interval(user.user_id, minutes):
            await interaction.response.send_message("Interval must be a positive number of minutes.", ephemeral=True)
            return
        await interaction.response.send_message(f"Eye care interval set to `{minutes}` minutes.", ephemeral=True)

    @bot.tree.command(name="eye-care-done", description="Finish the current eye care break", guild=guild_scope)
    async def eye_care_done(interaction):
        if not await _in_guild(interaction):
            return
        scheduler = bot.reminders.get(resolve_user(bot, interaction).user_id)
        if scheduler is None or not scheduler.state.modal_visible:
            await interaction.response.send_message("No eye care reminder is active.", ephemeral=True)
            return
        scheduler.complete()
        await interaction.response.send_message("Great job! Your eyes thank you.", ephemeral=True)

    @bot.tree.command(name="eye-care-skip", description="Skip the current eye care break", guild=guild_scope)
    async def eye_care_skip(interaction):
        if not await _in_guild(interaction):
            return
        scheduler = bot.reminders.get(resolve_user(bot, interaction).user_id)
        if scheduler is None or not scheduler.state.modal_visible:
            await interaction.response.send_message("No eye care reminder is active.", ephemeral=True)
            return
        scheduler.skip()
        await interaction.response.send_message("Eye care reminder skipped.", ephemeral=True)

    @bot.tree.command(name="notifications", description="Re-check direct message notifications", guild=guild_scope)
    async def notifications(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        bot.gateway.reset_permission(user.user_id)
        granted = bot.gateway.request_permission(user.user_id)
        if granted:
            message = "Reminders will also be sent to you by direct message."
        else:
            message = "Direct messages are off; reminders will only appear in the reminder channel."
        await interaction.response.send_message(message, ephemeral=True)

    @bot.tree.command(name="team", description="Show everyone's sessions for today (admins only)", guild=guild_scope)
    async def team(interaction):
        if not await _in_guild(interaction):
            return
        user = resolve_user(bot, interaction)
        if not user.is_admin:
            await interaction.response.send_message("Only administrators can view the team overview.", ephemeral=True)
            return

        now = bot.tracker.now()
        day_local = now.astimezone(bot.config.timezone).date().isoformat()
        rows = bot.reporter.build_team_rows(interaction.guild, day_local, now_utc=now)
        await interaction.response.send_message(bot.reporter.build_team_content(day_local, rows), ephemeral=True)
