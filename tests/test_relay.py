import asyncio
import logging
from types import SimpleNamespace

from workclock.errors import CommandResult, NotClockedIn
from workclock.events import EventKind, Notification, NotificationAction, Severity
from workclock.relay import ChannelToastRelay, NotificationActionView, render_notification


class FakeBot:
    def __init__(self, channel=None) -> None:
        self.reminder_channel = channel


def _notification(kind: EventKind = EventKind.EYE_CARE_DUE) -> Notification:
    return Notification(
        kind=kind,
        user_id="100",
        title="Eye Care Reminder",
        body="Time to rest your eyes!",
        severity=Severity.WARNING,
    )


def test_render_notification_mentions_owner() -> None:
    content = render_notification(_notification(), mention=True)

    assert content.startswith("<@100> ")
    assert "**Eye Care Reminder**" in content
    assert content.endswith("\nTime to rest your eyes!")
    assert not render_notification(_notification(), mention=False).startswith("<@")


def test_relay_ignores_non_reminder_kinds(caplog) -> None:
    relay = ChannelToastRelay(FakeBot())

    with caplog.at_level(logging.WARNING):
        relay(_notification(EventKind.CLOCKED_IN))

    assert caplog.text == ""


def test_relay_drops_without_channel(caplog) -> None:
    relay = ChannelToastRelay(FakeBot())

    with caplog.at_level(logging.WARNING):
        relay(_notification())

    assert "Reminder channel unavailable" in caplog.text


def test_relay_drops_without_event_loop(caplog) -> None:
    relay = ChannelToastRelay(FakeBot(channel=object()))

    with caplog.at_level(logging.WARNING):
        relay(_notification())

    assert "No running event loop" in caplog.text


class FakeChannel:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    async def send(self, content: str, **kwargs) -> None:
        self.sent.append((content, kwargs))


class FakeResponse:
    def __init__(self) -> None:
        self.messages: list[str] = []

    async def send_message(self, content: str, **kwargs) -> None:
        self.messages.append(content)


def _interaction(user_id: int) -> SimpleNamespace:
    return SimpleNamespace(user=SimpleNamespace(id=user_id), response=FakeResponse())


def test_relay_posts_storage_warnings() -> None:
    channel = FakeChannel()
    relay = ChannelToastRelay(FakeBot(channel=channel))
    warning = Notification(
        kind=EventKind.PERSISTENCE_WARNING,
        user_id="100",
        title="Storage unavailable",
        body="Your changes are kept but could not be saved.",
        severity=Severity.WARNING,
    )

    async def scenario() -> None:
        relay(warning)
        for _ in range(3):
            await asyncio.sleep(0)

    asyncio.run(scenario())

    assert len(channel.sent) == 1
    content, kwargs = channel.sent[0]
    assert content.startswith("<@100> ")
    assert "**Storage unavailable**" in content
    assert kwargs["delete_after"] == 4.0


def _clock_out_notification(outcome: CommandResult) -> Notification:
    return Notification(
        kind=EventKind.LONG_SESSION_WARNING,
        user_id="100",
        title="Time to Clock Out!",
        body="Don't forget to clock out!",
        persistent=True,
        action=NotificationAction(label="Clock Out Now", on_click=lambda: outcome),
    )


def test_action_button_reports_failed_command() -> None:
    async def scenario() -> list[str]:
        view = NotificationActionView(
            _clock_out_notification(CommandResult.failure(NotClockedIn())),
            logging.getLogger("test"),
        )
        interaction = _interaction(100)
        await view._on_click(interaction)
        return interaction.response.messages

    assert asyncio.run(scenario()) == [NotClockedIn().message]


def test_action_button_confirms_success_and_rejects_other_users() -> None:
    async def scenario() -> tuple[list[str], list[str]]:
        view = NotificationActionView(
            _clock_out_notification(CommandResult.success(None)),
            logging.getLogger("test"),
        )
        stranger = _interaction(200)
        owner = _interaction(100)
        await view._on_click(stranger)
        await view._on_click(owner)
        return stranger.response.messages, owner.response.messages

    stranger_messages, owner_messages = asyncio.run(scenario())

    assert stranger_messages == ["This reminder belongs to someone else."]
    assert owner_messages == ["Clock Out Now: done."]
