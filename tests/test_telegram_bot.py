"""Tests for src.bot.telegram_bot — Telegram bot handlers.

Handlers are exercised with mocked Update/Context objects and a real
ObligationService backed by a temp SQLite file. The LLM is never called.
"""

from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.bot.telegram_bot import (
    _format_obligation,
    _parse_id,
    cmd_check,
    cmd_delete,
    cmd_done,
    cmd_obligations,
    cmd_reminders,
    cmd_start,
    cmd_stats,
    cmd_stop,
    handle_text,
)
from src.data.models import ObligationStatus

OWNER = 12345


def _make_update(text="", user_id=OWNER, chat_id=555):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.effective_chat.id = chat_id
    update.message.reply_text = AsyncMock()
    return update


def _make_context(service, dispatcher, args=None):
    context = MagicMock()
    context.args = args or []
    context.bot_data = {"service": service, "dispatcher": dispatcher}
    return context


def _reply(update):
    return update.message.reply_text.await_args.args[0]


class TestHelpers:
    def test_parse_id(self):
        assert _parse_id(["12"]) == 12
        assert _parse_id(["abc"]) is None
        assert _parse_id([]) is None
        assert _parse_id(None) is None

    @pytest.mark.asyncio
    async def test_format_obligation(self, service, now):
        ob = await service.create_obligation(
            OWNER,
            {
                "title": "Pay rent",
                "type": "recurring",
                "frequency": "monthly",
                "due_date": now + timedelta(days=5),
                "risk_level": "high",
            },
            now=now,
        )
        line = _format_obligation(ob)
        assert line.startswith(f"`{ob.id}` 🔴 Pay rent")
        assert "2026-03-06 09:00" in line
        assert line.endswith("↻ monthly")

    def test_markdown_characters_in_title_are_escaped(self, now):
        from src.data.models import Category, Obligation, ObligationType, RiskLevel

        ob = Obligation(
            id=3,
            owner_id=OWNER,
            title="Renew car_insurance *now*",
            category=Category.FINANCE,
            type=ObligationType.ONE_TIME,
            due_date=now,
            risk_level=RiskLevel.LOW,
        )
        assert "Renew car\\_insurance \\*now\\*" in _format_obligation(ob)


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_unauthorized_user_is_ignored(self, service, dispatcher):
        update = _make_update(user_id=99999)
        await cmd_start(update, _make_context(service, dispatcher))
        update.message.reply_text.assert_not_awaited()
        assert await dispatcher.deliver(99999, {"title": "x"}) is None


class TestSubscriptionCommands:
    @pytest.mark.asyncio
    async def test_start_subscribes_chat(self, service, dispatcher, subscription_db):
        update = _make_update(chat_id=555)
        await cmd_start(update, _make_context(service, dispatcher))
        assert subscription_db.get(OWNER).destination == {"chat_id": 555}
        update.message.reply_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes(self, service, dispatcher, subscription_db):
        await dispatcher.subscribe(OWNER, {"chat_id": 555})
        update = _make_update()
        await cmd_stop(update, _make_context(service, dispatcher))
        assert subscription_db.get(OWNER) is None
        assert "off" in _reply(update)


class TestObligationCommands:
    @pytest.mark.asyncio
    async def test_done_usage(self, service, dispatcher):
        update = _make_update()
        await cmd_done(update, _make_context(service, dispatcher))
        assert _reply(update).startswith("Usage: /done")

    @pytest.mark.asyncio
    async def test_done_unknown_id(self, service, dispatcher):
        update = _make_update()
        await cmd_done(update, _make_context(service, dispatcher, args=["999"]))
        assert _reply(update) == "No obligation with ID 999."

    @pytest.mark.asyncio
    async def test_done_completes(self, service, dispatcher, now):
        ob = await service.create_obligation(
            OWNER, {"title": "Renew Passport", "due_date": now + timedelta(days=10)}, now=now,
        )
        update = _make_update()
        await cmd_done(update, _make_context(service, dispatcher, args=[str(ob.id)]))

        assert "Completed" in _reply(update)
        fetched = await service.get_obligation(OWNER, ob.id)
        assert fetched.status is ObligationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_delete(self, service, dispatcher, now):
        ob = await service.create_obligation(
            OWNER, {"title": "Renew Passport", "due_date": now + timedelta(days=10)}, now=now,
        )
        update = _make_update()
        await cmd_delete(update, _make_context(service, dispatcher, args=[str(ob.id)]))
        assert _reply(update) == f"Deleted obligation {ob.id}."
        assert await service.list_obligations(OWNER) == []

    @pytest.mark.asyncio
    async def test_obligations_empty(self, service, dispatcher):
        update = _make_update()
        await cmd_obligations(update, _make_context(service, dispatcher))
        assert _reply(update) == "Nothing open. Enjoy the quiet!"

    @pytest.mark.asyncio
    async def test_obligations_lists_open(self, service, dispatcher, now):
        await service.create_obligation(
            OWNER, {"title": "Renew Passport", "due_date": now + timedelta(days=10)}, now=now,
        )
        update = _make_update()
        await cmd_obligations(update, _make_context(service, dispatcher))
        assert "Renew Passport" in _reply(update)

    @pytest.mark.asyncio
    async def test_reminders_empty(self, service, dispatcher):
        update = _make_update()
        await cmd_reminders(update, _make_context(service, dispatcher))
        assert _reply(update) == "No reminders scheduled."

    @pytest.mark.asyncio
    async def test_reminders_lists_in_fire_order(self, service, dispatcher, now):
        await service.create_obligation(
            OWNER,
            {"title": "Renew Passport", "due_date": now + timedelta(days=10), "risk_level": "high"},
            now=now,
        )
        update = _make_update()
        await cmd_reminders(update, _make_context(service, dispatcher))

        lines = _reply(update).splitlines()[2:]
        assert lines == [
            "2026-03-04 09:00 Reminder: Renew Passport",
            "2026-03-08 09:00 Reminder: Renew Passport",
            "2026-03-10 09:00 Reminder: Renew Passport",
        ]

    @pytest.mark.asyncio
    async def test_stats(self, service, dispatcher):
        update = _make_update()
        await cmd_stats(update, _make_context(service, dispatcher))
        assert "Total: 0" in _reply(update)

    @pytest.mark.asyncio
    async def test_check_reports_sweep(self, service, dispatcher):
        update = _make_update()
        await cmd_check(update, _make_context(service, dispatcher))
        assert _reply(update).startswith("Deadline check done: 0 newly overdue")


class TestHandleText:
    @pytest.mark.asyncio
    async def test_reports_tracked_obligations(self, service, dispatcher, extractor, now):
        extractor.return_value = [
            {"kind": "obligation", "title": "Car insurance", "due_date": "2030-09-01"},
            {"kind": "task", "title": "Compare quotes"},
            {"kind": "obligation", "title": "Missing date"},
        ]
        update = _make_update("car insurance renews on Sept 1st")
        await handle_text(update, _make_context(service, dispatcher))

        reply = _reply(update)
        assert "*Now tracking:*" in reply
        assert "Car insurance" in reply
        assert "• Compare quotes" in reply
        assert "1 item(s) skipped" in reply

    @pytest.mark.asyncio
    async def test_nothing_found(self, service, dispatcher):
        update = _make_update("hello")
        await handle_text(update, _make_context(service, dispatcher))
        assert _reply(update) == "I couldn't find any deadline or task in that message."

    @pytest.mark.asyncio
    async def test_import_error_replies_politely(self, dispatcher):
        service = MagicMock()
        service.import_from_text = AsyncMock(side_effect=RuntimeError("boom"))
        update = _make_update("anything")
        await handle_text(update, _make_context(service, dispatcher))
        assert _reply(update).startswith("Sorry, something went wrong")
