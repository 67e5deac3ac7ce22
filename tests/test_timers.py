import asyncio

import pytest

from fakes import CUSTOMER, Harness, make_settings
from orderbot.ordering import texts
from orderbot.ordering.timers import InactivitySupervisor
from orderbot.transport import InboundMessage


def _noop_supervisor(**kw) -> InactivitySupervisor:
    async def _cb(identity, token):
        return None

    return InactivitySupervisor(kw.get("warning_after", 10), kw.get("terminate_after", 20), _cb, _cb)


class TestInactivitySupervisor:
    def test_terminate_must_come_after_warning(self):
        with pytest.raises(ValueError):
            _noop_supervisor(warning_after=10, terminate_after=10)

    def test_arm_and_cancel(self):
        async def _go():
            sup = _noop_supervisor()
            token = sup.arm("a")
            assert sup.is_current("a", token)
            assert sup.pending("a") == 2
            sup.cancel("a")
            assert not sup.is_current("a", token)
            assert sup.pending("a") == 0

        asyncio.run(_go())

    def test_rearm_invalidates_previous_token(self):
        fired = []

        async def _go():
            async def _warn(identity, token):
                fired.append(token)

            async def _term(identity, token):
                return None

            sup = InactivitySupervisor(0.05, 1.0, _warn, _term)
            first = sup.arm("a")
            second = sup.arm("a")
            await asyncio.sleep(0.15)
            assert fired == [second]
            assert first != second
            sup.cancel_all("a")

        asyncio.run(_go())

    def test_cancel_all_drops_reminders(self):
        fired = []

        async def _go():
            sup = _noop_supervisor()

            async def _remind():
                fired.append("x")

            sup.schedule("a", "proof_reminder", 0.05, _remind)
            sup.cancel_all("a")
            await asyncio.sleep(0.1)

        asyncio.run(_go())
        assert fired == []

    def test_failing_callback_is_logged_not_raised(self):
        async def _go():
            sup = _noop_supervisor()

            async def _boom():
                raise RuntimeError("boom")

            sup.schedule("a", "r", 0.01, _boom)
            await asyncio.sleep(0.05)

        asyncio.run(_go())


# -------------------
# Engine integration
# -------------------
def _fast_bot(**overrides) -> Harness:
    cfg = dict(inactivity_warning_seconds=0.05, inactivity_timeout_seconds=0.2)
    cfg.update(overrides)
    return Harness(settings=make_settings(**cfg))


def test_warning_then_termination_exactly_once():
    bot = _fast_bot()

    async def _go():
        await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body="1"))
        await asyncio.sleep(0.5)

    asyncio.run(_go())
    sent = bot.transport.texts()
    assert sent.count(texts.INACTIVITY_WARNING) == 1
    assert sent.count(texts.INACTIVITY_TIMEOUT) == 1
    assert sent[-1] == texts.INACTIVITY_TIMEOUT
    assert not bot.session().active
    assert bot.session().cart == []


def test_message_before_deadline_cancels_timers():
    bot = _fast_bot(inactivity_warning_seconds=0.15, inactivity_timeout_seconds=0.3)

    async def _go():
        await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body="1"))
        await asyncio.sleep(0.1)
        await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body="2"))
        await asyncio.sleep(0.1)
        assert texts.INACTIVITY_WARNING not in bot.transport.texts()
        assert bot.engine.supervisor.pending(CUSTOMER) == 2
        bot.engine.supervisor.cancel_all(CUSTOMER)

    asyncio.run(_go())


def test_finished_session_has_no_timers():
    bot = _fast_bot()

    async def _go():
        await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body="2"))
        assert bot.engine.supervisor.pending(CUSTOMER) == 0
        await asyncio.sleep(0.3)

    asyncio.run(_go())
    assert texts.INACTIVITY_WARNING not in bot.transport.texts()


def test_proof_reminder_fires_while_waiting():
    bot = _fast_bot(inactivity_warning_seconds=5, inactivity_timeout_seconds=10, proof_reminder_seconds=0.05)

    async def _go():
        for body in ("1", "2", "3", "2", "2", "4", "Jane", "Main St 1", "2", "3001234567"):
            await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body=body))
        await asyncio.sleep(0.15)
        bot.engine.supervisor.cancel_all(CUSTOMER)

    asyncio.run(_go())
    assert bot.transport.texts().count(texts.PROOF_REMINDER) == 1


def test_verification_notice_while_pending():
    bot = _fast_bot(
        inactivity_warning_seconds=5,
        inactivity_timeout_seconds=10,
        proof_reminder_seconds=0.05,
        verification_notice_seconds=0.05,
    )

    async def _go():
        for body in ("1", "2", "3", "2", "2", "4", "Jane", "Main St 1", "2", "3001234567"):
            await bot.engine.handle_message(InboundMessage(sender=CUSTOMER, body=body))
        await bot.engine.handle_message(
            InboundMessage(sender=CUSTOMER, has_media=True, media_id="m1", media_mimetype="image/jpeg")
        )
        await asyncio.sleep(0.15)
        bot.engine.supervisor.cancel_all(CUSTOMER)

    asyncio.run(_go())
    sent = bot.transport.texts()
    assert sent.count(texts.VERIFICATION_SLOW) == 1
    # the proof arrived before the reminder was due
    assert texts.PROOF_REMINDER not in sent
