import asyncio

import pytest

from call_bridge.models import LegRole
from call_bridge.session.echo_gate import EchoGate


def _gate(clock, **kwargs) -> EchoGate:
    return EchoGate("call-1", LegRole.CALLER, clock=clock, **kwargs)


def test_gate_admits_everything_before_agent_speaks(fake_clock):
    gate = _gate(fake_clock)

    assert gate.is_agent_speaking is False
    assert gate.should_admit_inbound_frame() is True
    assert gate.should_treat_as_interruption() is True


@pytest.mark.asyncio
async def test_gate_holds_through_debounce_window(fake_clock):
    gate = _gate(fake_clock, debounce_ms=500)

    gate.on_agent_audio_emitted()
    assert gate.should_admit_inbound_frame() is False

    gate.on_agent_audio_stream_ended()
    assert gate.unlock_deadline_ms == 500

    fake_clock.advance(400)
    assert gate.should_admit_inbound_frame() is False
    assert gate.should_treat_as_interruption() is False

    fake_clock.advance(120)
    assert gate.should_admit_inbound_frame() is True
    assert gate.should_treat_as_interruption() is True
    assert gate.unlock_deadline_ms is None
    gate.shutdown()


@pytest.mark.asyncio
async def test_new_audio_cancels_pending_unlock(fake_clock):
    gate = _gate(fake_clock, debounce_ms=500)

    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()
    assert gate.has_pending_unlock is True

    fake_clock.advance(300)
    gate.on_agent_audio_emitted()
    assert gate.has_pending_unlock is False
    assert gate.unlock_deadline_ms is None

    fake_clock.advance(1_000)
    assert gate.is_agent_speaking is True
    gate.shutdown()


@pytest.mark.asyncio
async def test_rearming_replaces_pending_timer(fake_clock):
    gate = _gate(fake_clock, debounce_ms=500)

    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()
    fake_clock.advance(200)
    gate.on_agent_audio_stream_ended()

    assert gate.unlock_deadline_ms == 700
    fake_clock.advance(400)
    assert gate.is_agent_speaking is True
    fake_clock.advance(100)
    assert gate.is_agent_speaking is False
    gate.shutdown()


@pytest.mark.asyncio
async def test_stream_end_without_audio_is_noop(fake_clock):
    gate = _gate(fake_clock)

    gate.on_agent_audio_stream_ended()

    assert gate.has_pending_unlock is False
    assert gate.unlock_deadline_ms is None


@pytest.mark.asyncio
async def test_timer_unlocks_gate_without_polling():
    gate = EchoGate("call-1", LegRole.CALLER, debounce_ms=20)

    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()
    await asyncio.sleep(0.08)

    assert gate.has_pending_unlock is False
    assert gate.should_admit_inbound_frame() is True


@pytest.mark.asyncio
async def test_zero_debounce_unlocks_immediately(fake_clock):
    gate = _gate(fake_clock, debounce_ms=0)

    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()

    assert gate.is_agent_speaking is False
    assert gate.has_pending_unlock is False


@pytest.mark.asyncio
async def test_shutdown_cancels_timer_and_ignores_later_events(fake_clock):
    gate = _gate(fake_clock, debounce_ms=500)
    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()

    gate.shutdown()

    assert gate.has_pending_unlock is False
    gate.on_agent_audio_emitted()
    gate.on_agent_audio_stream_ended()
    assert gate.has_pending_unlock is False


def test_full_duplex_never_suppresses(fake_clock):
    gate = _gate(fake_clock, half_duplex=False)

    gate.on_agent_audio_emitted()

    assert gate.is_agent_speaking is True
    assert gate.should_admit_inbound_frame() is True
    assert gate.should_treat_as_interruption() is True
