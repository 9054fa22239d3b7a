import asyncio

import pytest

from call_bridge.config import Config
from call_bridge.models import AgentEvent, AgentEventType, LegRole
from call_bridge.session.session_manager import SessionManager


def _manager(agent_factory, topology: str = "single") -> SessionManager:
    config = Config.from_dict({"agent": {"api_key": "test-key"}, "bridge": {"topology": topology}})
    return SessionManager(config, agent_factory=agent_factory)


@pytest.mark.asyncio
async def test_call_leg_runs_until_stop(agent_factory, fake_ws, eventually, caplog):
    manager = _manager(agent_factory)
    task = asyncio.create_task(manager.handle_call_leg(fake_ws))

    fake_ws.feed({"event": "connected"})
    fake_ws.feed({"event": "start", "start": {"streamSid": "MZ1", "customParameters": {"originLang": "French"}}})
    await eventually(lambda: LegRole.CALLER in agent_factory.connections)
    agent = agent_factory.connections[LegRole.CALLER]
    await eventually(lambda: agent.configurations)
    assert manager.get_active_count() == 1

    with caplog.at_level("WARNING"):
        fake_ws.feed("garbage")
        agent.emit(AgentEvent(AgentEventType.CONFIGURATION_ACKNOWLEDGED))
        fake_ws.feed({"event": "media", "streamSid": "MZ1", "media": {"payload": "AAA"}})
        await eventually(lambda: agent.audio == ["AAA"])
    assert "call_leg_malformed_message" in caplog.text

    agent.emit(AgentEvent.audio_chunk("BBB", response_id="resp-1"))
    await eventually(lambda: any(m["event"] == "media" for m in fake_ws.sent_json()))
    assert fake_ws.sent_json()[0] == {"event": "media", "streamSid": "MZ1", "media": {"payload": "BBB"}}

    fake_ws.feed({"event": "stop", "streamSid": "MZ1"})
    await asyncio.wait_for(task, timeout=1.0)

    assert manager.get_active_count() == 0
    assert agent.closed is True
    assert fake_ws.closed is True


@pytest.mark.asyncio
async def test_call_leg_disconnect_tears_down_call(agent_factory, fake_ws, eventually):
    manager = _manager(agent_factory)
    task = asyncio.create_task(manager.handle_call_leg(fake_ws))
    fake_ws.feed({"event": "start", "start": {"streamSid": "MZ1"}})
    await eventually(lambda: LegRole.CALLER in agent_factory.connections)

    fake_ws.feed_close()
    await asyncio.wait_for(task, timeout=1.0)

    assert agent_factory.connections[LegRole.CALLER].closed is True
    assert manager.get_active_count() == 0


@pytest.mark.asyncio
async def test_operator_leg_registers_and_unregisters(agent_factory, fake_ws, eventually):
    manager = _manager(agent_factory, topology="dual")
    task = asyncio.create_task(manager.handle_operator_leg(fake_ws))

    await eventually(lambda: manager.registry.waiting is not None)
    assert fake_ws.sent_json() == [{"type": "status", "message": "waiting"}]

    fake_ws.feed_close()
    await asyncio.wait_for(task, timeout=1.0)
    assert manager.registry.waiting is None
    assert manager.operators == {}


@pytest.mark.asyncio
async def test_shutdown_all_terminates_active_calls(agent_factory, fake_ws, eventually):
    manager = _manager(agent_factory)
    task = asyncio.create_task(manager.handle_call_leg(fake_ws))
    fake_ws.feed({"event": "start", "start": {"streamSid": "MZ1"}})
    await eventually(lambda: LegRole.CALLER in agent_factory.connections)

    await manager.shutdown_all()
    await asyncio.wait_for(task, timeout=1.0)

    assert manager.get_active_count() == 0
    assert fake_ws.closed is True
