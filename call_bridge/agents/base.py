from __future__ import annotations

import abc
from typing import Any, AsyncIterator, Dict

from ..models.agent_events import AgentEvent


class AgentConnection(abc.ABC):
    """Transport to one upstream translation agent.

    ``events()`` yields normalized agent events until the connection is
    closed. It returns normally after ``close()`` and raises
    ``AgentTransportError`` when the connection drops on its own.
    """

    name: str

    @abc.abstractmethod
    async def connect(self) -> None:  # pragma: no cover - interface
        ...

    @abc.abstractmethod
    async def send_configuration(self, session_params: Dict[str, Any]) -> None:  # pragma: no cover - interface
        ...

    @abc.abstractmethod
    async def append_audio(self, payload_b64: str) -> None:  # pragma: no cover - interface
        ...

    @abc.abstractmethod
    async def cancel_response(self) -> None:  # pragma: no cover - interface
        ...

    @abc.abstractmethod
    async def close(self) -> None:  # pragma: no cover - interface
        ...

    @abc.abstractmethod
    def events(self) -> AsyncIterator[AgentEvent]:  # pragma: no cover - interface
        ...
