from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from ..config import TOPOLOGY_DUAL, TOPOLOGY_SINGLE
from ..errors import RoutingError
from ..models.coordinator_events import LegRole


class RoutingTable:
    """Maps the leg an agent listens to onto the leg its audio is played to."""

    def __init__(self, routes: Mapping[LegRole, LegRole], *, allow_self_route: bool = False) -> None:
        if not routes:
            raise RoutingError("Routing table needs at least one route")
        for source, sink in routes.items():
            if source == sink and not allow_self_route:
                raise RoutingError(f"Agent audio from {source.value} would be played back to its own leg")
        if len(set(routes.values())) != len(routes):
            raise RoutingError("Two agents cannot share one sink")
        self._routes: Dict[LegRole, LegRole] = dict(routes)

    @classmethod
    def single(cls) -> "RoutingTable":
        return cls({LegRole.CALLER: LegRole.CALLER}, allow_self_route=True)

    @classmethod
    def dual(cls) -> "RoutingTable":
        return cls({LegRole.CALLER: LegRole.OPERATOR, LegRole.OPERATOR: LegRole.CALLER})

    @classmethod
    def for_topology(cls, topology: str) -> "RoutingTable":
        if topology == TOPOLOGY_SINGLE:
            return cls.single()
        if topology == TOPOLOGY_DUAL:
            return cls.dual()
        raise RoutingError(f"No routing table for topology '{topology}'")

    @property
    def sources(self) -> List[LegRole]:
        return list(self._routes)

    @property
    def sinks(self) -> List[LegRole]:
        return list(self._routes.values())

    def sink_for(self, source: LegRole) -> LegRole:
        try:
            return self._routes[source]
        except KeyError:
            raise RoutingError(f"No route for agent listening to {source.value}") from None

    def source_for_sink(self, sink: LegRole) -> Optional[LegRole]:
        for source, routed_sink in self._routes.items():
            if routed_sink == sink:
                return source
        return None

    def __repr__(self) -> str:
        routes = ", ".join(f"{src.value}->{dst.value}" for src, dst in self._routes.items())
        return f"RoutingTable({routes})"


__all__ = ["RoutingTable"]
