"""
Agent State Store

Keeps, per agent identity, the most recent snapshot and the most recent
action output. The orchestrator is the only writer.

Lifecycle:
    - created on first sighting (put_snapshots)
    - replaced every tick the agent appears
    - evicted after the tick in which the agent reports done/max_step_reached
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from tickbrain.agents.snapshot import AgentIdentity, AgentInfoSnapshot, TakeActionOutput

logger = logging.getLogger(__name__)

ReleaseHook = Callable[[AgentInfoSnapshot], None]


class AgentStateStore:
    """
    Identity-keyed map of (previous snapshot, previous action output).

    The two halves are kept in separate dicts because they are written at
    different points of a tick: snapshots before take_action, outputs after.
    """

    def __init__(self, release_buffers: Optional[ReleaseHook] = None):
        """
        Initialize an empty store.

        Args:
            release_buffers: Called with a stored snapshot right before it is
                replaced or evicted, so the host can free transient buffers
                (e.g. image handles) held by that snapshot.
        """
        self.release_buffers = release_buffers
        self._snapshots: Dict[AgentIdentity, AgentInfoSnapshot] = {}
        self._actions: Dict[AgentIdentity, TakeActionOutput] = {}

    def recordable(self, agents: Iterable[AgentIdentity]) -> List[AgentIdentity]:
        """
        Agents that have both a stored snapshot and a stored action output.

        Order of the input is preserved.
        """
        return [a for a in agents if a in self._snapshots and a in self._actions]

    def put_snapshots(self, new_infos: Mapping[AgentIdentity, AgentInfoSnapshot]):
        """
        Insert or replace stored snapshots with deep copies of new_infos.

        Args:
            new_infos: Fresh snapshots keyed by agent
        """
        for agent, info in new_infos.items():
            previous = self._snapshots.get(agent)
            if previous is not None:
                self._release(previous)
            self._snapshots[agent] = info.copy()

    def put_action_outputs(self, outputs: Mapping[AgentIdentity, TakeActionOutput]):
        """Insert or replace stored action outputs."""
        for agent, output in outputs.items():
            self._actions[agent] = output

    def snapshots_for(self, agents: Iterable[AgentIdentity]) -> Dict[AgentIdentity, AgentInfoSnapshot]:
        """
        Stored snapshots for the given agents.

        Raises:
            KeyError: If an agent has no stored snapshot
        """
        return {a: self._snapshots[a] for a in agents}

    def actions_for(self, agents: Iterable[AgentIdentity]) -> Dict[AgentIdentity, TakeActionOutput]:
        """
        Stored action outputs for the given agents.

        Raises:
            KeyError: If an agent has no stored action output
        """
        return {a: self._actions[a] for a in agents}

    def get_snapshot(self, agent: AgentIdentity) -> Optional[AgentInfoSnapshot]:
        return self._snapshots.get(agent)

    def get_action(self, agent: AgentIdentity) -> Optional[TakeActionOutput]:
        return self._actions.get(agent)

    def evict(self, agent: AgentIdentity) -> bool:
        """
        Remove both halves of an agent's entry.

        Returns:
            True if anything was removed
        """
        snapshot = self._snapshots.pop(agent, None)
        action = self._actions.pop(agent, None)
        if snapshot is not None:
            self._release(snapshot)
        removed = snapshot is not None or action is not None
        if removed:
            logger.debug(f"Evicted agent {agent!r}")
        return removed

    def agents(self) -> List[AgentIdentity]:
        """Every agent with any stored state."""
        return list(self._snapshots.keys() | self._actions.keys())

    def clear(self):
        """Evict every agent."""
        for agent in list(self._snapshots.keys()):
            self.evict(agent)
        self._actions.clear()

    def _release(self, snapshot: AgentInfoSnapshot):
        if self.release_buffers is not None:
            self.release_buffers(snapshot)

    def __contains__(self, agent: AgentIdentity) -> bool:
        return agent in self._snapshots or agent in self._actions

    def __len__(self) -> int:
        """Number of agents with any stored state."""
        return len(self._snapshots.keys() | self._actions.keys())
