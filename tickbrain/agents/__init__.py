"""Per-agent records and the identity-keyed state store."""

from tickbrain.agents.snapshot import AgentIdentity, AgentInfoSnapshot, TakeActionOutput
from tickbrain.agents.state_store import AgentStateStore

__all__ = [
    'AgentIdentity',
    'AgentInfoSnapshot',
    'TakeActionOutput',
    'AgentStateStore',
]
