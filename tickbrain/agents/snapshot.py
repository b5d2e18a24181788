"""
Per-agent data records exchanged with the host simulation.

AgentInfoSnapshot is one agent's observation/reward/termination state for a
single tick. TakeActionOutput is what the policy produced for that agent.

The host may reuse or free its own buffers right after handing a batch over,
so anything kept across ticks must be a copy made with
AgentInfoSnapshot.copy().
"""

from dataclasses import dataclass, field
from typing import Hashable, List, Optional

import numpy as np

# Stable handle issued by the host for the lifetime of an agent's episode
AgentIdentity = Hashable


@dataclass
class AgentInfoSnapshot:
    """
    Observation and termination state of one agent at one tick.

    Fields:
        vector_observation: Raw vector observation for this tick
        stacked_vector_observation: Vector observation stacked over recent ticks
            (what the network consumes)
        visual_observations: One HWC float array per camera
        text_observation: Optional free-form text observation
        stored_vector_actions: Last action applied by the host (fixed size)
        stored_text_actions: Last text action applied by the host
        memories: Recurrent memory values carried by the host
        reward: Reward received since the previous tick
        done: Episode ended this tick
        max_step_reached: Episode was cut by the host's step limit
        id: Host-side numeric id of the agent
    """

    vector_observation: List[float] = field(default_factory=list)
    stacked_vector_observation: List[float] = field(default_factory=list)
    visual_observations: List[np.ndarray] = field(default_factory=list)
    text_observation: Optional[str] = None
    stored_vector_actions: np.ndarray = field(
        default_factory=lambda: np.zeros(0, dtype=np.float32)
    )
    stored_text_actions: Optional[str] = None
    memories: List[float] = field(default_factory=list)
    reward: float = 0.0
    done: bool = False
    max_step_reached: bool = False
    id: int = 0

    @property
    def is_terminal(self) -> bool:
        """True if this tick ends the agent's episode for any reason."""
        return self.done or self.max_step_reached

    def copy(self) -> 'AgentInfoSnapshot':
        """
        Deep copy that owns every buffer.

        Each list and array is copied explicitly; strings and scalars are
        immutable and shared.

        Returns:
            Independent AgentInfoSnapshot
        """
        return AgentInfoSnapshot(
            vector_observation=list(self.vector_observation),
            stacked_vector_observation=list(self.stacked_vector_observation),
            visual_observations=[np.array(v, copy=True) for v in self.visual_observations],
            text_observation=self.text_observation,
            stored_vector_actions=np.array(self.stored_vector_actions, dtype=np.float32, copy=True),
            stored_text_actions=self.stored_text_actions,
            memories=list(self.memories),
            reward=float(self.reward),
            done=bool(self.done),
            max_step_reached=bool(self.max_step_reached),
            id=self.id,
        )


@dataclass
class TakeActionOutput:
    """
    Policy output for one agent at one tick.

    output_action is None when the policy has no action for the agent; the
    host then treats the tick as a no-op for it.
    """

    output_action: Optional[np.ndarray] = None
    all_probabilities: Optional[np.ndarray] = None  # used for RL
    value: float = 0.0  # used for RL
