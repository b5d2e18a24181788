"""
Trajectory Buffer for Processed Transitions

Circular buffer holding transitions whose returns and advantages have already
been computed, ready to be turned into training tensors.

Transition Structure:
    {
        'observation': np.array,   # Stacked vector observation (obs_size,)
        'action': int,             # Discrete action index taken
        'return': float,           # Discounted return
        'advantage': float,        # return - value estimate at the time
        'agent_id': hashable,      # Host identity of the agent
    }

Operations:
    - add_transitions(transitions): Add (FIFO replacement when full)
    - iterate_minibatches(batch_size): Shuffled pass over the whole buffer
    - clear(): Empty buffer
    - __len__(): Current size
"""

import numpy as np
import torch
from typing import Dict, Iterator, List, Any, Optional, Tuple

Batch = Tuple[torch.Tensor, torch.Tensor, torch.Tensor, torch.Tensor]


class TrajectoryBuffer:
    """
    Circular buffer of processed transitions.

    Uses FIFO policy when capacity is exceeded.
    """

    def __init__(self, capacity: int = 10_000, rng: Optional[np.random.Generator] = None):
        """
        Initialize trajectory buffer.

        Args:
            capacity: Maximum number of transitions to store
            rng: Generator used to shuffle minibatches (default: unseeded)
        """
        self.capacity = capacity
        self.rng = rng if rng is not None else np.random.default_rng()
        self.buffer: List[Dict[str, Any]] = []

        # Track position for circular buffer
        self.position = 0
        self.is_full = False

    def add_transitions(self, transitions: List[Dict[str, Any]]):
        """
        Add transitions to the buffer.

        Args:
            transitions: List of transition dictionaries
        """
        for transition in transitions:
            if not self.is_full and len(self.buffer) < self.capacity:
                self.buffer.append(transition)
            else:
                # Buffer is full, replace oldest transition
                self.is_full = True
                self.buffer[self.position] = transition

            self.position = (self.position + 1) % self.capacity

    def _to_tensors(self, transitions: List[Dict[str, Any]], device: str) -> Batch:
        observations = np.stack([t["observation"] for t in transitions]).astype(np.float32)
        actions = np.array([t["action"] for t in transitions], dtype=np.int64)
        returns = np.array([t["return"] for t in transitions], dtype=np.float32)
        advantages = np.array([t["advantage"] for t in transitions], dtype=np.float32)

        return (
            torch.from_numpy(observations).to(device),
            torch.from_numpy(actions).to(device),
            torch.from_numpy(returns).to(device),
            torch.from_numpy(advantages).to(device),
        )

    def iterate_minibatches(self, batch_size: int, device: str = "cpu") -> Iterator[Batch]:
        """
        Yield shuffled minibatches covering every stored transition once.

        The last minibatch may be smaller than batch_size.
        """
        order = self.rng.permutation(len(self.buffer))
        for start in range(0, len(order), batch_size):
            chunk = [self.buffer[i] for i in order[start:start + batch_size]]
            yield self._to_tensors(chunk, device)

    def clear(self):
        """Clear all transitions from the buffer."""
        self.buffer.clear()
        self.position = 0
        self.is_full = False

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get statistics about buffer contents.

        Returns:
            Dictionary with size, capacity, utilization (0-100), number of
            distinct agents and mean return
        """
        if len(self.buffer) == 0:
            return {
                "size": 0,
                "capacity": self.capacity,
                "utilization": 0.0,
                "num_agents": 0,
                "mean_return": 0.0,
            }

        returns = np.array([t["return"] for t in self.buffer], dtype=np.float64)
        return {
            "size": len(self.buffer),
            "capacity": self.capacity,
            "utilization": 100.0 * len(self.buffer) / self.capacity,
            "num_agents": len(set(t["agent_id"] for t in self.buffer)),
            "mean_return": float(returns.mean()),
        }

    def __len__(self) -> int:
        return len(self.buffer)

    def is_ready_for_training(self, min_transitions: int) -> bool:
        """True once at least min_transitions are stored."""
        return len(self.buffer) >= min_transitions
