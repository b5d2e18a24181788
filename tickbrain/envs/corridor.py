"""
Corridor environment: a minimal multi-agent host simulation.

Each agent walks a 1-D corridor of `length` cells and is rewarded for
reaching the right end. It plays the host role towards the orchestrator:
observe() produces the snapshot batch for a tick and apply_actions() consumes
the returned action mapping.

Observation (stacked_vector_observation, 4 floats):
    [position / (length - 1), previous position / (length - 1),
     steps used / max_episode_steps, 1.0 if moving right last tick else 0.0]

Actions:
    0 = left, 1 = stay, 2 = right

Rewards:
    +1.0 on reaching the goal (done), -0.01 per step otherwise.
    max_step_reached is reported after max_episode_steps steps.

Terminated agents restart on the next tick with the same identity.
"""

import numpy as np
from typing import Dict, Mapping, Optional

from tickbrain.agents.snapshot import AgentInfoSnapshot

OBSERVATION_SIZE = 4
ACTION_SIZE = 3

GOAL_REWARD = 1.0
STEP_PENALTY = -0.01


class CorridorEnv:
    """N independent agents in a shared-rule corridor."""

    def __init__(
        self,
        num_agents: int = 8,
        length: int = 10,
        max_episode_steps: int = 50,
        seed: Optional[int] = None,
    ):
        """
        Initialize environment.

        Args:
            num_agents: Number of agents (identities 0..num_agents-1)
            length: Number of corridor cells (goal is the last cell)
            max_episode_steps: Steps before an episode is cut
            seed: RNG seed for start positions
        """
        if length < 2:
            raise ValueError(f"length must be at least 2, got {length}")

        self.num_agents = num_agents
        self.length = length
        self.max_episode_steps = max_episode_steps
        self.rng = np.random.default_rng(seed)

        self.inference_mode = False
        self.positions = np.zeros(num_agents, dtype=np.int64)
        self.prev_positions = np.zeros(num_agents, dtype=np.int64)
        self.episode_steps = np.zeros(num_agents, dtype=np.int64)
        self.last_actions = np.ones(num_agents, dtype=np.int64)
        self.rewards = np.zeros(num_agents, dtype=np.float32)
        self.done = np.zeros(num_agents, dtype=bool)
        self.max_step_reached = np.zeros(num_agents, dtype=bool)

        self.episodes_completed = 0
        self.goals_reached = 0

        for agent in range(num_agents):
            self._reset_agent(agent)

    def _reset_agent(self, agent: int):
        start = int(self.rng.integers(0, self.length - 1))
        self.positions[agent] = start
        self.prev_positions[agent] = start
        self.episode_steps[agent] = 0
        self.last_actions[agent] = 1
        self.rewards[agent] = 0.0
        self.done[agent] = False
        self.max_step_reached[agent] = False

    def set_inference_mode(self, inference: bool):
        """Training-mode listener target: inference when not training."""
        self.inference_mode = bool(inference)

    def _snapshot(self, agent: int) -> AgentInfoSnapshot:
        scale = float(self.length - 1)
        obs = [
            self.positions[agent] / scale,
            self.prev_positions[agent] / scale,
            self.episode_steps[agent] / float(self.max_episode_steps),
            1.0 if self.last_actions[agent] == 2 else 0.0,
        ]
        return AgentInfoSnapshot(
            vector_observation=obs[:1],
            stacked_vector_observation=obs,
            stored_vector_actions=np.array([self.last_actions[agent]], dtype=np.float32),
            reward=float(self.rewards[agent]),
            done=bool(self.done[agent]),
            max_step_reached=bool(self.max_step_reached[agent]),
            id=agent,
        )

    def observe(self) -> Dict[int, AgentInfoSnapshot]:
        """Snapshot of every agent for this tick."""
        return {agent: self._snapshot(agent) for agent in range(self.num_agents)}

    def apply_actions(self, actions: Mapping[int, np.ndarray]):
        """
        Advance the simulation by one tick.

        Agents that reported a terminal snapshot this tick restart instead of
        moving. Agents missing from actions stay in place.
        """
        for agent in range(self.num_agents):
            if self.done[agent] or self.max_step_reached[agent]:
                self.episodes_completed += 1
                if self.done[agent]:
                    self.goals_reached += 1
                self._reset_agent(agent)
                continue

            action = 1
            if agent in actions:
                action = int(np.clip(int(round(float(actions[agent][0]))), 0, ACTION_SIZE - 1))

            self.prev_positions[agent] = self.positions[agent]
            self.positions[agent] = int(np.clip(self.positions[agent] + action - 1, 0, self.length - 1))
            self.last_actions[agent] = action
            self.episode_steps[agent] += 1

            if self.positions[agent] == self.length - 1:
                self.rewards[agent] = GOAL_REWARD
                self.done[agent] = True
            else:
                self.rewards[agent] = STEP_PENALTY
                if self.episode_steps[agent] >= self.max_episode_steps:
                    self.max_step_reached[agent] = True

    def success_rate(self) -> float:
        """Fraction of completed episodes that reached the goal."""
        if self.episodes_completed == 0:
            return 0.0
        return self.goals_reached / self.episodes_completed
