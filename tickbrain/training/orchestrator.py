"""
Experience Orchestrator

Per-tick controller between the host simulation and a TrainablePolicy.

Each call to on_tick(batch) does, in order:
    1. Find recordable agents (stored snapshot AND stored action output)
    2. add_experience + process_experience for them (training, under max step)
    3. increment_step once (training, under max step)
    4. Store deep copies of the new snapshots
    5. take_action for every agent in the batch, store the outputs
    6. Post-process defined actions and return them
    7. update_model once if the policy is ready (training, under max step)
    8. Evict agents whose snapshot is done / max_step_reached and tell the
       policy to forget them

Old snapshots are read (1-2) before they are overwritten (4), so a transition
never pairs the new state with itself. Newly seen agents act immediately but
only become recordable on their next tick. Eviction comes last so a terminal
transition is recorded once before the entry is dropped.

Exceptions from policy hooks propagate; store mutations already applied are
kept, and resending the same batch re-derives steps 4-5 identically.
"""

import logging
from typing import Dict, Mapping, Optional

import numpy as np

from tickbrain.agents.snapshot import AgentIdentity, AgentInfoSnapshot
from tickbrain.agents.state_store import AgentStateStore, ReleaseHook
from tickbrain.errors import ConfigurationError
from tickbrain.training.policy import TrainablePolicy

logger = logging.getLogger(__name__)


class ExperienceOrchestrator:
    """
    Drives a TrainablePolicy from per-tick agent snapshot batches.

    Owns the AgentStateStore; nothing else writes to it.
    """

    def __init__(
        self,
        policy: Optional[TrainablePolicy],
        release_buffers: Optional[ReleaseHook] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            policy: Policy to drive
            release_buffers: Optional hook freeing a replaced snapshot's
                transient buffers (see AgentStateStore)

        Raises:
            ConfigurationError: If no policy is given
        """
        if policy is None:
            raise ConfigurationError("No policy attached: ExperienceOrchestrator needs a TrainablePolicy")
        self.policy = policy
        self.store = AgentStateStore(release_buffers=release_buffers)
        self.initialized = False

    def initialize(self):
        """
        Initialize the policy and, if configured, resume from its checkpoint.

        Returns:
            True if a checkpoint was restored
        """
        self.policy.initialize()
        restored = False
        if self.policy.config.continue_from_checkpoint:
            restored = self.policy.load_model()
        self.initialized = True
        logger.info(
            f"Orchestrator initialized (training={self.policy.is_training}, "
            f"step={self.policy.get_step()}, restored={restored})"
        )
        return restored

    def _can_train(self) -> bool:
        return self.policy.is_training and self.policy.get_step() <= self.policy.get_max_step()

    def on_tick(
        self,
        new_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
    ) -> Dict[AgentIdentity, np.ndarray]:
        """
        Process one host tick.

        Args:
            new_infos: Fresh snapshot of every agent requesting a decision

        Returns:
            Post-processed action per agent; agents without an action are
            omitted
        """
        if len(new_infos) == 0:
            return {}

        policy = self.policy
        policy.before_tick()

        new_agents = list(new_infos.keys())
        recordable = self.store.recordable(new_agents)

        if recordable and self._can_train():
            prev_infos = self.store.snapshots_for(recordable)
            prev_actions = self.store.actions_for(recordable)
            recorded_infos = {a: new_infos[a] for a in recordable}
            policy.add_experience(prev_infos, recorded_infos, prev_actions)
            policy.process_experience(prev_infos, recorded_infos)

        # Counts ticks, not transitions
        if self._can_train():
            policy.increment_step()

        self.store.put_snapshots(new_infos)

        action_outputs = policy.take_action(self.store.snapshots_for(new_agents))
        self.store.put_action_outputs(action_outputs)

        actions = {}
        for agent in new_agents:
            output = action_outputs.get(agent)
            if output is not None and output.output_action is not None:
                actions[agent] = policy.postprocessing_action(output.output_action)

        if policy.is_ready_update() and self._can_train():
            logger.debug(f"Updating model at step {policy.get_step()}")
            policy.update_model()

        evicted = [a for a in new_agents if new_infos[a].is_terminal and self.store.evict(a)]
        if evicted:
            policy.forget_agents(evicted)

        return actions

    def reset(self):
        """Forget every tracked agent."""
        tracked = self.store.agents()
        self.store.clear()
        if tracked:
            self.policy.forget_agents(tracked)

    @property
    def num_tracked_agents(self) -> int:
        return len(self.store)

    def is_tracked(self, agent: AgentIdentity) -> bool:
        return agent in self.store
