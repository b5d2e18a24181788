"""
Trainable Policy Contract

TrainablePolicy is the interface the ExperienceOrchestrator drives every
tick. Subclass it to plug in any learning algorithm; the base class already
implements the bookkeeping every algorithm shares:

    - training switch and the training-mode toggle event
    - step counter with periodic checkpoint saves
    - learning-rate push before each tick
    - checkpoint save/load through CheckpointManager
    - identity action post-processing
    - batching helpers for vector and visual observations

Subclasses implement:
    - initialize(): build model/optimizer/buffers
    - take_action(infos): actions for the given agents
    - add_experience(current, new, actions): record transitions
    - process_experience(current, new): turn recorded data into training data
    - is_ready_update() / update_model(): train when enough data exists
    - set_learning_rate(lr)
    - save_checkpoint() / set_all_model_weights() / set_all_optimizer_weights()

Optional overrides:
    - check_checkpoint(blobs): reject a checkpoint before anything is applied
    - forget_agents(agents): drop per-agent data of evicted agents
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from tickbrain.agents.snapshot import AgentIdentity, AgentInfoSnapshot, TakeActionOutput
from tickbrain.config import TrainerConfig
from tickbrain.errors import CheckpointNotFoundError, CorruptCheckpointError
from tickbrain.training.checkpoint import CheckpointManager, NamedBlobs, resolve_path

logger = logging.getLogger(__name__)

TrainingListener = Callable[[bool], None]


class TrainablePolicy(ABC):
    """
    Base class for policies driven by ExperienceOrchestrator.

    Single-threaded: every method is called from the host's control thread.
    """

    def __init__(
        self,
        config: TrainerConfig,
        checkpoint_manager: Optional[CheckpointManager] = None,
    ):
        """
        Initialize policy bookkeeping.

        Args:
            config: Trainer configuration
            checkpoint_manager: Checkpoint I/O (default: CheckpointManager())
        """
        self.config = config
        self.checkpoint_manager = checkpoint_manager or CheckpointManager()

        self._is_training = config.is_training
        self._prev_is_training = self._is_training
        self._training_listeners: List[TrainingListener] = []

        self.steps = 0

    # ------------------------------------------------------------------
    # Training switch
    # ------------------------------------------------------------------

    @property
    def is_training(self) -> bool:
        return self._is_training

    @is_training.setter
    def is_training(self, value: bool):
        # Listeners are notified on the next before_tick(), not here
        self._is_training = bool(value)

    def add_training_listener(self, listener: TrainingListener, notify: bool = True):
        """
        Register a callback for training-mode changes.

        Args:
            listener: Called with the new is_training value
            notify: Call listener immediately with the current value, so a
                collaborator such as the simulation's inference flag starts in
                sync
        """
        self._training_listeners.append(listener)
        if notify:
            listener(self._is_training)

    def before_tick(self):
        """
        Per-tick housekeeping, called by the orchestrator before any hook.

        Emits the training-mode toggle event when is_training changed since
        the previous tick, then pushes the configured learning rate while
        training.
        """
        if self._prev_is_training != self._is_training:
            self._prev_is_training = self._is_training
            logger.info(f"Training mode changed: is_training={self._is_training}")
            for listener in self._training_listeners:
                listener(self._is_training)

        if self._is_training:
            self.set_learning_rate(self.config.learning_rate)

    # ------------------------------------------------------------------
    # Step bookkeeping
    # ------------------------------------------------------------------

    def get_max_step(self) -> int:
        return self.config.max_total_steps

    def get_step(self) -> int:
        return self.steps

    def increment_step(self):
        """Advance the step counter; saves a checkpoint every save_model_interval steps."""
        self.steps += 1
        if self.steps % self.config.save_model_interval == 0:
            self.save_model()

    def reset_trainer(self):
        """Reset the step counter."""
        self.steps = 0

    def postprocessing_action(self, raw_action: np.ndarray) -> np.ndarray:
        """
        Transform the action the host receives. Recorded experience is not
        affected. Identity by default.
        """
        return raw_action

    def forget_agents(self, agents: Sequence[AgentIdentity]):
        """
        Called after agents are evicted from the orchestrator's store.

        Their next sighting starts a new episode, so any per-agent data
        still held for them belongs to a finished one. No-op by default.
        """

    # ------------------------------------------------------------------
    # Checkpointing
    # ------------------------------------------------------------------

    def checkpoint_file(self):
        """Full checkpoint path, or None when no file name is configured."""
        if not self.config.checkpoint_file_name:
            return None
        return resolve_path(self.config.checkpoint_path, self.config.checkpoint_file_name)

    def save_model(self):
        """Save weights, optimizer state and step counter to the checkpoint path."""
        path = self.checkpoint_file()
        if path is None:
            logger.warning("checkpoint_file_name empty, model not saved")
            return None
        return self.checkpoint_manager.save(self, self.steps, path)

    def load_model(self) -> bool:
        """
        Load weights, optimizer state and step counter from the checkpoint path.

        A missing file is a cold start. A corrupt file is reported and
        skipped, leaving the in-memory model untouched.

        Returns:
            True if a checkpoint was applied
        """
        path = self.checkpoint_file()
        if path is None:
            logger.warning("checkpoint_file_name empty, model not loaded")
            return False

        try:
            self.steps = self.checkpoint_manager.load(self, path)
        except CheckpointNotFoundError:
            logger.info(f"Model checkpoint does not exist at {path}, starting fresh")
            return False
        except CorruptCheckpointError as e:
            logger.error(f"Checkpoint not restored: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Batching helpers
    # ------------------------------------------------------------------

    @staticmethod
    def create_vector_input_batch(
        infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        agents: Sequence[AgentIdentity],
    ) -> Optional[np.ndarray]:
        """
        Stack the stacked vector observations of agents into one batch.

        Args:
            infos: Snapshots keyed by agent
            agents: Agents to include, in row order

        Returns:
            (len(agents), obs_size) float32 array, or None if there is nothing
            to batch
        """
        if len(infos) == 0 or len(agents) == 0:
            return None
        obs_size = len(infos[agents[0]].stacked_vector_observation)
        if obs_size == 0:
            return None

        result = np.zeros((len(agents), obs_size), dtype=np.float32)
        for i, agent in enumerate(agents):
            result[i] = infos[agent].stacked_vector_observation
        return result

    @staticmethod
    def create_visual_input_batch(
        infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        agents: Sequence[AgentIdentity],
        num_cameras: int,
    ) -> Optional[List[np.ndarray]]:
        """
        Batch visual observations per camera.

        Args:
            infos: Snapshots keyed by agent
            agents: Agents to include, in row order
            num_cameras: Number of visual observations per agent

        Returns:
            One (len(agents), H, W, C) array per camera, or None if there is
            nothing to batch
        """
        if num_cameras <= 0:
            return None
        if len(infos) == 0 or len(agents) == 0:
            return None

        batches = []
        for camera in range(num_cameras):
            frames = [np.asarray(infos[agent].visual_observations[camera], dtype=np.float32)
                      for agent in agents]
            batches.append(np.stack(frames))
        return batches

    # ------------------------------------------------------------------
    # Algorithm hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def initialize(self):
        """Build model, optimizer and buffers."""

    @abstractmethod
    def take_action(
        self,
        infos: Mapping[AgentIdentity, AgentInfoSnapshot],
    ) -> Dict[AgentIdentity, TakeActionOutput]:
        """Actions for every agent in infos that has a usable observation."""

    @abstractmethod
    def add_experience(
        self,
        current_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        new_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        action_outputs: Mapping[AgentIdentity, TakeActionOutput],
    ):
        """
        Record transitions.

        Args:
            current_infos: Agent state before the action was taken
            new_infos: Agent state after the action was taken
            action_outputs: The action taken from current_infos
        """

    @abstractmethod
    def process_experience(
        self,
        current_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        new_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
    ):
        """Post-process recorded data. Always called right after add_experience()."""

    @abstractmethod
    def is_ready_update(self) -> bool:
        """When True, update_model() is called."""

    @abstractmethod
    def update_model(self):
        """Train the model on the collected data."""

    @abstractmethod
    def set_learning_rate(self, learning_rate: float):
        """Apply a learning rate to the optimizer."""

    @abstractmethod
    def save_checkpoint(self) -> NamedBlobs:
        """Named tensors capturing model weights and optimizer state."""

    def check_checkpoint(self, blobs: NamedBlobs):
        """
        Reject a checkpoint this policy cannot apply, before anything is applied.

        Raises:
            CorruptCheckpointError: If blobs do not fit the policy
        """

    @abstractmethod
    def set_all_model_weights(self, blobs: NamedBlobs):
        """Restore model weights from a named tensor map."""

    @abstractmethod
    def set_all_optimizer_weights(self, blobs: NamedBlobs):
        """Restore optimizer state from a named tensor map."""
