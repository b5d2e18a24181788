"""
Training package for tickbrain.

Main Components:
    - TrainablePolicy: Contract (and shared bookkeeping) for any learning algorithm
    - ExperienceOrchestrator: Per-tick experience collection and update driver
    - CheckpointManager: Named tensor map checkpoints with the step counter
    - TrajectoryBuffer: Processed transitions ready for training
    - ActorCriticPolicy: Reference advantage actor-critic implementation
"""

from tickbrain.training.checkpoint import CheckpointManager, STEPS_KEY, resolve_path
from tickbrain.training.policy import TrainablePolicy
from tickbrain.training.orchestrator import ExperienceOrchestrator
from tickbrain.training.trajectory_buffer import TrajectoryBuffer
from tickbrain.training.actor_critic import ActorCriticPolicy, compute_returns

__all__ = [
    "CheckpointManager",
    "STEPS_KEY",
    "resolve_path",
    "TrainablePolicy",
    "ExperienceOrchestrator",
    "TrajectoryBuffer",
    "ActorCriticPolicy",
    "compute_returns",
]
