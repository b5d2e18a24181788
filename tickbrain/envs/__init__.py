"""Host simulations used to drive the orchestrator."""

from tickbrain.envs.corridor import CorridorEnv, OBSERVATION_SIZE, ACTION_SIZE

__all__ = ['CorridorEnv', 'OBSERVATION_SIZE', 'ACTION_SIZE']
