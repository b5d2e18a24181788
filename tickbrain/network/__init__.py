"""Policy/value network used by the reference actor-critic policy."""

from tickbrain.network.model import PolicyValueNet, create_model

__all__ = ['PolicyValueNet', 'create_model']
