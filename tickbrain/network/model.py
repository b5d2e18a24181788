"""
Neural network model for the reference actor-critic policy.

This module implements PolicyValueNet, a small MLP that:
- Takes stacked vector observations as input (batch, observation_size)
- Outputs action logits (policy head) and a value estimate (value head)

The forward pass runs inside the host's tick, usually on CPU.
"""

import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import Tuple


class PolicyValueNet(nn.Module):
    """
    Dual-head MLP for discrete-action actor-critic.

    Architecture:
        Input (observation_size) → Linear → Tanh → Linear → Tanh → Dual Heads
        - Policy head: logits over action_size discrete actions
        - Value head: unbounded scalar state value
    """

    def __init__(
        self,
        observation_size: int,
        action_size: int,
        hidden_dim: int = 64,
    ):
        """
        Initialize PolicyValueNet.

        Args:
            observation_size: Length of the stacked vector observation
            action_size: Number of discrete actions
            hidden_dim: Width of the shared trunk (default: 64)
        """
        super(PolicyValueNet, self).__init__()

        self.observation_size = observation_size
        self.action_size = action_size
        self.hidden_dim = hidden_dim

        self.trunk = nn.Sequential(
            nn.Linear(observation_size, hidden_dim),
            nn.Tanh(),
            nn.Linear(hidden_dim, hidden_dim),
            nn.Tanh(),
        )
        self.policy_head = nn.Linear(hidden_dim, action_size)
        self.value_head = nn.Linear(hidden_dim, 1)

        self._init_weights()

    def _init_weights(self):
        """Orthogonal init for the trunk, small policy head so early actions are near uniform."""
        for module in self.trunk:
            if isinstance(module, nn.Linear):
                nn.init.orthogonal_(module.weight, gain=2 ** 0.5)
                nn.init.zeros_(module.bias)
        nn.init.orthogonal_(self.policy_head.weight, gain=0.01)
        nn.init.zeros_(self.policy_head.bias)
        nn.init.orthogonal_(self.value_head.weight, gain=1.0)
        nn.init.zeros_(self.value_head.bias)

    def forward(self, observation: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Forward pass through the network.

        Args:
            observation: (batch_size, observation_size) or (observation_size,)

        Returns:
            logits: (batch_size, action_size) or (action_size,)
            value: (batch_size,) or scalar tensor
        """
        single_input = observation.dim() == 1
        if single_input:
            observation = observation.unsqueeze(0)

        x = self.trunk(observation)
        logits = self.policy_head(x)
        value = self.value_head(x).squeeze(-1)

        if single_input:
            logits = logits.squeeze(0)
            value = value.squeeze(0)

        return logits, value

    def action_distribution(self, observation: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Action probabilities and values.

        Returns:
            probabilities: softmax over the policy logits
            value: state value estimates
        """
        logits, value = self.forward(observation)
        return F.softmax(logits, dim=-1), value

    def get_num_parameters(self) -> int:
        """
        Get total number of trainable parameters.

        Returns:
            Number of parameters
        """
        return sum(p.numel() for p in self.parameters() if p.requires_grad)


def create_model(
    observation_size: int,
    action_size: int,
    device: str = 'cpu',
    **kwargs
) -> PolicyValueNet:
    """
    Factory function to create PolicyValueNet model.

    Args:
        observation_size: Length of the stacked vector observation
        action_size: Number of discrete actions
        device: Device to place model on (default: 'cpu')
        **kwargs: Additional arguments passed to PolicyValueNet constructor

    Returns:
        PolicyValueNet model instance

    Example:
        >>> model = create_model(observation_size=4, action_size=3)
        >>> print(f"Model has {model.get_num_parameters():,} parameters")
    """
    model = PolicyValueNet(observation_size=observation_size, action_size=action_size, **kwargs)
    model.to(device)
    return model
