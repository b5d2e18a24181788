"""
Trainer Configuration System

Centralized configuration for the tick-driven training loop and the
reference actor-critic policy.
"""

import json
from dataclasses import dataclass, asdict
from typing import Dict, Any

from tickbrain.errors import ConfigurationError


@dataclass
class TrainerConfig:
    """Configuration for the training loop."""

    # Master switch: add/process experience, step counting and updates
    is_training: bool = True
    max_total_steps: int = 100_000
    learning_rate: float = 3e-4  # Pushed into the policy every tick while training

    # Checkpointing
    save_model_interval: int = 1_000  # Steps between checkpoint writes
    continue_from_checkpoint: bool = True
    checkpoint_path: str = 'checkpoints'
    checkpoint_file_name: str = 'checkpoint.pth'

    # Reference actor-critic settings
    gamma: float = 0.99
    time_horizon: int = 64  # Pending trajectories are cut at this length
    batch_size: int = 256  # Transitions required before update_model()
    num_epochs: int = 3
    buffer_capacity: int = 10_000
    hidden_dim: int = 64
    value_loss_weight: float = 0.5
    entropy_weight: float = 0.01
    max_grad_norm: float = 1.0

    # Hardware settings
    device: str = 'cpu'

    # Logging
    log_dir: str = 'runs'

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert config to dictionary.

        Returns:
            Dictionary representation of config
        """
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'TrainerConfig':
        """
        Create config from dictionary.

        Args:
            config_dict: Dictionary of configuration values

        Returns:
            TrainerConfig instance
        """
        # Filter out keys that aren't valid config fields
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_dict = {k: v for k, v in config_dict.items() if k in valid_keys}
        return cls(**filtered_dict)

    @classmethod
    def from_file(cls, filepath: str) -> 'TrainerConfig':
        """
        Load config from JSON file.

        Args:
            filepath: Path to JSON config file

        Returns:
            TrainerConfig instance
        """
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)

    def save(self, filepath: str):
        """
        Save config to JSON file.

        Args:
            filepath: Path to save config to
        """
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if config is valid

        Raises:
            ConfigurationError: If config values are invalid
        """
        if self.max_total_steps <= 0:
            raise ConfigurationError(
                f"max_total_steps must be positive, got {self.max_total_steps}"
            )

        if self.save_model_interval <= 0:
            raise ConfigurationError(
                f"save_model_interval must be positive, got {self.save_model_interval}"
            )

        if self.learning_rate <= 0:
            raise ConfigurationError(
                f"learning_rate must be positive, got {self.learning_rate}"
            )

        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")

        if self.buffer_capacity <= 0:
            raise ConfigurationError(
                f"buffer_capacity must be positive, got {self.buffer_capacity}"
            )

        if self.time_horizon <= 0:
            raise ConfigurationError(
                f"time_horizon must be positive, got {self.time_horizon}"
            )

        if not 0 <= self.gamma <= 1:
            raise ConfigurationError(f"gamma must be in [0, 1], got {self.gamma}")

        if self.device not in ('cuda', 'cpu'):
            raise ConfigurationError(f"device must be 'cuda' or 'cpu', got {self.device}")

        return True

    def __str__(self) -> str:
        """String representation of config."""
        lines = ["Trainer Configuration:"]
        lines.append(f"  Training: enabled={self.is_training}, max_steps={self.max_total_steps}, lr={self.learning_rate}")
        lines.append(f"  Checkpoint: every {self.save_model_interval} steps -> {self.checkpoint_path}/{self.checkpoint_file_name} (resume={self.continue_from_checkpoint})")
        lines.append(f"  Actor-critic: gamma={self.gamma}, horizon={self.time_horizon}, batch={self.batch_size}, epochs={self.num_epochs}")
        lines.append(f"  Network: hidden={self.hidden_dim}")
        lines.append(f"  Device: {self.device}")
        return "\n".join(lines)


def get_fast_config() -> TrainerConfig:
    """
    Get a fast training config for testing/debugging.

    Returns:
        TrainerConfig with small buffers and frequent updates
    """
    return TrainerConfig(
        max_total_steps=2_000,
        save_model_interval=500,
        learning_rate=1e-3,
        time_horizon=16,
        batch_size=32,
        num_epochs=1,
        buffer_capacity=512,
        hidden_dim=32,
    )
