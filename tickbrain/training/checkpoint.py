"""
Checkpoint persistence for trainable policies.

A checkpoint is a single torch.save blob of a named tensor map:

    {
        'model/<param>': torch.Tensor,   # policy-defined keys
        'optimizer':     torch.Tensor,   # policy-defined keys
        ...
        'trainer_steps': torch.Tensor,   # int64, shape (1,)
    }

The policy decides its own keys via save_checkpoint(); the manager only adds
the reserved step counter key and handles file I/O. Files are written to a
temporary sibling and renamed into place so a crash mid-write never leaves a
truncated checkpoint behind.
"""

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Dict

import torch

from tickbrain.errors import CheckpointNotFoundError, CorruptCheckpointError

if TYPE_CHECKING:
    from tickbrain.training.policy import TrainablePolicy

logger = logging.getLogger(__name__)

STEPS_KEY = 'trainer_steps'

NamedBlobs = Dict[str, torch.Tensor]


def resolve_path(checkpoint_path: str, file_name: str) -> Path:
    """
    Build the absolute checkpoint path from a directory and file name.

    Both forward and back slashes in the inputs are treated as separators.

    Args:
        checkpoint_path: Directory holding the checkpoint
        file_name: Checkpoint file name

    Returns:
        Absolute Path
    """
    joined = os.path.join(checkpoint_path, file_name)
    joined = joined.replace('\\', '/').replace('/', os.sep)
    return Path(os.path.abspath(joined))


class CheckpointManager:
    """Serializes a policy's named tensor map plus the step counter."""

    def save(self, policy: 'TrainablePolicy', step: int, path) -> Path:
        """
        Save policy weights, optimizer state and step counter.

        The step value is captured before serialization starts.

        Args:
            policy: Policy whose save_checkpoint() supplies the tensors
            step: Step counter to embed
            path: Destination file

        Returns:
            Path written
        """
        path = Path(path)
        blobs = dict(policy.save_checkpoint())
        blobs[STEPS_KEY] = torch.tensor([int(step)], dtype=torch.int64)

        buffer = io.BytesIO()
        torch.save(blobs, buffer)
        data = buffer.getvalue()

        # Create directory if needed
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix='.tmp', dir=path.parent)
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

        logger.info(f"Checkpoint saved to {path} (step {step})")
        return path

    def read(self, path) -> NamedBlobs:
        """
        Read and validate the named tensor map without applying it.

        Raises:
            CheckpointNotFoundError: If the file does not exist
            CorruptCheckpointError: If the file is not a str -> Tensor map
        """
        path = Path(path)
        if not path.exists():
            raise CheckpointNotFoundError(f"Checkpoint not found: {path}")

        try:
            blobs = torch.load(path, map_location='cpu', weights_only=True)
        except Exception as e:
            # torch.load raises a wide range of types for malformed input
            raise CorruptCheckpointError(f"Cannot deserialize checkpoint {path}: {e}") from e

        if not isinstance(blobs, dict):
            raise CorruptCheckpointError(
                f"Checkpoint {path} holds {type(blobs).__name__}, expected a named tensor map"
            )
        for key, value in blobs.items():
            if not isinstance(key, str) or not isinstance(value, torch.Tensor):
                raise CorruptCheckpointError(
                    f"Checkpoint {path} has unexpected entry {key!r} ({type(value).__name__})"
                )
        return blobs

    def load(self, policy: 'TrainablePolicy', path) -> int:
        """
        Load a checkpoint into policy and return the restored step counter.

        Nothing is applied to the policy unless the whole file validates,
        including the policy's own check_checkpoint().

        Args:
            policy: Policy receiving weights and optimizer state
            path: Checkpoint file

        Returns:
            Restored step counter (0 if the checkpoint carries none)

        Raises:
            CheckpointNotFoundError: If the file does not exist
            CorruptCheckpointError: If the file has an unexpected shape or the
                policy rejects its contents
        """
        blobs = self.read(path)

        steps = 0
        if STEPS_KEY in blobs:
            steps_tensor = blobs.pop(STEPS_KEY)
            if steps_tensor.numel() < 1:
                raise CorruptCheckpointError(f"Checkpoint {path} has an empty step counter")
            steps = int(steps_tensor.reshape(-1)[0].item())

        policy.check_checkpoint(blobs)

        policy.set_all_model_weights(blobs)
        policy.set_all_optimizer_weights(blobs)

        logger.info(f"Checkpoint loaded from {path} (step {steps})")
        return steps
