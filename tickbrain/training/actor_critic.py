"""
Advantage Actor-Critic Policy

Reference TrainablePolicy for discrete actions, trained from the
transitions the ExperienceOrchestrator feeds it.

Data flow:
    1. take_action: sample an action per agent from PolicyValueNet
    2. add_experience: append (obs, action, reward, done, value) to the
       agent's pending trajectory
    3. process_experience: when a trajectory ends (done, max step reached or
       time_horizon transitions), compute discounted returns and advantages
       and move it into the TrajectoryBuffer
    4. update_model: once batch_size transitions are buffered, run num_epochs
       passes of the A2C loss and clear the buffer

Loss Function:
    total_loss = policy_loss + value_loss_weight * value_loss - entropy_weight * entropy

    policy_loss = -mean(log pi(a|s) * advantage)
    value_loss = MSE(V(s), return)
"""

import io
import logging
from typing import Dict, List, Any, Mapping, Optional

import numpy as np
import torch
import torch.nn.functional as F
import torch.optim as optim

from tickbrain.agents.snapshot import AgentIdentity, AgentInfoSnapshot, TakeActionOutput
from tickbrain.config import TrainerConfig
from tickbrain.errors import ConfigurationError, CorruptCheckpointError
from tickbrain.network.model import PolicyValueNet, create_model
from tickbrain.training.checkpoint import CheckpointManager, NamedBlobs
from tickbrain.training.policy import TrainablePolicy
from tickbrain.training.trajectory_buffer import TrajectoryBuffer

logger = logging.getLogger(__name__)

MODEL_PREFIX = 'model/'
OPTIMIZER_KEY = 'optimizer'


class ActorCriticPolicy(TrainablePolicy):
    """
    Discrete-action advantage actor-critic on stacked vector observations.

    Actions are returned to the host as a float32 array holding the chosen
    action index.
    """

    def __init__(
        self,
        config: TrainerConfig,
        observation_size: int,
        action_size: int,
        checkpoint_manager: Optional[CheckpointManager] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize actor-critic policy. Call initialize() before use.

        Args:
            config: Trainer configuration
            observation_size: Length of each agent's stacked vector observation
            action_size: Number of discrete actions
            checkpoint_manager: Checkpoint I/O (default: CheckpointManager())
            seed: Seed for action sampling and minibatch shuffling
        """
        super().__init__(config, checkpoint_manager)
        self.observation_size = observation_size
        self.action_size = action_size

        device = config.device
        if device == "cuda" and not torch.cuda.is_available():
            logger.warning("CUDA not available, using CPU instead")
            device = "cpu"
        self.device = device

        self.network: Optional[PolicyValueNet] = None
        self.optimizer: Optional[optim.Optimizer] = None
        self.buffer: Optional[TrajectoryBuffer] = None

        self.rng = np.random.default_rng(seed)

        # Per-agent transitions not yet turned into returns
        self.pending: Dict[AgentIdentity, List[Dict[str, Any]]] = {}

        self.num_updates = 0
        self.last_metrics: Dict[str, float] = {}

        self.add_training_listener(self._on_training_changed, notify=False)

    def initialize(self):
        """Build network, optimizer and trajectory buffer."""
        self.network = create_model(
            observation_size=self.observation_size,
            action_size=self.action_size,
            device=self.device,
            hidden_dim=self.config.hidden_dim,
        )
        self.optimizer = optim.Adam(self.network.parameters(), lr=self.config.learning_rate)
        self.buffer = TrajectoryBuffer(capacity=self.config.buffer_capacity, rng=self.rng)
        self.pending.clear()

        logger.info(
            f"Actor-critic initialized: {self.network.get_num_parameters():,} parameters, "
            f"obs={self.observation_size}, actions={self.action_size}, device={self.device}"
        )

    def _on_training_changed(self, training: bool):
        # Ticks are not recorded while training is off, so open trajectories
        # would resume across a gap
        if not training and self.pending:
            logger.debug(f"Training stopped, dropping {len(self.pending)} open trajectories")
            self.pending.clear()

    def forget_agents(self, agents):
        """Drop open trajectories of evicted agents."""
        for agent in agents:
            self.pending.pop(agent, None)

    def _require_initialized(self):
        if self.network is None or self.optimizer is None or self.buffer is None:
            raise ConfigurationError("ActorCriticPolicy.initialize() has not been called")

    def _observation(self, info: AgentInfoSnapshot) -> Optional[np.ndarray]:
        obs = np.asarray(info.stacked_vector_observation, dtype=np.float32)
        if obs.shape != (self.observation_size,):
            return None
        return obs

    def _values(self, observations: np.ndarray) -> np.ndarray:
        with torch.no_grad():
            _, values = self.network(torch.from_numpy(observations).to(self.device))
        return values.cpu().numpy()

    def take_action(
        self,
        infos: Mapping[AgentIdentity, AgentInfoSnapshot],
    ) -> Dict[AgentIdentity, TakeActionOutput]:
        """
        Sample an action for every agent with a usable observation.

        Agents whose observation does not match observation_size get no
        entry. Outside training the most probable action is taken.
        """
        self._require_initialized()

        agents = [a for a in infos if self._observation(infos[a]) is not None]
        observations = self.create_vector_input_batch(infos, agents)
        if observations is None:
            return {}

        self.network.eval()
        with torch.no_grad():
            probs, values = self.network.action_distribution(
                torch.from_numpy(observations).to(self.device)
            )
        probs = probs.cpu().numpy()
        values = values.cpu().numpy()

        outputs = {}
        for i, agent in enumerate(agents):
            p = probs[i].astype(np.float64)
            if self.is_training:
                action = int(self.rng.choice(self.action_size, p=p / p.sum()))
            else:
                action = int(np.argmax(p))
            outputs[agent] = TakeActionOutput(
                output_action=np.array([action], dtype=np.float32),
                all_probabilities=probs[i],
                value=float(values[i]),
            )
        return outputs

    def add_experience(
        self,
        current_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        new_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        action_outputs: Mapping[AgentIdentity, TakeActionOutput],
    ):
        """Append one transition per agent to its pending trajectory."""
        for agent, info in current_infos.items():
            output = action_outputs[agent]
            obs = self._observation(info)
            if output.output_action is None or obs is None:
                continue

            self.pending.setdefault(agent, []).append({
                "observation": obs,
                "action": int(output.output_action[0]),
                "reward": float(new_infos[agent].reward),
                "done": bool(new_infos[agent].done),
                "value": float(output.value),
            })

    def process_experience(
        self,
        current_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
        new_infos: Mapping[AgentIdentity, AgentInfoSnapshot],
    ):
        """
        Close finished trajectories and move them into the buffer.

        A trajectory is finished when the agent is done, reached its max step,
        or has time_horizon pending transitions. Unless the agent is done, the
        return is bootstrapped from the value of its new observation.
        """
        self._require_initialized()

        closing = []
        for agent, info in new_infos.items():
            trajectory = self.pending.get(agent)
            if not trajectory:
                continue
            if info.is_terminal or len(trajectory) >= self.config.time_horizon:
                closing.append(agent)

        if not closing:
            return

        # Bootstrap values for every non-done closing agent in one forward pass
        bootstrap_agents = [
            a for a in closing
            if not new_infos[a].done and self._observation(new_infos[a]) is not None
        ]
        bootstrap = {}
        if bootstrap_agents:
            obs = np.stack([self._observation(new_infos[a]) for a in bootstrap_agents])
            for agent, value in zip(bootstrap_agents, self._values(obs)):
                bootstrap[agent] = float(value)

        for agent in closing:
            trajectory = self.pending.pop(agent)
            self.buffer.add_transitions(
                compute_returns(trajectory, bootstrap.get(agent, 0.0), self.config.gamma, agent)
            )

    def is_ready_update(self) -> bool:
        return self.buffer is not None and self.buffer.is_ready_for_training(self.config.batch_size)

    def update_model(self):
        """Run num_epochs passes over the buffer, then clear it."""
        self._require_initialized()
        self.network.train()

        policy_loss_sum = 0.0
        value_loss_sum = 0.0
        entropy_sum = 0.0
        num_batches = 0

        for epoch in range(self.config.num_epochs):
            for observations, actions, returns, advantages in self.buffer.iterate_minibatches(
                self.config.batch_size, device=self.device
            ):
                if advantages.numel() > 1:
                    advantages = (advantages - advantages.mean()) / (advantages.std() + 1e-8)

                logits, values = self.network(observations)
                log_probs = F.log_softmax(logits, dim=-1)
                chosen_log_probs = log_probs.gather(1, actions.unsqueeze(1)).squeeze(1)

                policy_loss = -(chosen_log_probs * advantages).mean()
                value_loss = F.mse_loss(values, returns)
                entropy = -(log_probs.exp() * log_probs).sum(dim=-1).mean()

                total_loss = (
                    policy_loss
                    + self.config.value_loss_weight * value_loss
                    - self.config.entropy_weight * entropy
                )

                self.optimizer.zero_grad()
                total_loss.backward()
                torch.nn.utils.clip_grad_norm_(self.network.parameters(), max_norm=self.config.max_grad_norm)
                self.optimizer.step()

                policy_loss_sum += policy_loss.item()
                value_loss_sum += value_loss.item()
                entropy_sum += entropy.item()
                num_batches += 1

        stats = self.buffer.get_statistics()
        self.buffer.clear()
        self.num_updates += 1

        if num_batches > 0:
            self.last_metrics = {
                "policy_loss": policy_loss_sum / num_batches,
                "value_loss": value_loss_sum / num_batches,
                "entropy": entropy_sum / num_batches,
                "mean_return": stats["mean_return"],
            }
        logger.info(
            f"Model update {self.num_updates} at step {self.steps}: "
            f"{stats['size']} transitions, "
            + ", ".join(f"{k}={v:.4f}" for k, v in self.last_metrics.items())
        )

    def set_learning_rate(self, learning_rate: float):
        if self.optimizer is None:
            return
        for group in self.optimizer.param_groups:
            group["lr"] = learning_rate

    def get_learning_rate(self) -> float:
        """Current learning rate of the first param group."""
        self._require_initialized()
        return self.optimizer.param_groups[0]["lr"]

    def save_checkpoint(self) -> NamedBlobs:
        """
        Named tensors for the checkpoint.

        Model parameters are stored one tensor per state-dict entry under
        'model/'; the optimizer state dict is stored as a single uint8 tensor
        holding its torch.save bytes.
        """
        self._require_initialized()
        blobs = {
            MODEL_PREFIX + name: tensor.detach().cpu().clone()
            for name, tensor in self.network.state_dict().items()
        }

        buffer = io.BytesIO()
        torch.save(self.optimizer.state_dict(), buffer)
        blobs[OPTIMIZER_KEY] = torch.frombuffer(bytearray(buffer.getvalue()), dtype=torch.uint8).clone()
        return blobs

    def _decode_model_state(self, blobs: NamedBlobs) -> Optional[Dict[str, torch.Tensor]]:
        """
        Network state dict from the 'model/' entries, checked against the network.

        Returns:
            State dict, or None if blobs carry no model weights

        Raises:
            CorruptCheckpointError: If names or shapes do not match the network
        """
        state_dict = {
            key[len(MODEL_PREFIX):]: tensor
            for key, tensor in blobs.items()
            if key.startswith(MODEL_PREFIX)
        }
        if not state_dict:
            return None

        expected = self.network.state_dict()
        missing = sorted(expected.keys() - state_dict.keys())
        unexpected = sorted(state_dict.keys() - expected.keys())
        if missing or unexpected:
            raise CorruptCheckpointError(
                f"Checkpoint weights do not match the network "
                f"(missing={missing}, unexpected={unexpected})"
            )
        for name, tensor in state_dict.items():
            if tensor.shape != expected[name].shape:
                raise CorruptCheckpointError(
                    f"Checkpoint weight {name} has shape {tuple(tensor.shape)}, "
                    f"network expects {tuple(expected[name].shape)}"
                )
        return state_dict

    def _decode_optimizer_state(self, blobs: NamedBlobs) -> Optional[Dict[str, Any]]:
        """
        Optimizer state dict from the 'optimizer' bytes, checked against the network.

        Returns:
            State dict, or None if blobs carry no optimizer state

        Raises:
            CorruptCheckpointError: If the bytes do not decode to a state dict
                for this network's parameters
        """
        if OPTIMIZER_KEY not in blobs:
            return None

        data = blobs[OPTIMIZER_KEY].cpu().numpy().tobytes()
        try:
            state_dict = torch.load(io.BytesIO(data), map_location=self.device, weights_only=True)
        except Exception as e:
            # torch.load raises a wide range of types for malformed input
            raise CorruptCheckpointError(f"Cannot deserialize optimizer state: {e}") from e

        if (
            not isinstance(state_dict, dict)
            or not isinstance(state_dict.get("state"), dict)
            or not isinstance(state_dict.get("param_groups"), list)
        ):
            raise CorruptCheckpointError("Checkpoint optimizer entry is not an optimizer state dict")

        current_groups = self.optimizer.state_dict()["param_groups"]
        saved_groups = state_dict["param_groups"]
        if len(saved_groups) != len(current_groups) or any(
            not isinstance(saved, dict) or len(saved.get("params", ())) != len(current["params"])
            for saved, current in zip(saved_groups, current_groups)
        ):
            raise CorruptCheckpointError("Checkpoint optimizer state does not match the network parameters")

        # Saved param ids follow the order of network.parameters()
        saved_ids = [pid for group in saved_groups for pid in group["params"]]
        params = dict(zip(saved_ids, self.network.parameters()))
        for pid, entry in state_dict["state"].items():
            param = params.get(pid)
            if param is None or not isinstance(entry, dict):
                raise CorruptCheckpointError(f"Checkpoint optimizer state has unknown parameter {pid!r}")
            for name, value in entry.items():
                if isinstance(value, torch.Tensor) and value.dim() > 0 and value.shape != param.shape:
                    raise CorruptCheckpointError(
                        f"Checkpoint optimizer {name} has shape {tuple(value.shape)}, "
                        f"parameter has {tuple(param.shape)}"
                    )
        return state_dict

    def check_checkpoint(self, blobs: NamedBlobs):
        """Decode both sections so a bad checkpoint is rejected before either is applied."""
        self._require_initialized()
        self._decode_model_state(blobs)
        self._decode_optimizer_state(blobs)

    def set_all_model_weights(self, blobs: NamedBlobs):
        self._require_initialized()
        state_dict = self._decode_model_state(blobs)
        if state_dict is None:
            logger.warning("Checkpoint has no model weights, keeping current weights")
            return
        self.network.load_state_dict(state_dict)

    def set_all_optimizer_weights(self, blobs: NamedBlobs):
        self._require_initialized()
        state_dict = self._decode_optimizer_state(blobs)
        if state_dict is None:
            logger.warning("Checkpoint has no optimizer state, keeping current optimizer")
            return
        self.optimizer.load_state_dict(state_dict)


def compute_returns(
    trajectory: List[Dict[str, Any]],
    bootstrap_value: float,
    gamma: float,
    agent_id: AgentIdentity,
) -> List[Dict[str, Any]]:
    """
    Discounted returns and advantages for one agent's trajectory.

    Args:
        trajectory: Pending transitions in time order
        bootstrap_value: Value of the state after the last transition
            (0.0 if the episode ended)
        gamma: Discount factor
        agent_id: Identity recorded on every transition

    Returns:
        Transitions ready for TrajectoryBuffer.add_transitions()
    """
    transitions = []
    running_return = bootstrap_value
    for step in reversed(trajectory):
        if step["done"]:
            running_return = 0.0
        running_return = step["reward"] + gamma * running_return
        transitions.append({
            "observation": step["observation"],
            "action": step["action"],
            "return": running_return,
            "advantage": running_return - step["value"],
            "agent_id": agent_id,
        })
    transitions.reverse()
    return transitions
