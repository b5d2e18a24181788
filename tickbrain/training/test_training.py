"""
Tests for training module (checkpoints, policy base, trajectory buffer,
actor-critic policy).

This test suite covers:
- CheckpointManager: save/load round trip, step counter, error cases
- TrainablePolicy: step bookkeeping, periodic saves, batching helpers
- TrajectoryBuffer: circular storage and tensor batching
- ActorCriticPolicy: actions, trajectory processing, updates, checkpoints
- Checkpoint rejection: nothing is applied when a checkpoint does not fit
"""

import io
from dataclasses import replace

import pytest
import torch
import numpy as np

from tickbrain.agents.snapshot import AgentInfoSnapshot, TakeActionOutput
from tickbrain.config import TrainerConfig, get_fast_config
from tickbrain.errors import CheckpointNotFoundError, CorruptCheckpointError, ConfigurationError
from tickbrain.training.actor_critic import ActorCriticPolicy, compute_returns
from tickbrain.training.checkpoint import CheckpointManager, STEPS_KEY, resolve_path
from tickbrain.training.orchestrator import ExperienceOrchestrator
from tickbrain.training.trajectory_buffer import TrajectoryBuffer


def obs_snapshot(obs, reward=0.0, done=False, max_step_reached=False):
    return AgentInfoSnapshot(
        stacked_vector_observation=list(obs),
        reward=reward,
        done=done,
        max_step_reached=max_step_reached,
    )


@pytest.fixture
def fast_config(tmp_path):
    config = get_fast_config()
    config.checkpoint_path = str(tmp_path / "ckpt")
    config.continue_from_checkpoint = False
    return config


@pytest.fixture
def policy(fast_config):
    torch.manual_seed(0)
    np.random.seed(0)
    p = ActorCriticPolicy(fast_config, observation_size=4, action_size=3)
    p.initialize()
    return p


class TestCheckpointManager:
    """Tests for CheckpointManager."""

    def test_round_trip(self, policy, tmp_path):
        """Test save then load restores identical weights and the step counter."""
        manager = CheckpointManager()
        path = tmp_path / "nested" / "dir" / "model.pth"
        saved_blobs = policy.save_checkpoint()

        manager.save(policy, 1234, path)
        assert path.exists()

        # Scramble weights, then restore
        with torch.no_grad():
            for p in policy.network.parameters():
                p.add_(1.0)

        steps = manager.load(policy, path)
        assert steps == 1234

        restored = policy.save_checkpoint()
        for key, tensor in saved_blobs.items():
            if key.startswith("model/"):
                assert torch.equal(restored[key], tensor), key

    def test_step_key_stored(self, policy, tmp_path):
        """Test the step counter is embedded under the reserved key."""
        manager = CheckpointManager()
        path = manager.save(policy, 77, tmp_path / "c.pth")

        blobs = manager.read(path)
        assert STEPS_KEY in blobs
        assert blobs[STEPS_KEY].dtype == torch.int64
        assert int(blobs[STEPS_KEY][0]) == 77

    def test_missing_step_key_defaults_to_zero(self, policy, tmp_path):
        """Test a checkpoint without the step key restores step 0."""
        path = tmp_path / "no_steps.pth"
        torch.save(policy.save_checkpoint(), path)
        assert CheckpointManager().load(policy, path) == 0

    def test_no_temp_files_left(self, policy, tmp_path):
        """Test the atomic write leaves only the checkpoint behind."""
        CheckpointManager().save(policy, 1, tmp_path / "c.pth")
        CheckpointManager().save(policy, 2, tmp_path / "c.pth")
        assert [p.name for p in tmp_path.iterdir()] == ["c.pth"]

    def test_load_missing_file(self, policy, tmp_path):
        """Test loading a missing file raises CheckpointNotFoundError."""
        with pytest.raises(CheckpointNotFoundError):
            CheckpointManager().load(policy, tmp_path / "missing.pth")

    def test_missing_file_is_file_not_found(self, policy, tmp_path):
        """Test CheckpointNotFoundError is a FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            CheckpointManager().load(policy, tmp_path / "missing.pth")

    def test_load_wrong_shape(self, policy, tmp_path):
        """Test a checkpoint that is not a named tensor map is rejected."""
        path = tmp_path / "list.pth"
        torch.save([torch.zeros(2)], path)
        with pytest.raises(CorruptCheckpointError):
            CheckpointManager().load(policy, path)

    def test_load_non_tensor_values(self, policy, tmp_path):
        """Test a map with non-tensor values is rejected."""
        path = tmp_path / "ints.pth"
        torch.save({"a": 1}, path)
        with pytest.raises(CorruptCheckpointError):
            CheckpointManager().load(policy, path)

    def test_load_garbage(self, policy, tmp_path):
        """Test random bytes are rejected as corrupt."""
        path = tmp_path / "garbage.pth"
        path.write_bytes(b"definitely not a checkpoint")
        with pytest.raises(CorruptCheckpointError):
            CheckpointManager().load(policy, path)

    def test_corrupt_load_leaves_policy_untouched(self, policy, tmp_path):
        """Test nothing is applied when validation fails."""
        before = {k: v.clone() for k, v in policy.network.state_dict().items()}
        path = tmp_path / "bad.pth"
        torch.save({"model/trunk.0.weight": torch.zeros(1), "oops": "string"}, path)

        with pytest.raises(CorruptCheckpointError):
            CheckpointManager().load(policy, path)

        for key, tensor in policy.network.state_dict().items():
            assert torch.equal(tensor, before[key])

    def test_resolve_path_separators(self, tmp_path):
        """Test mixed separators resolve to one absolute path."""
        path = resolve_path(str(tmp_path) + "\\sub", "model.pth")
        assert path.is_absolute()
        assert path == (tmp_path / "sub" / "model.pth")


class TestTrainablePolicyBase:
    """Tests for bookkeeping shared by every TrainablePolicy."""

    def test_step_counter(self, policy):
        """Test get/increment/reset of the step counter."""
        assert policy.get_step() == 0
        policy.increment_step()
        policy.increment_step()
        assert policy.get_step() == 2
        policy.reset_trainer()
        assert policy.get_step() == 0

    def test_max_step_from_config(self, policy, fast_config):
        """Test max step comes from config."""
        assert policy.get_max_step() == fast_config.max_total_steps

    def test_periodic_save(self, policy, fast_config):
        """Test a checkpoint is written every save_model_interval steps."""
        fast_config.save_model_interval = 3
        path = policy.checkpoint_file()

        policy.increment_step()
        policy.increment_step()
        assert not path.exists()

        policy.increment_step()
        assert path.exists()
        assert int(CheckpointManager().read(path)[STEPS_KEY][0]) == 3

    def test_empty_file_name_disables_checkpoints(self, policy, fast_config):
        """Test save/load are skipped without a file name."""
        fast_config.checkpoint_file_name = ""
        assert policy.checkpoint_file() is None
        assert policy.save_model() is None
        assert policy.load_model() is False

    def test_load_model_missing_is_cold_start(self, policy):
        """Test load_model() on a missing file keeps step 0."""
        assert policy.load_model() is False
        assert policy.get_step() == 0

    def test_load_model_corrupt_keeps_state(self, policy):
        """Test load_model() on a corrupt file reports and keeps state."""
        path = policy.checkpoint_file()
        path.parent.mkdir(parents=True)
        path.write_bytes(b"garbage")
        policy.steps = 5

        assert policy.load_model() is False
        assert policy.get_step() == 5

    def test_save_and_load_model(self, policy, fast_config):
        """Test save_model()/load_model() restore the step counter."""
        policy.steps = 321
        policy.save_model()

        other = ActorCriticPolicy(fast_config, observation_size=4, action_size=3)
        other.initialize()
        assert other.load_model() is True
        assert other.get_step() == 321

    def test_postprocessing_identity(self, policy):
        """Test default post-processing returns the input."""
        action = np.array([2.0], dtype=np.float32)
        assert policy.postprocessing_action(action) is action

    def test_vector_input_batch(self):
        """Test vector batching stacks rows in agent order."""
        infos = {"a": obs_snapshot([1, 2]), "b": obs_snapshot([3, 4])}
        batch = ActorCriticPolicy.create_vector_input_batch(infos, ["b", "a"])
        assert batch.dtype == np.float32
        assert batch.tolist() == [[3, 4], [1, 2]]

    def test_vector_input_batch_empty(self):
        """Test vector batching returns None when there is nothing to batch."""
        assert ActorCriticPolicy.create_vector_input_batch({}, []) is None
        assert ActorCriticPolicy.create_vector_input_batch({"a": obs_snapshot([])}, ["a"]) is None

    def test_visual_input_batch(self):
        """Test visual batching returns one (N, H, W, C) array per camera."""
        infos = {
            "a": AgentInfoSnapshot(visual_observations=[np.zeros((2, 3, 1)), np.ones((4, 4, 3))]),
            "b": AgentInfoSnapshot(visual_observations=[np.ones((2, 3, 1)), np.zeros((4, 4, 3))]),
        }
        batches = ActorCriticPolicy.create_visual_input_batch(infos, ["a", "b"], num_cameras=2)
        assert len(batches) == 2
        assert batches[0].shape == (2, 2, 3, 1)
        assert batches[1].shape == (2, 4, 4, 3)
        assert batches[0][1].sum() == 6

    def test_visual_input_batch_no_cameras(self):
        """Test visual batching returns None without cameras."""
        assert ActorCriticPolicy.create_visual_input_batch({"a": AgentInfoSnapshot()}, ["a"], 0) is None


class TestTrajectoryBuffer:
    """Tests for TrajectoryBuffer."""

    @staticmethod
    def transitions(n, agent_id=0):
        return [
            {
                "observation": np.full(4, i, dtype=np.float32),
                "action": i % 3,
                "return": float(i),
                "advantage": 0.5,
                "agent_id": agent_id,
            }
            for i in range(n)
        ]

    def test_add_and_len(self):
        """Test transitions are stored."""
        buffer = TrajectoryBuffer(capacity=10)
        buffer.add_transitions(self.transitions(4))
        assert len(buffer) == 4
        assert not buffer.is_full

    def test_circular_overflow(self):
        """Test oldest transitions are replaced when full."""
        buffer = TrajectoryBuffer(capacity=5)
        buffer.add_transitions(self.transitions(7))
        assert len(buffer) == 5
        assert buffer.is_full
        returns = sorted(t["return"] for t in buffer.buffer)
        assert returns == [2.0, 3.0, 4.0, 5.0, 6.0]

    def test_minibatch_tensors(self):
        """Test minibatch tensors have the right shapes and dtypes."""
        buffer = TrajectoryBuffer()
        buffer.add_transitions(self.transitions(6))
        obs, actions, returns, advantages = next(buffer.iterate_minibatches(6))

        assert obs.shape == (6, 4) and obs.dtype == torch.float32
        assert actions.shape == (6,) and actions.dtype == torch.int64
        assert returns.shape == (6,)
        assert advantages.shape == (6,)

    def test_seeded_shuffle(self):
        """Test buffers with equally seeded generators shuffle identically."""
        orders = []
        for _ in range(2):
            buffer = TrajectoryBuffer(rng=np.random.default_rng(7))
            buffer.add_transitions(self.transitions(10))
            orders.append([b[2].tolist() for b in buffer.iterate_minibatches(3)])
        assert orders[0] == orders[1]

    def test_iterate_minibatches_covers_all(self):
        """Test minibatch iteration visits every transition once."""
        buffer = TrajectoryBuffer()
        buffer.add_transitions(self.transitions(10))
        batches = list(buffer.iterate_minibatches(4))

        assert [b[0].shape[0] for b in batches] == [4, 4, 2]
        all_returns = torch.cat([b[2] for b in batches])
        assert sorted(all_returns.tolist()) == [float(i) for i in range(10)]

    def test_statistics(self):
        """Test statistics for empty and filled buffers."""
        buffer = TrajectoryBuffer(capacity=20)
        assert buffer.get_statistics()["size"] == 0

        buffer.add_transitions(self.transitions(4, agent_id="a"))
        buffer.add_transitions(self.transitions(2, agent_id="b"))
        stats = buffer.get_statistics()
        assert stats["size"] == 6
        assert stats["num_agents"] == 2
        assert stats["utilization"] == pytest.approx(30.0)

    def test_clear_and_ready(self):
        """Test clear empties the buffer and readiness follows size."""
        buffer = TrajectoryBuffer()
        buffer.add_transitions(self.transitions(5))
        assert buffer.is_ready_for_training(5)
        assert not buffer.is_ready_for_training(6)

        buffer.clear()
        assert len(buffer) == 0
        assert buffer.position == 0


class TestComputeReturns:
    """Tests for compute_returns."""

    @staticmethod
    def step(reward, done=False, value=0.0):
        return {"observation": np.zeros(4), "action": 0, "reward": reward, "done": done, "value": value}

    def test_terminal_trajectory(self):
        """Test discounted returns for an episode ending in done."""
        trajectory = [self.step(0.0), self.step(0.0), self.step(1.0, done=True)]
        result = compute_returns(trajectory, bootstrap_value=5.0, gamma=0.5, agent_id="a")

        assert [t["return"] for t in result] == pytest.approx([0.25, 0.5, 1.0])
        assert all(t["agent_id"] == "a" for t in result)

    def test_bootstrapped_trajectory(self):
        """Test a cut trajectory bootstraps from the next state's value."""
        trajectory = [self.step(1.0, value=0.5), self.step(1.0)]
        result = compute_returns(trajectory, bootstrap_value=2.0, gamma=0.5, agent_id=0)

        # 1 + 0.5 * (1 + 0.5 * 2) = 2.0
        assert result[0]["return"] == pytest.approx(2.0)
        assert result[1]["return"] == pytest.approx(2.0)
        assert result[0]["advantage"] == pytest.approx(1.5)


class TestActorCriticPolicy:
    """Tests for ActorCriticPolicy."""

    def test_requires_initialize(self, fast_config):
        """Test hooks fail clearly before initialize()."""
        policy = ActorCriticPolicy(fast_config, observation_size=4, action_size=3)
        with pytest.raises(ConfigurationError):
            policy.take_action({"a": obs_snapshot([0, 0, 0, 0])})

    def test_take_action_outputs(self, policy):
        """Test every usable agent gets a valid action, probabilities and value."""
        infos = {i: obs_snapshot([0.1 * i, 0.2, 0.3, 0.4]) for i in range(5)}
        outputs = policy.take_action(infos)

        assert set(outputs.keys()) == set(range(5))
        for output in outputs.values():
            assert output.output_action.shape == (1,)
            assert output.output_action.dtype == np.float32
            assert 0 <= output.output_action[0] < 3
            assert output.all_probabilities.shape == (3,)
            assert output.all_probabilities.sum() == pytest.approx(1.0, abs=1e-5)
            assert isinstance(output.value, float)

    def test_take_action_skips_bad_observation(self, policy):
        """Test agents with mismatched observations get no entry."""
        outputs = policy.take_action({"ok": obs_snapshot([0, 0, 0, 0]), "bad": obs_snapshot([1, 2])})
        assert set(outputs.keys()) == {"ok"}

    def test_take_action_greedy_when_not_training(self, policy):
        """Test inference picks the most probable action."""
        policy.is_training = False
        outputs = policy.take_action({"a": obs_snapshot([0.5, 0.5, 0.5, 0.5])})
        output = outputs["a"]
        assert int(output.output_action[0]) == int(np.argmax(output.all_probabilities))

    def test_experience_waits_for_horizon(self, policy, fast_config):
        """Test transitions stay pending until the trajectory is closed."""
        prev = {"a": obs_snapshot([0, 0, 0, 0])}
        new = {"a": obs_snapshot([0.1, 0, 0, 0], reward=-0.01)}
        actions = {"a": TakeActionOutput(output_action=np.array([2.0], dtype=np.float32), value=0.0)}

        policy.add_experience(prev, new, actions)
        policy.process_experience(prev, new)
        assert len(policy.pending["a"]) == 1
        assert len(policy.buffer) == 0

        for _ in range(fast_config.time_horizon - 1):
            policy.add_experience(prev, new, actions)
            policy.process_experience(prev, new)

        assert "a" not in policy.pending
        assert len(policy.buffer) == fast_config.time_horizon

    def test_done_closes_trajectory(self, policy):
        """Test a done snapshot moves the trajectory into the buffer with no bootstrap."""
        prev = {"a": obs_snapshot([0, 0, 0, 0])}
        new = {"a": obs_snapshot([1, 0, 0, 0], reward=1.0, done=True)}
        actions = {"a": TakeActionOutput(output_action=np.array([2.0], dtype=np.float32), value=0.25)}

        policy.add_experience(prev, new, actions)
        policy.process_experience(prev, new)

        assert len(policy.buffer) == 1
        transition = policy.buffer.buffer[0]
        assert transition["return"] == pytest.approx(1.0)
        assert transition["advantage"] == pytest.approx(0.75)
        assert transition["action"] == 2

    def test_missing_action_not_recorded(self, policy):
        """Test transitions without an output action are skipped."""
        prev = {"a": obs_snapshot([0, 0, 0, 0])}
        new = {"a": obs_snapshot([0, 0, 0, 0])}
        policy.add_experience(prev, new, {"a": TakeActionOutput()})
        assert "a" not in policy.pending

    def test_update_model(self, policy, fast_config):
        """Test an update changes weights, clears the buffer and reports metrics."""
        prev = {i: obs_snapshot(np.random.rand(4)) for i in range(fast_config.batch_size)}
        new = {i: obs_snapshot(np.random.rand(4), reward=1.0, done=True) for i in prev}
        actions = policy.take_action(prev)

        policy.add_experience(prev, new, actions)
        policy.process_experience(prev, new)
        assert policy.is_ready_update()

        before = [p.detach().clone() for p in policy.network.parameters()]
        policy.update_model()
        after = list(policy.network.parameters())

        assert any(not torch.equal(b, a) for b, a in zip(before, after))
        assert len(policy.buffer) == 0
        assert not policy.is_ready_update()
        assert policy.num_updates == 1
        assert set(policy.last_metrics) == {"policy_loss", "value_loss", "entropy", "mean_return"}

    def test_set_learning_rate(self, policy):
        """Test learning rate is written to the optimizer."""
        policy.set_learning_rate(0.123)
        assert policy.get_learning_rate() == pytest.approx(0.123)

    def test_checkpoint_blobs(self, policy):
        """Test checkpoint map holds model tensors and optimizer bytes."""
        blobs = policy.save_checkpoint()
        model_keys = [k for k in blobs if k.startswith("model/")]
        assert len(model_keys) == len(policy.network.state_dict())
        assert blobs["optimizer"].dtype == torch.uint8
        assert all(isinstance(v, torch.Tensor) for v in blobs.values())

    def test_optimizer_state_round_trip(self, policy, fast_config):
        """Test optimizer state survives save_checkpoint/set_all_optimizer_weights."""
        prev = {i: obs_snapshot(np.random.rand(4)) for i in range(fast_config.batch_size)}
        new = {i: obs_snapshot(np.random.rand(4), reward=1.0, done=True) for i in prev}
        policy.add_experience(prev, new, policy.take_action(prev))
        policy.process_experience(prev, new)
        policy.update_model()

        blobs = policy.save_checkpoint()

        other = ActorCriticPolicy(fast_config, observation_size=4, action_size=3)
        other.initialize()
        other.set_all_model_weights(blobs)
        other.set_all_optimizer_weights(blobs)

        original_state = policy.optimizer.state_dict()["state"]
        restored_state = other.optimizer.state_dict()["state"]
        assert original_state.keys() == restored_state.keys()
        for key in original_state:
            assert torch.equal(original_state[key]["exp_avg"], restored_state[key]["exp_avg"])

    def test_initialize_uses_config_width(self, policy, fast_config):
        """Test the network is built with the configured hidden width."""
        assert policy.network.hidden_dim == fast_config.hidden_dim
        assert next(policy.network.parameters()).device.type == policy.device

    def test_seeded_actions_reproducible(self, fast_config):
        """Test equally seeded policies sample the same actions."""
        infos = {i: obs_snapshot([0.1 * i, 0.5, 0.2, 0.0]) for i in range(6)}
        runs = []
        for _ in range(2):
            torch.manual_seed(0)
            p = ActorCriticPolicy(fast_config, observation_size=4, action_size=3, seed=5)
            p.initialize()
            runs.append([
                [int(out.output_action[0]) for out in p.take_action(infos).values()]
                for _ in range(5)
            ])
        assert runs[0] == runs[1]

    def test_terminal_tick_while_not_training(self, fast_config):
        """Test a terminal tick seen with training off does not leak into the next episode."""
        policy = ActorCriticPolicy(fast_config, observation_size=4, action_size=3, seed=0)
        orchestrator = ExperienceOrchestrator(policy)
        orchestrator.initialize()

        def tick(x, done=False):
            orchestrator.on_tick({"A": obs_snapshot([x, 0, 0, 0], done=done)})

        tick(0.1)
        tick(0.2)
        policy.is_training = False
        tick(0.3, done=True)
        policy.is_training = True
        tick(0.0)
        tick(0.5)

        observations = [float(t["observation"][0]) for t in policy.pending["A"]]
        assert observations == pytest.approx([0.0])

    def test_terminal_tick_past_max_step(self, fast_config):
        """Test an agent evicted after the step limit has no open trajectory."""
        fast_config.max_total_steps = 1
        policy = ActorCriticPolicy(fast_config, observation_size=4, action_size=3, seed=0)
        orchestrator = ExperienceOrchestrator(policy)
        orchestrator.initialize()

        orchestrator.on_tick({"A": obs_snapshot([0.1, 0, 0, 0])})
        orchestrator.on_tick({"A": obs_snapshot([0.2, 0, 0, 0])})
        assert len(policy.pending["A"]) == 1

        orchestrator.on_tick({"A": obs_snapshot([0.3, 0, 0, 0], done=True)})
        assert "A" not in policy.pending

    def test_reset_drops_open_trajectories(self, fast_config):
        """Test orchestrator reset clears the policy's open trajectories."""
        policy = ActorCriticPolicy(fast_config, observation_size=4, action_size=3, seed=0)
        orchestrator = ExperienceOrchestrator(policy)
        orchestrator.initialize()
        for x in (0.1, 0.2):
            orchestrator.on_tick({"A": obs_snapshot([x, 0, 0, 0]), "B": obs_snapshot([x, 1, 0, 0])})
        assert set(policy.pending) == {"A", "B"}

        orchestrator.reset()
        assert policy.pending == {}


class TestCheckpointRejection:
    """A checkpoint that does not fit the policy is rejected before anything is applied."""

    @staticmethod
    def weights(policy):
        return {k: v.clone() for k, v in policy.network.state_dict().items()}

    @staticmethod
    def assert_unchanged(policy, before):
        for key, tensor in policy.network.state_dict().items():
            assert torch.equal(tensor, before[key]), key

    @pytest.fixture
    def source_blobs(self, fast_config):
        torch.manual_seed(1)
        source = ActorCriticPolicy(fast_config, observation_size=4, action_size=3)
        source.initialize()
        return source.save_checkpoint()

    def write(self, policy, blobs):
        path = policy.checkpoint_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        torch.save(blobs, path)
        return path

    def test_garbage_optimizer_bytes(self, policy, source_blobs):
        """Test valid weights with undecodable optimizer bytes leave the model untouched."""
        source_blobs["optimizer"] = torch.zeros(16, dtype=torch.uint8)
        path = self.write(policy, source_blobs)
        before = self.weights(policy)

        with pytest.raises(CorruptCheckpointError):
            CheckpointManager().load(policy, path)
        self.assert_unchanged(policy, before)

        assert policy.load_model() is False
        self.assert_unchanged(policy, before)

    def test_optimizer_entry_not_a_state_dict(self, policy, source_blobs):
        """Test optimizer bytes that decode to something else are rejected."""
        buffer = io.BytesIO()
        torch.save([1, 2, 3], buffer)
        source_blobs["optimizer"] = torch.frombuffer(bytearray(buffer.getvalue()), dtype=torch.uint8).clone()
        self.write(policy, source_blobs)
        before = self.weights(policy)

        assert policy.load_model() is False
        self.assert_unchanged(policy, before)

    def test_different_hidden_width(self, policy, fast_config):
        """Test a checkpoint from a wider network is reported, not raised."""
        wide = ActorCriticPolicy(replace(fast_config, hidden_dim=64), observation_size=4, action_size=3)
        wide.initialize()
        wide.steps = 9
        wide.save_model()
        before = self.weights(policy)

        with pytest.raises(CorruptCheckpointError, match="shape"):
            CheckpointManager().load(policy, policy.checkpoint_file())

        assert policy.load_model() is False
        assert policy.get_step() == 0
        self.assert_unchanged(policy, before)

    def test_unknown_weight_names(self, policy, source_blobs):
        """Test model entries that do not name the network's parameters are rejected."""
        source_blobs["model/extra.weight"] = torch.zeros(2)
        self.write(policy, source_blobs)
        before = self.weights(policy)

        assert policy.load_model() is False
        self.assert_unchanged(policy, before)

    def test_valid_checkpoint_applies(self, policy, source_blobs):
        """Test a fitting checkpoint still loads."""
        self.write(policy, source_blobs)
        assert policy.load_model() is True
        for key, tensor in source_blobs.items():
            if key.startswith("model/"):
                assert torch.equal(policy.network.state_dict()[key[len("model/"):]], tensor)
