"""
Main Training Script

Runs the reference actor-critic policy inside the corridor simulation,
driving it tick by tick through the ExperienceOrchestrator.

Usage:
    # Start (or resume from the configured checkpoint)
    python -m tickbrain.train --ticks 20000

    # Start fresh, ignoring any existing checkpoint
    python -m tickbrain.train --ticks 20000 --no-resume

    # Use custom config
    python -m tickbrain.train --config configs/my_config.json

    # Run the current checkpoint without training
    python -m tickbrain.train --no-training --ticks 500

    # Fast test run
    python -m tickbrain.train --fast --ticks 200
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import torch

from tickbrain.config import TrainerConfig, get_fast_config
from tickbrain.envs.corridor import CorridorEnv, OBSERVATION_SIZE, ACTION_SIZE
from tickbrain.training.actor_critic import ActorCriticPolicy
from tickbrain.training.orchestrator import ExperienceOrchestrator


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Train an actor-critic policy inside a tick-driven simulation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        '--ticks',
        type=int,
        default=10_000,
        help='Number of simulation ticks to run',
    )
    parser.add_argument(
        '--num-agents',
        type=int,
        default=8,
        help='Number of simulated agents',
    )
    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Seed for the simulation and torch',
    )

    # Configuration
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to JSON config file (overrides defaults)',
    )
    parser.add_argument(
        '--fast',
        action='store_true',
        help='Use fast config for testing/debugging',
    )
    parser.add_argument(
        '--no-training',
        action='store_true',
        help='Run inference only (no experience, no updates, no step counting)',
    )
    parser.add_argument(
        '--resume',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Continue from the configured checkpoint if it exists (overrides config)',
    )

    # Hardware
    parser.add_argument(
        '--device',
        type=str,
        choices=['cuda', 'cpu', 'auto'],
        default='auto',
        help='Device to train on',
    )

    # Logging
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level',
    )

    # Checkpointing
    parser.add_argument(
        '--checkpoint-dir',
        type=str,
        default=None,
        help='Directory to save checkpoints (overrides config)',
    )
    parser.add_argument(
        '--save-every',
        type=int,
        default=None,
        help='Save checkpoint every N steps (overrides config)',
    )

    return parser.parse_args(argv)


def setup_logging(config: TrainerConfig, log_level: str = 'INFO'):
    """
    Setup logging (file logging and console).

    Args:
        config: Trainer configuration
        log_level: Logging level
    """
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    log_file = log_dir / 'training.log'
    logging.basicConfig(
        level=getattr(logging, log_level),
        format=log_format,
        datefmt=date_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout),
        ],
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")
    logger.info(f"PyTorch version: {torch.__version__}")
    logger.info(f"CUDA available: {torch.cuda.is_available()}")


def determine_device(device_arg: str) -> str:
    """
    Determine which device to use for training.

    Args:
        device_arg: Device argument from command line

    Returns:
        Device string ('cuda' or 'cpu')
    """
    if device_arg == 'auto':
        device = 'cuda' if torch.cuda.is_available() else 'cpu'
    else:
        device = device_arg

    if device == 'cuda' and not torch.cuda.is_available():
        logging.warning("CUDA requested but not available, falling back to CPU")
        device = 'cpu'

    return device


def build_config(args: argparse.Namespace) -> TrainerConfig:
    """Load the base config and apply command line overrides."""
    if args.config:
        config = TrainerConfig.from_file(args.config)
    elif args.fast:
        config = get_fast_config()
    else:
        config = TrainerConfig()

    config.device = determine_device(args.device)

    if args.no_training:
        config.is_training = False

    if args.resume is not None:
        config.continue_from_checkpoint = args.resume

    if args.checkpoint_dir is not None:
        config.checkpoint_path = args.checkpoint_dir

    if args.save_every is not None:
        config.save_model_interval = args.save_every

    return config


def run_simulation(
    config: TrainerConfig,
    num_ticks: int,
    num_agents: int = 8,
    seed: Optional[int] = None,
    report_every: int = 1_000,
) -> CorridorEnv:
    """
    Run the tick loop.

    Args:
        config: Validated trainer configuration
        num_ticks: Number of ticks to run
        num_agents: Number of simulated agents
        seed: Optional seed for the simulation and action sampling
        report_every: Ticks between progress log lines

    Returns:
        The environment, for inspecting final statistics

    A final checkpoint is saved after the last tick or on KeyboardInterrupt,
    never after a failure inside the tick loop.
    """
    logger = logging.getLogger(__name__)

    env = CorridorEnv(num_agents=num_agents, seed=seed)
    policy = ActorCriticPolicy(
        config, observation_size=OBSERVATION_SIZE, action_size=ACTION_SIZE, seed=seed
    )
    policy.add_training_listener(lambda training: env.set_inference_mode(not training))

    orchestrator = ExperienceOrchestrator(policy)
    orchestrator.initialize()

    start_time = time.time()
    try:
        for tick in range(num_ticks):
            actions = orchestrator.on_tick(env.observe())
            env.apply_actions(actions)

            if report_every and (tick + 1) % report_every == 0:
                elapsed = max(time.time() - start_time, 1e-9)
                logger.info(
                    f"Tick {tick + 1}/{num_ticks}: step={policy.get_step()}, "
                    f"updates={policy.num_updates}, episodes={env.episodes_completed}, "
                    f"success={env.success_rate():.2%}, {(tick + 1) / elapsed:.0f} ticks/sec"
                )
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

    if policy.is_training:
        policy.save_model()

    return env


def main(argv=None):
    """Main training entry point."""
    args = parse_args(argv)
    config = build_config(args)

    setup_logging(config, args.log_level)
    logger = logging.getLogger(__name__)

    if args.seed is not None:
        torch.manual_seed(args.seed)

    config.validate()
    logger.info("Configuration validated successfully")
    logger.info(f"\n{config}")

    # Save config next to the checkpoint
    checkpoint_dir = Path(config.checkpoint_path)
    checkpoint_dir.mkdir(parents=True, exist_ok=True)
    config_save_path = checkpoint_dir / 'config.json'
    config.save(str(config_save_path))
    logger.info(f"Config saved to {config_save_path}")

    try:
        env = run_simulation(config, args.ticks, num_agents=args.num_agents, seed=args.seed)
    except Exception as e:
        logger.error(f"Training failed with error: {e}", exc_info=True)
        raise

    logger.info(
        f"Finished: {env.episodes_completed} episodes, success rate {env.success_rate():.2%}"
    )


if __name__ == '__main__':
    main()
