#!/usr/bin/env python3
"""
Training CLI.

This is a thin wrapper around the Trainer class.
All core logic is in the onpolicy.training modules.

Usage:
    python -m onpolicy.training.train --env CartPole-v1 --algorithm ppo
    python -m onpolicy.training.train --env Pendulum-v1 --algorithm a2c --frames 200000
"""
import argparse
import logging
from typing import Optional

from onpolicy.environments.base import Environment
from onpolicy.utils.device import get_device
from onpolicy.utils.logging_config import get_logger, setup_logging
from onpolicy.utils.seed import set_seed

from .algorithms import create_algorithm
from .policy import create_policy
from .trainer import Trainer
from .trainer_config import TrainerConfig

logger = get_logger("train")


def build_trainer(config: TrainerConfig, env: Environment) -> Trainer:
    """
    Create the environment instances, policy and algorithm for config and wire them into a Trainer.

    The environment must not have been made yet; make() is called here.
    """
    device = get_device(None if config.device == 'auto' else config.device)

    logger.info("Creating environment")
    logger.info(env.make(config.env_name, config.num_envs))
    env_info = env.info()

    policy = create_policy(
        env_info.action_space(),
        tuple(env_info.observation_space_shape),
        hidden_size=config.hidden_size,
        recurrent=config.recurrent,
        normalize_observation=config.normalize_observation,
    ).to(device)
    algorithm = create_algorithm(config, policy)

    return Trainer(config, env, policy, algorithm, device=device)


def train(env: Optional[Environment] = None, render_mode: Optional[str] = None, **overrides) -> dict:
    """
    Train a policy.

    Uses config.toml for defaults; explicit kwargs override them.

    Args:
        env: Environment to train on (defaults to a gymnasium vector env)
        render_mode: gymnasium render mode used when rendering is requested
        **overrides: Any TrainerConfig fields to override

    Returns:
        Summary dict with training results
    """
    config = TrainerConfig.from_config(**overrides)
    config_seed = set_seed(config.seed)
    logger.info(f"Seed: {config_seed}")

    if env is None:
        from onpolicy.environments.gym_env import GymnasiumEnvironment
        env = GymnasiumEnvironment(render_mode=render_mode, seed=config_seed)

    try:
        trainer = build_trainer(config, env)
        return trainer.train()
    finally:
        env.close()


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description='Train an on-policy agent (A2C/PPO)')
    parser.add_argument('--env', dest='env_name', default=None,
                        help='gymnasium environment id (default: from config)')
    parser.add_argument('--algorithm', choices=['a2c', 'ppo'], default=None)
    parser.add_argument('--num-envs', type=int, default=None)
    parser.add_argument('--steps', dest='batch_size', type=int, default=None,
                        help='Rollout length per environment per update')
    parser.add_argument('--frames', dest='max_frames', type=int, default=None,
                        help='Total environment frames to train for')
    parser.add_argument('--lr', dest='learning_rate', type=float, default=None)
    parser.add_argument('--gamma', dest='discount_factor', type=float, default=None)
    parser.add_argument('--gae', type=float, default=None, help='GAE lambda')
    parser.add_argument('--no-gae', dest='use_gae', action='store_const', const=False, default=None,
                        help='Use plain n-step returns instead of GAE')
    parser.add_argument('--lr-decay', dest='use_lr_decay', action='store_const', const=True, default=None)
    parser.add_argument('--recurrent', action='store_const', const=True, default=None)
    parser.add_argument('--hidden-size', type=int, default=None)
    parser.add_argument('--log-interval', type=int, default=None)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--device', default=None, help='cpu, cuda, cuda:1, ...')
    parser.add_argument('--output', dest='output_path', default=None,
                        help='Checkpoint path (empty = no checkpoint)')
    parser.add_argument('--save-interval', type=int, default=None)
    parser.add_argument('--tensorboard', dest='log_to_file', action='store_const', const=True, default=None)
    parser.add_argument('--log-dir', default=None)
    parser.add_argument('--render-mode', default=None,
                        help="gymnasium render mode, e.g. 'human'")
    parser.add_argument('--log-file', default=None, help='Also write the log to this file')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    setup_logging(args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    overrides = vars(args).copy()
    for key in ('render_mode', 'log_file', 'verbose'):
        overrides.pop(key)

    summary = train(render_mode=args.render_mode, **overrides)
    logger.info(f"Training complete: {summary}")


if __name__ == '__main__':
    main()
