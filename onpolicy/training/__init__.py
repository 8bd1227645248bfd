"""
Training pipeline for on-policy agents.

Rollout collection, return estimation and policy updates, orchestrated by
a single-threaded Trainer.

Usage:
    from onpolicy.training.train import train

    summary = train(env_name='CartPole-v1', algorithm='ppo', max_frames=100_000)

Key CLI Commands
----------------
Train PPO on the configured environment::

    python -m onpolicy.training.train

Train A2C with plain n-step returns::

    python -m onpolicy.training.train --algorithm a2c --no-gae
"""
from .storage import RolloutStorage, MiniBatch
from .normalization import RunningMeanStd, RewardNormalizer
from .episode_tracker import EpisodeRewardTracker
from .policy import Policy, ActResult, create_policy
from .algorithms import Algorithm, A2C, PPO, UpdateDatum, create_algorithm
from .trainer_config import TrainerConfig
from .trainer import Trainer

__all__ = [
    # Storage
    'RolloutStorage',
    'MiniBatch',
    # Statistics
    'RunningMeanStd',
    'RewardNormalizer',
    'EpisodeRewardTracker',
    # Policy
    'Policy',
    'ActResult',
    'create_policy',
    # Algorithms
    'Algorithm',
    'A2C',
    'PPO',
    'UpdateDatum',
    'create_algorithm',
    # Trainer
    'TrainerConfig',
    'Trainer',
]
