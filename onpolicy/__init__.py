"""
On-policy reinforcement learning training core.

Collects fixed-length rollouts from parallel environments, turns rewards and
value estimates into bootstrapped returns (n-step or GAE), and drives A2C/PPO
updates from a single synchronous training loop.

Key Modules
-----------
training
    Rollout storage, reward normalization, episode tracking, policy,
    update algorithms and the Trainer loop.
environments
    Environment contract and the gymnasium vector-env adapter.
config
    TOML configuration loader (config.toml / config.default.toml).
utils
    Device selection, logging and seeding helpers.

Quick Start
-----------
Training::

    python -m onpolicy.training.train --env LunarLander-v3 --algorithm ppo
"""
