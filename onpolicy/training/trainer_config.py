"""
Training run configuration.

Provides the TrainerConfig dataclass with a factory method to load it from
config.toml. The config is frozen: it is built once at startup and handed
to the Trainer and the update algorithm.
"""
from dataclasses import dataclass, fields
from typing import Optional


@dataclass(frozen=True)
class TrainerConfig:
    """
    Configuration for one training run.

    Use TrainerConfig.from_config() to load defaults from config.toml,
    with CLI arguments as optional overrides.
    """
    algorithm: str = 'ppo'          # 'a2c' or 'ppo'
    env_name: str = 'LunarLander-v3'
    num_envs: int = 8
    batch_size: int = 40            # Rollout horizon: steps per env per update
    discount_factor: float = 0.99
    use_gae: bool = True
    gae: float = 0.9                # GAE lambda
    reward_clip_value: float = 100.0
    log_interval: int = 10
    max_frames: int = 10_000_000
    reward_average_window_size: int = 10
    render_reward_threshold: float = 160.0
    use_lr_decay: bool = False

    # Update hyperparameters
    actor_loss_coef: float = 1.0
    value_loss_coef: float = 0.5
    entropy_coef: float = 1e-3
    learning_rate: float = 1e-3
    clip_param: float = 0.2
    num_epoch: int = 3
    num_mini_batch: int = 20
    kl_target: float = 0.5
    max_grad_norm: float = 0.5

    # Model
    hidden_size: int = 64
    recurrent: bool = False
    normalize_observation: bool = True

    # Run
    seed: Optional[int] = 0
    device: str = 'cpu'
    output_path: str = ''           # Empty disables checkpointing
    save_interval: int = 0          # Updates between checkpoints (0 = only at the end)
    log_to_file: bool = False
    log_dir: str = 'generated/logs'

    def __post_init__(self):
        from .algorithms import ALGORITHMS

        if self.algorithm not in ALGORITHMS:
            raise ValueError(
                f"Unknown algorithm {self.algorithm!r}; choose from {sorted(ALGORITHMS)}"
            )
        for name in ('num_envs', 'batch_size', 'log_interval', 'reward_average_window_size',
                     'hidden_size', 'num_epoch', 'num_mini_batch'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_frames < 0 or self.save_interval < 0:
            raise ValueError("max_frames and save_interval must be non-negative")
        if self.reward_clip_value <= 0:
            raise ValueError(f"reward_clip_value must be positive, got {self.reward_clip_value}")

        # PPO splits each rollout into num_mini_batch pieces: whole
        # environments when recurrent, single samples otherwise
        if self.algorithm == 'ppo':
            if self.recurrent and self.num_envs < self.num_mini_batch:
                raise ValueError(
                    f"Recurrent PPO needs num_envs >= num_mini_batch "
                    f"(got {self.num_envs} envs, {self.num_mini_batch} minibatches)"
                )
            if self.frames_per_update < self.num_mini_batch:
                raise ValueError(
                    f"batch_size * num_envs = {self.frames_per_update} is smaller than "
                    f"num_mini_batch={self.num_mini_batch}"
                )

    @property
    def frames_per_update(self) -> int:
        return self.batch_size * self.num_envs

    @property
    def num_updates(self) -> int:
        """Number of full rollout/update cycles that fit in max_frames."""
        return self.max_frames // self.frames_per_update

    @classmethod
    def from_config(cls, **overrides) -> 'TrainerConfig':
        """
        Create TrainerConfig from config.toml with optional CLI overrides.

        TOML provides the defaults; explicit kwargs override them.
        Missing TOML keys will raise KeyError - no silent fallbacks.

        Args:
            **overrides: Any TrainerConfig fields to override

        Returns:
            TrainerConfig with values from config file + overrides

        Raises:
            KeyError: If required config keys are missing from TOML
            ValueError: If the resulting values are invalid
        """
        from onpolicy.config import (
            get_environment_config, get_model_config, get_runtime_config, get_training_config,
        )

        train_cfg = get_training_config()
        env_cfg = get_environment_config()
        model_cfg = get_model_config()
        runtime_cfg = get_runtime_config()

        config_values = {
            'algorithm': train_cfg['algorithm'],
            'batch_size': train_cfg['batch_size'],
            'discount_factor': train_cfg['discount_factor'],
            'use_gae': train_cfg['use_gae'],
            'gae': train_cfg['gae'],
            'reward_clip_value': train_cfg['reward_clip_value'],
            'log_interval': train_cfg['log_interval'],
            'max_frames': train_cfg['max_frames'],
            'reward_average_window_size': train_cfg['reward_average_window_size'],
            'use_lr_decay': train_cfg['use_lr_decay'],
            'actor_loss_coef': train_cfg['actor_loss_coef'],
            'value_loss_coef': train_cfg['value_loss_coef'],
            'entropy_coef': train_cfg['entropy_coef'],
            'learning_rate': train_cfg['learning_rate'],
            'clip_param': train_cfg['clip_param'],
            'num_epoch': train_cfg['num_epoch'],
            'num_mini_batch': train_cfg['num_mini_batch'],
            'kl_target': train_cfg['kl_target'],
            'max_grad_norm': train_cfg.get('max_grad_norm', 0.5),
            # Environment
            'env_name': env_cfg['env_name'],
            'num_envs': env_cfg['num_envs'],
            'render_reward_threshold': env_cfg['render_reward_threshold'],
            # Model
            'hidden_size': model_cfg['hidden_size'],
            'recurrent': model_cfg['recurrent'],
            'normalize_observation': model_cfg['normalize_observation'],
            # Runtime
            'seed': runtime_cfg.get('seed', 0),
            'device': runtime_cfg.get('device', 'cpu'),
            'output_path': runtime_cfg.get('output_path', ''),
            'save_interval': runtime_cfg.get('save_interval', 0),
            'log_to_file': runtime_cfg.get('log_to_file', False),
            'log_dir': runtime_cfg.get('log_dir', 'generated/logs'),
        }

        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"Unknown TrainerConfig field: {key!r}")
            if value is not None:  # Only override if explicitly set
                config_values[key] = value

        return cls(**config_values)
