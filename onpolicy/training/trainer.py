"""
Trainer - main training orchestrator.

Drives the rollout / bootstrap / estimate / update / rotate cycle for a
fixed number of updates over N parallel environments. Everything runs on
one thread: every policy, environment and update call blocks until it
returns, and any exception from them ends the run.
"""
import os
import time
from datetime import datetime
from typing import Optional

import numpy as np
import torch

from onpolicy.environments.base import Environment, StepResult
from onpolicy.errors import CollaboratorError
from onpolicy.utils.logging_config import get_logger

from .algorithms import Algorithm, UpdateDatum
from .checkpoint import save_checkpoint
from .episode_tracker import EpisodeRewardTracker
from .normalization import RewardNormalizer
from .policy import Policy
from .storage import RolloutStorage
from .trainer_config import TrainerConfig

logger = get_logger("trainer")

# Guards the FPS division on the first, very fast, updates
ELAPSED_EPSILON = 1e-9


class Trainer:
    """
    On-policy training loop.

    Handles:
    - Experience collection into RolloutStorage
    - Reward normalization and episode reward tracking
    - Bootstrapping and return estimation
    - Dispatch to the update algorithm
    - Logging, TensorBoard and checkpointing

    Args:
        config: Run configuration
        env: Environment, already created with config.num_envs instances
        policy: Policy, already on device
        algorithm: Update algorithm wrapping the same policy
        device: Device for the rollout storage (defaults to config.device)
    """

    def __init__(
        self,
        config: TrainerConfig,
        env: Environment,
        policy: Policy,
        algorithm: Algorithm,
        device: Optional[torch.device] = None,
    ):
        self.config = config
        self.env = env
        self.policy = policy
        self.algorithm = algorithm
        self.device = torch.device(device or config.device)

        env_info = env.info()
        self.action_space = env_info.action_space()
        self.obs_shape = tuple(env_info.observation_space_shape)
        logger.info(f"Action space: {env_info.action_space_type} - {list(env_info.action_space_shape)}")
        logger.info(f"Observation space: {env_info.observation_space_type} - {list(self.obs_shape)}")

        self.storage = RolloutStorage(
            num_steps=config.batch_size,
            num_processes=config.num_envs,
            obs_shape=self.obs_shape,
            action_space=self.action_space,
            hidden_state_size=config.hidden_size,
            device=self.device,
        )
        self.reward_normalizer = RewardNormalizer(
            num_envs=config.num_envs,
            gamma=config.discount_factor,
            clip_value=config.reward_clip_value,
            device=self.device,
        )
        self.episode_tracker = EpisodeRewardTracker(
            num_envs=config.num_envs,
            window_size=config.reward_average_window_size,
        )

        self.render = False
        self.update_count = 0
        self.total_steps = 0
        self.tb_writer = None

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def train(self) -> dict:
        """
        Run config.num_updates rollout/update cycles.

        Returns:
            Summary dict with training results
        """
        cfg = self.config
        num_updates = cfg.num_updates
        logger.info(f"Training {cfg.algorithm.upper()} on {cfg.env_name}: "
                    f"{num_updates} updates of {cfg.batch_size} steps x {cfg.num_envs} envs")

        self._open_tensorboard()
        try:
            observation = self.env.reset()
            self.storage.set_first_observation(self._observation_to_device(observation))

            start_time = time.time()
            for update in range(num_updates):
                self.collect_rollout()
                next_value = self.bootstrap_value()
                self.storage.compute_returns(next_value, cfg.use_gae, cfg.discount_factor, cfg.gae)

                decay_level = 1.0 - update / num_updates if cfg.use_lr_decay else 1.0
                update_data = self.algorithm.update(self.storage, decay_level)
                self.storage.after_update()

                self.update_count = update + 1
                self.total_steps = self.update_count * cfg.frames_per_update

                if update % cfg.log_interval == 0 and update > 0:
                    self.report(update, num_updates, update_data, time.time() - start_time)

                if cfg.output_path and cfg.save_interval > 0 and self.update_count % cfg.save_interval == 0:
                    self._save()

            elapsed = time.time() - start_time
            if cfg.output_path and num_updates > 0:
                self._save()
        finally:
            if self.tb_writer is not None:
                self.tb_writer.close()

        return {
            'updates': self.update_count,
            'total_steps': self.total_steps,
            'episodes': self.episode_tracker.completed_episodes,
            'average_reward': self.episode_tracker.average() if self.episode_tracker.has_episodes else None,
            'elapsed': elapsed,
        }

    # ------------------------------------------------------------------
    # Cycle phases
    # ------------------------------------------------------------------
    def collect_rollout(self) -> None:
        """Run batch_size environment steps and insert them into storage."""
        storage = self.storage
        for step in range(self.config.batch_size):
            with torch.no_grad():
                act = self.policy.act(
                    storage.observations[step],
                    storage.hidden_states[step],
                    storage.masks[step],
                )

            result = self.env.step(self._actions_to_env(act.action), render=self.render)
            self._check_step_result(result)

            reward = self.reward_normalizer.normalize(result.reward.to(self.device, torch.float32))
            self.episode_tracker.update(result.real_reward, result.done)
            self.reward_normalizer.reset(result.done)

            masks = 1.0 - result.done.to(self.device, torch.float32).unsqueeze(-1)
            storage.insert(
                self._observation_to_device(result.observation),
                act.hidden_state,
                act.action,
                act.action_log_prob,
                act.value,
                reward.unsqueeze(-1),
                masks,
            )

    def bootstrap_value(self) -> torch.Tensor:
        """Value estimate of the state after the last collected step."""
        with torch.no_grad():
            return self.policy.get_values(
                self.storage.observations[-1],
                self.storage.hidden_states[-1],
                self.storage.masks[-1],
            ).detach()

    def report(self, update: int, num_updates: int, update_data: list[UpdateDatum],
               elapsed: float) -> None:
        """Log progress and decide whether the next rollouts are rendered."""
        total_steps = (update + 1) * self.config.frames_per_update
        fps = total_steps / (elapsed + ELAPSED_EPSILON)

        logger.info("---")
        logger.info(f"Update: {update}/{num_updates}")
        logger.info(f"Total frames: {total_steps}")
        logger.info(f"FPS: {fps:.1f}")
        for datum in update_data:
            logger.info(f"{datum.name}: {datum.value:.6g}")

        if self.tb_writer is not None:
            self.tb_writer.add_scalar('perf/fps', fps, total_steps)
            for datum in update_data:
                self.tb_writer.add_scalar(f'update/{datum.name}', datum.value, total_steps)

        if not self.episode_tracker.has_episodes:
            logger.info("Reward: n/a (no episode finished yet)")
            return

        average_reward = self.episode_tracker.average()
        logger.info(f"Reward: {average_reward:.2f}")
        if self.tb_writer is not None:
            self.tb_writer.add_scalar('reward/average', average_reward, total_steps)
        self.render = average_reward >= self.config.render_reward_threshold

    # ------------------------------------------------------------------
    # Conversions between storage tensors and the environment
    # ------------------------------------------------------------------
    def _actions_to_env(self, action: torch.Tensor) -> np.ndarray:
        """Fresh numpy copy of the actions: (n_envs,) ints or (n_envs, action_dim) floats."""
        action = action.detach().cpu()
        if self.action_space.is_discrete:
            return action[:, 0].numpy().astype(np.int64)
        return action.numpy().astype(np.float32)

    def _observation_to_device(self, observation: torch.Tensor) -> torch.Tensor:
        return observation.to(self.device, torch.float32)

    def _check_step_result(self, result: StepResult) -> None:
        n = self.config.num_envs
        for name in ('reward', 'real_reward', 'done'):
            shape = tuple(getattr(result, name).shape)
            if shape != (n,):
                raise CollaboratorError(
                    f"Environment step returned {name} of shape {shape}, expected ({n},)"
                )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------
    def _open_tensorboard(self) -> None:
        cfg = self.config
        if not cfg.log_to_file:
            return
        try:
            from torch.utils.tensorboard import SummaryWriter
        except ImportError:
            logger.warning("TensorBoard not available (install tensorboard package)")
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        tb_dir = os.path.join(cfg.log_dir, f"{cfg.algorithm}_{cfg.env_name}_{timestamp}")
        self.tb_writer = SummaryWriter(log_dir=tb_dir)
        logger.info(f"Logging: {tb_dir}")

    def _save(self) -> None:
        save_checkpoint(
            self.policy,
            self.algorithm.optimizer,
            self.config.output_path,
            update_count=self.update_count,
            total_steps=self.total_steps,
            seed=self.config.seed,
        )
