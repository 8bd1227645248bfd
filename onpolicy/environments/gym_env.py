"""
In-process Environment backed by gymnasium vector environments.

Runs num_envs copies of a registered gymnasium environment in a
SyncVectorEnv. Finished instances are reset within the same step, so the
observation returned alongside done=True already belongs to the next
episode; this is what the rollout masks expect.
"""
from typing import Optional

import gymnasium as gym
import numpy as np
import torch
from gymnasium.vector import AutoresetMode, SyncVectorEnv

from onpolicy.errors import CollaboratorError
from onpolicy.utils.logging_config import get_logger

from .base import Environment, EnvInfo, StepResult

logger = get_logger("environment")


class GymnasiumEnvironment(Environment):
    """
    Environment contract over gymnasium.vector.SyncVectorEnv.

    Observations handed back are fresh float32 tensors; nothing returned
    here shares memory with gymnasium's internal buffers.
    """

    def __init__(self, render_mode: Optional[str] = None, seed: Optional[int] = None):
        self.render_mode = render_mode
        self.seed = seed
        self.num_envs = 0
        self._envs: Optional[SyncVectorEnv] = None
        self._warned_render = False

    def make(self, env_name: str, num_envs: int) -> str:
        if num_envs <= 0:
            raise ValueError(f"num_envs must be positive, got {num_envs}")
        if self._envs is not None:
            self._envs.close()

        def make_one():
            return gym.make(env_name, render_mode=self.render_mode)

        self._envs = SyncVectorEnv(
            [make_one for _ in range(num_envs)],
            autoreset_mode=AutoresetMode.SAME_STEP,
        )
        self.num_envs = num_envs
        return f"Created {num_envs} {env_name} environment(s)"

    @property
    def envs(self) -> SyncVectorEnv:
        if self._envs is None:
            raise CollaboratorError("Environment used before make() was called")
        return self._envs

    def info(self) -> EnvInfo:
        action_space = self.envs.single_action_space
        observation_space = self.envs.single_observation_space
        if isinstance(action_space, gym.spaces.Discrete):
            action_shape = (int(action_space.n),)
        else:
            action_shape = tuple(int(d) for d in action_space.shape)
        return EnvInfo(
            action_space_type=type(action_space).__name__,
            action_space_shape=action_shape,
            observation_space_type=type(observation_space).__name__,
            observation_space_shape=tuple(int(d) for d in observation_space.shape),
        )

    def reset(self) -> torch.Tensor:
        observation, _ = self.envs.reset(seed=self.seed)
        return self._to_tensor(observation, 'observation')

    def step(self, actions: np.ndarray, render: bool = False) -> StepResult:
        observation, reward, terminated, truncated, _ = self.envs.step(actions)

        if render:
            if self.render_mode is not None:
                self.envs.call('render')
            elif not self._warned_render:
                logger.warning("Render requested but no render_mode was configured")
                self._warned_render = True

        reward_t = self._to_tensor(reward, 'reward')
        done = torch.as_tensor(np.logical_or(terminated, truncated), dtype=torch.bool).clone()
        if done.shape != (self.num_envs,):
            raise CollaboratorError(
                f"Environment returned done flags of shape {tuple(done.shape)}, "
                f"expected ({self.num_envs},)"
            )
        return StepResult(
            observation=self._to_tensor(observation, 'observation'),
            reward=reward_t,
            real_reward=reward_t.clone(),
            done=done,
        )

    def close(self) -> None:
        if self._envs is not None:
            self._envs.close()
            self._envs = None

    def _to_tensor(self, value, what: str) -> torch.Tensor:
        tensor = torch.tensor(np.asarray(value), dtype=torch.float32)
        if tensor.dim() == 0 or tensor.shape[0] != self.num_envs:
            raise CollaboratorError(
                f"Environment returned {what} with batch shape {tuple(tensor.shape)}, "
                f"expected {self.num_envs} environments"
            )
        return tensor
