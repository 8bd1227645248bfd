"""
Environment contract used by the Trainer.

The Trainer only ever talks to an Environment through these four calls,
one blocking round trip at a time. How the environment is hosted
(in-process, another process, another machine) is up to the implementation.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np
import torch

from .spaces import ActionSpace, ActionSpaceKind


@dataclass(frozen=True)
class EnvInfo:
    """Space description returned by Environment.info()."""
    action_space_type: str
    action_space_shape: tuple[int, ...]
    observation_space_type: str
    observation_space_shape: tuple[int, ...]

    def action_space(self) -> ActionSpace:
        return ActionSpace(
            ActionSpaceKind.from_name(self.action_space_type),
            tuple(self.action_space_shape),
        )


@dataclass
class StepResult:
    """
    Batched result of one environment step.

    Attributes:
        observation: Next observations [n_envs, *obs_shape] (float32)
        reward: Rewards as produced by the environment [n_envs]
        real_reward: Unscaled rewards, used for episode statistics [n_envs]
        done: Episode-ended flags [n_envs] (bool)
    """
    observation: torch.Tensor
    reward: torch.Tensor
    real_reward: torch.Tensor
    done: torch.Tensor


class Environment(ABC):
    """Abstract batched environment (N parallel instances)."""

    @abstractmethod
    def make(self, env_name: str, num_envs: int) -> str:
        """Create num_envs instances of env_name. Returns a status message."""
        ...

    @abstractmethod
    def info(self) -> EnvInfo:
        """Describe the action and observation spaces."""
        ...

    @abstractmethod
    def reset(self) -> torch.Tensor:
        """Reset all instances and return the initial observations [n_envs, *obs_shape]."""
        ...

    @abstractmethod
    def step(self, actions: np.ndarray, render: bool = False) -> StepResult:
        """
        Advance every instance by one step.

        Args:
            actions: [n_envs] integers for Discrete spaces,
                     [n_envs, action_dim] floats for Continuous spaces
            render: Ask the environment to display this step
        """
        ...

    def close(self) -> None:
        """Release environment resources."""
