"""
Action space description shared by storage, policy and environments.

This is the single place that decides how many action columns a rollout
stores per environment and which dtype they use.
"""
from dataclasses import dataclass
from enum import Enum

import torch

from onpolicy.errors import UnsupportedSpaceError


class ActionSpaceKind(Enum):
    DISCRETE = 'Discrete'
    CONTINUOUS = 'Continuous'

    @classmethod
    def from_name(cls, name: str) -> 'ActionSpaceKind':
        """
        Map an environment's space type name onto a kind.

        Accepts our own names plus gymnasium's ('Discrete', 'Box').
        """
        if name == 'Discrete':
            return cls.DISCRETE
        if name in ('Box', 'Continuous'):
            return cls.CONTINUOUS
        raise UnsupportedSpaceError(f"Unsupported action space type: {name!r}")


@dataclass(frozen=True)
class ActionSpace:
    """
    Kind plus shape of an action space.

    For Discrete spaces shape[0] is the number of choices; for Continuous
    spaces shape[0] is the number of action dimensions.
    """
    kind: ActionSpaceKind
    shape: tuple[int, ...]

    def __post_init__(self):
        if not self.shape:
            raise ValueError("ActionSpace shape must have at least one dimension")

    @classmethod
    def discrete(cls, n: int) -> 'ActionSpace':
        return cls(ActionSpaceKind.DISCRETE, (n,))

    @classmethod
    def continuous(cls, n: int) -> 'ActionSpace':
        return cls(ActionSpaceKind.CONTINUOUS, (n,))

    @property
    def is_discrete(self) -> bool:
        return self.kind is ActionSpaceKind.DISCRETE

    @property
    def num_action_columns(self) -> int:
        """Scalars stored per environment per step (1 for Discrete)."""
        return 1 if self.is_discrete else self.shape[0]

    @property
    def dtype(self) -> torch.dtype:
        return torch.long if self.is_discrete else torch.float32
