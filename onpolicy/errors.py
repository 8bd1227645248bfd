"""
Exception types raised by the training core.

Shape and collaborator failures are programming/contract errors and are
never retried: they propagate out of Trainer.train() and end the run.
"""


class OnPolicyError(Exception):
    """Base class for all errors raised by onpolicy."""


class ShapeMismatchError(OnPolicyError, ValueError):
    """A tensor handed to the rollout storage has the wrong shape, or the storage is full."""


class NoEpisodesError(OnPolicyError, LookupError):
    """An episode reward average was requested before any episode finished."""


class CollaboratorError(OnPolicyError, RuntimeError):
    """An environment, policy or update collaborator returned something unusable."""


class UnsupportedSpaceError(CollaboratorError):
    """The environment reported an action or observation space kind we cannot handle."""
