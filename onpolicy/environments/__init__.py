"""
Environment contract and implementations.

Environment/EnvInfo/StepResult define what the Trainer needs from an
environment; GymnasiumEnvironment runs gymnasium environments in-process.
"""
from .spaces import ActionSpace, ActionSpaceKind
from .base import Environment, EnvInfo, StepResult

__all__ = [
    'ActionSpace',
    'ActionSpaceKind',
    'Environment',
    'EnvInfo',
    'StepResult',
]
