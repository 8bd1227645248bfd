"""
Checkpoint saving and loading for training runs.

A checkpoint holds the policy weights, the observation normalizer stats,
the optimizer state and enough metadata (action space, hidden size,
recurrence) to rebuild the policy for inference.

Usage:
    from .checkpoint import save_checkpoint, load_policy

    save_checkpoint(policy, optimizer, path, update_count=10, total_steps=3200, seed=0)
    policy = load_policy(path)
"""
import os
from typing import Optional

import torch

from onpolicy.environments.spaces import ActionSpace, ActionSpaceKind
from onpolicy.utils.logging_config import get_logger
from .policy import Policy, create_policy

logger = get_logger("checkpoint")


def save_checkpoint(
    policy: Policy,
    optimizer: Optional[torch.optim.Optimizer],
    output_path: str,
    update_count: int,
    total_steps: int,
    seed: Optional[int],
) -> str:
    """
    Save a training checkpoint.

    Args:
        policy: Policy being trained
        optimizer: Optimizer with training state (None to omit)
        output_path: File to write; parent directories are created
        update_count: Number of updates completed
        total_steps: Total environment steps so far
        seed: Training seed

    Returns:
        Path to saved checkpoint
    """
    directory = os.path.dirname(output_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    torch.save({
        # Architecture metadata (for rebuilding the policy)
        'action_space': {
            'kind': policy.action_space.kind.value,
            'shape': list(policy.action_space.shape),
        },
        'obs_shape': list(policy.obs_shape),
        'hidden_size': policy.base.hidden_size,
        'recurrent': policy.is_recurrent,
        'seed': seed,
        # Training state
        'update': update_count,
        'total_steps': total_steps,
        'state_dict': policy.state_dict(),
        'obs_rms': policy.obs_rms.state_dict() if policy.obs_rms is not None else None,
        'optimizer_state_dict': optimizer.state_dict() if optimizer is not None else None,
    }, output_path)

    logger.info(f"Checkpoint saved: {output_path}")
    return output_path


def load_policy(path: str, device: torch.device | str = 'cpu') -> Policy:
    """Rebuild a Policy from a checkpoint written by save_checkpoint()."""
    checkpoint = torch.load(path, map_location=device, weights_only=False)

    action_space = ActionSpace(
        ActionSpaceKind(checkpoint['action_space']['kind']),
        tuple(checkpoint['action_space']['shape']),
    )
    policy = create_policy(
        action_space,
        tuple(checkpoint['obs_shape']),
        hidden_size=checkpoint['hidden_size'],
        recurrent=checkpoint['recurrent'],
        normalize_observation=checkpoint['obs_rms'] is not None,
    )
    policy.load_state_dict(checkpoint['state_dict'])
    if checkpoint['obs_rms'] is not None:
        policy.obs_rms.load_state_dict(checkpoint['obs_rms'])
    return policy.to(device)
