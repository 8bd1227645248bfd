"""
Policy update algorithms.

Each algorithm consumes a filled RolloutStorage (returns already computed)
and performs one update of the policy, returning named scalar metrics for
logging. The implementation is chosen once, from the run configuration,
by create_algorithm().
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, NamedTuple

import torch
import torch.nn.functional as F

from onpolicy.utils.logging_config import get_logger
from .policy import Policy
from .storage import RolloutStorage

if TYPE_CHECKING:
    from .trainer_config import TrainerConfig

logger = get_logger("algorithms")

ADVANTAGE_EPSILON = 1e-5


class UpdateDatum(NamedTuple):
    """One named scalar reported by an update."""
    name: str
    value: float


class Algorithm(ABC):
    """Update rule applied to a policy after every rollout."""

    def __init__(self, policy: Policy, optimizer: torch.optim.Optimizer, learning_rate: float):
        self.policy = policy
        self.optimizer = optimizer
        self.original_learning_rate = learning_rate

    @abstractmethod
    def update(self, storage: RolloutStorage, decay_level: float = 1.0) -> list[UpdateDatum]:
        """
        Update the policy from one rollout.

        Args:
            storage: Rollout with returns computed
            decay_level: Multiplier applied to the initial learning rate
        """
        ...

    def _apply_decay(self, decay_level: float) -> None:
        for group in self.optimizer.param_groups:
            group['lr'] = self.original_learning_rate * decay_level

    def _flatten_rollout(self, storage: RolloutStorage):
        """Whole rollout as one batch, shaped for Policy.evaluate_actions()."""
        T, N = storage.num_steps, storage.num_processes
        obs_shape = storage.observations.shape[2:]
        observations = storage.observations[:-1].reshape(T * N, *obs_shape)
        if self.policy.is_recurrent:
            hidden_states = storage.hidden_states[0]
        else:
            hidden_states = storage.hidden_states[:-1].reshape(T * N, -1)
        masks = storage.masks[:-1].reshape(T * N, 1)
        actions = storage.actions.reshape(T * N, -1)
        return observations, hidden_states, masks, actions


class A2C(Algorithm):
    """
    Synchronous advantage actor-critic.

    One RMSprop step on the full rollout. Advantages are the raw
    returns minus the freshly evaluated values.
    """

    def __init__(
        self,
        policy: Policy,
        actor_loss_coef: float,
        value_loss_coef: float,
        entropy_coef: float,
        learning_rate: float,
        epsilon: float = 1e-8,
        alpha: float = 0.99,
        max_grad_norm: float = 0.5,
    ):
        optimizer = torch.optim.RMSprop(policy.parameters(), lr=learning_rate, eps=epsilon, alpha=alpha)
        super().__init__(policy, optimizer, learning_rate)
        self.actor_loss_coef = actor_loss_coef
        self.value_loss_coef = value_loss_coef
        self.entropy_coef = entropy_coef
        self.max_grad_norm = max_grad_norm

    def update(self, storage: RolloutStorage, decay_level: float = 1.0) -> list[UpdateDatum]:
        self._apply_decay(decay_level)

        T, N = storage.num_steps, storage.num_processes
        observations, hidden_states, masks, actions = self._flatten_rollout(storage)
        result = self.policy.evaluate_actions(observations, hidden_states, masks, actions)

        values = result.value.view(T, N, 1)
        action_log_probs = result.action_log_prob.view(T, N, 1)

        advantages = storage.returns[:-1] - values
        value_loss = advantages.pow(2).mean()
        action_loss = -(advantages.detach() * action_log_probs).mean()
        loss = (value_loss * self.value_loss_coef
                + action_loss * self.actor_loss_coef
                - result.entropy * self.entropy_coef)

        self.optimizer.zero_grad()
        loss.backward()
        torch.nn.utils.clip_grad_norm_(self.policy.parameters(), self.max_grad_norm)
        self.optimizer.step()

        self.policy.update_observation_normalizer(storage.observations[:-1])

        return [
            UpdateDatum('value_loss', value_loss.item()),
            UpdateDatum('action_loss', action_loss.item()),
            UpdateDatum('entropy', result.entropy.item()),
        ]


class PPO(Algorithm):
    """
    Proximal Policy Optimization with clipped surrogate and clipped value loss.

    Runs num_epoch passes of num_mini_batch Adam steps over the rollout.
    Advantages are normalized per update. An epoch pass is the last one
    when its mean approximate KL divergence exceeds 1.5 * kl_target.
    """

    def __init__(
        self,
        policy: Policy,
        clip_param: float,
        num_epoch: int,
        num_mini_batch: int,
        actor_loss_coef: float,
        value_loss_coef: float,
        entropy_coef: float,
        learning_rate: float,
        epsilon: float = 1e-8,
        max_grad_norm: float = 0.5,
        kl_target: float = 0.01,
    ):
        optimizer = torch.optim.Adam(policy.parameters(), lr=learning_rate, eps=epsilon)
        super().__init__(policy, optimizer, learning_rate)
        self.clip_param = clip_param
        self.num_epoch = num_epoch
        self.num_mini_batch = num_mini_batch
        self.actor_loss_coef = actor_loss_coef
        self.value_loss_coef = value_loss_coef
        self.entropy_coef = entropy_coef
        self.max_grad_norm = max_grad_norm
        self.kl_target = kl_target

    def update(self, storage: RolloutStorage, decay_level: float = 1.0) -> list[UpdateDatum]:
        self._apply_decay(decay_level)

        advantages = storage.advantages()
        advantages = (advantages - advantages.mean()) / (advantages.std() + ADVANTAGE_EPSILON)

        if self.policy.is_recurrent:
            make_batches = storage.recurrent_generator
        else:
            make_batches = storage.feed_forward_generator

        device = storage.device
        total_value_loss = torch.tensor(0.0, device=device)
        total_action_loss = torch.tensor(0.0, device=device)
        total_entropy = torch.tensor(0.0, device=device)
        total_clip_fraction = torch.tensor(0.0, device=device)
        total_kl = torch.tensor(0.0, device=device)
        n_updates = 0

        for epoch in range(self.num_epoch):
            epoch_kl = torch.tensor(0.0, device=device)
            epoch_batches = 0

            for batch in make_batches(advantages, self.num_mini_batch):
                result = self.policy.evaluate_actions(
                    batch.observations, batch.hidden_states, batch.masks, batch.actions
                )

                ratio = torch.exp(result.action_log_prob - batch.action_log_probs)
                surr1 = ratio * batch.advantages
                surr2 = torch.clamp(ratio, 1.0 - self.clip_param, 1.0 + self.clip_param) * batch.advantages
                action_loss = -torch.min(surr1, surr2).mean()

                v_clip = batch.value_predictions + torch.clamp(
                    result.value - batch.value_predictions, -self.clip_param, self.clip_param
                )
                v_loss1 = F.mse_loss(result.value, batch.returns)
                v_loss2 = F.mse_loss(v_clip, batch.returns)
                value_loss = torch.max(v_loss1, v_loss2)

                loss = (value_loss * self.value_loss_coef
                        + action_loss * self.actor_loss_coef
                        - result.entropy * self.entropy_coef)

                self.optimizer.zero_grad()
                loss.backward()
                torch.nn.utils.clip_grad_norm_(self.policy.parameters(), self.max_grad_norm)
                self.optimizer.step()

                with torch.no_grad():
                    kl = (batch.action_log_probs - result.action_log_prob).mean()
                    clip_fraction = ((ratio - 1.0).abs() > self.clip_param).float().mean()

                total_value_loss = total_value_loss + value_loss.detach()
                total_action_loss = total_action_loss + action_loss.detach()
                total_entropy = total_entropy + result.entropy.detach()
                total_clip_fraction = total_clip_fraction + clip_fraction
                total_kl = total_kl + kl
                epoch_kl = epoch_kl + kl
                epoch_batches += 1
                n_updates += 1

            if self.kl_target > 0 and epoch_kl.item() / epoch_batches > 1.5 * self.kl_target:
                logger.debug(
                    f"Early stopping after epoch {epoch + 1}/{self.num_epoch}: "
                    f"KL {epoch_kl.item() / epoch_batches:.4f} > 1.5 * {self.kl_target}"
                )
                break

        # Refresh after the update so its log probs saw the same inputs as the rollout
        self.policy.update_observation_normalizer(storage.observations[:-1])

        return [
            UpdateDatum('value_loss', (total_value_loss / n_updates).item()),
            UpdateDatum('action_loss', (total_action_loss / n_updates).item()),
            UpdateDatum('clip_fraction', (total_clip_fraction / n_updates).item()),
            UpdateDatum('entropy', (total_entropy / n_updates).item()),
            UpdateDatum('kl_divergence', (total_kl / n_updates).item()),
        ]


def _build_a2c(config: 'TrainerConfig', policy: Policy) -> A2C:
    return A2C(
        policy,
        actor_loss_coef=config.actor_loss_coef,
        value_loss_coef=config.value_loss_coef,
        entropy_coef=config.entropy_coef,
        learning_rate=config.learning_rate,
        max_grad_norm=config.max_grad_norm,
    )


def _build_ppo(config: 'TrainerConfig', policy: Policy) -> PPO:
    return PPO(
        policy,
        clip_param=config.clip_param,
        num_epoch=config.num_epoch,
        num_mini_batch=config.num_mini_batch,
        actor_loss_coef=config.actor_loss_coef,
        value_loss_coef=config.value_loss_coef,
        entropy_coef=config.entropy_coef,
        learning_rate=config.learning_rate,
        max_grad_norm=config.max_grad_norm,
        kl_target=config.kl_target,
    )


ALGORITHMS = {
    'a2c': _build_a2c,
    'ppo': _build_ppo,
}


def create_algorithm(config: 'TrainerConfig', policy: Policy) -> Algorithm:
    """Instantiate the update algorithm named by config.algorithm."""
    try:
        builder = ALGORITHMS[config.algorithm]
    except KeyError:
        raise ValueError(
            f"Unknown algorithm {config.algorithm!r}; choose from {sorted(ALGORITHMS)}"
        ) from None
    return builder(config, policy)
