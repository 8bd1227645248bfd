"""
Rollout storage for on-policy training.

Holds one horizon of transitions for every parallel environment and turns
rewards and value predictions into bootstrapped returns in place.

Shape convention: (time, n_envs, ...). The observation-aligned tensors
(observations, hidden_states, masks, returns) have num_steps + 1 slots:
slot 0 is the state carried over from the previous rollout and slot t + 1
is the state reached after step t. Transition tensors (actions, rewards,
value_predictions, action_log_probs) have num_steps slots, where slot t
describes the move from state t to state t + 1.

Usage:
    storage = RolloutStorage(num_steps=128, num_processes=8, obs_shape=(4,),
                             action_space=ActionSpace.discrete(2),
                             hidden_state_size=64)
    storage.set_first_observation(env.reset())
    for step in range(128):
        ...
        storage.insert(obs, hidden, action, log_prob, value, reward, mask)
    storage.compute_returns(next_value, use_gae=True, gamma=0.99, tau=0.95)
    algorithm.update(storage, decay_level)
    storage.after_update()
"""
from typing import Iterator, NamedTuple

import torch

from onpolicy.environments.spaces import ActionSpace
from onpolicy.errors import ShapeMismatchError


class MiniBatch(NamedTuple):
    """One minibatch of flattened rollout samples for an update pass."""
    observations: torch.Tensor
    hidden_states: torch.Tensor
    actions: torch.Tensor
    value_predictions: torch.Tensor
    returns: torch.Tensor
    masks: torch.Tensor
    action_log_probs: torch.Tensor
    advantages: torch.Tensor


class RolloutStorage:
    """
    Fixed-horizon, multi-environment trajectory buffer.

    Allocated once per training run and reused every update cycle:
    after_update() rotates the final state into slot 0 instead of
    reallocating. All tensors are owned by the storage; insert() copies
    its arguments and the accessors hand out the storage's own tensors,
    which callers must treat as read-only.
    """

    def __init__(
        self,
        num_steps: int,
        num_processes: int,
        obs_shape: tuple[int, ...],
        action_space: ActionSpace,
        hidden_state_size: int,
        device: torch.device | str = 'cpu',
    ):
        if num_steps <= 0 or num_processes <= 0 or hidden_state_size <= 0:
            raise ValueError(
                f"num_steps, num_processes and hidden_state_size must be positive "
                f"(got {num_steps}, {num_processes}, {hidden_state_size})"
            )
        self._num_steps = num_steps
        self._num_processes = num_processes
        self._obs_shape = tuple(obs_shape)
        self._action_space = action_space
        self._hidden_state_size = hidden_state_size
        self._step = 0

        T, N = num_steps, num_processes
        num_actions = action_space.num_action_columns

        self._observations = torch.zeros((T + 1, N, *self._obs_shape), device=device)
        self._hidden_states = torch.zeros((T + 1, N, hidden_state_size), device=device)
        self._masks = torch.ones((T + 1, N, 1), device=device)
        self._returns = torch.zeros((T + 1, N, 1), device=device)
        self._actions = torch.zeros((T, N, num_actions), device=device, dtype=action_space.dtype)
        self._action_log_probs = torch.zeros((T, N, 1), device=device)
        self._rewards = torch.zeros((T, N, 1), device=device)
        self._value_predictions = torch.zeros((T, N, 1), device=device)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def num_steps(self) -> int:
        return self._num_steps

    @property
    def num_processes(self) -> int:
        return self._num_processes

    @property
    def step(self) -> int:
        """Next write position for the transition tensors."""
        return self._step

    @property
    def action_space(self) -> ActionSpace:
        return self._action_space

    @property
    def observations(self) -> torch.Tensor:
        return self._observations

    @property
    def hidden_states(self) -> torch.Tensor:
        return self._hidden_states

    @property
    def masks(self) -> torch.Tensor:
        return self._masks

    @property
    def actions(self) -> torch.Tensor:
        return self._actions

    @property
    def action_log_probs(self) -> torch.Tensor:
        return self._action_log_probs

    @property
    def rewards(self) -> torch.Tensor:
        return self._rewards

    @property
    def value_predictions(self) -> torch.Tensor:
        return self._value_predictions

    @property
    def returns(self) -> torch.Tensor:
        return self._returns

    @property
    def device(self) -> torch.device:
        return self._observations.device

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def set_first_observation(self, observation: torch.Tensor) -> None:
        """Write the initial (reset) observation into slot 0."""
        self._check_shape('observation', observation, self._observations.shape[1:])
        self._observations[0].copy_(observation)

    def insert(
        self,
        observation: torch.Tensor,
        hidden_state: torch.Tensor,
        action: torch.Tensor,
        action_log_prob: torch.Tensor,
        value_prediction: torch.Tensor,
        reward: torch.Tensor,
        mask: torch.Tensor,
    ) -> None:
        """
        Record one step for every environment.

        observation, hidden_state and mask describe the state reached by the
        step and go into slot step + 1; the rest describe the step itself
        and go into slot step.

        Raises:
            ShapeMismatchError: if the storage is full or any argument has
                the wrong shape. Nothing is written in that case.
        """
        if self._step >= self._num_steps:
            raise ShapeMismatchError(
                f"RolloutStorage is full ({self._num_steps} steps); "
                f"call after_update() before inserting again"
            )

        self._check_shape('observation', observation, self._observations.shape[1:])
        self._check_shape('hidden_state', hidden_state, self._hidden_states.shape[1:])
        self._check_shape('action', action, self._actions.shape[1:])
        self._check_shape('action_log_prob', action_log_prob, self._action_log_probs.shape[1:])
        self._check_shape('value_prediction', value_prediction, self._value_predictions.shape[1:])
        self._check_shape('reward', reward, self._rewards.shape[1:])
        self._check_shape('mask', mask, self._masks.shape[1:])

        t = self._step
        self._observations[t + 1].copy_(observation)
        self._hidden_states[t + 1].copy_(hidden_state)
        self._masks[t + 1].copy_(mask)
        self._actions[t].copy_(action)
        self._action_log_probs[t].copy_(action_log_prob)
        self._value_predictions[t].copy_(value_prediction)
        self._rewards[t].copy_(reward)

        self._step = t + 1

    def after_update(self) -> None:
        """Carry the final state over into slot 0 and rewind the write cursor."""
        self._observations[0].copy_(self._observations[-1])
        self._hidden_states[0].copy_(self._hidden_states[-1])
        self._masks[0].copy_(self._masks[-1])
        self._step = 0

    # ------------------------------------------------------------------
    # Return estimation
    # ------------------------------------------------------------------
    def compute_returns(
        self,
        next_value: torch.Tensor,
        use_gae: bool,
        gamma: float,
        tau: float,
    ) -> None:
        """
        Fill returns[0..T] from the stored rewards, masks and values.

        Args:
            next_value: Value estimate of the state after the last step,
                shape (n_envs, 1). Stored as returns[T].
            use_gae: Generalized Advantage Estimation if True, otherwise
                plain discounted n-step returns bootstrapped from next_value.
            gamma: Discount factor
            tau: GAE lambda (ignored when use_gae is False)

        A zero in masks[t + 1] stops both the discounted sum and the GAE
        trace from crossing the episode boundary after step t.
        """
        self._check_shape('next_value', next_value, self._returns.shape[1:])

        self._returns[-1].copy_(next_value)
        rewards = self._rewards
        masks = self._masks
        values = self._value_predictions

        if use_gae:
            # next_values[t] = values[t+1] for t < T-1, next_value for t = T-1
            next_values = torch.cat([values[1:], next_value.to(values.dtype).unsqueeze(0)], dim=0)
            deltas = rewards + gamma * masks[1:] * next_values - values
            gae_coef = gamma * tau
            gae = torch.zeros_like(deltas[0])
            for t in range(self._num_steps - 1, -1, -1):
                gae = deltas[t] + gae_coef * masks[t + 1] * gae
                self._returns[t] = gae + values[t]
        else:
            for t in range(self._num_steps - 1, -1, -1):
                self._returns[t] = rewards[t] + gamma * masks[t + 1] * self._returns[t + 1]

    def advantages(self) -> torch.Tensor:
        """Returns minus value predictions, shape (T, n_envs, 1)."""
        return self._returns[:-1] - self._value_predictions

    # ------------------------------------------------------------------
    # Minibatching
    # ------------------------------------------------------------------
    def feed_forward_generator(
        self,
        advantages: torch.Tensor,
        num_mini_batch: int,
    ) -> Iterator[MiniBatch]:
        """
        Yield minibatches over a random permutation of all T * n_envs samples.

        Hidden states are those that were fed to the policy at each step,
        which is all a non-recurrent policy needs.
        """
        T, N = self._num_steps, self._num_processes
        batch_size = T * N
        if batch_size < num_mini_batch:
            raise ValueError(
                f"Rollout has {batch_size} samples ({T} steps x {N} envs), "
                f"fewer than num_mini_batch={num_mini_batch}"
            )
        minibatch_size = batch_size // num_mini_batch
        indices = torch.randperm(batch_size, device=self.device)

        observations = self._observations[:-1].reshape(batch_size, *self._obs_shape)
        hidden_states = self._hidden_states[:-1].reshape(batch_size, -1)
        actions = self._actions.reshape(batch_size, -1)
        value_predictions = self._value_predictions.reshape(batch_size, 1)
        returns = self._returns[:-1].reshape(batch_size, 1)
        masks = self._masks[:-1].reshape(batch_size, 1)
        action_log_probs = self._action_log_probs.reshape(batch_size, 1)
        advantages = advantages.reshape(batch_size, 1)

        for mb_idx in range(num_mini_batch):
            mb_inds = indices[mb_idx * minibatch_size:(mb_idx + 1) * minibatch_size]
            yield MiniBatch(
                observations=observations[mb_inds],
                hidden_states=hidden_states[mb_inds],
                actions=actions[mb_inds],
                value_predictions=value_predictions[mb_inds],
                returns=returns[mb_inds],
                masks=masks[mb_inds],
                action_log_probs=action_log_probs[mb_inds],
                advantages=advantages[mb_inds],
            )

    def recurrent_generator(
        self,
        advantages: torch.Tensor,
        num_mini_batch: int,
    ) -> Iterator[MiniBatch]:
        """
        Yield minibatches of whole environment sequences.

        Each minibatch takes a random subset of environments with all T
        steps, flattened time-major to (T * n_mb, ...), plus the hidden
        state at slot 0 (n_mb, H) from which a recurrent policy unrolls.
        """
        T, N = self._num_steps, self._num_processes
        if N < num_mini_batch:
            raise ValueError(
                f"Recurrent minibatching needs at least num_mini_batch={num_mini_batch} "
                f"environments, got {N}"
            )
        envs_per_batch = N // num_mini_batch
        perm = torch.randperm(N, device=self.device)

        for mb_idx in range(num_mini_batch):
            env_inds = perm[mb_idx * envs_per_batch:(mb_idx + 1) * envs_per_batch]
            n = env_inds.shape[0]
            yield MiniBatch(
                observations=self._observations[:-1, env_inds].reshape(T * n, *self._obs_shape),
                hidden_states=self._hidden_states[0, env_inds],
                actions=self._actions[:, env_inds].reshape(T * n, -1),
                value_predictions=self._value_predictions[:, env_inds].reshape(T * n, 1),
                returns=self._returns[:-1, env_inds].reshape(T * n, 1),
                masks=self._masks[:-1, env_inds].reshape(T * n, 1),
                action_log_probs=self._action_log_probs[:, env_inds].reshape(T * n, 1),
                advantages=advantages[:, env_inds].reshape(T * n, 1),
            )

    # ------------------------------------------------------------------
    # Device handling
    # ------------------------------------------------------------------
    def to(self, device: torch.device | str) -> 'RolloutStorage':
        """Move all storage to device."""
        self._observations = self._observations.to(device)
        self._hidden_states = self._hidden_states.to(device)
        self._masks = self._masks.to(device)
        self._returns = self._returns.to(device)
        self._actions = self._actions.to(device)
        self._action_log_probs = self._action_log_probs.to(device)
        self._rewards = self._rewards.to(device)
        self._value_predictions = self._value_predictions.to(device)
        return self

    @staticmethod
    def _check_shape(name: str, tensor: torch.Tensor, expected: torch.Size) -> None:
        if tuple(tensor.shape) != tuple(expected):
            raise ShapeMismatchError(
                f"{name} has shape {tuple(tensor.shape)}, expected {tuple(expected)}"
            )
