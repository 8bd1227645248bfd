"""
Running statistics and reward normalization.

RunningMeanStd combines each new batch with the stored moments using Chan
et al.'s parallel update, so the estimate never re-accumulates raw sums and
stays stable over very long runs. RewardNormalizer uses it to scale rewards
by the standard deviation of the discounted return.
"""
import torch

# Guards the square root against a zero variance estimate
VARIANCE_EPSILON = 1e-8


class RunningMeanStd:
    """
    Online mean and population variance over batches of samples.

    Statistics are kept in float64. Before the first update count, mean and
    variance are all zero, so get_variance() reports 0 and callers must
    guard any division by it.

    Not thread-safe; the trainer owns it exclusively.

    Args:
        shape: Shape of a single sample (() for scalars)
        device: Device to store stats on
    """

    def __init__(self, shape: tuple[int, ...] = (), device: torch.device | str = 'cpu'):
        self.shape = tuple(shape)
        self.mean = torch.zeros(self.shape, dtype=torch.float64, device=device)
        self.var = torch.zeros(self.shape, dtype=torch.float64, device=device)
        self.count = 0

    @torch.no_grad()
    def update(self, x: torch.Tensor) -> None:
        """
        Fold a batch of samples into the running moments.

        Args:
            x: Samples of shape (n, *shape)
        """
        x = x.to(device=self.mean.device, dtype=torch.float64)
        if x.dim() == 0 or tuple(x.shape[1:]) != self.shape:
            raise ValueError(
                f"Expected samples of shape (n, {', '.join(map(str, self.shape))}), "
                f"got {tuple(x.shape)}"
            )
        batch_count = x.shape[0]
        if batch_count == 0:
            return
        batch_mean = x.mean(dim=0)
        batch_var = x.var(dim=0, unbiased=False)
        self._update_from_moments(batch_mean, batch_var, batch_count)

    def _update_from_moments(self, batch_mean: torch.Tensor, batch_var: torch.Tensor,
                             batch_count: int) -> None:
        delta = batch_mean - self.mean
        tot_count = self.count + batch_count

        new_mean = self.mean + delta * batch_count / tot_count
        m_a = self.var * self.count
        m_b = batch_var * batch_count
        m2 = m_a + m_b + delta ** 2 * self.count * batch_count / tot_count

        self.mean = new_mean
        self.var = m2 / tot_count
        self.count = tot_count

    def get_mean(self) -> torch.Tensor:
        return self.mean

    def get_variance(self) -> torch.Tensor:
        return self.var

    def normalize(self, x: torch.Tensor, clip: float = 10.0) -> torch.Tensor:
        """Standardize x with the running stats and clip to [-clip, clip]."""
        mean = self.mean.to(device=x.device, dtype=x.dtype)
        var = self.var.to(device=x.device, dtype=x.dtype)
        return torch.clamp((x - mean) / torch.sqrt(var + VARIANCE_EPSILON), -clip, clip)

    def to(self, device: torch.device | str) -> 'RunningMeanStd':
        """Move stats to device."""
        self.mean = self.mean.to(device)
        self.var = self.var.to(device)
        return self

    def state_dict(self) -> dict:
        """Return state dictionary for checkpointing."""
        return {
            'mean': self.mean.clone(),
            'var': self.var.clone(),
            'count': self.count,
        }

    def load_state_dict(self, state: dict) -> None:
        """Restore from a state_dict() snapshot."""
        self.mean = state['mean'].to(device=self.mean.device, dtype=torch.float64).clone()
        self.var = state['var'].to(device=self.var.device, dtype=torch.float64).clone()
        self.count = int(state['count'])


class RewardNormalizer:
    """
    Scales rewards by the running std of each environment's discounted return.

    Per environment i the discounted return R_i = gamma * R_i + reward_i is
    tracked; the moments of R over all environments are updated every step
    and the reward is divided by their std, then clipped. The return of an
    environment restarts from zero when its episode ends.

    Args:
        num_envs: Number of parallel environments
        gamma: Discount factor for the return accumulator
        clip_value: Normalized rewards are clamped to [-clip_value, clip_value]
    """

    def __init__(self, num_envs: int, gamma: float, clip_value: float,
                 device: torch.device | str = 'cpu'):
        self.gamma = gamma
        self.clip_value = clip_value
        self.returns = torch.zeros(num_envs, device=device)
        self.returns_rms = RunningMeanStd(shape=(), device=device)

    def normalize(self, reward: torch.Tensor) -> torch.Tensor:
        """
        Update the return statistics and return the scaled, clipped reward.

        Args:
            reward: Raw rewards, shape (n_envs,)

        Returns:
            Normalized rewards, shape (n_envs,), same dtype as reward
        """
        if reward.shape != self.returns.shape:
            raise ValueError(
                f"Expected rewards of shape {tuple(self.returns.shape)}, got {tuple(reward.shape)}"
            )
        self.returns = self.returns * self.gamma + reward
        self.returns_rms.update(self.returns)
        std = torch.sqrt(self.returns_rms.get_variance() + VARIANCE_EPSILON)
        scaled = reward / std.to(device=reward.device, dtype=reward.dtype)
        return torch.clamp(scaled, -self.clip_value, self.clip_value)

    def reset(self, dones: torch.Tensor) -> None:
        """Zero the discounted return of every environment whose episode ended."""
        self.returns[dones.to(device=self.returns.device, dtype=torch.bool)] = 0.0
