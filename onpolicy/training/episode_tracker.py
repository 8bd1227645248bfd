"""
Episode reward bookkeeping for logging.

Accumulates the unnormalized ("real") reward of every environment and keeps
the totals of the most recently finished episodes in a fixed-size window.
"""
import torch

from onpolicy.errors import NoEpisodesError


class EpisodeRewardTracker:
    """
    Sliding-window average of completed-episode rewards.

    Finished episodes are written round-robin into a window of
    window_size slots, so once more than window_size episodes have ended
    the oldest totals are overwritten first.

    Args:
        num_envs: Number of parallel environments
        window_size: Number of most recent episodes to average over
    """

    def __init__(self, num_envs: int, window_size: int):
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.window_size = window_size
        self.running_rewards = torch.zeros(num_envs, dtype=torch.float64)
        self.reward_history = torch.zeros(window_size, dtype=torch.float64)
        self.completed_episodes = 0

    @property
    def has_episodes(self) -> bool:
        return self.completed_episodes > 0

    def add_rewards(self, real_rewards: torch.Tensor) -> None:
        """Add one step of raw rewards, shape (n_envs,), to the running totals."""
        self.running_rewards += real_rewards.detach().to(device='cpu', dtype=torch.float64)

    def end_episodes(self, dones: torch.Tensor) -> None:
        """Record the totals of every environment whose episode just ended, in env order."""
        finished = torch.nonzero(dones.detach().cpu().bool().reshape(-1)).flatten().tolist()
        for i in finished:
            slot = self.completed_episodes % self.window_size
            self.reward_history[slot] = self.running_rewards[i]
            self.running_rewards[i] = 0.0
            self.completed_episodes += 1

    def update(self, real_rewards: torch.Tensor, dones: torch.Tensor) -> None:
        """Convenience: add_rewards() then end_episodes() for one environment step."""
        self.add_rewards(real_rewards)
        self.end_episodes(dones)

    def average(self) -> float:
        """
        Mean total reward over the last min(completed_episodes, window_size) episodes.

        Raises:
            NoEpisodesError: if no episode has finished yet
        """
        if self.completed_episodes == 0:
            raise NoEpisodesError("No episode has completed yet")
        n = min(self.completed_episodes, self.window_size)
        # Slots [0, n) are the filled ones until the window wraps, then all are
        return float(self.reward_history[:n].sum() / n)
