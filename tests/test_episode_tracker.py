"""Tests for the completed-episode reward window."""
import pytest
import torch

from onpolicy.errors import NoEpisodesError
from onpolicy.training.episode_tracker import EpisodeRewardTracker


def finish_episode(tracker, env, total, num_envs=2):
    """Give env a one-step episode worth total."""
    rewards = torch.zeros(num_envs)
    rewards[env] = total
    dones = torch.zeros(num_envs, dtype=torch.bool)
    dones[env] = True
    tracker.update(rewards, dones)


class TestEpisodeRewardTracker:
    """Tests for accumulation, windowing and averaging."""

    def test_average_before_any_episode_raises(self):
        tracker = EpisodeRewardTracker(num_envs=2, window_size=3)
        tracker.add_rewards(torch.ones(2))

        assert not tracker.has_episodes
        with pytest.raises(NoEpisodesError):
            tracker.average()

    def test_rewards_accumulate_until_done(self):
        tracker = EpisodeRewardTracker(num_envs=2, window_size=3)
        tracker.update(torch.tensor([1.0, 2.0]), torch.tensor([False, False]))
        tracker.update(torch.tensor([1.5, 2.0]), torch.tensor([True, False]))

        assert tracker.completed_episodes == 1
        assert tracker.average() == pytest.approx(2.5)
        # Finished env restarts from zero, the other keeps going
        assert torch.allclose(tracker.running_rewards, torch.tensor([0.0, 4.0], dtype=torch.float64))

    def test_partial_window_averages_filled_slots(self):
        tracker = EpisodeRewardTracker(num_envs=2, window_size=5)
        finish_episode(tracker, 0, 10.0)
        finish_episode(tracker, 1, 20.0)

        assert tracker.average() == pytest.approx(15.0)

    def test_oldest_episodes_are_evicted(self):
        """After W + k episodes only the last W remain in the window."""
        tracker = EpisodeRewardTracker(num_envs=2, window_size=3)
        for total in [1.0, 2.0, 3.0, 4.0, 5.0]:
            finish_episode(tracker, 0, total)

        assert tracker.completed_episodes == 5
        assert tracker.average() == pytest.approx((3.0 + 4.0 + 5.0) / 3)

    def test_simultaneous_dones_recorded_in_env_order(self):
        """When several envs finish on one step, lower indices are written first."""
        tracker = EpisodeRewardTracker(num_envs=3, window_size=2)
        tracker.update(torch.tensor([1.0, 2.0, 3.0]), torch.tensor([True, True, True]))

        # Window of 2: env 0 was written to slot 0, then overwritten by env 2
        assert tracker.reward_history.tolist() == [3.0, 2.0]
        assert tracker.average() == pytest.approx(2.5)

    def test_invalid_window_size(self):
        with pytest.raises(ValueError):
            EpisodeRewardTracker(num_envs=1, window_size=0)
