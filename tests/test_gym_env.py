"""Tests for the gymnasium-backed environment on CartPole and Pendulum."""
import numpy as np
import pytest
import torch

pytest.importorskip("gymnasium")

from onpolicy.environments.gym_env import GymnasiumEnvironment  # noqa: E402
from onpolicy.errors import CollaboratorError  # noqa: E402


@pytest.fixture
def cartpole():
    env = GymnasiumEnvironment(seed=0)
    env.make('CartPole-v1', 3)
    yield env
    env.close()


class TestGymnasiumEnvironment:
    """Tests for the batched environment contract."""

    def test_info_discrete(self, cartpole):
        info = cartpole.info()
        assert info.action_space_type == 'Discrete'
        assert tuple(info.action_space_shape) == (2,)
        assert tuple(info.observation_space_shape) == (4,)

    def test_info_continuous(self):
        env = GymnasiumEnvironment()
        env.make('Pendulum-v1', 2)
        try:
            info = env.info()
            assert info.action_space_type == 'Box'
            assert tuple(info.action_space_shape) == (1,)
        finally:
            env.close()

    def test_reset_and_step_shapes(self, cartpole):
        obs = cartpole.reset()
        assert obs.shape == (3, 4)
        assert obs.dtype == torch.float32

        result = cartpole.step(np.zeros(3, dtype=np.int64))

        assert result.observation.shape == (3, 4)
        assert result.reward.shape == (3,)
        assert result.done.dtype == torch.bool
        assert torch.equal(result.reward, result.real_reward)

    def test_episodes_end_and_continue(self, cartpole):
        """Always pushing left ends CartPole episodes; stepping keeps working afterwards."""
        cartpole.reset()
        seen_done = False
        for _ in range(200):
            result = cartpole.step(np.zeros(3, dtype=np.int64))
            seen_done = seen_done or bool(result.done.any())
        assert seen_done

    def test_use_before_make_raises(self):
        env = GymnasiumEnvironment()
        with pytest.raises(CollaboratorError):
            env.info()

    def test_render_without_mode_only_warns(self, cartpole):
        cartpole.reset()
        result = cartpole.step(np.zeros(3, dtype=np.int64), render=True)
        assert result.reward.shape == (3,)
