"""Tests for the actor-critic policy and its factory."""
import pytest
import torch

from onpolicy.environments.spaces import ActionSpace
from onpolicy.errors import UnsupportedSpaceError
from onpolicy.training.policy import CnnBase, MlpBase, create_policy


class TestCreatePolicy:
    """Tests for base selection by observation shape."""

    def test_flat_observations_get_mlp(self):
        policy = create_policy(ActionSpace.discrete(2), (4,))
        assert isinstance(policy.base, MlpBase)

    def test_image_observations_get_cnn(self):
        policy = create_policy(ActionSpace.discrete(2), (3, 84, 84), hidden_size=32)
        assert isinstance(policy.base, CnnBase)

    def test_unsupported_observation_rank(self):
        with pytest.raises(UnsupportedSpaceError):
            create_policy(ActionSpace.discrete(2), (4, 4))


class TestAct:
    """Tests for Policy.act() output shapes."""

    def test_discrete(self):
        policy = create_policy(ActionSpace.discrete(3), (4,), hidden_size=16)
        with torch.no_grad():
            out = policy.act(torch.randn(5, 4), torch.zeros(5, 16), torch.ones(5, 1))

        assert out.value.shape == (5, 1)
        assert out.action.shape == (5, 1)
        assert out.action.dtype == torch.long
        assert out.action_log_prob.shape == (5, 1)
        assert torch.all((out.action >= 0) & (out.action < 3))

    def test_continuous(self):
        policy = create_policy(ActionSpace.continuous(2), (4,), hidden_size=16)
        with torch.no_grad():
            out = policy.act(torch.randn(5, 4), torch.zeros(5, 16), torch.ones(5, 1))

        assert out.action.shape == (5, 2)
        assert out.action.dtype == torch.float32
        assert out.action_log_prob.shape == (5, 1)

    def test_deterministic_is_repeatable(self):
        policy = create_policy(ActionSpace.discrete(4), (4,), hidden_size=16)
        obs = torch.randn(6, 4)
        with torch.no_grad():
            a1 = policy.act(obs, torch.zeros(6, 16), torch.ones(6, 1), deterministic=True).action
            a2 = policy.act(obs, torch.zeros(6, 16), torch.ones(6, 1), deterministic=True).action

        assert torch.equal(a1, a2)

    def test_recurrent_hidden_state_changes(self):
        policy = create_policy(ActionSpace.discrete(2), (4,), hidden_size=8, recurrent=True)
        assert policy.is_recurrent
        with torch.no_grad():
            out = policy.act(torch.randn(3, 4), torch.zeros(3, 8), torch.ones(3, 1))

        assert out.hidden_state.shape == (3, 8)
        assert not torch.all(out.hidden_state == 0)

    def test_zero_mask_resets_hidden_state(self):
        """A mask of 0 makes the step ignore the incoming hidden state."""
        policy = create_policy(ActionSpace.discrete(2), (4,), hidden_size=8, recurrent=True)
        obs = torch.randn(2, 4)
        masks = torch.zeros(2, 1)
        with torch.no_grad():
            from_blank = policy.act(obs, torch.zeros(2, 8), masks, deterministic=True)
            from_noise = policy.act(obs, torch.randn(2, 8), masks, deterministic=True)

        assert torch.allclose(from_blank.hidden_state, from_noise.hidden_state)

    def test_non_recurrent_passes_hidden_state_through(self):
        policy = create_policy(ActionSpace.discrete(2), (4,), hidden_size=8)
        hidden = torch.randn(3, 8)
        with torch.no_grad():
            out = policy.act(torch.randn(3, 4), hidden, torch.ones(3, 1))

        assert torch.equal(out.hidden_state, hidden)


class TestEvaluateActions:
    """Tests for Policy.evaluate_actions()."""

    def test_matches_act_log_probs(self):
        policy = create_policy(ActionSpace.discrete(3), (4,), hidden_size=16)
        obs, hidden, masks = torch.randn(5, 4), torch.zeros(5, 16), torch.ones(5, 1)
        with torch.no_grad():
            acted = policy.act(obs, hidden, masks)
            evaluated = policy.evaluate_actions(obs, hidden, masks, acted.action)

        assert torch.allclose(evaluated.action_log_prob, acted.action_log_prob, atol=1e-6)
        assert torch.allclose(evaluated.value, acted.value, atol=1e-6)
        assert evaluated.entropy.dim() == 0

    def test_recurrent_sequence(self):
        """Recurrent evaluation unrolls a time-major (T * n) batch from an (n, H) state."""
        policy = create_policy(ActionSpace.continuous(2), (4,), hidden_size=8, recurrent=True)
        T, n = 3, 2
        result = policy.evaluate_actions(
            torch.randn(T * n, 4), torch.zeros(n, 8), torch.ones(T * n, 1), torch.randn(T * n, 2)
        )

        assert result.value.shape == (T * n, 1)
        assert result.action_log_prob.shape == (T * n, 1)
        assert result.hidden_state.shape == (n, 8)


class TestObservationNormalizer:
    """Tests for the optional running observation normalizer."""

    def test_observations_pass_through_before_first_update(self):
        """Empty stats leave observations untouched instead of saturating them."""
        policy = create_policy(ActionSpace.discrete(2), (3,), normalize_observation=True)
        obs = torch.tensor([[0.001, -0.002, 0.5]])

        assert torch.equal(policy._prepare(obs), obs)

    def test_observations_standardized_after_update(self):
        policy = create_policy(ActionSpace.discrete(2), (3,), normalize_observation=True)
        data = torch.randn(200, 3) * 4 + 2
        policy.update_observation_normalizer(data)

        prepared = policy._prepare(data)

        assert torch.allclose(prepared.mean(dim=0), torch.zeros(3), atol=1e-3)
        assert torch.allclose(prepared.std(dim=0, unbiased=False), torch.ones(3), atol=1e-3)

    def test_update_feeds_stats(self):
        policy = create_policy(ActionSpace.discrete(2), (4,), normalize_observation=True)
        policy.update_observation_normalizer(torch.randn(3, 5, 4))

        assert policy.obs_rms.count == 15

    def test_disabled_normalizer_is_noop(self):
        policy = create_policy(ActionSpace.discrete(2), (4,))
        assert policy.obs_rms is None
        policy.update_observation_normalizer(torch.randn(3, 5, 4))
