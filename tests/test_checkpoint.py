"""Tests for checkpoint save/load roundtrip."""
import torch

from onpolicy.environments.spaces import ActionSpace
from onpolicy.training.checkpoint import load_policy, save_checkpoint
from onpolicy.training.policy import create_policy


class TestCheckpointRoundtrip:
    """A saved policy reloads with identical weights and outputs."""

    def test_discrete_roundtrip(self, tmp_path):
        policy = create_policy(ActionSpace.discrete(3), (4,), hidden_size=16,
                               normalize_observation=True)
        policy.update_observation_normalizer(torch.randn(20, 4) * 5)
        optimizer = torch.optim.Adam(policy.parameters())
        path = tmp_path / 'nested' / 'ckpt.pt'

        save_checkpoint(policy, optimizer, str(path), update_count=3, total_steps=120, seed=7)
        loaded = load_policy(str(path))

        obs = torch.randn(5, 4)
        hidden, masks = torch.zeros(5, 16), torch.ones(5, 1)
        with torch.no_grad():
            expected = policy.act(obs, hidden, masks, deterministic=True)
            actual = loaded.act(obs, hidden, masks, deterministic=True)

        assert torch.equal(expected.action, actual.action)
        assert torch.allclose(expected.value, actual.value)
        assert loaded.obs_rms.count == 20

    def test_recurrent_continuous_roundtrip(self, tmp_path):
        policy = create_policy(ActionSpace.continuous(2), (4,), hidden_size=8, recurrent=True)
        path = tmp_path / 'ckpt.pt'

        save_checkpoint(policy, None, str(path), update_count=1, total_steps=10, seed=None)
        loaded = load_policy(str(path))

        assert loaded.is_recurrent
        assert loaded.action_space == policy.action_space
        assert loaded.obs_rms is None
        for a, b in zip(policy.state_dict().values(), loaded.state_dict().values()):
            assert torch.equal(a, b)

    def test_metadata_saved(self, tmp_path):
        policy = create_policy(ActionSpace.discrete(2), (4,), hidden_size=8)
        path = tmp_path / 'ckpt.pt'

        save_checkpoint(policy, None, str(path), update_count=5, total_steps=200, seed=3)
        checkpoint = torch.load(str(path), weights_only=False)

        assert checkpoint['update'] == 5
        assert checkpoint['total_steps'] == 200
        assert checkpoint['seed'] == 3
        assert checkpoint['optimizer_state_dict'] is None
