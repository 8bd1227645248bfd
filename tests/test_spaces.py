"""Tests for action space descriptions."""
import pytest
import torch

from onpolicy.environments.base import EnvInfo
from onpolicy.environments.spaces import ActionSpace, ActionSpaceKind
from onpolicy.errors import CollaboratorError, UnsupportedSpaceError


class TestActionSpace:
    """Tests for the storage layout implied by an action space."""

    def test_discrete_layout(self):
        space = ActionSpace.discrete(5)
        assert space.is_discrete
        assert space.num_action_columns == 1
        assert space.dtype == torch.long

    def test_continuous_layout(self):
        space = ActionSpace.continuous(3)
        assert not space.is_discrete
        assert space.num_action_columns == 3
        assert space.dtype == torch.float32

    def test_empty_shape_rejected(self):
        with pytest.raises(ValueError):
            ActionSpace(ActionSpaceKind.DISCRETE, ())


class TestActionSpaceKind:
    """Tests for mapping environment type names."""

    @pytest.mark.parametrize("name,kind", [
        ('Discrete', ActionSpaceKind.DISCRETE),
        ('Box', ActionSpaceKind.CONTINUOUS),
        ('Continuous', ActionSpaceKind.CONTINUOUS),
    ])
    def test_known_names(self, name, kind):
        assert ActionSpaceKind.from_name(name) is kind

    def test_unknown_name_raises(self):
        with pytest.raises(UnsupportedSpaceError):
            ActionSpaceKind.from_name('MultiBinary')

    def test_unsupported_space_is_a_collaborator_error(self):
        assert issubclass(UnsupportedSpaceError, CollaboratorError)


def test_env_info_action_space():
    info = EnvInfo('Box', (2,), 'Box', (8,))
    assert info.action_space() == ActionSpace.continuous(2)
