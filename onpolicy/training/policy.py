"""
Actor-critic policy used to collect rollouts and to compute update losses.

A Policy is a feature base (MLP or CNN, optionally followed by a GRU) plus
an action head matching the action space: a categorical distribution for
Discrete spaces, a diagonal Gaussian for Continuous ones.

All step-wise tensors follow the rollout storage layout: values and log
probabilities are (n, 1), actions are (n, A), hidden states are (n, H).
"""
import math
from typing import NamedTuple

import torch
import torch.nn as nn
from torch.distributions import Categorical, Normal

from onpolicy.environments.spaces import ActionSpace
from onpolicy.errors import UnsupportedSpaceError
from .normalization import RunningMeanStd

OBSERVATION_CLIP = 10.0


class ActResult(NamedTuple):
    """Output of Policy.act() for one batched step."""
    value: torch.Tensor
    action: torch.Tensor
    action_log_prob: torch.Tensor
    hidden_state: torch.Tensor


class EvaluateResult(NamedTuple):
    """Output of Policy.evaluate_actions() for a batch of stored steps."""
    value: torch.Tensor
    action_log_prob: torch.Tensor
    entropy: torch.Tensor
    hidden_state: torch.Tensor


def init_weights(module: nn.Module, gain: float = 1.0) -> nn.Module:
    """Orthogonal weights, zero bias."""
    nn.init.orthogonal_(module.weight, gain=gain)
    if module.bias is not None:
        nn.init.zeros_(module.bias)
    return module


# ----------------------------------------------------------------------
# Feature bases
# ----------------------------------------------------------------------
class NNBase(nn.Module):
    """
    Shared recurrent plumbing for feature bases.

    When recurrent, a GRU cell follows the feature extractor. Its hidden
    state is multiplied by the step's mask before use, so a mask of 0
    (first observation of a new episode) starts from a blank state.
    """

    def __init__(self, recurrent: bool, recurrent_input_size: int, hidden_size: int):
        super().__init__()
        self.recurrent = recurrent
        self.hidden_size = hidden_size
        if recurrent:
            self.gru = nn.GRUCell(recurrent_input_size, hidden_size)
            nn.init.orthogonal_(self.gru.weight_ih)
            nn.init.orthogonal_(self.gru.weight_hh)
            nn.init.zeros_(self.gru.bias_ih)
            nn.init.zeros_(self.gru.bias_hh)

    @property
    def output_size(self) -> int:
        return self.hidden_size

    def forward_gru(self, x: torch.Tensor, hxs: torch.Tensor, masks: torch.Tensor):
        """
        Run the GRU over one step (x: (N, F)) or a time-major sequence
        (x: (T * N, F), hxs: (N, H)). Returns per-step outputs and the final state.
        """
        n = hxs.size(0)
        if x.size(0) == n:
            hxs = self.gru(x, hxs * masks)
            return hxs, hxs

        steps = x.size(0) // n
        x = x.view(steps, n, -1)
        masks = masks.view(steps, n, 1)
        outputs = []
        for t in range(steps):
            hxs = self.gru(x[t], hxs * masks[t])
            outputs.append(hxs)
        return torch.stack(outputs).view(steps * n, -1), hxs


class MlpBase(NNBase):
    """Separate two-layer tanh towers for actor and critic over flat observations."""

    def __init__(self, num_inputs: int, recurrent: bool = False, hidden_size: int = 64):
        super().__init__(recurrent, num_inputs, hidden_size)
        if recurrent:
            num_inputs = hidden_size

        gain = math.sqrt(2)
        self.actor = nn.Sequential(
            init_weights(nn.Linear(num_inputs, hidden_size), gain), nn.Tanh(),
            init_weights(nn.Linear(hidden_size, hidden_size), gain), nn.Tanh(),
        )
        self.critic = nn.Sequential(
            init_weights(nn.Linear(num_inputs, hidden_size), gain), nn.Tanh(),
            init_weights(nn.Linear(hidden_size, hidden_size), gain), nn.Tanh(),
        )
        self.critic_linear = init_weights(nn.Linear(hidden_size, 1))

    def forward(self, inputs: torch.Tensor, hxs: torch.Tensor, masks: torch.Tensor):
        x = inputs
        if self.recurrent:
            x, hxs = self.forward_gru(x, hxs, masks)
        hidden_critic = self.critic(x)
        hidden_actor = self.actor(x)
        return self.critic_linear(hidden_critic), hidden_actor, hxs


class CnnBase(NNBase):
    """
    Three-layer convolutional torso for image observations (C, H, W).

    Pixel inputs are expected in [0, 255] and scaled to [0, 1].
    """

    def __init__(self, num_channels: int, recurrent: bool = False, hidden_size: int = 512,
                 input_hw: tuple[int, int] = (84, 84)):
        super().__init__(recurrent, hidden_size, hidden_size)

        gain = nn.init.calculate_gain('relu')
        convs = nn.Sequential(
            init_weights(nn.Conv2d(num_channels, 32, 8, stride=4), gain), nn.ReLU(),
            init_weights(nn.Conv2d(32, 64, 4, stride=2), gain), nn.ReLU(),
            init_weights(nn.Conv2d(64, 32, 3, stride=1), gain), nn.ReLU(),
            nn.Flatten(),
        )
        with torch.no_grad():
            flat_size = convs(torch.zeros(1, num_channels, *input_hw)).shape[1]
        self.main = nn.Sequential(
            convs,
            init_weights(nn.Linear(flat_size, hidden_size), gain), nn.ReLU(),
        )
        self.critic_linear = init_weights(nn.Linear(hidden_size, 1))

    def forward(self, inputs: torch.Tensor, hxs: torch.Tensor, masks: torch.Tensor):
        x = self.main(inputs / 255.0)
        if self.recurrent:
            x, hxs = self.forward_gru(x, hxs, masks)
        return self.critic_linear(x), x, hxs


# ----------------------------------------------------------------------
# Action heads
# ----------------------------------------------------------------------
class CategoricalHead(nn.Module):
    """Discrete actions: one (n, 1) integer column per step."""

    def __init__(self, num_inputs: int, num_outputs: int):
        super().__init__()
        self.linear = init_weights(nn.Linear(num_inputs, num_outputs), gain=0.01)

    def forward(self, x: torch.Tensor) -> Categorical:
        return Categorical(logits=self.linear(x))

    @staticmethod
    def sample(dist: Categorical, deterministic: bool) -> torch.Tensor:
        action = dist.probs.argmax(dim=-1) if deterministic else dist.sample()
        return action.unsqueeze(-1)

    @staticmethod
    def log_prob(dist: Categorical, action: torch.Tensor) -> torch.Tensor:
        return dist.log_prob(action.squeeze(-1).long()).unsqueeze(-1)

    @staticmethod
    def entropy(dist: Categorical) -> torch.Tensor:
        return dist.entropy()


class DiagGaussianHead(nn.Module):
    """Continuous actions: state-dependent mean, learned state-independent log-std."""

    def __init__(self, num_inputs: int, num_outputs: int):
        super().__init__()
        self.fc_mean = init_weights(nn.Linear(num_inputs, num_outputs))
        self.logstd = nn.Parameter(torch.zeros(num_outputs))

    def forward(self, x: torch.Tensor) -> Normal:
        mean = self.fc_mean(x)
        return Normal(mean, self.logstd.exp().expand_as(mean))

    @staticmethod
    def sample(dist: Normal, deterministic: bool) -> torch.Tensor:
        return dist.mean if deterministic else dist.sample()

    @staticmethod
    def log_prob(dist: Normal, action: torch.Tensor) -> torch.Tensor:
        return dist.log_prob(action).sum(dim=-1, keepdim=True)

    @staticmethod
    def entropy(dist: Normal) -> torch.Tensor:
        return dist.entropy().sum(dim=-1)


# ----------------------------------------------------------------------
# Policy
# ----------------------------------------------------------------------
class Policy(nn.Module):
    """
    Actor-critic over a feature base.

    Args:
        action_space: Space the action head samples from
        base: Feature base (MlpBase or CnnBase)
        obs_shape: Shape of one observation, used by the normalizer
        normalize_observation: Standardize observations with running stats
            before they reach the base. Stats are refreshed by the update
            algorithm after its gradient steps, never while acting; until the
            first refresh observations pass through unchanged.
    """

    def __init__(self, action_space: ActionSpace, base: NNBase, obs_shape: tuple[int, ...],
                 normalize_observation: bool = False):
        super().__init__()
        self.action_space = action_space
        self.obs_shape = tuple(obs_shape)
        self.base = base
        if action_space.is_discrete:
            self.dist = CategoricalHead(base.output_size, action_space.shape[0])
        else:
            self.dist = DiagGaussianHead(base.output_size, action_space.shape[0])
        self.obs_rms = RunningMeanStd(shape=tuple(obs_shape)) if normalize_observation else None

    @property
    def is_recurrent(self) -> bool:
        return self.base.recurrent

    def _prepare(self, observations: torch.Tensor) -> torch.Tensor:
        # Empty stats (var 0) would blow every input up to the clip bound
        if self.obs_rms is None or self.obs_rms.count == 0:
            return observations
        return self.obs_rms.normalize(observations, clip=OBSERVATION_CLIP)

    def forward(self, observations, hidden_states, masks):
        return self.base(self._prepare(observations), hidden_states, masks)

    def act(self, observations: torch.Tensor, hidden_states: torch.Tensor, masks: torch.Tensor,
            deterministic: bool = False) -> ActResult:
        """Choose actions for one step. Callers wrap this in torch.no_grad() when collecting."""
        value, actor_features, hidden_states = self(observations, hidden_states, masks)
        dist = self.dist(actor_features)
        action = self.dist.sample(dist, deterministic)
        return ActResult(
            value=value,
            action=action,
            action_log_prob=self.dist.log_prob(dist, action),
            hidden_state=hidden_states,
        )

    def get_values(self, observations: torch.Tensor, hidden_states: torch.Tensor,
                   masks: torch.Tensor) -> torch.Tensor:
        value, _, _ = self(observations, hidden_states, masks)
        return value

    def evaluate_actions(self, observations: torch.Tensor, hidden_states: torch.Tensor,
                         masks: torch.Tensor, actions: torch.Tensor) -> EvaluateResult:
        """
        Recompute values, log probabilities and mean entropy for stored actions.

        For recurrent bases observations/masks/actions are time-major
        sequences (T * n, ...) and hidden_states is the (n, H) starting state.
        """
        value, actor_features, hidden_states = self(observations, hidden_states, masks)
        dist = self.dist(actor_features)
        return EvaluateResult(
            value=value,
            action_log_prob=self.dist.log_prob(dist, actions),
            entropy=self.dist.entropy(dist).mean(),
            hidden_state=hidden_states,
        )

    @torch.no_grad()
    def update_observation_normalizer(self, observations: torch.Tensor) -> None:
        """Fold a stack of observations (..., *obs_shape) into the normalizer stats."""
        if self.obs_rms is None:
            return
        self.obs_rms.update(observations.reshape(-1, *self.obs_rms.shape))


def create_policy(
    action_space: ActionSpace,
    obs_shape: tuple[int, ...],
    hidden_size: int = 64,
    recurrent: bool = False,
    normalize_observation: bool = False,
) -> Policy:
    """
    Build a Policy with a base suited to the observation shape.

    Flat observations (D,) get an MlpBase; images (C, H, W) get a CnnBase.
    """
    if len(obs_shape) == 1:
        base = MlpBase(obs_shape[0], recurrent=recurrent, hidden_size=hidden_size)
    elif len(obs_shape) == 3:
        base = CnnBase(obs_shape[0], recurrent=recurrent, hidden_size=hidden_size,
                       input_hw=(obs_shape[1], obs_shape[2]))
    else:
        raise UnsupportedSpaceError(
            f"No policy base for observations of shape {tuple(obs_shape)}; "
            f"expected (D,) or (C, H, W)"
        )
    return Policy(action_space, base, obs_shape, normalize_observation=normalize_observation)
