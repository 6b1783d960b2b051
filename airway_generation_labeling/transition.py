"""
Transition probabilities between the generations of a parent and a child
particle on a tree edge.

``TableTransitionModel`` looks the probability up in a fixed 12 x 12 table.
``GaussianTransitionModel`` scores the scale difference and angle observed on
the edge against statistics measured at branch points of training data.
"""
import logging
from dataclasses import dataclass

import numpy as np
from scipy.stats import norm

from airway_generation_labeling.chest_conventions import (
    GENERATION_STATES, NUMBER_OF_STATES, GenerationState,
)
from airway_generation_labeling.errors import MalformedInputError


logger = logging.getLogger(__name__)

N_GENERATIONS = len(GENERATION_STATES)


@dataclass(frozen=True)
class TransitionStatistics:
    scale_difference_mean: float
    scale_difference_variance: float
    angle_mean: float
    angle_variance: float
    samples: int


class TransitionModel:
    """
    Interface shared by the transition models.

    With ``enforce_monotonic`` set, a transition to a strictly smaller
    generation has probability 0.
    """

    enforce_monotonic = False

    def supported_states(self):
        raise NotImplementedError

    def transition(self, from_state, to_state, edge=None):
        raise NotImplementedError

    def transition_matrix(self, edge=None):
        """
        From × to matrix over the generation states (UNDEFINED excluded)
        for one tree edge.
        """
        matrix = np.array([[self.transition(f, t, edge) for t in GENERATION_STATES]
                           for f in GENERATION_STATES], dtype=float)
        return self._constrain(matrix)

    def _constrain(self, matrix):
        if self.enforce_monotonic:
            return np.triu(matrix)
        return matrix

    def _is_decreasing(self, from_state, to_state):
        return (self.enforce_monotonic
                and from_state is not GenerationState.UNDEFINED
                and to_state is not GenerationState.UNDEFINED
                and int(to_state) < int(from_state))


class TableTransitionModel(TransitionModel):
    """
    Fixed lookup table.

    Parameters:
    -----------
    matrix : array-like (12, 12) or (11, 11)
        Rows are from-states, columns to-states, indexed by GenerationState
        value. An 11 x 11 table covers the generations only; the UNDEFINED
        row and column are then zero.
    """

    def __init__(self, matrix, enforce_monotonic=False):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape == (N_GENERATIONS, N_GENERATIONS):
            padded = np.zeros((NUMBER_OF_STATES, NUMBER_OF_STATES))
            padded[:N_GENERATIONS, :N_GENERATIONS] = matrix
            matrix = padded
        if matrix.shape != (NUMBER_OF_STATES, NUMBER_OF_STATES):
            raise MalformedInputError(f"Transition table must be 11x11 or 12x12, got {matrix.shape}")
        if np.any(~np.isfinite(matrix)) or np.any(matrix < 0):
            raise MalformedInputError("Transition table entries must be finite and non-negative")

        self.matrix = matrix
        self.enforce_monotonic = enforce_monotonic
        self._generation_block = self._constrain(matrix[:N_GENERATIONS, :N_GENERATIONS].copy())

    def supported_states(self):
        block = self._generation_block
        return {s for s in GENERATION_STATES
                if block[int(s), :].any() or block[:, int(s)].any()}

    def transition(self, from_state, to_state, edge=None):
        from_state = GenerationState(from_state)
        to_state = GenerationState(to_state)
        if self._is_decreasing(from_state, to_state):
            return 0.0
        return float(self.matrix[int(from_state), int(to_state)])

    def transition_matrix(self, edge=None):
        return self._generation_block


class GaussianTransitionModel(TransitionModel):
    """
    Likelihood-based transitions from branch-point statistics.

    Parameters:
    -----------
    statistics : dict
        (from GenerationState, to GenerationState) -> TransitionStatistics
    default_probability : float
        Returned for pairs without an installed model when there is no
        fallback table
    min_samples : int
        Entries with this many samples or fewer are not installed (default: 10)
    fallback : TableTransitionModel, optional
        Consulted for pairs without an installed model
    """

    def __init__(self, statistics, default_probability=0.1, min_samples=10, fallback=None,
                 enforce_monotonic=False):
        self.default_probability = float(default_probability)
        self.fallback = fallback
        self.enforce_monotonic = enforce_monotonic
        self.installed = {}

        skipped = 0
        for (from_state, to_state), stats in sorted(statistics.items()):
            from_state = GenerationState(from_state)
            to_state = GenerationState(to_state)
            if GenerationState.UNDEFINED in (from_state, to_state):
                skipped += 1
                continue
            if stats.samples <= min_samples:
                skipped += 1
                continue
            if stats.scale_difference_variance <= 0 or stats.angle_variance <= 0:
                logger.warning("Transition statistics %s -> %s have a non-positive variance; not installed",
                               from_state.convention_name, to_state.convention_name)
                skipped += 1
                continue
            self.installed[(from_state, to_state)] = stats

        if skipped:
            logger.info("Transition statistics: %d pairs installed, %d left to the default",
                        len(self.installed), skipped)

        pairs = list(self.installed)
        self._rows = np.array([int(f) for f, _ in pairs], dtype=int)
        self._cols = np.array([int(t) for _, t in pairs], dtype=int)
        stats = list(self.installed.values())
        self._means = np.array([[s.scale_difference_mean, s.angle_mean] for s in stats]).reshape(-1, 2)
        self._stds = np.sqrt(np.array([[s.scale_difference_variance, s.angle_variance]
                                       for s in stats]).reshape(-1, 2))

    def supported_states(self):
        states = set()
        for from_state, to_state in self.installed:
            states.update((from_state, to_state))
        if self.fallback is not None:
            states |= self.fallback.supported_states()
        elif self.default_probability > 0:
            states |= set(GENERATION_STATES)
        return states

    def _default(self, from_state, to_state):
        if self.fallback is not None:
            return self.fallback.transition(from_state, to_state)
        return self.default_probability

    def transition(self, from_state, to_state, edge=None):
        from_state = GenerationState(from_state)
        to_state = GenerationState(to_state)
        if self._is_decreasing(from_state, to_state):
            return 0.0

        stats = self.installed.get((from_state, to_state))
        if stats is None or edge is None:
            return float(self._default(from_state, to_state))

        return float(norm.pdf(edge.scale_difference, stats.scale_difference_mean,
                              np.sqrt(stats.scale_difference_variance))
                     * norm.pdf(edge.angle, stats.angle_mean, np.sqrt(stats.angle_variance)))

    def transition_matrix(self, edge=None):
        if self.fallback is not None:
            matrix = self.fallback.matrix[:N_GENERATIONS, :N_GENERATIONS].copy()
        else:
            matrix = np.full((N_GENERATIONS, N_GENERATIONS), self.default_probability)

        if edge is not None and len(self._rows):
            features = np.array([edge.scale_difference, edge.angle])
            densities = norm.pdf(features[None, :], loc=self._means, scale=self._stds)
            matrix[self._rows, self._cols] = np.prod(densities, axis=1)

        return self._constrain(matrix)
