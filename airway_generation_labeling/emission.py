"""
Emission probabilities: how well a particle's evidence fits each generation.

Two interchangeable models are provided:

- ``GaussianEmissionModel`` scores the particle's local edge features
  (scale difference, distance and angle to its tree neighbour) with
  independent per-generation normal densities learned from training data.
- ``KernelDensityEmissionModel`` estimates the density of atlas particles
  of each generation around the query particle in the joint space of
  position, scale and orientation.
"""
import logging
from collections import namedtuple
from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree
from scipy.stats import norm

from airway_generation_labeling.chest_conventions import GENERATION_STATES, GenerationState
from airway_generation_labeling.connectivity import get_folded_angles_to_vectors


logger = logging.getLogger(__name__)

N_GENERATIONS = len(GENERATION_STATES)

# ``edge`` holds the EdgeFeatures to the particle's tree neighbour, or None
ParticleQuery = namedtuple("ParticleQuery", ["position", "scale", "hevec2", "edge"])


@dataclass(frozen=True)
class EmissionStatistics:
    scale_difference_mean: float
    scale_difference_std: float
    distance_mean: float
    distance_std: float
    angle_mean: float
    angle_std: float
    samples: int


class EmissionModel:
    """Interface shared by the emission models."""

    def supported_states(self):
        """Generation states this model can give non-zero likelihood to."""
        raise NotImplementedError

    def likelihoods(self, query):
        """Likelihood of ``query`` under each generation state (array indexed by state value)."""
        raise NotImplementedError

    def emission(self, query, state):
        state = GenerationState(state)
        if state is GenerationState.UNDEFINED:
            return 0.0
        return float(self.likelihoods(query)[int(state)])


class GaussianEmissionModel(EmissionModel):
    """
    Parametric emission model over the particle's edge features.

    Parameters:
    -----------
    statistics : dict
        GenerationState -> EmissionStatistics
    min_samples : int
        Statistics with this many samples or fewer are not installed; their
        states receive the mean likelihood of the installed states instead
        (uninformative rather than impossible). States missing from
        ``statistics`` have no support at all.
    """

    def __init__(self, statistics, min_samples=10):
        self.installed = {}
        self.underpowered = []

        for state, stats in sorted(statistics.items()):
            state = GenerationState(state)
            if state is GenerationState.UNDEFINED:
                continue
            stds = (stats.scale_difference_std, stats.distance_std, stats.angle_std)
            if stats.samples <= min_samples:
                logger.warning("Emission statistics for %s rest on %d samples; using uninformative fallback",
                               state.convention_name, stats.samples)
                self.underpowered.append(state)
            elif min(stds) <= 0:
                logger.warning("Emission statistics for %s have a non-positive standard deviation; "
                               "using uninformative fallback", state.convention_name)
                self.underpowered.append(state)
            else:
                self.installed[state] = stats

        self._states = np.array([int(s) for s in self.installed], dtype=int)
        self._means = np.array([[s.scale_difference_mean, s.distance_mean, s.angle_mean]
                                for s in self.installed.values()]).reshape(-1, 3)
        self._stds = np.array([[s.scale_difference_std, s.distance_std, s.angle_std]
                               for s in self.installed.values()]).reshape(-1, 3)
        self._fallback_states = np.array([int(s) for s in self.underpowered], dtype=int)

    def supported_states(self):
        return set(self.installed) | set(self.underpowered)

    def likelihoods(self, query):
        out = np.zeros(N_GENERATIONS)

        if query.edge is None:
            # Nothing measured (isolated particle): every supported state fits equally
            out[self._states] = 1.0
            out[self._fallback_states] = 1.0
            return out

        features = np.array([query.edge.scale_difference, query.edge.distance, query.edge.angle])
        if len(self._states):
            densities = norm.pdf(features[None, :], loc=self._means, scale=self._stds)
            out[self._states] = np.prod(densities, axis=1)
            fallback = float(np.mean(out[self._states]))
        else:
            fallback = 1.0
        out[self._fallback_states] = fallback
        return out


class KernelDensityEmissionModel(EmissionModel):
    """
    Nonparametric emission model built from generation-labeled atlases.

    The likelihood of state s is (1 / N_s) times the sum, over the atlas
    particles labeled s that lie within ``config.kde_roi_radius`` of the query,
    of a product of Gaussian kernels over the distance to the atlas particle,
    the scale difference and the folded angle between hevec2 vectors. N_s is
    the number of atlas particles labeled s over all atlases, so an infinite
    radius gives the plain kernel density estimate.

    Parameters:
    -----------
    atlases : list of ParticleSet
        Labeled particle sets in the same coordinate frame as the query data.
        Atlas particles labeled UNDEFINED are ignored.
    config : LabelingConfig
        Supplies the region-of-interest radius and the kernel bandwidths
    """

    def __init__(self, atlases, config):
        positions, scales, hevec2, labels = [], [], [], []
        for atlas in atlases:
            keep = atlas.labels != int(GenerationState.UNDEFINED)
            positions.append(atlas.positions[keep])
            scales.append(atlas.scales[keep])
            hevec2.append(atlas.hevec2[keep])
            labels.append(atlas.labels[keep])

        self.positions = np.concatenate(positions) if positions else np.zeros((0, 3))
        self.scales = np.concatenate(scales) if scales else np.zeros(0)
        self.hevec2 = np.concatenate(hevec2) if hevec2 else np.zeros((0, 3))
        self.labels = np.concatenate(labels).astype(int) if labels else np.zeros(0, dtype=int)

        self.roi_radius = config.kde_roi_radius
        self.bandwidths = (config.kde_distance_bandwidth, config.kde_scale_bandwidth,
                           config.kde_angle_bandwidth)
        self.counts = np.bincount(self.labels, minlength=N_GENERATIONS)[:N_GENERATIONS]
        self._tree = cKDTree(self.positions) if len(self.positions) else None

        missing = [s.convention_name for s in GENERATION_STATES if self.counts[int(s)] == 0]
        logger.info("KDE emission model: %d atlas particles from %d atlases",
                    len(self.positions), len(atlases))
        if missing:
            logger.debug("No atlas particles for %s", ", ".join(missing))

    def supported_states(self):
        return {s for s in GENERATION_STATES if self.counts[int(s)] > 0}

    def _neighbours(self, position):
        if self._tree is None:
            return np.zeros(0, dtype=int)
        if np.isinf(self.roi_radius):
            return np.arange(len(self.positions))
        return np.asarray(self._tree.query_ball_point(position, r=self.roi_radius), dtype=int)

    def likelihoods(self, query):
        out = np.zeros(N_GENERATIONS)
        idx = self._neighbours(np.asarray(query.position, dtype=float))
        if len(idx) == 0:
            return out

        distances = np.linalg.norm(self.positions[idx] - np.asarray(query.position, dtype=float), axis=1)
        scale_differences = float(query.scale) - self.scales[idx]
        angles = get_folded_angles_to_vectors(query.hevec2, self.hevec2[idx])

        h_distance, h_scale, h_angle = self.bandwidths
        kernels = (norm.pdf(distances, scale=h_distance)
                   * norm.pdf(scale_differences, scale=h_scale)
                   * norm.pdf(angles, scale=h_angle))

        sums = np.bincount(self.labels[idx], weights=kernels, minlength=N_GENERATIONS)[:N_GENERATIONS]
        supported = self.counts > 0
        out[supported] = sums[supported] / self.counts[supported]
        return out
