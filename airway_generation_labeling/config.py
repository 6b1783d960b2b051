"""
Run configuration for particle connectivity and generation labeling.

All thresholds are collected in one immutable ``LabelingConfig`` that is
built once, before any graph or labeling work starts, and passed down to
every stage.
"""
import math
from dataclasses import dataclass, replace
from typing import Tuple

import numpy as np

from airway_generation_labeling.errors import ConfigurationError


ROOT_PRIORS = ("uniform", "generation0")


@dataclass(frozen=True)
class LabelingConfig:
    # Connectivity
    scale_ratio_threshold: float = 1.0
    particle_distance_threshold: float = 2.0
    particle_angle_threshold: float = 70.0

    # Kernel density estimation of emission probabilities
    kde_roi_radius: float = math.inf
    kde_distance_bandwidth: float = 2.0
    kde_scale_bandwidth: float = 0.5
    kde_angle_bandwidth: float = 20.0

    # Training statistics with this many samples or fewer are not installed
    min_training_samples: int = 10
    default_transition_probability: float = 0.1

    # Tree rooting and inference
    root_direction: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    root_prior: str = "uniform"
    enforce_monotonic: bool = False
    probability_floor: float = 1e-12

    n_workers: int = 1

    def __post_init__(self):
        for name in ("scale_ratio_threshold", "particle_distance_threshold",
                     "particle_angle_threshold", "kde_roi_radius"):
            value = getattr(self, name)
            if math.isnan(value) or value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

        for name in ("kde_distance_bandwidth", "kde_scale_bandwidth", "kde_angle_bandwidth"):
            value = getattr(self, name)
            if not value > 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if self.min_training_samples < 0:
            raise ConfigurationError("min_training_samples must be non-negative")
        if not 0.0 <= self.default_transition_probability <= 1.0:
            raise ConfigurationError("default_transition_probability must lie in [0, 1]")
        if self.root_prior not in ROOT_PRIORS:
            raise ConfigurationError(
                f"root_prior must be one of {ROOT_PRIORS}, got {self.root_prior!r}")
        if not 0.0 < self.probability_floor < 1.0:
            raise ConfigurationError("probability_floor must lie in (0, 1)")
        if self.n_workers < 1:
            raise ConfigurationError("n_workers must be at least 1")

        direction = np.asarray(self.root_direction, dtype=float)
        if direction.shape != (3,) or not np.linalg.norm(direction) > 0:
            raise ConfigurationError("root_direction must be a non-zero 3-vector")
        # Hashable and comparable regardless of what sequence type was passed
        object.__setattr__(self, "root_direction", tuple(float(c) for c in direction))

    def with_overrides(self, **changes):
        """Return a copy with some fields replaced (validated again)."""
        return replace(self, **changes)
