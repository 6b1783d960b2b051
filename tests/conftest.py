import logging

import numpy as np
import pytest

from airway_generation_labeling.chest_conventions import GENERATION_STATES
from airway_generation_labeling.config import LabelingConfig
from airway_generation_labeling.emission import EmissionModel
from airway_generation_labeling.particles import ParticleSet


def make_particles(positions, scales=1.0, hevec2=(1.0, 0.0, 0.0), labels=None):
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    n = len(positions)
    scales = np.broadcast_to(np.asarray(scales, dtype=float), (n,)).copy()
    hevec2 = np.broadcast_to(np.asarray(hevec2, dtype=float), (n, 3)).copy()
    return ParticleSet(positions, scales, hevec2, labels=labels)


class TableEmission(EmissionModel):
    """Emission looked up per particle position: x coordinate -> likelihood row."""

    def __init__(self, rows, default=None):
        self.rows = {float(k): np.asarray(v, dtype=float) for k, v in rows.items()}
        self.default = np.ones(len(GENERATION_STATES)) if default is None else np.asarray(default, dtype=float)

    def supported_states(self):
        return set(GENERATION_STATES)

    def likelihoods(self, query):
        return self.rows.get(float(query.position[0]), self.default).copy()


def forward_table(stay=0.6, advance=0.3, other=0.01):
    """11 x 11 table favoring staying in a generation or advancing by one."""
    n = len(GENERATION_STATES)
    table = np.full((n, n), other)
    for g in range(n):
        table[g, g] = stay
        if g + 1 < n:
            table[g, g + 1] = advance
    return table


@pytest.fixture(autouse=True)
def reset_package_logger():
    yield
    logger = logging.getLogger("airway_generation_labeling")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def particle_factory():
    return make_particles


@pytest.fixture
def config():
    return LabelingConfig(
        scale_ratio_threshold=1.0,
        particle_distance_threshold=1.5,
        particle_angle_threshold=30.0,
        root_direction=(-1.0, 0.0, 0.0),
    )


@pytest.fixture
def chain_particles():
    """Three particles along x, one unit apart, oriented along x."""
    return make_particles([[0, 0, 0], [1, 0, 0], [2, 0, 0]])
