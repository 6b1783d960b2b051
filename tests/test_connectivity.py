import math

import numpy as np
import pytest

from airway_generation_labeling.config import LabelingConfig
from airway_generation_labeling.connectivity import (
    compute_edge_features, evaluate_particle_connectedness, get_angle_between_vectors,
    get_folded_angles_to_vectors, particles_connected,
)
from airway_generation_labeling.particles import Particle


def particle(position, scale=1.0, hevec2=(1.0, 0.0, 0.0), index=0):
    return Particle(index=index, position=np.asarray(position, dtype=float), scale=scale,
                    hevec2=np.asarray(hevec2, dtype=float))


def test_identical_positions_connect_without_nan():
    config = LabelingConfig(particle_distance_threshold=2.0, particle_angle_threshold=10.0)
    p1 = particle([1.0, 2.0, 3.0])
    p2 = particle([1.0, 2.0, 3.0], hevec2=(0.0, 1.0, 0.0))

    first = evaluate_particle_connectedness(p1, p2, config)
    second = evaluate_particle_connectedness(p1, p2, config)

    assert first.connected
    assert first.distance == 0.0
    assert first == second


@pytest.mark.parametrize("threshold, expected", [(0.5, False), (0.8, True)])
def test_scale_ratio_threshold(threshold, expected):
    config = LabelingConfig(scale_ratio_threshold=threshold, particle_distance_threshold=2.0,
                            particle_angle_threshold=30.0)
    p1 = particle([0, 0, 0], scale=1.0)
    p2 = particle([1, 0, 0], scale=3.0)

    assert particles_connected(p1, p2, config) is expected
    if not expected:
        assert evaluate_particle_connectedness(p1, p2, config).reason == "scale"


def test_distance_threshold_rejects_far_particles():
    config = LabelingConfig(scale_ratio_threshold=1.0, particle_distance_threshold=2.0,
                            particle_angle_threshold=90.0)
    result = evaluate_particle_connectedness(particle([0, 0, 0]), particle([3, 0, 0]), config)

    assert not result.connected
    assert result.reason == "distance"
    assert result.distance == pytest.approx(3.0)


def test_zero_scale_is_rejected():
    config = LabelingConfig()
    result = evaluate_particle_connectedness(particle([0, 0, 0], scale=0.0), particle([1, 0, 0], scale=0.0), config)
    assert not result.connected
    assert result.reason == "scale"


def test_misaligned_minor_eigenvector_is_rejected():
    config = LabelingConfig(particle_distance_threshold=2.0, particle_angle_threshold=30.0)
    p1 = particle([0, 0, 0])
    p2 = particle([1, 0, 0], hevec2=(0.0, 0.0, 1.0))

    result = evaluate_particle_connectedness(p1, p2, config)
    assert not result.connected
    assert result.reason == "angle"


def test_opposite_eigenvectors_count_as_aligned():
    config = LabelingConfig(particle_distance_threshold=2.0, particle_angle_threshold=30.0)
    p1 = particle([0, 0, 0], hevec2=(1.0, 0.0, 0.0))
    p2 = particle([1, 0, 0], hevec2=(-1.0, 0.0, 0.0))
    assert particles_connected(p1, p2, config)


def test_angle_between_vectors():
    assert get_angle_between_vectors([1, 0, 0], [0, 1, 0]) == pytest.approx(90.0)
    assert get_angle_between_vectors([1, 0, 0], [-1, 0, 0]) == pytest.approx(0.0)
    assert get_angle_between_vectors([1, 0, 0], [-1, 0, 0], fold=False) == pytest.approx(180.0)
    assert get_angle_between_vectors([1, 0, 0], [1, 1, 0]) == pytest.approx(45.0)
    assert get_angle_between_vectors([1, 0, 0], [1, 1, 0], return_degrees=False) == pytest.approx(math.pi / 4)
    assert get_angle_between_vectors([0, 0, 0], [1, 0, 0]) == 0.0


def test_folded_angles_match_scalar_angles():
    vectors = np.array([[1, 0, 0], [-1, 1, 0], [0, 0, 2], [0, 0, 0]], dtype=float)
    angles = get_folded_angles_to_vectors([1, 0, 0], vectors)
    expected = [get_angle_between_vectors([1, 0, 0], v) for v in vectors]
    np.testing.assert_allclose(angles, expected, atol=1e-9)


def test_edge_features():
    parent = particle([0, 0, 0], scale=2.0, hevec2=(1, 0, 0))
    child = particle([0, 3, 4], scale=1.5, hevec2=(0, 1, 0))
    features = compute_edge_features(parent, child)

    assert features.scale_difference == pytest.approx(0.5)
    assert features.angle == pytest.approx(90.0)
    assert features.distance == pytest.approx(5.0)
