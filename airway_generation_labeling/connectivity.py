"""
Pairwise particle connectivity.

Two particles are connected when they have a similar scale, lie within the
particle distance threshold of one another, and the vector joining them is
aligned with both particles' minor eigenvectors (hevec2).
"""
from collections import namedtuple

import numpy as np


ConnectivityResult = namedtuple("ConnectivityResult", ["connected", "distance", "reason"])

# Scale difference, folded angle between the hevec2 vectors and distance of
# the two particles on a tree edge (parent -> child)
EdgeFeatures = namedtuple("EdgeFeatures", ["scale_difference", "angle", "distance"])


def get_vector_magnitude(vector):
    return float(np.sqrt(np.dot(vector, vector)))


def get_angle_between_vectors(vec1, vec2, return_degrees=True, fold=True):
    """
    Angle between two vectors.

    Parameters:
    -----------
    vec1, vec2 : array-like (3,)
        Vectors to compare. Neither needs to be normalized.
    return_degrees : bool
        Report the angle in degrees instead of radians (default: True)
    fold : bool
        Treat a vector and its negation as the same direction, so the angle
        lies in [0, 90] degrees (default: True). Eigenvectors carry no sign.

    Returns:
    --------
    float : the angle; 0 when either vector has zero length
    """
    vec1 = np.asarray(vec1, dtype=float)
    vec2 = np.asarray(vec2, dtype=float)

    mag1 = get_vector_magnitude(vec1)
    mag2 = get_vector_magnitude(vec2)
    if mag1 == 0.0 or mag2 == 0.0:
        return 0.0

    cos_theta = float(np.dot(vec1, vec2)) / (mag1 * mag2)
    if fold:
        cos_theta = abs(cos_theta)
    cos_theta = min(1.0, max(-1.0, cos_theta))

    theta = np.arccos(cos_theta)
    if return_degrees:
        return float(np.degrees(theta))
    return float(theta)


def get_folded_angles_to_vectors(vector, vectors):
    """Folded angles (degrees) between one vector and each row of ``vectors``; 0 for zero rows."""
    vector = np.asarray(vector, dtype=float)
    vectors = np.asarray(vectors, dtype=float).reshape(-1, 3)

    norms = np.linalg.norm(vectors, axis=1) * get_vector_magnitude(vector)
    dots = np.abs(vectors @ vector)
    cos_theta = np.ones(len(vectors))
    nonzero = norms > 0
    cos_theta[nonzero] = np.clip(dots[nonzero] / norms[nonzero], 0.0, 1.0)
    return np.degrees(np.arccos(cos_theta))


def evaluate_particle_connectedness(particle1, particle2, config):
    """
    Decide whether two particles belong to the same airway branch.

    Parameters:
    -----------
    particle1, particle2 : Particle
        Records carrying position, scale and hevec2
    config : LabelingConfig
        Supplies the scale ratio, distance and angle thresholds

    Returns:
    --------
    ConnectivityResult(connected, distance, reason)
        ``distance`` is the inter-particle distance (the MST edge weight)
        whenever it was computed; ``reason`` names the failed test or is
        None for a connected pair.
    """
    scale1 = float(particle1.scale)
    scale2 = float(particle2.scale)
    max_scale = max(scale1, scale2)

    # A zero scale cannot be compared; never bridge through it
    if scale1 <= 0.0 or scale2 <= 0.0:
        return ConnectivityResult(False, None, "scale")

    if abs(scale1 - scale2) / max_scale > config.scale_ratio_threshold:
        return ConnectivityResult(False, None, "scale")

    connecting_vec = np.asarray(particle1.position, dtype=float) - np.asarray(particle2.position, dtype=float)
    distance = get_vector_magnitude(connecting_vec)

    if distance > config.particle_distance_threshold:
        return ConnectivityResult(False, distance, "distance")

    theta1 = get_angle_between_vectors(particle1.hevec2, connecting_vec)
    theta2 = get_angle_between_vectors(particle2.hevec2, connecting_vec)

    if theta1 > config.particle_angle_threshold or theta2 > config.particle_angle_threshold:
        return ConnectivityResult(False, distance, "angle")

    return ConnectivityResult(True, distance, None)


def particles_connected(particle1, particle2, config):
    """Boolean form of :func:`evaluate_particle_connectedness`."""
    return evaluate_particle_connectedness(particle1, particle2, config).connected


def compute_edge_features(parent, child):
    """Features measured along a directed tree edge, used by the probability models."""
    connecting_vec = np.asarray(child.position, dtype=float) - np.asarray(parent.position, dtype=float)
    return EdgeFeatures(
        scale_difference=float(parent.scale) - float(child.scale),
        angle=get_angle_between_vectors(parent.hevec2, child.hevec2),
        distance=get_vector_magnitude(connecting_vec),
    )
