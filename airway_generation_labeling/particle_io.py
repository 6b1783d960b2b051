"""
Reading and writing airway particle files.

Particle files are VTK polydata: one point per particle with ``scale``,
``hevec2`` and (for labeled data) ``ChestType`` arrays. Older files keep
those arrays as field data rather than point data, so both are searched.
"""
import logging
from pathlib import Path

import numpy as np
import pyvista as pv

from airway_generation_labeling.chest_conventions import chest_types_to_states, states_to_chest_types
from airway_generation_labeling.errors import MalformedInputError
from airway_generation_labeling.particles import ParticleSet


logger = logging.getLogger(__name__)

SCALE_ARRAY = "scale"
HEVEC2_ARRAY = "hevec2"
CHEST_TYPE_ARRAY = "ChestType"


def _find_array(mesh, name):
    if name in mesh.point_data:
        return np.asarray(mesh.point_data[name]), "point"
    if name in mesh.field_data:
        return np.asarray(mesh.field_data[name]), "field"
    return None, None


def read_particles(file_path):
    """
    Load a particle file into a ParticleSet.

    Parameters:
    -----------
    file_path : str or Path
        Path to a VTK polydata particle file

    Returns:
    --------
    ParticleSet with ``source`` set to the loaded dataset
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Particle file not found: {file_path}")

    mesh = pv.read(str(file_path))
    positions = np.asarray(mesh.points, dtype=float)

    scales, _ = _find_array(mesh, SCALE_ARRAY)
    hevec2, _ = _find_array(mesh, HEVEC2_ARRAY)
    if scales is None or hevec2 is None:
        raise MalformedInputError(f"{file_path} lacks the '{SCALE_ARRAY}' or '{HEVEC2_ARRAY}' array")

    chest_types, _ = _find_array(mesh, CHEST_TYPE_ARRAY)
    if chest_types is None:
        labels = None
    else:
        chest_types = np.asarray(chest_types).reshape(-1)
        labels = chest_types_to_states(round(float(c)) for c in chest_types)

    particles = ParticleSet(positions, np.asarray(scales).reshape(-1), hevec2,
                            labels=labels, source=mesh)
    logger.info("Read %d particles from %s", len(particles), file_path)
    return particles


def particles_to_polydata(particles):
    """
    Dataset holding the particles and their current labels.

    The dataset the particles were read from is copied and its ChestType
    array overwritten where the other particle arrays live; a new point-data
    dataset is built when the particles were not read from a file.
    """
    if isinstance(particles.source, pv.DataSet):
        mesh = particles.source.copy()
        _, location = _find_array(mesh, SCALE_ARRAY)
    else:
        mesh = pv.PolyData(particles.positions)
        mesh.point_data[SCALE_ARRAY] = particles.scales.astype(np.float32)
        mesh.point_data[HEVEC2_ARRAY] = particles.hevec2.astype(np.float32)
        location = "point"

    chest_types = np.array(states_to_chest_types(particles.labels), dtype=np.float32)
    if location == "field":
        mesh.field_data[CHEST_TYPE_ARRAY] = chest_types
    else:
        mesh.point_data[CHEST_TYPE_ARRAY] = chest_types
    return mesh


def write_particles(particles, file_path):
    """Write the particles, with their generation labels, to a VTK file."""
    mesh = particles_to_polydata(particles)
    mesh.save(str(file_path))
    logger.info("Wrote %d labeled particles to %s", len(particles), file_path)
