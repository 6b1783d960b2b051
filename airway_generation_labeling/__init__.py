"""Airway particle topology and generation labeling."""
from airway_generation_labeling.chest_conventions import GENERATION_STATES, GenerationState
from airway_generation_labeling.config import LabelingConfig
from airway_generation_labeling.connectivity import evaluate_particle_connectedness, particles_connected
from airway_generation_labeling.emission import (
    EmissionStatistics, GaussianEmissionModel, KernelDensityEmissionModel,
)
from airway_generation_labeling.errors import (
    AirwayLabelingError, ConfigurationError, MalformedInputError, ModelCoverageError,
)
from airway_generation_labeling.labeling import label_tree, label_trees
from airway_generation_labeling.particles import Particle, ParticleSet
from airway_generation_labeling.pipeline import build_models, label_airway_particles
from airway_generation_labeling.topology import ParticleTree, build_particle_trees
from airway_generation_labeling.transition import (
    GaussianTransitionModel, TableTransitionModel, TransitionStatistics,
)

__version__ = "0.1.0"
