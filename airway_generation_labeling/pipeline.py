"""
End-to-end generation labeling of an airway particle set.

The models are built once from validated inputs, the particles are turned
into a forest of rooted trees, each tree is labeled, and only then are the
labels written into the particle set.
"""
import logging

from airway_generation_labeling.emission import GaussianEmissionModel, KernelDensityEmissionModel
from airway_generation_labeling.errors import ConfigurationError
from airway_generation_labeling.labeling import label_trees
from airway_generation_labeling.topology import build_particle_trees
from airway_generation_labeling.transition import GaussianTransitionModel, TableTransitionModel


logger = logging.getLogger(__name__)


def build_models(config, atlases=None, emission_statistics=None,
                 transition_probabilities=None, transition_statistics=None):
    """
    Choose and construct the emission and transition models.

    Kernel density emission is used when atlases are given, otherwise the
    Gaussian emission model over ``emission_statistics``. Transitions use the
    branch-point statistics when given (with the probability table, if any,
    as fallback for pairs without enough samples), otherwise the table.

    Returns:
    --------
    (EmissionModel, TransitionModel)
    """
    if atlases:
        emission = KernelDensityEmissionModel(atlases, config)
    elif emission_statistics:
        emission = GaussianEmissionModel(emission_statistics, min_samples=config.min_training_samples)
    else:
        raise ConfigurationError("Emission probabilities need atlases or emission statistics")

    table = None
    if transition_probabilities is not None:
        table = TableTransitionModel(transition_probabilities, enforce_monotonic=config.enforce_monotonic)

    if transition_statistics:
        transition = GaussianTransitionModel(
            transition_statistics,
            default_probability=config.default_transition_probability,
            min_samples=config.min_training_samples,
            fallback=table,
            enforce_monotonic=config.enforce_monotonic,
        )
    elif table is not None:
        transition = table
    else:
        raise ConfigurationError("Transition probabilities need a probability table or statistics")

    logger.info("Models: %s emission, %s transition", type(emission).__name__, type(transition).__name__)
    return emission, transition


def label_airway_particles(particles, config, emission_model, transition_model, roots=None):
    """
    Impose a topology on ``particles`` and label every particle by generation.

    Parameters:
    -----------
    particles : ParticleSet
        Labels are overwritten in place once every tree is labeled
    config : LabelingConfig
    emission_model : EmissionModel
    transition_model : TransitionModel
    roots : iterable of int, optional
        Particle indices to use as tree roots

    Returns:
    --------
    (list of ParticleTree, LabelingResult)
    """
    trees = build_particle_trees(particles, config, roots=roots)
    result = label_trees(trees, particles, emission_model, transition_model, config)
    particles.assign_labels(result.labels)
    return trees, result
