"""
Generation labeling of rooted particle trees.

Each tree is labeled with a tree-structured Viterbi decoder: an upward
max-product pass from the leaves to the root, followed by a downward pass
that follows the stored back-pointers from the best root state. The result
is the jointly most probable generation assignment for the whole tree, with
exactly one state per particle.

The recursion does not force generations to grow away from the root; that is
left to the transition probabilities unless ``enforce_monotonic`` is set in
the configuration, in which case the transition models give decreasing
transitions probability 0.
"""
import logging
from collections import namedtuple
from functools import partial
from multiprocessing import Pool

import numpy as np

from airway_generation_labeling.chest_conventions import GENERATION_STATES, GenerationState
from airway_generation_labeling.connectivity import compute_edge_features
from airway_generation_labeling.emission import ParticleQuery
from airway_generation_labeling.errors import ModelCoverageError
from airway_generation_labeling.particles import ParticleSet


logger = logging.getLogger(__name__)

TreeLabeling = namedtuple("TreeLabeling", ["root", "labels", "undefined", "log_likelihood"])
LabelingResult = namedtuple("LabelingResult", ["labels", "trees", "undefined"])


def resolve_supported_states(emission_model, transition_model):
    """
    States that both models can support, in depth order.

    States that lack emission or transition support are reported and left
    out of the decoding. Raises ModelCoverageError when nothing is left.
    """
    emission_states = set(emission_model.supported_states())
    transition_states = set(transition_model.supported_states())

    for state in GENERATION_STATES:
        missing = []
        if state not in emission_states:
            missing.append("emission")
        if state not in transition_states:
            missing.append("transition")
        if missing:
            logger.warning("%s has no %s support; it will not be assigned",
                           state.convention_name, " or ".join(missing))

    states = [s for s in GENERATION_STATES if s in emission_states and s in transition_states]
    if not states:
        raise ModelCoverageError("No generation state has both emission and transition support")
    return states


def build_particle_query(particles, tree, index):
    """Emission query for one particle: its attributes plus the edge to its tree neighbour."""
    particle = particles[index]
    parent = tree.parent_of(index)
    if parent is not None:
        edge = compute_edge_features(particles[parent], particle)
    elif tree.children[index]:
        # The root has no parent; measure the edge to its first child instead
        edge = compute_edge_features(particle, particles[tree.children[index][0]])
    else:
        edge = None
    return ParticleQuery(particle.position, particle.scale, particle.hevec2, edge)


def _relative(values):
    """``values`` divided by their maximum; all zeros when nothing is positive."""
    values = np.nan_to_num(np.asarray(values, dtype=float), nan=0.0)
    peak = values.max() if values.size else 0.0
    if peak <= 0:
        return np.zeros_like(values)
    return values / peak


def _root_log_prior(states, config, floor):
    prior = np.zeros(len(states))
    if config.root_prior == "generation0":
        if GenerationState.GENERATION_0 in states:
            prior[:] = np.log(floor)
            prior[states.index(GenerationState.GENERATION_0)] = 0.0
        else:
            logger.warning("Generation 0 is not supported; using a uniform root prior")
    return prior


def label_tree(tree, particles, emission_model, transition_model, config, states=None):
    """
    Label every particle of one tree.

    Parameters:
    -----------
    tree : ParticleTree
    particles : ParticleSet
    emission_model : EmissionModel
    transition_model : TransitionModel
    config : LabelingConfig
    states : list of GenerationState, optional
        States allowed in the decoding; resolved from the models when omitted

    Returns:
    --------
    TreeLabeling(root, labels, undefined, log_likelihood)
        ``labels`` maps particle index -> GenerationState. A particle whose
        decoded state is indistinguishable from zero next to its best state
        (relative likelihood at or below ``probability_floor``), or which is
        reached through such a transition, is labeled UNDEFINED. The log
        likelihood is on the same relative scale.
    """
    if states is None:
        states = resolve_supported_states(emission_model, transition_model)
    state_idx = np.array([int(s) for s in states], dtype=int)
    floor = config.probability_floor

    # Local evidence, each vector / matrix scaled to its own maximum (a constant
    # factor per node or edge, so the decoded path is unchanged)
    relative_emission = {}
    log_up = {}
    for node in tree.order:
        query = build_particle_query(particles, tree, node)
        emission = _relative(emission_model.likelihoods(query)[state_idx])
        relative_emission[node] = emission
        log_up[node] = np.log(np.maximum(emission, floor))

    relative_transition = {}
    log_transition = {}
    for parent, child in tree.edges():
        edge = compute_edge_features(particles[parent], particles[child])
        matrix = _relative(transition_model.transition_matrix(edge)[np.ix_(state_idx, state_idx)])
        relative_transition[child] = matrix
        log_transition[child] = np.log(np.maximum(matrix, floor))

    # Upward pass; reverse breadth-first order visits children before parents
    back_pointers = {}
    for node in reversed(tree.order):
        if node == tree.root:
            continue
        scores = log_transition[node] + log_up[node][None, :]
        best_child_state = np.argmax(scores, axis=1)
        back_pointers[node] = best_child_state
        log_up[tree.parent_of(node)] += scores[np.arange(len(states)), best_child_state]

    root_scores = log_up[tree.root] + _root_log_prior(states, config, floor)
    best = int(np.argmax(root_scores))

    # Downward decode
    decoded = {tree.root: best}
    for node in tree.order[1:]:
        decoded[node] = int(back_pointers[node][decoded[tree.parent_of(node)]])

    labels = {}
    undefined = 0
    for node in tree.order:
        k = decoded[node]
        supported = relative_emission[node][k] > floor
        parent = tree.parent_of(node)
        if parent is None:
            supported = supported and not (
                config.root_prior == "generation0"
                and GenerationState.GENERATION_0 in states
                and states[k] is not GenerationState.GENERATION_0)
        else:
            supported = supported and relative_transition[node][decoded[parent], k] > floor

        if supported:
            labels[node] = states[k]
        else:
            labels[node] = GenerationState.UNDEFINED
            undefined += 1

    return TreeLabeling(tree.root, labels, undefined, float(root_scores[best]))


def label_trees(trees, particles, emission_model, transition_model, config):
    """
    Label a forest of trees independently of one another.

    With ``config.n_workers > 1`` the trees are spread over a process pool.
    Nothing is written into ``particles``; the caller applies
    ``LabelingResult.labels`` once every tree has finished.
    """
    states = resolve_supported_states(emission_model, transition_model)

    if config.n_workers > 1 and len(trees) > 1:
        # Workers only need the arrays, not the dataset they were read from
        shared = ParticleSet(particles.positions, particles.scales, particles.hevec2,
                             labels=particles.labels)
        worker = partial(
            label_tree,
            particles=shared,
            emission_model=emission_model,
            transition_model=transition_model,
            config=config,
            states=states,
        )
        chunksize = max(1, len(trees) // (4 * config.n_workers))
        with Pool(processes=config.n_workers) as pool:
            tree_results = list(pool.imap(worker, trees, chunksize=chunksize))
    else:
        tree_results = [label_tree(tree, particles, emission_model, transition_model, config, states)
                        for tree in trees]

    labels = {}
    undefined = 0
    for result in tree_results:
        labels.update(result.labels)
        undefined += result.undefined

    if undefined:
        logger.warning("%d particles could not be given a supported generation and are UNDEFINED",
                       undefined)
    return LabelingResult(labels, tree_results, undefined)
