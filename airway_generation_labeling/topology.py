"""
Impose a tree topology on a particle set.

Particles are graph nodes. An undirected, distance-weighted edge joins every
pair that passes the connectivity test; the minimum spanning forest of that
graph gives one acyclic skeleton per connected component. Each component is
then rooted at its most trachea-ward particle and its edges are directed away
from the root. The particle set need not be connected: airway obstructions
(mucous plugs, e.g.) legitimately split it into several trees.
"""
import logging
from collections import Counter, namedtuple
from dataclasses import dataclass, field
from typing import Dict, List

import networkx as nx
import numpy as np
from scipy.spatial import cKDTree

from airway_generation_labeling.connectivity import evaluate_particle_connectedness


logger = logging.getLogger(__name__)

CandidateEdge = namedtuple("CandidateEdge", ["first", "second", "weight"])


@dataclass
class ParticleTree:
    """
    A rooted, directed tree over particle indices.

    ``order`` lists the nodes breadth-first from the root, so every parent
    appears before its children.
    """
    root: int
    parents: Dict[int, int] = field(default_factory=dict)
    children: Dict[int, List[int]] = field(default_factory=dict)
    order: List[int] = field(default_factory=list)

    def __len__(self):
        return len(self.order)

    @property
    def leaves(self):
        return [n for n in self.order if not self.children[n]]

    def parent_of(self, index):
        return self.parents.get(index)

    def edges(self):
        """Directed (parent, child) pairs in breadth-first order."""
        return [(self.parents[n], n) for n in self.order if n != self.root]


def find_candidate_edges(particles, config):
    """
    Evaluate connectivity for every pair of particles close enough to matter.

    A KD-tree restricts the pairwise test to pairs within the particle
    distance threshold; all other pairs fail the distance test anyway.

    Returns:
    --------
    list of CandidateEdge, sorted by (first, second) with first < second
    """
    n = len(particles)
    if n < 2:
        return []

    tree = cKDTree(particles.positions)
    pairs = sorted(tree.query_pairs(r=config.particle_distance_threshold))

    rejected = Counter()
    edges = []
    for i, j in pairs:
        result = evaluate_particle_connectedness(particles[i], particles[j], config)
        if result.connected:
            edges.append(CandidateEdge(i, j, result.distance))
        else:
            rejected[result.reason] += 1

    logger.debug("Connectivity: %d candidate pairs, %d accepted, rejected by %s",
                 len(pairs), len(edges), dict(rejected))
    return edges


def build_particle_graph(n_particles, edges):
    """Undirected weighted graph with one node per particle (isolated ones included)."""
    graph = nx.Graph()
    graph.add_nodes_from(range(n_particles))
    for edge in edges:
        graph.add_edge(edge.first, edge.second, weight=edge.weight)
    return graph


def select_root(component, positions, root_direction, anchors=None):
    """
    Pick the root of a component.

    An externally supplied anchor inside the component wins (the lowest one
    when several are). Otherwise the particle furthest along
    ``root_direction`` is chosen, lowest index on ties.
    """
    if anchors:
        inside = sorted(a for a in anchors if a in component)
        if inside:
            return inside[0]

    direction = np.asarray(root_direction, dtype=float)
    direction = direction / np.linalg.norm(direction)
    return max(component, key=lambda i: (float(np.dot(positions[i], direction)), -i))


def orient_tree(spanning_tree, root):
    """Direct the edges of an undirected tree away from ``root``."""
    tree = ParticleTree(root=root)
    tree.order.append(root)
    tree.children[root] = []

    for child, parent in nx.bfs_predecessors(spanning_tree, root):
        tree.parents[child] = parent
        tree.children[parent].append(child)
        tree.children[child] = []
        tree.order.append(child)

    for kids in tree.children.values():
        kids.sort()
    return tree


def build_particle_trees(particles, config, roots=None, edges=None):
    """
    Build one rooted tree per connected component of the particle set.

    Parameters:
    -----------
    particles : ParticleSet
    config : LabelingConfig
    roots : iterable of int, optional
        Particle indices to use as roots of the components containing them
    edges : list of CandidateEdge, optional
        Precomputed candidate edges; computed with the connectivity test
        when omitted

    Returns:
    --------
    list of ParticleTree, ordered by the smallest particle index they contain
    """
    if edges is None:
        edges = find_candidate_edges(particles, config)

    graph = build_particle_graph(len(particles), edges)

    # Kruskal over the whole graph yields a spanning forest, one tree per component
    forest = nx.minimum_spanning_tree(graph, weight="weight", algorithm="kruskal")

    anchors = set(roots) if roots is not None else None
    components = sorted((sorted(c) for c in nx.connected_components(forest)), key=lambda c: c[0])

    trees = []
    for component in components:
        root = select_root(component, particles.positions, config.root_direction, anchors)
        trees.append(orient_tree(forest.subgraph(component), root))

    singletons = sum(1 for t in trees if len(t) == 1)
    logger.info("Built %d trees from %d particles (%d edges kept of %d candidates, %d singletons)",
                len(trees), len(particles), forest.number_of_edges(), len(edges), singletons)
    return trees
