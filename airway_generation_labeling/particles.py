"""
Particle data model.

A ``ParticleSet`` keeps the particle attributes as column arrays (the way
they come out of a particle file) and hands out ``Particle`` records on
indexing. The generation label is the only attribute that is ever written
after loading.
"""
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from airway_generation_labeling.chest_conventions import GenerationState
from airway_generation_labeling.errors import MalformedInputError


@dataclass(frozen=True)
class Particle:
    index: int
    position: np.ndarray
    scale: float
    hevec2: np.ndarray
    label: GenerationState = GenerationState.UNDEFINED


class ParticleSet:
    """
    Ordered collection of airway particles.

    Parameters:
    -----------
    positions : ndarray (n, 3)
        Particle positions in physical space (mm)
    scales : ndarray (n,)
        Particle scales
    hevec2 : ndarray (n, 3)
        Minor orientation (second Hessian eigenvector) of each particle
    labels : ndarray (n,), optional
        GenerationState values; all UNDEFINED when omitted
    source : object, optional
        The dataset the particles were read from, kept so that a writer can
        put the labels back into it
    """

    def __init__(self, positions, scales, hevec2, labels=None, source: Optional[Any] = None):
        self.positions = np.asarray(positions, dtype=float).reshape(-1, 3)
        n = len(self.positions)
        self.scales = np.asarray(scales, dtype=float).reshape(-1)
        self.hevec2 = np.asarray(hevec2, dtype=float).reshape(-1, 3) if n else np.zeros((0, 3))

        if len(self.scales) != n or len(self.hevec2) != n:
            raise MalformedInputError(
                f"Particle arrays disagree in length: {n} positions, "
                f"{len(self.scales)} scales, {len(self.hevec2)} hevec2 vectors")

        if labels is None:
            self.labels = np.full(n, int(GenerationState.UNDEFINED), dtype=np.int64)
        else:
            self.labels = np.array([int(GenerationState(l)) for l in labels], dtype=np.int64)
            if len(self.labels) != n:
                raise MalformedInputError(f"Expected {n} labels, got {len(self.labels)}")

        self.source = source

    def __len__(self):
        return len(self.positions)

    def __getitem__(self, index):
        return Particle(
            index=int(index),
            position=self.positions[index],
            scale=float(self.scales[index]),
            hevec2=self.hevec2[index],
            label=GenerationState(int(self.labels[index])),
        )

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def label_of(self, index):
        return GenerationState(int(self.labels[index]))

    def assign_labels(self, labels):
        """
        Overwrite labels from a mapping of particle index -> GenerationState.
        Particles absent from the mapping keep their current label.
        """
        for index, state in labels.items():
            self.labels[index] = int(GenerationState(state))

    def copy(self):
        return ParticleSet(self.positions.copy(), self.scales.copy(), self.hevec2.copy(),
                           labels=self.labels.copy(), source=self.source)
