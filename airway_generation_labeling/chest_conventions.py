"""
Airway generation states and their chest-type conventions.

Particle files code the airway generation of each particle in a ``ChestType``
array. Generation g is stored as 38 + g and an unlabeled particle as 0
(UNDEFINEDTYPE). Inside the package every label is a ``GenerationState``,
whose integer value is both the branching depth and the row/column index
into the 12 x 12 transition table.
"""
import re
from enum import IntEnum


AIRWAY_GENERATION_0_CHEST_TYPE = 38
UNDEFINED_CHEST_TYPE = 0

_GENERATION_NAME = re.compile(r"^airwaygeneration(\d+)$")


class GenerationState(IntEnum):
    GENERATION_0 = 0
    GENERATION_1 = 1
    GENERATION_2 = 2
    GENERATION_3 = 3
    GENERATION_4 = 4
    GENERATION_5 = 5
    GENERATION_6 = 6
    GENERATION_7 = 7
    GENERATION_8 = 8
    GENERATION_9 = 9
    GENERATION_10 = 10
    UNDEFINED = 11

    @property
    def depth(self):
        """Number of branch points from the trachea, None for UNDEFINED."""
        if self is GenerationState.UNDEFINED:
            return None
        return int(self)

    @property
    def chest_type(self):
        if self is GenerationState.UNDEFINED:
            return UNDEFINED_CHEST_TYPE
        return AIRWAY_GENERATION_0_CHEST_TYPE + int(self)

    @property
    def convention_name(self):
        if self is GenerationState.UNDEFINED:
            return "UNDEFINEDTYPE"
        return f"AIRWAYGENERATION{int(self)}"

    @classmethod
    def from_chest_type(cls, code):
        """Decode a ChestType value; anything that is not a generation is UNDEFINED."""
        generation = int(code) - AIRWAY_GENERATION_0_CHEST_TYPE
        if 0 <= generation <= 10:
            return cls(generation)
        return cls.UNDEFINED

    @classmethod
    def from_name(cls, name):
        """
        Look up a state by its convention name.

        Accepts ``AIRWAYGENERATION3``, ``AirwayGeneration3``, ``UNDEFINEDTYPE``
        and ``UndefinedType`` (case-insensitive, whitespace ignored).
        Returns None when the name is not a recognized generation state.
        """
        if not isinstance(name, str):
            return None
        key = name.strip().lower()
        if key == "undefinedtype":
            return cls.UNDEFINED
        match = _GENERATION_NAME.match(key)
        if match is None:
            return None
        generation = int(match.group(1))
        if generation > 10:
            return None
        return cls(generation)


# The states the labeling engine can assign from evidence, in depth order
GENERATION_STATES = tuple(s for s in GenerationState if s is not GenerationState.UNDEFINED)
NUMBER_OF_STATES = len(GenerationState)


def chest_types_to_states(codes):
    return [GenerationState.from_chest_type(c) for c in codes]


def states_to_chest_types(states):
    return [GenerationState(int(s)).chest_type for s in states]
