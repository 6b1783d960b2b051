import pytest

from airway_generation_labeling.chest_conventions import (
    GENERATION_STATES, NUMBER_OF_STATES, GenerationState, chest_types_to_states, states_to_chest_types,
)


G = GenerationState


def test_state_counts():
    assert NUMBER_OF_STATES == 12
    assert len(GENERATION_STATES) == 11
    assert G.UNDEFINED not in GENERATION_STATES


@pytest.mark.parametrize("state, code", [(G.GENERATION_0, 38), (G.GENERATION_4, 42),
                                         (G.GENERATION_10, 48), (G.UNDEFINED, 0)])
def test_chest_type_codes(state, code):
    assert state.chest_type == code
    assert G.from_chest_type(code) is state


@pytest.mark.parametrize("code", [1, 37, 49, 120])
def test_other_chest_types_are_undefined(code):
    assert G.from_chest_type(code) is G.UNDEFINED


@pytest.mark.parametrize("name, state", [
    ("AIRWAYGENERATION3", G.GENERATION_3),
    ("AirwayGeneration10", G.GENERATION_10),
    (" airwaygeneration0 ", G.GENERATION_0),
    ("UndefinedType", G.UNDEFINED),
])
def test_names(name, state):
    assert G.from_name(name) is state


@pytest.mark.parametrize("name", ["AIRWAYGENERATION11", "VESSEL", "", None, "AIRWAYGENERATION"])
def test_unknown_names(name):
    assert G.from_name(name) is None


def test_depth_and_names():
    assert G.GENERATION_6.depth == 6
    assert G.UNDEFINED.depth is None
    assert G.GENERATION_6.convention_name == "AIRWAYGENERATION6"
    assert G.UNDEFINED.convention_name == "UNDEFINEDTYPE"


def test_list_conversions():
    codes = [38, 0, 45]
    states = chest_types_to_states(codes)
    assert states == [G.GENERATION_0, G.UNDEFINED, G.GENERATION_7]
    assert states_to_chest_types(states) == codes
