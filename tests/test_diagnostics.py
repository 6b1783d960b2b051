import pytest

from airway_generation_labeling.chest_conventions import GenerationState
from airway_generation_labeling.diagnostics import confusion_matrix, dice_scores, format_report


G = GenerationState


@pytest.fixture
def labels():
    truth = [G.GENERATION_0, G.GENERATION_0, G.GENERATION_1, G.GENERATION_1, G.GENERATION_2]
    predicted = [G.GENERATION_0, G.GENERATION_1, G.GENERATION_1, G.GENERATION_1, G.UNDEFINED]
    return truth, predicted


def test_dice_scores(labels):
    scores = dice_scores(*labels)

    assert scores["AIRWAYGENERATION0"] == pytest.approx(2 * 1 / (2 + 1))
    assert scores["AIRWAYGENERATION1"] == pytest.approx(2 * 2 / (2 + 3))
    assert scores["AIRWAYGENERATION2"] == 0.0
    assert scores["UNDEFINEDTYPE"] == 0.0
    assert "AIRWAYGENERATION5" not in scores


def test_confusion_matrix(labels):
    matrix = confusion_matrix(*labels)

    assert matrix.shape == (12, 12)
    assert matrix.loc["AIRWAYGENERATION0", "AIRWAYGENERATION1"] == 1
    assert matrix.loc["AIRWAYGENERATION1", "AIRWAYGENERATION1"] == 2
    assert matrix.loc["AIRWAYGENERATION2", "UNDEFINEDTYPE"] == 1
    assert matrix.values.sum() == 5


def test_mismatched_lengths():
    with pytest.raises(ValueError):
        dice_scores([G.GENERATION_0], [])


def test_report_mentions_every_scored_state(labels):
    report = format_report(*labels)
    assert "Dice for AIRWAYGENERATION1" in report
    assert "CONFUSION MATRIX" in report
