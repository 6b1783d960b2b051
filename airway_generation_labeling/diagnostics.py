"""
Agreement between reference and assigned generation labels.

Used for quality assessment when the input particles already carry labels.
"""
import numpy as np
import pandas as pd

from airway_generation_labeling.chest_conventions import NUMBER_OF_STATES, GenerationState


STATE_NAMES = [s.convention_name for s in GenerationState]


def _as_state_array(labels):
    return np.array([int(GenerationState(int(l))) for l in labels], dtype=int)


def dice_scores(truth, predicted):
    """
    Dice coefficient per generation state.

    Dice = 2 |A n B| / (|A| + |B|) where A and B are the particles carrying
    the state in ``truth`` and ``predicted``. States absent from both are
    left out.

    Returns:
    --------
    pandas.Series indexed by convention name
    """
    truth = _as_state_array(truth)
    predicted = _as_state_array(predicted)
    if len(truth) != len(predicted):
        raise ValueError(f"Label arrays differ in length: {len(truth)} vs {len(predicted)}")

    scores = {}
    for state in GenerationState:
        in_truth = truth == int(state)
        in_predicted = predicted == int(state)
        denominator = in_truth.sum() + in_predicted.sum()
        if denominator > 0:
            scores[state.convention_name] = 2.0 * np.sum(in_truth & in_predicted) / denominator
    return pd.Series(scores, name="dice", dtype=float)


def confusion_matrix(truth, predicted):
    """Counts of (reference state, assigned state) pairs; rows = reference, columns = assigned."""
    truth = _as_state_array(truth)
    predicted = _as_state_array(predicted)
    if len(truth) != len(predicted):
        raise ValueError(f"Label arrays differ in length: {len(truth)} vs {len(predicted)}")

    counts = np.zeros((NUMBER_OF_STATES, NUMBER_OF_STATES), dtype=int)
    np.add.at(counts, (truth, predicted), 1)
    frame = pd.DataFrame(counts, index=STATE_NAMES, columns=STATE_NAMES)
    frame.index.name = "reference"
    frame.columns.name = "assigned"
    return frame


def format_report(truth, predicted):
    lines = ["DICE SCORES"]
    for name, score in dice_scores(truth, predicted).items():
        lines.append(f"  Dice for {name}:\t{score:.3f}")
    lines.append("")
    lines.append("CONFUSION MATRIX (rows: reference, columns: assigned)")
    lines.append(confusion_matrix(truth, predicted).to_string())
    return "\n".join(lines)
