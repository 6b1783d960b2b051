"""
Readers for the training statistics tables.

The tables are CSV files written by the statistics generation tool:

- emission statistics: one row per generation with the scale difference,
  distance and angle mean / standard deviation and the sample count
- transition statistics: one row per (from, to) generation pair with the
  scale difference and angle mean / standard deviation and the sample count
- transition probabilities: a bare matrix, rows = from-generation,
  columns = to-generation

Rows naming an unknown state or with the wrong number of fields are skipped
with a warning; the rest of the table is still used.
"""
import logging

import numpy as np
import pandas as pd

from airway_generation_labeling.chest_conventions import NUMBER_OF_STATES, GenerationState
from airway_generation_labeling.emission import EmissionStatistics
from airway_generation_labeling.errors import MalformedInputError
from airway_generation_labeling.transition import TransitionStatistics


logger = logging.getLogger(__name__)

EMISSION_COLUMNS = [
    "state", "scale_difference_mean", "scale_difference_std",
    "distance_mean", "distance_std", "angle_mean", "angle_std", "samples",
]
TRANSITION_STATISTICS_COLUMNS = [
    "from_state", "to_state", "scale_difference_mean", "scale_difference_std",
    "angle_mean", "angle_std", "samples",
]


def _read_table(file_path, columns, header, keep_position=False):
    """
    Read a CSV as strings. Rows with too many fields are reported and dropped,
    or blanked when ``keep_position`` is set so later rows keep their index.
    """

    def on_bad_line(fields):
        logger.warning("Bad row with %d fields (expected %d) in %s: %s",
                       len(fields), len(columns), file_path, ",".join(fields))
        if keep_position:
            return [""] * len(columns)
        return None

    try:
        return pd.read_csv(
            file_path,
            header=0 if header else None,
            names=columns,
            dtype=str,
            index_col=False,
            skipinitialspace=True,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=on_bad_line,
        )
    except pd.errors.EmptyDataError:
        logger.warning("%s is empty", file_path)
        return pd.DataFrame(columns=columns, dtype=str)


def _numeric_fields(row, names):
    """Numeric values of ``names`` in ``row``; MalformedInputError if any is missing or not a number."""
    values = pd.to_numeric(row[names], errors="coerce")
    if values.isna().any():
        bad = [n for n in names if pd.isna(values[n])]
        raise MalformedInputError(f"missing or non-numeric fields: {', '.join(bad)}")
    return values.astype(float)


def read_emission_statistics(file_path):
    """
    Read per-generation emission statistics.

    Returns:
    --------
    dict : GenerationState -> EmissionStatistics
    """
    frame = _read_table(file_path, EMISSION_COLUMNS, header=True)
    statistics = {}

    for line, row in frame.iterrows():
        state = GenerationState.from_name(row["state"])
        if state is None or state is GenerationState.UNDEFINED:
            logger.warning("%s row %d: unrecognized generation %r, skipped", file_path, line + 2, row["state"])
            continue
        try:
            values = _numeric_fields(row, EMISSION_COLUMNS[1:])
        except MalformedInputError as err:
            logger.warning("%s row %d: %s, skipped", file_path, line + 2, err)
            continue

        statistics[state] = EmissionStatistics(
            scale_difference_mean=values["scale_difference_mean"],
            scale_difference_std=values["scale_difference_std"],
            distance_mean=values["distance_mean"],
            distance_std=values["distance_std"],
            angle_mean=values["angle_mean"],
            angle_std=values["angle_std"],
            samples=int(values["samples"]),
        )

    logger.info("Read emission statistics for %d generations from %s", len(statistics), file_path)
    return statistics


def read_transition_statistics(file_path):
    """
    Read branch-point statistics for each (from, to) generation pair.

    Standard deviations in the file are converted to variances.

    Returns:
    --------
    dict : (GenerationState, GenerationState) -> TransitionStatistics
    """
    frame = _read_table(file_path, TRANSITION_STATISTICS_COLUMNS, header=True)
    statistics = {}

    for line, row in frame.iterrows():
        from_state = GenerationState.from_name(row["from_state"])
        to_state = GenerationState.from_name(row["to_state"])
        if from_state is None or to_state is None:
            logger.warning("%s row %d: unrecognized state pair (%r, %r), skipped",
                           file_path, line + 2, row["from_state"], row["to_state"])
            continue
        try:
            values = _numeric_fields(row, TRANSITION_STATISTICS_COLUMNS[2:])
        except MalformedInputError as err:
            logger.warning("%s row %d: %s, skipped", file_path, line + 2, err)
            continue

        statistics[(from_state, to_state)] = TransitionStatistics(
            scale_difference_mean=values["scale_difference_mean"],
            scale_difference_variance=values["scale_difference_std"] ** 2,
            angle_mean=values["angle_mean"],
            angle_variance=values["angle_std"] ** 2,
            samples=int(values["samples"]),
        )

    logger.info("Read transition statistics for %d state pairs from %s", len(statistics), file_path)
    return statistics


def read_transition_probabilities(file_path):
    """
    Read a transition probability matrix.

    The file holds 11 rows of 11 values (generations 0-10) or 12 rows of 12
    values (with UNDEFINED last). A row that cannot be parsed is left as
    zeros.

    Returns:
    --------
    ndarray (12, 12)
    """
    columns = list(range(NUMBER_OF_STATES))
    frame = _read_table(file_path, columns, header=False, keep_position=True)
    if frame.empty:
        raise MalformedInputError(f"{file_path} holds no transition probabilities")

    last_column = pd.to_numeric(frame[NUMBER_OF_STATES - 1], errors="coerce")
    width = NUMBER_OF_STATES if last_column.notna().any() else NUMBER_OF_STATES - 1
    if len(frame) != width:
        logger.warning("%s has %d rows for a %d-column table", file_path, len(frame), width)

    matrix = np.zeros((NUMBER_OF_STATES, NUMBER_OF_STATES))
    for line, row in frame.iloc[:width].iterrows():
        try:
            values = _numeric_fields(row, columns[:width])
        except MalformedInputError as err:
            logger.warning("%s row %d: %s, row left empty", file_path, line + 1, err)
            continue
        if (values < 0).any():
            logger.warning("%s row %d: negative probability, row left empty", file_path, line + 1)
            continue
        matrix[line, :width] = values.to_numpy()

    return matrix
