import logging

import numpy as np
import pytest

from airway_generation_labeling.chest_conventions import GenerationState
from airway_generation_labeling.errors import MalformedInputError
from airway_generation_labeling.statistics_tables import (
    read_emission_statistics, read_transition_probabilities, read_transition_statistics,
)


G = GenerationState


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return path


def test_emission_statistics(tmp_path, caplog):
    path = write(tmp_path, "emission.csv", "\n".join([
        "ChestType,scaleDiffMean,scaleDiffSTD,distanceMean,distanceSTD,angleMean,angleSTD,numSamples",
        "AIRWAYGENERATION0,0.10,0.05,1.2,0.3,5.0,2.0,120",
        "AirwayGeneration3,0.20,0.08,1.0,0.4,9.0,3.0,45",
        "VESSEL,0.1,0.1,0.1,0.1,0.1,0.1,10",
        "AIRWAYGENERATION4,0.2,oops,1.0,0.4,9.0,3.0,45",
        "AIRWAYGENERATION5,0.2,0.1,1.0",
        "",
    ]))

    with caplog.at_level(logging.WARNING):
        statistics = read_emission_statistics(path)

    assert set(statistics) == {G.GENERATION_0, G.GENERATION_3}
    gen0 = statistics[G.GENERATION_0]
    assert gen0.scale_difference_mean == pytest.approx(0.10)
    assert gen0.distance_std == pytest.approx(0.3)
    assert gen0.angle_std == pytest.approx(2.0)
    assert gen0.samples == 120
    assert "VESSEL" in caplog.text


def test_emission_statistics_row_with_extra_fields_is_skipped(tmp_path):
    path = write(tmp_path, "emission.csv", "\n".join([
        "name,a,b,c,d,e,f,n",
        "AIRWAYGENERATION1,0.1,0.1,1,0.1,1,1,50,999",
        "AIRWAYGENERATION2,0.1,0.1,1,0.1,1,1,50",
    ]))
    assert set(read_emission_statistics(path)) == {G.GENERATION_2}


def test_transition_statistics(tmp_path):
    path = write(tmp_path, "transition_stats.csv", "\n".join([
        "fromType,toType,scaleDiffMean,scaleDiffSTD,angleMean,angleSTD,numSamples",
        "AIRWAYGENERATION1,AIRWAYGENERATION2,0.3,0.2,35.0,10.0,80",
        "AIRWAYGENERATION2,AIRWAYGENERATION3,0.2,0.1,40.0,12.0,4",
        "AIRWAYGENERATION2,NOTASTATE,0.2,0.1,40.0,12.0,40",
    ]))
    statistics = read_transition_statistics(path)

    assert set(statistics) == {(G.GENERATION_1, G.GENERATION_2), (G.GENERATION_2, G.GENERATION_3)}
    entry = statistics[(G.GENERATION_1, G.GENERATION_2)]
    assert entry.scale_difference_variance == pytest.approx(0.04)
    assert entry.angle_variance == pytest.approx(100.0)
    # Underpowered rows are still read; the model decides whether to install them
    assert statistics[(G.GENERATION_2, G.GENERATION_3)].samples == 4


def test_generation_only_probability_matrix(tmp_path):
    table = np.arange(121, dtype=float).reshape(11, 11) / 121.0
    path = tmp_path / "tp.csv"
    np.savetxt(path, table, delimiter=",")

    matrix = read_transition_probabilities(path)
    assert matrix.shape == (12, 12)
    np.testing.assert_allclose(matrix[:11, :11], table)
    assert not matrix[11].any() and not matrix[:, 11].any()


def test_full_probability_matrix(tmp_path):
    table = np.full((12, 12), 1.0 / 12)
    path = tmp_path / "tp.csv"
    np.savetxt(path, table, delimiter=",")
    np.testing.assert_allclose(read_transition_probabilities(path), table)


def test_malformed_matrix_rows_are_left_empty(tmp_path):
    rows = [",".join(["0.5"] * 11) for _ in range(11)]
    rows[3] = ",".join(["0.5"] * 5)
    rows[6] = ",".join(["0.5"] * 13)
    path = write(tmp_path, "tp.csv", "\n".join(rows))

    matrix = read_transition_probabilities(path)
    assert not matrix[3].any()
    assert not matrix[6].any()
    assert matrix[7, 0] == pytest.approx(0.5)
    assert matrix[10, 10] == pytest.approx(0.5)


def test_empty_matrix_file_is_rejected(tmp_path):
    with pytest.raises(MalformedInputError):
        read_transition_probabilities(write(tmp_path, "tp.csv", ""))
