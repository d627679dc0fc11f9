"""Scalar RF helpers: Friis cascade, noise floors, guarded logs."""

import math

import pytest

from groundstation_rf.core.rf_math import (
    MIN_DB,
    db_to_linear,
    friis_noise_factor,
    linear_to_db,
    noise_factor_to_temperature,
    noise_temperature_to_figure_db,
    power_sum_dbm,
    span_overlap_hz,
    thermal_noise_floor_dbm,
    watts_to_dbm,
)


def test_friis_two_stage_matches_formula():
    f1, f2, g1 = db_to_linear(0.6), db_to_linear(16.0), db_to_linear(55.0)
    expected = f1 + (f2 - 1.0) / g1
    assert friis_noise_factor([(0.6, 55.0), (16.0, 0.0)]) == pytest.approx(expected)


def test_friis_three_stage():
    f = [db_to_linear(x) for x in (1.0, 3.0, 10.0)]
    g = [db_to_linear(x) for x in (20.0, 10.0)]
    expected = f[0] + (f[1] - 1) / g[0] + (f[2] - 1) / (g[0] * g[1])
    assert friis_noise_factor([(1.0, 20.0), (3.0, 10.0), (10.0, 0.0)]) == pytest.approx(expected)


def test_more_first_stage_gain_never_raises_noise():
    temps = [
        noise_factor_to_temperature(friis_noise_factor([(0.6, g), (16.0, 0.0)]))
        for g in range(0, 71, 5)
    ]
    assert all(b <= a for a, b in zip(temps, temps[1:]))


def test_empty_cascade_is_noiseless():
    assert friis_noise_factor([]) == 1.0


def test_thermal_noise_floor():
    # kTB at 290 K in 1 Hz ~ -174 dBm
    assert thermal_noise_floor_dbm(290.0, 1.0) == pytest.approx(-174.0, abs=0.05)
    assert thermal_noise_floor_dbm(290.0, 1e6) == pytest.approx(-114.0, abs=0.05)
    assert thermal_noise_floor_dbm(0.0, 1e6) == MIN_DB


def test_log_guards():
    assert linear_to_db(0.0) == MIN_DB
    assert watts_to_dbm(-1.0) == MIN_DB
    assert math.isfinite(linear_to_db(1e-30))


def test_span_overlap():
    assert span_overlap_hz(100.0, 10.0, 105.0, 10.0) == pytest.approx(5.0)
    # touching edges
    assert span_overlap_hz(100.0, 10.0, 110.0, 10.0) == 0.0
    assert span_overlap_hz(100.0, 10.0, 200.0, 10.0) == 0.0


def test_power_sum():
    assert power_sum_dbm([0.0, 0.0]) == pytest.approx(3.0103, abs=1e-3)
    assert power_sum_dbm([]) == MIN_DB


def test_noise_temperature_to_figure():
    assert noise_temperature_to_figure_db(290.0) == pytest.approx(3.0103, abs=1e-4)
    assert noise_temperature_to_figure_db(0.0) == 0.0
    assert noise_temperature_to_figure_db(-10.0) == 0.0
    nf = 0.6
    temp = noise_factor_to_temperature(db_to_linear(nf))
    assert noise_temperature_to_figure_db(temp) == pytest.approx(nf)
