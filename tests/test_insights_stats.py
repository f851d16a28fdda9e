"""Tests de los estadísticos del motor de insights."""

import pytest

from iot_telemetry_services.insights.config import InsightsParams, default_registry
from iot_telemetry_services.insights.stats import (
    availability,
    classify,
    common_keys,
    describe,
    missing_minutes,
    pearson,
    zscore,
)


# =============================================================================
# DESCRIBE / Z-SCORE
# =============================================================================

class TestDescribe:

    def test_population_std(self):
        stats = describe([2, 4, 4, 4, 5, 5, 7, 9])

        assert stats.count == 8
        assert stats.mean == 5.0
        assert stats.std == 2.0
        assert stats.min == 2.0
        assert stats.max == 9.0

    def test_rounded_to_four_decimals(self):
        stats = describe([1.0, 2.0, 2.0])

        assert stats.mean == 1.6667
        assert stats.std == 0.4714

    def test_empty(self):
        stats = describe([])

        assert stats.count == 0
        assert stats.mean is None
        assert stats.std is None


class TestZScore:

    def test_defined_when_std_positive(self):
        stats = describe([2, 4, 4, 4, 5, 5, 7, 9])

        assert zscore(9, stats) == 2.0

    def test_zero_std_is_undefined(self):
        stats = describe([10, 10, 10, 10, 10])

        assert zscore(10, stats) is None
        assert classify(zscore(10, stats), 2.0, 3.0) is None

    def test_no_latest(self):
        assert zscore(None, describe([1, 2, 3])) is None


class TestClassify:

    @pytest.mark.parametrize(
        "z,expected",
        [(0.0, "ok"), (1.99, "ok"), (2.0, "warn"), (-2.5, "warn"), (3.0, "critical"), (-7.1, "critical")],
    )
    def test_thresholds_inclusive(self, z, expected):
        assert classify(z, 2.0, 3.0) == expected


# =============================================================================
# PEARSON / CLAVES COMUNES
# =============================================================================

class TestPearson:

    def test_perfect_positive(self):
        assert pearson([1, 2, 3, 4, 5], [10, 20, 30, 40, 50]) == 1.0

    def test_perfect_negative(self):
        assert pearson([1, 2, 3, 4, 5], [5, 4, 3, 2, 1]) == -1.0

    def test_constant_series_undefined(self):
        assert pearson([1, 2, 3, 4, 5], [7, 7, 7, 7, 7]) is None

    def test_too_short(self):
        assert pearson([1], [2]) is None

    def test_uses_shorter_length(self):
        assert pearson([1, 2, 3, 100], [2, 4, 6]) == 1.0


class TestCommonKeys:

    def test_intersection_sorted(self):
        a = {"2024-05-10 12:02": 1.0, "2024-05-10 12:00": 1.0, "2024-05-10 12:01": 1.0}
        b = {"2024-05-10 12:01": 2.0, "2024-05-10 12:02": 2.0}

        assert common_keys([a, b]) == ["2024-05-10 12:01", "2024-05-10 12:02"]

    def test_empty_input(self):
        assert common_keys([]) == []


class TestAvailability:

    def test_capped_at_one(self):
        assert availability(75, 60) == 1.0
        assert missing_minutes(75, 60) == 0

    def test_fraction(self):
        assert availability(20, 60) == 0.333
        assert missing_minutes(20, 60) == 40


# =============================================================================
# PARÁMETROS / REGISTRO
# =============================================================================

class TestParamsClamping:

    def test_defaults(self):
        params = InsightsParams.clamped()

        assert params == InsightsParams(60, 2.0, 3.0, 180)

    def test_out_of_range_clamped(self):
        params = InsightsParams.clamped(
            window_minutes=5, z_warn=50, z_critical=0.1, staleness_threshold_s=99999
        )

        assert params.window_minutes == 10
        assert params.z_warn == 10.0
        assert params.z_critical == 10.0
        assert params.staleness_threshold_s == 3600

    def test_critical_not_below_warn(self):
        params = InsightsParams.clamped(z_warn=2.5, z_critical=1.0)

        assert params.z_critical == 2.5

    def test_window_upper_bound(self):
        assert InsightsParams.clamped(window_minutes=1000).window_minutes == 360

    def test_nan_takes_default(self):
        nan = float("nan")
        params = InsightsParams.clamped(nan, nan, nan, nan)

        assert params == InsightsParams(60, 2.0, 3.0, 180)

    def test_infinity_clamped_to_bounds(self):
        inf = float("inf")
        params = InsightsParams.clamped(
            window_minutes=inf, z_warn=-inf, z_critical=inf, staleness_threshold_s=-inf
        )

        assert params.window_minutes == 360
        assert params.z_warn == 0.5
        assert params.z_critical == 10.0
        assert params.staleness_threshold_s == 10


class TestNodeRegistry:

    @pytest.fixture
    def registry(self):
        return default_registry()

    def test_topic_takes_precedence(self, registry):
        assert registry.normalize("node-3", "iot/esp32_node1/temperatura") == "esp32_node1"

    def test_node_id_alias(self, registry):
        assert registry.normalize("node-2", "farm/soil") == "esp32_node2"

    def test_node_id_canonical(self, registry):
        assert registry.normalize("esp32_node3", None) == "esp32_node3"

    def test_unknown(self, registry):
        assert registry.normalize("greenhouse-7", "farm/other") is None
        assert registry.normalize(None, None) is None
