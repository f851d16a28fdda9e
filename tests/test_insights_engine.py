"""Tests del motor de insights distribuidos."""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine

from iot_telemetry_services.common.app_settings import AppSettingsStore
from iot_telemetry_services.ingest_api.core.domain import Reading, Sensor
from iot_telemetry_services.insights import (
    DistributedInsightsService,
    InsightsParams,
    InsightsTimeout,
    build_report,
    compute_from_settings,
    registry_from_mapping,
)
from iot_telemetry_services.insights import repository
from iot_telemetry_services.insights.engine import NOTE_CRITICAL, NOTE_LOW_ALIGNMENT, NOTE_SKEW


NOW = datetime(2024, 5, 10, 12, 0, 30, tzinfo=timezone.utc)
TZ = "Europe/Bucharest"

TEMP, HUM, SOIL, CURRENT = 1, 2, 3, 4

SENSORS = [
    Sensor(TEMP, "esp32_node1", "temperatura", "DHT11 - Temperatura", "°C", "iot/esp32_node1/temperatura"),
    Sensor(HUM, "esp32_node1", "umiditate", "DHT11 - Umiditate", "%", "iot/esp32_node1/umiditate"),
    Sensor(SOIL, "esp32_node2", "umiditate_sol", "Senzor Umiditate Sol", "ADC", "iot/esp32_node2/umiditate_sol"),
    Sensor(CURRENT, "esp32_node3", "curent", "ACS712 - Senzor Curent", "A", "iot/esp32_node3/curent"),
]

BASE = {TEMP: 20.0, HUM: 50.0, SOIL: 500.0, CURRENT: 1.0}


def minute_ts(k):
    """k minutos antes del último minuto completo (k=0 → 12:00:00)."""
    return NOW - timedelta(seconds=30 + 60 * k)


def alternating(sensor_ids=(TEMP, HUM, SOIL, CURRENT), minutes=range(60)):
    """Una lectura por minuto y sensor, alternando base y base+1."""
    readings = []
    next_id = 1
    for k in minutes:
        for sid in sensor_ids:
            readings.append(Reading(next_id, sid, BASE[sid] + (k % 2), minute_ts(k)))
            next_id += 1
    return readings


def report_for(readings, sensors=SENSORS, **params):
    return build_report(sensors, readings, InsightsParams.clamped(**params), TZ, NOW)


def metric(report, node_id, sensor_type):
    node = report.node(node_id)
    return next(m for m in node.metrics if m.sensor_type == sensor_type)


# =============================================================================
# NODOS Y MÉTRICAS
# =============================================================================

class TestNodeSummaries:

    def test_full_window_healthy(self):
        report = report_for(alternating())

        assert [n.node_id for n in report.node_summaries] == ["esp32_node1", "esp32_node2", "esp32_node3"]
        node1 = report.node("esp32_node1")
        assert node1.availability == 1.0
        assert node1.missing_minutes == 0
        assert node1.throughput_rpm == 2.0
        assert node1.staleness_seconds == 30
        assert node1.last_update == "10.05.2024 15:00:00"
        assert report.health.score == 100
        assert report.health.notes == []

    def test_metric_stats(self):
        report = report_for(alternating())
        temp = metric(report, "esp32_node1", "temperatura")

        assert temp.sensor_name == "DHT11 - Temperatura"
        assert temp.unit == "°C"
        assert temp.latest == 20.0
        assert temp.mean == 20.5
        assert temp.std == 0.5
        assert temp.min == 20.0
        assert temp.max == 21.0
        assert temp.z == -1.0
        assert temp.severity == "ok"
        assert temp.count == 60

    def test_derived_microclimate_on_node1(self):
        report = report_for(alternating())
        micro = metric(report, "esp32_node1", "microclimate")

        assert micro.sensor_name == "Microclimate Index (Temp + 0.1×Hum)"
        assert micro.unit == "index"
        assert micro.latest == pytest.approx(25.0)
        assert micro.count == 60

    def test_constant_series_has_no_z(self):
        readings = [Reading(i + 1, TEMP, 10.0, minute_ts(i)) for i in range(5)]

        temp = metric(report_for(readings), "esp32_node1", "temperatura")

        assert temp.std == 0.0
        assert temp.z is None
        assert temp.severity is None

    def test_critical_anomaly(self):
        readings = alternating(sensor_ids=(TEMP,), minutes=range(1, 60))
        readings.append(Reading(999, TEMP, 30.0, minute_ts(0)))

        report = report_for(readings)

        assert metric(report, "esp32_node1", "temperatura").severity == "critical"
        assert report.critical_count >= 1
        assert NOTE_CRITICAL in report.health.notes

    def test_missing_sensor_reported_empty(self):
        sensors = [s for s in SENSORS if s.id != CURRENT]

        report = report_for(alternating(), sensors=sensors)
        node3 = report.node("esp32_node3")

        assert node3.last_update == "Never"
        assert node3.staleness_seconds is None
        assert node3.metrics[0].count == 0
        assert node3.metrics[0].latest is None

    def test_readings_outside_window_ignored(self):
        readings = alternating(minutes=range(3))
        readings.append(Reading(500, TEMP, 99.0, NOW - timedelta(minutes=90)))
        readings.append(Reading(501, TEMP, 99.0, NOW + timedelta(minutes=1)))

        report = report_for(readings)

        assert report.raw_readings_count == 12
        assert metric(report, "esp32_node1", "temperatura").max == 21.0


class TestNodeGrouping:

    def test_alias_node_id_without_topic_match(self):
        sensors = [
            Sensor(SOIL, "node-2", "umiditate_sol", "Soil", "ADC", "farm/field/soil"),
        ]
        readings = [Reading(1, SOIL, 480.0, minute_ts(0))]

        report = report_for(readings, sensors=sensors)

        assert metric(report, "esp32_node2", "umiditate_sol").latest == 480.0

    def test_unrecognized_node_excluded_but_counted(self):
        sensors = SENSORS + [Sensor(9, "greenhouse-7", "co2", "CO2", "ppm", "farm/co2")]
        readings = [Reading(1, 9, 400.0, minute_ts(0))]

        report = report_for(readings, sensors=sensors)

        assert report.raw_readings_count == 1
        assert report.bucket_count == 1
        assert all(n.last_update == "Never" for n in report.node_summaries)

    def test_injected_registry(self):
        registry = registry_from_mapping(
            {
                "nodes": [
                    {
                        "key": "greenhouse",
                        "label": "Greenhouse",
                        "topic_patterns": ["farm/"],
                        "metrics": [{"sensor_type": "co2", "label": "CO2", "unit": "ppm"}],
                    }
                ]
            }
        )
        sensors = [Sensor(9, "gh-1", "co2", "CO2", "ppm", "farm/co2")]
        readings = [Reading(1, 9, 400.0, minute_ts(0))]

        report = build_report(sensors, readings, InsightsParams.clamped(), TZ, NOW, registry)

        assert [n.node_id for n in report.node_summaries] == ["greenhouse"]
        assert report.node("greenhouse").metrics[0].latest == 400.0
        assert report.correlations == []


# =============================================================================
# CORRELACIONES
# =============================================================================

class TestCorrelations:

    def test_full_overlap(self):
        report = report_for(alternating())

        pairs = [(c.a, c.b, c.r, c.n) for c in report.correlations]
        assert pairs == [
            ("Microclimate", "Soil Moisture", 1.0, 60),
            ("Current", "Soil Moisture", 1.0, 60),
            ("Microclimate", "Current", 1.0, 60),
        ]

    def test_omitted_below_five_common_minutes(self):
        report = report_for(alternating(minutes=range(3)))

        assert report.correlations == []

    def test_omitted_when_undefined(self):
        readings = alternating(sensor_ids=(TEMP, HUM, SOIL), minutes=range(10))
        readings += [Reading(1000 + k, CURRENT, 2.0, minute_ts(k)) for k in range(10)]

        report = report_for(readings)

        assert [(c.a, c.b) for c in report.correlations] == [("Microclimate", "Soil Moisture")]


# =============================================================================
# SALUD DISTRIBUIDA
# =============================================================================

class TestDistributedHealth:

    def test_empty_window(self):
        report = report_for([])

        assert report.health.score == 0
        assert report.health.completeness == 0.0
        assert report.health.skew_seconds == 0
        assert report.health.notes == [NOTE_LOW_ALIGNMENT]
        assert report.freshest_node_timestamp is None
        assert all(o.offset_from_freshest_seconds is None for o in report.node_offsets)

    def test_skew_and_offsets(self):
        readings = alternating(sensor_ids=(TEMP, HUM, SOIL))
        readings += alternating(sensor_ids=(CURRENT,), minutes=range(5, 60))

        report = report_for(readings)
        offsets = {o.node_id: o.offset_from_freshest_seconds for o in report.node_offsets}

        assert report.health.skew_seconds == 300
        assert offsets == {"esp32_node1": 0, "esp32_node2": 0, "esp32_node3": 300}
        assert NOTE_SKEW in report.health.notes
        assert report.node("esp32_node3").staleness_seconds == 330
        assert report.freshest_node_timestamp == "10.05.2024 15:00:00"

    def test_score_within_bounds(self):
        for readings in ([], alternating(minutes=range(7)), alternating()):
            score = report_for(readings).health.score
            assert 0 <= score <= 100

    def test_stale_nodes_penalized(self):
        fresh = report_for(alternating())
        stale = report_for(alternating(), staleness_threshold_s=10)

        assert fresh.health.score - stale.health.score == 30


# =============================================================================
# REPORTE
# =============================================================================

class TestReport:

    def test_deterministic(self):
        readings = alternating(minutes=range(20))

        first = report_for(readings).to_json()
        second = report_for(list(reversed(readings))).to_json()

        assert first == second

    def test_to_dict_shape(self):
        data = report_for(alternating()).to_dict()

        assert data["computed_at"] == "10.05.2024 15:00:30"
        assert data["window_minutes"] == 60
        assert data["thresholds"] == {"z_warn": 2.0, "z_critical": 3.0, "staleness_threshold_s": 180}
        assert data["anomalies"] == {"warn_count": 0, "critical_count": 0}
        assert data["raw_readings_count"] == 240
        assert data["bucket_count"] == 240
        assert set(data["node_diagnostics"]) == {"freshest_node_timestamp", "node_offsets"}
        assert data["distributed_health"]["completeness"] == 1.0

    def test_parameters_clamped_in_report(self):
        report = report_for([], window_minutes=1, z_warn=0.0, z_critical=99, staleness_threshold_s=1)

        assert report.window_minutes == 10
        assert report.z_warn == 0.5
        assert report.z_critical == 10.0
        assert report.staleness_threshold_s == 10


# =============================================================================
# SERVICIO (BD)
# =============================================================================

class TestInsightsService:

    def test_compute_from_database(self, engine, sensor_ids, insert_readings):
        temp = sensor_ids["iot/esp32_node1/temperatura"]
        insert_readings([(temp, 20.0 + (k % 2), minute_ts(k)) for k in range(10)])

        report = DistributedInsightsService(engine).compute(60, TZ, now=NOW)

        assert report.raw_readings_count == 10
        assert metric(report, "esp32_node1", "temperatura").mean == 20.5
        assert report.node("esp32_node1").staleness_seconds == 30

    def test_compute_from_settings(self, engine):
        store = AppSettingsStore(engine)
        store.set_many({"distributed.window_minutes": 30, "distributed.z_warn": 1.5})

        report = compute_from_settings(DistributedInsightsService(engine), store, now=NOW)

        assert report.window_minutes == 30
        assert report.z_warn == 1.5
        assert report.z_critical == 3.0
        assert report.timezone == "Europe/Bucharest"

    def test_compute_from_settings_non_finite_values(self, engine):
        store = AppSettingsStore(engine)
        store.set_many(
            {
                "distributed.window_minutes": "1e400",
                "distributed.z_warn": "inf",
                "distributed.staleness_threshold_s": "nan",
            }
        )

        report = compute_from_settings(DistributedInsightsService(engine), store, now=NOW)

        assert report.window_minutes == 60
        assert report.z_warn == 2.0
        assert report.staleness_threshold_s == 180

    def test_compute_from_settings_unknown_timezone(self, engine, caplog):
        store = AppSettingsStore(engine)
        store.set("app.timezone", "Mars/Olympus")

        with caplog.at_level("WARNING", logger="iot_telemetry_services.insights.engine"):
            report = compute_from_settings(DistributedInsightsService(engine), store, now=NOW)

        assert report.timezone == "Europe/Bucharest"
        assert "[SETTINGS] Unknown timezone 'Mars/Olympus'" in caplog.text

    def test_read_timeout(self, engine):
        def slow(engine, since):
            time.sleep(0.5)

        service = DistributedInsightsService(engine, read_timeout_s=0.05)
        with patch.object(repository, "_read_window", side_effect=slow):
            with pytest.raises(InsightsTimeout):
                service.compute(now=NOW)

    def test_settings_store_without_table_uses_defaults(self):
        bare = create_engine("sqlite://")
        store = AppSettingsStore(bare)

        assert store.get_int("distributed.window_minutes", 60) == 60
        assert store.get_string("app.timezone", "Europe/Bucharest") == "Europe/Bucharest"
