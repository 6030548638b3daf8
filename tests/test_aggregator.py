"""Alert aggregation and simulation transition tests."""

import random

import pytest

from kavach.aggregator import AlertAggregator
from kavach.models import ALERT_STATUSES, Alert, Detection, DetectionEvent, Location, Train


def _deer(confidence: float = 0.9) -> Detection:
    return Detection(class_id=3, class_name="deer", confidence=confidence)


def _train(speed: float = 80.0) -> Train:
    return Train(
        train_number="12601",
        current_speed=speed,
        current_location=Location(coordinates=(77.59, 12.97)),
    )


def test_consecutive_detections_within_window_raise_risk() -> None:
    agg = AlertAggregator(window_sec=30)

    first = agg.apply_detections([_deer()], now_ts=100.0)
    second = agg.apply_detections([_deer()], now_ts=110.0)

    assert first[0].consecutive_count == 1
    assert first[0].severity == "WARNING"
    assert second[0].consecutive_count == 2
    assert second[0].severity == "HIGH RISK"
    assert second[0].last_detection == 110.0


def test_gap_beyond_window_resets_counter() -> None:
    agg = AlertAggregator(window_sec=30)

    agg.apply_detections([_deer()], now_ts=0.0)
    out = agg.apply_detections([_deer()], now_ts=31.0)

    assert out[0].consecutive_count == 1
    assert out[0].severity == "WARNING"


def test_same_label_counts_once_per_call() -> None:
    agg = AlertAggregator()

    out = agg.apply_detections([_deer(0.8), _deer(0.6)], now_ts=5.0)

    assert len(out) == 1
    assert agg.counters["deer"].consecutive_count == 1


def test_empty_detections_leave_counters_untouched() -> None:
    agg = AlertAggregator()
    agg.apply_detections([_deer()], now_ts=1.0)

    out = agg.apply_detections([], now_ts=2.0)

    assert out == []
    assert agg.counters["deer"].last_detection == 1.0
    assert [a.object for a in agg.current_alerts()] == ["deer"]


def test_expire_counters_drops_stale_subjects() -> None:
    agg = AlertAggregator(window_sec=30, counter_ttl_sec=90)
    agg.apply_detections([_deer()], now_ts=0.0)
    agg.apply_detections([Detection(class_name="cow", confidence=0.7)], now_ts=80.0)

    evicted = agg.expire_counters(now_ts=100.0)

    assert evicted == ["deer"]
    assert list(agg.counters) == ["cow"]


def test_expire_counters_disabled_without_ttl() -> None:
    agg = AlertAggregator(counter_ttl_sec=None)
    agg.apply_detections([_deer()], now_ts=0.0)

    assert agg.expire_counters(now_ts=10_000.0) == []
    assert "deer" in agg.counters


def test_promote_coalesces_active_alert_for_same_subject() -> None:
    agg = AlertAggregator()
    e1 = DetectionEvent(camera_id="cam_01", animal_type="deer", confidence=0.9)
    e2 = DetectionEvent(camera_id="cam_01", animal_type="deer", confidence=0.7)

    a1 = agg.promote(_deer(0.9), e1, ["trn_a"])
    a2 = agg.promote(_deer(0.7), e2, ["trn_b"])

    assert len(agg.alerts) == 1
    assert a2.alert_id == a1.alert_id
    assert a2.event_id == e2.event_id
    assert a2.affected_trains == ["trn_a", "trn_b"]
    assert a2.notes == "Animal detected: deer with confidence 70.0%"
    assert a2.alert_type == "animal_detected"
    assert a2.severity == "high"


def test_promote_after_resolve_opens_new_alert() -> None:
    agg = AlertAggregator()
    event = DetectionEvent(camera_id="cam_01", animal_type="deer", confidence=0.9)
    first = agg.promote(_deer(), event, [])
    agg.set_status(first.alert_id, "resolved")

    agg.promote(_deer(), event, [])

    assert [a.status for a in agg.alerts] == ["resolved", "active"]


def test_set_status_unknown_alert_returns_none() -> None:
    agg = AlertAggregator()
    assert agg.set_status("alr_missing", "resolved") is None


def test_set_status_rejects_unknown_status() -> None:
    agg = AlertAggregator()
    agg.alerts = [Alert()]
    with pytest.raises(ValueError):
        agg.set_status(agg.alerts[0].alert_id, "closed")


def test_random_transition_changes_at_most_one_alert() -> None:
    agg = AlertAggregator(rng=random.Random(7))
    alerts = [Alert(status="active") for _ in range(5)]

    updated = agg.random_transition(alerts)

    assert len(updated) == 5
    changed = [i for i, (a, b) in enumerate(zip(alerts, updated)) if a is not b]
    assert len(changed) == 1
    assert updated[changed[0]].status in ALERT_STATUSES
    assert updated[changed[0]].alert_id == alerts[changed[0]].alert_id


def test_random_transition_empty_list() -> None:
    agg = AlertAggregator(rng=random.Random(1))
    assert agg.random_transition([]) == []


def test_seeded_simulation_is_reproducible() -> None:
    alerts = [Alert(status="active") for _ in range(4)]
    a = AlertAggregator(rng=random.Random(42))
    b = AlertAggregator(rng=random.Random(42))

    sa = [x.status for x in a.random_transition(alerts)]
    sb = [x.status for x in b.random_transition(alerts)]

    assert sa == sb


def test_speed_never_increases_under_active_alert() -> None:
    agg = AlertAggregator(rng=random.Random(3))
    train = _train(speed=60.0)
    alerts = [Alert(status="active", affected_trains=[train.train_id])]

    for _ in range(200):
        new_speed = agg.derive_train_speed(train, alerts)
        assert 0.0 <= new_speed <= train.current_speed
        train = train.model_copy(update={"current_speed": new_speed})


def test_speed_drift_stays_within_bounds() -> None:
    agg = AlertAggregator(rng=random.Random(11))
    train = _train(speed=118.0)

    for _ in range(500):
        new_speed = agg.derive_train_speed(train, [])
        assert 0.0 <= new_speed <= 120.0
        assert abs(new_speed - train.current_speed) <= 5.0 + 1e-9
        train = train.model_copy(update={"current_speed": new_speed})


def test_acknowledged_alert_does_not_slow_train() -> None:
    agg = AlertAggregator(rng=random.Random(5))
    train = _train(speed=0.0)
    alerts = [Alert(status="acknowledged", affected_trains=[train.train_id])]

    speeds = [agg.derive_train_speed(train, alerts) for _ in range(50)]

    assert max(speeds) > 0.0


def test_move_train_jitters_position() -> None:
    agg = AlertAggregator(rng=random.Random(9))
    train = _train()

    moved = agg.move_train(train, [])

    lon, lat = train.current_location.coordinates
    new_lon, new_lat = moved.current_location.coordinates
    assert abs(new_lon - lon) <= 0.005 + 1e-9
    assert abs(new_lat - lat) <= 0.005 + 1e-9
    assert moved.train_id == train.train_id
