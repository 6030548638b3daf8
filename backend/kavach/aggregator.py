# kavach/aggregator.py
# ------------------------------------------------------------
# Alert aggregation for the dashboard and the detection page.
#
# - Consecutive-detection counters keyed by subject label
#   (reset when the gap since the last sighting exceeds the window)
# - Alert list, coalesced by subject, transitioned but never deleted
# - Simulation transitions used when no real backend is available
#   (random alert status changes, train speed/position drift)
#
# Everything here is in-memory and synchronous; callers own the
# single event loop that mutates it.
# ------------------------------------------------------------

from __future__ import annotations

import random
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    ALERT_STATUSES,
    MAX_SPEED_KMH,
    Alert,
    ConsecutiveCounter,
    Detection,
    DetectionAlert,
    DetectionEvent,
    Train,
    utcnow,
)

POSITION_JITTER_DEG = 0.005
ALERT_SLOWDOWN_KMH = 10.0
SPEED_DRIFT_KMH = 5.0
# float rounding of epoch-second differences
CLOCK_TOLERANCE_SEC = 1e-3


def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


class AlertAggregator:
    """
    Owns the current alert list and the consecutive-detection counters.

    rng drives every random choice so a seeded aggregator replays the
    same simulation.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        window_sec: float = 30.0,
        high_risk_threshold: int = 1,
        counter_ttl_sec: Optional[float] = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.window_sec = window_sec
        self.high_risk_threshold = high_risk_threshold
        self.counter_ttl_sec = counter_ttl_sec

        self.alerts: List[Alert] = []
        self.counters: Dict[str, ConsecutiveCounter] = {}

    # -------------------------------
    # Camera detections
    # -------------------------------
    def apply_detections(
        self,
        detections: Sequence[Detection],
        now_ts: float,
    ) -> List[DetectionAlert]:
        """
        Fold one tick's detections into the counter map.

        Each label counts at most once per call. Returns the summaries
        for the labels seen in this call; subjects not seen keep their
        counter untouched.
        """
        seen: List[str] = []
        for det in detections:
            if det.class_name not in seen:
                seen.append(det.class_name)

        out: List[DetectionAlert] = []
        for label in seen:
            counter = self.counters.get(label)
            if (
                counter is not None
                and now_ts - counter.last_detection <= self.window_sec + CLOCK_TOLERANCE_SEC
            ):
                counter.consecutive_count += 1
                counter.last_detection = now_ts
            else:
                counter = ConsecutiveCounter(object=label, consecutive_count=1, last_detection=now_ts)
                self.counters[label] = counter
            out.append(self._summarize(counter))
        return out

    def expire_counters(self, now_ts: float) -> List[str]:
        """
        Drop counters not refreshed within counter_ttl_sec.
        Returns the evicted labels. No-op when the TTL is disabled.
        """
        if self.counter_ttl_sec is None:
            return []
        stale = [
            label
            for label, c in self.counters.items()
            if now_ts - c.last_detection > self.counter_ttl_sec
        ]
        for label in stale:
            del self.counters[label]
        return stale

    def current_alerts(self) -> List[DetectionAlert]:
        return [self._summarize(c) for c in self.counters.values()]

    def _summarize(self, counter: ConsecutiveCounter) -> DetectionAlert:
        severity = "HIGH RISK" if counter.consecutive_count > self.high_risk_threshold else "WARNING"
        return DetectionAlert(
            object=counter.object,
            consecutive_count=counter.consecutive_count,
            last_detection=counter.last_detection,
            severity=severity,
        )

    def promote(
        self,
        detection: Detection,
        event: DetectionEvent,
        affected_trains: Iterable[str],
        now: Optional[datetime] = None,
    ) -> Alert:
        """
        Turn a detection event into an alert, coalescing by subject:
        an active alert for the same label is refreshed instead of
        duplicated.
        """
        now = now or utcnow()
        notes = (
            f"Animal detected: {detection.class_name} "
            f"with confidence {detection.confidence * 100:.1f}%"
        )
        trains = list(dict.fromkeys(affected_trains))

        for i, existing in enumerate(self.alerts):
            if existing.status == "active" and existing.subject == detection.class_name:
                merged = list(dict.fromkeys([*existing.affected_trains, *trains]))
                self.alerts[i] = existing.model_copy(
                    update={
                        "event_id": event.event_id,
                        "notes": notes,
                        "affected_trains": merged,
                        "updated_at": now,
                    }
                )
                return self.alerts[i]

        alert = Alert(
            status="active",
            affected_trains=trains,
            created_at=now,
            updated_at=now,
            alert_type="animal_detected",
            severity="high",
            subject=detection.class_name,
            event_id=event.event_id,
            camera_id=event.camera_id,
            notes=notes,
        )
        self.alerts.append(alert)
        return alert

    # -------------------------------
    # Operator / status handling
    # -------------------------------
    def set_status(self, alert_id: str, status: str) -> Optional[Alert]:
        if status not in ALERT_STATUSES:
            raise ValueError(f"unknown alert status: {status}")
        for i, a in enumerate(self.alerts):
            if a.alert_id == alert_id:
                self.alerts[i] = a.model_copy(update={"status": status, "updated_at": utcnow()})
                return self.alerts[i]
        return None

    def status_counts(self) -> Dict[str, int]:
        counts = {s: 0 for s in ALERT_STATUSES}
        for a in self.alerts:
            counts[a.status] += 1
        return counts

    def clear(self) -> None:
        self.counters.clear()

    # -------------------------------
    # Simulation transitions
    # -------------------------------
    def random_transition(self, alerts: Sequence[Alert]) -> List[Alert]:
        """
        Pick one alert uniformly and give it a uniformly random status.
        """
        updated = list(alerts)
        if not updated:
            return updated

        idx = self.rng.randrange(len(updated))
        updated[idx] = updated[idx].model_copy(
            update={
                "status": self.rng.choice(ALERT_STATUSES),
                "updated_at": utcnow(),
            }
        )
        return updated

    def derive_train_speed(self, train: Train, alerts: Sequence[Alert]) -> float:
        under_alert = any(a.status == "active" and a.affects(train.train_id) for a in alerts)
        if under_alert:
            # never speeds up while an active alert covers the train
            slowed = train.current_speed - self.rng.random() * ALERT_SLOWDOWN_KMH
            return clamp(slowed, 0.0, min(train.current_speed, MAX_SPEED_KMH))
        drift = self.rng.random() * 2 * SPEED_DRIFT_KMH - SPEED_DRIFT_KMH
        return clamp(train.current_speed + drift, 0.0, MAX_SPEED_KMH)

    def move_train(self, train: Train, alerts: Sequence[Alert]) -> Train:
        lon, lat = train.current_location.coordinates
        # GPS drift, no geographic bounds
        new_lon = lon + (self.rng.random() * 2 * POSITION_JITTER_DEG - POSITION_JITTER_DEG)
        new_lat = lat + (self.rng.random() * 2 * POSITION_JITTER_DEG - POSITION_JITTER_DEG)

        location = train.current_location.model_copy(
            update={"coordinates": (new_lon, new_lat), "updated_at": utcnow()}
        )
        return train.model_copy(
            update={
                "current_location": location,
                "current_speed": self.derive_train_speed(train, alerts),
            }
        )
