# kavach/monitors.py
# ------------------------------------------------------------
# View-state owners driven by polling controllers.
#
# FleetMonitor            dashboard: trains, alerts, cameras
# DetectionMonitor        camera page: detections, risk summaries
# StoppingDistanceMonitor per-train stopping distance estimates
#
# Every tick computes its full result first and only then swaps it
# into the view, so a failed tick leaves the previous state intact.
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
import logging
import time
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from .aggregator import AlertAggregator
from .clients.sms import SmsNotifier
from .clients.stopping_distance import StoppingDistanceClient
from .errors import CameraNotReadyError, KavachError
from .feed import UpdateFeed
from .models import Alert, Camera, Detection, DetectionAlert, DetectionEvent, Train, utcnow
from .polling import PollingController
from .producers import DetectionProducer, FleetProducer, FleetSnapshot

logger = logging.getLogger(__name__)

MAX_EVENTS = 200


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


# -------------------------------
# Dashboard
# -------------------------------
class FleetMonitor:
    def __init__(
        self,
        aggregator: AlertAggregator,
        producer: FleetProducer,
        feed: UpdateFeed,
    ) -> None:
        self.aggregator = aggregator
        self.producer = producer
        self.feed = feed

        self.trains: List[Train] = []
        self.cameras: List[Camera] = []
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

        self.controller = PollingController("fleet", on_error=self._on_error)

    def load(self, snapshot: FleetSnapshot) -> None:
        self.trains = list(snapshot.trains)
        self.aggregator.alerts = list(snapshot.alerts)
        self.cameras = list(snapshot.cameras)
        self.last_updated = utcnow()

    def start(self, interval_sec: float) -> None:
        self.controller.start(interval_sec, lambda: True, self.tick)

    def stop(self) -> None:
        self.controller.stop()

    async def tick(self) -> FleetSnapshot:
        snapshot = await self.producer.produce_tick(self.trains, self.aggregator.alerts)

        self.trains = snapshot.trains
        self.aggregator.alerts = self._merge_alerts(snapshot.alerts)
        if snapshot.cameras:
            self.cameras = snapshot.cameras
        self.error = None
        self.last_updated = utcnow()

        self.feed.push(
            "fleet_updated",
            {
                "trains": [t.model_dump(mode="json") for t in self.trains],
                "alert_counts": self.aggregator.status_counts(),
            },
        )
        return snapshot

    def _merge_alerts(self, incoming: Sequence[Alert]) -> List[Alert]:
        """
        Fold the producer's alerts into the current list by alert_id.

        The newer copy of an alert wins, so operator transitions and
        detections promoted while the tick was waiting survive. Alerts
        the producer does not return are kept: they are never deleted.
        """
        current = {a.alert_id: a for a in self.aggregator.alerts}
        merged: List[Alert] = []
        for a in incoming:
            mine = current.pop(a.alert_id, None)
            merged.append(mine if mine is not None and mine.updated_at > a.updated_at else a)
        merged.extend(current.values())
        return merged

    def find_train(self, train_number: str) -> Optional[Train]:
        for t in self.trains:
            if t.train_number == train_number:
                return t
        return None

    def _on_error(self, exc: BaseException) -> None:
        self.error = f"Failed to update fleet: {exc}"


# -------------------------------
# Camera detection
# -------------------------------
class DetectionMonitor:
    FAILURE_MESSAGE = "Failed to communicate with detection server"
    CAMERA_MESSAGE = "Could not access camera. Please check permissions."

    def __init__(
        self,
        aggregator: AlertAggregator,
        feed: UpdateFeed,
        producer_factory: Callable[[], DetectionProducer],
        *,
        camera_id: str = "cam_01",
        affected_trains: Sequence[str] = (),
        notifier: Optional[SmsNotifier] = None,
        notify_on_high_risk: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.aggregator = aggregator
        self.feed = feed
        self.producer_factory = producer_factory
        self.camera_id = camera_id
        self.affected_trains = list(affected_trains)
        self.notifier = notifier
        self.notify_on_high_risk = notify_on_high_risk
        self.clock = clock

        self.producer: Optional[DetectionProducer] = None
        self.detections: List[Detection] = []
        self.alerts: List[DetectionAlert] = []
        self.events: Deque[DetectionEvent] = deque(maxlen=MAX_EVENTS)
        self.last_updated: Optional[datetime] = None
        self.error: Optional[str] = None
        self.is_loading = False
        self.camera_active = False

        self.controller = PollingController(
            "detection",
            on_stop=self._release,
            on_error=self._on_error,
            clock=clock,
        )

    # --- camera lifecycle ---
    def activate(self, interval_sec: float, initial_delay_sec: Optional[float] = None) -> None:
        if self.camera_active:
            return
        try:
            self.producer = self.producer_factory()
        except (OSError, ValueError) as e:
            logger.warning("camera unavailable: %s", e)
            self.error = self.CAMERA_MESSAGE
            raise CameraNotReadyError(self.CAMERA_MESSAGE) from e

        self.camera_active = True
        self.error = None
        self.controller.start(
            interval_sec,
            lambda: self.camera_active,
            self.capture_and_detect,
            initial_delay_sec=initial_delay_sec,
        )

    def deactivate(self) -> None:
        self.camera_active = False
        self.controller.stop()
        # producer may exist without a running controller if start failed
        self._release()

    def _release(self) -> None:
        if self.producer is not None:
            self.producer.release()
            self.producer = None

    # --- ticks ---
    async def capture_and_detect(self) -> List[DetectionAlert]:
        if not self.camera_active or self.producer is None:
            raise CameraNotReadyError()

        # stamp the sighting with the fire time, not with when inference returned
        fired_at = self.controller.last_tick_at
        self.is_loading = True
        try:
            detections = await self.producer.produce_tick()
        finally:
            self.is_loading = False
        return await self.ingest(detections, now_ts=fired_at)

    async def refresh(self) -> Dict[str, Any]:
        """
        Manual capture outside the schedule. Failures end up in
        `error` exactly like a scheduled tick; skipped while a scheduled
        capture is still running.
        """
        if not self.camera_active:
            raise CameraNotReadyError()
        await self.controller.fire_now(self.capture_and_detect)
        return self.state()

    async def ingest(
        self,
        detections: Sequence[Detection],
        now_ts: Optional[float] = None,
    ) -> List[DetectionAlert]:
        now_ts = self.clock() if now_ts is None else now_ts

        evicted = self.aggregator.expire_counters(now_ts)
        if evicted:
            logger.debug("expired detection counters: %s", ", ".join(evicted))

        summaries = self.aggregator.apply_detections(detections, now_ts)
        for det in detections:
            event = DetectionEvent(
                camera_id=self.camera_id,
                animal_type=det.class_name,
                confidence=det.confidence,
            )
            self.events.append(event)
            self.aggregator.promote(det, event, self.affected_trains)

        self.detections = list(detections)
        self.alerts = self.aggregator.current_alerts()
        self.last_updated = utcnow()
        self.error = None

        if detections:
            self.feed.push(
                "detections",
                {
                    "camera_id": self.camera_id,
                    "objects": [d.model_dump(mode="json") for d in detections],
                    "alerts": [s.model_dump(mode="json") for s in summaries],
                },
            )
        await self._notify(summaries)
        return summaries

    async def _notify(self, summaries: Sequence[DetectionAlert]) -> None:
        if not self.notify_on_high_risk or self.notifier is None:
            return
        for s in summaries:
            if s.severity != "HIGH RISK":
                continue
            msg = f"HIGH RISK: {s.object} seen {s.consecutive_count} times in a row at {self.camera_id}"
            try:
                await self.notifier.send(msg)
            except KavachError as e:
                # transient; the next sighting will try again
                logger.warning("high-risk sms not sent: %s", e)

    def _on_error(self, exc: BaseException) -> None:
        if isinstance(exc, CameraNotReadyError):
            self.error = str(exc)
        else:
            self.error = self.FAILURE_MESSAGE

    def state(self) -> Dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "camera_active": self.camera_active,
            "is_loading": self.is_loading,
            "last_updated": _iso(self.last_updated),
            "error": self.error,
            "detections": [d.model_dump(mode="json") for d in self.detections],
            "alerts": [a.model_dump(mode="json") for a in self.alerts],
            "events": [e.model_dump(mode="json") for e in list(self.events)[-20:]],
        }


# -------------------------------
# Stopping distance
# -------------------------------
class StoppingDistanceMonitor:
    def __init__(self, fleet: FleetMonitor, client: StoppingDistanceClient) -> None:
        self.fleet = fleet
        self.client = client
        self.error: Optional[str] = None
        self.controller = PollingController("stopping-distance", on_error=self._on_error)

    def start(self, interval_sec: float) -> None:
        self.controller.start(interval_sec, lambda: bool(self.fleet.trains), self.tick)

    def stop(self) -> None:
        self.controller.stop()

    async def tick(self) -> Dict[str, float]:
        targets = [t for t in self.fleet.trains if t.current_speed > 0]
        if not targets:
            return {}

        lon_lat = [t.current_location.coordinates for t in targets]
        estimates = await asyncio.gather(
            *(
                self.client.estimate(
                    speed=round(t.current_speed / 3.6, 2),  # km/h -> m/s
                    lat=lat,
                    long=lon,
                )
                for t, (lon, lat) in zip(targets, lon_lat)
            )
        )
        by_id = {t.train_id: e.distance_km for t, e in zip(targets, estimates)}

        # trains may have moved while we waited; patch the current list
        self.fleet.trains = [
            t.model_copy(update={"stopping_distance_km": by_id[t.train_id]})
            if t.train_id in by_id
            else t
            for t in self.fleet.trains
        ]
        self.error = None
        return by_id

    def _on_error(self, exc: BaseException) -> None:
        self.error = f"Stopping distance unavailable: {exc}"
