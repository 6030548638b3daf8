# kavach/producers.py
# ------------------------------------------------------------
# Tick producers: where each polling cycle gets its data.
#
# Fleet (dashboard):
# - SimulatedFleetProducer: seeded random walk, stands in for a backend
# - RemoteFleetProducer:    pulls trains/alerts from a fleet API
#
# Detection (camera page):
# - SimulatedDetectionProducer: random animal sightings
# - CameraDetectionProducer:    captured frame -> inference service
#
# Selected by settings.producer_mode so tests can swap in fakes.
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import random
from typing import List, Protocol, Sequence

import httpx
from pydantic import ValidationError

from .aggregator import AlertAggregator
from .camera import FrameSource, to_data_url
from .clients._http import json_body, send
from .clients.inference import InferenceClient
from .errors import MalformedResponseError
from .models import Alert, Camera, Detection, Location, Train

# Bengaluru, the reference point the original demo used
HOME_LAT = 12.9716
HOME_LON = 77.5946

ANIMAL_LABELS = ("cow", "dog", "deer", "elephant", "buffalo", "goat")


@dataclass
class FleetSnapshot:
    trains: List[Train]
    alerts: List[Alert]
    cameras: List[Camera] = field(default_factory=list)


class FleetProducer(Protocol):
    async def produce_tick(self, trains: Sequence[Train], alerts: Sequence[Alert]) -> FleetSnapshot: ...


class DetectionProducer(Protocol):
    async def produce_tick(self) -> List[Detection]: ...

    def release(self) -> None: ...


# -------------------------------
# Bootstrap
# -------------------------------
def bootstrap_fleet(rng: random.Random, size: int = 6) -> FleetSnapshot:
    """
    Initial trains, a few alerts and the camera roster for the demo.
    """
    trains: List[Train] = []
    for i in range(size):
        trains.append(
            Train(
                train_number=str(12601 + i * 17),
                name=f"Express {i + 1}",
                status=rng.choice(["on_time", "on_time", "delayed", "emergency"]),
                current_speed=round(rng.uniform(40, 110), 1),
                current_location=Location(
                    coordinates=(
                        HOME_LON + rng.uniform(-0.5, 0.5),
                        HOME_LAT + rng.uniform(-0.5, 0.5),
                    )
                ),
            )
        )

    alerts: List[Alert] = []
    if trains:
        for alert_type in ("track_obstruction", "signal_fault", "animal_detected"):
            affected = rng.sample([t.train_id for t in trains], k=min(2, len(trains)))
            alerts.append(
                Alert(
                    status=rng.choice(["active", "acknowledged"]),
                    affected_trains=affected,
                    alert_type=alert_type,
                    severity=rng.choice(["medium", "high"]),
                )
            )

    cameras = [
        Camera(camera_id="cam_01", name="Level crossing 14", status="online"),
        Camera(camera_id="cam_02", name="Bridge 7 north", status="offline"),
        Camera(camera_id="cam_03", name="Yard gate", status="maintenance"),
    ]
    return FleetSnapshot(trains=trains, alerts=alerts, cameras=cameras)


# -------------------------------
# Fleet producers
# -------------------------------
class SimulatedFleetProducer:
    def __init__(self, aggregator: AlertAggregator) -> None:
        self.aggregator = aggregator

    async def produce_tick(self, trains: Sequence[Train], alerts: Sequence[Alert]) -> FleetSnapshot:
        new_alerts = self.aggregator.random_transition(alerts)
        new_trains = [self.aggregator.move_train(t, new_alerts) for t in trains]
        return FleetSnapshot(trains=new_trains, alerts=new_alerts)


class RemoteFleetProducer:
    SERVICE = "fleet-api"

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def produce_tick(self, trains: Sequence[Train], alerts: Sequence[Alert]) -> FleetSnapshot:
        raw_trains, raw_alerts = await asyncio.gather(
            self._get_list("/api/trains"),
            self._get_list("/api/alerts"),
        )
        try:
            return FleetSnapshot(
                trains=[Train.model_validate(t) for t in raw_trains],
                alerts=[Alert.model_validate(a) for a in raw_alerts],
            )
        except ValidationError as e:
            raise MalformedResponseError(f"fleet api payload rejected: {e}") from e

    async def _get_list(self, path: str) -> list:
        resp = await send(self.client, self.SERVICE, "GET", f"{self.base_url}{path}")
        body = json_body(resp, self.SERVICE)
        # accept both a bare list and the {"items": [...]} envelope
        if isinstance(body, dict):
            body = body.get("items")
        if not isinstance(body, list):
            raise MalformedResponseError(f"fleet api {path} did not return a list")
        return body


# -------------------------------
# Detection producers
# -------------------------------
class SimulatedDetectionProducer:
    def __init__(
        self,
        rng: random.Random,
        labels: Sequence[str] = ANIMAL_LABELS,
        detect_probability: float = 0.35,
    ) -> None:
        self.rng = rng
        self.labels = list(labels)
        self.detect_probability = detect_probability

    async def produce_tick(self) -> List[Detection]:
        if self.rng.random() >= self.detect_probability:
            return []
        idx = self.rng.randrange(len(self.labels))
        return [
            Detection(
                class_id=idx,
                class_name=self.labels[idx],
                confidence=round(self.rng.uniform(0.5, 0.99), 2),
            )
        ]

    def release(self) -> None:
        pass


class CameraDetectionProducer:
    def __init__(self, frame_source: FrameSource, inference: InferenceClient) -> None:
        self.frame_source = frame_source
        self.inference = inference

    async def produce_tick(self) -> List[Detection]:
        jpeg = await asyncio.to_thread(self.frame_source.capture)
        return await self.inference.detect(to_data_url(jpeg))

    def release(self) -> None:
        self.frame_source.release()
