# kavach/runtime.py
# ------------------------------------------------------------
# Process-scoped state with an explicit lifecycle.
#
# One Runtime per FastAPI app, stored on app.state. Routes reach it
# through routes._common.get_runtime; nothing else is global apart
# from the settings object.
# ------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
import random
from typing import Optional, Union

import httpx

from .aggregator import AlertAggregator
from .camera import open_frame_source
from .clients.inference import InferenceClient
from .clients.sms import SmsNotifier
from .clients.stopping_distance import StoppingDistanceClient
from .clients.translation import RedisTranslationCache, TranslationCache, Translator
from .config import Settings
from .errors import CameraNotReadyError
from .feed import MemoryFeed, RedisFeed
from .models import utcnow
from .monitors import DetectionMonitor, FleetMonitor, StoppingDistanceMonitor
from .producers import (
    CameraDetectionProducer,
    DetectionProducer,
    FleetProducer,
    RemoteFleetProducer,
    SimulatedDetectionProducer,
    SimulatedFleetProducer,
    bootstrap_fleet,
)
from .redis_client import get_redis

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    http: httpx.AsyncClient
    rng: random.Random
    feed: Union[MemoryFeed, RedisFeed]
    aggregator: AlertAggregator
    fleet: FleetMonitor
    detection: DetectionMonitor
    stopping_distance: StoppingDistanceMonitor
    distance_client: StoppingDistanceClient
    inference: InferenceClient
    notifier: SmsNotifier
    translator: Translator
    started_at: datetime = field(default_factory=utcnow)
    scenario: str = "normal"
    admin_cooldown_until: float = 0.0
    detection_rate_override: Optional[float] = None

    def start(self) -> None:
        """
        Start background polling loops according to settings.
        Requires a running event loop.
        """
        s = self.settings
        if s.generators_enabled:
            self.fleet.start(s.fleet_rate_sec)
        if s.stopping_distance_enabled:
            self.stopping_distance.start(s.stopping_distance_rate_sec)
        if s.detection_enabled:
            try:
                self.detection.activate(self.detection_rate_sec(), s.detection_initial_delay_sec)
            except CameraNotReadyError:
                logger.warning("detection polling not started: camera unavailable")

    def detection_rate_sec(self) -> float:
        if self.detection_rate_override is not None:
            return self.detection_rate_override
        return self.settings.detection_rate_sec

    def set_detection_rate(self, rate_sec: float) -> None:
        """
        Change the detection cadence used by the next activate(), and
        keep the consecutive window and counter TTL tied to it.
        """
        self.detection_rate_override = rate_sec
        self.aggregator.window_sec = self.settings.effective_window_sec(rate_sec)
        self.aggregator.counter_ttl_sec = self.settings.effective_counter_ttl_sec(rate_sec)

    def stop(self) -> None:
        self.fleet.stop()
        self.stopping_distance.stop()
        self.detection.deactivate()

    async def close(self) -> None:
        self.stop()
        await self.http.aclose()

    def reset(self) -> None:
        """
        Back to a freshly bootstrapped fleet: counters, events and the
        translation cache are dropped too.
        """
        self.aggregator.clear()
        self.detection.events.clear()
        self.detection.alerts = []
        self.detection.detections = []
        self.translator.cache.clear()
        if self.settings.producer_mode == "simulated":
            self.fleet.load(bootstrap_fleet(self.rng, self.settings.fleet_size))
            if not self.settings.affected_trains_list() and self.fleet.trains:
                self.detection.affected_trains = [self.fleet.trains[0].train_id]

    def controllers(self) -> list:
        return [
            self.fleet.controller.status(),
            self.detection.controller.status(),
            self.stopping_distance.controller.status(),
        ]


def build_runtime(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Runtime:
    http = httpx.AsyncClient(timeout=settings.http_timeout_sec, transport=transport)
    rng = random.Random(settings.simulation_seed)

    if settings.state_backend == "redis":
        r = get_redis(settings.redis_url)
        feed: Union[MemoryFeed, RedisFeed] = RedisFeed(r)
        cache = RedisTranslationCache(r, ttl_sec=settings.translation_cache_ttl_sec)
    else:
        feed = MemoryFeed()
        cache = TranslationCache(ttl_sec=settings.translation_cache_ttl_sec)

    aggregator = AlertAggregator(
        rng=rng,
        window_sec=settings.effective_window_sec(),
        high_risk_threshold=settings.high_risk_threshold,
        counter_ttl_sec=settings.effective_counter_ttl_sec(),
    )

    inference = InferenceClient(http, settings.inference_url)
    notifier = SmsNotifier(
        http,
        api_url=settings.sms_api_url,
        api_key=settings.sms_api_key,
        template_id=settings.sms_template_id,
        sender_id=settings.sms_sender_id,
        default_recipient=settings.sms_default_recipient,
    )
    distance_client = StoppingDistanceClient(
        http,
        api_url=settings.cohere_api_url,
        api_key=settings.cohere_api_key,
        model=settings.cohere_model,
    )
    translator = Translator(
        http,
        api_url=settings.translate_api_url,
        api_key=settings.translate_api_key,
        cache=cache,
    )

    fleet_producer: FleetProducer
    if settings.producer_mode == "remote":
        fleet_producer = RemoteFleetProducer(http, settings.fleet_api_url)
    else:
        fleet_producer = SimulatedFleetProducer(aggregator)
    fleet = FleetMonitor(aggregator, fleet_producer, feed)
    if settings.producer_mode == "simulated":
        fleet.load(bootstrap_fleet(rng, settings.fleet_size))

    # separate stream so detections don't perturb the fleet simulation
    detection_rng = random.Random(
        None if settings.simulation_seed is None else settings.simulation_seed + 1
    )

    def make_detection_producer() -> DetectionProducer:
        if settings.camera_source:
            return CameraDetectionProducer(open_frame_source(settings.camera_source), inference)
        if settings.producer_mode == "simulated":
            return SimulatedDetectionProducer(detection_rng)
        raise ValueError("no camera_source configured")

    affected = settings.affected_trains_list()
    if not affected and fleet.trains:
        affected = [fleet.trains[0].train_id]

    detection = DetectionMonitor(
        aggregator,
        feed,
        make_detection_producer,
        camera_id=settings.camera_id,
        affected_trains=affected,
        notifier=notifier,
        notify_on_high_risk=settings.notify_on_high_risk,
    )
    stopping_distance = StoppingDistanceMonitor(fleet, distance_client)

    logger.info(
        "runtime ready: backend=%s producers=%s trains=%d",
        settings.state_backend,
        settings.producer_mode,
        len(fleet.trains),
    )
    return Runtime(
        settings=settings,
        http=http,
        rng=rng,
        feed=feed,
        aggregator=aggregator,
        fleet=fleet,
        detection=detection,
        stopping_distance=stopping_distance,
        distance_client=distance_client,
        inference=inference,
        notifier=notifier,
        translator=translator,
    )
