# kavach/config.py
# ------------------------------------------------------------
# Central configuration using pydantic-settings.
#
# All values can be overridden via environment variables.
# ------------------------------------------------------------

from pydantic_settings import BaseSettings
from typing import List, Literal, Optional


class Settings(BaseSettings):
    """
    Runtime configuration for the Rail Kavach backend.
    """

    # --------------------------------------------------------
    # Infrastructure
    # --------------------------------------------------------
    state_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # --------------------------------------------------------
    # CORS / Frontend integration
    # --------------------------------------------------------
    api_cors_origins: str = (
        "http://localhost:5173,"
        "http://localhost:3000"
    )

    # --------------------------------------------------------
    # Simulation toggles
    # --------------------------------------------------------
    generators_enabled: bool = True
    producer_mode: Literal["simulated", "remote"] = "simulated"
    simulation_seed: Optional[int] = None
    fleet_size: int = 6
    fleet_api_url: str = "http://localhost:4000"

    # --------------------------------------------------------
    # Polling rates (seconds)
    # --------------------------------------------------------
    fleet_rate_sec: float = 5.0
    detection_rate_sec: float = 30.0
    detection_initial_delay_sec: float = 1.0
    stopping_distance_rate_sec: float = 60.0

    # --------------------------------------------------------
    # Detection / alerting
    # --------------------------------------------------------
    detection_enabled: bool = False       # camera polling on at startup
    detection_window_sec: Optional[float] = None  # None -> detection_rate_sec
    high_risk_threshold: int = 1
    counter_ttl_sec: Optional[float] = None       # None -> 3 windows
    counter_expiry_enabled: bool = True
    camera_source: str = ""               # device index, stream URL or frames dir
    camera_id: str = "cam_01"
    default_affected_trains: str = ""     # comma-separated train ids
    notify_on_high_risk: bool = False

    # --------------------------------------------------------
    # Admin controls
    # --------------------------------------------------------
    admin_cooldown_sec: int = 10

    # --------------------------------------------------------
    # Upstream services
    # --------------------------------------------------------
    http_timeout_sec: float = 15.0

    cohere_api_url: str = "https://api.cohere.ai/v1/generate"
    cohere_api_key: str = ""
    cohere_model: str = "command-r-plus-08-2024"
    stopping_distance_enabled: bool = False

    sms_api_url: str = "https://obligr.io/api_v2/message/send"
    sms_api_key: str = ""
    sms_template_id: str = "1207161849448858474"
    sms_sender_id: str = "Hi"
    sms_default_recipient: str = ""

    inference_url: str = "https://rail-k-flask-ml.onrender.com"

    translate_api_url: str = "https://translation.googleapis.com/language/translate/v2"
    translate_api_key: str = ""
    translation_cache_ttl_sec: Optional[float] = 24 * 3600

    # --------------------------------------------------------
    # Helpers
    # --------------------------------------------------------
    def cors_list(self) -> List[str]:
        """
        Parse comma-separated CORS origins into a clean list.
        """
        return _split_csv(self.api_cors_origins)

    def affected_trains_list(self) -> List[str]:
        return _split_csv(self.default_affected_trains)

    def effective_window_sec(self, rate_sec: Optional[float] = None) -> float:
        """
        Consecutive-detection window: the explicit setting, else the
        detection polling interval (rate_sec when the cadence was
        changed at runtime).
        """
        if self.detection_window_sec is not None:
            return self.detection_window_sec
        return self.detection_rate_sec if rate_sec is None else rate_sec

    def effective_counter_ttl_sec(self, rate_sec: Optional[float] = None) -> Optional[float]:
        """
        TTL for consecutive-detection counters.

        Defaults to three detection windows; disabled entirely when
        counter_expiry_enabled is false.
        """
        if not self.counter_expiry_enabled:
            return None
        if self.counter_ttl_sec is not None:
            return self.counter_ttl_sec
        return 3 * self.effective_window_sec(rate_sec)


def _split_csv(raw: str) -> List[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


# Singleton settings object
settings = Settings()
