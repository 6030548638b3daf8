# kavach/models.py
# ------------------------------------------------------------
# Core domain models for the Rail Kavach monitoring backend
# ------------------------------------------------------------

from pydantic import BaseModel, Field
from typing import Optional, Literal, List, Tuple
from datetime import datetime, timezone
import uuid


# -------------------------------
# Shared helpers & enums
# -------------------------------
TrainStatus = Literal["on_time", "delayed", "emergency", "other"]
AlertStatus = Literal["active", "acknowledged", "resolved", "false_alarm"]
AlertSeverity = Literal["low", "medium", "high"]
CameraStatus = Literal["online", "offline", "maintenance"]
RiskLevel = Literal["HIGH RISK", "WARNING"]

ALERT_STATUSES: Tuple[str, ...] = ("active", "acknowledged", "resolved", "false_alarm")
CAMERA_STATUSES: Tuple[str, ...] = ("online", "offline", "maintenance")

MAX_SPEED_KMH = 120.0


def uid(prefix: str) -> str:
    """
    Short, readable IDs for UI/debugging.
    Example: trn_a3f91c2b1e
    """
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


def utcnow() -> datetime:
    """
    Always return timezone-aware UTC datetime.
    """
    return datetime.now(timezone.utc)


# -------------------------------
# Train
# -------------------------------
class Location(BaseModel):
    """
    GeoJSON-style point: coordinates are [longitude, latitude].
    """

    coordinates: Tuple[float, float]
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def lon(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]


class Train(BaseModel):
    """
    A monitored train. Lives for the whole application session.
    """

    train_id: str = Field(default_factory=lambda: uid("trn"))
    train_number: str
    name: str = ""

    status: TrainStatus = "on_time"
    current_speed: float = Field(default=0.0, ge=0.0)
    current_location: Location

    # filled in by the stopping-distance monitor when enabled
    stopping_distance_km: Optional[float] = None


# -------------------------------
# Alert
# -------------------------------
class Alert(BaseModel):
    """
    A condition requiring attention. Alerts are transitioned, never deleted.
    """

    alert_id: str = Field(default_factory=lambda: uid("alr"))
    status: AlertStatus = "active"
    affected_trains: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    alert_type: str = "track_obstruction"
    severity: AlertSeverity = "medium"
    subject: Optional[str] = None
    event_id: Optional[str] = None
    camera_id: Optional[str] = None
    notes: str = ""

    def affects(self, train_id: str) -> bool:
        return train_id in self.affected_trains


# -------------------------------
# Camera domain
# -------------------------------
class Camera(BaseModel):
    camera_id: str
    name: str
    status: CameraStatus = "online"


class Detection(BaseModel):
    """
    One object reported by the inference service for a single frame.
    """

    class_id: int = -1
    class_name: str
    confidence: float = Field(ge=0.0, le=1.0)


class DetectionEvent(BaseModel):
    """
    A detection promoted into a recorded event (one per occurrence).
    """

    event_id: str = Field(default_factory=lambda: uid("det"))
    camera_id: str
    animal_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    image_url: str = "captured-from-camera"
    status: Literal["detected"] = "detected"
    created_at: datetime = Field(default_factory=utcnow)


class ConsecutiveCounter(BaseModel):
    object: str
    consecutive_count: int = Field(default=1, ge=1)
    last_detection: float


class DetectionAlert(BaseModel):
    """
    Risk summary for one tracked subject.
    """

    object: str
    consecutive_count: int
    last_detection: float
    severity: RiskLevel


# -------------------------------
# Stopping distance
# -------------------------------
class StoppingDistanceEstimate(BaseModel):
    speed: float
    lat: float
    long: float
    distance_km: float
    raw_text: str
