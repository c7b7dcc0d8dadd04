"""
Pydantic schemas for request/response validation, plus the canonical
value sets every stored record is normalized to.

Field names are camelCase to match what the frontend consumes.
"""
from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from snowshield.errors import ValidationError
from snowshield.logging_config import get_logger
from snowshield.risk import risk_level_color
from snowshield.timeutils import isoformat

logger = get_logger(__name__)


INCIDENT_REGULAR = "regular"
INCIDENT_SOS = "SOS"
INCIDENT_TYPES = (INCIDENT_REGULAR, INCIDENT_SOS)
# Older clients wrote 'incident' for ordinary reports
LEGACY_INCIDENT_TYPES: Dict[str, str] = {"incident": INCIDENT_REGULAR}

RISK_LEVELS = ("Low", "Medium", "High", "Extreme")
WARNING_SEVERITIES = ("low", "medium", "high")

USER = "user"
RESCUE_TEAM = "rescueTeam"
ADMIN = "admin"
USER_TYPES = (USER, RESCUE_TEAM, ADMIN)


def normalize_incident_type(value: Optional[str]) -> str:
    """Map an incoming incident type onto the canonical {regular, SOS} set."""
    if value in INCIDENT_TYPES:
        return value
    if value in LEGACY_INCIDENT_TYPES:
        canonical = LEGACY_INCIDENT_TYPES[value]
        logger.info(f"Normalizing legacy incident type '{value}' to '{canonical}'")
        return canonical
    raise ValidationError(
        f"Invalid incident type '{value}'. Expected one of: {', '.join(INCIDENT_TYPES)}",
        context={"field": "type", "value": value},
    )


def normalize_risk_level(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in RISK_LEVELS:
        raise ValidationError(
            f"Invalid risk level '{value}'. Expected one of: {', '.join(RISK_LEVELS)}",
            context={"field": "riskLevel", "value": value},
        )
    return value


def validate_severity(value: Optional[str]) -> str:
    if value not in WARNING_SEVERITIES:
        raise ValidationError(
            f"Invalid severity '{value}'. Expected one of: {', '.join(WARNING_SEVERITIES)}",
            context={"field": "severity", "value": value},
        )
    return value


def parse_pincodes(value: Union[str, List[str], None]) -> List[str]:
    """
    Accept a list or a comma-separated string ("123456, 789012").
    Entries are trimmed, empties dropped, duplicates removed in order.
    """
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    cleaned = [str(p).strip() for p in items]
    return list(dict.fromkeys(p for p in cleaned if p))


# -------------------- Incidents --------------------

class IncidentCreate(BaseModel):
    """Fields of a new incident report (photos travel separately)."""
    type: str = INCIDENT_REGULAR
    title: str
    description: str
    pincode: str
    location: Optional[str] = None
    riskLevel: Optional[str] = None


class IncidentUpdate(BaseModel):
    """Partial incident patch; only set fields are applied."""
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    pincode: Optional[str] = None
    location: Optional[str] = None
    riskLevel: Optional[str] = None
    isActive: Optional[bool] = None


class IncidentResponse(BaseModel):
    id: str
    type: str
    title: str
    description: str
    pincode: str
    location: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    riskLevel: Optional[str] = None
    riskColor: str = "primary"
    reportedBy: Optional[str] = None
    timestamp: Optional[str] = None
    updatedAt: Optional[str] = None
    isActive: bool = True
    resolvedAt: Optional[str] = None
    resolvedBy: Optional[str] = None

    @classmethod
    def from_model(cls, incident) -> "IncidentResponse":
        return cls(
            id=incident.id,
            type=incident.type,
            title=incident.title,
            description=incident.description,
            pincode=incident.pincode,
            location=incident.location,
            photos=list(incident.photos or []),
            riskLevel=incident.risk_level,
            riskColor=risk_level_color(incident.risk_level),
            reportedBy=incident.reported_by,
            timestamp=isoformat(incident.timestamp),
            updatedAt=isoformat(incident.updated_at),
            isActive=bool(incident.is_active),
            resolvedAt=isoformat(incident.resolved_at),
            resolvedBy=incident.resolved_by,
        )


class IncidentsResponse(BaseModel):
    incidents: List[IncidentResponse]


class CreatedResponse(BaseModel):
    id: str


class DeleteResponse(BaseModel):
    success: bool


# -------------------- Warnings --------------------

class WarningCreate(BaseModel):
    title: str
    description: str
    severity: str = "medium"
    affectedPincodes: Union[List[str], str]
    expiryTime: Optional[datetime] = None


class WarningResponse(BaseModel):
    id: str
    title: str
    description: str
    severity: str
    affectedPincodes: List[str]
    timestamp: Optional[str] = None
    expiryTime: Optional[str] = None
    isActive: bool = True
    resolvedAt: Optional[str] = None
    createdBy: Optional[str] = None
    createdByName: Optional[str] = None

    @classmethod
    def from_model(cls, warning) -> "WarningResponse":
        return cls(
            id=warning.id,
            title=warning.title,
            description=warning.description,
            severity=warning.severity,
            affectedPincodes=warning.affected_pincodes,
            timestamp=isoformat(warning.timestamp),
            expiryTime=isoformat(warning.expiry_time),
            isActive=bool(warning.is_active),
            resolvedAt=isoformat(warning.resolved_at),
            createdBy=warning.created_by,
            createdByName=warning.created_by_name,
        )


class WarningsResponse(BaseModel):
    pincode: Optional[str] = None
    warnings: List[WarningResponse]


# -------------------- Feeds --------------------

class DashboardResponse(BaseModel):
    """Home page: mixed feed, Near You section and active warnings."""
    pincode: Optional[str] = None
    incidents: List[IncidentResponse]
    nearYou: List[IncidentResponse]
    warnings: List[WarningResponse]


class AlertsResponse(BaseModel):
    mode: str
    pincode: Optional[str] = None
    incidents: List[IncidentResponse]
    message: Optional[str] = None


# -------------------- Users --------------------

class SignupRequest(BaseModel):
    email: str
    password: str
    name: str
    pincode: str
    phone: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class ProfileResponse(BaseModel):
    id: str
    email: str
    name: str
    phone: str
    pincode: Optional[str] = None
    userType: str

    @classmethod
    def from_model(cls, profile) -> "ProfileResponse":
        return cls(
            id=profile.id,
            email=profile.email,
            name=profile.name or "",
            phone=profile.phone or "",
            pincode=profile.pincode,
            userType=profile.user_type,
        )


class ProfileUpdate(BaseModel):
    """Self-service profile edit. email and userType are not editable here."""
    name: Optional[str] = None
    phone: Optional[str] = None
    pincode: Optional[str] = None


class RoleUpdate(BaseModel):
    userType: str


class SessionResponse(BaseModel):
    token: str
    profile: ProfileResponse


# -------------------- Weather --------------------

class RiskSchema(BaseModel):
    level: str
    description: str
    color: str


class WeatherResponse(BaseModel):
    location: str
    country: Optional[str] = None
    temperature: int
    feelsLike: int
    humidity: float
    windSpeed: float
    description: str
    icon: str
    iconUrl: str
    timestamp: str
    risk: RiskSchema


class ForecastHourSchema(BaseModel):
    time: str
    temperature: int
    feelsLike: int
    humidity: float
    windSpeed: float
    description: str
    icon: str


class ForecastDaySchema(BaseModel):
    date: str
    minTemp: int
    maxTemp: int
    description: str
    icon: str
    hourlyData: List[ForecastHourSchema]


class ForecastResponse(BaseModel):
    location: str
    country: Optional[str] = None
    forecast: List[ForecastDaySchema]
