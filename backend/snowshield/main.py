"""
FastAPI application main entry point.
Implements the HTTP API for the Snow Shield backend.

Authorization is enforced here, per endpoint, from the caller's
SessionContext; the data access layer trusts its callers.
"""
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session
from starlette.responses import Response

from snowshield.config_loader import Settings, get_settings
from snowshield.db import get_db, init_db
from snowshield.errors import (
    AuthenticationError,
    PermissionDeniedError,
    SnowShieldError,
    ValidationError,
    log_error,
    user_message,
)
from snowshield.logging_config import get_logger, setup_logging
from snowshield.risk import risk_for_weather
from snowshield.schemas import (
    AlertsResponse,
    CreatedResponse,
    DashboardResponse,
    DeleteResponse,
    ForecastDaySchema,
    ForecastHourSchema,
    ForecastResponse,
    IncidentCreate,
    IncidentResponse,
    IncidentsResponse,
    IncidentUpdate,
    LoginRequest,
    ProfileResponse,
    ProfileUpdate,
    RiskSchema,
    RoleUpdate,
    SessionResponse,
    SignupRequest,
    WarningCreate,
    WarningResponse,
    WarningsResponse,
    WeatherResponse,
)
from snowshield.services import feed
from snowshield.services import incidents as incident_service
from snowshield.services import users as user_service
from snowshield.session import SessionContext
from snowshield.storage.local_storage import LocalPhotoStorage
from snowshield.storage.photo_utils import check_photo_count, check_photo_size
from snowshield.storage.storage_base import PhotoStorage, PhotoUpload
from snowshield.weather.openweather_client import WeatherClient
from snowshield.weather.weather_utils import icon_url

SERVICE_NAME = "Snow Shield Backend"
SERVICE_VERSION = "1.0.0"

# Set up logging
setup_logging(level=get_settings().log_level)
logger = get_logger(__name__)

# Determine environment (dev/prod) for CORS behavior
ENV = os.getenv("ENV", "dev").lower()

# Read explicit frontend origins from env (comma separated)
frontend_origins_env = os.getenv("FRONTEND_ORIGINS", "")
parsed_frontend_origins = [o.strip() for o in frontend_origins_env.split(",") if o.strip()]

base_allowed_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

allowed_origins = list(dict.fromkeys(base_allowed_origins + parsed_frontend_origins))

# Dev-only permissive CORS escape hatch
DEV_PERMISSIVE_CORS = os.getenv("DEV_PERMISSIVE_CORS", "").lower() in ("1", "true", "yes")

# In dev, allow GitHub Codespaces-style hosts via regex by default (configurable)
cors_allow_origin_regex = None
if ENV == "dev":
    cors_allow_origin_regex = os.getenv("CORS_ALLOW_ORIGIN_REGEX", r"https://.*\.app\.github\.dev")

if ENV == "dev" and DEV_PERMISSIVE_CORS:
    logger.warning("DEV_PERMISSIVE_CORS enabled: allowing all origins. Do NOT enable in production.")
    allow_credentials = False
    allowed_origins = ["*"]
else:
    # A wildcard origin cannot be combined with credentials
    allow_credentials = "*" not in allowed_origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup/shutdown."""
    settings = get_settings()
    logger.info(f"Starting {SERVICE_NAME}")
    init_db()
    Path(settings.media_root).mkdir(parents=True, exist_ok=True)
    logger.info(f"Database ready at {settings.database_url}; media root {settings.media_root}")
    if not settings.openweather_api_key:
        logger.warning("OPENWEATHER_API_KEY not set; weather endpoints will return errors")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")


app = FastAPI(
    title=SERVICE_NAME,
    description="Incident reporting, SOS alerts, area warnings and avalanche risk for snow-hazard safety",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

logger.info(f"CORS allowed_origins: {allowed_origins}")
logger.info(f"CORS allow_origin_regex: {cors_allow_origin_regex}")
logger.info(f"CORS allow_credentials: {allow_credentials}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=cors_allow_origin_regex,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,  # Cache preflight responses for 1 hour
)

_settings = get_settings()
if _settings.media_base_url.startswith("/"):
    app.mount(
        _settings.media_base_url,
        StaticFiles(directory=_settings.media_root, check_dir=False),
        name="media",
    )


@app.exception_handler(SnowShieldError)
async def snowshield_error_handler(request: Request, exc: SnowShieldError):
    if exc.status_code >= 500:
        log_error(logger, exc, f"{request.method} {request.url.path}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": user_message(exc)})


# -------------------- Dependencies --------------------

def get_app_settings() -> Settings:
    return get_settings()


def get_storage(settings: Settings = Depends(get_app_settings)) -> PhotoStorage:
    return LocalPhotoStorage(settings.media_root, settings.media_base_url)


def get_weather_client(settings: Settings = Depends(get_app_settings)) -> WeatherClient:
    return WeatherClient(settings=settings)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_optional_session(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[SessionContext]:
    return user_service.resolve_session(db, _bearer_token(authorization))


def get_current_session(
    session: Optional[SessionContext] = Depends(get_optional_session),
) -> SessionContext:
    if session is None:
        raise AuthenticationError("You need to be logged in to perform this action.")
    return session


def _not_found(what: str, item_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} {item_id} not found")


def _incidents(items) -> List[IncidentResponse]:
    return [IncidentResponse.from_model(i) for i in items]


def _warnings(items) -> List[WarningResponse]:
    return [WarningResponse.from_model(w) for w in items]


# -------------------- Health --------------------

@app.options("/{full_path:path}")
async def preflight(full_path: str, request: Request):
    return Response(status_code=204)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "operational",
    }


# -------------------- Auth & Profiles --------------------

@app.post("/api/auth/signup", response_model=SessionResponse, status_code=201)
async def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    session = user_service.signup(
        db,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        pincode=payload.pincode,
        phone=payload.phone,
    )
    return SessionResponse(token=session.token, profile=ProfileResponse.from_model(session.profile))


@app.post("/api/auth/login", response_model=SessionResponse)
async def login(payload: LoginRequest, db: Session = Depends(get_db)):
    session = user_service.login(db, payload.email, payload.password)
    return SessionResponse(token=session.token, profile=ProfileResponse.from_model(session.profile))


@app.post("/api/auth/logout", response_model=DeleteResponse)
async def logout(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    user_service.logout(db, session.token)
    return DeleteResponse(success=True)


@app.get("/api/profile", response_model=ProfileResponse)
async def get_profile(session: SessionContext = Depends(get_current_session)):
    return ProfileResponse.from_model(session.profile)


@app.put("/api/profile", response_model=ProfileResponse)
async def update_profile(
    payload: ProfileUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    profile = user_service.update_profile(db, session.user_id, payload)
    if profile is None:
        raise _not_found("Profile", session.user_id)
    return ProfileResponse.from_model(profile)


@app.put("/api/users/{user_id}/role", response_model=ProfileResponse)
async def set_user_role(
    user_id: str,
    payload: RoleUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    session.require_admin("change user roles")
    profile = user_service.set_user_type(db, user_id, payload.userType)
    if profile is None:
        raise _not_found("User", user_id)
    return ProfileResponse.from_model(profile)


# -------------------- Incidents --------------------

@app.post("/api/incidents", response_model=CreatedResponse, status_code=201)
async def report_incident(
    type: str = Form("regular"),
    title: str = Form(...),
    description: str = Form(...),
    pincode: str = Form(...),
    location: Optional[str] = Form(None),
    riskLevel: Optional[str] = Form(None),
    photos: Optional[List[UploadFile]] = File(None),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: PhotoStorage = Depends(get_storage),
    settings: Settings = Depends(get_app_settings),
):
    """
    Submit an incident report or SOS alert with up to five photos.
    """
    files = [upload for upload in photos or [] if upload.filename]
    check_photo_count(len(files), settings)

    uploads = []
    for upload in files:
        # One byte past the limit is enough to reject an oversized file
        content = await upload.read(settings.max_photo_bytes + 1)
        check_photo_size(upload.filename, len(content), settings)
        uploads.append(PhotoUpload(
            filename=upload.filename,
            content_type=upload.content_type or "",
            data=content,
        ))

    data = IncidentCreate(
        type=type,
        title=title,
        description=description,
        pincode=pincode,
        location=location,
        riskLevel=riskLevel,
    )
    result = incident_service.create_incident(
        db,
        data,
        photos=uploads,
        storage=storage,
        reported_by=session.user_id,
        settings=settings,
    )
    return CreatedResponse(**result)


@app.get("/api/incidents", response_model=IncidentsResponse)
async def list_incidents(
    pincode: Optional[str] = Query(None, description="Exact pincode match"),
    q: Optional[str] = Query(None, description="Substring of title, description or pincode"),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Incidents visible to the caller, SOS alerts first then newest first.
    """
    if pincode:
        items = incident_service.get_incidents_by_pincode(db, pincode)
    else:
        items = incident_service.get_all_incidents(db)
    if q:
        items = feed.search_incidents(items, q)
    items = feed.sort_incidents(feed.visible_incidents(items, session.user_type))
    return IncidentsResponse(incidents=_incidents(items))


def _require_incident_access(session: SessionContext, incident) -> None:
    if feed.listed_for(incident, session.user_type):
        return
    if incident.reported_by == session.user_id:
        return
    if feed.can_open_list(feed.kind_of(incident), session.user_type):
        return
    raise PermissionDeniedError("You don't have permission to view this alert.")


@app.get("/api/incidents/{incident_id}", response_model=IncidentResponse)
async def get_incident(
    incident_id: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    incident = incident_service.get_incident_by_id(db, incident_id)
    if incident is None:
        raise _not_found("Incident", incident_id)
    _require_incident_access(session, incident)
    return IncidentResponse.from_model(incident)


@app.patch("/api/incidents/{incident_id}", response_model=CreatedResponse)
async def update_incident(
    incident_id: str,
    payload: IncidentUpdate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    incident = incident_service.get_incident_by_id(db, incident_id)
    if incident is None:
        raise _not_found("Incident", incident_id)
    if not session.is_admin and incident.reported_by != session.user_id:
        raise PermissionDeniedError("Only the reporter or an administrator can edit this incident.")
    result = incident_service.update_incident(db, incident_id, payload)
    if result is None:
        raise _not_found("Incident", incident_id)
    return CreatedResponse(**result)


@app.delete("/api/incidents/{incident_id}", response_model=DeleteResponse)
async def delete_incident(
    incident_id: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    session.require_admin("delete incidents")
    return DeleteResponse(**incident_service.delete_incident(db, incident_id))


@app.get("/api/alerts", response_model=AlertsResponse)
async def list_alerts(
    mode: Optional[str] = Query(None, description="all | local | sos; defaults to local when the caller has a pincode"),
    pincode: Optional[str] = Query(None, description="Defaults to the caller's pincode"),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """
    Alerts page: every visible incident, the ones for a pincode, or SOS only.
    """
    pincode = pincode or session.pincode
    if mode is None:
        mode = "local" if pincode else "all"
    if mode not in feed.ALERT_MODES:
        raise ValidationError(f"Unknown alerts mode '{mode}'. Expected one of: {', '.join(feed.ALERT_MODES)}")
    if mode == "sos" and not feed.sos_visible_to(session.user_type):
        raise PermissionDeniedError("Only administrators can view SOS alerts here.")

    if mode == "local" and pincode:
        items = incident_service.get_incidents_by_pincode(db, pincode)
    else:
        items = incident_service.get_all_incidents(db)

    filtered = feed.filter_alerts(items, mode, pincode, session.user_type)
    message = None
    if mode == "local" and pincode and not filtered:
        message = f"No incidents found for pincode {pincode}"
    return AlertsResponse(mode=mode, pincode=pincode, incidents=_incidents(filtered), message=message)


@app.get("/api/dashboard", response_model=DashboardResponse)
async def dashboard(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    pincode = session.pincode
    local_items = incident_service.get_incidents_by_pincode(db, pincode) if pincode else []
    all_items = incident_service.get_all_incidents(db)
    warnings = incident_service.get_warnings_for_pincode(db, pincode) if pincode else []

    view = feed.build_dashboard(
        all_items,
        local_items,
        warnings,
        user_type=session.user_type,
        pincode=pincode,
        limit=settings.dashboard_feed_limit,
    )
    return DashboardResponse(
        pincode=pincode,
        incidents=_incidents(view.incidents),
        nearYou=_incidents(view.near_you),
        warnings=_warnings(view.warnings),
    )


# -------------------- SOS --------------------

@app.get("/api/sos", response_model=IncidentsResponse)
async def list_sos_alerts(
    include_resolved: bool = Query(False),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """SOS alerts for administrators and rescue teams, newest first."""
    if not feed.can_open_list(feed.FeedKind.SOS_ALERT, session.user_type):
        raise PermissionDeniedError("Only administrators and rescue teams can view SOS alerts.")
    alerts = incident_service.get_sos_alerts(db)
    if not include_resolved:
        alerts = [a for a in alerts if a.is_active]
    return IncidentsResponse(incidents=_incidents(alerts))


@app.post("/api/sos/{incident_id}/resolve", response_model=CreatedResponse)
async def resolve_sos_alert(
    incident_id: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    if not session.can_resolve_sos:
        raise PermissionDeniedError("Only administrators and rescue teams can resolve SOS alerts.")
    result = incident_service.resolve_sos_alert(db, incident_id, resolved_by=session.user_id)
    if result is None:
        raise _not_found("SOS alert", incident_id)
    return CreatedResponse(**result)


# -------------------- Warnings --------------------

@app.post("/api/warnings", response_model=CreatedResponse, status_code=201)
async def create_warning(
    payload: WarningCreate,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    session.require_admin("create warnings")
    result = incident_service.create_warning(
        db,
        payload,
        created_by=session.user_id,
        created_by_name=session.display_name,
    )
    return CreatedResponse(**result)


@app.get("/api/warnings", response_model=WarningsResponse)
async def warnings_for_pincode(
    pincode: Optional[str] = Query(None, description="Defaults to the caller's pincode"),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Warnings in force for a pincode (expired ones are left out)."""
    pincode = pincode or session.pincode
    if not pincode:
        raise ValidationError("A pincode is required to look up warnings.")
    warnings = feed.active_warnings(incident_service.get_warnings_for_pincode(db, pincode))
    return WarningsResponse(pincode=pincode, warnings=_warnings(warnings))


@app.get("/api/warnings/active", response_model=WarningsResponse)
async def all_active_warnings(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    warnings = feed.active_warnings(incident_service.get_all_active_warnings(db))
    return WarningsResponse(warnings=_warnings(warnings))


@app.post("/api/warnings/{warning_id}/resolve", response_model=CreatedResponse)
async def resolve_warning(
    warning_id: str,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    session.require_admin("resolve warnings")
    result = incident_service.resolve_warning(db, warning_id)
    if result is None:
        raise _not_found("Warning", warning_id)
    return CreatedResponse(**result)


# -------------------- Weather --------------------

@app.get("/api/weather", response_model=WeatherResponse)
async def current_weather(
    lat: Optional[float] = Query(None),
    lon: Optional[float] = Query(None),
    city: Optional[str] = Query(None),
    zip: Optional[str] = Query(None, description="Postal code"),
    country: Optional[str] = Query(None, description="Country code for zip lookups"),
    session: SessionContext = Depends(get_current_session),
    client: WeatherClient = Depends(get_weather_client),
):
    """
    Current weather plus avalanche risk. Lookup order: coordinates,
    city, zip; with none given, the caller's pincode.
    """
    if lat is not None and lon is not None:
        report = await client.current_by_coords(lat, lon)
    elif city:
        report = await client.current_by_city(city)
    elif zip:
        report = await client.current_by_zip(zip, country)
    else:
        report = await client.lookup_for_profile(session.pincode)
        if report is None:
            raise ValidationError("Provide lat/lon, city or zip, or set a pincode on your profile.")

    risk = risk_for_weather(report)
    return WeatherResponse(
        location=report.location,
        country=report.country,
        temperature=report.temperature,
        feelsLike=report.feels_like,
        humidity=report.humidity,
        windSpeed=report.wind_speed,
        description=report.description,
        icon=report.icon,
        iconUrl=icon_url(report.icon),
        timestamp=report.observed_at.isoformat(),
        risk=RiskSchema(level=risk.level, description=risk.description, color=risk.color),
    )


@app.get("/api/weather/forecast", response_model=ForecastResponse)
async def weather_forecast(
    lat: float = Query(...),
    lon: float = Query(...),
    session: SessionContext = Depends(get_current_session),
    client: WeatherClient = Depends(get_weather_client),
):
    forecast = await client.forecast_by_coords(lat, lon)
    return ForecastResponse(
        location=forecast.location,
        country=forecast.country,
        forecast=[
            ForecastDaySchema(
                date=day.date,
                minTemp=day.min_temp,
                maxTemp=day.max_temp,
                description=day.description,
                icon=day.icon,
                hourlyData=[
                    ForecastHourSchema(
                        time=h.time,
                        temperature=h.temperature,
                        feelsLike=h.feels_like,
                        humidity=h.humidity,
                        windSpeed=h.wind_speed,
                        description=h.description,
                        icon=h.icon,
                    )
                    for h in day.hourly
                ],
            )
            for day in forecast.days
        ],
    )
