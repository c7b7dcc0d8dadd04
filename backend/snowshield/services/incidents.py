"""
Data access for the incidents and warnings collections.

Functions here translate typed requests into store operations and
return ORM records. Business rules beyond input shape (ordering for
display, role visibility, expiry) live in services.feed.
"""
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snowshield.config_loader import Settings, get_settings
from snowshield.errors import StorageError, ValidationError, log_error
from snowshield.logging_config import get_logger
from snowshield.models import Incident, SafetyWarning, WarningPincode
from snowshield.schemas import (
    IncidentCreate,
    IncidentUpdate,
    INCIDENT_SOS,
    WarningCreate,
    normalize_incident_type,
    normalize_risk_level,
    parse_pincodes,
    validate_severity,
)
from snowshield.storage.photo_utils import photo_key, validate_photos
from snowshield.storage.storage_base import PhotoStorage, PhotoUpload
from snowshield.timeutils import as_utc, utcnow

logger = get_logger(__name__)

MAX_KEY_ATTEMPTS = 5


def _require_text(value: Optional[str], field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field} is required.", context={"field": field})
    return value


def _new_id() -> str:
    return uuid.uuid4().hex


# -------------------- Incidents --------------------

def _upload_photos(
    storage: PhotoStorage,
    photos: Sequence[PhotoUpload],
) -> List[Dict[str, str]]:
    """
    Upload photos one after another in input order.

    A key already taken in storage (another request, same filename, same
    millisecond) is retried one millisecond later, up to
    MAX_KEY_ATTEMPTS times. On failure every blob uploaded so far is
    deleted before the StorageError propagates.
    """
    uploaded: List[Dict[str, str]] = []
    used_keys = set()

    for photo in photos:
        now = utcnow()
        attempt = 0
        while True:
            key = photo_key(photo.filename, now)
            while key in used_keys:
                now = now + timedelta(milliseconds=1)
                key = photo_key(photo.filename, now)
            used_keys.add(key)
            attempt += 1

            try:
                url = storage.upload(key, photo.data, photo.content_type)
                break
            except StorageError as e:
                if e.code == "aborted" and attempt < MAX_KEY_ATTEMPTS:
                    logger.debug(f"Photo key {key} already taken, retrying")
                    continue
                _discard_uploads(storage, uploaded)
                log_error(logger, e, "createIncident upload")
                raise
            except Exception as e:
                _discard_uploads(storage, uploaded)
                error = StorageError(
                    f"Failed to upload photo '{photo.filename}': {e}",
                    context={"key": key},
                )
                log_error(logger, error, "createIncident upload")
                raise error from e

        uploaded.append({"key": key, "url": url})
        logger.debug(f"Uploaded photo {len(uploaded)}/{len(photos)} key={key}")

    return uploaded


def _discard_uploads(storage: PhotoStorage, uploaded: List[Dict[str, str]]) -> None:
    for item in uploaded:
        try:
            storage.delete(item["key"])
        except Exception as e:
            # The upload or write error is what propagates
            logger.error(f"Failed to remove orphaned photo key={item['key']}: {e}")


def create_incident(
    db: Session,
    data: IncidentCreate,
    photos: Optional[Sequence[PhotoUpload]] = None,
    storage: Optional[PhotoStorage] = None,
    reported_by: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, str]:
    """
    Create an incident report with attached photos.

    Input is validated before any upload. Photos are uploaded
    sequentially and the record is written only after all uploads
    succeed; a failed upload or write removes the uploaded blobs.

    Returns:
        {"id": <new incident id>}

    Raises:
        ValidationError: bad type, risk level, empty text, bad photos
        StorageError: upload or write failure
    """
    settings = settings or get_settings()
    incident_type = normalize_incident_type(data.type)
    risk_level = normalize_risk_level(data.riskLevel)
    title = _require_text(data.title, "title")
    description = _require_text(data.description, "description")
    pincode = _require_text(data.pincode, "pincode")
    photos = validate_photos(photos or [], settings)

    if photos and storage is None:
        raise StorageError("No photo storage configured", code="failed-precondition")

    uploaded = _upload_photos(storage, photos) if photos else []

    incident = Incident(
        id=_new_id(),
        type=incident_type,
        title=title,
        description=description,
        pincode=pincode,
        location=(data.location or "").strip() or None,
        photos=[item["url"] for item in uploaded],
        risk_level=risk_level,
        reported_by=reported_by,
        timestamp=utcnow(),
        is_active=True,
    )

    try:
        db.add(incident)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        _discard_uploads(storage, uploaded)
        error = StorageError(f"Failed to save incident: {e}", context={"type": incident_type})
        log_error(logger, error, "createIncident")
        raise error from e

    logger.info(
        f"Created {incident_type} incident id={incident.id} pincode={pincode} photos={len(uploaded)}"
    )
    return {"id": incident.id}


def _query(db: Session, operation: str, build):
    try:
        return build()
    except SQLAlchemyError as e:
        error = StorageError(f"Query failed: {e}", context={"operation": operation})
        log_error(logger, error, operation)
        raise error from e


def get_all_incidents(db: Session) -> List[Incident]:
    """All incidents, newest first."""
    return _query(db, "getAllIncidents", lambda: (
        db.query(Incident)
        .order_by(Incident.timestamp.desc())
        .all()
    ))


def get_incidents_by_pincode(db: Session, pincode: str) -> List[Incident]:
    """Incidents with an exact pincode match, newest first."""
    return _query(db, "getIncidentsByPincode", lambda: (
        db.query(Incident)
        .filter(Incident.pincode == pincode)
        .order_by(Incident.timestamp.desc())
        .all()
    ))


def get_sos_alerts(db: Session) -> List[Incident]:
    """SOS incidents, newest first. Resolved alerts are included."""
    return _query(db, "getSOSAlerts", lambda: (
        db.query(Incident)
        .filter(Incident.type == INCIDENT_SOS)
        .order_by(Incident.timestamp.desc())
        .all()
    ))


def get_incident_by_id(db: Session, incident_id: str) -> Optional[Incident]:
    """Point lookup; None when absent."""
    incident = _query(db, "getIncidentById", lambda: db.get(Incident, incident_id))
    if incident is None:
        logger.debug(f"No such incident: {incident_id}")
    return incident


INCIDENT_PATCH_FIELDS = {
    "type": "type",
    "title": "title",
    "description": "description",
    "pincode": "pincode",
    "location": "location",
    "riskLevel": "risk_level",
    "isActive": "is_active",
}


def update_incident(db: Session, incident_id: str, patch: IncidentUpdate) -> Optional[Dict[str, str]]:
    """
    Merge a patch into an incident and stamp updatedAt.

    Returns:
        {"id": incident_id}, or None if the incident does not exist
    """
    changes = patch.model_dump(exclude_unset=True)
    return _apply_incident_changes(db, incident_id, changes, "updateIncident")


def _apply_incident_changes(
    db: Session,
    incident_id: str,
    changes: Dict[str, Any],
    operation: str,
) -> Optional[Dict[str, str]]:
    incident = get_incident_by_id(db, incident_id)
    if incident is None:
        return None

    if changes.get("isActive", False) is None:
        changes.pop("isActive")
    if "type" in changes:
        changes["type"] = normalize_incident_type(changes["type"])
    if "riskLevel" in changes:
        changes["riskLevel"] = normalize_risk_level(changes["riskLevel"])
    for field in ("title", "description", "pincode"):
        if field in changes:
            changes[field] = _require_text(changes[field], field)

    for field, value in changes.items():
        column = INCIDENT_PATCH_FIELDS.get(field)
        if column is None:
            continue
        setattr(incident, column, value)
    incident.updated_at = utcnow()

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"Failed to update incident: {e}", context={"id": incident_id})
        log_error(logger, error, operation)
        raise error from e

    logger.info(f"Updated incident id={incident_id} fields={sorted(changes)}")
    return {"id": incident_id}


def resolve_sos_alert(db: Session, incident_id: str, resolved_by: str) -> Optional[Dict[str, str]]:
    """Mark an SOS alert handled: inactive, with resolver and time."""
    incident = get_incident_by_id(db, incident_id)
    if incident is None:
        return None
    if incident.type != INCIDENT_SOS:
        raise ValidationError(
            "Only SOS alerts can be resolved.",
            context={"id": incident_id, "type": incident.type},
        )

    now = utcnow()
    incident.is_active = False
    incident.resolved_at = now
    incident.resolved_by = resolved_by
    incident.updated_at = now
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"Failed to resolve alert: {e}", context={"id": incident_id})
        log_error(logger, error, "resolveSOSAlert")
        raise error from e

    logger.info(f"Resolved SOS alert id={incident_id} by={resolved_by}")
    return {"id": incident_id}


def delete_incident(db: Session, incident_id: str) -> Dict[str, bool]:
    """Delete an incident. Deleting a missing id succeeds without effect."""
    try:
        deleted = db.query(Incident).filter(Incident.id == incident_id).delete()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"Failed to delete incident: {e}", context={"id": incident_id})
        log_error(logger, error, "deleteIncident")
        raise error from e

    logger.info(f"Deleted incident id={incident_id} rows={deleted}")
    return {"success": True}


# -------------------- Warnings --------------------

def create_warning(
    db: Session,
    data: WarningCreate,
    created_by: Optional[str] = None,
    created_by_name: Optional[str] = None,
) -> Dict[str, str]:
    """
    Issue a warning for a set of pincodes.

    Raises:
        ValidationError: bad severity, no pincodes, empty text, expiry in the past
    """
    severity = validate_severity(data.severity)
    title = _require_text(data.title, "title")
    description = _require_text(data.description, "description")
    pincodes = parse_pincodes(data.affectedPincodes)
    if not pincodes:
        raise ValidationError(
            "At least one affected pincode is required.",
            context={"field": "affectedPincodes"},
        )

    now = utcnow()
    expiry_time = as_utc(data.expiryTime)
    if expiry_time is not None and expiry_time <= now:
        raise ValidationError(
            "Expiry time must be in the future.",
            context={"field": "expiryTime"},
        )

    warning = SafetyWarning(
        id=_new_id(),
        title=title,
        description=description,
        severity=severity,
        timestamp=now,
        expiry_time=expiry_time,
        is_active=True,
        resolved_at=None,
        created_by=created_by,
        created_by_name=created_by_name,
    )
    warning.pincodes = [
        WarningPincode(pincode=pincode, position=i) for i, pincode in enumerate(pincodes)
    ]

    try:
        db.add(warning)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"Failed to save warning: {e}", context={"severity": severity})
        log_error(logger, error, "createWarning")
        raise error from e

    logger.info(f"Created {severity} warning id={warning.id} pincodes={pincodes}")
    return {"id": warning.id}


def get_warnings_for_pincode(db: Session, pincode: str) -> List[SafetyWarning]:
    """
    Active-flagged warnings covering a pincode, newest first.

    Expired warnings whose flag is still set are returned; callers drop
    them with services.feed.active_warnings.
    """
    return _query(db, "getWarningsForPincode", lambda: (
        db.query(SafetyWarning)
        .join(WarningPincode, WarningPincode.warning_id == SafetyWarning.id)
        .filter(
            SafetyWarning.is_active == True,  # noqa: E712
            WarningPincode.pincode == pincode,
        )
        .order_by(SafetyWarning.timestamp.desc())
        .all()
    ))


def get_all_active_warnings(db: Session) -> List[SafetyWarning]:
    """Every active-flagged warning, newest first."""
    return _query(db, "getAllActiveWarnings", lambda: (
        db.query(SafetyWarning)
        .filter(SafetyWarning.is_active == True)  # noqa: E712
        .order_by(SafetyWarning.timestamp.desc())
        .all()
    ))


def get_warning_by_id(db: Session, warning_id: str) -> Optional[SafetyWarning]:
    return _query(db, "getWarningById", lambda: db.get(SafetyWarning, warning_id))


def resolve_warning(db: Session, warning_id: str, now: Optional[datetime] = None) -> Optional[Dict[str, str]]:
    """
    Deactivate a warning. Resolving an already resolved warning keeps
    its original resolvedAt.

    Returns:
        {"id": warning_id}, or None if the warning does not exist
    """
    warning = get_warning_by_id(db, warning_id)
    if warning is None:
        return None
    if not warning.is_active:
        logger.debug(f"Warning id={warning_id} already resolved")
        return {"id": warning_id}

    warning.is_active = False
    warning.resolved_at = now or utcnow()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        error = StorageError(f"Failed to resolve warning: {e}", context={"id": warning_id})
        log_error(logger, error, "resolveWarning")
        raise error from e

    logger.info(f"Resolved warning id={warning_id}")
    return {"id": warning_id}
