import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sleep_journal.auth import get_current_user
from sleep_journal.database import get_db
from sleep_journal.entries import (
    SleepEntry,
    calculate_sleep_duration,
    filter_entries_by_date_range,
    filter_entries_by_month,
    filter_entries_by_rating,
    search_entries_by_comment,
    sleep_log_to_entry,
)
from sleep_journal.export import EXPORT_FILENAME, entries_to_csv
from sleep_journal.models import SleepLog, User
from sleep_journal.validation import BulkDeleteRequest, SleepEntryForm

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entries", tags=["entries"])


def parse_month(value: str) -> tuple[int, int]:
    """Parse a `YYYY-MM` string into (year, month)."""
    try:
        year, month = map(int, value.split("-"))
    except ValueError:
        raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month '{value}', expected YYYY-MM")
    return year, month


def load_user_entries(db: Session, user: User) -> list[SleepEntry]:
    """All of the user's entries as engine values, oldest first."""
    logs = (
        db.query(SleepLog)
        .filter(SleepLog.user_id == user.id)
        .order_by(SleepLog.date.asc())
        .all()
    )
    return [sleep_log_to_entry(log) for log in logs]


def recent_average(db: Session, user: User, days: int, today: Optional[date] = None) -> Optional[float]:
    """Mean rating over the last `days` calendar days, today included. None if there are no entries."""
    today = today or date.today()
    since = today - timedelta(days=days - 1)
    average = (
        db.query(func.avg(SleepLog.rating))
        .filter(SleepLog.user_id == user.id, SleepLog.date >= since, SleepLog.date <= today)
        .scalar()
    )
    return float(round(average, 2)) if average is not None else None


def upsert_entry(db: Session, user: User, form: SleepEntryForm) -> tuple[SleepLog, bool]:
    """Create the entry for `form.date`, or replace the existing one.

    Returns:
        The stored row and whether it was newly created.
    """
    duration = calculate_sleep_duration(form.start_time, form.end_time)

    log = (
        db.query(SleepLog)
        .filter(SleepLog.user_id == user.id, SleepLog.date == form.date)
        .first()
    )
    created = log is None
    if created:
        log = SleepLog(user_id=user.id, date=form.date)
        db.add(log)

    log.rating = form.rating
    log.comments = form.comments
    log.start_time = form.start_time
    log.end_time = form.end_time
    log.sleep_duration_hours = duration.hours if duration else None
    log.sleep_duration_minutes = duration.total_minutes if duration else None

    db.flush()
    db.refresh(log)
    return log, created


# =============================================================================
# Endpoints
# =============================================================================

@router.get("")
def list_entries(
    date_from: Optional[date] = Query(None, description="Earliest date (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="Latest date (YYYY-MM-DD)"),
    min_rating: int = Query(1, ge=1, le=10),
    max_rating: int = Query(10, ge=1, le=10),
    search: Optional[str] = Query(None, description="Case-insensitive text to look for in comments"),
    month: Optional[str] = Query(None, description="Only this month (YYYY-MM)"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List the user's entries, newest first.

    Filters combine; `avg7` and `avg30` always cover all entries of the
    last 7 / 30 days regardless of filters.
    """
    try:
        logs = (
            db.query(SleepLog)
            .filter(SleepLog.user_id == user.id)
            .order_by(SleepLog.date.desc())
            .all()
        )

        entries = [sleep_log_to_entry(log) for log in logs]
        entries = filter_entries_by_date_range(entries, date_from, date_to)
        entries = filter_entries_by_rating(entries, min_rating, max_rating)
        if month:
            year, month_num = parse_month(month)
            entries = filter_entries_by_month(entries, year, month_num)
        if search:
            entries = search_entries_by_comment(entries, search)

        # Dates are unique per user
        kept = {entry.date for entry in entries}

        return {
            "entries": [log.to_dict() for log in logs if log.date in kept],
            "avg7": recent_average(db, user, 7),
            "avg30": recent_average(db, user, 30),
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        logger.error(f"Failed to load entries for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error al cargar los registros")


@router.post("")
def save_entry(
    form: SleepEntryForm,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Save the entry for a date.

    One entry per user and date: saving a date that already has an entry
    replaces it. Sleep duration is computed when both times are given.
    """
    try:
        log, created = upsert_entry(db, user, form)
    except SQLAlchemyError as e:
        logger.error(f"Failed to save entry for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error al guardar el registro")

    logger.info(f"{'Created' if created else 'Updated'} entry {log.date} for user {user.id}")
    return {"success": True, "created": created, "entry": log.to_dict()}


@router.get("/export.csv")
def export_entries(
    ids: Optional[list[int]] = Query(None, description="Only export these entry ids"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Download entries as CSV, newest first."""
    try:
        query = db.query(SleepLog).filter(SleepLog.user_id == user.id)
        if ids:
            query = query.filter(SleepLog.id.in_(ids))
        logs = query.order_by(SleepLog.date.desc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to export entries for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error al exportar los registros")

    return Response(
        content=entries_to_csv(log.to_dict() for log in logs),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={EXPORT_FILENAME}"},
    )


@router.post("/bulk-delete")
def bulk_delete_entries(
    request: BulkDeleteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete several of the user's entries at once. Ids of other users are ignored."""
    if not request.ids:
        return {"deleted": 0}

    try:
        deleted = (
            db.query(SleepLog)
            .filter(SleepLog.user_id == user.id, SleepLog.id.in_(request.ids))
            .delete(synchronize_session=False)
        )
    except SQLAlchemyError as e:
        logger.error(f"Bulk delete failed for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar los registros")

    logger.info(f"Deleted {deleted} entries for user {user.id}")
    return {"deleted": deleted}


@router.delete("/{entry_id}")
def delete_entry(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete one entry. 404 if it doesn't exist or belongs to someone else."""
    try:
        log = (
            db.query(SleepLog)
            .filter(SleepLog.id == entry_id, SleepLog.user_id == user.id)
            .first()
        )
        if log is None:
            raise HTTPException(status_code=404, detail="Registro no encontrado")
        db.delete(log)
        db.flush()
    except SQLAlchemyError as e:
        logger.error(f"Failed to delete entry {entry_id}: {e}")
        raise HTTPException(status_code=500, detail="Error al eliminar el registro")

    logger.info(f"Deleted entry {entry_id} for user {user.id}")
    return {"success": True}
