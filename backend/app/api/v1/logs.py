from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_read_access, require_write_access
from app.models.account import Account
from app.models.log_entry import LogEntry
from app.services.consistency import store_errors, unit_of_work

router = APIRouter()


class LogEntryIn(BaseModel):
    entry_time: datetime
    site: str | None = Field(default=None, max_length=200)
    location: str | None = Field(default=None, max_length=200)
    max_depth: float | None = Field(default=None, ge=0)
    bottom_time: int | None = Field(default=None, ge=0)
    notes: str | None = None


class LogEntryOut(BaseModel):
    id: int
    entry_time: datetime
    site: str | None
    location: str | None
    max_depth: float | None
    bottom_time: int | None
    notes: str | None

    class Config:
        from_attributes = True


def _get_entry(db: Session, owner: Account, entry_id: int) -> LogEntry:
    with store_errors():
        entry = db.execute(
            select(LogEntry).where(LogEntry.id == entry_id, LogEntry.account_id == owner.id)
        ).scalars().one_or_none()
    if not entry:
        raise HTTPException(status_code=404, detail="Log entry not found")
    return entry


@router.get("/users/{username}/logs", response_model=list[LogEntryOut])
def list_log_entries(
    owner: Account = Depends(require_read_access),
    db: Session = Depends(get_db),
    limit: int = Query(100, ge=1, le=500),
):
    with store_errors():
        return db.execute(
            select(LogEntry)
            .where(LogEntry.account_id == owner.id)
            .order_by(LogEntry.entry_time.desc(), LogEntry.id.desc())
            .limit(limit)
        ).scalars().all()


@router.post("/users/{username}/logs", response_model=LogEntryOut, status_code=201)
def create_log_entry(
    payload: LogEntryIn,
    owner: Account = Depends(require_write_access),
    db: Session = Depends(get_db),
):
    entry = LogEntry(account_id=owner.id, **payload.model_dump())
    with unit_of_work(db, "Log entry already exists"):
        db.add(entry)
    with store_errors():
        db.refresh(entry)
    return entry


@router.get("/users/{username}/logs/{entry_id}", response_model=LogEntryOut)
def get_log_entry(
    entry_id: int,
    owner: Account = Depends(require_read_access),
    db: Session = Depends(get_db),
):
    return _get_entry(db, owner, entry_id)


@router.delete("/users/{username}/logs/{entry_id}", status_code=204)
def delete_log_entry(
    entry_id: int,
    owner: Account = Depends(require_write_access),
    db: Session = Depends(get_db),
):
    entry = _get_entry(db, owner, entry_id)
    with unit_of_work(db, "Log entry was changed concurrently"):
        db.delete(entry)
    return Response(status_code=204)
