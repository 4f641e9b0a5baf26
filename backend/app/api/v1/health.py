from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.services.consistency import store_errors

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)):
    with store_errors():
        db.execute(text("SELECT 1"))
    return {"ok": True}
