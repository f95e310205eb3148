from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, text
from datetime import datetime

from app.database import get_session

router = APIRouter()

@router.get("/check")
def health_check(request: Request, session: Session = Depends(get_session)):
    db_status = "ok"

    try:
        # simple DB ping
        session.exec(text("SELECT 1"))
    except Exception:
        db_status = "failed"

    gateway_status = "ok" if getattr(request.app.state, "purchase_service", None) else "missing"

    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "database": db_status,
        "gateway": gateway_status,
        "timestamp": datetime.utcnow().isoformat()
    }
