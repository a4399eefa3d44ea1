from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db import get_db
from app.deps.actor import get_client_key, get_reset_limiter
from app.schemas.user import ResetRequest
from app.services.password_reset_service import request_password_reset


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/resets", status_code=202)
def request_reset(
    payload: ResetRequest,
    client_key: str = Depends(get_client_key),
    limiter=Depends(get_reset_limiter),
    db: Session = Depends(get_db),
):
    token = request_password_reset(db, payload.utorid, client_key, limiter)
    db.commit()
    # token delivery (email) happens outside this service
    return {"expiresAt": token.expires_at.isoformat(), "resetToken": token.token}
