from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from slotbooking.auth import jwt_handler
from slotbooking.core import exceptions
from slotbooking.database import SessionLocal
from slotbooking.models.mentor import Mentor

security = HTTPBearer()


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> int:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")
    return int(subject)


def get_current_mentor_id(user_id: int = Depends(get_current_user_id)) -> int:
    db = SessionLocal()
    try:
        mentor_id = db.scalars(select(Mentor.id).where(Mentor.user_id == user_id)).first()
    except SQLAlchemyError as exc:
        raise exceptions.PersistenceError().to_http_exception() from exc
    finally:
        db.close()
    if mentor_id is None:
        raise exceptions.ForbiddenError("Only mentors can manage their slots.").to_http_exception()
    return mentor_id
