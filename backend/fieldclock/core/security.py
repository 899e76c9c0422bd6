"""Bearer-token identity for API routes.

Tokens are HS256 JWTs whose ``sub`` is the employee email. There is no
password store here; tokens are minted by ``create_access_token`` (login
service, ``init_db.py``, tests).
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from fieldclock.core.config import settings
from fieldclock.core.database import get_db
from fieldclock.core.errors import IdentityMissing
from fieldclock.models.employee import Employee

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

OFFICE_ROLES = ("admin", "office")
CREW_LEAD_ROLES = OFFICE_ROLES + ("foreman",)


def create_access_token(email: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": email, "exp": expire}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the email in ``sub``, or None if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected token: {e}")
        return None
    email = payload.get("sub")
    return email.strip().lower() if isinstance(email, str) and email.strip() else None


def get_current_employee(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Employee:
    if credentials is None:
        raise IdentityMissing()

    email = decode_access_token(credentials.credentials)
    if not email:
        raise IdentityMissing()

    employee = db.query(Employee).filter(Employee.email == email).first()
    if not employee or not employee.is_active:
        raise IdentityMissing()
    return employee


def is_office(employee: Employee) -> bool:
    return (employee.role or "").lower() in OFFICE_ROLES
