from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from fieldclock.core.database import Base
import enum


class EmployeeRole(str, enum.Enum):
    ADMIN = "admin"
    OFFICE = "office"
    FOREMAN = "foreman"
    FIELD = "field"


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    role = Column(String, default="field", nullable=False)
    is_active = Column(Boolean, default=True)

    classification = Column(String, nullable=True)
    company_position = Column(String, nullable=True)

    # Pay rates; copied onto timesheet records when they are created or edited
    hourly_rate_site = Column(Numeric(8, 2), nullable=True)
    hourly_rate_drive = Column(Numeric(8, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    @property
    def full_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
