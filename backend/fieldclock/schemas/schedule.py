from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class ScheduleBase(BaseModel):
    title: str
    from_date: datetime
    to_date: Optional[datetime] = None
    customer_name: Optional[str] = None
    estimate: Optional[str] = None
    job_location: Optional[str] = None
    project_manager: Optional[str] = None
    foreman_name: Optional[str] = None
    description: Optional[str] = None
    certified_payroll: bool = False
    per_diem: bool = False


class ScheduleCreate(ScheduleBase):
    id: Optional[str] = None
