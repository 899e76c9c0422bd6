"""Payroll API: weekly hours and pay per employee, as JSON or PDF."""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from fieldclock.core.database import get_db
from fieldclock.core.security import get_current_employee, is_office
from fieldclock.models.employee import Employee
from fieldclock.services.payroll_pdf import generate_payroll_pdf
from fieldclock.services.payroll_report import PayrollReportService, start_of_week

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/payroll", tags=["payroll"])


def _report(week_of: Optional[date], employee: Optional[str], current: Employee, db: Session) -> dict:
    if not is_office(current):
        # Field staff may only see their own week
        if employee and employee.strip().lower() != current.email:
            raise HTTPException(status_code=403, detail="Office access required")
        employee = current.email
    return PayrollReportService(db).weekly_report(week_of or date.today(), employee=employee)


@router.get("/weekly")
def weekly_report(
    week_of: Optional[date] = None,
    employee: Optional[str] = None,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    """Any date inside the week; weeks run Monday to Sunday."""
    return _report(week_of, employee, current_employee, db)


@router.get("/weekly/pdf")
def weekly_report_pdf(
    week_of: Optional[date] = None,
    employee: Optional[str] = None,
    current_employee: Employee = Depends(get_current_employee),
    db: Session = Depends(get_db),
):
    report = _report(week_of, employee, current_employee, db)
    pdf_bytes = generate_payroll_pdf(report)

    week_start = start_of_week(week_of or date.today())
    filename = f"Payroll_{week_start:%Y-%m-%d}.pdf"
    logger.info(f"Payroll PDF for {week_start:%Y-%m-%d} generated for {current_employee.email}")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
