"""
Attendance Module

Daily attendance marks and the earnings they imply for daily-rated
workers. Earnings computed here are posted to the worker ledger by
WorkerLedgerAccount.post_attendance_earnings.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from ..config import load_config
from ..exceptions import ValidationError
from ..hierarchy import OrgHierarchy
from ..kinds import ATTENDANCE
from ..money import ZERO, parse_date, parse_datetime, quantize, to_decimal
from ..permissions import Actor, PermissionTable
from ..repository import Repository

logger = logging.getLogger(__name__)


class AttendanceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half_day"
    LEAVE = "leave"


@dataclass
class Attendance:
    """One worker's attendance at a site on a day."""

    id: str
    worker_id: str
    site_id: str
    date: date
    status: AttendanceStatus = AttendanceStatus.PRESENT
    hours_worked: Decimal = Decimal("8")
    overtime: Decimal = Decimal("0")
    notes: str | None = None
    marked_by: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "worker_id": self.worker_id,
            "site_id": self.site_id,
            "date": self.date.isoformat(),
            "status": self.status.value,
            "hours_worked": str(self.hours_worked),
            "overtime": str(self.overtime),
            "notes": self.notes,
            "marked_by": self.marked_by,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Attendance":
        return cls(
            id=data["id"],
            worker_id=data["worker_id"],
            site_id=data["site_id"],
            date=parse_date(data["date"]),
            status=AttendanceStatus(data.get("status", "present")),
            hours_worked=Decimal(str(data.get("hours_worked", 8))),
            overtime=Decimal(str(data.get("overtime") or 0)),
            notes=data.get("notes"),
            marked_by=data.get("marked_by"),
            created_at=parse_datetime(data.get("created_at")) or datetime.now(),
        )


@dataclass
class EarningsSummary:
    """Attendance totals and the salary they earn."""

    daily_rate: Decimal
    present_days: int = 0
    half_days: int = 0
    absent_days: int = 0
    leave_days: int = 0
    effective_days: Decimal = ZERO
    overtime_hours: Decimal = ZERO
    base_salary: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    total_earned: Decimal = ZERO

    @property
    def total_records(self) -> int:
        return self.present_days + self.half_days + self.absent_days + self.leave_days

    def to_dict(self) -> dict:
        return {
            "daily_rate": str(self.daily_rate),
            "total_records": self.total_records,
            "present_days": self.present_days,
            "half_days": self.half_days,
            "absent_days": self.absent_days,
            "leave_days": self.leave_days,
            "effective_days": str(self.effective_days),
            "overtime_hours": str(self.overtime_hours),
            "base_salary": str(self.base_salary),
            "overtime_pay": str(self.overtime_pay),
            "total_earned": str(self.total_earned),
        }


def daily_earning(
    status: AttendanceStatus | str,
    overtime: Any,
    daily_rate: Any,
    standard_hours: Any = 8,
) -> Decimal:
    """Earning for a single attendance mark.

    present earns the daily rate, half_day half of it, absent and leave
    nothing. Overtime hours are paid at daily_rate / standard_hours.
    """
    base, overtime_pay = _earning_parts(status, overtime, daily_rate, standard_hours)
    return base + overtime_pay


def _earning_parts(status, overtime, daily_rate, standard_hours) -> tuple[Decimal, Decimal]:
    # Rounded per record: summarize() totals equal the sum of daily_earning()
    status = AttendanceStatus(status)
    rate = to_decimal(daily_rate, "daily_rate")
    hours = Decimal(str(standard_hours))

    if status == AttendanceStatus.PRESENT:
        base = rate
    elif status == AttendanceStatus.HALF_DAY:
        base = rate / 2
    else:
        base = ZERO

    overtime_pay = to_decimal(overtime or 0, "overtime") * rate / hours
    return quantize(base), quantize(overtime_pay)


def summarize(
    records: Iterable[Attendance],
    daily_rate: Any,
    standard_hours: Any = 8,
) -> EarningsSummary:
    """Aggregate attendance records into an earnings summary.

    Args:
        records: Attendance records
        daily_rate: Worker's daily rate
        standard_hours: Hours in a standard working day

    Returns:
        EarningsSummary
    """
    rate = to_decimal(daily_rate, "daily_rate")
    summary = EarningsSummary(daily_rate=rate)

    for record in records:
        if record.status == AttendanceStatus.PRESENT:
            summary.present_days += 1
        elif record.status == AttendanceStatus.HALF_DAY:
            summary.half_days += 1
        elif record.status == AttendanceStatus.ABSENT:
            summary.absent_days += 1
        elif record.status == AttendanceStatus.LEAVE:
            summary.leave_days += 1
        summary.overtime_hours += record.overtime or ZERO

        base, overtime_pay = _earning_parts(record.status, record.overtime, rate, standard_hours)
        summary.base_salary += base
        summary.overtime_pay += overtime_pay

    summary.effective_days = summary.present_days + Decimal(summary.half_days) / 2
    summary.total_earned = summary.base_salary + summary.overtime_pay
    return summary


class AttendanceRegister:
    """Marks attendance, one record per worker, site and day."""

    def __init__(
        self,
        repository: Repository,
        hierarchy: OrgHierarchy,
        permissions: PermissionTable,
        config: dict | None = None,
        config_dir: Path | str | None = None,
    ):
        self.repository = repository
        self.hierarchy = hierarchy
        self.permissions = permissions
        self.config = config if config is not None else load_config(config_dir)
        self._load_config()

    def _load_config(self) -> None:
        self.standard_hours = Decimal(str(self.config.get("attendance", {}).get("standard_hours", 8)))

    def mark(
        self,
        actor: Actor,
        worker_id: str,
        site_id: str,
        day: date | str,
        status: str = "present",
        hours_worked: Any = 8,
        overtime: Any = 0,
        notes: str | None = None,
    ) -> Attendance:
        """Mark attendance, replacing any earlier mark for the same day.

        Args:
            actor: User marking attendance
            worker_id: Worker
            site_id: Site
            day: Attendance date
            status: present, absent, half_day or leave
            hours_worked: 0 to 24
            overtime: Overtime hours (>= 0)
            notes: Free text

        Returns:
            The stored attendance record
        """
        self.permissions.require(actor, "attendance.mark")

        try:
            status = AttendanceStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid attendance status: {status}",
                {"allowed": [s.value for s in AttendanceStatus]},
            )

        hours = to_decimal(hours_worked, "hours_worked")
        if not 0 <= hours <= 24:
            raise ValidationError("Hours worked must be between 0 and 24", {"hours_worked": str(hours)})

        extra = to_decimal(overtime or 0, "overtime")
        if extra < 0:
            raise ValidationError("Overtime cannot be negative", {"overtime": str(extra)})

        if not site_id:
            raise ValidationError("Site is required", {"site_id": site_id})

        day = parse_date(day)
        if day is None:
            raise ValidationError("Date is required", {"date": None})

        self.hierarchy.get_user(worker_id)
        if not self.permissions.is_top_role(actor.role):
            self.hierarchy.require_team_member(
                actor.user_id, worker_id, "Can only mark attendance for your team members"
            )

        with self.repository.transaction():
            existing = self.repository.find(
                ATTENDANCE, worker_id=worker_id, site_id=site_id, date=day.isoformat()
            )

            if existing:
                record = Attendance.from_dict(existing[0])
                record.status = status
                record.hours_worked = hours
                record.overtime = extra
                record.notes = notes
                record.marked_by = actor.user_id
                self.repository.update(ATTENDANCE, record.id, record.to_dict())
            else:
                record = Attendance(
                    id=uuid.uuid4().hex,
                    worker_id=worker_id,
                    site_id=site_id,
                    date=day,
                    status=status,
                    hours_worked=hours,
                    overtime=extra,
                    notes=notes,
                    marked_by=actor.user_id,
                )
                self.repository.insert(ATTENDANCE, record.id, record.to_dict())

        logger.info(f"Attendance {record.date} for {worker_id} at {site_id}: {status.value}")
        return record

    def records(
        self,
        worker_id: str,
        start: date | None = None,
        end: date | None = None,
        site_id: str | None = None,
    ) -> list[Attendance]:
        """Attendance records for a worker, oldest first."""
        filters: dict[str, Any] = {"worker_id": worker_id}
        if site_id:
            filters["site_id"] = site_id

        start = parse_date(start)
        end = parse_date(end)

        records = []
        for data in self.repository.find(ATTENDANCE, **filters):
            record = Attendance.from_dict(data)
            if start and record.date < start:
                continue
            if end and record.date > end:
                continue
            records.append(record)

        records.sort(key=lambda r: (r.date, r.site_id))
        return records

    def summary(
        self,
        worker_id: str,
        start: date | None = None,
        end: date | None = None,
        site_id: str | None = None,
        daily_rate: Any = None,
    ) -> EarningsSummary:
        """Earnings summary for a worker over a date range.

        Uses the worker's profile daily rate unless one is given.
        """
        if daily_rate is None:
            daily_rate = self.hierarchy.get_user(worker_id).daily_rate or ZERO

        return summarize(
            self.records(worker_id, start, end, site_id),
            daily_rate,
            self.standard_hours,
        )
