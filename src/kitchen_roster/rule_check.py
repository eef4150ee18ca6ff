"""
Holiday coverage rules for the roster display.

Read-only checks run for every date of the visible month: on statutory days
off the kitchen still needs at least two people on duty, one of them senior.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .data_manager import LEAVE_PERSONAL, LEAVE_REGULAR, Holiday, Schedule, Staff
from .scheduler_logic import count_working, day_key, days_in_month, parse_month_key

MIN_HOLIDAY_STAFF = 2
# 國 counts as on duty for the roster-wide rule
HOLIDAY_NON_WORKING_CODES = (LEAVE_PERSONAL, LEAVE_REGULAR)


class CoverageFailure(Enum):
    INSUFFICIENT_STAFF = "Fewer than two staff on duty"
    NO_SENIOR = "No chef or sous chef on duty"


@dataclass(frozen=True)
class RuleCheckResult:
    """Pass, or Fail with the first rule that was broken"""
    passed: bool
    reason: Optional[CoverageFailure] = None

    @property
    def message(self) -> str:
        return "OK" if self.passed else self.reason.value


PASS = RuleCheckResult(passed=True)


def working_staff(date_str: str, schedule: Schedule, staff_list: List[Staff]) -> List[Staff]:
    """Staff on duty on a date under the roster-wide definition"""
    month, day = date_str[:7], date_str[8:10]
    return [
        staff for staff in staff_list
        if count_working(day, [staff.id], schedule, month,
                         non_working_codes=HOLIDAY_NON_WORKING_CODES)
    ]


def has_roster_coverage(date_str: str, schedule: Schedule, staff_list: List[Staff]) -> bool:
    workers = working_staff(date_str, schedule, staff_list)
    return len(workers) >= MIN_HOLIDAY_STAFF and any(w.is_senior for w in workers)


def find_holiday(date_str: str, holidays: List[Holiday]) -> Optional[Holiday]:
    for holiday in holidays:
        if holiday.date == date_str:
            return holiday
    return None


def check_holiday_coverage(date_str: str, schedule: Schedule, staff_list: List[Staff],
                           holidays: List[Holiday]) -> RuleCheckResult:
    """Check staffing on a date; only statutory days off (isOff == "2") are checked"""
    holiday = find_holiday(date_str, holidays)
    if holiday is None or not holiday.is_day_off:
        return PASS

    workers = working_staff(date_str, schedule, staff_list)
    if len(workers) < MIN_HOLIDAY_STAFF:
        return RuleCheckResult(passed=False, reason=CoverageFailure.INSUFFICIENT_STAFF)
    if not any(w.is_senior for w in workers):
        return RuleCheckResult(passed=False, reason=CoverageFailure.NO_SENIOR)
    return PASS


def check_month_coverage(month: str, schedule: Schedule, staff_list: List[Staff],
                         holidays: List[Holiday]) -> Dict[str, RuleCheckResult]:
    """Run the holiday check for every date of a month, keyed by "YYYY-MM-DD" """
    year, month_num = parse_month_key(month)
    results = {}
    for day in days_in_month(year, month_num):
        date_str = f"{month}-{day_key(day)}"
        results[date_str] = check_holiday_coverage(date_str, schedule, staff_list, holidays)
    return results
