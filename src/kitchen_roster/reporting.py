"""
Reporting Module for Kitchen Roster

Per-staff monthly shift and leave statistics with over-quota flags, and the
month's holiday coverage report, as pandas DataFrames plus a text summary
for the command line.
"""

import calendar
import logging
from typing import Dict, List, Optional

import pandas as pd

from .data_manager import (
    DataManager,
    Holiday,
    LEAVE_CODES,
    LEAVE_NATIONAL,
    LEAVE_PERSONAL,
    LEAVE_REGULAR,
    MonthConfig,
    SHIFT_EVENING,
    SHIFT_FULL,
    SHIFT_MORNING,
    Schedule,
    Shift,
    Staff,
)
from .rule_check import check_month_coverage, find_holiday, working_staff
from .scheduler_logic import parse_month_key

logger = logging.getLogger(__name__)

# Display order by title (lower sorts first)
TITLE_WEIGHTS = {
    "Chef": 1,
    "Sous chef": 2,
    "CDP": 3,
    "Demi CDP": 4,
    "Commis": 5,
    "Inter": 6,
    "PT": 7,
}
UNKNOWN_TITLE_WEIGHT = 99

SUMMARY_CODES = (SHIFT_MORNING, SHIFT_EVENING, SHIFT_FULL) + LEAVE_CODES
QUOTA_COLUMNS = {
    LEAVE_REGULAR: "regular_quota",
    LEAVE_PERSONAL: "leave_quota",
    LEAVE_NATIONAL: "national_quota",
}


def sort_staff(staff_list: List[Staff]) -> List[Staff]:
    """Order staff by title weight, then id"""
    return sorted(staff_list, key=lambda s: (TITLE_WEIGHTS.get(s.title, UNKNOWN_TITLE_WEIGHT), s.id))


def count_shifts(schedule: Schedule, month: str, staff_id: str) -> Dict[str, int]:
    """Count each shift code for one staff member in a month"""
    counts = {code: 0 for code in SUMMARY_CODES}
    for raw in schedule.get(month, {}).get(staff_id, {}).values():
        shift = Shift.coerce(raw)
        if shift is not None and shift.value in counts:
            counts[shift.value] += 1
    return counts


def build_leave_summary(schedule: Schedule, staff_list: List[Staff], month: str,
                        month_config: MonthConfig) -> pd.DataFrame:
    """One row per staff member with shift counts, quotas and an over-quota flag"""
    parse_month_key(month)
    rows = []
    for staff in sort_staff(staff_list):
        counts = count_shifts(schedule, month, staff.id)
        row = {
            "staff_id": staff.id,
            "name": staff.name,
            "title": staff.title,
        }
        row.update(counts)
        for code, column in QUOTA_COLUMNS.items():
            row[column] = month_config.limit_for(code)
        row["over_quota"] = any(counts[code] > month_config.limit_for(code) for code in LEAVE_CODES)
        rows.append(row)

    columns = ["staff_id", "name", "title"] + list(SUMMARY_CODES) + list(QUOTA_COLUMNS.values()) + ["over_quota"]
    return pd.DataFrame(rows, columns=columns)


def build_coverage_report(schedule: Schedule, staff_list: List[Staff], month: str,
                          holidays: List[Holiday]) -> pd.DataFrame:
    """One row per date of the month with the holiday check outcome"""
    results = check_month_coverage(month, schedule, staff_list, holidays)
    rows = []
    for date_str, result in results.items():
        holiday = find_holiday(date_str, holidays)
        rows.append({
            "date": date_str,
            "holiday": holiday.name if holiday else "",
            "day_off": bool(holiday and holiday.is_day_off),
            "working": len(working_staff(date_str, schedule, staff_list)),
            "passed": result.passed,
            "reason": result.reason.name if result.reason else "",
        })
    return pd.DataFrame(rows, columns=["date", "holiday", "day_off", "working", "passed", "reason"])


class ReportGenerator:
    """Builds reports from the stored roster snapshot"""

    def __init__(self, data_manager: DataManager):
        self.data_manager = data_manager

    def leave_summary(self, month: str) -> pd.DataFrame:
        return build_leave_summary(
            self.data_manager.get_schedules(),
            self.data_manager.get_staff_list(),
            month,
            self.data_manager.get_month_config(month)
        )

    def coverage_report(self, month: str) -> pd.DataFrame:
        return build_coverage_report(
            self.data_manager.get_schedules(),
            self.data_manager.get_staff_list(),
            month,
            self.data_manager.get_holidays()
        )

    def failing_dates(self, month: str) -> pd.DataFrame:
        report = self.coverage_report(month)
        return report[~report["passed"]].reset_index(drop=True)

    def create_dashboard_summary(self, month: str, summary: Optional[pd.DataFrame] = None) -> str:
        """Create text summary for command line display"""
        year, month_num = parse_month_key(month)
        if summary is None:
            summary = self.leave_summary(month)
        failures = self.failing_dates(month)
        config = self.data_manager.get_month_config(month)

        lines = [
            f"ROSTER SUMMARY - {calendar.month_name[month_num]} {year}",
            "",
            f"Leave quotas: {LEAVE_REGULAR} {config.regular} / {LEAVE_PERSONAL} {config.leave} / "
            f"{LEAVE_NATIONAL} {config.national}",
            f"Staff: {len(summary)}",
            f"Over quota: {int(summary['over_quota'].sum()) if not summary.empty else 0}",
            f"Holiday coverage failures: {len(failures)}",
        ]

        over = summary[summary["over_quota"]] if not summary.empty else summary
        for _, row in over.iterrows():
            lines.append(
                f"  • {row['name']} ({row['staff_id']}): "
                f"{LEAVE_REGULAR} {row[LEAVE_REGULAR]}/{row['regular_quota']}, "
                f"{LEAVE_PERSONAL} {row[LEAVE_PERSONAL]}/{row['leave_quota']}, "
                f"{LEAVE_NATIONAL} {row[LEAVE_NATIONAL]}/{row['national_quota']}"
            )
        for _, row in failures.iterrows():
            lines.append(f"  • {row['date']} {row['holiday']}: {row['reason']}")

        return "\n".join(lines)
