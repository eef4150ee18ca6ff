"""
Scheduler Logic for Kitchen Roster

Implements the automatic leave allocation engine: quota tracking, group
coverage checks, the mandatory rest rule and randomized fill-in of the
remaining leave days.
"""

from datetime import date
from typing import Dict, List, Optional, Tuple, Iterable
from dataclasses import dataclass, field
import calendar
import logging
import random
import re
import time

from .data_manager import (
    Group,
    LEAVE_CODES,
    LEAVE_NATIONAL,
    LEAVE_PERSONAL,
    LEAVE_REGULAR,
    MonthConfig,
    Schedule,
    Shift,
    Staff,
    schedule_from_dict,
)

logger = logging.getLogger(__name__)

MONTH_KEY_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

# Consecutive working days after which a rest day is forced
MAX_CONSECUTIVE_WORK_DAYS = 6
# Longest run of auto-assigned leave days the fill-in may create
MAX_CONSECUTIVE_AUTO_LEAVE = 2


class SchedulingError(Exception):
    """Base exception for scheduling operations"""
    pass


class InvalidArgumentError(SchedulingError, ValueError):
    """Raised when a caller passes a malformed month or unknown reference"""
    pass


def parse_month_key(month_key: str) -> Tuple[int, int]:
    """Split "YYYY-MM" into (year, month)"""
    match = MONTH_KEY_PATTERN.match(month_key or "")
    if not match:
        raise InvalidArgumentError(f"Invalid month key: {month_key!r} (expected YYYY-MM)")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidArgumentError(f"Invalid month in key: {month_key!r}")
    return year, month


def days_in_month(year: int, month: int) -> List[date]:
    """Ordered calendar days of the given month"""
    if not 1 <= month <= 12:
        raise InvalidArgumentError(f"Month must be 1-12, got {month}")
    num_days = calendar.monthrange(year, month)[1]
    return [date(year, month, day) for day in range(1, num_days + 1)]


def day_key(day: date) -> str:
    return f"{day.day:02d}"


def get_shift(schedule: Schedule, month: str, staff_id: str, day: str) -> Optional[Shift]:
    return Shift.coerce(schedule.get(month, {}).get(staff_id, {}).get(day))


def find_group(staff_id: str, groups: Iterable[Group]) -> Optional[Group]:
    """First group listing the staff member, None when ungrouped"""
    for group in groups:
        if staff_id in group.member_ids:
            return group
    return None


@dataclass
class LeaveQuota:
    """Remaining leave allowance per category; values may go negative"""
    regular: int
    leave: int
    national: int

    def remaining(self, code: str) -> int:
        if code == LEAVE_REGULAR:
            return self.regular
        if code == LEAVE_PERSONAL:
            return self.leave
        if code == LEAVE_NATIONAL:
            return self.national
        raise ValueError(f"Not a leave code: {code!r}")

    def available(self, code: str) -> bool:
        return self.remaining(code) > 0

    def consume(self, code: str):
        if code == LEAVE_REGULAR:
            self.regular -= 1
        elif code == LEAVE_PERSONAL:
            self.leave -= 1
        elif code == LEAVE_NATIONAL:
            self.national -= 1
        else:
            raise ValueError(f"Not a leave code: {code!r}")


def remaining_quota(staff_id: str, month: str, schedule: Schedule,
                    month_config: MonthConfig) -> LeaveQuota:
    """Month quota minus the manual leave days already entered for the staff member"""
    manual_counts = {code: 0 for code in LEAVE_CODES}
    for raw in schedule.get(month, {}).get(staff_id, {}).values():
        shift = Shift.coerce(raw)
        if shift is not None and shift.is_manual and shift.is_leave:
            manual_counts[shift.value] += 1

    return LeaveQuota(
        regular=month_config.regular - manual_counts[LEAVE_REGULAR],
        leave=month_config.leave - manual_counts[LEAVE_PERSONAL],
        national=month_config.national - manual_counts[LEAVE_NATIONAL]
    )


def count_working(day: str, member_ids: Iterable[str], schedule: Schedule, month: str,
                  non_working_codes: Iterable[str] = LEAVE_CODES,
                  exclude_staff_id: Optional[str] = None,
                  count_unassigned: bool = False) -> int:
    """
    Count members considered working on a day.

    A member works when their shift is non-empty and not one of
    non_working_codes. With count_unassigned, an empty day also counts
    (the member is still available to be given a shift).
    """
    non_working = set(non_working_codes)
    working = 0
    for member_id in member_ids:
        if member_id == exclude_staff_id:
            continue
        shift = get_shift(schedule, month, member_id, day)
        if shift is None or shift.is_empty:
            if count_unassigned:
                working += 1
            continue
        if shift.value not in non_working:
            working += 1
    return working


def has_minimum_coverage(day: str, exclude_staff_id: Optional[str], group: Optional[Group],
                         schedule: Schedule, month: str, count_unassigned: bool = False) -> bool:
    """
    Check the group keeps its minimum headcount on a day if exclude_staff_id
    takes leave. Ungrouped staff and groups without a minimum always pass.
    """
    if group is None or not group.min_staff_count:
        return True

    working = count_working(
        day, group.member_ids, schedule, month,
        exclude_staff_id=exclude_staff_id,
        count_unassigned=count_unassigned
    )
    return working >= group.min_staff_count


class SchedulingContext:
    """
    Per-staff working state for one engine run: the staff member's day map
    inside the working schedule, their remaining quota and group.
    """

    def __init__(self, staff_id: str, month: str, schedule: Schedule,
                 quota: LeaveQuota, group: Optional[Group], count_unassigned: bool = False):
        self.staff_id = staff_id
        self.month = month
        self.schedule = schedule
        self.staff_days: Dict[str, Shift] = schedule.setdefault(month, {}).setdefault(staff_id, {})
        self.quota = quota
        self.group = group
        self.count_unassigned = count_unassigned
        self.assigned: Dict[str, int] = {code: 0 for code in LEAVE_CODES}

    def is_empty(self, day: str) -> bool:
        return day not in self.staff_days

    def is_auto_leave(self, day: str) -> bool:
        shift = self.staff_days.get(day)
        return shift is not None and not shift.is_manual and shift.is_leave

    def auto_leave_run_through(self, day: str) -> int:
        """
        Length of the run of auto-assigned leave that would contain day if it
        were assigned now, counting neighbours on both sides.
        """
        day_num = int(day)
        run = 1
        for step in (-1, 1):
            offset = step
            while self.is_auto_leave(f"{day_num + offset:02d}"):
                run += 1
                offset += step
        return run

    def assign_leave(self, day: str, code: str) -> bool:
        """Assign leave if quota, an empty day and group coverage all allow it"""
        if not self.quota.available(code) or not self.is_empty(day):
            return False
        if not has_minimum_coverage(day, self.staff_id, self.group, self.schedule,
                                    self.month, self.count_unassigned):
            return False

        self.staff_days[day] = Shift(value=code, is_manual=False)
        self.quota.consume(code)
        self.assigned[code] += 1
        return True

    def assign_any_leave(self, day: str) -> Optional[str]:
        for code in LEAVE_CODES:
            if self.assign_leave(day, code):
                return code
        return None


@dataclass
class AutoLeaveResult:
    """Result of an automatic leave run"""
    schedule: Schedule
    month: str
    assigned: Dict[str, Dict[str, int]] = field(default_factory=dict)  # {staff_id: {code: count}}
    skipped_staff_ids: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def total_assigned(self) -> int:
        return sum(sum(counts.values()) for counts in self.assigned.values())

    @property
    def message(self) -> str:
        return (f"Assigned {self.total_assigned} leave days to {len(self.assigned)} staff "
                f"for {self.month} ({len(self.skipped_staff_ids)} skipped)")


class LeaveScheduler:
    """Automatic leave allocation engine"""

    def __init__(self, rng: Optional[random.Random] = None, count_unassigned: bool = False):
        self.rng = rng if rng is not None else random.Random()
        self.count_unassigned = count_unassigned

    def generate(self, schedule: Schedule, staff_list: List[Staff], groups: List[Group],
                 month_config: MonthConfig, target_staff_ids: List[str], month: str) -> AutoLeaveResult:
        """
        Regenerate automatic leave for the target staff in one month.

        Args:
            schedule: Current schedule snapshot; never modified
            staff_list: Full roster
            groups: Staff groups with minimum headcounts
            month_config: Leave quotas for the month
            target_staff_ids: Staff to (re)compute leave for
            month: Target month "YYYY-MM"

        Returns:
            AutoLeaveResult holding the new schedule snapshot
        """
        start_time = time.time()
        year, month_num = parse_month_key(month)
        month_days = [day_key(d) for d in days_in_month(year, month_num)]

        # Structural copy; Shift is immutable so entries can be shared
        new_schedule = schedule_from_dict(schedule)
        self._reset_auto_leaves(new_schedule, target_staff_ids, month)

        staff_by_id = {staff.id: staff for staff in staff_list}
        result = AutoLeaveResult(schedule=new_schedule, month=month)

        for staff_id in target_staff_ids:
            staff = staff_by_id.get(staff_id)
            if staff is None or staff.disable_auto:
                logger.debug(f"Skipping {staff_id}: {'unknown staff id' if staff is None else 'auto disabled'}")
                result.skipped_staff_ids.append(staff_id)
                continue

            context = SchedulingContext(
                staff_id,
                month,
                new_schedule,
                remaining_quota(staff_id, month, new_schedule, month_config),
                find_group(staff_id, groups),
                self.count_unassigned
            )
            self._apply_mandatory_rest(month_days, context)
            self._fill_remaining_leave(month_days, context)
            result.assigned[staff_id] = dict(context.assigned)
            logger.debug(f"Auto leave for {staff_id} in {month}: {context.assigned}")

        result.duration = time.time() - start_time
        logger.info(f"{result.message} in {result.duration:.3f}s")
        return result

    def _reset_auto_leaves(self, schedule: Schedule, target_staff_ids: List[str], month: str):
        """Drop every non-manual entry of the target staff for the month"""
        month_data = schedule.get(month)
        if not month_data:
            return
        for staff_id in target_staff_ids:
            staff_days = month_data.get(staff_id)
            if not staff_days:
                continue
            month_data[staff_id] = {
                day: shift for day, shift in staff_days.items() if shift.is_manual
            }

    def _apply_mandatory_rest(self, month_days: List[str], context: SchedulingContext):
        """Force a leave day after six consecutive working days where possible"""
        consecutive = 0
        for index, day in enumerate(month_days):
            shift = context.staff_days.get(day)
            if shift is None or not shift.is_leave:
                consecutive += 1
            else:
                consecutive = 0

            if consecutive < MAX_CONSECUTIVE_WORK_DAYS or index + 1 >= len(month_days):
                continue

            next_day = month_days[index + 1]
            # Only days with nothing entered can be turned into rest days
            if context.is_empty(next_day) and context.assign_any_leave(next_day):
                consecutive = 0

    def _fill_remaining_leave(self, month_days: List[str], context: SchedulingContext):
        """Spread remaining quota over empty days in random order"""
        open_days = [day for day in month_days if context.is_empty(day)]
        self.rng.shuffle(open_days)

        for day in open_days:
            if context.auto_leave_run_through(day) > MAX_CONSECUTIVE_AUTO_LEAVE:
                continue
            context.assign_any_leave(day)


def generate_auto_leaves(schedule: Schedule, staff_list: List[Staff], groups: List[Group],
                         month_config: MonthConfig, target_staff_ids: List[str], month: str,
                         rng: Optional[random.Random] = None,
                         count_unassigned: bool = False) -> Schedule:
    """Regenerate automatic leave and return the new schedule snapshot"""
    scheduler = LeaveScheduler(rng=rng, count_unassigned=count_unassigned)
    return scheduler.generate(schedule, staff_list, groups, month_config, target_staff_ids, month).schedule
