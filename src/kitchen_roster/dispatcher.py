"""
Command dispatcher for automatic leave generation.

UI and CLI code build a command object naming the month and who to schedule
("all staff", one staff member, or one group's members) and hand it to
CommandDispatcher, which loads the snapshot, runs the engine and stores the
returned schedule.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from .data_manager import DataManager
from .scheduler_logic import (
    AutoLeaveResult,
    InvalidArgumentError,
    LeaveScheduler,
    SchedulingError,
    parse_month_key,
)

logger = logging.getLogger(__name__)


class UnknownCommandError(SchedulingError):
    """Raised when no handler is registered for a command type"""
    pass


@dataclass(frozen=True)
class GenerateForAllStaff:
    month: str


@dataclass(frozen=True)
class GenerateForStaff:
    month: str
    staff_id: str


@dataclass(frozen=True)
class GenerateForGroup:
    month: str
    group_id: str


Command = Union[GenerateForAllStaff, GenerateForStaff, GenerateForGroup]


def scheduler_from_settings(data_manager: DataManager) -> LeaveScheduler:
    """Build the engine from the stored settings (seed and coverage mode)"""
    seed = data_manager.get_setting("randomSeed")
    rng = random.Random(seed) if seed is not None else random.Random()
    return LeaveScheduler(
        rng=rng,
        count_unassigned=bool(data_manager.get_setting("countUnassignedAsWorking", False))
    )


class CommandDispatcher:
    """Routes leave-generation commands to the engine"""

    def __init__(self, data_manager: DataManager, scheduler: Optional[LeaveScheduler] = None,
                 persist: bool = True):
        self.data_manager = data_manager
        self.scheduler = scheduler if scheduler is not None else scheduler_from_settings(data_manager)
        self.persist = persist
        self._target_resolvers: Dict[type, Callable[..., List[str]]] = {
            GenerateForAllStaff: self._targets_all,
            GenerateForStaff: self._targets_staff,
            GenerateForGroup: self._targets_group,
        }

    def dispatch(self, command: Command) -> AutoLeaveResult:
        resolver = self._target_resolvers.get(type(command))
        if resolver is None:
            raise UnknownCommandError(f"No handler for command {type(command).__name__}")

        parse_month_key(command.month)
        target_staff_ids = resolver(command)
        logger.info(f"Dispatching {type(command).__name__} for {command.month} "
                    f"({len(target_staff_ids)} staff)")

        result = self.scheduler.generate(
            self.data_manager.get_schedules(),
            self.data_manager.get_staff_list(),
            self.data_manager.get_groups(),
            self.data_manager.get_month_config(command.month),
            target_staff_ids,
            command.month
        )

        self.data_manager.save_schedules(result.schedule)
        self.data_manager.set_setting("lastUsedMonth", command.month)
        if self.persist:
            self.data_manager.save_data()
        return result

    def _targets_all(self, command: GenerateForAllStaff) -> List[str]:
        return [staff.id for staff in self.data_manager.get_staff_list()]

    def _targets_staff(self, command: GenerateForStaff) -> List[str]:
        if self.data_manager.get_staff_by_id(command.staff_id) is None:
            raise InvalidArgumentError(f"Unknown staff id: {command.staff_id}")
        return [command.staff_id]

    def _targets_group(self, command: GenerateForGroup) -> List[str]:
        group = self.data_manager.get_group_by_id(command.group_id)
        if group is None:
            raise InvalidArgumentError(f"Unknown group id: {command.group_id}")
        return list(group.member_ids)
