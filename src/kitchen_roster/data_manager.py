"""
Data Manager for Kitchen Roster

Handles JSON persistence of the roster snapshot: staff, groups, holidays,
monthly leave quotas, schedules and application settings. The leave engine
never touches this module directly; callers load a snapshot from here, run
the engine and store the returned schedule back.
"""

import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


logger = logging.getLogger(__name__)

# Shift codes
SHIFT_MORNING = "早"
SHIFT_EVENING = "晚"
SHIFT_FULL = "全"
LEAVE_REGULAR = "例"
LEAVE_PERSONAL = "休"
LEAVE_NATIONAL = "國"

WORK_CODES = (SHIFT_MORNING, SHIFT_EVENING, SHIFT_FULL)
# Order matters: this is the order the engine tries leave categories in
LEAVE_CODES = (LEAVE_REGULAR, LEAVE_PERSONAL, LEAVE_NATIONAL)
SHIFT_CODES = ("",) + WORK_CODES + LEAVE_CODES

SENIOR_TITLE_MARKERS = ("Chef", "Sous")


class DataManagerError(Exception):
    """Base exception for DataManager operations"""
    pass


class DataFileCorruptedError(DataManagerError):
    """Raised when the data file is corrupted"""
    pass


class DataFileNotFoundError(DataManagerError):
    """Raised when the data file is not found"""
    pass


class DataSaveError(DataManagerError):
    """Raised when saving data fails"""
    pass


class DataValidationError(DataManagerError):
    """Raised when data validation fails"""
    pass


@dataclass(frozen=True)
class Shift:
    """A single day's entry for one staff member"""
    value: str = ""
    is_manual: bool = False

    @property
    def is_leave(self) -> bool:
        return self.value in LEAVE_CODES

    @property
    def is_empty(self) -> bool:
        return not self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "isManual": self.is_manual}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Shift':
        is_manual = data.get("isManual", data.get("is_manual", False))
        return cls(value=data.get("value", "") or "", is_manual=bool(is_manual))

    @classmethod
    def coerce(cls, raw: Union['Shift', Dict[str, Any], str, None]) -> Optional['Shift']:
        """Accept a Shift, its dict form, or a legacy bare value string"""
        if raw is None or isinstance(raw, Shift):
            return raw
        if isinstance(raw, dict):
            return cls.from_dict(raw)
        if isinstance(raw, str):
            # Old format: plain value typed in by hand
            return cls(value=raw, is_manual=True)
        raise DataValidationError(f"Unsupported shift entry: {raw!r}")


# {month "YYYY-MM": {staff_id: {day "DD": Shift}}}
Schedule = Dict[str, Dict[str, Dict[str, Shift]]]


@dataclass(frozen=True)
class MonthConfig:
    """Maximum leave days of each category per staff member for one month"""
    regular: int = 8
    leave: int = 2
    national: int = 1

    def limit_for(self, code: str) -> int:
        if code == LEAVE_REGULAR:
            return self.regular
        if code == LEAVE_PERSONAL:
            return self.leave
        if code == LEAVE_NATIONAL:
            return self.national
        raise ValueError(f"Not a leave code: {code!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"regular": self.regular, "leave": self.leave, "national": self.national}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MonthConfig':
        return cls(
            regular=int(data.get("regular", DEFAULT_MONTH_CONFIG.regular)),
            leave=int(data.get("leave", DEFAULT_MONTH_CONFIG.leave)),
            national=int(data.get("national", DEFAULT_MONTH_CONFIG.national))
        )


DEFAULT_MONTH_CONFIG = MonthConfig()


@dataclass
class Staff:
    """Kitchen staff member"""
    id: str
    name: str
    title: str = ""
    disable_auto: bool = False  # manual-only, skipped by the leave engine

    @property
    def is_senior(self) -> bool:
        return any(marker in self.title for marker in SENIOR_TITLE_MARKERS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "disableAuto": self.disable_auto
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Staff':
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            title=data.get("title", ""),
            disable_auto=bool(data.get("disableAuto", False))
        )


@dataclass
class Group:
    """Staff group with a minimum on-duty headcount"""
    id: str
    name: str
    member_ids: List[str] = field(default_factory=list)
    min_staff_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "memberIds": list(self.member_ids),
            "minStaffCount": self.min_staff_count
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Group':
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            member_ids=[str(m) for m in data.get("memberIds", [])],
            min_staff_count=int(data.get("minStaffCount") or 0)
        )


class HolidayType(Enum):
    NATIONAL = "NATIONAL"
    WEEKEND = "WEEKEND"
    MANUAL = "MANUAL"


@dataclass
class Holiday:
    """Calendar holiday; is_off == "2" marks a statutory day off"""
    date: str
    name: str
    is_off: str = "0"
    type: HolidayType = HolidayType.MANUAL

    @property
    def is_day_off(self) -> bool:
        return self.is_off == "2"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "name": self.name,
            "isOff": self.is_off,
            "type": self.type.value
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Holiday':
        return cls(
            date=data["date"],
            name=data.get("name", ""),
            is_off=str(data.get("isOff", "0")),
            type=HolidayType(data.get("type", HolidayType.MANUAL.value))
        )


def schedule_from_dict(raw: Dict[str, Any]) -> Schedule:
    """Convert a JSON schedule mapping into Shift objects, dropping empty slots"""
    schedule: Schedule = {}
    for month, month_data in (raw or {}).items():
        schedule[month] = {}
        for staff_id, days in (month_data or {}).items():
            staff_days = {}
            for day, entry in (days or {}).items():
                shift = Shift.coerce(entry)
                if shift is not None:
                    staff_days[day] = shift
            schedule[month][staff_id] = staff_days
    return schedule


def schedule_to_dict(schedule: Schedule) -> Dict[str, Any]:
    """Convert a schedule of Shift objects into its JSON form"""
    return {
        month: {
            staff_id: {day: Shift.coerce(shift).to_dict() for day, shift in days.items()}
            for staff_id, days in month_data.items()
        }
        for month, month_data in schedule.items()
    }


class DataManager:
    """Manages roster persistence and CRUD operations"""

    def __init__(self, data_file: str = "data/roster_data.json"):
        if data_file == "data/roster_data.json":
            # Use path relative to the package directory
            data_file = Path(__file__).parent.parent / "data" / "roster_data.json"
        self.data_file = Path(data_file)
        self.data = self._load_or_create_data()

    def _load_or_create_data(self) -> Dict[str, Any]:
        """Load existing data or create default structure with recovery from backup"""
        backup_file = self.data_file.with_suffix('.bak')
        if self.data_file.exists():
            try:
                return self._validate_and_migrate_data(self._read_json(self.data_file))
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading main data file {self.data_file}: {e}")
                if not backup_file.exists():
                    raise DataFileCorruptedError(f"Main data file corrupted and no backup available: {e}")
                return self._recover_from_backup(backup_file)
        if backup_file.exists():
            logger.info(f"Main data file missing, attempting recovery from backup {backup_file}")
            return self._recover_from_backup(backup_file)
        logger.info("No data file found, creating default data")
        return self._create_default_data()

    def _recover_from_backup(self, backup_file: Path) -> Dict[str, Any]:
        try:
            data = self._read_json(backup_file)
        except (json.JSONDecodeError, IOError) as backup_e:
            logger.error(f"Backup file corrupted: {backup_e}")
            logger.info("Creating default data due to corrupted files")
            return self._create_default_data()
        # Restore backup to main file
        backup_file.replace(self.data_file)
        logger.info("Successfully recovered data from backup")
        return self._validate_and_migrate_data(data)

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise json.JSONDecodeError("Top-level JSON value must be an object", str(path), 0)
        return data

    def _validate_and_migrate_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and migrate data structure to current version"""
        default_data = self._create_default_data()

        try:
            # Merge with defaults to ensure all keys exist
            for key in default_data:
                if key not in data:
                    data[key] = default_data[key]
            for key, value in default_data["settings"].items():
                data["settings"].setdefault(key, value)

            # Old format stored bare shift values, normalise to {value, isManual}
            data["schedules"] = schedule_to_dict(schedule_from_dict(data["schedules"]))

            for staff in data["staff"]:
                staff["id"] = str(staff["id"])
                staff.setdefault("disableAuto", False)
            for group in data["groups"]:
                group["id"] = str(group["id"])
                group.setdefault("memberIds", [])
                group["minStaffCount"] = int(group.get("minStaffCount") or 0)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed data in {self.data_file}: {e!r}")
            raise DataValidationError(f"Malformed data file {self.data_file}: {e!r}")

        return data

    def _create_default_data(self) -> Dict[str, Any]:
        """Create default data structure"""
        return {
            "settings": {
                "appVersion": "1.0.0",
                "lastUsedMonth": datetime.now().strftime("%Y-%m"),
                "dataFile": str(self.data_file),
                "randomSeed": None,
                "countUnassignedAsWorking": False
            },
            "staff": [],
            "groups": [],
            "holidays": [],
            "monthlyConfig": {},  # {month_key: {regular, leave, national}}
            "schedules": {}  # {month_key: {staff_id: {day: {value, isManual}}}}
        }

    def _validate_saved_data(self) -> bool:
        """Validate that the saved data file matches current data"""
        try:
            if not self.data_file.exists():
                raise DataFileNotFoundError(f"Saved data file {self.data_file} does not exist")

            saved_data = self._read_json(self.data_file)

            required_keys = ["settings", "staff", "groups", "holidays", "monthlyConfig", "schedules"]
            for key in required_keys:
                if key not in saved_data:
                    raise DataValidationError(f"Required section '{key}' missing from saved data")

            # Schedules must load back to the same shifts that were written
            if schedule_from_dict(saved_data["schedules"]) != schedule_from_dict(self.data["schedules"]):
                raise DataValidationError("Saved schedules do not match current data")
            saved_ids = [s.get("id") for s in saved_data["staff"]]
            if saved_ids != [s.get("id") for s in self.data["staff"]]:
                raise DataValidationError("Saved staff list does not match current data")

            return True

        except (json.JSONDecodeError, IOError, AttributeError, TypeError) as e:
            raise DataValidationError(f"Failed to validate saved data: {e}")

    def save_data(self) -> bool:
        """Save current data to file atomically with validation"""
        temp_file = None
        backup_file = self.data_file.with_suffix('.bak')

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            # Write to temporary file first (atomic operation)
            temp_file = self.data_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)

            temp_file.replace(self.data_file)
            self._validate_saved_data()
            return True

        except DataValidationError as e:
            logger.error(f"Data validation failed after save: {e}", exc_info=True)
            if backup_file.exists():
                try:
                    backup_file.replace(self.data_file)
                except OSError as restore_e:
                    logger.error(f"Failed to restore from backup: {restore_e}", exc_info=True)
            raise DataSaveError(f"Save operation failed validation: {e}")

        except (IOError, OSError, TypeError) as e:
            logger.error(f"Error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data: {e}")

        finally:
            if temp_file and temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}", exc_info=True)

    # Staff Management
    def get_staff_list(self) -> List[Staff]:
        """Get all staff members in insertion order"""
        return [Staff.from_dict(s) for s in self.data.get("staff", [])]

    def get_staff_by_id(self, staff_id: str) -> Optional[Staff]:
        for staff_data in self.data.get("staff", []):
            if staff_data["id"] == staff_id:
                return Staff.from_dict(staff_data)
        return None

    def add_staff(self, staff_id: str, name: str, title: str = "Commis",
                  disable_auto: bool = False) -> Staff:
        """Add new staff member; ids are assigned by the kitchen, not generated"""
        if not staff_id or not name:
            raise DataValidationError("Staff id and name are required")
        if self.get_staff_by_id(staff_id) is not None:
            raise DataValidationError(f"Staff id '{staff_id}' already exists")

        staff = Staff(id=staff_id, name=name, title=title, disable_auto=disable_auto)
        self.data.setdefault("staff", []).append(staff.to_dict())
        return staff

    def update_staff(self, staff_id: str, name: str = None, title: str = None,
                     disable_auto: bool = None) -> bool:
        for staff_data in self.data.get("staff", []):
            if staff_data["id"] == staff_id:
                if name is not None:
                    staff_data["name"] = name
                if title is not None:
                    staff_data["title"] = title
                if disable_auto is not None:
                    staff_data["disableAuto"] = disable_auto
                return True
        return False

    def delete_staff(self, staff_id: str) -> bool:
        """Delete staff member along with their group memberships and all shifts"""
        staff_list = self.data.get("staff", [])
        remaining = [s for s in staff_list if s["id"] != staff_id]
        if len(remaining) == len(staff_list):
            return False

        self.data["staff"] = remaining
        for group in self.data.get("groups", []):
            group["memberIds"] = [m for m in group["memberIds"] if m != staff_id]
        for month_data in self.data.get("schedules", {}).values():
            month_data.pop(staff_id, None)
        logger.info(f"Deleted staff {staff_id} and pruned their schedule entries")
        return True

    # Group Management
    def get_groups(self) -> List[Group]:
        return [Group.from_dict(g) for g in self.data.get("groups", [])]

    def get_group_by_id(self, group_id: str) -> Optional[Group]:
        for group_data in self.data.get("groups", []):
            if group_data["id"] == group_id:
                return Group.from_dict(group_data)
        return None

    def add_group(self, group_id: str, name: str, min_staff_count: int = 0) -> Group:
        if self.get_group_by_id(group_id) is not None:
            raise DataValidationError(f"Group id '{group_id}' already exists")
        if min_staff_count < 0:
            raise DataValidationError("Minimum staff count cannot be negative")
        group = Group(id=group_id, name=name, min_staff_count=min_staff_count)
        self.data.setdefault("groups", []).append(group.to_dict())
        return group

    def set_group_min_staff(self, group_id: str, min_staff_count: int) -> bool:
        if min_staff_count < 0:
            raise DataValidationError("Minimum staff count cannot be negative")
        for group_data in self.data.get("groups", []):
            if group_data["id"] == group_id:
                group_data["minStaffCount"] = min_staff_count
                return True
        return False

    def add_group_member(self, group_id: str, staff_id: str) -> bool:
        """Move staff into a group; a staff member belongs to at most one group"""
        if self.get_group_by_id(group_id) is None or self.get_staff_by_id(staff_id) is None:
            return False
        for group_data in self.data["groups"]:
            group_data["memberIds"] = [m for m in group_data["memberIds"] if m != staff_id]
            if group_data["id"] == group_id:
                group_data["memberIds"].append(staff_id)
        return True

    def remove_group_member(self, group_id: str, staff_id: str) -> bool:
        for group_data in self.data.get("groups", []):
            if group_data["id"] == group_id and staff_id in group_data["memberIds"]:
                group_data["memberIds"].remove(staff_id)
                return True
        return False

    def delete_group(self, group_id: str) -> bool:
        groups = self.data.get("groups", [])
        remaining = [g for g in groups if g["id"] != group_id]
        self.data["groups"] = remaining
        return len(remaining) != len(groups)

    # Holiday Management
    def get_holidays(self) -> List[Holiday]:
        return [Holiday.from_dict(h) for h in self.data.get("holidays", [])]

    def get_holiday(self, date_str: str) -> Optional[Holiday]:
        for holiday_data in self.data.get("holidays", []):
            if holiday_data["date"] == date_str:
                return Holiday.from_dict(holiday_data)
        return None

    def set_holiday(self, holiday: Holiday):
        """Add or replace the holiday on holiday.date"""
        holidays = [h for h in self.data.get("holidays", []) if h["date"] != holiday.date]
        holidays.append(holiday.to_dict())
        self.data["holidays"] = sorted(holidays, key=lambda h: h["date"])

    def remove_holiday(self, date_str: str) -> bool:
        holidays = self.data.get("holidays", [])
        remaining = [h for h in holidays if h["date"] != date_str]
        self.data["holidays"] = remaining
        return len(remaining) != len(holidays)

    # Monthly Leave Configuration
    def get_month_config(self, month_key: str) -> MonthConfig:
        """Get leave quotas for a month, falling back to the defaults"""
        raw = self.data.get("monthlyConfig", {}).get(month_key)
        if raw is None:
            return DEFAULT_MONTH_CONFIG
        return MonthConfig.from_dict(raw)

    def set_month_config(self, month_key: str, config: MonthConfig):
        if min(config.regular, config.leave, config.national) < 0:
            raise DataValidationError("Leave quotas cannot be negative")
        self.data.setdefault("monthlyConfig", {})[month_key] = config.to_dict()

    def copy_previous_month_config(self, month_key: str) -> bool:
        """Copy the previous month's quotas onto month_key; False if there is nothing to copy"""
        year, month = map(int, month_key.split('-'))
        prev_key = f"{year - 1}-12" if month == 1 else f"{year}-{month - 1:02d}"
        prev_config = self.data.get("monthlyConfig", {}).get(prev_key)
        if prev_config is None:
            logger.warning(f"No leave configuration found for {prev_key}")
            return False
        self.data["monthlyConfig"][month_key] = dict(prev_config)
        return True

    # Schedule Management
    def get_schedules(self) -> Schedule:
        """Get the full schedule snapshot (all months) as Shift objects"""
        return schedule_from_dict(self.data.get("schedules", {}))

    def get_month_schedule(self, month_key: str) -> Dict[str, Dict[str, Shift]]:
        return self.get_schedules().get(month_key, {})

    def save_schedules(self, schedules: Schedule):
        """Replace the stored schedule snapshot with one returned by the engine"""
        self.data["schedules"] = schedule_to_dict(schedules)

    def get_shift(self, month_key: str, staff_id: str, day: str) -> Optional[Shift]:
        entry = self.data.get("schedules", {}).get(month_key, {}).get(staff_id, {}).get(day)
        return Shift.coerce(entry)

    def set_shift(self, month_key: str, staff_id: str, day: str, value: str,
                  is_manual: bool = True):
        """Set a day's shift; an empty value clears the day"""
        if value not in SHIFT_CODES:
            raise DataValidationError(f"Unknown shift code: {value!r}")
        staff_days = self.data.setdefault("schedules", {}).setdefault(month_key, {}).setdefault(staff_id, {})
        if not value:
            staff_days.pop(day, None)
        else:
            staff_days[day] = Shift(value=value, is_manual=is_manual).to_dict()

    # Settings Management
    def get_setting(self, key: str, default=None):
        """Get application setting"""
        return self.data.get("settings", {}).get(key, default)

    def set_setting(self, key: str, value):
        """Set application setting"""
        self.data.setdefault("settings", {})[key] = value
