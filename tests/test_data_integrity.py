import pytest
import sys
from pathlib import Path
import tempfile
import os
import json

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_roster.data_manager import (
    DataManager,
    DataFileCorruptedError,
    DataSaveError,
    DataValidationError,
    DEFAULT_MONTH_CONFIG,
    Holiday,
    HolidayType,
    MonthConfig,
    Shift,
)


@pytest.fixture
def data_manager():
    """Fixture for a clean, isolated DataManager instance for each test."""
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".json", delete=False
    ) as temp_file:
        temp_path = temp_file.name
        json.dump({}, temp_file)

    dm = DataManager(temp_path)
    # Add a standard set of staff for consistent testing
    dm.add_staff("200043", "Liao", "Chef")
    dm.add_staff("190098", "Luo", "CDP")
    dm.add_group("g1", "Pastry AM", min_staff_count=1)
    dm.add_group_member("g1", "200043")
    dm.add_group_member("g1", "190098")
    yield dm
    os.unlink(temp_path)
    for suffix in (".bak", ".tmp"):
        leftover = Path(temp_path).with_suffix(suffix)
        if leftover.exists():
            leftover.unlink()


def test_manual_shift_persists(data_manager):
    """A manual entry survives a save/reload round trip with its flag."""
    data_manager.set_shift("2026-01", "200043", "05", "早")
    data_manager.save_data()

    reloaded = DataManager(data_manager.data_file)
    assert reloaded.get_shift("2026-01", "200043", "05") == Shift(value="早", is_manual=True)


def test_empty_value_clears_shift(data_manager):
    data_manager.set_shift("2026-01", "200043", "05", "早")
    data_manager.set_shift("2026-01", "200043", "05", "")
    assert data_manager.get_shift("2026-01", "200043", "05") is None


def test_unknown_shift_code_rejected(data_manager):
    with pytest.raises(DataValidationError):
        data_manager.set_shift("2026-01", "200043", "05", "X")


def test_duplicate_staff_id_rejected(data_manager):
    with pytest.raises(DataValidationError):
        data_manager.add_staff("200043", "Someone else")


def test_delete_staff_removes_all_data(data_manager):
    """
    Deleting a staff member must scrub their shifts in every month and their
    group membership, so nothing references a non-existent person.
    """
    data_manager.set_shift("2026-01", "190098", "01", "早")
    data_manager.set_shift("2026-02", "190098", "01", "例")
    data_manager.set_shift("2026-02", "200043", "01", "晚")

    assert data_manager.delete_staff("190098")
    data_manager.save_data()

    reloaded = DataManager(data_manager.data_file)
    assert reloaded.get_staff_by_id("190098") is None
    schedules = reloaded.get_schedules()
    assert all("190098" not in month_data for month_data in schedules.values())
    assert "200043" in schedules["2026-02"]
    assert reloaded.get_group_by_id("g1").member_ids == ["200043"]


def test_delete_unknown_staff_returns_false(data_manager):
    assert not data_manager.delete_staff("nobody")


def test_staff_belongs_to_one_group(data_manager):
    data_manager.add_group("g2", "Bakery", min_staff_count=2)
    data_manager.add_group_member("g2", "190098")

    assert data_manager.get_group_by_id("g1").member_ids == ["200043"]
    assert data_manager.get_group_by_id("g2").member_ids == ["190098"]


def test_month_config_defaults_and_copy(data_manager):
    assert data_manager.get_month_config("2026-03") == DEFAULT_MONTH_CONFIG

    data_manager.set_month_config("2025-12", MonthConfig(regular=9, leave=1, national=2))
    assert data_manager.copy_previous_month_config("2026-01")
    assert data_manager.get_month_config("2026-01") == MonthConfig(regular=9, leave=1, national=2)
    assert not data_manager.copy_previous_month_config("2026-05")


def test_negative_quota_rejected(data_manager):
    with pytest.raises(DataValidationError):
        data_manager.set_month_config("2026-01", MonthConfig(regular=-1, leave=0, national=0))


def test_holidays_replace_by_date(data_manager):
    data_manager.set_holiday(Holiday(date="2026-01-01", name="New Year", is_off="2", type=HolidayType.NATIONAL))
    data_manager.set_holiday(Holiday(date="2026-01-01", name="New Year's Day", is_off="2", type=HolidayType.NATIONAL))

    holidays = data_manager.get_holidays()
    assert len(holidays) == 1
    assert holidays[0].name == "New Year's Day"
    assert data_manager.get_holiday("2026-01-01").is_day_off


def test_migration_of_bare_shift_values(tmp_path):
    """
    Older snapshots stored shifts as bare strings. They load as manual
    entries so the engine never erases them.
    """
    old_data_file = tmp_path / "old_data.json"
    old_data_file.write_text(json.dumps({
        "staff": [{"id": "1", "name": "Old", "title": "Commis"}],
        "schedules": {"2026-01": {"1": {"03": "休", "04": {"value": "例", "isManual": False}}}},
    }), encoding="utf-8")

    dm = DataManager(str(old_data_file))

    assert dm.get_shift("2026-01", "1", "03") == Shift(value="休", is_manual=True)
    assert dm.get_shift("2026-01", "1", "04") == Shift(value="例", is_manual=False)
    assert dm.get_staff_by_id("1").disable_auto is False
    assert dm.get_setting("countUnassignedAsWorking") is False


def test_recovers_from_backup_when_main_file_corrupted(tmp_path):
    data_file = tmp_path / "roster.json"
    dm = DataManager(str(data_file))
    dm.add_staff("1", "First")
    dm.save_data()
    dm.add_staff("2", "Second")
    dm.save_data()  # previous save becomes the .bak

    data_file.write_text("{not json", encoding="utf-8")

    recovered = DataManager(str(data_file))
    assert [s.id for s in recovered.get_staff_list()] == ["1"]


def test_corrupted_file_without_backup_raises(tmp_path):
    data_file = tmp_path / "roster.json"
    data_file.write_text("{not json", encoding="utf-8")

    with pytest.raises(DataFileCorruptedError):
        DataManager(str(data_file))


def test_unreadable_schedule_fails_save_and_keeps_previous_file(data_manager):
    data_manager.set_shift("2026-01", "200043", "05", "早")
    data_manager.save_data()

    data_manager.data["schedules"]["2026-01"]["190098"] = {"06": 5}
    with pytest.raises(DataSaveError):
        data_manager.save_data()

    reloaded = DataManager(data_manager.data_file)
    assert reloaded.get_shift("2026-01", "200043", "05") == Shift(value="早", is_manual=True)
    assert "190098" not in reloaded.get_month_schedule("2026-01")


@pytest.mark.parametrize("snapshot", [
    {"settings": None},
    {"staff": [{"name": "No id"}]},
    {"groups": [{"name": "No id", "memberIds": []}]},
    {"schedules": {"2026-01": {"1": {"03": 7}}}},
    {"groups": [{"id": "g", "minStaffCount": "two"}]},
])
def test_malformed_snapshot_raises_validation_error(tmp_path, snapshot):
    data_file = tmp_path / "hand_edited.json"
    data_file.write_text(json.dumps(snapshot), encoding="utf-8")

    with pytest.raises(DataValidationError):
        DataManager(str(data_file))
