import pytest
import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from kitchen_roster.data_manager import DataManager, MonthConfig, Shift
from kitchen_roster.dispatcher import (
    CommandDispatcher,
    GenerateForAllStaff,
    GenerateForGroup,
    GenerateForStaff,
    UnknownCommandError,
    scheduler_from_settings,
)
from kitchen_roster.scheduler_logic import InvalidArgumentError, LeaveScheduler

MONTH = "2026-02"


@pytest.fixture
def data_manager(tmp_path):
    dm = DataManager(str(tmp_path / "roster.json"))
    dm.add_staff("200043", "Liao", "Chef")
    dm.add_staff("190098", "Luo", "CDP")
    dm.add_staff("210028", "Tsai", "Commis")
    dm.add_group("g1", "Hot kitchen")
    dm.add_group_member("g1", "190098")
    dm.add_group_member("g1", "210028")
    dm.set_month_config(MONTH, MonthConfig(regular=4, leave=1, national=1))
    dm.save_data()
    return dm


@pytest.fixture
def dispatcher(data_manager):
    return CommandDispatcher(data_manager, LeaveScheduler(rng=random.Random(3)))


def auto_leave_days(data_manager, staff_id, month=MONTH):
    days = data_manager.get_month_schedule(month).get(staff_id, {})
    return {day: shift.value for day, shift in days.items() if not shift.is_manual}


def test_all_staff_command_schedules_everyone(dispatcher, data_manager):
    result = dispatcher.dispatch(GenerateForAllStaff(month=MONTH))

    assert set(result.assigned) == {"200043", "190098", "210028"}
    for staff_id in result.assigned:
        assert len(auto_leave_days(data_manager, staff_id)) == 6
    assert data_manager.get_setting("lastUsedMonth") == MONTH


def test_result_is_persisted(dispatcher, data_manager):
    dispatcher.dispatch(GenerateForAllStaff(month=MONTH))

    reloaded = DataManager(str(data_manager.data_file))
    assert auto_leave_days(reloaded, "200043") == auto_leave_days(data_manager, "200043")
    assert reloaded.get_setting("lastUsedMonth") == MONTH


def test_without_persist_file_is_unchanged(data_manager):
    dispatcher = CommandDispatcher(data_manager, LeaveScheduler(rng=random.Random(1)), persist=False)
    dispatcher.dispatch(GenerateForAllStaff(month=MONTH))

    assert auto_leave_days(data_manager, "200043")
    reloaded = DataManager(str(data_manager.data_file))
    assert reloaded.get_month_schedule(MONTH) == {}


def test_staff_command_leaves_others_untouched(dispatcher, data_manager):
    data_manager.set_shift(MONTH, "190098", "10", "例", is_manual=False)

    result = dispatcher.dispatch(GenerateForStaff(month=MONTH, staff_id="200043"))

    assert list(result.assigned) == ["200043"]
    assert auto_leave_days(data_manager, "190098") == {"10": "例"}
    assert auto_leave_days(data_manager, "210028") == {}


def test_group_command_targets_members_only(dispatcher, data_manager):
    result = dispatcher.dispatch(GenerateForGroup(month=MONTH, group_id="g1"))

    assert set(result.assigned) == {"190098", "210028"}
    assert auto_leave_days(data_manager, "200043") == {}


@pytest.mark.parametrize("command", [
    GenerateForStaff(month=MONTH, staff_id="nobody"),
    GenerateForGroup(month=MONTH, group_id="missing"),
    GenerateForAllStaff(month="2026-13"),
    GenerateForAllStaff(month="Feb 2026"),
])
def test_invalid_arguments_raise(dispatcher, data_manager, command):
    with pytest.raises(InvalidArgumentError):
        dispatcher.dispatch(command)
    assert data_manager.get_month_schedule(MONTH) == {}


def test_unknown_command_type(dispatcher):
    with pytest.raises(UnknownCommandError):
        dispatcher.dispatch(("generate", MONTH))


def test_manual_entries_survive_dispatch(dispatcher, data_manager):
    data_manager.set_shift(MONTH, "200043", "14", "全")
    data_manager.set_shift(MONTH, "200043", "15", "例")

    dispatcher.dispatch(GenerateForStaff(month=MONTH, staff_id="200043"))

    assert data_manager.get_shift(MONTH, "200043", "14") == Shift(value="全", is_manual=True)
    assert data_manager.get_shift(MONTH, "200043", "15") == Shift(value="例", is_manual=True)
    # One 例 already used by the manual entry
    assert list(auto_leave_days(data_manager, "200043").values()).count("例") == 3


def test_seed_setting_makes_runs_repeatable(data_manager):
    data_manager.set_setting("randomSeed", 11)

    CommandDispatcher(data_manager, persist=False).dispatch(GenerateForAllStaff(month=MONTH))
    first = data_manager.get_month_schedule(MONTH)

    CommandDispatcher(data_manager, persist=False).dispatch(GenerateForAllStaff(month=MONTH))
    assert data_manager.get_month_schedule(MONTH) == first


def test_scheduler_from_settings_reads_coverage_mode(data_manager):
    assert scheduler_from_settings(data_manager).count_unassigned is False
    data_manager.set_setting("countUnassignedAsWorking", True)
    assert scheduler_from_settings(data_manager).count_unassigned is True
