"""
Main Entry Point for Kitchen Roster

Command line front end: generate automatic leave for a month, check holiday
coverage, and print the monthly leave summary.
"""

import argparse
import logging
import random
import sys
import traceback
from pathlib import Path
from datetime import datetime

from .data_manager import DataManager, DataManagerError
from .dispatcher import (
    CommandDispatcher,
    GenerateForAllStaff,
    GenerateForGroup,
    GenerateForStaff,
    scheduler_from_settings,
)
from .reporting import ReportGenerator
from .scheduler_logic import LeaveScheduler, SchedulingError


def setup_logging(verbose: bool = False):
    """Setup application logging"""
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / f"kitchen_roster_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger = logging.getLogger(__name__)
    logger.error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kitchen-roster", description="Kitchen staff leave roster")
    parser.add_argument("--data-file", default="data/roster_data.json", help="Roster JSON snapshot")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Regenerate automatic leave for a month")
    gen.add_argument("--month", required=True, help="Target month YYYY-MM")
    target = gen.add_mutually_exclusive_group()
    target.add_argument("--staff", dest="staff_id", help="Only this staff id")
    target.add_argument("--group", dest="group_id", help="Only this group's members")
    gen.add_argument("--seed", type=int, default=None, help="Random seed for this run only")
    gen.add_argument("--clear-seed", action="store_true", help="Remove the stored randomSeed setting")

    check = sub.add_parser("check", help="Check holiday coverage for a month")
    check.add_argument("--month", required=True, help="Month YYYY-MM")

    summary = sub.add_parser("summary", help="Print leave counts per staff member")
    summary.add_argument("--month", required=True, help="Month YYYY-MM")

    return parser


class RosterApp:
    """Main application class"""

    def __init__(self, data_file: str):
        self.logger = logging.getLogger(__name__)
        self.data_file = data_file
        self.data_manager = None
        self.report_generator = None

    def initialize(self) -> bool:
        """Initialize application components"""
        try:
            self.data_manager = DataManager(self.data_file)
            self.logger.info(f"Data manager initialized from {self.data_manager.data_file}")
            self.report_generator = ReportGenerator(self.data_manager)
            return True
        except DataManagerError as e:
            self.logger.error(f"Failed to initialize application: {e}")
            self.logger.error(traceback.format_exc())
            return False

    def generate(self, month: str, staff_id: str = None, group_id: str = None, seed: int = None,
                 clear_seed: bool = False):
        if clear_seed:
            self.data_manager.set_setting("randomSeed", None)
        if seed is not None:
            # Seed applies to this run only
            scheduler = LeaveScheduler(
                rng=random.Random(seed),
                count_unassigned=bool(self.data_manager.get_setting("countUnassignedAsWorking", False))
            )
        else:
            scheduler = scheduler_from_settings(self.data_manager)
        dispatcher = CommandDispatcher(self.data_manager, scheduler)

        if staff_id:
            command = GenerateForStaff(month=month, staff_id=staff_id)
        elif group_id:
            command = GenerateForGroup(month=month, group_id=group_id)
        else:
            command = GenerateForAllStaff(month=month)

        result = dispatcher.dispatch(command)
        print(result.message)
        return result

    def check(self, month: str) -> bool:
        failures = self.report_generator.failing_dates(month)
        if failures.empty:
            print(f"All holiday dates in {month} pass coverage rules")
            return True
        print(failures.to_string(index=False))
        return False

    def summary(self, month: str):
        print(self.report_generator.create_dashboard_summary(month))
        print()
        print(self.report_generator.leave_summary(month).to_string(index=False))

    def run(self, args: argparse.Namespace) -> bool:
        """Run one command"""
        try:
            if not self.initialize():
                return False

            if args.command == "generate":
                self.generate(args.month, args.staff_id, args.group_id, args.seed, args.clear_seed)
                return True
            if args.command == "check":
                return self.check(args.month)
            if args.command == "summary":
                self.summary(args.month)
                return True
            self.logger.error(f"Unknown command: {args.command}")
            return False

        except (SchedulingError, DataManagerError, ValueError) as e:
            self.logger.error(f"Command failed: {e}")
            self.logger.debug(traceback.format_exc())
            return False


def main(argv=None):
    """Main entry point"""
    sys.excepthook = handle_exception

    args = build_parser().parse_args(argv)
    logger = setup_logging(args.verbose)
    logger.info("Starting Kitchen Roster")

    app = RosterApp(args.data_file)
    success = app.run(args)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
