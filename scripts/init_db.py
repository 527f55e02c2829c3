from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from charitydraw.db.engine import get_sessionmaker, make_engine
from charitydraw.draw.cycle_label import format_month_year
from charitydraw.lifecycle import DrawLifecycleManager
from charitydraw.models import DrawSettings, JackpotTracker


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to ``target_revision``."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def bootstrap_rows(open_current_cycle: bool) -> None:
    """Create the singleton settings/jackpot rows and optionally this month's cycle."""
    Session = get_sessionmaker(make_engine())
    with Session.begin() as session:
        settings = DrawSettings.load(session)
        tracker = JackpotTracker.load(session)
        print(
            f"Draw settings: base {settings.base_amount_per_subscriber}, tiers "
            f"{settings.tier1_percent}/{settings.tier2_percent}/{settings.tier3_percent}, "
            f"cap {settings.jackpot_cap}; jackpot {tracker.amount}"
        )
        if open_current_cycle:
            manager = DrawLifecycleManager(session)
            if manager.current_cycle() is None:
                draw = manager.create_cycle(format_month_year(date.today()))
                print(f"Opened draw cycle {draw.month_year}")


def print_tables() -> None:
    engine = make_engine()
    insp = inspect(engine)
    print("Current tables:", ", ".join(sorted(insp.get_table_names())))


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate the draw database")
    parser.add_argument("--revision", default="head")
    parser.add_argument(
        "--open-cycle",
        action="store_true",
        help="open a draw cycle for the current month if none is active",
    )
    args = parser.parse_args()

    upgrade_db(args.revision)
    if args.revision == "head":
        bootstrap_rows(args.open_cycle)
    print_tables()


if __name__ == "__main__":
    main()
