import random
from datetime import date, timedelta
from decimal import Decimal

from charitydraw.db.engine import get_sessionmaker, make_engine
from charitydraw.draw.cycle_label import format_month_year
from charitydraw.models import (
    Base,
    Charity,
    DrawCycle,
    DrawSettings,
    DrawStatus,
    JackpotTracker,
    Score,
    Subscriber,
    Subscription,
)

SUBSCRIBER_COUNT = 40
SCORES_PER_SUBSCRIBER = 5


def main() -> None:
    """Seed the development database with charities, subscribers and an open draw."""
    engine = make_engine()

    # SQLite cannot drop tables with cyclic foreign keys while enforcement is on.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)
    rng = random.Random(2025)
    today = date.today()

    with Session.begin() as session:
        DrawSettings.load(session)
        JackpotTracker.load(session)

        charities = [
            Charity(name="Junior Golf Foundation", payment_account_id="acct_dev_junior_golf"),
            Charity(name="Coastal Care Trust"),
            Charity(name="Regional Cancer Research", payment_account_id="acct_dev_cancer_research"),
        ]
        session.add_all(charities)

        draw = DrawCycle(month_year=format_month_year(today), status=DrawStatus.OPEN)
        session.add(draw)
        session.flush()

        for i in range(1, SUBSCRIBER_COUNT + 1):
            subscriber = Subscriber(
                full_name=f"Dev Player {i:02d}",
                email=f"player{i:02d}@example.com",
                charity=charities[i % len(charities)] if i % 4 else None,
                donation_percent=Decimal(rng.choice(["10", "15", "20", "25"])),
            )
            monthly = i % 3 != 0
            subscriber.subscriptions.append(
                Subscription(
                    plan="monthly" if monthly else "yearly",
                    assigned_draw_id=draw.id if monthly else None,
                    draws_remaining=1 if monthly else 12,
                )
            )
            for n in range(SCORES_PER_SUBSCRIBER):
                subscriber.scores.append(
                    Score(
                        value=rng.randint(18, 42),
                        played_on=today - timedelta(days=7 * n + i % 7),
                    )
                )
            session.add(subscriber)

    print(f"Development database seeded: {SUBSCRIBER_COUNT} subscribers, draw {format_month_year(today)} open.")


if __name__ == "__main__":
    main()
