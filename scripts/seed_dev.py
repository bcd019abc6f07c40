from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sweepdraw.db.engine import get_sessionmaker, make_engine
from sweepdraw.models import Base, User
from sweepdraw.workflows import create_sweepstake, join_sweepstake


def main() -> None:
    """Reset the development database and fill it with sample sweepstakes."""
    engine = make_engine()

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        users = [
            User(username=name, email=f"{name}@example.com", balance=Decimal("100.00"))
            for name in ("alice", "bob", "carol", "dave")
        ]
        session.add_all(users)
        session.flush()

        # Running draw with three entries, ends in an hour
        running = create_sweepstake(
            session,
            title="Weekly Pot",
            description="Open to everyone",
            max_participants=10,
            entry_fee=Decimal("10.00"),
            start_time=now - timedelta(minutes=5),
            end_time=now + timedelta(hours=1),
        )
        for user in users[:3]:
            join_sweepstake(session, running.id, user.id, now=now)

        # Ends almost immediately; the scheduler's next sweep draws it
        create_sweepstake(
            session,
            title="Flash Draw",
            max_participants=2,
            entry_fee=Decimal("5.00"),
            start_time=now - timedelta(minutes=10),
            end_time=now + timedelta(seconds=30),
        )

        # Not started yet
        create_sweepstake(
            session,
            title="Next Week",
            max_participants=100,
            entry_fee=Decimal("1.00"),
            start_time=now + timedelta(days=7),
            end_time=now + timedelta(days=8),
        )

    print("Seeded development database.")


if __name__ == "__main__":
    main()
