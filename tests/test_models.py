import unittest
from unittest import mock
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from sweepdraw.db.engine import get_sessionmaker, make_engine
from sweepdraw.models import (
    AuditLog,
    Base,
    Sweepstake,
    SweepstakeParticipant,
    SweepstakeStatus,
    Transaction,
    TransactionType,
    User,
)
from sweepdraw.models.utils import BASE62_ALPHABET, generate_public_id, to_money

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class ModelTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self):
        self.engine.dispose()


class UserTests(ModelTestCase):
    def test_credit_and_debit(self):
        user = User("alice", balance=Decimal("10"))
        user.credit(Decimal("2.505"))
        self.assertEqual(user.balance, Decimal("12.51"))
        user.debit(Decimal("12.51"))
        self.assertEqual(user.balance, Decimal("0.00"))
        with self.assertRaises(ValueError):
            user.debit(Decimal("0.01"))
        with self.assertRaises(ValueError):
            user.credit(Decimal("-1"))

    def test_email_normalized(self):
        self.assertEqual(User("bob", email="  Bob@Example.COM ").email, "bob@example.com")
        self.assertIsNone(User("carol", email="   ").email)

    def test_lookup_helpers(self):
        with self.Session.begin() as session:
            session.add(User("dave", balance=Decimal("5")))
        with self.Session() as session:
            user = User.get_by_username(session, "dave")
            self.assertIsNotNone(user)
            self.assertIs(User.get_for_update(session, user.id), user)
            self.assertIsNone(User.get_by_username(session, "nobody"))

    def test_negative_balance_rejected_by_database(self):
        with self.Session() as session:
            user = User("eve")
            session.add(user)
            session.flush()
            user.balance = Decimal("-1")
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()


class SweepstakeModelTests(ModelTestCase):
    def _sweepstake(self, **kwargs):
        return Sweepstake(
            title="Model",
            max_participants=kwargs.pop("max_participants", 5),
            entry_fee=Decimal("10"),
            start_time=START,
            end_time=START + timedelta(hours=1),
            **kwargs,
        )

    def test_prize_pool_arithmetic(self):
        sweepstake = self._sweepstake()
        for i in range(3):
            sweepstake.participants.append(
                SweepstakeParticipant(user_id=i + 1, entry_fee=Decimal("10"), joined_at=START)
            )
        self.assertEqual(sweepstake.collected_fees(), Decimal("30.00"))
        self.assertEqual(sweepstake.refresh_prize_pool(), Decimal("28.50"))
        self.assertEqual(sweepstake.prize_pool, Decimal("28.50"))

    def test_prize_pool_with_custom_house_fee(self):
        sweepstake = self._sweepstake(house_fee_fraction=Decimal("0.1"))
        sweepstake.participants.append(
            SweepstakeParticipant(user_id=1, entry_fee=Decimal("3.33"), joined_at=START)
        )
        self.assertEqual(sweepstake.compute_prize_pool(), Decimal("3.00"))

    def test_status_helpers(self):
        self.assertTrue(SweepstakeStatus.SCHEDULED.accepts_entries)
        self.assertTrue(SweepstakeStatus.ACTIVE.accepts_entries)
        self.assertFalse(SweepstakeStatus.DRAWING.accepts_entries)
        self.assertTrue(SweepstakeStatus.FINISHED.is_terminal)
        self.assertTrue(SweepstakeStatus.CANCELLED.is_terminal)
        self.assertFalse(SweepstakeStatus.DRAWING.is_terminal)

    def test_participant_records_use_string_user_ids(self):
        sweepstake = self._sweepstake()
        sweepstake.participants.append(
            SweepstakeParticipant(id="prt-a", user_id=7, entry_fee=Decimal("10"), joined_at=START)
        )
        (record,) = sweepstake.participant_records()
        self.assertEqual(record.participant_id, "prt-a")
        self.assertEqual(record.user_id, "7")
        self.assertEqual(record.joined_at_ms, int(START.timestamp() * 1000))

    def test_terminal_status_is_final(self):
        for terminal in (SweepstakeStatus.FINISHED, SweepstakeStatus.CANCELLED):
            sweepstake = self._sweepstake(status=terminal)
            with self.assertRaises(ValueError):
                sweepstake.status = SweepstakeStatus.ACTIVE
            sweepstake.status = terminal
            self.assertEqual(sweepstake.status, terminal)

        sweepstake = self._sweepstake()
        sweepstake.status = SweepstakeStatus.ACTIVE
        sweepstake.status = SweepstakeStatus.SCHEDULED
        sweepstake.status = SweepstakeStatus.CANCELLED
        with self.assertRaises(ValueError):
            sweepstake.status = SweepstakeStatus.FINISHED

    def test_joined_at_is_immutable(self):
        participant = SweepstakeParticipant(user_id=1, entry_fee=Decimal("1"), joined_at=START)
        with self.assertRaises(ValueError):
            participant.joined_at = START + timedelta(seconds=1)

    def test_one_entry_per_user(self):
        with self.Session() as session:
            user = User("frank", balance=Decimal("100"))
            sweepstake = self._sweepstake()
            session.add_all([user, sweepstake])
            session.flush()
            for _ in range(2):
                session.add(
                    SweepstakeParticipant(
                        sweepstake=sweepstake,
                        user_id=user.id,
                        entry_fee=Decimal("10"),
                        joined_at=START,
                    )
                )
            with self.assertRaises(IntegrityError):
                session.flush()
            session.rollback()


class LedgerAndAuditTests(ModelTestCase):
    def test_transaction_amount_is_quantized(self):
        entry = Transaction(type=TransactionType.SWEEPSTAKE_ENTRY, amount=Decimal("-9.999"))
        self.assertEqual(entry.amount, Decimal("-10.00"))
        self.assertEqual(entry.status, "COMPLETED")

    def test_audit_actor_type(self):
        with self.Session.begin() as session:
            user = User("grace")
            session.add(user)
            session.flush()
            system = AuditLog.record(session, "SYSTEM_EVENT", subject_table="sweepstakes")
            personal = AuditLog.record(
                session,
                "USER_EVENT",
                subject_table="sweepstakes",
                subject_id="swp-x",
                actor_user_id=user.id,
                details={"k": "v"},
            )
            session.flush()
            self.assertEqual(system.actor_type, "system")
            self.assertEqual(personal.actor_type, "user")
            self.assertEqual(personal.details, {"k": "v"})


class UtilsTests(ModelTestCase):
    def test_to_money(self):
        self.assertEqual(to_money("1.005"), Decimal("1.01"))
        self.assertEqual(to_money(0.1), Decimal("0.10"))
        self.assertEqual(to_money(3), Decimal("3.00"))

    def test_generate_public_id_shape(self):
        value = generate_public_id("swp")
        prefix, suffix = value.split("-", 1)
        self.assertEqual(prefix, "swp")
        self.assertEqual(len(suffix), 16)
        self.assertTrue(all(ch in BASE62_ALPHABET for ch in suffix))

    def test_generate_public_id_skips_taken_ids(self):
        with self.Session() as session:
            pending = Sweepstake(
                id="swp-" + "a" * 16,
                title="pending",
                max_participants=2,
                entry_fee=Decimal("1"),
                start_time=START,
                end_time=START + timedelta(hours=1),
            )
            session.add(pending)

            choices = iter("a" * 16 + "b" * 16)
            with mock.patch(
                "sweepdraw.models.utils.secrets.choice", side_effect=lambda _: next(choices)
            ):
                value = generate_public_id("swp", session, Sweepstake)
            self.assertEqual(value, "swp-" + "b" * 16)


if __name__ == "__main__":
    unittest.main()
