import unittest
from datetime import datetime, timezone

from sweepdraw.draw.seed import (
    ParticipantRecord,
    build_seed,
    epoch_millis,
    parse_seed,
    time_bucket,
)
from sweepdraw.errors import EmptyParticipantSet, InvalidSeedField


def _participants():
    return [
        ParticipantRecord("p2", "u2", 1_700_000_000_200),
        ParticipantRecord("p1", "u1", 1_700_000_000_100),
        ParticipantRecord("p3", "u3", 1_700_000_000_300),
    ]


class TimeBucketTests(unittest.TestCase):
    def test_rounds_down_to_bucket_start(self):
        self.assertEqual(time_bucket(1_700_000_123_456, 300_000), 1_700_000_100_000)
        self.assertEqual(time_bucket(600_000, 300_000), 600_000)
        self.assertEqual(time_bucket(599_999, 300_000), 300_000)

    def test_datetime_and_millis_agree(self):
        moment = datetime(2024, 1, 1, 12, 3, 30, tzinfo=timezone.utc)
        self.assertEqual(
            time_bucket(moment, 300_000), time_bucket(epoch_millis(moment), 300_000)
        )
        self.assertEqual(
            time_bucket(moment, 300_000),
            epoch_millis(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)),
        )

    def test_naive_datetime_is_utc(self):
        naive = datetime(2024, 1, 1, 0, 0, 1)
        aware = naive.replace(tzinfo=timezone.utc)
        self.assertEqual(epoch_millis(naive), epoch_millis(aware))

    def test_rejects_non_positive_bucket(self):
        with self.assertRaises(ValueError):
            time_bucket(1000, 0)


class BuildSeedTests(unittest.TestCase):
    def test_seed_layout(self):
        seed = build_seed("swp-1", _participants(), bucket_ms=1_700_000_000_000)
        self.assertEqual(
            seed.text,
            "swp-1:p1:u1:1700000000100|p2:u2:1700000000200|p3:u3:1700000000300"
            ":1700000000000",
        )
        self.assertEqual(seed.participant_ids, ["p1", "p2", "p3"])

    def test_input_order_does_not_matter(self):
        forward = build_seed("swp-1", _participants(), bucket_ms=0)
        backward = build_seed("swp-1", list(reversed(_participants())), bucket_ms=0)
        self.assertEqual(forward.text, backward.text)

    def test_ordinal_sort_on_participant_id(self):
        records = [
            ParticipantRecord("b", "u", 1),
            ParticipantRecord("B", "u", 1),
            ParticipantRecord("a", "u", 1),
        ]
        seed = build_seed("swp", records, bucket_ms=0)
        self.assertEqual(seed.participant_ids, ["B", "a", "b"])

    def test_now_selects_bucket(self):
        seed = build_seed("swp-1", _participants(), now=1_700_000_123_456)
        self.assertEqual(seed.bucket_ms, 1_700_000_100_000)
        self.assertTrue(seed.text.endswith(":1700000100000"))

    def test_empty_participants_rejected(self):
        with self.assertRaises(EmptyParticipantSet):
            build_seed("swp-1", [], bucket_ms=0)

    def test_reserved_characters_rejected(self):
        with self.assertRaises(InvalidSeedField):
            build_seed("swp:1", _participants(), bucket_ms=0)
        with self.assertRaises(InvalidSeedField):
            build_seed("swp-1", [ParticipantRecord("p|1", "u1", 0)], bucket_ms=0)
        with self.assertRaises(InvalidSeedField):
            build_seed("swp-1", [ParticipantRecord("p1", "u:1", 0)], bucket_ms=0)

    def test_non_string_ids_and_timestamps_rejected(self):
        with self.assertRaises(InvalidSeedField):
            build_seed("swp-1", [ParticipantRecord(7, "u1", 0), *_participants()], bucket_ms=0)
        with self.assertRaises(InvalidSeedField):
            build_seed("swp-1", [ParticipantRecord("p1", "u1", "0")], bucket_ms=0)

    def test_duplicate_participant_ids_rejected(self):
        records = [ParticipantRecord("p1", "u1", 0), ParticipantRecord("p1", "u2", 0)]
        with self.assertRaises(InvalidSeedField):
            build_seed("swp-1", records, bucket_ms=0)


class ParseSeedTests(unittest.TestCase):
    def test_parse_recovers_fields(self):
        seed = build_seed("swp-1", _participants(), bucket_ms=1_700_000_000_000)
        parsed = parse_seed(seed.text)
        self.assertEqual(parsed.sweepstake_id, "swp-1")
        self.assertEqual(parsed.bucket_ms, 1_700_000_000_000)
        self.assertEqual(parsed.participant_ids, ["p1", "p2", "p3"])
        self.assertEqual(parsed.text, seed.text)

    def test_malformed_seed_rejected(self):
        for text in ("", "swp-1", "swp-1:p1:u1:1:notanumber", "swp-1:p1:u1:0"):
            with self.subTest(text=text):
                with self.assertRaises(InvalidSeedField):
                    parse_seed(text)

    def test_unsorted_seed_rejected(self):
        with self.assertRaises(InvalidSeedField):
            parse_seed("swp-1:p2:u2:1|p1:u1:1:0")


if __name__ == "__main__":
    unittest.main()
