import dataclasses
import json
import unittest
from datetime import datetime, timezone

from sweepdraw.draw.audit import (
    VERIFICATION_STEPS,
    distribution_stats,
    generate_report,
)
from sweepdraw.draw.engine import execute_draw
from sweepdraw.draw.seed import ParticipantRecord

NOW = datetime(2024, 5, 1, 10, 7, 12, tzinfo=timezone.utc)


def _participants(n):
    return [ParticipantRecord(f"prt-{i}", f"{i}", 1_714_550_000_000) for i in range(n)]


class GenerateReportTests(unittest.TestCase):
    def test_valid_report(self):
        result = execute_draw("swp-audit", _participants(3), now=NOW)
        report = generate_report(result, "swp-audit")

        self.assertTrue(report.is_valid)
        self.assertEqual(report.participant_count, 3)
        self.assertEqual(report.audit_url, "/audit/sweepstake/swp-audit")
        self.assertEqual(len(report.verification_steps), 4)

        data = report.to_dict()
        self.assertEqual(data["winner"]["participant_id"], result.winner_participant_id)
        self.assertEqual(data["winner"]["user_id"], result.winner_user_id)
        self.assertEqual(data["verification"]["seed"], result.seed)
        self.assertEqual(data["verification"]["hash"], result.hash)
        self.assertEqual(data["verification"]["proof"], result.proof.to_dict())
        self.assertEqual(data["verification_steps"], list(VERIFICATION_STEPS))
        # JSON clean
        json.dumps(data)

    def test_tampered_result_is_reported_invalid(self):
        result = execute_draw("swp-audit", _participants(3), now=NOW)
        forged = dataclasses.replace(result, hash="f" * 64)
        report = generate_report(forged, "swp-audit")
        self.assertFalse(report.is_valid)
        self.assertEqual(report.hash, "f" * 64)

    def test_single_participant_report(self):
        result = execute_draw("swp-solo", _participants(1), now=NOW)
        report = generate_report(result, "swp-solo")
        self.assertTrue(report.is_valid)
        self.assertEqual(report.algorithm, "SINGLE_PARTICIPANT")
        self.assertEqual(report.seed, "N/A")


class DistributionStatsTests(unittest.TestCase):
    def test_percentages_cover_every_participant(self):
        stats = distribution_stats("swp-dist", _participants(4), iterations=400)
        self.assertEqual(set(stats), {"prt-0", "prt-1", "prt-2", "prt-3"})
        self.assertAlmostEqual(sum(stats.values()), 100.0)
        for share in stats.values():
            self.assertGreater(share, 10.0)
            self.assertLess(share, 40.0)

    def test_reproducible(self):
        first = distribution_stats("swp-dist", _participants(3), iterations=50)
        second = distribution_stats("swp-dist", _participants(3), iterations=50)
        self.assertEqual(first, second)

    def test_rejects_non_positive_iterations(self):
        with self.assertRaises(ValueError):
            distribution_stats("swp-dist", _participants(2), iterations=0)


if __name__ == "__main__":
    unittest.main()
