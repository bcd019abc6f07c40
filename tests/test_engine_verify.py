import dataclasses
import json
import unittest
from datetime import datetime, timezone

from sweepdraw.draw.commitment import NOT_APPLICABLE, SINGLE_PARTICIPANT, hash_seed
from sweepdraw.draw.engine import DrawEngine, DrawProof, execute_draw
from sweepdraw.draw.seed import ParticipantRecord, parse_seed
from sweepdraw.draw.verify import verify_proof, verify_result
from sweepdraw.errors import EmptyParticipantSet

NOW = datetime(2024, 5, 1, 10, 7, 12, tzinfo=timezone.utc)


def _participants(n=3):
    return [
        ParticipantRecord(f"prt-{i:03d}", str(100 + i), 1_714_550_000_000 + i)
        for i in range(n)
    ]


class ExecuteDrawTests(unittest.TestCase):
    def test_deterministic_for_same_inputs(self):
        first = execute_draw("swp-abc", _participants(), now=NOW)
        second = execute_draw("swp-abc", _participants(), now=NOW)
        self.assertEqual(first.seed, second.seed)
        self.assertEqual(first.hash, second.hash)
        self.assertEqual(first.winner_participant_id, second.winner_participant_id)

    def test_independent_of_input_order(self):
        forward = execute_draw("swp-abc", _participants(5), now=NOW)
        backward = execute_draw("swp-abc", list(reversed(_participants(5))), now=NOW)
        self.assertEqual(forward.winner_participant_id, backward.winner_participant_id)
        self.assertEqual(forward.hash, backward.hash)

    def test_winner_matches_hash_reduction(self):
        result = execute_draw("swp-abc", _participants(7), now=NOW)
        self.assertEqual(result.algorithm, "SHA256_PREFIX32_MOD_V1")
        self.assertEqual(result.hash, hash_seed(result.seed))
        self.assertEqual(result.winner_index, int(result.hash[:8], 16) % 7)
        ordered = sorted(p.participant_id for p in _participants(7))
        self.assertEqual(result.winner_participant_id, ordered[result.winner_index])

    def test_seed_uses_five_minute_bucket(self):
        result = execute_draw("swp-abc", _participants(), now=NOW)
        bucket = parse_seed(result.seed).bucket_ms
        expected = datetime(2024, 5, 1, 10, 5, tzinfo=timezone.utc)
        self.assertEqual(bucket, int(expected.timestamp() * 1000))

    def test_custom_bucket_width(self):
        engine = DrawEngine(bucket_size_ms=60_000)
        result = engine.execute("swp-abc", _participants(), now=NOW)
        expected = datetime(2024, 5, 1, 10, 7, tzinfo=timezone.utc)
        self.assertEqual(parse_seed(result.seed).bucket_ms, int(expected.timestamp() * 1000))

    def test_single_participant_short_circuit(self):
        only = _participants(1)
        result = execute_draw("swp-solo", only, now=NOW)
        self.assertEqual(result.algorithm, SINGLE_PARTICIPANT)
        self.assertEqual(result.seed, NOT_APPLICABLE)
        self.assertEqual(result.hash, NOT_APPLICABLE)
        self.assertEqual(result.winner_index, 0)
        self.assertEqual(result.winner_participant_id, only[0].participant_id)
        self.assertEqual(result.winner_user_id, only[0].user_id)

    def test_empty_participants_rejected(self):
        with self.assertRaises(EmptyParticipantSet):
            execute_draw("swp-empty", [], now=NOW)

    def test_proof_mirrors_result(self):
        result = execute_draw("swp-abc", _participants(4), now=NOW)
        proof = result.proof
        self.assertEqual(proof.sweepstake_id, "swp-abc")
        self.assertEqual(proof.participant_count, 4)
        self.assertEqual(list(proof.participant_ids), sorted(p.participant_id for p in _participants(4)))
        self.assertEqual(proof.seed, result.seed)
        self.assertEqual(proof.hash, result.hash)
        self.assertEqual(proof.winner_index, result.winner_index)
        self.assertEqual(proof.generated_at, NOW.isoformat())

    def test_proof_json_is_snake_case(self):
        proof = execute_draw("swp-abc", _participants(), now=NOW).proof
        data = json.loads(proof.to_json())
        self.assertEqual(
            set(data),
            {
                "sweepstake_id",
                "participant_count",
                "participant_ids",
                "seed",
                "hash",
                "winner_index",
                "algorithm",
                "generated_at",
            },
        )
        self.assertEqual(DrawProof.from_json(proof.to_json()), proof)


class VerifyResultTests(unittest.TestCase):
    def setUp(self):
        self.result = execute_draw("swp-abc", _participants(5), now=NOW)

    def test_genuine_result_verifies(self):
        self.assertTrue(verify_result(self.result, "swp-abc"))

    def test_verification_ignores_current_clock(self):
        # Built in an earlier bucket; verification still reads the bucket
        # from the seed.
        old = execute_draw("swp-abc", _participants(5), now=datetime(2020, 1, 1, tzinfo=timezone.utc))
        self.assertTrue(verify_result(old, "swp-abc"))

    def test_wrong_sweepstake_id_fails(self):
        self.assertFalse(verify_result(self.result, "swp-other"))

    def test_tampered_seed_fails(self):
        forged = dataclasses.replace(self.result, seed=self.result.seed + "0")
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_tampered_hash_fails(self):
        flipped = ("0" if self.result.hash[0] != "0" else "1") + self.result.hash[1:]
        forged = dataclasses.replace(self.result, hash=flipped)
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_tampered_winner_fails(self):
        other_index = (self.result.winner_index + 1) % 5
        forged = dataclasses.replace(self.result, winner_index=other_index)
        self.assertFalse(verify_result(forged, "swp-abc"))
        ordered = sorted(p.participant_id for p in _participants(5))
        forged = dataclasses.replace(
            self.result, winner_participant_id=ordered[other_index]
        )
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_tampered_participant_list_fails(self):
        extra = self.result.participants + (ParticipantRecord("prt-999", "999", 1),)
        forged = dataclasses.replace(self.result, participants=extra)
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_unknown_algorithm_fails(self):
        forged = dataclasses.replace(self.result, algorithm="MD5_WHATEVER")
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_legacy_algorithm_tag_verifies(self):
        legacy = dataclasses.replace(self.result, algorithm="SHA256_DETERMINISTIC")
        self.assertTrue(verify_result(legacy, "swp-abc"))

    def test_malformed_seed_returns_false(self):
        forged = dataclasses.replace(self.result, seed="garbage")
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_wrongly_typed_participant_fields_return_false(self):
        records = list(self.result.participants)
        records[0] = dataclasses.replace(records[0], participant_id=7)
        forged = dataclasses.replace(self.result, participants=tuple(records))
        self.assertFalse(verify_result(forged, "swp-abc"))

        for bad_joined_at in ("1714550000000", 1714550000000.0, None):
            records = list(self.result.participants)
            records[0] = dataclasses.replace(records[0], joined_at=bad_joined_at)
            forged = dataclasses.replace(self.result, participants=tuple(records))
            self.assertFalse(verify_result(forged, "swp-abc"))

        forged = dataclasses.replace(
            self.result, participants=({"participant_id": "prt-000"},)
        )
        self.assertFalse(verify_result(forged, "swp-abc"))

    def test_single_participant_rules(self):
        solo = execute_draw("swp-solo", _participants(1), now=NOW)
        self.assertTrue(verify_result(solo, "swp-solo"))
        padded = dataclasses.replace(solo, participants=tuple(_participants(2)))
        self.assertFalse(verify_result(padded, "swp-solo"))
        wrong_index = dataclasses.replace(solo, winner_index=1)
        self.assertFalse(verify_result(wrong_index, "swp-solo"))


class VerifyProofTests(unittest.TestCase):
    def setUp(self):
        self.proof = execute_draw("swp-abc", _participants(6), now=NOW).proof

    def test_genuine_proof_verifies(self):
        self.assertTrue(verify_proof(self.proof))
        self.assertTrue(verify_proof(DrawProof.from_json(self.proof.to_json())))

    def test_tampered_proof_fails(self):
        cases = {
            "index": dataclasses.replace(
                self.proof, winner_index=(self.proof.winner_index + 1) % 6
            ),
            "count": dataclasses.replace(self.proof, participant_count=5),
            "ids": dataclasses.replace(
                self.proof, participant_ids=tuple(reversed(self.proof.participant_ids))
            ),
            "sweepstake": dataclasses.replace(self.proof, sweepstake_id="swp-other"),
            "hash": dataclasses.replace(self.proof, hash="0" * 64),
            "algorithm": dataclasses.replace(self.proof, algorithm="NOPE"),
        }
        for name, forged in cases.items():
            with self.subTest(name=name):
                self.assertFalse(verify_proof(forged))

    def test_single_participant_proof(self):
        proof = execute_draw("swp-solo", _participants(1), now=NOW).proof
        self.assertTrue(verify_proof(proof))
        self.assertFalse(verify_proof(dataclasses.replace(proof, participant_count=2)))


if __name__ == "__main__":
    unittest.main()
