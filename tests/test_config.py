import unittest

from sweepdraw.config import DEFAULT_SETTINGS, DrawSettings


class DrawSettingsTests(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(DEFAULT_SETTINGS.seed_bucket_ms, 300_000)
        self.assertEqual(DEFAULT_SETTINGS.poll_interval_seconds, 30.0)
        self.assertEqual(DEFAULT_SETTINGS.retry_backoff_seconds, 60.0)
        self.assertEqual(DEFAULT_SETTINGS.house_fee_fraction, 0.05)
        self.assertEqual(DEFAULT_SETTINGS.leave_lockout_seconds, 300)
        self.assertEqual(DEFAULT_SETTINGS.min_participants_to_activate, 2)
        self.assertIsNone(DEFAULT_SETTINGS.broadcast_url)

    def test_from_env(self):
        settings = DrawSettings.from_env(
            {
                "SEED_BUCKET_MS": "60000",
                "SCHEDULER_POLL_SECONDS": "5",
                "SCHEDULER_RETRY_SECONDS": "15.5",
                "HOUSE_FEE_FRACTION": "0.1",
                "LEAVE_LOCKOUT_SECONDS": "0",
                "MIN_PARTICIPANTS_TO_ACTIVATE": "3",
                "BROADCAST_URL": "http://broadcast.local",
            }
        )
        self.assertEqual(settings.seed_bucket_ms, 60_000)
        self.assertEqual(settings.poll_interval_seconds, 5.0)
        self.assertEqual(settings.retry_backoff_seconds, 15.5)
        self.assertEqual(settings.house_fee_fraction, 0.1)
        self.assertEqual(settings.leave_lockout_seconds, 0)
        self.assertEqual(settings.min_participants_to_activate, 3)
        self.assertEqual(settings.broadcast_url, "http://broadcast.local")

    def test_blank_values_fall_back_to_defaults(self):
        settings = DrawSettings.from_env({"SEED_BUCKET_MS": "  ", "BROADCAST_URL": ""})
        self.assertEqual(settings, DrawSettings())

    def test_invalid_values_raise(self):
        bad = [
            {"SEED_BUCKET_MS": "five"},
            {"SEED_BUCKET_MS": "0"},
            {"SCHEDULER_POLL_SECONDS": "-1"},
            {"HOUSE_FEE_FRACTION": "1.5"},
            {"MIN_PARTICIPANTS_TO_ACTIVATE": "0"},
            {"SCHEDULER_RETRY_SECONDS": "soon"},
        ]
        for env in bad:
            with self.subTest(env=env):
                with self.assertRaises(ValueError):
                    DrawSettings.from_env(env)

    def test_settings_are_frozen(self):
        with self.assertRaises(AttributeError):
            DEFAULT_SETTINGS.seed_bucket_ms = 1


if __name__ == "__main__":
    unittest.main()
