from __future__ import annotations

import importlib
import unittest


class ImportsBootTestCase(unittest.TestCase):
    def test_import_create_app(self):
        module = importlib.import_module("propertipro")
        create_app = getattr(module, "create_app", None)
        self.assertTrue(callable(create_app))

    def test_import_webhook_segment(self):
        module = importlib.import_module("propertipro.segments.segment_payment_webhooks")
        self.assertIsNotNone(getattr(module, "webhooks_bp", None))

    def test_celery_beat_schedule(self):
        module = importlib.import_module("propertipro.celery_app")
        schedule = module.beat_schedule()
        self.assertEqual(
            sorted(entry["task"] for entry in schedule.values()),
            [
                "propertipro.tasks.premium_tasks.expire_premium_listings",
                "propertipro.tasks.premium_tasks.reconcile_premium_listings",
            ],
        )
        self.assertTrue(all(entry["schedule"] >= 60 for entry in schedule.values()))


if __name__ == "__main__":
    unittest.main()
