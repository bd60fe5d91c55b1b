from __future__ import annotations

import json
import os
import unittest
from datetime import datetime, timedelta
from unittest.mock import patch

from propertipro import create_app
from propertipro.extensions import db
from propertipro.models import ActivityLog, JobRun, Listing, PremiumListing, ReconciliationReport
from propertipro.services.listing_service import create_listing, set_promoted
from propertipro.services.premium_service import (
    PremiumError,
    activate_premium_listing,
    create_payment,
    create_premium_listing,
    update_payment_status,
)
from propertipro.services.reconciliation_service import persist_report, reconcile_premium_listings, unresolved_count
from propertipro.tasks.premium_tasks import expire_premium_listings_task, reconcile_premium_listings_task
from propertipro.utils.jwt_utils import create_access_token


class PremiumReconciliationTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._saved_env = {
            "SQLALCHEMY_DATABASE_URI": os.getenv("SQLALCHEMY_DATABASE_URI"),
            "DATABASE_URL": os.getenv("DATABASE_URL"),
            "PROPERTIPRO_ENV": os.getenv("PROPERTIPRO_ENV"),
        }
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        os.environ["PROPERTIPRO_ENV"] = "dev"
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        for key, value in cls._saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.create_all()

    def _admin(self) -> dict:
        return {"Authorization": f"Bearer {create_access_token(1, role='admin')}"}

    def _paid_but_pending(self) -> tuple[str, int]:
        """A paid payment whose premium row never got activated."""
        listing = create_listing(title="Ubud retreat", user_id=4)
        payment = create_payment(order_id=f"premium-{listing.id}-1", amount=29.99, currency="USD", user_id=4)
        premium = create_premium_listing(
            property_id=listing.id, user_id=4, plan_id=None, payment_id=int(payment.id)
        )
        update_payment_status(int(payment.id), "paid", transaction_id="inv-1")
        return listing.id, int(premium.id)

    def test_sweep_activates_paid_pending_premium(self):
        with self.app.app_context():
            listing_id, premium_id = self._paid_but_pending()

            summary = reconcile_premium_listings()
            self.assertEqual(summary["scope"], "premium_listings")
            self.assertEqual(summary["activated_count"], 1)
            self.assertEqual(summary["activated"][0]["premium_id"], premium_id)
            self.assertEqual(db.session.get(PremiumListing, premium_id).status, "active")
            self.assertTrue(db.session.get(Listing, listing_id).is_promoted)
            self.assertEqual(ActivityLog.query.filter_by(action="PREMIUM_RECONCILED").count(), 1)

            again = reconcile_premium_listings()
            self.assertEqual(again["activated_count"], 0)
            self.assertEqual(again["drift_count"], 0)

    def test_sweep_leaves_unpaid_premium_pending(self):
        with self.app.app_context():
            listing = create_listing(title="Unpaid", user_id=4)
            payment = create_payment(order_id=f"premium-{listing.id}-1", amount=29.99, currency="USD")
            premium = create_premium_listing(
                property_id=listing.id, user_id=4, plan_id=None, payment_id=int(payment.id)
            )
            summary = reconcile_premium_listings()
            self.assertEqual(summary["activated_count"], 0)
            self.assertEqual(db.session.get(PremiumListing, int(premium.id)).status, "pending")

    def test_failed_activation_is_reported_separately(self):
        with self.app.app_context():
            _listing_id, premium_id = self._paid_but_pending()
            with patch(
                "propertipro.services.reconciliation_service.activate_premium_listing",
                side_effect=PremiumError("Premium listing not found"),
            ):
                summary = reconcile_premium_listings()

            self.assertEqual(summary["activated_count"], 0)
            self.assertEqual(summary["activated"], [])
            self.assertEqual(summary["activation_error_count"], 1)
            self.assertEqual(summary["activation_errors"][0]["premium_id"], premium_id)
            self.assertEqual(summary["activation_errors"][0]["error"], "Premium listing not found")
            self.assertEqual(unresolved_count(summary), 1)
            self.assertEqual(ActivityLog.query.filter_by(action="PREMIUM_RECONCILED").count(), 0)
            self.assertEqual(db.session.get(PremiumListing, premium_id).status, "pending")

    def test_dry_run_reports_without_writing(self):
        with self.app.app_context():
            listing_id, premium_id = self._paid_but_pending()
            orphan = create_listing(title="Promoted by hand")
            set_promoted(orphan.id, True, commit=True)

            summary = reconcile_premium_listings(apply=False)
            self.assertFalse(summary["applied"])
            self.assertEqual(summary["activated_count"], 1)
            self.assertEqual(summary["drift_count"], 1)
            self.assertEqual(summary["drift_items"][0]["property_id"], orphan.id)

            db.session.expire_all()
            self.assertEqual(db.session.get(PremiumListing, premium_id).status, "pending")
            self.assertFalse(db.session.get(Listing, listing_id).is_promoted)
            self.assertTrue(db.session.get(Listing, orphan.id).is_promoted)

    def test_sweep_clears_orphan_promotion_and_expires_overdue(self):
        with self.app.app_context():
            listing_id, premium_id = self._paid_but_pending()
            premium = db.session.get(PremiumListing, premium_id)
            activate_premium_listing(premium, datetime.utcnow() - timedelta(days=40))
            orphan = create_listing(title="Promoted by hand")
            set_promoted(orphan.id, True)
            db.session.commit()

            summary = reconcile_premium_listings()
            self.assertEqual(summary["expired_count"], 1)
            self.assertEqual(summary["expired_ids"], [premium_id])
            self.assertEqual(summary["drift_count"], 1)
            self.assertFalse(db.session.get(Listing, orphan.id).is_promoted)
            self.assertFalse(db.session.get(Listing, listing_id).is_promoted)

    def test_persist_report(self):
        with self.app.app_context():
            self._paid_but_pending()
            summary = reconcile_premium_listings()
            report = persist_report(summary, created_by=1)
            self.assertEqual(report.scope, "premium_listings")
            self.assertEqual(report.drift_count, 1)
            self.assertEqual(json.loads(report.summary_json)["activated_count"], 1)

    def test_admin_reconcile_endpoints(self):
        with self.app.app_context():
            self._paid_but_pending()

        denied = self.client.post("/api/admin/premium/reconcile", json={})
        self.assertEqual(denied.status_code, 403)

        res = self.client.post("/api/admin/premium/reconcile", json={"apply": True}, headers=self._admin())
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertTrue(body["ok"])
        self.assertIsNotNone(body["report_id"])
        self.assertEqual(body["summary"]["activated_count"], 1)

        latest = self.client.get("/api/admin/premium/reconcile/latest", headers=self._admin())
        self.assertEqual(latest.status_code, 200)
        self.assertEqual(latest.get_json()["report"]["id"], body["report_id"])

        activity = self.client.get("/api/admin/premium/activity?limit=10", headers=self._admin())
        self.assertEqual(activity.status_code, 200)
        actions = {item["action"] for item in activity.get_json()["items"]}
        self.assertIn("PREMIUM_RECONCILED", actions)
        self.assertIn("PREMIUM_ACTIVATED", actions)

        expire = self.client.post("/api/admin/premium/expire", headers=self._admin())
        self.assertEqual(expire.status_code, 200)
        self.assertEqual(expire.get_json()["expired"], 0)

    def test_latest_report_is_null_when_none_stored(self):
        res = self.client.get("/api/admin/premium/reconcile/latest", headers=self._admin())
        self.assertEqual(res.status_code, 200)
        self.assertIsNone(res.get_json()["report"])

    def test_tasks_record_job_runs(self):
        with self.app.app_context():
            self._paid_but_pending()

            result = reconcile_premium_listings_task.run()
            self.assertTrue(result["ok"])
            self.assertIsNotNone(result["report_id"])
            self.assertEqual(ReconciliationReport.query.count(), 1)

            result = expire_premium_listings_task.run()
            self.assertTrue(result["ok"])
            self.assertEqual(result["expired"], 0)

            names = sorted(row.job_name for row in JobRun.query.all())
            self.assertEqual(names, ["premium_expiry", "premium_reconcile"])
            self.assertTrue(all(row.ok for row in JobRun.query.all()))


if __name__ == "__main__":
    unittest.main()
