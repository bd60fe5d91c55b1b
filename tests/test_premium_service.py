from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta

from propertipro import create_app
from propertipro.extensions import db
from propertipro.models import ActivityLog, AdPayment, Listing, PremiumListing
from propertipro.services.listing_service import create_listing
from propertipro.services.payment_service import InvalidPaymentTransition
from propertipro.services.premium_service import (
    PremiumError,
    activate_premium_listing,
    build_order_id,
    cancel_premium_listing,
    create_payment,
    create_premium_listing,
    expire_premium_listings,
    get_plan,
    record_analytics_event,
    update_payment_status,
)
from propertipro.utils.idempotency import lookup_response
from propertipro.utils.jwt_utils import create_access_token


class PremiumServiceTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._saved_env = {
            "SQLALCHEMY_DATABASE_URI": os.getenv("SQLALCHEMY_DATABASE_URI"),
            "DATABASE_URL": os.getenv("DATABASE_URL"),
            "PROPERTIPRO_ENV": os.getenv("PROPERTIPRO_ENV"),
            "PAYMENTS_PROVIDER": os.getenv("PAYMENTS_PROVIDER"),
            "PREMIUM_CURRENCY": os.getenv("PREMIUM_CURRENCY"),
            "ENABLE_IDEMPOTENCY_ENFORCEMENT": os.getenv("ENABLE_IDEMPOTENCY_ENFORCEMENT"),
        }
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri
        os.environ["PROPERTIPRO_ENV"] = "dev"
        os.environ["PAYMENTS_PROVIDER"] = "mock"
        os.environ["PREMIUM_CURRENCY"] = "USD"
        os.environ["ENABLE_IDEMPOTENCY_ENFORCEMENT"] = "false"
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

    def _auth(self, user_id: int, role: str = "agent") -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}

    def _listing(self, user_id: int = 11) -> str:
        with self.app.app_context():
            return create_listing(title="Canggu villa", user_id=user_id, price=250000.0, city="Bali").id

    def _paid_premium(self, listing_id: str, *, user_id: int = 11, order_suffix: str = "1") -> int:
        payment = create_payment(
            order_id=f"premium-{listing_id}-{order_suffix}", amount=29.99, currency="USD", user_id=user_id
        )
        premium = create_premium_listing(
            property_id=listing_id, user_id=user_id, plan_id=None, payment_id=int(payment.id)
        )
        update_payment_status(int(payment.id), "paid", transaction_id=f"inv-{order_suffix}")
        return int(premium.id)

    def test_plans_endpoint(self):
        res = self.client.get("/api/premium/plans")
        self.assertEqual(res.status_code, 200)
        plans = res.get_json()["plans"]
        self.assertEqual(len(plans), 1)
        self.assertEqual(plans[0]["id"], "premium-monthly")
        self.assertEqual(plans[0]["price"], 29.99)
        self.assertEqual(plans[0]["currency"], "USD")
        self.assertEqual(plans[0]["duration_days"], 30)
        with self.assertRaisesRegex(PremiumError, "Premium plan not found"):
            get_plan("premium-yearly")

    def test_build_order_id(self):
        now = datetime(2026, 1, 2, 3, 4, 5)
        order_id = build_order_id("abc123", now)
        self.assertTrue(order_id.startswith("premium-abc123-"))
        self.assertEqual(order_id.split("-")[1], "abc123")
        self.assertEqual(order_id.split("-")[2], str(int(now.timestamp() * 1000)))
        with self.assertRaises(PremiumError):
            build_order_id("has-dash")

    def test_checkout_requires_auth(self):
        res = self.client.post("/api/premium/checkout", json={"property_id": "x"})
        self.assertEqual(res.status_code, 401)

    def test_checkout_creates_pending_rows_and_invoice(self):
        listing_id = self._listing()
        res = self.client.post(
            "/api/premium/checkout",
            json={"property_id": listing_id, "billing_details": {"email": "agent@example.com"}},
            headers=self._auth(11),
        )
        self.assertEqual(res.status_code, 201)
        body = res.get_json()
        self.assertTrue(body["ok"])
        self.assertTrue(body["order_id"].startswith(f"premium-{listing_id}-"))
        self.assertTrue(body["invoice_url"].startswith("https://example.com/mock/invoice/"))
        self.assertEqual(body["premium_listing"]["status"], "pending")
        self.assertEqual(body["payment"]["status"], "pending")

        with self.app.app_context():
            payment = AdPayment.query.filter_by(external_order_id=body["order_id"]).first()
            self.assertIsNotNone(payment)
            self.assertEqual(payment.user_id, 11)
            self.assertEqual(payment.billing_dict(), {"email": "agent@example.com"})
            premium = PremiumListing.query.filter_by(payment_id=payment.id).first()
            self.assertEqual(premium.property_id, listing_id)
            self.assertFalse(db.session.get(Listing, listing_id).is_promoted)

    def test_checkout_unknown_property_returns_404(self):
        res = self.client.post("/api/premium/checkout", json={"property_id": "nope"}, headers=self._auth(11))
        self.assertEqual(res.status_code, 404)
        self.assertEqual(res.get_json()["message"], "Property not found")

    def test_checkout_rejects_property_with_live_premium(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            activate_premium_listing(premium)
            db.session.commit()

        res = self.client.post("/api/premium/checkout", json={"property_id": listing_id}, headers=self._auth(11))
        self.assertEqual(res.status_code, 409)

    def test_checkout_idempotency_key_replays_response(self):
        listing_id = self._listing()
        headers = {**self._auth(11), "Idempotency-Key": "checkout-1"}
        first = self.client.post("/api/premium/checkout", json={"property_id": listing_id}, headers=headers)
        second = self.client.post("/api/premium/checkout", json={"property_id": listing_id}, headers=headers)
        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(first.get_json()["order_id"], second.get_json()["order_id"])
        with self.app.app_context():
            self.assertEqual(AdPayment.query.count(), 1)

        other = self._listing()
        conflict = self.client.post("/api/premium/checkout", json={"property_id": other}, headers=headers)
        self.assertEqual(conflict.status_code, 409)

    def test_unfinished_idempotency_key_is_reported_in_progress(self):
        with self.app.test_request_context(headers={"Idempotency-Key": "checkout-pending"}):
            state, _row, _status = lookup_response(11, "premium_checkout", {"property_id": "p-1"})
            self.assertEqual(state, "miss")

            state, body, status = lookup_response(11, "premium_checkout", {"property_id": "p-1"})
            self.assertEqual(state, "conflict")
            self.assertEqual(status, 409)
            self.assertEqual(body["error"], "IDEMPOTENCY_IN_PROGRESS")

    def test_activation_requires_paid_payment(self):
        listing_id = self._listing()
        with self.app.app_context():
            payment = create_payment(order_id=f"premium-{listing_id}-1", amount=29.99, currency="USD")
            premium = create_premium_listing(
                property_id=listing_id, user_id=11, plan_id=None, payment_id=int(payment.id)
            )
            with self.assertRaisesRegex(PremiumError, "not paid"):
                activate_premium_listing(premium)

    def test_activation_is_idempotent(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            now = datetime.utcnow()
            self.assertTrue(activate_premium_listing(premium, now))
            db.session.commit()
            end_date = premium.end_date
            self.assertEqual(end_date, now + timedelta(days=30))
            self.assertFalse(activate_premium_listing(premium, now + timedelta(hours=1)))
            db.session.commit()
            self.assertEqual(premium.end_date, end_date)
            self.assertTrue(db.session.get(Listing, listing_id).is_promoted)
            self.assertEqual(ActivityLog.query.filter_by(action="PREMIUM_ACTIVATED").count(), 1)

    def test_paid_payment_cannot_move_back_to_pending(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            with self.assertRaises(InvalidPaymentTransition):
                update_payment_status(int(premium.payment_id), "pending")

    def test_analytics_events(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            activate_premium_listing(premium)
            db.session.commit()

        for kind in ("view", "view", "view", "view", "inquiry", "favorite"):
            res = self.client.post(f"/api/premium/properties/{listing_id}/events", json={"type": kind})
            self.assertEqual(res.status_code, 200)
            self.assertTrue(res.get_json()["recorded"])

        res = self.client.get(f"/api/premium/properties/{listing_id}")
        analytics = res.get_json()["premium_listing"]["analytics"]
        self.assertEqual(analytics["views"], 4)
        self.assertEqual(analytics["inquiries"], 1)
        self.assertEqual(analytics["favorites"], 1)
        self.assertEqual(analytics["conversion_rate"], 25.0)
        self.assertEqual(len(analytics["daily_views"]), 1)
        self.assertEqual(analytics["daily_views"][0]["views"], 4)

        bad = self.client.post(f"/api/premium/properties/{listing_id}/events", json={"type": "share"})
        self.assertEqual(bad.status_code, 400)

    def test_analytics_without_live_premium_is_not_recorded(self):
        listing_id = self._listing()
        res = self.client.post(f"/api/premium/properties/{listing_id}/events", json={"type": "view"})
        self.assertEqual(res.status_code, 200)
        self.assertFalse(res.get_json()["recorded"])
        with self.app.app_context():
            self.assertIsNone(record_analytics_event(listing_id, "inquiry"))
        res = self.client.get(f"/api/premium/properties/{listing_id}")
        self.assertIsNone(res.get_json()["premium_listing"])

    def test_expiry_unpromotes_listing(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            activate_premium_listing(premium, datetime.utcnow() - timedelta(days=31))
            db.session.commit()
            premium_id = int(premium.id)

            result = expire_premium_listings()
            self.assertEqual(result["expired"], 1)
            self.assertEqual(result["expired_ids"], [premium_id])
            self.assertEqual(result["unpromoted"], [listing_id])
            self.assertEqual(db.session.get(PremiumListing, premium_id).status, "expired")
            self.assertFalse(db.session.get(Listing, listing_id).is_promoted)
            self.assertEqual(ActivityLog.query.filter_by(action="PREMIUM_EXPIRED").count(), 1)

            self.assertEqual(expire_premium_listings()["expired"], 0)

    def test_expiry_keeps_promotion_when_another_premium_is_live(self):
        listing_id = self._listing()
        with self.app.app_context():
            old = db.session.get(PremiumListing, self._paid_premium(listing_id, order_suffix="1"))
            activate_premium_listing(old, datetime.utcnow() - timedelta(days=31))
            new = db.session.get(PremiumListing, self._paid_premium(listing_id, order_suffix="2"))
            activate_premium_listing(new)
            db.session.commit()

            result = expire_premium_listings()
            self.assertEqual(result["expired"], 1)
            self.assertEqual(result["unpromoted"], [])
            self.assertTrue(db.session.get(Listing, listing_id).is_promoted)

    def test_cancel_via_admin_endpoint(self):
        listing_id = self._listing()
        with self.app.app_context():
            premium = db.session.get(PremiumListing, self._paid_premium(listing_id))
            activate_premium_listing(premium)
            db.session.commit()
            premium_id = int(premium.id)

        denied = self.client.post(f"/api/admin/premium/{premium_id}/cancel", headers=self._auth(11))
        self.assertEqual(denied.status_code, 403)

        res = self.client.post(f"/api/admin/premium/{premium_id}/cancel", headers=self._auth(1, role="admin"))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["premium_listing"]["status"], "cancelled")
        with self.app.app_context():
            self.assertFalse(db.session.get(Listing, listing_id).is_promoted)
            self.assertEqual(ActivityLog.query.filter_by(action="PREMIUM_CANCELLED").count(), 1)
            with self.assertRaisesRegex(PremiumError, "not found"):
                cancel_premium_listing(99999)

        missing = self.client.post("/api/admin/premium/99999/cancel", headers=self._auth(1, role="admin"))
        self.assertEqual(missing.status_code, 404)

    def test_my_listings_and_payments(self):
        listing_id = self._listing(user_id=21)
        self.client.post("/api/premium/checkout", json={"property_id": listing_id}, headers=self._auth(21))

        res = self.client.get("/api/premium/me/listings", headers=self._auth(21))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(len(res.get_json()["items"]), 1)

        res = self.client.get("/api/premium/me/payments", headers=self._auth(21))
        self.assertEqual(len(res.get_json()["items"]), 1)

        res = self.client.get("/api/premium/me/payments", headers=self._auth(22))
        self.assertEqual(res.get_json()["items"], [])

        self.assertEqual(self.client.get("/api/premium/me/listings").status_code, 401)


if __name__ == "__main__":
    unittest.main()
