from __future__ import annotations

import os
import unittest

from martaz import create_app
from martaz.errors import ForbiddenError
from martaz.extensions import db
from martaz.models import Listing, ListingReport, PlatformEvent, User
from martaz.services import report_service
from martaz.utils.jwt_utils import create_token


def _upsert_user(*, email: str, role: str = "user") -> User:
    row = User.query.filter_by(email=email).first()
    if row is None:
        row = User(email=email, first_name=email.split("@")[0], last_name="Test", role=role, status="active")
        row.set_password("password123")
        db.session.add(row)
        db.session.flush()
    row.role = role
    db.session.flush()
    return row


def _make_listing(owner_id: int, title: str, status: str = "active") -> int:
    row = Listing(
        user_id=owner_id,
        title=title,
        slug=title.lower().replace(" ", "-"),
        description="Seeded listing for moderation tests.",
        price=100,
        currency="AZN",
        location="Baku",
        status=status,
    )
    db.session.add(row)
    db.session.commit()
    return int(row.id)


class ModerationReportsTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._prev_db_uri = os.getenv("SQLALCHEMY_DATABASE_URI")
        cls._prev_db_url = os.getenv("DATABASE_URL")
        db_uri = "sqlite:///:memory:"
        os.environ["SQLALCHEMY_DATABASE_URI"] = db_uri
        os.environ["DATABASE_URL"] = db_uri

        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
            seller = _upsert_user(email="report-seller@mart.az")
            reporter = _upsert_user(email="reporter@mart.az")
            second = _upsert_user(email="reporter2@mart.az")
            admin = _upsert_user(email="report-admin@mart.az", role="admin")
            db.session.commit()

            cls.seller_id = int(seller.id)
            cls.reporter_id = int(reporter.id)
            cls.admin_id = int(admin.id)
            cls.seller_token = create_token(int(seller.id))
            cls.reporter_token = create_token(int(reporter.id))
            cls.second_token = create_token(int(second.id))
            cls.admin_token = create_token(int(admin.id))

        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._prev_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._prev_db_uri
        if cls._prev_db_url is None:
            os.environ.pop("DATABASE_URL", None)
        else:
            os.environ["DATABASE_URL"] = cls._prev_db_url

    def _headers(self, token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    def _listing(self, title: str, status: str = "active") -> int:
        with self.app.app_context():
            return _make_listing(self.seller_id, title, status)

    def _report(self, listing_id: int, token: str | None = None, reason="1"):
        return self.client.post(
            "/api/reports",
            json={"listing_id": listing_id, "reason": reason, "additional_info": "Looks suspicious"},
            headers=self._headers(token or self.reporter_token),
        )

    def test_reasons_catalog(self):
        res = self.client.get("/api/reports/reasons")
        self.assertEqual(res.status_code, 200)
        reasons = res.get_json()["data"]
        self.assertEqual(len(reasons), 8)
        self.assertEqual(reasons[0]["name"], "Fake or fraudulent listing")
        self.assertEqual(reasons[-1]["name"], "Other")

    def test_report_requires_auth(self):
        listing_id = self._listing("Auth Required Lamp")
        res = self.client.post("/api/reports", json={"listing_id": listing_id, "reason": "1"})
        self.assertEqual(res.status_code, 401)

    def test_submit_maps_reason_id_to_name(self):
        listing_id = self._listing("Fake Phone")
        res = self._report(listing_id)
        self.assertEqual(res.status_code, 201)
        data = res.get_json()["data"]
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["reason"], "Fake or fraudulent listing")

    def test_free_text_reason_is_kept(self):
        listing_id = self._listing("Strange Chair")
        res = self._report(listing_id, reason="Seller asked for prepayment")
        self.assertEqual(res.get_json()["data"]["reason"], "Seller asked for prepayment")

    def test_missing_reason_or_listing(self):
        listing_id = self._listing("Reasonless Table")
        self.assertEqual(self._report(listing_id, reason="").status_code, 400)
        self.assertEqual(self._report(987654).status_code, 404)

    def test_duplicate_active_report_is_rejected(self):
        listing_id = self._listing("Duplicate Target")
        self.assertEqual(self._report(listing_id).status_code, 201)
        res = self._report(listing_id, reason="2")
        self.assertEqual(res.status_code, 400)
        self.assertIn("already reported", res.get_json()["message"])

        # Another user may still report the same listing.
        self.assertEqual(self._report(listing_id, token=self.second_token).status_code, 201)

    def test_reviewed_report_still_blocks_resubmission(self):
        listing_id = self._listing("Under Review")
        report_id = self._report(listing_id).get_json()["data"]["id"]
        res = self.client.patch(
            f"/api/admin/reports/{report_id}",
            json={"status": "reviewed"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self._report(listing_id).status_code, 400)

    def test_report_allowed_again_after_resolution(self):
        listing_id = self._listing("Resolved Once")
        report_id = self._report(listing_id).get_json()["data"]["id"]
        res = self.client.patch(
            f"/api/admin/reports/{report_id}",
            json={"status": "resolved", "admin_note": "Seller contacted", "action_taken": "warning"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertEqual(data["status"], "resolved")
        self.assertEqual(data["admin_note"], "Seller contacted")
        self.assertEqual(data["action_taken"], "warning")
        self.assertEqual(data["last_updated_by"], self.admin_id)
        self.assertIsNotNone(data["status_updated_at"])
        self.assertTrue(data["notification_sent"])

        self.assertEqual(self._report(listing_id).status_code, 201)

    def test_admin_endpoints_reject_regular_users(self):
        res = self.client.get("/api/admin/reports", headers=self._headers(self.reporter_token))
        self.assertEqual(res.status_code, 403)
        res = self.client.get("/api/admin/reports/stats", headers=self._headers(self.reporter_token))
        self.assertEqual(res.status_code, 403)

    def test_invalid_status_update(self):
        listing_id = self._listing("Bad Status Report")
        report_id = self._report(listing_id).get_json()["data"]["id"]
        res = self.client.patch(
            f"/api/admin/reports/{report_id}",
            json={"status": "closed"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.patch(
            "/api/admin/reports/999999",
            json={"status": "resolved"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 404)

    def test_bulk_update_returns_count(self):
        first = self._report(self._listing("Bulk One")).get_json()["data"]["id"]
        second = self._report(self._listing("Bulk Two")).get_json()["data"]["id"]
        res = self.client.patch(
            "/api/admin/reports/bulk",
            json={"report_ids": [first, second, 888888], "status": "dismissed"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["updated"], 2)
        with self.app.app_context():
            statuses = {row.status for row in ListingReport.query.filter(ListingReport.id.in_([first, second])).all()}
        self.assertEqual(statuses, {"dismissed"})

    def test_bulk_update_validation(self):
        res = self.client.patch(
            "/api/admin/reports/bulk",
            json={"report_ids": [], "status": "dismissed"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.patch(
            "/api/admin/reports/bulk",
            json={"report_ids": [777777], "status": "dismissed"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 404)

    def test_list_reports_filters_by_status(self):
        listing_id = self._listing("Listed Report")
        self._report(listing_id)
        res = self.client.get(
            f"/api/admin/reports?status=pending&listing_id={listing_id}",
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        items = res.get_json()["data"]["items"]
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["listing_id"], listing_id)
        self.assertEqual(items[0]["status"], "pending")

    def test_my_reports(self):
        listing_id = self._listing("Mine To Report")
        self._report(listing_id, token=self.second_token)
        res = self.client.get("/api/reports/mine", headers=self._headers(self.second_token))
        self.assertEqual(res.status_code, 200)
        items = res.get_json()["data"]["items"]
        self.assertTrue(any(item["listing_id"] == listing_id for item in items))
        self.assertTrue(all(item["listing"] is not None for item in items))

    def test_takedown_soft_deletes_and_reviews_reports(self):
        listing_id = self._listing("Takedown Target")
        self._report(listing_id)
        self._report(listing_id, token=self.second_token)
        res = self.client.post(
            f"/api/admin/listings/{listing_id}/takedown",
            json={"admin_note": "Counterfeit goods"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["reports_updated"], 2)
        with self.app.app_context():
            self.assertEqual(db.session.get(Listing, listing_id).status, "deleted")
            rows = ListingReport.query.filter_by(listing_id=listing_id).all()
            self.assertEqual({row.status for row in rows}, {"reviewed"})
            self.assertEqual({row.action_taken for row in rows}, {"listing_deleted"})
            event = (
                PlatformEvent.query
                .filter_by(event_type="listing_status_changed", subject_id=str(listing_id))
                .first()
            )
            self.assertIsNotNone(event)

    def test_statistics_shape(self):
        listing_id = self._listing("Stats Target")
        self._report(listing_id, reason="3")
        res = self.client.get("/api/admin/reports/stats", headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 200)
        stats = res.get_json()["data"]
        self.assertEqual(set(stats["by_status"].keys()), {"pending", "reviewed", "resolved", "dismissed"})
        self.assertEqual(stats["total"], sum(stats["by_status"].values()))
        self.assertLessEqual(len(stats["top_reasons"]), 5)
        self.assertEqual(len(stats["daily_trend"]), 7)
        self.assertGreaterEqual(stats["daily_trend"][-1]["count"], 1)
        reasons = [item["reason"] for item in stats["top_reasons"]]
        self.assertIn("Prohibited item", reasons)

    def test_service_rejects_non_admin(self):
        with self.app.app_context():
            reporter = db.session.get(User, self.reporter_id)
            with self.assertRaises(ForbiddenError):
                report_service.report_statistics(reporter)


if __name__ == "__main__":
    unittest.main()
