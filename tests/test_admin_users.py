from __future__ import annotations

import os
import unittest
from datetime import datetime, timedelta

from martaz import create_app
from martaz.extensions import db
from martaz.models import Listing, PlatformEvent, User
from martaz.services import user_service
from martaz.utils.jwt_utils import create_token


def _upsert_user(*, email: str, role: str = "user", status: str = "active") -> User:
    row = User.query.filter_by(email=email).first()
    if row is None:
        row = User(email=email, first_name=email.split("@")[0], last_name="Test", role=role, status=status)
        row.set_password("password123")
        db.session.add(row)
        db.session.flush()
    row.role = role
    row.status = status
    db.session.flush()
    return row


class AdminUsersTestCase(unittest.TestCase):
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
            superadmin = _upsert_user(email="root@mart.az", role="superadmin")
            admin = _upsert_user(email="staff@mart.az", role="admin")
            peer = _upsert_user(email="staff2@mart.az", role="admin")
            db.session.commit()

            cls.superadmin_id = int(superadmin.id)
            cls.admin_id = int(admin.id)
            cls.peer_id = int(peer.id)
            cls.superadmin_token = create_token(int(superadmin.id))
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

    def _member(self, email: str, status: str = "active") -> tuple[int, str]:
        with self.app.app_context():
            user = _upsert_user(email=email, status=status)
            db.session.commit()
            return int(user.id), create_token(int(user.id))

    def _user(self, user_id: int) -> User:
        return db.session.get(User, user_id)

    # -------------------------
    # Registration and login
    # -------------------------

    def test_register_forces_user_role(self):
        res = self.client.post(
            "/api/auth/register",
            json={"email": "New.Member@Mart.az", "password": "secret1", "first_name": "New", "role": "superadmin"},
        )
        self.assertEqual(res.status_code, 201)
        data = res.get_json()["data"]
        self.assertEqual(data["user"]["role"], "user")
        self.assertEqual(data["user"]["email"], "new.member@mart.az")
        self.assertTrue(data["token"])
        self.assertNotIn("password_hash", data["user"])

        res = self.client.get("/api/auth/me", headers=self._headers(data["token"]))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["email"], "new.member@mart.az")

    def test_register_validation(self):
        res = self.client.post("/api/auth/register", json={"email": "bad", "password": "secret1"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/auth/register", json={"email": "short@mart.az", "password": "123"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/auth/register", json={"email": "root@mart.az", "password": "secret1"})
        self.assertEqual(res.status_code, 409)

    def test_login(self):
        res = self.client.post("/api/auth/login", json={"email": "staff@mart.az", "password": "password123"})
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["data"]["token"])

        res = self.client.post("/api/auth/login", json={"email": "staff@mart.az", "password": "wrong-pass"})
        self.assertEqual(res.status_code, 401)

        self._member("sleeping@mart.az", status="suspended")
        res = self.client.post("/api/auth/login", json={"email": "sleeping@mart.az", "password": "password123"})
        self.assertEqual(res.status_code, 401)

    def test_suspended_token_is_refused(self):
        _, token = self._member("paused@mart.az", status="suspended")
        res = self.client.get("/api/auth/me", headers=self._headers(token))
        self.assertEqual(res.status_code, 403)

    def test_profile_update_requires_current_password(self):
        _, token = self._member("profile@mart.az")
        res = self.client.put(
            "/api/auth/me",
            json={"first_name": "Aysel", "password": "newsecret", "current_password": "nope"},
            headers=self._headers(token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.put(
            "/api/auth/me",
            json={"first_name": "Aysel", "password": "newsecret", "current_password": "password123"},
            headers=self._headers(token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["first_name"], "Aysel")
        res = self.client.post("/api/auth/login", json={"email": "profile@mart.az", "password": "newsecret"})
        self.assertEqual(res.status_code, 200)

    def _issue_reset_token(self, email: str) -> str:
        with self.app.app_context():
            return user_service.request_password_reset(email)

    def test_forgot_password_does_not_reveal_accounts(self):
        member_id, _ = self._member("forgetful@mart.az")
        for email in ("forgetful@mart.az", "nobody@mart.az"):
            res = self.client.post("/api/auth/forgot-password", json={"email": email})
            self.assertEqual(res.status_code, 200)
            self.assertIn("If your email is registered", res.get_json()["message"])
            self.assertIsNone(res.get_json()["data"])
        with self.app.app_context():
            user = self._user(member_id)
            self.assertIsNotNone(user.reset_password_token)
            self.assertGreater(user.reset_password_expires, datetime.utcnow() + timedelta(minutes=55))
            self.assertNotIn("reset_password_token", user.to_dict())

    def test_reset_password_with_valid_token(self):
        member_id, _ = self._member("resetting@mart.az")
        token = self._issue_reset_token("resetting@mart.az")
        self.assertTrue(token)
        with self.app.app_context():
            self.assertNotEqual(self._user(member_id).reset_password_token, token)

        res = self.client.post("/api/auth/reset-password", json={"token": token, "password": "123"})
        self.assertEqual(res.status_code, 400)

        res = self.client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new"})
        self.assertEqual(res.status_code, 200, res.get_data(as_text=True))
        res = self.client.post("/api/auth/login", json={"email": "resetting@mart.az", "password": "brand-new"})
        self.assertEqual(res.status_code, 200)

        # Tokens are single use.
        res = self.client.post("/api/auth/reset-password", json={"token": token, "password": "another-one"})
        self.assertEqual(res.status_code, 400)
        with self.app.app_context():
            self.assertIsNone(self._user(member_id).reset_password_expires)

    def test_reset_password_rejects_expired_or_unknown_token(self):
        member_id, _ = self._member("too-late@mart.az")
        token = self._issue_reset_token("too-late@mart.az")
        with self.app.app_context():
            self._user(member_id).reset_password_expires = datetime.utcnow() - timedelta(minutes=1)
            db.session.commit()

        res = self.client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["message"], "Invalid or expired password reset token")
        res = self.client.post("/api/auth/login", json={"email": "too-late@mart.az", "password": "password123"})
        self.assertEqual(res.status_code, 200)

        res = self.client.post("/api/auth/reset-password", json={"token": "made-up", "password": "brand-new"})
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/auth/reset-password", json={"password": "brand-new"})
        self.assertEqual(res.status_code, 400)

    # -------------------------
    # Admin guards
    # -------------------------

    def test_admin_cannot_modify_another_admin(self):
        res = self.client.patch(
            f"/api/admin/users/{self.peer_id}/status",
            json={"status": "suspended"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 403)
        with self.app.app_context():
            self.assertEqual(self._user(self.peer_id).status, "active")

    def test_superadmin_can_modify_admin(self):
        res = self.client.patch(
            f"/api/admin/users/{self.peer_id}/status",
            json={"status": "inactive"},
            headers=self._headers(self.superadmin_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["status"], "inactive")
        res = self.client.patch(
            f"/api/admin/users/{self.peer_id}/status",
            json={"status": "active"},
            headers=self._headers(self.superadmin_token),
        )
        self.assertEqual(res.status_code, 200)

    def test_cannot_change_own_account(self):
        res = self.client.patch(
            f"/api/admin/users/{self.admin_id}/status",
            json={"status": "suspended"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.patch(
            f"/api/admin/users/{self.superadmin_id}/role",
            json={"role": "user"},
            headers=self._headers(self.superadmin_token),
        )
        self.assertEqual(res.status_code, 400)

    def test_status_and_role_validation(self):
        member_id, _ = self._member("validate-me@mart.az")
        res = self.client.patch(
            f"/api/admin/users/{member_id}/status",
            json={"status": "banned"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.patch(
            f"/api/admin/users/{member_id}/role",
            json={"role": "owner"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 400)
        res = self.client.patch(
            "/api/admin/users/999999/status",
            json={"status": "active"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 404)

    def test_admin_can_suspend_regular_user(self):
        member_id, member_token = self._member("suspend-me@mart.az")
        res = self.client.patch(
            f"/api/admin/users/{member_id}/status",
            json={"status": "suspended"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 200)
        res = self.client.get("/api/auth/me", headers=self._headers(member_token))
        self.assertEqual(res.status_code, 403)
        with self.app.app_context():
            event = PlatformEvent.query.filter_by(event_type="user_status_changed", subject_id=str(member_id)).first()
            self.assertIsNotNone(event)

    def test_role_escalation_requires_superadmin(self):
        member_id, _ = self._member("promote-me@mart.az")
        res = self.client.patch(
            f"/api/admin/users/{member_id}/role",
            json={"role": "admin"},
            headers=self._headers(self.admin_token),
        )
        self.assertEqual(res.status_code, 403)
        with self.app.app_context():
            self.assertEqual(self._user(member_id).role, "user")

        res = self.client.patch(
            f"/api/admin/users/{member_id}/role",
            json={"role": "admin"},
            headers=self._headers(self.superadmin_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["role"], "admin")

    def test_create_admin_requires_superadmin(self):
        payload = {"email": "new-admin@mart.az", "password": "secret1", "first_name": "Nigar"}
        res = self.client.post("/api/admin/admins", json=payload, headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 403)

        res = self.client.post("/api/admin/admins", json=payload, headers=self._headers(self.superadmin_token))
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.get_json()["data"]["role"], "admin")

        res = self.client.post(
            "/api/admin/admins",
            json={"email": "weird@mart.az", "password": "secret1", "role": "user"},
            headers=self._headers(self.superadmin_token),
        )
        self.assertEqual(res.status_code, 400)

    def test_deactivate_user_soft_deletes_listings(self):
        member_id, member_token = self._member("leaving@mart.az")
        with self.app.app_context():
            for idx, status in enumerate(("active", "pending", "sold")):
                db.session.add(
                    Listing(
                        user_id=member_id,
                        title=f"Leaving Item {idx}",
                        slug=f"leaving-item-{idx}",
                        description="Owner is leaving the platform.",
                        price=5,
                        location="Baku",
                        status=status,
                    )
                )
            db.session.commit()

        res = self.client.delete(f"/api/admin/users/{member_id}", headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertEqual(data["listings_deleted"], 3)
        self.assertEqual(data["user"]["status"], "inactive")

        with self.app.app_context():
            self.assertIsNotNone(self._user(member_id))
            statuses = {row.status for row in Listing.query.filter_by(user_id=member_id).all()}
            self.assertEqual(statuses, {"deleted"})

        res = self.client.get("/api/auth/me", headers=self._headers(member_token))
        self.assertEqual(res.status_code, 403)

    def test_user_listing_and_detail(self):
        member_id, _ = self._member("findable@mart.az")
        res = self.client.get("/api/admin/users?search=findable", headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 200)
        items = res.get_json()["data"]["items"]
        self.assertEqual([item["id"] for item in items], [member_id])

        res = self.client.get(f"/api/admin/users/{member_id}", headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["listing_count"], 0)

        res = self.client.get("/api/admin/users?role=superadmin", headers=self._headers(self.admin_token))
        ids = [item["id"] for item in res.get_json()["data"]["items"]]
        self.assertEqual(ids, [self.superadmin_id])

    def test_regular_user_cannot_reach_admin_api(self):
        _, token = self._member("curious@mart.az")
        for path in ("/api/admin/dashboard", "/api/admin/users", "/api/admin/listings/pending"):
            res = self.client.get(path, headers=self._headers(token))
            self.assertEqual(res.status_code, 403, path)

    def test_dashboard(self):
        res = self.client.get("/api/admin/dashboard", headers=self._headers(self.admin_token))
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertGreaterEqual(data["users"]["total"], 3)
        for key in ("listings", "categories", "pending_reports", "messages"):
            self.assertIn(key, data)


if __name__ == "__main__":
    unittest.main()
