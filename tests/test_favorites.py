from __future__ import annotations

import os
import unittest

from martaz import create_app
from martaz.extensions import db
from martaz.models import Favorite, Listing, User
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


class FavoritesTestCase(unittest.TestCase):
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
            seller = _upsert_user(email="fav-seller@mart.az")
            fan = _upsert_user(email="fav-fan@mart.az")
            other = _upsert_user(email="fav-other@mart.az")
            listing_ids = []
            for idx in range(3):
                row = Listing(
                    user_id=seller.id,
                    title=f"Favorite Item {idx}",
                    slug=f"favorite-item-{idx}",
                    description="Listing people like to save.",
                    price=25 + idx,
                    location="Baku",
                    status="active",
                )
                db.session.add(row)
                db.session.flush()
                listing_ids.append(int(row.id))
            db.session.commit()

            cls.listing_ids = listing_ids
            cls.fan_id = int(fan.id)
            cls.fan_token = create_token(int(fan.id))
            cls.other_token = create_token(int(other.id))

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

    def _add(self, item_id: int, token: str | None = None, item_type: str = "listing"):
        return self.client.post(
            "/api/favorites",
            json={"item_id": item_id, "item_type": item_type},
            headers=self._headers(token or self.fan_token),
        )

    def _check(self, item_id: int, token: str | None = None) -> dict:
        res = self.client.get(
            f"/api/favorites/check?item_id={item_id}",
            headers=self._headers(token or self.fan_token),
        )
        self.assertEqual(res.status_code, 200)
        return res.get_json()["data"]

    def test_add_check_and_duplicate(self):
        item_id = self.listing_ids[0]
        res = self._add(item_id)
        self.assertEqual(res.status_code, 201)
        data = res.get_json()["data"]
        self.assertEqual(data["item_id"], item_id)
        self.assertEqual(data["listing_id"], item_id)
        self.assertEqual(data["listing"]["id"], item_id)

        res = self._add(item_id)
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.get_json()["message"], "Item already in favorites")

        self.assertTrue(self._check(item_id)["is_favorite"])
        self.assertFalse(self._check(item_id, token=self.other_token)["is_favorite"])

        with self.app.app_context():
            count = Favorite.query.filter_by(user_id=self.fan_id, item_id=item_id).count()
        self.assertEqual(count, 1)

    def test_remove_by_id(self):
        item_id = self.listing_ids[1]
        favorite_id = self._add(item_id).get_json()["data"]["id"]

        res = self.client.delete(f"/api/favorites/{favorite_id}", headers=self._headers(self.other_token))
        self.assertEqual(res.status_code, 404)

        res = self.client.delete(f"/api/favorites/{favorite_id}", headers=self._headers(self.fan_token))
        self.assertEqual(res.status_code, 200)
        self.assertFalse(self._check(item_id)["is_favorite"])

        res = self.client.delete(f"/api/favorites/{favorite_id}", headers=self._headers(self.fan_token))
        self.assertEqual(res.status_code, 404)

        # Removing frees the slot for a new favorite.
        self.assertEqual(self._add(item_id).status_code, 201)

    def test_remove_by_item(self):
        item_id = self.listing_ids[2]
        self._add(item_id, token=self.other_token)
        res = self.client.delete(f"/api/favorites/item/{item_id}", headers=self._headers(self.other_token))
        self.assertEqual(res.status_code, 200)
        res = self.client.delete(f"/api/favorites/item/{item_id}", headers=self._headers(self.other_token))
        self.assertEqual(res.status_code, 404)

    def test_list_is_scoped_to_caller(self):
        self._add(self.listing_ids[2])
        res = self.client.get("/api/favorites", headers=self._headers(self.fan_token))
        self.assertEqual(res.status_code, 200)
        items = res.get_json()["data"]["items"]
        self.assertTrue(items)
        self.assertTrue(all(item["user_id"] == self.fan_id for item in items))

    def test_validation(self):
        self.assertEqual(self._add(999999).status_code, 404)
        self.assertEqual(self._add(self.listing_ids[0], item_type="service").status_code, 400)
        res = self.client.post("/api/favorites", json={}, headers=self._headers(self.fan_token))
        self.assertEqual(res.status_code, 400)

    def test_requires_authentication(self):
        res = self.client.get("/api/favorites")
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
