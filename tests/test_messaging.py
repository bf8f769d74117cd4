from __future__ import annotations

import os
import unittest

from martaz import create_app
from martaz.extensions import db
from martaz.models import Conversation, Listing, Message, User
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


class MessagingTestCase(unittest.TestCase):
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
            seller = _upsert_user(email="chat-seller@mart.az")
            buyer = _upsert_user(email="chat-buyer@mart.az")
            outsider = _upsert_user(email="chat-outsider@mart.az")
            active = Listing(
                user_id=seller.id,
                title="Used Sofa",
                slug="used-sofa",
                description="Comfortable three seat sofa.",
                price=300,
                location="Ganja",
                status="active",
            )
            pending = Listing(
                user_id=seller.id,
                title="Pending Sofa",
                slug="pending-sofa",
                description="Waiting for moderation.",
                price=200,
                location="Ganja",
                status="pending",
            )
            db.session.add_all([active, pending])
            db.session.commit()

            cls.seller_id = int(seller.id)
            cls.buyer_id = int(buyer.id)
            cls.outsider_id = int(outsider.id)
            cls.active_listing_id = int(active.id)
            cls.pending_listing_id = int(pending.id)
            cls.seller_token = create_token(int(seller.id))
            cls.buyer_token = create_token(int(buyer.id))
            cls.outsider_token = create_token(int(outsider.id))

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

    def _start(self, token: str, recipient_id: int, text: str, listing_id: int | None = None):
        payload = {"recipient_id": recipient_id, "initial_message": text}
        if listing_id is not None:
            payload["listing_id"] = listing_id
        return self.client.post("/api/messages/conversations", json=payload, headers=self._headers(token))

    def _unread(self, token: str) -> int:
        res = self.client.get("/api/messages/unread-count", headers=self._headers(token))
        self.assertEqual(res.status_code, 200)
        return res.get_json()["data"]["unread_count"]

    def test_conversation_reuse_and_unread_counters(self):
        res = self._start(self.buyer_token, self.seller_id, "Is the sofa still available?", self.active_listing_id)
        self.assertEqual(res.status_code, 201)
        conversation_id = res.get_json()["data"]["conversation"]["id"]

        res = self._start(self.buyer_token, self.seller_id, "Can you deliver?", self.active_listing_id)
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.get_json()["data"]["conversation"]["id"], conversation_id)

        with self.app.app_context():
            conversation = db.session.get(Conversation, conversation_id)
            self.assertEqual(conversation.unread_for(self.seller_id), 2)
            self.assertEqual(conversation.unread_for(self.buyer_id), 0)
            count = Conversation.query.filter_by(listing_id=self.active_listing_id).count()
            self.assertEqual(count, 1)

        res = self.client.get(
            f"/api/messages/conversations/{conversation_id}",
            headers=self._headers(self.seller_token),
        )
        self.assertEqual(res.status_code, 200)
        data = res.get_json()["data"]
        self.assertEqual(data["unread_count"], 0)
        self.assertEqual([m["content"] for m in data["messages"]], ["Is the sofa still available?", "Can you deliver?"])
        self.assertTrue(all(m["is_read"] for m in data["messages"]))
        self.assertEqual(data["other_user"]["id"], self.buyer_id)

        res = self.client.post(
            f"/api/messages/conversations/{conversation_id}/messages",
            json={"content": "Yes, delivery is free."},
            headers=self._headers(self.seller_token),
        )
        self.assertEqual(res.status_code, 201)
        with self.app.app_context():
            conversation = db.session.get(Conversation, conversation_id)
            self.assertEqual(conversation.unread_for(self.buyer_id), 1)
            self.assertEqual(conversation.unread_for(self.seller_id), 0)

    def test_mark_read_resets_counter_and_messages(self):
        res = self._start(self.outsider_token, self.buyer_id, "Hello there")
        conversation_id = res.get_json()["data"]["conversation"]["id"]
        self.client.post(
            f"/api/messages/conversations/{conversation_id}/messages",
            json={"content": "Second note"},
            headers=self._headers(self.outsider_token),
        )

        res = self.client.post(
            f"/api/messages/conversations/{conversation_id}/read",
            headers=self._headers(self.buyer_token),
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["data"]["updated"], 2)
        with self.app.app_context():
            conversation = db.session.get(Conversation, conversation_id)
            self.assertEqual(conversation.unread_for(self.buyer_id), 0)
            unread = Message.query.filter_by(
                conversation_id=conversation_id,
                receiver_id=self.buyer_id,
                is_read=False,
            ).count()
            self.assertEqual(unread, 0)
            read = Message.query.filter_by(conversation_id=conversation_id, receiver_id=self.buyer_id).all()
            self.assertTrue(all(row.read_at is not None for row in read))

    def test_unread_count_sums_both_sides(self):
        with self.app.app_context():
            user = _upsert_user(email="chat-counter@mart.az")
            db.session.commit()
            counter_id = int(user.id)
            counter_token = create_token(counter_id)

        self._start(self.seller_token, counter_id, "From seller")
        res = self._start(counter_token, self.outsider_id, "Counter opens a chat")
        conversation_id = res.get_json()["data"]["conversation"]["id"]
        self.client.post(
            f"/api/messages/conversations/{conversation_id}/messages",
            json={"content": "Reply to counter"},
            headers=self._headers(self.outsider_token),
        )
        self.assertEqual(self._unread(counter_token), 2)

    def test_self_message_is_rejected(self):
        res = self._start(self.buyer_token, self.buyer_id, "Note to self")
        self.assertEqual(res.status_code, 400)

    def test_empty_message_is_rejected(self):
        res = self._start(self.buyer_token, self.seller_id, "   ")
        self.assertEqual(res.status_code, 400)

    def test_unknown_recipient(self):
        res = self._start(self.buyer_token, 424242, "Anyone?")
        self.assertEqual(res.status_code, 404)

    def test_inactive_listing_cannot_start_conversation(self):
        res = self._start(self.buyer_token, self.seller_id, "Interested", self.pending_listing_id)
        self.assertEqual(res.status_code, 400)

    def test_non_participant_is_forbidden(self):
        res = self._start(self.buyer_token, self.seller_id, "Private chat")
        conversation_id = res.get_json()["data"]["conversation"]["id"]
        for method, suffix in (
            ("get", ""),
            ("post", "/messages"),
            ("post", "/read"),
            ("post", "/archive"),
        ):
            res = getattr(self.client, method)(
                f"/api/messages/conversations/{conversation_id}{suffix}",
                json={"content": "intrusion"},
                headers=self._headers(self.outsider_token),
            )
            self.assertEqual(res.status_code, 403, suffix)

    def test_missing_conversation(self):
        res = self.client.get("/api/messages/conversations/999999", headers=self._headers(self.buyer_token))
        self.assertEqual(res.status_code, 404)

    def test_archive_is_per_side_and_cleared_by_new_message(self):
        with self.app.app_context():
            user = _upsert_user(email="chat-archiver@mart.az")
            db.session.commit()
            archiver_id = int(user.id)
            archiver_token = create_token(archiver_id)

        res = self._start(archiver_token, self.seller_id, "Archive me later")
        conversation_id = res.get_json()["data"]["conversation"]["id"]

        res = self.client.post(
            f"/api/messages/conversations/{conversation_id}/archive",
            headers=self._headers(archiver_token),
        )
        self.assertEqual(res.status_code, 200)

        res = self.client.get("/api/messages/conversations", headers=self._headers(archiver_token))
        ids = [item["id"] for item in res.get_json()["data"]["items"]]
        self.assertNotIn(conversation_id, ids)
        res = self.client.get("/api/messages/conversations?archived=true", headers=self._headers(archiver_token))
        ids = [item["id"] for item in res.get_json()["data"]["items"]]
        self.assertIn(conversation_id, ids)

        # The other side still sees it in the inbox.
        res = self.client.get("/api/messages/conversations?limit=100", headers=self._headers(self.seller_token))
        ids = [item["id"] for item in res.get_json()["data"]["items"]]
        self.assertIn(conversation_id, ids)

        self.client.post(
            f"/api/messages/conversations/{conversation_id}/messages",
            json={"content": "Still want it?"},
            headers=self._headers(self.seller_token),
        )
        res = self.client.get("/api/messages/conversations", headers=self._headers(archiver_token))
        ids = [item["id"] for item in res.get_json()["data"]["items"]]
        self.assertIn(conversation_id, ids)

        self.client.post(
            f"/api/messages/conversations/{conversation_id}/archive",
            headers=self._headers(archiver_token),
        )
        res = self.client.post(
            f"/api/messages/conversations/{conversation_id}/unarchive",
            headers=self._headers(archiver_token),
        )
        self.assertEqual(res.status_code, 200)
        with self.app.app_context():
            conversation = db.session.get(Conversation, conversation_id)
            self.assertFalse(conversation.archived_for(archiver_id))

    def test_requires_authentication(self):
        res = self.client.get("/api/messages/conversations")
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
