import unittest
from datetime import date

from fastapi.testclient import TestClient

from image_pipeline.supply_chain import ResolvedImage
from moments.app import create_app
from moments.auth import IdentityGate, InMemoryAuthenticator
from moments.dependencies import (
    get_identity_gate,
    get_record_store,
    get_session_registry,
)
from moments.orchestrator import DailyViewSession
from moments.sessions import SessionRegistry
from moments.store import InMemoryRecordStore
from shared.types import DailyRecord

MARTY = "marty.vandenberk@gmail.com"
MARIEKE = "mariekevanderdennen@gmail.com"
PASSWORD = "dev-password"


class FixedImages:
    def resolve(self, name):
        return ResolvedImage(
            url=f"https://img.test/{name}.webp",
            source_url="https://source.test/1.jpg",
            provider="stub",
            width=768,
            height=768,
            format="WEBP",
        )


class MomentsApiTests(unittest.TestCase):
    def setUp(self):
        self.today = date(2024, 6, 10)
        self.store = InMemoryRecordStore()
        self.authenticator = InMemoryAuthenticator(
            passwords={MARTY: PASSWORD, MARIEKE: PASSWORD}
        )
        self.registry = SessionRegistry(
            lambda user: DailyViewSession(
                user=user,
                store=self.store,
                images=FixedImages(),
                clock=lambda: self.today,
                creation_timeout=5.0,
            )
        )

        app = create_app()
        app.dependency_overrides[get_record_store] = lambda: self.store
        app.dependency_overrides[get_identity_gate] = lambda: IdentityGate(self.authenticator)
        app.dependency_overrides[get_session_registry] = lambda: self.registry
        self.client = TestClient(app)

    def tearDown(self):
        self.registry.reset()

    def _login(self, email=MARTY):
        response = self.client.post(
            "/api/login", json={"email": email, "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()

    def _auth(self, token):
        return {"Authorization": f"Bearer {token}"}

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_login_rejects_unknown_email(self):
        response = self.client.post(
            "/api/login", json={"email": "someone@example.com", "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"]["code"], "UNAUTHORIZED_EMAIL")
        self.assertEqual(self.authenticator.calls, [])

    def test_login_rejects_bad_password(self):
        response = self.client.post(
            "/api/login", json={"email": MARTY, "password": "wrong"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"]["code"], "INVALID_CREDENTIALS")

    def test_login_on_monday_creates_record(self):
        payload = self._login()

        view = payload["view"]
        self.assertEqual(view["phase"], "READY")
        self.assertEqual(view["user"]["id"], "user1")
        self.assertEqual(view["state"]["viewingDate"], "2024-06-09")
        self.assertEqual(view["todayData"]["questionBy"], "system")
        self.assertEqual(view["viewingDateLabel"], "Gisteren")
        self.assertIsNotNone(self.store.read("2024-06-10"))

    def test_view_requires_session(self):
        self.assertEqual(self.client.get("/api/view").status_code, 401)
        response = self.client.get("/api/view", headers=self._auth("nope"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"]["code"], "SESSION_EXPIRED")

    def test_answer_is_idempotent(self):
        token = self._login()["token"]

        for text in ("Peaceful.", "Peaceful, truly."):
            response = self.client.post(
                "/api/answer", json={"text": text}, headers=self._auth(token)
            )
            self.assertEqual(response.status_code, 200)

        record = self.client.get("/api/records/2024-06-10", headers=self._auth(token)).json()
        self.assertEqual(record["answers"], [{"userId": "user1", "answer": "Peaceful, truly."}])
        notices = [n["message"] for n in response.json()["view"]["notices"]]
        self.assertIn("Je antwoord is opgeslagen ✨", notices)

    def test_partner_answer_for_today_is_hidden(self):
        marty = self._login()["token"]
        marieke = self._login(MARIEKE)["token"]
        self.client.post("/api/answer", json={"text": "Mijn geheim"}, headers=self._auth(marieke))
        self.client.post("/api/answer", json={"text": "Zonnig"}, headers=self._auth(marty))

        record = self.client.get("/api/records/2024-06-10", headers=self._auth(marty)).json()
        view = self.client.get("/api/view", headers=self._auth(marty)).json()

        self.assertEqual(record["answers"], [{"userId": "user1", "answer": "Zonnig"}])
        self.assertEqual(view["todayData"]["answers"], [{"userId": "user1", "answer": "Zonnig"}])
        self.assertNotIn("Mijn geheim", str(view))

        self.today = date(2024, 6, 11)
        record = self.client.get("/api/records/2024-06-10", headers=self._auth(marty)).json()
        self.assertIn({"userId": "user2", "answer": "Mijn geheim"}, record["answers"])

    def test_chat_from_yesterday(self):
        token = self._login()["token"]

        response = self.client.post("/api/chat", json={"text": "Hi"}, headers=self._auth(token))

        self.assertEqual(response.status_code, 200)
        chat = self.client.get("/api/records/2024-06-09/chat", headers=self._auth(token)).json()
        self.assertEqual(len(chat["messages"]), 1)
        self.assertEqual(chat["messages"][0]["username"], "Marty")
        self.assertEqual(chat["messages"][0]["message"], "Hi")

    def test_chat_rejected_on_today(self):
        token = self._login()["token"]
        moved = self.client.post(
            "/api/navigate", json={"direction": "next"}, headers=self._auth(token)
        )
        self.assertTrue(moved.json()["ok"])

        response = self.client.post("/api/chat", json={"text": "Hi"}, headers=self._auth(token))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["code"], "CHAT_NOT_ALLOWED")
        self.assertEqual(self.store.read_chat("2024-06-10"), [])

    def test_navigate_into_future_is_noop(self):
        token = self._login()["token"]
        self.client.post("/api/navigate", json={"direction": "next"}, headers=self._auth(token))

        response = self.client.post(
            "/api/navigate", json={"direction": "next"}, headers=self._auth(token)
        )

        self.assertFalse(response.json()["ok"])
        self.assertEqual(response.json()["view"]["state"]["viewingDate"], "2024-06-10")

    def test_view_date(self):
        self.store.create(
            "2024-06-03",
            DailyRecord(date="2024-06-03", image_url="u", question="Oude vraag"),
        )
        token = self._login()["token"]

        ok = self.client.post(
            "/api/view-date", json={"date": "2024-06-03"}, headers=self._auth(token)
        )
        missing = self.client.post(
            "/api/view-date", json={"date": "2024-06-04"}, headers=self._auth(token)
        )
        invalid = self.client.post(
            "/api/view-date", json={"date": "morgen"}, headers=self._auth(token)
        )

        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.json()["view"]["currentViewingData"]["question"], "Oude vraag")
        self.assertEqual(missing.status_code, 409)
        self.assertEqual(invalid.status_code, 400)

    def test_partner_waits_then_sees_question_on_friday(self):
        self.today = date(2024, 6, 14)
        marty = self._login(MARTY)
        marieke = self._login(MARIEKE)
        self.assertTrue(marty["view"]["state"]["showQuestionChoice"])
        self.assertTrue(marieke["view"]["state"]["waitingForPartner"])

        rejected = self.client.post(
            "/api/answer", json={"text": "Te vroeg"}, headers=self._auth(marieke["token"])
        )
        self.assertEqual(rejected.status_code, 409)
        self.assertEqual(rejected.json()["detail"]["code"], "NO_RECORD_YET")

        not_mine = self.client.post(
            "/api/question/generate", headers=self._auth(marieke["token"])
        )
        self.assertEqual(not_mine.status_code, 409)

        chosen = self.client.post(
            "/api/question",
            json={"question": "Waar kijk je naar uit?"},
            headers=self._auth(marty["token"]),
        )
        self.assertEqual(chosen.status_code, 200)
        self.assertEqual(chosen.json()["view"]["todayData"]["questionBy"], "user1")

        view = self.client.get("/api/view", headers=self._auth(marieke["token"])).json()
        self.assertFalse(view["state"]["waitingForPartner"])
        self.assertEqual(view["todayData"]["question"], "Waar kijk je naar uit?")

    def test_drafts_and_toggles(self):
        token = self._login()["token"]
        headers = self._auth(token)

        self.client.put("/api/chat-draft", json={"text": "Mooi "}, headers=headers)
        self.client.post("/api/emoji", json={"emoji": "🌅"}, headers=headers)
        self.client.put("/api/answer-draft", json={"text": "Concept"}, headers=headers)
        calendar = self.client.post("/api/calendar/toggle", headers=headers).json()
        picker = self.client.post("/api/emoji-picker/toggle", headers=headers).json()

        state = self.client.get("/api/view", headers=headers).json()["state"]
        self.assertEqual(state["chatDraft"], "Mooi 🌅")
        self.assertEqual(state["answerDraft"], "Concept")
        self.assertTrue(calendar["showCalendar"])
        self.assertTrue(picker["showEmojiPicker"])

    def test_dates_and_missing_record(self):
        token = self._login()["token"]

        dates = self.client.get("/api/dates", headers=self._auth(token)).json()
        missing = self.client.get("/api/records/2024-01-01", headers=self._auth(token))
        invalid = self.client.get("/api/records/gisteren", headers=self._auth(token))

        self.assertEqual(dates["dates"], ["2024-06-10"])
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(invalid.status_code, 400)

    def test_store_failure_maps_to_502(self):
        token = self._login()["token"]
        self.store.fail_next("upsert_answer")

        response = self.client.post(
            "/api/answer", json={"text": "Peaceful."}, headers=self._auth(token)
        )

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["detail"]["message"], "Opslaan mislukt")

    def test_logout_ends_session(self):
        token = self._login()["token"]
        self.assertEqual(
            self.client.post("/api/logout", headers=self._auth(token)).status_code, 200
        )
        self.assertEqual(self.client.get("/api/view", headers=self._auth(token)).status_code, 401)

    def test_reload(self):
        token = self._login()["token"]
        response = self.client.post("/api/reload", headers=self._auth(token))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["phase"], "READY")


if __name__ == "__main__":
    unittest.main()
