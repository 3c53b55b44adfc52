import threading
import time
import unittest
from datetime import date

from image_pipeline.supply_chain import ResolvedImage
from moments.orchestrator import (
    DailyViewSession,
    format_date_label,
    turn_for,
)
from moments.store import InMemoryRecordStore
from shared.constants import DAILY_QUESTIONS, ERROR_MESSAGES, SUCCESS_MESSAGES
from shared.errors import (
    AnswerSaveFailed,
    ChatSendFailed,
    ImageSupplyExhausted,
    InvalidInput,
    RecordCreateFailed,
    RecordCreateTimeout,
)
from shared.types import Answer, ChatMessage, DailyRecord, SessionPhase, Turn, User

MARTY = User(
    uid="uid-marty",
    id="user1",
    username="Marty",
    partner_id="user2",
    email="marty.vandenberk@gmail.com",
)
MARIEKE = User(
    uid="uid-marieke",
    id="user2",
    username="Marieke",
    partner_id="user1",
    email="mariekevanderdennen@gmail.com",
)

MONDAY = date(2024, 6, 10)
FRIDAY = date(2024, 6, 14)
SATURDAY = date(2024, 6, 15)


class StubImages:
    """Resolves instantly, or fails, or waits for a gate before resolving."""

    def __init__(self, fail=False, gate=None, before_return=None, error=None):
        self.fail = fail
        self.error = error
        self.gate = gate
        self.before_return = before_return
        self.calls = []

    def resolve(self, name):
        self.calls.append(name)
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise ImageSupplyExhausted()
        if self.before_return:
            self.before_return()
        return ResolvedImage(
            url=f"https://img.test/{name}.webp",
            source_url="https://source.test/1.jpg",
            provider="stub",
            width=768,
            height=512,
            format="WEBP",
        )


def _wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TurnRuleTest(unittest.TestCase):

    def test_friday_is_user1(self):
        self.assertEqual(turn_for(FRIDAY, "user1"), Turn.MINE)
        self.assertEqual(turn_for(FRIDAY, "user2"), Turn.PARTNER)

    def test_saturday_is_user2(self):
        self.assertEqual(turn_for(SATURDAY, "user2"), Turn.MINE)
        self.assertEqual(turn_for(SATURDAY, "user1"), Turn.PARTNER)

    def test_other_days_are_automatic(self):
        for offset in range(5):
            day = date(2024, 6, 9 + offset)  # Sunday through Thursday
            self.assertEqual(turn_for(day, "user1"), Turn.AUTO)
            self.assertEqual(turn_for(day, "user2"), Turn.AUTO)

    def test_date_labels(self):
        self.assertEqual(format_date_label("2024-06-09", "2024-06-10", "2024-06-09"), "Gisteren")
        self.assertEqual(format_date_label("2024-06-10", "2024-06-10", "2024-06-09"), "Vandaag")
        self.assertEqual(
            format_date_label("2024-06-03", "2024-06-10", "2024-06-09"), "maandag 3 juni"
        )


class DailyViewSessionTestBase(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryRecordStore()
        self.today = MONDAY
        self.images = StubImages()
        self.sessions = []

    def tearDown(self):
        for session in self.sessions:
            session.close()

    def _session(self, user=MARTY, images=None, creation_timeout=5.0):
        session = DailyViewSession(
            user=user,
            store=self.store,
            images=images or self.images,
            clock=lambda: self.today,
            creation_timeout=creation_timeout,
        )
        self.sessions.append(session)
        return session

    def _seed(self, day, question="Wat maakte je blij?", question_by="system", answers=None):
        self.store.create(
            day,
            DailyRecord(
                date=day,
                image_url="https://img.test/seed.webp",
                question=question,
                question_by=question_by,
                answers=answers or [],
            ),
        )


class InitializeTest(DailyViewSessionTestBase):

    def test_monday_creates_record_automatically(self):
        session = self._session()

        phase = session.initialize()

        self.assertEqual(phase, SessionPhase.READY)
        record = self.store.read("2024-06-10")
        self.assertIsNotNone(record)
        self.assertIn(record.question, DAILY_QUESTIONS)
        self.assertEqual(record.question_by, "system")
        self.assertEqual(record.image_url, "https://img.test/2024-06-10.webp")
        self.assertEqual(record.answers, [])
        self.assertEqual(session.state.viewing_date, "2024-06-09")
        self.assertFalse(session.state.loading)
        self.assertFalse(session.state.show_question_choice)
        self.assertIn("2024-06-10", session.state.daily_data)

    def test_existing_record_is_loaded_without_creation(self):
        self._seed("2024-06-10", question="Bestaande vraag")
        session = self._session()

        session.initialize()

        self.assertEqual(self.images.calls, [])
        self.assertEqual(session.state.daily_data["2024-06-10"].question, "Bestaande vraag")
        self.assertFalse(session.state.loading)

    def test_friday_opens_choice_for_user1(self):
        self.today = FRIDAY
        session = self._session(MARTY)

        self.assertEqual(session.initialize(), SessionPhase.AWAITING_MY_CHOICE)

        self.assertTrue(session.state.show_question_choice)
        self.assertFalse(session.state.loading)
        self.assertIsNone(self.store.read("2024-06-14"))
        self.assertEqual(self.images.calls, [])

    def test_friday_makes_user2_wait(self):
        self.today = FRIDAY
        session = self._session(MARIEKE)

        self.assertEqual(session.initialize(), SessionPhase.AWAITING_PARTNER_CHOICE)

        self.assertTrue(session.state.waiting_for_partner)
        self.assertFalse(session.state.show_question_choice)
        self.assertFalse(session.state.loading)
        self.assertIsNone(self.store.read("2024-06-14"))

    def test_saturday_opens_choice_for_user2(self):
        self.today = SATURDAY
        self.assertEqual(
            self._session(MARIEKE).initialize(), SessionPhase.AWAITING_MY_CHOICE
        )
        self.assertEqual(
            self._session(MARTY).initialize(), SessionPhase.AWAITING_PARTNER_CHOICE
        )

    def test_fetch_failure_is_surfaced(self):
        self.store.fail_next("read")
        session = self._session()

        self.assertEqual(session.initialize(), SessionPhase.ERROR)

        self.assertEqual(session.state.error, ERROR_MESSAGES["DAILY_CONTENT_FETCH_FAILED"])
        self.assertFalse(session.state.loading)

    def test_automatic_creation_failure_is_surfaced(self):
        session = self._session(images=StubImages(fail=True))

        session.initialize()

        self.assertIsNone(self.store.read("2024-06-10"))
        self.assertEqual(session.state.error, ERROR_MESSAGES["DAILY_CONTENT_CREATE_FAILED"])
        self.assertFalse(session.state.loading)

    def test_unexpected_creation_error_is_surfaced(self):
        images = StubImages(error=RuntimeError("put_object failed"))
        session = self._session(images=images)

        phase = session.initialize()

        self.assertEqual(phase, SessionPhase.ERROR)
        self.assertFalse(session.state.loading)
        self.assertEqual(session.state.error, ERROR_MESSAGES["DAILY_CONTENT_CREATE_FAILED"])
        notices = session.drain_notices()
        self.assertEqual([n.type for n in notices], ["error"])


class QuestionChoiceTest(DailyViewSessionTestBase):

    def setUp(self):
        super().setUp()
        self.today = FRIDAY

    def test_custom_question_sets_record(self):
        session = self._session(MARTY)
        session.initialize()

        record = session.submit_custom_question("  Waar droom je van?  ")

        self.assertEqual(record.question, "Waar droom je van?")
        self.assertEqual(record.question_by, "user1")
        self.assertEqual(self.store.read("2024-06-14").question, "Waar droom je van?")
        self.assertFalse(session.state.show_question_choice)
        self.assertFalse(session.state.loading)
        self.assertIn(SUCCESS_MESSAGES["QUESTION_SET"], [n.message for n in session.notices])

    def test_generated_question_comes_from_bank(self):
        session = self._session(MARTY)
        session.initialize()

        record = session.generate_question()

        self.assertIn(record.question, DAILY_QUESTIONS)
        self.assertEqual(record.question_by, "user1")

    def test_choice_rejected_when_prompt_closed(self):
        session = self._session(MARIEKE)
        session.initialize()

        self.assertIsNone(session.generate_question())
        self.assertIsNone(session.submit_custom_question("Mag ik kiezen?"))
        self.assertIsNone(self.store.read("2024-06-14"))

    def test_empty_custom_question_is_invalid(self):
        session = self._session(MARTY)
        session.initialize()
        with self.assertRaises(InvalidInput):
            session.submit_custom_question("   ")

    def test_partner_sees_record_as_soon_as_it_is_chosen(self):
        chooser = self._session(MARTY)
        waiter = self._session(MARIEKE)
        chooser.initialize()
        waiter.initialize()
        self.assertTrue(waiter.state.waiting_for_partner)

        chooser.submit_custom_question("Wat was je mooiste moment?")

        self.assertFalse(waiter.state.waiting_for_partner)
        self.assertFalse(waiter.state.loading)
        self.assertEqual(waiter.phase, SessionPhase.READY)
        self.assertEqual(
            waiter.state.daily_data["2024-06-14"].question, "Wat was je mooiste moment?"
        )

    def test_failure_keeps_prompt_open(self):
        session = self._session(MARTY, images=StubImages(fail=True))
        session.initialize()

        with self.assertRaises(RecordCreateFailed):
            session.generate_question()

        self.assertTrue(session.state.show_question_choice)
        self.assertFalse(session.state.loading)
        self.assertIsNotNone(session.state.error)

        # Retry once the image supply recovers.
        session.images = StubImages()
        record = session.generate_question()
        self.assertEqual(record.question_by, "user1")
        self.assertFalse(session.state.show_question_choice)

    def test_timeout_keeps_prompt_open_and_ignores_late_result(self):
        gate = threading.Event()
        session = self._session(MARTY, images=StubImages(gate=gate), creation_timeout=0.05)
        session.initialize()

        with self.assertRaises(RecordCreateTimeout):
            session.submit_custom_question("Te laat?")

        self.assertTrue(session.state.show_question_choice)
        self.assertFalse(session.state.loading)
        self.assertEqual(session.state.error, ERROR_MESSAGES["DAILY_CONTENT_CREATE_TIMEOUT"])

        gate.set()
        # The abandoned write still lands and arrives as a live update.
        self.assertTrue(_wait_until(lambda: self.store.read("2024-06-14") is not None))
        self.assertTrue(_wait_until(lambda: "2024-06-14" in session.state.daily_data))
        messages = [n.message for n in session.drain_notices()]
        self.assertNotIn(SUCCESS_MESSAGES["QUESTION_SET"], messages)

    def test_late_failure_after_timeout_is_logged(self):
        gate = threading.Event()
        images = StubImages(gate=gate, fail=True)
        session = self._session(MARTY, images=images, creation_timeout=0.05)
        session.initialize()

        with self.assertRaises(RecordCreateTimeout):
            session.generate_question()

        with self.assertLogs("moments.orchestrator", level="WARNING") as logs:
            gate.set()
            self.assertTrue(
                _wait_until(lambda: any("after it was abandoned" in line for line in logs.output))
            )
        self.assertIsNone(self.store.read("2024-06-14"))
        self.assertEqual(session.state.error, ERROR_MESSAGES["DAILY_CONTENT_CREATE_TIMEOUT"])

    def test_concurrent_creation_adopts_existing_record(self):
        def partner_wins():
            self._seed("2024-06-10", question="Partner was eerst")

        self.today = MONDAY
        session = self._session(MARTY, images=StubImages(before_return=partner_wins))

        session.initialize()

        self.assertEqual(session.phase, SessionPhase.READY)
        self.assertIsNone(session.state.error)
        self.assertEqual(session.state.daily_data["2024-06-10"].question, "Partner was eerst")


class AnswerTest(DailyViewSessionTestBase):

    def test_answer_is_idempotent_per_user(self):
        session = self._session()
        session.initialize()

        self.assertTrue(session.save_answer("Peaceful."))
        self.assertTrue(session.save_answer("Peaceful, truly."))

        answers = self.store.read("2024-06-10").answers
        self.assertEqual(len(answers), 1)
        self.assertEqual(answers[0].user_id, "user1")
        self.assertEqual(answers[0].answer, "Peaceful, truly.")
        self.assertEqual(
            session.state.daily_data["2024-06-10"].answer_for("user1").answer,
            "Peaceful, truly.",
        )
        self.assertFalse(session.state.is_saving_answer)
        self.assertIn(SUCCESS_MESSAGES["ANSWER_SAVED"], [n.message for n in session.notices])

    def test_both_answers_are_kept(self):
        marty = self._session(MARTY)
        marieke = self._session(MARIEKE)
        marty.initialize()
        marieke.initialize()

        marty.save_answer("Zon")
        marieke.save_answer("Zee")

        answers = {a.user_id: a.answer for a in self.store.read("2024-06-10").answers}
        self.assertEqual(answers, {"user1": "Zon", "user2": "Zee"})
        view = marty.view()
        self.assertTrue(view["hasSubmittedToday"])

    def test_answer_uses_draft(self):
        session = self._session()
        session.initialize()
        session.set_answer_draft("Uit het concept")

        session.save_answer()

        self.assertEqual(self.store.read("2024-06-10").answers[0].answer, "Uit het concept")

    def test_answer_rejected_without_record(self):
        self.today = FRIDAY
        session = self._session(MARIEKE)
        session.initialize()

        self.assertFalse(session.save_answer("Te vroeg"))

    def test_empty_answer_is_invalid(self):
        session = self._session()
        session.initialize()
        with self.assertRaises(InvalidInput):
            session.save_answer("   ")

    def test_save_failure_notifies(self):
        session = self._session()
        session.initialize()
        self.store.fail_next("upsert_answer")

        with self.assertRaises(AnswerSaveFailed):
            session.save_answer("Peaceful.")

        self.assertFalse(session.state.is_saving_answer)
        self.assertEqual(session.notices[-1].message, "Opslaan mislukt")
        self.assertEqual(session.notices[-1].type, "error")


class ChatTest(DailyViewSessionTestBase):

    def test_chat_on_yesterday(self):
        self._seed("2024-06-09")
        session = self._session()
        session.initialize()
        self.assertTrue(session.view()["isViewingYesterday"])
        session.set_chat_draft("Hi")

        self.assertTrue(session.send_chat_message())

        messages = self.store.read_chat("2024-06-09")
        self.assertEqual(len(messages), 1)
        self.assertEqual(messages[0].user_id, "user1")
        self.assertEqual(messages[0].username, "Marty")
        self.assertEqual(messages[0].message, "Hi")
        self.assertIsNotNone(messages[0].timestamp)
        self.assertEqual([m.message for m in session.state.chat_messages], ["Hi"])
        self.assertEqual(session.state.chat_draft, "")
        self.assertFalse(session.state.is_sending_chat)

    def test_chat_rejected_when_not_viewing_yesterday(self):
        session = self._session()
        session.initialize()
        self.assertTrue(session.navigate("next"))
        self.assertEqual(session.state.viewing_date, "2024-06-10")

        self.assertFalse(session.send_chat_message("Hi"))

        self.assertEqual(self.store.read_chat("2024-06-10"), [])
        self.assertEqual(self.store.read_chat("2024-06-09"), [])

    def test_chat_is_ordered_and_shared(self):
        marty = self._session(MARTY)
        marieke = self._session(MARIEKE)
        marty.initialize()
        marieke.initialize()

        marty.send_chat_message("Eerste")
        marieke.send_chat_message("Tweede")

        self.assertEqual([m.message for m in marty.state.chat_messages], ["Eerste", "Tweede"])
        self.assertEqual([m.message for m in marieke.state.chat_messages], ["Eerste", "Tweede"])
        stamps = [m.timestamp for m in self.store.read_chat("2024-06-09")]
        self.assertLess(stamps[0], stamps[1])

    def test_send_failure_notifies(self):
        session = self._session()
        session.initialize()
        self.store.fail_next("append_chat_message")

        with self.assertRaises(ChatSendFailed):
            session.send_chat_message("Hi")

        self.assertFalse(session.state.is_sending_chat)
        self.assertEqual(session.notices[-1].message, "Versturen mislukt")

    def test_emoji_appends_to_draft(self):
        session = self._session()
        session.initialize()
        session.set_chat_draft("Mooi ")
        self.assertTrue(session.toggle_emoji_picker())

        session.append_emoji("🌅")
        session.send_chat_message()

        self.assertEqual(self.store.read_chat("2024-06-09")[0].message, "Mooi 🌅")
        self.assertFalse(session.state.show_emoji_picker)


class NavigationTest(DailyViewSessionTestBase):

    def test_navigation_bounds(self):
        self._seed("2024-06-07")
        self._seed("2024-06-09")
        session = self._session()
        session.initialize()

        self.assertTrue(session.navigate("next"))
        self.assertFalse(session.navigate("next"))
        self.assertEqual(session.state.viewing_date, "2024-06-10")

        self.assertTrue(session.navigate("prev"))
        self.assertEqual(session.state.viewing_date, "2024-06-09")
        # 2024-06-08 has no record.
        self.assertFalse(session.navigate("prev"))
        self.assertEqual(session.state.viewing_date, "2024-06-09")

    def test_select_date(self):
        self._seed("2024-06-07", question="Oude vraag")
        session = self._session()
        session.initialize()
        session.toggle_calendar()

        self.assertTrue(session.select_date("2024-06-07"))

        self.assertFalse(session.state.show_calendar)
        self.assertEqual(session.state.daily_data["2024-06-07"].question, "Oude vraag")
        self.assertEqual(session.view()["viewingDateLabel"], "vrijdag 7 juni")
        self.assertFalse(session.select_date("2024-06-11"))
        self.assertFalse(session.select_date("2024-06-01"))

    def test_invalid_inputs(self):
        session = self._session()
        session.initialize()
        with self.assertRaises(InvalidInput):
            session.select_date("gisteren")
        with self.assertRaises(InvalidInput):
            session.navigate("sideways")

    def test_chat_follows_viewed_date(self):
        self._seed("2024-06-07")
        self.store.append_chat_message(
            "2024-06-07",
            ChatMessage(
                user_id="user2", username="Marieke", message="Oud bericht"
            ),
        )
        session = self._session()
        session.initialize()

        session.select_date("2024-06-07")

        self.assertEqual([m.message for m in session.state.chat_messages], ["Oud bericht"])


class LifecycleTest(DailyViewSessionTestBase):

    def test_rollover_reinitializes(self):
        session = self._session()
        session.initialize()

        self.today = date(2024, 6, 11)
        session.refresh()

        self.assertEqual(session.state.today_date, "2024-06-11")
        self.assertEqual(session.state.viewing_date, "2024-06-10")
        self.assertIsNotNone(self.store.read("2024-06-11"))

    def test_lost_connection_is_reported(self):
        session = self._session()
        session.initialize()

        self.store.drop_connections()

        self.assertEqual(session.state.error, ERROR_MESSAGES["REALTIME_CONNECTION_LOST"])

    def test_dead_subscription_found_on_refresh(self):
        session = self._session()
        session.initialize()
        session._subscriptions[0].active = False

        session.refresh()

        self.assertEqual(session.state.error, ERROR_MESSAGES["REALTIME_CONNECTION_LOST"])

    def test_close_releases_listeners(self):
        session = self._session()
        session.initialize()
        self.assertTrue(self.store._listeners)

        session.close()

        self.assertEqual(self.store._listeners, {})

    def test_view_reports_partner_answer(self):
        self._seed(
            "2024-06-09",
            answers=[
                Answer(user_id="user2", answer="Fijn"),
            ],
        )
        session = self._session()
        session.initialize()

        view = session.view()

        self.assertEqual(view["partner"]["username"], "Marieke")
        self.assertEqual(view["partnerAnswer"], {"userId": "user2", "answer": "Fijn"})
        self.assertIsNone(view["myAnswer"])
        self.assertFalse(view["hasSubmittedToday"])
        self.assertEqual(view["viewingDateLabel"], "Gisteren")
        self.assertEqual(view["state"]["viewingDate"], "2024-06-09")

    def test_partner_answer_hidden_until_next_day(self):
        self._seed(
            "2024-06-10",
            answers=[
                Answer(user_id="user1", answer="Rustig"),
                Answer(user_id="user2", answer="Geheim"),
            ],
        )
        session = self._session()
        session.initialize()
        session.navigate("next")

        view = session.view()

        self.assertEqual(view["state"]["viewingDate"], "2024-06-10")
        self.assertIsNone(view["partnerAnswer"])
        self.assertTrue(view["partnerAnswerHidden"])
        self.assertEqual(view["myAnswer"], {"userId": "user1", "answer": "Rustig"})
        self.assertEqual(view["todayData"]["answers"], [{"userId": "user1", "answer": "Rustig"}])
        self.assertEqual(
            view["currentViewingData"]["answers"], [{"userId": "user1", "answer": "Rustig"}]
        )
        self.assertNotIn("Geheim", str(view["state"]["dailyData"]))
        # The session's own state and the store are untouched.
        self.assertEqual(len(session.state.daily_data["2024-06-10"].answers), 2)
        self.assertEqual(len(self.store.read("2024-06-10").answers), 2)


if __name__ == "__main__":
    unittest.main()
