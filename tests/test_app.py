import unittest
from datetime import datetime
from unittest import mock

import app as app_module
from assistant.llm import AIClient
from tests.fakes import FakeProvider, FakeSupabase

NOON = datetime(2025, 3, 5, 12, 0)

SYMPTOMS = {
    "possible_conditions": [{"name": "Migraine", "likelihood": "medium", "description": "Recurring headache."}],
    "urgency": "routine",
    "recommendations": ["Track triggers"],
    "disclaimer": "Not medical advice.",
}

ADVICE = {
    "can_take_now": True, "recommendation": "Take it now.", "reasoning": "Next dose is hours away.",
    "next_steps": ["Take the 12:00 dose as usual"], "urgency": "routine",
}

SUMMARY = {
    "period": "week",
    "overall_health": "good",
    "key_metrics": {"total_logs": 1, "medication_adherence": "90%", "common_symptoms": []},
    "trends": [],
    "recommendations": ["Keep logging"],
    "summary": "A steady week.",
}


class AppTestCase(unittest.TestCase):
    def setUp(self):
        self.db = FakeSupabase({
            "conditions": [
                {"id": "c1", "user_id": "user-1", "name": "Diabetes"},
                {"id": "c9", "user_id": "someone-else", "name": "Asthma"},
            ],
            "medications": [
                {"id": "m1", "condition_id": "c1", "user_id": "user-1", "name": "Metformin", "dosage": "500mg",
                 "times_per_day": 2, "reminder_times": ["08:00", "12:00"], "expiry_date": "2024-01-01"},
                {"id": "m2", "condition_id": "c1", "user_id": "user-1", "name": "Insulin", "dosage": "10u",
                 "times_per_day": 1, "reminder_times": ["12:30"], "expiry_date": "2030-01-01"},
            ],
            "health_logs": [],
        })
        self.provider = FakeProvider()
        self.app = app_module.create_app(
            {"TESTING": True, "RATELIMIT_ENABLED": False, "SECRET_KEY": "test"},
            supabase_client=self.db,
            ai_client=AIClient(groq_client=self.provider),
        )
        self.client = self.app.test_client()
        clock = mock.patch.object(app_module, "_now", return_value=NOON)
        clock.start()
        self.addCleanup(clock.stop)

    def sign_in(self, user_id="user-1", full_name="Sam Carter"):
        with self.client.session_transaction() as sess:
            sess["user_id"] = user_id
            sess["email"] = "sam@example.com"
            sess["full_name"] = full_name


class AuthTests(AppTestCase):
    def test_pages_redirect_to_login(self):
        resp = self.client.get("/dashboard")
        self.assertEqual(resp.status_code, 302)
        self.assertIn("/login", resp.headers["Location"])

    def test_api_requires_auth(self):
        resp = self.client.get("/api/reminders/due")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.get_json(), {"error": "unauthorized"})

    def test_register_then_login(self):
        resp = self.client.post("/register", data={
            "full_name": "Sam Carter", "email": "Sam@Example.com", "password": "secret123",
        })
        self.assertIn("/auth/sign-up-success", resp.headers["Location"])

        bad = self.client.post("/login", data={"email": "sam@example.com", "password": "wrong"})
        self.assertEqual(bad.status_code, 401)

        ok = self.client.post("/login", data={"email": "sam@example.com", "password": "secret123"})
        self.assertIn("/dashboard", ok.headers["Location"])
        with self.client.session_transaction() as sess:
            self.assertEqual(sess["user_id"], "user-1")
            self.assertEqual(sess["full_name"], "Sam Carter")

    def test_logout_clears_session(self):
        self.sign_in()
        self.client.get("/logout")
        self.assertTrue(self.db.auth.signed_out)
        with self.client.session_transaction() as sess:
            self.assertNotIn("user_id", sess)

    def test_health_is_public(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.get_json()["status"], "ok")


class ConditionAndMedicationPageTests(AppTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_submitting_condition_persists_row_for_current_user(self):
        resp = self.client.post("/dashboard/conditions", data={"name": "Hypertension"})
        self.assertEqual(resp.status_code, 302)
        row = self.db.tables["conditions"][-1]
        self.assertEqual((row["name"], row["user_id"]), ("Hypertension", "user-1"))

        page = self.client.get("/dashboard").get_data(as_text=True)
        self.assertIn("Hypertension", page)
        self.assertNotIn("Asthma", page)

    def test_blank_condition_is_not_inserted(self):
        self.client.post("/dashboard/conditions", data={"name": "  "})
        self.assertEqual(len(self.db.tables["conditions"]), 2)

    def test_database_error_renders_empty_state(self):
        self.db.failing_tables.add("conditions")
        resp = self.client.get("/dashboard")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("Error loading conditions.", resp.get_data(as_text=True))

    def test_medications_page_requires_owned_condition(self):
        self.assertIn("/dashboard", self.client.get("/dashboard/medications").headers["Location"])
        other = self.client.get("/dashboard/medications?condition=c9")
        self.assertEqual(other.status_code, 302)

    def test_expired_medication_renders_expired_badge(self):
        page = self.client.get("/dashboard/medications?condition=c1").get_data(as_text=True)
        self.assertEqual(page.count("expired-badge"), 1)
        self.assertIn("Metformin", page)
        self.assertIn("Insulin", page)

    def test_add_medication_from_form(self):
        self.client.post("/dashboard/medications?condition=c1", data={
            "name": "Aspirin", "dosage": "81mg", "times_per_day": "1",
            "reminder_times": "9:00", "expiry_date": "2027-01-01",
        })
        row = self.db.tables["medications"][-1]
        self.assertEqual(row["name"], "Aspirin")
        self.assertEqual(row["reminder_times"], ["09:00"])
        self.assertEqual(row["condition_id"], "c1")

    def test_missing_required_medication_field_is_flashed(self):
        self.client.post("/dashboard/medications?condition=c1", data={"name": "Aspirin"})
        self.assertEqual(len(self.db.tables["medications"]), 2)
        page = self.client.get("/dashboard/medications?condition=c1").get_data(as_text=True)
        self.assertIn("Please fill in all required fields", page)

    def test_health_log_add_and_delete(self):
        self.client.post("/dashboard/health-logs", data={"log_date": "2025-03-05", "notes": "Slept well"})
        log = self.db.tables["health_logs"][-1]
        self.assertIn("Slept well", self.client.get("/dashboard/health-logs").get_data(as_text=True))
        self.client.post(f"/dashboard/health-logs/{log['id']}/delete")
        self.assertEqual(self.db.tables["health_logs"], [])

    def test_update_medication_returns_to_its_condition(self):
        resp = self.client.post("/dashboard/medications/m2/update?condition=c1", data={
            "name": "Insulin", "dosage": "12u", "times_per_day": "2",
            "reminder_times": "7:30, 21:00", "expiry_date": "2030-01-01",
        })
        self.assertEqual(resp.status_code, 302)
        self.assertIn("/dashboard/medications?condition=c1", resp.headers["Location"])
        row = next(m for m in self.db.tables["medications"] if m["id"] == "m2")
        self.assertEqual((row["dosage"], row["reminder_times"]), ("12u", ["07:30", "21:00"]))

    def test_update_medication_with_bad_time_is_flashed(self):
        self.client.post("/dashboard/medications/m2/update?condition=c1", data={
            "name": "Insulin", "dosage": "12u", "times_per_day": "1",
            "reminder_times": "25:00", "expiry_date": "2030-01-01",
        })
        row = next(m for m in self.db.tables["medications"] if m["id"] == "m2")
        self.assertEqual(row["dosage"], "10u")
        page = self.client.get("/dashboard/medications?condition=c1").get_data(as_text=True)
        self.assertIn("Invalid reminder time", page)

    def test_health_log_update(self):
        self.db.tables["health_logs"].append(
            {"id": "h1", "user_id": "user-1", "log_date": "2025-03-04", "notes": "Tired"}
        )
        resp = self.client.post("/dashboard/health-logs/h1/update", data={"log_date": "2025-03-05", "notes": "Rested"})
        self.assertIn("/dashboard/health-logs", resp.headers["Location"])
        row = self.db.tables["health_logs"][0]
        self.assertEqual((row["log_date"], row["notes"]), ("2025-03-05", "Rested"))

        self.client.post("/dashboard/health-logs/h1/update", data={"log_date": "2025-03-05", "notes": " "})
        self.assertEqual(self.db.tables["health_logs"][0]["notes"], "Rested")


class ReminderRouteTests(AppTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_reminder_due_now_notifies_exactly_once(self):
        first = self.client.get("/api/reminders/due").get_json()
        self.assertEqual(first["time"], "12:00")
        self.assertEqual([n["key"] for n in first["notifications"]], ["m1-12:00"])
        self.assertEqual(first["notifications"][0]["body"], "Time to take Metformin (500mg)")

        second = self.client.get("/api/reminders/due").get_json()
        self.assertEqual(second["notifications"], [])

    def test_taken_reminder_is_not_notified(self):
        resp = self.client.post("/api/reminders/taken", json={"medication_id": "m1", "time": "12:00"})
        self.assertTrue(resp.get_json()["ok"])
        self.assertEqual(self.client.get("/api/reminders/due").get_json()["notifications"], [])

    def test_reminders_page(self):
        self.client.post("/dashboard/reminders/taken", data={"medication_id": "m1", "time": "08:00"})
        page = self.client.get("/dashboard/reminders").get_data(as_text=True)
        self.assertIn("8:00 AM", page)
        self.assertIn("12:30 PM", page)
        self.assertIn("Taken", page)
        self.assertIn("Marked as taken for 8:00 AM", page)

    def test_unknown_reminder_cannot_be_marked(self):
        resp = self.client.post("/api/reminders/taken", json={"medication_id": "m1", "time": "03:00"})
        self.assertEqual(resp.status_code, 404)
        self.client.post("/dashboard/reminders/taken", data={"medication_id": "m1", "time": "bogus"})
        page = self.client.get("/dashboard/reminders").get_data(as_text=True)
        self.assertIn("Unknown reminder.", page)
        self.assertNotIn(">Taken<", page)

    def test_advice_then_mark_taken_now(self):
        page = self.client.get("/dashboard/reminders").get_data(as_text=True)
        self.assertIn("Mark as Taken Now", page)
        self.assertIn('data-medication-id="m1" data-time="08:00"', page)

        self.provider.chat.completions.responses.append(ADVICE)
        advice = self.client.post("/api/missed-medication", json={"medication_id": "m1", "scheduled_time": "08:00"})
        self.assertTrue(advice.get_json()["can_take_now"])

        resp = self.client.post("/api/reminders/taken", json={"medication_id": "m1", "time": "08:00"})
        self.assertEqual(resp.get_json(), {"ok": True, "completed": 1})
        page = self.client.get("/dashboard/reminders").get_data(as_text=True)
        self.assertNotIn('data-time="08:00"', page)
        self.assertIn(">Taken<", page)

    def test_browser_timezone_sets_reminder_clock(self):
        # server clock reads 12:00 UTC, browser is UTC-4
        self.client.set_cookie("tz_offset", "240")
        due = self.client.get("/api/reminders/due").get_json()
        self.assertEqual(due["time"], "08:00")
        self.assertEqual([n["key"] for n in due["notifications"]], ["m1-08:00"])

        page = self.client.get("/dashboard/reminders").get_data(as_text=True)
        self.assertIn("Upcoming (next hour): <strong>1</strong>", page)
        self.assertNotIn("data-medication-id=", page)

        self.provider.chat.completions.responses.append(ADVICE)
        self.client.post("/api/missed-medication", json={"medication_id": "m1", "scheduled_time": "08:00"})
        self.assertIn("- Current time: 08:00", self.provider.last_prompt)

    def test_bad_timezone_cookie_falls_back_to_server_clock(self):
        self.client.set_cookie("tz_offset", "not-a-number")
        self.assertEqual(self.client.get("/api/reminders/due").get_json()["time"], "12:00")
        self.client.set_cookie("tz_offset", "9999")
        self.assertEqual(self.client.get("/api/reminders/due").get_json()["time"], "12:00")

    def test_missed_medication_advice(self):
        self.provider.chat.completions.responses.append({
            "can_take_now": False, "recommendation": "Skip it.", "reasoning": "Next dose is soon.",
            "next_steps": ["Take the 12:00 dose"], "urgency": "important",
        })
        resp = self.client.post("/api/missed-medication", json={"medication_id": "m1", "scheduled_time": "08:00"})
        data = resp.get_json()
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(data["can_take_now"])
        self.assertEqual(data["context"]["next_scheduled_time"], "12:00")
        self.assertIn("- Current time: 12:00", self.provider.last_prompt)

    def test_missed_medication_unknown_reminder(self):
        resp = self.client.post("/api/missed-medication", json={"medication_id": "m1", "scheduled_time": "03:00"})
        self.assertEqual(resp.status_code, 404)


class AIRouteTests(AppTestCase):
    def setUp(self):
        super().setUp()
        self.sign_in()

    def test_greeting_falls_back_when_model_fails(self):
        resp = self.client.get("/api/greeting")
        self.assertEqual(resp.get_json()["greeting"], "Welcome to MediTrack!")

    def test_greeting_uses_first_name(self):
        self.provider.chat.completions.responses.append("Hello **Sam**!")
        data = self.client.get("/api/greeting").get_json()
        self.assertEqual(data["greeting"], "Hello **Sam**!")
        self.assertIn("<strong>Sam</strong>", data["html"])
        self.assertIn("Their name is Sam.", self.provider.last_prompt)

    def test_interaction_button_disabled_and_single_med_skips_model(self):
        page = self.client.get("/dashboard/insights").get_data(as_text=True)
        self.assertIn('id="interactions-btn" disabled', page)

        resp = self.client.post("/api/interactions", json={"medications": ["Metformin"]})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.get_json()["has_interactions"])
        self.assertEqual(self.provider.calls, [])

    def test_symptoms(self):
        self.provider.chat.completions.responses.append(SYMPTOMS)
        data = self.client.post("/api/symptoms", json={"symptoms": "throbbing headache"}).get_json()
        self.assertEqual(data["urgency"], "routine")
        self.assertEqual(data["guidance"], "Consider scheduling a routine appointment with your doctor.")

    def test_blank_symptoms_is_bad_request(self):
        resp = self.client.post("/api/symptoms", json={"symptoms": ""})
        self.assertEqual(resp.status_code, 400)

    def test_ai_failure_returns_inert_error(self):
        resp = self.client.post("/api/symptoms", json={"symptoms": "cough"})
        self.assertEqual(resp.status_code, 503)
        self.assertIn("error", resp.get_json())

    def test_insights_without_logs(self):
        data = self.client.post("/api/insights").get_json()
        self.assertEqual(data["insights"], [])
        self.assertEqual(self.provider.calls, [])

    def test_summary_rejects_unknown_period(self):
        self.assertEqual(self.client.post("/api/summary/year").status_code, 400)

    def test_weekly_summary(self):
        self.db.tables["health_logs"].extend([
            {"id": "h1", "user_id": "user-1", "log_date": "2025-03-01", "notes": "Mild headache"},
            {"id": "h2", "user_id": "user-1", "log_date": "2025-02-01", "notes": "Old entry"},
        ])
        self.provider.chat.completions.responses.append(SUMMARY)
        resp = self.client.post("/api/summary/week")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["overall_health"], "good")
        prompt = self.provider.last_prompt
        self.assertIn("weekly health summary", prompt)
        self.assertIn("2025-03-01: Mild headache", prompt)
        self.assertNotIn("Old entry", prompt)
        self.assertIn("Metformin (500mg)", prompt)

    def test_greeting_html_is_escaped(self):
        self.provider.chat.completions.responses.append("Hi <script>alert(1)</script> **Sam**")
        html = self.client.get("/api/greeting").get_json()["html"]
        self.assertNotIn("<script>", html)
        self.assertIn("&lt;script&gt;", html)
        self.assertIn("<strong>Sam</strong>", html)

    def test_non_object_json_body_is_bad_request(self):
        resp = self.client.post("/api/symptoms", json=["headache"])
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.client.post("/api/reminders/taken", json=["m1"]).status_code, 400)

    def test_null_medication_names_are_dropped(self):
        resp = self.client.post("/api/interactions", json={"medications": ["Metformin", None, "  "]})
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(resp.get_json()["has_interactions"])
        self.assertEqual(self.provider.calls, [])


if __name__ == "__main__":
    unittest.main()
