import os
import sys
import unittest
from datetime import datetime, timedelta

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from aara.backend.app import report_engine
from aara.backend.app.checkins import create_check_in, get_all_check_ins
from aara.backend.app.errors import (
    InsufficientDataError,
    NotEligibleError,
    NotFoundError,
    ReportLockedError,
    ValidationError,
)
from aara.backend.app.journals import create_journal, get_journal, set_journal_consent
from aara.backend.app.models import CheckInResponses, ReportContent
from aara.backend.app.store import MemoryDocumentStore

BASE = datetime(2026, 1, 1, 9, 0)
BASELINE_MOODS = [3, 3, 4, 6, 7, 8, 8]


def seed_week(store, user_id, start_day, moods, anxious_days=0, context=None):
    for offset, mood in enumerate(moods):
        emotions = ["Anxious"] if offset < anxious_days else ["Hopeful"]
        create_check_in(
            store,
            user_id,
            CheckInResponses(
                emotional_intensity=mood,
                emotional_category=emotions,
                context_flag=[context] if context else [],
            ),
            now=BASE + timedelta(days=start_day + offset),
        )


class PreTherapyReportTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        seed_week(self.store, "u1", 0, BASELINE_MOODS, anxious_days=3, context="Work stress")
        self.now = BASE + timedelta(days=7)

    def test_baseline_report_content(self):
        report = report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now)

        self.assertEqual(report.version, 1)
        self.assertTrue(report.locked)
        self.assertEqual(report.period_start, BASE)
        self.assertEqual(report.period_end, self.now)
        self.assertEqual(len(report.insight_ids), 1)

        content = report.content
        self.assertEqual(
            content.summary,
            "Report for Jan 01, 2026 - Jan 08, 2026. Average mood: 5.6/10. "
            "Trend: improving. Main themes: Work stress, Hopeful, Anxious.",
        )
        self.assertEqual(content.recommendations, ["Continue with current approaches - they seem to be helping"])
        self.assertEqual(content.metrics["check_in_count"], 7)
        self.assertEqual(content.metrics["average_mood"], 5.57)
        self.assertEqual(content.metrics["anxiety_frequency"], 0.43)
        self.assertEqual(content.metrics["best_streak"], 7)
        self.assertIsNone(content.comparison)

        pattern_types = [pattern.type for pattern in content.patterns]
        self.assertEqual(pattern_types, ["emotional", "behavioral", "contextual"])
        self.assertEqual(content.patterns[0].frequency, "daily")
        self.assertEqual(content.patterns[2].description, "Work stress")

    def test_report_is_persisted_and_locked(self):
        report = report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now)
        stored = report_engine.get_report(self.store, "u1", report.id)
        self.assertTrue(stored.locked)
        self.assertEqual(stored.content, report.content)
        with self.assertRaises(ReportLockedError):
            report_engine.update_report_content(self.store, "u1", report.id, ReportContent(summary="edited"))

    def test_only_one_baseline(self):
        report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now)
        with self.assertRaises(NotEligibleError):
            report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now + timedelta(days=1))

    def test_too_early_for_baseline(self):
        with self.assertRaises(NotEligibleError) as ctx:
            report_engine.generate_report(self.store, "u1", "pre_therapy", now=BASE + timedelta(days=6))
        self.assertEqual(ctx.exception.eligibility["days_remaining"], 1)
        self.assertEqual(report_engine.get_user_reports(self.store, "u1"), [])

    def test_pre_therapy_does_not_consume_data(self):
        report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now)
        self.assertTrue(all(not item.processed for item in get_all_check_ins(self.store, "u1")))

    def test_list_with_eligibility(self):
        report = report_engine.generate_report(self.store, "u1", "pre_therapy", now=self.now)
        listing = report_engine.list_reports_with_eligibility(self.store, "u1", now=self.now)
        self.assertEqual(listing["count"], 1)
        self.assertEqual(listing["reports"][0]["id"], report.id)
        self.assertEqual(listing["reports"][0]["generated_at"], self.now.isoformat())
        self.assertEqual(listing["reports"][0]["period"]["start"], BASE.isoformat())
        self.assertEqual(listing["reports"][0]["shares"], [])
        self.assertTrue(listing["eligibility"]["has_baseline"])
        self.assertEqual(listing["eligibility"]["next_report_type"], "therapy")


class TherapyReportTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()
        seed_week(self.store, "u1", 0, BASELINE_MOODS, anxious_days=3)
        self.baseline = report_engine.generate_report(
            self.store, "u1", "pre_therapy", now=BASE + timedelta(days=7)
        )
        seed_week(self.store, "u1", 7, [8] * 7)
        self.start = BASE + timedelta(days=7)
        self.now = BASE + timedelta(days=14)

    def test_therapy_report_compares_with_baseline(self):
        report = report_engine.generate_report(
            self.store, "u1", "therapy", period_start=self.start, now=self.now
        )
        self.assertEqual(report.version, 2)
        comparison = report.content.comparison
        self.assertEqual(comparison.baseline_report_id, self.baseline.id)

        changes = {change.metric: change for change in comparison.changes}
        self.assertEqual(
            set(changes),
            {"average_mood", "check_in_rate", "anxiety_frequency", "mood_volatility"},
        )
        self.assertEqual(changes["average_mood"].direction, "improved")
        self.assertEqual(changes["average_mood"].baseline_value, 5.57)
        self.assertEqual(changes["average_mood"].current_value, 8.0)
        self.assertEqual(changes["average_mood"].magnitude, 0.27)
        self.assertEqual(changes["check_in_rate"].direction, "stable")
        self.assertEqual(changes["anxiety_frequency"].direction, "improved")
        self.assertEqual(changes["mood_volatility"].direction, "improved")

    def test_therapy_report_consumes_period_data(self):
        journal = create_journal(self.store, "u1", "Session notes", category="Therapy", now=self.start + timedelta(hours=2))
        set_journal_consent(self.store, "u1", journal.id, True, now=self.start + timedelta(hours=2))

        report = report_engine.generate_report(
            self.store, "u1", "therapy", period_start=self.start, now=self.now
        )
        self.assertEqual(report.content.metrics["journal_count"], 1)
        self.assertEqual(get_journal(self.store, "u1", journal.id).processed_in_report_id, report.id)

        processed = [item.processed for item in get_all_check_ins(self.store, "u1")]
        self.assertEqual(processed, [False] * 7 + [True] * 7)

        follow_up = report_engine.generate_report(
            self.store, "u1", "therapy", period_start=self.start, now=self.now + timedelta(hours=1)
        )
        self.assertEqual(follow_up.content.metrics["journal_count"], 0)

    def test_next_therapy_report_starts_where_last_ended(self):
        first = report_engine.generate_report(
            self.store, "u1", "therapy", period_start=self.start, now=self.now
        )
        create_check_in(self.store, "u1", CheckInResponses(emotional_intensity=7), now=self.now + timedelta(days=1))
        second = report_engine.generate_report(self.store, "u1", "therapy", now=self.now + timedelta(days=2))
        self.assertEqual(second.period_start, first.period_end)
        self.assertEqual(second.content.metrics["check_in_count"], 1)
        self.assertEqual(report_engine.get_latest_report(self.store, "u1", "therapy").id, second.id)
        self.assertEqual(report_engine.get_next_report_version(self.store, "u1"), 4)

    def test_boundary_check_in_counts_in_one_report_only(self):
        create_check_in(self.store, "u1", CheckInResponses(emotional_intensity=6), now=self.now)
        first = report_engine.generate_report(
            self.store, "u1", "therapy", period_start=self.start, now=self.now
        )
        self.assertEqual(first.content.metrics["check_in_count"], 8)

        create_check_in(self.store, "u1", CheckInResponses(emotional_intensity=7), now=self.now + timedelta(days=1))
        second = report_engine.generate_report(self.store, "u1", "therapy", now=self.now + timedelta(days=2))
        self.assertEqual(second.period_start, self.now)
        self.assertEqual(second.content.metrics["check_in_count"], 1)
        self.assertEqual(second.content.metrics["average_mood"], 7)


class ReportValidationTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def test_unknown_type(self):
        with self.assertRaises(ValidationError):
            report_engine.generate_report(self.store, "u1", "weekly", now=BASE)

    def test_inverted_period(self):
        with self.assertRaises(ValidationError):
            report_engine.generate_report(
                self.store,
                "u1",
                "self_insight",
                period_start=BASE,
                period_end=BASE - timedelta(days=1),
                now=BASE,
                enforce_eligibility=False,
            )

    def test_insufficient_data(self):
        with self.assertRaises(InsufficientDataError) as ctx:
            report_engine.generate_report(self.store, "u1", "self_insight", now=BASE, enforce_eligibility=False)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_missing_report(self):
        with self.assertRaises(NotFoundError):
            report_engine.get_report(self.store, "u1", "missing")

    def test_declining_low_mood_recommendations(self):
        seed_week(self.store, "u2", 0, [5, 5, 5, 2, 2, 2])
        report = report_engine.generate_report(
            self.store,
            "u2",
            "self_insight",
            period_start=BASE,
            now=BASE + timedelta(days=6),
            enforce_eligibility=False,
        )
        self.assertEqual(
            report.content.recommendations,
            [
                "Consider discussing coping strategies with your therapist",
                "Low mood detected - prioritize self-care and support",
            ],
        )

    def test_sparse_check_ins_get_a_nudge(self):
        seed_week(self.store, "u3", 0, [6])
        report = report_engine.generate_report(
            self.store, "u3", "self_insight", now=BASE + timedelta(days=10), enforce_eligibility=False
        )
        self.assertIn(
            "Check in more regularly so your report reflects your true patterns",
            report.content.recommendations,
        )


if __name__ == "__main__":
    unittest.main()
