import os
import sys
import unittest
from datetime import datetime, timedelta

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from aara.backend.app import config, insight_engine
from aara.backend.app.errors import NotFoundError
from aara.backend.app.journals import add_chat_summary, create_journal, set_journal_consent
from aara.backend.app.models import CheckIn, CheckInResponses, Journal
from aara.backend.app.store import MemoryDocumentStore

BASE = datetime(2026, 3, 2, 8, 30)


def make_check_in(day, intensity=5, emotions=None, contexts=None, check_in_id=None):
    return CheckIn(
        id=check_in_id or f"c{day}",
        user_id="u1",
        created_at=BASE + timedelta(days=day),
        responses=CheckInResponses(
            emotional_intensity=intensity,
            emotional_category=emotions or [],
            context_flag=contexts or [],
        ),
    )


def make_journal(day, category=None):
    created = BASE + timedelta(days=day)
    return Journal(
        id=f"j{day}",
        user_id="u1",
        created_at=created,
        updated_at=created,
        content="private text",
        category=category,
        include_in_report=True,
    )


class TrendTests(unittest.TestCase):
    def test_short_series_is_stable(self):
        self.assertEqual(insight_engine.calculate_trend([2, 9]), "stable")

    def test_improving_and_declining(self):
        self.assertEqual(insight_engine.calculate_trend([3, 3, 3, 6, 6, 6]), "improving")
        self.assertEqual(insight_engine.calculate_trend([7, 7, 7, 4, 4, 4]), "declining")

    def test_small_shift_is_stable(self):
        self.assertEqual(insight_engine.calculate_trend([5, 5, 6, 6]), "stable")

    def test_wide_swings_are_volatile(self):
        self.assertEqual(insight_engine.calculate_trend([1, 10, 1, 10, 1, 10]), "volatile")


class ThemeTests(unittest.TestCase):
    def test_themes_ranked_by_count_then_first_seen(self):
        check_ins = [
            make_check_in(0, emotions=["Anxious", "Tired"], contexts=["Work stress"]),
            make_check_in(1, emotions=["Anxious"], contexts=["Work stress"]),
            make_check_in(2, emotions=["Calm"], contexts=["Sleep issues"]),
        ]
        journals = [make_journal(3, category="Family"), make_journal(4)]
        themes = insight_engine.extract_themes(check_ins, journals)

        self.assertEqual(
            [theme.name for theme in themes],
            ["Anxious", "Work stress", "Tired", "Calm", "Sleep issues", "Family"],
        )
        self.assertEqual(themes[0].count, 2)
        self.assertEqual(themes[0].strength, 0.4)
        self.assertEqual(themes[0].first_appearance, BASE)
        self.assertEqual(themes[-1].first_appearance, BASE + timedelta(days=3))

    def test_theme_list_is_capped(self):
        check_ins = [make_check_in(day, emotions=[f"Label {day}"]) for day in range(12)]
        check_ins.append(make_check_in(12, emotions=["Label 11"]))
        themes = insight_engine.extract_themes(check_ins, [])

        self.assertEqual(len(themes), config.MAX_THEMES)
        self.assertEqual(themes[0].name, "Label 11")
        self.assertEqual(themes[0].count, 2)
        self.assertEqual([theme.name for theme in themes[1:]], [f"Label {day}" for day in range(9)])

    def test_no_data_no_themes(self):
        self.assertEqual(insight_engine.extract_themes([], []), [])


class EmotionalPatternTests(unittest.TestCase):
    def test_defaults_without_check_ins(self):
        pattern = insight_engine.analyze_emotional_patterns([])
        self.assertEqual(pattern.dominant, [])
        self.assertEqual(pattern.intensity, 5.0)
        self.assertEqual(pattern.trend, "stable")

    def test_dominant_emotions_and_mean(self):
        check_ins = [
            make_check_in(0, intensity=4, emotions=["Sad", "Tired"]),
            make_check_in(1, intensity=5, emotions=["Sad"]),
            make_check_in(2, intensity=5, emotions=["Hopeful", "Sad", "Tired", "Calm"]),
        ]
        pattern = insight_engine.analyze_emotional_patterns(check_ins)
        self.assertEqual(pattern.dominant, ["Sad", "Tired", "Hopeful"])
        self.assertEqual(pattern.intensity, 4.7)


class RecurrenceTests(unittest.TestCase):
    def test_only_frequent_contexts_recur(self):
        check_ins = [
            make_check_in(0, contexts=["Work", "Sleep"]),
            make_check_in(1, contexts=["Work"]),
            make_check_in(2, contexts=["Work", "Sleep"]),
            make_check_in(3, contexts=["Family"]),
        ]
        signals = insight_engine.detect_recurrence_signals(check_ins)
        self.assertEqual(len(signals), 1)
        self.assertEqual(signals[0].pattern, "Work")
        self.assertEqual(signals[0].frequency, 3)
        self.assertEqual(signals[0].first_seen, BASE)
        self.assertEqual(signals[0].last_seen, BASE + timedelta(days=2))


class GenerateInsightTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryDocumentStore()

    def test_no_sources_returns_none(self):
        result = insight_engine.generate_insights(self.store, "u1", BASE, BASE + timedelta(days=7), now=BASE)
        self.assertIsNone(result)
        self.assertEqual(insight_engine.get_user_insights(self.store, "u1"), [])

    def test_sources_are_weighted_and_persisted(self):
        for day in range(3):
            item = make_check_in(day, intensity=6, emotions=["Calm"])
            data = item.model_dump(mode="json")
            data.pop("id")
            self.store.set("users/u1/check_ins", item.id, data)
        private = create_journal(self.store, "u1", "not shared", now=BASE + timedelta(hours=1))
        shared = create_journal(self.store, "u1", "shared", category="Work", now=BASE + timedelta(hours=2))
        set_journal_consent(self.store, "u1", shared.id, True, now=BASE + timedelta(hours=2))
        add_chat_summary(self.store, "u1", "session-1", "Talked about sleep", now=BASE + timedelta(days=1))

        end = BASE + timedelta(days=7)
        insight = insight_engine.generate_insights(self.store, "u1", BASE, end, now=end)

        weights = {source.type: source.weight for source in insight.sources}
        self.assertEqual(weights, {"check_in": 0.5, "journal": 0.8, "chat_summary": 0.6})
        self.assertNotIn(private.id, [source.id for source in insight.sources])
        self.assertEqual(insight.time_context.period, "Mar 02, 2026 - Mar 09, 2026")
        self.assertEqual(len(insight.time_context.significant_dates), 3)

        stored = insight_engine.get_insight(self.store, "u1", insight.id)
        self.assertEqual(stored.emotional_patterns.dominant, ["Calm"])
        self.assertEqual([item.id for item in insight_engine.get_user_insights(self.store, "u1")], [insight.id])

    def test_missing_insight(self):
        with self.assertRaises(NotFoundError):
            insight_engine.get_insight(self.store, "u1", "missing")


if __name__ == "__main__":
    unittest.main()
