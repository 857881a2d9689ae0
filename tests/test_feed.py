"""
Tests for the feed pipeline with a fake WebUntis client.

Covers the states: cache hit, concurrent misses, login failure, fetch failure, empty timetable,
encode failure and cache invalidation after a remap update.
"""

import threading
import time
import unittest
from datetime import date
from unittest import mock
from zoneinfo import ZoneInfo

from icsuntis.cache import CalendarCache
from icsuntis.config import Credentials, Settings
from icsuntis.errors import EncodeError, UpstreamAuthError, UpstreamFetchError
from icsuntis.export_ics import EncodeResult
from icsuntis.feed import ENCODE_ERROR_MESSAGE, FETCH_ERROR_MESSAGE, FeedAssembler, FeedState
from icsuntis.model import Element, RawLesson
from icsuntis.remap import RemapTable

CREDENTIALS = Credentials(server="demo.webuntis.com", school="demo", username="max", password="s3cret")


def lesson(start: int, end: int, subject: str = "mat_GK_11", **kwargs) -> RawLesson:
    return RawLesson(
        date=20240315,
        start_time=start,
        end_time=end,
        subjects=(Element(subject),),
        rooms=(Element("R101"),),
        teachers=(Element("A"),),
        **kwargs,
    )


class FakeClient:
    def __init__(self, lessons=None, login_error=None, fetch_error=None, on_fetch=None) -> None:
        self.lessons = lessons or []
        self.login_error = login_error
        self.fetch_error = fetch_error
        self.on_fetch = on_fetch
        self.logged_out = False
        self.ranges = []

    def login(self) -> None:
        if self.login_error is not None:
            raise self.login_error

    def get_own_timetable(self, start, end):
        self.ranges.append((start, end))
        if self.on_fetch is not None:
            self.on_fetch()
        if self.fetch_error is not None:
            raise self.fetch_error
        return list(self.lessons)

    def logout(self) -> None:
        self.logged_out = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestFeedAssembler(unittest.TestCase):
    def setUp(self) -> None:
        self.settings = Settings(timezone=ZoneInfo("Europe/Berlin"))
        self.clock = FakeClock()
        self.cache = CalendarCache(ttl=600, clock=self.clock)
        self.remap = RemapTable({"subjects": {"mat_GK_11": "Mathematik GK"}})
        self.clients: list[FakeClient] = []
        self.next_client = FakeClient()

    def factory(self, credentials):
        self.assertEqual(credentials, CREDENTIALS)
        client = self.next_client
        self.clients.append(client)
        return client

    def assembler(self) -> FeedAssembler:
        return FeedAssembler(
            self.settings,
            cache=self.cache,
            remap=self.remap,
            client_factory=self.factory,
            today=lambda: date(2024, 3, 15),
        )

    def test_generates_merged_calendar(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(845, 930), lesson(930, 1015), lesson(1030, 1115, "bio")])
        result = self.assembler().get_calendar(CREDENTIALS)

        self.assertTrue(result.ok)
        self.assertEqual(result.status, 200)
        self.assertFalse(result.cache_hit)
        self.assertEqual(result.event_count, 2)
        self.assertEqual(result.payload.count(b"BEGIN:VEVENT"), 2)
        self.assertIn(b"DTSTART:20240315T074500Z", result.payload)
        self.assertIn(b"DTEND:20240315T091500Z", result.payload)
        self.assertIn(b"SUMMARY:Mathematik GK", result.payload)
        self.assertTrue(self.clients[0].logged_out)

    def test_fetches_two_months_around_today(self) -> None:
        self.assembler().get_calendar(CREDENTIALS)
        self.assertEqual(self.clients[0].ranges, [(date(2024, 1, 15), date(2024, 5, 15))])

    def test_unordered_lessons_are_sorted_before_merging(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(930, 1015), lesson(845, 930)])
        result = self.assembler().get_calendar(CREDENTIALS)
        self.assertEqual(result.event_count, 1)

    def test_cancelled_lessons_are_not_served(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(800, 845, code="cancelled"), lesson(845, 930, "bio")])
        result = self.assembler().get_calendar(CREDENTIALS)
        self.assertEqual(result.event_count, 1)
        self.assertNotIn(b"Mathematik GK", result.payload)

    def test_empty_timetable_is_not_an_error(self) -> None:
        result = self.assembler().get_calendar(CREDENTIALS)
        self.assertEqual(result.state, FeedState.SERVE)
        self.assertEqual(result.status, 200)
        self.assertEqual(result.payload.count(b"BEGIN:VEVENT"), 0)

    def test_second_request_is_served_from_cache(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(800, 845)])
        assembler = self.assembler()
        first = assembler.get_calendar(CREDENTIALS)
        self.clock.now += 300
        second = assembler.get_calendar(CREDENTIALS)

        self.assertTrue(second.cache_hit)
        self.assertEqual(second.payload, first.payload)
        self.assertEqual(len(self.clients), 1)

    def test_expired_cache_regenerates(self) -> None:
        assembler = self.assembler()
        assembler.get_calendar(CREDENTIALS)
        self.clock.now += 601
        result = assembler.get_calendar(CREDENTIALS)
        self.assertFalse(result.cache_hit)
        self.assertEqual(len(self.clients), 2)

    def test_remap_update_invalidates_cache(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(800, 845)])
        assembler = self.assembler()
        assembler.get_calendar(CREDENTIALS)

        assembler.update_remap([("subjects", "mat_GK_11", "Mathe")])
        result = assembler.get_calendar(CREDENTIALS)

        self.assertFalse(result.cache_hit)
        self.assertIn(b"SUMMARY:Mathe\r\n", result.payload)

    def test_remap_update_during_build_is_not_cached(self) -> None:
        assembler = self.assembler()
        self.next_client = FakeClient(
            lessons=[lesson(800, 845)],
            on_fetch=lambda: assembler.update_remap([("subjects", "mat_GK_11", "Mathe")]),
        )
        result = assembler.get_calendar(CREDENTIALS)

        # this request still gets the calendar built from the old table
        self.assertIn(b"SUMMARY:Mathematik GK", result.payload)
        self.assertIsNone(self.cache.get())

    def test_login_failure(self) -> None:
        self.next_client = FakeClient(login_error=UpstreamAuthError("bad credentials"))
        with self.assertLogs("icsuntis.feed", level="ERROR") as logs:
            result = self.assembler().get_calendar(CREDENTIALS)

        self.assertEqual(result.state, FeedState.FAILED)
        self.assertEqual(result.failed_in, FeedState.AUTHENTICATE)
        self.assertEqual(result.status, 500)
        self.assertEqual(result.message, FETCH_ERROR_MESSAGE)
        self.assertNotIn("s3cret", "\n".join(logs.output))
        self.assertIsNone(self.cache.get())

    def test_fetch_failure(self) -> None:
        self.next_client = FakeClient(fetch_error=UpstreamFetchError("HTTP 503"))
        with self.assertLogs("icsuntis.feed", level="ERROR"):
            result = self.assembler().get_calendar(CREDENTIALS)

        self.assertEqual(result.failed_in, FeedState.FETCH)
        self.assertEqual(result.message, FETCH_ERROR_MESSAGE)
        self.assertNotIn("503", result.message)
        self.assertTrue(self.clients[0].logged_out)

    def test_inverted_lesson_does_not_break_the_calendar(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(800, 845), lesson(1000, 900, "bio")])
        with self.assertLogs("icsuntis.normalize", level="WARNING"):
            result = self.assembler().get_calendar(CREDENTIALS)

        self.assertEqual(result.status, 200)
        self.assertEqual(result.event_count, 1)
        self.assertIn(b"SUMMARY:Mathematik GK", result.payload)

    def test_encode_failure(self) -> None:
        self.next_client = FakeClient(lessons=[lesson(800, 845)])
        failure = EncodeResult(error=EncodeError("broken event"))
        with mock.patch("icsuntis.feed.encode_calendar", return_value=failure):
            with self.assertLogs("icsuntis.feed", level="ERROR"):
                result = self.assembler().get_calendar(CREDENTIALS)

        self.assertEqual(result.failed_in, FeedState.ENCODE)
        self.assertEqual(result.message, ENCODE_ERROR_MESSAGE)
        self.assertIsNone(self.cache.get())

    def test_concurrent_misses_share_one_fetch(self) -> None:
        entered = threading.Event()
        release = threading.Event()

        def slow_fetch() -> None:
            entered.set()
            release.wait(5)

        self.next_client = FakeClient(lessons=[lesson(800, 845)], on_fetch=slow_fetch)
        assembler = self.assembler()
        results = []

        def request() -> None:
            results.append(assembler.get_calendar(CREDENTIALS))

        threads = [threading.Thread(target=request) for _ in range(5)]
        for t in threads:
            t.start()
        self.assertTrue(entered.wait(5))
        # give the other requests time to queue behind the running build
        time.sleep(0.1)
        release.set()
        for t in threads:
            t.join(5)

        self.assertEqual(len(self.clients), 1)
        self.assertEqual(len(results), 5)
        self.assertEqual({r.payload for r in results}, {results[0].payload})
        self.assertEqual(sum(1 for r in results if not r.cache_hit), 1)

    def test_cache_hit_does_not_check_credentials(self) -> None:
        # one configured identity: the cached calendar is served to every caller
        assembler = self.assembler()
        first = assembler.get_calendar(CREDENTIALS)
        other = Credentials(server="demo.webuntis.com", school="demo", username="someone", password="wrong")
        result = assembler.get_calendar(other)

        self.assertTrue(result.cache_hit)
        self.assertEqual(result.payload, first.payload)
        self.assertEqual(len(self.clients), 1)

    def test_failure_is_not_retried(self) -> None:
        self.next_client = FakeClient(fetch_error=UpstreamFetchError("boom"))
        with self.assertLogs("icsuntis.feed", level="ERROR"):
            self.assembler().get_calendar(CREDENTIALS)
        self.assertEqual(len(self.clients), 1)


if __name__ == "__main__":
    unittest.main()
