import asyncio
import unittest
from datetime import datetime

from miniopencode.errors import CatalogError, ResolutionError
from miniopencode.models import MessageSummary, SessionSummary, TokenUsage
from miniopencode.session_resolver import DailyLimits, DailyTitle, SessionResolver

_TODAY = datetime(2026, 1, 17, 9, 30)


class _FakeCatalog:
    def __init__(self, sessions=None, messages=None) -> None:
        self.sessions: list[SessionSummary] = list(sessions or [])
        self.messages: dict[str, list[MessageSummary]] = dict(messages or {})
        self.created: list[str] = []
        self.listed_messages: list[str] = []
        self.list_error: Exception | None = None

    async def list_sessions(self) -> list[SessionSummary]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.sessions)

    async def list_messages(self, session_id: str) -> list[MessageSummary]:
        self.listed_messages.append(session_id)
        return self.messages.get(session_id, [])

    async def create_session(self, title: str) -> str:
        self.created.append(title)
        new_id = f"new-{len(self.created)}"
        self.sessions.append(SessionSummary(id=new_id, title=title))
        return new_id


def _usage(total: int) -> MessageSummary:
    return MessageSummary(id="msg", tokens=TokenUsage(input=total, output=0, reasoning=0))


def _resolver(catalog: _FakeCatalog, **kwargs) -> SessionResolver:
    return SessionResolver(catalog=catalog, now=lambda: _TODAY, **kwargs)


class SessionResolverTests(unittest.TestCase):
    def test_empty_request_fails(self) -> None:
        catalog = _FakeCatalog()
        with self.assertRaises(ResolutionError):
            asyncio.run(_resolver(catalog).resolve("  "))
        self.assertEqual([], catalog.created)

    def test_literal_match_by_id_is_reused(self) -> None:
        catalog = _FakeCatalog([SessionSummary(id="abc", title="work")])
        self.assertEqual("abc", asyncio.run(_resolver(catalog).resolve("abc")))
        self.assertEqual([], catalog.created)

    def test_literal_without_match_creates_titled_session(self) -> None:
        catalog = _FakeCatalog([SessionSummary(id="abc", title="work")])
        # Titles are not matched; only ids are.
        session_id = asyncio.run(_resolver(catalog).resolve("work"))
        self.assertEqual("new-1", session_id)
        self.assertEqual(["work"], catalog.created)

    def test_daily_without_sessions_creates_part_one(self) -> None:
        catalog = _FakeCatalog([SessionSummary(id="old", title="2026-01-16-daily-4")])
        session_id = asyncio.run(_resolver(catalog).resolve("daily"))
        self.assertEqual("new-1", session_id)
        self.assertEqual(["2026-01-17-daily-1"], catalog.created)

    def test_daily_under_limits_reuses_latest_part(self) -> None:
        catalog = _FakeCatalog(
            [
                SessionSummary(id="p1", title="2026-01-17-daily-1"),
                SessionSummary(id="p3", title="2026-01-17-daily-3"),
                SessionSummary(id="p2", title="2026-01-17-daily-2"),
            ],
            {"p3": [_usage(100), _usage(200)]},
        )
        resolver = _resolver(catalog, limits=DailyLimits(max_tokens=1000, max_messages=10))
        self.assertEqual("p3", asyncio.run(resolver.resolve("daily")))
        self.assertEqual([], catalog.created)
        self.assertEqual(["p3"], catalog.listed_messages)

    def test_daily_over_token_limit_rolls_over(self) -> None:
        catalog = _FakeCatalog(
            [SessionSummary(id="p2", title="2026-01-17-daily-2")],
            {"p2": [_usage(600), _usage(500)]},
        )
        resolver = _resolver(catalog, limits=DailyLimits(max_tokens=1000, max_messages=10))
        self.assertEqual("new-1", asyncio.run(resolver.resolve("daily")))
        self.assertEqual(["2026-01-17-daily-3"], catalog.created)

    def test_daily_over_message_limit_rolls_over(self) -> None:
        catalog = _FakeCatalog(
            [SessionSummary(id="p1", title="2026-01-17-daily-1")],
            {"p1": [MessageSummary(id=str(i)) for i in range(4)]},
        )
        resolver = _resolver(catalog, limits=DailyLimits(max_tokens=1000, max_messages=3))
        asyncio.run(resolver.resolve("daily"))
        self.assertEqual(["2026-01-17-daily-2"], catalog.created)

    def test_daily_exactly_at_limits_is_reused(self) -> None:
        catalog = _FakeCatalog(
            [SessionSummary(id="p1", title="2026-01-17-daily-1")],
            {"p1": [_usage(500), _usage(500)]},
        )
        resolver = _resolver(catalog, limits=DailyLimits(max_tokens=1000, max_messages=2))
        self.assertEqual("p1", asyncio.run(resolver.resolve("daily")))

    def test_parts_are_ordered_numerically(self) -> None:
        catalog = _FakeCatalog(
            [
                SessionSummary(id="p10", title="2026-01-17-daily-10"),
                SessionSummary(id="p9", title="2026-01-17-daily-9"),
            ]
        )
        self.assertEqual("p10", asyncio.run(_resolver(catalog).resolve("daily")))

    def test_malformed_titles_are_ignored(self) -> None:
        catalog = _FakeCatalog(
            [
                SessionSummary(id="x1", title="2026-01-17-daily-"),
                SessionSummary(id="x2", title="2026-01-17-daily-two"),
                SessionSummary(id="x3", title="prefix 2026-01-17-daily-5"),
            ]
        )
        asyncio.run(_resolver(catalog).resolve("daily"))
        self.assertEqual(["2026-01-17-daily-1"], catalog.created)

    def test_zero_limits_use_defaults(self) -> None:
        catalog = _FakeCatalog(
            [SessionSummary(id="p1", title="2026-01-17-daily-1")],
            {"p1": [_usage(1000)]},
        )
        resolver = _resolver(catalog, limits=DailyLimits(max_tokens=0, max_messages=0))
        self.assertEqual("p1", asyncio.run(resolver.resolve("daily")))
        self.assertEqual((250_000, 4000), DailyLimits(0, -1).effective())

    def test_custom_title_format(self) -> None:
        catalog = _FakeCatalog([SessionSummary(id="c1", title="notes/2026-01-17 #1")], {"c1": [_usage(10**9)]})
        resolver = _resolver(catalog, title_format="notes/{date} #{part}")
        asyncio.run(resolver.resolve("daily"))
        self.assertEqual(["notes/2026-01-17 #2"], catalog.created)

    def test_catalog_errors_propagate_without_retry(self) -> None:
        catalog = _FakeCatalog()
        catalog.list_error = CatalogError("down", status_code=500)
        with self.assertRaises(CatalogError):
            asyncio.run(_resolver(catalog).resolve("daily"))
        self.assertEqual([], catalog.created)


class DailyTitleTests(unittest.TestCase):
    def test_build_and_parse(self) -> None:
        titles = DailyTitle()
        self.assertEqual("2026-01-17-daily-2", titles.build("2026-01-17", 2))
        self.assertEqual(("2026-01-17", 12), titles.parse("2026-01-17-daily-12"))
        self.assertIsNone(titles.parse("2026-01-17-daily-x"))

    def test_legacy_layout_is_translated(self) -> None:
        titles = DailyTitle("2006-01-02-daily-%d")
        self.assertEqual("2026-01-17-daily-3", titles.build("2026-01-17", 3))

    def test_format_without_tokens_falls_back(self) -> None:
        titles = DailyTitle("daily")
        self.assertEqual("2026-01-17-daily-1", titles.build("2026-01-17", 1))

    def test_regex_metacharacters_are_literal(self) -> None:
        titles = DailyTitle("[{date}] (part {part})")
        self.assertEqual(("2026-01-17", 4), titles.parse("[2026-01-17] (part 4)"))
        self.assertIsNone(titles.parse("x2026-01-17] (part 4)"))


if __name__ == "__main__":
    unittest.main()
