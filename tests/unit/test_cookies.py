"""Unit tests for the per-domain cookie store."""

from __future__ import annotations

import time
from unittest.mock import patch

from scrape_engine.session.cookies import CookieStore


class TestRecord:
    def test_comma_separated_round_trip(self) -> None:
        store = CookieStore()
        store.record("example.com", "a=1,b=2")
        entries = store.for_domain("example.com")
        assert [(e.name, e.value) for e in entries] == [("a", "1"), ("b", "2")]

    def test_semicolon_separated_and_attributes_ignored(self) -> None:
        store = CookieStore()
        stored = store.record("example.com", "sid=abc; Path=/; HttpOnly; lang=ja")
        assert stored == 2
        assert store.header_for("example.com") == "sid=abc; lang=ja"

    def test_rewrite_replaces_value_and_keeps_position(self) -> None:
        store = CookieStore()
        store.record("example.com", "a=1,b=2")
        store.record("example.com", "a=3")
        assert [(e.name, e.value) for e in store.for_domain("example.com")] == [("a", "3"), ("b", "2")]

    def test_domain_is_case_insensitive(self) -> None:
        store = CookieStore()
        store.record("Example.COM", "a=1")
        assert store.header_for("example.com") == "a=1"


class TestCapture:
    def test_takes_leading_pair_only(self) -> None:
        store = CookieStore()
        store.capture(
            "example.com",
            [
                "existmag=all; expires=Wed, 21 Oct 2026 07:28:00 GMT; path=/",
                "age=verified; Max-Age=3600",
            ],
        )
        assert store.header_for("example.com") == "existmag=all; age=verified"

    def test_skips_malformed(self) -> None:
        store = CookieStore()
        assert store.capture("example.com", ["garbage", "=novalue"]) == 0
        assert store.header_for("example.com") is None


class TestExpiry:
    def test_old_entries_hidden_and_pruned(self) -> None:
        store = CookieStore(max_age_seconds=60)
        now = time.time()
        with patch("scrape_engine.session.cookies.time.time", return_value=now):
            store.record("example.com", "a=1")
        with patch("scrape_engine.session.cookies.time.time", return_value=now + 30):
            store.record("example.com", "b=2")

        with patch("scrape_engine.session.cookies.time.time", return_value=now + 61):
            assert [e.name for e in store.for_domain("example.com")] == ["b"]
            assert store.prune() == 1
        assert store.domains() == ["example.com"]

    def test_prune_with_explicit_age_drops_empty_domains(self) -> None:
        store = CookieStore()
        now = time.time()
        with patch("scrape_engine.session.cookies.time.time", return_value=now):
            store.record("a.com", "x=1")
        with patch("scrape_engine.session.cookies.time.time", return_value=now + 10):
            assert store.prune(max_age_seconds=5) == 1
        assert store.domains() == []


class TestClear:
    def test_clear_one_domain(self) -> None:
        store = CookieStore()
        store.record("a.com", "x=1")
        store.record("b.com", "y=2")
        store.clear("a.com")
        assert store.header_for("a.com") is None
        assert store.header_for("b.com") == "y=2"

    def test_clear_all(self) -> None:
        store = CookieStore()
        store.record("a.com", "x=1")
        store.clear()
        assert store.domains() == []
