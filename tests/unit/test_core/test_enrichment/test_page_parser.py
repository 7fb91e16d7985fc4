"""Unit tests for publication-date and description heuristics."""

from datetime import datetime, timedelta, timezone

import pytest

from article_scout.core.enrichment.page_parser import (
    is_sane_date,
    parse_date,
    parse_date_value,
    parse_description,
    parse_page_date,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestParseDate:
    def test_relative_days_resolve_against_now(self):
        real_now = datetime.now(timezone.utc)
        parsed = parse_date("Posted 3 days ago by the team")

        assert parsed is not None
        assert abs((real_now - timedelta(days=3) - parsed).total_seconds()) < 1

    @pytest.mark.parametrize("text,delta", [
        ("5 hours ago", timedelta(hours=5)),
        ("2 weeks ago", timedelta(weeks=2)),
        ("1 day ago", timedelta(days=1)),
    ])
    def test_relative_units(self, text, delta):
        assert parse_date(text, NOW) == NOW - delta

    @pytest.mark.parametrize("text,expected", [
        ("2025-03-04T10:30:00Z", datetime(2025, 3, 4, 10, 30, tzinfo=timezone.utc)),
        ("Published March 4, 2025", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("Mar 4th, 2025", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("4 March 2025", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("2025/03/04", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("03/04/2025", datetime(2025, 3, 4, tzinfo=timezone.utc)),
        ("04-Mar-25", datetime(2025, 3, 4, tzinfo=timezone.utc)),
    ])
    def test_absolute_formats(self, text, expected):
        assert parse_date(text, NOW) == expected

    def test_impossible_calendar_date_is_not_rolled_over(self):
        assert parse_date("February 30, 2025", NOW) is None
        assert parse_date("2025-02-30", NOW) is None

    def test_dates_outside_year_window_are_rejected(self):
        assert parse_date("January 10, 2014", NOW) is None
        assert parse_date("January 10, 2031", NOW) is None
        assert parse_date("January 10, 2015", NOW) == datetime(2015, 1, 10, tzinfo=timezone.utc)
        assert parse_date("January 10, 2030", NOW) == datetime(2030, 1, 10, tzinfo=timezone.utc)

    def test_skips_implausible_match_and_keeps_looking(self):
        text = "Copyright 1999/01/01. Posted 2025/05/01"
        assert parse_date(text, NOW) == datetime(2025, 5, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", [None, "", "   ", "no dates in here at all"])
    def test_returns_none_without_a_date(self, text):
        assert parse_date(text, NOW) is None


class TestSaneDate:
    def test_window_is_relative_to_now(self):
        assert is_sane_date(NOW.replace(year=NOW.year - 10), NOW)
        assert is_sane_date(NOW.replace(year=NOW.year + 5), NOW)
        assert not is_sane_date(NOW.replace(year=NOW.year - 11), NOW)
        assert not is_sane_date(NOW.replace(year=NOW.year + 6), NOW)
        assert not is_sane_date(None, NOW)


class TestParseDateValue:
    def test_list_values_use_first_parseable_entry(self):
        assert parse_date_value(["", "not a date", "2025-01-02"], NOW) == datetime(2025, 1, 2, tzinfo=timezone.utc)

    def test_falls_back_to_dateutil(self):
        assert parse_date_value("20250306T080000Z", NOW) == datetime(2025, 3, 6, 8, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, 12, {}, "", "garbage"])
    def test_unusable_values(self, value):
        assert parse_date_value(value, NOW) is None


class TestParsePageDate:
    def test_meta_tag_wins(self):
        html = """
        <html><head>
          <meta property="article:published_time" content="2025-04-01T09:00:00+00:00">
        </head><body><p>Updated May 20, 2025</p></body></html>
        """
        assert parse_page_date(html, NOW) == datetime(2025, 4, 1, 9, tzinfo=timezone.utc)

    def test_json_ld_graph(self):
        html = """
        <html><head><script type="application/ld+json">
        {"@context": "https://schema.org", "@graph": [
          {"@type": "WebPage"},
          {"@type": "BlogPosting", "datePublished": "2025-02-11"}
        ]}
        </script></head><body></body></html>
        """
        assert parse_page_date(html, NOW) == datetime(2025, 2, 11, tzinfo=timezone.utc)

    def test_time_element(self):
        html = '<html><body><article><time datetime="2025-05-05">May 5</time></article></body></html>'
        assert parse_page_date(html, NOW) == datetime(2025, 5, 5, tzinfo=timezone.utc)

    def test_class_hinted_element(self):
        html = '<html><body><span class="post-date">January 7, 2025</span></body></html>'
        assert parse_page_date(html, NOW) == datetime(2025, 1, 7, tzinfo=timezone.utc)

    def test_published_keyword_beyond_scan_limit(self):
        filler = "lorem ipsum " * 400
        html = f"<html><body><div>{filler} Published on 12 April 2025</div></body></html>"

        assert parse_page_date(html, NOW, text_limit=100) == datetime(2025, 4, 12, tzinfo=timezone.utc)

    def test_no_date(self):
        assert parse_page_date("<html><body><p>Hello</p></body></html>", NOW) is None


class TestParseDescription:
    LONG = "A detailed look at how the team rebuilt the search index without downtime."

    def test_meta_description(self):
        html = f'<html><head><meta name="description" content="{self.LONG}"></head></html>'
        assert parse_description(html) == self.LONG

    def test_short_meta_falls_through_to_json_ld(self):
        html = f"""
        <html><head>
          <meta name="description" content="Too short">
          <script type="application/ld+json">{{"@type": "Article", "description": "{self.LONG}"}}</script>
        </head></html>
        """
        assert parse_description(html) == self.LONG

    def test_article_paragraph_skips_boilerplate(self):
        html = f"""
        <html><body><article>
          <p>We use cookies to improve your experience on this site and for analytics purposes.</p>
          <p>{self.LONG}</p>
        </article></body></html>
        """
        assert parse_description(html) == self.LONG

    def test_truncates_to_max_length(self):
        html = f'<html><head><meta property="og:description" content="{"x" * 800}"></head></html>'
        assert parse_description(html, max_length=500) == "x" * 500

    def test_nothing_found(self):
        assert parse_description("<html><body><p>Short.</p></body></html>") is None
