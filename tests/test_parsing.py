"""Tests for the shared parsing helpers and the field cascade.

Everything here is pure: strings and BeautifulSoup documents in, values out.
No mocking is needed apart from a raising attempt in the cascade tests.
"""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from shelfscan.scraper.cascade import first_of, has_value
from shelfscan.scraper.models import Discount
from shelfscan.scraper.parsing import (
    compute_discount,
    convert_to_grams,
    extract_currency,
    extract_headers,
    extract_price,
    find_entity,
    load_json_ld,
    page_text,
    parse_percentage,
    price_per_gram,
    stock_level,
    utc_timestamp,
)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


# ---------------------------------------------------------------------------
# Money and units
# ---------------------------------------------------------------------------

class TestExtractPrice:
    def test_currency_prefixed(self) -> None:
        assert extract_price("$45.00") == 45.0

    def test_no_number(self) -> None:
        assert extract_price("Contact us") is None

    def test_none(self) -> None:
        assert extract_price(None) is None

    def test_thousands_separator(self) -> None:
        assert extract_price("$1,299.99") == 1299.99

    def test_numeric_input(self) -> None:
        assert extract_price(40) == 40.0


class TestExtractCurrency:
    def test_symbol(self) -> None:
        assert extract_currency("€19.99") == "€"

    def test_iso_code(self) -> None:
        assert extract_currency("19.99 GBP") == "GBP"

    def test_missing(self) -> None:
        assert extract_currency("19.99") is None


class TestConvertToGrams:
    def test_ounce(self) -> None:
        assert convert_to_grams("1oz") == 28.35

    def test_ounce_word(self) -> None:
        assert convert_to_grams("2 ounces") == 56.7

    def test_grams_pass_through(self) -> None:
        assert convert_to_grams("3.5g") == 3.5
        assert convert_to_grams("7 grams") == 7.0

    def test_unknown_unit(self) -> None:
        assert convert_to_grams("2 lbs") is None
        assert convert_to_grams("one eighth") is None
        assert convert_to_grams(None) is None


class TestPricePerGram:
    def test_rounds_to_two_decimals(self) -> None:
        assert price_per_gram(100.0, "1oz") == 3.53

    def test_grams(self) -> None:
        assert price_per_gram(35.0, "3.5g") == 10.0

    def test_missing_inputs(self) -> None:
        assert price_per_gram(None, "3.5g") is None
        assert price_per_gram(35.0, None) is None


class TestComputeDiscount:
    def test_original_greater(self) -> None:
        assert compute_discount(40.0, 50.0) == Discount(amount=10.0, percentage=20)

    def test_original_not_greater(self) -> None:
        assert compute_discount(50.0, 40.0) is None
        assert compute_discount(50.0, 50.0) is None

    def test_missing_price(self) -> None:
        assert compute_discount(None, 50.0) is None
        assert compute_discount(40.0, None) is None

    def test_percentage_rounds_half_up(self) -> None:
        # 12.5% would round to 12 with banker's rounding.
        assert compute_discount(87.5, 100.0) == Discount(amount=12.5, percentage=13)


class TestStockLevel:
    def test_breakpoints(self) -> None:
        assert stock_level(3) == "low"
        assert stock_level(4) == "medium"
        assert stock_level(10) == "medium"
        assert stock_level(11) == "high"

    def test_none(self) -> None:
        assert stock_level(None) is None


class TestParsePercentage:
    def test_valid(self) -> None:
        assert parse_percentage("22.5") == 22.5
        assert parse_percentage("100") == 100.0

    def test_out_of_range_discarded(self) -> None:
        assert parse_percentage("150") is None
        assert parse_percentage("-1") is None

    def test_garbage(self) -> None:
        assert parse_percentage("abc") is None
        assert parse_percentage(None) is None


# ---------------------------------------------------------------------------
# Text and structured data
# ---------------------------------------------------------------------------

class TestText:
    def test_page_text_skips_scripts_and_comments(self) -> None:
        soup = _soup(
            "<body><p>Visible  text</p><script>var hidden = 1;</script>"
            "<style>.x{}</style><!-- comment --></body>"
        )
        assert page_text(soup) == "Visible text"

    def test_extract_headers_in_order(self) -> None:
        soup = _soup('<h1 id="top">Main title</h1><h3>Sub section</h3><h2>ab</h2><h2>Second</h2>')
        headers = extract_headers(soup)
        assert [(h.level, h.text) for h in headers] == [(1, "Main title"), (3, "Sub section"), (2, "Second")]
        assert headers[0].id == "top"
        assert headers[1].id is None


class TestJsonLd:
    def test_flattens_lists_and_graph(self) -> None:
        soup = _soup(
            '<script type="application/ld+json">[{"@type": "Organization"}, {"@type": "WebSite"}]</script>'
            '<script type="application/ld+json">{"@graph": [{"@type": ["Thing", "Product"], "name": "Widget"}]}</script>'
        )
        entities = load_json_ld(soup)
        assert len(entities) == 3
        assert find_entity(entities, "Product")["name"] == "Widget"

    def test_invalid_json_skipped(self) -> None:
        soup = _soup(
            '<script type="application/ld+json">{not json</script>'
            '<script type="application/ld+json">{"@type": "Product", "name": "Ok"}</script>'
        )
        entities = load_json_ld(soup)
        assert entities == [{"@type": "Product", "name": "Ok"}]

    def test_find_entity_missing(self) -> None:
        assert find_entity([{"@type": "Article"}], "Product") is None


def test_utc_timestamp_format() -> None:
    stamp = utc_timestamp()
    assert stamp.endswith("Z")
    assert "T" in stamp


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

class TestFirstOf:
    def test_first_value_wins(self) -> None:
        calls: list[str] = []

        def structured() -> None:
            calls.append("structured")
            return None

        def selectors() -> str:
            calls.append("selectors")
            return "from selectors"

        def regex() -> str:
            calls.append("regex")
            return "from regex"

        assert first_of("title", [structured, selectors, regex]) == "from selectors"
        assert calls == ["structured", "selectors"]

    def test_empty_values_fall_through(self) -> None:
        assert first_of("tags", [lambda: [], lambda: "", lambda: ["a"]]) == ["a"]

    def test_raising_attempt_is_logged_and_skipped(self, caplog) -> None:
        def broken() -> str:
            raise ValueError("bad markup")

        with caplog.at_level(logging.WARNING, logger="shelfscan.scraper.cascade"):
            assert first_of("pricing.current_price", [broken, lambda: 9.5]) == 9.5
        assert "pricing.current_price" in caplog.text
        assert "bad markup" in caplog.text

    def test_default_when_nothing_found(self) -> None:
        assert first_of("x", [lambda: None], default="fallback") == "fallback"
        assert first_of("x", []) is None

    def test_has_value(self) -> None:
        assert has_value(0) is True
        assert has_value(False) is True
        assert has_value(None) is False
        assert has_value({}) is False
