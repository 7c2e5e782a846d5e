import math

import pytest

from marketplace_scrape.prices import (discount_percentage, parse_aria_price, parse_count, parse_price,
                                       parse_rating, scale_shopee_price)


class TestParsePrice:

    def test_brazilian_thousands_and_decimal(self):
        assert parse_price("R$ 1.234,56") == 1234.56

    def test_comma_decimal(self):
        assert parse_price("R$ 50,00") == 50.0

    def test_dotted_thousands_without_decimals(self):
        assert parse_price("R$ 1.299") == 1299.0

    @pytest.mark.parametrize("value", [1234.56, 49.9, 100.0, 0.99, 89999.0])
    def test_idempotent_on_clean_numbers(self, value):
        once = parse_price(str(value))
        assert once == value
        assert parse_price(str(once)) == once

    def test_numbers_pass_through(self):
        assert parse_price(149) == 149.0
        assert parse_price(149.9) == 149.9

    @pytest.mark.parametrize("value", ["Grátis", "", None, "R$", float("nan"), float("inf"), True])
    def test_non_numeric_is_none(self, value):
        assert parse_price(value) is None

    def test_never_returns_nan(self):
        result = parse_price("nan")
        assert result is None or not math.isnan(result)


class TestOtherParsers:

    def test_aria_label_price(self):
        assert parse_aria_price("1.234 reais com 56 centavos") == pytest.approx(1234.56)
        assert parse_aria_price("Agora: 89 reais") == 89.0
        assert parse_aria_price("sem preço") is None

    @pytest.mark.parametrize("raw,expected", [
        (14990000, 149.9),
        (14990, 149.9),
        (149.9, 149.9),
        (None, None),
    ])
    def test_shopee_scaling(self, raw, expected):
        assert scale_shopee_price(raw) == expected

    @pytest.mark.parametrize("text,expected", [
        ("1,2 mil", 1200),
        ("+10mil vendidos", 10000),
        ("(2.345)", 2345),
        ("Novo  |  +1.000 vendidos", 1000),
        (57, 57),
        ("nenhuma", None),
    ])
    def test_counts(self, text, expected):
        assert parse_count(text) == expected

    def test_rating_bounds(self):
        assert parse_rating("4,5 de 5 estrelas") == 4.5
        assert parse_rating("7.0") is None

    def test_discount(self):
        assert discount_percentage(149.9, 199.9) == 25
        assert discount_percentage(100.0, 90.0) is None
        assert discount_percentage(None, 90.0) is None
