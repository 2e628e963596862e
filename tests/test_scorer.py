"""Unit tests for the buyer/property match scorer.

Tests cover:
- Location precedence (preferred ZIP, distance bands, ZIP miss, neutral)
- Beds, baths and budget bands
- Priority flag and reasoning text
- Bounds and determinism
"""

import math

import pytest

from app.domain.models import BuyerPreferences, PropertyAttributes
from app.geo.distance import EARTH_RADIUS_MILES
from app.matching.scorer import MatchScorer, far_distance_points, format_number, quality_label

MILES_PER_DEGREE = EARTH_RADIUS_MILES * math.pi / 180

ORIGIN = (30.0, -90.0)


def north_of_origin(miles: float):
    """Coordinates ``miles`` due north of ORIGIN."""
    return ORIGIN[0] + miles / MILES_PER_DEGREE, ORIGIN[1]


def make_buyer(**overrides) -> BuyerPreferences:
    values = {"record_id": "recBUYER"}
    values.update(overrides)
    return BuyerPreferences(**values)


def make_property(**overrides) -> PropertyAttributes:
    values = {"record_id": "recPROP"}
    values.update(overrides)
    return PropertyAttributes(**values)


@pytest.fixture
def scorer():
    return MatchScorer()


class TestConcreteScenarios:
    """End-to-end scores for well-known inputs."""

    def test_perfect_zip_match(self, scorer):
        buyer = make_buyer(
            preferred_zip_codes=["70062"], desired_beds=3, desired_baths=2, down_payment=20000
        )
        prop = make_property(zip_code="70062", beds=3, baths=2, price=100000)

        result = scorer.score(buyer, prop)

        assert result.location_score == 40
        assert result.beds_score == 25
        assert result.baths_score == 15
        assert result.budget_score == 20
        assert result.score == 100
        assert result.is_priority is True
        assert result.distance_miles is None

    def test_no_location_signal_is_neutral(self, scorer):
        buyer = make_buyer(desired_beds=3)
        prop = make_property(address="1 Main St, Kenner, LA 70062", beds=3, price=100000)

        result = scorer.score(buyer, prop)

        assert result.location_score == 20
        assert result.is_priority is False

    def test_seven_miles_apart(self, scorer):
        lat, lng = north_of_origin(7)
        buyer = make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(latitude=lat, longitude=lng)

        result = scorer.score(buyer, prop)

        assert result.location_score == 35
        assert result.is_priority is True
        assert result.distance_miles == pytest.approx(7.0, abs=0.01)


class TestLocation:
    """Tests for the location band and its precedence rules."""

    @pytest.mark.parametrize(
        "miles,points",
        [
            (0.5, 38),
            (4.9, 38),
            (5.2, 35),
            (9.8, 35),
            (10.3, 28),
            (24.5, 28),
            (26.0, 20),
            (49.5, 20),
        ],
    )
    def test_distance_bands_are_priority(self, scorer, miles, points):
        lat, lng = north_of_origin(miles)
        buyer = make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(latitude=lat, longitude=lng)

        result = scorer.score(buyer, prop)

        assert result.location_score == points
        assert result.is_priority is True
        assert any(h.startswith("Within ") for h in result.highlights)

    @pytest.mark.parametrize("miles,points", [(55, 13), (75, 12), (100.5, 10), (190, 6), (300, 5), (1000, 5)])
    def test_beyond_fifty_miles_decays(self, scorer, miles, points):
        lat, lng = north_of_origin(miles)
        buyer = make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(latitude=lat, longitude=lng)

        result = scorer.score(buyer, prop)

        assert result.location_score == points
        assert result.is_priority is False
        assert any(c.startswith("Far from preferred area") for c in result.concerns)

    def test_preferred_zip_wins_even_when_far(self, scorer):
        """A ZIP match scores 40 even when the coordinates are 75 miles apart."""
        lat, lng = north_of_origin(75)
        buyer = make_buyer(preferred_zip_codes="70801", latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(address="9 Bayou Rd, Baton Rouge, LA 70801", latitude=lat, longitude=lng)

        result = scorer.score(buyer, prop)

        assert result.location_score == 40
        assert result.is_priority is True
        assert result.distance_miles == pytest.approx(75, abs=0.01)
        assert "In preferred ZIP code" in result.highlights

    def test_zip_from_address_counts(self, scorer):
        buyer = make_buyer(preferred_zip_codes="70062, 70065")
        prop = make_property(address="123 Main St, Kenner, LA 70062")

        assert scorer.score(buyer, prop).location_score == 40

    def test_zip_miss_without_coordinates(self, scorer):
        buyer = make_buyer(preferred_zip_codes=["70112"])
        prop = make_property(zip_code="70062")

        result = scorer.score(buyer, prop)

        assert result.location_score == 10
        assert result.is_priority is False
        assert "Not in preferred ZIP codes" in result.concerns

    def test_zip_miss_with_coordinates_uses_distance(self, scorer):
        lat, lng = north_of_origin(3)
        buyer = make_buyer(preferred_zip_codes=["70112"], latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(zip_code="70062", latitude=lat, longitude=lng)

        assert scorer.score(buyer, prop).location_score == 38

    def test_one_side_missing_coordinates(self, scorer):
        buyer = make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1])
        prop = make_property(latitude=None, longitude=-90.0)

        result = scorer.score(buyer, prop)

        assert result.location_score == 20
        assert result.distance_miles is None

    def test_non_finite_coordinates_are_ignored(self, scorer):
        buyer = make_buyer(latitude=float("nan"), longitude=ORIGIN[1])
        prop = make_property(latitude=ORIGIN[0], longitude=ORIGIN[1])

        assert scorer.score(buyer, prop).location_score == 20

    def test_location_score_never_increases_with_distance(self, scorer):
        buyer = make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1])
        previous = 40
        for miles in range(0, 400, 3):
            lat, lng = north_of_origin(miles + 0.5)
            points = scorer.score(buyer, make_property(latitude=lat, longitude=lng)).location_score
            assert points <= previous
            previous = points


class TestBeds:
    """Tests for the beds band."""

    @pytest.mark.parametrize(
        "desired,actual,points",
        [(3, 3, 25), (3, 4, 15), (3, 2, 15), (3, 5, 10), (3, 1, 5), (2.5, 2.5, 25)],
    )
    def test_bands(self, scorer, desired, actual, points):
        result = scorer.score(make_buyer(desired_beds=desired), make_property(beds=actual))
        assert result.beds_score == points

    def test_exact_highlight(self, scorer):
        result = scorer.score(make_buyer(desired_beds=3), make_property(beds=3))
        assert "Exact bed count: 3 beds" in result.highlights

    def test_fewer_bedrooms_concern(self, scorer):
        result = scorer.score(make_buyer(desired_beds=4), make_property(beds=2))
        assert "Fewer bedrooms: 2 vs 4 desired" in result.concerns

    def test_no_preference_is_informational(self, scorer):
        result = scorer.score(make_buyer(), make_property(beds=3))
        assert result.beds_score == 12
        assert "3 beds" in result.highlights

    def test_neither_present(self, scorer):
        assert scorer.score(make_buyer(), make_property()).beds_score == 12

    @pytest.mark.parametrize("desired", ["3", 0, -2, float("nan"), True])
    def test_unusable_preference_counts_as_absent(self, scorer, desired):
        result = scorer.score(make_buyer(desired_beds=desired), make_property(beds=1))
        assert result.beds_score == 12


class TestBaths:
    """Tests for the baths band."""

    @pytest.mark.parametrize("desired,actual,points", [(2, 2, 15), (2, 3, 15), (2, 1, 5), (1.5, 1, 5)])
    def test_bands(self, scorer, desired, actual, points):
        result = scorer.score(make_buyer(desired_baths=desired), make_property(baths=actual))
        assert result.baths_score == points

    def test_no_preference(self, scorer):
        assert scorer.score(make_buyer(), make_property(baths=2)).baths_score == 8
        assert scorer.score(make_buyer(desired_baths=2), make_property()).baths_score == 8

    def test_fewer_bathrooms_concern(self, scorer):
        result = scorer.score(make_buyer(desired_baths=2), make_property(baths=1))
        assert "Fewer bathrooms: 1 vs 2 desired" in result.concerns


class TestBudget:
    """Tests for the down payment ratio band."""

    @pytest.mark.parametrize(
        "down_payment,price,points",
        [
            (20000, 100000, 20),
            (50000, 100000, 20),
            (15000, 100000, 15),
            (10000, 100000, 15),
            (5000, 100000, 10),
            (4000, 100000, 5),
        ],
    )
    def test_bands(self, scorer, down_payment, price, points):
        result = scorer.score(make_buyer(down_payment=down_payment), make_property(price=price))
        assert result.budget_score == points

    def test_low_ratio_concern(self, scorer):
        result = scorer.score(make_buyer(down_payment=4000), make_property(price=100000))
        assert "Low down payment ratio: 4%" in result.concerns

    def test_missing_price(self, scorer):
        assert scorer.score(make_buyer(down_payment=20000), make_property()).budget_score == 10

    def test_missing_down_payment(self, scorer):
        assert scorer.score(make_buyer(), make_property(price=100000)).budget_score == 10

    def test_zero_price_counts_as_missing(self, scorer):
        result = scorer.score(make_buyer(down_payment=20000), make_property(price=0))
        assert result.budget_score == 10


class TestReasoning:
    """Tests for the reasoning text."""

    def test_full_reasoning_text(self, scorer):
        buyer = make_buyer(
            preferred_zip_codes=["70062"], desired_beds=3, desired_baths=2, down_payment=20000
        )
        prop = make_property(zip_code="70062", beds=3, baths=2, price=100000)

        result = scorer.score(buyer, prop)

        assert result.reasoning == (
            "[PRIORITY] Excellent Match (Score: 100/100)\n\n"
            "Score Breakdown:\n"
            "• Location: 40/40 pts (in preferred ZIP)\n"
            "• Beds: 25/25 pts (exact match: 3 beds)\n"
            "• Baths: 15/15 pts (meets requirement: 2 baths)\n"
            "• Budget: 20/20 pts (20% down payment ratio)"
        )

    def test_no_priority_prefix_for_explore(self, scorer):
        result = scorer.score(make_buyer(), make_property())

        assert not result.reasoning.startswith("[PRIORITY]")
        assert result.reasoning.startswith("Fair Match (Score: 50/100)")
        assert "• Location: 20/40 pts (no ZIP preference set)" in result.reasoning
        assert "• Beds: 12/25 pts" in result.reasoning

    @pytest.mark.parametrize(
        "total,label",
        [
            (100, "Excellent Match"),
            (80, "Excellent Match"),
            (79, "Good Match"),
            (60, "Good Match"),
            (59, "Fair Match"),
            (40, "Fair Match"),
            (39, "Limited Match"),
            (0, "Limited Match"),
        ],
    )
    def test_quality_label(self, total, label):
        assert quality_label(total) == label


class TestBoundsAndDeterminism:
    """Invariants that hold for every input."""

    @pytest.fixture
    def buyers(self):
        return [
            make_buyer(),
            make_buyer(preferred_zip_codes="70062", desired_beds=3, desired_baths=2, down_payment=20000),
            make_buyer(latitude=ORIGIN[0], longitude=ORIGIN[1], desired_beds=5, down_payment=1000),
            make_buyer(preferred_zip_codes="70112", latitude=ORIGIN[0], longitude=ORIGIN[1]),
        ]

    @pytest.fixture
    def properties(self):
        near = north_of_origin(3)
        far = north_of_origin(120)
        return [
            make_property(),
            make_property(zip_code="70062", beds=3, baths=2, price=100000),
            make_property(latitude=near[0], longitude=near[1], beds=1, baths=1, price=500000),
            make_property(address="Somewhere 70112", latitude=far[0], longitude=far[1], beds=6),
        ]

    def test_score_is_sum_of_bands_and_bounded(self, scorer, buyers, properties):
        for buyer in buyers:
            for prop in properties:
                result = scorer.score(buyer, prop)
                subtotal = (
                    result.location_score + result.beds_score + result.baths_score + result.budget_score
                )
                assert 0 <= result.score <= 100
                assert result.score == min(100, subtotal)
                assert 0 <= result.location_score <= 40
                assert 0 <= result.beds_score <= 25
                assert 0 <= result.baths_score <= 15
                assert 0 <= result.budget_score <= 20

    def test_identical_inputs_give_identical_results(self, scorer, buyers, properties):
        for buyer in buyers:
            for prop in properties:
                assert scorer.score(buyer, prop) == scorer.score(buyer, prop)

    def test_inputs_are_not_mutated(self, scorer, buyers, properties):
        before = [b.model_dump() for b in buyers], [p.model_dump() for p in properties]
        for buyer in buyers:
            for prop in properties:
                scorer.score(buyer, prop)
        after = [b.model_dump() for b in buyers], [p.model_dump() for p in properties]
        assert before == after


def test_far_distance_points_has_floor():
    assert far_distance_points(50.1) == 13
    assert far_distance_points(60) == 12
    assert far_distance_points(10_000) == 5


def test_format_number():
    assert format_number(3.0) == "3"
    assert format_number(2.5) == "2.5"
