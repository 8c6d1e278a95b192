"""Tests for logical street aggregation, unnamed buckets and name normalization."""

from __future__ import annotations

import pytest

from street_coverage.matching import (
    aggregate_matches,
    aggregate_streets,
    bucket_unnamed,
    normalize_street_name,
    normalize_street_name_strict,
    street_names_match,
)
from street_coverage.matching.aggregation import (
    completion_threshold_for_length,
    unnamed_label,
)
from street_coverage.models import CompletionStatus


def test_fragments_sum_into_one_street(matched_factory) -> None:
    segments = [
        matched_factory("w1", "Main Street", 100.0, 95.0),
        matched_factory("w2", "main  street ", 150.0, 140.0),
        matched_factory("w3", "Main Street", 120.0, 115.0),
    ]

    streets = aggregate_streets(segments)

    assert len(streets) == 1
    street = streets[0]
    assert street.total_length_m == 370.0
    assert street.total_distance_covered_m == 350.0
    assert street.segment_count == 3
    assert street.member_segment_ids == ["w1", "w2", "w3"]
    assert street.coverage_ratio == pytest.approx(0.946)
    assert street.completion_status is CompletionStatus.FULL
    assert street.display_name == "Main Street"


def test_same_name_different_road_type_stays_separate(matched_factory) -> None:
    segments = [
        matched_factory("w1", "Station Road", 200.0, 100.0, road_type="residential"),
        matched_factory("w2", "Station Road", 200.0, 100.0, road_type="primary"),
    ]
    assert len(aggregate_streets(segments)) == 2


def test_covered_distance_is_capped_at_length(matched_factory) -> None:
    segments = [
        matched_factory("w1", "Loop Road", 200.0, 260.0, status=CompletionStatus.FULL),
    ]

    street = aggregate_streets(segments)[0]

    assert street.total_distance_covered_m == 200.0
    assert street.total_distance_run_m == 260.0
    assert street.coverage_ratio == 1.0
    assert street.raw_coverage_ratio == pytest.approx(1.3)
    assert street.completion_status is CompletionStatus.FULL


def test_inflated_total_needs_every_member_full(matched_factory) -> None:
    segments = [
        matched_factory("w1", "Ridge Way", 150.0, 300.0, status=CompletionStatus.FULL),
        matched_factory("w2", "Ridge Way", 150.0, 20.0),
    ]

    street = aggregate_streets(segments)[0]

    assert street.raw_coverage_ratio > 1.0
    assert street.completion_status is CompletionStatus.PARTIAL


def test_short_street_requires_full_coverage(matched_factory) -> None:
    segments = [matched_factory("w1", "Tiny Mews", 80.0, 76.0)]
    street = aggregate_streets(segments)[0]
    assert street.coverage_ratio == pytest.approx(0.95)
    assert street.completion_status is CompletionStatus.PARTIAL


def test_streets_sorted_by_ratio_then_length(matched_factory) -> None:
    segments = [
        matched_factory("a", "Alpha Road", 200.0, 100.0),
        matched_factory("b", "Beta Road", 400.0, 200.0),
        matched_factory("c", "Gamma Road", 300.0, 290.0),
    ]
    assert [s.display_name for s in aggregate_streets(segments)] == [
        "Gamma Road",
        "Beta Road",
        "Alpha Road",
    ]


def test_unnamed_segments_never_form_streets(matched_factory) -> None:
    segments = [
        matched_factory("u1", None, 60.0, 50.0, road_type="footway"),
        matched_factory("u2", "Unnamed Road", 60.0, 50.0, road_type="footway"),
    ]
    result = aggregate_matches(segments)
    assert result.streets == []
    assert len(result.unnamed_buckets) == 1
    assert result.unnamed_buckets[0].segment_count == 2


def test_unnamed_bucket_filters_tiny_fragments(matched_factory) -> None:
    segments = [
        matched_factory("tiny", None, 20.0, 10.0, road_type="footway"),
        matched_factory("kept", None, 50.0, 25.0, road_type="footway"),
        matched_factory("short_but_run", None, 25.0, 24.0, road_type="footway"),
        matched_factory("track", "", 120.0, 120.0, road_type="track"),
    ]

    buckets = {b.road_type: b for b in bucket_unnamed(segments)}

    footway = buckets["footway"]
    assert footway.member_segment_ids == ["kept", "short_but_run"]
    assert footway.display_label == "Footpath (Unnamed)"
    assert footway.total_length_m == 75.0
    assert footway.full_count == 1
    assert footway.partial_count == 1
    assert buckets["track"].coverage_ratio == 1.0


def test_unnamed_label_fallback() -> None:
    assert unnamed_label("living_street") == "Living street (Unnamed)"
    assert unnamed_label("service") == "Service Road (Unnamed)"


@pytest.mark.parametrize(
    "length,expected", [(50.0, 1.0), (100.0, 1.0), (100.1, 0.9), (2000.0, 0.9)]
)
def test_completion_threshold_for_length(length, expected) -> None:
    assert completion_threshold_for_length(length) == expected


def test_normalize_street_name() -> None:
    assert normalize_street_name("  High   STREET ") == "high street"
    assert normalize_street_name(None) == ""


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Main St", "main street"),
        ("St John's Rd", "saint johns road"),
        ("The Avenue", "avenue"),
        ("Shoreditch High Street (A1202)", "shoreditch high street"),
        ("N. Park Ave.", "north park avenue"),
    ],
)
def test_normalize_street_name_strict(raw, expected) -> None:
    assert normalize_street_name_strict(raw) == expected


def test_strict_names_merge_abbreviated_fragments(matched_factory) -> None:
    segments = [
        matched_factory("w1", "Church Rd", 150.0, 150.0),
        matched_factory("w2", "Church Road", 150.0, 150.0),
    ]
    assert len(aggregate_streets(segments)) == 2
    assert len(aggregate_streets(segments, strict_names=True)) == 1


def test_street_names_match() -> None:
    assert street_names_match("St Mary's Rd", "Saint Marys Road")
    assert not street_names_match("Church Road", "Church Lane")
    assert not street_names_match(None, "Church Road")
