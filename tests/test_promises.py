"""Tests for promise extraction, completion and enrichment."""

import pytest

from logic.promises import (
    analyze_completion,
    build_content_items,
    content_titles,
    enrich_promises,
    extract_promises,
    fallback_promises,
    merge_velocities,
    summarize_completion,
    velocity_level,
)


PLATFORM_MARKDOWN = """# Our Platform

## Freeze the Rent
We will freeze the rent for every rent-stabilized tenant in New York City.
Landlords have had enough increases.

## Fast and Free Buses
Every bus in the five boroughs will be fare-free.
"""


@pytest.fixture
def rent_promise():
    return {
        "id": "rent-freeze",
        "title": "Rent Freeze",
        "icon": "🏠",
        "keywordsFound": ["rent", "freeze", "housing"],
        "custom": "kept",
    }


class TestExtraction:

    def test_extracts_areas_present_on_page(self):
        promises = extract_promises(PLATFORM_MARKDOWN)
        ids = [p["id"] for p in promises]

        assert ids[:2] == ["housing", "transit"]
        housing = promises[0]
        assert housing["title"] == "Housing & Rent"
        assert "rent" in housing["keywordsFound"]
        assert "freeze" in housing["keywordsFound"]
        assert housing["excerpt"].startswith("## Freeze the Rent")
        assert "rent-stabilized tenant" in housing["excerpt"]
        assert housing["status"] == "active"

    def test_no_matches_uses_fallback(self):
        promises = extract_promises("nothing relevant here")
        assert [p["id"] for p in promises] == [p["id"] for p in fallback_promises()]
        assert len(promises) == 6

    def test_fallback_payload_shape(self):
        promise = fallback_promises()[0]
        assert promise["id"] == "rent-freeze"
        assert promise["keywordsFound"] == ["rent", "freeze", "housing"]


class TestCompletion:

    def test_no_evidence_is_low_confidence(self, rent_promise):
        result = analyze_completion(rent_promise, build_content_items([{"title": "Rent debate continues"}], []))
        assert result == {"status": "in_progress", "confidence": "low", "evidence": []}

    def test_single_phrase_is_in_progress(self, rent_promise):
        content = build_content_items([{"title": "Rent freeze plan announced today"}], [])
        result = analyze_completion(rent_promise, content)
        assert result["status"] == "in_progress"
        assert result["confidence"] == "medium"
        assert result["evidence"][0]["phrases"] == ["announced today"]

    def test_two_evidence_items_completed(self, rent_promise):
        content = build_content_items(
            [{"title": "Rent freeze approved", "source": "nytimes.com"}],
            [{"title": "Housing rollout begins", "source": "tiktok"}],
        )
        result = analyze_completion(rent_promise, content)
        assert result["status"] == "completed"
        assert result["confidence"] == "medium"
        assert len(result["evidence"]) == 2

    def test_many_phrases_high_confidence(self, rent_promise):
        content = build_content_items([{
            "title": "Rent freeze signed into law",
            "description": "The freeze is now in effect and officially enacted; goal met",
        }], [])
        result = analyze_completion(rent_promise, content)
        assert result["status"] == "completed"
        assert result["confidence"] == "high"

    def test_unrelated_content_ignored(self, rent_promise):
        content = build_content_items([{"title": "Subway line approved and launched"}], [])
        assert analyze_completion(rent_promise, content)["evidence"] == []

    def test_evidence_capped_at_three(self, rent_promise):
        content = build_content_items([{"title": f"Rent freeze approved {i}"} for i in range(5)], [])
        assert len(analyze_completion(rent_promise, content)["evidence"]) == 3

    def test_summary_partitions_promises(self, rent_promise):
        other = {"id": "fare-free", "title": "Fare-Free Buses", "keywordsFound": ["bus"]}
        news = [{"title": "Rent freeze approved"}, {"title": "Rent freeze enacted citywide"}]
        summary = summarize_completion([rent_promise, other], news, [], checked_at="2025-01-01T00:00:00.000Z")

        assert summary["completed"] == 1
        assert summary["total"] == 2
        assert summary["lastChecked"] == "2025-01-01T00:00:00.000Z"
        done = summary["completedPromises"][0]
        assert done["custom"] == "kept"
        assert done["completionStatus"] == "completed"
        assert summary["inProgressPromises"][0]["completionConfidence"] == "low"

    def test_summary_without_promises(self):
        summary = summarize_completion([], [], [], checked_at="x")
        assert summary == {"completed": 0, "total": 0, "completedPromises": [], "inProgressPromises": []}


class TestEnrichment:

    def test_matches_markets_by_slug_and_ticker(self, rent_promise):
        markets = [
            {"id": "1", "slug": "will-mamdani-freeze-nyc-rents-before-2027", "title": "Rent freeze?", "yesPrice": 0.3},
            {"id": "2", "slug": "unrelated", "title": "Fed cut?", "yesPrice": 0.5},
        ]
        kalshi = [{"id": "KXNYCRENTFREEZE-27JAN01", "slug": "KXNYCRENTFREEZE-27JAN01", "title": "Freeze?"}]

        enriched = enrich_promises([rent_promise], markets, kalshi, [], [])[0]

        assert [m["source"] for m in enriched["markets"]] == ["Polymarket", "Kalshi"]
        assert enriched["markets"][0]["yesPrice"] == 0.3
        assert enriched["custom"] == "kept"

    def test_velocity_from_matched_content(self, rent_promise):
        news = [{"title": f"Tenant story {i}", "url": f"https://x/{i}"} for i in range(4)]
        videos = [{"title": "Rent freeze explainer", "url": "https://v/1", "platform": "tiktok"},
                  {"title": "Cooking show"}]

        enriched = enrich_promises([rent_promise], [], [], news, videos)[0]

        assert enriched["velocity"] == {"level": "high", "matchCount": 5, "totalContent": 6}
        assert len(enriched["matchedContent"]["news"]) == 4
        assert enriched["matchedContent"]["videos"][0]["platform"] == "tiktok"

    def test_unknown_promise_uses_found_keywords(self):
        promise = {"id": "custom", "title": "Custom", "keywordsFound": ["library"]}
        news = [{"title": "Library hours extended"}]
        enriched = enrich_promises([promise], [], [], news, [])[0]
        assert enriched["velocity"]["matchCount"] == 1

    def test_content_window_is_twenty(self, rent_promise):
        news = [{"title": "rent"}] * 30
        enriched = enrich_promises([rent_promise], [], [], news, [])[0]
        assert enriched["velocity"]["totalContent"] == 20
        assert len(enriched["matchedContent"]["news"]) == 5

    @pytest.mark.parametrize("count,level", [(0, "low"), (1, "low"), (2, "medium"), (4, "medium"), (5, "high")])
    def test_velocity_level(self, count, level):
        assert velocity_level(count) == level

    def test_content_titles_skip_empty(self):
        assert content_titles([{"title": "A"}, {"title": ""}], [{"title": "B"}, {}]) == ["A", "B"]

    def test_merge_velocities_case_insensitive(self, rent_promise):
        enriched = enrich_promises([rent_promise], [], [], [], [])
        merged = merge_velocities(enriched, [{"promiseId": "RENT-FREEZE", "level": "high", "reason": "Busy week"}])

        assert merged[0]["velocity"]["level"] == "high"
        assert merged[0]["velocity"]["reason"] == "Busy week"
        assert merged[0]["velocity"]["matchCount"] == 0

    def test_merge_leaves_unrated_promises(self, rent_promise):
        enriched = enrich_promises([rent_promise], [], [], [], [])
        assert merge_velocities(enriched, [{"promiseId": "other", "level": "high"}]) == enriched
