"""Tests for snapshot fingerprinting and change detection."""

import pytest

from rivalscope.detection.detector import (
    ChangeDetector,
    PriceChangeDetector,
    WordCountDetector,
    count_keyword_lines,
    extract_prices,
)
from rivalscope.detection.hashing import ContentHasher
from rivalscope.detection.types import ChangeKind, Severity
from rivalscope.storage.memory import InMemorySnapshotStore

from .factories import make_snapshot


class TestContentHasher:
    """Fingerprints change with any visible text change."""

    def test_identical_content_same_fingerprint(self):
        hasher = ContentHasher()
        assert hasher.fingerprint("Plans from $10") == hasher.fingerprint("Plans from $10")

    def test_small_edit_changes_fingerprint(self):
        hasher = ContentHasher()
        assert hasher.fingerprint("Plans from $10") != hasher.fingerprint("Plans from $12")

    def test_line_endings_are_normalized(self):
        hasher = ContentHasher()
        assert hasher.fingerprint("a\r\nb") == hasher.fingerprint("a\nb")

    def test_blake3_supported(self):
        assert len(ContentHasher("blake3").fingerprint("hello")) == 64

    def test_unknown_algorithm_rejected(self):
        with pytest.raises(ValueError):
            ContentHasher("md5")


class TestHelpers:
    def test_extract_prices_distinct_in_order(self):
        text = "Basic $10/mo, Pro $29.99, Team €1,200. Basic again $10."
        assert extract_prices(text) == ["$10", "$29.99", "€1,200"]

    def test_count_keyword_lines_counts_once_per_keyword_per_line(self):
        text = "New blog post\nAnother blog\nnothing here"
        assert count_keyword_lines(text, ("blog",)) == 2
        assert count_keyword_lines(text, ("blog", "post")) == 3

    def test_keyword_match_is_whole_word(self):
        assert count_keyword_lines("blogging tips", ("blog",)) == 0


class TestChangeDetector:
    """Heuristic comparison of consecutive snapshots."""

    def test_no_previous_snapshot_yields_nothing(self):
        detector = ChangeDetector()
        assert detector.compare(None, make_snapshot("Pro $10")) == []

    def test_equal_fingerprints_yield_nothing(self):
        detector = ChangeDetector()
        previous = make_snapshot("Pro $10", title="Pricing")
        current = make_snapshot("Pro $10", title="Pricing")
        assert detector.compare(previous, current) == []

    def test_equal_fingerprints_ignore_metadata_noise(self):
        detector = ChangeDetector()
        previous = make_snapshot("Plans start at $29/mo", title="Pricing")
        current = make_snapshot("Plans start at $29/mo", title="Pricing | Rival")
        assert detector.compare(previous, current) == []

    def test_single_price_swap(self):
        detector = ChangeDetector()
        records = detector.compare(
            make_snapshot("Team plan $29 per seat"), make_snapshot("Team plan $39 per seat")
        )

        prices = [r for r in records if r.kind == ChangeKind.PRICE_CHANGE]
        assert len(prices) == 1
        assert (prices[0].old_value, prices[0].new_value) == ("$29", "$39")
        assert prices[0].severity == Severity.HIGH

    def test_price_change(self):
        detector = ChangeDetector(detectors=[PriceChangeDetector()])
        records = detector.compare(make_snapshot("Pro $10"), make_snapshot("Pro $12"))

        assert len(records) == 1
        record = records[0]
        assert record.kind == ChangeKind.PRICE_CHANGE
        assert record.severity == Severity.HIGH
        assert record.title == "Pricing Updated"
        assert record.old_value == "$10"
        assert record.new_value == "$12"
        assert "1 new prices, 1 removed prices" in record.description

    def test_title_change(self):
        detector = ChangeDetector()
        records = detector.compare(
            make_snapshot("same words", title="Pricing"),
            make_snapshot("same words!", title="Plans & Pricing"),
        )

        titles = [r for r in records if r.title == "Page Title Changed"]
        assert len(titles) == 1
        assert titles[0].severity == Severity.MEDIUM
        assert titles[0].old_value == "Pricing"
        assert titles[0].new_value == "Plans & Pricing"

    @pytest.mark.parametrize("old_title", [None, ""])
    def test_missing_title_is_not_a_change(self, old_title):
        detector = ChangeDetector()
        records = detector.compare(
            make_snapshot("same words", title=old_title),
            make_snapshot("same words!", title="Pricing"),
        )
        assert all(r.title != "Page Title Changed" for r in records)

    def test_pricing_page_update(self):
        detector = ChangeDetector()
        previous = make_snapshot("Plans start at $29/mo", title="Pricing")
        current = make_snapshot(
            "Plans start at $39/mo. New: API access launch!", title="Pricing - Updated"
        )

        records = detector.compare(previous, current)

        assert {r.kind for r in records} == {
            ChangeKind.PRICE_CHANGE,
            ChangeKind.CONTENT_UPDATE,
            ChangeKind.FEATURE_ANNOUNCEMENT,
        }
        by_kind = {r.kind: r for r in records}
        assert by_kind[ChangeKind.PRICE_CHANGE].severity == Severity.HIGH
        assert by_kind[ChangeKind.CONTENT_UPDATE].severity == Severity.MEDIUM
        assert by_kind[ChangeKind.CONTENT_UPDATE].new_value == "Pricing - Updated"

    @pytest.mark.parametrize(
        "added,expected",
        [(40, None), (51, Severity.MEDIUM), (201, Severity.HIGH)],
    )
    def test_word_count_thresholds(self, added, expected):
        detector = ChangeDetector(detectors=[WordCountDetector(50, 200)])
        base = "word " * 100
        records = detector.compare(make_snapshot(base), make_snapshot(base + "extra " * added))

        if expected is None:
            assert records == []
        else:
            assert len(records) == 1
            assert records[0].severity == expected
            assert records[0].description == f"Approximately {added} words added."

    def test_word_removal_reports_direction(self):
        detector = ChangeDetector(detectors=[WordCountDetector()])
        records = detector.compare(make_snapshot("word " * 300), make_snapshot("word " * 200))
        assert records[0].description == "Approximately 100 words removed."

    def test_new_blog_post(self):
        detector = ChangeDetector()
        previous = make_snapshot("Our blog\nFirst article")
        current = make_snapshot("Our blog\nFirst article\nSecond article")

        records = detector.compare(previous, current)
        editorial = [r for r in records if r.kind == ChangeKind.NEW_BLOG_POST]
        assert len(editorial) == 1
        assert editorial[0].description == "1 new blog posts or articles detected."
        assert editorial[0].severity == Severity.MEDIUM

    def test_feature_announcement(self):
        detector = ChangeDetector()
        previous = make_snapshot("Product overview")
        current = make_snapshot("Product overview\nLaunch of a brand new feature")

        records = detector.compare(previous, current)
        features = [r for r in records if r.kind == ChangeKind.FEATURE_ANNOUNCEMENT]
        assert len(features) == 1
        assert features[0].severity == Severity.HIGH
        assert features[0].title == "New Feature Detected"

    def test_multiple_detectors_fire_together(self):
        detector = ChangeDetector()
        previous = make_snapshot("Pro $10\nBlog")
        current = make_snapshot("Pro $15\nBlog\nNew article on the blog")

        kinds = {r.kind for r in detector.compare(previous, current)}
        assert ChangeKind.PRICE_CHANGE in kinds
        assert ChangeKind.NEW_BLOG_POST in kinds

    def test_failing_subdetector_does_not_stop_others(self):
        class Broken:
            name = "broken"

            def detect(self, previous, current):
                raise ValueError("boom")

        detector = ChangeDetector(detectors=[Broken(), PriceChangeDetector()])
        records = detector.compare(make_snapshot("$1"), make_snapshot("$2"))
        assert [r.kind for r in records] == [ChangeKind.PRICE_CHANGE]

    def test_records_are_bound_to_target_and_url(self):
        detector = ChangeDetector(detectors=[PriceChangeDetector()])
        current = make_snapshot("$2", url="https://rival.example/plans")
        current.id = "snap-2"

        record = detector.compare(make_snapshot("$1"), current, target_id="t9")[0]
        assert record.target_id == "t9"
        assert record.snapshot_id == "snap-2"
        assert record.url == "https://rival.example/plans"

    async def test_detect_compares_with_latest_prior_snapshot(self):
        store = InMemorySnapshotStore()
        detector = ChangeDetector(store=store, detectors=[PriceChangeDetector()])

        first = await store.add_snapshot(make_snapshot("Pro $10"))
        assert await detector.detect("t1", first) == []

        second = await store.add_snapshot(make_snapshot("Pro $12"))
        records = await detector.detect("t1", second)
        assert len(records) == 1
        assert records[0].snapshot_id == second.id

    async def test_detect_requires_store(self):
        with pytest.raises(RuntimeError):
            await ChangeDetector().detect("t1", make_snapshot("x"))
