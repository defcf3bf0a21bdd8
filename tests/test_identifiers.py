"""Tests for OCR-tolerant identifier variants."""

from carrier_recon.identifiers.resolver import (
    CONFUSIONS,
    MAX_SIMULTANEOUS_CHANGES,
    StructuredIdPattern,
    combined_suffix_variants,
    find_structured_ids,
    single_substitutions,
    variants,
)


def _changed_positions(a: str, b: str) -> int:
    return sum(1 for x, y in zip(a, b) if x != y)


class TestStructuredIdPattern:
    """Tests for the prefix + fixed-length suffix pattern."""

    def setup_method(self) -> None:
        self.pattern = StructuredIdPattern()

    def test_matches_canonical(self) -> None:
        assert self.pattern.matches("ICAL-8K2Q0B")

    def test_matches_is_case_insensitive_on_prefix(self) -> None:
        assert self.pattern.matches("ical-8k2q0b")

    def test_rejects_wrong_length(self) -> None:
        assert not self.pattern.matches("ICAL-8K2")
        assert not self.pattern.matches("ICAL-8K2Q0B9")

    def test_rejects_other_prefix(self) -> None:
        assert not self.pattern.matches("XCAL-8K2Q0B")

    def test_rejects_non_alphanumeric_suffix(self) -> None:
        assert not self.pattern.matches("ICAL-8K2-0B")

    def test_custom_pattern(self) -> None:
        pattern = StructuredIdPattern(prefix="SHP", suffix_length=4)
        assert pattern.matches("SHP1234")
        assert not pattern.matches("ICAL-8K2Q0B")


class TestSingleSubstitutions:
    """Tests for one-position confusion swaps."""

    def test_zero_alternatives(self) -> None:
        result = single_substitutions("AB0")
        assert {"ABO", "ABQ", "ABD"} <= result

    def test_count_is_sum_of_alternatives(self) -> None:
        identifier = "1S08B"
        expected = sum(len(CONFUSIONS[ch]) - 1 for ch in identifier)

        result = single_substitutions(identifier)

        assert expected == 8
        assert len(result) == expected

    def test_excludes_original(self) -> None:
        assert "AB0" not in single_substitutions("AB0")

    def test_no_confusable_characters(self) -> None:
        assert single_substitutions("XYZ") == {"XY2"}

    def test_each_variant_differs_in_one_position(self) -> None:
        for variant in single_substitutions("1S08"):
            assert _changed_positions("1S08", variant) == 1


class TestCombinedSuffixVariants:
    """Tests for multi-position suffix variants."""

    def setup_method(self) -> None:
        self.pattern = StructuredIdPattern()

    def test_prefix_never_changes(self) -> None:
        for variant in combined_suffix_variants("ICAL-8K2Q0B", self.pattern):
            assert variant.startswith("ICAL-")

    def test_two_simultaneous_changes(self) -> None:
        result = combined_suffix_variants("ICAL-8K2Q0B", self.pattern)
        assert "ICAL-BK2QOB" in result
        assert "ICAL-BKZQ0B" in result

    def test_at_most_two_changes(self) -> None:
        for variant in combined_suffix_variants("ICAL-8S2Q0B", self.pattern):
            assert 1 <= _changed_positions("ICAL-8S2Q0B", variant) <= 2

    def test_max_changes_is_clamped(self) -> None:
        result = combined_suffix_variants("ICAL-8S2Q0B", self.pattern, max_changes=5)
        for variant in result:
            assert _changed_positions("ICAL-8S2Q0B", variant) <= MAX_SIMULTANEOUS_CHANGES

    def test_include_original(self) -> None:
        result = combined_suffix_variants(
            "ICAL-8K2Q0B", self.pattern, include_original=True
        )
        assert "ICAL-8K2Q0B" in result


class TestVariants:
    """Tests for the public variants() entry point."""

    def test_empty_identifier(self) -> None:
        assert variants("") == set()

    def test_excludes_original_by_default(self) -> None:
        assert "ABC0" not in variants("ABC0")

    def test_include_original(self) -> None:
        assert "ABC0" in variants("ABC0", include_original=True)

    def test_ocr_misread_recovers_original(self) -> None:
        assert "ICAL-8K2Q0B" in variants("ICAL-8K2QOB")

    def test_structured_id_gets_combined_variants(self) -> None:
        result = variants("ICAL-8K2Q0B")
        assert "ICAL-BK2QOB" in result

    def test_unstructured_id_gets_single_changes_only(self) -> None:
        for variant in variants("TRK-80"):
            assert _changed_positions("TRK-80", variant) == 1

    def test_deterministic(self) -> None:
        assert variants("ICAL-8K2Q0B") == variants("ICAL-8K2Q0B")


class TestFindStructuredIds:
    """Tests for scanning free text for structured ids."""

    def test_finds_id_in_text(self) -> None:
        assert find_structured_ids(["Ref: ICAL-8K2Q0B shipped"]) == ["ICAL-8K2Q0B"]

    def test_normalizes_misread_prefix(self) -> None:
        assert find_structured_ids(["see 1CAL-abc123"]) == ["ICAL-ABC123"]

    def test_deduplicates_in_order(self) -> None:
        result = find_structured_ids(
            ["ICAL-ZZZ999 and 1CAL-abc123", None, "ICAL-ABC123"]
        )
        assert result == ["ICAL-ZZZ999", "ICAL-ABC123"]

    def test_ignores_longer_tokens(self) -> None:
        assert find_structured_ids(["ICAL-ABC1234"]) == []

    def test_no_texts(self) -> None:
        assert find_structured_ids([None, ""]) == []
