"""Tests for the rejection taxonomy and retryability rules."""

import pytest

from kisheka.domain.enums import RejectionPriority
from kisheka.domain.rejection_reasons import (
    REJECTION_KEYWORDS,
    REJECTION_REASONS,
    assess_retryability,
    format_rejection_reason,
    get_priority_value,
    get_subcategory_label,
)


class TestTaxonomy:
    def test_every_keyword_bucket_is_a_category(self):
        assert set(REJECTION_KEYWORDS) <= set(REJECTION_REASONS)

    def test_keyword_subcategories_exist_in_category(self):
        for reason_id, bucket in REJECTION_KEYWORDS.items():
            known = set(REJECTION_REASONS[reason_id].subcategories.values())
            assert set(bucket["subcategories"]) <= known, reason_id


class TestAssessRetryability:
    @pytest.mark.parametrize("reason,retryable", [
        ("price_too_high", True),
        ("unavailable", False),
        ("timeline", True),
        ("specifications", True),
        ("quantity", True),
        ("business_policy", False),
        ("external_factors", True),
        ("other", True),
    ])
    def test_category_rules(self, reason, retryable):
        assert assess_retryability(reason).retryable is retryable

    def test_assessment_carries_priority_and_label(self):
        assessment = assess_retryability("unavailable", "out_of_stock")
        assert assessment.priority == RejectionPriority.CRITICAL
        assert assessment.reason_category == "Material Unavailable"
        assert assessment.confidence == 0.9

    @pytest.mark.parametrize("reason", [None, "", "weather"])
    def test_unknown_reason_needs_manual_review(self, reason):
        assessment = assess_retryability(reason)
        assert assessment.retryable is False
        assert assessment.recommendation == "Unknown reason - manual review required"
        assert assessment.to_dict()["priority"] is None


class TestFormatting:
    def test_with_subcategory(self):
        assert format_rejection_reason("unavailable", "out_of_stock") == "Material Unavailable: Out Of Stock"

    def test_subcategory_from_other_bucket_ignored(self):
        assert format_rejection_reason("price_too_high", "out_of_stock") == "Price Too High"

    def test_unknown(self):
        assert format_rejection_reason("nope") == "Unknown Reason"

    def test_subcategory_label(self):
        assert get_subcategory_label("timeline", "staff_shortage") == "Staff Shortage"
        assert get_subcategory_label("timeline", None) is None


class TestPriorityValue:
    @pytest.mark.parametrize("priority,value", [
        (RejectionPriority.CRITICAL, 5),
        ("high", 4),
        ("medium", 3),
        (RejectionPriority.LOW, 2),
        ("variable", 1),
        ("bogus", 1),
        (None, 1),
    ])
    def test_values(self, priority, value):
        assert get_priority_value(priority) == value
