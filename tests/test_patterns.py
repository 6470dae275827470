"""
Tests for deterministic pattern rules.

Tests cover:
1. Rule ordering for known specific/general conflicts
2. Field-id and label rules
3. Option-list signatures
4. Platform and company detection
"""

import pytest

from field_cascade.classify.patterns import (
    FIELD_ID_RULES,
    GLOBAL_LABEL_RULES,
    KNOWN_CONFLICTS,
    QUESTION_TEXT_RULES,
    RuleList,
    detect_platform,
    extract_company,
    find_order_violations,
    match_options,
)
from field_cascade.classify.taxonomy import FIELD_TYPES, is_generic_label

RULE_LISTS = {
    "field_id": FIELD_ID_RULES,
    "global_label": GLOBAL_LABEL_RULES,
    "question_text": QUESTION_TEXT_RULES,
}


class TestRuleOrdering:
    """Specific rules must precede general rules sharing a substring."""

    @pytest.mark.parametrize("name", sorted(KNOWN_CONFLICTS))
    def test_no_order_violations(self, name):
        """Every known conflict resolves to its specific type."""
        assert find_order_violations(RULE_LISTS[name], KNOWN_CONFLICTS[name]) == []

    def test_misordered_list_is_reported(self):
        """A general rule ahead of a specific one is caught."""
        rules = RuleList("demo", [
            (r"phone", "phone_number"),
            (r"phone\s*extension", "phone_extension"),
        ])
        violations = find_order_violations(rules, [("Phone Extension", "phone_extension")])
        assert len(violations) == 1
        assert "phone_number" in violations[0]

    @pytest.mark.parametrize("rules", list(RULE_LISTS.values()), ids=list(RULE_LISTS))
    def test_rules_emit_taxonomy_types(self, rules):
        """No rule produces a token outside the taxonomy."""
        assert all(rule.field_type in FIELD_TYPES for rule in rules.rules)


class TestFieldIdRules:
    """Tests for stable-identifier rules."""

    def test_extension_before_number(self):
        """The extension id shares the phone number prefix."""
        assert FIELD_ID_RULES.match("phoneNumber--phoneNumber--extension").field_type == "phone_extension"
        assert FIELD_ID_RULES.match("phoneNumber--phoneNumber").field_type == "phone_number"

    def test_first_name(self):
        """Legal name ids map to name parts."""
        match = FIELD_ID_RULES.match("legalName--firstName")
        assert match.field_type == "first_name"
        assert match.rule == "legalName--firstName"

    def test_empty_id(self):
        """No id, no match."""
        assert FIELD_ID_RULES.match(None) is None
        assert FIELD_ID_RULES.match("") is None


class TestOptionSignatures:
    """Tests for match_options."""

    def test_yes_no_never_resolves(self):
        """A plain Yes/No list carries no meaning by itself."""
        assert match_options(["Yes", "No"]) is None
        assert match_options(["No", "Yes "]) is None

    def test_gender_options(self):
        """Two gender keywords identify the field."""
        match = match_options(["Male", "Female", "Decline to self-identify"])
        assert match.field_type == "gender"
        assert match.rule.startswith("options:")

    def test_keyword_inside_another_word(self):
        """A lone Female option does not also count as male."""
        assert match_options(["Female", "Prefer not to say"]) is None
        match = match_options(["Male", "Female"])
        assert match.field_type == "gender"
        assert match.rule == "options:male,female"

    def test_degree_options(self):
        """Degree level lists are recognized."""
        match = match_options(["High School", "Bachelor's Degree", "Master's Degree"])
        assert match.field_type == "degree"

    def test_no_options(self):
        """Text inputs have no options."""
        assert match_options([]) is None


class TestPlatform:
    """Tests for URL-based platform detection."""

    def test_workday(self):
        """Workday host yields platform and company slug."""
        url = "https://acme.wd5.myworkdayjobs.com/en-US/careers/job/123/apply"
        assert detect_platform(url) == "workday"
        assert extract_company(url) == "acme"

    def test_unknown(self):
        """Missing or unrecognized URLs are unknown."""
        assert detect_platform(None) == "unknown"
        assert detect_platform("https://example.com/apply") == "unknown"
        assert extract_company("https://example.com/apply") == "unknown"


class TestGenericLabels:
    """Tests for is_generic_label."""

    @pytest.mark.parametrize("label", ["Select One", "select one*", "Choose:", "", None, " Yes "])
    def test_generic(self, label):
        """Placeholder labels are generic."""
        assert is_generic_label(label) is True

    def test_specific(self):
        """A real question is not generic."""
        assert is_generic_label("Do you require sponsorship?") is False
