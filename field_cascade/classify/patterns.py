"""
Deterministic pattern matchers.

Ordered rule lists over a field's stable identifier, visible label, page
question text and option list. The first matching rule wins: there is no
scoring and no tie-breaking, so more specific rules MUST precede more
general ones that share a substring. KNOWN_CONFLICTS records the pairs
that depend on this ordering and find_order_violations() checks them.

Usage:
    match = FIELD_ID_RULES.match("legalName--firstName")
    if match:
        print(match.field_type, match.rule)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """Single regex rule mapping matching text to a field type."""
    pattern: str
    field_type: str

    def __post_init__(self):
        object.__setattr__(self, "_regex", re.compile(self.pattern, re.IGNORECASE))

    def matches(self, text: str) -> bool:
        return bool(self._regex.search(text))


@dataclass(frozen=True)
class RuleMatch:
    """A successful rule match."""
    field_type: str
    rule: str


class RuleList:
    """Ordered list of rules; first match wins."""

    def __init__(self, name: str, rules: Sequence[tuple[str, str]]):
        self.name = name
        self.rules = [Rule(pattern, field_type) for pattern, field_type in rules]

    def match(self, text: Optional[str]) -> Optional[RuleMatch]:
        if not text:
            return None
        for rule in self.rules:
            if rule.matches(text):
                return RuleMatch(field_type=rule.field_type, rule=rule.pattern)
        return None

    def __len__(self) -> int:
        return len(self.rules)

    def __repr__(self) -> str:
        return f"RuleList({self.name!r}, {len(self.rules)} rules)"


# =============================================================================
# Stable identifier rules (Tier 1, platform independent)
# =============================================================================

FIELD_ID_RULES = RuleList("field_id", [
    # Phone (extension before number)
    (r"--extension$", "phone_extension"),
    (r"phoneNumber--phoneNumber", "phone_number"),
    (r"countryPhoneCode", "country_phone_code"),
    (r"phoneType", "phone_type"),
    # Address
    (r"countryRegion", "state"),
    (r"legalName--firstName", "first_name"),
    (r"legalName--lastName", "last_name"),
    (r"legalName--middleName", "middle_name"),
    (r"address--addressLine1", "address_line_1"),
    (r"address--addressLine2", "address_line_2"),
    (r"address--city", "city"),
    (r"address--postalCode", "postal_code"),
    # Education (field of study before school)
    (r"--fieldOfStudy$", "field_of_study"),
    (r"--school$", "school"),
    (r"--degree$", "degree"),
    # Employment
    (r"candidateIsPreviousWorker", "previously_employed"),
    # EEO
    (r"hispanicOrLatino", "hispanic_latino"),
    (r"--gender$", "gender"),
    (r"veteranStatus", "veteran_status"),
    (r"ethnicityMulti", "race_ethnicity"),
    (r"--ethnicity$", "race_ethnicity"),
    # Self-identification
    (r"selfIdentifiedDisabilityData--name$", "full_name"),
    (r"disabilityStatus", "disability_status"),
    (r"employeeId", "employee_id"),
    (r"dateSignedOn", "signature_date"),
    # Other
    (r"source--source", "referral_source"),
    (r"skills", "skills"),
    (r"acceptTerms", "terms_agreement"),
])


# =============================================================================
# Global label rules (cache level 1, apply on every platform)
# =============================================================================

GLOBAL_LABEL_RULES = RuleList("global_label", [
    # Name
    (r"^first\s*name\*?$", "first_name"),
    (r"^last\s*name\*?$", "last_name"),
    (r"^middle\s*name\*?$", "middle_name"),
    (r"^name\*?$", "full_name"),
    (r"^email\s*(address)?\*?$", "email"),
    # Address
    (r"^address\s*line\s*1\*?$", "address_line_1"),
    (r"^street\s*address\*?$", "address_line_1"),
    (r"^address\s*line\s*2", "address_line_2"),
    (r"^city\*?$", "city"),
    (r"^state\s", "state"),
    (r"^postal\s*code\*?$", "postal_code"),
    (r"^zip\s*code", "postal_code"),
    # Phone (extension and country code before the general phone rule)
    (r"phone\s*extension", "phone_extension"),
    (r"^country\s*phone\s*code", "country_phone_code"),
    (r"^(phone|mobile|telephone)\b", "phone_number"),
    # Education (field of study before the general school rule)
    (r"field\s*of\s*study", "field_of_study"),
    (r"^degree\s", "degree"),
    (r"^(school|university|college)\b", "school"),
    # Documents
    (r"resume.*upload|upload.*resume", "resume_upload"),
    (r"^resume/cv", "resume_upload"),
    (r"cover\s*letter", "cover_letter_upload"),
    (r"linkedin", "linkedin"),
    # EEO
    (r"^gender\s", "gender"),
    (r"^hispanic\s*(or|/)\s*latino\*?$", "hispanic_latino"),
    (r"^race.*ethnicity\*?$", "race_ethnicity"),
    (r"^veteran", "veteran_status"),
    # Other
    (r"how\s*did\s*you\s*hear", "referral_source"),
    (r"accept.*terms|terms.*conditions", "terms_agreement"),
])


# =============================================================================
# Platform-specific identifier rules (cache level 2)
# =============================================================================

PLATFORM_ID_RULES = {
    "workday": RuleList("workday_id", [
        (r"--extension$", "phone_extension"),
        (r"phoneNumber--phoneNumber", "phone_number"),
        (r"countryPhoneCode", "country_phone_code"),
        (r"phoneType", "phone_type"),
        (r"countryRegion", "state"),
        (r"legalName--firstName", "first_name"),
        (r"legalName--lastName", "last_name"),
        (r"legalName--middleName", "middle_name"),
        (r"address--addressLine1", "address_line_1"),
        (r"address--addressLine2", "address_line_2"),
        (r"address--city", "city"),
        (r"address--postalCode", "postal_code"),
        (r"candidateIsPreviousWorker", "previously_employed"),
        (r"--fieldOfStudy$", "field_of_study"),
        (r"--school$", "school"),
        (r"--degree$", "degree"),
        (r"hispanicOrLatino", "hispanic_latino"),
        (r"--gender$", "gender"),
        (r"veteranStatus", "veteran_status"),
        (r"ethnicityMulti", "race_ethnicity"),
        (r"--ethnicity$", "race_ethnicity"),
        (r"selfIdentifiedDisabilityData--name$", "full_name"),
        (r"selfIdentifiedDisabilityData--employeeId", "employee_id"),
        (r"selfIdentifiedDisabilityData--disabilityStatus", "disability_status"),
        (r"dateSignedOn", "signature_date"),
        (r"acceptTermsAndAgreements", "terms_agreement"),
        (r"^source--source", "referral_source"),
        (r"skills", "skills"),
    ]),
    "taleo": RuleList("taleo_id", [
        (r"firstName", "first_name"),
        (r"lastName", "last_name"),
    ]),
    "icims": RuleList("icims_id", [
        (r"firstName", "first_name"),
        (r"lastName", "last_name"),
    ]),
}


# =============================================================================
# Question text rules (cache level 3)
# =============================================================================

QUESTION_TEXT_RULES = RuleList("question_text", [
    # Work authorization (indefinite before sponsorship before plain authorization)
    (r"authorized.*work.*indefinite", "work_authorization_indefinite"),
    (r"indefinite\s*basis", "work_authorization_indefinite"),
    (r"will\s*you.*need.*sponsor", "visa_sponsorship"),
    (r"need.*sponsor", "visa_sponsorship"),
    (r"require.*sponsor", "visa_sponsorship"),
    (r"sponsored\s*for.*work\s*visa", "visa_sponsorship"),
    (r"authorized\s*to\s*work.*united\s*states", "work_authorization"),
    (r"legally.*authorized.*work", "work_authorization"),
    # Citizenship
    (r"are you.*u\.?s\.?\s*citizen", "citizenship_status"),
    (r"citizen.*permanent\s*resident.*protected", "citizenship_status"),
    (r"u\.?s\.?\s*citizen.*permanent\s*resident", "citizenship_status"),
    (r"permanent\s*resident.*another\s*country", "foreign_permanent_resident"),
    # Restricted countries
    (r"citizen.*cuba.*iran.*north\s*korea.*syria", "restricted_country_citizen"),
    (r"citizen.*group\s*d", "group_d_country_citizen"),
    (r"countries.*cuba.*iran", "restricted_country_citizen"),
    (r"please\s*add\s*your\s*country\s*of\s*citizenship", "citizenship_country_text"),
    # Age
    (r"at\s*least\s*18\s*years?\s*old", "age_verification"),
    (r"are\s*you\s*18", "age_verification"),
    # Employment history
    (r"previously.*employed", "previously_employed"),
    (r"employed.*before", "previously_employed"),
    (r"have\s*you.*worked\s*for", "previously_employed"),
    (r"relatives?.*working\s*at", "relative_at_company"),
    (r"do\s*you.*have\s*relatives", "relative_at_company"),
    (r"policy.*employment\s*of\s*relatives", "relative_at_company"),
    (r"commitment.*another.*organization", "other_commitments"),
    (r"commitments.*might.*conflict", "other_commitments"),
    (r"non-?compete", "restrictive_agreement"),
    (r"restrictive.*agreement", "restrictive_agreement"),
    (r"bound.*agreement", "restrictive_agreement"),
    # Consent
    (r"artificial\s*intelligence.*recruit", "ai_recruitment_consent"),
    (r"additional.*future.*job", "future_opportunities_consent"),
    (r"consider\s*you\s*for\s*additional", "future_opportunities_consent"),
    # Misc
    (r"work\s*permit.*under\s*18", "minor_work_permit"),
    (r"please\s*check\s*one.*boxes.*below", "disability_status"),
    (r"voluntary.*self.*identification.*disability", "disability_status"),
])


# =============================================================================
# Rule-order conflicts
# =============================================================================
# Each entry is text that matches BOTH a specific and a general rule in the
# named list, paired with the type the specific rule must produce.

KNOWN_CONFLICTS = {
    "field_id": [
        ("phoneNumber--phoneNumber--extension", "phone_extension"),
    ],
    "global_label": [
        ("Phone Extension", "phone_extension"),
        ("Mobile Phone Extension", "phone_extension"),
        ("School Field of Study", "field_of_study"),
    ],
    "question_text": [
        ("are you legally authorized to work in the united states on an indefinite basis",
         "work_authorization_indefinite"),
        ("are you authorized to work in the united states or will you need sponsorship",
         "visa_sponsorship"),
    ],
}


def find_order_violations(
    rules: RuleList,
    conflicts: Sequence[tuple[str, str]],
) -> list[str]:
    """
    Check that each conflicting text resolves to its specific type.

    Returns:
        Human-readable violations (empty when the ordering holds)
    """
    violations = []
    for text, expected in conflicts:
        match = rules.match(text)
        got = match.field_type if match else None
        if got != expected:
            violations.append(f"{rules.name}: {text!r} -> {got} (expected {expected})")
    return violations


# =============================================================================
# Option-list signatures
# =============================================================================

@dataclass(frozen=True)
class OptionSignature:
    """Keywords that identify a field by its option labels."""
    field_type: str
    keywords: tuple[str, ...]
    min_matches: int


OPTION_SIGNATURES = [
    OptionSignature("gender", ("male", "female", "non-binary", "decline to self-identify"), 2),
    OptionSignature("veteran_status", ("veteran", "not a veteran", "protected veteran", "i am not a veteran"), 1),
    OptionSignature("race_ethnicity", ("asian", "black", "african american", "white", "pacific islander", "native american"), 2),
    OptionSignature("hispanic_latino", ("hispanic", "latino", "not hispanic"), 1),
    OptionSignature("disability_status", ("disability", "no disability", "have a disability", "do not wish"), 1),
    OptionSignature("degree", ("bachelor", "master", "doctorate", "phd", "associate", "high school"), 2),
    OptionSignature("state", ("alabama", "alaska", "arizona", "california", "colorado", "florida", "georgia", "oregon"), 5),
]


def _has_phrase(phrase: str, text: str) -> bool:
    """Whole-word match, so "male" is not found inside "female"."""
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def match_options(options: Sequence[str]) -> Optional[RuleMatch]:
    """
    Infer a field type from its option labels.

    A plain two-option Yes/No list never resolves a type: its meaning has to
    come from another signal.
    """
    if not options:
        return None

    labels = [o.strip().lower() for o in options if o]
    if sorted(labels) == ["no", "yes"]:
        return None

    for signature in OPTION_SIGNATURES:
        matched = [k for k in signature.keywords if any(_has_phrase(k, label) for label in labels)]
        if len(matched) >= signature.min_matches:
            return RuleMatch(
                field_type=signature.field_type,
                rule="options:" + ",".join(matched),
            )
    return None


# =============================================================================
# Platform detection
# =============================================================================

def detect_platform(url: Optional[str]) -> str:
    """Detect the applicant tracking system from a page URL."""
    if not url:
        return "unknown"
    url_lower = url.lower()

    if "myworkdayjobs.com" in url_lower or "workday.com" in url_lower:
        return "workday"
    if "taleo.net" in url_lower or "taleo.com" in url_lower:
        return "taleo"
    if "icims.com" in url_lower:
        return "icims"
    if "successfactors" in url_lower:
        return "successfactors"
    if "greenhouse.io" in url_lower:
        return "greenhouse"
    if "lever.co" in url_lower:
        return "lever"
    return "unknown"


_WORKDAY_HOST = re.compile(r"^([^.]+)\.wd\d*\.myworkdayjobs\.com")
_TALEO_HOST = re.compile(r"^([^.]+)\.taleo\.net")


def extract_company(url: Optional[str]) -> str:
    """Company slug from a Workday or Taleo host name."""
    if not url:
        return "unknown"

    hostname = (urlparse(url).hostname or "").lower()
    for pattern in (_WORKDAY_HOST, _TALEO_HOST):
        match = pattern.match(hostname)
        if match:
            return match.group(1)
    return "unknown"
