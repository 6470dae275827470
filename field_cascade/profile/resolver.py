"""
Profile answer resolution.

Maps a field type to the user's answer for it. The mapping is a table of
small resolver functions built once; every key is checked against the
taxonomy when the resolver is constructed, so a typo in a type token fails
loudly instead of silently resolving nothing.

Profile layout (JSON):
    personal, address, workAuth, employment, additional,
    education, documents, eeo, referral
"""

import json
import logging
import re
from datetime import date
from pathlib import Path
from typing import Any, Callable, Optional

from ..classify.models import FieldDescriptor
from ..classify.taxonomy import is_known_type

logger = logging.getLogger(__name__)

Resolver = Callable[[dict, Optional[FieldDescriptor]], Any]


def load_profile(path: str | Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _get(section: str, key: str, default: Any = None) -> Resolver:
    def resolve(profile: dict, descriptor: Optional[FieldDescriptor]) -> Any:
        value = (profile.get(section) or {}).get(key)
        return default if value in (None, "") else value
    return resolve


def _yes_no(section: str, key: str, default: bool = False) -> Resolver:
    def resolve(profile: dict, descriptor: Optional[FieldDescriptor]) -> str:
        value = (profile.get(section) or {}).get(key)
        if value is None:
            value = default
        return "Yes" if value else "No"
    return resolve


def _constant(value: Any) -> Resolver:
    return lambda profile, descriptor: value


def _full_name(profile: dict, descriptor: Optional[FieldDescriptor]) -> str:
    personal = profile.get("personal") or {}
    return f"{personal.get('firstName') or ''} {personal.get('lastName') or ''}".strip()


def _phone_digits(profile: dict, descriptor: Optional[FieldDescriptor]) -> str:
    return re.sub(r"\D", "", (profile.get("personal") or {}).get("phone") or "")


def _over_18(profile: dict, descriptor: Optional[FieldDescriptor]) -> str:
    return "No" if (profile.get("additional") or {}).get("over18") is False else "Yes"


def signature_date(today: date, label: str = "") -> str:
    """Today's date, or just its month/day/year part when the label asks for one."""
    label = label.strip().lower()
    if "month" in label or label == "mm":
        return str(today.month)
    if "day" in label or label == "dd":
        return str(today.day)
    if "year" in label or label == "yyyy":
        return str(today.year)
    return f"{today.month}/{today.day}/{today.year}"


DEFAULT_RESOLVERS: dict[str, Resolver] = {
    # Personal
    "first_name": _get("personal", "firstName"),
    "last_name": _get("personal", "lastName"),
    "middle_name": _get("personal", "middleName", ""),
    "full_name": _full_name,
    "preferred_name": _get("personal", "preferredName", ""),
    "email": _get("personal", "email"),

    # Phone
    "phone_number": _phone_digits,
    "country_phone_code": _get("personal", "countryPhoneCode", "+1"),
    "phone_extension": _constant(""),
    "phone_type": _get("personal", "phoneType", "Mobile"),

    # Address
    "address_line_1": _get("address", "line1"),
    "address_line_2": _get("address", "line2", ""),
    "city": _get("address", "city"),
    "state": _get("address", "state"),
    "postal_code": _get("address", "zipCode"),
    "country": _get("address", "country", "United States of America"),

    # Work authorization
    "work_authorization": _yes_no("workAuth", "authorizedToWork"),
    "work_authorization_indefinite": _yes_no("workAuth", "isUSCitizenOrPR"),
    "visa_sponsorship": _yes_no("workAuth", "requiresSponsorship"),
    "citizenship_status": _yes_no("workAuth", "isUSCitizenOrPR"),
    "citizenship_country_text": _get("personal", "citizenship"),
    "restricted_country_citizen": _yes_no("additional", "isRestrictedCountryCitizen"),
    "group_d_country_citizen": _yes_no("additional", "isRestrictedCountryCitizen"),
    "foreign_permanent_resident": _constant("No"),
    "current_visa_status": _get("workAuth", "visaStatus"),
    "j1_j2_visa_history": _yes_no("workAuth", "hadJ1J2Visa"),

    # Employment
    "previously_employed": _yes_no("additional", "previouslyEmployed"),
    "current_employee": _constant("No"),
    "relative_at_company": _yes_no("additional", "hasRelativeAtCompany"),
    "other_commitments": _yes_no("additional", "hasOtherCommitments"),
    "restrictive_agreement": _yes_no("additional", "hasRestrictiveAgreement"),
    "desired_salary": _get("employment", "desiredSalary", ""),
    "available_start_date": _get("employment", "availableStartDate", ""),
    "years_of_experience": _get("employment", "yearsOfExperience", ""),

    # Education
    "school": _get("education", "school"),
    "degree": _get("education", "degree"),
    "field_of_study": _get("education", "fieldOfStudy"),
    "graduation_year": _get("education", "graduationYear"),
    "gpa": _get("education", "gpa", ""),

    # Documents
    "resume_upload": _get("documents", "resumePath"),
    "cover_letter_upload": _get("documents", "coverLetterPath", ""),
    "linkedin": _get("documents", "linkedin", ""),
    "website": _get("documents", "website", ""),
    "portfolio": _get("documents", "portfolio", ""),

    # EEO
    "gender": _get("eeo", "gender"),
    "race_ethnicity": _get("eeo", "race"),
    "hispanic_latino": _get("eeo", "hispanicLatino", "No"),
    "veteran_status": _get("eeo", "veteranStatus"),
    "disability_status": _get("eeo", "disabilityStatus"),

    # Consent
    "terms_agreement": _constant("Yes"),
    "ai_recruitment_consent": _constant("Yes"),
    "future_opportunities_consent": _constant("Yes"),
    "age_verification": _over_18,
    "minor_work_permit": _constant("No"),

    # Other
    "referral_source": _get("referral", "source", "LinkedIn"),
    "employee_id": _constant(""),
}


class ProfileResolver:
    """
    Field type -> profile answer.

    Usage:
        resolver = ProfileResolver(load_profile("profile.json"))
        resolver.resolve("visa_sponsorship")       # "Yes" / "No"
        resolver.resolve("signature_date", field)  # month/day/year per label

    Raises:
        ValueError: a table key (default or extra) is not a known field type
    """

    def __init__(
        self,
        profile: Optional[dict] = None,
        extra: Optional[dict[str, Resolver]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.profile = profile or {}
        self.today = today or date.today
        self.table: dict[str, Resolver] = {
            **DEFAULT_RESOLVERS,
            "signature_date": self._signature_date,
            **(extra or {}),
        }

        unknown = sorted(t for t in self.table if not is_known_type(t))
        if unknown:
            raise ValueError(f"Resolvers registered for unknown field types: {', '.join(unknown)}")

    def _signature_date(self, profile: dict, descriptor: Optional[FieldDescriptor]) -> str:
        return signature_date(self.today(), descriptor.label if descriptor else "")

    def __contains__(self, field_type: str) -> bool:
        return field_type in self.table

    def resolve(self, field_type: str, descriptor: Optional[FieldDescriptor] = None) -> Any:
        """Answer for a type, or None when the type has no resolver or no profile."""
        if not self.profile:
            return None
        resolver = self.table.get(field_type)
        if resolver is None:
            logger.debug(f"[Profile] No resolver for {field_type}")
            return None
        return resolver(self.profile, descriptor)


def build_profile_summary(profile: Optional[dict]) -> str:
    """Short plain-text profile digest for direct-answer prompts."""
    if not profile:
        return "No profile available"

    def yes_no(value: Any) -> str:
        return "Yes" if value else "No"

    lines = []
    personal = profile.get("personal") or {}
    if personal:
        lines.append(f"Name: {personal.get('firstName', '')} {personal.get('lastName', '')}".rstrip())
        if personal.get("email"):
            lines.append(f"Email: {personal['email']}")
        if personal.get("phone"):
            lines.append(f"Phone: {personal['phone']}")
        if personal.get("citizenship"):
            lines.append(f"Citizenship: {personal['citizenship']}")

    work_auth = profile.get("workAuth") or {}
    if work_auth:
        lines.append(f"Authorized to work: {yes_no(work_auth.get('authorizedToWork'))}")
        if "requiresSponsorship" in work_auth:
            lines.append(f"Requires visa sponsorship: {yes_no(work_auth['requiresSponsorship'])}")
        if work_auth.get("visaStatus"):
            lines.append(f"Current visa status: {work_auth['visaStatus']}")

    employment = profile.get("employment") or {}
    if employment.get("yearsOfExperience"):
        lines.append(f"Years of experience: {employment['yearsOfExperience']}")

    additional = profile.get("additional") or {}
    for key, text in (
        ("previouslyEmployed", "Previously employed at this company"),
        ("hasRelativeAtCompany", "Has relative at company"),
        ("currentlyEmployed", "Currently employed (in general)"),
    ):
        if key in additional:
            lines.append(f"{text}: {yes_no(additional[key])}")

    education = profile.get("education") or {}
    if education.get("degree"):
        lines.append(f"Degree: {education['degree']}")
    if education.get("school"):
        lines.append(f"School: {education['school']}")

    eeo = profile.get("eeo") or {}
    if eeo.get("veteranStatus"):
        lines.append(f"Veteran status: {eeo['veteranStatus']}")
    if eeo.get("disabilityStatus"):
        lines.append(f"Disability status: {eeo['disabilityStatus']}")

    return "\n".join(lines)
