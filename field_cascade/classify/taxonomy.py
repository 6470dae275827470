"""
Closed taxonomy of form field types.

Everything the cascade can emit is listed here. Derived sets:
- YES_NO_FIELD_TYPES: boolean-flavored types (answer is Yes/No)
- TEXT_ONLY_FIELD_TYPES: types that only make sense as free text
- ZERO_SHOT_LABELS: natural-language hypotheses for the NLI classifier
- CENTROID_PHRASES: canonical phrasings averaged into embedding centroids
"""

import re
from enum import Enum
from typing import Optional


class FieldModality(str, Enum):
    """Input control kind of a form field."""
    TEXT = "text"
    TEXTAREA = "textarea"
    DROPDOWN = "dropdown"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    CHECKBOX_GROUP = "checkbox_group"
    DATE = "date"


FREE_TEXT_MODALITIES = {FieldModality.TEXTAREA}

CONSTRAINED_CHOICE_MODALITIES = {
    FieldModality.DROPDOWN,
    FieldModality.RADIO,
    FieldModality.CHECKBOX,
    FieldModality.CHECKBOX_GROUP,
}


# =============================================================================
# Field Types
# =============================================================================

FIELD_TYPES: tuple[str, ...] = (
    # Personal
    "first_name", "last_name", "middle_name", "full_name", "preferred_name",
    "prefix", "suffix", "email",
    # Phone
    "phone_number", "country_phone_code", "phone_extension", "phone_type",
    # Address
    "address_line_1", "address_line_2", "city", "state", "county",
    "postal_code", "country",
    # Work authorization
    "work_authorization", "work_authorization_indefinite", "visa_sponsorship",
    "citizenship_status", "citizenship_country_text", "restricted_country_citizen",
    "group_d_country_citizen", "foreign_permanent_resident", "current_visa_status",
    "j1_j2_visa_history",
    # Employment
    "previously_employed", "current_employee", "desired_salary",
    "available_start_date", "years_of_experience", "notice_period",
    "relative_at_company", "other_commitments", "restrictive_agreement",
    # Education
    "school", "degree", "field_of_study", "graduation_year", "gpa",
    "meets_educational_requirements", "meets_job_requirements",
    # Compliance
    "healthcare_exclusion", "disciplinary_action", "military_service",
    "scp_referral", "kpmg_employment", "big_four_employment",
    # Documents / links
    "resume_upload", "cover_letter_upload", "linkedin", "website", "portfolio",
    # EEO
    "gender", "race_ethnicity", "veteran_status", "disability_status",
    "hispanic_latino",
    # Consent
    "terms_agreement", "ai_recruitment_consent", "future_opportunities_consent",
    "age_verification", "minor_work_permit",
    # Other
    "referral_source", "signature_date", "employee_id", "skills",
    "explanation_text", "sponsorship_details",
)

# Sentinel results that are not taxonomy members
UNKNOWN_TYPE = "unknown"
DIRECT_ANSWER_TYPE = "direct_answer"

# Safe type for free-text fields when nothing better is known
INERT_TEXT_TYPE = "explanation_text"

YES_NO_FIELD_TYPES = frozenset({
    "work_authorization", "work_authorization_indefinite", "visa_sponsorship",
    "citizenship_status", "restricted_country_citizen", "group_d_country_citizen",
    "foreign_permanent_resident", "j1_j2_visa_history", "previously_employed",
    "current_employee", "relative_at_company", "other_commitments",
    "restrictive_agreement", "age_verification", "terms_agreement",
    "ai_recruitment_consent", "future_opportunities_consent", "hispanic_latino",
    "meets_educational_requirements", "meets_job_requirements",
    "healthcare_exclusion", "disciplinary_action", "military_service",
    "scp_referral", "kpmg_employment", "big_four_employment",
})

TEXT_ONLY_FIELD_TYPES = frozenset({
    "citizenship_country_text", "current_visa_status", "skills",
    "first_name", "last_name", "middle_name", "full_name", "preferred_name",
    "email", "phone_number", "address_line_1", "address_line_2",
    "city", "postal_code",
})

NON_BOOLEAN_FIELD_TYPES: tuple[str, ...] = tuple(
    t for t in FIELD_TYPES if t not in YES_NO_FIELD_TYPES
)


_FIELD_TYPE_SET = frozenset(FIELD_TYPES)


def is_known_type(field_type: Optional[str]) -> bool:
    return field_type in _FIELD_TYPE_SET


# =============================================================================
# Human-readable descriptions (used in verification prompts)
# =============================================================================

TYPE_DESCRIPTIONS = {
    "work_authorization": "whether authorized to work (Yes/No)",
    "work_authorization_indefinite": "whether authorized to work on an INDEFINITE basis",
    "visa_sponsorship": "whether visa sponsorship is needed",
    "citizenship_status": "whether US citizen or permanent resident",
    "citizenship_country_text": "country of citizenship (text)",
    "restricted_country_citizen": "citizen of a restricted country",
    "group_d_country_citizen": "citizen of a Group D country",
    "foreign_permanent_resident": "permanent resident of another country",
    "current_visa_status": "current visa/immigration status",
    "j1_j2_visa_history": "J-1 or J-2 visa history",
    "previously_employed": "previously employed at this company",
    "relative_at_company": "relative working at this company",
    "other_commitments": "other commitments or conflicts",
    "restrictive_agreement": "non-compete or restrictive agreement",
    "age_verification": "age verification (18+)",
    "terms_agreement": "agreement to terms and conditions",
    "ai_recruitment_consent": "consent to AI in recruitment",
    "future_opportunities_consent": "consent for future job opportunities",
    "hispanic_latino": "Hispanic or Latino identity",
    "first_name": "first name",
    "last_name": "last name",
    "email": "email address",
    "phone_number": "phone number",
    "gender": "gender",
    "race_ethnicity": "race or ethnicity",
    "veteran_status": "veteran status",
    "disability_status": "disability status",
    "referral_source": "how applicant heard about the job",
}


def describe_type(field_type: str) -> str:
    """Short description of a field type, falling back to the token itself."""
    return TYPE_DESCRIPTIONS.get(field_type, field_type.replace("_", " "))


# Distinctions the full classifier tends to confuse
KEY_DISTINCTIONS = """- military_service = Armed Forces/military service (not veteran status)
- veteran_status = EEO veteran reporting
- age_verification = Are you 18+?
- scp_referral = Referral from Senior Commercial Person (not how you heard about job)
- referral_source = How you heard about job (LinkedIn/website/etc.)
- kpmg_employment/big_four_employment = Specific company employment history
- previously_employed = Worked at THIS company before
- sponsorship_details = Text explanation of visa needs
- visa_sponsorship = Yes/No sponsorship question
- healthcare_exclusion = Excluded from Medicare/Medicaid?
- disciplinary_action = Disciplinary action on license?
- explanation_text = Conditional "If yes, please explain" text field"""


# =============================================================================
# Zero-shot hypotheses ("This form field collects {}")
# =============================================================================

ZERO_SHOT_HYPOTHESIS_TEMPLATE = "This form field collects {}"

ZERO_SHOT_LABELS = {
    "a person's first name": "first_name",
    "a person's middle name": "middle_name",
    "a person's last name or surname": "last_name",
    "an email address": "email",
    "address line 1 or street address": "address_line_1",
    "address line 2 or apartment number": "address_line_2",
    "the name of a city or town": "city",
    "a state or province or region": "state",
    "a postal code or zip code": "postal_code",
    "a country name": "country",
    "a phone number": "phone_number",
    "the type of phone device like mobile or home": "phone_type",
    "a country phone code like +1": "country_phone_code",
    "a phone extension": "phone_extension",
    "a LinkedIn profile URL": "linkedin",
    "whether the person previously worked at this company": "previously_employed",
    "whether the person is a current employee of this company": "current_employee",
    "how the applicant heard about this job": "referral_source",
    "whether the person is authorized to work in this country": "work_authorization",
    "whether the person requires visa sponsorship": "visa_sponsorship",
    "the person's current visa or immigration status": "current_visa_status",
    "whether the person has held a J-1 or J-2 exchange visitor visa": "j1_j2_visa_history",
    "the person's country of citizenship": "citizenship_country_text",
    "the name of a school or university": "school",
    "an academic degree level": "degree",
    "a field of study or major": "field_of_study",
    "a person's gender such as male or female": "gender",
    "whether the person is Hispanic or Latino": "hispanic_latino",
    "the applicant's race or ethnicity": "race_ethnicity",
    "military or veteran status": "veteran_status",
    "disability status or accommodation needs": "disability_status",
    "agreement to terms and conditions": "terms_agreement",
    "a signature or legal name": "full_name",
    "a date": "signature_date",
    "a resume or CV file upload": "resume_upload",
}


def zero_shot_labels_for(modality: Optional[FieldModality]) -> list[str]:
    """
    Candidate hypotheses narrowed by input modality.

    Checkbox and radio fields only carry boolean-flavored or small closed
    choices, and date pickers only carry dates.
    """
    labels = list(ZERO_SHOT_LABELS)
    if modality in (FieldModality.CHECKBOX, FieldModality.RADIO):
        return [
            label for label in labels
            if ZERO_SHOT_LABELS[label] in YES_NO_FIELD_TYPES
            or ZERO_SHOT_LABELS[label] in {"gender", "veteran_status", "disability_status"}
        ]
    if modality == FieldModality.DATE:
        return [label for label in labels if ZERO_SHOT_LABELS[label] == "signature_date"]
    return labels


# =============================================================================
# Embedding centroids (several phrasings averaged per type)
# =============================================================================

CENTROID_PHRASES = {
    "first_name": ["first name of a person", "given name", "first name field", "your first name"],
    "middle_name": ["middle name of a person", "middle initial", "middle name field"],
    "last_name": ["last name of a person", "surname", "family name", "last name field"],
    "email": ["email address", "e-mail", "electronic mail address"],
    "phone_number": ["phone number", "telephone number", "contact number", "mobile number"],
    "phone_extension": ["phone extension", "extension number", "ext"],
    "country_phone_code": [
        "country phone code", "country calling code",
        "international dialing code", "phone country code",
    ],
    "address_line_1": [
        "address line 1", "street address", "mailing address",
        "home address", "address line one", "primary address",
    ],
    "address_line_2": [
        "address line 2", "apartment number", "suite number",
        "unit number", "address line two",
    ],
    "city": ["city name", "city or town", "municipality", "city field"],
    "state": ["state or province", "state name", "region", "state field"],
    "postal_code": ["postal code", "zip code", "postcode", "ZIP"],
    "country": ["country name", "country of residence", "nation"],
    "linkedin": ["linkedin profile", "linkedin URL", "linkedin address"],
    "work_authorization": [
        "work authorization", "authorized to work",
        "legally eligible to work", "work permit status",
    ],
    "visa_sponsorship": [
        "visa sponsorship", "require sponsorship",
        "need visa sponsorship", "sponsorship required",
    ],
    "current_visa_status": [
        "current visa status", "current immigration status",
        "provide your current status", "what is your visa type",
    ],
    "j1_j2_visa_history": [
        "J-1 or J-2 exchange visitor visa", "have you held a J-1 visa",
        "J-1 J-2 visa history", "exchange visitor visa",
    ],
    "citizenship_country_text": [
        "country of citizenship", "countries of citizenship",
        "citizenship country name", "what country are you a citizen of",
    ],
    "previously_employed": [
        "previous employee", "previously worked here",
        "former employee", "worked at this company before",
    ],
    "referral_source": [
        "how did you hear about us", "referral source",
        "job source", "how did you find this job",
    ],
    "school": ["school name", "university name", "college name", "educational institution"],
    "degree": ["degree level", "education level", "academic degree", "highest degree"],
    "field_of_study": ["field of study", "major", "area of study", "concentration"],
    "gender": ["gender", "gender identity", "sex"],
    "race_ethnicity": ["ethnicity", "race", "racial background", "ethnic background"],
    "veteran_status": ["veteran status", "military service", "protected veteran"],
    "disability_status": ["disability status", "disability", "disabled"],
}


# =============================================================================
# Generic labels
# =============================================================================

GENERIC_LABELS = frozenset({
    "select one", "select", "choose one", "choose", "yes", "no",
    "please select", "select option", "",
})

_GENERIC_STRIP = re.compile(r"[*:\s]+")


def is_generic_label(label: Optional[str]) -> bool:
    """True when a label carries no meaning of its own ("Select One")."""
    return _GENERIC_STRIP.sub(" ", (label or "").lower()).strip() in GENERIC_LABELS
