"""
Oracle prompts for field verification and classification.

Prompts by call shape:
- Verification (cheap model): question match, label match
- Classification (full model): questionnaire, focused question, standard label
- Free-text re-derivation (cheap model): used by the textarea guard
- Direct answer (full model): when the type is outside the taxonomy
"""

# =============================================================================
# VERIFICATION PROMPTS (Tier 2)
# =============================================================================

VERIFY_QUESTION_PROMPT = """Question on a job application form:
"{question}"

Our system thinks this is asking about: {description} (field_type: {field_type})
Matched to known question: "{matched_question}"

Is our classification correct? Consider subtle differences carefully.
For example, "authorized to work" vs "authorized to work on an INDEFINITE basis" are DIFFERENT.

Answer "yes" only if the classification is correct."""


VERIFY_LABEL_PROMPT = """A job application form field has the label: "{label}"

Our system classified this as: {description} (field_type: {field_type})

Is this classification correct?
Answer "yes" only if the classification is correct."""


# =============================================================================
# CLASSIFICATION PROMPTS (Tier 3)
# =============================================================================

QUESTIONNAIRE_PROMPT = """You are classifying dropdown fields on a job application questionnaire page.

THIS PAGE HAS {total} DROPDOWN FIELDS, all labeled "{label}".
Each dropdown corresponds to a question on the page.

THIS IS DROPDOWN #{position} of {total}.

THE PAGE SECTION TEXT (questions in order):
{question_list}

FIELD DETAILS:
{field_details}

VALID FIELD TYPES:
{taxonomy}

KEY DISTINCTIONS:
{distinctions}

Match dropdown #{position} to its corresponding question, then give ONLY the field_type (one of the above).
If none of the field types fit, answer "none"."""


FOCUSED_QUESTION_PROMPT = """Classify this job application question into a field type.

QUESTION: "{question}"

FIELD DETAILS:
{field_details}

VALID FIELD TYPES:
{taxonomy}

IMPORTANT DISTINCTIONS:
{distinctions}

Give ONLY the field_type. If none of the field types fit, answer "none"."""


STANDARD_LABEL_PROMPT = """Classify this job application form field.

FIELD INFORMATION:
{field_details}

VALID FIELD TYPES:
{taxonomy}

COMMON CONFUSIONS TO AVOID:
{distinctions}

Give ONLY the field_type (one of the above). If none of the field types fit, answer "none"."""


# =============================================================================
# TEXTAREA GUARD PROMPT
# =============================================================================

FREE_TEXT_PROMPT = """A job application has a TEXTAREA field (multi-line text input, NOT a dropdown).

FIELD DETAILS:
{field_details}
{prior_answer_hint}
This textarea is asking for FREE TEXT input. It is NOT asking a Yes/No question.
Common textarea answers include: a country name, a visa type like "H1B", an explanation, etc.

What FREE TEXT information is this textarea asking for? Pick the best field_type:
{taxonomy}"""


PRIOR_ANSWER_HINT = """
IMPORTANT: The label ends with "*{answer}". The applicant already answered "{answer}" to a PREVIOUS question. This textarea is a FOLLOW-UP asking for additional details.
"""


# =============================================================================
# DIRECT ANSWER PROMPT
# =============================================================================

DIRECT_ANSWER_PROMPT = """You are helping fill out a job application form. A question was asked that doesn't fit our standard field types.

QUESTION: "{question}"

FIELD DETAILS:
{field_details}

APPLICANT PROFILE:
{profile_summary}

TASK: Analyze this question and determine the correct answer based on the profile.

RULES:
1. If it's a Yes/No question, answer ONLY "Yes" or "No"
2. If it's asking about employment status with this company, assume "No"
3. If it's asking about relatives at the company, use the profile data
4. Use your reasoning to give the most accurate answer

Give ONLY the answer, nothing else."""
