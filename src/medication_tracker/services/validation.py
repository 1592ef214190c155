"""Validation rules applied before repository writes."""

from medication_tracker.domain.diary import MAX_CONTENT_LENGTH, HealthDiary
from medication_tracker.domain.intake import MedicationIntakeRecord
from medication_tracker.domain.medications import MedicationInfo

CONTENT_EMPTY = "content must not be empty"
CONTENT_TOO_LONG = f"content exceeds {MAX_CONTENT_LENGTH} characters"
USER_ID_REQUIRED = "user id is required"
DIARY_ID_INVALID = "diary id is invalid"
SEARCH_KEYWORD_EMPTY = "search keyword must not be empty"
TIME_RANGE_INVALID = "time range is invalid"

MAX_MEDICATION_NAME_LENGTH = 100
MEDICATION_NAME_REQUIRED = "medication name is required"
MEDICATION_NAME_TOO_LONG = (
    f"medication name exceeds {MAX_MEDICATION_NAME_LENGTH} characters"
)
MEDICATION_COLOR_REQUIRED = "medication color is required"
MEDICATION_DOSAGE_FORM_REQUIRED = "medication dosage form is required"
QUANTITY_NEGATIVE = "quantities must not be negative"
MEDICATION_NAME_EXISTS = "medication name already exists"

INTAKE_NAME_REQUIRED = "medication name must not be empty"
INTAKE_TIME_INVALID = "intake time is invalid"


def validate_content(content: str | None) -> str | None:
    """Return an error message for invalid diary content, else None."""
    if content is None or not content.strip():
        return CONTENT_EMPTY
    if len(content) > MAX_CONTENT_LENGTH:
        return CONTENT_TOO_LONG
    return None


def validate_diary(diary: HealthDiary) -> str | None:
    """Return the first problem with a diary about to be created."""
    error = validate_content(diary.content)
    if error:
        return error
    if diary.user_id <= 0:
        return USER_ID_REQUIRED
    return None


def validate_medication(medication: MedicationInfo) -> str | None:
    """Return the first problem with a medication, else None."""
    name = (medication.name or "").strip()
    if not name:
        return MEDICATION_NAME_REQUIRED
    if len(name) > MAX_MEDICATION_NAME_LENGTH:
        return MEDICATION_NAME_TOO_LONG
    if not (medication.color or "").strip():
        return MEDICATION_COLOR_REQUIRED
    if not (medication.dosage_form or "").strip():
        return MEDICATION_DOSAGE_FORM_REQUIRED
    quantities = (
        medication.total_quantity,
        medication.remaining_quantity,
        medication.dosage_per_intake,
        medication.low_stock_threshold,
    )
    if any(value < 0 for value in quantities):
        return QUANTITY_NEGATIVE
    return None


def validate_intake_record(record: MedicationIntakeRecord) -> str | None:
    """Return the first problem with an intake record, else None.

    The dosage is not checked.
    """
    if not (record.medication_name or "").strip():
        return INTAKE_NAME_REQUIRED
    if record.intake_time <= 0:
        return INTAKE_TIME_INVALID
    return None
