"""Domain models for medication intake history."""

from dataclasses import dataclass, field

from medication_tracker.clock import SYSTEM_CLOCK, Clock


@dataclass
class MedicationIntakeRecord:
    """One logged dose.

    ``medication_name`` is a snapshot taken at intake time rather than a
    reference, so renaming or deleting the medication leaves history intact.
    ``dosage_taken`` is stored as given, including zero or negative values.
    """

    medication_name: str = ""
    intake_time: int = field(default_factory=SYSTEM_CLOCK.now_ms)
    dosage_taken: int = 1
    id: int = 0

    @classmethod
    def taken_now(
        cls, medication_name: str, dosage_taken: int, clock: Clock = SYSTEM_CLOCK
    ) -> "MedicationIntakeRecord":
        """Create a record stamped with the current time."""
        return cls(
            medication_name=medication_name,
            intake_time=clock.now_ms(),
            dosage_taken=dosage_taken,
        )

    def __repr__(self) -> str:
        return (
            f"MedicationIntakeRecord(id={self.id}, "
            f"medication_name={self.medication_name!r}, "
            f"intake_time={self.intake_time}, dosage_taken={self.dosage_taken})"
        )
