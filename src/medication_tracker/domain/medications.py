"""Domain models for medication inventory."""

from dataclasses import dataclass
from enum import Enum

from medication_tracker.clock import SYSTEM_CLOCK, Clock
from medication_tracker.domain.intake import MedicationIntakeRecord


class StockStatus(str, Enum):
    """Stock level derived from remaining quantity and threshold."""

    SUFFICIENT = "sufficient"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class MedicationColor(str, Enum):
    """Colors offered when registering a medication."""

    WHITE = "WHITE"
    YELLOW = "YELLOW"
    BLUE = "BLUE"
    RED = "RED"
    GREEN = "GREEN"
    PINK = "PINK"
    ORANGE = "ORANGE"
    BROWN = "BROWN"
    PURPLE = "PURPLE"
    CLEAR = "CLEAR"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str | None) -> "MedicationColor | None":
        """Return the color matching a stored value, ignoring case."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class MedicationDosageForm(str, Enum):
    """Dosage forms offered when registering a medication."""

    PILL = "PILL"
    TABLET = "TABLET"
    CAPSULE = "CAPSULE"
    LIQUID = "LIQUID"
    INJECTION = "INJECTION"
    POWDER = "POWDER"
    CREAM = "CREAM"
    PATCH = "PATCH"
    INHALER = "INHALER"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str | None) -> "MedicationDosageForm | None":
        """Return the dosage form matching a stored value, ignoring case."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass
class MedicationInfo:
    """A medication with its dosing rule and current stock.

    Setters are plain attribute assignments and perform no validation;
    the repository validates before anything is persisted.
    """

    name: str = ""
    color: str = ""
    dosage_form: str = ""
    total_quantity: int = 0
    remaining_quantity: int = 0
    dosage_per_intake: int = 1
    low_stock_threshold: int = 0
    unit: str = "pill"
    created_at: int = 0
    updated_at: int = 0
    photo_path: str | None = None
    id: int = 0

    @classmethod
    def register(  # noqa: PLR0913
        cls,
        name: str,
        color: str,
        dosage_form: str,
        total_quantity: int,
        dosage_per_intake: int = 1,
        low_stock_threshold: int = 0,
        unit: str = "pill",
        photo_path: str | None = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> "MedicationInfo":
        """Create a new, full-stock medication."""
        now = clock.now_ms()
        return cls(
            name=name,
            color=color,
            dosage_form=dosage_form,
            total_quantity=total_quantity,
            remaining_quantity=total_quantity,
            dosage_per_intake=dosage_per_intake,
            low_stock_threshold=low_stock_threshold,
            unit=unit,
            created_at=now,
            updated_at=now,
            photo_path=photo_path,
        )

    @property
    def status(self) -> StockStatus:
        """Current stock status."""
        if self.remaining_quantity <= 0:
            return StockStatus.OUT_OF_STOCK
        if self.remaining_quantity <= self.low_stock_threshold:
            return StockStatus.LOW_STOCK
        return StockStatus.SUFFICIENT

    def is_low_stock(self) -> bool:
        """Return True when stock is positive but at or below the threshold."""
        return self.status is StockStatus.LOW_STOCK

    def is_out_of_stock(self) -> bool:
        """Return True when no stock is left."""
        return self.status is StockStatus.OUT_OF_STOCK

    def remaining_percentage(self) -> int:
        """Remaining stock as a percentage of the total, halves rounded up."""
        if self.total_quantity <= 0 or self.remaining_quantity <= 0:
            return 0
        return (self.remaining_quantity * 200 + self.total_quantity) // (
            2 * self.total_quantity
        )

    def needs_refill(self, threshold_percent: int) -> bool:
        """Return True when the exact remaining ratio is at or below a threshold.

        A medication with no total counts as empty.
        """
        if self.total_quantity <= 0:
            return threshold_percent >= 0
        return self.remaining_quantity * 100 <= threshold_percent * self.total_quantity

    def reduce_quantity(self, amount: int, now: int) -> None:
        """Subtract stock, saturating at zero, and stamp the update time."""
        self.remaining_quantity = max(0, self.remaining_quantity - amount)
        self.updated_at = now


@dataclass(frozen=True)
class ConsumptionResult:
    """Outcome of taking one dose of a medication."""

    medication: MedicationInfo
    intake_record: MedicationIntakeRecord
    previous_remaining: int
