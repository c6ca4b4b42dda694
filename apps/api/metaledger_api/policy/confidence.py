"""Read-time suppression of low-confidence AI values."""

from typing import Mapping, Optional

from metaledger_api.metadata.enums import PopulationMode, Producer
from metaledger_api.models import MetadataField, MetadataValue
from metaledger_api.settings import get_settings


class ConfidenceSuppressor:
    """Hides low-confidence machine output from consumer views.

    Presentation only: nothing here writes to the ledger.
    """

    def __init__(self, default_threshold: Optional[float] = None, thresholds: Optional[Mapping[str, float]] = None):
        """Initialize suppressor with per-field thresholds."""
        settings = get_settings()
        self.default_threshold = (
            settings.ai_confidence_default_threshold if default_threshold is None else default_threshold
        )
        self.thresholds = dict(settings.ai_confidence_thresholds if thresholds is None else thresholds)

    def threshold_for(self, field_key: str) -> float:
        return self.thresholds.get(field_key, self.default_threshold)

    def should_suppress(self, field_key: str, confidence: Optional[float]) -> bool:
        """True when the confidence is known and below the field's threshold."""
        if confidence is None:
            return False
        return confidence < self.threshold_for(field_key)

    def suppresses_row(self, field: MetadataField, row: MetadataValue) -> bool:
        """Apply suppression only to AI-produced rows of ai-mode fields."""
        if field.population_mode != PopulationMode.AI:
            return False
        if row.producer != Producer.AI:
            return False
        return self.should_suppress(field.key, row.confidence)
