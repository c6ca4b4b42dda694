"""Closed vocabularies for metadata values, fields and producers."""

import enum
from typing import Optional

from sqlalchemy import Enum as SAEnum


class ValueSource(str, enum.Enum):
    """Where a ledger row came from."""

    AUTOMATIC = "automatic"
    SYSTEM = "system"
    AI = "ai"
    USER = "user"
    MANUAL_OVERRIDE = "manual_override"
    AI_REJECTED = "ai_rejected"
    USER_REJECTED = "user_rejected"

    @property
    def is_rejected(self) -> bool:
        return self in (ValueSource.AI_REJECTED, ValueSource.USER_REJECTED)

    @property
    def is_reviewable(self) -> bool:
        """Only ai and user rows ever count as pending review."""
        return self in (ValueSource.AI, ValueSource.USER)

    @property
    def is_machine(self) -> bool:
        return self in (ValueSource.AUTOMATIC, ValueSource.SYSTEM, ValueSource.AI)

    def rejected_variant(self) -> Optional["ValueSource"]:
        """Terminal source a pending row of this source is flipped to, if any."""
        return _REJECTED_VARIANTS.get(self)


_REJECTED_VARIANTS = {
    ValueSource.AI: ValueSource.AI_REJECTED,
    ValueSource.USER: ValueSource.USER_REJECTED,
}

# Highest precedence first. Used only when approved rows tie on approved_at,
# and to order accumulated multiselect values.
PRECEDENCE = (
    ValueSource.MANUAL_OVERRIDE,
    ValueSource.USER,
    ValueSource.AUTOMATIC,
    ValueSource.SYSTEM,
    ValueSource.AI,
)


def precedence_rank(source: ValueSource) -> int:
    """Rank of a source in PRECEDENCE (0 is strongest); rejected rows rank last."""
    try:
        return PRECEDENCE.index(source)
    except ValueError:
        return len(PRECEDENCE)


class Producer(str, enum.Enum):
    """Actor type that authored a value."""

    AI = "ai"
    USER = "user"
    SYSTEM = "system"


def producer_for(source: ValueSource) -> Producer:
    """Default producer for rows written with the given source."""
    if source in (ValueSource.AI, ValueSource.AI_REJECTED):
        return Producer.AI
    if source in (ValueSource.AUTOMATIC, ValueSource.SYSTEM):
        return Producer.SYSTEM
    return Producer.USER


class PopulationMode(str, enum.Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"
    AI = "ai"
    HYBRID = "hybrid"


class FieldType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    SELECT = "select"
    MULTISELECT = "multiselect"


class BulkOperation(str, enum.Enum):
    ADD = "add"
    REPLACE = "replace"
    CLEAR = "clear"


class HistoryAction(str, enum.Enum):
    WRITE = "write"
    APPROVE = "approve"
    REJECT = "reject"
    EDIT_APPROVE = "edit_approve"
    SUPERSEDE = "supersede"
    OVERRIDE = "override"
    REVERT = "revert"


def enum_type(enum_cls, length: int = 32) -> SAEnum:
    """String-backed column type storing enum values rather than member names."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
    )
