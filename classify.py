"""
classify.py - Deterministic condition-transition rules.

Given the condition of one item at two checkpoints (plus the free-text
notes), decide whether the change is:

    ANOMALY        - the condition worsened; this is a real discrepancy
    INFORMATIONAL  - the condition changed without worsening, or only the
                     notes changed
    UNCHANGED      - nothing worth reporting

and assign a severity. Used identically for manifest line items and for
unmanifested extras.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional

from logging_config import get_logger
from models import Condition, Severity, coerce_condition, is_failing
from normalize import normalize_for_compare

logger = get_logger(__name__)

# -- Note confirmation phrases --
# Follow-up inspections are asked to confirm an unchanged item explicitly,
# e.g. "condition unchanged from previous checkpoint: still intact".
# When the later note contains one of these, the note text is not diffed.
UNCHANGED_PHRASES: tuple[str, ...] = ("unchanged", "no change")


class TransitionOutcome(str, Enum):
    ANOMALY = "anomaly"
    INFORMATIONAL = "informational"
    UNCHANGED = "unchanged"


class Transition(NamedTuple):
    """Classified condition transition for one matched item."""

    from_condition: Condition
    to_condition: Condition
    outcome: TransitionOutcome
    severity: Severity
    worsened: bool
    note_only_change: bool

    @property
    def condition_differs(self) -> bool:
        return self.from_condition != self.to_condition


def is_condition_worsened(from_condition: Condition | str | None, to_condition: Condition | str | None) -> bool:
    """Whether a transition counts as worsening.

    Any move into the failing set from a non-failing state is worsening
    (this includes unknown -> failing). A move between two different
    failing states is also worsening. Improvements and moves into
    `unknown` are not.
    """
    from_cond = coerce_condition(from_condition)
    to_cond = coerce_condition(to_condition)

    if from_cond == to_cond:
        return False
    if is_failing(to_cond) and from_cond == Condition.AS_LOADED_OK:
        return True
    if is_failing(to_cond) and not is_failing(from_cond):
        return True
    if is_failing(from_cond) and is_failing(to_cond):
        # TODO: confirm with operations whether e.g. wet_contaminated -> label_mismatch
        # should rank as an escalation before narrowing this rule.
        return True
    return False


def has_note_only_change(from_notes: Optional[str], to_notes: Optional[str]) -> bool:
    """Whether two notes for the same condition differ in a meaningful way.

    Only consulted when the condition itself did not change. An explicit
    "unchanged" / "no change" confirmation in the later note overrides any
    textual difference.
    """
    if not from_notes and not to_notes:
        return False

    later = normalize_for_compare(to_notes)
    if any(phrase in later for phrase in UNCHANGED_PHRASES):
        return False

    earlier = normalize_for_compare(from_notes)
    if earlier == later:
        return False
    return bool(earlier and later)


def derive_severity(from_condition: Condition | str | None, to_condition: Condition | str | None) -> Severity:
    """Severity of a transition, independent of whether it is worsening."""
    from_cond = coerce_condition(from_condition)
    to_cond = coerce_condition(to_condition)

    if from_cond == Condition.AS_LOADED_OK and is_failing(to_cond):
        return Severity.HIGH
    if is_failing(from_cond) and is_failing(to_cond) and from_cond != to_cond:
        return Severity.MEDIUM
    if to_cond == Condition.UNKNOWN:
        return Severity.LOW
    if is_failing(to_cond):
        return Severity.MEDIUM
    return Severity.LOW


def classify_transition(
    from_condition: Condition | str | None,
    to_condition: Condition | str | None,
    from_notes: Optional[str] = "",
    to_notes: Optional[str] = "",
) -> Transition:
    """Classify one matched item into anomaly / informational / unchanged."""
    from_cond = coerce_condition(from_condition)
    to_cond = coerce_condition(to_condition)

    worsened = is_condition_worsened(from_cond, to_cond)
    note_only_change = from_cond == to_cond and has_note_only_change(from_notes, to_notes)

    if worsened:
        outcome = TransitionOutcome.ANOMALY
    elif from_cond != to_cond or note_only_change:
        outcome = TransitionOutcome.INFORMATIONAL
    else:
        outcome = TransitionOutcome.UNCHANGED

    severity = derive_severity(from_cond, to_cond)

    logger.debug(
        "transition_classified | from=%s | to=%s | outcome=%s | severity=%s | note_only_change=%s",
        from_cond.value,
        to_cond.value,
        outcome.value,
        severity.value,
        note_only_change,
    )
    return Transition(
        from_condition=from_cond,
        to_condition=to_cond,
        outcome=outcome,
        severity=severity,
        worsened=worsened,
        note_only_change=note_only_change,
    )
