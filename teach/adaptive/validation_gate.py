"""
Validation Gate.

Turns a concept's verdict history into a progression decision:

1. ADVANCE   - the last N verdicts are correct and the last one applied the
               concept to a transfer example (N = mastery_streak, at least 2)
2. REMEDIATE - the last M verdicts are incorrect at the same difficulty tier
               (M = remediation_streak, at least 2)
3. CONTINUE  - anything else; keep probing the same concept

Pure decision functions. Nothing here catches oracle or controller errors.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from teach.core.errors import InvalidTransitionError
from teach.core.models import Correctness, Decision, Exchange, MasteryStatus, Verdict


@dataclass(frozen=True)
class GatePolicy:
    """Thresholds for the validation gate."""

    mastery_streak: int = 2
    remediation_streak: int = 2
    max_remediation_cycles: int = 3

    def __post_init__(self) -> None:
        if self.mastery_streak < 2:
            raise ValueError("mastery_streak must be at least 2")
        if self.remediation_streak < 2:
            raise ValueError("remediation_streak must be at least 2")
        if self.max_remediation_cycles < 0:
            raise ValueError("max_remediation_cycles cannot be negative")

    @classmethod
    def from_settings(cls, settings=None) -> GatePolicy:
        if settings is None:
            from config import get_settings
            settings = get_settings()
        return cls(**settings.get_gate_config())


class ValidationGate:
    """Decides whether a concept is mastered, needs another probe, or needs remediation."""

    def __init__(self, policy: GatePolicy | None = None):
        self.policy = policy or GatePolicy()

    def decide(self, exchanges: Sequence[Exchange]) -> Decision:
        """
        Decide progression for one concept.

        Args:
            exchanges: Exchanges recorded against a single concept, oldest
                first. Questions still awaiting an answer are ignored.
        """
        answered = [e for e in exchanges if e.verdict is not None]
        if not answered:
            return Decision.CONTINUE

        if self._is_mastered(answered):
            return Decision.ADVANCE
        if self._needs_remediation(answered):
            return Decision.REMEDIATE
        return Decision.CONTINUE

    def _is_mastered(self, answered: list[Exchange]) -> bool:
        streak = answered[-self.policy.mastery_streak:]
        if len(streak) < self.policy.mastery_streak:
            return False
        if not all(e.verdict.is_correct for e in streak):
            return False
        # Mastery needs demonstrated application, not a lucky repeat
        return streak[-1].verdict.applies_transfer

    def _needs_remediation(self, answered: list[Exchange]) -> bool:
        streak = answered[-self.policy.remediation_streak:]
        if len(streak) < self.policy.remediation_streak:
            return False
        if not all(e.verdict.is_incorrect for e in streak):
            return False
        return len({e.tier for e in streak}) == 1


def transition(status: MasteryStatus, decision: Decision, verdict: Verdict) -> MasteryStatus:
    """
    Next status for a concept under probing, given the gate's decision.

    Total over (PROBING | REMEDIATING) x Decision x Correctness. Remediation
    exhaustion (STALLED) is decided by the controller, which owns the counter.

    Raises:
        InvalidTransitionError: the concept is not being probed
    """
    if status not in (MasteryStatus.PROBING, MasteryStatus.REMEDIATING):
        raise InvalidTransitionError(
            f"No verdict can be applied to a concept that is {status.value}"
        )

    if decision == Decision.ADVANCE:
        return MasteryStatus.MASTERED
    if decision == Decision.REMEDIATE:
        return MasteryStatus.REMEDIATING
    if status == MasteryStatus.REMEDIATING and verdict.correctness == Correctness.CORRECT:
        return MasteryStatus.PROBING
    return status
