"""Stage transition audit records and derived history views.

Pure domain logic with no external dependencies.
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime


@dataclass(frozen=True)
class StageTransitionRecord:
    """Immutable audit row for one executed transition."""

    id: str
    organization_id: str
    project_id: str
    from_stage_id: str | None
    to_stage_id: str
    user_id: str
    reason: str
    created_at: datetime
    bypass_required: bool = False
    bypass_reason: str | None = None
    from_stage_name: str | None = None
    to_stage_name: str | None = None
    correlation_id: str | None = None

    @property
    def action(self) -> str:
        return "stage_transition_bypass" if self.bypass_required else "stage_transition"


@dataclass(frozen=True)
class StageHistoryEntry:
    """A stay in one stage, closed by the next transition."""

    record_id: str
    project_id: str
    stage_id: str
    stage_name: str
    entered_at: datetime
    entered_by: str
    reason: str
    bypass_required: bool = False
    bypass_reason: str | None = None
    exited_at: datetime | None = None
    duration_minutes: int | None = None


@dataclass
class TransitionStats:
    total_transitions: int = 0
    bypass_transitions: int = 0
    stage_transition_counts: dict[str, int] = field(default_factory=dict)
    bypass_reasons: list[str] = field(default_factory=list)


def build_stage_history(records: list[StageTransitionRecord]) -> list[StageHistoryEntry]:
    """Turn transition records into chronological stage stays.

    Each entry's exit time is the next entry's entry time; the latest stay stays open.
    """
    ordered = sorted(records, key=lambda r: r.created_at)
    entries = [
        StageHistoryEntry(
            record_id=r.id,
            project_id=r.project_id,
            stage_id=r.to_stage_id,
            stage_name=r.to_stage_name or "Unknown",
            entered_at=r.created_at,
            entered_by=r.user_id,
            reason=r.reason,
            bypass_required=r.bypass_required,
            bypass_reason=r.bypass_reason,
        )
        for r in ordered
    ]

    for i in range(len(entries) - 1):
        exited_at = entries[i + 1].entered_at
        minutes = round((exited_at - entries[i].entered_at).total_seconds() / 60)
        entries[i] = replace(entries[i], exited_at=exited_at, duration_minutes=minutes)

    return entries


def summarize_transitions(records: list[StageTransitionRecord]) -> TransitionStats:
    """Aggregate transition counts per target stage and collect bypass reasons."""
    counts = Counter(r.to_stage_name or "Unknown" for r in records)
    bypasses = [r for r in records if r.bypass_required]
    return TransitionStats(
        total_transitions=len(records),
        bypass_transitions=len(bypasses),
        stage_transition_counts=dict(counts),
        bypass_reasons=[r.bypass_reason for r in bypasses if r.bypass_reason],
    )
