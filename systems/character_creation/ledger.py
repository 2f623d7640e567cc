# systems/character_creation/ledger.py

"""
Modifier Ledger: which source contributed which bonuses.

Responsibilities:
- apply(source, draft): compute the source's contribution with the current
  draft as read-only context and record it
- revert(source_id): drop exactly the recorded contribution, never
  recomputing from the source's current definition
- keep apply order so "most recently applied" questions can be answered

The ledger never writes to the draft itself; the wizard settles the draft
from `bonuses()` after every apply/revert.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from engine.error_handler import InvariantViolation
from telemetry.logger import telemetry

from .bonuses import AttributedBonus, BonusKind, Contribution, SourceId
from .draft import CharacterDraft
from .sources import Source

logger = logging.getLogger("charforge.ledger")


@dataclass(frozen=True)
class LedgerEntry:
    source: Source
    contribution: Contribution
    sequence: int

    @property
    def source_id(self) -> SourceId:
        return self.contribution.source_id


@dataclass(frozen=True)
class LedgerSnapshot:
    entries: Tuple[LedgerEntry, ...]
    next_sequence: int


class ModifierLedger:
    def __init__(self) -> None:
        self._entries: Dict[SourceId, LedgerEntry] = {}
        self._next_sequence: int = 1

    # ------------------------------------------------------------------
    # Apply / revert
    # ------------------------------------------------------------------

    def preview(self, source: Source, draft: CharacterDraft) -> Contribution:
        """Compute what `source` would contribute, without recording it."""
        contribution = source.contribute(draft)
        if contribution.source_id != source.source_id:
            raise InvariantViolation(
                f"{source.source_id} produced a contribution tagged {contribution.source_id}"
            )
        for bonus in contribution.bonuses:
            if bonus.source_id != source.source_id:
                raise InvariantViolation(f"Bonus {bonus} is not attributed to {source.source_id}")
        return contribution

    def apply(self, source: Source, draft: CharacterDraft) -> Contribution:
        """
        Record `source`'s contribution given `draft` as context.

        Applying a source id that is already active is a programmer error: the
        caller must revert (and settle) first.
        """
        sid = source.source_id
        if sid in self._entries:
            raise InvariantViolation(f"{sid} applied twice without a revert")

        contribution = self.preview(source, draft)
        entry = LedgerEntry(source=source, contribution=contribution, sequence=self._next_sequence)
        self._next_sequence += 1
        self._entries[sid] = entry

        logger.debug("apply %s -> %d bonus(es) (seq %d)", sid, len(contribution.bonuses), entry.sequence)
        telemetry.log(
            "ledger_apply",
            source=sid.label,
            seq=entry.sequence,
            bonuses=[f"{b.kind.value}:{b.target}:{b.amount}" for b in contribution.bonuses],
        )
        return contribution

    def revert(self, source_id: SourceId, last_contribution: Optional[Contribution] = None) -> Contribution:
        """
        Remove the stored contribution of `source_id` and return it.

        When the caller passes the contribution it got back from apply, it must
        match what the ledger holds.
        """
        entry = self._entries.get(source_id)
        if entry is None:
            raise InvariantViolation(f"revert of {source_id}, which is not active")
        if last_contribution is not None and last_contribution != entry.contribution:
            raise InvariantViolation(f"revert of {source_id} does not match its applied contribution")

        del self._entries[source_id]
        logger.debug("revert %s (seq %d)", source_id, entry.sequence)
        telemetry.log("ledger_revert", source=source_id.label, seq=entry.sequence)
        return entry.contribution

    def revert_if_active(self, source_id: SourceId) -> Optional[Contribution]:
        if source_id in self._entries:
            return self.revert(source_id)
        return None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_active(self, source_id: SourceId) -> bool:
        return source_id in self._entries

    def contribution_of(self, source_id: SourceId) -> Optional[Contribution]:
        entry = self._entries.get(source_id)
        return entry.contribution if entry else None

    def source_of(self, source_id: SourceId) -> Optional[Source]:
        entry = self._entries.get(source_id)
        return entry.source if entry else None

    def entries(self) -> List[LedgerEntry]:
        """Active entries in apply order."""
        return sorted(self._entries.values(), key=lambda e: e.sequence)

    def bonuses(self, kind: Optional[BonusKind] = None) -> List[AttributedBonus]:
        out: List[AttributedBonus] = []
        for entry in self.entries():
            for bonus in entry.contribution.bonuses:
                if kind is None or bonus.kind is kind:
                    out.append(bonus)
        return out

    def source_ids(self) -> List[SourceId]:
        return [entry.source_id for entry in self.entries()]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(entries=tuple(self.entries()), next_sequence=self._next_sequence)

    def restore(self, snapshot: LedgerSnapshot) -> None:
        self._entries = {entry.source_id: entry for entry in snapshot.entries}
        self._next_sequence = snapshot.next_sequence

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._entries

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries())
