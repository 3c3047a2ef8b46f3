"""Move ledger used to undo a partially completed multi-item phase."""

import logging
from typing import Iterator, List

from ..core.transport.base import RemoteTransport
from .models import MoveRecord

log = logging.getLogger(__name__)


class MoveLedger:
    """Ordered log of committed moves for one phase of one run.

    The remote store has no multi-item transaction, so each successful move
    is recorded and :meth:`reverse` issues the inverse moves newest first.
    """

    def __init__(self, phase: str):
        self.phase = phase
        self._records: List[MoveRecord] = []

    def record(self, from_path: str, to_path: str, is_directory: bool) -> MoveRecord:
        entry = MoveRecord(from_path, to_path, is_directory)
        self._records.append(entry)
        return entry

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MoveRecord]:
        return iter(self._records)

    @property
    def records(self) -> List[MoveRecord]:
        return list(self._records)

    async def reverse(self, transport: RemoteTransport) -> List[str]:
        """Undo every recorded move in LIFO order.

        Best effort: a failed inverse move is logged and the rest are still
        attempted. Returns a description of each move that could not be undone.
        """
        failures: List[str] = []
        if not self._records:
            return failures

        log.warning(
            f"Reversing {len(self._records)} {self.phase} move(s)",
            extra={"phase": self.phase},
        )
        for record in reversed(self._records):
            undo = record.inverse()
            try:
                await transport.move(undo.from_path, undo.to_path)
                log.info(
                    f"Reverted {record.from_path} -> {record.to_path}",
                    extra={"phase": self.phase, "path": undo.to_path},
                )
            except Exception as e:
                failures.append(f"{undo.from_path} -> {undo.to_path}: {e}")
                log.error(
                    f"Could not revert {record.from_path} -> {record.to_path}: {e}",
                    extra={"phase": self.phase, "path": undo.from_path},
                )
        self._records.clear()
        return failures
