"""Sync Status Store — process-wide download state, owned by the sync subsystem.

Invariants:
    - Only the sync subsystem mutates the store (mark_* / clear)
    - Readers get an immutable SyncSnapshot; a snapshot never changes after it is taken
    - A program is never both downloading and downloaded (marking one clears the other)

Design Decisions:
    - frozenset snapshots: cheap to copy, safe to hand to concurrent pipeline runs without locks
"""

from dataclasses import dataclass

from enrollment.core.domain_types import DownloadState, ProgramUid


@dataclass(frozen=True)
class SyncSnapshot:
    downloading: frozenset[str] = frozenset()
    downloaded: frozenset[str] = frozenset()

    def is_downloading(self, program_uid: ProgramUid) -> bool:
        return program_uid in self.downloading

    def is_downloaded(self, program_uid: ProgramUid) -> bool:
        return program_uid in self.downloaded


class SyncStatusStore:

    def __init__(self):
        self._downloading: set[str] = set()
        self._downloaded: set[str] = set()

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(frozenset(self._downloading), frozenset(self._downloaded))

    def mark_downloading(self, program_uid: str) -> None:
        self._downloaded.discard(program_uid)
        self._downloading.add(program_uid)

    def mark_downloaded(self, program_uid: str) -> None:
        self._downloading.discard(program_uid)
        self._downloaded.add(program_uid)

    def clear(self, program_uid: str) -> None:
        self._downloading.discard(program_uid)
        self._downloaded.discard(program_uid)

    def report(self, program_uid: str, state: DownloadState) -> None:
        """Apply a status report. ERROR is carried on the program record, so it clears here."""
        if state == DownloadState.DOWNLOADING:
            self.mark_downloading(program_uid)
        elif state == DownloadState.DOWNLOADED:
            self.mark_downloaded(program_uid)
        else:
            self.clear(program_uid)


# Process-wide instance, shared by every workspace
sync_status_store = SyncStatusStore()
