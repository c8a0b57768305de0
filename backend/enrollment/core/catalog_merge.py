"""Catalog Merge — builds the list of programs a person may newly enroll into.

Invariants:
    - Download state precedence: DOWNLOADING > DOWNLOADED > carried ERROR > NONE
    - A program already enrolled with only_enroll_once=True never survives the merge
    - A program with only_enroll_once=False survives even when already enrolled
    - Output sorted by title, case-insensitive, stable (ties keep input order)
    - Order of steps is fixed: annotate -> drop single-enrollment programs -> sort

Design Decisions:
    - Pure functions over lists: the async shell fetches, this module only computes
    - New ProgramCatalogEntry per run (dataclasses.replace), never patched in place
    - "Already enrolled" is any enrollment record, active or not (see DESIGN.md)
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import TypeVar

from enrollment.core.domain_types import (
    DownloadState, EnrollmentSummary, Program, ProgramCatalogEntry, ProgramUid,
)
from enrollment.core.repository_protocols import SyncStateLookup

T = TypeVar("T")


def resolve_download_state(
    entry: ProgramCatalogEntry, sync_state: SyncStateLookup,
) -> DownloadState:
    if sync_state.is_downloading(entry.uid):
        return DownloadState.DOWNLOADING
    if sync_state.is_downloaded(entry.uid):
        return DownloadState.DOWNLOADED
    if entry.download_state == DownloadState.ERROR:
        return DownloadState.ERROR
    return DownloadState.NONE


def annotate_download_state(
    entries: Iterable[ProgramCatalogEntry], sync_state: SyncStateLookup,
) -> list[ProgramCatalogEntry]:
    return [
        replace(entry, download_state=resolve_download_state(entry, sync_state))
        for entry in entries
    ]


def drop_single_enrollment_programs(
    entries: Iterable[ProgramCatalogEntry], already_enrolled: Iterable[Program],
) -> list[ProgramCatalogEntry]:
    """Remove entries the person is enrolled in when the program allows one enrollment only."""
    enroll_once: dict[ProgramUid, bool] = {}
    for program in already_enrolled:
        enroll_once[program.uid] = program.only_enroll_once
    return [
        entry for entry in entries
        if not enroll_once.get(entry.uid, False)
    ]


def sort_by_label(items: Iterable[T], label: Callable[[T], str]) -> list[T]:
    # sorted() is stable, so exact case-folded ties keep their input order
    return sorted(items, key=lambda item: label(item).casefold())


def merge_catalog(
    raw_catalog: Sequence[ProgramCatalogEntry],
    sync_state: SyncStateLookup,
    already_enrolled: Iterable[Program],
) -> list[ProgramCatalogEntry]:
    """Annotate, deduplicate and sort one catalog run."""
    annotated = annotate_download_state(raw_catalog, sync_state)
    enrollable = drop_single_enrollment_programs(annotated, already_enrolled)
    return sort_by_label(enrollable, lambda entry: entry.title)


def sort_enrollments(
    enrollments: Iterable[EnrollmentSummary],
) -> list[EnrollmentSummary]:
    """Order an enrollment list by program name, case-insensitive."""
    return sort_by_label(enrollments, lambda enrollment: enrollment.program_name)
