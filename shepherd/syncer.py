"""
Bulk sync engine for shepherd.

Makes sure every registered repository has an up to date working copy:
absent working copies are cloned, existing ones fetched, and anything
else in the way is reported instead of overwritten. Each entry is
processed independently, and a failure is recorded in the run report
rather than aborting the run.
"""

import logging
from collections import Counter
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import RepositoryEntry, ShepherdConfig
from .constants import APP_NAME
from .errors import PathConflictError, TransportError
from .git_ops import FetchSummary, GitPythonTransport, GitTransport
from .inspector import RepoState, inspect
from .paths import resolve

logger = logging.getLogger(APP_NAME)

INTERRUPTED_REASON = "interrupted before sync"


class SyncStatus(str, Enum):
    """Kind of outcome for one entry."""

    CLONED = "cloned"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """Outcome of syncing one entry. ``reason`` is set only for failures."""

    status: SyncStatus
    reason: str | None = None
    summary: FetchSummary | None = None

    @classmethod
    def cloned(cls) -> "SyncOutcome":
        return cls(SyncStatus.CLONED)

    @classmethod
    def updated(cls, summary: FetchSummary) -> "SyncOutcome":
        return cls(SyncStatus.UPDATED, summary=summary)

    @classmethod
    def unchanged(cls) -> "SyncOutcome":
        return cls(SyncStatus.UNCHANGED)

    @classmethod
    def failed(cls, reason: str) -> "SyncOutcome":
        return cls(SyncStatus.FAILED, reason=reason)

    @property
    def is_failure(self) -> bool:
        return self.status is SyncStatus.FAILED


@dataclass(frozen=True)
class EntryResult:
    """An entry, where its working copy lives, and what happened to it."""

    entry: RepositoryEntry
    path: Path
    outcome: SyncOutcome


@dataclass
class RunReport:
    """Results of one run, in registry order."""

    results: list[EntryResult] = field(default_factory=list)
    interrupted: bool = False

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[EntryResult]:
        return iter(self.results)

    @property
    def failures(self) -> list[EntryResult]:
        return [r for r in self.results if r.outcome.is_failure]

    @property
    def has_failures(self) -> bool:
        return any(r.outcome.is_failure for r in self.results)

    def counts(self) -> dict[SyncStatus, int]:
        """Number of entries per status, every status present."""
        counter = Counter(r.outcome.status for r in self.results)
        return {status: counter.get(status, 0) for status in SyncStatus}


def sync_entry(
    entry: RepositoryEntry,
    source_dir: Path,
    transport: GitTransport,
) -> EntryResult:
    """
    Bring one working copy up to date.

    Never raises: every failure is turned into a FAILED outcome so the
    caller can carry on with the next entry.
    """
    path = resolve(source_dir, entry)

    try:
        state = inspect(path, entry.url)
        if state is RepoState.OCCUPIED:
            raise PathConflictError(path)

        if state is RepoState.ABSENT:
            transport.clone(entry.url, path)
            outcome = SyncOutcome.cloned()
        else:
            summary = transport.fetch(path)
            if summary.has_new_data:
                outcome = SyncOutcome.updated(summary)
            else:
                outcome = SyncOutcome.unchanged()
    except PathConflictError as e:
        logger.warning(f"CONFLICT {entry.name}: {e.path} is not a clone of {entry.url}")
        outcome = SyncOutcome.failed(str(e))
    except TransportError as e:
        outcome = SyncOutcome.failed(str(e))
    except Exception as e:
        logger.exception(f"Unexpected error syncing {entry.name}")
        outcome = SyncOutcome.failed(f"Unexpected error: {e}")

    if outcome.is_failure:
        logger.error(f"FAILED {entry.name}: {outcome.reason}")
    else:
        logger.info(f"{outcome.status.value.upper()} {entry.name}: {path}")
    return EntryResult(entry=entry, path=path, outcome=outcome)


class RepoSyncer:
    """Runs sync_entry over every entry of a registry."""

    def __init__(
        self,
        config: ShepherdConfig,
        transport: GitTransport | None = None,
        max_workers: int | None = None,
        console: Console | None = None,
    ):
        """Initialize the syncer.

        Args:
            config: The loaded registry
            transport: Git transport, GitPython by default
            max_workers: Entries processed in parallel (defaults to config.jobs)
            console: When set, progress is shown on this console
        """
        self.config = config
        self.transport = transport or GitPythonTransport(
            fetch_timeout=config.fetch_timeout
        )
        self.max_workers = max(1, max_workers or config.jobs)
        self.console = console

    def run(self) -> RunReport:
        """
        Sync every registered repository.

        Returns:
            RunReport with exactly one result per entry, in registry order
        """
        entries = list(self.config.repositories)
        source_dir = self.config.source_path
        results: list[EntryResult | None] = [None] * len(entries)
        interrupted = False

        logger.debug(
            f"Syncing {len(entries)} repositories into {source_dir} "
            f"with {self.max_workers} worker(s)"
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
            disable=self.console is None,
        ) as progress:
            task = progress.add_task("Syncing repositories...", total=len(entries))
            try:
                if self.max_workers == 1:
                    self._run_sequential(entries, source_dir, results, progress, task)
                else:
                    self._run_concurrent(entries, source_dir, results, progress, task)
            except KeyboardInterrupt:
                interrupted = True
                logger.warning("Interrupted, no further repositories will be synced")

        report = RunReport(interrupted=interrupted)
        for entry, result in zip(entries, results):
            if result is None:
                result = EntryResult(
                    entry=entry,
                    path=resolve(source_dir, entry),
                    outcome=SyncOutcome.failed(INTERRUPTED_REASON),
                )
            report.results.append(result)
        return report

    def _run_sequential(self, entries, source_dir, results, progress, task) -> None:
        for index, entry in enumerate(entries):
            progress.update(task, description=f"Syncing {escape(entry.name)}...")
            results[index] = sync_entry(entry, source_dir, self.transport)
            progress.advance(task)

    def _run_concurrent(self, entries, source_dir, results, progress, task) -> None:
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        futures = {}
        try:
            for index, entry in enumerate(entries):
                future = executor.submit(sync_entry, entry, source_dir, self.transport)
                futures[future] = index
            for future in as_completed(futures):
                index = futures[future]
                results[index] = future.result()
                progress.update(task, description=f"Synced {escape(entries[index].name)}")
                progress.advance(task)
        finally:
            # Pending entries are dropped; running clones/fetches finish.
            executor.shutdown(wait=True, cancel_futures=True)
            # Keep the outcome of entries that finished while shutting down.
            for future, index in futures.items():
                if results[index] is not None or future.cancelled():
                    continue
                if future.exception() is None:
                    results[index] = future.result()


_STATUS_STYLES = {
    SyncStatus.CLONED: ("green", "✓"),
    SyncStatus.UPDATED: ("cyan", "↓"),
    SyncStatus.UNCHANGED: ("dim", "="),
    SyncStatus.FAILED: ("red", "✗"),
}


def print_report(report: RunReport, console: Console) -> None:
    """Print one line per entry, then a summary."""
    for result in report:
        style, mark = _STATUS_STYLES[result.outcome.status]
        name = escape(result.entry.name)
        line = f"  [{style}]{mark} {name}[/{style}] {result.outcome.status.value}"
        if result.outcome.summary and result.outcome.summary.has_new_data:
            line += f" ({len(result.outcome.summary.updated_refs)} refs)"
        if result.outcome.reason:
            line += f": {escape(result.outcome.reason)}"
        console.print(line, highlight=False)

    counts = report.counts()
    console.print("\n[bold]Sync Summary:[/bold]")
    console.print(
        f"  Cloned: {counts[SyncStatus.CLONED]}  "
        f"Updated: {counts[SyncStatus.UPDATED]}  "
        f"Unchanged: {counts[SyncStatus.UNCHANGED]}  "
        f"Failed: {counts[SyncStatus.FAILED]}"
    )

    if report.interrupted:
        console.print("  [yellow]Run interrupted before all repositories were synced[/yellow]")

    failures = report.failures
    if failures:
        console.print(f"  [red]Errors: {len(failures)}[/red]")
        for result in failures:
            console.print(
                f"    • {escape(result.entry.name)}: {escape(result.outcome.reason or '')}",
                highlight=False,
            )
    else:
        console.print(f"  [green]✓ {len(report)} repositories in sync[/green]")
