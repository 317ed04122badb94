"""Tests for the bulk sync engine."""

import threading
import time
from concurrent.futures import wait
from pathlib import Path

import pytest
from git import Repo
from rich.console import Console

from shepherd.config import RepositoryEntry, ShepherdConfig
from shepherd.errors import TransportError
from shepherd.git_ops import FetchSummary
from shepherd.inspector import RepoState
from shepherd.syncer import (
    INTERRUPTED_REASON,
    EntryResult,
    RepoSyncer,
    RunReport,
    SyncOutcome,
    SyncStatus,
    print_report,
    sync_entry,
)


class StubTransport:
    """Transport that records calls instead of running git."""

    def __init__(
        self,
        fail_urls: set[str] | None = None,
        new_data_paths: set[Path] | None = None,
        delays: dict[str, float] | None = None,
        create_dirs: bool = True,
    ):
        self.fail_urls = fail_urls or set()
        self.new_data_paths = new_data_paths or set()
        self.delays = delays or {}
        self.create_dirs = create_dirs
        self.clone_calls: list[tuple[str, Path]] = []
        self.fetch_calls: list[Path] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        return len(self.clone_calls) + len(self.fetch_calls)

    def clone(self, url: str, destination: Path) -> None:
        with self._lock:
            self.clone_calls.append((url, destination))
        time.sleep(self.delays.get(url, 0))
        if url in self.fail_urls:
            raise TransportError(f"Clone failed: cannot reach {url}")
        if self.create_dirs:
            destination.mkdir(parents=True)

    def fetch(self, path: Path) -> FetchSummary:
        with self._lock:
            self.fetch_calls.append(path)
        if path in self.new_data_paths:
            return FetchSummary(updated_refs=["origin/main"])
        return FetchSummary()


def make_config(source_dir: Path, *entries: RepositoryEntry, jobs: int = 1) -> ShepherdConfig:
    return ShepherdConfig(source_dir=str(source_dir), jobs=jobs, repositories=list(entries))


ENTRY_A = RepositoryEntry(name="a", url="u1")
ENTRY_B = RepositoryEntry(name="b", url="u2", category="work")


class TestExampleScenarios:
    """The two reference scenarios, with the inspector stubbed by path."""

    def test_all_absent_are_cloned(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("shepherd.syncer.inspect", lambda path, url=None: RepoState.ABSENT)
        transport = StubTransport(create_dirs=False)

        report = RepoSyncer(make_config(Path("/root"), ENTRY_A, ENTRY_B), transport=transport).run()

        assert [(r.entry.name, r.outcome.status) for r in report] == [
            ("a", SyncStatus.CLONED),
            ("b", SyncStatus.CLONED),
        ]
        assert [r.path for r in report] == [Path("/root/a"), Path("/root/work/b")]
        assert transport.clone_calls == [("u1", Path("/root/a")), ("u2", Path("/root/work/b"))]

    def test_unchanged_and_occupied(self, monkeypatch: pytest.MonkeyPatch):
        states = {
            Path("/root/a"): RepoState.VALID_REPO,
            Path("/root/work/b"): RepoState.OCCUPIED,
        }
        monkeypatch.setattr("shepherd.syncer.inspect", lambda path, url=None: states[path])
        transport = StubTransport()

        report = RepoSyncer(make_config(Path("/root"), ENTRY_A, ENTRY_B), transport=transport).run()

        assert [(r.entry.name, r.outcome.status) for r in report] == [
            ("a", SyncStatus.UNCHANGED),
            ("b", SyncStatus.FAILED),
        ]
        assert report.results[1].outcome.reason == "path occupied by non-repository content"
        # Only the valid repository reached the transport
        assert transport.fetch_calls == [Path("/root/a")]
        assert transport.clone_calls == []


class TestSyncEntry:
    """Tests for sync_entry() against a real filesystem."""

    def test_absent_is_cloned(self, source_dir: Path):
        transport = StubTransport()
        result = sync_entry(ENTRY_B, source_dir, transport)

        assert result.outcome == SyncOutcome.cloned()
        assert result.path == source_dir / "work" / "b"
        assert transport.clone_calls == [("u2", source_dir / "work" / "b")]

    def test_plain_file_fails_without_transport_call(self, source_dir: Path):
        """Test that an occupied path short-circuits before any transport call."""
        (source_dir / "a").write_text("precious user data")
        transport = StubTransport()

        result = sync_entry(ENTRY_A, source_dir, transport)

        assert result.outcome.status is SyncStatus.FAILED
        assert result.outcome.reason == "path occupied by non-repository content"
        assert transport.call_count == 0
        assert (source_dir / "a").read_text() == "precious user data"

    def test_clone_failure_carries_reason(self, source_dir: Path):
        transport = StubTransport(fail_urls={"u1"})
        result = sync_entry(ENTRY_A, source_dir, transport)
        assert result.outcome == SyncOutcome.failed("Clone failed: cannot reach u1")

    def test_valid_repo_with_new_data_is_updated(self, source_dir: Path, origin_repo: Path):
        entry = RepositoryEntry(name="origin", url=str(origin_repo))
        Repo.clone_from(str(origin_repo), source_dir / "origin").close()
        transport = StubTransport(new_data_paths={source_dir / "origin"})

        result = sync_entry(entry, source_dir, transport)

        assert result.outcome.status is SyncStatus.UPDATED
        assert result.outcome.summary.updated_refs == ["origin/main"]
        assert transport.clone_calls == []

    def test_unexpected_error_becomes_failure(self, source_dir: Path):
        class ExplodingTransport(StubTransport):
            def clone(self, url, destination):
                raise RuntimeError("boom")

        result = sync_entry(ENTRY_A, source_dir, ExplodingTransport())
        assert result.outcome.status is SyncStatus.FAILED
        assert "boom" in result.outcome.reason


class TestRepoSyncer:
    """Tests for RepoSyncer.run()."""

    def test_report_has_one_result_per_entry(self, source_dir: Path):
        """Test that failures never shorten or reorder the report."""
        entries = [RepositoryEntry(name=f"r{i}", url=f"u{i}") for i in range(6)]
        (source_dir / "r2").write_text("occupied")
        transport = StubTransport(fail_urls={"u0", "u4"})

        report = RepoSyncer(make_config(source_dir, *entries), transport=transport).run()

        assert len(report) == 6
        assert [r.entry.name for r in report] == [e.name for e in entries]
        assert [r.outcome.status for r in report] == [
            SyncStatus.FAILED,
            SyncStatus.CLONED,
            SyncStatus.FAILED,
            SyncStatus.CLONED,
            SyncStatus.FAILED,
            SyncStatus.CLONED,
        ]
        assert report.has_failures
        assert [r.entry.name for r in report.failures] == ["r0", "r2", "r4"]

    def test_empty_registry(self, source_dir: Path):
        report = RepoSyncer(make_config(source_dir), transport=StubTransport()).run()
        assert len(report) == 0
        assert not report.has_failures

    def test_concurrent_run_keeps_registry_order(self, source_dir: Path):
        """Test that results are reassembled in registry order, not completion order."""
        entries = [RepositoryEntry(name=f"r{i}", url=f"u{i}") for i in range(5)]
        # Earlier entries finish last
        delays = {f"u{i}": 0.05 * (5 - i) for i in range(5)}
        transport = StubTransport(fail_urls={"u1"}, delays=delays)

        report = RepoSyncer(
            make_config(source_dir, *entries), transport=transport, max_workers=4
        ).run()

        assert [r.entry.name for r in report] == ["r0", "r1", "r2", "r3", "r4"]
        assert report.results[1].outcome.status is SyncStatus.FAILED
        assert sum(1 for r in report if r.outcome.status is SyncStatus.CLONED) == 4

    def test_max_workers_defaults_to_config_jobs(self, source_dir: Path):
        syncer = RepoSyncer(make_config(source_dir, jobs=3), transport=StubTransport())
        assert syncer.max_workers == 3

    def test_max_workers_override(self, source_dir: Path):
        syncer = RepoSyncer(make_config(source_dir, jobs=3), transport=StubTransport(), max_workers=1)
        assert syncer.max_workers == 1

    def test_interrupt_stops_launching_entries(self, source_dir: Path):
        """Test that an interrupt marks the remaining entries and keeps the report complete."""
        entries = [RepositoryEntry(name=f"r{i}", url=f"u{i}") for i in range(4)]

        class InterruptingTransport(StubTransport):
            def clone(self, url, destination):
                if url == "u2":
                    raise KeyboardInterrupt
                super().clone(url, destination)

        transport = InterruptingTransport()
        report = RepoSyncer(make_config(source_dir, *entries), transport=transport).run()

        assert report.interrupted
        assert len(report) == 4
        assert [r.outcome.status for r in report.results[:2]] == [SyncStatus.CLONED] * 2
        assert [r.outcome.reason for r in report.results[2:]] == [INTERRUPTED_REASON] * 2
        # Nothing after the interrupt was attempted
        assert [url for url, _ in transport.clone_calls] == ["u0", "u1"]

    def test_concurrent_interrupt_keeps_finished_entries(
        self, source_dir: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Test that entries that finished before the interrupt keep their outcome."""
        entries = [RepositoryEntry(name=f"r{i}", url=f"u{i}") for i in range(2)]

        def interrupted_as_completed(futures):
            wait(futures)
            raise KeyboardInterrupt

        monkeypatch.setattr("shepherd.syncer.as_completed", interrupted_as_completed)
        transport = StubTransport()

        report = RepoSyncer(
            make_config(source_dir, *entries), transport=transport, max_workers=2
        ).run()

        assert report.interrupted
        assert [(r.entry.name, r.outcome.status) for r in report] == [
            ("r0", SyncStatus.CLONED),
            ("r1", SyncStatus.CLONED),
        ]

    def test_concurrent_interrupt_in_worker(self, source_dir: Path):
        """Test that only the interrupted entry is reported as not synced."""
        entries = [RepositoryEntry(name=f"r{i}", url=f"u{i}") for i in range(2)]

        class InterruptingTransport(StubTransport):
            def clone(self, url, destination):
                if url == "u1":
                    raise KeyboardInterrupt
                super().clone(url, destination)

        report = RepoSyncer(
            make_config(source_dir, *entries), transport=InterruptingTransport(), max_workers=2
        ).run()

        assert report.interrupted
        assert report.results[0].outcome.status is SyncStatus.CLONED
        assert report.results[1].outcome == SyncOutcome.failed(INTERRUPTED_REASON)

    def test_real_git_end_to_end(self, source_dir: Path, origin_repo: Path, add_commit):
        """Test clone, then unchanged, then updated with the GitPython transport."""
        config = make_config(
            source_dir, RepositoryEntry(name="origin", url=str(origin_repo), category="mirrors")
        )

        first = RepoSyncer(config).run()
        assert first.results[0].outcome.status is SyncStatus.CLONED
        assert (source_dir / "mirrors" / "origin" / "README.md").exists()

        second = RepoSyncer(config).run()
        assert second.results[0].outcome.status is SyncStatus.UNCHANGED

        add_commit(origin_repo, "NEW.md", "new\n", "Another commit")
        third = RepoSyncer(config).run()
        assert third.results[0].outcome.status is SyncStatus.UPDATED


class TestRunReport:
    """Tests for RunReport and its rendering."""

    def _report(self) -> RunReport:
        return RunReport(
            results=[
                sync_entry_result("a", SyncOutcome.cloned()),
                sync_entry_result("b", SyncOutcome.updated(FetchSummary(["origin/main"]))),
                sync_entry_result("c", SyncOutcome.unchanged()),
                sync_entry_result("d", SyncOutcome.failed("Fetch failed: [fatal] no route")),
            ]
        )

    def test_counts(self):
        counts = self._report().counts()
        assert counts == {
            SyncStatus.CLONED: 1,
            SyncStatus.UPDATED: 1,
            SyncStatus.UNCHANGED: 1,
            SyncStatus.FAILED: 1,
        }

    def test_print_report(self):
        console = Console(record=True, width=200)
        print_report(self._report(), console)
        text = console.export_text()

        lines = text.splitlines()
        assert lines[0].strip().endswith("a cloned")
        assert "b updated (1 refs)" in lines[1]
        assert "c unchanged" in lines[2]
        # Markup-like text in reasons is printed literally
        assert "d failed: Fetch failed: [fatal] no route" in lines[3]
        assert "Cloned: 1  Updated: 1  Unchanged: 1  Failed: 1" in text
        assert "Errors: 1" in text

    def test_print_report_all_ok(self):
        console = Console(record=True, width=200)
        print_report(RunReport(results=[sync_entry_result("a", SyncOutcome.cloned())]), console)
        assert "1 repositories in sync" in console.export_text()


def sync_entry_result(name: str, outcome: SyncOutcome) -> EntryResult:
    return EntryResult(
        entry=RepositoryEntry(name=name, url=f"git@example.com:me/{name}.git"),
        path=Path("/src") / name,
        outcome=outcome,
    )
