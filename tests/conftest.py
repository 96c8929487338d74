"""Shared fakes for the collaborator ports and a few core fixtures."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from kvjobs.adapters.cache.memory import InMemoryCache
from kvjobs.adapters.lock.memory import InMemoryLock
from kvjobs.adapters.scheduler.memory import InMemoryScheduler
from kvjobs.adapters.storage.memory import InMemoryKeyValueStorage
from kvjobs.config import Settings
from kvjobs.core.blob_store import BlobStore
from kvjobs.core.job_store import JobStore
from kvjobs.core.queue import JobQueue
from kvjobs.domain.models import JobOrigin, Table

NOW = datetime(2024, 5, 17, 14, 30, tzinfo=timezone.utc)

VM_HEADERS = ("Primary Key", "Virtual Machine", "vCenter", "Uptime", "Risk")


def vm_table(count: int) -> Table:
    """count VMs; the Risk column feeds FakeScorer."""
    rows = tuple(
        (f"VM-{i:04d}-VC0{1 + i % 2}", f"vm-{i:04d}", f"VC0{1 + i % 2}", i % 900, i % 7)
        for i in range(count)
    )
    return Table(headers=VM_HEADERS, rows=rows)


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, object, str]] = []
        self.edited: list[tuple[str, object, int]] = []
        self.fail = False
        self._next_id = 100

    async def send_message(self, text, chat_id=None, parse_mode="HTML"):
        if self.fail:
            raise RuntimeError("chat transport down")
        self.sent.append((text, chat_id, parse_mode))
        self._next_id += 1
        return self._next_id

    async def edit_message(self, text, chat_id, message_id):
        if self.fail:
            raise RuntimeError("chat transport down")
        self.edited.append((text, chat_id, message_id))


class FakeRepository:
    def __init__(self, vms: Table | None = None) -> None:
        self.vms = vms or vm_table(0)
        self.logs = Table(headers=("Primary Key", "Action", "Timestamp"))
        self.tickets = Table(headers=("VM Name", "Status"))
        self.history = Table(headers=("Primary Key", "Action"))
        self.calls: list[tuple[str, object]] = []

    async def all_vms(self) -> Table:
        self.calls.append(("all_vms", None))
        return self.vms

    async def all_tickets(self) -> Table:
        self.calls.append(("all_tickets", None))
        return self.tickets

    async def combined_logs(self, since):
        self.calls.append(("combined_logs", since))
        return self.logs

    async def vm_history(self, pk):
        self.calls.append(("vm_history", pk))
        return self.history

    async def vms_in_cluster(self, name):
        self.calls.append(("vms_in_cluster", name))
        return self.vms

    async def vms_in_datastore(self, name):
        self.calls.append(("vms_in_datastore", name))
        return self.vms

    async def search_vms(self, term):
        self.calls.append(("search_vms", term))
        return self.vms


class FakeSync:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def copy_sheet(self, entity):
        self.calls.append(("copy", entity))

    async def process_changes(self, entity):
        self.calls.append(("diff", entity))


class FakeReports:
    def __init__(self) -> None:
        self.uptime: Table | None = Table(
            headers=("Virtual Machine", "Uptime"), rows=(("vm-1", 400),), title="Uptime 1-2 years"
        )
        self.alerts = Table(headers=("Alert type", "VM"), rows=(("uptime", "vm-1"),))

    async def daily_report(self) -> str:
        return "<b>Daily report</b>"

    async def uptime_export(self, export_type):
        return self.uptime

    async def vm_alerts(self):
        return self.alerts


class FakeExporter:
    def __init__(self) -> None:
        self.exported: list[tuple[Table, object, object]] = []
        self.fail: Exception | None = None

    async def export_table(self, table, origin, highlight_column=None):
        if self.fail is not None:
            raise self.fail
        self.exported.append((table, origin, highlight_column))


class FakeSimulator:
    def __init__(self) -> None:
        self.fail: Exception | None = None

    async def cleanup(self, parameter):
        if self.fail is not None:
            raise self.fail
        return f"cleanup of {parameter}: 3 VMs"

    async def migration(self, parameter):
        if self.fail is not None:
            raise self.fail
        return f"migration of {parameter}: fits"


class FakeScorer:
    """Score = Risk column + number of history rows + open tickets."""

    def __init__(self) -> None:
        self.scored: list[str] = []

    def score(self, row, headers, history, tickets):
        self.scored.append(row[1])
        value = float(row[headers.index("Risk")]) + len(history) + len(tickets)
        reasons = ["risky"] if value else []
        return value, reasons


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, operator_chat_id="ops")


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage(max_value_bytes=9 * 1024)


@pytest.fixture
def store(storage) -> JobStore:
    return JobStore(storage)


@pytest.fixture
def scheduler() -> InMemoryScheduler:
    return InMemoryScheduler()


@pytest.fixture
def queue(store, scheduler) -> JobQueue:
    return JobQueue(store, scheduler)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache(max_entry_bytes=2048)


@pytest.fixture
def blobs(cache) -> BlobStore:
    return BlobStore(cache)


@pytest.fixture
def lock() -> InMemoryLock:
    return InMemoryLock()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def origin() -> JobOrigin:
    return JobOrigin(user_id="42", first_name="Ana", chat_id=-1001, status_message_id=7)
