"""
Collaborator ports — the outside world as seen by job handlers.

The spreadsheet repository, the chat transport and the report, scoring,
export and simulation generators live outside kvjobs. Handlers only know the
call/result contracts below. Tables travel as ``Table`` value objects.

All ports are async except HealthScorer, which is a pure function and runs
inline while a batch is scored.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from kvjobs.domain.models import JobOrigin, Table


class ChatNotifier(Protocol):
    """Chat transport. chat_id=None addresses the operator channel."""

    async def send_message(
        self,
        text: str,
        chat_id: int | str | None = None,
        parse_mode: str = "HTML",
    ) -> int | None:
        """Send a message; returns the new message id when the transport has one."""
        ...

    async def edit_message(self, text: str, chat_id: int | str, message_id: int) -> None:
        ...


class InventoryRepository(Protocol):
    """Read side of the spreadsheet-backed inventory."""

    async def all_vms(self) -> Table: ...

    async def all_tickets(self) -> Table: ...

    async def combined_logs(self, since: datetime) -> Table:
        """Active plus archived change log rows newer than since."""
        ...

    async def vm_history(self, pk: str) -> Table: ...

    async def vms_in_cluster(self, name: str) -> Table: ...

    async def vms_in_datastore(self, name: str) -> Table: ...

    async def search_vms(self, term: str) -> Table: ...


class InventorySync(Protocol):
    """Write side: copy source sheets and record detected changes."""

    async def copy_sheet(self, entity: str) -> None: ...

    async def process_changes(self, entity: str) -> None: ...


class ReportGenerator(Protocol):
    async def daily_report(self) -> str:
        """HTML text of the daily VM report."""
        ...

    async def uptime_export(self, export_type: str) -> Table | None:
        """VMs in one uptime category, or None if the category is unknown."""
        ...

    async def vm_alerts(self) -> Table:
        """Current critical VM alerts flattened into a table."""
        ...


class SheetExporter(Protocol):
    async def export_table(
        self,
        table: Table,
        origin: JobOrigin | None,
        highlight_column: str | None = None,
    ) -> None:
        """Write table to a new sheet and share it with the requester."""
        ...


class Simulator(Protocol):
    async def cleanup(self, parameter: str) -> str: ...

    async def migration(self, parameter: str) -> str: ...


class HealthScorer(Protocol):
    def score(
        self,
        row: Sequence[Any],
        headers: Sequence[str],
        history: Sequence[Sequence[Any]],
        tickets: Sequence[Sequence[Any]],
    ) -> tuple[float, list[str]]:
        """Score one VM row; returns (score, reasons). Higher is less healthy."""
        ...
