"""
export_menu and export — build a table and hand it to the sheet exporter.

Both jobs report back on the requester's status message ("please wait…"):

  success   ✅ the report was created and shared
  no data   ℹ️ nothing to export (nothing is written)
  failure   ❌ with the cause; the exception is then re-raised so the
            processor dead-letters the job
"""
from __future__ import annotations

import dataclasses
import html
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from kvjobs.config import Settings
from kvjobs.domain.errors import KVJobsError
from kvjobs.domain.models import ExportJob, ExportMenuJob, JobOrigin, Table
from kvjobs.ports.services import (
    ChatNotifier,
    InventoryRepository,
    ReportGenerator,
    SheetExporter,
)

logger = logging.getLogger(__name__)

UPTIME_EXPORTS = frozenset(
    {"uptime_cat_1", "uptime_cat_2", "uptime_cat_3", "uptime_cat_4", "uptime_invalid"}
)
_LOG_WINDOWS = {
    "log_7_days": (7, "Change log, last 7 days (archive included)"),
    "log_30_days": (30, "Change log, last 30 days (archive included)"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclasses.dataclass(frozen=True)
class _Resolved:
    title: str
    table: Table
    highlight: str | None = None


@dataclasses.dataclass
class ExportHandler:
    """
    Parameters
    ----------
    repository : inventory read side
    reports    : uptime and alert tables
    exporter   : writes a table to a new shared sheet
    notifier   : status-message updates
    settings   : sheet header names
    clock      : timezone-aware "now"
    """

    repository: InventoryRepository
    reports: ReportGenerator
    exporter: SheetExporter
    notifier: ChatNotifier
    settings: Settings
    clock: Callable[[], datetime] = _utcnow

    async def export_menu(self, job: ExportMenuJob) -> None:
        export_type = job.context.export_type
        title = export_type.replace("_", " ").upper()
        try:
            resolved = await self._resolve_menu(export_type, title)
            title = resolved.title
            await self._deliver(job.origin, resolved)
        except Exception as exc:
            await self._report_failure(job.origin, title, exc)
            raise

    async def export(self, job: ExportJob) -> None:
        title = "Contextual report"
        try:
            resolved = await self._resolve_contextual(job)
            title = resolved.title
            await self._deliver(job.origin, resolved)
        except Exception as exc:
            await self._report_failure(job.origin, title, exc)
            raise

    # ------------------------------------------------------------------ #
    # Table selection                                                      #
    # ------------------------------------------------------------------ #

    async def _resolve_menu(self, export_type: str, title: str) -> _Resolved:
        s = self.settings
        match export_type:
            case "log_today":
                table = await self.repository.combined_logs(self._midnight())
                return _Resolved("Change log, today (archive included)", table, s.log_action_header)
            case "log_7_days" | "log_30_days":
                days, label = _LOG_WINDOWS[export_type]
                table = await self.repository.combined_logs(self.clock() - timedelta(days=days))
                return _Resolved(label, table, s.log_action_header)
            case "all_vms":
                return _Resolved("All VMs", await self.repository.all_vms(), s.vm_vcenter_header)
            case str() if export_type.startswith("vms_"):
                vcenter = export_type.removeprefix("vms_").upper()
                table = _filter_rows(await self.repository.all_vms(), s.vm_vcenter_header, vcenter)
                return _Resolved(f"VMs in {vcenter}", table, s.vm_vcenter_header)
            case str() if export_type in UPTIME_EXPORTS:
                table = await self.reports.uptime_export(export_type)
                if table is None:
                    raise KVJobsError(f"No uptime data for {export_type!r}")
                return _Resolved(table.title or title, table, s.vm_uptime_header)
            case "vm_alerts":
                table = await self.reports.vm_alerts()
                highlight = table.headers[0] if table.headers else None
                return _Resolved("VM alert details", table, highlight)
            case _:
                raise KVJobsError(f"Unknown export type {export_type!r}")

    async def _resolve_contextual(self, job: ExportJob) -> _Resolved:
        ctx = job.context
        if ctx.pk:
            return _Resolved(f"History of {ctx.pk}", await self.repository.vm_history(ctx.pk))
        if ctx.timeframe:
            if ctx.timeframe != "today":
                raise KVJobsError(f"Unsupported timeframe {ctx.timeframe!r}")
            return _Resolved("Change log, today", await self.repository.combined_logs(self._midnight()))
        if ctx.list_type:
            if not ctx.item_name:
                raise KVJobsError(f"A {ctx.list_type} export needs an item name")
            if ctx.list_type == "cluster":
                table = await self.repository.vms_in_cluster(ctx.item_name)
            else:
                table = await self.repository.vms_in_datastore(ctx.item_name)
            return _Resolved(f"VMs in {ctx.list_type} {ctx.item_name}", table)
        if ctx.search_term:
            return _Resolved(
                f"Search results for {ctx.search_term!r}",
                await self.repository.search_vms(ctx.search_term),
            )
        raise KVJobsError("Export request names no pk, timeframe, list or search term")

    # ------------------------------------------------------------------ #
    # Delivery                                                             #
    # ------------------------------------------------------------------ #

    async def _deliver(self, origin: JobOrigin | None, resolved: _Resolved) -> None:
        table = resolved.table
        if not table.headers:
            raise KVJobsError("Export produced no header row")
        title = html.escape(resolved.title)

        if not table.rows:
            logger.info("Nothing to export for %r", resolved.title)
            await self._status(origin, f'ℹ️ There is no data to export for "<b>{title}</b>".')
            return

        await self.exporter.export_table(
            table.model_copy(update={"title": resolved.title}), origin, resolved.highlight
        )
        logger.info("Exported %r (%d row(s))", resolved.title, len(table.rows))
        await self._status(origin, f'✅ The report "<b>{title}</b>" was created and shared.')

    async def _report_failure(self, origin: JobOrigin | None, title: str, exc: Exception) -> None:
        text = (
            f'❌ Export "<b>{html.escape(title)}</b>" failed.\n\n'
            f"<i>Cause: {html.escape(str(exc))}</i>"
        )
        try:
            await self._status(origin, text)
        except Exception:
            logger.exception("Could not report the failed export %r", title)

    async def _status(self, origin: JobOrigin | None, text: str) -> None:
        if origin is None or origin.chat_id is None:
            return
        if origin.status_message_id is not None:
            await self.notifier.edit_message(text, origin.chat_id, origin.status_message_id)
        else:
            await self.notifier.send_message(text, origin.chat_id)

    def _midnight(self) -> datetime:
        return self.clock().replace(hour=0, minute=0, second=0, microsecond=0)


def _filter_rows(table: Table, header: str, value: str) -> Table:
    """Rows whose ``header`` column equals value, case-insensitively."""
    index = table.column(header)
    if index == -1:
        raise KVJobsError(f"Column {header!r} not found")
    rows = tuple(row for row in table.rows if str(row[index]).upper() == value)
    return table.model_copy(update={"rows": rows})
