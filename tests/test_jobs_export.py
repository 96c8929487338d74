from datetime import timedelta

import pytest

from conftest import NOW, FakeExporter, FakeReports, FakeRepository, vm_table
from kvjobs.domain.errors import KVJobsError
from kvjobs.domain.models import ExportContext, ExportJob, ExportMenuJob, JobOrigin, Table
from kvjobs.jobs.export import ExportHandler

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository(vm_table(4))


@pytest.fixture
def reports() -> FakeReports:
    return FakeReports()


@pytest.fixture
def exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def handler(repository, reports, exporter, notifier, settings) -> ExportHandler:
    return ExportHandler(repository, reports, exporter, notifier, settings, clock=lambda: NOW)


def _menu(export_type: str, origin: JobOrigin | None) -> ExportMenuJob:
    return ExportMenuJob(origin=origin, context={"export_type": export_type})


# ---------------------------------------------------------------------------
# export_menu
# ---------------------------------------------------------------------------


async def test_all_vms_exported_and_status_edited(handler, exporter, notifier, origin):
    await handler.export_menu(_menu("all_vms", origin))

    [(table, sent_origin, highlight)] = exporter.exported
    assert table.title == "All VMs"
    assert len(table.rows) == 4
    assert sent_origin == origin
    assert highlight == "vCenter"
    [(text, chat_id, message_id)] = notifier.edited
    assert text.startswith("✅")
    assert (chat_id, message_id) == (-1001, 7)


async def test_vcenter_filter(handler, exporter, origin):
    await handler.export_menu(_menu("vms_vc02", origin))
    [(table, _, _)] = exporter.exported
    assert table.title == "VMs in VC02"
    assert {row[2] for row in table.rows} == {"VC02"}
    assert len(table.rows) == 2


async def test_vcenter_filter_missing_column_fails(handler, repository, notifier, origin):
    repository.vms = Table(headers=("Primary Key",), rows=(("VM-1",),))
    with pytest.raises(KVJobsError):
        await handler.export_menu(_menu("vms_vc01", origin))
    [(text, _, _)] = notifier.edited
    assert text.startswith("❌")


@pytest.mark.parametrize(
    ("export_type", "days"),
    [("log_today", None), ("log_7_days", 7), ("log_30_days", 30)],
)
async def test_log_windows(handler, repository, exporter, origin, export_type, days):
    repository.logs = Table(headers=("Primary Key", "Action"), rows=(("VM-1", "MODIFIKASI"),))
    await handler.export_menu(_menu(export_type, origin))

    [since] = [arg for name, arg in repository.calls if name == "combined_logs"]
    if days is None:
        assert since == NOW.replace(hour=0, minute=0)
    else:
        assert since == NOW - timedelta(days=days)
    [(_, _, highlight)] = exporter.exported
    assert highlight == "Action"


async def test_uptime_category_uses_report_title(handler, exporter, origin):
    await handler.export_menu(_menu("uptime_cat_2", origin))
    [(table, _, highlight)] = exporter.exported
    assert table.title == "Uptime 1-2 years"
    assert highlight == "Uptime"


async def test_uptime_without_data_fails(handler, reports, origin):
    reports.uptime = None
    with pytest.raises(KVJobsError):
        await handler.export_menu(_menu("uptime_invalid", origin))


async def test_vm_alerts(handler, exporter, origin):
    await handler.export_menu(_menu("vm_alerts", origin))
    [(table, _, highlight)] = exporter.exported
    assert table.title == "VM alert details"
    assert highlight == "Alert type"


async def test_no_rows_reports_no_data(handler, repository, exporter, notifier, origin):
    repository.vms = vm_table(0)
    await handler.export_menu(_menu("all_vms", origin))
    assert exporter.exported == []
    [(text, _, _)] = notifier.edited
    assert text.startswith("ℹ️")


async def test_no_status_message_sends_instead(handler, repository, notifier):
    repository.vms = vm_table(0)
    await handler.export_menu(_menu("all_vms", JobOrigin(chat_id=5)))
    assert notifier.edited == []
    [(_, chat_id, _)] = notifier.sent
    assert chat_id == 5


async def test_unknown_export_type_fails_and_edits_status(handler, notifier, origin):
    with pytest.raises(KVJobsError, match="Unknown export type"):
        await handler.export_menu(_menu("nonsense", origin))
    [(text, _, _)] = notifier.edited
    assert "NONSENSE" in text


async def test_exporter_failure_is_reported_and_reraised(handler, exporter, notifier, origin):
    exporter.fail = RuntimeError("drive quota")
    with pytest.raises(RuntimeError):
        await handler.export_menu(_menu("all_vms", origin))
    [(text, _, _)] = notifier.edited
    assert "drive quota" in text
    assert "All VMs" in text


async def test_failure_message_failure_keeps_original_error(handler, exporter, notifier, origin):
    exporter.fail = RuntimeError("drive quota")
    notifier.fail = True
    with pytest.raises(RuntimeError, match="drive quota"):
        await handler.export_menu(_menu("all_vms", origin))


async def test_without_origin_nothing_is_messaged(handler, exporter, notifier):
    await handler.export_menu(_menu("all_vms", None))
    assert len(exporter.exported) == 1
    assert notifier.sent == notifier.edited == []


# ---------------------------------------------------------------------------
# export (contextual)
# ---------------------------------------------------------------------------


def _contextual(origin: JobOrigin, **context) -> ExportJob:
    return ExportJob(origin=origin, context=ExportContext(**context))


async def test_history_export(handler, repository, exporter, origin):
    repository.history = Table(headers=("Primary Key", "Action"), rows=(("VM-1", "MODIFIKASI"),))
    await handler.export(_contextual(origin, pk="VM-1"))
    assert ("vm_history", "VM-1") in repository.calls
    [(table, _, _)] = exporter.exported
    assert table.title == "History of VM-1"


async def test_today_timeframe_export(handler, repository, exporter, origin):
    repository.logs = Table(headers=("Primary Key", "Action"), rows=(("VM-1", "MODIFIKASI"),))
    await handler.export(_contextual(origin, timeframe="today"))
    assert ("combined_logs", NOW.replace(hour=0, minute=0)) in repository.calls


async def test_unsupported_timeframe_fails(handler, origin):
    with pytest.raises(KVJobsError):
        await handler.export(_contextual(origin, timeframe="yesterday"))


@pytest.mark.parametrize(
    ("list_type", "call"), [("cluster", "vms_in_cluster"), ("datastore", "vms_in_datastore")]
)
async def test_list_exports(handler, repository, exporter, origin, list_type, call):
    await handler.export(_contextual(origin, list_type=list_type, item_name="CL-01"))
    assert (call, "CL-01") in repository.calls
    [(table, _, _)] = exporter.exported
    assert table.title == f"VMs in {list_type} CL-01"


async def test_list_export_without_item_name_fails(handler, origin):
    with pytest.raises(KVJobsError):
        await handler.export(_contextual(origin, list_type="cluster"))


async def test_search_export(handler, repository, origin):
    await handler.export(_contextual(origin, search_term="db"))
    assert ("search_vms", "db") in repository.calls


async def test_empty_context_fails(handler, notifier, origin):
    with pytest.raises(KVJobsError):
        await handler.export(_contextual(origin))
    [(text, _, _)] = notifier.edited
    assert "Contextual report" in text
