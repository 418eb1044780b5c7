import asyncio
from dataclasses import replace

import pytest
from fakes import RecordingSleep, ScriptedClient

from pps_planner.config import Settings
from pps_planner.errors import (
    CredentialInvalidError,
    CredentialMissingError,
    EmptyInputError,
    StoreError,
    UnknownItemError,
)
from pps_planner.generation_base import RATE_LIMIT
from pps_planner.session import PlanningSession
from pps_planner.store import JsonDocumentStore

ROWS = [
    {"Kode EP": "1.1.1.1", "Uraian Elemen Penilaian": "Pendaftaran pasien"},
    {"Kode EP": "1.1.1.2", "Uraian Elemen Penilaian": "Edukasi pasien"},
    {"Kode EP": "1.1.2.1"},
]


def _settings(tmp_path):
    return Settings(
        api_key="key",
        model="gemini-2.0-flash",
        endpoint="http://localhost",
        request_timeout=5,
        app_id="app",
        store_dir=tmp_path,
        owner_id="owner",
    )


def _session(tmp_path, client=None, store=None, sleep=None, settings=None):
    return PlanningSession(
        settings or _settings(tmp_path),
        client or ScriptedClient(),
        store=store if store is not None else JsonDocumentStore(tmp_path, "app"),
        sleep=sleep or RecordingSleep(),
    )


def test_reimport_restores_annotations_and_summary(tmp_path):
    first = _session(tmp_path, ScriptedClient(["Ringkasan strategis"]))
    first.import_records(ROWS, "Data.xlsx")
    first.update_field("1.1.1.1-0", "corrective_plan", "Audit internal")
    first.update_field("1.1.1.1-0", "responsible", "Tim Mutu")
    asyncio.run(first.generate_summary())
    first.flush()

    second = _session(tmp_path)
    result = second.import_records(ROWS, "Data.xlsx")

    assert result.restored
    item = second.tree.get_item("1.1.1.1-0")
    assert item.corrective_plan == "Audit internal"
    assert item.responsible == "Tim Mutu"
    assert second.summary == "Ringkasan strategis"
    assert result.stats.carried_values == 2


def test_import_of_unusable_rows_is_rejected(tmp_path):
    session = _session(tmp_path)
    with pytest.raises(EmptyInputError):
        session.import_records([{"Kode EP": "1.1"}, {"Nama": "x"}], "Data.xlsx")
    assert session.tree.is_empty()


def test_single_generation_without_source_data_writes_marker(tmp_path):
    client = ScriptedClient()
    session = _session(tmp_path, client)
    session.import_records(ROWS, "Data.xlsx")

    outcome = asyncio.run(session.generate_field("1.1.2.1-2", "corrective_plan"))

    assert not outcome.success
    assert session.tree.get_item("1.1.2.1-2").corrective_plan == "Data tidak cukup untuk ide RTL"
    assert client.prompts == []


def test_single_generation_uses_single_item_delay_and_regenerates(tmp_path):
    sleep = RecordingSleep()
    session = _session(tmp_path, ScriptedClient([RATE_LIMIT, "RTL baru"]), sleep=sleep)
    session.import_records(ROWS, "Data.xlsx")
    session.update_field("1.1.1.1-0", "corrective_plan", "RTL lama")

    outcome = asyncio.run(session.generate_field("1.1.1.1-0", "corrective_plan"))

    assert outcome.success
    assert session.tree.get_item("1.1.1.1-0").corrective_plan == "RTL baru"
    assert sleep.calls == [2.0]


def test_batch_generation_collects_notice_once_and_saves(tmp_path):
    session = _session(tmp_path, ScriptedClient([CredentialInvalidError(), CredentialInvalidError()]))
    session.import_records(ROWS, "Data.xlsx")

    result = asyncio.run(session.generate_all("corrective_plan"))
    session.flush()

    assert (result.success, result.failed) == (0, 2)
    assert session.notices == [
        "Kunci API tidak valid. Harap periksa kembali kunci API dari Google AI Studio dan coba lagi."
    ]
    saved = JsonDocumentStore(tmp_path, "app").get("owner", "Data.xlsx")
    items = saved["tree"]["1"]["standards"]["1"]["criteria"]["1"]["items"]
    assert items[0]["corrective_plan"] == "Gagal diproses: API_KEY_INVALID"


def test_batch_without_api_key_touches_nothing(tmp_path):
    client = ScriptedClient()
    session = _session(tmp_path, client, settings=replace(_settings(tmp_path), api_key=""))
    session.import_records(ROWS, "Data.xlsx")

    with pytest.raises(CredentialMissingError):
        asyncio.run(session.generate_all("corrective_plan"))

    assert client.prompts == []
    assert [item.corrective_plan for item in session.tree.iter_items()] == ["", "", ""]
    assert session.notices == ["Harap masukkan Kunci API Google AI Anda terlebih dahulu."]


def test_batch_saves_finished_chunks_during_cooldown(tmp_path):
    store = JsonDocumentStore(tmp_path, "app")
    saved_during_cooldown = []

    async def sleep(delay):
        await asyncio.sleep(0.05)
        if delay == 1.5:
            document = store.get("owner", "Data.xlsx")
            items = document["tree"]["1"]["standards"]["1"]["criteria"]["1"]["items"]
            saved_during_cooldown.append([item["corrective_plan"] for item in items])

    settings = replace(_settings(tmp_path), chunk_size=1, save_debounce=0)
    session = _session(tmp_path, ScriptedClient(["RTL satu", "RTL dua"]), store=store, sleep=sleep, settings=settings)
    session.import_records(ROWS, "Data.xlsx")

    result = asyncio.run(session.generate_all("corrective_plan"))
    session.flush()

    assert result.chunk_sizes == [1, 1]
    assert saved_during_cooldown == [["RTL satu", ""]]
    items = store.get("owner", "Data.xlsx")["tree"]["1"]["standards"]["1"]["criteria"]["1"]["items"]
    assert [item["corrective_plan"] for item in items] == ["RTL satu", "RTL dua"]


def test_generation_for_unknown_item_is_a_planner_error(tmp_path):
    session = _session(tmp_path)
    session.import_records(ROWS, "Data.xlsx")

    with pytest.raises(UnknownItemError, match="9.9.9.9-0"):
        asyncio.run(session.generate_field("9.9.9.9-0", "corrective_plan"))


def test_store_read_failure_does_not_block_import(tmp_path):
    class BrokenStore(JsonDocumentStore):
        def get(self, owner_id, file_name):
            raise StoreError("unreadable")

        def upsert(self, owner_id, file_name, document):
            raise StoreError("read-only")

    session = _session(tmp_path, store=BrokenStore(tmp_path))
    result = session.import_records(ROWS, "Data.xlsx")

    assert not result.restored
    assert len(result.tree) == 3
    assert session.last_error == "read-only"


def test_export_and_abort_when_idle(tmp_path):
    session = _session(tmp_path)
    assert session.abort_batch() is False
    with pytest.raises(EmptyInputError):
        session.export(tmp_path / "out.csv", "csv")

    session.import_records(ROWS, "Data.xlsx")
    path = session.export(tmp_path / "out.csv", "csv")
    assert path.read_text(encoding="utf-8").startswith("BAB,STANDAR")
