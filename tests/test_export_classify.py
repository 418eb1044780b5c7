from datetime import date

import pandas as pd
import pytest

from pps_planner.classify import (
    DEFAULT_DOCUMENT_TYPE,
    build_inventory,
    classify_document,
    group_documents_by_type,
    grouped_document_rows,
)
from pps_planner.export import export_template, export_tree, flatten_rows, output_filename, render_delimited
from pps_planner.schema import TEMPLATE_HEADERS
from pps_planner.tree_builder import build_tree


def _tree():
    rows = [
        {"Kode EP": "1.1.1.1", "Uraian Elemen Penilaian": "B desc", "Keterangan": "SK Kepala tentang Mutu"},
        {"Kode EP": "1.1.1.2.a", "Uraian Elemen Penilaian": "A desc", "Keterangan": "SK Kepala tentang Mutu"},
        {"Kode EP": "2.1.1.1", "Uraian Elemen Penilaian": "C", "Keterangan": "Notulen rapat evaluasi"},
        {"Kode EP": "2.1.1.2", "Uraian Elemen Penilaian": "D"},
        {"Kode EP": "2.1.1.3", "Keterangan": "Gagal diproses: NETWORK_ERROR"},
    ]
    tree = build_tree(rows).tree
    tree.set_field("1.1.1.1-0", "corrective_plan", "Sosialisasi, SOP")
    return tree


@pytest.mark.parametrize(
    "title, expected",
    [
        ("SK Kepala Puskesmas", "SK (Surat Keputusan)"),
        ("SOP Pendaftaran", "SOP (Standar Operasional Prosedur)"),
        ("Dokumen Standar Operasional Prosedur", "SOP (Standar Operasional Prosedur)"),
        ("Risalah Rapat Tinjauan", "Notulen Rapat"),
        ("Laporan Tindak Lanjut Audit", "Laporan"),
        ("Bukti Tindak Lanjut Keluhan", "Bukti Tindak Lanjut"),
        ("Kerangka Acuan Kegiatan Posyandu", "KAK (Kerangka Acuan Kegiatan)"),
        ("Daftar Hadir Pelatihan", "Daftar Hadir"),
        ("Formulir Skrining", "Formulir/Lembar Kerja"),
        ("Dokumentasi Kegiatan Senam", "Bukti Pelaksanaan Kegiatan"),
        ("Foto", DEFAULT_DOCUMENT_TYPE),
    ],
)
def test_classify_document_first_rule_wins(title, expected):
    assert classify_document(title) == expected


def test_inventory_groups_codes_and_skips_markers():
    inventory = build_inventory(_tree())
    assert inventory == [
        {
            "Judul Dokumen (Keterangan)": "SK Kepala tentang Mutu",
            "Kode Elemen Penilaian Terkait": "1.1.1.1, 1.1.1.2.a",
            "Uraian Elemen Penilaian Terkait": "A desc; B desc",
        },
        {
            "Judul Dokumen (Keterangan)": "Notulen rapat evaluasi",
            "Kode Elemen Penilaian Terkait": "2.1.1.1",
            "Uraian Elemen Penilaian Terkait": "C",
        },
    ]


def test_grouped_rows_sorted_by_type():
    tree = _tree()
    groups = group_documents_by_type(tree)
    assert list(groups) == ["Notulen Rapat", "SK (Surat Keputusan)"]
    rows = grouped_document_rows(tree)
    assert [row["Tipe Dokumen"] for row in rows] == ["Notulen Rapat", "SK (Surat Keputusan)", "SK (Surat Keputusan)"]
    assert rows[1]["Rencana Perbaikan"] == "Sosialisasi, SOP"


def test_flatten_rows_depth_first_with_element_suffix():
    rows = flatten_rows(_tree())
    assert [(r["chapter"], r["standard"], r["criterion"], r["element"]) for r in rows][:2] == [
        ("1", "1", "1", "1"),
        ("1", "1", "1", "2.a"),
    ]
    assert set(rows[0]) == {
        "chapter",
        "standard",
        "criterion",
        "element",
        "corrective_plan",
        "indicator",
        "target",
        "timeline",
        "responsible",
        "evidence_title",
    }


def test_csv_export_contains_sections_and_quotes_delimiters(tmp_path):
    path = export_tree(_tree(), tmp_path / "out.csv", "csv", summary="**Audit Mutu Internal**\n- 1.1.1.1")
    content = path.read_text(encoding="utf-8")
    assert content.startswith("BAB,STANDAR,KRITERIA,ELEMEN PENILAIAN,RENCANA PERBAIKAN")
    assert '"Sosialisasi, SOP"' in content
    assert "INVENTARIS DOKUMEN" in content
    assert "PENGELOMPOKAN DOKUMEN BERDASARKAN TIPE" in content
    assert content.endswith("KESIMPULAN & SARAN STRATEGIS AI\n\nAudit Mutu Internal\n- 1.1.1.1")


def test_txt_export_is_tab_separated():
    content = render_delimited(_tree(), delimiter="\t")
    assert content.splitlines()[0].split("\t")[0:2] == ["BAB", "STANDAR"]


def test_xlsx_export_writes_all_sheets(tmp_path):
    path = export_tree(_tree(), tmp_path / "out.xlsx", "xlsx", summary="**Judul**\nIsi")
    sheets = pd.read_excel(path, sheet_name=None, dtype=str, keep_default_na=False)
    assert list(sheets) == ["Data PPS", "Inventaris Dokumen", "Pengelompokan Dokumen", "Kesimpulan AI"]
    assert len(sheets["Data PPS"]) == 5
    summary = pd.read_excel(path, sheet_name="Kesimpulan AI", header=None, dtype=str)
    assert summary.iloc[0, 0] == "Judul"


def test_doc_export_is_escaped_html(tmp_path):
    tree = _tree()
    tree.set_field("2.1.1.2-3", "target", "<b>x</b>")
    content = export_tree(tree, tmp_path / "out.doc", "doc", summary="**Tebal** & <tag>").read_text(encoding="utf-8")
    assert "<h1>Data Perencanaan Perbaikan Strategis</h1>" in content
    assert "&lt;b&gt;x&lt;/b&gt;" in content
    assert "<strong>Tebal</strong> &amp; &lt;tag&gt;" in content


def test_unknown_format_rejected(tmp_path):
    with pytest.raises(ValueError):
        export_tree(_tree(), tmp_path / "out.pdf", "pdf")


def test_template_has_canonical_headers(tmp_path):
    path = export_template(tmp_path / "template.xlsx")
    df = pd.read_excel(path, sheet_name="Template PPS")
    assert list(df.columns) == list(TEMPLATE_HEADERS)
    assert df.empty


def test_output_filename_uses_date():
    assert output_filename("csv", date(2024, 5, 17)) == "Hasil PPS - 2024-05-17.csv"
