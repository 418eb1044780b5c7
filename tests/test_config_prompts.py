import pytest

from pps_planner.config import load_prompt_config, load_settings
from pps_planner.models import Item
from pps_planner.prompts import DEFAULT_FIELD_PROMPTS, build_field_prompts, get_field_prompt


def test_load_settings_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("GEMINI_API_KEY", "abc")
    monkeypatch.setenv("BATCH_CHUNK_SIZE", "7")
    monkeypatch.setenv("CHUNK_COOLDOWN_SECONDS", "not-a-number")
    monkeypatch.setenv("PPS_STORE_DIR", str(tmp_path))
    settings = load_settings()
    assert settings.api_key == "abc"
    assert settings.chunk_size == 7
    assert settings.chunk_cooldown == 1.5
    assert settings.store_dir == tmp_path
    assert settings.max_attempts == 3


def test_prompt_config_missing_file_means_defaults(tmp_path):
    assert load_prompt_config(tmp_path / "missing.yaml") == {}
    assert build_field_prompts({}) == dict(DEFAULT_FIELD_PROMPTS)


def test_prompt_overrides_merge_over_defaults(tmp_path):
    path = tmp_path / "prompts.yaml"
    path.write_text(
        "fields:\n  target:\n    role: Anda adalah kepala puskesmas\n    sources: [description]\n",
        encoding="utf-8",
    )
    prompts = build_field_prompts(load_prompt_config(path))
    assert prompts["target"].role == "Anda adalah kepala puskesmas"
    assert prompts["target"].sources == ("description",)
    assert prompts["target"].task == DEFAULT_FIELD_PROMPTS["target"].task


def test_invalid_overrides_are_rejected():
    with pytest.raises(ValueError):
        build_field_prompts({"timeline": {"role": "x"}})
    with pytest.raises(ValueError):
        build_field_prompts({"target": {"sources": ["nope"]}})
    with pytest.raises(ValueError):
        get_field_prompt(DEFAULT_FIELD_PROMPTS, "code")


def test_insufficient_marker_override_must_stay_recognisable():
    prompts = build_field_prompts({"target": {"insufficient_marker": "Data tidak cukup untuk sasaran unit"}})
    item = Item(id="1.1.1.1-0", code="1.1.1.1", target=prompts["target"].insufficient_marker)
    assert prompts["target"].needs_value(item)

    with pytest.raises(ValueError):
        build_field_prompts({"target": {"insufficient_marker": "Belum ada data"}})


def test_render_uses_sanitized_sources():
    item = Item(
        id="1.1.1.1-0",
        code="1.1.1.1",
        corrective_plan="Sosialisasi SOP",
        indicator="Gagal diproses: NETWORK_ERROR",
        target="Meningkatnya kepatuhan",
    )
    prompt = DEFAULT_FIELD_PROMPTS["evidence_title"].render(item)
    assert prompt.startswith("PERAN: Anda adalah auditor akreditasi.")
    assert '- Rencana Perbaikan: "Sosialisasi SOP"' in prompt
    assert '- Indikator: ""' in prompt
    assert "Gagal diproses" not in prompt
