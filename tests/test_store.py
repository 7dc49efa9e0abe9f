"""Tests for the JSONL record store."""

from allergen_eval.store import JsonlRecordStore, sanitize_model_name
from allergen_eval.types import InferenceTelemetry

from .conftest import MODEL_A, MODEL_B


def test_sanitize_model_name():
    assert sanitize_model_name("qwen2.5-1.5b-Q4_K_M.gguf") == "qwen2_5_1_5b_Q4_K_M_gguf"


def test_save_and_load_grouped(make_record, tmp_path):
    store = JsonlRecordStore(str(tmp_path))
    records = [
        make_record("milk", "milk", MODEL_A, telemetry=InferenceTelemetry(latency_ms=42)),
        make_record("egg", "EMPTY", MODEL_B),
        make_record("soy", "soy, fish", MODEL_A),
    ]
    result = store.save_many(records)
    assert result.success
    assert result.value == 3
    assert store.path_for(MODEL_A).exists()

    loaded = store.load_grouped()
    assert loaded.success
    assert set(loaded.value) == {MODEL_A, MODEL_B}
    assert loaded.value[MODEL_A] == [records[0], records[2]]
    assert loaded.value[MODEL_A][0].telemetry.latency_ms == 42


def test_save_single_appends(make_record, tmp_path):
    store = JsonlRecordStore(str(tmp_path))
    store.save(make_record("milk", "milk"))
    store.save(make_record("egg", "egg"))
    assert len(store.load_model(MODEL_A).value) == 2


def test_missing_root_is_empty(tmp_path):
    loaded = JsonlRecordStore(str(tmp_path / "nothing")).load_grouped()
    assert loaded.success
    assert loaded.value == {}


def test_malformed_lines_skipped(make_record, tmp_path):
    store = JsonlRecordStore(str(tmp_path))
    store.save(make_record("milk", "milk", "m"))
    with open(store.path_for("m"), 'a', encoding='utf-8') as f:
        f.write("{not json\n")
    loaded = store.load_grouped()
    assert loaded.success
    assert len(loaded.value["m"]) == 1
    assert "1 malformed" in loaded.message


def test_ids_sharing_a_file_stay_separate(make_record, tmp_path):
    store = JsonlRecordStore(str(tmp_path))
    store.save_many([make_record("milk", "milk", "a.b"), make_record("egg", "egg", "a-b")])
    loaded = store.load_grouped().value
    assert set(loaded) == {"a.b", "a-b"}


def test_write_failure_returns_result(make_record, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    result = JsonlRecordStore(str(blocker / "sub")).save(make_record("milk", "milk"))
    assert not result.success
    assert "write failed" in result.message


def test_delete_all(make_record, tmp_path):
    store = JsonlRecordStore(str(tmp_path))
    store.save_many([make_record("milk", "milk", "m1"), make_record("egg", "egg", "m2")])
    assert store.delete_all().value == 2
    assert store.load_grouped().value == {}
