import json
import threading
import time

import pytest

import detector.model_store as model_store_module
from detector.cnn import MODEL_FORMAT, build_model
from detector.errors import ModelLoadError
from detector.model_store import ModelStore, is_trained_metadata


def test_first_load_creates_placeholder(store):
    assert not store.is_loaded
    assert not store.model_path.exists()

    loaded = store.ensure_loaded()

    assert loaded.is_placeholder
    assert store.is_loaded
    assert store.is_placeholder
    assert store.model_path.exists()
    metadata = json.loads(store.metadata_path.read_text())
    assert metadata["trained"] is False
    assert metadata["format"] == MODEL_FORMAT


def test_loaded_model_is_cached(store):
    assert store.ensure_loaded() is store.ensure_loaded()


def test_existing_placeholder_artifact_stays_placeholder(store, settings):
    store.ensure_loaded()

    reopened = ModelStore(settings.model_path, settings.metadata_path).ensure_loaded()

    assert reopened.is_placeholder


def test_trained_artifact_is_not_placeholder(store, settings):
    store.save(build_model(), {"trained": True})

    loaded = ModelStore(settings.model_path, settings.metadata_path).ensure_loaded()

    assert not loaded.is_placeholder
    assert loaded.metadata["trained"] is True


def test_missing_metadata_means_placeholder(store):
    store.save(build_model(), {"trained": True})
    store.metadata_path.unlink()

    assert store.ensure_loaded().is_placeholder


def test_unexpected_format_means_placeholder(store):
    store.save(build_model(), {"trained": True, "format": "tfjs-layers-model"})

    assert store.ensure_loaded().is_placeholder


def test_invalidate_forces_reload_from_disk(store):
    first = store.ensure_loaded()
    assert first.is_placeholder

    store.save(build_model(), {"trained": True})
    assert store.ensure_loaded() is first

    store.invalidate()
    assert not store.is_loaded
    assert not store.is_placeholder

    second = store.ensure_loaded()
    assert second is not first
    assert not second.is_placeholder


def test_concurrent_first_loads_build_once(store, monkeypatch):
    calls = []

    def slow_build():
        calls.append(1)
        time.sleep(0.2)
        return build_model()

    monkeypatch.setattr(model_store_module, "build_model", slow_build)

    results = []
    threads = [threading.Thread(target=lambda: results.append(store.ensure_loaded())) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(results) == 6
    assert all(r is results[0] for r in results)


def test_corrupt_artifact_raises(store):
    store.model_path.parent.mkdir(parents=True, exist_ok=True)
    store.model_path.write_bytes(b"not a keras archive")

    with pytest.raises(ModelLoadError):
        store.ensure_loaded()
    assert not store.is_loaded


def test_save_leaves_no_temp_files(store):
    store.save(build_model(), {"trained": False})

    leftovers = [p.name for p in store.model_path.parent.iterdir() if ".tmp" in p.name]
    assert leftovers == []


def test_artifact_info(store):
    assert store.artifact_info() == {"exists": False, "lastModified": None}

    store.ensure_loaded()
    info = store.artifact_info()

    assert info["exists"] is True
    assert info["lastModified"]


def test_info_reports_placeholder_flag(store):
    assert store.info() == {"exists": False, "lastModified": None, "placeholder": None}

    store.ensure_loaded()
    assert store.info()["placeholder"] is True

    store.save(build_model(), {"trained": True})
    info = store.info()
    assert info["exists"] is True
    assert info["placeholder"] is False


def test_info_waits_for_save_in_progress(store):
    store.ensure_loaded()
    results = []

    with store._lock:
        reader = threading.Thread(target=lambda: results.append(store.info()))
        reader.start()
        reader.join(0.2)
        assert reader.is_alive()
        assert results == []
        store.save(build_model(), {"trained": True})

    reader.join(5)
    assert results[0]["placeholder"] is False


@pytest.mark.parametrize(
    "metadata, expected",
    [
        (None, False),
        ({}, False),
        ({"trained": False, "format": MODEL_FORMAT}, False),
        ({"trained": True, "format": "other"}, False),
        ({"trained": True, "format": MODEL_FORMAT}, True),
    ],
)
def test_is_trained_metadata(metadata, expected):
    assert is_trained_metadata(metadata) is expected
