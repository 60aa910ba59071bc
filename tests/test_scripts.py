import json

import pytest

import auto_retrain
import bootstrap_model
import retrain_cnn
from detector.cnn import MODEL_FORMAT


@pytest.fixture
def data_root(tmp_path, monkeypatch):
    monkeypatch.setenv("DETECTOR_DATA_ROOT", str(tmp_path))
    monkeypatch.setenv("DETECTOR_TRAIN_EPOCHS", "1")
    return tmp_path


def test_bootstrap_creates_placeholder(data_root):
    bootstrap_model.main([])

    metadata = json.loads((data_root / "model" / "model_metadata.json").read_text())
    assert (data_root / "model" / "cnn_model.keras").exists()
    assert metadata["trained"] is False


def test_retrain_cli_fails_on_missing_dataset(data_root):
    assert retrain_cnn.main(["--dataset", str(data_root / "missing")]) == 1
    assert not (data_root / "model" / "cnn_model.keras").exists()


def test_retrain_cli_trains(data_root, make_image):
    for category in ("yes", "no"):
        folder = data_root / "dataset" / category
        folder.mkdir(parents=True)
        for i in range(2):
            (folder / f"{i}.png").write_bytes(make_image(seed=i))

    assert retrain_cnn.main([]) == 0

    metadata = json.loads((data_root / "model" / "model_metadata.json").read_text())
    assert metadata["trained"] is True
    assert metadata["epochs"] == 1


def test_auto_retrain_skips_small_dataset(data_root):
    assert auto_retrain.main() == 0
    assert not (data_root / "model" / "cnn_model.keras").exists()


@pytest.mark.parametrize(
    "metadata, needed",
    [
        ({}, True),
        ({"trained": False, "format": MODEL_FORMAT, "dataset": {"yes": 5, "no": 5}}, True),
        ({"trained": True, "format": MODEL_FORMAT, "dataset": {"yes": 5, "no": 5}}, False),
        ({"trained": True, "format": MODEL_FORMAT, "dataset": {"yes": 5, "no": 4}}, True),
    ],
)
def test_needs_retrain(metadata, needed):
    assert auto_retrain.needs_retrain({"yes": 5, "no": 5, "total": 10}, metadata) is needed
