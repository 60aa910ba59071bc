import io
import threading

import numpy as np
import pytest
from PIL import Image

import detector.training as training_module
from detector.model_store import ModelStore
from detector.settings import Settings
from detector.training import TrainingReport


def image_bytes(size=(160, 120), fmt="PNG", seed=0, mode="RGB"):
    """Random-noise image of `size` (width, height) encoded as `fmt`."""
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8)
    img = Image.fromarray(arr).convert(mode)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    return image_bytes


@pytest.fixture
def settings(tmp_path):
    s = Settings(root=tmp_path, epochs=1)
    s.ensure_dirs()
    return s


@pytest.fixture
def store(settings):
    return ModelStore(settings.model_path, settings.metadata_path)


@pytest.fixture
def fill_dataset(settings):
    """Write `count` images into a dataset category; returns the written paths."""

    def fill(category, count, size=(160, 120), ext=".png", start=0):
        fmt = "JPEG" if ext.lower() in (".jpg", ".jpeg") else "PNG"
        paths = []
        for i in range(start, start + count):
            path = settings.dataset_dir / category / f"{category}_{i}{ext}"
            path.write_bytes(image_bytes(size=size, fmt=fmt, seed=i))
            paths.append(path)
        return paths

    return fill


@pytest.fixture
def client(settings):
    from fastapi.testclient import TestClient

    from api.main import create_app

    app = create_app(settings)
    with TestClient(app) as c:
        yield c
    app.state.trainer.shutdown(wait=True)


@pytest.fixture
def blocking_train(monkeypatch):
    """Replace the real fit with one that waits until released."""
    release = threading.Event()
    started = threading.Event()

    def fake_train(dataset_dir, store, epochs):
        started.set()
        release.wait(10)
        return TrainingReport(samples=4, positives=2, negatives=2, epochs=epochs,
                              history=[{"epoch": 1, "loss": 0.5, "accuracy": 0.75}])

    monkeypatch.setattr(training_module, "train_model", fake_train)
    return started, release
