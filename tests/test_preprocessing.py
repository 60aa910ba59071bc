import io

import numpy as np
import pytest
from PIL import Image

from detector.errors import ImagePreprocessingError
from detector.preprocessing import draw_tumor_marker, load_image, preprocess_image


@pytest.mark.parametrize("size", [(400, 100), (90, 300), (128, 128), (37, 41), (1024, 768)])
def test_output_shape_and_range(make_image, size):
    _, arr = preprocess_image(make_image(size=size))

    assert arr.shape == (128, 128, 3)
    assert arr.dtype == np.float32
    assert arr.min() >= 0.0
    assert arr.max() <= 1.0


@pytest.mark.parametrize("mode", ["L", "RGBA", "P"])
def test_non_rgb_inputs_become_three_channels(make_image, mode):
    processed, arr = preprocess_image(make_image(mode=mode))

    assert processed.mode == "RGB"
    assert arr.shape == (128, 128, 3)


def test_wide_image_is_letterboxed_not_stretched(make_image):
    _, arr = preprocess_image(make_image(size=(256, 64)))

    # 256x64 scales to 128x32, centered: rows above and below are black
    assert arr[:40].max() == 0.0
    assert arr[-40:].max() == 0.0
    assert arr[60:68].max() > 0.0


def test_tall_image_is_pillarboxed(make_image):
    _, arr = preprocess_image(make_image(size=(64, 256)))

    assert arr[:, :40].max() == 0.0
    assert arr[:, -40:].max() == 0.0


def test_preprocessing_is_deterministic(make_image):
    data = make_image(size=(300, 200), fmt="JPEG", seed=7)

    _, first = preprocess_image(data)
    _, second = preprocess_image(data)

    assert np.array_equal(first, second)


def test_path_and_bytes_give_same_tensor(tmp_path, make_image):
    data = make_image(seed=3)
    path = tmp_path / "scan.png"
    path.write_bytes(data)

    _, from_path = preprocess_image(path)
    _, from_bytes = preprocess_image(data)
    _, from_file = preprocess_image(io.BytesIO(data))

    assert np.array_equal(from_path, from_bytes)
    assert np.array_equal(from_path, from_file)


def test_contrast_is_stretched():
    # A low-contrast gray gradient ends up spanning (almost) the full range
    ramp = np.tile(np.linspace(100, 140, 128, dtype=np.uint8), (128, 1))
    img = Image.fromarray(ramp).convert("RGB")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")

    _, arr = preprocess_image(buffer.getvalue())

    assert arr.min() < 0.1
    assert arr.max() > 0.9


def test_corrupt_image_raises():
    with pytest.raises(ImagePreprocessingError):
        preprocess_image(b"definitely not an image")


def test_missing_file_raises(tmp_path):
    with pytest.raises(ImagePreprocessingError):
        load_image(tmp_path / "missing.png")


def test_tumor_marker_draws_red_without_touching_original():
    base = Image.new("RGB", (128, 128), (0, 0, 0))

    marked = draw_tumor_marker(base)

    arr = np.asarray(marked)
    red = np.all(arr == [255, 0, 0], axis=-1)
    assert marked.size == (128, 128)
    assert red.any()
    assert not red[:30].any()
    assert np.asarray(base).max() == 0
