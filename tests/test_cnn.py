import numpy as np
from tensorflow.keras.layers import Conv2D, Dense, Dropout, Flatten, MaxPooling2D
from tensorflow.keras.optimizers import Adam

from detector.cnn import build_model, describe_architecture


def test_topology_matches_fixed_architecture():
    model = build_model()

    kinds = [type(layer) for layer in model.layers]
    assert kinds == [
        Conv2D, MaxPooling2D,
        Conv2D, MaxPooling2D,
        Conv2D, MaxPooling2D,
        Flatten, Dense, Dropout, Dense,
    ]
    assert [l.filters for l in model.layers if isinstance(l, Conv2D)] == [32, 64, 128]
    assert all(l.kernel_size == (3, 3) for l in model.layers if isinstance(l, Conv2D))
    assert [l.units for l in model.layers if isinstance(l, Dense)] == [128, 1]
    assert [l.rate for l in model.layers if isinstance(l, Dropout)] == [0.5]
    assert isinstance(model.optimizer, Adam)


def test_output_is_one_probability_per_image():
    model = build_model()

    out = model.predict(np.random.default_rng(0).random((2, 128, 128, 3), dtype=np.float32), verbose=0)

    assert out.shape == (2, 1)
    assert ((out >= 0) & (out <= 1)).all()


def test_two_builds_share_weight_shapes():
    a, b = build_model(), build_model()

    assert [w.shape for w in a.get_weights()] == [w.shape for w in b.get_weights()]
    b.set_weights(a.get_weights())


def test_describe_architecture_mentions_every_block():
    text = describe_architecture()

    for part in ("Conv32", "Conv64", "Conv128", "Dense128", "Dropout0.5", "sigmoid"):
        assert part in text
