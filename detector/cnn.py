# ======================================================
# cnn.py - Tumor classifier architecture
# The placeholder and every training run build the model
# here, so saved weights always fit the same topology.
# ======================================================

from tensorflow.keras.layers import Conv2D, Dense, Dropout, Flatten, Input, MaxPooling2D
from tensorflow.keras.models import Sequential
from tensorflow.keras.optimizers import Adam

from detector.settings import IMG_SIZE

INPUT_SHAPE = (IMG_SIZE[0], IMG_SIZE[1], 3)
CONV_FILTERS = (32, 64, 128)
DENSE_UNITS = 128
DROPOUT_RATE = 0.5

# Format tag written next to every saved artifact
MODEL_FORMAT = "keras-sequential-v1"


def build_model():
    """Fresh, randomly initialised and compiled binary classifier."""
    layers = [Input(shape=INPUT_SHAPE)]
    for filters in CONV_FILTERS:
        layers.append(Conv2D(filters, (3, 3), activation="relu"))
        layers.append(MaxPooling2D(pool_size=(2, 2)))
    layers += [
        Flatten(),
        Dense(DENSE_UNITS, activation="relu"),
        Dropout(DROPOUT_RATE),
        Dense(1, activation="sigmoid"),
    ]

    model = Sequential(layers, name="tumor_cnn")
    model.compile(
        optimizer=Adam(),
        loss="binary_crossentropy",
        metrics=["accuracy"],
    )
    return model


def describe_architecture():
    convs = " -> ".join(f"Conv{f}+Pool" for f in CONV_FILTERS)
    return f"CNN {INPUT_SHAPE}: {convs} -> Dense{DENSE_UNITS} -> Dropout{DROPOUT_RATE} -> Dense1(sigmoid)"
