import numpy as np
import tensorflow as tf
from tensorflow.keras.layers import Conv2D
import matplotlib.cm as cm
from PIL import Image

from detector.inference import THRESHOLD

# ------------------------------
# Grad-CAM helpers
# ------------------------------
def find_last_conv_layer(model):
    """Find last convolutional layer in model"""
    for layer in reversed(model.layers):
        if isinstance(layer, Conv2D):
            return layer
    raise ValueError("No Conv2D layer found in model.")


def gradcam_heatmap(model, arr, last_conv_layer=None, target=None):
    """
    Compute a Grad-CAM heatmap for one preprocessed image.

    Args:
        model: Sequential tumor CNN
        arr: preprocessed image array (H, W, 3)
        last_conv_layer: conv layer to explain, defaults to the last one
        target: "yes" explains the tumor probability, "no" its complement,
            None explains whichever label the model predicts
    Returns:
        (heatmap in [0, 1] at conv resolution, tumor probability, explained label)
    """
    if last_conv_layer is None:
        last_conv_layer = find_last_conv_layer(model)

    x = tf.convert_to_tensor(np.expand_dims(arr, axis=0), dtype=tf.float32)
    conv_outputs = None
    with tf.GradientTape() as tape:
        # Walk the Sequential by hand so the conv activation stays on the tape
        for layer in model.layers:
            x = layer(x, training=False)
            if layer is last_conv_layer:
                conv_outputs = x
                tape.watch(conv_outputs)
        probability = x[:, 0]
        if target is None:
            target = "yes" if float(probability[0]) >= THRESHOLD else "no"
        score = probability if target == "yes" else 1.0 - probability

    grads = tape.gradient(score, conv_outputs)
    pooled_grads = tf.reduce_mean(grads, axis=(0, 1, 2))
    heatmap = conv_outputs[0] @ pooled_grads[..., tf.newaxis]
    heatmap = tf.maximum(tf.squeeze(heatmap, axis=-1), 0)

    peak = float(tf.reduce_max(heatmap))
    heatmap = heatmap.numpy()
    if peak > 0:
        heatmap = heatmap / peak
    return heatmap.astype(np.float32), float(probability[0]), target


def overlay_heatmap(heatmap, image, alpha=0.4):
    heatmap = Image.fromarray(np.uint8(255 * heatmap)).resize(image.size)
    colored = cm.jet(np.asarray(heatmap) / 255.0)[:, :, :3]
    colored = Image.fromarray(np.uint8(255 * colored))
    return Image.blend(image.convert("RGB"), colored, alpha)
