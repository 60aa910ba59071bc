"""
inference.py

Single-image tumor prediction.

Flow: make sure a model is loaded -> preprocess exactly like training ->
save the processed image for the caller -> average a few forward passes ->
threshold at 0.5 -> attach descriptive text and, for an untrained model,
a warning.

NOTE:
The descriptive fields (location, size, intensity, scan quality, areas
examined) are fixed strings chosen by class. They are not derived from the
image; the CNN only produces a single probability.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

from detector.model_store import ModelStore
from detector.preprocessing import ImageSource, draw_tumor_marker, preprocess_image

logger = logging.getLogger(__name__)

THRESHOLD = 0.5
NUM_RUNS = 3

PLACEHOLDER_WARNING = (
    "WARNING: Using untrained placeholder model. Predictions are not reliable. "
    "Please upload a proper dataset to train the model."
)

POSITIVE_DETAILS = {
    "tumor_location": "Right frontal lobe",
    "tumor_size": "2.3 cm² visible area",
    "intensity_char": "Heterogeneous",
}
NEGATIVE_DETAILS = {
    "scan_quality": "High",
    "areas_examined": "Full brain scan including frontal, parietal, temporal, and occipital lobes",
}


@dataclass(frozen=True)
class PredictionResult:
    prediction: str
    confidence: float
    processed_image_url: str
    probability: float
    warning_message: Optional[str] = None
    highlighted_image_url: Optional[str] = None
    tumor_location: Optional[str] = None
    tumor_size: Optional[str] = None
    intensity_char: Optional[str] = None
    scan_quality: Optional[str] = None
    areas_examined: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "prediction": self.prediction,
            "confidence": self.confidence,
            "processedImageUrl": self.processed_image_url,
            "warningMessage": self.warning_message,
            "highlightedImageUrl": self.highlighted_image_url,
            "tumorLocation": self.tumor_location,
            "tumorSize": self.tumor_size,
            "intensityChar": self.intensity_char,
            "scanQuality": self.scan_quality,
            "areasExamined": self.areas_examined,
        }
        return {k: v for k, v in payload.items() if v is not None}


def classify(probability: float) -> Tuple[str, float]:
    """Probability of "tumor" -> (label, confidence in that label)."""
    if probability >= THRESHOLD:
        return "yes", probability
    return "no", 1.0 - probability


def predict_probability(model, arr: np.ndarray, runs: int = NUM_RUNS) -> float:
    """
    Mean tumor probability over `runs` forward passes.

    Dropout is inactive at inference, so the passes agree and the mean is
    the single-pass value.
    """
    batch = np.expand_dims(arr, axis=0)
    total = 0.0
    for _ in range(runs):
        total += float(model.predict(batch, verbose=0)[0][0])
    return total / runs


def highlighted_name(filename: str) -> str:
    path = Path(filename)
    return f"{path.stem}-highlighted{path.suffix}"


def analyze_image(
    source: ImageSource,
    filename: str,
    store: ModelStore,
    processed_dir: Path,
    url_prefix: str = "/uploads/processed",
) -> PredictionResult:
    """
    Classify one image.

    Args:
        source: path, bytes or file object of the uploaded image
        filename: name used for the processed (and highlighted) copies
        store: model store to read the active model from
        processed_dir: where processed images are written
        url_prefix: public URL prefix of `processed_dir`

    Any preprocessing or model error propagates; no partial result is built.
    """
    loaded = store.ensure_loaded()

    processed, arr = preprocess_image(source)
    processed_dir = Path(processed_dir)
    processed_dir.mkdir(parents=True, exist_ok=True)
    processed.save(processed_dir / filename)

    probability = predict_probability(loaded.model, arr)
    label, confidence = classify(probability)
    logger.info("Prediction for %s: %s (p=%.4f)", filename, label, probability)

    highlighted_url = None
    if label == "yes":
        try:
            marked_name = highlighted_name(filename)
            draw_tumor_marker(processed).save(processed_dir / marked_name)
            highlighted_url = f"{url_prefix}/{marked_name}"
        except Exception as e:
            logger.warning("Could not write highlighted image for %s: %s", filename, e)

    details = POSITIVE_DETAILS if label == "yes" else NEGATIVE_DETAILS
    return PredictionResult(
        prediction=label,
        confidence=confidence,
        probability=probability,
        processed_image_url=f"{url_prefix}/{filename}",
        warning_message=PLACEHOLDER_WARNING if loaded.is_placeholder else None,
        highlighted_image_url=highlighted_url,
        **details,
    )
