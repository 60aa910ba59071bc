# ======================================================
# training.py - Train the tumor CNN from a labeled folder
# Dataset layout:
#   dataset/yes/*.jpg|jpeg|png   (label 1, tumor)
#   dataset/no/*.jpg|jpeg|png    (label 0, no tumor)
# Unreadable images are skipped; training always starts
# from a fresh model, never from the current artifact.
# ======================================================

from __future__ import annotations

import gc
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.utils import shuffle
from tensorflow.keras.callbacks import Callback

from detector.cnn import build_model
from detector.dataset import LABELS, dataset_counts, list_images
from detector.errors import DatasetError, ImagePreprocessingError, TrainingInProgressError
from detector.model_store import ModelStore, utc_now
from detector.preprocessing import preprocess_image
from detector.settings import DEFAULT_EPOCHS

logger = logging.getLogger(__name__)

BATCH_SIZE = 32
VALIDATION_SPLIT = 0.2
SHUFFLE_SEED = 42


# -----------------------------
# Load images and labels
# -----------------------------
def _load_category(directory: Path, label: int, images: List[np.ndarray], labels: List[int]) -> int:
    skipped = 0
    for path in list_images(directory):
        try:
            _, arr = preprocess_image(path)
        except ImagePreprocessingError as e:
            logger.warning("Skipping unreadable image %s: %s", path.name, e)
            skipped += 1
            continue
        images.append(arr)
        labels.append(label)
    return skipped


def load_dataset(dataset_dir) -> Tuple[np.ndarray, np.ndarray]:
    """
    Preprocess every image of the dataset.

    Returns:
        images: float32 array (N, 128, 128, 3)
        labels: float32 array (N,), labels[i] belongs to images[i]
    """
    dataset_dir = Path(dataset_dir)
    if not dataset_dir.is_dir():
        raise DatasetError(f"Dataset directory doesn't exist: {dataset_dir}")

    dirs = {category: dataset_dir / category for category in LABELS}
    if not all(d.is_dir() for d in dirs.values()):
        raise DatasetError(
            "Dataset must contain 'yes' and 'no' subdirectories for tumor and non-tumor images"
        )
    if any(not list_images(d) for d in dirs.values()):
        raise DatasetError("Both 'yes' and 'no' directories must contain images")

    images: List[np.ndarray] = []
    labels: List[int] = []
    skipped = 0
    for category, directory in dirs.items():
        logger.info("Processing %s images...", category)
        skipped += _load_category(directory, LABELS[category], images, labels)

    if not images:
        raise DatasetError("No valid images found in the dataset")

    positives = int(sum(labels))
    logger.info(
        "Loaded %d images: %d tumor, %d non-tumor. Skipped %d.",
        len(images), positives, len(images) - positives, skipped,
    )
    return np.stack(images), np.asarray(labels, dtype=np.float32)


# -----------------------------
# Fit
# -----------------------------
class EpochLogger(Callback):
    """Logs loss/accuracy after every epoch and keeps them for the metadata."""

    def __init__(self, epochs: int):
        super().__init__()
        self.epochs = epochs
        self.history: List[Dict[str, float]] = []

    def on_epoch_end(self, epoch, logs=None):
        logs = {k: float(v) for k, v in (logs or {}).items()}
        self.history.append({"epoch": epoch + 1, **logs})
        logger.info(
            "Epoch %d/%d completed. Loss: %.4f, Accuracy: %.4f",
            epoch + 1, self.epochs, logs.get("loss", float("nan")), logs.get("accuracy", float("nan")),
        )


@dataclass(frozen=True)
class TrainingReport:
    samples: int
    positives: int
    negatives: int
    epochs: int
    history: List[Dict[str, float]] = field(default_factory=list)

    @property
    def final_loss(self) -> Optional[float]:
        return self.history[-1].get("loss") if self.history else None

    @property
    def final_accuracy(self) -> Optional[float]:
        return self.history[-1].get("accuracy") if self.history else None


def train_model(
    dataset_dir,
    store: ModelStore,
    epochs: int = DEFAULT_EPOCHS,
    batch_size: int = BATCH_SIZE,
    validation_split: float = VALIDATION_SPLIT,
) -> TrainingReport:
    """Train a fresh model on `dataset_dir` and make it the served artifact.

    Raises DatasetError before anything is written if the dataset is unusable.
    """
    logger.info("Starting training with dataset from %s", dataset_dir)
    images, labels = load_dataset(dataset_dir)

    # Keras takes the validation split from the tail, so mix classes first
    images, labels = shuffle(images, labels, random_state=SHUFFLE_SEED)
    if int(len(images) * validation_split) < 1:
        validation_split = 0.0

    model = build_model()
    epoch_logger = EpochLogger(epochs)
    logger.info("Starting model training...")
    model.fit(
        images,
        labels,
        epochs=epochs,
        batch_size=batch_size,
        validation_split=validation_split,
        shuffle=True,
        callbacks=[epoch_logger],
        verbose=0,
    )

    positives = int(labels.sum())
    report = TrainingReport(
        samples=len(labels),
        positives=positives,
        negatives=len(labels) - positives,
        epochs=epochs,
        history=epoch_logger.history,
    )
    store.save(
        model,
        {
            "trained": True,
            "version": f"trained-{utc_now()}",
            "trained_on": str(dataset_dir),
            "dataset": dataset_counts(dataset_dir),
            "samples": {"yes": report.positives, "no": report.negatives, "total": report.samples},
            "epochs": epochs,
            "history": report.history,
        },
    )

    del images, labels, model
    gc.collect()

    store.invalidate()
    logger.info("Model trained and saved to %s", store.model_path)
    return report


def train_model_with_dataset(dataset_dir, store: ModelStore, epochs: int = DEFAULT_EPOCHS) -> bool:
    """Like `train_model`, but reports failure as False instead of raising."""
    try:
        train_model(dataset_dir, store, epochs=epochs)
    except Exception:
        logger.exception("Error training model")
        return False
    return True


# -----------------------------
# Background runs
# -----------------------------
@dataclass(frozen=True)
class TrainingStatus:
    state: str = "idle"  # idle | queued | running | succeeded | failed
    queued_at: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    epochs: Optional[int] = None
    samples: Optional[int] = None
    final_loss: Optional[float] = None
    final_accuracy: Optional[float] = None
    error: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.state in ("queued", "running")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.state,
            "queuedAt": self.queued_at,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
            "epochs": self.epochs,
            "samples": self.samples,
            "finalLoss": self.final_loss,
            "finalAccuracy": self.final_accuracy,
            "error": self.error,
        }


class TrainingManager:
    """
    Runs at most one training job at a time on a background worker.

    `start()` returns as soon as the job is queued. Progress is observed
    through `status()`; finished runs are appended to a CSV log so the last
    outcome is still visible after a restart.
    """

    def __init__(self, dataset_dir, store: ModelStore, log_path: Optional[Path] = None, epochs: int = DEFAULT_EPOCHS):
        self.dataset_dir = Path(dataset_dir)
        self.store = store
        self.log_path = Path(log_path) if log_path else None
        self.epochs = epochs
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="training")
        self._lock = threading.Lock()
        self._status = TrainingStatus()
        self._future = None

    def start(self, epochs: Optional[int] = None) -> TrainingStatus:
        if epochs is None:
            epochs = self.epochs
        with self._lock:
            if self._status.active:
                raise TrainingInProgressError("Training is already in progress")
            self._status = TrainingStatus(state="queued", queued_at=utc_now(), epochs=epochs)
            self._future = self._executor.submit(self._run, epochs)
            return self._status

    def status(self) -> TrainingStatus:
        with self._lock:
            current = self._status
        if current.state == "idle":
            return self.last_run() or current
        return current

    def wait(self, timeout: Optional[float] = None) -> TrainingStatus:
        future = self._future
        if future is not None:
            future.result(timeout=timeout)
        return self.status()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _update(self, **changes) -> TrainingStatus:
        with self._lock:
            self._status = replace(self._status, **changes)
            return self._status

    def _run(self, epochs: int) -> None:
        self._update(state="running", started_at=utc_now())
        try:
            report = train_model(self.dataset_dir, self.store, epochs=epochs)
        except Exception as e:
            logger.exception("Model training failed")
            status = self._update(state="failed", finished_at=utc_now(), error=str(e))
        else:
            logger.info("Model training completed successfully")
            status = self._update(
                state="succeeded",
                finished_at=utc_now(),
                samples=report.samples,
                final_loss=report.final_loss,
                final_accuracy=report.final_accuracy,
            )
        self._append_log(status)

    # -----------------------------
    # Training log (CSV)
    # -----------------------------
    def _append_log(self, status: TrainingStatus) -> None:
        if self.log_path is None:
            return
        try:
            row = pd.DataFrame([asdict(status)])
            if self.log_path.exists():
                row = pd.concat([pd.read_csv(self.log_path), row], ignore_index=True)
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            row.to_csv(self.log_path, index=False)
        except (OSError, ValueError) as e:
            logger.warning("Could not write training log %s: %s", self.log_path, e)

    def last_run(self) -> Optional[TrainingStatus]:
        if self.log_path is None or not self.log_path.exists():
            return None
        try:
            df = pd.read_csv(self.log_path)
        except (OSError, ValueError) as e:
            logger.warning("Could not read training log %s: %s", self.log_path, e)
            return None
        if df.empty:
            return None

        record = df.tail(1).to_dict(orient="records")[0]
        known = set(TrainingStatus.__dataclass_fields__)
        values = {k: (None if pd.isna(v) else v) for k, v in record.items() if k in known}
        for key in ("epochs", "samples"):
            if values.get(key) is not None:
                values[key] = int(values[key])
        return TrainingStatus(**values)
