"""
auto_retrain.py

Retrains the CNN only when the dataset is large enough and has changed
since the current model was trained (per-category counts differ from the
ones recorded in the model metadata).
"""

import logging
import sys

from detector.dataset import dataset_counts, ready_for_training
from detector.model_store import ModelStore, is_trained_metadata
from detector.settings import Settings
from detector.training import train_model_with_dataset

logger = logging.getLogger("auto_retrain")


def needs_retrain(counts, metadata):
    if not is_trained_metadata(metadata):
        return True
    trained_on = metadata.get("dataset") or {}
    return any(trained_on.get(c) != counts[c] for c in ("yes", "no"))


def main():
    logging.basicConfig(level=logging.INFO)
    settings = Settings.from_env()
    store = ModelStore(settings.model_path, settings.metadata_path)

    counts = dataset_counts(settings.dataset_dir)
    if not ready_for_training(counts, settings.min_images_per_category):
        logger.info(
            "Not enough images (%d yes / %d no, need %d each). Exiting.",
            counts["yes"], counts["no"], settings.min_images_per_category,
        )
        return 0

    if not needs_retrain(counts, store.read_metadata()):
        logger.info("Dataset unchanged since last training. Nothing to do.")
        return 0

    logger.info("Dataset changed (%d images). Retraining now...", counts["total"])
    return 0 if train_model_with_dataset(settings.dataset_dir, store, epochs=settings.epochs) else 1


if __name__ == "__main__":
    sys.exit(main())
