# ======================================================
# retrain_cnn.py - Train the tumor CNN from a dataset folder
# Usage: python retrain_cnn.py [--dataset DIR] [--epochs N]
# ======================================================

import argparse
import logging
import sys
from pathlib import Path

from detector.errors import DatasetError
from detector.model_store import ModelStore
from detector.settings import Settings
from detector.training import train_model

logger = logging.getLogger("retrain_cnn")


def main(argv=None):
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Train the brain tumor CNN")
    parser.add_argument("--dataset", type=Path, default=settings.dataset_dir,
                        help="directory with 'yes' and 'no' subfolders")
    parser.add_argument("--epochs", type=int, default=settings.epochs)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    store = ModelStore(settings.model_path, settings.metadata_path)

    try:
        report = train_model(args.dataset, store, epochs=args.epochs)
    except DatasetError as e:
        logger.error("Training failed: %s", e)
        return 1

    logger.info(
        "✅ Training completed on %d images (%d tumor, %d non-tumor). Final loss: %s, accuracy: %s",
        report.samples, report.positives, report.negatives, report.final_loss, report.final_accuracy,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
