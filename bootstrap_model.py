"""
bootstrap_model.py

Creates the untrained placeholder model so the API can serve predictions
before any dataset has been uploaded. An existing artifact is left alone
unless --force is given.
"""

import argparse
import logging

from detector.model_store import ModelStore
from detector.settings import Settings

logger = logging.getLogger("bootstrap_model")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Create the placeholder tumor CNN")
    parser.add_argument("--force", action="store_true", help="replace any existing model artifact")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    settings = Settings.from_env()
    settings.ensure_dirs()

    if args.force and settings.model_path.exists():
        settings.model_path.unlink()
        logger.info("Removed existing model at %s", settings.model_path)

    loaded = ModelStore(settings.model_path, settings.metadata_path).ensure_loaded()
    state = "placeholder" if loaded.is_placeholder else "trained"
    logger.info("✅ Model ready at %s (%s)", settings.model_path, state)


if __name__ == "__main__":
    main()
