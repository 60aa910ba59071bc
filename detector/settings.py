"""
settings.py

Filesystem layout and tunables shared by the API, the scripts and the tests.
Everything lives under a single data root so a test can point the whole
service at a temporary directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

IMG_SIZE = (128, 128)
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")
MIN_IMAGES_PER_CATEGORY = 5
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_EPOCHS = 20


@dataclass(frozen=True)
class Settings:
    root: Path = ROOT
    epochs: int = DEFAULT_EPOCHS
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    min_images_per_category: int = MIN_IMAGES_PER_CATEGORY
    model_filename: str = field(default="cnn_model.keras")

    @classmethod
    def from_env(cls) -> "Settings":
        root = Path(os.environ.get("DETECTOR_DATA_ROOT", ROOT))
        epochs = int(os.environ.get("DETECTOR_TRAIN_EPOCHS", DEFAULT_EPOCHS))
        return cls(root=root, epochs=epochs)

    # ----------------------------
    # Model artifact
    # ----------------------------
    @property
    def model_dir(self) -> Path:
        return self.root / "model"

    @property
    def model_path(self) -> Path:
        return self.model_dir / self.model_filename

    @property
    def metadata_path(self) -> Path:
        return self.model_dir / "model_metadata.json"

    @property
    def training_log_path(self) -> Path:
        return self.model_dir / "training_log.csv"

    # ----------------------------
    # Dataset and uploads
    # ----------------------------
    @property
    def dataset_dir(self) -> Path:
        return self.root / "dataset"

    @property
    def uploads_dir(self) -> Path:
        return self.root / "uploads"

    @property
    def original_dir(self) -> Path:
        return self.uploads_dir / "original"

    @property
    def processed_dir(self) -> Path:
        return self.uploads_dir / "processed"

    def ensure_dirs(self) -> None:
        for path in (
            self.model_dir,
            self.dataset_dir / "yes",
            self.dataset_dir / "no",
            self.original_dir,
            self.processed_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)
