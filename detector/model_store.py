"""
model_store.py

Owns the on-disk model artifact and the in-memory copy served to inference.

The store is Unloaded until the first `ensure_loaded()`. That call either
reads the artifact or, when there is none yet, builds an untrained model of
the same architecture, persists it and flags it as a placeholder. Training
writes a new artifact through `save()` and then calls `invalidate()` so the
next request reloads from disk.

Load and replace are serialized by one lock (first loads are single-flight).
Callers get an immutable `LoadedModel` snapshot, so an inference already
running keeps the model it started with while a new one is swapped in.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from tensorflow.keras.models import load_model

from detector.cnn import MODEL_FORMAT, build_model, describe_architecture
from detector.errors import ModelLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedModel:
    model: Any
    is_placeholder: bool
    metadata: Dict[str, Any] = field(default_factory=dict)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_trained_metadata(metadata: Optional[Dict[str, Any]]) -> bool:
    """A model counts as trained only if its sidecar says so in the current format."""
    if not metadata:
        return False
    return bool(metadata.get("trained")) and metadata.get("format") == MODEL_FORMAT


class ModelStore:
    def __init__(self, model_path: Path, metadata_path: Path):
        self.model_path = Path(model_path)
        self.metadata_path = Path(metadata_path)
        self._lock = threading.RLock()
        self._loaded: Optional[LoadedModel] = None

    # ----------------------------
    # State
    # ----------------------------
    @property
    def is_loaded(self) -> bool:
        return self._loaded is not None

    @property
    def is_placeholder(self) -> bool:
        loaded = self._loaded
        return loaded is not None and loaded.is_placeholder

    def ensure_loaded(self) -> LoadedModel:
        loaded = self._loaded
        if loaded is not None:
            return loaded
        with self._lock:
            if self._loaded is None:
                self._loaded = self._load_or_create()
            return self._loaded

    def invalidate(self) -> None:
        with self._lock:
            self._loaded = None
        logger.info("Model cache invalidated; next request reloads %s", self.model_path)

    # ----------------------------
    # Persistence
    # ----------------------------
    def save(self, model, metadata: Dict[str, Any]) -> None:
        """Write model and metadata, replacing the previous artifact atomically."""
        metadata = {
            "format": MODEL_FORMAT,
            "architecture": describe_architecture(),
            "last_updated": utc_now(),
            **metadata,
        }
        with self._lock:
            self.model_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_model = self.model_path.with_name(f"{self.model_path.stem}.tmp{self.model_path.suffix}")
            tmp_meta = self.metadata_path.with_name(f"{self.metadata_path.name}.tmp")

            model.save(tmp_model)
            with open(tmp_meta, "w") as f:
                json.dump(metadata, f, indent=2)

            os.replace(tmp_model, self.model_path)
            os.replace(tmp_meta, self.metadata_path)
        logger.info("Model saved to %s (trained=%s)", self.model_path, metadata.get("trained"))

    def read_metadata(self) -> Dict[str, Any]:
        if not self.metadata_path.exists():
            return {}
        try:
            with open(self.metadata_path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable model metadata at %s: %s", self.metadata_path, e)
            return {}

    def artifact_info(self) -> Dict[str, Any]:
        if not self.model_path.exists():
            return {"exists": False, "lastModified": None}
        mtime = self.model_path.stat().st_mtime
        return {
            "exists": True,
            "lastModified": datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(),
        }

    def info(self) -> Dict[str, Any]:
        """Artifact presence, mtime and placeholder flag, read together under the store lock.

        `placeholder` is None when there is no artifact yet.
        """
        with self._lock:
            info = self.artifact_info()
            info["placeholder"] = not is_trained_metadata(self.read_metadata()) if info["exists"] else None
        return info

    def _load_or_create(self) -> LoadedModel:
        if not self.model_path.exists():
            logger.warning("⚠️ Using untrained placeholder model - predictions will be inaccurate!")
            logger.warning("⚠️ Upload a dataset of MRI images to train a proper model")
            model = build_model()
            self.save(model, {"trained": False, "version": "placeholder"})
            return LoadedModel(model=model, is_placeholder=True, metadata=self.read_metadata())

        try:
            model = load_model(self.model_path, compile=False)
        except Exception as e:
            logger.exception("Error loading model from %s", self.model_path)
            raise ModelLoadError("Failed to load brain tumor detection model") from e

        metadata = self.read_metadata()
        placeholder = not is_trained_metadata(metadata)
        if placeholder:
            logger.warning("⚠️ Using untrained or placeholder model - predictions may be inaccurate!")
        else:
            logger.info("Loaded trained model from %s", self.model_path)
        return LoadedModel(model=model, is_placeholder=placeholder, metadata=metadata)
