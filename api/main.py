# main.py
import base64
import io
import logging
import traceback
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import Body, FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from detector.dataset import (
    CATEGORIES,
    clear_category,
    dataset_counts,
    ready_for_training,
    save_dataset_image,
    unique_filename,
)
from detector.errors import DatasetError, TrainingInProgressError
from detector.gradcam import gradcam_heatmap, overlay_heatmap
from detector.inference import analyze_image, classify
from detector.model_store import ModelStore
from detector.preprocessing import preprocess_image
from detector.settings import Settings
from detector.training import TrainingManager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

KAGGLE_DATASET_URL = "https://www.kaggle.com/datasets/navoneel/brain-mri-images-for-brain-tumor-detection"

CONTENT_TYPE_EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/jpg": ".jpg"}


def _error(status_code: int, message: str, **extra):
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def _original_name(file: UploadFile) -> str:
    """Upload name; a name without any suffix takes one from the content type.

    Other suffixes (.gif, .bmp, ...) are kept so the dataset filter still sees them.
    """
    name = file.filename or "upload"
    if not Path(name).suffix:
        name += CONTENT_TYPE_EXTENSIONS.get(file.content_type, "")
    return name


def _upload_name(file: UploadFile, prefix: str) -> str:
    name = _original_name(file)
    if not Path(name).suffix:
        name += ".png"
    return unique_filename(name, prefix=prefix)


def _is_image(file: UploadFile) -> bool:
    return bool(file.content_type) and file.content_type.startswith("image/")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.ensure_dirs()

    store = ModelStore(settings.model_path, settings.metadata_path)
    trainer = TrainingManager(
        settings.dataset_dir,
        store,
        log_path=settings.training_log_path,
        epochs=settings.epochs,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        trainer.shutdown(wait=False)

    app = FastAPI(title="Brain Tumor Detection API", lifespan=lifespan)
    app.state.settings = settings
    app.state.model_store = store
    app.state.trainer = trainer

    async def read_upload(file: UploadFile) -> bytes:
        data = await file.read()
        if len(data) > settings.max_upload_bytes:
            raise DatasetError("File too large (max 10MB)")
        return data

    # ----------------------------
    # Health check
    # ----------------------------
    @app.get("/")
    def health():
        return {
            "status": "ok",
            "model_loaded": store.is_loaded,
            "placeholder": store.is_placeholder,
        }

    # ----------------------------
    # Image upload
    # ----------------------------
    @app.post("/api/upload")
    async def upload(image: Optional[UploadFile] = File(None)):
        if image is None:
            return _error(400, "No file uploaded")
        if not _is_image(image):
            return _error(400, "Only image uploads are supported")
        try:
            data = await read_upload(image)
        except DatasetError as e:
            return _error(400, str(e))

        filename = _upload_name(image, prefix="image")
        (settings.original_dir / filename).write_bytes(data)
        return {
            "success": True,
            "message": "File uploaded successfully",
            "imageUrl": f"/uploads/original/{filename}",
        }

    # ----------------------------
    # Prediction
    # ----------------------------
    @app.post("/api/analyze")
    async def analyze(image: Optional[UploadFile] = File(None)):
        if image is None:
            return _error(400, "No file uploaded")
        if not _is_image(image):
            return _error(400, "Only image uploads are supported")
        try:
            data = await read_upload(image)
        except DatasetError as e:
            return _error(400, str(e))

        filename = _upload_name(image, prefix="image")
        original_path = settings.original_dir / filename
        original_path.write_bytes(data)

        try:
            result = await run_in_threadpool(
                analyze_image, original_path, filename, store, settings.processed_dir
            )
        except Exception as e:
            logger.exception("Analysis error")
            return _error(500, "Error analyzing image", error=str(e), trace=traceback.format_exc())
        return result.to_dict()

    # ----------------------------
    # Grad-CAM
    # ----------------------------
    @app.post("/api/gradcam")
    async def gradcam(
        image: Optional[UploadFile] = File(None),
        alpha: float = Form(0.4),
        target: Optional[str] = Form(None),
    ):
        if image is None:
            return _error(400, "No file uploaded")
        if not _is_image(image):
            return _error(400, "Only image uploads are supported")
        try:
            data = await read_upload(image)
        except DatasetError as e:
            return _error(400, str(e))
        if target not in (None, *CATEGORIES):
            return _error(400, "Invalid target. Must be 'yes' or 'no'")

        def explain():
            loaded = store.ensure_loaded()
            processed, arr = preprocess_image(data)
            heatmap, probability, explained = gradcam_heatmap(loaded.model, arr, target=target)
            overlay = overlay_heatmap(heatmap, processed, alpha=alpha)
            buffer = io.BytesIO()
            overlay.save(buffer, format="PNG")
            return probability, explained, base64.b64encode(buffer.getvalue()).decode("utf-8")

        try:
            probability, explained, overlay_b64 = await run_in_threadpool(explain)
        except Exception as e:
            logger.exception("Grad-CAM error")
            return _error(500, "Error computing Grad-CAM", error=str(e), trace=traceback.format_exc())

        label, _ = classify(probability)
        return {
            "prediction": label,
            "probability": probability,
            "target": explained,
            "heatmapBase64": f"data:image/png;base64,{overlay_b64}",
        }

    # ----------------------------
    # Dataset management
    # ----------------------------
    @app.post("/api/dataset/upload")
    async def dataset_upload(
        category: Optional[str] = Form(None),
        images: Optional[List[UploadFile]] = File(None),
    ):
        if not images:
            return _error(400, "No files uploaded")
        if category not in CATEGORIES:
            return _error(400, "Invalid category. Must be 'yes' or 'no'")

        saved = 0
        for file in images:
            if not _is_image(file):
                logger.warning("Skipping non-image upload %s (%s)", file.filename, file.content_type)
                continue
            try:
                data = await read_upload(file)
                save_dataset_image(settings.dataset_dir, category, _original_name(file), data)
            except DatasetError as e:
                logger.warning("Skipping %s: %s", file.filename, e)
                continue
            saved += 1

        if saved == 0:
            return _error(400, "No valid image files uploaded")
        return {
            "success": True,
            "message": f"Successfully uploaded {saved} images to the {category} category",
            "fileCount": saved,
        }

    @app.get("/api/dataset/status")
    def dataset_status():
        counts = dataset_counts(settings.dataset_dir)
        model_info = store.info()
        return {
            "success": True,
            "datasetSize": counts,
            "model": model_info,
            "readyForTraining": ready_for_training(counts, settings.min_images_per_category),
            "training": trainer.status().to_dict(),
        }

    @app.post("/api/dataset/train")
    def dataset_train():
        counts = dataset_counts(settings.dataset_dir)
        size = {"yes": counts["yes"], "no": counts["no"]}
        if not ready_for_training(counts, settings.min_images_per_category):
            return _error(
                400,
                f"Not enough images for training. Upload at least "
                f"{settings.min_images_per_category} images for each category.",
                counts=size,
            )
        try:
            status = trainer.start()
        except TrainingInProgressError as e:
            return _error(409, str(e), training=trainer.status().to_dict())

        return {
            "success": True,
            "message": "Training started in the background. This may take some time.",
            "datasetSize": size,
            "training": status.to_dict(),
        }

    @app.post("/api/dataset/clear")
    def dataset_clear(payload: Optional[dict] = Body(None)):
        category = (payload or {}).get("category")
        try:
            deleted = clear_category(settings.dataset_dir, category)
        except DatasetError as e:
            return _error(400, str(e))

        if deleted == 0:
            message = f"No images to clear. The {category} category is already empty."
        else:
            message = f"Successfully cleared {deleted} images from the {category} category"
        return {"success": True, "message": message, "deletedCount": deleted}

    @app.post("/api/dataset/download-from-kaggle")
    def download_from_kaggle():
        return {
            "success": False,
            "message": (
                f"To use the Kaggle dataset, please manually download it from {KAGGLE_DATASET_URL} "
                "and upload the images to the app using the dataset upload feature. The dataset "
                "should be organized into 'yes' (tumor) and 'no' (non-tumor) categories."
            ),
        }

    # ----------------------------
    # Static files
    # ----------------------------
    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir), name="uploads")
    app.mount("/dataset", StaticFiles(directory=settings.dataset_dir), name="dataset")

    return app


app = create_app()
