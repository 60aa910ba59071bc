import os

import requests

BACKEND_URL = os.environ.get("DETECTOR_BACKEND_URL", "http://localhost:8000")


def url(path: str) -> str:
    return f"{BACKEND_URL.rstrip('/')}/{path.lstrip('/')}"


def _post_image(endpoint: str, uploaded_file, data=None, timeout=120):
    uploaded_file.seek(0)
    files = {"image": (getattr(uploaded_file, "name", "upload.jpg"), uploaded_file.read(), uploaded_file.type)}
    r = requests.post(url(endpoint), files=files, data=data, timeout=timeout)
    r.raise_for_status()
    return r.json()


def analyze(uploaded_file):
    return _post_image("/api/analyze", uploaded_file)


def gradcam(uploaded_file, alpha=0.4):
    return _post_image("/api/gradcam", uploaded_file, data={"alpha": str(alpha)})


def dataset_status():
    r = requests.get(url("/api/dataset/status"), timeout=30)
    r.raise_for_status()
    return r.json()


def upload_dataset_images(category: str, uploaded_files):
    files = [("images", (f.name, f.getvalue(), f.type)) for f in uploaded_files]
    r = requests.post(url("/api/dataset/upload"), files=files, data={"category": category}, timeout=300)
    r.raise_for_status()
    return r.json()


def clear_category(category: str):
    r = requests.post(url("/api/dataset/clear"), json={"category": category}, timeout=30)
    r.raise_for_status()
    return r.json()


def start_training():
    # 400 (too few images) and 409 (already running) carry a useful message
    r = requests.post(url("/api/dataset/train"), timeout=30)
    return r.json()
