# ======================================================
# Brain Tumor Detector: MRI upload and analysis page
# ======================================================

import base64
import io

import requests
import streamlit as st
from PIL import Image, ImageOps

import api_client

st.set_page_config(page_title="Brain Tumor Detector", layout="wide")

# ======================================================
# SESSION SAFETY
# ======================================================
for k in ["last_file", "result", "gradcam"]:
    if k not in st.session_state:
        st.session_state[k] = None


def load_image_with_orientation(uploaded_file):
    """Load and auto-rotate mobile/desktop images."""
    uploaded_file.seek(0)
    img = Image.open(uploaded_file)
    img = ImageOps.exif_transpose(img)
    return img.convert("RGB")


def fetch_backend_image(path):
    resp = requests.get(api_client.url(path), timeout=30)
    resp.raise_for_status()
    return Image.open(io.BytesIO(resp.content))


# ======================================================
# HEADER
# ======================================================
st.title("🧠 Brain Tumor Detector")
st.subheader("MRI scan classification with a convolutional neural network")
st.caption("Research demo only. Not a diagnostic tool.")

uploaded_file = st.file_uploader("Upload a brain MRI image", type=["jpg", "jpeg", "png"])

if uploaded_file:
    if st.session_state.last_file != uploaded_file.file_id:
        st.session_state.last_file = uploaded_file.file_id
        st.session_state.result = None
        st.session_state.gradcam = None

    img = load_image_with_orientation(uploaded_file)

    if st.session_state.result is None:
        with st.spinner("Analyzing scan..."):
            try:
                st.session_state.result = api_client.analyze(uploaded_file)
            except Exception as e:
                st.error(f"Analysis failed: {e}")

    result = st.session_state.result
    if result:
        if result.get("warningMessage"):
            st.warning(result["warningMessage"])

        c1, c2 = st.columns(2)
        c1.image(img, caption="Uploaded scan", width="content")
        processed_url = result.get("highlightedImageUrl") or result.get("processedImageUrl")
        try:
            c2.image(fetch_backend_image(processed_url), caption="Processed scan", width="content")
        except Exception as e:
            c2.info(f"Processed image unavailable: {e}")

        st.subheader("🔍 Result")
        label = "Tumor detected" if result["prediction"] == "yes" else "No tumor detected"
        st.metric(label, f"{result['confidence'] * 100:.2f}%")

        if result["prediction"] == "yes":
            st.markdown(
                f"""
**Location:** {result.get('tumorLocation')}  
**Size:** {result.get('tumorSize')}  
**Intensity:** {result.get('intensityChar')}
"""
            )
        else:
            st.markdown(
                f"""
**Scan quality:** {result.get('scanQuality')}  
**Areas examined:** {result.get('areasExamined')}
"""
            )

        # ======================================================
        # GRAD-CAM
        # ======================================================
        st.subheader("🔥 Grad-CAM Explanation")
        alpha = st.slider("Heatmap intensity", 0.2, 0.7, 0.4, 0.05)
        if st.button("Explain prediction"):
            with st.spinner("Computing Grad-CAM on backend..."):
                try:
                    resp = api_client.gradcam(uploaded_file, alpha=alpha)
                    b64 = resp["heatmapBase64"].split(",", 1)[-1]
                    st.session_state.gradcam = Image.open(io.BytesIO(base64.b64decode(b64))).convert("RGB")
                except Exception as e:
                    st.error(f"Grad-CAM failed: {e}")
        if st.session_state.gradcam is not None:
            st.image(st.session_state.gradcam, caption="Grad-CAM", width="content")
