# ======================================================
# Dataset management: upload labeled scans, train the CNN
# ======================================================

import streamlit as st

import api_client

st.set_page_config(page_title="Dataset · Brain Tumor Detector", layout="centered")

st.title("🗂️ Training Dataset")
st.caption("Upload labeled MRI scans and retrain the model. At least 5 images per category are required.")

try:
    status = api_client.dataset_status()
except Exception as e:
    st.error(f"Backend unavailable: {e}")
    st.stop()

size = status["datasetSize"]
model = status["model"]
training = status.get("training") or {}

c1, c2, c3 = st.columns(3)
c1.metric("Tumor (yes)", size["yes"])
c2.metric("No tumor (no)", size["no"])
c3.metric("Total", size["total"])

if model["exists"]:
    kind = "untrained placeholder" if model.get("placeholder") else "trained"
    st.info(f"Model: {kind}, last modified {model['lastModified']}")
else:
    st.info("No model yet. The first analysis creates an untrained placeholder.")

if training.get("status") not in (None, "idle"):
    st.write(f"Last training run: **{training['status']}**")
    if training.get("error"):
        st.error(training["error"])

st.divider()

# ======================================================
# UPLOAD
# ======================================================
st.subheader("Upload images")
category = st.radio("Category", ["yes", "no"], horizontal=True,
                    format_func=lambda c: "Tumor (yes)" if c == "yes" else "No tumor (no)")
files = st.file_uploader("Images", type=["jpg", "jpeg", "png"], accept_multiple_files=True)
if st.button("Upload", disabled=not files):
    try:
        resp = api_client.upload_dataset_images(category, files)
        st.success(resp["message"])
    except Exception as e:
        st.error(f"Upload failed: {e}")

# ======================================================
# CLEAR
# ======================================================
st.subheader("Clear a category")
clear_target = st.selectbox("Category to clear", ["yes", "no"])
if st.button("Clear category"):
    try:
        resp = api_client.clear_category(clear_target)
        st.success(resp["message"])
    except Exception as e:
        st.error(f"Clear failed: {e}")

# ======================================================
# TRAIN
# ======================================================
st.subheader("Train model")
if st.button("Start training", disabled=not status["readyForTraining"]):
    resp = api_client.start_training()
    if resp.get("success"):
        st.success(resp["message"])
    else:
        st.warning(resp.get("message", "Training could not be started."))
