"""
detector

Brain MRI tumor classification: preprocessing, the CNN, the model store,
training and inference. The HTTP layer lives in `api/`.
"""
