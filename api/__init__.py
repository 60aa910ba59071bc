"""HTTP layer for the brain tumor detector (FastAPI)."""
