"""HTTP surface of the image editor (FastAPI)."""
