"""
Batch background-removal service package.

Exposes reusable primitives for decoding images into raster buffers,
running the segmentation strategies, driving per-image jobs through their
lifecycle, and serving the FastAPI application.
"""
