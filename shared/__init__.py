"""
Shared building blocks for Pothole Snap: settings, logging, wire schemas,
image blobs and the FastAPI service base class.
"""
