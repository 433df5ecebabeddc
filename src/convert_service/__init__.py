"""
File Conversion Service package.

Converts batches of uploaded files (SVG/raster images to PNG, WebP or PDF)
one file at a time and exposes the pipeline through a FastAPI application,
a Streamlit front-end and a command-line tool.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
