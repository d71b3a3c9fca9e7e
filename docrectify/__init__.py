"""
docrectify: document rectification for OCR pipelines.

Corrects skew, perspective tilt and page curl in photographed documents by
locating the page outline (from a segmentation mask or regressed corners)
and resampling it onto a flat rectangular canvas.

Subpackages:
- geometry: pure geometric primitives (hull, rectangle fitting, homography, warp)
- rectify: the rectification orchestrator and its configuration
"""

__version__ = "0.1.0"
