"""
Render per-card layouts into PNG images, single-card PDFs and imposed sheets.
"""
