"""
HTTP API for the design draft pipeline.
"""
