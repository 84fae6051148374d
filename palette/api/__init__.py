"""
Palette API Module

FastAPI application exposing breakdown runs over HTTP and SSE.
"""
