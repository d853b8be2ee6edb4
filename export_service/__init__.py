"""
Export Service - FastAPI application exposing the lesson export pipeline.
"""
