"""
Serving: FastAPI application for ingestion, question answering and search.
"""
