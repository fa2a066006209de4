"""
Serving — FastAPI application for document ingestion and search.

The app is assembled by :func:`rag_ingest.serving.app.create_app` from
components constructed once at process start.
"""
