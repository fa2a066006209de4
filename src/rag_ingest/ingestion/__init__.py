"""
Ingestion — document loading, cleaning, chunking, quality gating and enrichment.

This module is responsible for the ETL-like pipeline that converts raw
sources (PDF, DOCX, plain text, CSV, hosted dataset rows) into enriched,
quality-checked chunks handed to a vector store.  The entry point is
:class:`rag_ingest.ingestion.processor.DocumentProcessor`.
"""
