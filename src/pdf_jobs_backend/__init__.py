"""
PDF Jobs Backend - job pipeline for PDF tools

This package provides a FastAPI-based web service that runs PDF tools
(merge, split, rotate, delete pages, reorder, lock, unlock, metadata, text
extraction) as tracked jobs. It enables:

- PDF uploads, one job per file or one job for all files of a combining tool
- Inline or deferred, staggered job execution
- Job status polling and aggregate batch progress
- Downloading and deleting results, with optional S3 mirroring
- Time-based retention of old jobs and files

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - scheduler: Job creation, dispatch and execution
    - database: SQLite job store and status transitions
    - batch: Aggregate status over the jobs of one submission
    - tools: Tool registry, per-tool options and the PyPDF2 handlers
    - page_selection: Page selection grammar ("1,3,5-7")
    - artifacts: Storage for uploads and outputs
    - retention: Periodic cleanup of old jobs and files
    - configuration: Config loading and merging logic

Usage:
    Run the API server with:
        uvicorn pdf_jobs_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
