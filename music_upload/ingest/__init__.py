"""Ingestion pipeline: acquire, validate, process and merge uploaded audio."""

from music_upload.ingest.pipeline import AttemptResult, IngestPipeline
from music_upload.ingest.staging import Owner

__all__ = ["AttemptResult", "IngestPipeline", "Owner"]
