"""
Job runners for the candidate pipeline feature.
"""

from .processing_job import run_backfill, run_process_candidates

__all__ = ["run_backfill", "run_process_candidates"]
