"""
Batch statistics.  Recomputed from the job list on every call so a
snapshot can never go stale.
"""
from typing import Iterable

from models.job import JobStatus, UploadedFileJob
from models.result import BatchStats


def compute_stats(jobs: Iterable[UploadedFileJob]) -> BatchStats:
    jobs = list(jobs)
    counts = {status: 0 for status in JobStatus}
    total_value = 0.0
    total_items = 0.0
    confidences: list[float] = []

    for job in jobs:
        counts[job.status] += 1
        if job.parsed_data is None:
            continue
        total_value += job.parsed_data.total_value
        total_items += job.parsed_data.total_items
        if job.status == JobStatus.COMPLETED:
            confidences.append(job.parsed_data.average_confidence)

    return BatchStats(
        total=len(jobs),
        pending=counts[JobStatus.PENDING],
        processing=counts[JobStatus.PROCESSING],
        completed=counts[JobStatus.COMPLETED],
        failed=counts[JobStatus.FAILED],
        paused=counts[JobStatus.PAUSED],
        total_value=round(total_value, 2),
        total_items=total_items,
        average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
    )
