"""
Batch processing pipeline for uploaded purchase orders.

BatchPipeline owns an ordered list of jobs (one per uploaded file) and a
single worker thread that advances them one at a time:

    pending -> processing -> completed | failed
               processing <-> paused     (pipeline-level pause)

  - start()   spawns the worker unless one is already running (no-op then).
  - The worker takes the first pending job (FIFO), hands its file to the
    extractor and records progress reported through the callback.
  - After each job ends, the next pending job is picked up unless paused;
    once nothing is pending the worker exits and is_processing turns False.
  - pause()   freezes the in-flight job: its next progress report (or its
    completion) blocks until resume().  Nothing new is started meanwhile.
  - stop()    abandons the in-flight job back to pending and ends the run.
  - remove()  on the in-flight job cancels it; a late result is discarded.

Job failures are local: the error is recorded on the job and the worker
moves on.  Operator actions (select, remove, approve, clear, retry) are
safe to call at any time from any thread.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from models.job import JobStatus, UploadedFile, UploadedFileJob
from models.purchase_order import ParsedPurchaseOrder
from models.result import AddFilesResult, ApprovalResult, BatchStats, RejectedFile, SyncResult
from models.settings import BulkProcessingConfig
from .extractor import OrderExtractor
from .sink import OrderSink
from .stats import compute_stats
from .uploads import check_upload

logger = logging.getLogger(__name__)


class _JobCancelled(Exception):
    """Raised inside the progress callback when the job was removed or the run stopped."""


_PAUSED = object()      # claim attempt landed while paused; wait and retry


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchPipeline:
    """
    Owns the batch job collection and its processing loop.

    Args:
        extractor:    Produces a ParsedPurchaseOrder from each file.
        sink:         Receives approved orders.  Without one, approval only
                      removes jobs from the batch.
        config:       Batch tuning knobs (batch size, delay, thresholds).
        backup:       Object with create_backup(); called once per run when
                      config.backup_before_processing is set.
        upload_check: Returns a rejection reason for a file, or None.
                      Pass None to accept everything.
    """

    def __init__(
        self,
        extractor: OrderExtractor,
        sink: Optional[OrderSink] = None,
        config: Optional[BulkProcessingConfig] = None,
        backup=None,
        upload_check: Optional[Callable[[UploadedFile], Optional[str]]] = check_upload,
    ):
        self.extractor = extractor
        self.sink = sink
        self.config = config or BulkProcessingConfig()
        self.backup = backup
        self.upload_check = upload_check

        self._jobs: list[UploadedFileJob] = []
        self._lock = threading.RLock()
        self._resume = threading.Event()      # set = running, clear = paused
        self._resume.set()
        self._stop = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._worker: Optional[threading.Thread] = None
        self._current_id: Optional[str] = None
        self._approving: set[str] = set()     # ids claimed by an approve_selected call

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def jobs(self) -> list[UploadedFileJob]:
        """Snapshot copies of the jobs, in insertion order."""
        with self._lock:
            return [j.model_copy() for j in self._jobs]

    def get_job(self, job_id: str) -> Optional[UploadedFileJob]:
        with self._lock:
            job = self._find(job_id)
            return job.model_copy() if job else None

    @property
    def is_processing(self) -> bool:
        return not self._idle.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._resume.is_set()

    def stats(self) -> BatchStats:
        with self._lock:
            return compute_stats(self._jobs)

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker has finished; False if *timeout* ran out first."""
        return self._idle.wait(timeout)

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def add_files(self, files: Iterable[UploadedFile]) -> AddFilesResult:
        """
        Queue files as pending jobs.

        Files failing the upload check, duplicates of a queued file (same
        name and size, when skip_duplicates is on) and anything beyond
        batch_size in this call are returned as rejected.
        """
        result = AddFilesResult()
        with self._lock:
            seen = {(j.file.name, j.file.size) for j in self._jobs}
            for file in files:
                reason = self.upload_check(file) if self.upload_check else None
                if reason is None and len(result.added) >= self.config.batch_size:
                    reason = f"Batch size limit reached ({self.config.batch_size} files per upload)"
                if reason is None and self.config.skip_duplicates and (file.name, file.size) in seen:
                    reason = "Duplicate of a file already in the batch"
                if reason:
                    logger.info("Rejected %s: %s", file.name, reason)
                    result.rejected.append(RejectedFile(file=file, reason=reason))
                    continue
                job = UploadedFileJob(id=f"job_{uuid.uuid4().hex[:12]}", file=file)
                self._jobs.append(job)
                seen.add((file.name, file.size))
                result.added.append(job.id)
        logger.info("Queued %d file(s), rejected %d", len(result.added), len(result.rejected))
        return result

    def retry(self, job_id: str) -> bool:
        """Put a failed job back in the queue.  Does not start the pipeline."""
        with self._lock:
            job = self._find(job_id)
            if job is None or job.status != JobStatus.FAILED:
                return False
            job.status = JobStatus.PENDING
            job.progress = 0
            job.error = None
            job.processing_started = None
            job.processing_completed = None
        logger.info("Re-queued failed job %s", job_id)
        return True

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Start processing pending jobs.  Returns False if already running or nothing is pending."""
        with self._lock:
            if not self._idle.is_set():
                logger.debug("Batch already running, start ignored")
                return False
            if not any(j.status == JobStatus.PENDING for j in self._jobs):
                logger.info("No pending jobs to process")
                return False
            self._stop.clear()
            self._resume.set()
            self._idle.clear()
            self._worker = threading.Thread(target=self._run, name="batch-pipeline", daemon=True)
            self._worker.start()
        logger.info("Batch processing started")
        return True

    def pause(self) -> bool:
        """Freeze the running batch.  Returns False if idle or already paused."""
        with self._lock:
            if self._idle.is_set() or not self._resume.is_set():
                return False
            self._resume.clear()
            job = self._find(self._current_id)
            if job is not None and job.status == JobStatus.PROCESSING:
                job.status = JobStatus.PAUSED
        logger.info("Batch processing paused")
        return True

    def resume(self) -> bool:
        """Continue a paused batch from where it stopped."""
        with self._lock:
            if self._resume.is_set():
                return False
            job = self._find(self._current_id)
            if job is not None and job.status == JobStatus.PAUSED:
                job.status = JobStatus.PROCESSING
            self._resume.set()
        logger.info("Batch processing resumed")
        return True

    def stop(self) -> bool:
        """
        End the current run.  Completed jobs are untouched; the in-flight
        job goes back to pending with its progress discarded.
        """
        with self._lock:
            if self._idle.is_set():
                return False
            self._stop.set()
            self._resume.set()      # wake a paused worker so it can exit
            self._abandon(self._current_id)
        logger.info("Batch processing stopped")
        return True

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def toggle_select(self, job_id: str) -> bool:
        with self._lock:
            job = self._find(job_id)
            if job is None:
                return False
            job.selected = not job.selected
            return True

    def select_all(self) -> None:
        """Select every job, or deselect all of them if all are already selected."""
        with self._lock:
            target = not all(j.selected for j in self._jobs)
            for job in self._jobs:
                job.selected = target

    def select_confident(self) -> int:
        """Select completed jobs at or above the auto-approve confidence threshold."""
        threshold = self.config.auto_approve_threshold
        count = 0
        with self._lock:
            for job in self._jobs:
                if (
                    job.status == JobStatus.COMPLETED
                    and job.parsed_data is not None
                    and job.parsed_data.average_confidence >= threshold
                ):
                    job.selected = True
                    count += 1
        return count

    def remove(self, job_id: str) -> bool:
        """Delete one job whatever its status.  An in-flight job is cancelled."""
        with self._lock:
            before = len(self._jobs)
            self._jobs = [j for j in self._jobs if j.id != job_id]
            removed = len(self._jobs) < before
        if removed:
            logger.info("Removed job %s", job_id)
        return removed

    def remove_selected(self) -> int:
        with self._lock:
            before = len(self._jobs)
            self._jobs = [j for j in self._jobs if not j.selected]
            count = before - len(self._jobs)
        logger.info("Removed %d selected job(s)", count)
        return count

    def clear_completed(self) -> int:
        with self._lock:
            before = len(self._jobs)
            self._jobs = [j for j in self._jobs if j.status != JobStatus.COMPLETED]
            count = before - len(self._jobs)
        logger.info("Cleared %d completed job(s)", count)
        return count

    def approve_selected(self) -> ApprovalResult:
        """
        Hand every selected, completed job to the sink and drop it from the
        batch.  Selected jobs in any other state are left alone.  Jobs the
        sink refuses stay in the batch and are reported in `failed`.
        """
        # Claim under the lock so a concurrent approve skips these jobs
        with self._lock:
            claimed = [
                j.id for j in self._jobs
                if j.selected and j.status == JobStatus.COMPLETED and j.id not in self._approving
            ]
            self._approving.update(claimed)
        if not claimed:
            return ApprovalResult(noop=True, message="No completed jobs selected for approval")

        result = ApprovalResult()
        try:
            for job_id in claimed:
                with self._lock:
                    job = self._find(job_id)
                    order = job.parsed_data if job is not None else None
                if order is None:
                    logger.info("Job %s removed before approval, skipping", job_id)
                    continue
                outcome = self._sync(job_id, order)
                with self._lock:
                    if outcome.ok:
                        self._jobs = [j for j in self._jobs if j.id != job_id]
                        result.approved.append(job_id)
                    else:
                        result.failed[job_id] = outcome.error or "sync failed"
        finally:
            with self._lock:
                self._approving.difference_update(claimed)

        result.message = f"Approved {len(result.approved)} purchase order(s)"
        if result.failed:
            result.message += f", {len(result.failed)} failed to sync"
        logger.info(result.message)
        return result

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        try:
            self._backup_before_run()
            first = True
            while not self._stop.is_set():
                if not first and self.config.processing_delay:
                    if self._stop.wait(self.config.processing_delay / 1000):
                        break
                self._resume.wait()
                claimed = self._claim_next()
                if claimed is _PAUSED:
                    continue
                if claimed is None:
                    break
                self._process(*claimed)
                first = False
        finally:
            with self._lock:
                self._current_id = None
                self._idle.set()
            logger.info("Batch processing idle")

    def _claim_next(self):
        """Mark the first pending job as processing and return (id, file), or None when done."""
        with self._lock:
            if self._stop.is_set():
                return None
            if not self._resume.is_set():
                return _PAUSED
            job = next((j for j in self._jobs if j.status == JobStatus.PENDING), None)
            if job is None:
                logger.info("No pending jobs left")
                return None
            job.status = JobStatus.PROCESSING
            job.progress = 0
            job.error = None
            job.processing_started = _now()
            self._current_id = job.id
            logger.info("Processing %s (%s)", job.file.name, job.id)
            return job.id, job.file

    def _process(self, job_id: str, file: UploadedFile) -> None:
        def report_progress(value: int) -> None:
            with self._advance(job_id) as job:
                job.progress = max(job.progress, min(100, int(value)))

        try:
            order = self.extractor.extract(file, report_progress)
        except _JobCancelled:
            logger.info("Job %s cancelled", job_id)
            return
        except Exception as exc:
            logger.error("Failed to process %s: %s", file.name, exc, exc_info=True)
            self._finish(job_id, error=str(exc) or exc.__class__.__name__)
            return
        self._finish(job_id, order=order)

    def _finish(
        self,
        job_id: str,
        order: Optional[ParsedPurchaseOrder] = None,
        error: Optional[str] = None,
    ) -> None:
        try:
            with self._advance(job_id) as job:
                name = job.file.name
                job.processing_completed = _now()
                if error is not None:
                    job.status = JobStatus.FAILED
                    job.error = error
                else:
                    job.status = JobStatus.COMPLETED
                    job.progress = 100
                    job.parsed_data = order
                self._current_id = None
        except _JobCancelled:
            logger.info("Discarding result for cancelled job %s", job_id)
            return
        if error is None:
            logger.info(
                "Completed %s | items=%d value=%.2f confidence=%.1f",
                name, len(order.items), order.total_value, order.average_confidence,
            )

    @contextmanager
    def _advance(self, job_id: str):
        """
        Yield the live job under the lock once the pipeline is not paused.
        Raises _JobCancelled if the job was removed or the run stopped.
        """
        while True:
            self._resume.wait()
            with self._lock:
                if self._stop.is_set():
                    self._abandon(job_id)
                    raise _JobCancelled(job_id)
                job = self._find(job_id)
                if job is None:
                    raise _JobCancelled(job_id)
                if not self._resume.is_set():
                    continue    # paused between wait() and lock
                yield job
                return

    def _abandon(self, job_id: Optional[str]) -> None:
        """Return an in-flight job to pending, dropping its progress.  Caller holds the lock."""
        job = self._find(job_id)
        if job is not None and job.status in (JobStatus.PROCESSING, JobStatus.PAUSED):
            job.status = JobStatus.PENDING
            job.progress = 0
            job.processing_started = None
        if job_id == self._current_id:
            self._current_id = None

    def _backup_before_run(self) -> None:
        if not (self.config.backup_before_processing and self.backup is not None):
            return
        try:
            self.backup.create_backup()
        except Exception as e:
            logger.error("Pre-processing backup failed: %s", e)

    def _sync(self, job_id: str, order: ParsedPurchaseOrder) -> SyncResult:
        if self.sink is None:
            logger.warning("No sync collaborator configured, approving %s without sync", job_id)
            return SyncResult(ok=True)
        try:
            return self.sink.sync(job_id, order)
        except Exception as e:
            logger.error("Sync failed for %s: %s", job_id, e, exc_info=True)
            return SyncResult(ok=False, error=str(e))

    def _find(self, job_id: Optional[str]) -> Optional[UploadedFileJob]:
        if job_id is None:
            return None
        return next((j for j in self._jobs if j.id == job_id), None)
