"""
Status tracking for per-file-type transformation jobs.

``StatusPoller.watch`` yields one ``UploadSession`` per fetch and stops after
the first terminal snapshot (``done`` or ``failed``) or when its cancellation
token fires. ``StatusPoller.poll`` drives the same loop with an observer
callback and returns the terminal snapshot.

A failed fetch ends tracking at once; there is no retry or backoff.
"""
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional, Sequence

from onboarding.core.config import settings
from onboarding.domain.errors import OperationCancelledError, PollingTransportError
from onboarding.integrations.transform_api import TransformBackend
from onboarding.schemas import JobState, JobStatus, OverallStatus, UploadSession
from onboarding.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

StatusObserver = Callable[[UploadSession], None]


def reduce_overall(jobs: Sequence[JobStatus], fallback: OverallStatus = OverallStatus.UNKNOWN) -> OverallStatus:
    """
    Reduce job states to the session-level status.

    - any job failed -> failed
    - every job done -> done
    - any job running, done or with progress -> running
    - otherwise -> pending

    An empty job list has nothing to reduce and returns ``fallback``.
    """
    if not jobs:
        return fallback
    if any(job.status == JobState.FAILED for job in jobs):
        return OverallStatus.FAILED
    if all(job.status == JobState.DONE for job in jobs):
        return OverallStatus.DONE
    if any(job.status in (JobState.RUNNING, JobState.DONE) or job.progress > 0 for job in jobs):
        return OverallStatus.RUNNING
    return OverallStatus.PENDING


def normalize_session(session: UploadSession) -> UploadSession:
    """Replace the reported ``overall`` with the reduction of the session's jobs."""
    overall = reduce_overall(session.jobs, fallback=session.overall)
    if overall != session.overall:
        logger.debug(
            "Upload %s reported overall=%s; jobs reduce to %s",
            session.upload_id,
            session.overall.value,
            overall.value,
        )
        return session.model_copy(update={"overall": overall})
    return session


def overall_progress(jobs: Sequence[JobStatus]) -> float:
    """Average job completion in percent; done jobs count fully, queued and failed count zero."""
    if not jobs:
        return 0.0
    total = 0.0
    for job in jobs:
        if job.status == JobState.DONE:
            total += 100.0
        elif job.status == JobState.RUNNING:
            total += job.progress * 100.0
    return total / len(jobs)


class StatusPoller:
    """Repeating status fetch for a single upload."""

    def __init__(self, client: TransformBackend, interval_seconds: Optional[float] = None):
        self._client = client
        self.interval_seconds = (
            settings.status_poll_interval_seconds if interval_seconds is None else interval_seconds
        )

    async def _fetch(self, upload_id: str) -> UploadSession:
        try:
            session = await self._client.get_status(upload_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Status polling error for upload %s: %s", upload_id, e)
            raise PollingTransportError(upload_id, e) from e
        return normalize_session(session)

    async def watch(
        self,
        upload_id: str,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[UploadSession]:
        """
        Yield every fetched snapshot until a terminal one has been yielded.

        Iteration ends quietly when ``cancel_token`` fires. Fetch failures
        raise ``PollingTransportError``.
        """
        attempt = 0
        while True:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Status tracking for upload %s cancelled", upload_id)
                return

            attempt += 1
            if cancel_token is not None:
                try:
                    session = await cancel_token.run(self._fetch(upload_id))
                except OperationCancelledError:
                    logger.info("Status tracking for upload %s cancelled", upload_id)
                    return
            else:
                session = await self._fetch(upload_id)

            logger.debug(
                "Status fetch #%d for upload %s: overall=%s",
                attempt,
                upload_id,
                session.overall.value,
            )
            yield session

            if session.is_terminal:
                logger.info("Upload %s reached terminal status %s", upload_id, session.overall.value)
                return

            if cancel_token is not None:
                try:
                    await cancel_token.run(asyncio.sleep(self.interval_seconds))
                except OperationCancelledError:
                    logger.info("Status tracking for upload %s cancelled", upload_id)
                    return
            else:
                await asyncio.sleep(self.interval_seconds)

    async def poll(
        self,
        upload_id: str,
        on_update: Optional[StatusObserver] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> UploadSession:
        """
        Track an upload until it reaches ``done`` or ``failed``.

        Args:
            upload_id: Upload to track
            on_update: Called synchronously with every snapshot, terminal included
            cancel_token: Optional token that stops tracking early

        Returns:
            The first terminal snapshot

        Raises:
            PollingTransportError: A status fetch failed
            OperationCancelledError: The token fired before a terminal status
        """
        last: Optional[UploadSession] = None
        async for session in self.watch(upload_id, cancel_token=cancel_token):
            last = session
            if on_update is not None:
                on_update(session)

        if last is None or not last.is_terminal:
            raise OperationCancelledError(f"Status tracking for upload {upload_id} was cancelled")
        return last
