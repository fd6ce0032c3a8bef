import asyncio

import pytest

from onboarding.domain.errors import ApiClientError, OperationCancelledError, PollingTransportError
from onboarding.domain.processing.poller import (
    StatusPoller,
    normalize_session,
    overall_progress,
    reduce_overall,
)
from onboarding.schemas import FileType, JobState, OverallStatus
from onboarding.utils.cancellation import CancellationToken
from tests.utils.fake_backend import FakeTransformBackend, job, session

POLICY, CLAIM = FileType.POLICY, FileType.CLAIM


@pytest.mark.parametrize(
    "states, expected",
    [
        ([JobState.QUEUED, JobState.QUEUED], OverallStatus.PENDING),
        ([JobState.RUNNING, JobState.QUEUED], OverallStatus.RUNNING),
        ([JobState.DONE, JobState.QUEUED], OverallStatus.RUNNING),
        ([JobState.DONE, JobState.DONE], OverallStatus.DONE),
        ([JobState.DONE, JobState.FAILED], OverallStatus.FAILED),
        ([JobState.RUNNING, JobState.FAILED], OverallStatus.FAILED),
    ],
)
def test_reduce_overall(states, expected):
    jobs = [job(ft, state) for ft, state in zip([POLICY, CLAIM], states)]

    assert reduce_overall(jobs) == expected


def test_reduce_overall_counts_progress_as_running():
    assert reduce_overall([job(POLICY, JobState.QUEUED, 0.1)]) == OverallStatus.RUNNING


def test_reduce_overall_empty_uses_fallback():
    assert reduce_overall([]) == OverallStatus.UNKNOWN
    assert reduce_overall([], fallback=OverallStatus.PENDING) == OverallStatus.PENDING


def test_normalize_session_demotes_premature_done():
    reported = session(overall="done", jobs=[job(POLICY, JobState.DONE), job(CLAIM, JobState.RUNNING, 0.4)])

    assert normalize_session(reported).overall == OverallStatus.RUNNING
    assert reported.overall == OverallStatus.DONE


def test_normalize_session_keeps_reported_overall_without_jobs():
    assert normalize_session(session(overall="pending")).overall == OverallStatus.PENDING


def test_overall_progress():
    jobs = [
        job(POLICY, JobState.DONE, 1.0),
        job(CLAIM, JobState.RUNNING, 0.5),
        job(FileType.CANCEL, JobState.QUEUED),
    ]

    assert overall_progress(jobs) == pytest.approx(50.0)
    assert overall_progress([]) == 0.0
    assert overall_progress([job(POLICY, JobState.FAILED, 0.9)]) == 0.0


@pytest.mark.asyncio
async def test_poll_reports_every_snapshot_and_stops_at_first_terminal():
    backend = FakeTransformBackend(
        statuses=[
            session(overall="pending", jobs=[job(POLICY, JobState.QUEUED), job(CLAIM, JobState.QUEUED)]),
            session(jobs=[job(POLICY, JobState.RUNNING, 0.5), job(CLAIM, JobState.QUEUED)]),
            session(jobs=[job(POLICY, JobState.DONE, 1.0), job(CLAIM, JobState.RUNNING, 0.2)]),
            session(overall="done", jobs=[job(POLICY, JobState.DONE, 1.0), job(CLAIM, JobState.DONE, 1.0)]),
        ]
    )
    updates = []

    final = await StatusPoller(backend, interval_seconds=0).poll("upload-9", updates.append)

    assert [u.overall for u in updates] == [
        OverallStatus.PENDING,
        OverallStatus.RUNNING,
        OverallStatus.RUNNING,
        OverallStatus.DONE,
    ]
    assert final.overall == OverallStatus.DONE
    assert final.upload_id == "upload-9"
    assert backend.status_calls == 4


@pytest.mark.asyncio
async def test_server_done_with_running_job_keeps_polling():
    backend = FakeTransformBackend(
        statuses=[
            session(overall="done", jobs=[job(POLICY, JobState.DONE, 1.0), job(CLAIM, JobState.RUNNING, 0.8)]),
            session(overall="done", jobs=[job(POLICY, JobState.DONE, 1.0), job(CLAIM, JobState.DONE, 1.0)]),
        ]
    )
    updates = []

    await StatusPoller(backend, interval_seconds=0).poll("upload-1", updates.append)

    assert [u.overall for u in updates] == [OverallStatus.RUNNING, OverallStatus.DONE]


@pytest.mark.asyncio
async def test_failed_job_is_terminal():
    backend = FakeTransformBackend(
        statuses=[
            session(jobs=[job(POLICY, JobState.RUNNING, 0.3), job(CLAIM, JobState.QUEUED)]),
            session(jobs=[job(POLICY, JobState.FAILED, 0.3, "Bad date format"), job(CLAIM, JobState.RUNNING)]),
        ]
    )

    final = await StatusPoller(backend, interval_seconds=0).poll("upload-1")

    assert final.overall == OverallStatus.FAILED
    assert final.jobs[0].message == "Bad date format"
    assert backend.status_calls == 2


@pytest.mark.asyncio
async def test_transport_error_stops_tracking_immediately():
    backend = FakeTransformBackend(
        statuses=[
            session(jobs=[job(POLICY, JobState.RUNNING, 0.1)]),
            ApiClientError("Status check failed: Service Unavailable", 503),
            session(overall="done", jobs=[job(POLICY, JobState.DONE, 1.0)]),
        ]
    )
    updates = []

    with pytest.raises(PollingTransportError) as exc_info:
        await StatusPoller(backend, interval_seconds=0).poll("upload-1", updates.append)

    assert exc_info.value.upload_id == "upload-1"
    assert isinstance(exc_info.value.cause, ApiClientError)
    assert len(updates) == 1
    assert backend.status_calls == 2


@pytest.mark.asyncio
async def test_watch_yields_sessions_until_terminal():
    backend = FakeTransformBackend(
        statuses=[
            session(jobs=[job(POLICY, JobState.RUNNING, 0.5)]),
            session(jobs=[job(POLICY, JobState.DONE, 1.0)]),
        ]
    )

    seen = [s.overall async for s in StatusPoller(backend, interval_seconds=0).watch("upload-1")]

    assert seen == [OverallStatus.RUNNING, OverallStatus.DONE]


@pytest.mark.asyncio
async def test_cancel_stops_polling_without_further_fetches():
    backend = FakeTransformBackend(statuses=[session(jobs=[job(POLICY, JobState.RUNNING, 0.5)])])
    token = CancellationToken()
    poller = StatusPoller(backend, interval_seconds=10)

    task = asyncio.create_task(poller.poll("upload-1", cancel_token=token))
    await asyncio.sleep(0.01)
    token.cancel("navigated away")

    with pytest.raises(OperationCancelledError):
        await task
    assert backend.status_calls == 1


@pytest.mark.asyncio
async def test_watch_ends_quietly_when_cancelled_before_start(backend):
    token = CancellationToken()
    token.cancel()

    seen = [s async for s in StatusPoller(backend, interval_seconds=0).watch("upload-1", cancel_token=token)]

    assert seen == []
    assert backend.status_calls == 0


def test_default_interval_is_two_seconds(backend):
    assert StatusPoller(backend).interval_seconds == 2.0
    assert StatusPoller(backend, interval_seconds=0).interval_seconds == 0
