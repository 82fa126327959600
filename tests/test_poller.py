import asyncio

import pytest

from conftest import ScriptedBackend, SleepRecorder, make_shot, make_state, make_storyboard, no_sleep, ready

from songreel.events import ClipCompleted, ReplaceState
from songreel.models import ProjectState
from songreel.poller import (
    ClipInProgressError,
    ClipJobError,
    ClipPoller,
    ClipRequest,
    ClipStatus,
    ClipTimeoutError,
    PushNotification,
    ShotNotReadyError,
)
from songreel.store import ProjectStore

CLIP_URL = "https://clips.example/s1.mp4"


def _state(shot=None):
    return make_state(storyboard=make_storyboard([shot or ready(make_shot("s1"))]))


def _request(shot_id="s1"):
    return ClipRequest(shot_id=shot_id, image_url="data:image/png;base64,AAAA", prompt="drive", duration=4.0)


def _completions(store):
    completed = []
    store.subscribe(lambda state, event: completed.append(event) if isinstance(event, ClipCompleted) else None)
    return completed


def test_poll_completes_on_third_status_call():
    backend = ScriptedBackend(script={
        1: ClipStatus(progress=10),
        2: ClipStatus(progress=55),
        3: ClipStatus(progress=90, success=True, result_url=CLIP_URL),
    })
    sleep = SleepRecorder()

    async def scenario():
        async with ProjectStore(_state()) as store:
            completed = _completions(store)
            url = await ClipPoller(backend, store, interval=1.0, sleep=sleep).run(_request())
            return url, completed, store.state

    url, completed, state = asyncio.run(scenario())

    assert url == CLIP_URL
    assert backend.status_calls == 3
    assert sleep.calls == [1.0, 1.0, 1.0]
    assert len(completed) == 1
    shot = state.storyboard.find_shot("s1")
    assert shot.clip_url == CLIP_URL
    assert shot.generation_progress == 100
    assert not shot.is_generating_clip


def test_poll_times_out_after_exactly_max_attempts():
    backend = ScriptedBackend(default=ClipStatus(progress=None))

    async def scenario():
        async with ProjectStore(_state()) as store:
            completed = _completions(store)
            poller = ClipPoller(backend, store, interval=1.0, max_attempts=300, sleep=no_sleep)
            with pytest.raises(ClipTimeoutError) as excinfo:
                await poller.run(_request())
            return excinfo.value, completed, store.state, poller

    error, completed, state, poller = asyncio.run(scenario())

    assert backend.status_calls == 300
    assert "300 attempts" in str(error)
    assert completed == []
    shot = state.storyboard.find_shot("s1")
    assert shot.clip_url is None
    assert not shot.is_generating_clip
    assert not poller.is_active("s1")


def test_terminal_error_stops_polling_immediately():
    backend = ScriptedBackend(script={1: ClipStatus(progress=5), 2: ClipStatus(error="CUDA out of memory")})

    async def scenario():
        async with ProjectStore(_state()) as store:
            with pytest.raises(ClipJobError, match="CUDA out of memory"):
                await ClipPoller(backend, store, sleep=no_sleep).run(_request())
            return store.state

    state = asyncio.run(scenario())
    assert backend.status_calls == 2
    assert not state.storyboard.find_shot("s1").is_generating_clip


def test_transport_errors_keep_polling():
    backend = ScriptedBackend(script={
        1: ConnectionError("backend restarting"),
        2: ClipStatus(success=True, result_url=CLIP_URL),
    })

    async def scenario():
        async with ProjectStore(_state()) as store:
            return await ClipPoller(backend, store, sleep=no_sleep).run(_request())

    assert asyncio.run(scenario()) == CLIP_URL
    assert backend.status_calls == 2


@pytest.mark.parametrize("image_url", [None, "", "error"])
def test_shot_without_ready_image_is_rejected_before_submission(image_url):
    backend = ScriptedBackend()
    shot = make_shot("s1", preview_image_url=image_url)

    async def scenario():
        async with ProjectStore(_state(shot)) as store:
            with pytest.raises(ShotNotReadyError):
                await ClipPoller(backend, store, sleep=no_sleep).run(_request())
            return store.state

    state = asyncio.run(scenario())
    assert backend.submitted == []
    assert not state.storyboard.find_shot("s1").is_generating_clip


def test_second_poll_for_same_shot_is_rejected():
    backend = ScriptedBackend(default=ClipStatus(success=True, result_url=CLIP_URL))

    async def scenario():
        gate = asyncio.Event()

        async def gated_sleep(seconds):
            await gate.wait()

        async with ProjectStore(_state()) as store:
            poller = ClipPoller(backend, store, sleep=gated_sleep)
            first = asyncio.ensure_future(poller.run(_request()))
            while not poller.is_active("s1") or not backend.submitted:
                await asyncio.sleep(0)
            with pytest.raises(ClipInProgressError):
                await poller.run(_request())
            gate.set()
            return await first

    assert asyncio.run(scenario()) == CLIP_URL
    assert len(backend.submitted) == 1


def test_submission_failure_resets_shot():
    backend = ScriptedBackend(submit_error=RuntimeError("503 Service Unavailable"))

    async def scenario():
        async with ProjectStore(_state()) as store:
            with pytest.raises(ClipJobError):
                await ClipPoller(backend, store, sleep=no_sleep).run(_request())
            return store.state

    state = asyncio.run(scenario())
    assert backend.status_calls == 0
    assert not state.storyboard.find_shot("s1").is_generating_clip


def test_push_before_poll_completes_once():
    backend = ScriptedBackend(default=ClipStatus(success=True, result_url="https://clips.example/polled.mp4"))

    async def scenario():
        async with ProjectStore(_state()) as store:
            completed = _completions(store)
            poller = None

            async def push_then_sleep(seconds):
                await poller.handle_push(PushNotification(result_url=CLIP_URL, job_id="job-s1"))

            poller = ClipPoller(backend, store, sleep=push_then_sleep)
            url = await poller.run(_request())
            return url, completed, store.state

    url, completed, state = asyncio.run(scenario())

    assert url == CLIP_URL
    assert backend.status_calls == 0
    assert len(completed) == 1
    assert state.storyboard.find_shot("s1").clip_url == CLIP_URL


def test_push_after_poll_is_ignored():
    backend = ScriptedBackend(default=ClipStatus(success=True, result_url=CLIP_URL))

    async def scenario():
        async with ProjectStore(_state()) as store:
            completed = _completions(store)
            poller = ClipPoller(backend, store, sleep=no_sleep)
            await poller.run(_request())
            applied = await poller.handle_push(
                PushNotification(result_url="https://clips.example/late.mp4", shot_id="s1")
            )
            return applied, completed, store.state

    applied, completed, state = asyncio.run(scenario())

    assert applied is False
    assert len(completed) == 1
    assert state.storyboard.find_shot("s1").clip_url == CLIP_URL


def test_restart_mid_poll_leaves_fresh_project_untouched():
    backend = ScriptedBackend(script={
        1: ClipStatus(progress=40),
        2: ClipStatus(progress=100, success=True, result_url=CLIP_URL),
    })

    async def scenario():
        async with ProjectStore(_state()) as store:
            restarted = []

            async def restart_then_sleep(seconds):
                if not restarted:
                    restarted.append(await store.dispatch(ReplaceState(ProjectState())))

            url = await ClipPoller(backend, store, sleep=restart_then_sleep).run(_request())
            return url, restarted[0], store.state

    url, restarted, state = asyncio.run(scenario())

    assert url == CLIP_URL
    assert backend.status_calls == 2
    assert state == restarted == ProjectState()


def test_restart_before_job_error_leaves_fresh_project_untouched():
    backend = ScriptedBackend(default=ClipStatus(error="worker crashed"))

    async def scenario():
        async with ProjectStore(_state()) as store:
            async def restart(seconds):
                await store.dispatch(ReplaceState(ProjectState()))

            with pytest.raises(ClipJobError):
                await ClipPoller(backend, store, sleep=restart).run(_request())
            return store.state

    assert asyncio.run(scenario()) == ProjectState()

def test_push_notification_payload_parsing():
    notification = PushNotification.from_payload({"id": "job-1", "shotId": "s1", "url": CLIP_URL})
    assert notification == PushNotification(result_url=CLIP_URL, job_id="job-1", shot_id="s1")

    with pytest.raises(ValueError):
        PushNotification.from_payload({"shotId": "s1"})
    with pytest.raises(ValueError):
        PushNotification.from_payload({"url": CLIP_URL})


def test_status_payload_parsing():
    status = ClipStatus.from_payload({"success": True, "clipUrl": CLIP_URL, "progress": 100})
    assert status.completed

    failed = ClipStatus.from_payload({"status": "failed", "progress": True})
    assert failed.error == "Clip job failed"
    assert failed.progress is None


def test_request_payload_uses_backend_field_names():
    payload = ClipRequest(
        shot_id="s1", image_url="https://img", prompt="p", duration=4.0, lip_sync=True, fps=16
    ).to_payload()

    assert payload["imageUrl"] == "https://img"
    assert payload["shotId"] == "s1"
    assert payload["lipSync"] is True
    assert "audioUrl" not in payload
    assert "workflow" not in payload
