import pytest

from songreel.models import SongFile
from songreel.poller import ClipRequest
from songreel.services.render_backend import RenderBackendClient, RenderBackendError


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Records requests and answers them in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def _respond(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)


def _client(*responses):
    session = FakeSession(*responses)
    return RenderBackendClient(base_url="http://render.local:3001/", timeout=5, session=session), session


def test_submit_posts_payload_and_returns_prompt_id():
    client, session = _client(FakeResponse(body={"promptId": 1234}))
    request = ClipRequest(shot_id="s1", image_url="https://img", prompt="drive", duration=4.0)

    assert client.submit(request) == "1234"
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "http://render.local:3001/api/comfyui/generate-video-clip")
    assert kwargs["json"] == request.to_payload()
    assert kwargs["timeout"] == 5


def test_submit_without_prompt_id_raises_backend_error():
    client, _ = _client(FakeResponse(body={"error": "queue full"}))

    with pytest.raises(RenderBackendError, match="queue full"):
        client.submit(ClipRequest(shot_id="s1", image_url="https://img", prompt="p", duration=4.0))


def test_status_parses_payload():
    client, session = _client(FakeResponse(body={"success": True, "clipUrl": "https://clips/c.mp4", "progress": 100}))

    status = client.status("1234")

    assert status.completed
    assert status.result_url == "https://clips/c.mp4"
    assert session.requests[0][:2] == ("GET", "http://render.local:3001/api/comfyui/video-status/1234")


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(status_code=502, text="Bad Gateway"),
        FakeResponse(body=ValueError("no json")),
        FakeResponse(body=["not", "a", "dict"]),
    ],
)
def test_unusable_status_responses_raise(response):
    client, _ = _client(response)

    with pytest.raises(RenderBackendError):
        client.status("1234")


def test_upload_audio_sends_multipart_file():
    client, session = _client(FakeResponse(body={"url": "https://render.local/audio/song.mp3"}))
    song = SongFile(name="song.mp3", data=b"ID3")

    assert client.upload_audio(song) == "https://render.local/audio/song.mp3"
    _, url, kwargs = session.requests[0]
    assert url == "http://render.local:3001/api/audio/upload"
    assert kwargs["files"] == {"audio": ("song.mp3", b"ID3", "audio/mpeg")}


def test_upload_audio_without_url_raises():
    client, _ = _client(FakeResponse(body={}))

    with pytest.raises(RenderBackendError):
        client.upload_audio(SongFile(name="song.mp3", data=b"ID3"))
