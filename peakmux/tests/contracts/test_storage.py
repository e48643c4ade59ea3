"""
Contract tests for payload storage collaborators.
"""

import io

import httpx
import pytest

from peakmux.storage import HttpPutStore, LocalFileStore


class TestLocalFileStore:
    """Local filesystem handoff."""

    def test_writes_payload_and_creates_parents(self, tmp_path):
        destination = tmp_path / "a" / "b" / "out.mp3"
        stored = LocalFileStore().put(str(destination), io.BytesIO(b"payload"))
        assert stored == str(destination)
        assert destination.read_bytes() == b"payload"

    def test_destination_relative_to_root(self, tmp_path):
        store = LocalFileStore(root=tmp_path)
        stored = store.put("/media/track.ogg", io.BytesIO(b"ogg"))
        assert stored == str(tmp_path / "media" / "track.ogg")
        assert (tmp_path / "media" / "track.ogg").read_bytes() == b"ogg"


class TestHttpPutStore:
    """HTTP PUT upload."""

    def _store(self, handler, base_url="https://storage.example.com/bucket"):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpPutStore(base_url, client=client)

    def test_uploads_with_known_length(self):
        received = {}

        def handler(request):
            received["method"] = request.method
            received["url"] = str(request.url)
            received["length"] = request.headers.get("Content-Length")
            received["body"] = request.read()
            return httpx.Response(200)

        stream = io.BytesIO(b"x" * 200000)
        url = self._store(handler).put("/audio/out.mp3", stream)

        assert url == "https://storage.example.com/bucket/audio/out.mp3"
        assert received["method"] == "PUT"
        assert received["url"] == url
        assert received["length"] == "200000"
        assert received["body"] == b"x" * 200000

    def test_absolute_destination_used_as_is(self):
        store = HttpPutStore("https://ignored.example.com")
        assert store.url_for("https://signed.example.com/put?sig=abc") == "https://signed.example.com/put?sig=abc"
        store.close()

    def test_http_error_raises(self):
        store = self._store(lambda request: httpx.Response(403))
        with pytest.raises(httpx.HTTPStatusError):
            store.put("out.mp3", io.BytesIO(b"data"))
