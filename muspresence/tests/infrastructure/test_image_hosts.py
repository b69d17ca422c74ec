from unittest.mock import Mock

import pytest
import requests

from muspresence.crosscutting.config import ImageSettings
from muspresence.domain.errors import DecodeError, ImageHostRejected, TransportError
from muspresence.infrastructure.image_hosts import (
    IMAGE_HOSTS, ImgurHost, LitterboxHost, create_image_host,
)


def _response(status_code=200, text="", json_data=None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = json_data
    return response


class TestLitterboxHost:
    """Temporary hosting backend."""

    def setup_method(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.host = LitterboxHost(timeout=4, session=self.session)

    def test_upload_returns_trimmed_body(self):
        self.session.post.return_value = _response(text="  https://litter.catbox.moe/x1y2z3.jpg\n")

        url = self.host.upload(b"jpeg")

        assert url == "https://litter.catbox.moe/x1y2z3.jpg"
        args, kwargs = self.session.post.call_args
        assert args[0] == LitterboxHost.endpoint
        assert kwargs["data"] == {"reqtype": "fileupload", "time": "72h"}
        assert kwargs["files"] == {"fileToUpload": ("cover.jpg", b"jpeg")}
        assert kwargs["timeout"] == 4

    def test_non_200_is_rejected(self):
        self.session.post.return_value = _response(status_code=412, text="File too large")

        with pytest.raises(ImageHostRejected) as excinfo:
            self.host.upload(b"jpeg")

        assert excinfo.value.status_code == 412
        assert excinfo.value.host == "litterbox"

    def test_empty_body_is_rejected(self):
        self.session.post.return_value = _response(text="   ")

        with pytest.raises(ImageHostRejected):
            self.host.upload(b"jpeg")

    def test_connection_error_is_transport_error(self):
        self.session.post.side_effect = requests.ConnectionError("dns")

        with pytest.raises(TransportError):
            self.host.upload(b"jpeg")


class TestImgurHost:
    """Permanent hosting backend."""

    def setup_method(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.host = ImgurHost("abc123client", timeout=4, session=self.session)

    def test_upload_returns_data_link(self):
        self.session.post.return_value = _response(json_data={
            "data": {"id": "q1w2", "link": "https://i.imgur.com/q1w2.jpg"},
            "success": True,
            "status": 200,
        })

        assert self.host.upload(b"jpeg") == "https://i.imgur.com/q1w2.jpg"
        args, kwargs = self.session.post.call_args
        assert args[0] == ImgurHost.endpoint
        assert kwargs["headers"] == {"Authorization": "Client-ID abc123client"}
        assert kwargs["data"] == {"type": "file"}
        assert kwargs["files"] == {"image": ("cover.jpg", b"jpeg")}

    def test_non_200_is_rejected(self):
        self.session.post.return_value = _response(status_code=403)

        with pytest.raises(ImageHostRejected) as excinfo:
            self.host.upload(b"jpeg")

        assert excinfo.value.status_code == 403
        assert excinfo.value.host == "imgur"

    @pytest.mark.parametrize("payload", [
        {"data": {}},
        {"success": False},
        {"data": {"link": ""}},
        ["unexpected"],
    ])
    def test_missing_link_is_decode_error(self, payload):
        self.session.post.return_value = _response(json_data=payload)

        with pytest.raises(DecodeError):
            self.host.upload(b"jpeg")

    def test_malformed_json_is_decode_error(self):
        response = _response()
        response.json.side_effect = ValueError("not json")
        self.session.post.return_value = response

        with pytest.raises(DecodeError):
            self.host.upload(b"jpeg")


class TestCreateImageHost:
    """Backend selection from configuration."""

    def test_none_disables_uploads(self):
        assert create_image_host(ImageSettings(uploader="none")) is None

    def test_litterbox(self):
        host = create_image_host(ImageSettings(uploader="litterbox"), timeout=7)
        assert isinstance(host, LitterboxHost)
        assert host.timeout == 7

    def test_imgur_carries_client_id(self):
        host = create_image_host(ImageSettings(uploader="imgur", imgur_client_id="cid"))
        assert isinstance(host, ImgurHost)
        assert host.client_id == "cid"

    def test_registry_is_closed_set(self):
        assert set(IMAGE_HOSTS) == {"litterbox", "imgur"}
