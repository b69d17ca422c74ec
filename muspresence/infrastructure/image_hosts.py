import logging
from typing import Dict, Optional, Type

import requests

from muspresence.crosscutting.config import ImageSettings, UPLOADER_IMGUR, UPLOADER_LITTERBOX
from muspresence.domain.errors import DecodeError, ImageHostRejected, TransportError
from muspresence.domain.ports import ImageHost

logger = logging.getLogger(__name__)

COVER_FILENAME = "cover.jpg"


class LitterboxHost(ImageHost):
    """Temporary hosting on litterbox.catbox.moe. Uploads expire after 72 hours.

    The API answers with the URL as plain text.
    """

    name = UPLOADER_LITTERBOX
    endpoint = "https://litterbox.catbox.moe/resources/internals/api.php"
    expiry = "72h"

    def __init__(self, timeout: float = 10, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session or requests.Session()

    def upload(self, image: bytes) -> str:
        try:
            response = self._session.post(
                self.endpoint,
                data={"reqtype": "fileupload", "time": self.expiry},
                files={"fileToUpload": (COVER_FILENAME, image)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"litterbox upload failed: {e}") from e

        if response.status_code != 200:
            raise ImageHostRejected(self.name, response.status_code)

        url = response.text.strip()
        if not url:
            raise ImageHostRejected(self.name, response.status_code, "litterbox returned an empty body")
        return url


class ImgurHost(ImageHost):
    """Permanent hosting on Imgur, authenticated with an application client id."""

    name = UPLOADER_IMGUR
    endpoint = "https://api.imgur.com/3/image"

    def __init__(self, client_id: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.client_id = client_id
        self.timeout = timeout
        self._session = session or requests.Session()

    def upload(self, image: bytes) -> str:
        try:
            response = self._session.post(
                self.endpoint,
                headers={"Authorization": f"Client-ID {self.client_id}"},
                data={"type": "file"},
                files={"image": (COVER_FILENAME, image)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"imgur upload failed: {e}") from e

        if response.status_code != 200:
            raise ImageHostRejected(self.name, response.status_code)

        try:
            link = response.json()["data"]["link"]
        except (ValueError, KeyError, TypeError) as e:
            raise DecodeError(f"imgur response has no data.link: {e}") from e
        if not isinstance(link, str) or not link:
            raise DecodeError("imgur response has an empty data.link")
        return link


IMAGE_HOSTS: Dict[str, Type[ImageHost]] = {
    LitterboxHost.name: LitterboxHost,
    ImgurHost.name: ImgurHost,
}


def create_image_host(settings: ImageSettings, timeout: float = 10,
                      session: Optional[requests.Session] = None) -> Optional[ImageHost]:
    """Build the configured image host, or None when uploads are disabled."""
    host_class = IMAGE_HOSTS.get(settings.uploader)
    if host_class is None:
        logger.info("Cover art uploads disabled, using the fallback image")
        return None
    if host_class is ImgurHost:
        return ImgurHost(settings.imgur_client_id, timeout=timeout, session=session)
    return host_class(timeout=timeout, session=session)
