import asyncio
import logging
from typing import Any, Optional

import aiohttp

from common import protocol
from node.config import NodeSettings
from node.messages import Measurement
from node.states import Configuration

log = logging.getLogger(__name__)


class BackendError(Exception):
    """A collector call failed: transport error, error status or undecodable body."""


class ConfigurationNotFound(BackendError):
    """The collector has no configuration for this node yet (HTTP 404)."""


class Backend:
    """HTTP client for the collector, scoped to one node.

    The session is opened lazily on first use and released by `close()`.
    """

    def __init__(self, settings: NodeSettings, session: Optional[aiohttp.ClientSession] = None):
        self.node = settings.node_name
        self.base_url = settings.server_url
        self.settings = settings
        self.timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
        self._session = session
        self._owns_session = session is None

    def _url(self, path: str, **params: str) -> str:
        return self.base_url + path.format(node=self.node, **params)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _request_json(self, method: str, url: str, not_found=None, **kwargs) -> Any:
        try:
            async with self._get_session().request(method, url, **kwargs) as resp:
                if resp.status == 404 and not_found is not None:
                    raise not_found(f"{url}: not found")
                resp.raise_for_status()
                body = await resp.text()
                log.debug("%s %s -> %d %s", method, url, resp.status, body)
                return protocol.loads(body)
        except BackendError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"{method} {url} failed: {e!r}") from e
        except ValueError as e:
            raise BackendError(f"{method} {url}: malformed response: {e}") from e

    async def get_configuration(self) -> Configuration:
        url = self._url(self.settings.get_node_configuration_path)
        body = await self._request_json("GET", url, not_found=ConfigurationNotFound)
        try:
            return protocol.decode_configuration(body)
        except ValueError as e:
            raise BackendError(f"malformed configuration: {e}") from e

    async def post_measurement(self, measurement: Measurement) -> str:
        url = self._url(self.settings.post_node_measurement_path)
        body = await self._request_json("POST", url, json=protocol.encode_measurement(measurement))
        try:
            reading_id = protocol.decode_reading_id(body)
        except ValueError as e:
            raise BackendError(str(e)) from e
        log.info("Measurement stored with id %s", reading_id)
        return reading_id

    async def post_picture(self, measurement_id: str, picture_number: int,
                           image: bytes, filename: str = "picture.jpeg") -> None:
        url = self._url(self.settings.post_node_picture_path, reading=measurement_id)
        form = aiohttp.FormData()
        form.add_field("pictureNumber", str(picture_number))
        form.add_field("picture", image, filename=filename, content_type="image/jpeg")
        try:
            async with self._get_session().post(url, data=form) as resp:
                resp.raise_for_status()
                log.info("Status code for picture upload: %d", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendError(f"POST {url} failed: {e!r}") from e

    async def get_manual_request_pending(self) -> bool:
        url = self._url(self.settings.get_manual_measurement_request_path)
        body = await self._request_json("GET", url)
        try:
            return protocol.decode_manual_request(body)
        except ValueError as e:
            raise BackendError(str(e)) from e
