"""Live connection handle: an authenticated REST client plus its pipeline."""

from __future__ import annotations

import logging
from typing import Any

from vrcwatch._pipeline import Listener, Pipeline
from vrcwatch.client import VrcClient
from vrcwatch.config import WatchConfig
from vrcwatch.exceptions import VrcAuthenticationError

_logger = logging.getLogger(__name__)


class VrcConnection:
    """Handle given to the application while the pipeline is up.

    A fresh instance is created for every connect, so listeners never carry
    over between connections.
    """

    def __init__(self, client: VrcClient, pipeline: Pipeline) -> None:
        self.client = client
        self.pipeline = pipeline

    def on(self, kind: str, handler: Listener) -> None:
        self.pipeline.on(kind, handler)

    def remove_all_listeners(self, kind: str | None = None) -> None:
        self.pipeline.remove_all_listeners(kind)

    async def close(self) -> None:
        try:
            await self.pipeline.close()
        finally:
            await self.client.close()


async def connect_vrchat(config: WatchConfig, **client_kwargs: Any) -> VrcConnection:
    """Log in and open an authenticated pipeline.

    Raises
    ------
    VrcAuthenticationError
        If login fails or no ``auth`` cookie was issued.
    VrcTransportError
        On any other HTTP or socket failure.
    """
    _logger.info("Initializing VRChat client...")
    client = VrcClient(config, **client_kwargs)
    await client.open()
    try:
        await client.login()
        token = client.auth_token()
        if not token:
            raise VrcAuthenticationError("Login succeeded but no auth cookie was issued")
        pipeline = Pipeline()
        await pipeline.open(client.http_session, token)
        _logger.info("Pipeline authenticated")
    except BaseException:
        await client.close()
        raise
    return VrcConnection(client, pipeline)
