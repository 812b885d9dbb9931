"""Response sink wrapper that remembers the status sent to the caller."""

from typing import Optional

from starlette.types import Message, Send


class StatusRecorder:
    """
    Wraps an ASGI ``send`` callable and records the status code of the
    ``http.response.start`` message. Every message is forwarded unchanged.
    """

    def __init__(self, send: Send):
        self._send = send
        self.status_code: Optional[int] = None

    @property
    def started(self) -> bool:
        """True once the status line has been handed to the server."""
        return self.status_code is not None

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
        await self._send(message)
