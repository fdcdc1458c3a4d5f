from typing import Callable, Optional, Tuple

from pypresence.exceptions import PyPresenceException
from pypresence.presence import Presence
from pypresence.types import ActivityType, StatusDisplayType

from .errors import ErrorKind, TransportError, is_broken_pipe
from .logger import get_logger

logger = get_logger()

MAX_FIELD_LENGTH = 128

# Remote state not known yet (fresh channel): the first clear must go through
_UNKNOWN = object()
_CLEARED = object()


# -------------------------
# Discord RPC
# -------------------------
class DiscordPresence:
    """Context manager and updater for Discord RPC."""

    def __init__(self, client_id: str, fallback_image: Optional[str] = None,
                 presence_factory: Callable[..., Presence] = Presence):
        self.client_id = client_id
        self.fallback_image = fallback_image
        self._presence_factory = presence_factory
        self.rpc: Optional[Presence] = None
        self.is_connected = False
        self.last_payload = _UNKNOWN

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def release(self):
        """Clears the status and disconnects; errors are only logged."""
        if self.is_connected:
            try:
                self.clear()
            except TransportError as e:
                logger.debug(f"Could not clear presence on exit: {e}")
        try:
            self.close()
        except TransportError as e:
            logger.debug(f"Could not close Discord RPC on exit: {e}")

    def connect(self):
        try:
            self.rpc = self._presence_factory(self.client_id, pipe=0)
            self.rpc.connect()
        except (PyPresenceException, OSError) as e:
            self.is_connected = False
            raise TransportError(f"Discord RPC connection failed: {e}", kind=ErrorKind.PIPE) from e
        self.is_connected = True
        self.last_payload = _UNKNOWN
        logger.info("Connected to Discord RPC.")

    def close(self):
        rpc, self.rpc = self.rpc, None
        self.is_connected = False
        if rpc is None:
            return
        try:
            rpc.close()
        except (PyPresenceException, OSError) as e:
            raise TransportError(f"Closing Discord RPC failed: {e}", kind=self._kind(e)) from e

    # Helper: Ensure Discord RPC text fields are valid, we can't have less than 2 characters.
    @staticmethod
    def _safe_text(text: Optional[str], fallback: str = "Komga") -> str:
        """Ensures text is 2..128 characters long (Discord RPC requirement)."""
        text = (text or fallback)[:MAX_FIELD_LENGTH]
        return text if len(text.strip()) >= 2 else text + "\u200B"

    @staticmethod
    def _kind(exc: BaseException) -> ErrorKind:
        return ErrorKind.PIPE if is_broken_pipe(exc) else ErrorKind.OTHER

    def _call(self, method: str, **kwargs):
        if not self.is_connected or self.rpc is None:
            raise TransportError("Discord RPC is not connected.", kind=ErrorKind.PIPE)
        try:
            return getattr(self.rpc, method)(**kwargs)
        except (PyPresenceException, OSError) as e:
            kind = self._kind(e)
            if kind is ErrorKind.PIPE:
                self.is_connected = False
            raise TransportError(f"Discord RPC {method} failed: {e}", kind=kind) from e

    def set(self, details: str, subtitle: str, image: Optional[str] = None, image_caption: Optional[str] = None):
        """Shows an activity; repeating the current one does nothing."""
        image = image or self.fallback_image
        payload: Tuple = (
            self._safe_text(details, "Reading"),
            self._safe_text(subtitle, "Unknown Author"),
            image,
            self._safe_text(image_caption) if image else None,
        )
        if payload == self.last_payload:
            return  # Skip redundant updates

        details, state, large_image, large_text = payload
        kwargs = {
            "activity_type": ActivityType.PLAYING,
            "status_display_type": StatusDisplayType.DETAILS,
            "details": details,
            "state": state,
        }
        if large_image:
            kwargs["large_image"] = large_image
            kwargs["large_text"] = large_text

        self._call("update", **kwargs)
        self.last_payload = payload
        logger.debug(f"RPC Updated: {details} / {state}")

    def clear(self):
        """Clears the RPC status."""
        if self.last_payload is _CLEARED:
            return
        self._call("clear")
        self.last_payload = _CLEARED
