import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .client import KomgaClient
from .config import Settings
from .cover import CoverResolver
from .discord import DiscordPresence
from .errors import ErrorKind, TransportError, classify
from .logger import get_logger
from .models import Active, Idle, PresenceState
from .resolver import ActivityResolver

logger = get_logger()


# -------------------------
# Loop state
# -------------------------
@dataclass
class LoopContext:
    """Everything the poll loop owns and hands to each component call."""
    settings: Settings
    komga: KomgaClient
    resolver: ActivityResolver
    covers: CoverResolver
    channel: DiscordPresence
    state: Optional[PresenceState] = None


def channel_factory_for(settings: Settings) -> Callable[[], DiscordPresence]:
    def factory() -> DiscordPresence:
        return DiscordPresence(settings.integration.discord_client_id,
                               fallback_image=settings.integration.discord_asset_name)
    return factory


def build_context(settings: Settings, channel_factory: Optional[Callable[[], DiscordPresence]] = None) -> LoopContext:
    komga = KomgaClient(settings)
    channel_factory = channel_factory or channel_factory_for(settings)
    return LoopContext(
        settings=settings,
        komga=komga,
        resolver=ActivityResolver(),
        covers=CoverResolver(settings, komga),
        channel=channel_factory(),
    )


# -------------------------
# Poll loop
# -------------------------
class PollLoop:
    """Resolves the current activity every few seconds and mirrors it to Discord."""

    def __init__(self, ctx: LoopContext,
                 channel_factory: Optional[Callable[[], DiscordPresence]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Optional[Callable[[], datetime]] = None):
        self.ctx = ctx
        self.channel_factory = channel_factory or channel_factory_for(ctx.settings)
        self.sleep = sleep
        self.clock = clock

    def start(self):
        try:
            self.ctx.channel.connect()
        except TransportError as e:
            logger.warning(f"{e} Will retry on the next poll.")

    def tick(self) -> Optional[ErrorKind]:
        """Runs one resolution cycle. Returns the kind of failure, if any."""
        ctx = self.ctx
        try:
            now = self.clock() if self.clock else None
            result = ctx.resolver.resolve(ctx.komga, ctx.settings, ctx.covers, now=now)
            self._push(result)
        except Exception as e:
            kind = classify(e)
            self._handle_failure(kind, e)
            return kind
        return None

    def _push(self, result: PresenceState):
        ctx = self.ctx
        if isinstance(result, Active):
            activity = result.activity
            ctx.channel.set(activity.details, activity.author_text, activity.cover_url, activity.caption)
            if not isinstance(ctx.state, Active) or ctx.state.activity != activity:
                logger.info(f"Now reading: {activity.series_title} by {activity.author_text} {activity.page_display}".rstrip())
        else:
            ctx.channel.clear()
            if not isinstance(ctx.state, Idle):
                logger.info(f"Not reading ({result.reason}). Clearing Discord status.")
        ctx.state = result

    def _handle_failure(self, kind: ErrorKind, error: Exception):
        if kind is ErrorKind.AUTH:
            logger.warning(f"Komga authentication failed, retrying next poll: {error}")
        elif kind is ErrorKind.PIPE:
            self._reconnect()
        else:
            logger.error(f"Error setting activity (not identified as pipe error): {error}")
            logger.debug("Full error details:", exc_info=error)

    def _reconnect(self):
        logger.warning("Connection to Discord lost (pipe closed). Attempting to reconnect...")
        try:
            self.ctx.channel.close()
        except TransportError as e:
            logger.error(f"Error closing old Discord client (connection likely already broken): {e}")

        self.sleep(self.ctx.settings.reconnect_cooldown)

        channel = self.channel_factory()
        try:
            channel.connect()
            logger.info("Successfully reconnected to Discord.")
        except TransportError as e:
            logger.error(f"Failed to reconnect to Discord: {e}")
        self.ctx.channel = channel

    def run(self, max_ticks: Optional[int] = None):
        """Polls until interrupted, or for max_ticks cycles."""
        self.start()
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            self.tick()
            ticks += 1
            if max_ticks is None or ticks < max_ticks:
                self.sleep(self.ctx.settings.poll_interval)

    def shutdown(self):
        self.ctx.channel.release()
        self.ctx.komga.close()


# -------------------------
# Main Execution
# -------------------------
def main_loop(settings: Settings):
    """Initializes clients and runs the main polling loop."""
    if not settings.integration.discord_client_id:
        logger.error("Please set discord_client_id in the config file.")
        return

    loop = PollLoop(build_context(settings))
    logger.info(f"Watching {settings.server_url} every {settings.poll_interval}s")
    try:
        loop.run()
    except KeyboardInterrupt:
        logger.info("Exiting gracefully...")
    finally:
        loop.shutdown()
