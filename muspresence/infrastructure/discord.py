import logging
from typing import Any, Dict, Optional

from pypresence import Presence
from pypresence.exceptions import PyPresenceException
from pypresence.types import ActivityType

from muspresence.domain.entities import ActivityKind, PresenceActivity
from muspresence.domain.errors import PresenceSinkError
from muspresence.domain.ports import PresenceSink

logger = logging.getLogger(__name__)

_ACTIVITY_TYPES = {
    ActivityKind.LISTENING: ActivityType.LISTENING,
}


def _to_seconds(epoch_ms: Optional[int]) -> Optional[int]:
    return None if epoch_ms is None else epoch_ms // 1000


class DiscordPresenceSink(PresenceSink):
    """Discord Rich Presence over local IPC, implementing the PresenceSink port."""

    def __init__(self, presence_factory=Presence):
        """Initialize the sink.

        Args:
            presence_factory: Callable building a ``pypresence.Presence`` from an app id
        """
        self._presence_factory = presence_factory
        self._rpc = None

    @property
    def connected(self) -> bool:
        return self._rpc is not None

    def _require_session(self):
        if self._rpc is None:
            raise PresenceSinkError("Discord session is not open")
        return self._rpc

    def login(self, app_id: str) -> None:
        try:
            rpc = self._presence_factory(app_id)
            rpc.connect()
        except (PyPresenceException, OSError) as e:
            raise PresenceSinkError(f"Could not connect to Discord: {e}") from e
        self._rpc = rpc
        logger.info("Connected to Discord IPC")

    def logout(self) -> None:
        if self._rpc is None:
            return
        rpc, self._rpc = self._rpc, None
        try:
            rpc.close()
        except (PyPresenceException, OSError) as e:
            raise PresenceSinkError(f"Error closing Discord session: {e}") from e

    def set_activity(self, activity: PresenceActivity) -> None:
        rpc = self._require_session()
        try:
            rpc.update(**self.to_update_kwargs(activity))
        except (PyPresenceException, OSError) as e:
            raise PresenceSinkError(f"Error setting activity: {e}") from e

    def clear_activity(self) -> None:
        rpc = self._require_session()
        try:
            rpc.clear()
        except (PyPresenceException, OSError) as e:
            raise PresenceSinkError(f"Error clearing activity: {e}") from e

    @staticmethod
    def to_update_kwargs(activity: PresenceActivity) -> Dict[str, Any]:
        """Map the activity onto ``Presence.update`` keyword arguments.

        Discord timestamps are epoch seconds. Empty strings are left out since
        Discord rejects empty text fields.
        """
        fields = {
            "details": activity.details,
            "state": activity.state,
            "large_image": activity.large_image,
            "large_text": activity.large_text,
            "small_image": activity.small_image,
            "small_text": activity.small_text,
        }
        kwargs: Dict[str, Any] = {"activity_type": _ACTIVITY_TYPES[activity.kind]}
        kwargs.update({key: value for key, value in fields.items() if value})
        if activity.timestamps is not None:
            kwargs["start"] = _to_seconds(activity.timestamps.start_ms)
            if activity.timestamps.end_ms is not None:
                kwargs["end"] = _to_seconds(activity.timestamps.end_ms)
        return kwargs
