"""
Scene rotation for collection-mapped channels.

Each rotation channel owns a cursor into its scene collection. Reading the
next scene does not move the cursor; ``commit`` does, and only the pipeline
calls it once the Govee API accepted the command.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple

from govee_touch.errors import ConfigError

logger = logging.getLogger("govee_touch.scene_rotation")


@dataclass(frozen=True)
class SceneSelection:
    channel: int
    collection: str
    index: int
    scene: str


class SceneRotation:
    """Rotates each assigned channel through its scene collection."""

    def __init__(
        self,
        collections: Mapping[str, Sequence[str]],
        assignments: Mapping[int, str],
    ):
        """
        Args:
            collections: Collection name to ordered scene names
            assignments: Channel to collection name

        Raises:
            ConfigError: If a channel points at a missing or empty collection
        """
        self._collections: Dict[str, Tuple[str, ...]] = {
            name: tuple(scenes) for name, scenes in collections.items()
        }
        for channel, name in assignments.items():
            if name not in self._collections:
                raise ConfigError(f"Channel {channel} assigned to unknown collection {name!r}")
            if not self._collections[name]:
                raise ConfigError(f"Channel {channel} assigned to empty collection {name!r}")

        self._assignments: Dict[int, str] = dict(assignments)
        self._cursors: Dict[int, int] = {channel: 0 for channel in assignments}

    def handles(self, channel: int) -> bool:
        return channel in self._assignments

    def next_scene(self, channel: int) -> SceneSelection:
        """Return the scene at the channel's cursor without advancing it."""
        try:
            name = self._assignments[channel]
        except KeyError:
            raise KeyError(f"channel {channel} has no scene collection") from None

        index = self._cursors[channel]
        return SceneSelection(
            channel=channel,
            collection=name,
            index=index,
            scene=self._collections[name][index],
        )

    def commit(self, selection: SceneSelection) -> int:
        """Advance the cursor past ``selection`` after a confirmed dispatch.

        A selection that no longer matches the cursor is ignored, so a
        confirmation can never advance the cursor twice.

        Returns:
            The cursor position after the call
        """
        channel = selection.channel
        current = self._cursors.get(channel)
        if current != selection.index:
            logger.warning(
                f"Stale scene selection for channel {channel} "
                f"(cursor {current}, selection {selection.index}), not advancing"
            )
            return current

        length = len(self._collections[selection.collection])
        self._cursors[channel] = (current + 1) % length
        return self._cursors[channel]

    def cursor(self, channel: int) -> int:
        return self._cursors[channel]

    def get_state(self) -> Dict[int, Dict]:
        """Return cursor positions per rotation channel."""
        return {
            channel: {
                "collection": name,
                "cursor": self._cursors[channel],
                "next_scene": self._collections[name][self._cursors[channel]],
            }
            for channel, name in self._assignments.items()
        }
