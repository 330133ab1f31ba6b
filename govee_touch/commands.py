"""
Command intents and the channel-to-command mapper.

An intent describes what should happen to the light; ``to_capability``
turns it into the capability object the Govee control endpoint expects.
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Union

from govee_touch.config import ActionType, ChannelAction
from govee_touch.scene_rotation import SceneRotation, SceneSelection
from govee_touch.touch_tracker import EdgeKind

logger = logging.getLogger("govee_touch.commands")

# Extremes accepted by the device for the range capability
BRIGHTNESS_HIGH = 99
BRIGHTNESS_LOW = 1


@dataclass(frozen=True)
class PowerSet:
    on: bool

    kind = "on_off"
    instance = "powerSwitch"

    @property
    def value(self) -> int:
        return 1 if self.on else 0

    def describe(self) -> str:
        return "power on" if self.on else "power off"


@dataclass(frozen=True)
class BrightnessSet:
    percent: int

    kind = "range"
    instance = "brightness"

    def __post_init__(self):
        if not 1 <= self.percent <= 100:
            raise ValueError(f"brightness must be within 1-100, got {self.percent}")

    @property
    def value(self) -> int:
        return self.percent

    def describe(self) -> str:
        return f"brightness {self.percent}%"


@dataclass(frozen=True)
class SceneSet:
    scene_id: int
    scene_name: str = ""

    kind = "dynamic_scene"
    instance = "lightScene"

    @property
    def value(self) -> int:
        return self.scene_id

    def describe(self) -> str:
        return f"scene {self.scene_name or self.scene_id}"


CommandIntent = Union[PowerSet, BrightnessSet, SceneSet]


def to_capability(intent: CommandIntent) -> Dict:
    """Serialize an intent into a Govee capability object."""
    return {
        "type": f"devices.capabilities.{intent.kind}",
        "instance": intent.instance,
        "value": intent.value,
    }


@dataclass(frozen=True)
class MappedCommand:
    """Intent produced for a channel, with the rotation step it depends on."""

    channel: int
    action: ActionType
    intent: CommandIntent
    selection: Optional[SceneSelection] = None

    def describe(self) -> str:
        text = self.intent.describe()
        if self.selection is not None:
            text += f" ({self.selection.collection} collection)"
        return text


class CommandMapper:
    """Fixed lookup from channel to the command its touch produces."""

    def __init__(
        self,
        channel_actions: Mapping[int, ChannelAction],
        rotation: SceneRotation,
        scenes: Mapping[str, int],
        rng: Optional[random.Random] = None,
    ):
        self.channel_actions: Dict[int, ChannelAction] = dict(channel_actions)
        self.rotation = rotation
        self.scenes: Dict[str, int] = dict(scenes)
        self._scene_names = sorted(self.scenes)
        self._rng = rng or random.Random()

    def map(self, channel: int, kind: EdgeKind) -> Optional[MappedCommand]:
        """Return the command for a trigger, or None when there is nothing to do.

        Only touches trigger commands. Unmapped channels are ignored.
        """
        if kind is not EdgeKind.TOUCHED:
            return None

        assigned = self.channel_actions.get(channel)
        if assigned is None:
            return None

        action = assigned.action
        if action is ActionType.POWER_ON:
            return MappedCommand(channel, action, PowerSet(on=True))
        if action is ActionType.POWER_OFF:
            return MappedCommand(channel, action, PowerSet(on=False))
        if action is ActionType.BRIGHTNESS_HIGH:
            return MappedCommand(channel, action, BrightnessSet(BRIGHTNESS_HIGH))
        if action is ActionType.BRIGHTNESS_LOW:
            return MappedCommand(channel, action, BrightnessSet(BRIGHTNESS_LOW))
        if action is ActionType.RANDOM_SCENE:
            name = self._rng.choice(self._scene_names)
            return MappedCommand(channel, action, SceneSet(self.scenes[name], name))

        selection = self.rotation.next_scene(channel)
        return MappedCommand(
            channel,
            action,
            SceneSet(self.scenes[selection.scene], selection.scene),
            selection=selection,
        )

    def describe(self) -> Dict[int, str]:
        """Human readable mapping, ordered by channel."""
        return {
            channel: self.channel_actions[channel].describe()
            for channel in sorted(self.channel_actions)
        }
