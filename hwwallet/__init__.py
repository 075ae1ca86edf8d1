from .version import HWWALLET_VERSION
from .messages import MessageType, WireMessage
from .device import Device, DeviceType
from .sequencer import Sequencer
from .simple_config import SimpleConfig
from .commands import Commands, known_commands
from .logging import get_logger


__version__ = HWWALLET_VERSION

_logger = get_logger(__name__)
