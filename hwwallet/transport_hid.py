# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

'''USB HID implementation of Transport.'''

import platform
from typing import List

from .logging import get_logger
from .transport import Transport, PACKET_SIZE
from .util import TransportError

_logger = get_logger(__name__)

try:
    import hid
except ImportError as e:
    _logger.info(f"hidapi not available, USB devices disabled: {e!r}")
    hid = None


DEVICE_IDS = [
    (0x313A, 0x0001),  # hardware wallet
]


def is_normal_link(device: dict) -> bool:
    if device['usage_page'] == 0xff00:
        return True

    if device['interface_number'] == 0:
        return True

    # MacOS reports -1 as the interface_number for everything,
    # inspect based on the path instead.
    if platform.system() == 'Darwin':
        if device['interface_number'] == -1:
            return device['path'].endswith(b'0')

    return False


def enumerate_devices() -> List[bytes]:
    """Return the HID paths of the connected wallets' normal interface."""
    if hid is None:
        return []
    paths = []
    for d in hid.enumerate(0, 0):
        if (d['vendor_id'], d['product_id']) not in DEVICE_IDS:
            continue
        if is_normal_link(d):
            paths.append(d['path'])
    return paths


class HidTransport(Transport):

    def __init__(self, path: bytes):
        self.hid = None
        super().__init__(path)

    @classmethod
    def find(cls) -> 'HidTransport':
        paths = enumerate_devices()
        if not paths:
            raise TransportError("no USB device found")
        return cls(paths[0])

    def _open(self):
        if hid is None:
            raise TransportError("hidapi is not installed")
        self.hid = hid.device()
        self.hid.open_path(self.device)
        self.hid.set_nonblocking(False)

    def _close(self):
        self.hid.close()
        self.hid = None

    def _write_packet(self, packet: bytes):
        written = self.hid.write(list(packet))
        if written < 0:
            raise TransportError("hid write failed")

    def _read_packet(self) -> bytes:
        data = self.hid.read(PACKET_SIZE)
        return bytes(data)
