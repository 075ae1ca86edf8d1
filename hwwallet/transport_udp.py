# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

'''UDPTransport implements the emulator's UDP interface for Transport.'''

import socket
from typing import Optional

from .transport import Transport, PACKET_SIZE


DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 21324
DEFAULT_DEBUG_PORT = 21325


class UDPTransport(Transport):

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        self.socket = None  # type: Optional[socket.socket]
        super().__init__((host, port))

    def diagnostic_name(self):
        host, port = self.device
        return f"{host}:{port}"

    def _open(self):
        self.socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.socket.connect(self.device)

    def _close(self):
        self.socket.close()
        self.socket = None

    def _write_packet(self, packet: bytes):
        self.socket.send(packet)

    def _read_packet(self) -> bytes:
        return self.socket.recv(PACKET_SIZE)

    def is_reachable(self, timeout: float = 0.1) -> bool:
        """Probe the emulator with PINGPING; it answers PONGPONG."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.settimeout(timeout)
            sock.connect(self.device)
            sock.send(b"PINGPING")
            return sock.recv(PACKET_SIZE) == b"PONGPONG"
        except OSError:
            return False
        finally:
            sock.close()
