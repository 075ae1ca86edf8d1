# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import struct

from .logging import Logger
from .messages import WireMessage
from .util import TransportError


HEADER_FORMAT = ">HL"
HEADER_LEN = struct.calcsize(HEADER_FORMAT)
MAGIC = b"##"
REPORT_ID = b"?"
PACKET_SIZE = 64
CHUNK_SIZE = PACKET_SIZE - len(REPORT_ID)


class FakeRead(object):
    # Let's pretend we have a file-like interface
    def __init__(self, func):
        self.func = func

    def read(self, size):
        return self.func(size)


def encode_frame(msg: WireMessage) -> bytes:
    return MAGIC + struct.pack(HEADER_FORMAT, msg.kind, len(msg.data)) + msg.data


def split_packets(frame: bytes):
    """Split a frame into 64 byte reports, each starting with the report id."""
    for i in range(0, len(frame), CHUNK_SIZE):
        chunk = frame[i:i + CHUNK_SIZE]
        yield REPORT_ID + chunk + b'\0' * (CHUNK_SIZE - len(chunk))


class Transport(Logger):
    """Blocking duplex frame channel to one device instance.

    Subclasses implement _open, _close, _write_packet and _read_packet;
    framing and header resynchronisation live here.
    """

    def __init__(self, device):
        self.device = device
        self.buffer = bytearray()
        self.is_open = False
        Logger.__init__(self)

    def diagnostic_name(self):
        return str(self.device)

    def _open(self):
        raise NotImplementedError()

    def _close(self):
        raise NotImplementedError()

    def _write_packet(self, packet: bytes):
        raise NotImplementedError()

    def _read_packet(self) -> bytes:
        """Return one raw report, report id included."""
        raise NotImplementedError()

    def open(self):
        if self.is_open:
            return
        try:
            self._open()
        except OSError as e:
            raise TransportError(f"cannot open {self.device}: {e}") from e
        self.buffer = bytearray()
        self.is_open = True

    def close(self):
        """
        Close the connection to the physical device or socket represented by the Transport.
        """
        if not self.is_open:
            return
        self.is_open = False
        self.buffer = bytearray()
        try:
            self._close()
        except OSError as e:
            self.logger.info(f"error while closing: {e!r}")

    def write(self, msg: WireMessage):
        if not self.is_open:
            raise TransportError("transport is not open")
        try:
            for packet in split_packets(encode_frame(msg)):
                self._write_packet(packet)
        except OSError as e:
            raise TransportError(f"write failed: {e}") from e

    def read_blocking(self) -> WireMessage:
        """Block until one complete frame has been received."""
        if not self.is_open:
            raise TransportError("transport is not open")
        try:
            kind, datalen = self._read_headers(FakeRead(self._raw_read))
            data = self._raw_read(datalen)
        except OSError as e:
            raise TransportError(f"read failed: {e}") from e
        return WireMessage(kind=kind, data=data)

    def _raw_read(self, length: int) -> bytes:
        while len(self.buffer) < length:
            packet = self._read_packet()
            if not packet:
                raise TransportError("device closed the connection")
            if packet[:1] != REPORT_ID:
                raise TransportError(f"unexpected report id {packet[:1]!r}")
            self.buffer.extend(packet[1:])
        ret = self.buffer[:length]
        del self.buffer[:length]
        return bytes(ret)

    def _read_headers(self, read_f):
        # Align cursor to the beginning of the header ("##")
        c = read_f.read(1)
        i = 0
        while c != b"#":
            i += 1
            if i >= PACKET_SIZE:
                raise TransportError("Timed out while waiting for the magic character")
            c = read_f.read(1)

        if read_f.read(1) != b"#":
            # Second character must be # to be valid header
            raise TransportError("Second magic character is broken")

        kind, datalen = struct.unpack(HEADER_FORMAT, read_f.read(HEADER_LEN))
        return kind, datalen

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
