# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

import enum
from typing import TYPE_CHECKING, Optional, Sequence

from .logging import Logger
from .messages import (MessageType, WireMessage, ButtonType, TransactionInput, TransactionOutput,
                       build, decode_fail_msg)
from .transport import Transport
from .transport_hid import HidTransport, enumerate_devices
from .transport_udp import UDPTransport, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_DEBUG_PORT
from .util import HardwareWalletError, TransportError, DeviceFailure

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


MAX_ADDRESS_N = 99
VALID_WORD_COUNTS = (12, 24)
FIRMWARE_HASH_LEN = 32


class DeviceType(enum.IntEnum):
    EMULATOR = 1
    USB = 2

    @classmethod
    def from_string(cls, s: Optional[str]) -> 'DeviceType':
        if not s:
            return cls.USB
        try:
            return cls[s.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown device type {s!r}, expected USB or EMULATOR") from None


class Driver(Logger):
    """Knows how to reach one kind of device."""
    device_type = None  # type: DeviceType

    def open_transport(self) -> Transport:
        raise NotImplementedError()

    def open_debug_transport(self) -> Transport:
        raise NotImplementedError()

    def is_available(self) -> bool:
        raise NotImplementedError()


class EmulatorDriver(Driver):
    device_type = DeviceType.EMULATOR

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 debug_port: int = DEFAULT_DEBUG_PORT):
        self.host = host
        self.port = port
        self.debug_port = debug_port
        Logger.__init__(self)

    def open_transport(self) -> Transport:
        return UDPTransport(self.host, self.port)

    def open_debug_transport(self) -> Transport:
        return UDPTransport(self.host, self.debug_port)

    def is_available(self) -> bool:
        return UDPTransport(self.host, self.port).is_reachable()


class USBDriver(Driver):
    device_type = DeviceType.USB

    def __init__(self):
        Logger.__init__(self)

    def open_transport(self) -> Transport:
        return HidTransport.find()

    def open_debug_transport(self) -> Transport:
        raise TransportError("USB devices do not expose a debug link")

    def is_available(self) -> bool:
        return len(enumerate_devices()) > 0


def driver_from_config(config: 'SimpleConfig') -> Driver:
    device_type = DeviceType.from_string(config.DEVICE_TYPE)
    if device_type == DeviceType.EMULATOR:
        return EmulatorDriver(config.EMULATOR_HOST, config.EMULATOR_PORT, config.EMULATOR_DEBUG_PORT)
    return USBDriver()


class Device(Logger):
    """Raw device operations.

    Every command sends its request and returns the first response the device
    sends back. No interaction loop happens at this level; that is the job of
    the Sequencer. Not thread-safe.
    """

    def __init__(self, driver: Driver):
        self.driver = driver
        self.transport = None  # type: Optional[Transport]
        self.debug_transport = None  # type: Optional[Transport]
        self.simulate_button_press = False
        self.simulate_button_type = ButtonType.RIGHT
        Logger.__init__(self)

    @classmethod
    def from_config(cls, config: 'SimpleConfig') -> 'Device':
        return cls(driver_from_config(config))

    @property
    def device_type(self) -> DeviceType:
        return self.driver.device_type

    def diagnostic_name(self):
        return self.driver.device_type.name.lower()

    # ========= connection ==========

    def connect(self):
        if self.transport is not None:
            return
        transport = self.driver.open_transport()
        transport.open()
        self.transport = transport

    def disconnect(self):
        if self.transport is None:
            return
        transport, self.transport = self.transport, None
        transport.close()

    def close(self):
        self.disconnect()
        if self.debug_transport is not None:
            debug_transport, self.debug_transport = self.debug_transport, None
            debug_transport.close()

    def available(self) -> bool:
        return self.driver.is_available()

    def connected(self) -> bool:
        if not self.available():
            return False
        try:
            msg = self._send(MessageType.Ping, message='ping')
        except HardwareWalletError as e:
            self.logger.info(f"device did not answer ping: {e!r}")
            return False
        return msg.kind == MessageType.Success

    def _write(self, msg: WireMessage):
        self.connect()
        self.logger.debug(f"sending {msg.kind_name} ({len(msg.data)} bytes)")
        try:
            self.transport.write(msg)
        except TransportError:
            self.disconnect()
            raise

    def _read(self) -> WireMessage:
        try:
            resp = self.transport.read_blocking()
        except TransportError:
            self.disconnect()
            raise
        self.logger.debug(f"received {resp.kind_name} ({len(resp.data)} bytes)")
        return resp

    def _call(self, msg: WireMessage) -> WireMessage:
        self._write(msg)
        return self._read()

    def _send(self, kind: MessageType, **fields) -> WireMessage:
        return self._call(build(kind, **fields))

    def _check_not_failure(self, msg: WireMessage, what: str):
        if msg.kind == MessageType.Failure:
            code, text = decode_fail_msg(msg)
            raise DeviceFailure(code, f"{what}: {text}")

    # ========= commands ==========

    def initialize(self) -> WireMessage:
        return self._send(MessageType.Initialize)

    def address_gen(self, address_n: int, start_index: int = 0, confirm_address: bool = False,
                    wallet_type: str = '') -> WireMessage:
        if not 1 <= address_n <= MAX_ADDRESS_N:
            raise ValueError(f"address_n must be between 1 and {MAX_ADDRESS_N}")
        if start_index < 0:
            raise ValueError("start_index must not be negative")
        return self._send(MessageType.AddressGen, address_n=address_n, start_index=start_index,
                          confirm_address=confirm_address, wallet_type=wallet_type or None)

    def apply_settings(self, use_passphrase: Optional[bool] = None, label: str = '',
                       language: str = '') -> WireMessage:
        return self._send(MessageType.ApplySettings, use_passphrase=use_passphrase,
                          label=label or None, language=language or None)

    def backup(self) -> WireMessage:
        self.initialize()
        return self._send(MessageType.BackupDevice)

    def cancel(self) -> WireMessage:
        return self._send(MessageType.Cancel)

    def check_message_signature(self, message: str, signature: str, address: str) -> WireMessage:
        return self._send(MessageType.CheckMessageSignature, message=message,
                          signature=signature, address=address)

    def change_pin(self, remove_pin: Optional[bool] = None) -> WireMessage:
        return self._send(MessageType.ChangePin, remove=remove_pin)

    def firmware_upload(self, payload: bytes, hash_: bytes) -> None:
        if self.device_type != DeviceType.USB:
            raise HardwareWalletError("wrong device type: firmware can only be uploaded over USB")
        if len(hash_) != FIRMWARE_HASH_LEN:
            raise ValueError(f"firmware hash must be {FIRMWARE_HASH_LEN} bytes")
        self.initialize()
        self.logger.info(f"Length of firmware {len(payload)}")
        erase_msg = self._send(MessageType.FirmwareErase, length=len(payload))
        self._check_not_failure(erase_msg, "FirmwareErase")
        self.logger.info(f"FirmwareErase answered {erase_msg.kind_name}")
        self.logger.info(f"Hash: {hash_.hex()}")
        upload_msg = self._send(MessageType.FirmwareUpload, payload=payload, hash=hash_)
        self._check_not_failure(upload_msg, "FirmwareUpload")
        self.logger.info(f"FirmwareUpload answered {upload_msg.kind_name}")
        # the device reboots after the confirmation, no answer comes back
        self._write(build(MessageType.ButtonAck))

    def get_features(self) -> WireMessage:
        return self._send(MessageType.GetFeatures)

    def generate_mnemonic(self, word_count: int, use_passphrase: bool) -> WireMessage:
        if word_count not in VALID_WORD_COUNTS:
            raise ValueError(f"word_count must be one of {VALID_WORD_COUNTS}")
        return self._send(MessageType.GenerateMnemonic, word_count=word_count,
                          passphrase_protection=use_passphrase)

    def recovery(self, word_count: int, use_passphrase: Optional[bool], dry_run: bool) -> WireMessage:
        if word_count not in VALID_WORD_COUNTS:
            raise ValueError(f"word_count must be one of {VALID_WORD_COUNTS}")
        self.logger.info(f"Using passphrase {use_passphrase}")
        return self._send(MessageType.RecoveryDevice, word_count=word_count,
                          passphrase_protection=use_passphrase, dry_run=dry_run)

    def set_mnemonic(self, mnemonic: str) -> WireMessage:
        return self._send(MessageType.SetMnemonic, mnemonic=mnemonic)

    def transaction_sign(self, inputs: Sequence[TransactionInput], outputs: Sequence[TransactionOutput],
                         wallet_type: str = '') -> WireMessage:
        if not inputs or not outputs:
            raise ValueError("a transaction needs at least one input and one output")
        return self._send(MessageType.TransactionSign,
                          nb_in=len(inputs),
                          nb_out=len(outputs),
                          transaction_in=[txin.to_proto() for txin in inputs],
                          transaction_out=[txout.to_proto() for txout in outputs],
                          version=1,
                          lock_time=0,
                          wallet_type=wallet_type or None)

    def sign_message(self, address_index: int, message: str, wallet_type: str = '') -> WireMessage:
        if address_index < 0:
            raise ValueError("address_index must not be negative")
        return self._send(MessageType.SignMessage, address_n=address_index, message=message,
                          wallet_type=wallet_type or None)

    def wipe(self) -> WireMessage:
        self.initialize()
        return self._send(MessageType.WipeDevice)

    # ========= acknowledgments ==========

    def button_ack(self) -> WireMessage:
        self._write(build(MessageType.ButtonAck))
        if self.simulate_button_press:
            self._press_button(self.simulate_button_type)
        return self._read()

    def pin_matrix_ack(self, pin: str) -> WireMessage:
        return self._send(MessageType.PinMatrixAck, pin=pin)

    def passphrase_ack(self, passphrase: str) -> WireMessage:
        return self._send(MessageType.PassphraseAck, passphrase=passphrase)

    def word_ack(self, word: str) -> WireMessage:
        return self._send(MessageType.WordAck, word=word)

    # ========= debug link ==========

    def set_auto_press_button(self, enable: bool, button: ButtonType = ButtonType.RIGHT) -> None:
        if self.device_type != DeviceType.EMULATOR:
            raise HardwareWalletError("wrong device type: buttons can only be pressed on the emulator")
        self.simulate_button_press = enable
        self.simulate_button_type = ButtonType(button)

    def _press_button(self, button: ButtonType):
        if self.debug_transport is None:
            debug_transport = self.driver.open_debug_transport()
            debug_transport.open()
            self.debug_transport = debug_transport
        self.logger.debug(f"pressing {button.name} button")
        self.debug_transport.write(build(MessageType.DebugLinkDecision, press_button=int(button)))
