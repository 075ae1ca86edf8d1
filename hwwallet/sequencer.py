# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Serialized, interaction-aware access to a Device.

A device command is rarely a single request/response pair: the device may
stop and ask for a button press, a PIN, a passphrase or a recovery word
before it produces its answer. The Sequencer walks those round-trips for
every command and hands back exactly one terminal message, or raises.

All device traffic goes through one lock, held for the whole command, so a
second caller can never answer an interaction request that belongs to a
command it did not issue.
"""

import logging
import threading
from typing import TYPE_CHECKING, AbstractSet, NoReturn, Optional, Sequence

from .cmdline import UnattendedHandler
from .logging import Logger
from .messages import (MessageType, WireMessage, ButtonType, TransactionInput, TransactionOutput,
                       PIN_FAILURES, TERMINAL_DECODERS, decode, decode_fail_msg)
from .util import with_lock, DeviceFailure, PinException, UnexpectedMessage, UserCancelled, UserFacingException

if TYPE_CHECKING:
    from .device import Device


BUTTON_PIN = frozenset({MessageType.ButtonRequest, MessageType.PinMatrixRequest})
BUTTON_PIN_PASSPHRASE = frozenset({MessageType.ButtonRequest, MessageType.PinMatrixRequest,
                                   MessageType.PassphraseRequest})
BUTTON_PASSPHRASE = frozenset({MessageType.ButtonRequest, MessageType.PassphraseRequest})
INTERACTIONS = BUTTON_PIN_PASSPHRASE | {MessageType.WordRequest}

BUTTON_MESSAGE = "Check your device to continue"


class Sequencer(Logger):

    def __init__(self, device: 'Device', *, handler=None, logger: Optional[logging.Logger] = None,
                 cancel_event: Optional[threading.Event] = None):
        Logger.__init__(self)
        if logger is not None:
            self.logger = logger
        self.device = device
        self.handler = handler if handler is not None else UnattendedHandler()
        self.cancel_event = cancel_event
        # held for the entire duration of a command, every round-trip included
        self.lock = threading.Lock()

    # ========= message classification ==========

    def _raise_failure(self, msg: WireMessage) -> NoReturn:
        code, text = decode_fail_msg(msg)
        self.logger.error(f"device failure: {text}")
        if code in PIN_FAILURES:
            raise PinException(code, text)
        raise DeviceFailure(code, text)

    def _unexpected(self, msg: WireMessage, expected: Sequence[int], reason: str = None) -> NoReturn:
        self.logger.error(f"unexpected response from device: {msg.kind_name}")
        raise UnexpectedMessage(msg, expected, reason)

    def _finish(self, msg: WireMessage, terminal: MessageType) -> WireMessage:
        """Classify the message a command loop stopped on."""
        if msg.kind == terminal:
            decoded = TERMINAL_DECODERS[terminal](msg)
            if terminal == MessageType.Success:
                self.logger.info(f"device: {decoded}")
            return msg
        if msg.kind == MessageType.Failure:
            self._raise_failure(msg)
        self._unexpected(msg, (terminal, MessageType.Failure))

    # ========= interaction ==========

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.logger.info("command cancelled, sending Cancel to device")
            self.device.cancel()
            raise UserCancelled()

    def _prompt(self, func, *args) -> str:
        try:
            return func(*args)
        except (UserCancelled, UserFacingException) as e:
            self.logger.info(f"prompt failed ({e!r}), sending Cancel to device")
            self.device.cancel()
            raise

    def _pin_matrix_type(self, msg: WireMessage) -> Optional[int]:
        pb = decode(msg, MessageType.PinMatrixRequest)
        return pb.type if pb.HasField('type') else None

    def _interact(self, msg: WireMessage) -> WireMessage:
        """Answer one interaction request and classify the device's reply.

        A Failure reply ends the whole command. Any other reply, Success
        included, goes back to the calling loop.
        """
        self._check_cancelled()
        kind = msg.kind
        if kind == MessageType.ButtonRequest:
            self.handler.show_message(BUTTON_MESSAGE)
            resp = self.device.button_ack()
        elif kind == MessageType.PinMatrixRequest:
            pin = self._prompt(self.handler.get_pin, self._pin_matrix_type(msg))
            resp = self.device.pin_matrix_ack(pin)
        elif kind == MessageType.PassphraseRequest:
            passphrase = self._prompt(self.handler.get_passphrase)
            resp = self.device.passphrase_ack(passphrase)
        elif kind == MessageType.WordRequest:
            word = self._prompt(self.handler.get_word)
            resp = self.device.word_ack(word)
        else:
            self._unexpected(msg, INTERACTIONS, "not an interaction request")
        self.logger.debug(f"{msg.kind_name} answered with {resp.kind_name}")
        if resp.kind == MessageType.Failure:
            self._raise_failure(resp)
        return resp

    def _run_loop(self, msg: WireMessage, *, terminal: MessageType,
                  interactions: AbstractSet[int]) -> WireMessage:
        while msg.kind not in (terminal, MessageType.Failure):
            if msg.kind not in interactions:
                self._unexpected(msg, (terminal, MessageType.Failure, *interactions))
            msg = self._interact(msg)
        return self._finish(msg, terminal)

    # ========= commands ==========

    @with_lock
    def address_gen(self, address_n: int, start_index: int = 0, confirm_address: bool = False,
                    wallet_type: str = '') -> WireMessage:
        msg = self.device.address_gen(address_n, start_index, confirm_address, wallet_type)
        return self._run_loop(msg, terminal=MessageType.ResponseAddress,
                              interactions=BUTTON_PIN_PASSPHRASE)

    @with_lock
    def apply_settings(self, use_passphrase: Optional[bool] = None, label: str = '',
                       language: str = '') -> WireMessage:
        msg = self.device.apply_settings(use_passphrase, label, language)
        return self._run_loop(msg, terminal=MessageType.Success, interactions=BUTTON_PIN)

    @with_lock
    def backup(self) -> WireMessage:
        msg = self.device.backup()
        if msg.kind == MessageType.PinMatrixRequest:
            msg = self._interact(msg)
        return self._run_loop(msg, terminal=MessageType.Success, interactions=BUTTON_PASSPHRASE)

    @with_lock
    def cancel(self) -> WireMessage:
        return self.device.cancel()

    @with_lock
    def check_message_signature(self, message: str, signature: str, address: str) -> WireMessage:
        return self.device.check_message_signature(message, signature, address)

    @with_lock
    def change_pin(self, remove_pin: Optional[bool] = None) -> None:
        msg = self.device.change_pin(remove_pin)
        self._run_loop(msg, terminal=MessageType.Success, interactions=BUTTON_PIN_PASSPHRASE)

    @with_lock
    def connected(self) -> bool:
        return self.device.connected()

    @with_lock
    def available(self) -> bool:
        return self.device.available()

    @with_lock
    def firmware_upload(self, payload: bytes, hash_: bytes) -> None:
        self.device.firmware_upload(payload, hash_)

    @with_lock
    def get_features(self) -> WireMessage:
        msg = self.device.get_features()
        return self._run_loop(msg, terminal=MessageType.Features, interactions=BUTTON_PIN_PASSPHRASE)

    @with_lock
    def generate_mnemonic(self, word_count: int, use_passphrase: bool) -> WireMessage:
        msg = self.device.generate_mnemonic(word_count, use_passphrase)
        if msg.kind == MessageType.ButtonRequest:
            msg = self._interact(msg)
        return self._finish(msg, MessageType.Success)

    @with_lock
    def recovery(self, word_count: int, use_passphrase: Optional[bool] = None,
                 dry_run: bool = False) -> WireMessage:
        msg = self.device.recovery(word_count, use_passphrase, dry_run)
        if msg.kind == MessageType.ButtonRequest:
            msg = self._interact(msg)
        # no upper bound: the device decides how many words it needs
        while msg.kind == MessageType.WordRequest:
            msg = self._interact(msg)
        if msg.kind == MessageType.ButtonRequest:
            msg = self._interact(msg)
        return self._finish(msg, MessageType.Success)

    @with_lock
    def set_mnemonic(self, mnemonic: str) -> WireMessage:
        msg = self.device.set_mnemonic(mnemonic)
        if msg.kind == MessageType.ButtonRequest:
            msg = self._interact(msg)
        return self._finish(msg, MessageType.Success)

    @with_lock
    def transaction_sign(self, inputs: Sequence[TransactionInput], outputs: Sequence[TransactionOutput],
                         wallet_type: str = '') -> WireMessage:
        msg = self.device.transaction_sign(inputs, outputs, wallet_type)
        while True:
            kind = msg.kind
            if kind == MessageType.ResponseTransactionSign:
                return self._finish(msg, MessageType.ResponseTransactionSign)
            elif kind == MessageType.Success:
                self._unexpected(msg, (MessageType.ResponseTransactionSign, MessageType.Failure),
                                 "signing must end with ResponseTransactionSign")
            elif kind == MessageType.Failure:
                self._raise_failure(msg)
            elif kind in BUTTON_PIN_PASSPHRASE:
                msg = self._interact(msg)
            else:
                self._unexpected(msg, (MessageType.ResponseTransactionSign, MessageType.Failure,
                                       *BUTTON_PIN_PASSPHRASE))

    @with_lock
    def sign_message(self, address_index: int, message: str, wallet_type: str = '') -> WireMessage:
        msg = self.device.sign_message(address_index, message, wallet_type)
        return self._run_loop(msg, terminal=MessageType.ResponseSignMessage,
                              interactions=BUTTON_PIN_PASSPHRASE)

    @with_lock
    def wipe(self) -> WireMessage:
        msg = self.device.wipe()
        if msg.kind == MessageType.ButtonRequest:
            msg = self._interact(msg)
        if msg.kind == MessageType.ButtonRequest:
            # the device kept asking after the confirmation; reset its state
            self.logger.info("device still waiting for a button after wipe, re-initializing")
            self.device.initialize()
            msg = self._interact(msg)
        return self._finish(msg, MessageType.Success)

    # ========= raw acknowledgments ==========

    @with_lock
    def pin_matrix_ack(self, pin: str) -> WireMessage:
        return self.device.pin_matrix_ack(pin)

    @with_lock
    def word_ack(self, word: str) -> WireMessage:
        return self.device.word_ack(word)

    @with_lock
    def passphrase_ack(self, passphrase: str) -> WireMessage:
        return self.device.passphrase_ack(passphrase)

    @with_lock
    def button_ack(self) -> WireMessage:
        return self.device.button_ack()

    # ========= device handle ==========

    @with_lock
    def set_auto_press_button(self, enable: bool, button: ButtonType = ButtonType.RIGHT) -> None:
        self.device.set_auto_press_button(enable, button)

    @with_lock
    def connect(self) -> None:
        self.device.connect()

    @with_lock
    def disconnect(self) -> None:
        self.device.disconnect()

    @with_lock
    def close(self) -> None:
        self.device.close()
