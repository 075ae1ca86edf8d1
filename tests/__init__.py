import collections
import unittest
import threading
import tempfile
import shutil
import time

import hwwallet
import hwwallet.logging
from hwwallet.device import DeviceType, Driver
from hwwallet.logging import Logger
from hwwallet.messages import MessageType, WireMessage, build
from hwwallet.transport import Transport, split_packets, encode_frame


hwwallet.logging._configure_stderr_logging(verbosity="*")


class HwWalletTestCase(unittest.TestCase, Logger):
    """Base class for our unit tests."""

    # maxDiff = None  # for debugging

    # some unit tests are modifying globals... so we run sequentially:
    _test_lock = threading.Lock()

    def __init__(self, *args, **kwargs):
        Logger.__init__(self)
        unittest.TestCase.__init__(self, *args, **kwargs)

    def setUp(self):
        have_lock = self._test_lock.acquire(timeout=0.1)
        if not have_lock:
            # This can happen when trying to run the tests in parallel,
            # or if a prior test raised during `setUp` and never released the lock.
            raise Exception("timed out waiting for test_lock")
        super().setUp()
        self.hwwallet_path = tempfile.mkdtemp(prefix="hwwallet-unittest-base-")

    def tearDown(self):
        shutil.rmtree(self.hwwallet_path)
        super().tearDown()
        self._test_lock.release()


def msg(kind: MessageType, **fields) -> WireMessage:
    return build(kind, **fields)


def success(text: str = 'ok') -> WireMessage:
    return build(MessageType.Success, message=text)


def failure(text: str = 'failed', code: int = 9) -> WireMessage:
    return build(MessageType.Failure, code=code, message=text)


BUTTON_REQUEST = build(MessageType.ButtonRequest)
PIN_REQUEST = build(MessageType.PinMatrixRequest, type=1)
PASSPHRASE_REQUEST = build(MessageType.PassphraseRequest)
WORD_REQUEST = build(MessageType.WordRequest)


class FakeDevice:
    """Stands in for hwwallet.device.Device.

    Every operation that talks to the device pops the next scripted reply.
    A scripted exception is raised instead of returned. Calls are recorded,
    and calls that overlap in time are counted.
    """

    def __init__(self, responses=(), *, device_type=DeviceType.EMULATOR, delay=0.0):
        self.responses = collections.deque(responses)
        self.device_type = device_type
        self.delay = delay
        self.calls = []
        self.overlaps = 0
        self.is_available = True
        self.auto_press = None
        self.closed = False
        self._active = 0
        self._guard = threading.Lock()

    def call_names(self):
        return [c[0] for c in self.calls]

    def _respond(self, name, *args):
        with self._guard:
            self._active += 1
            if self._active > 1:
                self.overlaps += 1
            self.calls.append((name,) + args)
        try:
            if self.delay:
                time.sleep(self.delay)
            if not self.responses:
                raise AssertionError(f"unscripted call to {name}")
            resp = self.responses.popleft()
            if isinstance(resp, BaseException):
                raise resp
            return resp
        finally:
            with self._guard:
                self._active -= 1

    def initialize(self):
        return self._respond('initialize')

    def address_gen(self, address_n, start_index=0, confirm_address=False, wallet_type=''):
        return self._respond('address_gen', address_n, start_index, confirm_address, wallet_type)

    def apply_settings(self, use_passphrase=None, label='', language=''):
        return self._respond('apply_settings', use_passphrase, label, language)

    def backup(self):
        return self._respond('backup')

    def cancel(self):
        return self._respond('cancel')

    def check_message_signature(self, message, signature, address):
        return self._respond('check_message_signature', message, signature, address)

    def change_pin(self, remove_pin=None):
        return self._respond('change_pin', remove_pin)

    def get_features(self):
        return self._respond('get_features')

    def generate_mnemonic(self, word_count, use_passphrase):
        return self._respond('generate_mnemonic', word_count, use_passphrase)

    def recovery(self, word_count, use_passphrase, dry_run):
        return self._respond('recovery', word_count, use_passphrase, dry_run)

    def set_mnemonic(self, mnemonic):
        return self._respond('set_mnemonic', mnemonic)

    def transaction_sign(self, inputs, outputs, wallet_type=''):
        return self._respond('transaction_sign', inputs, outputs, wallet_type)

    def sign_message(self, address_index, message, wallet_type=''):
        return self._respond('sign_message', address_index, message, wallet_type)

    def wipe(self):
        return self._respond('wipe')

    def button_ack(self):
        return self._respond('button_ack')

    def pin_matrix_ack(self, pin):
        return self._respond('pin_matrix_ack', pin)

    def passphrase_ack(self, passphrase):
        return self._respond('passphrase_ack', passphrase)

    def word_ack(self, word):
        return self._respond('word_ack', word)

    def firmware_upload(self, payload, hash_):
        self.calls.append(('firmware_upload', payload, hash_))

    def connected(self):
        self.calls.append(('connected',))
        return self.is_available

    def available(self):
        self.calls.append(('available',))
        return self.is_available

    def set_auto_press_button(self, enable, button):
        self.auto_press = (enable, button)

    def connect(self):
        self.calls.append(('connect',))

    def disconnect(self):
        self.calls.append(('disconnect',))

    def close(self):
        self.closed = True


class RecordingHandler:
    """Answers prompts from fixed lists and records what was asked."""

    def __init__(self, pins=(), passphrases=(), words=()):
        self.pins = list(pins)
        self.passphrases = list(passphrases)
        self.words = list(words)
        self.prompts = []
        self.messages = []

    def _next(self, answers, what):
        self.prompts.append(what)
        answer = answers.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def get_pin(self, pin_type=None):
        return self._next(self.pins, ('pin', pin_type))

    def get_passphrase(self):
        return self._next(self.passphrases, ('passphrase',))

    def get_word(self):
        return self._next(self.words, ('word',))

    def show_message(self, msg):
        self.messages.append(msg)


class LoopbackTransport(Transport):
    """In-memory Transport: reads from `incoming`, records `written` packets."""

    def __init__(self, incoming=(), name='loopback'):
        self.incoming = collections.deque()
        self.written = []
        super().__init__(name)
        for m in incoming:
            self.feed(m)

    def feed(self, m: WireMessage):
        self.incoming.extend(split_packets(encode_frame(m)))

    def feed_raw(self, packet: bytes):
        self.incoming.append(packet)

    def _open(self):
        pass

    def _close(self):
        pass

    def _write_packet(self, packet: bytes):
        self.written.append(bytes(packet))

    def _read_packet(self) -> bytes:
        if not self.incoming:
            return b''
        return self.incoming.popleft()

    def written_messages(self):
        """Reassemble what was written into WireMessages."""
        reader = LoopbackTransport()
        reader.incoming.extend(self.written)
        reader.open()
        out = []
        # zero padding left in the buffer is skipped by the header resync
        while reader.incoming or reader.buffer.strip(b'\0'):
            out.append(reader.read_blocking())
        return out


class LoopbackDriver(Driver):

    def __init__(self, device_type=DeviceType.EMULATOR, transport=None, debug_transport=None,
                 available=True):
        self.device_type = device_type
        self.transport = transport if transport is not None else LoopbackTransport()
        self.debug_transport = debug_transport if debug_transport is not None else LoopbackTransport(name='debug')
        self.available = available
        Logger.__init__(self)

    def open_transport(self):
        return self.transport

    def open_debug_transport(self):
        return self.debug_transport

    def is_available(self):
        return self.available
