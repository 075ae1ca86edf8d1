#!/usr/bin/env python
#
# hwwallet - host-side driver for hardware wallets
# Copyright (C) 2026 The hwwallet developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
import sys
import re
import json
import hashlib
import argparse
from functools import wraps
from typing import Optional

from .cmdline import CmdLineHandler
from .device import Device, DeviceType
from .logging import Logger
from .messages import (MessageType, WireMessage, ButtonType, TransactionInput, TransactionOutput,
                       decode_features, decode_response_address, decode_response_sign_message,
                       decode_response_transaction_sign, decode_success_msg, decode_fail_msg)
from .sequencer import Sequencer
from .simple_config import SimpleConfig
from .util import DeviceFailure, UnexpectedMessage, UserFacingException


known_commands = {}  # type: dict[str, Command]


class Command:
    def __init__(self, func, name, s):
        self.name = name
        self.requires_usb = 'u' in s
        self.parse_docstring(func.__doc__)
        varnames = func.__code__.co_varnames[1:func.__code__.co_argcount]
        self.defaults = func.__defaults__
        if self.defaults:
            n = len(self.defaults)
            self.params = list(varnames[:-n])
            self.options = list(varnames[-n:])
        else:
            self.params = list(varnames)
            self.options = []
            self.defaults = []

    def parse_docstring(self, docstring):
        docstring = docstring or ''
        docstring = docstring.strip()
        self.description = docstring
        self.arg_descriptions = {}
        self.arg_types = {}
        for x in re.finditer(r'arg:(.*?):(.*?):(.*)$', docstring, flags=re.MULTILINE):
            self.arg_descriptions[x.group(2)] = x.group(3)
            self.arg_types[x.group(2)] = x.group(1)
            self.description = self.description.replace(x.group(), '')
        self.description = self.description.strip()
        self.short_description = self.description.split('.')[0]


def command(s):
    def decorator(func):
        name = func.__name__
        known_commands[name] = Command(func, name, s)

        @wraps(func)
        def func_wrapper(*args, **kwargs):
            cmd_runner = args[0]  # type: Commands
            cmd = known_commands[name]  # type: Command
            if cmd.requires_usb and cmd_runner.device_type != DeviceType.USB:
                raise UserFacingException(f'{name} is only available for USB devices')
            return func(*args, **kwargs)
        return func_wrapper
    return decorator


def parse_optional_bool(x: str) -> Optional[bool]:
    """'true' and 'false' map to booleans, the empty string means 'leave unchanged'."""
    if x == 'true':
        return True
    if x == 'false':
        return False
    if x == '':
        return None
    raise argparse.ArgumentTypeError(f"invalid boolean argument: {x!r} (expected true, false or empty)")


def eval_bool(x: str) -> bool:
    if x == 'false':
        return False
    if x == 'true':
        return True
    raise argparse.ArgumentTypeError(f"invalid boolean argument: {x!r}")


def parse_inputs(x: str):
    try:
        items = json.loads(x)
        return [TransactionInput(hash_in=d['hash_in'], index=int(d.get('index', 0))) for d in items]
    except (ValueError, TypeError, KeyError) as e:
        raise argparse.ArgumentTypeError(f"invalid transaction inputs: {e!r}") from e


def parse_outputs(x: str):
    try:
        items = json.loads(x)
        return [TransactionOutput(address=d['address'], coin=int(d['coin']), hour=int(d['hour']),
                                  address_index=d.get('address_index'))
                for d in items]
    except (ValueError, TypeError, KeyError) as e:
        raise argparse.ArgumentTypeError(f"invalid transaction outputs: {e!r}") from e


arg_types = {
    'int': int,
    'bool': eval_bool,
    'optbool': parse_optional_bool,
    'str': str,
    'inputs': parse_inputs,
    'outputs': parse_outputs,
}


def render_status(msg: WireMessage) -> str:
    """Text of a Success reply; a Failure reply is raised."""
    if msg.kind == MessageType.Success:
        return decode_success_msg(msg)
    if msg.kind == MessageType.Failure:
        code, text = decode_fail_msg(msg)
        raise DeviceFailure(code, text)
    raise UnexpectedMessage(msg, (MessageType.Success, MessageType.Failure))


class Commands(Logger):

    def __init__(self, *, config: 'SimpleConfig', sequencer: Sequencer = None):
        Logger.__init__(self)
        self.config = config
        self._sequencer = sequencer

    @property
    def device_type(self) -> DeviceType:
        if self._sequencer is not None:
            return self._sequencer.device.device_type
        return DeviceType.from_string(self.config.DEVICE_TYPE)

    @property
    def sequencer(self) -> Sequencer:
        if self._sequencer is None:
            self._sequencer = self._make_sequencer()
        return self._sequencer

    def _make_sequencer(self) -> Sequencer:
        device = Device.from_config(self.config)
        if (self.config.AUTO_PRESS_BUTTONS
                and device.device_type == DeviceType.EMULATOR
                and sys.platform.startswith('linux')):
            device.set_auto_press_button(True, ButtonType.from_string(self.config.AUTO_PRESS_BUTTON))
        return Sequencer(device, handler=CmdLineHandler())

    def close(self):
        if self._sequencer is not None:
            self._sequencer.close()

    def _run(self, method, *args, **kwargs):
        """This wrapper is called from unit tests and from run_hwwallet."""
        f = getattr(self, method)
        return f(*args, **kwargs)

    @command('')
    def features(self):
        """Ask the device for its features."""
        return decode_features(self.sequencer.get_features())

    @command('')
    def address_gen(self, address_n=1, start_index=0, confirm_address=False, wallet_type=''):
        """Generate addresses using the firmware.

        arg:int:address_n:Number of addresses to generate (1 to 99)
        arg:int:start_index:Index where deterministic key generation will start from
        arg:bool:confirm_address:Send a single address only after the user confirms it on the device
        arg:str:wallet_type:Wallet type, "deterministic" or "bip44"
        """
        msg = self.sequencer.address_gen(address_n, start_index, confirm_address, wallet_type)
        return decode_response_address(msg)

    @command('')
    def apply_settings(self, use_passphrase='', label='', language=''):
        """Apply settings to the device.

        arg:optbool:use_passphrase:Enable passphrase protection (true, false, or empty to leave unchanged)
        arg:str:label:Device label
        arg:str:language:Device language
        """
        if isinstance(use_passphrase, str):
            use_passphrase = parse_optional_bool(use_passphrase)
        msg = self.sequencer.apply_settings(use_passphrase, label, language)
        return decode_success_msg(msg)

    @command('')
    def backup(self):
        """Ask the device to display its seed for backup."""
        return decode_success_msg(self.sequencer.backup())

    @command('')
    def cancel(self):
        """Abort the operation the device is currently performing."""
        return render_status(self.sequencer.cancel())

    @command('')
    def check_message_signature(self, message, signature, address):
        """Check a message signature against an address.

        arg:str:message:The message that the signature claims to be signing
        arg:str:signature:Signature of the message
        arg:str:address:Address that issued the signature
        """
        return render_status(self.sequencer.check_message_signature(message, signature, address))

    @command('')
    def set_pin_code(self):
        """Configure a PIN code on the device, or change the current one."""
        self.sequencer.change_pin(remove_pin=False)
        return True

    @command('')
    def remove_pin_code(self):
        """Remove the PIN code from the device."""
        self.sequencer.change_pin(remove_pin=True)
        return True

    @command('')
    def generate_mnemonic(self, word_count=12, use_passphrase=False):
        """Ask the device to generate a seed and keep it secret.

        arg:int:word_count:Number of words of the seed, 12 or 24
        arg:bool:use_passphrase:Protect the seed with a passphrase
        """
        msg = self.sequencer.generate_mnemonic(word_count, use_passphrase)
        return decode_success_msg(msg)

    @command('')
    def recovery(self, word_count=12, use_passphrase='', dry_run=False):
        """Restore a seed on the device, entering its words one at a time.

        arg:int:word_count:Number of words of the seed, 12 or 24
        arg:optbool:use_passphrase:Protect the seed with a passphrase (true, false, or empty)
        arg:bool:dry_run:Only check the words against the seed already stored on the device
        """
        if isinstance(use_passphrase, str):
            use_passphrase = parse_optional_bool(use_passphrase)
        msg = self.sequencer.recovery(word_count, use_passphrase, dry_run)
        return decode_success_msg(msg)

    @command('')
    def set_mnemonic(self, mnemonic):
        """Configure the device with a known seed. For testing only.

        arg:str:mnemonic:Seed phrase
        """
        return decode_success_msg(self.sequencer.set_mnemonic(mnemonic))

    @command('')
    def sign_message(self, address_index, message, wallet_type=''):
        """Sign a message with the secret key at the given index.

        arg:int:address_index:Index of the address that will issue the signature
        arg:str:message:Message to sign
        arg:str:wallet_type:Wallet type, "deterministic" or "bip44"
        """
        msg = self.sequencer.sign_message(address_index, message, wallet_type)
        return decode_response_sign_message(msg)

    @command('')
    def transaction_sign(self, inputs, outputs, wallet_type=''):
        """Sign a transaction. Returns one signature per input.

        arg:inputs:inputs:JSON list of {"hash_in": ..., "index": ...}
        arg:outputs:outputs:JSON list of {"address": ..., "coin": ..., "hour": ..., "address_index": ...}
        arg:str:wallet_type:Wallet type, "deterministic" or "bip44"
        """
        if isinstance(inputs, str):
            inputs = parse_inputs(inputs)
        if isinstance(outputs, str):
            outputs = parse_outputs(outputs)
        msg = self.sequencer.transaction_sign(inputs, outputs, wallet_type)
        return decode_response_transaction_sign(msg)

    @command('')
    def wipe(self):
        """Erase the seed and the settings stored on the device."""
        return decode_success_msg(self.sequencer.wipe())

    @command('u')
    def firmware_update(self, path):
        """Upload a firmware image to the device (USB only, bootloader mode).

        arg:str:path:Path of the firmware image
        """
        try:
            with open(path, 'rb') as f:
                payload = f.read()
        except OSError as e:
            raise UserFacingException(f"cannot read firmware file: {e}") from e
        self.sequencer.firmware_upload(payload, hashlib.sha256(payload).digest())
        return True


def add_global_options(parser, suppress=False):
    group = parser.add_argument_group('global options')
    group.add_argument(
        "-v", dest="verbosity", default='',
        help=argparse.SUPPRESS if suppress else "Set verbosity (log levels)")
    group.add_argument(
        "-D", "--dir", dest="hwwallet_path",
        help=argparse.SUPPRESS if suppress else "hwwallet directory")
    group.add_argument(
        "--device-type", dest=SimpleConfig.DEVICE_TYPE.key(), default=None,
        help=argparse.SUPPRESS if suppress else "Device to send instructions to: USB or EMULATOR")
    group.add_argument(
        "--auto-press", action="store_true", dest=SimpleConfig.AUTO_PRESS_BUTTONS.key(), default=None,
        help=argparse.SUPPRESS if suppress else "Press buttons through the debug link (emulator on Linux only)")
    group.add_argument(
        "--log-to-file", action="store_true", dest=SimpleConfig.LOG_TO_FILE.key(), default=None,
        help=argparse.SUPPRESS if suppress else "Write a log file in the hwwallet directory")


def get_parser():
    # create main parser
    parser = argparse.ArgumentParser(
        epilog="Run 'hwwallet <command> -h' to see the help for a command")
    parser.add_argument("--version", dest="cmd", action='store_const', const='version', help="Return the version of hwwallet.")
    add_global_options(parser)
    subparsers = parser.add_subparsers(dest='cmd', metavar='<command>')
    # commands
    for cmdname in sorted(known_commands.keys()):
        cmd = known_commands[cmdname]
        p = subparsers.add_parser(
            cmdname,
            description=cmd.description,
            help=cmd.short_description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="Run 'hwwallet -h' to see the list of global options",
        )
        for optname, default in zip(cmd.options, cmd.defaults):
            help = cmd.arg_descriptions.get(optname)
            action = "store_true" if default is False else 'store'
            if action == 'store':
                type_descriptor = cmd.arg_types.get(optname)
                _type = arg_types.get(type_descriptor, str)
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help, type=_type)
            else:
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help)
        add_global_options(p, suppress=True)

        for param in cmd.params:
            help = cmd.arg_descriptions.get(param)
            type_descriptor = cmd.arg_types.get(param)
            _type = arg_types.get(type_descriptor, str)
            p.add_argument(param, help=help, type=_type)

    return parser
