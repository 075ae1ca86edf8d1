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
import os
import sys
import json
import stat
import builtins
from functools import wraps
from typing import TYPE_CHECKING, Optional, Sequence

from .logging import get_logger

if TYPE_CHECKING:
    from .messages import WireMessage


_logger = get_logger(__name__)


class HardwareWalletError(Exception):
    """Base class of everything a device command can fail with."""


class TransportError(HardwareWalletError):
    """Sending or receiving a frame failed (device gone, I/O fault)."""


class ProtocolError(HardwareWalletError):
    pass


class UnexpectedMessage(ProtocolError):

    def __init__(self, msg: 'WireMessage', expected: Sequence[int] = (), reason: Optional[str] = None):
        self.msg = msg
        self.expected = tuple(expected)
        text = f"unexpected response from device: {msg.kind_name}"
        if reason:
            text += f" ({reason})"
        ProtocolError.__init__(self, text)


class DecodeFailure(ProtocolError):
    pass


class DeviceFailure(HardwareWalletError):
    """The device answered with a Failure message."""

    def __init__(self, code: Optional[int], message: str):
        HardwareWalletError.__init__(self, message)
        self.code = code
        self.message = message

    def __str__(self):
        return self.message


class PinException(DeviceFailure):
    pass


class UserCancelled(Exception):
    '''An exception that is suppressed from the user'''
    pass


class UserFacingException(Exception):
    '''Exception that contains information intended to be shown to the user.'''


def print_stderr(*args):
    args = [str(item) for item in args]
    sys.stderr.write(" ".join(args) + "\n")
    sys.stderr.flush()


def print_msg(*args):
    # Stringify args
    args = [str(item) for item in args]
    sys.stdout.write(" ".join(args) + "\n")
    sys.stdout.flush()


def json_encode(obj):
    try:
        s = json.dumps(obj, sort_keys=True, indent=4, cls=MyEncoder)
    except TypeError:
        s = repr(obj)
    return s


class MyEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, bytes):
            return obj.hex()
        if isinstance(obj, set):
            return list(obj)
        return super(MyEncoder, self).default(obj)


def raw_input(prompt=None):
    if prompt:
        sys.stdout.write(prompt)
    return builtins.input()


def with_lock(func):
    """Decorator to enforce a lock on a function call."""
    @wraps(func)
    def func_wrapper(self, *args, **kwargs):
        with self.lock:
            return func(self, *args, **kwargs)
    return func_wrapper


def user_dir():
    if "HOME" in os.environ:
        return os.path.join(os.environ["HOME"], ".hwwallet")
    elif "APPDATA" in os.environ:
        return os.path.join(os.environ["APPDATA"], "hwwallet")
    elif "LOCALAPPDATA" in os.environ:
        return os.path.join(os.environ["LOCALAPPDATA"], "hwwallet")
    else:
        #raise Exception("No home directory found in environment variables.")
        return


def os_chmod(path, mode):
    """os.chmod aware of tmpfs"""
    try:
        os.chmod(path, mode)
    except OSError as e:
        xdg_runtime_dir = os.environ.get("XDG_RUNTIME_DIR", None)
        if xdg_runtime_dir and is_subpath(path, xdg_runtime_dir):
            _logger.info(f"Tried to chmod in tmpfs. Skipping... {e!r}")
        else:
            raise


def make_dir(path, allow_symlink=True):
    """Make directory if it does not yet exist."""
    if not os.path.exists(path):
        if not allow_symlink and os.path.islink(path):
            raise Exception('Dangling link: ' + path)
        os.mkdir(path)
        os_chmod(path, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)


def is_subpath(long_path: str, short_path: str) -> bool:
    """Returns whether long_path is a sub-path of short_path."""
    try:
        common = os.path.commonpath([long_path, short_path])
    except ValueError:
        return False
    short_path = os.path.normcase(os.path.normpath(short_path))
    common = os.path.normcase(os.path.normpath(common))
    return short_path == common
