import getpass
from typing import Optional

from .logging import get_logger
from .messages import PinMatrixRequestType
from .util import print_stderr, raw_input, UserCancelled, UserFacingException


_logger = get_logger(__name__)


# keypad positions, as laid out on the device screen
PIN_MATRIX_KEYS = {'a': '7', 'b': '8', 'c': '9', 'd': '4', 'e': '5', 'f': '6', 'g': '1', 'h': '2', 'i': '3'}


def pin_prompt(pin_type: Optional[int]) -> str:
    if pin_type == PinMatrixRequestType.NewFirst:
        return "Enter a new PIN for your device:"
    elif pin_type == PinMatrixRequestType.NewSecond:
        return ("Re-enter the new PIN for your device.\n"
                "NOTE: the positions of the numbers have changed!")
    return "Enter your current PIN:"


def encode_pin_matrix(letters: str) -> str:
    try:
        return ''.join(PIN_MATRIX_KEYS[x] for x in letters.strip().lower())
    except KeyError as e:
        raise UserFacingException("Character {} not in matrix!".format(e)) from e


class UnattendedHandler:
    """Answers every request with an empty value, for scripted runs."""

    def get_pin(self, pin_type: Optional[int] = None) -> str:
        return ''

    def get_passphrase(self) -> str:
        return ''

    def get_word(self) -> str:
        return ''

    def show_message(self, msg: str):
        _logger.info(msg)


class CmdLineHandler:

    def get_passphrase(self) -> str:
        print_stderr("Passphrase required:")
        passphrase = getpass.getpass('')
        print_stderr("Confirm your passphrase:")
        if passphrase != getpass.getpass(''):
            raise UserFacingException("Passphrase did not match!")
        return passphrase

    def get_pin(self, pin_type: Optional[int] = None) -> str:
        print_stderr(pin_prompt(pin_type))
        print_stderr("a b c\nd e f\ng h i\n-----")
        o = raw_input()
        if not o:
            raise UserCancelled()
        return encode_pin_matrix(o)

    def get_word(self) -> str:
        print_stderr("Word:")
        word = raw_input().strip()
        if not word:
            raise UserCancelled()
        return word

    def show_message(self, msg: str):
        print_stderr(msg)
