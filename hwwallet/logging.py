# Copyright (C) 2026 The hwwallet developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php
"""Logging setup.

Every module logs through a child of the "hwwallet" logger, either via
`get_logger(__name__)` or by mixing in `Logger`, which names the logger after
the object's class and its `diagnostic_name()`. Nothing is emitted until
`configure_logging` installs the handlers: a terse stderr handler filtered
by the verbosity string, and optionally one log file per run under
<datadir>/logs.
"""

import copy
import datetime
import logging
import os
import pathlib
import platform
import sys
from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .simple_config import SimpleConfig


PACKAGE = "hwwallet"
LOGFILE_PREFIX = "hwwallet_log_"
KEEP_LOGFILES = 10

# logger name (without the package prefix) -> name shown in log lines
SHORT_NAMES = {
    'sequencer.Sequencer': 'sequencer',
    'device.Device': 'device',
    'device.EmulatorDriver': 'emulator',
    'device.USBDriver': 'usb',
    'transport_udp.UDPTransport': 'udp',
    'transport_hid.HidTransport': 'hid',
    'commands.Commands': 'commands',
}


def short_name(name: str) -> str:
    if name.startswith(PACKAGE + "."):
        name = name[len(PACKAGE) + 1:]
    for long, short in SHORT_NAMES.items():
        if name == long or name.startswith(long + "."):
            return short + name[len(long):]
    return name


class HwWalletFormatter(logging.Formatter):
    """Shortens logger names; file lines carry a UTC timestamp."""

    def formatTime(self, record, datefmt=None):
        date = datetime.datetime.fromtimestamp(record.created, tz=datetime.timezone.utc)
        return date.strftime(datefmt or "%Y%m%dT%H%M%S.%fZ")

    def format(self, record):
        record = copy.copy(record)
        record.name = short_name(record.name)
        return super().format(record)


console_formatter = HwWalletFormatter(fmt="%(levelname).1s | %(name)s | %(message)s")
file_formatter = HwWalletFormatter(fmt="%(asctime)22s | %(levelname)8s | %(name)s | %(message)s")


root_logger = logging.getLogger()
root_logger.setLevel(logging.WARNING)

hwwallet_logger = logging.getLogger(PACKAGE)
hwwallet_logger.setLevel(logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    if name.startswith(PACKAGE + "."):
        name = name[len(PACKAGE) + 1:]
    return hwwallet_logger.getChild(name)


_logger = get_logger(__name__)
_logger.setLevel(logging.INFO)


class Logger:

    def __init__(self):
        self.logger = self.__get_logger_for_obj()

    def __get_logger_for_obj(self) -> logging.Logger:
        cls = self.__class__
        name = f"{cls.__module__}.{cls.__name__}" if cls.__module__ else cls.__name__
        diag_name = self.diagnostic_name()
        if diag_name:
            name += f".[{diag_name}]"
        return get_logger(name)

    def diagnostic_name(self):
        return ''


def _level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level: {name!r}")
    return level


def parse_verbosity(verbosity: str) -> Dict[Optional[str], int]:
    """Parse a filter string into {logger name: level}.

    The None key is the package-wide level. Examples:
        debug,transport_udp=error    everything but the emulator link
        warning,sequencer=debug      only the sequencer
    """
    levels = {}  # type: Dict[Optional[str], int]
    for filt in verbosity.split(','):
        if not filt:
            continue
        items = filt.split('=')
        if len(items) == 1:
            levels[None] = _level(items[0])
        elif len(items) == 2:
            levels[items[0].strip()] = _level(items[1])
        else:
            raise ValueError(f"invalid log filter: {filt}")
    return levels


def _process_verbosity_log_levels(verbosity) -> None:
    if verbosity == '*' or not isinstance(verbosity, str):
        return
    for name, level in parse_verbosity(verbosity).items():
        logger = hwwallet_logger if name is None else get_logger(name)
        logger.setLevel(level)


def delete_old_logs(log_directory: pathlib.Path, keep: int = KEEP_LOGFILES) -> None:
    files = sorted(log_directory.glob(f"{LOGFILE_PREFIX}*.log"), reverse=True)
    for f in files[keep:]:
        try:
            f.unlink()
        except OSError as e:
            _logger.warning(f"cannot delete old logfile: {e}")


_handlers = {}  # type: Dict[str, logging.Handler]


def _add_handler(kind: str, handler: logging.Handler) -> None:
    if kind in _handlers:
        _logger.warning(f"{kind} logging already configured")
        return
    _handlers[kind] = handler
    root_logger.addHandler(handler)


def _configure_stderr_logging(verbosity) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(console_formatter)
    # by default only WARNING and higher
    handler.setLevel(logging.DEBUG if verbosity else logging.WARNING)
    _add_handler('stderr', handler)
    if verbosity:
        _process_verbosity_log_levels(verbosity)


def _configure_file_logging(log_directory: pathlib.Path) -> pathlib.Path:
    log_directory.mkdir(exist_ok=True)
    # make room for this run's file
    delete_old_logs(log_directory, keep=KEEP_LOGFILES - 1)
    timestamp = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    path = log_directory / f"{LOGFILE_PREFIX}{timestamp}_{os.getpid()}.log"
    handler = logging.FileHandler(path, encoding='utf-8')
    handler.setFormatter(file_formatter)
    handler.setLevel(logging.DEBUG)
    _add_handler('file', handler)
    return path


def get_logfile_path() -> Optional[pathlib.Path]:
    handler = _handlers.get('file')
    return pathlib.Path(handler.baseFilename) if handler else None


def configure_logging(config: 'SimpleConfig', *, log_to_file: Optional[bool] = None) -> None:
    verbosity = config.get('verbosity')
    _configure_stderr_logging(verbosity)

    if log_to_file is None:
        log_to_file = config.LOG_TO_FILE
    if log_to_file and config.path:
        _configure_file_logging(pathlib.Path(config.path) / "logs")

    from .version import HWWALLET_VERSION
    _logger.info(f"hwwallet {HWWALLET_VERSION}, Python {sys.version.split()[0]} on {platform.platform()}")
    _logger.info(f"device type {config.DEVICE_TYPE}, log file {get_logfile_path()}, verbosity {verbosity!r}")
