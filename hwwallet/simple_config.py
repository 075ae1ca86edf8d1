import json
import threading
import os
import stat
from copy import deepcopy
from typing import Union, Optional, Dict, Any, Set, Callable, Mapping

from .util import os_chmod, user_dir, make_dir
from .logging import Logger


_config_var_from_key = {}  # type: Dict[str, ConfigVar]


class ConfigVar(property):
    """A typed config key, read and written as an attribute of SimpleConfig.

    `env` names an environment variable that may also provide the value.
    """

    def __init__(self, key: str, *, default: Any, type_: type = None,
                 convert_getter: Callable[[Any], Any] = None, env: str = None):
        assert key not in _config_var_from_key, f"duplicate config key str: {key!r}"
        self._key = key
        self._default = default
        self._type = type_
        self._convert_getter = convert_getter
        self.env = env
        property.__init__(self, self._get_config_value, self._set_config_value)
        _config_var_from_key[key] = self

    def _get_config_value(self, config: 'SimpleConfig'):
        value = config.get(self._key, default=...)
        if value is ...:
            return self._default
        if self._convert_getter is not None:
            value = self._convert_getter(value)
        if self._type is not None:
            try:
                value = self._type(value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"config key {self._key!r}: cannot read {value!r} as {self._type.__name__}") from e
        return value

    def _set_config_value(self, config: 'SimpleConfig', value):
        if self._type is not None and value is not None and not isinstance(value, self._type):
            raise ValueError(f"config key {self._key!r}: expected {self._type.__name__}, got {value!r}")
        config.set_key(self._key, value)

    def key(self) -> str:
        return self._key

    def __repr__(self):
        return f"<ConfigVar key={self._key!r}>"

    def __deepcopy__(self, memo):
        return self


def _env_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def read_environment(environ: Mapping[str, str]) -> Dict[str, str]:
    """Config values given through environment variables, by config key."""
    options = {}
    for key, var in _config_var_from_key.items():
        if var.env and environ.get(var.env):
            options[key] = environ[var.env]
    return options


class SimpleConfig(Logger):
    """
    Settings of the driver, looked up in this order:
        1. command line options
        2. environment variables (DEVICE_TYPE, AUTO_PRESS_BUTTONS)
        3. the user config file, <datadir>/config
    Only the user config file is ever written; keys set by 1. or 2. are
    read-only for the lifetime of the object.
    """

    def __init__(self, options=None, read_user_config_function=None,
                 read_user_dir_function=None, environ: Mapping[str, str] = None):
        Logger.__init__(self)
        options = options or {}
        for config_key in options:
            assert isinstance(config_key, str), f"{config_key=!r} has type={type(config_key)}, expected str"
        self.lock = threading.RLock()

        # dependency injection for tests
        if read_user_config_function is None:
            read_user_config_function = read_user_config
        self.user_dir = read_user_dir_function or user_dir

        self.cmdline_options = deepcopy(options)
        self.env_options = read_environment(os.environ if environ is None else environ)
        self._not_modifiable_keys = set(self.env_options)  # type: Set[str]

        self.user_config = {}  # type: Dict[str, Any]
        self.path = self.hwwallet_path()
        self.user_config = read_user_config_function(self.path)

        self._init_done = True

    def hwwallet_path(self) -> Optional[str]:
        path = self.get('hwwallet_path') or self.user_dir()
        if path is None:
            return None
        make_dir(path, allow_symlink=False)
        self.logger.info(f"hwwallet directory {path}")
        return path

    def set_key(self, key: Union[str, ConfigVar], value, *, save=True) -> None:
        """Set (or with None, delete) a key of the user config file."""
        if isinstance(key, ConfigVar):
            key = key.key()
        if not self.is_modifiable(key):
            self.logger.warning(f"not changing config key '{key}' set on the command line or environment")
            return
        try:
            json.dumps(value)
        except TypeError:
            self.logger.info(f"json error: cannot save {key!r} ({value!r})")
            return
        with self.lock:
            if value is not None:
                self.user_config[key] = value
            else:
                self.user_config.pop(key, None)
            if save:
                self.save_user_config()

    def get(self, key: str, default=None) -> Any:
        with self.lock:
            for source in (self.cmdline_options, self.env_options):
                value = source.get(key)
                if value is not None:
                    return value
            return self.user_config.get(key, default)

    def is_set(self, key: Union[str, ConfigVar]) -> bool:
        """Returns whether the config key has any explicit value set/defined."""
        if isinstance(key, ConfigVar):
            key = key.key()
        return self.get(key, default=...) is not ...

    def is_modifiable(self, key: Union[str, ConfigVar]) -> bool:
        if isinstance(key, ConfigVar):
            key = key.key()
        return key not in self.cmdline_options and key not in self._not_modifiable_keys

    def make_key_not_modifiable(self, key: Union[str, ConfigVar]) -> None:
        if isinstance(key, ConfigVar):
            key = key.key()
        self._not_modifiable_keys.add(key)

    def save_user_config(self):
        if not self.path:
            return
        path = os.path.join(self.path, "config")
        s = json.dumps(self.user_config, indent=4, sort_keys=True)
        try:
            with open(path, "w", encoding='utf-8') as f:
                os_chmod(path, stat.S_IREAD | stat.S_IWRITE)  # set restrictive perms *before* we write data
                f.write(s)
        except OSError:
            # datadir deleted while running
            if os.path.exists(self.path):
                raise

    def __setattr__(self, name, value):
        """Catches mistyped ConfigVars, e.g. `config.DEVICE_TYPEE = 'EMULATOR'`."""
        if not getattr(self, "_init_done", False) or hasattr(self, name):
            return super().__setattr__(name, value)
        raise AttributeError(f"Tried to define new instance attribute for config: {name=!r}. "
                             "Did you perhaps mistype a ConfigVar?")

    # config variables ----->
    DEVICE_TYPE = ConfigVar('device_type', default='USB', type_=str, env='DEVICE_TYPE')
    EMULATOR_HOST = ConfigVar('emulator_host', default='127.0.0.1', type_=str)
    EMULATOR_PORT = ConfigVar('emulator_port', default=21324, type_=int)
    EMULATOR_DEBUG_PORT = ConfigVar('emulator_debug_port', default=21325, type_=int)
    AUTO_PRESS_BUTTONS = ConfigVar('auto_press_buttons', default=False, type_=bool,
                                   convert_getter=_env_bool, env='AUTO_PRESS_BUTTONS')
    AUTO_PRESS_BUTTON = ConfigVar('auto_press_button', default='right', type_=str)
    LOG_TO_FILE = ConfigVar('log_to_file', default=False, type_=bool)


def read_user_config(path: Optional[str]) -> Dict[str, Any]:
    """Parse the config file in the data directory. A missing file is an empty config."""
    if not path:
        return {}
    config_path = os.path.join(path, "config")
    if not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding='utf-8') as f:
            result = json.load(f)
    except (OSError, ValueError) as e:
        raise ValueError(f"Invalid config file at {config_path}: {e}") from e
    if not isinstance(result, dict):
        raise ValueError(f"Invalid config file at {config_path}: not a JSON object")
    return result
