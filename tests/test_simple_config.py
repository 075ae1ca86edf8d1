import os
import stat
import tempfile
import shutil

from hwwallet.simple_config import SimpleConfig, read_user_config

from . import HwWalletTestCase


class Test_SimpleConfig(HwWalletTestCase):

    def setUp(self):
        super(Test_SimpleConfig, self).setUp()
        # make sure "read_user_config" and "user_dir" return a temporary directory.
        self.hwwallet_dir = tempfile.mkdtemp()
        # Do the same for the user dir to avoid overwriting the real configuration
        # for development machines with hwwallet installed :)
        self.user_dir = tempfile.mkdtemp()

        self.options = {"hwwallet_path": self.hwwallet_dir}

    def tearDown(self):
        super(Test_SimpleConfig, self).tearDown()
        shutil.rmtree(self.hwwallet_dir)
        shutil.rmtree(self.user_dir)

    def test_simple_config_command_line_overrides_everything(self):
        """Options passed by command line override all other configuration
        sources"""
        fake_read_user = lambda _: {"device_type": "USB"}
        read_user_dir = lambda: self.user_dir
        config = SimpleConfig(options={"hwwallet_path": self.hwwallet_dir, "device_type": "EMULATOR"},
                              read_user_config_function=fake_read_user,
                              read_user_dir_function=read_user_dir)
        self.assertEqual("EMULATOR", config.DEVICE_TYPE)
        self.assertEqual(self.hwwallet_dir, config.path)

    def test_simple_config_user_config_is_used_if_others_arent_specified(self):
        """If no config options are passed on the command line, the user
        config file is used."""
        fake_read_user = lambda _: {"emulator_port": 4000}
        read_user_dir = lambda: self.user_dir
        config = SimpleConfig(options={},
                              read_user_config_function=fake_read_user,
                              read_user_dir_function=read_user_dir)
        self.assertEqual(4000, config.EMULATOR_PORT)
        self.assertEqual(self.user_dir, config.path)

    def test_defaults(self):
        config = SimpleConfig(self.options, environ={})
        self.assertEqual('USB', config.DEVICE_TYPE)
        self.assertEqual('127.0.0.1', config.EMULATOR_HOST)
        self.assertEqual(21324, config.EMULATOR_PORT)
        self.assertEqual(21325, config.EMULATOR_DEBUG_PORT)
        self.assertFalse(config.AUTO_PRESS_BUTTONS)
        self.assertEqual('right', config.AUTO_PRESS_BUTTON)
        self.assertFalse(config.LOG_TO_FILE)

    def test_auto_press_buttons_from_environment_string(self):
        for value, expected in (('1', True), ('true', True), ('0', False), ('', False)):
            with self.subTest(value=value):
                config = SimpleConfig({"hwwallet_path": self.hwwallet_dir, "auto_press_buttons": value})
                self.assertIs(expected, config.AUTO_PRESS_BUTTONS)

    def test_cannot_set_options_passed_by_command_line(self):
        fake_read_user = lambda _: {"device_type": "USB"}
        read_user_dir = lambda: self.user_dir
        config = SimpleConfig(options={"hwwallet_path": self.hwwallet_dir, "device_type": "EMULATOR"},
                              read_user_config_function=fake_read_user,
                              read_user_dir_function=read_user_dir)
        self.assertFalse(config.is_modifiable('device_type'))
        config.DEVICE_TYPE = 'USB'
        self.assertEqual("EMULATOR", config.DEVICE_TYPE)

    def test_make_key_not_modifiable(self):
        config = SimpleConfig(self.options)
        config.make_key_not_modifiable(SimpleConfig.EMULATOR_HOST)
        config.EMULATOR_HOST = '10.0.0.1'
        self.assertEqual('127.0.0.1', config.EMULATOR_HOST)

    def test_configvar_type_check(self):
        config = SimpleConfig(self.options)
        with self.assertRaises(ValueError):
            config.EMULATOR_PORT = '21324'
        config.EMULATOR_PORT = 21330
        self.assertEqual(21330, config.EMULATOR_PORT)

    def test_setting_unknown_attribute_raises(self):
        config = SimpleConfig(self.options)
        with self.assertRaises(AttributeError):
            config.DEVICE_TYPEE = 'EMULATOR'

    def test_set_key_none_deletes(self):
        config = SimpleConfig(self.options)
        config.set_key('emulator_host', '10.0.0.1')
        self.assertTrue(config.is_set('emulator_host'))
        config.set_key('emulator_host', None)
        self.assertFalse(config.is_set('emulator_host'))
        self.assertEqual('127.0.0.1', config.EMULATOR_HOST)

    def test_user_config_is_saved_with_restrictive_permissions(self):
        config = SimpleConfig(self.options, environ={})
        config.DEVICE_TYPE = 'EMULATOR'
        config_path = os.path.join(self.hwwallet_dir, 'config')
        self.assertEqual({'device_type': 'EMULATOR'}, read_user_config(self.hwwallet_dir))
        if os.name == 'posix':
            mode = stat.S_IMODE(os.stat(config_path).st_mode)
            self.assertEqual(stat.S_IREAD | stat.S_IWRITE, mode)
        # reloaded from disk
        config2 = SimpleConfig(self.options, environ={})
        self.assertEqual('EMULATOR', config2.DEVICE_TYPE)

    def test_environment_overrides_user_config(self):
        fake_read_user = lambda _: {"device_type": "USB", "auto_press_buttons": False}
        config = SimpleConfig(self.options, read_user_config_function=fake_read_user,
                              environ={'DEVICE_TYPE': 'EMULATOR', 'AUTO_PRESS_BUTTONS': '1', 'EMULATOR_PORT': '1'})
        self.assertEqual('EMULATOR', config.DEVICE_TYPE)
        self.assertIs(True, config.AUTO_PRESS_BUTTONS)
        # only declared variables are read
        self.assertEqual(21324, config.EMULATOR_PORT)
        self.assertFalse(config.is_modifiable(SimpleConfig.DEVICE_TYPE))
        config.DEVICE_TYPE = 'USB'
        self.assertEqual('EMULATOR', config.DEVICE_TYPE)

    def test_command_line_overrides_environment(self):
        config = SimpleConfig({"hwwallet_path": self.hwwallet_dir, "device_type": "USB"},
                              environ={'DEVICE_TYPE': 'EMULATOR', 'AUTO_PRESS_BUTTONS': ''})
        self.assertEqual('USB', config.DEVICE_TYPE)
        # empty variables are ignored
        self.assertFalse(config.is_set('auto_press_buttons'))

    def test_bad_value_in_user_config(self):
        fake_read_user = lambda _: {"emulator_port": "not a port"}
        config = SimpleConfig(self.options, read_user_config_function=fake_read_user, environ={})
        with self.assertRaises(ValueError):
            config.EMULATOR_PORT


class TestUserConfig(HwWalletTestCase):

    def setUp(self):
        super(TestUserConfig, self).setUp()
        self.user_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.user_dir)
        super(TestUserConfig, self).tearDown()

    def test_no_path_means_no_config(self):
        result = read_user_config(None)
        self.assertEqual({}, result)

    def test_path_without_config_file(self):
        """We pass a path but if does not contain a "config" file."""
        result = read_user_config(self.user_dir)
        self.assertEqual({}, result)

    def test_path_with_reprd_object(self):

        class something(object):
            pass

        thefile = os.path.join(self.user_dir, "config")
        payload = something()
        with open(thefile, "w") as f:
            f.write(repr(payload))

        with self.assertRaises(ValueError):
            read_user_config(self.user_dir)
