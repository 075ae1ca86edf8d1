#!/usr/bin/env python3

# python setup.py sdist --format=zip,gztar

import sys
import importlib.util

from setuptools import setup

MIN_PYTHON_VERSION = "3.8.0"
_min_python_version_tuple = tuple(map(int, (MIN_PYTHON_VERSION.split("."))))


if sys.version_info[:3] < _min_python_version_tuple:
    sys.exit("Error: hwwallet requires Python version >= %s..." % MIN_PYTHON_VERSION)

with open('contrib/requirements/requirements.txt') as f:
    requirements = f.read().splitlines()

with open('contrib/requirements/requirements-hw.txt') as f:
    requirements_hw = f.read().splitlines()

# load version.py; needlessly complicated alternative to "imp.load_source":
version_spec = importlib.util.spec_from_file_location('version', 'hwwallet/version.py')
version_module = version = importlib.util.module_from_spec(version_spec)
version_spec.loader.exec_module(version_module)

extras_require = {
    'hardware': requirements_hw,
    'tests': ['pytest>=7.0'],
}
# 'full' extra that tries to grab everything an enduser would need
extras_require['full'] = [pkg for sublist in
                          (extras_require['hardware'],)
                          for pkg in sublist]


setup(
    name="hwwallet",
    version=version.HWWALLET_VERSION,
    python_requires='>={}'.format(MIN_PYTHON_VERSION),
    install_requires=requirements,
    extras_require=extras_require,
    packages=['hwwallet'],
    package_dir={
        'hwwallet': 'hwwallet'
    },
    scripts=['run_hwwallet'],
    description="Host-side driver for hardware wallets",
    author="The hwwallet developers",
    license="MIT Licence",
    long_description="""Host-side driver for hardware wallets: transport, wire codec and command sequencing""",
)
