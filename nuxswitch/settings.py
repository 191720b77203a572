import configparser
import errno
import json
import os
from copy import deepcopy
from pathlib import Path

from nuxswitch.miners import cmdline


DEFAULT_CONFIGDIR = Path(os.path.expanduser('~/.config/nuxswitch'))
SETTINGS_FILENAME = 'settings.conf'
BENCHMARKS_FILENAME = 'benchmarks.json'
DEFAULT_SETTINGS = {
    'nicehash': {
        'wallet': '',
        'workername': 'nuxswitch',
        'region': 'usa'
        },
    'switching': {
        'interval': 60,
        'threshold': 0.1,
        'dwell': 180
        },
    'market': {
        'interval': 60,
        'stale_secs': 300,
        'max_failures': 3,
        'first_data_secs': 10,
        'timeout': 20
        },
    'worker': {
        'heartbeat_timeout': 180,
        'heartbeat_interval': 5,
        'grace_secs': 10,
        'max_failures': 3,
        'backoff_secs': 5.0,
        'backoff_max': 300.0,
        'smoothing': 0.3
        },
    'cmdline_miner': {
        'executable': '',
        'args': ''
        }
    }


def default_settings():
    """Return a private copy of the default settings."""
    return deepcopy(DEFAULT_SETTINGS)


def read_settings_from_file(fd):
    """Read settings.conf; absent options take their default values.

    Each option is parsed as the type of its default.
    """
    parser = configparser.ConfigParser()
    parser.read_file(fd)
    readers = [(bool, parser.getboolean), (int, parser.getint),
               (float, parser.getfloat), (str, parser.get)]
    settings = default_settings()
    for section, options in settings.items():
        for option, default in options.items():
            if not parser.has_option(section, option):
                continue
            read = next(method for kind, method in readers
                        if isinstance(default, kind))
            options[option] = read(section, option)
    validate_settings(settings)
    return settings


def validate_settings(settings):
    """Raise ValueError for values the engine cannot work with."""
    def check(section, option, test, requirement):
        value = settings[section][option]
        if not test(value):
            raise ValueError(f'[{section}] {option} = {value}: must be '
                             + requirement)
    check('switching', 'threshold', lambda v: v >= 0.0, '>= 0')
    check('switching', 'dwell', lambda v: v >= 0, '>= 0')
    for section in ['switching', 'market']:
        check(section, 'interval', lambda v: v > 0, '> 0')
    check('market', 'max_failures', lambda v: v >= 1, '>= 1')
    check('worker', 'max_failures', lambda v: v >= 1, '>= 1')
    check('worker', 'heartbeat_interval', lambda v: v > 0, '> 0')
    check('worker', 'backoff_max',
          lambda v: v >= settings['worker']['backoff_secs'],
          '>= backoff_secs')
    check('worker', 'smoothing', lambda v: 0.0 < v <= 1.0, 'in (0, 1]')
    args = settings['cmdline_miner']['args']
    if args != '':
        try:
            cmdline.check_template(args)
        except ValueError as err:
            raise ValueError(f'[cmdline_miner] args: {err}') from err


def write_settings_to_file(fd, settings):
    parser = configparser.ConfigParser()
    parser.read_dict({section: {option: str(value)
                                for option, value in options.items()}
                      for section, options in settings.items()})
    parser.write(fd)


def read_benchmarks_from_file(fd, devices):
    """Read a dict of device -> algorithm name -> hashrate.

    Records for devices not in devices are dropped."""
    benchmarks = {}
    js = json.load(fd)
    for js_device in js:
        device = next((device for device in devices
                       if str(device) == js_device), None)
        if device is None:
            continue
        js_speeds = js[js_device]
        benchmarks[device] = {}
        for algorithm_name in js_speeds:
            speed = js_speeds[algorithm_name]
            # Multialgorithm lists from older files; keep the primary speed.
            if isinstance(speed, list):
                speed = speed[0] if len(speed) > 0 else 0.0
            benchmarks[device][algorithm_name] = float(speed)
    return benchmarks


def write_benchmarks_to_file(fd, benchmarks):
    to_file = {}
    for device in benchmarks:
        to_file[str(device)] = dict(benchmarks[device])
    json.dump(to_file, fd, indent=4)


def load_settings(config_dir):
    return _load(config_dir/SETTINGS_FILENAME, read_settings_from_file,
                 default_settings())


def load_benchmarks(config_dir, devices):
    return _load(config_dir/BENCHMARKS_FILENAME,
                 lambda fd: read_benchmarks_from_file(fd, devices), {})


def _load(path, read, default):
    try:
        with open(path, 'r') as fd:
            return read(fd)
    except IOError as err:
        if err.errno != errno.ENOENT:
            raise
        return default


def save_settings(config_dir, settings):
    _mkdir(config_dir)
    with open(config_dir/SETTINGS_FILENAME, 'w') as settings_fd:
        write_settings_to_file(settings_fd, settings)


def save_benchmarks(config_dir, benchmarks):
    _mkdir(config_dir)
    with open(config_dir/BENCHMARKS_FILENAME, 'w') as benchmarks_fd:
        write_benchmarks_to_file(benchmarks_fd, benchmarks)


def _mkdir(d):
    os.makedirs(d, exist_ok=True)
