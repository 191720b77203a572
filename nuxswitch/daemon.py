import argparse
import logging
import shlex
import signal
import subprocess
import sys
from functools import partial
from pathlib import Path
from threading import Event

from nuxswitch import nicehash, settings, utils
from nuxswitch.benchmarks import BenchmarkStore
from nuxswitch.devices.registry import DeviceRegistry
from nuxswitch.events import Notifier
from nuxswitch.market import MarketFeed
from nuxswitch.miners import all_miners
from nuxswitch.miners.miner import parse_speed
from nuxswitch.miners.process import SubprocessLauncher
from nuxswitch.mining import MiningEngine
from nuxswitch.version import __version__


def main():
    argp = argparse.ArgumentParser(
        description='Mine the most profitable algorithm on every device.')
    argp.add_argument('--list-devices', action='store_true',
                      help='list all devices')
    argp.add_argument('-v', '--verbose', action='store_true',
                      help='print more information to the console log')
    argp.add_argument('--show-mining', action='store_true',
                      help='print output from mining processes, implies --verbose')
    argp.add_argument(
        '-c', '--configdir', nargs=1, default=[settings.DEFAULT_CONFIGDIR],
        help=('directory for configuration and benchmark files'
              + ' (default: ~/.config/nuxswitch/)'))
    argp.add_argument(
        '--benchmark-command', nargs=1, default=[None], metavar='COMMAND',
        help=('measure unbenchmarked algorithms with COMMAND, which may use'
              + ' {algorithm}, {device}, and {uuid} and must print a speed'))
    argp.add_argument('--version', action='store_true',
                      help='show nuxswitch version')
    args = argp.parse_args()
    config_dir = Path(args.configdir[0])

    if args.version:
        print(f'nuxswitch daemon {__version__}')
        return

    if args.show_mining:
        log_level = logging.DEBUG
    elif args.verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARN
    logging.basicConfig(format='%(asctime)s %(levelname)s: %(message)s',
                        level=log_level)

    try:
        nx_settings = settings.load_settings(config_dir)
    except ValueError as err:
        logging.error(f'Bad settings file: {err}')
        sys.exit(1)
    nx_miners = [miner(nx_settings) for miner in all_miners]
    algorithms = sum([miner.algorithms for miner in nx_miners], [])
    registry = DeviceRegistry.discover(algorithms)

    if args.list_devices:
        list_devices(registry)
        return

    if nx_settings['nicehash']['wallet'] == '':
        print('No wallet configured; set [nicehash] wallet in '
              + str(config_dir/settings.SETTINGS_FILENAME))
        settings.save_settings(config_dir, nx_settings)
        sys.exit(1)

    benchmarks = BenchmarkStore.from_mapping(
        settings.load_benchmarks(config_dir, list(registry)))
    benchmark_command = args.benchmark_command[0]
    if benchmark_command is not None:
        measured = benchmarks.refresh(
            registry, partial(external_benchmark, benchmark_command))
        logging.info(f'Measured {measured} new benchmarks')
    missing = benchmarks.missing(registry)
    if len(missing) > 0:
        logging.warning(f'{len(missing)} device/algorithm pairs are not '
                        + 'benchmarked and will not be mined')

    engine = build_engine(nx_settings, registry, benchmarks, algorithms)
    quit_signal = Event()
    # NOTE: If running in a shell, Ctrl-C will get sent to our subprocesses too.
    signal.signal(signal.SIGINT, lambda signum, frame: quit_signal.set())
    signal.signal(signal.SIGTERM, lambda signum, frame: quit_signal.set())

    engine.start()
    engine.start_all()
    while not quit_signal.wait(60):
        total = engine.stats.total_payrate()
        logging.info(f"Revenue: {utils.format_balance(total, 'mBTC')}/day")
    logging.info('Quit signal received, terminating miners')
    engine.shutdown()

    settings.save_settings(config_dir, nx_settings)
    settings.save_benchmarks(config_dir, benchmarks.to_mapping(list(registry)))


def build_engine(nx_settings, registry, benchmarks, algorithms, notifier=None):
    try:
        stratums = nicehash.stratums(nx_settings)
    except Exception as err:
        logging.warning(f'NiceHash stratums: {err}, using NHMP endpoint')
        stratums = {}
    pool = nicehash.PoolConfig(nx_settings, stratums)
    feed = MarketFeed.from_settings(
        partial(nicehash.simplemultialgo_info, nx_settings), nx_settings)
    return MiningEngine(registry, benchmarks, feed, algorithms,
                        SubprocessLauncher(), pool, nx_settings,
                        notifier=Notifier() if notifier is None else notifier)


def list_devices(registry):
    for d in registry:
        print(f'{d.kind.upper()} device: {d.name} ({d.uuid})')
        print(f"  algorithms: {', '.join(sorted(d.algorithms))}")


def external_benchmark(command, device, algorithm, timeout=600):
    """Run a benchmarking program and return the last speed it prints."""
    argv = [arg.format(algorithm=algorithm, device=device.index,
                       uuid=device.uuid)
            for arg in shlex.split(command)]
    logging.info(f'Benchmarking {algorithm} on {device!r}')
    output = subprocess.check_output(argv, stdin=subprocess.DEVNULL,
                                     stderr=subprocess.STDOUT, timeout=timeout)
    speeds = [speed for speed in
              map(parse_speed, output.decode('utf-8', errors='replace')
                  .splitlines())
              if speed is not None]
    if len(speeds) == 0:
        raise ValueError(f'{argv[0]} printed no speed')
    return speeds[-1]
