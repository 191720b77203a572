import threading

import nuxswitch.settings
from nuxswitch.benchmarks import BenchmarkStore
from nuxswitch.devices.device import CPU, Device, GPU
from nuxswitch.devices.registry import DeviceRegistry
from nuxswitch.events import Notifier
from nuxswitch.market import MarketFeed
from nuxswitch.miners.cmdline import CommandLineMiner
from nuxswitch.miners.process import ProcessLauncher
from nuxswitch.mining import MiningEngine
from nuxswitch.nicehash import PoolConfig


TEST_ALGORITHMS = {
    'alpha': (GPU,),
    'beta': (GPU,),
    'gamma': (GPU, CPU),
    'delta': (CPU,)
    }


class FakeClock(object):
    def __init__(self, now=1000.0):
        self.now = now
    def __call__(self):
        return self.now
    def advance(self, secs):
        self.now += secs


class FakeProcess(object):
    def __init__(self, argv, on_output):
        self.argv = argv
        self.on_output = on_output
        self.alive = True
        self.stubborn = False
        self.signalled = self.killed = False
    @property
    def algorithm(self):
        return self.argv[self.argv.index('-a') + 1]
    def say(self, line):
        self.on_output(line)


class FakeLauncher(ProcessLauncher):
    """Records every launch; processes live until signalled or killed."""

    def __init__(self):
        self.processes = []
        self.fail = False
        self.stubborn = False
        # When set, start() blocks until the gate opens.
        self.gate = None
        self.entered = threading.Event()

    def start(self, argv, on_output=lambda line: None):
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(10)
        if self.fail:
            raise OSError(2, 'No such file or directory')
        process = FakeProcess(argv, on_output)
        process.stubborn = self.stubborn
        self.processes.append(process)
        return process

    def signal(self, handle):
        handle.signalled = True
        if not handle.stubborn:
            handle.alive = False

    def kill(self, handle):
        handle.killed = True
        handle.alive = False

    def is_alive(self, handle):
        return handle.alive

    def wait(self, handle, timeout=None):
        return not handle.alive

    def live(self, device=None):
        return [process for process in self.processes if process.alive
                and (device is None or process.argv[-1] == device.uuid)]


def get_test_settings():
    settings = nuxswitch.settings.default_settings()
    settings['nicehash']['wallet'] = '3DJBpNcgP3Pihw45p9544PK6TbbYeMcnk7'
    settings['cmdline_miner']['executable'] = '/opt/miner/miner'
    settings['cmdline_miner']['args'] = '-a {algorithm} -o {stratum} -d {uuid}'
    settings['switching']['threshold'] = 0.1
    settings['switching']['dwell'] = 180
    settings['worker']['heartbeat_timeout'] = 60
    settings['worker']['grace_secs'] = 1
    settings['worker']['max_failures'] = 3
    settings['worker']['backoff_secs'] = 10.0
    settings['worker']['backoff_max'] = 60.0
    return settings


def get_test_miner(settings=None):
    return CommandLineMiner(settings or get_test_settings(),
                            algorithms=TEST_ALGORITHMS)


def get_test_devices(algorithms=None):
    if algorithms is None:
        algorithms = get_test_miner().algorithms
    gpu = frozenset(a.name for a in algorithms if GPU in a.kinds)
    cpu = frozenset(a.name for a in algorithms if CPU in a.kinds)
    return [Device('GPU-aabbccdd00', GPU, 'Novideo GrillForce RTX 9080',
                   index=0, algorithms=gpu),
            Device('GPU-aabbccdd01', GPU, 'Ayyti Rayydeon RX 420',
                   index=1, algorithms=gpu),
            Device('CPU-aabbccdd02', CPU, 'Intlel Grafix', index=0,
                   algorithms=cpu)]


def get_test_benchmarks():
    devices = get_test_devices()
    return { devices[0]: { 'alpha': 100.0,
                           'beta': 80.0,
                           'gamma': 20.0 },
             devices[1]: { 'alpha': 50.0,
                           'beta': 90.0 },
             devices[2]: { 'gamma': 5.0,
                           'delta': 7.0 } }


class Rates(object):
    """Market source whose rates a test can change between polls."""

    def __init__(self, rates):
        self.rates = dict(rates)
        self.fail = False

    def __call__(self):
        if self.fail:
            raise IOError('connection refused')
        return dict(self.rates)


class Harness(object):
    """A MiningEngine wired to fakes, for driving ticks by hand."""

    def __init__(self, rates, benchmarks, devices, settings=None, root='test'):
        self.settings = settings or get_test_settings()
        self.clock = FakeClock()
        self.launcher = FakeLauncher()
        self.rates = Rates(rates)
        self.notifier = Notifier(root=root)
        self.miner = get_test_miner(self.settings)
        self.registry = DeviceRegistry(devices)
        self.benchmarks = BenchmarkStore.from_mapping(benchmarks,
                                                      clock=self.clock)
        self.feed = MarketFeed.from_settings(self.rates, self.settings,
                                             clock=self.clock)
        self.engine = MiningEngine(
            self.registry, self.benchmarks, self.feed, self.miner.algorithms,
            self.launcher, PoolConfig(self.settings), self.settings,
            notifier=self.notifier, clock=self.clock)
