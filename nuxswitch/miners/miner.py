import logging
import re


class MinerException(Exception):
    pass


class LaunchFailure(MinerException):
    pass


class HeartbeatTimeout(MinerException):
    pass


class SwitchConflict(MinerException):
    pass


class WorkerDisabled(MinerException):
    pass


class WorkerUnrecoverable(WorkerDisabled):
    pass


class Miner(object):

    def __init__(self, executable, settings):
        # list of runnable algorithms supplied by this miner
        self.algorithms = []
        # path to the mining program
        self.executable = executable
        # current state of settings
        self.settings = settings

    def launch_args(self, algorithm, device, pool):
        """Return the argv that runs algorithm on device."""
        raise NotImplementedError


class Algorithm(object):

    def __init__(self, parent, name, kinds):
        self.parent = parent
        # name used for benchmarks and market rates
        self.name = name
        # device kinds this algorithm runs on
        self.kinds = frozenset(kinds)

    def __repr__(self):
        return f'<algorithm:{self.name}>'

    def accepts(self, device):
        """Check if this algorithm will run on this device."""
        return device.kind in self.kinds and device.can_run(self.name)

    def launch_args(self, device, pool):
        assert self.accepts(device)
        return self.parent.launch_args(self, device, pool)


SPEED_UNITS = {'': 1.0, 'k': 1e3, 'K': 1e3, 'M': 1e6, 'G': 1e9, 'T': 1e12,
               'P': 1e15, 'E': 1e18}
SPEED_RE = re.compile(r'(\d+(?:\.\d+)?)\s*([kKMGTPE]?)(?:H|Sol|hash)/s')


def parse_speed(line):
    """Read the last hashes/second figure from a line of miner output."""
    matches = SPEED_RE.findall(line)
    if len(matches) == 0:
        return None
    value, unit = matches[-1]
    return float(value)*SPEED_UNITS[unit]


def log_output(stream, on_line=lambda line: None):
    for raw in iter(stream.readline, b''):
        line = raw.decode('utf-8', errors='replace').rstrip()
        if line != '':
            # Reset terminal colors.
            logging.debug(line + '\033[0m')
            on_line(line)
    stream.close()
