import logging
import threading
import time
from collections import namedtuple

from nuxswitch import utils


BenchmarkEntry = namedtuple('BenchmarkEntry', ['hashrate', 'timestamp'])


class BenchmarkStore(object):
    """Measured hashrates keyed by (device uuid, algorithm name).

    Readers see a dict that is never mutated; writers copy, update, and swap it
    in under a lock.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._write_lock = threading.Lock()
        self._entries = {}

    @classmethod
    def from_mapping(cls, benchmarks, clock=time.time):
        """Build from a dict of device -> algorithm name -> hashrate."""
        store = cls(clock=clock)
        now = clock()
        store._entries = {(device.uuid, algorithm): BenchmarkEntry(float(speed), now)
                          for device, speeds in benchmarks.items()
                          for algorithm, speed in speeds.items()}
        return store

    def to_mapping(self, devices):
        entries = self._entries
        return {device: {algorithm: entry.hashrate
                         for (uuid, algorithm), entry in entries.items()
                         if uuid == device.uuid}
                for device in devices}

    def record(self, device_id, algorithm, hashrate):
        """Store a new measurement, replacing any previous one."""
        entry = BenchmarkEntry(float(hashrate), self._clock())
        with self._write_lock:
            entries = dict(self._entries)
            entries[(device_id, algorithm)] = entry
            self._entries = entries
        return entry

    def forget(self, device_id, algorithm):
        with self._write_lock:
            entries = dict(self._entries)
            entries.pop((device_id, algorithm), None)
            self._entries = entries

    def lookup(self, device_id, algorithm):
        entry = self._entries.get((device_id, algorithm))
        return None if entry is None else entry.hashrate

    def entry(self, device_id, algorithm):
        return self._entries.get((device_id, algorithm))

    def for_device(self, device_id):
        return {algorithm: entry.hashrate
                for (uuid, algorithm), entry in self._entries.items()
                if uuid == device_id}

    def missing(self, registry):
        """List (device, algorithm name) pairs that have no measurement."""
        entries = self._entries
        return [(device, algorithm)
                for device in registry
                for algorithm in sorted(device.algorithms)
                if (device.uuid, algorithm) not in entries]

    def refresh(self, registry, benchmark):
        """Measure every missing pair with benchmark(device, algorithm name)."""
        measured = 0
        for device, algorithm in self.missing(registry):
            try:
                hashrate = benchmark(device, algorithm)
            except Exception as err:
                logging.warning(f'Benchmark of {algorithm} on {device!r} '
                                + f'failed: {err}')
                continue
            self.record(device.uuid, algorithm, hashrate)
            logging.info(f'Benchmarked {algorithm} on {device!r}: '
                         + utils.format_speed(hashrate).strip())
            measured += 1
        return measured
