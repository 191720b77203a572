class ProfitCalculator(object):
    """Rank each device's benchmarked algorithms by expected revenue."""

    def __init__(self, registry, benchmarks, feed):
        self._registry = registry
        self._benchmarks = benchmarks
        self._feed = feed

    def rank(self, device_id):
        """Return list of (algorithm name, payrate), best first.

        Empty if nothing is benchmarked or no market data has arrived yet; that
        means "no decision", not "stop mining".
        """
        snapshot = self._feed.current_snapshot()
        if snapshot is None:
            return []
        device = self._registry.get(device_id)
        payrates = []
        for algorithm in device.algorithms:
            hashrate = self._benchmarks.lookup(device_id, algorithm)
            if hashrate is not None:
                payrates.append((algorithm, hashrate*snapshot.rate(algorithm)))
        payrates.sort(key=lambda p: (-p[1], p[0]))
        return payrates

    def payrate(self, device_id, algorithm):
        return next((rate for name, rate in self.rank(device_id)
                     if name == algorithm), None)

    def revenue(self, algorithm, hashrate):
        """Revenue of a live hashrate at current market rates."""
        snapshot = self._feed.current_snapshot()
        if snapshot is None or hashrate is None:
            return 0.0
        return hashrate*snapshot.rate(algorithm)

    def market_stale(self):
        return self._feed.is_stale()
