CPU = 'cpu'
GPU = 'gpu'
OTHER = 'other'


class Device(object):
    """A compute device and the algorithms it can run.

    Devices are fixed at discovery time; compare and hash by uuid.
    """

    def __init__(self, uuid, kind, name, index=0, algorithms=()):
        self._uuid = uuid
        self._kind = kind
        self._name = name
        self._index = index
        self._algorithms = frozenset(algorithms)

    @property
    def uuid(self):
        return self._uuid

    @property
    def kind(self):
        return self._kind

    @property
    def name(self):
        return self._name

    @property
    def index(self):
        return self._index

    @property
    def algorithms(self):
        return self._algorithms

    def can_run(self, algorithm_name):
        return algorithm_name in self._algorithms

    def __eq__(self, other):
        if isinstance(other, Device):
            return self.uuid == other.uuid
        else:
            return False
    def __ne__(self, other):
        return not self == other
    def __str__(self):
        return f'{self.kind}_{self.uuid}'
    def __repr__(self):
        return f'<{self.kind} device {self.uuid}: {self.name}>'
    def __hash__(self):
        return hash(self.uuid)


def capable_algorithms(algorithms, kind):
    """Names of the algorithms that run on devices of this kind."""
    return frozenset(algorithm.name for algorithm in algorithms
                     if kind in algorithm.kinds)
