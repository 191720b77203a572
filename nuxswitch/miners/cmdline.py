import re
import shlex
import string

from nuxswitch.devices.device import CPU, GPU
from nuxswitch.miners import miner


# algorithm name -> device kinds
ALGORITHMS = {
    'daggerhashimoto': (GPU,),
    'kawpow': (GPU,),
    'etchash': (GPU,),
    'octopus': (GPU,),
    'autolykos': (GPU,),
    'beamv3': (GPU,),
    'cuckoocycle': (GPU,),
    'zelhash': (GPU,),
    'zhash': (GPU,),
    'grincuckatoo32': (GPU,),
    'randomxmonero': (CPU,),
    'verushash': (CPU, GPU),
    }
DEFAULT_ARGS = ('-a {algorithm} -o stratum+tcp://{stratum} '
                + '-u {wallet}.{workername} -d {device}')
TEMPLATE_FIELDS = frozenset(['algorithm', 'stratum', 'wallet', 'workername',
                             'region', 'device', 'uuid'])


def check_template(args):
    """Raise ValueError if args is not a usable argument template."""
    for arg in shlex.split(args):
        for literal, field, spec, conversion in string.Formatter().parse(arg):
            if field is None:
                continue
            name = re.split(r'[.\[]', field, maxsplit=1)[0]
            if name not in TEMPLATE_FIELDS:
                raise ValueError(f'unknown field {{{field}}} in {arg!r}')


class CommandLineMiner(miner.Miner):
    """A mining program configured entirely through its command line.

    The argument template may use {algorithm}, {stratum}, {wallet},
    {workername}, {region}, {device} (vendor index), and {uuid}.
    """

    def __init__(self, settings, algorithms=ALGORITHMS):
        executable = settings['cmdline_miner']['executable']
        super(CommandLineMiner, self).__init__(executable, settings)
        self.args = settings['cmdline_miner']['args'] or DEFAULT_ARGS
        for name, kinds in sorted(algorithms.items()):
            self.algorithms.append(miner.Algorithm(self, name, kinds))

    def launch_args(self, algorithm, device, pool):
        fields = {
            'algorithm': algorithm.name,
            'stratum': pool.stratum(algorithm.name),
            'wallet': pool.wallet,
            'workername': pool.workername,
            'region': pool.region,
            'device': device.index,
            'uuid': device.uuid
            }
        return [self.executable] + [arg.format(**fields)
                                    for arg in shlex.split(self.args)]
