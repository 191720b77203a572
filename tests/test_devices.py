from unittest import main, TestCase

import tests
from nuxswitch.devices import nvidia
from nuxswitch.devices.device import CPU, Device, GPU
from nuxswitch.devices.registry import DeviceRegistry, UnknownDevice
from nuxswitch.nicehash import PoolConfig


NVIDIA_SMI = b'''<?xml version="1.0" ?>
<nvidia_smi_log>
    <driver_version>535.54.03</driver_version>
    <gpu id="00000000:01:00.0">
        <product_name>NVIDIA GeForce GTX 1060 6GB</product_name>
        <uuid>GPU-0a1b2c3d-0000-1111-2222-333344445555</uuid>
        <pci>
            <pci_bus>01</pci_bus>
        </pci>
    </gpu>
    <gpu id="00000000:0A:00.0">
        <product_name>NVIDIA GeForce RTX 3070</product_name>
        <uuid>GPU-9f8e7d6c-0000-1111-2222-333344445555</uuid>
        <pci>
            <pci_bus>0A</pci_bus>
        </pci>
    </gpu>
</nvidia_smi_log>
'''


class TestNvidia(TestCase):

    def setUp(self):
        self.devices = nvidia.parse_devices(
            NVIDIA_SMI, tests.get_test_miner().algorithms)

    def test_parse(self):
        self.assertEqual([d.uuid for d in self.devices],
                         ['GPU-0a1b2c3d-0000-1111-2222-333344445555',
                          'GPU-9f8e7d6c-0000-1111-2222-333344445555'])
        self.assertEqual([d.index for d in self.devices], [0, 1])
        self.assertEqual(self.devices[1].pci_bus, 10)
        self.assertEqual(self.devices[0].name, 'NVIDIA GeForce GTX 1060 6GB')

    def test_algorithms(self):
        self.assertEqual(self.devices[0].kind, GPU)
        self.assertEqual(self.devices[0].algorithms,
                         frozenset(['alpha', 'beta', 'gamma']))


class TestRegistry(TestCase):

    def setUp(self):
        self.devices = tests.get_test_devices()
        self.registry = DeviceRegistry(reversed(self.devices))

    def test_lookup(self):
        self.assertIs(self.registry.get('GPU-aabbccdd01'), self.devices[1])
        self.assertIn('CPU-aabbccdd02', self.registry)
        self.assertEqual(len(self.registry), 3)

    def test_unknown(self):
        with self.assertRaises(UnknownDevice):
            self.registry.get('GPU-ffffffff')

    def test_order(self):
        self.assertEqual(self.registry.ids(),
                         ['CPU-aabbccdd02', 'GPU-aabbccdd00', 'GPU-aabbccdd01'])
        self.assertEqual([d.uuid for d in self.registry], self.registry.ids())

    def test_capable(self):
        self.assertTrue(self.registry.capable('CPU-aabbccdd02', 'delta'))
        self.assertFalse(self.registry.capable('CPU-aabbccdd02', 'alpha'))
        self.assertTrue(self.registry.capable('GPU-aabbccdd00', 'gamma'))

    def test_duplicate(self):
        with self.assertRaises(ValueError):
            DeviceRegistry(self.devices + [Device('GPU-aabbccdd00', GPU, 'copy')])

    def test_equality(self):
        copy = Device('GPU-aabbccdd00', GPU, 'other name')
        self.assertEqual(copy, self.devices[0])
        self.assertEqual(len({copy, self.devices[0]}), 1)
        self.assertNotEqual(self.devices[0], self.devices[1])


class TestCommandLine(TestCase):

    def setUp(self):
        self.settings = tests.get_test_settings()
        self.miner = tests.get_test_miner(self.settings)
        self.pool = PoolConfig(self.settings,
                               {'alpha': 'alpha.usa.nicehash.com:3333'})
        self.gpu1 = tests.get_test_devices()[1]

    def algorithm(self, name):
        return next(a for a in self.miner.algorithms if a.name == name)

    def test_launch_args(self):
        self.assertEqual(
            self.algorithm('alpha').launch_args(self.gpu1, self.pool),
            ['/opt/miner/miner', '-a', 'alpha', '-o',
             'alpha.usa.nicehash.com:3333', '-d', 'GPU-aabbccdd01'])

    def test_default_args(self):
        self.settings['cmdline_miner']['args'] = ''
        miner = tests.get_test_miner(self.settings)
        alpha = next(a for a in miner.algorithms if a.name == 'alpha')
        wallet = self.settings['nicehash']['wallet']
        self.assertEqual(
            alpha.launch_args(self.gpu1, self.pool),
            ['/opt/miner/miner', '-a', 'alpha', '-o',
             'stratum+tcp://alpha.usa.nicehash.com:3333',
             '-u', f'{wallet}.nuxswitch', '-d', '1'])

    def test_accepts(self):
        cpu = tests.get_test_devices()[2]
        self.assertTrue(self.algorithm('gamma').accepts(cpu))
        self.assertFalse(self.algorithm('alpha').accepts(cpu))
        self.assertTrue(self.algorithm('alpha').accepts(self.gpu1))


if __name__ == '__main__':
    main()
