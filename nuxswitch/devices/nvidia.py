import subprocess
import xml.etree.ElementTree as ET

from nuxswitch.devices.device import capable_algorithms, Device, GPU


class NvidiaDevice(Device):

    def __init__(self, pci_bus, uuid, name, index=0, algorithms=()):
        super(NvidiaDevice, self).__init__(uuid, GPU, name, index=index,
                                           algorithms=algorithms)
        self.pci_bus = pci_bus

    def __str__(self):
        return f'nvidia_{self.uuid}'

    def __repr__(self):
        return f'<nvidia device {self.uuid}: {self.name}>'


def parse_devices(raw, algorithms=[]):
    """Read nvidia-smi's XML report."""
    runnable = capable_algorithms(algorithms, GPU)
    xml = ET.fromstring(raw)
    devices = []
    for index, gpu in enumerate(xml.findall('gpu')):
        pci_bus = int(gpu.find('pci').find('pci_bus').text, 16)
        uuid = gpu.find('uuid').text
        name = gpu.find('product_name').text
        devices.append(NvidiaDevice(pci_bus, uuid, name, index=index,
                                    algorithms=runnable))
    return devices


def enumerate_devices(algorithms=[]):
    try:
        raw = subprocess.check_output(['nvidia-smi', '--query', '--xml-format'])
    except OSError as err:
        if err.errno != 2: # file not found
            raise
        return []
    else:
        return parse_devices(raw, algorithms)
