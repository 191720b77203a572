from nuxswitch.miners.cmdline import CommandLineMiner


all_miners = [CommandLineMiner]
