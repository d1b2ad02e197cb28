"""
Pytest configuration file

Adds the project root to the Python path so tests can import modules,
and provides fakes for iptables and uacctd.
"""
import sys
import os

import pytest

# Add the project root to the path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from config import ConfigTree


class FakeIptables:
    """In-memory rule tables driven by the iptables argument lists we emit."""

    def __init__(self, fail_on=None):
        self.tables = {}
        self.calls = []
        self.fail_on = fail_on

    def add_rule(self, table, chain, in_iface, target="RETURN"):
        self.tables.setdefault((table, chain), []).append((target, in_iface))

    def rules(self, table, chain):
        return list(self.tables.get((table, chain), []))

    def __call__(self, cmd):
        self.calls.append(cmd)
        assert cmd[0] == "iptables"
        table, op, chain = cmd[2], cmd[3], cmd[4]
        if self.fail_on == op:
            return (1, "")
        rules = self.tables.setdefault((table, chain), [])

        if op == "-I":
            rules.insert(int(cmd[5]) - 1, ("NFLOG", cmd[cmd.index("-i") + 1]))
            return (0, "")
        if op == "-D":
            num = int(cmd[5])
            if num < 1 or num > len(rules):
                return (1, "")
            del rules[num - 1]
            return (0, "")
        if op == "-vnL":
            lines = [
                "Chain %s (1 references)" % chain,
                "num   pkts bytes target     prot opt in     out     source               destination",
            ]
            for i, (target, in_iface) in enumerate(rules, 1):
                lines.append(
                    "%-5d    0     0 %-10s all  --  %-6s *       0.0.0.0/0            0.0.0.0/0"
                    % (i, target, in_iface)
                )
            return (0, "\n".join(lines) + "\n")
        return (2, "")


class FakeDaemon:
    """Records lifecycle calls instead of touching processes."""

    def __init__(self, running=True):
        self.running = running
        self.calls = []

    def is_running(self):
        return self.running

    def start(self, conf_file):
        self.calls.append(("start", conf_file))
        self.running = True

    def stop(self):
        self.calls.append(("stop",))
        self.running = False

    def restart(self, conf_file):
        self.calls.append(("restart", conf_file))
        self.running = True

    def reload(self):
        self.calls.append(("reload",))


@pytest.fixture
def iptables():
    return FakeIptables()


@pytest.fixture
def fake_daemon():
    return FakeDaemon()


@pytest.fixture
def iface_addrs():
    return [("lo", ["127.0.0.1"]), ("eth0", ["10.0.0.1"]), ("eth1", ["192.0.2.10"])]


@pytest.fixture
def snapshot():
    return {
        "system": {
            "flow-accounting": {
                "buffer-size": 20,
                "syslog-facility": "daemon",
                "interface": ["eth0", "eth1"],
                "netflow": {
                    "version": 9,
                    "engine-id": 5,
                    "sampling-rate": 100,
                    "source-ip": "10.0.0.1",
                    "max-flows": 65535,
                    "timeout": {"tcp-generic": 5, "udp": 3},
                    "server": {"192.0.2.1": {"port": 9995}},
                },
                "sflow": {
                    "agentid": 7,
                    "agent-address": "auto",
                    "server": {"192.0.2.2": None},
                },
            }
        },
    }


@pytest.fixture
def tree(snapshot):
    return ConfigTree(snapshot)
