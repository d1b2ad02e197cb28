"""
Tests for the command line actions and exit codes.
"""
import json

import pytest

import main
import rules
from conftest import FakeDaemon, FakeIptables


@pytest.fixture
def log_file(tmp_path):
    return str(tmp_path / "acct.log")


@pytest.fixture
def snapshot_file(tmp_path, snapshot):
    path = tmp_path / "snap.json"
    path.write_text(json.dumps(snapshot))
    return str(path)


@pytest.fixture
def fake_rules(monkeypatch):
    iptables = FakeIptables()
    manager_cls = rules.NflogRuleManager
    monkeypatch.setattr(
        rules, "NflogRuleManager",
        lambda spec: manager_cls(spec, runner=iptables))
    monkeypatch.setattr(main.util, "get_interfaces", lambda: ["lo", "eth0"])
    return iptables


class TestActions:

    def test_list_intf(self, snapshot_file, log_file, capsys):
        code = main.main(["--action", "list-intf", "--config", snapshot_file, "--log-file", log_file])
        assert code == 0
        assert capsys.readouterr().out == "eth0\neth1"

    def test_list_intf_with_unwritable_log(self, snapshot_file, tmp_path, capsys):
        log_file = str(tmp_path / "nodir" / "acct.log")
        code = main.main(["--action", "list-intf", "--config", snapshot_file, "--log-file", log_file])
        assert code == 0
        assert capsys.readouterr().out == "eth0\neth1"

    def test_add_and_del_intf(self, fake_rules, log_file, capsys):
        assert main.main(["--action", "add-intf", "--intf", "eth0", "--log-file", log_file]) == 0
        assert fake_rules.rules("raw", "VYATTA_CT_PREROUTING_HOOK") == [("NFLOG", "eth0")]
        assert main.main(["--action", "del-intf", "--intf", "eth0", "--log-file", log_file]) == 0
        assert fake_rules.rules("raw", "VYATTA_CT_PREROUTING_HOOK") == []

        out = capsys.readouterr().out
        assert "Adding flow-accounting for [eth0]" in out
        assert "Removing flow-accounting for [eth0]" in out
        with open(log_file) as f:
            log = f.read()
        assert "update [eth0]" in log
        assert "stop [eth0]" in log

    def test_add_unknown_interface_warns(self, fake_rules, log_file, capsys):
        assert main.main(["--action", "add-intf", "--intf", "eth7", "--log-file", log_file]) == 0
        assert "interface [eth7] does not exist on system" in capsys.readouterr().out

    def test_del_missing_rule_exits_1(self, fake_rules, log_file, capsys):
        assert main.main(["--action", "del-intf", "--intf", "eth0", "--log-file", log_file]) == 1
        assert "[-] error:" in capsys.readouterr().err

    def test_update_disabled(self, tmp_path, log_file, monkeypatch):
        fake = FakeDaemon()
        monkeypatch.setattr(main.daemon, "Daemon", lambda: fake)
        snap = tmp_path / "empty.json"
        snap.write_text(json.dumps({"system": {"flow-accounting": {}}}))
        conf = tmp_path / "uacctd.conf"
        conf.write_text("old\n")

        code = main.main(["--action", "update", "--config", str(snap),
                          "--conf-file", str(conf), "--log-file", log_file])
        assert code == 0
        assert fake.calls == [("stop",)]
        assert not conf.exists()

    def test_update_missing_snapshot_exits_1(self, tmp_path, log_file):
        code = main.main(["--action", "update", "--config", str(tmp_path / "none.json"),
                          "--log-file", log_file])
        assert code == 1

    @pytest.mark.parametrize("args", [[], ["--action", "restart"]])
    def test_bad_action_exits_1(self, args):
        with pytest.raises(SystemExit) as exc:
            main.main(args)
        assert exc.value.code == 1

    def test_update_write_error_exits_1(self, snapshot_file, tmp_path, log_file, monkeypatch, capsys):
        monkeypatch.setattr(main.daemon, "Daemon", FakeDaemon)

        def write_file(path, content):
            raise PermissionError(13, "Permission denied", path)
        monkeypatch.setattr(main.util, "write_file", write_file)

        code = main.main(["--action", "update", "--config", snapshot_file,
                          "--conf-file", str(tmp_path / "uacctd.conf"), "--log-file", log_file])
        assert code == 1
        assert "[-] error:" in capsys.readouterr().err

    def test_update_prints_configuration(self, tmp_path, log_file, monkeypatch, capsys):
        monkeypatch.setattr(main.daemon, "Daemon", FakeDaemon)
        snap = tmp_path / "empty.json"
        snap.write_text(json.dumps({"system": {"flow-accounting": {"buffer-size": 4}}}))

        assert main.main(["--action", "update", "--config", str(snap),
                          "--conf-file", str(tmp_path / "uacctd.conf"), "--log-file", log_file]) == 0
        out = capsys.readouterr().out
        assert "BUFFER SIZE (MiB)" in out
        assert "[*] flow-accounting disabled." in out
