from types import SimpleNamespace
import subprocess

import pytest

from archonos_builder.errors import ExternalToolFailure
from archonos_builder.lib import command


def _fake_subprocess(rc, out="", err=""):
    calls = []

    def fake_run(argv, **kwargs):
        calls.append((argv, kwargs))
        return subprocess.CompletedProcess(argv, rc, out, err)

    return SimpleNamespace(run=fake_run, PIPE=subprocess.PIPE), calls


def test_run_cmd_returns_output(monkeypatch):
    fake, calls = _fake_subprocess(0, out="/dev/loop3\n")
    monkeypatch.setattr(command, "subprocess", fake)

    r = command.run_cmd(["losetup", "--find"])

    assert r.returncode == 0
    assert r.stdout == "/dev/loop3\n"
    assert calls[0][0] == ["losetup", "--find"]


def test_run_cmd_raises_external_tool_failure_with_output(monkeypatch):
    fake, _ = _fake_subprocess(1, out="partial", err="mkfs.btrfs: device busy")
    monkeypatch.setattr(command, "subprocess", fake)

    with pytest.raises(ExternalToolFailure) as exc:
        command.run_cmd(["mkfs.btrfs", "-f", "/dev/loop0p2"])

    assert exc.value.argv == ["mkfs.btrfs", "-f", "/dev/loop0p2"]
    assert exc.value.returncode == 1
    assert exc.value.stdout == "partial"
    assert "device busy" in str(exc.value)


def test_run_cmd_check_false_tolerates_failure(monkeypatch):
    fake, _ = _fake_subprocess(32, err="not mounted")
    monkeypatch.setattr(command, "subprocess", fake)

    r = command.run_cmd(["umount", "/mnt"], check=False)

    assert r.returncode == 32
    assert r.stderr == "not mounted"


def test_run_cmd_dry_run_does_not_execute(monkeypatch, caplog):
    fake, calls = _fake_subprocess(1)
    monkeypatch.setattr(command, "subprocess", fake)

    with caplog.at_level("INFO"):
        r = command.run_cmd(["parted", "-s", "/dev/loop0", "mklabel", "gpt"], dry_run=True)

    assert r.returncode == 0
    assert calls == []
    assert "CMD parted -s /dev/loop0 mklabel gpt" in caplog.text


def test_run_cmd_merges_environment(monkeypatch):
    fake, calls = _fake_subprocess(0)
    monkeypatch.setattr(command, "subprocess", fake)

    command.run_cmd(["arch-chroot", "/mnt", "/tmp/configure-system.sh"], env={"HOSTNAME": "archonos"})

    assert calls[0][1]["env"]["HOSTNAME"] == "archonos"
    assert "PATH" in calls[0][1]["env"]
