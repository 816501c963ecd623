import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from archonos_builder.build_config import BuildConfig
from archonos_builder.lib import block, command, loopdev

MiB = 1024 * 1024
GiB = 1024 * MiB
SECTOR = 512


class FakeSystem:
    """In-memory stand-in for the kernel state the build manipulates.

    Tracks loop devices, the partition table, device nodes, the mount table
    and btrfs subvolumes, answering the same commands the builder runs.
    """

    def __init__(self, *, size: int = 4 * GiB, natural_nodes: bool = True, free_loops: int = 1) -> None:
        self.size = size
        self.natural_nodes = natural_nodes
        self.free = [f"/dev/loop{i}" for i in range(free_loops)]
        self.calls: list[list[str]] = []
        self.loops: dict[str, str] = {}
        self.nodes: set[str] = set()
        self.parts: list[dict] = []
        self.mounts: list[str] = []
        self.mount_log: list[tuple[str, str, str]] = []
        self.subvols: list[tuple[int, str]] = []
        self.next_id = 256
        self.default_id = 5
        self.uuids: dict[str, str] = {}
        self.failures: list[tuple[tuple[str, ...], str]] = []
        self.skip_subvolumes: set[str] = set()
        self.installed: list[str] = []
        self.iso_contents: list[str] = []

    # -- test helpers -------------------------------------------------

    def fail_on(self, *prefix: str, stderr: str = "injected failure") -> None:
        self.failures.append((prefix, stderr))

    def commands(self, name: str) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] == name]

    def is_block_device(self, path: str) -> bool:
        return path in self.nodes

    # -- subprocess.run replacement ------------------------------------

    def run(self, argv, **_kwargs):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, stderr in self.failures:
            if tuple(argv[: len(prefix)]) == prefix:
                return self._done(argv, 1, "", stderr)
        handler = getattr(self, "_cmd_" + argv[0].replace(".", "_").replace("-", "_"), None)
        if handler is None:
            return self._done(argv, 0)
        return handler(argv)

    @staticmethod
    def _done(argv, rc=0, out="", err=""):
        return subprocess.CompletedProcess(argv, rc, out, err)

    def _cmd_losetup(self, argv):
        if argv[1:] == ["--find"]:
            if not self.free:
                return self._done(argv, 1, "", "losetup: cannot find an unused loop device")
            return self._done(argv, 0, self.free[0] + "\n")
        if argv[1] == "--find":
            if not self.free:
                return self._done(argv, 1, "", "losetup: could not find any free loop device")
            dev = self.free.pop(0)
            self.loops[dev] = argv[-1]
            self.nodes.add(dev)
            return self._done(argv, 0, dev + "\n")
        if argv[1] == "--detach":
            dev = argv[2]
            if dev not in self.loops:
                return self._done(argv, 1, "", f"losetup: {dev}: detach failed: No such device or address")
            del self.loops[dev]
            self.nodes = {n for n in self.nodes if not n.startswith(dev)}
            self.free.insert(0, dev)
            return self._done(argv, 0)
        return self._done(argv, 0)

    def _cmd_blockdev(self, argv):
        return self._done(argv, 0, f"{self.size}\n")

    def _loop(self):
        return next(iter(self.loops))

    def _cmd_parted(self, argv):
        if "mklabel" in argv:
            self.parts = []
        elif "mkpart" in argv:
            i = argv.index("mkpart")
            name, fs, start, end = argv[i + 1 : i + 5]
            self.parts.append({"name": name, "fs": fs, "start": start, "end": end, "flags": []})
        elif "set" in argv:
            i = argv.index("set")
            self.parts[int(argv[i + 1]) - 1]["flags"].append(argv[i + 2])
        elif "print" in argv:
            lines = ["BYT;", f"{argv[3]}:{self.size}B:loopback:512:512:gpt:Loopback device:;"]
            for n, p in enumerate(self.parts, start=1):
                start = int(p["start"].replace("MiB", "")) * MiB
                if p["end"] == "100%":
                    end = self.size - 33 * SECTOR - 1
                else:
                    end = int(p["end"].replace("MiB", "")) * MiB - 1
                flags = ", ".join(p["flags"])
                lines.append(f"{n}:{start}B:{end}B:{end - start + 1}B:{p['fs']}:{p['name']}:{flags};")
            return self._done(argv, 0, "\n".join(lines) + "\n")
        return self._done(argv, 0)

    def _cmd_partprobe(self, argv):
        if self.natural_nodes and argv[-1] in self.loops:
            for n in range(1, len(self.parts) + 1):
                self.nodes.add(f"{argv[-1]}p{n}")
        return self._done(argv, 0)

    def _cmd_kpartx(self, argv):
        dev = argv[-1]
        name = dev.rsplit("/", 1)[-1]
        if argv[1] == "-av":
            out = []
            for n in range(1, len(self.parts) + 1):
                self.nodes.add(f"/dev/mapper/{name}p{n}")
                out.append(f"add map {name}p{n} (254:{n - 1}): 0 1048576 linear 7:0 2048")
            return self._done(argv, 0, "\n".join(out) + "\n")
        if argv[1] == "-d":
            self.nodes = {n for n in self.nodes if not n.startswith(f"/dev/mapper/{name}")}
        return self._done(argv, 0)

    def _format(self, argv, kind):
        node = argv[-1]
        if node not in self.nodes:
            return self._done(argv, 1, "", f"{argv[0]}: cannot open {node}")
        self.uuids[node] = f"{kind}-{len(self.uuids) + 1:04d}"
        if kind == "btrfs":
            self.subvols = []
            self.default_id = 5
        return self._done(argv, 0)

    def _cmd_mkfs_fat(self, argv):
        return self._format(argv, "fat")

    def _cmd_mkfs_btrfs(self, argv):
        return self._format(argv, "btrfs")

    def _cmd_mount(self, argv):
        opts = ""
        if "-o" in argv:
            opts = argv[argv.index("-o") + 1]
        src, target = argv[-2], argv[-1]
        if src not in self.nodes:
            return self._done(argv, 32, "", f"mount: {target}: special device {src} does not exist.")
        if target in self.mounts:
            return self._done(argv, 32, "", f"mount: {target}: already mounted.")
        self.mounts.append(target)
        self.mount_log.append((src, target, opts))
        return self._done(argv, 0)

    def _cmd_umount(self, argv):
        target = argv[-1]
        if target not in self.mounts:
            return self._done(argv, 32, "", f"umount: {target}: not mounted.")
        self.mounts.remove(target)
        return self._done(argv, 0)

    def _cmd_mountpoint(self, argv):
        return self._done(argv, 0 if argv[-1] in self.mounts else 32)

    def _cmd_btrfs(self, argv):
        verb = argv[2]
        if verb == "create":
            name = Path(argv[3]).name
            if name not in self.skip_subvolumes:
                self.subvols.append((self.next_id, name))
                self.next_id += 1
            return self._done(argv, 0, f"Create subvolume '{argv[3]}'\n")
        if verb == "list":
            out = "".join(f"ID {i} gen 7 top level 5 path {n}\n" for i, n in self.subvols)
            return self._done(argv, 0, out)
        if verb == "set-default":
            self.default_id = int(argv[3])
            return self._done(argv, 0)
        if verb == "get-default":
            for i, n in self.subvols:
                if i == self.default_id:
                    return self._done(argv, 0, f"ID {i} gen 9 top level 5 path {n}\n")
            return self._done(argv, 0, "ID 5 (FS_TREE)\n")
        return self._done(argv, 0)

    def _cmd_blkid(self, argv):
        node = argv[-1]
        if node not in self.uuids:
            return self._done(argv, 2, "", "")
        return self._done(argv, 0, self.uuids[node] + "\n")

    def _cmd_truncate(self, argv):
        Path(argv[-1]).touch()
        return self._done(argv, 0)

    def _cmd_pacstrap(self, argv):
        boot = Path(argv[1]) / "boot"
        boot.mkdir(parents=True, exist_ok=True)
        (boot / "vmlinuz-linux").write_bytes(b"kernel")
        (boot / "initramfs-linux.img").write_bytes(b"initramfs")
        bindir = Path(argv[1]) / "usr/bin"
        bindir.mkdir(parents=True, exist_ok=True)
        (bindir / "systemd").write_bytes(b"systemd")
        self.installed.extend(argv[2:])
        return self._done(argv, 0)

    def _cmd_arch_chroot(self, argv):
        if argv[2:4] == ["pacman", "-Q"]:
            return self._done(argv, 0, "".join(f"{p} 1.0-1\n" for p in self.installed))
        return self._done(argv, 0)

    def _cmd_xorriso(self, argv):
        tree = Path(argv[-1])
        if tree.is_dir():
            self.iso_contents = sorted(str(p.relative_to(tree)) for p in tree.rglob("*") if p.is_file())
        Path(argv[argv.index("-output") + 1]).write_bytes(b"ISO9660")
        return self._done(argv, 0)


@pytest.fixture
def fake_system(monkeypatch):
    fake = FakeSystem()
    monkeypatch.setattr(command, "subprocess", SimpleNamespace(run=fake.run, PIPE=subprocess.PIPE))
    monkeypatch.setattr(block, "is_block_device", fake.is_block_device)
    monkeypatch.setattr(loopdev, "is_block_device", fake.is_block_device)
    return fake


def make_config(tmp_path: Path, **sections) -> BuildConfig:
    raw = {
        "image": {"name": "archonos", "disk_size": "4G", "efi_size": "512M"},
        "paths": {"build_dir": str(tmp_path / "build"), "log": str(tmp_path / "build.log")},
        "layout": {"variant": "single-root"},
        "loop": {"wait_seconds": 0},
        "packages": {"base": ["base", "linux", "btrfs-progs"]},
    }
    for name, values in sections.items():
        raw.setdefault(name, {}).update(values)
    return BuildConfig(raw=raw, env={})
