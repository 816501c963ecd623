from archonos_builder.lib.bootloader import boot_entries, kernel_cmdline, render_loader_conf, write_boot_entries
from archonos_builder.lib.subvolumes import SUBVOLUME_NAMES, Layout, Subvolume


def _subvols(layout):
    return {r: Subvolume(SUBVOLUME_NAMES[r], r) for r in layout.roles}


def _entries(layout, **kw):
    return boot_entries(
        _subvols(layout),
        root_uuid="1234",
        read_only=layout.read_only_root,
        kernel="vmlinuz-linux",
        initramfs="initramfs-linux.img",
        fallback_initramfs="initramfs-linux-fallback.img",
        **kw,
    )


def test_kernel_cmdline():
    assert kernel_cmdline(root_uuid="u", subvolume="@os_a", read_only=True) == "root=UUID=u rootflags=subvol=@os_a ro"
    assert kernel_cmdline(root_uuid="u", subvolume="@os_a", read_only=False, extra="quiet") == (
        "root=UUID=u rootflags=subvol=@os_a rw quiet"
    )


def test_single_root_has_active_and_fallback_entries():
    entries = _entries(Layout.SINGLE_ROOT)

    assert [e.filename for e in entries] == ["archonos-os_a.conf", "archonos-fallback.conf"]
    assert entries[1].initrd == "initramfs-linux-fallback.img"
    assert all("rootflags=subvol=@os_a" in e.options for e in entries)
    assert all(" rw" in e.options for e in entries)


def test_ab_layout_gets_an_entry_per_slot():
    entries = _entries(Layout.AB_ATOMIC, cmdline="quiet", entry_prefix="demo")

    assert [e.filename for e in entries] == ["demo-os_a.conf", "demo-os_b.conf", "demo-fallback.conf"]
    assert "rootflags=subvol=@os_b ro quiet" in entries[1].options


def test_entry_render():
    text = _entries(Layout.SINGLE_ROOT)[0].render()

    assert "linux   /vmlinuz-linux\n" in text
    assert "initrd  /initramfs-linux.img\n" in text
    assert text.startswith("title   ArchonOS (os_a)\n")


def test_write_boot_entries(tmp_path):
    entries = _entries(Layout.SINGLE_ROOT)

    written = write_boot_entries(target_root=str(tmp_path), entries=entries)

    assert (tmp_path / "boot/loader/loader.conf").read_text() == render_loader_conf("archonos-os_a.conf")
    assert (tmp_path / "boot/loader/entries/archonos-fallback.conf").is_file()
    assert len(written) == 3


def test_write_boot_entries_dry_run(tmp_path):
    write_boot_entries(target_root=str(tmp_path), entries=_entries(Layout.SINGLE_ROOT), dry_run=True)

    assert not (tmp_path / "boot").exists()
