import logging

import pytest

from archonos_builder.build_context import BuildContext
from archonos_builder.errors import StageFailed
from archonos_builder.lib.pkg import install_packages, installed_package_count, verify_files
from archonos_builder.pipeline import run_pipeline
from archonos_builder.steps import InstallPackagesStep

from .conftest import make_config


def test_install_packages_hands_list_to_installer(fake_system, tmp_path):
    install_packages(str(tmp_path), ["base", "linux"])

    assert fake_system.commands("pacstrap") == [["pacstrap", str(tmp_path), "base", "linux"]]
    with pytest.raises(ValueError):
        install_packages(str(tmp_path), [])


def test_verify_files_reports_every_missing_file(tmp_path):
    (tmp_path / "usr/bin").mkdir(parents=True)
    (tmp_path / "usr/bin/systemd").write_text("")

    verify_files(str(tmp_path), ["usr/bin/systemd"])
    with pytest.raises(RuntimeError) as exc:
        verify_files(str(tmp_path), ["usr/bin/systemd", "usr/bin/sddm", "/usr/bin/flatpak"])

    assert "usr/bin/sddm" in str(exc.value)
    assert "/usr/bin/flatpak" in str(exc.value)


def test_installed_package_count(fake_system, tmp_path):
    fake_system.installed = ["base", "linux", "systemd"]

    assert installed_package_count(str(tmp_path)) == 3
    assert fake_system.commands("arch-chroot") == [["arch-chroot", str(tmp_path), "pacman", "-Q"]]


def test_package_count_unavailable_is_not_fatal(fake_system, tmp_path, caplog):
    fake_system.fail_on("arch-chroot", stderr="pacman: not found")

    with caplog.at_level(logging.WARNING):
        assert installed_package_count(str(tmp_path)) is None

    assert "pacman: not found" in caplog.text


def test_install_stage_warns_on_low_package_count(fake_system, tmp_path, caplog):
    ctx = BuildContext(cfg=make_config(tmp_path, packages={"min_count": 50}))

    with caplog.at_level(logging.WARNING):
        InstallPackagesStep().run(ctx)

    assert "Package count seems low (3 < 50)" in caplog.text


def test_install_stage_fails_on_missing_file(fake_system, tmp_path):
    ctx = BuildContext(cfg=make_config(tmp_path, packages={"verify_files": ["usr/bin/systemd", "usr/bin/sddm"]}))

    with pytest.raises(StageFailed) as exc:
        run_pipeline(ctx=ctx, steps=[InstallPackagesStep()])

    assert exc.value.stage == "50_install_packages"
    assert "usr/bin/sddm" in str(exc.value)
