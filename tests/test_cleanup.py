"""Tests for steps/cleanup.py - donor system cleanup."""

import os

import pytest

from dietpi_prep.domain.hardware import BUSTER
from dietpi_prep.steps import cleanup
from dietpi_prep.steps.cleanup import CLEANUP_TABLE, CleanupEntry
from dietpi_prep.system import accounts

from conftest import make_config


LEFTOVERS = (
    "selinux/config",
    "var/lib/dhcp/dhclient.leases",
    "var/lib/misc/dnsmasq.leases",
    "var/backups/passwd.bak",
    "etc/hostname.org",
    "var/log.hdd/syslog",
    "etc/default/armbian-ramlog",
    "etc/openmediavault/config.xml",
    "etc/cron.daily/openmediavault-cron-apt",
    "installed-packages-buster.txt",
    "etc/rc.local",
    "etc/systemd/system/getty@tty1.service.d/autologin.conf",
    "etc/systemd/system/getty@tty1.service.d/noclear.conf",
)


def _populate(root):
    for leftover in LEFTOVERS:
        path = root / leftover
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("x")
    (root / "etc/hostname").write_text("donor\n")


def _snapshot(root):
    return sorted(str(path.relative_to(root)) for path in root.rglob("*"))


@pytest.fixture
def no_accounts(mocker):
    mocker.patch.object(accounts, "user_exists", return_value=False)
    mocker.patch.object(accounts, "group_exists", return_value=False)


class TestCleanupTable:
    """Tests for apply_cleanup_table()."""

    def test_removes_leftovers(self, tmp_path, runner):
        _populate(tmp_path)

        cleanup.apply_cleanup_table(tmp_path)

        for leftover in LEFTOVERS:
            if leftover.endswith("noclear.conf"):
                continue
            assert not (tmp_path / leftover).exists(), leftover
        assert (tmp_path / "etc/systemd/system/getty@tty1.service.d/noclear.conf").is_file()
        assert (tmp_path / "etc/hostname").is_file()
        assert (tmp_path / "var/lib/dhcp").is_dir()
        assert (tmp_path / "var/backups").is_dir()
        assert not (tmp_path / "var/log.hdd").exists()

    def test_order_independent(self, tmp_path, runner):
        forward, backward = tmp_path / "forward", tmp_path / "backward"
        for root in (forward, backward):
            root.mkdir()
            _populate(root)

        cleanup.apply_cleanup_table(forward, CLEANUP_TABLE)
        cleanup.apply_cleanup_table(backward, tuple(reversed(CLEANUP_TABLE)))

        assert _snapshot(forward) == _snapshot(backward)

    def test_unmounts_before_removal(self, tmp_path, runner):
        _populate(tmp_path)

        cleanup.apply_entry(tmp_path, CleanupEntry("var/log.hdd", "Armbian", unmount=True))

        assert runner.ran("umount", str(tmp_path / "var/log.hdd"))

    def test_not_mounted(self, tmp_path, runner):
        _populate(tmp_path)
        runner.on("findmnt", returncode=1)

        removed = cleanup.apply_entry(tmp_path, CleanupEntry("var/log.hdd", "Armbian", unmount=True))

        assert removed == [tmp_path / "var/log.hdd"]
        assert not runner.ran("umount")

    def test_absent_paths(self, tmp_path):
        assert cleanup.apply_cleanup_table(tmp_path) == []


class TestPackages:
    """Tests for purge_old_gcc_base() and restore_base_files()."""

    def test_purges_stale_gcc_base(self, ctx, runner):
        runner.on(
            "dpkg", "--get-selections", "gcc-*-base",
            stdout="gcc-8-base:armhf\tinstall\ngcc-10-base:armhf\tinstall\n",
        )
        runner.on("dpkg", "--get-selections", "gcc-8-base", stdout="gcc-8-base:armhf\tinstall\n")

        cleanup.purge_old_gcc_base(ctx)

        assert runner.ran("apt-get", "-y", "purge", "gcc-8-base")
        assert not runner.ran("apt-get", "-y", "purge", "gcc-10-base")

    def test_unknown_distro_keeps_gcc(self, make_ctx, runner):
        cleanup.purge_old_gcc_base(make_ctx(make_config(distro=BUSTER)))

        assert runner.calls == []

    def test_restore_base_files(self, ctx, root, runner):
        (root / "root").mkdir()
        (root / "root/.bash_history").write_text("x")
        (root / "etc/motd").write_text("Welcome to Armbian\n")

        cleanup.restore_base_files(ctx)

        assert not (root / "root").exists()
        assert not (root / "etc/motd").exists()
        assert runner.ran("apt-get", "-y", "install", "--reinstall", "base-files")
        assert runner.ran(str(root / "var/lib/dpkg/info/base-files.postinst"), "configure")


class TestAccounts:
    """Tests for reset_accounts()."""

    def test_deletes_donor_accounts(self, ctx, root, runner, mocker):
        mocker.patch.object(accounts, "user_exists", side_effect=lambda name: name in ("pi", "dietpi"))
        mocker.patch.object(accounts, "group_exists", side_effect=lambda name: name == "openmediavault-config")

        cleanup.reset_accounts(ctx)

        assert [call.args for call in runner.find("userdel")] == [["userdel", "-f", "pi"], ["userdel", "-f", "dietpi"]]
        assert runner.commands[2] == ["groupdel", "openmediavault-config"]
        assert runner.ran(str(root / "boot/dietpi/func/dietpi-set_software"), "useradd", "dietpi")
        assert runner.find("chpasswd")[0].input == "root:dietpi\n"


class TestServices:
    """Third party and SysV service removal."""

    def test_third_party_units(self, ctx, root, runner):
        own = root / "etc/systemd/system/cpu_governor.service"
        packaged = root / "lib/systemd/system/chrony.service"
        for path in (own, packaged):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("[Unit]\n")
        runner.on("dpkg", "-S", returncode=1)
        runner.on("dpkg", "-S", str(packaged))

        cleanup.remove_third_party_services(ctx)

        assert not own.exists()
        assert packaged.is_file()
        assert runner.ran("systemctl", "disable", "--now", "cpu_governor.service")
        assert runner.ran("systemctl", "mask", "chrony.service")

    def test_unit_locations(self, ctx, root):
        (root / "etc/init.d").mkdir(parents=True)
        (root / "etc/init.d/cpu_governor").write_text("#!/bin/sh\n")
        dropin = root / "usr/lib/systemd/system/cpu_governor.service.d"
        dropin.mkdir(parents=True)

        assert cleanup.unit_locations(ctx, "cpu_governor") == [root / "etc/init.d/cpu_governor", dropin]

    def test_sysv_entries(self, runner):
        cleanup.remove_sysv_entries()

        assert len(runner.find("update-rc.d")) == len(cleanup.SYSV_SERVICES)
        assert runner.commands[0] == ["update-rc.d", "-f", "fake-hwclock", "remove"]

    def test_dpkg_leftovers(self, ctx, root):
        (root / "etc/ssh").mkdir()
        for name in ("ssh/sshd_config.dpkg-dist", "ssh/sshd_config.dpkg-old", "ssh/sshd_config", "x.dpkg-tmp"):
            (root / "etc" / name).write_text("x")

        cleanup.remove_dpkg_leftovers(ctx)

        assert sorted(path.name for path in (root / "etc/ssh").iterdir()) == ["sshd_config"]
        assert (root / "etc/x.dpkg-tmp").exists()


class TestDietPiSetup:
    """Bash, directories and services prepared for DietPi."""

    def test_setup_bash_is_idempotent(self, ctx, root, runner):
        bashrc = root / "etc/bash.bashrc"
        bashrc.write_text("# System-wide .bashrc\nfor i in /etc/bashrc.d/*.sh; do . $i; done\n")

        cleanup.setup_bash(ctx)
        cleanup.setup_bash(ctx)

        lines = bashrc.read_text().splitlines()
        assert lines == ["# System-wide .bashrc", cleanup.templates.BASHRC_D_HOOK]
        link = root / "etc/bashrc.d/dietpi-bash_completion.sh"
        assert os.readlink(link) == "/etc/profile.d/bash_completion.sh"
        assert runner.ran("chmod", "4755", str(root / "usr/bin/sudo"))

    def test_create_dietpi_dirs(self, ctx, root, runner):
        cleanup.create_dietpi_dirs(ctx)

        assert (root / "var/lib/dietpi/dietpi-software/installed").is_dir()
        assert (root / "mnt/dietpi_userdata").stat().st_mode & 0o777 == 0o775
        chown = runner.find("chown")[0].args
        assert chown[:3] == ["chown", "-R", "dietpi:dietpi"]
        assert len(chown) == 3 + len(cleanup.USERDATA_DIRS)

    def test_refresh_boot_logo(self, ctx, root, runner):
        cleanup.refresh_boot_logo(ctx)
        assert runner.calls == []

        (root / "boot/boot.bmp").write_text("old")
        cleanup.refresh_boot_logo(ctx)
        assert runner.find("curl")[0].args[2].endswith("/master/.meta/images/dietpi-logo_boot.bmp")

    def test_run(self, ctx, root, runner, no_accounts):
        _populate(root)

        cleanup.run(ctx)

        assert not (root / "etc/rc.local").exists()
        assert (root / "var/lib/dietpi/postboot.d").is_dir()
        enables = [call.args[2] for call in runner.find("systemctl", "enable")]
        assert enables == list(cleanup.DIETPI_SERVICES)
        assert runner.index("apt-get", "-y", "install", "--reinstall") < runner.index("systemctl", "enable")
