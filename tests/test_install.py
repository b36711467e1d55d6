"""Tests for steps/install.py - upgrade, purge and core package install."""

from dietpi_prep.domain.hardware import BOOKWORM, BULLSEYE
from dietpi_prep.domain.models import PackagePlan
from dietpi_prep.steps import install

from conftest import make_config


def _plan(*packages, purge_extra=()):
    plan = PackagePlan()
    plan.add(*packages)
    plan.purge_extra.extend(purge_extra)
    return plan


class TestMarkKnownManual:
    """Tests for mark_known_manual()."""

    def test_only_known_packages(self, runner):
        runner.on("dpkg", "--get-selections", "curl", stdout="curl\t\tinstall\nsudo:amd64\tinstall\n")

        install.mark_known_manual(_plan("curl", "sudo", "htop", "curl"))

        assert runner.ran("dpkg", "--get-selections", "curl", "sudo", "htop")
        assert runner.ran("apt-mark", "manual", "curl", "sudo")

    def test_nothing_known(self, runner):
        install.mark_known_manual(_plan("htop"))

        assert not runner.ran("apt-mark")


class TestPurgeUnwanted:
    """Tests for purge_unwanted()."""

    def test_essential_package_purge(self, runner):
        runner.on("dpkg", "--get-selections", "e2fsprogs", stdout="e2fsprogs\tinstall\ndbus\tinstall\n")

        purged = install.purge_unwanted(_plan("curl", purge_extra=["e2fsprogs"]))

        assert purged == ["e2fsprogs", "dbus"]
        assert runner.ran("apt-get", "-y", "purge", "--allow-remove-essential", "e2fsprogs", "dbus")

    def test_required_package_is_never_purged(self, runner):
        runner.on("dpkg", "--get-selections", "dbus", stdout="dbus\tinstall\n")

        install.purge_unwanted(_plan("e2fsprogs", purge_extra=["e2fsprogs"]))

        selection = runner.find("dpkg", "--get-selections")[0].args
        assert "e2fsprogs" not in selection
        assert runner.ran("apt-get", "-y", "purge", "dbus")

    def test_purge_failure_is_tolerated(self, runner):
        runner.on("dpkg", "--get-selections", stdout="dbus\tinstall\n")
        runner.on("apt-get", "-y", "purge", returncode=100)

        assert install.purge_unwanted(_plan("curl")) == ["dbus"]

    def test_deinstalled_packages_skipped(self, runner):
        runner.on("dpkg", "--get-selections", stdout="chrony\tdeinstall\n")

        assert install.purge_unwanted(_plan("curl")) == []
        assert not runner.ran("apt-get")


class TestRun:
    """Tests for the install step."""

    def test_order_and_distro_switch(self, make_ctx, root, runner):
        conf = root / "etc/apt/apt.conf.d"
        conf.mkdir(parents=True)
        (conf / "01autoremove").write_text("x")
        ctx = make_ctx(make_config(distro_target=BOOKWORM))
        ctx.packages = _plan("curl", "sudo")

        install.run(ctx)

        assert runner.index("apt-get", "-y", "dist-upgrade") < runner.index("apt-get", "-y", "install")
        assert runner.index("apt-get", "-y", "autopurge") < runner.index("apt-get", "-y", "install")
        assert runner.ran("apt-get", "-y", "install", "curl", "sudo")
        assert runner.ran("apt-mark", "manual", "curl", "sudo")
        assert not (conf / "01autoremove").exists()
        assert ctx.cfg.distro == BOOKWORM
        assert ctx.cfg.distro_target == BOOKWORM
        assert ctx.platform.distro == BOOKWORM

    def test_keeps_distro_without_upgrade(self, ctx, runner):
        ctx.packages = _plan("curl")

        install.run(ctx)

        assert ctx.cfg.distro == BULLSEYE
        assert not runner.ran("apt-mark", "auto")

    def test_dropbear_marks_after_buster_upgrade(self, ctx, runner):
        runner.on("dpkg-query", "-s", "dropbear-run")
        ctx.packages = _plan("dropbear-run")

        install.run(ctx)

        assert runner.ran("apt-mark", "manual", "dropbear")
        assert runner.ran("apt-mark", "auto", "dropbear-run")
