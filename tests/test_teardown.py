"""Tests for steps/teardown.py - removal of a prior DietPi instance."""

from dietpi_prep.steps import teardown


def _install_dietpi(root):
    """Leave the traces of an installed DietPi system below root."""
    for directory in (
        "boot/dietpi/func",
        "DietPi",
        "var/lib/dietpi/postboot.d",
        "etc/systemd/system/dietpi-ramlog.service.d",
        "etc/cron.daily",
        "etc/bashrc.d",
        "mnt/dietpi_userdata",
        "etc/apt/apt.conf.d",
    ):
        (root / directory).mkdir(parents=True, exist_ok=True)
    (root / "boot/dietpi/dietpi-services").write_text("#!/bin/bash\n")
    (root / "boot/dietpi.txt").write_text("AUTO_SETUP_LOCALE=C.UTF-8\n")
    (root / "etc/systemd/system/dietpi-ramlog.service").write_text("[Unit]\n")
    (root / "etc/systemd/system/dietpi-preboot.service").write_text("[Unit]\n")
    (root / "etc/cron.daily/dietpi").write_text("x")
    (root / "etc/bashrc.d/dietpi.bash").write_text("x")
    (root / "etc/apt/apt.conf.d/99-dietpi-norecommends").write_text("x")
    (root / "etc/systemd/system/cron.service").write_text("[Unit]\n")


def _snapshot(root):
    return sorted(str(path.relative_to(root)) for path in root.rglob("*"))


class TestTeardown:
    """Tests for teardown.run()."""

    def test_no_dietpi_is_skipped(self, ctx, runner):
        assert teardown.run(ctx) is False
        assert runner.calls == []

    def test_removes_prior_instance(self, ctx, root, runner):
        _install_dietpi(root)

        assert teardown.run(ctx) is True

        assert runner.ran(str(root / "boot/dietpi/dietpi-services"), "stop")
        assert runner.ran("systemctl", "stop", "dietpi-ramlog")
        assert runner.ran("systemctl", "stop", "dietpi-preboot")
        assert runner.ran("systemctl", "disable", "--now", "dietpi-ramlog.service")
        for path in (
            "boot/dietpi",
            "boot/dietpi.txt",
            "DietPi",
            "var/lib/dietpi",
            "etc/systemd/system/dietpi-ramlog.service",
            "etc/systemd/system/dietpi-ramlog.service.d",
            "etc/cron.daily/dietpi",
            "etc/bashrc.d/dietpi.bash",
            "mnt/dietpi_userdata",
            "etc/apt/apt.conf.d/99-dietpi-norecommends",
        ):
            assert not (root / path).exists(), path
        assert (root / "etc/systemd/system/cron.service").is_file()

    def test_unmounts_legacy_ramdisk(self, ctx, root, runner):
        _install_dietpi(root)

        teardown.run(ctx)

        assert runner.ran("umount", "-R", ctx.arg("/DietPi"))

    def test_legacy_ramdisk_not_mounted(self, ctx, root, runner):
        _install_dietpi(root)
        runner.on("findmnt", ctx.arg("/DietPi"), returncode=1)

        teardown.run(ctx)

        assert not runner.ran("umount")

    def test_disable_failure_is_tolerated(self, ctx, root, runner):
        _install_dietpi(root)
        runner.on("systemctl", "disable", returncode=1)

        assert teardown.run(ctx) is True
        assert not (root / "etc/systemd/system/dietpi-ramlog.service").exists()

    def test_second_run_is_a_noop(self, ctx, root, runner):
        _install_dietpi(root)
        teardown.run(ctx)
        after_first = _snapshot(root)
        calls_after_first = len(runner.calls)

        assert teardown.run(ctx) is False

        assert _snapshot(root) == after_first
        assert len(runner.calls) == calls_after_first
