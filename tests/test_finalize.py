"""Tests for steps/finalize.py - last cleanup before imaging."""

import shutil

import pytest

from dietpi_prep.steps import finalize, runtime


@pytest.fixture
def deployed(root):
    """A system after deployment, with the flag files PREP leaves behind."""
    dietpi = root / "boot/dietpi"
    (dietpi / "func").mkdir(parents=True)
    (dietpi / "dietpi-services").write_text("#!/bin/bash\n")
    for name in (".hw_model", ".installed", ".version", ".install_stage"):
        (dietpi / name).write_text("x\n")
    image_version = root / "var/lib/dietpi/.dietpi_image_version"
    image_version.parent.mkdir(parents=True)
    image_version.write_text("G_DIETPI_VERSION_CORE=8\n")
    return root


class TestResetFlags:
    """Tests for reset_flags()."""

    def test_first_boot_flags(self, ctx, deployed):
        finalize.reset_flags(ctx)

        dietpi = deployed / "boot/dietpi"
        assert sorted(path.name for path in dietpi.iterdir()) == [
            ".install_stage",
            ".prep_info",
            ".version",
            "dietpi-services",
            "func",
        ]
        assert (dietpi / ".install_stage").read_text() == "-1\n"
        assert (dietpi / ".version").read_text() == "G_DIETPI_VERSION_CORE=8\n"
        assert (dietpi / ".prep_info").read_text() == "Tester\nDebian\n"


class TestServices:
    """APT cache and first boot services."""

    def test_reset_apt_cache(self, ctx, root, runner):
        conf = root / "etc/apt/apt.conf.d"
        conf.mkdir(parents=True)
        (conf / "98dietpi-prep").write_text("x")

        finalize.reset_apt_cache(ctx)

        script = ctx.arg(runtime.SET_SOFTWARE)
        assert not (conf / "98dietpi-prep").exists()
        assert runner.commands == [[script, "apt-cache", "cache", "disable"], [script, "apt-cache", "clean"]]

    def test_enable_first_boot(self, runner):
        finalize.enable_first_boot()

        assert runner.commands == [
            ["systemctl", "enable", "dietpi-fs_partition_resize"],
            ["systemctl", "enable", "dietpi-firstboot"],
        ]


class TestLeftovers:
    """Tests for clear_shadowed_dirs() and clear_leftovers()."""

    def test_clears_below_mount_points(self, ctx, root, runner):
        tmp_root = root / "mnt/tmp_root"
        seen = {}

        def mount(call):
            for name in ("tmp/stale", "var/log/syslog", "etc/keep"):
                (tmp_root / name).parent.mkdir(parents=True, exist_ok=True)
                (tmp_root / name).write_text("x")

        def umount(call):
            seen["files"] = sorted(str(path.relative_to(tmp_root)) for path in tmp_root.rglob("*") if path.is_file())
            for child in tmp_root.iterdir():
                shutil.rmtree(child)

        runner.on("findmnt", "-Ufnro", "SOURCE", stdout="/dev/sda1\n")
        runner.on("mount", effect=mount)
        runner.on("umount", effect=umount)

        finalize.clear_shadowed_dirs(ctx)

        assert runner.ran("mount", "/dev/sda1", str(tmp_root))
        assert seen["files"] == ["etc/keep"]
        assert not tmp_root.exists()

    def test_umount_after_failure(self, ctx, root, runner, mocker):
        runner.on("findmnt", "-Ufnro", "SOURCE", stdout="/dev/sda1\n")
        mocker.patch("dietpi_prep.system.fs.clear_dir", side_effect=PermissionError("denied"))

        with pytest.raises(PermissionError):
            finalize.clear_shadowed_dirs(ctx)

        assert runner.ran("umount", str(root / "mnt/tmp_root"))

    def test_home_and_misc_leftovers(self, ctx, root, runner):
        runner.on("findmnt", "-Ufnro", "SOURCE", stdout="/dev/sda1\n")
        (root / "root").mkdir()
        (root / "root/.bash_history").write_text("x")
        (root / "root/.profile").write_text("x")
        (root / "home/tux/.cache").mkdir(parents=True)
        (root / "etc/passwd-").write_text("x")
        (root / "var/lib/dhcp").mkdir(parents=True)
        (root / "var/lib/dhcp/dhclient.eth0.leases").write_text("x")
        (root / "lost+found/#123").mkdir(parents=True)

        finalize.clear_leftovers(ctx)

        assert not (root / "root/.bash_history").exists()
        assert (root / "root/.profile").exists()
        assert not (root / "home/tux/.cache").exists()
        assert not (root / "etc/passwd-").exists()
        assert list((root / "var/lib/dhcp").iterdir()) == []
        assert list((root / "lost+found").iterdir()) == []


class TestRemoveScript:
    """Tests for remove_script()."""

    def test_removes_script(self, ctx, tmp_path):
        script = tmp_path / "PREP_SYSTEM_FOR_DIETPI.sh"
        script.write_text("#!/bin/bash\n")
        ctx.script_path = script

        assert finalize.remove_script(ctx) is True
        assert not script.exists()

    def test_keep_script(self, ctx, tmp_path):
        script = tmp_path / "PREP_SYSTEM_FOR_DIETPI.sh"
        script.write_text("#!/bin/bash\n")
        ctx.script_path = script
        ctx.keep_script = True

        assert finalize.remove_script(ctx) is False
        assert script.exists()

    def test_no_script(self, ctx):
        assert finalize.remove_script(ctx) is False

    def test_package_module_is_never_removed(self, ctx, tmp_path, mocker):
        package = tmp_path / "site-packages/dietpi_prep"
        package.mkdir(parents=True)
        module = package / "main.py"
        module.write_text("")
        mocker.patch.object(finalize, "PACKAGE_DIR", package.resolve())
        ctx.script_path = module

        assert finalize.remove_script(ctx) is False
        assert module.exists()


class TestRun:
    """Tests for the whole finalize step."""

    def test_run(self, ctx, deployed, runner, tmp_path):
        runner.on("findmnt", "-Ufnro", "SOURCE", stdout="/dev/sda1\n")
        runner.on("dpkg-query", "-Wf", stdout="bash\nlinux-image-amd64\n")
        script = tmp_path / "prep.sh"
        script.write_text("")
        ctx.script_path = script

        finalize.run(ctx)

        assert (deployed / "boot/dietpi/.install_stage").read_text() == "-1\n"
        assert not script.exists()
        assert runner.index("sync") < runner.index("uname", "-a")
        assert runner.ran("ls", "-lAh", ctx.arg("/boot"), ctx.arg("/lib/modules"))
