"""Tests for steps/packages.py - package plan resolution."""

import pytest

from dietpi_prep.domain.hardware import (
    ARMV7L,
    BOOKWORM,
    BUSTER,
    CONTAINER,
    GENERIC_DEVICE,
    RADXA_ZERO,
    RPI,
    VM,
)
from dietpi_prep.domain.models import PackagePlan
from dietpi_prep.steps import packages

from conftest import make_config


class TestFilesystemTools:
    """Tests for add_filesystem_tools()."""

    def test_tools_for_present_filesystems(self):
        plan = PackagePlan()

        packages.add_filesystem_tools(plan, ["ext4", "squashfs", "vfat"])

        assert plan.required == ["e2fsprogs", "dosfstools"]
        assert plan.purge_extra == []

    def test_e2fsprogs_purged_without_ext(self):
        plan = PackagePlan()

        packages.add_filesystem_tools(plan, ["btrfs", "vfat"])

        assert plan.required == ["btrfs-progs", "dosfstools"]
        assert plan.purge_extra == ["e2fsprogs"]


class TestSystemPackages:
    """Tests for add_system_packages()."""

    def test_native_pc(self, ctx):
        plan = PackagePlan()

        packages.add_system_packages(ctx, plan)

        for name in ("ethtool", "initramfs-tools", "haveged", "dropbear", "hdparm"):
            assert name in plan
        assert "rng-tools5" not in plan
        assert "iw" not in plan

    def test_vm(self, make_ctx):
        plan = PackagePlan()

        packages.add_system_packages(make_ctx(make_config(VM)), plan)

        assert "tiny-initramfs" in plan
        assert "initramfs-tools" not in plan
        assert "hdparm" not in plan

    def test_raspberry_pi(self, make_ctx, root):
        plan = PackagePlan()

        packages.add_system_packages(make_ctx(make_config(RPI, arch=ARMV7L)), plan)

        assert "rng-tools5" in plan
        assert "initramfs-tools" not in plan
        assert not (root / "etc/systemd/system/haveged.service.d").exists()

    def test_haveged_workaround_on_armv7l(self, make_ctx, root):
        plan = PackagePlan()

        packages.add_system_packages(make_ctx(make_config(GENERIC_DEVICE, arch=ARMV7L)), plan)

        assert "haveged" in plan
        assert (root / "etc/systemd/system/haveged.service.d/dietpi.conf").is_file()

    def test_buster_keeps_dropbear_run(self, make_ctx):
        plan = PackagePlan()

        packages.add_system_packages(make_ctx(make_config(distro=BUSTER)), plan)

        assert "dropbear-run" in plan
        assert "dropbear" not in plan

    @pytest.mark.parametrize("target,regdb", [(None, "crda"), (BOOKWORM, "wireless-regdb")])
    def test_wifi(self, make_ctx, target, regdb):
        plan = PackagePlan()

        packages.add_system_packages(make_ctx(make_config(wifi_required=True, distro_target=target)), plan)

        wifi = plan.required[plan.required.index("iw"):]
        assert wifi[:4] == ["iw", "wireless-tools", regdb, "wpasupplicant"]


class TestX86Boot:
    """Tests for install_x86_64_boot()."""

    def test_bios(self, ctx, root, runner):
        (root / "vmlinuz").write_text("")

        packages.install_x86_64_boot(ctx)

        install = runner.find("apt-get", "-y", "install")[0].args
        assert install[3:] == ["linux-image-amd64", "os-prober", "initramfs-tools", "grub-pc"]
        assert (root / "etc/kernel-img.conf").read_text() == "do_symlinks=0\n"
        assert not (root / "vmlinuz").exists()
        assert not (root / "etc/kernel/preinst.d/dietpi").exists()

    def test_uefi(self, ctx, root, runner):
        (root / "boot/efi").mkdir()

        packages.install_x86_64_boot(ctx)

        install = runner.find("apt-get", "-y", "install")[0].args
        assert "grub-efi-amd64" in install
        assert "grub-pc" not in install

    def test_fat_boot_gets_preinst_hook(self, ctx, root, runner):
        runner.on("findmnt", "-Ufnro", "FSTYPE", stdout="vfat\n")

        packages.install_x86_64_boot(ctx)

        assert (root / "etc/kernel/preinst.d/dietpi").stat().st_mode & 0o777 == 0o755


class TestFirmware:
    """Tests for add_firmware()."""

    def test_armbian_firmware_only(self, ctx, runner):
        runner.on("dpkg-query", "-s", "armbian-firmware")
        plan = PackagePlan()

        packages.add_firmware(ctx, plan)

        assert plan.required == ["armbian-firmware"]

    @pytest.mark.parametrize("model", [CONTAINER, RADXA_ZERO])
    def test_no_firmware(self, make_ctx, runner, model):
        plan = PackagePlan()

        packages.add_firmware(make_ctx(make_config(model)), plan)

        assert plan.required == []

    def test_vm_with_wifi(self, make_ctx, runner):
        plan = PackagePlan()

        packages.add_firmware(make_ctx(make_config(VM, wifi_required=True)), plan)

        assert plan.required == [
            "firmware-atheros",
            "firmware-brcm80211",
            "firmware-iwlwifi",
            "firmware-realtek",
            "firmware-misc-nonfree",
        ]

    def test_native_pc(self, ctx, runner):
        plan = PackagePlan()

        packages.add_firmware(ctx, plan)

        assert plan.required == ["firmware-realtek", "firmware-linux-free", "firmware-misc-nonfree"]


class TestResolve:
    """Tests for resolve_base() and run()."""

    def test_gpt_disk_adds_gdisk(self, ctx, runner):
        runner.on("findmnt", "-Ufnro", "SOURCE", stdout="/dev/sda2\n")
        runner.on("lsblk", "-npo", "PKNAME", stdout="/dev/sda\n")
        runner.on("blkid", "-s", "PTTYPE", stdout="gpt\n")
        runner.on("blkid", "-s", "TYPE", stdout="ext4\nvfat\n")

        plan = packages.resolve_base(ctx)

        assert "gdisk" in plan
        assert "e2fsprogs" in plan
        assert plan.purge_extra == []

    def test_container(self, make_ctx, runner):
        plan = packages.resolve_base(make_ctx(make_config(CONTAINER)))

        assert "iproute2" in plan
        assert "ethtool" not in plan
        assert not runner.ran("apt-get", "-y", "install")

    def test_run_stores_plan(self, ctx, runner):
        plan = packages.run(ctx)

        assert ctx.packages is plan
        assert plan.required[: len(packages.BASE_PACKAGES)] == list(packages.BASE_PACKAGES)
        assert runner.ran("apt-get", "clean")
        assert "firmware-realtek" in plan
