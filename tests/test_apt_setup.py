"""Tests for steps/apt_setup.py - APT sources of the target distro."""

from dietpi_prep.domain.hardware import ARMV7L, BOOKWORM, RPI
from dietpi_prep.steps import apt_setup

from conftest import make_config


class TestSetAptMirror:
    """Tests for set_apt_mirror()."""

    def test_uses_target_distro(self, make_ctx, root, runner):
        ctx = make_ctx(make_config(distro_target=BOOKWORM))

        apt_setup.set_apt_mirror(ctx)

        call = runner.calls[0]
        assert call.args == [str(root / "boot/dietpi/func/dietpi-set_software"), "apt-mirror", "default"]
        assert call.env["G_DISTRO"] == "7"
        assert call.env["G_DISTRO_NAME"] == "bookworm"
        assert call.env["G_HW_MODEL"] == "21"


class TestMeveric:
    """Tests for use_meveric_mirror()."""

    def test_rewrites_mirror(self, ctx, root):
        sources = root / "etc/apt/sources.list.d"
        sources.mkdir(parents=True)
        (sources / "meveric-all-main.list").write_text("deb http://oph.mdrjr.net/meveric all main\n")
        (sources / "other.list").write_text("deb http://oph.mdrjr.net/other all main\n")

        apt_setup.use_meveric_mirror(ctx)

        assert (sources / "meveric-all-main.list").read_text() == "deb https://dietpi.com/meveric all main\n"
        assert "oph.mdrjr.net" in (sources / "other.list").read_text()


class TestRpiKeyring:
    """Tests for bootstrap_rpi_keyring()."""

    def test_key_present(self, ctx, runner):
        runner.on("apt-key", "list", stdout="pub   rsa2048 2012-06-17 [SC]\n")

        apt_setup.bootstrap_rpi_keyring(ctx)

        assert len(runner.calls) == 1

    def test_key_missing(self, ctx, root, runner):
        apt_setup.bootstrap_rpi_keyring(ctx)

        deb = str(root / "tmp/keyring.deb")
        assert runner.ran("curl", "-sSfL", apt_setup.RPI_KEYRING_DEB_URL, "-o", deb)
        assert runner.ran("dpkg", "-i", deb)
        assert not (root / "tmp/keyring.deb").exists()


class TestRun:
    """Tests for the APT setup step."""

    def test_marks_all_auto_after_update(self, ctx, root, runner):
        runner.on("apt-mark", "showmanual", stdout="curl\nsudo\n")

        apt_setup.run(ctx)

        assert runner.index("apt-get", "-y", "update") < runner.index("apt-mark", "auto")
        assert runner.ran("apt-mark", "auto", "curl", "sudo")
        assert (root / "run/dietpi").is_dir()
        assert (root / "var/tmp/dietpi/logs").is_dir()
        assert not runner.ran("apt-key")

    def test_rpi_bootstraps_keyring(self, make_ctx, runner):
        ctx = make_ctx(make_config(RPI, arch=ARMV7L, raspbian=True))

        apt_setup.run(ctx)

        assert runner.ran("apt-key", "list", apt_setup.RPI_ARCHIVE_KEY)
