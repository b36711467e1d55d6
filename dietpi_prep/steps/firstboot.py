"""System configuration for the first boot of DietPi."""

from __future__ import annotations

from dietpi_prep.config.settings import HOSTNAME, LOCALE
from dietpi_prep.context import PrepContext
from dietpi_prep.domain.hardware import TINKER_BOARD
from dietpi_prep.logging import LoggerFactory
from dietpi_prep.steps import board_tweaks, runtime, serial_console, templates
from dietpi_prep.system import apt, fs, systemd
from dietpi_prep.system.command import command_exists, run_checked, run_command
from dietpi_prep.system.config_file import config_inject, replace_in_file, replace_in_lines


log = LoggerFactory.for_prep()

APT_DAILY_UNITS = (
    "apt-daily.service",
    "apt-daily.timer",
    "apt-daily-upgrade.service",
    "apt-daily-upgrade.timer",
)

# Prefer eth*/wlan* naming over predictable interface names
NET_NAMING_LINKS = (
    "/etc/systemd/network/99-default.link",
    "/etc/udev/rules.d/80-net-setup-link.rules",
)

NETWORK_READMES = (
    ("/mnt/samba/readme.txt", "Samba client"),
    ("/mnt/nfs_client/readme.txt", "NFS client"),
)


# ==============================================================================
# Network
# ==============================================================================


def remove_rfkill(ctx: PrepContext) -> None:
    log.info("Removing all rfkill soft blocks and the rfkill package")
    if command_exists("rfkill"):
        run_command(["rfkill", "unblock", "all"])
    apt.purge(["rfkill"])
    fs.remove(ctx.path("/var/lib/systemd/rfkill"))


def configure_interface_naming(ctx: PrepContext) -> None:
    log.info("Configuring wlan/eth naming to be preferred for networked devices")
    for link in NET_NAMING_LINKS:
        fs.symlink("/dev/null", ctx.path(link))
    armbian_env = ctx.path("/boot/armbianEnv.txt")
    if armbian_env.is_file():
        config_inject(armbian_env, "extraargs=", "extraargs=net.ifnames=0")


def configure_resolver(ctx: PrepContext) -> None:
    """Static resolv.conf, updated on next network service start."""
    log.info("Configuring DNS nameserver")
    systemd.disable("systemd-resolved", "systemd-networkd", now=True)
    # Must not stay a symlink into the resolved runtime dir
    fs.remove(ctx.path("/etc/resolv.conf"))
    fs.write_file(ctx.path("/etc/resolv.conf"), templates.RESOLV_CONF)

    # ifupdown starts wpa_supplicant itself, the unit only fails without dbus
    if systemd.unit_known("wpa_supplicant.service"):
        systemd.disable("wpa_supplicant")


def configure_interfaces(ctx: PrepContext) -> None:
    if ctx.cfg.is_container:
        return
    fs.write_file(ctx.path("/etc/network/interfaces"), templates.NETWORK_INTERFACES)
    log.success("Configured network interfaces")
    runtime.set_software(ctx, "boot_wait_for_network", "1")


# ==============================================================================
# Misc
# ==============================================================================


def configure_timers() -> None:
    log.info("Disabling apt-daily services to prevent random APT cache lock")
    for unit in APT_DAILY_UNITS:
        systemd.disable(unit, now=True)
        systemd.mask(unit)

    # For LVM only, requiring lvm2 being installed
    if command_exists("e2scrub"):
        log.info("Disabling e2scrub services")
        systemd.disable("e2scrub_all.timer", "e2scrub_reap", now=True)

    log.info("Enabling weekly TRIM")
    systemd.enable("fstrim.timer")


def identify_hardware(ctx: PrepContext) -> None:
    """Generate /boot/dietpi/.hw_model and /etc/fstab with the DietPi tools."""
    cfg = ctx.cfg
    if not cfg.is_rpi:
        fs.write_file(ctx.path("/etc/.dietpi_hw_model_identifier"), f"{cfg.hw_model}\n")
    runtime.call(ctx, runtime.OBTAIN_HW_MODEL, required=True, description="Generating /boot/dietpi/.hw_model")
    runtime.call(ctx, runtime.DRIVE_MANAGER, "4", required=True, description="Generating /etc/fstab")


def write_network_readmes(ctx: PrepContext) -> None:
    for path, client in NETWORK_READMES:
        fs.write_file(ctx.path(path), f"{client}: {templates.DRIVE_MANAGER_README}")


def configure_ssh_known_hosts(ctx: PrepContext) -> None:
    """Reset known hosts to the dietpi.com key, used for survey and bug report uploads."""
    log.info("Resetting and adding dietpi.com SSH pub host key")
    fs.write_file(ctx.path("/root/.ssh/known_hosts"), templates.SSH_KNOWN_HOSTS)


def configure_identity(ctx: PrepContext) -> None:
    if ctx.cfg.hw_model == TINKER_BOARD:
        # Onboard WiFi driver
        config_inject(ctx.path("/etc/modules"), "8723bs", "8723bs")

    fs.write_file(ctx.path("/etc/hostname"), f"{HOSTNAME}\n")
    fs.write_file(ctx.path("/etc/hosts"), templates.HOSTS.format(hostname=HOSTNAME))
    log.success("Configured hostname and hosts")
    fs.write_file(ctx.path("/etc/htoprc"), templates.HTOPRC)


def disable_login_prompts() -> None:
    """No static gettys on tty2-6 and no logind.

    systemd-logind is unmasked again by dietpi-software when libpam-systemd
    gets installed, e.g. with desktops.
    """
    log.info("Disabling static and automatic login prompts on consoles tty2 to tty6")
    systemd.mask("getty-static", now=True)
    systemd.mask("systemd-logind", now=True)


# ==============================================================================
# Localisation
# ==============================================================================


def configure_locale(ctx: PrepContext) -> None:
    log.info("Configuring locales")
    runtime.set_software(ctx, "locale", LOCALE)


def configure_timezone(ctx: PrepContext) -> None:
    log.info("Configuring time zone")
    fs.remove(ctx.path("/etc/localtime"))
    fs.remove(ctx.path("/etc/timezone"))
    fs.symlink("/usr/share/zoneinfo/UTC", ctx.path("/etc/localtime"))
    run_checked(["dpkg-reconfigure", "-f", "noninteractive", "tzdata"])


def configure_console(ctx: PrepContext) -> None:
    if ctx.cfg.is_container:
        return
    log.info("Configuring keyboard")
    fs.write_file(ctx.path("/etc/default/keyboard"), templates.KEYBOARD)
    # Requires a plugged in keyboard to succeed
    run_command(["dpkg-reconfigure", "-f", "noninteractive", "keyboard-configuration"])

    log.info("Configuring console")
    config_inject(ctx.path("/etc/default/console-setup"), "CHARMAP=", 'CHARMAP="UTF-8"')
    run_checked(
        ["debconf-set-selections"],
        input="console-setup console-setup/charmap47 select UTF-8\n",
    )
    run_checked(["setupcon", "--save"])


# ==============================================================================
# Services
# ==============================================================================


def configure_ssh_server(ctx: PrepContext) -> None:
    if ctx.cfg.is_container:
        config_inject(ctx.path("/boot/dietpi.txt"), "CONFIG_NTP_MODE=", "CONFIG_NTP_MODE=0")
        return
    replace_in_file(ctx.path("/etc/default/dropbear"), r"^.*NO_START=1.*$", "NO_START=0")
    log.success("Enabled Dropbear autostart")
    systemd.unmask("dropbear")
    systemd.enable("dropbear")


def configure_services(ctx: PrepContext) -> None:
    log.info("Configuring services")
    runtime.call(ctx, runtime.SERVICES, "stop")
    runtime.call(ctx, runtime.SERVICES, "dietpi_controlled")

    log.info("Mask cron until 1st run setup is completed")
    systemd.mask("cron")


def reset_swap(ctx: PrepContext) -> None:
    log.info("Removing swapfile from image")
    runtime.call(ctx, runtime.SET_SWAPFILE, "0", "/var/swap")
    # Still exists on some images
    fs.remove(ctx.path("/var/swap"))
    # Re-created on first boot
    if not ctx.cfg.is_container:
        config_inject(
            ctx.path("/boot/dietpi.txt"), "AUTO_SETUP_SWAPFILE_SIZE=", "AUTO_SETUP_SWAPFILE_SIZE=1"
        )

    # Default /tmp size (512 MiB)
    fstab = ctx.path("/etc/fstab")
    if fstab.is_file():
        replace_in_lines(fstab, r"size=[^,]*,", "", address="/tmp")


def configure_wireless(ctx: PrepContext) -> None:
    cfg = ctx.cfg
    mode = "disable"
    if cfg.wifi_required:
        log.info("Generating default wpa_supplicant.conf")
        runtime.call(ctx, runtime.WIFIDB, "1")
        # Editable on the boot partition for automated setups
        fs.move(ctx.path("/var/lib/dietpi/dietpi-wifi.db"), ctx.path("/boot/dietpi-wifi.txt"))
        mode = "enable"

    if cfg.is_container:
        return
    log.info("Disabling Bluetooth by default")
    runtime.set_hardware(ctx, "bluetooth", "disable")
    log.info(f"Setting onboard and generic WiFi modules by default: {mode}")
    runtime.set_hardware(ctx, "wifimodules", f"onboard_{mode}")
    runtime.set_hardware(ctx, "wifimodules", mode)


def run(ctx: PrepContext) -> None:
    fs.write_file(ctx.path("/etc/crontab"), templates.CRONTAB)
    log.success("Configured Cron")

    remove_rfkill(ctx)
    configure_interface_naming(ctx)
    configure_resolver(ctx)
    configure_interfaces(ctx)

    configure_timers()
    identify_hardware(ctx)
    write_network_readmes(ctx)
    configure_ssh_known_hosts(ctx)
    configure_identity(ctx)

    serial_console.run(ctx)
    disable_login_prompts()

    configure_locale(ctx)
    configure_timezone(ctx)
    configure_console(ctx)

    board_tweaks.run(ctx)

    configure_ssh_server(ctx)
    configure_services(ctx)
    reset_swap(ctx)
    configure_wireless(ctx)
    board_tweaks.install_grub(ctx)

    log.info("Disabling soundcards by default")
    runtime.set_hardware(ctx, "soundcard", "none")
