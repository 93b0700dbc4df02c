"""Build cloud-init ``user-data``/``meta-data``/``network-config`` for Raspberry Pi nodes.

The three files land on the SD card boot partition without a ``.yaml`` extension.
User passwords are stored as SHA-512 crypt hashes; the WiFi passphrase can be
written either in plaintext (hashed by wpa_supplicant at connect time) or as the
64-character PSK derived from the SSID.
"""

from __future__ import annotations

import getpass
import hashlib
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ..errors import CloudInitError
from ..runner import CommandError, CommandRunner, command_exists

ROLES = ("master", "worker")
ADMIN_USER = "admin"
DNS_SERVERS = ["8.8.8.8", "8.8.4.4"]
REPO_URL = "https://github.com/jasondashaer/kube-world.git"
SSH_KEY_CANDIDATES = ("id_ed25519.pub", "id_rsa.pub", "id_ecdsa.pub", "rpissh.pub")
OUTPUT_FILES = ("meta-data", "network-config", "user-data")
PREVIEW_LINES = 50

BASE_PACKAGES = [
    "openssh-server",
    "curl",
    "wget",
    "git",
    "vim",
    "htop",
    "iotop",
    "jq",
    "open-iscsi",
    "nfs-common",
    "linux-modules-extra-raspi",
    "wpasupplicant",
    "wireless-tools",
    "crda",
]
MASTER_PACKAGES = ["etcd"]

Prompt = Callable[[str], str]


@dataclass(slots=True)
class CloudInitOptions:
    hostname: str = "pi-node-1"
    role: str = "worker"
    wifi_ssid: str | None = None
    wifi_password: str | None = None
    wifi_country: str = "US"
    wifi_prehashed: bool = False
    user_password: str | None = None
    password_hash: str | None = None
    ssh_key_file: Path = field(default_factory=lambda: Path.home() / ".ssh" / "id_ed25519.pub")
    static_ip: str | None = None
    gateway: str | None = None
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "output")
    copy_to: Path | None = None
    dry_run: bool = False


@dataclass(slots=True)
class CloudInitDocuments:
    meta_data: str
    network_config: str
    user_data: str

    def items(self) -> list[tuple[str, str]]:
        return list(zip(OUTPUT_FILES, (self.meta_data, self.network_config, self.user_data)))


class _BlockDumper(yaml.SafeDumper):
    """Safe dumper that keeps multi-line strings readable as ``|`` blocks."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.Node:
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_BlockDumper.add_representer(str, _represent_str)


def _dump(document: object) -> str:
    return yaml.dump(
        document,
        Dumper=_BlockDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=1000,
    )


def find_ssh_key(preferred: Path, *, ssh_dir: Path | None = None) -> Path | None:
    if preferred.is_file():
        return preferred
    ssh_dir = ssh_dir or Path.home() / ".ssh"
    for name in SSH_KEY_CANDIDATES:
        candidate = ssh_dir / name
        if candidate.is_file():
            return candidate
    return None


def validate(
    options: CloudInitOptions,
    *,
    log: logging.Logger,
    prompt: Prompt = getpass.getpass,
    ssh_dir: Path | None = None,
) -> CloudInitOptions:
    """Check option combinations and fill in anything that has to be prompted for."""

    log.info("Validating inputs...")
    if options.role not in ROLES:
        raise CloudInitError("Role must be 'master' or 'worker'")
    if options.static_ip and not options.gateway:
        raise CloudInitError("Static IP requires --gateway")

    if not options.ssh_key_file.is_file():
        log.warning("SSH key file not found: %s", options.ssh_key_file)
        found = find_ssh_key(options.ssh_key_file, ssh_dir=ssh_dir)
        if found is None:
            raise CloudInitError(
                "No SSH public key found. Generate one with: ssh-keygen -t ed25519 "
                "or specify one with --ssh-key /path/to/key.pub"
            )
        log.info("Found SSH key: %s", found)
        options.ssh_key_file = found

    if not options.user_password and not options.password_hash:
        log.warning("No user password provided. Will prompt...")
        options.user_password = prompt(f"Enter password for '{ADMIN_USER}' user: ")
        if not options.user_password:
            raise CloudInitError("Password is required")

    if options.wifi_ssid and not options.wifi_password:
        options.wifi_password = prompt(f"Enter WiFi password for '{options.wifi_ssid}': ")

    log.info("Inputs validated ✓")
    return options


def hash_user_password(password: str, runner: CommandRunner) -> str:
    """Return a SHA-512 crypt (``$6$``) hash using whichever local tool is available."""

    methods: list[tuple[str, list[str]]] = []
    if command_exists("mkpasswd"):
        methods.append(("mkpasswd", ["mkpasswd", "--method=sha-512", "--stdin"]))
    if command_exists("openssl"):
        methods.append(("openssl", ["openssl", "passwd", "-6", "-stdin"]))
    if command_exists("docker"):
        methods.append(
            (
                "docker",
                [
                    "docker",
                    "run",
                    "--rm",
                    "-i",
                    "alpine",
                    "sh",
                    "-c",
                    "apk add --no-cache openssl > /dev/null 2>&1 && openssl passwd -6 -stdin",
                ],
            )
        )

    for name, command in methods:
        try:
            output = runner.capture(command, input=password + "\n")
        except CommandError as exc:
            runner.logger.debug("%s could not hash the password: %s", name, exc)
            continue
        hashed = output.strip().splitlines()[-1] if output.strip() else ""
        if hashed.startswith("$6$"):
            return hashed
        runner.logger.debug("%s did not produce a SHA-512 hash", name)

    raise CloudInitError(
        "Cannot generate SHA-512 password hash. Install one of: mkpasswd, openssl 1.1+, "
        "or Docker, or pass --password-hash with a pre-computed $6$ hash."
    )


def wifi_psk(ssid: str, passphrase: str) -> str:
    """Derive the WPA pre-shared key the same way ``wpa_passphrase`` does."""

    if not 8 <= len(passphrase) <= 63:
        raise CloudInitError("WiFi passphrase must be between 8 and 63 characters")
    return hashlib.pbkdf2_hmac("sha1", passphrase.encode(), ssid.encode(), 4096, 32).hex()


def render_meta_data(options: CloudInitOptions) -> str:
    return _dump({"instance-id": options.hostname, "local-hostname": options.hostname})


def render_network_config(options: CloudInitOptions) -> str:
    if options.static_ip:
        eth0: dict[str, object] = {
            "dhcp4": False,
            "addresses": [options.static_ip],
            "routes": [{"to": "default", "via": options.gateway}],
            "nameservers": {"addresses": list(DNS_SERVERS)},
        }
    else:
        eth0 = {"dhcp4": True}

    network: dict[str, object] = {
        "version": 2,
        "renderer": "networkd",
        "ethernets": {"eth0": eth0},
    }

    if options.wifi_ssid:
        password = options.wifi_password or ""
        if options.wifi_prehashed:
            password = wifi_psk(options.wifi_ssid, password)
        network["wifis"] = {
            "wlan0": {
                "dhcp4": True,
                "optional": True,
                "regulatory-domain": options.wifi_country,
                "access-points": {options.wifi_ssid: {"password": password}},
            }
        }

    return _dump({"network": network})


def render_first_boot_script(options: CloudInitOptions) -> str:
    return f"""#!/bin/bash
set -e

LOG_FILE="/var/log/kube-world-setup.log"
exec > >(tee -a "$LOG_FILE") 2>&1

echo "=== kube-world first-boot setup started at $(date) ==="
echo "Hostname: {options.hostname}"
echo "Role: {options.role}"

echo "Waiting for network connectivity..."
until ping -c1 github.com &>/dev/null; do
  echo "  Waiting..."
  sleep 5
done
echo "Network ready"

modprobe br_netfilter || true
modprobe overlay || true
sysctl --system

swapoff -a
sed -i '/swap/d' /etc/fstab

if [ ! -d /opt/kube-world/repo ]; then
  echo "Cloning kube-world repository..."
  git clone {REPO_URL} /opt/kube-world/repo
fi

echo "=== First-boot setup complete at $(date) ==="
echo "Node is ready for K3s installation via Ansible."
"""


def render_user_data(options: CloudInitOptions, *, password_hash: str, ssh_key: str) -> str:
    country = options.wifi_country
    packages = list(BASE_PACKAGES)
    if options.role == "master":
        packages.extend(MASTER_PACKAGES)

    document = {
        "hostname": options.hostname,
        "manage_etc_hosts": True,
        "locale": "en_US.UTF-8",
        "timezone": "America/New_York",
        "users": [
            {
                "name": ADMIN_USER,
                "groups": ["sudo", "docker", "adm", "dialout", "plugdev"],
                "shell": "/bin/bash",
                "sudo": "ALL=(ALL) NOPASSWD:ALL",
                "lock_passwd": False,
                "passwd": password_hash,
                "ssh_authorized_keys": [ssh_key],
            }
        ],
        # Password auth stays on as a fallback until key auth is confirmed.
        "ssh_pwauth": True,
        "disable_root": True,
        "package_update": True,
        "package_upgrade": True,
        "package_reboot_if_required": True,
        "packages": packages,
        "write_files": [
            {
                "path": "/etc/default/crda",
                "content": f"REGDOMAIN={country}\n",
                "permissions": "0644",
            },
            {
                "path": "/etc/modules-load.d/k8s.conf",
                "content": "br_netfilter\noverlay\n",
                "permissions": "0644",
            },
            {
                "path": "/etc/ssh/sshd_config.d/99-cloud-init.conf",
                "content": (
                    "PasswordAuthentication yes\n"
                    "PubkeyAuthentication yes\n"
                    "PermitRootLogin no\n"
                    f"AllowUsers {ADMIN_USER}\n"
                ),
                "permissions": "0644",
            },
            {
                "path": "/etc/sysctl.d/99-kubernetes.conf",
                "content": (
                    "net.bridge.bridge-nf-call-iptables = 1\n"
                    "net.bridge.bridge-nf-call-ip6tables = 1\n"
                    "net.ipv4.ip_forward = 1\n"
                    "vm.swappiness = 0\n"
                ),
                "permissions": "0644",
            },
            {
                "path": "/etc/kube-world/role",
                "content": f"ROLE={options.role}\nHOSTNAME={options.hostname}\n",
                "permissions": "0644",
            },
            {
                "path": "/opt/kube-world/first-boot.sh",
                "permissions": "0755",
                "content": render_first_boot_script(options),
            },
        ],
        "bootcmd": [
            ["sh", "-c", f"iw reg set {country}"],
            ["sh", "-c", f'echo "REGDOMAIN={country}" > /etc/default/crda'],
        ],
        "runcmd": [
            "systemctl enable ssh",
            "systemctl start ssh",
            f"chmod 700 /home/{ADMIN_USER}/.ssh || true",
            f"chmod 600 /home/{ADMIN_USER}/.ssh/authorized_keys || true",
            f"chown -R {ADMIN_USER}:{ADMIN_USER} /home/{ADMIN_USER}/.ssh || true",
            "mkdir -p /opt/kube-world",
            "mkdir -p /etc/kube-world",
            "/opt/kube-world/first-boot.sh",
        ],
        "final_message": (
            f"Cloud-init complete for {options.hostname} ({options.role})\n"
            f"SSH: ssh {ADMIN_USER}@{options.hostname}.local\n"
            "Run Ansible from management machine to complete K3s setup.\n"
        ),
    }
    return "#cloud-config\n" + _dump(document)


def render_documents(options: CloudInitOptions, runner: CommandRunner) -> CloudInitDocuments:
    password_hash = options.password_hash
    if not password_hash:
        if not options.user_password:
            raise CloudInitError("A user password or --password-hash is required")
        password_hash = hash_user_password(options.user_password, runner)
    elif not password_hash.startswith("$6$"):
        raise CloudInitError("--password-hash must be a SHA-512 crypt hash starting with $6$")

    ssh_key = options.ssh_key_file.read_text(encoding="utf-8").strip()
    if not ssh_key:
        raise CloudInitError(f"SSH public key file is empty: {options.ssh_key_file}")

    return CloudInitDocuments(
        meta_data=render_meta_data(options),
        network_config=render_network_config(options),
        user_data=render_user_data(options, password_hash=password_hash, ssh_key=ssh_key),
    )


def preview(documents: CloudInitDocuments) -> str:
    user_data = documents.user_data.splitlines()
    parts = [
        "═══ meta-data ═══",
        documents.meta_data.rstrip("\n"),
        "",
        "═══ network-config ═══",
        documents.network_config.rstrip("\n"),
        "",
        "═══ user-data (truncated) ═══",
        "\n".join(user_data[:PREVIEW_LINES]),
    ]
    if len(user_data) > PREVIEW_LINES:
        parts.append("...")
    return "\n".join(parts)


def write_documents(documents: CloudInitDocuments, output_dir: Path) -> list[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for name, content in documents.items():
        path = output_dir / name
        path.write_text(content, encoding="utf-8")
        written.append(path)
    return written


def copy_documents(paths: list[Path], destination: Path) -> None:
    if not destination.is_dir():
        raise CloudInitError(f"Copy destination not found: {destination}. Is the SD card mounted?")
    for path in paths:
        shutil.copy2(path, destination / path.name)


def build(
    options: CloudInitOptions,
    *,
    runner: CommandRunner,
    log: logging.Logger,
    prompt: Prompt = getpass.getpass,
) -> CloudInitDocuments:
    validate(options, log=log, prompt=prompt)

    log.info("Building cloud-init configuration...")
    log.info("  Hostname: %s", options.hostname)
    log.info("  Role: %s", options.role)
    log.info("  WiFi: %s", options.wifi_ssid or "disabled")
    log.info("  Static IP: %s", options.static_ip or "DHCP")
    log.info("  SSH Key: %s", options.ssh_key_file)

    documents = render_documents(options, runner)

    if options.dry_run:
        print()
        print(preview(documents))
        return documents

    written = write_documents(documents, options.output_dir)
    log.info("Files generated in: %s/", options.output_dir)
    for path in written:
        log.info("  - %s", path.name)

    if options.copy_to is not None:
        log.info("Copying files to: %s/", options.copy_to)
        copy_documents(written, options.copy_to)
        log.info("Files copied successfully ✓")

    return documents
