"""Prepare a Raspberry Pi and join it to the kube-world cluster over SSH.

The management machine drives every step remotely: SSH reachability, WiFi,
always-on kernel/systemd settings (with a reboot when cgroups were just
enabled), K3s installation, readiness polling, kubeconfig retrieval and a final
Ansible pass. Each wait is a bounded :func:`~kubeworld_toolkit.polling.poll_until`
loop; nothing is persisted between runs, so a failed run is simply re-run.
"""

from __future__ import annotations

import getpass
import logging
import re
import shlex
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .. import kubeconfig
from ..errors import PiPrepError, PollTimeout
from ..logs import banner
from ..polling import poll_until, wait_until
from ..runner import CommandError, CommandRunner, command_exists
from ..settings import Settings
from .remote import SshTarget

REQUIRED_TOOLS = ("ssh", "scp", "ansible-playbook")
K3S_INSTALL_URL = "https://get.k3s.io"
K3S_KUBECONFIG = "/etc/rancher/k3s/k3s.yaml"
CMDLINE_TXT = "/boot/firmware/cmdline.txt"
LOW_MEMORY_MB = 500
RESOURCE_REPORT_EVERY = 6

KUBELET_ARGS = [
    "--kubelet-arg=max-pods=50",
    "--kubelet-arg=kube-reserved=cpu=200m,memory=256Mi",
    "--kubelet-arg=system-reserved=cpu=200m,memory=256Mi",
]
EDGE_LABELS = ["topology.kubernetes.io/zone=edge", "hardware=raspberry-pi"]
SERVER_ONLY_LABELS = ["workload-type=iot"]
SERVER_FLAGS = [
    "--write-kubeconfig-mode",
    "644",
    "--disable",
    "traefik",
    "--disable",
    "servicelb",
]

ALWAYS_ON_SCRIPT = f"""set -e
if systemctl list-unit-files | grep -q k3s; then
    sudo systemctl enable k3s
    sudo systemctl start k3s || true
    echo "K3s enabled for auto-start on boot"
else
    echo "K3s not yet installed - will be enabled after installation"
fi

sudo tee /etc/sysctl.d/k8s.conf > /dev/null << EOF
net.bridge.bridge-nf-call-iptables = 1
net.bridge.bridge-nf-call-ip6tables = 1
net.ipv4.ip_forward = 1
EOF
sudo sysctl --system

sudo swapoff -a
sudo sed -i '/ swap / s/^/#/' /etc/fstab

if ! grep -q "cgroup_memory=1" {CMDLINE_TXT}; then
    sudo sed -i 's/$/ cgroup_memory=1 cgroup_enable=memory/' {CMDLINE_TXT}
    echo "Cgroups enabled - REBOOT REQUIRED"
fi
"""

NEW_PI_INSTRUCTIONS = """\
STEP 1: FLASH THE SD CARD
  1. Download Raspberry Pi Imager: https://www.raspberrypi.com/software/
  2. Select Raspberry Pi 5, Raspberry Pi OS Lite (64-bit), and your SD card (32GB+).
  3. In the settings dialog set hostname (e.g. pi5-master-1), enable SSH,
     username 'admin' with a password, and optionally WiFi and locale.
  4. Save, then write the card.

STEP 2: CLOUD-INIT (OPTIONAL)
  Generate user-data/meta-data/network-config with:
     kube-world pi cloud-init --hostname pi5-master-1 --copy-to /Volumes/bootfs

STEP 3: BOOT THE PI
  Insert the card, connect ethernet (recommended) or rely on WiFi, power on,
  and wait 2-3 minutes for first boot.

STEP 4: FIND YOUR PI
  ping pi5-master-1.local, check your router's DHCP client list, or
  arp -a | grep -i "d8:3a\\|dc:a6\\|e4:5f"   (Raspberry Pi MAC prefixes)

STEP 5: JOIN THE CLUSTER
  kube-world pi prep <PI_IP> --join-cluster
"""

Prompt = Callable[[str], str]


@dataclass(slots=True)
class PrepOptions:
    host: str | None = None
    new_pi: bool = False
    join_cluster: bool = False
    wifi_only: bool = False
    dry_run: bool = False
    verbose: bool = False
    repo_root: Path = field(default_factory=Path.cwd)


def plan_steps(options: PrepOptions) -> list[str]:
    steps = [f"Test SSH to {options.host}"]
    if options.wifi_only:
        steps.append("Configure WiFi")
    if options.join_cluster:
        steps.extend(
            [
                "Enable always-on config",
                "Install K3s",
                "Fetch kubeconfig",
                "Run Ansible playbook",
            ]
        )
    return steps


def build_k3s_install_script(
    role: str,
    version: str,
    *,
    server_url: str | None = None,
    token: str | None = None,
) -> str:
    """Return the shell snippet that installs a K3s server or agent via get.k3s.io."""

    if role == "server":
        env = {"INSTALL_K3S_VERSION": version}
        args = [*SERVER_FLAGS, *KUBELET_ARGS]
        labels = [*EDGE_LABELS, *SERVER_ONLY_LABELS]
    elif role == "agent":
        if not server_url or not token:
            raise PiPrepError("Agent install requires a server URL and a join token")
        env = {"INSTALL_K3S_VERSION": version, "K3S_URL": server_url, "K3S_TOKEN": token}
        args = list(KUBELET_ARGS)
        labels = list(EDGE_LABELS)
    else:
        raise PiPrepError(f"Unknown K3s role '{role}' (expected 'server' or 'agent')")

    for label in labels:
        args.extend(["--node-label", label])
    assignments = " ".join(f"{key}={shlex.quote(value)}" for key, value in env.items())
    flags = " ".join(shlex.quote(arg) for arg in args)
    return f"curl -sfL {K3S_INSTALL_URL} | {assignments} sh -s - {role} {flags}\n"


def check_prereqs(log: logging.Logger) -> None:
    log.info("Checking prerequisites...")
    missing = [tool for tool in REQUIRED_TOOLS if not command_exists(tool)]
    if missing:
        raise PiPrepError(
            f"Missing required tools: {' '.join(missing)}. "
            f"Install with: brew install {' '.join(missing)}"
        )
    log.info("Prerequisites OK ✓")


def render_wpa_supplicant(ssid: str, passphrase: str, country: str) -> str:
    return (
        f"country={country}\n"
        "ctrl_interface=DIR=/var/run/wpa_supplicant GROUP=netdev\n"
        "update_config=1\n"
        "network={\n"
        f'    ssid="{ssid}"\n'
        f'    psk="{passphrase}"\n'
        "}\n"
    )


def read_wifi_ssid(config_path: Path) -> str | None:
    """Return the first ``ssids[].name`` from the repository ``config.yaml``."""

    if not config_path.is_file():
        return None
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError:
        return None
    return _find_ssid(data)


def _find_ssid(node: object) -> str | None:
    if isinstance(node, dict):
        ssids = node.get("ssids")
        if isinstance(ssids, list):
            for entry in ssids:
                if isinstance(entry, dict) and entry.get("name"):
                    return str(entry["name"])
        for value in node.values():
            found = _find_ssid(value)
            if found:
                return found
    elif isinstance(node, list):
        for value in node:
            found = _find_ssid(value)
            if found:
                return found
    return None


def update_inventory(text: str, host: str) -> str:
    """Point every ``ansible_host=`` entry of an INI inventory at ``host``."""

    return re.sub(r"ansible_host=\S*", f"ansible_host={host}", text)


def parse_available_memory(free_output: str) -> int | None:
    """Return the "available" column (MiB) of ``free -m`` output."""

    for line in free_output.splitlines():
        if line.startswith("Mem:"):
            columns = line.split()
            if len(columns) >= 7:
                try:
                    return int(columns[6])
                except ValueError:
                    return None
    return None


def parse_memory_percent(free_output: str) -> str:
    for line in free_output.splitlines():
        if line.startswith("Mem:"):
            columns = line.split()
            try:
                total, used = int(columns[1]), int(columns[2])
            except (IndexError, ValueError):
                break
            if total:
                return f"{used / total * 100:.0f}%"
    return "N/A"


class PiPreparer:
    """Drive one Raspberry Pi through the preparation and cluster-join steps."""

    def __init__(
        self,
        target: SshTarget,
        *,
        runner: CommandRunner,
        settings: Settings,
        log: logging.Logger,
        repo_root: Path,
        sleep: Callable[[float], None] = time.sleep,
        prompt: Prompt = input,
        secret_prompt: Prompt = getpass.getpass,
        kubeconfig_path: Path = kubeconfig.PI_KUBECONFIG,
    ):
        self.target = target
        self.runner = runner
        self.settings = settings
        self.log = log
        self.repo_root = repo_root
        self.sleep = sleep
        self.prompt = prompt
        self.secret_prompt = secret_prompt
        self.kubeconfig_path = kubeconfig_path

    @property
    def ansible_dir(self) -> Path:
        return self.repo_root / "pi-setup" / "ansible"

    # ------------------------------------------------------------ remote helpers
    def _batch(self, connect_timeout: int = 10) -> SshTarget:
        return self.target.with_options(batch_mode=True, connect_timeout=connect_timeout)

    def _reachable(self, message: str = "SSH OK", connect_timeout: int = 10) -> bool:
        return self.runner.succeeds(self._batch(connect_timeout).command(f"echo '{message}'"))

    def _remote_output(self, remote_command: str, connect_timeout: int = 10) -> str | None:
        target = self.target.with_options(connect_timeout=connect_timeout)
        try:
            return self.runner.capture(target.command(remote_command))
        except CommandError as exc:
            self.log.debug("remote command failed: %s", exc)
            return None

    # ------------------------------------------------------------------- steps
    def test_ssh(self, attempts: int = 5, interval: float = 10) -> None:
        self.log.info("Testing SSH connection to %s...", self.target.destination)

        def warn(attempt: int, total: int) -> None:
            self.log.warning(
                "SSH attempt %d/%d failed, retrying in %gs...", attempt, total, interval
            )

        result = poll_until(
            self._reachable,
            interval=interval,
            max_attempts=attempts,
            sleep=self.sleep,
            on_retry=warn,
        )
        if result.succeeded:
            self.log.info("SSH connection successful ✓")
            return

        self.log.warning("Key-based SSH failed. Trying with password...")
        if self.runner.succeeds(self.target.command("echo 'SSH OK'")):
            self.log.info("SSH with password successful ✓")
            self.log.warning("Consider setting up SSH key authentication for passwordless access")
            return

        raise PiPrepError(
            f"Cannot connect to Pi via SSH after {attempts} attempts. "
            "Ensure Pi is running and SSH is enabled"
        )

    def configure_wifi(self, ssid: str | None = None, passphrase: str | None = None) -> None:
        self.log.info("Configuring WiFi on Pi...")
        ssid = ssid or read_wifi_ssid(self.repo_root / "config.yaml")
        if not ssid:
            ssid = self.prompt("Enter WiFi SSID: ").strip()
        if ssid and not passphrase:
            passphrase = self.secret_prompt(f"Enter WiFi password for '{ssid}': ")
        if not ssid or not passphrase:
            self.log.warning("WiFi SSID or password missing; skipping WiFi configuration")
            return

        nmcli = (
            f"sudo nmcli device wifi connect {shlex.quote(ssid)} "
            f"password {shlex.quote(passphrase)}"
        )
        try:
            self.runner.run(self.target.command(nmcli))
        except CommandError:
            self.log.warning("nmcli failed, trying wpa_supplicant method...")
            conf = render_wpa_supplicant(ssid, passphrase, self.settings.wifi_country)
            self.runner.run(
                self.target.command(
                    "sudo tee /etc/wpa_supplicant/wpa_supplicant.conf > /dev/null "
                    "&& sudo systemctl restart wpa_supplicant"
                ),
                input=conf,
            )
        self.log.info("WiFi configured ✓")

    def target_address(self) -> str:
        output = self._remote_output("hostname -I") or ""
        addresses = output.split()
        return addresses[0] if addresses else self.target.host

    def dhcp_reservation_notice(self, address: str) -> str:
        self.log.info("Configuring static IP: %s", address)
        mac = self._remote_output(
            "cat /sys/class/net/eth0/address 2>/dev/null || cat /sys/class/net/wlan0/address"
        )
        hostname = self._remote_output("hostname")
        rule = "═" * 68
        notice = "\n".join(
            [
                rule,
                "  DHCP Reservation Required",
                rule,
                "",
                "  To ensure stable networking, configure your router to reserve:",
                "",
                f"    MAC Address: {mac or 'unknown'}",
                f"    IP Address:  {address}",
                f"    Hostname:    {hostname or 'unknown'}",
                "",
                "  This is more reliable than static IP configuration on the Pi.",
                rule,
            ]
        )
        print(f"\n{notice}\n")
        return notice

    def enable_always_on(self) -> None:
        self.log.info("Enabling always-on K3s via systemd...")
        self.runner.run(self.target.command("bash -s"), input=ALWAYS_ON_SCRIPT)
        self.log.info("Always-on configuration complete ✓")

    def reboot_required(self) -> bool:
        """True when cgroups are configured for next boot but not active yet."""

        configured = self.runner.succeeds(
            self.target.command(f"grep -q 'cgroup_memory=1' {CMDLINE_TXT}")
        )
        if not configured:
            return False
        active = self.runner.succeeds(self.target.command("grep -q cgroup_memory=1 /proc/cmdline"))
        return not active

    def reboot_and_wait(
        self, *, grace: float = 15, interval: float = 5, attempts: int = 18
    ) -> None:
        self.log.warning("Cgroups were just enabled. Rebooting Pi...")
        reboot = "sudo nohup sh -c 'sleep 2 && reboot' > /dev/null 2>&1 &"
        self.runner.succeeds(self.target.command(reboot, tty=True))
        budget = grace + interval * attempts
        self.log.info("Waiting for Pi to reboot (%gs timeout)...", budget)

        def progress(attempt: int, total: int) -> None:
            self.log.debug("  Waiting for reboot... (%d/%d)", attempt, total)

        try:
            wait_until(
                lambda: self._reachable(connect_timeout=3),
                description="Pi to come back after reboot",
                interval=interval,
                max_attempts=attempts,
                sleep=self.sleep,
                on_retry=progress,
                initial_delay=grace,
            )
        except PollTimeout as exc:
            raise PiPrepError(
                f"Pi didn't come back after reboot within {budget:g} seconds. "
                "Please check Pi manually and try again"
            ) from exc
        self.log.info("Pi is back online after reboot ✓")

    def install_k3s(
        self,
        role: str = "server",
        *,
        server_url: str | None = None,
        token: str | None = None,
    ) -> None:
        script = build_k3s_install_script(
            role, self.settings.k3s_version, server_url=server_url, token=token
        )
        self.log.info("Installing K3s (%s) on Pi...", role)
        self.log.info("This may take 2-5 minutes on first run...")
        self.runner.run(self.target.command("bash -s"), input=script)
        self.runner.run(
            self.target.command("sudo systemctl enable k3s || sudo systemctl enable k3s-agent")
        )
        self.log.info("K3s %s installed and enabled ✓", role)

    def disable_wifi_power_save(self) -> None:
        if not self.runner.succeeds(
            self.target.command("sudo iw dev wlan0 set power_save off 2>/dev/null || true")
        ):
            self.log.debug("Could not disable WiFi power save")

    def k3s_ready(self) -> bool:
        probe = self.target.with_options(connect_timeout=5)
        if not self.runner.succeeds(probe.command("sudo systemctl is-active k3s")):
            return False
        if not self.runner.succeeds(probe.command("sudo k3s kubectl get nodes")):
            return False
        status = self._remote_output(
            "sudo k3s kubectl get nodes -o "
            "jsonpath='{.items[0].status.conditions[?(@.type==\"Ready\")].status}'",
            connect_timeout=5,
        )
        return status == "True"

    def resource_usage(self) -> tuple[str, str]:
        cpu = self._remote_output("top -bn1 | grep 'Cpu(s)'", connect_timeout=5)
        cpu_value = "N/A"
        if cpu:
            match = re.search(r"([\d.]+)\s*us", cpu)
            if match:
                cpu_value = f"{match.group(1)}%"
        memory = self._remote_output("free -m", connect_timeout=5)
        return cpu_value, parse_memory_percent(memory or "")

    def wait_for_k3s_ready(self, attempts: int = 60, interval: float = 5) -> None:
        self.log.info(
            "Waiting for K3s to be ready (max %d attempts, %gs interval)...", attempts, interval
        )

        def progress(attempt: int, total: int) -> None:
            if attempt % RESOURCE_REPORT_EVERY == 0:
                cpu, memory = self.resource_usage()
                self.log.info(
                    "  Attempt %d/%d - CPU: %s, Mem: %s - Still initializing...",
                    attempt,
                    total,
                    cpu,
                    memory,
                )
            else:
                self.log.debug("  Attempt %d/%d - K3s not ready yet...", attempt, total)

        try:
            wait_until(
                self.k3s_ready,
                description="K3s node Ready condition",
                interval=interval,
                max_attempts=attempts,
                sleep=self.sleep,
                on_retry=progress,
            )
        except PollTimeout as exc:
            raise PiPrepError(
                f"K3s did not become ready within {attempts * interval:g} seconds. "
                f"Check Pi logs with: ssh {self.target.destination} "
                "'sudo journalctl -u k3s -n 100'"
            ) from exc
        self.log.info("K3s is ready! Node status: Ready ✓")

    def fetch_kubeconfig(self, address: str, attempts: int = 10, interval: float = 5) -> Path:
        self.log.info("Fetching kubeconfig from Pi...")
        destination = self.kubeconfig_path

        def attempt_fetch() -> bool:
            if not self.runner.succeeds(self.target.command(f"test -f {K3S_KUBECONFIG}")):
                return False
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryDirectory(prefix="kube-world-") as tmpdir:
                staged = Path(tmpdir) / "k3s.yaml"
                if not self.runner.succeeds(self.target.scp_from(K3S_KUBECONFIG, staged)):
                    return False
                text = staged.read_text(encoding="utf-8")
            kubeconfig.write_kubeconfig(
                destination, kubeconfig.rewrite_server_address(text, address)
            )
            return True

        def warn(attempt: int, total: int) -> None:
            self.log.warning(
                "Kubeconfig not yet available (attempt %d/%d), waiting...", attempt, total
            )

        result = poll_until(
            attempt_fetch,
            interval=interval,
            max_attempts=attempts,
            sleep=self.sleep,
            on_retry=warn,
        )
        if not result.succeeded:
            raise PiPrepError(
                f"Failed to fetch kubeconfig after {attempts} attempts. "
                "K3s may still be initializing."
            )
        self.log.info("Kubeconfig saved to %s ✓", destination)
        self.log.info("To use: export KUBECONFIG=%s", destination)
        return destination

    def verify_network(self) -> bool:
        self.log.info("Verifying network stability...")
        probe = self.target.with_options(connect_timeout=5)
        if self.runner.succeeds(probe.command("ping -c 2 8.8.8.8")):
            self.log.info("Network connectivity verified ✓")
            return True
        self.log.warning("Network connectivity may be unstable. Consider using Ethernet for Pi.")
        return False

    def run_ansible(
        self,
        *,
        max_retries: int = 3,
        preflight_attempts: int = 5,
        preflight_interval: float = 10,
        recovery_attempts: int = 12,
        recovery_interval: float = 10,
        retry_pause: float = 30,
    ) -> bool:
        """Run the Pi playbook with connectivity pre-flight, retries and recovery waits.

        Returns ``False`` when no playbook exists (the step is optional) and raises
        :class:`PiPrepError` when the Pi is unreachable or every attempt fails.
        """

        self.log.info("Running Ansible playbook for full configuration...")
        inventory = self.ansible_dir / "inventory.ini"
        playbook = self.ansible_dir / "playbook.yml"
        ansible_cfg = self.ansible_dir / "ansible.cfg"
        host = self.target.host

        if not playbook.is_file():
            self.log.warning("Ansible playbook not found at %s", playbook)
            self.log.warning("Skipping Ansible configuration")
            return False

        self.log.info("Pre-flight: Verifying Pi connectivity before Ansible...")
        preflight = poll_until(
            lambda: self._reachable("Pre-flight OK"),
            interval=preflight_interval,
            max_attempts=preflight_attempts,
            sleep=self.sleep,
            on_retry=lambda attempt, total: self.log.warning(
                "Pre-flight attempt %d/%d failed, waiting %gs...",
                attempt,
                total,
                preflight_interval,
            ),
        )
        if not preflight.succeeded:
            raise PiPrepError(
                "Pi not reachable before Ansible. Check Pi network connectivity and try again."
            )
        self.log.info("Pre-flight connectivity check passed ✓")

        self.log.info("Disabling WiFi power save for Ansible stability...")
        self.disable_wifi_power_save()

        self.log.info("Checking Pi resource availability...")
        available = parse_available_memory(self._remote_output("free -m") or "")
        if available is not None and available < LOW_MEMORY_MB:
            self.log.warning(
                "Low memory on Pi: %dMB available. Ansible may be slow or fail.", available
            )
        else:
            self.log.debug("Pi memory available: %sMB", available)

        if inventory.is_file():
            self.log.info("Updating inventory with Pi IP: %s", host)
            inventory.write_text(
                update_inventory(inventory.read_text(encoding="utf-8"), host), encoding="utf-8"
            )

        for attempt in range(1, max_retries + 1):
            self.log.info("Ansible attempt %d/%d...", attempt, max_retries)
            command = [
                "ansible-playbook",
                "-i",
                str(inventory),
                str(playbook),
                "--extra-vars",
                f"pi_ip={host}",
                "--extra-vars",
                f"k3s_version={self.settings.k3s_version}",
                "--extra-vars",
                f"ansible_host={host}",
            ]
            if attempt > 1:
                self.log.warning("Retrying with increased verbosity...")
                command.append("-vv")
            try:
                self.runner.run(command, env={"ANSIBLE_CONFIG": str(ansible_cfg)})
            except CommandError as exc:
                self.log.warning(
                    "Ansible attempt %d failed with exit code: %d", attempt, exc.returncode
                )
            else:
                self.log.info("Ansible playbook completed successfully ✓")
                return True

            if attempt == max_retries:
                break

            self.log.info("Checking if Pi is still reachable...")
            recovered = poll_until(
                lambda: self._reachable("Recovery OK", connect_timeout=5),
                interval=recovery_interval,
                max_attempts=recovery_attempts,
                sleep=self.sleep,
                on_retry=lambda current, total: self.log.warning(
                    "  Waiting for Pi to recover... (%d/%d)", current, total
                ),
            )
            if not recovered.succeeded:
                raise PiPrepError(
                    f"Pi did not recover within {recovery_attempts * recovery_interval:g} "
                    "seconds. It may have crashed or rebooted. Check the Pi manually "
                    "(power cycle if needed) and retry."
                )
            self.log.info("Pi recovered and is reachable ✓")
            self.disable_wifi_power_save()
            self.log.warning("Waiting %gs before retry...", retry_pause)
            self.sleep(retry_pause)

        raise PiPrepError(
            f"Ansible playbook failed after {max_retries} attempts. "
            f"Check Pi logs: ssh {self.target.destination} 'sudo journalctl -n 200'"
        )

    # -------------------------------------------------------------- workflows
    def join_cluster(self) -> str:
        self.log.info("Starting full cluster join process...")
        address = self.target_address()

        self.enable_always_on()
        if self.reboot_required():
            self.reboot_and_wait()

        self.install_k3s("server")

        self.log.info("Disabling WiFi power save for stability...")
        self.disable_wifi_power_save()

        self.wait_for_k3s_ready()
        self.fetch_kubeconfig(address)
        self.verify_network()
        self.dhcp_reservation_notice(address)
        self.run_ansible()
        return address


def completion_summary(address: str, kubeconfig_path: Path) -> str:
    return "\n".join(
        [
            banner("Pi Preparation Complete!"),
            "",
            f"  Pi IP:        {address}",
            f"  Kubeconfig:   {kubeconfig_path}",
            "",
            "  To access the Pi cluster:",
            f"    export KUBECONFIG={kubeconfig_path}",
            "    kubectl get nodes",
            "",
            "  To register with Rancher (from the management cluster):",
            "    1. Access Rancher UI",
            "    2. Go to Cluster Management > Import Existing",
            "    3. Follow the instructions to import the Pi cluster",
        ]
    )


def run_prep(
    options: PrepOptions,
    settings: Settings,
    *,
    log: logging.Logger,
    runner: CommandRunner | None = None,
    prompt: Prompt = input,
    secret_prompt: Prompt = getpass.getpass,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    if not options.host and not options.new_pi:
        raise PiPrepError("PI_IP_OR_HOSTNAME is required")

    print(banner("Pi Preparation for kube-world", time.strftime("%Y-%m-%d %H:%M:%S")))
    print()

    check_prereqs(log)

    if options.new_pi:
        print(banner("New Raspberry Pi 5 Setup Instructions"))
        print(NEW_PI_INSTRUCTIONS)
        prompt("Press ENTER when Pi is ready, or Ctrl+C to exit...")
        if not options.host:
            options.host = prompt("Enter Pi IP address or hostname: ").strip()
        if not options.host:
            raise PiPrepError("PI_IP_OR_HOSTNAME is required")

    if options.dry_run:
        log.info("DRY RUN MODE - showing what would be done:")
        for index, step in enumerate(plan_steps(options), start=1):
            print(f"  {index}. {step}")
        return

    preparer = PiPreparer(
        SshTarget(options.host, user=settings.pi_user),
        runner=runner or CommandRunner(cwd=options.repo_root, logger=log),
        settings=settings,
        log=log,
        repo_root=options.repo_root,
        sleep=sleep,
        prompt=prompt,
        secret_prompt=secret_prompt,
    )
    preparer.test_ssh()

    if options.wifi_only:
        preparer.configure_wifi()
        log.info("WiFi configuration complete!")
        return

    if options.join_cluster:
        address = preparer.join_cluster()
        print()
        print(completion_summary(address, preparer.kubeconfig_path))
        print()
