"""
Integration Fallback
====================

When maccel cannot be integrated during the image build, leave instructions
for a manual install, a libinput acceleration helper, troubleshooting notes
and a failure log behind instead of failing the build.
"""

import logging
import os
import platform
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests

from .config import Settings, get_dispatch_token, get_github_token
from .config import settings as default_settings
from .installer import read_os_release

logger = logging.getLogger(__name__)

NOTICE_FILE = Path("etc/maccel-integration-notice.txt")
TROUBLESHOOTING_FILE = Path("etc/maccel-troubleshooting.txt")
ACCELERATION_SCRIPT = Path("usr/local/bin/setup-mouse-acceleration")
FAILURE_LOG = Path("var/log/maccel-integration-failure.log")
OS_RELEASE_FILE = Path("etc/os-release")

CONNECTIVITY_TIMEOUT = 10
DIAGNOSTIC_TOOLS = (("gh CLI", "gh"), ("curl", "curl"), ("rpm-ostree", "rpm-ostree"))

NOTICE_TEMPLATE = """\
NOTICE: Maccel Integration Failed During Image Build

The maccel mouse acceleration driver could not be integrated during image build.
Reason: {reason}

MANUAL INSTALLATION OPTIONS:

Option 1: Use maccel's native installer (recommended)
1. Install required dependencies:
   sudo dnf install git make dkms kernel-devel
2. Install maccel using the upstream installer:
   curl -sSL https://raw.githubusercontent.com/{upstream_repo}/main/install.sh | bash
3. Add your user to the maccel group:
   sudo usermod -aG maccel $USER
4. Reboot to load the kernel module

Option 2: Use RPM packages (if available)
1. Check for available packages at:
   https://github.com/{builder_repo}/releases
2. Download and install packages for your kernel version:
   sudo dnf install ./kmod-maccel-*.rpm ./maccel-*.rpm
3. Add your user to the maccel group:
   sudo usermod -aG maccel $USER
4. Reboot to load the kernel module

Option 3: Build from source
1. Install build dependencies:
   sudo dnf install git rust cargo make kernel-devel
2. Clone and build maccel:
   git clone https://github.com/{upstream_repo}.git
   cd maccel && make install
3. Follow post-installation steps from Option 1

TROUBLESHOOTING:
- Check kernel version: uname -r
- Verify group membership: groups $USER
- Check module loading: lsmod | grep maccel
- View maccel logs: journalctl -u maccel

For more information, visit:
- maccel project: https://github.com/{upstream_repo}
- {image_name}: https://github.com/{image_repo}

This notice was created on: {created}
"""

ACCELERATION_SCRIPT_TEXT = """\
#!/bin/bash
# Alternative mouse acceleration setup using libinput

echo "Setting up alternative mouse acceleration using libinput..."

sudo mkdir -p /etc/X11/xorg.conf.d/

cat > /tmp/40-libinput-mouse.conf <<'LIBINPUT_EOF'
Section "InputClass"
    Identifier "libinput pointer catchall"
    MatchIsPointer "on"
    MatchDevicePath "/dev/input/event*"
    Driver "libinput"
    Option "AccelProfile" "adaptive"
    Option "AccelSpeed" "0.5"
EndSection
LIBINPUT_EOF

sudo mv /tmp/40-libinput-mouse.conf /etc/X11/xorg.conf.d/

echo "Alternative mouse acceleration configured."
echo "You may need to restart your session for changes to take effect."
echo "To adjust acceleration, modify AccelSpeed in /etc/X11/xorg.conf.d/40-libinput-mouse.conf"
echo "Values range from -1 (slowest) to 1 (fastest), default is 0"
"""

TROUBLESHOOTING_TEMPLATE = """\
{image_name} - Maccel Troubleshooting Information

SYSTEM INFORMATION:
- Image build date: {created}
- Base image: {base_image}
- Kernel version: {kernel}
- Fedora version: {fedora_version}

MACCEL INTEGRATION STATUS:
- Integration attempted: Yes
- Integration successful: No
- Fallback activated: Yes

COMMON ISSUES AND SOLUTIONS:

1. "maccel command not found"
   - Maccel was not installed during image build
   - Use manual installation options in /{notice_file}

2. "Permission denied" when using maccel
   - Add your user to the maccel group: sudo usermod -aG maccel $USER
   - Reboot after adding to group

3. "No such device" errors
   - Kernel module may not be loaded: sudo modprobe maccel
   - Check if module exists: find /lib/modules/$(uname -r) -name "*maccel*"

4. Mouse acceleration not working
   - Verify maccel is running: maccel status
   - Check for conflicting acceleration: xinput list-props <device-id>
   - Try alternative acceleration: /{acceleration_script}

USEFUL COMMANDS:
- Check kernel version: uname -r
- List input devices: xinput list
- Check loaded modules: lsmod | grep maccel
- View system logs: journalctl -b | grep maccel
- Test mouse settings: xinput test <device-id>

GETTING HELP:
- maccel project: https://github.com/{upstream_repo}
- {image_name} issues: https://github.com/{image_repo}/issues
- Universal Blue community: https://universal-blue.org/

This file was generated on: {created}
"""

FAILURE_LOG_TEMPLATE = """\
{image_name} - Maccel Integration Failure Log

Timestamp: {timestamp}
Error Reason: {reason}

System Information:
- Hostname: {hostname}
- Kernel: {kernel}
- Architecture: {arch}
- Fedora Version: {fedora_version}

Environment Variables:
- GITHUB_TOKEN: {github_token}
- DISPATCH_TOKEN: {dispatch_token}

Network Connectivity:
{connectivity}

Available Tools:
{tools}

This log can help diagnose integration issues.
"""


def _set(value: str) -> str:
    return "Set" if value else "Not set"


def _bullets(values: Dict[str, str]) -> str:
    return "\n".join(f"- {label}: {value}" for label, value in values.items())


def _image_repo(settings: Settings) -> str:
    """Repository of the image being built, owned by the builder's owner."""
    owner = settings.RPM_BUILDER_REPO.split("/", 1)[0]
    return f"{owner}/{settings.TRIGGER_REPO}"


def check_connectivity(settings: Settings, session: Optional[requests.Session] = None) -> Dict[str, str]:
    """
    HTTP status of the GitHub API and the builder repository page.

    Returns:
        Mapping of target label to status code, or "Failed" if unreachable
    """
    session = session or requests.Session()
    targets = {
        "GitHub API": "https://api.github.com/",
        settings.RPM_BUILDER_REPO.split("/")[-1]: f"https://github.com/{settings.RPM_BUILDER_REPO}",
    }

    results = {}
    for label, url in targets.items():
        try:
            response = session.get(url, timeout=CONNECTIVITY_TIMEOUT)
            results[label] = str(response.status_code)
        except requests.RequestException as e:
            logger.warning(f"Connectivity check failed for {url}: {e}")
            results[label] = "Failed"
    return results


def check_tools() -> Dict[str, str]:
    return {
        label: "Available" if shutil.which(command) else "Not available"
        for label, command in DIAGNOSTIC_TOOLS
    }


def _write(path: Path, content: str, mode: Optional[int] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mode is not None:
        path.chmod(mode)
    return path


def activate_fallback(
    reason: str,
    root: Path = Path("/"),
    settings: Settings = default_settings,
    session: Optional[requests.Session] = None,
) -> List[Path]:
    """
    Write the fallback files under *root*.

    Args:
        reason: Why integration failed, repeated in the notice and the log
        root: Filesystem root the files are written under
        settings: Repository names and tokens to report
        session: HTTP session used for the connectivity check

    Returns:
        Paths written: notice, acceleration script, troubleshooting notes, failure log
    """
    root = Path(root)
    now = datetime.now(timezone.utc)
    created = now.strftime("%Y-%m-%d %H:%M:%S UTC")
    uname = platform.uname()
    os_release = read_os_release(root / OS_RELEASE_FILE)
    fedora_version = os_release.get("VERSION_ID", "Unknown")
    image_repo = _image_repo(settings)
    image_name = settings.TRIGGER_REPO

    logger.warning("Activating maccel integration fallback mechanisms...")
    logger.warning(f"Reason: {reason}")

    notice = _write(
        root / NOTICE_FILE,
        NOTICE_TEMPLATE.format(
            reason=reason,
            upstream_repo=settings.UPSTREAM_REPO,
            builder_repo=settings.RPM_BUILDER_REPO,
            image_name=image_name,
            image_repo=image_repo,
            created=created,
        ),
    )
    logger.info(f"User notice created at: {notice}")

    acceleration_script = _write(root / ACCELERATION_SCRIPT, ACCELERATION_SCRIPT_TEXT, mode=0o755)
    logger.info(f"Alternative acceleration script created at: {acceleration_script}")

    troubleshooting = _write(
        root / TROUBLESHOOTING_FILE,
        TROUBLESHOOTING_TEMPLATE.format(
            image_name=image_name,
            image_repo=image_repo,
            upstream_repo=settings.UPSTREAM_REPO,
            created=created,
            base_image=os_release.get("PRETTY_NAME", "Unknown"),
            kernel=uname.release,
            fedora_version=fedora_version,
            notice_file=NOTICE_FILE,
            acceleration_script=ACCELERATION_SCRIPT,
        ),
    )
    logger.info(f"Troubleshooting information created at: {troubleshooting}")

    failure_log = _write(
        root / FAILURE_LOG,
        FAILURE_LOG_TEMPLATE.format(
            image_name=image_name,
            timestamp=created,
            reason=reason,
            hostname=uname.node or os.getenv("HOSTNAME", "unknown"),
            kernel=uname.release,
            arch=uname.machine,
            fedora_version=fedora_version,
            github_token=_set(get_github_token(settings)),
            dispatch_token=_set(get_dispatch_token(settings)),
            connectivity=_bullets(check_connectivity(settings, session)),
            tools=_bullets(check_tools()),
        ),
    )
    logger.info(f"Integration failure logged to: {failure_log}")

    logger.info("Fallback mechanisms activated successfully")
    logger.info("Image build will continue without maccel integration")
    logger.info("Users can install maccel manually after deployment")
    return [notice, acceleration_script, troubleshooting, failure_log]
