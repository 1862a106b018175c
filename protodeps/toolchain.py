#!/usr/bin/env python3
"""
Provisioning of protoc and the gRPC Java plugin.

Binaries are downloaded on first use and cached per version and platform
under a per-user cache directory. A binary already present at its expected
cache path is returned as-is, without touching the network.
"""

import io
import logging
import os
import platform
import shutil
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

import requests

from .errors import ProvisioningFailed, UnsupportedPlatform


logger = logging.getLogger(__name__)

PROTOC_RELEASE_URL = "https://github.com/protocolbuffers/protobuf/releases/download"
GRPC_JAVA_RELEASE_URL = "https://repo1.maven.org/maven2/io/grpc/protoc-gen-grpc-java"

PROTOC_INSTALL_DIR = "protoc-installations"
GRPC_INSTALL_DIR = "grpc-installations"
GRPC_PLUGIN_NAME = "protoc-gen-grpc-java"

# platform.system() -> release naming
OS_NAMES = {
    "Linux": "linux",
    "Darwin": "osx",
}

# platform.machine() -> release naming
ARCH_NAMES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "AMD64": "x86_64",
    "aarch64": "aarch_64",
    "arm64": "aarch_64",
}

# owner read/write/execute
BINARY_MODE = 0o700

DOWNLOAD_TIMEOUT = 300


class PlatformDetector:
    """Maps the running OS and architecture to release naming."""

    @staticmethod
    def detect(system: Optional[str] = None, machine: Optional[str] = None) -> Tuple[str, str]:
        """
        Detects the current platform and architecture.

        Args:
            system: OS name override (defaults to platform.system())
            machine: Architecture override (defaults to platform.machine())

        Returns:
            Tuple of (os, arch) in protoc release naming, e.g. ("osx", "aarch_64")

        Raises:
            UnsupportedPlatform: If either value has no mapping
        """
        system = platform.system() if system is None else system
        machine = platform.machine() if machine is None else machine

        os_name = OS_NAMES.get(system)
        if os_name is None:
            raise UnsupportedPlatform("os.name", system)

        arch = ARCH_NAMES.get(machine)
        if arch is None:
            raise UnsupportedPlatform("os.arch", machine)

        return os_name, arch


def protoc_release(version: str, os_name: str, arch: str) -> str:
    return f"protoc-{version}-{os_name}-{arch}"


def plugin_release(version: str, os_name: str, arch: str) -> str:
    return f"{GRPC_PLUGIN_NAME}-{version}-{os_name}-{arch}.exe"


@dataclass(frozen=True)
class ToolchainHandle:
    """Provisioned executables for one run."""
    compiler: Path
    plugin: Optional[Path] = None


class ToolchainProvisioner:
    """Handles downloading and caching of protoc and protoc-gen-grpc-java."""

    def __init__(self, cache_dir: Union[str, Path], verbose: bool = False,
                 system: Optional[str] = None, machine: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = DOWNLOAD_TIMEOUT):
        """
        Initialize the provisioner.

        Args:
            cache_dir: Per-user cache root
            verbose: Enable verbose logging
            system: OS name override for platform detection
            machine: Architecture override for platform detection
            session: HTTP session to download with (defaults to plain requests)
            timeout: Download timeout in seconds
        """
        self.cache_dir = Path(cache_dir)
        self.verbose = verbose
        self.system = system
        self.machine = machine
        self.session = session
        self.timeout = timeout

    def log(self, message: str) -> None:
        """Log a message if verbose mode is enabled."""
        if self.verbose:
            logger.info(message)

    @property
    def protoc_installs(self) -> Path:
        return self.cache_dir / PROTOC_INSTALL_DIR

    @property
    def grpc_installs(self) -> Path:
        return self.cache_dir / GRPC_INSTALL_DIR

    def _platform(self) -> Tuple[str, str]:
        return PlatformDetector.detect(self.system, self.machine)

    def compiler_path(self, version: str) -> Path:
        """Expected installed protoc path for version on this platform."""
        release = protoc_release(version, *self._platform())
        return self.protoc_installs / release / "bin" / "protoc"

    def plugin_path(self, version: str) -> Path:
        """Expected installed plugin path for version."""
        return self.grpc_installs / version / GRPC_PLUGIN_NAME

    def _fetch(self, url: str) -> bytes:
        getter = self.session.get if self.session is not None else requests.get
        try:
            response = getter(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        except requests.RequestException as e:
            raise ProvisioningFailed(f"Failed to download {url}: {e}", url=url) from e

    def _set_permissions(self, binary: Path) -> None:
        try:
            binary.chmod(BINARY_MODE)
        except OSError as e:
            raise ProvisioningFailed(f"Failed to set permissions on {binary}: {e}") from e

    def ensure_compiler(self, version: str) -> Path:
        """
        Return the cached protoc for version, downloading it on first use.

        Args:
            version: protoc version, e.g. "3.19.1"

        Returns:
            Path to the protoc executable

        Raises:
            UnsupportedPlatform: Before any network access, if unmapped
            ProvisioningFailed: If download or extraction fails
        """
        os_name, arch = self._platform()
        release = protoc_release(version, os_name, arch)
        target_dir = self.protoc_installs / release
        binary = target_dir / "bin" / "protoc"

        if binary.exists():
            self.log(f"Using cached protoc at {binary}")
            return binary

        url = f"{PROTOC_RELEASE_URL}/v{version}/{release}.zip"
        logger.info(f"Downloading protoc from {url} ...")

        payload = self._fetch(url)

        # Extract next to the target and move it into place only once the
        # binary is complete and executable.
        staging = None
        try:
            self.protoc_installs.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{release}-", dir=self.protoc_installs))
            self.log(f"Extracting {release}.zip to {staging}")
            with zipfile.ZipFile(io.BytesIO(payload)) as archive:
                archive.extractall(staging)

            staged_binary = staging / "bin" / "protoc"
            if not staged_binary.is_file():
                raise ProvisioningFailed(f"Binary not found at expected path: {binary}", url=url)
            self._set_permissions(staged_binary)

            shutil.rmtree(target_dir, ignore_errors=True)
            os.replace(staging, target_dir)
        except ProvisioningFailed:
            raise
        except Exception as e:
            raise ProvisioningFailed(f"Failed to install protoc from {url}: {e}", url=url) from e
        finally:
            if staging is not None and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        self.log(f"Installed protoc {version} at {binary}")
        return binary

    def ensure_plugin(self, version: Optional[str], enabled: bool = True) -> Optional[Path]:
        """
        Return the cached gRPC Java plugin, downloading it on first use.

        Returns None without doing anything when plugin compilation is off.
        """
        if not enabled:
            return None
        if not version:
            raise ProvisioningFailed("gRPC plugin requested without a version")

        os_name, arch = self._platform()
        binary = self.plugin_path(version)

        if binary.exists():
            self.log(f"Using cached {GRPC_PLUGIN_NAME} at {binary}")
            return binary

        url = f"{GRPC_JAVA_RELEASE_URL}/{version}/{plugin_release(version, os_name, arch)}"
        logger.info(f"Downloading {GRPC_PLUGIN_NAME} from {url} ...")

        payload = self._fetch(url)

        staging = None
        try:
            binary.parent.mkdir(parents=True, exist_ok=True)
            fd, staging_name = tempfile.mkstemp(prefix=f".{GRPC_PLUGIN_NAME}-", dir=binary.parent)
            staging = Path(staging_name)
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            self._set_permissions(staging)
            os.replace(staging, binary)
        except ProvisioningFailed:
            raise
        except Exception as e:
            raise ProvisioningFailed(f"Failed to install {GRPC_PLUGIN_NAME} to {binary}: {e}", url=url) from e
        finally:
            if staging is not None and staging.exists():
                staging.unlink()

        self.log(f"Installed {GRPC_PLUGIN_NAME} {version} at {binary}")
        return binary

    def provision(self, compiler_version: str, plugin_version: Optional[str] = None,
                  compile_grpc: bool = False) -> ToolchainHandle:
        """Provision every binary a run needs."""
        compiler = self.ensure_compiler(compiler_version)
        plugin = self.ensure_plugin(plugin_version, enabled=compile_grpc)
        return ToolchainHandle(compiler=compiler, plugin=plugin)
