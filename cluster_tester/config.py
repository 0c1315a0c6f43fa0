# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Configuration classes and config models."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cluster_tester.constants import (
    DEFAULT_MANIFESTS_DIR,
    DEFAULT_MONITOR_TIMEOUT_SECONDS,
    DEFAULT_OBSERVATION_ATTEMPTS,
    DEFAULT_OBSERVATION_RETRY_WAIT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_REPORT_DIR,
    DEFAULT_STABILIZE_SECONDS,
    DEFAULT_TEST_NAMESPACE,
)
from cluster_tester.errors import ConfigurationError


class AccessMode(str, Enum):
    """How the suite obtains credentials for the cluster API."""

    KUBECONFIG = "KUBECONFIG"
    LOCAL_K8S_API = "LOCAL_K8S_API"
    EXTERNAL_K8S_API = "EXTERNAL_K8S_API"


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterAccessConfig(BaseSettings):
    """Cluster API access parameters, auto-loaded from env vars and ``.env``.

    Attributes:
        access_mode: Credential source selector.
        kubeconfig: Path to a kubeconfig file, or None for ``~/.kube/config``.
        k8s_api_url: API server URL for EXTERNAL_K8S_API.
        k8s_token: Bearer token for EXTERNAL_K8S_API.
        k8s_ca_cert: Base64 CA bundle for EXTERNAL_K8S_API (``\\n`` escapes allowed).
        k8s_verify_ssl: Whether to verify the API server certificate.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    access_mode: AccessMode = AccessMode.KUBECONFIG
    kubeconfig: str | None = None
    k8s_api_url: str | None = None
    k8s_token: str | None = None
    k8s_ca_cert: str | None = None
    k8s_verify_ssl: bool = True

    def kubeconfig_path(self) -> Path:
        """Resolve the kubeconfig path and verify the file exists.

        Returns:
            Path to an existing kubeconfig file.

        Raises:
            ConfigurationError: If the file does not exist.
        """
        path = Path(self.kubeconfig).expanduser() if self.kubeconfig else Path.home() / ".kube" / "config"
        if not path.is_file():
            raise ConfigurationError(f"kubeconfig not found (checked: {path})")
        return path

    def external_credentials(self) -> tuple[str, str, bytes]:
        """Validate and decode the externally supplied endpoint triple.

        Returns:
            Tuple of (api_url, token, ca_cert_pem_bytes).

        Raises:
            ConfigurationError: If any of the three values is missing or the CA is not base64.
        """
        missing = [
            name for name, value in (
                ("K8S_API_URL", self.k8s_api_url),
                ("K8S_TOKEN", self.k8s_token),
                ("K8S_CA_CERT", self.k8s_ca_cert),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} environment variable not set")
        ca_text = "".join(self.k8s_ca_cert.replace("\\n", "\n").split())
        try:
            ca_bytes = base64.b64decode(ca_text, validate=True)
        except (binascii.Error, ValueError) as err:
            raise ConfigurationError(f"CA cert decoding failed: {err}") from err
        return self.k8s_api_url, self.k8s_token, ca_bytes


class SuiteConfig(BaseSettings):
    """Suite-wide settings, auto-loaded from env vars and ``.env``.

    Attributes:
        allowed_to_fail: Comma-separated scenario tags exempt from suite health.
        test_namespace: Namespace the scenarios create and tear down.
        manifests_dir: Root directory for scenario manifests.
        report_dir: Directory the final report artifact is written to.
        stabilize_seconds: Pause after applying manifests before observing.
        poll_interval: Default seconds between monitor samples.
        monitor_timeout: Default seconds before a monitor run times out.
        observation_attempts: Consecutive read failures tolerated within one tick.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    allowed_to_fail: str = ""
    test_namespace: str = DEFAULT_TEST_NAMESPACE
    manifests_dir: Path = DEFAULT_MANIFESTS_DIR
    report_dir: Path = Path(DEFAULT_REPORT_DIR)
    stabilize_seconds: float = Field(default=DEFAULT_STABILIZE_SECONDS, ge=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    monitor_timeout: float = Field(default=DEFAULT_MONITOR_TIMEOUT_SECONDS, gt=0)
    observation_attempts: int = Field(default=DEFAULT_OBSERVATION_ATTEMPTS, ge=1, le=20)

    @property
    def allowed_to_fail_tags(self) -> list[str]:
        return [tag.strip() for tag in self.allowed_to_fail.split(",") if tag.strip()]

    def is_allowed_to_fail(self, tag: str) -> bool:
        return tag in self.allowed_to_fail_tags

    def monitor_options(self) -> MonitorOptions:
        return MonitorOptions(
            interval=self.poll_interval,
            timeout=self.monitor_timeout,
            observation_attempts=self.observation_attempts,
        )


# ============================================================================
# Monitor options
# ============================================================================

@dataclass(frozen=True)
class MonitorOptions:
    """Timing parameters for one convergence run.

    Attributes:
        interval: Seconds slept between samples; must be positive.
        timeout: Seconds from start until the deadline; must be positive.
        observation_attempts: Consecutive failed reads tolerated within one tick.
        observation_retry_wait: Seconds between those reads.
    """

    interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout: float = DEFAULT_MONITOR_TIMEOUT_SECONDS
    observation_attempts: int = DEFAULT_OBSERVATION_ATTEMPTS
    observation_retry_wait: float = DEFAULT_OBSERVATION_RETRY_WAIT_SECONDS


def load_settings() -> tuple[ClusterAccessConfig, SuiteConfig]:
    """Load access and suite settings, converting validation failures.

    Raises:
        ConfigurationError: If any setting fails validation.
    """
    try:
        return ClusterAccessConfig(), SuiteConfig()
    except ValidationError as err:
        raise ConfigurationError(f"invalid configuration: {err}") from err
