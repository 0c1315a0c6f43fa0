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

"""Cluster state provider backed by the official Kubernetes client."""

from __future__ import annotations

import json
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from cluster_tester import logger
from cluster_tester.config import AccessMode, ClusterAccessConfig
from cluster_tester.constants import (
    FIELD_MANAGER,
    IN_CLUSTER_CA_PATH,
    IN_CLUSTER_HOST,
    IN_CLUSTER_TOKEN_PATH,
    NAMESPACE_DELETE_POLL_SECONDS,
    NAMESPACE_DELETE_TIMEOUT_SECONDS,
)
from cluster_tester.errors import ClusterApiError, ConfigurationError, ConflictError, NotFoundError


def _api_message(exc: ApiException) -> str:
    """Pull the server's status message out of an ApiException body when present."""
    try:
        body = json.loads(exc.body) if exc.body else {}
    except (TypeError, ValueError):
        body = {}
    message = body.get("message") if isinstance(body, dict) else None
    return message or exc.reason or str(exc)


@contextmanager
def _translate(action: str) -> Iterator[None]:
    """Convert client exceptions into the ClusterApiError hierarchy.

    Args:
        action: Human readable description of the call, used in error messages.

    Raises:
        NotFoundError: On HTTP 404.
        ConflictError: On HTTP 409.
        ClusterApiError: On any other API status or transport failure.
    """
    try:
        yield
    except ApiException as exc:
        message = f"{action}: {_api_message(exc)}"
        if exc.status == 404:
            raise NotFoundError(message, status=404, reason=exc.reason) from exc
        if exc.status == 409:
            raise ConflictError(message, status=409, reason=exc.reason) from exc
        raise ClusterApiError(message, status=exc.status, reason=exc.reason) from exc
    except urllib3.exceptions.HTTPError as exc:
        raise ClusterApiError(f"{action}: {exc}") from exc


# ============================================================================
# Connection
# ============================================================================

def _kubeconfig_configuration(access_cfg: ClusterAccessConfig) -> client.Configuration:
    path = access_cfg.kubeconfig_path()
    configuration = client.Configuration()
    try:
        config.load_kube_config(config_file=str(path), client_configuration=configuration)
    except config.ConfigException as err:
        raise ConfigurationError(f"config creation error: {err}") from err
    return configuration


def _in_cluster_configuration() -> client.Configuration:
    try:
        token = Path(IN_CLUSTER_TOKEN_PATH).read_text().strip()
    except OSError as err:
        raise ConfigurationError(f"failed reading token: {err}") from err
    if not Path(IN_CLUSTER_CA_PATH).is_file():
        raise ConfigurationError(f"failed reading CA cert: {IN_CLUSTER_CA_PATH} not found")
    configuration = client.Configuration(host=IN_CLUSTER_HOST)
    configuration.api_key = {"authorization": token}
    configuration.api_key_prefix = {"authorization": "Bearer"}
    configuration.ssl_ca_cert = IN_CLUSTER_CA_PATH
    return configuration


def _external_configuration(access_cfg: ClusterAccessConfig) -> tuple[client.Configuration, Path]:
    api_url, token, ca_bytes = access_cfg.external_credentials()
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".crt")
    try:
        tmp.write(ca_bytes)
    finally:
        tmp.close()
    configuration = client.Configuration(host=api_url)
    configuration.api_key = {"authorization": token}
    configuration.api_key_prefix = {"authorization": "Bearer"}
    configuration.ssl_ca_cert = tmp.name
    return configuration, Path(tmp.name)


def connect(access_cfg: ClusterAccessConfig) -> ClusterProvider:
    """Build an authenticated provider for the configured access mode.

    Args:
        access_cfg: Cluster access settings.

    Returns:
        A ClusterProvider bound to a fresh API client.

    Raises:
        ConfigurationError: If credential material for the mode is missing or invalid.
    """
    cleanup: list[Path] = []
    if access_cfg.access_mode is AccessMode.KUBECONFIG:
        configuration = _kubeconfig_configuration(access_cfg)
    elif access_cfg.access_mode is AccessMode.LOCAL_K8S_API:
        configuration = _in_cluster_configuration()
    else:
        configuration, ca_path = _external_configuration(access_cfg)
        cleanup.append(ca_path)
    configuration.verify_ssl = access_cfg.k8s_verify_ssl
    logger.info("Running test with access mode %s", access_cfg.access_mode.value,
                extra={"tag": "Setup"})
    return ClusterProvider(client.ApiClient(configuration), cleanup_paths=cleanup)


# ============================================================================
# Provider
# ============================================================================

class ClusterProvider:
    """List/get/create/delete operations over the resources the scenarios touch.

    Every call raises ``NotFoundError`` for a missing resource, ``ConflictError``
    for an existing one and ``ClusterApiError`` for anything else.
    """

    def __init__(
        self,
        api_client: client.ApiClient,
        cleanup_paths: list[Path] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api_client = api_client
        self._cleanup_paths = cleanup_paths or []
        self._sleep = sleep
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.autoscaling = client.AutoscalingV2Api(api_client)
        self.policy = client.PolicyV1Api(api_client)

    def __enter__(self) -> ClusterProvider:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- Creation ----------------------------------------------------------

    def create_deployment(self, namespace: str, body: dict) -> None:
        with _translate(f"create deployment in {namespace}"):
            self.apps.create_namespaced_deployment(namespace, body)

    def create_stateful_set(self, namespace: str, body: dict) -> None:
        with _translate(f"create statefulset in {namespace}"):
            self.apps.create_namespaced_stateful_set(namespace, body)

    def create_service(self, namespace: str, body: dict) -> None:
        with _translate(f"create service in {namespace}"):
            self.core.create_namespaced_service(namespace, body)

    def create_pod_disruption_budget(self, namespace: str, body: dict) -> None:
        with _translate(f"create poddisruptionbudget in {namespace}"):
            self.policy.create_namespaced_pod_disruption_budget(namespace, body)

    def create_horizontal_pod_autoscaler(self, namespace: str, body: dict) -> None:
        with _translate(f"create horizontalpodautoscaler in {namespace}"):
            self.autoscaling.create_namespaced_horizontal_pod_autoscaler(namespace, body)

    # -- Workloads ---------------------------------------------------------

    def get_deployment(self, namespace: str, name: str) -> client.V1Deployment:
        with _translate(f"get deployment {namespace}/{name}"):
            return self.apps.read_namespaced_deployment(name, namespace)

    def list_deployments(self, namespace: str) -> list[client.V1Deployment]:
        with _translate(f"list deployments in {namespace}"):
            return self.apps.list_namespaced_deployment(namespace).items

    def replace_deployment(self, namespace: str, name: str, body: client.V1Deployment) -> None:
        with _translate(f"update deployment {namespace}/{name}"):
            self.apps.replace_namespaced_deployment(name, namespace, body, field_manager=FIELD_MANAGER)

    def get_stateful_set(self, namespace: str, name: str) -> client.V1StatefulSet:
        with _translate(f"get statefulset {namespace}/{name}"):
            return self.apps.read_namespaced_stateful_set(name, namespace)

    def replace_stateful_set(self, namespace: str, name: str, body: client.V1StatefulSet) -> None:
        with _translate(f"update statefulset {namespace}/{name}"):
            self.apps.replace_namespaced_stateful_set(name, namespace, body, field_manager=FIELD_MANAGER)

    def list_horizontal_pod_autoscalers(self, namespace: str) -> list[client.V2HorizontalPodAutoscaler]:
        with _translate(f"list horizontalpodautoscalers in {namespace}"):
            return self.autoscaling.list_namespaced_horizontal_pod_autoscaler(namespace).items

    # -- Pods and nodes ----------------------------------------------------

    def list_pods(
        self,
        namespace: str,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[client.V1Pod]:
        kwargs = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        with _translate(f"list pods in {namespace}"):
            return self.core.list_namespaced_pod(namespace, **kwargs).items

    def delete_pod(self, namespace: str, name: str) -> None:
        with _translate(f"delete pod {namespace}/{name}"):
            self.core.delete_namespaced_pod(name, namespace)

    def list_nodes(self) -> list[client.V1Node]:
        with _translate("list nodes"):
            return self.core.list_node().items

    def get_node(self, name: str) -> client.V1Node:
        with _translate(f"get node {name}"):
            return self.core.read_node(name)

    # -- Namespaces --------------------------------------------------------

    def get_namespace(self, name: str) -> client.V1Namespace:
        with _translate(f"get namespace {name}"):
            return self.core.read_namespace(name)

    def create_namespace(self, name: str) -> None:
        with _translate(f"create namespace {name}"):
            self.core.create_namespace({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}})

    def delete_namespace(self, name: str, force: bool = False) -> None:
        kwargs = {"grace_period_seconds": 0, "propagation_policy": "Background"} if force else {}
        with _translate(f"delete namespace {name}"):
            self.core.delete_namespace(name, **kwargs)

    def ensure_namespace(self, name: str, log: Any = logger) -> bool:
        """Create ``name`` unless it already exists.

        Returns:
            True if the namespace was created by this call.
        """
        log.info("=== Ensuring %s exists ===", name)
        try:
            self.get_namespace(name)
            return False
        except NotFoundError:
            log.info("Creating %s namespace", name)
            self.create_namespace(name)
            return True

    def _namespace_gone(self, name: str, log: Any) -> bool:
        try:
            self.get_namespace(name)
        except NotFoundError:
            return True
        except ClusterApiError as err:
            log.warning("Namespace lookup failed while waiting for deletion: %s", err)
        log.info("Waiting for namespace %s deletion to complete...", name)
        return False

    def _wait_namespace_gone(self, name: str, log: Any, timeout: float, poll: float) -> bool:
        retryer = Retrying(
            stop=stop_after_delay(timeout) | stop_after_attempt(int(timeout // poll) + 1),
            wait=wait_fixed(poll),
            retry=retry_if_result(lambda gone: not gone),
            sleep=self._sleep,
        )
        try:
            return retryer(self._namespace_gone, name, log)
        except RetryError:
            return False

    def clear_namespace(
        self,
        name: str,
        log: Any = logger,
        timeout: float = NAMESPACE_DELETE_TIMEOUT_SECONDS,
        poll: float = NAMESPACE_DELETE_POLL_SECONDS,
    ) -> bool:
        """Delete ``name``, escalating to a forced delete if the graceful one stalls.

        Failures are logged, not raised, so teardown never masks a scenario result.

        Returns:
            True once the namespace is confirmed gone.
        """
        log.info("=== Final namespace cleanup ===")
        try:
            self.delete_namespace(name)
        except NotFoundError:
            pass
        except ClusterApiError as err:
            log.error("Initial cleanup failed: %s", err)

        if self._wait_namespace_gone(name, log, timeout, poll):
            log.info("Namespace '%s' successfully deleted", name)
            return True

        log.info("Initial deletion timed out after %ss. Attempting force deletion...", int(timeout))
        try:
            self.delete_namespace(name, force=True)
        except NotFoundError:
            pass
        except ClusterApiError as err:
            log.error("Force deletion failed: %s", err)

        if self._wait_namespace_gone(name, log, timeout, poll):
            log.info("Namespace '%s' successfully force deleted", name)
            return True
        log.error("Force deletion timed out after %ss", int(timeout))
        return False

    # -- Connection lifecycle ----------------------------------------------

    def release_idle_connections(self) -> None:
        """Drop pooled connections so the next scenario starts with fresh ones."""
        self._api_client.rest_client.pool_manager.clear()

    def close(self) -> None:
        self._api_client.close()
        for path in self._cleanup_paths:
            path.unlink(missing_ok=True)
        self._cleanup_paths = []
