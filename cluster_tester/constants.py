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

"""Constants shared by the engine, the scenarios and the CLI."""

from __future__ import annotations

from pathlib import Path

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_DIR = PACKAGE_DIR.parent
DEFAULT_MANIFESTS_DIR = PROJECT_DIR / "manifests"

# -- Manifest decoding --
DOCUMENT_SEPARATOR = "\n---\n"

# -- Report aggregation --
BOOTSTRAP_TAG = "Setup"
REPORT_TAG = "FinalReportAfterSuite"
FAILURE_MARKER = "TEST_FAILED"
SUMMARY_MIN_TAGS = 3
REPORT_FILENAME_PREFIX = "test_suite_log_"
REPORT_FILENAME_TIME_FORMAT = "%Y%m%d-%H%M%S"
REPORT_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"
RATIO_UNDEFINED = "N/A"
DEFAULT_REPORT_DIR = "./temp"

# -- Namespaces --
DEFAULT_TEST_NAMESPACE = "test-ns"
NAMESPACE_DELETE_TIMEOUT_SECONDS = 180
NAMESPACE_DELETE_POLL_SECONDS = 5

# -- Cluster access --
IN_CLUSTER_HOST = "https://kubernetes.default.svc"
IN_CLUSTER_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
IN_CLUSTER_CA_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
FIELD_MANAGER = "e2e-test"

# -- Labels and selectors --
LABEL_ZONE = "topology.kubernetes.io/zone"
FIELD_SELECTOR_RUNNING = "status.phase=Running"

# -- Monitor defaults --
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_MONITOR_TIMEOUT_SECONDS = 300.0
DEFAULT_OBSERVATION_ATTEMPTS = 3
DEFAULT_OBSERVATION_RETRY_WAIT_SECONDS = 1.0
DEFAULT_STABILIZE_SECONDS = 30.0

# -- Rollout --
ROLLOUT_POLL_INTERVAL_SECONDS = 15.0
ROLLOUT_MAX_CHECKS = 20
POST_DELETION_CHECKS = 10
DEFAULT_MAX_SKEW = 1
ROLLOUT_CPU_REQUEST = "100m"

# -- Scenario waits --
HPA_WAIT_TIMEOUT_SECONDS = 300.0
HPA_POLL_INTERVAL_SECONDS = 5.0
POST_DELETION_INTERVAL_SECONDS = 1.0
ZONE_MARKER_TIMEOUT_SECONDS = 120.0
