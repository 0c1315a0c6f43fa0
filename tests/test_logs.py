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

"""Tests for the log channel and JSON scenario logging."""

from __future__ import annotations

import json
import logging

import pytest

from cluster_tester import logger
from cluster_tester.errors import ChannelClosedError
from cluster_tester.logs import JsonLineFormatter, LogChannel, attach_channel, scenario_logger


class TestLogChannel:
    def test_drain_returns_lines(self):
        channel = LogChannel()
        channel.write("one\ntwo")
        channel.write("\nthree\n")
        assert channel.drain() == ["one", "two", "three"]
        assert channel.drained

    def test_drain_only_once(self):
        channel = LogChannel()
        channel.drain()
        with pytest.raises(ChannelClosedError):
            channel.drain()

    def test_write_after_drain(self):
        channel = LogChannel()
        channel.drain()
        with pytest.raises(ChannelClosedError):
            channel.write("late\n")


class TestJsonLineFormatter:
    def test_renders_fields(self):
        record = logging.LogRecord("cluster_tester", logging.WARNING, __file__, 1, "Check %d", (2,), None)
        record.tag = "DeploymentPDBTest"
        record.fields = {"attempt": 2, "message": "ignored"}
        entry = json.loads(JsonLineFormatter().format(record))
        assert entry["level"] == "warning"
        assert entry["tag"] == "DeploymentPDBTest"
        assert entry["message"] == "Check 2"
        assert entry["attempt"] == 2
        assert "timestamp" in entry

    def test_untagged_record(self):
        record = logging.LogRecord("cluster_tester", logging.INFO, __file__, 1, "hello", (), None)
        assert "tag" not in json.loads(JsonLineFormatter().format(record))


class TestAttachChannel:
    def test_routes_tagged_records(self):
        channel = LogChannel()
        log = scenario_logger("ConnectivityTest")
        with attach_channel(channel):
            log.info("Discovered %d nodes:", 3, extra={"fields": {"count": 3}})
            log.debug("not captured")
        log.info("after detach")
        lines = [json.loads(line) for line in channel.drain()]
        assert len(lines) == 1
        assert lines[0]["tag"] == "ConnectivityTest"
        assert lines[0]["message"] == "Discovered 3 nodes:"
        assert lines[0]["count"] == 3

    def test_restores_logger_state(self):
        before = (logger.level, list(logger.handlers))
        with attach_channel(LogChannel()):
            pass
        assert (logger.level, list(logger.handlers)) == before

    def test_adapter_merges_extra(self):
        log = scenario_logger("A")
        _, kwargs = log.process("msg", {"extra": {"fields": {"x": 1}}})
        assert kwargs["extra"] == {"tag": "A", "fields": {"x": 1}}
        assert log.tag == "A"
