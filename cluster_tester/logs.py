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

"""Structured scenario logging and the append-only log channel."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from cluster_tester import logger
from cluster_tester.errors import ChannelClosedError


class LogChannel:
    """Append-only buffer of JSON log lines with an explicit lifecycle.

    The channel is open on construction, receives one line per log record
    while scenarios run, and is drained exactly once by the report step.
    Writing to or draining a drained channel raises ``ChannelClosedError``.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._drained = False

    @property
    def drained(self) -> bool:
        return self._drained

    def write(self, text: str) -> int:
        if self._drained:
            raise ChannelClosedError("log channel already drained")
        self._chunks.append(text)
        return len(text)

    def flush(self) -> None:
        pass

    def drain(self) -> list[str]:
        """Return every buffered line and close the channel."""
        if self._drained:
            raise ChannelClosedError("log channel already drained")
        self._drained = True
        lines = "".join(self._chunks).splitlines()
        self._chunks = []
        return lines


class JsonLineFormatter(logging.Formatter):
    """Render a record as one JSON object: level, tag, timestamp, message, fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {"level": record.levelname.lower()}
        tag = getattr(record, "tag", None)
        if tag is not None:
            entry["tag"] = tag
        entry["timestamp"] = datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds")
        entry["message"] = record.getMessage()
        fields = getattr(record, "fields", None)
        if fields:
            entry.update({k: v for k, v in fields.items() if k not in entry})
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ScenarioLog(logging.LoggerAdapter):
    """Logger adapter that stamps every record with a scenario tag.

    Call-site ``extra`` values are merged with the tag rather than replaced.
    """

    @property
    def tag(self) -> str:
        return self.extra["tag"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def scenario_logger(tag: str) -> ScenarioLog:
    """Return a logger whose records carry ``tag``."""
    return ScenarioLog(logger, {"tag": tag})


@contextmanager
def attach_channel(channel: LogChannel, level: int = logging.INFO) -> Iterator[logging.Handler]:
    """Route package log records into ``channel`` as JSON lines while the block runs."""
    handler = logging.StreamHandler(channel)
    handler.setFormatter(JsonLineFormatter())
    handler.setLevel(level)
    previous_level = logger.level
    if logger.getEffectiveLevel() > level:
        logger.setLevel(level)
    logger.addHandler(handler)
    try:
        yield handler
    finally:
        logger.removeHandler(handler)
        logger.setLevel(previous_level)
