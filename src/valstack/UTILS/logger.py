# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Logging helpers with redaction of registered secret values.
"""
import logging
import sys
from typing import Set

LOGGER_NAME = "valstack"
REDACTED = "***REDACTED***"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class RedactingFilter(logging.Filter):
    """
    Replaces every registered secret value in a record's message with a mask.
    """
    def __init__(self):
        super().__init__()
        self._secrets: Set[str] = set()

    def register(self, value: str):
        """
        Registers a value that must never appear in log output.

        :param value: The secret value.
        """
        if value:
            self._secrets.add(value)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        for secret in self._secrets:
            message = message.replace(secret, REDACTED)
        record.msg = message
        record.args = None
        return True


_redactor = RedactingFilter()


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    Returns a logger below the package logger, with secret redaction attached.

    :param name: Dotted logger name.
    :return: The logger.
    """
    logger = logging.getLogger(name)
    if _redactor not in logger.filters:
        logger.addFilter(_redactor)
    return logger


def register_secret(value: str):
    """
    Masks the value in every record emitted through get_logger().
    """
    _redactor.register(value)


def configure_logging(level: str = "INFO"):
    """
    Attaches a single stderr handler to the package logger.

    :param level: Name of the log level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not any(getattr(h, "_valstack", False) for h in logger.handlers):
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(_redactor)
        handler._valstack = True
        logger.addHandler(handler)
    logger.setLevel(level.upper())
