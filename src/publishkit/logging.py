# Copyright 2026 Google LLC
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
#
# SPDX-License-Identifier: Apache-2.0

"""Structured log events for a publish.

Every stage of a publish emits one snake_case structlog event with its
facts as key/value fields, written to stderr::

    publish_started        package, version, registry, tag
    tarball_details        shasum, integrity, total_files, unpacked_size
    credential_resolved    registry_key, auth_key (never the secret)
    provenance_signed      payload_type, identity
    registry_put           package, version, registry
    publish_succeeded      package, version, tag, status

``json_log=True`` renders one JSON object per line for CI log
collectors; otherwise a console renderer is used, colored on a TTY.

Fields that name a credential (``token``, ``authorization``,
``password``, ``npm-otp``, ...) are masked by :func:`redact_secrets`
before rendering.

Usage::

    from publishkit.logging import configure_logging, get_logger

    configure_logging(quiet=True)
    log = get_logger(__name__)
    log.info('tarball_details', total_files=12)
"""

from __future__ import annotations

import logging
import sys

import structlog

#: Event keys whose values are replaced by :data:`REDACTED`.
SECRET_KEYS: frozenset[str] = frozenset({
    '_auth',
    '_authtoken',
    '_password',
    'auth',
    'authorization',
    'key',
    'npm-otp',
    'otp',
    'password',
    'token',
})

REDACTED = '***'


def redact_secrets(
    _logger: object,
    _method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Mask credential-bearing fields in a log event."""
    for key in list(event_dict):
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Route publishkit events through the stdlib root logger on stderr.

    Calling it again replaces the previous configuration.

    Args:
        verbose: Enable debug-level output.
        quiet: Suppress info-level output (only warnings and errors).
        json_log: Use JSON output instead of colored console output.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stderr,
        level=level,
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        redact_secrets,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_log:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = 'publishkit') -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger.

    Args:
        name: Logger name, used for filtering and identification.

    Returns:
        A :class:`structlog.stdlib.BoundLogger` instance.
    """
    return structlog.get_logger(name)


__all__ = [
    'REDACTED',
    'SECRET_KEYS',
    'configure_logging',
    'get_logger',
    'redact_secrets',
]
