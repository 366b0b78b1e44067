# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging helpers for mime_mailer."""

import logging


def get_logger(name: str = "MimeMailer") -> logging.Logger:
    """Return a :class:`logging.Logger` instance.

    Note: Logging configuration should be done via logging.basicConfig()
    in the entry point (the CLI) to avoid duplicate handlers.
    """
    return logging.getLogger(name)
