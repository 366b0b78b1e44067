# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration dataclasses and INI/environment loader.

Provides a nested configuration structure:
- config.smtp.host
- config.defaults.charset
- config.verifier.code_expiry
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path

from .encoding import Encoding

DEFAULT_CONFIG_PATH = "mime-mailer.ini"
ENV_PREFIX = "MIME_MAILER_"


@dataclass
class SmtpConfig:
    """SMTP server connection settings."""

    host: str = "localhost"
    """SMTP server hostname."""

    port: int = 587
    """SMTP server port (25, 465 or 587)."""

    username: str | None = None
    """Username used to authenticate, usually the mailbox address."""

    password: str | None = None
    """Password or token used to authenticate."""

    from_addr: str | None = None
    """Envelope sender; defaults to ``username``."""

    use_tls: bool | None = None
    """Implicit TLS. None means implicit TLS only on port 465."""

    start_tls: bool | None = None
    """STARTTLS upgrade. None lets the client upgrade when the server offers it."""

    timeout: float = 10.0
    """Connection and command timeout in seconds."""

    local_hostname: str | None = None
    """Name sent with EHLO/HELO. None uses the client default."""

    def __post_init__(self) -> None:
        if not self.from_addr:
            self.from_addr = self.username

    @property
    def implicit_tls(self) -> bool:
        if self.use_tls is None:
            return int(self.port) == 465
        return bool(self.use_tls)


@dataclass
class MessageDefaults:
    """Defaults applied to messages built from payloads."""

    charset: str = "UTF-8"
    """Charset for bodies and encoded header words."""

    encoding: Encoding = Encoding.QUOTED_PRINTABLE
    """Default body transfer encoding."""


@dataclass
class VerifierConfig:
    """Verification code and confirmation link settings."""

    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    """Server used to deliver verification emails."""

    code_expiry: float = 5 * 60
    """Lifetime of a code or token in seconds."""

    cache_cleanup: float = 10 * 60
    """Interval in seconds between sweeps of expired entries."""

    code_length: int = 6
    """Digits in a numeric verification code."""

    token_length: int = 32
    """Characters in a confirmation link token."""

    def __post_init__(self) -> None:
        if self.code_expiry <= 0:
            self.code_expiry = 5 * 60
        if self.cache_cleanup <= 0:
            self.cache_cleanup = 10 * 60
        if self.code_length <= 0:
            self.code_length = 6
        if self.token_length <= 0:
            self.token_length = 32


@dataclass
class MailerConfig:
    """Main configuration container.

    Example:
        config = MailerConfig(smtp=SmtpConfig(host="smtp.example.com", port=465))
        sender = SmtpSender(config.smtp)
    """

    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    """SMTP connection settings."""

    defaults: MessageDefaults = field(default_factory=MessageDefaults)
    """Message defaults."""

    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    """Verification workflow settings."""

    pool_ttl: int = 300
    """Seconds a pooled SMTP connection may stay idle before being replaced."""

    pool_size: int = 3
    """Maximum number of connected senders kept by a pool."""


def load_settings(path: str | os.PathLike[str] | None = None) -> MailerConfig:
    """
    Load configuration from an INI file with environment variables as fallbacks.

    Environment variables (all prefixed with MIME_MAILER_):
      MIME_MAILER_CONFIG - Path to the INI file (default: mime-mailer.ini)
      MIME_MAILER_SMTP_HOST, MIME_MAILER_SMTP_PORT, MIME_MAILER_SMTP_USERNAME,
      MIME_MAILER_SMTP_PASSWORD, MIME_MAILER_SMTP_FROM, MIME_MAILER_SMTP_USE_TLS,
      MIME_MAILER_SMTP_START_TLS, MIME_MAILER_SMTP_TIMEOUT
      MIME_MAILER_CHARSET, MIME_MAILER_ENCODING
      MIME_MAILER_CODE_EXPIRY, MIME_MAILER_CACHE_CLEANUP,
      MIME_MAILER_CODE_LENGTH, MIME_MAILER_TOKEN_LENGTH
      MIME_MAILER_POOL_TTL, MIME_MAILER_POOL_SIZE

    Config file sections/keys:
      [smtp] host, port, username, password, from, use_tls, start_tls, timeout, local_hostname
      [message] charset, encoding
      [verifier] code_expiry, cache_cleanup, code_length, token_length
      [pool] ttl, size
    """
    config_path = Path(path or os.getenv(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_PATH))
    parser = configparser.ConfigParser()
    parser.read(config_path)

    def get(section: str, option: str, env: str, fallback: str | None = None) -> str | None:
        if parser.has_option(section, option):
            return parser.get(section, option)
        return os.getenv(f"{ENV_PREFIX}{env}", fallback)

    def get_int(section: str, option: str, env: str, default: int) -> int:
        value = get(section, option, env)
        return default if value is None else int(value)

    def get_float(section: str, option: str, env: str, default: float) -> float:
        value = get(section, option, env)
        return default if value is None else float(value)

    def get_bool(section: str, option: str, env: str, default: bool | None = None) -> bool | None:
        value = get(section, option, env)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        return default

    smtp = SmtpConfig(
        host=get("smtp", "host", "SMTP_HOST", "localhost") or "localhost",
        port=get_int("smtp", "port", "SMTP_PORT", 587),
        username=get("smtp", "username", "SMTP_USERNAME"),
        password=get("smtp", "password", "SMTP_PASSWORD"),
        from_addr=get("smtp", "from", "SMTP_FROM"),
        use_tls=get_bool("smtp", "use_tls", "SMTP_USE_TLS"),
        start_tls=get_bool("smtp", "start_tls", "SMTP_START_TLS"),
        timeout=get_float("smtp", "timeout", "SMTP_TIMEOUT", 10.0),
        local_hostname=get("smtp", "local_hostname", "SMTP_LOCAL_HOSTNAME"),
    )
    defaults = MessageDefaults(
        charset=get("message", "charset", "CHARSET", "UTF-8") or "UTF-8",
        encoding=Encoding(get("message", "encoding", "ENCODING", Encoding.QUOTED_PRINTABLE.value)),
    )
    verifier = VerifierConfig(
        smtp=smtp,
        code_expiry=get_float("verifier", "code_expiry", "CODE_EXPIRY", 5 * 60),
        cache_cleanup=get_float("verifier", "cache_cleanup", "CACHE_CLEANUP", 10 * 60),
        code_length=get_int("verifier", "code_length", "CODE_LENGTH", 6),
        token_length=get_int("verifier", "token_length", "TOKEN_LENGTH", 32),
    )
    return MailerConfig(
        smtp=smtp,
        defaults=defaults,
        verifier=verifier,
        pool_ttl=get_int("pool", "ttl", "POOL_TTL", 300),
        pool_size=get_int("pool", "size", "POOL_SIZE", 3),
    )


__all__ = [
    "MailerConfig",
    "MessageDefaults",
    "SmtpConfig",
    "VerifierConfig",
    "load_settings",
]
