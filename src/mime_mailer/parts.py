# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Body parts, attachments and embedded resources.

Content is never held in memory ahead of serialization: each part carries
a *content producer*, a callable receiving a writable byte sink that it
fills exactly once when the message is written.
"""

from __future__ import annotations

import mimetypes
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping

from .encoding import ByteSink, Encoding
from .headers import Header

ContentProducer = Callable[[ByteSink], None]


def copier(body: str | bytes, charset: str = "UTF-8") -> ContentProducer:
    """Return a producer writing ``body``, encoding text with ``charset``."""
    data = body.encode(charset) if isinstance(body, str) else bytes(body)

    def produce(sink: ByteSink) -> None:
        sink.write(data)

    return produce


def file_copier(path: str | Path) -> ContentProducer:
    """Return a producer streaming the file at ``path`` when invoked."""

    def produce(sink: ByteSink) -> None:
        with open(path, "rb") as handle:
            shutil.copyfileobj(handle, sink)

    return produce


def guess_mime(filename: str) -> str:
    """Determine the MIME type for a filename based on its extension."""
    mt, _ = mimetypes.guess_type(filename)
    return mt or "application/octet-stream"


@dataclass
class Part:
    """One alternative representation of the message body."""

    content_type: str
    copier: ContentProducer
    encoding: Encoding = Encoding.QUOTED_PRINTABLE


@dataclass
class File:
    """A file attached to, or embedded in, a message.

    ``headers`` holds caller overrides; missing MIME headers are synthesized
    by :meth:`mime_headers` at serialization time.
    """

    name: str
    copy_func: ContentProducer
    headers: Header = field(default_factory=Header)

    def set_header(self, field_name: str, value: str) -> None:
        self.headers[field_name] = [value]

    def update_headers(self, headers: Mapping[str, list[str] | str]) -> None:
        for key, values in headers.items():
            self.headers[key] = values

    def mime_headers(self, is_attachment: bool) -> Header:
        """Return the part headers, filling in any defaults not overridden.

        Defaults: Content-Type guessed from the extension, base64 transfer
        encoding, attachment/inline disposition, and ``<name>`` as Content-ID
        for embedded files.
        """
        headers = self.headers.copy()
        if "Content-Type" not in headers:
            headers["Content-Type"] = [f'{guess_mime(self.name)}; name="{self.name}"']
        if "Content-Transfer-Encoding" not in headers:
            headers["Content-Transfer-Encoding"] = [Encoding.BASE64.value]
        if "Content-Disposition" not in headers:
            disposition = "attachment" if is_attachment else "inline"
            headers["Content-Disposition"] = [f'{disposition}; filename="{self.name}"']
        if not is_attachment and "Content-ID" not in headers:
            headers["Content-ID"] = [f"<{self.name}>"]
        return headers


__all__ = [
    "ContentProducer",
    "File",
    "Part",
    "copier",
    "file_copier",
    "guess_mime",
]
