from __future__ import annotations
import codecs
import json
import logging
from typing import Any, Dict, Iterable, Iterator, Optional

from chatbridge.core.errors import BufferExceededError, TooManyParseErrorsError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_SIZE = 1024 * 1024
DEFAULT_MAX_CONSECUTIVE_ERRORS = 5


def _parse_record(line: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(line)
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


class StreamDecoder:
    """
    Turns a newline-delimited JSON body into a lazy sequence of records.

    - max_buffer_size: longest unterminated fragment (in characters) held
      before giving up on a backend that never ends its line.
    - max_consecutive_errors: malformed lines tolerated in a row; one more
      fails the stream. A good record resets the count.
    A trailing fragment without a newline at end of data is dropped.
    """

    def __init__(
        self,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        max_consecutive_errors: int = DEFAULT_MAX_CONSECUTIVE_ERRORS,
    ):
        if max_buffer_size < 1:
            raise ValueError("max_buffer_size must be >= 1")
        if max_consecutive_errors < 0:
            raise ValueError("max_consecutive_errors must be >= 0")
        self.max_buffer_size = max_buffer_size
        self.max_consecutive_errors = max_consecutive_errors

    def decode(self, chunks: Iterable[bytes]) -> Iterator[Dict[str, Any]]:
        text_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        errors = 0

        for chunk in chunks:
            if not chunk:
                continue
            text = text_decoder.decode(chunk)
            if "\n" not in text:
                buffer += text
                self._check_buffer(buffer)
                continue

            *lines, tail = (buffer + text).split("\n")
            buffer = tail
            self._check_buffer(buffer)

            for line in lines:
                line = line.strip()
                if not line:
                    continue
                record = _parse_record(line)
                if record is None:
                    errors += 1
                    logger.warning(
                        "Skipping malformed stream line (%d/%d in a row): %.80s",
                        errors, self.max_consecutive_errors, line,
                    )
                    if errors > self.max_consecutive_errors:
                        raise TooManyParseErrorsError(
                            f"Stream produced {errors} consecutive malformed lines"
                        )
                    continue
                errors = 0
                yield record

        buffer += text_decoder.decode(b"", final=True)
        if buffer.strip():
            logger.debug("Discarding %d chars of unterminated data at end of stream", len(buffer))

    def _check_buffer(self, buffer: str) -> None:
        if len(buffer) > self.max_buffer_size:
            raise BufferExceededError(
                f"Stream line exceeded {self.max_buffer_size} chars without a terminator"
            )
