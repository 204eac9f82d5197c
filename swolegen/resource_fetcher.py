"""
Fetch instruction and history documents from local paths or HTTP(S) URLs.
"""

import requests

from swolegen.cancellation import background
from swolegen.errors import FetchError

DEFAULT_MAX_FETCH_BYTES = 65536
CHUNK_SIZE = 8192
DEFAULT_TIMEOUT = 30


def _decode(data):
    # Undecodable bytes, including a sequence split by the cap, are dropped
    # so the text never encodes to more than the bytes read.
    return data.decode("utf-8", errors="ignore")


def _read_local(path, max_bytes):
    try:
        with open(path, "rb") as f:
            data = f.read(max_bytes)
    except OSError as exc:
        raise FetchError(f"read {path}: {exc}") from exc
    return _decode(data)


def _download(url, max_bytes, timeout, context):
    try:
        response = requests.get(url, stream=True, timeout=timeout)
    except requests.exceptions.RequestException as exc:
        raise FetchError(f"GET {url}: {exc}") from exc

    with response:
        if response.status_code >= 300:
            raise FetchError(f"GET {url}: {response.status_code}")

        chunks = []
        remaining = max_bytes
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                context.check()
                if not chunk:
                    continue
                chunks.append(chunk[:remaining])
                remaining -= len(chunks[-1])
                if remaining <= 0:
                    break
        except requests.exceptions.RequestException as exc:
            raise FetchError(f"GET {url}: {exc}") from exc

    return b"".join(chunks)


def _read_http(url, max_bytes, context):
    timeout = max(context.remaining(DEFAULT_TIMEOUT), 0.01)
    try:
        data = context.call(_download, url, max_bytes, timeout, context)
    except FetchError:
        # a transport timeout at the deadline is a cancellation
        context.check()
        raise
    return _decode(data)


def fetch_text(reference, max_bytes=DEFAULT_MAX_FETCH_BYTES, context=None):
    """
    Return the text behind ``reference``, capped at ``max_bytes``.

    An empty reference is a valid "no document" and yields ``""``. ``file://``
    URLs and anything that is not http(s) are read as local paths. Truncation
    at the cap is silent.

    Raises:
        FetchError: unreadable file, transport failure, or HTTP status >= 300
        CancelledError: the context was cancelled mid-read
    """
    context = context or background()
    reference = (reference or "").strip()
    if not reference:
        return ""

    context.check()
    if reference.startswith("file://"):
        return _read_local(reference[len("file://"):], max_bytes)
    if reference.startswith("http://") or reference.startswith("https://"):
        return _read_http(reference, max_bytes, context)
    return _read_local(reference, max_bytes)


def indent_for_block(text):
    """Indent every line by two spaces so it sits inside a YAML literal block."""
    if not text:
        return ""
    return "\n".join("  " + line for line in text.split("\n"))
