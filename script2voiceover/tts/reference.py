"""Voice sample download for cloning - fetch, guard and sniff the reference audio."""

import ipaddress
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Iterable

from script2voiceover.errors import (
    ReferenceEmpty,
    ReferenceForbidden,
    ReferenceTooLarge,
    ReferenceUnreachable,
)
from script2voiceover.models import ReferencePayload

logger = logging.getLogger(__name__)

MAX_VOICE_SAMPLE_SIZE = 10 * 1024 * 1024

# Timeout for HTTP requests (seconds)
REQUEST_TIMEOUT = 30


class SafeRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Runs every redirect target through the same URL guard as the original request."""

    def __init__(self, check_url):
        super().__init__()
        self._check_url = check_url

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        self._check_url(newurl)
        return super().redirect_request(req, fp, code, msg, headers, newurl)


def sniff_audio_format(data: bytes) -> str | None:
    """Guess the container from magic bytes: 'wav', 'mp3' or None."""
    if data[:4] == b"RIFF":
        return "wav"
    if data[:3] == b"ID3" or data[:2] == b"\xff\xfb":
        return "mp3"
    return None


class ReferenceAudioLoader:
    """Downloads a voice sample and keeps it in memory for one pipeline run."""

    def __init__(
        self,
        allowed_hosts: Iterable[str] = (),
        max_size: int = MAX_VOICE_SAMPLE_SIZE,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.allowed_hosts = tuple(h.lower() for h in allowed_hosts)
        self.max_size = max_size
        self.timeout = timeout

    def check_url(self, url: str) -> None:
        """Reject URLs that are not HTTPS or that point at internal resources.

        Raises:
            ReferenceForbidden: If the URL must not be fetched.
        """
        try:
            parsed = urllib.parse.urlparse(url)
        except ValueError as e:
            raise ReferenceForbidden("Invalid voice sample URL format") from e

        if parsed.scheme != "https":
            raise ReferenceForbidden("Voice sample URL must use HTTPS protocol")

        hostname = (parsed.hostname or "").lower()
        if not hostname:
            raise ReferenceForbidden("Invalid voice sample URL format")

        if hostname == "localhost" or _is_internal_address(hostname):
            raise ReferenceForbidden("Voice sample URL cannot point to internal resources")

        if self.allowed_hosts and not any(
            hostname == domain or hostname.endswith(f".{domain}")
            for domain in self.allowed_hosts
        ):
            raise ReferenceForbidden("Voice sample URL is not from an allowed host")

    def load(self, url: str) -> ReferencePayload:
        """Fetch the voice sample at ``url``.

        Raises:
            ReferenceForbidden: The URL fails the safety checks.
            ReferenceUnreachable: The URL could not be fetched.
            ReferenceEmpty: The response body is empty.
            ReferenceTooLarge: The sample is larger than ``max_size``.
        """
        self.check_url(url)
        logger.debug("Downloading voice sample from: %s", url)

        req = urllib.request.Request(url, headers={"User-Agent": "script2voiceover/0.1"})
        opener = urllib.request.build_opener(SafeRedirectHandler(self.check_url))
        try:
            with opener.open(req, timeout=self.timeout) as resp:
                content_type = resp.headers.get("Content-Type", "")
                # One byte past the limit is enough to know it is too large
                data = resp.read(self.max_size + 1)
        except urllib.error.HTTPError as e:
            raise ReferenceUnreachable(
                f"Failed to download voice sample: HTTP {e.code} {e.reason}"
            ) from e
        except (urllib.error.URLError, OSError) as e:
            raise ReferenceUnreachable(f"Voice sample download failed: {e}") from e

        if content_type and "audio" not in content_type:
            logger.warning("Unexpected content-type: %s. Expected audio/* type.", content_type)

        if not data:
            raise ReferenceEmpty("Voice sample is empty (0 bytes)")
        if len(data) > self.max_size:
            raise ReferenceTooLarge(
                f"Voice sample too large: more than {self.max_size // (1024 * 1024)}MB"
            )

        fmt = sniff_audio_format(data)
        if fmt:
            logger.info("Voice sample format detected: %s", fmt.upper())
        else:
            logger.warning("Unknown audio format. First 4 bytes: %s", data[:4].hex(" "))

        logger.info("Voice sample downloaded: %d bytes (%.2f KB)", len(data), len(data) / 1024)
        return ReferencePayload(data=data)


def _is_internal_address(hostname: str) -> bool:
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local
