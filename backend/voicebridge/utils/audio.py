"""
Audio helpers for the realtime pipeline.

Wire format: PCM16 mono, base64 over JSON. Input from the browser is
16kHz, output from the model is 24kHz; both are tagged ``audio/pcm;rate=<n>``.

``PlaybackScheduler`` describes the browser widget's playback contract;
the server relays audio and never schedules it.
"""

import base64
import binascii
import time
from typing import Callable, List

OUTPUT_SAMPLE_RATE = 24000
OUTPUT_MIME_TYPE = f"audio/pcm;rate={OUTPUT_SAMPLE_RATE}"
PCM16_BYTES_PER_SAMPLE = 2


def decode_base64(data: str) -> bytes:
    """Strict base64 decode; raises ValueError on malformed input."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 audio payload: {e}") from e


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def pcm16_duration(num_bytes: int, sample_rate: int = OUTPUT_SAMPLE_RATE) -> float:
    """Playback length in seconds of mono PCM16 audio."""
    return num_bytes / (PCM16_BYTES_PER_SAMPLE * sample_rate)


class PlaybackScheduler:
    """
    Playback contract the browser widget follows for model audio: gapless,
    non-overlapping scheduling of output chunks on a monotonic clock.

    Each chunk starts at max(now, next_start) and pushes next_start forward
    by its duration. ``interrupt()`` discards the pending schedule so the
    next chunk starts at-or-after "now" rather than after stale audio.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.next_start = 0.0
        self._ends: List[float] = []

    @property
    def pending(self) -> int:
        """Scheduled chunks that have not finished playing."""
        now = self._clock()
        return len([end for end in self._ends if end > now])

    def schedule(self, duration: float) -> float:
        """Return the start time for a chunk of ``duration`` seconds."""
        now = self._clock()
        self._ends = [end for end in self._ends if end > now]
        start = max(now, self.next_start)
        self.next_start = start + duration
        self._ends.append(self.next_start)
        return start

    def schedule_pcm(self, audio_b64: str, sample_rate: int = OUTPUT_SAMPLE_RATE) -> float:
        return self.schedule(pcm16_duration(len(decode_base64(audio_b64)), sample_rate))

    def interrupt(self) -> int:
        """Drop every queued chunk; returns how many were still pending."""
        dropped = self.pending
        self._ends = []
        self.next_start = self._clock()
        return dropped
