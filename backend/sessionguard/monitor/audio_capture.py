"""Microphone capture feeding PCM blocks to the voice worker."""
from typing import Callable, Optional

import numpy as np

from sessionguard.monitor.logger import logger
from sessionguard.monitor.voice_worker import SAMPLE_RATE

BLOCK_SAMPLES = 1600  # 100 ms at 16 kHz


class AudioCapture:
    """16 kHz mono float32 input stream; each block goes to ``on_samples``."""

    def __init__(
        self,
        on_samples: Callable[[np.ndarray], None],
        device: Optional[int] = None,
        stream_factory: Optional[Callable[..., object]] = None,
    ):
        self._on_samples = on_samples
        self._device = device
        self._stream_factory = stream_factory
        self._stream = None

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.warning(f"[MONITOR] Audio callback status: {status}")
        self._on_samples(indata[:, 0].copy())

    def start(self) -> None:
        if self._stream is not None:
            return
        factory = self._stream_factory
        if factory is None:
            import sounddevice as sd
            factory = sd.InputStream

        self._stream = factory(
            samplerate=SAMPLE_RATE,
            channels=1,
            dtype="float32",
            blocksize=BLOCK_SAMPLES,
            device=self._device,
            callback=self._callback,
        )
        self._stream.start()
        logger.info(f"[MONITOR] Audio capture started: {SAMPLE_RATE}Hz mono")

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
        logger.info("[MONITOR] Audio capture closed")
