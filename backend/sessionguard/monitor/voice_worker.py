"""Voice-liveness worker thread backed by a transformers audio classifier."""
import queue
import threading
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from sessionguard.monitor.logger import logger

SAMPLE_RATE = 16000
WINDOW_SAMPLES = 2 * SAMPLE_RATE

_STOP = object()


def resolve_real_speech_score(output: List[Dict[str, Any]]) -> float:
    """
    Reduce classifier labels to a probability that the speech is real.

    A ``real``/``bonafide`` label is used as-is, a ``fake``/``spoof`` label
    is inverted, and anything else is undecided (0.5).
    """
    for item in output:
        label = str(item.get("label", "")).lower()
        if "real" in label or "bonafide" in label:
            return float(item.get("score", 0.0))
    for item in output:
        label = str(item.get("label", "")).lower()
        if "fake" in label or "spoof" in label:
            return 1.0 - float(item.get("score", 0.0))
    return 0.5


def load_audio_classifier(model_name: str):
    """Build an audio-classification pipeline, on GPU when one is usable."""
    from transformers import pipeline

    try:
        classifier = pipeline("audio-classification", model=model_name, device=0)
        logger.info(f"[VOICE] Loaded {model_name} on GPU")
        return classifier
    except Exception as e:
        logger.warning(f"[VOICE] GPU load failed, falling back to CPU: {e}")

    classifier = pipeline("audio-classification", model=model_name, device=-1)
    logger.info(f"[VOICE] Loaded {model_name} on CPU")
    return classifier


class RollingWindow:
    """Accumulates PCM samples and yields fixed, non-overlapping windows."""

    def __init__(self, size: int = WINDOW_SAMPLES):
        self.size = size
        self._buffer = np.zeros(0, dtype=np.float32)

    def __len__(self) -> int:
        return len(self._buffer)

    def push(self, samples) -> List[np.ndarray]:
        self._buffer = np.concatenate([self._buffer, np.asarray(samples, dtype=np.float32).reshape(-1)])
        windows = []
        while len(self._buffer) >= self.size:
            windows.append(self._buffer[:self.size].copy())
            self._buffer = self._buffer[self.size:]
        return windows


class VoiceLivenessWorker:
    """
    Long-lived thread that scores 2 s audio windows for real speech.

    Accepts ``{"type": "CHECK", "audioData": samples}`` messages and posts
    ``{"type": "RESULT", "score", "isReal"}`` through ``on_result``.
    """

    def __init__(
        self,
        on_result: Callable[[Dict[str, Any]], None],
        model_name: str,
        classifier_factory: Optional[Callable[[], Any]] = None,
        window_samples: int = WINDOW_SAMPLES,
    ):
        self._on_result = on_result
        self._classifier_factory = classifier_factory or (lambda: load_audio_classifier(model_name))
        self._window = RollingWindow(window_samples)
        self._inbox: "queue.Queue" = queue.Queue()
        self._terminated = threading.Event()
        self._thread = threading.Thread(target=self._run, name="voice-liveness", daemon=True)
        self._thread.start()

    def post(self, samples) -> None:
        if self._terminated.is_set():
            return
        self._inbox.put({"type": "CHECK", "audioData": samples})

    def terminate(self) -> None:
        """Stop immediately; buffered audio and in-flight results are discarded."""
        self._terminated.set()
        self._inbox.put(_STOP)

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _classify(self, classifier, window: np.ndarray) -> Dict[str, Any]:
        output = classifier({"raw": window, "sampling_rate": SAMPLE_RATE})
        score = resolve_real_speech_score(output)
        return {"type": "RESULT", "score": score, "isReal": score > 0.5}

    def _run(self) -> None:
        try:
            classifier = self._classifier_factory()
        except Exception as e:
            logger.error(f"[VOICE] Failed to load voice model: {e}", exc_info=True)
            classifier = None

        while True:
            message = self._inbox.get()
            if message is _STOP or self._terminated.is_set():
                break
            if classifier is None or message.get("type") != "CHECK":
                continue

            for window in self._window.push(message["audioData"]):
                try:
                    result = self._classify(classifier, window)
                except Exception as e:
                    logger.error(f"[VOICE] Voice worker error: {e}", exc_info=True)
                    continue
                if self._terminated.is_set():
                    return
                self._on_result(result)
