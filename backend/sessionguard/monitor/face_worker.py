"""Face-liveness worker thread backed by the MediaPipe face landmarker."""
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from sessionguard.monitor.logger import logger

FACE_PRESENT_SCORE = 0.9

_STOP = object()


@dataclass
class FaceDetection:
    detected: bool
    blendshapes: Optional[Dict[str, float]] = None


def build_result(detection: FaceDetection, timestamp: float) -> Dict[str, Any]:
    """Shape a detection into the RESULT message posted back to the supervisor."""
    result: Dict[str, Any] = {
        "type": "RESULT",
        "timestamp": timestamp,
        "detected": detection.detected,
        "score": FACE_PRESENT_SCORE if detection.detected else 0.0,
    }
    if detection.detected and detection.blendshapes:
        result["blinkLeft"] = detection.blendshapes.get("eyeBlinkLeft", 0.0)
        result["blinkRight"] = detection.blendshapes.get("eyeBlinkRight", 0.0)
    return result


class MediaPipeFaceDetector:
    """Single-face landmarker with blendshapes, GPU delegate preferred."""

    def __init__(self, model_path: str):
        import mediapipe as mp
        from mediapipe.tasks import python as mp_tasks
        from mediapipe.tasks.python import vision

        self._mp = mp
        self._landmarker = None
        last_error: Optional[Exception] = None
        for delegate in (mp_tasks.BaseOptions.Delegate.GPU, mp_tasks.BaseOptions.Delegate.CPU):
            options = vision.FaceLandmarkerOptions(
                base_options=mp_tasks.BaseOptions(model_asset_path=model_path, delegate=delegate),
                output_face_blendshapes=True,
                running_mode=vision.RunningMode.IMAGE,
                num_faces=1,
            )
            try:
                self._landmarker = vision.FaceLandmarker.create_from_options(options)
                logger.info(f"[FACE] Landmarker loaded ({delegate.name})")
                break
            except Exception as e:
                logger.warning(f"[FACE] Could not load landmarker on {delegate.name}: {e}")
                last_error = e

        if self._landmarker is None:
            raise RuntimeError(f"Face landmarker unavailable: {last_error}")

    def detect(self, frame) -> FaceDetection:
        """Run detection over an RGB uint8 frame."""
        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=frame)
        result = self._landmarker.detect(image)
        if not result.face_landmarks:
            return FaceDetection(detected=False)

        blendshapes = None
        if result.face_blendshapes:
            blendshapes = {c.category_name: c.score for c in result.face_blendshapes[0]}
        return FaceDetection(detected=True, blendshapes=blendshapes)

    def close(self) -> None:
        self._landmarker.close()


class FaceLivenessWorker:
    """
    Long-lived thread that scores frames for face presence.

    Frames posted here belong to the worker; it drops its reference once
    inference is done. Results are delivered through ``on_result`` from the
    worker thread. Detection errors are logged and the frame is skipped.
    """

    def __init__(
        self,
        on_result: Callable[[Dict[str, Any]], None],
        model_path: str,
        detector_factory: Optional[Callable[[], Any]] = None,
    ):
        self._on_result = on_result
        self._detector_factory = detector_factory or (lambda: MediaPipeFaceDetector(model_path))
        self._inbox: "queue.Queue" = queue.Queue()
        self._terminated = threading.Event()
        self._thread = threading.Thread(target=self._run, name="face-liveness", daemon=True)
        self._thread.start()

    def post(self, frame, timestamp: float) -> None:
        if self._terminated.is_set():
            return
        self._inbox.put((frame, timestamp))

    def terminate(self) -> None:
        """Stop immediately; queued frames and in-flight results are discarded."""
        self._terminated.set()
        self._inbox.put(_STOP)

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        try:
            detector = self._detector_factory()
        except Exception as e:
            logger.error(f"[FACE] Failed to load face model: {e}", exc_info=True)
            detector = None

        try:
            while True:
                message = self._inbox.get()
                if message is _STOP or self._terminated.is_set():
                    break
                if detector is None:
                    continue

                frame, timestamp = message
                message = None
                try:
                    detection = detector.detect(frame)
                except Exception as e:
                    logger.error(f"[FACE] Face worker error: {e}", exc_info=True)
                    continue
                finally:
                    frame = None

                if not self._terminated.is_set():
                    self._on_result(build_result(detection, timestamp))
        finally:
            if detector is not None and hasattr(detector, "close"):
                detector.close()
