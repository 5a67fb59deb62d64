"""Objective media-quality metrics for a session recording."""
from typing import List

from sessionguard.constants import NOISE_FLOOR_DBFS, QUALITY_FLAG_WEIGHT
from sessionguard.schemas.analysis import MetricFlag, QualityMetrics, Resolution
from sessionguard.services import transcoder
from sessionguard.services.transcoder import LoudnessReport, ProbeReport


def _below(value, threshold) -> bool:
    # Missing measurements count as failing a minimum
    return value < threshold if value is not None else True


def score_from_flags(flags: List[MetricFlag], weight: int) -> int:
    """100 minus ``weight`` per fired flag, clamped at 0."""
    fired = sum(1 for flag in flags if flag.fired)
    return max(0, 100 - fired * weight)


def score_quality(probe: ProbeReport, volume: LoudnessReport) -> QualityMetrics:
    """
    Apply the fixed quality thresholds to probe and loudness measurements.

    Args:
        probe: ffprobe stream facts
        volume: volumedetect mean/max dBFS

    Returns:
        QualityMetrics with six flags and a score of 100 - 12 per fired flag
    """
    mean = volume.mean_dbfs
    peak = volume.max_dbfs
    snr_estimate = mean - NOISE_FLOOR_DBFS if mean is not None else None

    flags = [
        MetricFlag(metric="resolution_width", value=probe.width, threshold=1280,
                   fired=_below(probe.width, 1280)),
        MetricFlag(metric="resolution_height", value=probe.height, threshold=720,
                   fired=_below(probe.height, 720)),
        MetricFlag(metric="fps", value=probe.fps, threshold=24,
                   fired=_below(probe.fps, 24)),
        MetricFlag(metric="audio_mean_volume_db", value=mean, threshold=-30,
                   fired=_below(mean, -30)),
        # Clipping check: a missing peak is not evidence of clipping
        MetricFlag(metric="audio_max_volume_db", value=peak, threshold=-1,
                   fired=peak > -1 if peak is not None else False),
        MetricFlag(metric="audio_snr_estimate_db", value=snr_estimate, threshold=20,
                   fired=_below(snr_estimate, 20)),
    ]

    resolution = None
    if probe.width and probe.height:
        resolution = Resolution(width=probe.width, height=probe.height)

    return QualityMetrics(
        resolution=resolution,
        fps=probe.fps,
        durationSec=probe.duration_sec,
        videoBitrateKbps=probe.video_bitrate_kbps,
        audioBitrateKbps=probe.audio_bitrate_kbps,
        audioMeanVolumeDb=mean,
        audioMaxVolumeDb=peak,
        audioSnrEstimateDb=snr_estimate,
        flags=flags,
        score=score_from_flags(flags, QUALITY_FLAG_WEIGHT),
    )


async def compute_quality_metrics(video_path: str) -> QualityMetrics:
    """Probe and loudness-scan a recording, then score it."""
    probe = await transcoder.probe(video_path)
    volume = await transcoder.loudness(video_path)
    return score_quality(probe, volume)
