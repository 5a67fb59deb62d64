"""ffmpeg/ffprobe wrappers for probing and transcoding session recordings."""
import asyncio
import json
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sessionguard.config import settings
from sessionguard.constants import AUDIO_SAMPLE_RATE
from sessionguard.utils.exceptions import TranscoderError
from sessionguard.utils.logger import logger

_MEAN_VOLUME_RE = re.compile(r"mean_volume:\s*(-?\d+(?:\.\d+)?) dB")
_MAX_VOLUME_RE = re.compile(r"max_volume:\s*(-?\d+(?:\.\d+)?) dB")


@dataclass
class ProbeReport:
    """Stream facts extracted by ffprobe."""
    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    duration_sec: Optional[float] = None
    video_bitrate_kbps: Optional[float] = None
    audio_bitrate_kbps: Optional[float] = None


@dataclass
class LoudnessReport:
    """Mean and peak level parsed from ffmpeg volumedetect."""
    mean_dbfs: Optional[float] = None
    max_dbfs: Optional[float] = None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_frame_rate(value: Optional[str]) -> Optional[float]:
    """
    Parse an ffprobe rational frame rate such as ``30000/1001``.

    Returns:
        Frames per second, or None for missing, non-numeric or zero-denominator input
    """
    if not value:
        return None
    parts = str(value).split("/")
    if len(parts) == 1:
        fps = _to_float(parts[0])
        return fps if fps else None
    if len(parts) != 2:
        return None
    numerator = _to_float(parts[0])
    denominator = _to_float(parts[1])
    if numerator is None or not denominator:
        return None
    return numerator / denominator


def parse_probe_output(data: str) -> ProbeReport:
    """Build a ProbeReport from ``ffprobe -print_format json`` output."""
    parsed = json.loads(data or "{}")
    streams = parsed.get("streams") or []
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None) or {}
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None) or {}
    container = parsed.get("format") or {}

    video_bitrate = _to_float(video_stream.get("bit_rate"))
    audio_bitrate = _to_float(audio_stream.get("bit_rate"))

    return ProbeReport(
        width=video_stream.get("width"),
        height=video_stream.get("height"),
        fps=parse_frame_rate(video_stream.get("r_frame_rate")),
        duration_sec=_to_float(container.get("duration")),
        video_bitrate_kbps=video_bitrate / 1000 if video_bitrate is not None else None,
        audio_bitrate_kbps=audio_bitrate / 1000 if audio_bitrate is not None else None,
    )


def parse_volumedetect(data: str) -> LoudnessReport:
    """Pull mean/max dBFS out of ffmpeg volumedetect log text."""
    mean_match = _MEAN_VOLUME_RE.search(data or "")
    max_match = _MAX_VOLUME_RE.search(data or "")
    return LoudnessReport(
        mean_dbfs=float(mean_match.group(1)) if mean_match else None,
        max_dbfs=float(max_match.group(1)) if max_match else None,
    )


async def run_command(argv: List[str]) -> Tuple[str, str]:
    """
    Run a subprocess to completion.

    Returns:
        (stdout, stderr) decoded as text

    Raises:
        TranscoderError: If the binary is missing or exits non-zero
    """
    logger.debug(f"[TRANSCODER] Running: {' '.join(argv)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TranscoderError(argv, None, str(e)) from e

    stdout, stderr = await process.communicate()
    stdout_text = stdout.decode("utf-8", errors="replace") if stdout else ""
    stderr_text = stderr.decode("utf-8", errors="replace") if stderr else ""

    if process.returncode != 0:
        logger.error(f"[TRANSCODER] {argv[0]} exited with {process.returncode}")
        raise TranscoderError(argv, process.returncode, stderr_text)

    return stdout_text, stderr_text


async def probe(path: str) -> ProbeReport:
    """Probe resolution, frame rate, duration and bitrates of a media file."""
    stdout, _ = await run_command([
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        path,
    ])
    return parse_probe_output(stdout)


async def extract_audio(video_path: str, audio_path: str) -> None:
    """Write the audio track as 16 kHz mono signed 16-bit PCM WAV, overwriting."""
    await run_command([
        settings.ffmpeg_path,
        "-y",
        "-i", video_path,
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(AUDIO_SAMPLE_RATE),
        "-ac", "1",
        audio_path,
    ])


async def loudness(path: str) -> LoudnessReport:
    """Run volumedetect over the audio track and parse mean/peak dBFS."""
    stdout, stderr = await run_command([
        settings.ffmpeg_path,
        "-i", path,
        "-af", "volumedetect",
        "-f", "null",
        "-",
    ])
    # volumedetect reports on stderr
    return parse_volumedetect(stderr or stdout)
