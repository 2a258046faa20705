"""
Tempo estimation from the RMS energy series.

Onsets are strict local peaks of the RMS envelope that rise above
``mean + 0.3 * std`` and are at least 0.2 s apart. The median inter-onset
interval gives the beat period; the result is octave-corrected into the
80-180 BPM range before being clamped to [60, 200].
"""

import math
from typing import Sequence, Union

import numpy as np

from scenesync.core.frames import HOP_SIZE

DEFAULT_TEMPO = 120
MIN_TEMPO = 60
MAX_TEMPO = 200

# Octave correction target range
OCTAVE_LOW = 80.0
OCTAVE_HIGH = 180.0

ONSET_THRESHOLD_STD = 0.3
MIN_ONSET_SPACING_SEC = 0.2


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def detect_onsets(
    rms: Union[np.ndarray, Sequence[float]],
    threshold: float,
    min_spacing: int,
) -> list[int]:
    """
    Find onset frames in an RMS series.

    Args:
        rms: Per-frame RMS values.
        threshold: Minimum value for a frame to count as an onset.
        min_spacing: Minimum distance in frames between consecutive onsets.
                     The first ``min_spacing`` frames are skipped.

    Returns:
        Frame indices of detected onsets, ascending.
    """
    values = np.asarray(rms, dtype=np.float64)
    onsets: list[int] = []
    for i in range(max(min_spacing, 1), len(values) - 1):
        v = values[i]
        if v <= threshold or v <= values[i - 1] or v <= values[i + 1]:
            continue
        if onsets and i - onsets[-1] < min_spacing:
            continue
        onsets.append(i)
    return onsets


def estimate_tempo(
    rms: Union[np.ndarray, Sequence[float]],
    sample_rate: int,
    hop_size: int = HOP_SIZE,
) -> int:
    """
    Estimate tempo in BPM from an RMS energy series.

    Args:
        rms: Per-frame RMS values at ``hop_size``.
        sample_rate: Sample rate of the analyzed signal.
        hop_size: Frame hop in samples.

    Returns:
        Integer BPM in [60, 200]; 120 when fewer than two onsets are found.
    """
    values = np.asarray(rms, dtype=np.float64)
    if len(values) == 0:
        return DEFAULT_TEMPO

    frame_rate = sample_rate / hop_size
    threshold = float(np.mean(values) + ONSET_THRESHOLD_STD * np.std(values))
    min_spacing = int(math.floor(MIN_ONSET_SPACING_SEC * frame_rate))

    onsets = detect_onsets(values, threshold, min_spacing)
    if len(onsets) < 2:
        return DEFAULT_TEMPO

    intervals = np.sort(np.diff(onsets))
    # Upper median for even counts
    median_interval = float(intervals[len(intervals) // 2])

    tempo = 60.0 * frame_rate / median_interval
    while tempo > OCTAVE_HIGH:
        tempo /= 2.0
    while tempo < OCTAVE_LOW:
        tempo *= 2.0

    return max(MIN_TEMPO, min(MAX_TEMPO, round_half_up(tempo)))


def beat_count(tempo: float, duration: float) -> int:
    """Expected number of beats in ``duration`` seconds at ``tempo`` BPM."""
    return round_half_up(tempo / 60.0 * duration)
