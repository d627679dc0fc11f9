from __future__ import annotations

from typing import Dict, Any

# Preset schema (all required):
#   name: str
#   frequency: float     # MHz, tuned center
#   bandwidth: float     # MHz
#   modulation: str      # BPSK | QPSK | 8QAM | 16QAM
#   fec: str             # 1/2 | 2/3 | 3/4 | 5/6 | 7/8
# Optional:
#   notes: str

PRESETS: Dict[str, Dict[str, Any]] = {

    # =================================================
    # C-BAND DOWNLINK: default training carrier
    # =================================================
    "cband_default": {
        "name": "C-Band Default",
        "frequency": 4700.0,
        "bandwidth": 50.0,
        "modulation": "QPSK",
        "fec": "3/4",
    },

    # =================================================
    # TELEMETRY: narrow, robust
    # =================================================
    "telemetry_bpsk": {
        "name": "Telemetry (BPSK)",
        "frequency": 4702.5,
        "bandwidth": 5.0,
        "modulation": "BPSK",
        "fec": "1/2",
        "notes": "Survives low C/N; lock threshold 7 dB",
    },

    # =================================================
    # DATA: wider, higher order
    # =================================================
    "data_8qam": {
        "name": "Data (8QAM)",
        "frequency": 4750.0,
        "bandwidth": 36.0,
        "modulation": "8QAM",
        "fec": "5/6",
    },
    "video_16qam": {
        "name": "Video (16QAM)",
        "frequency": 4800.0,
        "bandwidth": 72.0,
        "modulation": "16QAM",
        "fec": "7/8",
        "notes": "Needs 16 dB C/N to hold lock",
    },
}


def get_preset(name: str) -> Dict[str, Any]:
    if name not in PRESETS:
        raise KeyError(f"unknown modem preset: {name}")
    return dict(PRESETS[name])
