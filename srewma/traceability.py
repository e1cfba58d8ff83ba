"""
Run Traceability
================
Fingerprints for monitoring runs.

The engine has no randomness, so identical reference sample, stream and
parameters must give a bit-identical Q_t sequence. A RunRecord captures:
1. The exact reference sample and stream (SHA-256 of the float64 bytes)
2. The exact configuration (hash + JSON snapshot)
3. The produced Q_t sequence (hash of the float64 bytes)
4. When, where and with which processing version the run was made
"""

import hashlib
import json
import platform
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .chart import MonitoringRun


# Increment when the statistic's computation changes
PROCESSING_VERSION = "1.0.0"


def compute_array_hash(values: Any) -> str:
    """
    SHA-256 of a numeric array.

    Shape and dtype are hashed with the bytes, so a (6,) and a (3, 2)
    array holding the same numbers differ. Values are hashed as
    C-contiguous little-endian float64.

    Returns:
        Hex digest prefixed with 'sha256:'
    """
    arr = np.ascontiguousarray(np.asarray(values, dtype='<f8'))
    sha256_hash = hashlib.sha256()
    sha256_hash.update(str(arr.shape).encode('utf-8'))
    sha256_hash.update(arr.tobytes())
    return f"sha256:{sha256_hash.hexdigest()}"


def compute_config_hash(config: Dict[str, Any]) -> str:
    """SHA-256 of a configuration dictionary (keys sorted)."""
    config_str = json.dumps(config, sort_keys=True, default=str)
    sha256_hash = hashlib.sha256(config_str.encode('utf-8'))
    return f"sha256:{sha256_hash.hexdigest()}"


def create_config_snapshot(config: Dict[str, Any]) -> str:
    return json.dumps(config, sort_keys=True, indent=2, default=str)


@dataclass
class RunRecord:
    """Complete traceability record for a monitoring run."""
    reference_hash: str
    stream_hash: str
    config_hash: str
    config_snapshot: str
    q_hash: str
    n_steps: int
    first_signal_index: Optional[int]
    completed: bool

    hostname: str = field(default_factory=platform.node)
    python_version: str = field(default_factory=platform.python_version)
    numpy_version: str = field(default_factory=lambda: np.__version__)
    analysis_timestamp_utc: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    processing_version: str = PROCESSING_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def create_run_record(
    reference_sample: Any,
    stream: Any,
    result: MonitoringRun,
) -> RunRecord:
    """
    Create a traceability record for a finished run.

    Args:
        reference_sample: Reference sample used to initialise the chart
        stream: Monitoring stream passed to ``run``
        result: Output of ``run``
    """
    config = result.final_state.config.to_dict()
    return RunRecord(
        reference_hash=compute_array_hash(reference_sample),
        stream_hash=compute_array_hash(stream),
        config_hash=compute_config_hash(config),
        config_snapshot=create_config_snapshot(config),
        q_hash=compute_array_hash(result.q_values),
        n_steps=len(result.steps),
        first_signal_index=result.first_signal_index,
        completed=result.completed,
    )


def verify_reproducible(record_a: RunRecord, record_b: RunRecord) -> Tuple[bool, str]:
    """
    Check that two runs on the same inputs produced identical output.

    Returns:
        Tuple of (is_reproducible, message)
    """
    if (record_a.reference_hash, record_a.stream_hash, record_a.config_hash) != \
            (record_b.reference_hash, record_b.stream_hash, record_b.config_hash):
        return False, "Runs are not comparable: inputs or configuration differ"

    if record_a.q_hash == record_b.q_hash:
        return True, f"Reproducibility verified: {record_a.n_steps} identical Q values"

    return False, (
        f"Reproducibility FAILED: Q sequence hash mismatch\n"
        f"  First:  {record_a.q_hash}\n"
        f"  Second: {record_b.q_hash}"
    )
