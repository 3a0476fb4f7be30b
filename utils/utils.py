"""
Utilities for the coordinator engine: logging setup, batch timing and
round reports.
"""

import json
import logging
import platform
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import psutil

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
RULE = "=" * 72


@dataclass
class OperationSample:
    """One timed call: how long it took, how many items it handled, RSS afterwards"""
    operation: str
    started_at: float
    duration_seconds: float
    items: int = 0
    rss_mb: float = 0.0
    cpu_percent: float = 0.0
    failed: bool = False


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Send records to a timestamped file under logs/ and to the console"""
    if log_file is None:
        log_file = Path("logs") / f"coordinator_{datetime.now():%Y%m%d_%H%M%S}.log"
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging to {log_file}")
    return logger


class PerformanceMonitor:
    """Collects an OperationSample for every monitored coordinator step"""

    def __init__(self):
        self.samples: List[OperationSample] = []
        self.process = psutil.Process()

    def start_operation(self, operation_name: str) -> 'OperationContext':
        return OperationContext(self, operation_name)

    def _rss_mb(self) -> float:
        try:
            return self.process.memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            logging.debug(f"Could not read process memory: {e}")
            return 0.0

    def _cpu_percent(self) -> float:
        try:
            return self.process.cpu_percent()
        except psutil.Error as e:
            logging.debug(f"Could not read process CPU usage: {e}")
            return 0.0

    def get_summary(self) -> Dict[str, Any]:
        by_operation: Dict[str, List[OperationSample]] = {}
        for sample in self.samples:
            by_operation.setdefault(sample.operation, []).append(sample)

        operations = {}
        for name, samples in by_operation.items():
            durations = np.array([s.duration_seconds for s in samples])
            total = float(durations.sum())
            items = sum(s.items for s in samples)
            operations[name] = {
                'count': len(samples),
                'failures': sum(1 for s in samples if s.failed),
                'items': items,
                'total_duration': total,
                'avg_duration': float(durations.mean()),
                'max_duration': float(durations.max()),
                'items_per_sec': items / total if total > 0 else 0.0,
                'peak_rss_mb': max(s.rss_mb for s in samples),
            }

        return {
            'total_operations': len(self.samples),
            'total_duration': sum(op['total_duration'] for op in operations.values()),
            'operations': operations,
        }


class OperationContext:
    """Times a block; set ``items`` inside it to record batch throughput"""

    def __init__(self, monitor: PerformanceMonitor, operation_name: str):
        self.monitor = monitor
        self.operation_name = operation_name
        self.items = 0
        self._start = 0.0

    def __enter__(self):
        self.monitor._cpu_percent()
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.monitor.samples.append(OperationSample(
            operation=self.operation_name,
            started_at=time.time(),
            duration_seconds=time.perf_counter() - self._start,
            items=self.items,
            rss_mb=self.monitor._rss_mb(),
            cpu_percent=self.monitor._cpu_percent(),
            failed=exc_type is not None,
        ))


def get_system_info() -> Dict[str, Any]:
    info = {
        'platform': platform.platform(),
        'python_version': platform.python_version(),
        'machine': platform.machine(),
    }
    try:
        info['cpu_count'] = psutil.cpu_count(logical=True)
        info['total_memory_gb'] = round(psutil.virtual_memory().total / 1024 ** 3, 2)
    except psutil.Error as e:
        logging.debug(f"System info unavailable: {e}")
    return info


def _to_serializable(obj):
    if hasattr(obj, '__dataclass_fields__'):
        return _to_serializable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_to_serializable(item) for item in obj]
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        # Field elements exceed the range JSON readers handle exactly
        return str(obj) if abs(obj) >= 1 << 53 else obj
    if isinstance(obj, (np.integer, np.floating)):
        return obj.item()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (Path, datetime)):
        return str(obj)
    return obj


def save_results(results: Dict[str, Any], filepath: Path):
    """Write a round report as JSON plus a ``<stem>_summary.txt`` next to it"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    document = {
        'metadata': {
            'generated_at': datetime.now().isoformat(),
            'system_info': get_system_info(),
        },
        'data': _to_serializable(results),
    }
    with open(filepath, 'w') as f:
        json.dump(document, f, indent=2, default=str)

    summary_path = filepath.with_name(f"{filepath.stem}_summary.txt")
    summary_path.write_text(create_results_summary(results))

    logging.info(f"Round report written to {filepath} (summary: {summary_path.name})")


def create_results_summary(results: Dict[str, Any]) -> str:
    lines = [RULE, "ROUND REPORT", RULE]

    for key, value in results.get('round', {}).items():
        lines.append(f"{key:>16}: {value}")

    batches = results.get('batches', [])
    if batches:
        lines += ["", "Batches:"]
        for batch in batches:
            lines.append(f"  {batch['circuit']:<20} [{batch['batch_start']}, {batch['batch_end']})"
                         f"  accepted={batch['accepted']}")

    tally = results.get('tally', [])
    if tally:
        lines += ["", "Tally:"]
        for entry in tally:
            lines.append(f"  option {entry['option']}: {entry['votes']} votes"
                         f" / {entry['voice_credits']} voice credits")

    lines.append(RULE)
    return "\n".join(lines) + "\n"


def create_performance_report(monitor: PerformanceMonitor) -> str:
    summary = monitor.get_summary()
    lines = [
        RULE,
        "COORDINATOR TIMINGS",
        RULE,
        f"Operations: {summary['total_operations']}"
        f"  total time: {format_duration(summary['total_duration'])}",
    ]

    if not summary['operations']:
        lines.append("No operations recorded.")
    for name, op in summary['operations'].items():
        lines.append("")
        lines.append(f"{name.upper()}  x{op['count']}"
                     + (f"  ({op['failures']} failed)" if op['failures'] else ""))
        lines.append(f"  avg {format_duration(op['avg_duration'])}"
                     f"  max {format_duration(op['max_duration'])}")
        if op['items']:
            lines.append(f"  {op['items']} items, {op['items_per_sec']:.1f} items/sec")
        if op['peak_rss_mb']:
            lines.append(f"  peak RSS {op['peak_rss_mb']:.1f} MB")

    lines.append(RULE)
    return "\n".join(lines) + "\n"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {secs:.1f}s"
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours}h {minutes}m {secs:.1f}s"
