"""Fanout distribution statistics.

Summarizes a fanout table the way a timing engineer skims it: how many nets,
how many loads in total, where the tail starts, and how the nets spread over
power-of-two fanout bins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from .fanout_report import sort_fanout


@dataclass
class FanoutSummary:
    """Summary of a fanout table.

    Attributes:
        net_count: Number of nets with fanout >= 1
        total_loads: Sum of all fanouts
        max_fanout: Largest fanout (0 for an empty table)
        mean_fanout: Mean fanout
        median_fanout: Median fanout
        p90_fanout: 90th percentile
        p99_fanout: 99th percentile
        histogram: (low, high, net count) per bin, bins [1,2), [2,4), [4,8), ...
        top_nets: Highest-fanout (net, fanout) pairs
    """
    net_count: int = 0
    total_loads: int = 0
    max_fanout: int = 0
    mean_fanout: float = 0.0
    median_fanout: float = 0.0
    p90_fanout: float = 0.0
    p99_fanout: float = 0.0
    histogram: List[Tuple[int, int, int]] = field(default_factory=list)
    top_nets: List[Tuple[str, int]] = field(default_factory=list)

    def format_lines(self) -> List[str]:
        """Human readable lines for logging."""
        lines = [
            f"Nets: {self.net_count}, total loads: {self.total_loads}, max fanout: {self.max_fanout}",
            f"Fanout mean {self.mean_fanout:.2f}, median {self.median_fanout:.1f}, "
            f"p90 {self.p90_fanout:.1f}, p99 {self.p99_fanout:.1f}",
        ]
        if self.histogram:
            lines.append("Fanout histogram:")
            for low, high, count in self.histogram:
                lines.append(f"  [{low:>7}, {high:>7}) {count}")
        if self.top_nets:
            lines.append("Highest fanout nets:")
            for net, count in self.top_nets:
                lines.append(f"  {count:>7}  {net}")
        return lines


def power_of_two_histogram(counts: np.ndarray) -> List[Tuple[int, int, int]]:
    """Count values into [1,2), [2,4), [4,8), ... up to the bin holding the maximum."""
    if counts.size == 0:
        return []
    max_exp = int(np.floor(np.log2(counts.max()))) + 1
    edges = 2 ** np.arange(max_exp + 1)
    hist, _ = np.histogram(counts, bins=edges)
    return [(int(edges[i]), int(edges[i + 1]), int(hist[i])) for i in range(len(hist))]


def summarize_fanout(fanout: Dict[str, int], top_n: int = 10) -> FanoutSummary:
    """Compute a FanoutSummary for a {net: fanout} table."""
    summary = FanoutSummary()
    if not fanout:
        return summary

    counts = np.fromiter(fanout.values(), dtype=np.int64, count=len(fanout))
    summary.net_count = int(counts.size)
    summary.total_loads = int(counts.sum())
    summary.max_fanout = int(counts.max())
    summary.mean_fanout = float(counts.mean())
    summary.median_fanout = float(np.median(counts))
    summary.p90_fanout = float(np.percentile(counts, 90))
    summary.p99_fanout = float(np.percentile(counts, 99))
    summary.histogram = power_of_two_histogram(counts)

    summary.top_nets = sort_fanout(fanout)[:top_n]
    return summary
