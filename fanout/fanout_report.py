"""Fanout report formatting.

The report is a headerless CSV, one '<net>,<fanout>' line per counted net,
highest fanout first. Nets with equal fanout are listed in ascending
code-point order of their names, so the output is identical across runs and
platforms. The file is UTF-8; bytes of a net name that were not valid UTF-8
in the netlist are written back unchanged.
"""

import logging
from pathlib import Path
from typing import Dict, List, Tuple, Union

from .vqm_reader import SOURCE_ENCODING, SOURCE_ERRORS

logger = logging.getLogger(__name__)


def sort_fanout(fanout: Dict[str, int]) -> List[Tuple[str, int]]:
    """(net, fanout) pairs by fanout descending, then net name ascending."""
    return sorted(fanout.items(), key=lambda item: (-item[1], item[0]))


def format_report(fanout: Dict[str, int]) -> str:
    """Render the fanout table as report text."""
    return ''.join(f"{net},{count}\n" for net, count in sort_fanout(fanout))


def write_report(csv_path: Union[str, Path], fanout: Dict[str, int]) -> Path:
    """
    Write the fanout report to csv_path.

    Args:
        csv_path: Output file, overwritten if it exists
        fanout: {net: fanout} table, every value >= 1

    Returns:
        Path of the written file
    """
    csv_path = Path(csv_path)
    with open(csv_path, 'w', encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS, newline='\n') as f:
        f.write(format_report(fanout))
    logger.debug(f"Wrote {len(fanout)} nets to {csv_path}")
    return csv_path


def read_report(csv_path: Union[str, Path]) -> List[Tuple[str, int]]:
    """
    Read a report back as (net, fanout) pairs in file order.

    Net names may themselves contain commas (escaped identifiers), so each
    line is split on its last comma.
    """
    pairs = []
    with open(csv_path, 'r', encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS) as f:
        for line in f:
            line = line.rstrip('\n')
            if not line:
                continue
            net, count = line.rsplit(',', 1)
            pairs.append((net, int(count)))
    return pairs
