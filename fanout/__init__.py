"""VQM netlist fanout analysis package.

Counts the fanout of every net in a Quartus VQM gate-level netlist, using the
port directions declared in Verilog include files, and writes it as a CSV
report ordered by fanout.
"""

from .errors import (
    FanoutError,
    SourceUnreadableError,
    MalformedDeclarationError,
    UndefinedPinError,
    MalformedStatementError,
)
from .include_parser import (
    PortDirection,
    InterfaceTable,
    IncludeParser,
    parse_interface_text,
    parse_include_file,
    merge_interface_tables,
)
from .vqm_reader import VqmReader, split_statements
from .fanout_parser import (
    FanoutParser,
    FanoutCounter,
    FanoutStats,
    IgnorableStatement,
    AssignStatement,
    InstanceStatement,
    PortBinding,
    UnknownStatement,
    classify_statement,
    count_fanout,
    is_excluded_net,
)
from .fanout_report import sort_fanout, format_report, write_report, read_report
from .port_cache import PortTableCache
from .fanout_stats import FanoutSummary, summarize_fanout

__version__ = "1.0.0"
