#!/usr/bin/env python3
"""
Fanout Parser - Counts the fanout of every net in a VQM gate-level netlist.

The netlist produced by the Quartus mapper is a flat Verilog module made of
declarations, continuous assignments and cell instantiations with named port
connections. Pin directions are not part of the netlist, so they are looked up
in the port table built from the vendor include files.

Counting rules:
- every input-pin connection of an instance adds one load to the connected net
  (each bit of a {a, b, ...} vector separately)
- 'assign target = [~]source' is a single input, single output gate: one load
  on source, nothing on target
- output pins never add loads
- constant drivers (vcc, gnd) and *_unconnected_wire_<n> nets are never counted
- an instance pin missing from the port table aborts the run, and so does an
  instantiation whose port list cannot be parsed

Usage Examples:
    # Library use
    parser = FanoutParser('fp_pow.vqm', ['altera_primitives.v', 'cyclonev_atoms.v'])
    fanout = parser.parse()                 # {'net_a': 1000, ...}

    # Statement level
    counter = FanoutCounter(interface_table)
    counter.add_text("AND2 u1 ( .a(x), .b(x), .q(y) )")
    counter.fanout                          # {'x': 2}

    # Command line
    python -m fanout.fanout_parser fp_pow.vqm fp_pow_fo.csv sim/altera_primitives.v sim/cyclonev_atoms.v
"""

import logging
import re
import sys
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

from tqdm import tqdm

from .errors import FanoutError, MalformedStatementError, UndefinedPinError
from .include_parser import IncludeParser, InterfaceTable, PortDirection
from .port_cache import PortTableCache
from .vqm_reader import VqmReader

# Statements starting with one of these words carry no fanout information
DECLARATION_KEYWORDS = frozenset({
    'module', 'macromodule', 'input', 'output', 'inout', 'wire', 'tri', 'reg',
    'supply0', 'supply1', 'defparam', 'parameter', 'localparam',
})

CONSTANT_DRIVERS = ('vcc', 'gnd')

# Level and file handler of a FanoutParser run apply to all package modules
PACKAGE_LOGGER = 'fanout'

UNCONNECTED_WIRE_RE = re.compile(r'^\\?[a-z]+_unconnected_wire_\d+$', re.IGNORECASE)
CONSTANT_DRIVER_RE = re.compile(r'^\\?(?:' + '|'.join(CONSTANT_DRIVERS) + r')$')

LEADING_WORD_RE = re.compile(r'^([A-Za-z_][\w$]*)')
ASSIGN_RE = re.compile(r'^assign\s+(\S+)\s*=\s*([~!])?\s*(\S+)$')

# Escaped identifiers run up to whitespace; plain words stop at punctuation
TOKEN_RE = re.compile(r'\\\S+|[^\s(){},.\\]+|[(){},.]')
PUNCTUATION = frozenset('(){},.')
NEGATION_PREFIX_RE = re.compile(r'^[~!]\s*')


def is_excluded_net(net: str) -> bool:
    """True for constant drivers and malformed unconnected-wire names."""
    return bool(CONSTANT_DRIVER_RE.match(net) or UNCONNECTED_WIRE_RE.match(net))


# =============================================================================
# Statement types
# =============================================================================

@dataclass(frozen=True)
class IgnorableStatement:
    """Declaration (module, port, wire, defparam, ...) with no fanout effect."""
    keyword: str
    text: str


@dataclass(frozen=True)
class AssignStatement:
    """Continuous assignment 'assign target = [~]source'."""
    target: str
    source: str
    negated: bool = False


@dataclass(frozen=True)
class PortBinding:
    """Named port connection '.pin(expr)', expr resolved to individual nets."""
    pin: str
    nets: Tuple[str, ...]


@dataclass(frozen=True)
class InstanceStatement:
    """Cell instantiation with named port connections."""
    module_type: str
    instance_name: str
    bindings: Tuple[PortBinding, ...]


@dataclass(frozen=True)
class UnknownStatement:
    """Anything that is neither a declaration, an assignment nor an instance."""
    text: str


Statement = Union[IgnorableStatement, AssignStatement, InstanceStatement, UnknownStatement]


def _is_word(token: str) -> bool:
    return token not in PUNCTUATION


def _matching_paren(tokens: List[str], pos: int) -> Optional[int]:
    """Index of the ')' closing the '(' at tokens[pos], None if unbalanced."""
    depth = 0
    for i in range(pos, len(tokens)):
        if tokens[i] == '(':
            depth += 1
        elif tokens[i] == ')':
            depth -= 1
            if depth == 0:
                return i
    return None


def _expression_text(text: str, matches: List[re.Match]) -> str:
    """Source text spanned by matches, whitespace collapsed, negation dropped."""
    raw = text[matches[0].start():matches[-1].end()]
    net = NEGATION_PREFIX_RE.sub('', ' '.join(raw.split()))
    if not net:
        raise ValueError(f"no net in '{raw}'")
    return net


def _binding_nets(text: str, matches: List[re.Match]) -> Tuple[str, ...]:
    """
    Resolve the connection inside '.pin( ... )' to individual nets.

    Empty gives no nets and {a, b, ...} one net per element. Anything else is
    kept as one net named by its source text, e.g. 'bus [3]'.

    Raises:
        ValueError: nested or unterminated vectors, empty elements, or a
                    top-level ',' outside a vector
    """
    if not matches:
        return ()
    tokens = [m.group(0) for m in matches]
    if tokens[0] != '{':
        if ',' in tokens or '{' in tokens or '}' in tokens:
            raw = text[matches[0].start():matches[-1].end()]
            raise ValueError(f"unsupported connection '{' '.join(raw.split())}'")
        return (_expression_text(text, matches),)

    if tokens[-1] != '}':
        raise ValueError("unterminated vector")
    nets = []
    element: List[re.Match] = []
    for m in matches[1:-1] + [None]:
        if m is None or m.group(0) == ',':
            if not element:
                raise ValueError("empty vector element")
            nets.append(_expression_text(text, element))
            element = []
        elif m.group(0) in ('{', '}'):
            raise ValueError("nested vector")
        else:
            element.append(m)
    return tuple(nets)


def parse_instance(text: str) -> Optional[InstanceStatement]:
    """
    Match '<type> <name> ( .<pin>(<expr>) [, .<pin>(<expr>)]* )'.

    <expr> is empty, a {net, net, ...} vector or a single connection; a
    single connection that is not a plain net (bit-select with spaces,
    negation) is kept whole. The instance name may be omitted.

    Returns None if the statement does not start like an instantiation.

    Raises:
        MalformedStatementError: the statement starts like an instantiation
                                 but its port list cannot be parsed
    """
    matches = list(TOKEN_RE.finditer(text))
    tokens = [m.group(0) for m in matches]
    if len(tokens) < 4 or not _is_word(tokens[0]):
        return None

    module_type = tokens[0]
    if _is_word(tokens[1]):
        instance_name, pos = tokens[1], 2
    else:
        instance_name, pos = '', 1
    if pos + 1 >= len(tokens) or tokens[pos] != '(' or tokens[pos + 1] != '.':
        return None

    bindings = []
    i = pos + 1
    while True:
        if i + 2 >= len(tokens) or tokens[i] != '.' or not _is_word(tokens[i + 1]) \
                or tokens[i + 2] != '(':
            raise MalformedStatementError(text, reason=f"expected '.<pin>(' at token {i}")
        pin = tokens[i + 1]
        close = _matching_paren(tokens, i + 2)
        if close is None:
            raise MalformedStatementError(text, reason=f"unbalanced parentheses on pin {pin}")
        try:
            nets = _binding_nets(text, matches[i + 3:close])
        except ValueError as e:
            raise MalformedStatementError(text, reason=f"pin {pin}: {e}") from None
        bindings.append(PortBinding(pin=pin, nets=nets))
        i = close + 1
        if i < len(tokens) and tokens[i] == ',':
            i += 1
            continue
        break

    if i != len(tokens) - 1 or tokens[i] != ')':
        raise MalformedStatementError(text, reason="port list not closed by ')'")
    return InstanceStatement(module_type=module_type, instance_name=instance_name,
                             bindings=tuple(bindings))


def classify_statement(text: str) -> Statement:
    """
    Classify one ';'-terminated statement (terminator already removed).

    Raises:
        MalformedStatementError: see parse_instance()
    """
    text = text.strip()

    # 'endmodule' has no terminator, so it ends up in front of the next statement
    if text == 'endmodule' or text.startswith('endmodule '):
        text = text[len('endmodule'):].strip()
        if not text:
            return IgnorableStatement(keyword='endmodule', text='endmodule')

    word = LEADING_WORD_RE.match(text)
    if word and word.group(1) in DECLARATION_KEYWORDS:
        return IgnorableStatement(keyword=word.group(1), text=text)

    if word and word.group(1) == 'assign':
        match = ASSIGN_RE.match(text)
        if match:
            return AssignStatement(target=match.group(1), source=match.group(3),
                                   negated=match.group(2) is not None)
        return UnknownStatement(text=text)

    instance = parse_instance(text)
    if instance is not None:
        return instance
    return UnknownStatement(text=text)


# =============================================================================
# Accumulation
# =============================================================================

@dataclass
class FanoutStats:
    """Statistics for a counted netlist"""
    statements: int = 0
    ignored: int = 0
    assignments: int = 0
    instances: int = 0
    bindings: int = 0
    input_bindings: int = 0
    loads_counted: int = 0
    excluded_references: int = 0
    unknown_statements: int = 0
    module_types: Dict[str, int] = field(default_factory=dict)


class FanoutCounter:
    """
    Accumulates per-net fanout from classified statements.

    Counts only ever increase, and a net enters the table on its first
    counted load, so every value is >= 1.
    """

    def __init__(self, interface_table: InterfaceTable, strict: bool = False):
        self.interface_table = interface_table
        self.strict = strict
        self.fanout: Dict[str, int] = {}
        self.stats = FanoutStats()
        self.logger = logging.getLogger(__name__)

    def add_load(self, net: str) -> bool:
        """Count one load on net unless it is excluded. Returns True if counted."""
        if is_excluded_net(net):
            self.stats.excluded_references += 1
            return False
        self.fanout[net] = self.fanout.get(net, 0) + 1
        self.stats.loads_counted += 1
        return True

    def pin_direction(self, module_type: str, pin: str, instance_name: str = '') -> PortDirection:
        """
        Look up a pin direction.

        Raises:
            UndefinedPinError: module or pin not in the interface table
        """
        try:
            return self.interface_table[module_type][pin]
        except KeyError:
            raise UndefinedPinError(module_type, pin, instance_name) from None

    def add_statement(self, statement: Statement, index: int = -1):
        """Apply one classified statement to the fanout table."""
        self.stats.statements += 1

        if isinstance(statement, IgnorableStatement):
            self.stats.ignored += 1
        elif isinstance(statement, AssignStatement):
            self.stats.assignments += 1
            self.add_load(statement.source)
        elif isinstance(statement, InstanceStatement):
            self._add_instance(statement)
        else:
            self.stats.unknown_statements += 1
            if self.strict:
                raise MalformedStatementError(statement.text, index)
            self.logger.debug(f"Ignoring unrecognized statement #{index}: {statement.text[:80]}")

    def _add_instance(self, instance: InstanceStatement):
        self.stats.instances += 1
        module_type = instance.module_type
        self.stats.module_types[module_type] = self.stats.module_types.get(module_type, 0) + 1

        for binding in instance.bindings:
            self.stats.bindings += 1
            direction = self.pin_direction(module_type, binding.pin, instance.instance_name)
            if direction is not PortDirection.INPUT:
                continue
            self.stats.input_bindings += 1
            for net in binding.nets:
                self.add_load(net)

    def add_text(self, text: str, index: int = -1) -> Statement:
        """
        Classify and apply one statement. Returns the classification.

        Raises:
            MalformedStatementError: instantiation with an unparseable port
                                     list, in any mode
            UndefinedPinError: pin or module not in the interface table
        """
        try:
            statement = classify_statement(text)
        except MalformedStatementError as e:
            raise MalformedStatementError(e.statement, index, e.reason) from None
        self.add_statement(statement, index)
        return statement


def count_fanout(statements: Sequence[str], interface_table: InterfaceTable,
                 strict: bool = False) -> Dict[str, int]:
    """Count fanout over already tokenized statements."""
    counter = FanoutCounter(interface_table, strict=strict)
    for index, text in enumerate(statements):
        counter.add_text(text, index)
    return counter.fanout


# =============================================================================
# Orchestration
# =============================================================================

class FanoutParser:
    """
    Main entry point. Builds the interface table from the include files,
    tokenizes the netlist and counts fanout.
    """

    def __init__(self, netlist_file: str, include_files: Sequence[str] = (),
                 strict: bool = False, verbose: bool = False,
                 cache_dir: Optional[str] = None, log_file: Optional[str] = None,
                 show_progress: bool = True):
        """
        Initialize fanout parser.

        Args:
            netlist_file: VQM netlist (plain or gzip)
            include_files: Verilog include files declaring every instantiated
                           module, lowest precedence first
            strict: Raise MalformedStatementError on unrecognized statements
                    instead of skipping them
            verbose: Enable debug logging
            cache_dir: Directory for cached include tables (None disables caching)
            log_file: Also append log records to this file
            show_progress: Show tqdm progress bars
        """
        self.netlist_file = str(netlist_file)
        self.include_files = [str(f) for f in include_files]
        self.strict = strict
        self.show_progress = show_progress
        self.cache = PortTableCache(cache_dir) if cache_dir else None

        # Setup logging
        log_level = logging.DEBUG if verbose else logging.INFO
        logging.basicConfig(level=log_level,
                            format='%(levelname)s: %(message)s')
        self.logger = logging.getLogger(__name__)
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(log_level)
        if log_file and not any(isinstance(h, logging.FileHandler) for h in package_logger.handlers):
            file_handler = logging.FileHandler(log_file, mode='a')
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s'))
            package_logger.addHandler(file_handler)
            self.logger.info(f"Logging to file: {log_file}")

        self.interface_table: InterfaceTable = {}
        self.stats = FanoutStats()
        self.timings: Dict[str, float] = {}

    def parse(self) -> Dict[str, int]:
        """
        Run all stages and return the fanout table {net: fanout}.

        Raises:
            FanoutError: any fatal input problem; nothing is returned in that case
        """
        self.logger.info(f"Counting fanout of: {self.netlist_file}")
        parse_start = time.perf_counter()

        try:
            t0 = time.perf_counter()
            include_parser = IncludeParser(self.include_files, cache=self.cache,
                                           show_progress=self.show_progress)
            self.interface_table = include_parser.parse()
            self.timings["parse_includes"] = time.perf_counter() - t0

            t0 = time.perf_counter()
            with VqmReader(self.netlist_file) as reader:
                statements = reader.read_statements()
                self.logger.info(f"Read {len(statements)} statements from {reader.line_number} lines"
                                 f"{' (gzipped)' if reader.is_gzipped else ''}")
            self.timings["tokenize_netlist"] = time.perf_counter() - t0

            t0 = time.perf_counter()
            counter = FanoutCounter(self.interface_table, strict=self.strict)
            for index, text in enumerate(tqdm(statements, desc="Counting fanout",
                                              disable=not self.show_progress)):
                counter.add_text(text, index)
            self.stats = counter.stats
            self.timings["count_fanout"] = time.perf_counter() - t0

        except FanoutError as e:
            self.logger.error(f"Fanout counting failed: {e}")
            raise

        self.timings["total_parse"] = time.perf_counter() - parse_start
        self._print_statistics(counter.fanout)
        return counter.fanout

    def _print_statistics(self, fanout: Dict[str, int]):
        stats = self.stats
        self.logger.info(f"Statements: {stats.statements} "
                         f"(ignored {stats.ignored}, assignments {stats.assignments}, "
                         f"instances {stats.instances}, unrecognized {stats.unknown_statements})")
        self.logger.info(f"Pin bindings: {stats.bindings} ({stats.input_bindings} inputs), "
                         f"loads counted: {stats.loads_counted}, "
                         f"excluded references: {stats.excluded_references}")
        self.logger.info(f"Nets with fanout: {len(fanout)}")
        if stats.unknown_statements:
            self.logger.warning(f"{stats.unknown_statements} statements were not recognized "
                                f"and did not contribute to fanout (use --verbose to list them)")

        self.logger.debug("Parse timing breakdown (s):")
        for key in sorted(self.timings.keys()):
            self.logger.debug(f"  {key}: {self.timings[key]:.4f}")


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point"""
    import argparse

    parser = argparse.ArgumentParser(
        description='Generate a CSV file of all nets in a VQM netlist and their fanouts, '
                    'ordered by fanout (highest first)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Notes:
  * Verilog include files declaring every module present in the VQM must be given.
  * Assign statements are treated as single input, single output gates.
  * Unconnected wires (*_unconnected_wire_*) and power supplies (vcc, gnd) are ignored.
  * Nets with equal fanout are listed in ascending name order.

Examples:
  vqm-fanout fp_pow.vqm fp_pow_fo.csv sim/altera_primitives.v sim/cyclonev_atoms.v

  # Reuse parsed include files between runs, plot the distribution
  vqm-fanout fp_pow.vqm fp_pow_fo.csv sim/*.v --cache-dir .fanout_cache --plot fo.png

CSV output example:
  net_a,1000
  net_b,999
  net_c,100
        """
    )

    parser.add_argument('netlist', type=str,
                        help='VQM input netlist file (plain or gzip)')
    parser.add_argument('csv', type=str,
                        help='Output CSV file listing "net,fanout" pairs')
    parser.add_argument('includes', type=str, nargs='*',
                        help='Verilog include files with module declarations (later files win)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output (debug logging)')
    parser.add_argument('--strict', action='store_true',
                        help='Fail on statements that cannot be classified')
    parser.add_argument('--cache-dir', type=str,
                        help='Cache parsed include files in this directory')
    parser.add_argument('--log-file', type=str,
                        help='Also write log records to this file')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable progress bars')
    parser.add_argument('--summary', action='store_true',
                        help='Log a statistical summary of the fanout distribution')
    parser.add_argument('--plot', type=str,
                        help='Write a fanout distribution plot to this image file')
    parser.add_argument('--plot-top', type=int, default=20,
                        help='Number of highest-fanout nets in the plot bar chart (default: 20)')

    args = parser.parse_args(argv)

    from .fanout_report import write_report

    try:
        fanout_parser = FanoutParser(
            args.netlist,
            args.includes,
            strict=args.strict,
            verbose=args.verbose,
            cache_dir=args.cache_dir,
            log_file=args.log_file,
            show_progress=not args.no_progress,
        )
        fanout = fanout_parser.parse()
        write_report(args.csv, fanout)
    except (FanoutError, OSError) as e:
        logging.getLogger(__name__).error(f"-E- {e}")
        return 1

    logger = logging.getLogger(__name__)
    logger.info(f"Fanout report written to: {args.csv}")

    if args.summary:
        from .fanout_stats import summarize_fanout
        summary = summarize_fanout(fanout)
        for line in summary.format_lines():
            logger.info(line)

    if args.plot:
        import matplotlib
        matplotlib.use('Agg')
        from .fanout_plotter import FanoutPlotter
        plotter = FanoutPlotter(fanout, logger)
        plotter.plot_distribution(args.plot, top_n=args.plot_top,
                                  title=f"Fanout distribution: {args.netlist}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
