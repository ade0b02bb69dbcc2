#!/usr/bin/env python3
"""
Include Parser - Builds the module port-direction table from Verilog include files.

Vendor simulation libraries (altera_primitives.v, cyclonev_atoms.v, ...) declare
every cell that can appear in a VQM netlist. Only the port directions matter for
fanout counting, so the scan is line oriented: a module header line, one
input/output declaration per line, and an endmodule line.

The per-file tables are combined by an explicit left-to-right fold in which a
module declared again in a later file replaces the earlier port table as a whole.

Usage Examples:
    table = parse_interface_text(open('cells.v').read(), source='cells.v')
    table['AND2']['a']          # PortDirection.INPUT

    parser = IncludeParser(['altera_primitives.v', 'cyclonev_atoms.v'])
    combined = parser.parse()
"""

import logging
import re
import time
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from tqdm import tqdm

from .errors import MalformedDeclarationError
from .vqm_reader import read_source_text, strip_line_comment


class PortDirection(Enum):
    """Direction of a module port as seen from inside the module."""
    INPUT = 'i'
    OUTPUT = 'o'


# module name -> port name -> direction
InterfaceTable = Dict[str, Dict[str, PortDirection]]

IDENTIFIER = r'(?:\\\S+|[A-Za-z_][\w$]*)'

# 'module' and its name share a line; the port list after them may wrap
MODULE_HEADER_RE = re.compile(r'^\s*(?:macro)?module\s+(' + IDENTIFIER + r')')
END_MODULE_RE = re.compile(r'^\s*endmodule\b')
SUBBLOCK_START_RE = re.compile(r'^\s*(function|task)\b')
PORT_DECL_RE = re.compile(r'^\s*(input|output)\b(.*)$', re.DOTALL)
NET_TYPE_PREFIX_RE = re.compile(r'^\s*(?:(?:wire|reg|logic|tri|signed|unsigned)\b\s*)*')
BIT_RANGE_PREFIX_RE = re.compile(r'^\s*(?:\[[^\]]*\]\s*)+')
BLOCK_COMMENT_RE = re.compile(r'/\*.*?\*/', re.DOTALL)

logger = logging.getLogger(__name__)

DIRECTION_KEYWORDS = {
    'input': PortDirection.INPUT,
    'output': PortDirection.OUTPUT,
}


def _strip_comments(text: str) -> str:
    """Remove block comments, keeping line numbering intact."""
    return BLOCK_COMMENT_RE.sub(lambda m: '\n' * m.group(0).count('\n'), text)


def declaration_lines(text: str) -> Iterator[Tuple[int, str]]:
    """
    Yield (line_number, line) for every non-blank line of a declaration source,
    with comments removed. Line numbers are 1-based.
    """
    for line_number, line in enumerate(_strip_comments(text).splitlines(), start=1):
        line = strip_line_comment(line)
        if line.strip():
            yield line_number, line


def parse_port_names(name_list: str) -> List[str]:
    """
    Split the name list of a port declaration into bare port names.

    Net-type keywords and bit ranges in front of a name are dropped:
        'wire [3:0] a, b'  ->  ['a', 'b']
    """
    names = []
    name_list = NET_TYPE_PREFIX_RE.sub('', name_list, count=1)
    for raw_name in name_list.split(','):
        name = BIT_RANGE_PREFIX_RE.sub('', raw_name).strip()
        if name:
            names.append(name.split()[0])
    return names


def parse_port_line(line: str) -> List[Tuple[str, PortDirection]]:
    """
    Parse the port declarations on one physical line.

    Only declarations whose ';' sits on the same line are recognized; a
    declaration without its terminator yields nothing.
    """
    ports = []
    for piece in line.split(';')[:-1]:
        match = PORT_DECL_RE.match(piece)
        if not match:
            continue
        direction = DIRECTION_KEYWORDS[match.group(1)]
        ports.extend((name, direction) for name in parse_port_names(match.group(2)))
    return ports


def parse_interface_text(text: str, source: str = '<string>') -> InterfaceTable:
    """
    Parse every module block of one declaration source.

    A module declared twice in the same source keeps only its last block.

    Raises:
        MalformedDeclarationError: a module block has no endmodule before the
            end of the source or before the next module header
    """
    table: InterfaceTable = {}
    module: Optional[str] = None
    header_line = 0
    ports: Dict[str, PortDirection] = {}
    subblock_end: Optional[re.Pattern] = None

    for line_number, line in declaration_lines(text):
        if module is None:
            header = MODULE_HEADER_RE.match(line)
            if header:
                module = header.group(1)
                header_line = line_number
                ports = {}
            continue

        if subblock_end is not None:
            if subblock_end.match(line):
                subblock_end = None
            continue

        if END_MODULE_RE.match(line):
            table[module] = ports
            logger.debug(f"{source}: module {module} with {len(ports)} ports")
            module = None
            continue

        if MODULE_HEADER_RE.match(line):
            raise MalformedDeclarationError(
                source, module, header_line,
                reason=f"no endmodule before the module header at line {line_number}")

        subblock = SUBBLOCK_START_RE.match(line)
        if subblock:
            subblock_end = re.compile(r'^\s*end' + subblock.group(1) + r'\b')
            continue

        for name, direction in parse_port_line(line):
            ports[name] = direction

    if module is not None:
        raise MalformedDeclarationError(source, module, header_line)

    return table


def merge_interface_tables(tables: Iterable[InterfaceTable]) -> InterfaceTable:
    """
    Fold per-source tables left to right into one table.

    On a module name collision the later table's port mapping replaces the
    earlier one entirely; ports are never merged field by field.
    """
    combined: InterfaceTable = {}
    for table in tables:
        for module, ports in table.items():
            if module in combined:
                logger.debug(f"Module {module} redeclared, replacing {len(combined[module])} ports "
                             f"with {len(ports)}")
            combined[module] = dict(ports)
    return combined


def parse_include_file(filepath: str) -> InterfaceTable:
    """Read and parse one include file (plain or gzip)."""
    return parse_interface_text(read_source_text(filepath), source=filepath)


class IncludeParser:
    """
    Parses a list of include files into one combined InterfaceTable,
    optionally served from a PortTableCache.
    """

    def __init__(self, include_files: List[str], cache=None, show_progress: bool = True):
        """
        Initialize include parser.

        Args:
            include_files: Include file paths, lowest precedence first
            cache: Optional PortTableCache used for lookup/store of per-file tables
            show_progress: Show a tqdm progress bar over the include files
        """
        self.include_files = [str(f) for f in include_files]
        self.cache = cache
        self.show_progress = show_progress
        self.logger = logging.getLogger(__name__)
        self.cache_hits = 0

    def _load(self, filepath: str) -> InterfaceTable:
        if self.cache is not None:
            table = self.cache.lookup(filepath)
            if table is not None:
                self.cache_hits += 1
                self.logger.debug(f"Loaded {len(table)} modules for {filepath} from cache")
                return table

        t0 = time.perf_counter()
        table = parse_include_file(filepath)
        self.logger.debug(f"Parsed {len(table)} modules from {filepath} "
                          f"in {time.perf_counter() - t0:.4f}s")

        if self.cache is not None:
            self.cache.store(filepath, table)
        return table

    def parse(self) -> InterfaceTable:
        """Parse all include files and return the combined table."""
        self.logger.info(f"Parsing {len(self.include_files)} include files...")
        tables = []
        with tqdm(total=len(self.include_files), desc="Parsing include files",
                  disable=not self.show_progress) as pbar:
            for filepath in self.include_files:
                tables.append(self._load(filepath))
                pbar.update(1)

        combined = merge_interface_tables(tables)
        self.logger.info(f"Interface table: {len(combined)} modules "
                         f"({self.cache_hits} files from cache)")
        return combined
