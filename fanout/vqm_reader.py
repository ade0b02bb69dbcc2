#!/usr/bin/env python3
"""
VQM Reader - Splits Verilog Quartus Mapping netlists into logical statements.

Mapper output wraps long instantiations over many physical lines, so line
boundaries carry no meaning: the reader drops comments and blank lines, joins
everything that is left with single spaces and splits on the ';' terminator.

Features:
- Automatic gzip detection (magic number, independent of file extension)
- DOS line endings accepted
- Physical line count kept for diagnostics

Usage Examples:
    with VqmReader('design.vqm') as reader:
        for statement in reader.read_statements():
            print(statement)

    statements = split_statements(netlist_text)
"""

import gzip
import logging
import os
import re
from typing import Iterable, List, Optional, TextIO

from .errors import SourceUnreadableError

LINE_COMMENT = '//'
STATEMENT_TERMINATOR = ';'

# '//' starts a comment at line start or after whitespace; elsewhere it is
# part of an escaped identifier
LINE_COMMENT_RE = re.compile(r'(?:^|(?<=\s))' + LINE_COMMENT + r'.*$')

# Undecodable bytes survive into net names and back out into the report
SOURCE_ENCODING = 'utf-8'
SOURCE_ERRORS = 'surrogateescape'


def strip_line_comment(line: str) -> str:
    """Return the code part of one physical line, stripped."""
    return LINE_COMMENT_RE.sub('', line.strip()).strip()


def split_statements(text: str) -> List[str]:
    """
    Tokenize raw netlist text into ';'-terminated statements.

    Lines are joined with a space, so statements wrapped across lines come
    back in one piece. The text after the last terminator is discarded.
    """
    return join_statements(text.splitlines())


def join_statements(lines: Iterable[str]) -> List[str]:
    """Same as split_statements(), for an iterable of physical lines."""
    code = (strip_line_comment(line) for line in lines)
    joined = ' '.join(line for line in code if line)
    pieces = joined.split(STATEMENT_TERMINATOR)
    # Unterminated tail (usually empty or a bare 'endmodule')
    pieces.pop()
    return [piece.strip() for piece in pieces if piece.strip()]


def is_gzip_file(filepath: str) -> bool:
    """Check for the gzip magic number (0x1f8b)"""
    with open(filepath, 'rb') as f:
        return f.read(2) == b'\x1f\x8b'


def open_source(filepath: str) -> TextIO:
    """
    Open a plain or gzipped text source for reading.

    Raises:
        SourceUnreadableError: if the file is missing or cannot be opened
    """
    if not os.path.isfile(filepath):
        raise SourceUnreadableError(f"Can't open {filepath}: file not found")
    try:
        if is_gzip_file(filepath):
            logging.debug(f"Opened gzipped file: {filepath}")
            return gzip.open(filepath, 'rt', encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS)
        logging.debug(f"Opened plain file: {filepath}")
        return open(filepath, 'r', encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS)
    except OSError as e:
        raise SourceUnreadableError(f"Can't open {filepath}: {e}") from e


def read_source_text(filepath: str) -> str:
    """Read a whole plain or gzipped source into a string."""
    with open_source(filepath) as f:
        try:
            return f.read()
        except (OSError, EOFError) as e:
            raise SourceUnreadableError(f"Can't read {filepath}: {e}") from e


class VqmReader:
    """
    Handles VQM netlist reading with gzip detection, comment stripping and
    statement reassembly.
    """

    def __init__(self, filepath: str):
        self.filepath = filepath
        self.file_handle: Optional[TextIO] = None
        self.line_number = 0
        self.is_gzipped = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self):
        """Open the netlist file (plain or gzip)"""
        self.file_handle = open_source(self.filepath)
        self.is_gzipped = isinstance(self.file_handle.buffer, gzip.GzipFile)
        self.line_number = 0

    def close(self):
        """Close file handle"""
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def _physical_lines(self):
        for raw_line in self.file_handle:
            self.line_number += 1
            yield raw_line

    def read_statements(self) -> List[str]:
        """
        Read the whole netlist and return its statements in file order.

        Returns an empty list if the reader is not open.
        """
        if not self.file_handle:
            return []
        try:
            statements = join_statements(self._physical_lines())
        except (OSError, EOFError) as e:
            raise SourceUnreadableError(f"Can't read {self.filepath}: {e}") from e
        logging.debug(f"Read {len(statements)} statements from {self.line_number} lines "
                      f"of {self.filepath}")
        return statements
