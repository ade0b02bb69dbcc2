#!/usr/bin/env python3
"""
Unit tests for the include parser (include_parser.py)

Tests cover:
- Port declaration parsing (name lists, bit ranges, net types)
- Module block scanning (comments, multi-line headers, function blocks)
- Malformed sources (missing endmodule)
- Later-wins merging of several include files
- File-level parsing (plain and gzip) with IncludeParser
"""

import unittest
import sys
import tempfile
import shutil
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fanout.errors import MalformedDeclarationError, SourceUnreadableError
from fanout.include_parser import (
    PortDirection, IncludeParser, parse_port_names, parse_port_line,
    parse_interface_text, merge_interface_tables, parse_include_file,
)
from tests.fixtures import CELLS_V, CELLS_OVERRIDE_V, write_source

IN = PortDirection.INPUT
OUT = PortDirection.OUTPUT


class TestPortDeclarations(unittest.TestCase):
    """Test parsing of single input/output declaration lines"""

    def test_name_list(self):
        self.assertEqual(parse_port_names(' a, b ,c'), ['a', 'b', 'c'])

    def test_bit_range_stripped(self):
        self.assertEqual(parse_port_names(' [15:0] data'), ['data'])
        self.assertEqual(parse_port_names('[7:0] a, [3:0] b'), ['a', 'b'])

    def test_net_type_keywords_stripped(self):
        self.assertEqual(parse_port_names(' wire signed [3:0] x, y'), ['x', 'y'])
        self.assertEqual(parse_port_names(' reg q'), ['q'])

    def test_escaped_name_kept(self):
        self.assertEqual(parse_port_names(' \\a[0] , b'), ['\\a[0]', 'b'])

    def test_port_line_directions(self):
        ports = parse_port_line('    input clk, ena;')
        self.assertEqual(ports, [('clk', IN), ('ena', IN)])
        ports = parse_port_line('output [7:0] q;')
        self.assertEqual(ports, [('q', OUT)])

    def test_two_declarations_on_one_line(self):
        ports = parse_port_line('input a; output b;')
        self.assertEqual(ports, [('a', IN), ('b', OUT)])

    def test_declaration_without_terminator_ignored(self):
        """Declarations spanning lines are out of scope"""
        self.assertEqual(parse_port_line('input a,'), [])

    def test_non_port_line(self):
        self.assertEqual(parse_port_line('assign q = a & b;'), [])
        self.assertEqual(parse_port_line('inputs_are_here;'), [])


class TestInterfaceText(unittest.TestCase):
    """Test module block scanning of a whole declaration source"""

    def setUp(self):
        self.table = parse_interface_text(CELLS_V, source='cells.v')

    def test_modules_found(self):
        self.assertEqual(set(self.table.keys()), {'AND2', 'DFFE', 'LUT4', 'RAM'})

    def test_and2_ports(self):
        self.assertEqual(self.table['AND2'], {'a': IN, 'b': IN, 'q': OUT})

    def test_vector_ports(self):
        self.assertEqual(self.table['RAM']['data'], IN)
        self.assertEqual(self.table['RAM']['address'], IN)
        self.assertEqual(self.table['RAM']['q'], OUT)

    def test_trailing_comment_ignored(self):
        self.assertEqual(self.table['DFFE'], {'d': IN, 'clk': IN, 'ena': IN, 'q': OUT})

    def test_block_comment_module_ignored(self):
        self.assertNotIn('NOT_A_MODULE', self.table)

    def test_function_arguments_not_ports(self):
        lut = self.table['LUT4']
        self.assertEqual(lut, {'dataa': IN, 'datab': IN, 'datac': IN, 'datad': IN,
                               'combout': OUT})
        self.assertNotIn('mask', lut)
        self.assertNotIn('sel', lut)

    def test_wrapped_port_list_header(self):
        text = ("module WIDE (\n"
                "    a,   // first\n"
                "    b,\n"
                "    q);\n"
                "    input a, b; // inputs\n"
                "    output q;\n"
                "endmodule\n")
        self.assertEqual(parse_interface_text(text), {'WIDE': {'a': IN, 'b': IN, 'q': OUT}})

    def test_empty_source(self):
        self.assertEqual(parse_interface_text(''), {})
        self.assertEqual(parse_interface_text('// only a comment\n'), {})

    def test_module_without_ports(self):
        table = parse_interface_text("module EMPTY;\nendmodule\n")
        self.assertEqual(table, {'EMPTY': {}})

    def test_escaped_module_name(self):
        table = parse_interface_text("module \\weird$cell (a);\n input a;\nendmodule\n")
        self.assertEqual(table, {'\\weird$cell': {'a': IN}})

    def test_redeclared_module_in_same_source(self):
        text = ("module C (a, b);\n input a;\n input b;\nendmodule\n"
                "module C (a, y);\n input a;\n output y;\nendmodule\n")
        table = parse_interface_text(text)
        self.assertEqual(table['C'], {'a': IN, 'y': OUT})

    def test_missing_endmodule(self):
        text = "module AND2 (a, q);\n input a;\n output q;\n"
        with self.assertRaises(MalformedDeclarationError) as ctx:
            parse_interface_text(text, source='broken.v')
        self.assertEqual(ctx.exception.module, 'AND2')
        self.assertEqual(ctx.exception.line_number, 1)
        self.assertIn('broken.v', str(ctx.exception))

    def test_module_header_inside_open_block(self):
        text = "module A (x);\n input x;\nmodule B (y);\n input y;\nendmodule\n"
        with self.assertRaises(MalformedDeclarationError) as ctx:
            parse_interface_text(text)
        self.assertEqual(ctx.exception.module, 'A')

    def test_malformed_is_value_error(self):
        with self.assertRaises(ValueError):
            parse_interface_text("module X;\n")


class TestMergeInterfaceTables(unittest.TestCase):
    """Test later-wins merging of per-source tables"""

    def test_disjoint_modules_combined(self):
        merged = merge_interface_tables([{'A': {'a': IN}}, {'B': {'b': OUT}}])
        self.assertEqual(merged, {'A': {'a': IN}, 'B': {'b': OUT}})

    def test_later_source_replaces_whole_module(self):
        early = parse_interface_text(CELLS_V)
        late = parse_interface_text(CELLS_OVERRIDE_V)
        merged = merge_interface_tables([early, late])
        self.assertEqual(merged['AND2'], {'a': IN, 'en': IN, 'q': OUT})
        self.assertNotIn('b', merged['AND2'])
        # Modules only in the earlier source survive
        self.assertIn('DFFE', merged)

    def test_order_matters(self):
        early = parse_interface_text(CELLS_V)
        late = parse_interface_text(CELLS_OVERRIDE_V)
        merged = merge_interface_tables([late, early])
        self.assertEqual(merged['AND2'], {'a': IN, 'b': IN, 'q': OUT})

    def test_inputs_not_mutated(self):
        first = {'A': {'a': IN}}
        second = {'A': {'b': OUT}}
        merged = merge_interface_tables([first, second])
        merged['A']['c'] = IN
        self.assertEqual(first, {'A': {'a': IN}})
        self.assertEqual(second, {'A': {'b': OUT}})

    def test_no_tables(self):
        self.assertEqual(merge_interface_tables([]), {})


class TestIncludeParser(unittest.TestCase):
    """Test file-level include parsing"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_plain_and_gzip_identical(self):
        plain = write_source(self.temp_dir, 'cells.v', CELLS_V)
        zipped = write_source(self.temp_dir, 'cells_gz.v', CELLS_V, gzipped=True)
        self.assertEqual(parse_include_file(str(plain)), parse_include_file(str(zipped)))

    def test_crlf_source(self):
        path = write_source(self.temp_dir, 'cells.v', CELLS_V, newline='\r\n')
        self.assertEqual(parse_include_file(str(path)), parse_interface_text(CELLS_V))

    def test_missing_file(self):
        with self.assertRaises(SourceUnreadableError):
            parse_include_file(str(Path(self.temp_dir) / 'missing.v'))

    def test_multiple_files_later_wins(self):
        first = write_source(self.temp_dir, 'cells.v', CELLS_V)
        second = write_source(self.temp_dir, 'override.v', CELLS_OVERRIDE_V)
        parser = IncludeParser([str(first), str(second)], show_progress=False)
        table = parser.parse()
        self.assertEqual(table['AND2'], {'a': IN, 'en': IN, 'q': OUT})
        self.assertEqual(len(table), 4)

    def test_no_include_files(self):
        self.assertEqual(IncludeParser([], show_progress=False).parse(), {})


if __name__ == '__main__':
    unittest.main()
