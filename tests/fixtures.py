"""Test fixtures for fanout analysis unit tests.

Provides small include libraries and VQM netlists as text, plus a helper to
write them to disk (plain or gzipped) for file-level tests.
"""

import gzip
from pathlib import Path
from typing import Union

# Cell library in the style of altera_primitives.v / cyclonev_atoms.v
CELLS_V = """\
// Simulation models for test cells
`timescale 1 ps / 1 ps

module AND2 (a, b, q);
    input a, b;
    output q;
    assign q = a & b;
endmodule

/* Flip-flop with enable.
   module NOT_A_MODULE (x);   <- inside a block comment
*/
module DFFE (d, clk, ena, q);
    input d;           // data
    input clk, ena;
    output q;
    reg q;
endmodule

module LUT4 (
    dataa,
    datab,
    datac,
    datad,
    combout);
    input [3:0] dataa;
    input wire datab, datac, datad;
    output combout;

    function [3:0] lut_eval;
        input [15:0] mask;
        input [3:0] sel;
        begin
            lut_eval = mask[sel];
        end
    endfunction
endmodule

module RAM (clk, wren, data, address, q);
    input clk, wren;
    input [7:0] data;
    input [4:0] address;
    output [7:0] q;
endmodule
"""

# Later library that redefines AND2 without pin b
CELLS_OVERRIDE_V = """\
module AND2 (a, q, en);
    input a, en;
    output q;
endmodule
"""

# Flat VQM netlist using CELLS_V
NETLIST_VQM = """\
// Copyright (C) Example Corp.
// VQM file generated by the mapper

module top (
\tclk,
\tin_a,
\tin_b,
\tout_q);
input \tclk;
input \tin_a;
input \tin_b;
output \tout_q;

wire gnd;
wire vcc;
wire n1;
wire n2;
wire \\inst|reg~q ;
wire lut_unconnected_wire_0;

// Instances

AND2 u1 (
\t.a(in_a),
\t.b(in_b),
\t.q(n1));

AND2 u2 ( .a(n1), .b(in_a), .q(n2) );

DFFE \\inst|reg (
\t.d(n2),
\t.clk(clk),
\t.ena(vcc),
\t.q(\\inst|reg~q ));
defparam \\inst|reg .power_up = "low";

LUT4 lut (
\t.dataa({n1,n2,gnd,lut_unconnected_wire_0}),
\t.datab(\\inst|reg~q ),
\t.datac(clk),
\t.datad(n1),
\t.combout(out_q));

assign out_q = ~ \\inst|reg~q ;
assign n3 = gnd;

endmodule
"""

# Expected fanout of NETLIST_VQM
NETLIST_FANOUT = {
    'in_a': 2,
    'in_b': 1,
    'n1': 3,
    'n2': 2,
    'clk': 2,
    '\\inst|reg~q': 2,
}


def write_source(directory: Union[str, Path], name: str, text: str,
                 gzipped: bool = False, newline: str = '\n') -> Path:
    """Write text to directory/name, optionally gzip-compressed or with other line endings."""
    path = Path(directory) / name
    data = text.replace('\n', newline)
    if gzipped:
        with gzip.open(path, 'wt', newline='') as f:
            f.write(data)
    else:
        with open(path, 'w', newline='') as f:
            f.write(data)
    return path
