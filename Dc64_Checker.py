#!/usr/bin/env python3
"""
Check 64-bit Mersenne Twister parameter lines written by Dc64_Solver.py

For each parameter set: the dimension of equidistribution k(v), v = 1..64,
and the total defect delta; optionally the period (minimal polynomial of
degree mexp, irreducible, and a jump by x^(2^mexp) landing one step ahead).

    python3 Dc64_Checker.py -v "$(tail -n 1 params.txt)"
    python3 Dc64_Checker.py --period --sympy-check -f params.s0001-000.txt
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from gf2x import poly_to_str, sympy_is_irreducible
from mt64_generator import MASK64, ConfigError, MT64Generator, MT64Param, Topology
from mt_algorithms import Equidistribution, check_period, defect_table, temper_generator


def report_period(g: MT64Generator, sympy_check: bool, verbose: bool) -> bool:
    pc = check_period(g)
    print(f"deg(poly) = {pc.degree}")
    if pc.degree != g.mexp:
        print("deg(poly) is not mexp. NG.")
        return False
    if verbose:
        print(f"poly = {poly_to_str(pc.poly)}")
    ok = pc.ok
    if pc.irreducible:
        print("poly is prime. OK.")
        print("jump by x^(2^mexp) is one step. OK." if pc.jump_ok
              else "jump by x^(2^mexp) is not one step. NG.")
    else:
        print("poly is not prime. NG.")
    if sympy_check:
        sp = sympy_is_irreducible(pc.poly)
        agree = "agrees" if sp == pc.irreducible else "DISAGREES"
        print(f"sympy irreducible = {sp} ({agree})")
        ok = ok and sp == pc.irreducible
    return ok


def check_param(param: MT64Param, args: argparse.Namespace) -> bool:
    if args.verbose:
        print(param.debug_string())
    g = MT64Generator.from_param(param)
    g.seed(args.seed)
    if args.retemper:
        for slot, _ in g.tempering_slots():
            g.set_tempering_pattern(MASK64, 0, slot)
        temper_generator(g)
        print(f"retempered: {g.get_param_string()}")

    ok = True
    if args.period or args.sympy_check:
        ok = report_period(g, args.sympy_check, args.verbose)
        if args.period:
            return ok

    if args.reverse:
        g.set_reverse_output()
    veq, delta = Equidistribution(g, 64).get_all_equidist()
    print(f"{g.get_param_string()},{delta}")
    if args.verbose:
        side = "LSB" if args.reverse else "MSB"
        print(f"64bit dimension of equidistribution at v-bit accuracy k(v) ({side} side)")
        for v, k, d in defect_table(g.mexp, veq):
            print(f"k({v}) = {k}\td({v}) = {d}")
    return ok


def read_param_lines(path: str) -> List[str]:
    lines = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if line[0] == "#" or line.startswith("mexp"):
                continue
            lines.append(line)
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(
        description="Dc64_Checker: period and equidistribution of 64-bit MT parameter lines.",
    )
    ap.add_argument("params", nargs="?", default="",
                    help="Parameter line as written by Dc64_Solver (a trailing delta is ignored).")
    ap.add_argument("-f", "--file", default="",
                    help="Check every record line of a report file instead.")
    ap.add_argument("--topology", default="single", choices=[t.value for t in Topology])
    ap.add_argument("-s", "--seed", type=lambda s: int(s, 0), default=0,
                    help="Seed of the state checked (default 0).")
    ap.add_argument("-p", "--period", action="store_true",
                    help="Period check only.")
    ap.add_argument("-r", "--reverse", action="store_true",
                    help="Equidistribution of the bit-reversed output (LSB side).")
    ap.add_argument("--retemper", action="store_true",
                    help="Recompute tmsk1/tmsk2 before checking and print the new line.")
    ap.add_argument("--sympy-check", action="store_true",
                    help="Cross-check irreducibility with sympy.")
    ap.add_argument("-v", "--verbose", action="store_true",
                    help="Print the k(v)/d(v) table and the polynomial.")
    args = ap.parse_args(argv)

    if bool(args.params) == bool(args.file):
        ap.error("give exactly one of a parameter line or --file")
    topology = Topology(args.topology)

    if args.params:
        try:
            param = MT64Param.parse(args.params, topology)
        except ConfigError as e:
            ap.error(str(e))
        return 0 if check_param(param, args) else 1

    try:
        lines = read_param_lines(args.file)
    except OSError as e:
        print(f"[!] can't open file: {args.file} ({e.strerror})", file=sys.stderr)
        return 1

    print(f"Checking {len(lines)} parameter sets from {args.file}...")
    print("=" * 70)
    errors = []
    for line_num, line in enumerate(lines, 1):
        try:
            param = MT64Param.parse(line, topology)
        except ConfigError as e:
            print(f"Record {line_num}: Error parsing - {e}")
            errors.append(line_num)
            continue
        if not check_param(param, args):
            print(f"\nFAILED at record {line_num}: {line}")
            errors.append(line_num)
    print("\n" + "=" * 70)
    print(f"Checked {len(lines)} entries")
    if errors:
        print(f"\nFound {len(errors)} ERRORS: records {', '.join(map(str, errors))}")
        return 1
    print("\nAll entries passed.")
    return 0


if __name__ == '__main__':
    sys.exit(main())
