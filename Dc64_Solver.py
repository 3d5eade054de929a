#!/usr/bin/env python3
# Dc64_Solver.py version 1
"""
Dynamic creator for 64-bit Mersenne Twister parameters

Purpose
-------
Search the parameter space of 64-bit Mersenne-Twister-style recurrences for
parameter sets with full period 2^mexp - 1 and good equidistribution after
tempering.  One run owns one generator slot (mexp, id) and writes accepted
parameter sets as CSV lines, so that parallel runs with distinct ids produce
mutually independent generators.

Search loop
-----------
    propose   draw feedback position(s) and mat from the candidate sequence
              until the characteristic polynomial is irreducible of degree
              mexp (at most --log-count draws per attempt)
    temper    fill tmsk1 then tmsk2, five bits at a time from the MSB
    evaluate  k(v) for v = 1..64 by PIS lattice reduction,
              delta = sum(mexp // v - k(v))
    accept    write "<param line>,<delta>" to the report stream

Two topologies are available: `single` (mt64, one feedback word) and `triple`
(mt64rec2, three distinct feedback words).

Operating modes
---------------
  --mode full    production search: skip candidates whose delta exceeds
                 --max-defect (default mexp * 64) and retry after every
                 not-found until --count sets are accepted
  --mode quick   debug scan: report delta with no threshold and stop at the
                 first not-found attempt

The counter feeding `seq` counts down from --start-seq (default 0xffffffff).
When it runs out the run ends cleanly with "# search end: sequence has
wasted out." and exit status 0.

How to run
----------
1) One generator for mexp=521, id=1:
       python3 Dc64_Solver.py -m 521 -I 1 -c 1 -v
2) Eight shards, ids 100..107, files params.s0001-000.txt ... :
       python3 Dc64_Solver.py -m 19937 -I 100 -c 4 -f params --workers 8 \
         --summary params.summary.json
3) One externally launched shard (e.g. from a batch scheduler):
       python3 Dc64_Solver.py -m 2203 -I 100 -f params --rank $TASK_ID

Use --version to print a machine-readable environment/version block.

Version 1
---------
* single and triple feedback topologies
* full / quick driver modes
* multiprocessing shards (--workers) and external ranks (--rank)
* summary JSON with artifact sha256s
"""

from __future__ import annotations

import argparse
import dataclasses
import hashlib
import json
import os
import platform
import subprocess
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from multiprocessing import get_context
from typing import Dict, List, Optional, TextIO, Tuple

from mixed_sequence import UINT32_MAX, MixedSequence, SequenceExhausted
from mt64_generator import (
    ALLOWED_MEXP,
    ConfigError,
    MT64Generator,
    Topology,
    make_masks,
    state_words,
    validate_id,
    validate_mexp,
)
from mt_algorithms import (
    Equidistribution,
    RecursionSearch,
    check_period,
    defect_table,
    temper_generator,
)


program_name, program_version = "Dc64_Solver", 1


# ----------------------------- switches (set by args) -----------------------------
DEBUG = False
ASSERTIONS = False
ENV: Dict[str, object] = {}

MODES = ("full", "quick")


# ----------------------------- small utilities -----------------------------
def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()

def sha256_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            h.update(chunk)
    return h.hexdigest()

def read_self_source(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()

def sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()

def get_git_commit() -> Optional[str]:
    # Best effort: if this file is inside a git repo, return HEAD commit hash.
    try:
        r = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            cwd=os.path.dirname(os.path.abspath(__file__)),
        )
        s = (r.stdout or "").strip()
        return s if s else None
    except (OSError, subprocess.CalledProcessError):
        return None

def env_block(script_path: str, argv: List[str]) -> Dict[str, object]:
    src = read_self_source(script_path)
    return {
        "program": program_name,
        "program_version": program_version,
        "script_path": os.path.abspath(script_path),
        "script_sha256": sha256_bytes(src),
        "git_commit": get_git_commit(),
        "command_line": " ".join(argv),
        "python_version": sys.version.replace("\n", " "),
        "platform": platform.platform(),
    }

def integer(text: str) -> int:
    # decimal, 0x.. hex or 0o.. octal
    return int(text, 0)


class StreamOpenError(OSError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"can't open file: {path} ({reason})")
        self.path = path

def open_stream(path: str) -> TextIO:
    try:
        return open(path, "w", encoding="utf-8")
    except OSError as e:
        raise StreamOpenError(path, e.strerror or repr(e)) from e


# ----------------------------- options -----------------------------
@dataclass(frozen=True)
class SearchOptions:
    mexp: int
    id: int = 0
    seed: int = 1
    start_seq: int = UINT32_MAX
    count: int = 1
    log_count: int = 0          # trials per propose step; 0 = mexp // 2
    fixed_pos: int = 0          # 0 = drawn from the sequence
    max_defect: int = -1        # -1 = mexp * 64
    mode: str = "full"
    topology: str = "single"
    file: str = ""              # "" = report to stdout
    logfile: str = ""           # "" = log into the report stream
    verbose: bool = False


def validate_options(opt: SearchOptions) -> SearchOptions:
    """Check every field and fill in the mexp-dependent defaults.

    Raises ConfigError before any generator is built.
    """
    validate_mexp(opt.mexp)
    validate_id(opt.id)
    if opt.mode not in MODES:
        raise ConfigError(f"mode must be one of {', '.join(MODES)} (got {opt.mode!r})")
    try:
        topology = Topology(opt.topology)
    except ValueError:
        raise ConfigError(f"topology must be single or triple (got {opt.topology!r})") from None
    if opt.seed < 0:
        raise ConfigError(f"seed must be non-negative (got {opt.seed})")
    if not (1 <= opt.start_seq <= UINT32_MAX):
        raise ConfigError(f"start-seq must be 1 <= seq <= {UINT32_MAX:#x} (got {opt.start_seq})")
    if opt.count < 1:
        raise ConfigError(f"count must be positive (got {opt.count})")
    if opt.log_count < 0:
        raise ConfigError(f"log-count must be non-negative (got {opt.log_count})")
    if opt.fixed_pos:
        size = state_words(opt.mexp)
        if topology is not Topology.SINGLE:
            raise ConfigError("fixed-pos is only available for the single topology")
        if not (1 <= opt.fixed_pos < size):
            raise ConfigError(f"fixed-pos must be 1 <= fixed-pos < {size} (got {opt.fixed_pos})")
    if opt.max_defect < -1:
        raise ConfigError(f"max-defect must be >= -1 (-1 = mexp*64) (got {opt.max_defect})")
    return dataclasses.replace(
        opt,
        log_count=opt.log_count or opt.mexp // 2,
        max_defect=opt.mexp * 64 if opt.max_defect < 0 else opt.max_defect,
    )


# ----------------------------- search driver -----------------------------
@dataclass
class SearchResult:
    accepted: int = 0
    not_found: int = 0
    skipped: int = 0
    trials: int = 0
    exhausted: bool = False
    records: List[str] = field(default_factory=list)


def _write_defect_table(log: TextIO, mexp: int, veq: List[int]) -> None:
    for v, k, d in defect_table(mexp, veq):
        log.write(f"k({v}) = {k}\td({v}) = {d}\n")


def _assert_accepted(g: MT64Generator) -> None:
    upper, lower = make_masks(g.mexp)
    if (upper | lower) != 0xFFFFFFFFFFFFFFFF or (upper & lower) != 0:
        raise RuntimeError(f"mask split broken for mexp={g.mexp}")
    probe = g.clone()
    probe.seed(1)
    pc = check_period(probe)
    if not pc.ok:
        raise RuntimeError(
            f"accepted parameters fail the period check: {g.get_param_string()} "
            f"(deg={pc.degree} irreducible={pc.irreducible} jump_ok={pc.jump_ok})")


def search(opt: SearchOptions, out: TextIO, log: TextIO) -> SearchResult:
    """Run the propose/temper/evaluate/accept loop until opt.count sets are
    accepted, the quick mode sees a not-found, or the sequence runs out.

    `opt` must have passed validate_options().
    """
    topology = Topology(opt.topology)
    quick = opt.mode == "quick"
    mx = MixedSequence(opt.start_seq, opt.seed)
    g = MT64Generator(opt.mexp, opt.id, topology)
    if opt.fixed_pos > 0:
        g.set_fixed_pos(opt.fixed_pos)
    if opt.verbose:
        log.write(f"#search start id = {opt.id} at {utc_now_iso()}\n")
        log.write(f"#seed = {opt.seed}, seq = {opt.start_seq}\n")
        log.flush()

    ars = RecursionSearch(g, mx)
    res = SearchResult()
    header_written = False
    try:
        while res.accepted < opt.count:
            found = ars.start(opt.log_count)
            res.trials = ars.count
            if not found:
                res.not_found += 1
                log.write(f"# search not found: {g.id}, {g.seq}\n")
                log.flush()
                if quick:
                    break
                continue
            log.write(f"# search found: {g.id}, {g.seq}\n# tempering search start...\n")
            temper_generator(g)
            veq, delta = Equidistribution(g, 64).get_all_equidist()
            if not quick and delta > opt.max_defect:
                res.skipped += 1
                log.write(f"# search skipped: {g.id}, {g.seq}; dd = {delta}\n")
                log.flush()
                continue
            if ASSERTIONS:
                _assert_accepted(g)
            if not header_written:
                out.write(f"{g.get_header_string()}, delta\n")
                header_written = True
            line = f"{g.get_param_string()},{delta}"
            out.write(line + "\n")
            out.flush()
            res.records.append(line)
            res.accepted += 1
            if DEBUG:
                _write_defect_table(log, opt.mexp, veq)
            log.flush()
    except SequenceExhausted:
        res.trials = ars.count
        res.exhausted = True
        log.write("# search end: sequence has wasted out.\n")
        log.flush()
        return res
    if opt.verbose:
        log.write(f"#search end at {utc_now_iso()}\n")
        log.flush()
    return res


def run_search(opt: SearchOptions) -> SearchResult:
    """Open the streams named in `opt` (stdout when unnamed) and run one search."""
    out = open_stream(opt.file) if opt.file else sys.stdout
    try:
        log = open_stream(opt.logfile) if opt.logfile else out
        try:
            return search(opt, out, log)
        finally:
            if log is not out:
                log.close()
    finally:
        if out is not sys.stdout:
            out.close()


# ----------------------------- sharding -----------------------------
def shard_options(opt: SearchOptions, rank: int) -> SearchOptions:
    """Options for process `rank`: id offset by rank, rank-qualified file names."""
    if rank < 0:
        raise ConfigError(f"rank must be non-negative (got {rank})")
    id_ = validate_id(opt.id + rank)
    suffix = f".s{opt.seed:04d}-{rank:03d}"
    return dataclasses.replace(
        opt,
        id=id_,
        file=f"{opt.file}{suffix}.txt" if opt.file else "",
        logfile=f"{opt.logfile}{suffix}.log" if opt.logfile else "",
    )


@dataclass
class ShardResult:
    ok: bool
    rank: int
    id: int
    file: str
    logfile: str
    elapsed_sec: float
    result: Optional[SearchResult] = None
    error: str = ""


def _init_worker(debug: bool, assertions: bool) -> None:
    global DEBUG, ASSERTIONS
    DEBUG = debug
    ASSERTIONS = assertions


def worker_shard(args: Tuple[SearchOptions, int]) -> ShardResult:
    base, rank = args
    opt = shard_options(base, rank)
    t0 = time.time()
    try:
        result = run_search(opt)
    except StreamOpenError as e:
        return ShardResult(ok=False, rank=rank, id=opt.id, file=opt.file, logfile=opt.logfile,
                           elapsed_sec=time.time() - t0, error=str(e))
    return ShardResult(ok=True, rank=rank, id=opt.id, file=opt.file, logfile=opt.logfile,
                       elapsed_sec=time.time() - t0, result=result)


def run_sharded(opt: SearchOptions, workers: int) -> List[ShardResult]:
    """One independent search per rank 0..workers-1 in a process pool."""
    ctx = get_context("fork") if sys.platform == "darwin" else get_context()
    results: List[ShardResult] = []
    with ctx.Pool(
        processes=workers,
        initializer=_init_worker,
        initargs=(DEBUG, ASSERTIONS),
    ) as pool:
        for res in pool.imap_unordered(worker_shard, [(opt, r) for r in range(workers)], chunksize=1):
            status = "ok" if res.ok else f"FAILED {res.error}"
            acc = res.result.accepted if res.result else 0
            print(f"[>] rank={res.rank} id={res.id} accepted={acc} "
                  f"runtime={res.elapsed_sec:.1f}s {status}", file=sys.stderr)
            results.append(res)
    results.sort(key=lambda r: r.rank)
    return results


# ----------------------------- summary -----------------------------
def _artifact(path: str) -> Dict[str, Optional[str]]:
    return {
        "path": path or None,
        "sha256": sha256_file(path) if path and os.path.isfile(path) else None,
    }

def write_summary_json(
    path: str,
    opt: SearchOptions,
    shards: List[ShardResult],
    start_utc: str,
    end_utc: str,
    runtime_sec: float,
    env: Dict[str, object],
) -> None:
    totals = {"accepted": 0, "not_found": 0, "skipped": 0, "trials": 0}
    rows = []
    for s in shards:
        r = s.result or SearchResult()
        for key in totals:
            totals[key] += int(getattr(r, key))
        rows.append({
            "rank": s.rank,
            "id": s.id,
            "ok": s.ok,
            "error": s.error or None,
            "accepted": r.accepted,
            "not_found": r.not_found,
            "skipped": r.skipped,
            "trials": r.trials,
            "sequence_exhausted": r.exhausted,
            "runtime_seconds": round(s.elapsed_sec, 3),
            "report": _artifact(s.file),
            "log": _artifact(s.logfile),
        })
    summary = {
        "environment": env,
        "options": dataclasses.asdict(opt),
        "start_utc": start_utc,
        "end_utc": end_utc,
        "runtime_seconds": runtime_sec,
        "totals": totals,
        "shards": rows,
        "complete": all(s.ok for s in shards),
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, sort_keys=True)


# ----------------------------- CLI -----------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Dc64_Solver: search 64-bit Mersenne Twister parameters for one (mexp, id) slot.",
    )
    ap.add_argument("--version", action="store_true",
                    help="Print version/environment info and exit")
    ap.add_argument("-m", "--mexp", type=integer,
                    help="Mersenne exponent, one of " + " ".join(str(m) for m in ALLOWED_MEXP))
    ap.add_argument("-I", "--id", type=integer, default=0,
                    help="Generator id, 0 <= id < 2^32 (default 0).")
    ap.add_argument("-s", "--seed", type=integer, default=1,
                    help="Seed of the pseudo-random position stream (default 1).")
    ap.add_argument("-S", "--start-seq", type=integer, default=0,
                    help="Start of the seq counter; it counts DOWN (default 0xffffffff).")
    ap.add_argument("-c", "--count", type=integer, default=1,
                    help="Number of parameter sets to accept (default 1).")
    ap.add_argument("-C", "--log-count", type=integer, default=0,
                    help="Candidates tried per propose step (default mexp/2).")
    ap.add_argument("-X", "--fixed-pos", type=integer, default=0,
                    help="Pin the feedback position (single topology only).")
    ap.add_argument("-M", "--max-defect", type=integer, default=-1,
                    help="Skip candidates whose total defect exceeds this (default mexp*64, full mode).")
    ap.add_argument("-f", "--file", default="",
                    help="Report file (default stdout).  Sharded runs append .sSSSS-RRR.txt.")
    ap.add_argument("-L", "--logfile", default="",
                    help="Log file (default: the report stream).  Sharded runs append .sSSSS-RRR.log.")
    ap.add_argument("-v", "--verbose", action="store_true",
                    help="Log start/end timestamps, seed and start seq.")
    ap.add_argument("--mode", default="full", choices=list(MODES),
                    help="full: threshold on --max-defect, retry after not-found. "
                         "quick: no threshold, stop at the first not-found.")
    ap.add_argument("--topology", default="single", choices=[t.value for t in Topology],
                    help="single: mt64 (one feedback word). triple: mt64rec2 (three).")
    ap.add_argument("--workers", type=integer, default=1,
                    help="Run this many shards (ranks 0..N-1) in a process pool; needs --file.")
    ap.add_argument("--rank", type=integer, default=None,
                    help="Run as shard RANK of an externally launched set.")
    ap.add_argument("--summary", default="",
                    help="Write a JSON summary (environment, options, counts, sha256s) here.")
    ap.add_argument("--debug", action="store_true",
                    help="Log the k(v)/d(v) table of every accepted set.")
    ap.add_argument("--assertions", action="store_true",
                    help="Re-check mask invariants and the period of every accepted set.")
    return ap


def options_from_args(args: argparse.Namespace) -> SearchOptions:
    return SearchOptions(
        mexp=args.mexp,
        id=args.id,
        seed=args.seed,
        start_seq=args.start_seq if args.start_seq > 0 else UINT32_MAX,
        count=args.count,
        log_count=args.log_count,
        fixed_pos=args.fixed_pos,
        max_defect=args.max_defect,
        mode=args.mode,
        topology=args.topology,
        file=args.file,
        logfile=args.logfile,
        verbose=args.verbose,
    )


def main(argv: Optional[List[str]] = None) -> int:
    global DEBUG, ASSERTIONS, ENV

    ap = build_parser()
    args = ap.parse_args(argv)
    argv_list = sys.argv if argv is None else [sys.argv[0]] + list(argv)

    if args.version:
        info = env_block(__file__, argv_list)
        print(json.dumps(info, indent=2, sort_keys=True))
        return 0

    if args.mexp is None:
        ap.error("--mexp is required")
    try:
        opt = validate_options(options_from_args(args))
        if args.workers < 1:
            raise ConfigError(f"workers must be positive (got {args.workers})")
        if args.workers > 1 and args.rank is not None:
            raise ConfigError("--workers and --rank are mutually exclusive")
        if args.workers > 1 and not opt.file:
            raise ConfigError("--workers > 1 needs --file for the per-rank report files")
        ranks = [args.rank] if args.rank is not None else list(range(args.workers))
        for r in ranks:
            shard_options(opt, r)
    except ConfigError as e:
        ap.error(str(e))

    DEBUG = bool(args.debug)
    ASSERTIONS = bool(args.assertions)
    ENV = env_block(__file__, argv_list)

    print(f"[+] {program_name} v{program_version}", file=sys.stderr)
    print(f"[+] mexp={opt.mexp} id={opt.id} topology={opt.topology} mode={opt.mode}", file=sys.stderr)
    print(f"[+] seed={opt.seed} start_seq={opt.start_seq} count={opt.count} "
          f"log_count={opt.log_count} max_defect={opt.max_defect}", file=sys.stderr)
    if args.workers > 1:
        print(f"[+] workers={args.workers} ids={opt.id}..{opt.id + args.workers - 1}", file=sys.stderr)
    elif args.rank is not None:
        print(f"[+] rank={args.rank}", file=sys.stderr)
    print(f"[+] debug={DEBUG} assertions={ASSERTIONS}", file=sys.stderr)
    print(f"[+] start time (UTC): {utc_now_iso()}", file=sys.stderr)

    start_utc = utc_now_iso()
    t0 = time.time()
    if args.workers > 1:
        shards = run_sharded(opt, args.workers)
    else:
        rank = args.rank if args.rank is not None else 0
        one = shard_options(opt, rank) if args.rank is not None else opt
        try:
            result = run_search(one)
        except StreamOpenError as e:
            print(f"[!] can't open file: {e.path}", file=sys.stderr)
            return 1
        shards = [ShardResult(ok=True, rank=rank, id=one.id, file=one.file,
                              logfile=one.logfile, elapsed_sec=time.time() - t0,
                              result=result)]
    runtime = time.time() - t0

    failed = [s for s in shards if not s.ok]
    for s in failed:
        print(f"[!] rank={s.rank}: {s.error}", file=sys.stderr)

    if args.summary:
        write_summary_json(args.summary, opt, shards, start_utc, utc_now_iso(), runtime, ENV)

    accepted = sum(s.result.accepted for s in shards if s.result)
    print(f"[+] accepted={accepted} runtime={runtime:.1f}s", file=sys.stderr)
    print(f"[+] Finished. End time (UTC): {utc_now_iso()}", file=sys.stderr)
    return 1 if failed else 0


if __name__ == "__main__":
    if sys.platform == "darwin":
        try:
            import multiprocessing as mp
            mp.set_start_method("fork")
        except RuntimeError:
            pass
    sys.exit(main())
