import io
import json

import pytest

import Dc64_Solver
from Dc64_Solver import (
    SearchOptions,
    main,
    search,
    shard_options,
    validate_options,
)
from mixed_sequence import UINT32_MAX
from mt64_generator import ConfigError, MT64Generator, MT64Param, Topology
from mt_algorithms import check_period


SINGLE_HEADER = "mexp, id, pos, mat, tmsk1, tmsk2, delta"
TRIPLE_HEADER = ("mexp, id, pos1, pos2, pos3, mat, tsh0, tsh1, tsh2, tsh3,"
                 " tmsk0, tmsk1, tmsk2, delta")


@pytest.fixture(autouse=True)
def _reset_switches(monkeypatch):
    monkeypatch.setattr(Dc64_Solver, "DEBUG", False)
    monkeypatch.setattr(Dc64_Solver, "ASSERTIONS", False)


def test_validate_fills_mexp_defaults():
    opt = validate_options(SearchOptions(mexp=607))
    assert opt.log_count == 303
    assert opt.max_defect == 607 * 64
    assert opt.start_seq == UINT32_MAX
    kept = validate_options(SearchOptions(mexp=607, log_count=9, max_defect=0))
    assert (kept.log_count, kept.max_defect) == (9, 0)


def test_max_defect_minus_one_means_default():
    assert validate_options(SearchOptions(mexp=521, max_defect=-1)).max_defect == 521 * 64
    with pytest.raises(ConfigError, match=r">= -1 \(-1 = mexp\*64\)"):
        validate_options(SearchOptions(mexp=521, max_defect=-2))


@pytest.mark.parametrize("kwargs", [
    {"mexp": 520},
    {"mexp": 521, "id": 1 << 32},
    {"mexp": 521, "id": -1},
    {"mexp": 521, "count": 0},
    {"mexp": 521, "mode": "fast"},
    {"mexp": 521, "topology": "double"},
    {"mexp": 521, "fixed_pos": 9},
    {"mexp": 521, "fixed_pos": 2, "topology": "triple"},
    {"mexp": 521, "start_seq": UINT32_MAX + 1},
])
def test_validate_rejects(kwargs):
    with pytest.raises(ConfigError):
        validate_options(SearchOptions(**kwargs))


def test_id_out_of_range_fails_before_search(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["-m", "521", "-I", str(1 << 32)])
    assert exc.value.code == 2
    captured = capsys.readouterr()
    assert "id must be" in captured.err
    assert captured.out == ""


@pytest.mark.parametrize("argv", [
    ["-m", "523"],
    ["-I", "1"],
    ["-m", "521", "--workers", "2"],
    ["-m", "521", "--workers", "2", "-f", "x", "--rank", "1"],
    ["-m", "521", "--topology", "triple", "-X", "3"],
    ["-m", "abc"],
])
def test_bad_command_lines_exit_2(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    assert exc.value.code == 2


def test_version_prints_environment(capsys):
    assert main(["--version"]) == 0
    info = json.loads(capsys.readouterr().out)
    assert info["program"] == "Dc64_Solver"
    assert len(info["script_sha256"]) == 64


def test_unopenable_report_file(tmp_path, capsys):
    bad = tmp_path / "missing" / "out.txt"
    assert main(["-m", "521", "-f", str(bad)]) == 1
    assert f"[!] can't open file: {bad}" in capsys.readouterr().err


def test_shards_have_disjoint_ids_and_distinct_files():
    base = validate_options(SearchOptions(mexp=521, id=100, seed=7, file="out", logfile="run"))
    shards = [shard_options(base, r) for r in range(12)]
    assert [s.id for s in shards] == list(range(100, 112))
    assert len({s.file for s in shards}) == 12
    assert len({s.logfile for s in shards}) == 12
    assert shards[3].file == "out.s0007-003.txt"
    assert shards[3].logfile == "run.s0007-003.log"
    assert all(s.seed == base.seed and s.count == base.count for s in shards)


def test_shard_without_files_keeps_streams_unnamed():
    s = shard_options(validate_options(SearchOptions(mexp=521)), 2)
    assert (s.file, s.logfile, s.id) == ("", "", 2)


def test_shard_id_overflow_rejected():
    base = validate_options(SearchOptions(mexp=521, id=(1 << 32) - 2))
    shard_options(base, 1)
    with pytest.raises(ConfigError):
        shard_options(base, 2)
    with pytest.raises(ConfigError):
        shard_options(base, -1)


def test_exhausted_sequence_ends_cleanly():
    opt = validate_options(SearchOptions(mexp=521, id=1, start_seq=1, count=3))
    out = io.StringIO()
    log = io.StringIO()
    res = search(opt, out, log)
    assert res.exhausted
    assert res.accepted <= 1
    assert log.getvalue().rstrip().endswith("# search end: sequence has wasted out.")


def test_quick_mode_stops_at_first_not_found():
    opt = validate_options(SearchOptions(mexp=521, id=2, log_count=1, count=2, mode="quick"))
    out = io.StringIO()
    res = search(opt, out, out)
    assert res.not_found <= 1
    assert res.not_found == 1 or res.accepted == 2
    if res.not_found:
        assert "# search not found: 2, " in out.getvalue()


def test_verbose_logs_start_seed_and_seq():
    opt = validate_options(SearchOptions(mexp=521, id=5, seed=9, start_seq=1, verbose=True))
    log = io.StringIO()
    search(opt, io.StringIO(), log)
    text = log.getvalue()
    assert text.startswith("#search start id = 5 at ")
    assert "#seed = 9, seq = 1\n" in text


@pytest.mark.slow
def test_end_to_end_single_record(tmp_path):
    report = tmp_path / "params.txt"
    logfile = tmp_path / "params.log"
    summary = tmp_path / "summary.json"
    rc = main(["-m", "521", "-I", "1", "-s", "1", "-c", "1", "-v",
               "-f", str(report), "-L", str(logfile), "--summary", str(summary),
               "--debug", "--assertions"])
    assert rc == 0

    lines = report.read_text().splitlines()
    assert lines[0] == SINGLE_HEADER
    assert len(lines) == 2
    fields = lines[1].split(",")
    assert len(fields) == 7
    assert fields[:2] == ["521", "1"]
    assert all(len(f) == 16 for f in fields[3:6])
    assert int(fields[6]) >= 0

    log = logfile.read_text()
    assert "# search found: 1, " in log
    assert "k(64) = " in log

    data = json.loads(summary.read_text())
    assert data["totals"]["accepted"] == 1
    assert data["complete"] is True
    assert data["shards"][0]["report"]["sha256"] is not None

    param = MT64Param.parse(lines[1])
    g = MT64Generator.from_param(param)
    g.seed(1)
    assert check_period(g).ok


@pytest.mark.slow
def test_triple_topology_record_shape():
    opt = validate_options(SearchOptions(mexp=521, id=8, topology="triple"))
    out = io.StringIO()
    log = io.StringIO()
    res = search(opt, out, log)
    assert res.accepted == 1
    header, record = out.getvalue().splitlines()
    assert header == TRIPLE_HEADER
    param = MT64Param.parse(record, Topology.TRIPLE)
    assert len(set(param.positions)) == 3
    assert param.shifts == (26, 17, 33, 39)
    assert param.tmsk0 == 0xFFFFFFFFFFFFFFFF


@pytest.mark.slow
def test_max_defect_zero_skips_everything_until_exhausted():
    opt = validate_options(SearchOptions(mexp=521, id=1, start_seq=400, max_defect=0, count=1))
    out = io.StringIO()
    log = io.StringIO()
    res = search(opt, out, log)
    # a 64-bit MT with mexp=521 cannot reach delta 0
    assert res.accepted == 0
    assert res.exhausted
    assert out.getvalue() == ""
    if res.skipped:
        assert "# search skipped: 1, " in log.getvalue()
        assert "; dd = " in log.getvalue()


def test_rank_run_uses_rank_file_names(tmp_path, monkeypatch):
    calls = []

    def fake_search(opt, out, log):
        calls.append(opt)
        return Dc64_Solver.SearchResult()

    monkeypatch.setattr(Dc64_Solver, "search", fake_search)
    base = tmp_path / "params"
    assert main(["-m", "521", "-I", "10", "-s", "3", "-f", str(base), "-L", str(base), "--rank", "4"]) == 0
    assert calls[0].id == 14
    assert (tmp_path / "params.s0003-004.txt").exists()
    assert (tmp_path / "params.s0003-004.log").exists()
