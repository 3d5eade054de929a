import pytest

from Dc64_Checker import main, read_param_lines


ZERO_MAT = "521,0,5,0000000000000000,0000000000000000,0000000000000000"


def test_period_check_passes_for_found_parameters(full_period_521, capsys):
    assert main(["--period", full_period_521.to_string()]) == 0
    out = capsys.readouterr().out
    assert "deg(poly) = 521" in out
    assert "poly is prime. OK." in out


def test_period_check_fails_for_zero_mat(capsys):
    assert main(["--period", ZERO_MAT]) == 1
    assert "NG." in capsys.readouterr().out


def test_sympy_cross_check_on_rejected_polynomial(capsys):
    assert main(["--sympy-check", "--period", ZERO_MAT]) == 1


@pytest.mark.slow
def test_equidistribution_line_and_table(tempered_521, capsys):
    line = tempered_521.to_string()
    assert main(["-v", line + ",999"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[:3] == ["mexp:521", f"id:{tempered_521.id}", f"pos:{tempered_521.positions[0]}"]
    record = next(l for l in out if l.startswith(line + ","))
    assert int(record.rsplit(",", 1)[1]) >= 0
    assert "k(1) = 521\td(1) = 0" in out
    assert out[-1].startswith("k(64) = ")


@pytest.mark.slow
def test_reverse_output_reports_lsb_side(tempered_521, capsys):
    assert main(["-r", "-v", tempered_521.to_string()]) == 0
    assert "(LSB side)" in capsys.readouterr().out


@pytest.mark.slow
def test_retemper_reproduces_solver_masks(full_period_521, tempered_521, capsys):
    assert main(["--retemper", "--period", full_period_521.to_string()]) == 0
    out = capsys.readouterr().out
    assert f"retempered: {tempered_521.to_string()}" in out


def test_file_mode_skips_header_and_comments(tmp_path, full_period_521, capsys):
    report = tmp_path / "params.txt"
    report.write_text(
        "mexp, id, pos, mat, tmsk1, tmsk2, delta\n"
        "# search found: 1, 4294967295\n"
        f"{full_period_521.to_string()},0\n"
        "\n"
        f"{ZERO_MAT},0\n"
    )
    assert read_param_lines(str(report)) == [f"{full_period_521.to_string()},0", f"{ZERO_MAT},0"]
    assert main(["--period", "-f", str(report)]) == 1
    out = capsys.readouterr().out
    assert "Checked 2 entries" in out
    assert "records 2" in out


@pytest.mark.parametrize("argv", [
    [],
    ["521,0,5,zz,0,0"],
    ["--topology", "triple", ZERO_MAT],
    ["-f", "x.txt", ZERO_MAT],
])
def test_bad_arguments_exit_2(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    assert exc.value.code == 2


def test_missing_file(tmp_path, capsys):
    assert main(["-f", str(tmp_path / "none.txt")]) == 1
    assert "[!] can't open file:" in capsys.readouterr().err


def test_verbose_prints_parameter_fields_first(capsys):
    assert main(["-v", "--period", ZERO_MAT]) == 1
    out = capsys.readouterr().out.splitlines()
    assert out[:6] == [
        "mexp:521",
        "id:0",
        "pos:5",
        "mat:0000000000000000",
        "tmsk1:0000000000000000",
        "tmsk2:0000000000000000",
    ]
    assert out[6].startswith("deg(poly) = ")
