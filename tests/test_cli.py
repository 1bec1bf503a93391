"""
CLI tests: report building, listing input, objdump invocation and errors.
"""

import io
import json
import subprocess

import pytest
import yaml

from simdscan import cli
from simdscan.scanner import scan

LISTING = """\
0000000000401000 <main>:
  401000:\tmovdqa 0xff4(%rip),%xmm0
  401008:\tpxor   %xmm1,%xmm1
  40100c:\tmovdqa %xmm0,(%rdi)
  401010:\tvmovaps %ymm1,%ymm0
  401014:\tret
"""


def _run(argv, capsys):
    cli.main(argv)
    return capsys.readouterr()


class TestBuildReport:
    def test_field_order_without_detail(self):
        report = cli.build_report("a.out", scan(LISTING.splitlines()))
        assert list(report) == ["binary", "has_simd", "isa_summary", "total_simd_insts"]
        assert report["isa_summary"] == {"SSE2": 3, "AVX": 1}
        assert report["total_simd_insts"] == 4

    def test_detail(self):
        report = cli.build_report("a.out", scan(LISTING.splitlines(), detail=True))
        assert report["isa_details"]["SSE2"] == {
            "unique_mnemonics": 2,
            "occurrences": {"movdqa": 2, "pxor": 1},
        }

    def test_top_limits_occurrences_only(self):
        report = cli.build_report("a.out", scan(LISTING.splitlines(), detail=True), top=1)
        assert report["isa_details"]["SSE2"] == {
            "unique_mnemonics": 2,
            "occurrences": {"movdqa": 2},
        }


class TestMain:
    def test_listing_file_json(self, tmp_path, capsys):
        listing = tmp_path / "a.dis"
        listing.write_text(LISTING)
        out = _run(["--listing", str(listing)], capsys).out
        report = json.loads(out)
        assert report == {
            "binary": str(listing),
            "has_simd": True,
            "isa_summary": {"SSE2": 3, "AVX": 1},
            "total_simd_insts": 4,
        }

    def test_listing_stdin_yaml(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(LISTING))
        out = _run(["--listing", "-", "-f", "yaml", "--show-insts"], capsys).out
        report = yaml.safe_load(out)
        assert report["binary"] == "-"
        assert report["isa_details"]["AVX"] == {
            "unique_mnemonics": 1,
            "occurrences": {"vmovaps": 1},
        }

    def test_no_instructions_warns(self, tmp_path, capsys):
        listing = tmp_path / "empty.dis"
        listing.write_text("Disassembly of section .text:\n\n")
        captured = _run(["--listing", str(listing)], capsys)
        assert "[warn] no instructions found" in captured.err
        assert json.loads(captured.out)["has_simd"] is False

    def test_jobs(self, tmp_path, capsys):
        listing = tmp_path / "a.dis"
        listing.write_text(LISTING)
        report = json.loads(_run(["--listing", "-j", "2", str(listing)], capsys).out)
        assert report["isa_summary"] == {"SSE2": 3, "AVX": 1}

    def test_runs_objdump(self, tmp_path, monkeypatch, capsys):
        binary = tmp_path / "a.out"
        binary.write_bytes(b"\x7fELF")
        calls = []

        def fake_check_output(cmd, **kwargs):
            calls.append(cmd)
            return LISTING

        monkeypatch.setattr(subprocess, "check_output", fake_check_output)
        report = json.loads(_run(["--objdump", "llvm-objdump", str(binary)], capsys).out)
        assert calls == [["llvm-objdump", "-d", "--no-show-raw-insn", str(binary)]]
        assert report["total_simd_insts"] == 4

    def test_objdump_output_with_invalid_utf8(self, tmp_path, monkeypatch, capsys):
        binary = tmp_path / "a.out"
        binary.write_bytes(b"\x7fELF")
        raw = b"0000000000401000 <caf\xe9>:\n  401000:\taddps  %xmm1,%xmm0\n"

        def fake_check_output(cmd, **kwargs):
            assert kwargs["errors"] == "replace"
            return raw.decode("utf-8", errors=kwargs["errors"])

        monkeypatch.setattr(subprocess, "check_output", fake_check_output)
        report = json.loads(_run([str(binary)], capsys).out)
        assert report["isa_summary"] == {"SSE": 1}

    def test_top_help_mentions_unique_count(self, capsys):
        with pytest.raises(SystemExit):
            cli.parse_args(["--help"])
        assert "unique_mnemonics still counts them all" in " ".join(capsys.readouterr().out.split())

    def test_objdump_from_environment(self, monkeypatch):
        monkeypatch.setenv("SIMDSCAN_OBJDUMP", "/opt/binutils/bin/objdump")
        assert cli.parse_args(["a.out"]).objdump == "/opt/binutils/bin/objdump"


class TestErrors:
    def test_missing_binary(self, tmp_path):
        with pytest.raises(SystemExit, match=r"\[error\] .* not found"):
            cli.main([str(tmp_path / "nope")])

    def test_missing_listing(self, tmp_path):
        with pytest.raises(SystemExit, match=r"\[error\] cannot read"):
            cli.main(["--listing", str(tmp_path / "nope.dis")])

    def test_objdump_failure(self, tmp_path, monkeypatch, capsys):
        binary = tmp_path / "a.out"
        binary.write_bytes(b"junk")

        def fail(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd, output="file format not recognized\n")

        monkeypatch.setattr(subprocess, "check_output", fail)
        with pytest.raises(SystemExit, match=r"objdump failed \(1\)"):
            cli.main([str(binary)])
        assert "file format not recognized" in capsys.readouterr().err

    def test_objdump_not_installed(self, tmp_path, monkeypatch):
        binary = tmp_path / "a.out"
        binary.write_bytes(b"junk")

        def missing(cmd, **kwargs):
            raise FileNotFoundError(cmd[0])

        monkeypatch.setattr(subprocess, "check_output", missing)
        with pytest.raises(SystemExit, match="not found"):
            cli.main(["--objdump", "no-such-objdump", str(binary)])

    @pytest.mark.parametrize("flag", ["--top", "--jobs"])
    @pytest.mark.parametrize("value", ["0", "-3", "many"])
    def test_rejects_bad_counts(self, flag, value):
        with pytest.raises(SystemExit) as exc:
            cli.parse_args([flag, value, "a.out"])
        assert exc.value.code == 2
