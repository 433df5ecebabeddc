"""Tests for the command-line entry point."""

from convert_service.main import main, read_inputs
from tests.helpers import png_bytes


def test_convert_writes_outputs_and_reports_failures(tmp_path, capsys):
    good = tmp_path / "photo.png"
    good.write_bytes(png_bytes((20, 10)))
    bad = tmp_path / "broken.png"
    bad.write_bytes(b"")
    out = tmp_path / "out"

    code = main(["convert", str(good), str(bad), "--to", "to-png", "--out", str(out)])

    assert code == 1
    assert (out / "converted-photo.png").exists()
    assert not (out / "converted-broken.png").exists()
    printed = capsys.readouterr().out
    assert "[1/2] photo.png: ✓ completed" in printed
    assert "[2/2] broken.png: ✗" in printed


def test_convert_all_ok(tmp_path):
    src = tmp_path / "photo.png"
    src.write_bytes(png_bytes())

    assert main(["convert", str(src), "--to", "to-pdf", "--out", str(tmp_path / "out")]) == 0
    assert (tmp_path / "out" / "converted-photo.pdf").read_bytes().startswith(b"%PDF-")


def test_convert_unsupported_type(tmp_path, capsys):
    src = tmp_path / "photo.png"
    src.write_bytes(png_bytes())

    assert main(["convert", str(src), "--to", "to-xlsx", "--out", str(tmp_path)]) == 2
    assert "not supported" in capsys.readouterr().out


def test_convert_missing_file(tmp_path):
    assert main(["convert", str(tmp_path / "nope.png"), "--to", "to-png"]) == 2


def test_types_lists_keys(capsys):
    assert main(["types"]) == 0
    out = capsys.readouterr().out
    assert "to-webp" in out
    assert "to-odp" in out and "not implemented" in out


def test_read_inputs_guesses_media_type(tmp_path):
    svg = tmp_path / "logo.svg"
    svg.write_text("<svg xmlns='http://www.w3.org/2000/svg'/>")

    [file] = read_inputs([str(svg)])

    assert file.media_type == "image/svg+xml"
    assert file.name == "logo.svg"
