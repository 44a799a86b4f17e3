import csv
import importlib.util
import io
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SCRIPT = REPO_ROOT / "scripts" / "jcamp_tool.py"

COMPRESSED = """##TITLE=Squeezed Sample
##JCAMP-DX=5.01
##OWNER=Example Lab
+All rights reserved.
##CAS REGISTRY NO=64-17-5
##XUNITS=1/CM
##YUNITS=TRANSMITTANCE
##YFACTOR=0.01
##FIRSTX=1000
##LASTX=1004
##NPOINTS=5
##XYDATA=(X++(Y..Y))
1000I0jJ%j
##END=
"""


def _load_tool():
    spec = importlib.util.spec_from_file_location("jcamp_tool", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    assert spec is not None and spec.loader is not None
    spec.loader.exec_module(module)
    return module


tool = _load_tool()


def run_cli(*args: str) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    cmd = [sys.executable, str(SCRIPT), *args]
    return subprocess.run(cmd, text=True, capture_output=True, env=env)


@pytest.fixture
def library(tmp_path):
    (tmp_path / "ethanol.jdx").write_text(COMPRESSED, encoding="utf-8")
    nested = tmp_path / "more"
    nested.mkdir()
    (nested / "blank.dx").write_text("##TITLE=Blank\n##XYDATA=(XY..XY)\n1000 1\n##END=\n", encoding="utf-8")
    return tmp_path


def test_normalize_key():
    assert tool.normalize_key("CAS REGISTRY NO") == "cas_registry_no"
    assert tool.normalize_key("SPECTROMETER/DATA SYSTEM") == "spectrometer_data_system"
    assert tool.normalize_key("  ") == "field"


def test_headers_json_with_field_filter(library):
    proc = run_cli("headers", str(library), "--fields", "title", "CAS REGISTRY NO", "owner")
    assert proc.returncode == 0, proc.stderr
    records = json.loads(proc.stdout)
    assert [r["path"] for r in records] == ["ethanol.jdx", "more/blank.dx"]
    target = records[0]
    assert set(target) == {"path", "title", "cas_registry_no", "owner"}
    assert target["title"] == "Squeezed Sample"
    assert target["cas_registry_no"] == "64-17-5"
    assert target["owner"] == "Example Lab\nAll rights reserved."
    assert records[1]["owner"] is None
    assert "[INFO] Indexed 2 file(s)" in proc.stderr


def test_headers_csv_with_raw_headers(library, capsys):
    assert tool.main(["headers", str(library), "--format", "csv", "--include-raw-headers"]) == 0
    rows = list(csv.DictReader(io.StringIO(capsys.readouterr().out)))
    assert rows[0]["path"] == "ethanol.jdx"
    assert rows[0]["yfactor"] == "0.01"
    raw = json.loads(rows[0]["_raw_headers"])
    assert raw[0] == {"label": "TITLE", "value": "Squeezed Sample"}


def test_headers_missing_root(tmp_path):
    proc = run_cli("headers", str(tmp_path / "missing"))
    assert proc.returncode != 0
    assert "Root directory not found" in proc.stderr


def test_expand_writes_affn_copy(library):
    source = library / "ethanol.jdx"
    proc = run_cli("expand", str(source))
    assert proc.returncode == 0, proc.stderr

    expanded = (library / "ethanol_affn.jdx").read_text(encoding="utf-8")
    assert "##OWNER=Example Lab\n+All rights reserved.\n" in expanded
    data = expanded.split("##XYDATA=(XY..XY)\n", 1)[1].splitlines()
    assert data == ["1000 90", "1001 89", "1002 90", "1003 90", "1004 89", "##END="]


def test_expand_plain_file_is_a_no_op(library, tmp_path):
    out = tmp_path / "out.dx"
    assert tool.main(["expand", str(library / "more" / "blank.dx"), "-o", str(out)]) == 1
    assert not out.exists()


def test_peaks_lists_extrema(library, tmp_path):
    recipe = tmp_path / "display.yaml"
    recipe.write_text("version: '0.1.0'\nparams:\n  wavenumber_min: 1000\n", encoding="utf-8")
    proc = run_cli("--verbose", "peaks", str(library / "ethanol.jdx"), "--recipe", str(recipe), "--max", "1003.5")
    assert proc.returncode == 0, proc.stderr
    rows = list(csv.reader(io.StringIO(proc.stdout)))
    assert rows[0] == ["wavenumber", "transmittance"]
    assert [row[0] for row in rows[1:]] == ["1001.0000"]
    assert "[DEBUG]" in proc.stderr


def test_peaks_absorbance(library, capsys):
    assert tool.main(["peaks", str(library / "ethanol.jdx"), "--units", "absorbance"]) == 0
    rows = list(csv.reader(io.StringIO(capsys.readouterr().out)))
    assert rows[0] == ["wavenumber", "absorbance"]
    assert [row[0] for row in rows[1:]] == ["1001.0000"]


def test_peaks_without_data(tmp_path):
    path = tmp_path / "empty.jdx"
    path.write_text("##TITLE=Empty\n##END=\n", encoding="utf-8")
    assert tool.main(["peaks", str(path)]) == 2
