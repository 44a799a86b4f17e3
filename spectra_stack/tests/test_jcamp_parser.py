import logging

import numpy as np
import pytest

from spectra_stack.engine.units import XUnitsKind, YUnitsKind
from spectra_stack.io.jcamp import (
    Encoding,
    NoSpectralDataError,
    decode,
    decode_data_block_to_affn,
    iter_jcamp_files,
    read_jcamp,
)
from spectra_stack.io.jcamp_header import MetadataEntry, RawLine

HEADER = """##TITLE={title}
##JCAMP-DX=5.01
##DATA TYPE=INFRARED SPECTRUM
##XUNITS={xunits}
##YUNITS={yunits}
##XFACTOR={xfactor}
##YFACTOR={yfactor}
"""


def make_jcamp(body, title="Test Spectrum", xunits="1/CM", yunits="TRANSMITTANCE", xfactor=1, yfactor=1):
    return HEADER.format(title=title, xunits=xunits, yunits=yunits, xfactor=xfactor, yfactor=yfactor) + body


def test_minimal_affn_decodes_ascending():
    text = make_jcamp("##FIRSTX=4000\n##DELTAX=-1\n##XYDATA=(X++(Y..Y))\n4000 0.9 0.91 0.92\n##END=\n")

    result = decode(text)

    np.testing.assert_allclose(result.signal.x, [3998, 3999, 4000])
    np.testing.assert_allclose(result.signal.y, [0.92, 0.91, 0.9])
    assert result.signal.y_units is YUnitsKind.TRANSMITTANCE
    assert result.signal.x_units is XUnitsKind.WAVENUMBER
    assert result.min_wavenumber == 3998
    assert result.max_wavenumber == 4000
    assert result.encoding is Encoding.AFFN
    assert result.advisories == ()


def test_decode_expands_multi_line_xpp_block():
    body = """##FIRSTX=4000
##DELTAX=-1
##NPOINTS=11
##XYDATA=(X++(Y..Y))
4000 0.10 0.20 0.30 0.40 0.50
3995 0.60 0.70 0.80 0.90 1.00
3990 1.10
##END="""
    result = decode(make_jcamp(body, title="Compressed Spectrum"))

    np.testing.assert_allclose(result.signal.x, np.linspace(3990, 4000, 11))
    np.testing.assert_allclose(result.signal.y, np.linspace(1.1, 0.1, 11))
    assert result.signal.title == "Compressed Spectrum"


def test_decode_reads_only_first_table():
    body = """##DELTAX=-1
##XYDATA=(X++(Y..Y))
4000 0.1 0.2
3998 0.3 0.4
##XYDATA=(X++(Y..Y))
4000 0.5 0.6
3998 0.7 0.8
##END="""
    result = decode(make_jcamp(body))
    np.testing.assert_allclose(result.signal.x, [3997, 3998, 3999, 4000])
    np.testing.assert_allclose(result.signal.y, [0.4, 0.3, 0.2, 0.1])


def test_out_of_order_lines_are_sorted():
    body = """##XYDATA=(XY..XY)
1000 0.5
3000 0.7
2000 0.6
1500 0.55
##END="""
    result = decode(make_jcamp(body))
    assert np.all(np.diff(result.signal.x) > 0)
    np.testing.assert_allclose(result.signal.x, [1000, 1500, 2000, 3000])
    np.testing.assert_allclose(result.signal.y, [0.5, 0.55, 0.6, 0.7])


def test_duplicate_x_keeps_last_value():
    body = "##XYDATA=(XY..XY)\n1000 0.5\n1001 0.6\n1000 0.8\n##END="
    result = decode(make_jcamp(body))
    np.testing.assert_allclose(result.signal.x, [1000, 1001])
    np.testing.assert_allclose(result.signal.y, [0.8, 0.6])


def test_factors_are_applied():
    body = "##DELTAX=-2\n##XYDATA=(X++(Y..Y))\n2000 100 200 300\n##END="
    result = decode(make_jcamp(body, xfactor=0.5, yfactor=0.001))
    np.testing.assert_allclose(result.signal.x, [996, 998, 1000])
    np.testing.assert_allclose(result.signal.y, [0.3, 0.2, 0.1])


def test_zero_factor_is_treated_as_one():
    body = "##XYDATA=(XY..XY)\n1000 0.5\n##END="
    result = decode(make_jcamp(body, yfactor=0))
    np.testing.assert_allclose(result.signal.y, [0.5])


def test_wavelength_axis_is_converted_and_sorted():
    body = "##XYDATA=(XY..XY)\n2.5 0.1\n5.0 0.2\n10.0 0.3\n##END="
    result = decode(make_jcamp(body, xunits="MICROMETERS", yunits="ABSORBANCE"))
    np.testing.assert_allclose(result.signal.x, [1000, 2000, 4000])
    np.testing.assert_allclose(result.signal.y, [0.3, 0.2, 0.1])
    assert result.signal.x_units is XUnitsKind.WAVELENGTH_UM
    assert result.signal.y_units is YUnitsKind.ABSORBANCE


def test_compressed_dif_dup_table():
    body = """##FIRSTX=1000
##LASTX=1007
##NPOINTS=8
##XYDATA=(X++(Y..Y))
1000A0JJJ
1003A3JU
1006A6J
##END="""
    result = decode(make_jcamp(body, yfactor=0.1))
    np.testing.assert_allclose(result.signal.x, np.arange(1000, 1008))
    np.testing.assert_allclose(result.signal.y, np.arange(10, 18) * 0.1)
    assert result.encoding is Encoding.DUP
    assert result.skipped_tokens == 0


def test_unrecognised_units_are_advisory(caplog):
    body = "##XYDATA=(XY..XY)\n10 0.5\n20 0.6\n##END="
    with caplog.at_level(logging.WARNING, logger="spectra_stack.io.jcamp"):
        result = decode(make_jcamp(body, xunits="SECONDS", yunits="COUNTS"))
    np.testing.assert_allclose(result.signal.x, [10, 20])
    assert result.signal.x_units is XUnitsKind.UNKNOWN
    assert result.signal.y_units is YUnitsKind.TRANSMITTANCE
    assert [a.code for a in result.advisories] == ["unsupported_units", "unsupported_units"]
    assert "SECONDS" in caplog.text


def test_missing_deltax_is_advisory():
    result = decode(make_jcamp("##XYDATA=(X ++(Y..Y))\n1000 0.5 0.6 0.7\n##END=\n"))
    np.testing.assert_allclose(result.signal.x, [1000])
    np.testing.assert_allclose(result.signal.y, [0.5])
    codes = [a.code for a in result.advisories]
    assert codes == ["missing_deltax"]
    assert "dropped 2" in result.advisories[0].message


def test_x_checkpoint_drift_is_advisory(caplog):
    body = "##DELTAX=1\n##XYDATA=(X++(Y..Y))\n1000 0.1 0.2\n1010 0.3 0.4\n##END=\n"
    with caplog.at_level(logging.DEBUG, logger="spectra_stack.io.jcamp"):
        result = decode(make_jcamp(body))
    assert [a.code for a in result.advisories] == ["x_checkpoint_drift"]
    np.testing.assert_allclose(result.signal.x, [1000, 1001, 1010, 1011])
    assert "expected X position" in caplog.text


def test_ambiguous_encoding_falls_back_to_affn():
    body = "##XYDATA=(XY..XY)\n1000 0.5 x\n1001 0.6\n##END="
    result = decode(make_jcamp(body))
    assert result.encoding is Encoding.AFFN
    assert "ambiguous_encoding" in [a.code for a in result.advisories]
    assert "malformed_tokens" in [a.code for a in result.advisories]


def test_header_entries_are_returned_in_order():
    body = "$$ note\n##XYDATA=(XY..XY)\n1000 0.5\n##END="
    result = decode(make_jcamp(body))
    assert isinstance(result.header_entries[0], MetadataEntry)
    assert result.header_entries[0].key == "TITLE"
    assert result.header_entries[-1] == RawLine("$$ note")
    assert result.headers["XUNITS"] == "1/CM"


def test_missing_table_raises():
    with pytest.raises(NoSpectralDataError) as excinfo:
        decode(make_jcamp("##END=\n"))
    assert "XYDATA" in excinfo.value.reason
    assert isinstance(excinfo.value, ValueError)


def test_empty_table_raises():
    with pytest.raises(NoSpectralDataError):
        decode(make_jcamp("##XYDATA=(X++(Y..Y))\n\n##END=\n"))


def test_table_without_valid_points_raises():
    with pytest.raises(NoSpectralDataError):
        decode(make_jcamp("##XYDATA=(XY..XY)\n? ?\n##END=\n"))


def test_decode_data_block_to_affn_returns_none_for_plain_affn():
    text = make_jcamp("##DELTAX=-1\n##XYDATA=(X++(Y..Y))\n4000 0.9 0.91 0.92\n##END=\n")
    assert decode_data_block_to_affn(text) is None


def test_decode_data_block_to_affn_expands_compressed_table():
    text = make_jcamp("##DELTAX=1\n##XYDATA=(X++(Y..Y))\n1000A0JJ\n##END=\n", yfactor=0.1)
    block = decode_data_block_to_affn(text)
    assert block.splitlines() == ["##XYDATA=(XY..XY)", "1000 10", "1001 11", "1002 12", "##END="]

    expanded = text.split("##XYDATA")[0] + block + "\n"
    assert decode_data_block_to_affn(expanded) is None
    np.testing.assert_allclose(decode(expanded).signal.y, decode(text).signal.y)


def test_decode_data_block_to_affn_refuses_unresolved_deltax():
    text = "##TITLE=t\n##XYDATA=(X++(Y..Y))\n1000A0JJ\n##END=\n"
    assert decode_data_block_to_affn(text) is None


def test_decode_data_block_to_affn_without_table():
    assert decode_data_block_to_affn(make_jcamp("##END=\n")) is None


def test_read_jcamp_and_iter_files(tmp_path):
    text = make_jcamp("##XYDATA=(XY..XY)\n1000 0.5\n1001 0.6\n##END=\n")
    (tmp_path / "a.jdx").write_text(text)
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "b.DX").write_bytes(text.encode("utf-8") + b"$$ \xff\n")
    (tmp_path / "notes.txt").write_text("not a spectrum")

    files = list(iter_jcamp_files(tmp_path))
    assert [p.name for p in files] == ["a.jdx", "b.DX"]
    for path in files:
        assert len(read_jcamp(path).signal) == 2
