from __future__ import annotations

from pathlib import Path

import pytest

from services.converter import ConversionError, Grib2JsonConverter


def _script(tmp_path: Path, body: str) -> list[str]:
    script = tmp_path / "grib2json.sh"
    script.write_text(body, encoding="utf-8")
    return ["sh", str(script)]


def test_build_args_matches_grib2json_cli() -> None:
    converter = Grib2JsonConverter("/opt/grib2json/bin/grib2json")
    args = converter.build_args(Path("raw/2024031812.f000"), Path("json/2024031812.json"))
    assert args == [
        "/opt/grib2json/bin/grib2json",
        "--data",
        "--output",
        "json/2024031812.json",
        "--names",
        "--compact",
        "raw/2024031812.f000",
    ]


@pytest.mark.anyio
async def test_convert_writes_output(tmp_path: Path) -> None:
    converter = Grib2JsonConverter(_script(tmp_path, 'printf \'[{"header":{}}]\' > "$3"\n'))
    raw_path = tmp_path / "2024031812.f000"
    raw_path.write_bytes(b"GRIB")
    json_path = tmp_path / "2024031812.json"

    await converter.convert(raw_path, json_path)

    assert json_path.read_text(encoding="utf-8") == '[{"header":{}}]'


@pytest.mark.anyio
async def test_convert_raises_on_nonzero_exit(tmp_path: Path) -> None:
    converter = Grib2JsonConverter(_script(tmp_path, "echo 'corrupt GRIB record' >&2\nexit 3\n"))

    with pytest.raises(ConversionError) as excinfo:
        await converter.convert(tmp_path / "missing.f000", tmp_path / "out.json")

    assert "exited with 3" in str(excinfo.value)
    assert "corrupt GRIB record" in str(excinfo.value)


@pytest.mark.anyio
async def test_convert_raises_when_binary_missing(tmp_path: Path) -> None:
    converter = Grib2JsonConverter(str(tmp_path / "no-such-grib2json"))

    with pytest.raises(ConversionError):
        await converter.convert(tmp_path / "in.f000", tmp_path / "out.json")


@pytest.mark.anyio
async def test_convert_times_out(tmp_path: Path) -> None:
    converter = Grib2JsonConverter(_script(tmp_path, "exec sleep 5\n"), timeout=0.2)

    with pytest.raises(ConversionError) as excinfo:
        await converter.convert(tmp_path / "in.f000", tmp_path / "out.json")

    assert "timed out" in str(excinfo.value)
