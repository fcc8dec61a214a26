import orjson
from typer.testing import CliRunner

import dnp.cli.main as cli
from dnp.cli.main import app


runner = CliRunner()


def test_ingest_relevance_reports_window():
    result = runner.invoke(app, ["ingest", "relevance", "24-26.02.2026", "--on", "2026-02-26"])
    assert result.exit_code == 0
    assert "start=2026-02-24 end=2026-02-26 relevant=true" in result.output


def test_ingest_relevance_rejects_unparsable_text():
    result = runner.invoke(app, ["ingest", "relevance", "32.13.2024"])
    assert result.exit_code == 1


def test_geo_filter_writes_surviving_features(tmp_path):
    boundary = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {},
                "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]},
            }
        ],
    }
    features = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "properties": {"n": 1}, "geometry": {"type": "Point", "coordinates": [5, 5]}},
            {"type": "Feature", "properties": {"n": 2}, "geometry": {"type": "Point", "coordinates": [50, 5]}},
        ],
    }
    boundary_path = tmp_path / "boundary.geojson"
    input_path = tmp_path / "features.geojson"
    output_path = tmp_path / "filtered.geojson"
    boundary_path.write_bytes(orjson.dumps(boundary))
    input_path.write_bytes(orjson.dumps(features))

    result = runner.invoke(
        app,
        ["geo", "filter", "--input", str(input_path), "--boundary", str(boundary_path), "--output", str(output_path)],
    )

    assert result.exit_code == 0
    filtered = orjson.loads(output_path.read_bytes())
    assert [f["properties"]["n"] for f in filtered["features"]] == [1]


def test_notify_run_fails_fast_without_push_config(monkeypatch):
    monkeypatch.delenv("PUSH_API_URL", raising=False)
    monkeypatch.delenv("PUSH_API_KEY", raising=False)

    result = runner.invoke(app, ["notify", "run"])

    assert result.exit_code == 1
    assert "PUSH_API_URL" in result.output


def test_ingest_relevance_uses_configured_timezone(monkeypatch):
    seen = {}

    def fake_is_relevant(date_range, reference, tz):
        seen["tz"] = tz
        return True

    monkeypatch.setenv("TIMEZONE", "America/New_York")
    monkeypatch.setattr(cli, "is_relevant", fake_is_relevant)

    result = runner.invoke(app, ["ingest", "relevance", "24-26.02.2026"])

    assert result.exit_code == 0
    assert str(seen["tz"]) == "America/New_York"
