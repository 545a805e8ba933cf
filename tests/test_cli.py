import polars as pl
from typer.testing import CliRunner

from reflex_virtual_grid.cli import _build_app_code, app
from reflex_virtual_grid.config import GridConfig

runner = CliRunner()


def test_view_missing_file_exits_with_error(tmp_path):
    result = runner.invoke(app, ["view", str(tmp_path / "nope.csv")])
    assert result.exit_code == 1
    assert "file not found" in result.output


def test_view_rejects_unsupported_extension(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("x")
    result = runner.invoke(app, ["view", str(path)])
    assert result.exit_code == 1
    assert "unsupported file type" in result.output


def test_view_rejects_invalid_grid_options(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("id,name\n1,a\n")
    result = runner.invoke(app, ["view", str(path), "--row-height", "0"])
    assert result.exit_code == 1
    assert "row_height" in result.output


def test_view_rejects_unknown_log_level(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("id,name\n1,a\n")
    result = runner.invoke(app, ["view", str(path), "--log-level", "chatty"])
    assert result.exit_code == 1


def test_generated_app_wires_source_and_config(tmp_path):
    path = tmp_path / 'my "data".parquet'
    config = GridConfig(row_height=32, page_size=100, ttl=60)
    code = _build_app_code(path, config, "client_id", 700, "Clients", "DEBUG")

    assert "class ViewerState(VirtualGridMixin, rx.State)" in code
    assert "id_field='client_id'" in code
    assert "'page_size': 100" in code
    assert "'row_height': 32" in code
    assert "container_height=700" in code
    assert 'my \\"data\\".parquet' in code
    assert 'level="DEBUG"' in code
    assert "__" + "SAFE_PATH__" not in code
    compile(code, "viewer_app.py", "exec")


def test_info_prints_columns_and_row_count(tmp_path):
    path = tmp_path / "clients.parquet"
    pl.DataFrame({"id": [1, 2, 3], "city": ["Porto", "Lisbon", "Graz"]}).write_parquet(path)
    result = runner.invoke(app, ["info", str(path)])
    assert result.exit_code == 0
    assert "city" in result.output
    assert "rows: 3" in result.output


def test_info_reports_missing_file(tmp_path):
    result = runner.invoke(app, ["info", str(tmp_path / "gone.csv")])
    assert result.exit_code == 1
    assert "File not found" in result.output
