from typer.testing import CliRunner

import markdd
from markdd.ui.cli import app


def test_get_version_matches_public_api() -> None:
    assert markdd.get_version() == markdd.__version__
    assert isinstance(markdd.__version__, str)


def test_cli_version_flag() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0, result.stdout
    assert result.stdout.strip() == markdd.get_version()
