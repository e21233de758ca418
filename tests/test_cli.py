"""Tests for the command line entry points."""

import json

from typer.testing import CliRunner

from terraform_resource import __version__
from terraform_resource.cli import app

runner = CliRunner()


class TestCli:
    """Tests for stdin/stdout handling of the step commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_check_without_env_name(self):
        """Test that check with no environment prints an empty version list."""
        result = runner.invoke(app, ["check"], input=json.dumps({"source": {"backend_type": "s3"}}))

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_in_after_destroy(self, temp_dir):
        """Test that the get after a destroy echoes the requested version."""
        request = {
            "source": {"backend_type": "s3"},
            "version": {"env_name": "staging", "serial": "3"},
            "params": {"action": "destroy"},
        }

        result = runner.invoke(app, ["in", str(temp_dir)], input=json.dumps(request))

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {
            "version": {"env_name": "staging", "serial": "3"},
            "metadata": [],
        }

    def test_invalid_request(self, temp_dir):
        result = runner.invoke(app, ["out", str(temp_dir)], input='{"params": {"action": "explode"}}')

        assert result.exit_code == 1

    def test_empty_stdin(self):
        result = runner.invoke(app, ["check"], input="")

        assert result.exit_code == 1
