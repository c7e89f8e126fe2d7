import pytest
import typer

from src.cli.shared.console import with_error_handling
from src.infra.errors import DeploymentError, PreflightFailure


def test_with_error_handling_handles_deployment_error():
    """Test that DeploymentError exits with code 1."""
    @with_error_handling
    def _command() -> None:
        raise DeploymentError("Boom", details="extra")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_subclasses():
    """Test that DeploymentError subclasses exit with code 1."""
    @with_error_handling
    def _command() -> None:
        raise PreflightFailure("Registry not reachable")

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 1


def test_with_error_handling_handles_keyboard_interrupt():
    """Test that Ctrl-C exits with code 130."""
    @with_error_handling
    def _command() -> None:
        raise KeyboardInterrupt

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 130


def test_with_error_handling_lets_exit_through():
    """Test that typer.Exit passes through unchanged."""
    @with_error_handling
    def _command() -> None:
        raise typer.Exit(0)

    with pytest.raises(typer.Exit) as excinfo:
        _command()

    assert excinfo.value.exit_code == 0
