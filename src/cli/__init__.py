"""Main CLI application module.

This module provides the main entry point for the SonarQube deployment CLI.

Command Groups:
- azure: SonarQube on Azure Container Instances deployment
- images: Image promotion into Azure Container Registry
"""

import typer

from .commands import azure_app, images_app
from .context import build_cli_context

# Create the main CLI application
app = typer.Typer(
    help="🛠️  SonarQube on Azure - Deployment Tool",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(azure_app, name="azure", help="Azure deployment commands")
app.add_typer(images_app, name="images", help="Image promotion commands")


@app.callback()
def _init(ctx: typer.Context) -> None:
    # One context per invocation, shared by all subcommands
    ctx.obj = build_cli_context()


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
