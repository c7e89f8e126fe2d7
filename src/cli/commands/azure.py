"""Azure deployment commands.

This module provides commands for rendering, checking and submitting the
SonarQube deployment, and for uploading sonar.properties to a running one.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.table import Table

from src.cli.context import get_cli_context
from src.cli.shared.console import console, with_error_handling
from src.infra.azure import FLAG_NAMES, check_all_variants

if TYPE_CHECKING:
    from src.cli.deployment.azure_deployer import AzureDeployer


# ---------------------------------------------------------------------------
# Deployer Factory
# ---------------------------------------------------------------------------


def _get_deployer(ctx: typer.Context) -> "AzureDeployer":
    """Get the Azure deployer instance.

    Returns:
        AzureDeployer instance configured for current project
    """
    from src.cli.deployment.azure_deployer import AzureDeployer

    cli_ctx = get_cli_context(ctx)
    return AzureDeployer(cli_ctx.console.console, cli_ctx.project_root, cli_ctx.commands)


def _resolve_parameters_file(ctx: typer.Context, parameters_file: Path | None) -> Path:
    if parameters_file is not None:
        return parameters_file
    return get_cli_context(ctx).paths.default_parameters_file


# ---------------------------------------------------------------------------
# Typer App
# ---------------------------------------------------------------------------

azure_app = typer.Typer(
    name="azure",
    help="SonarQube on Azure Container Instances deployment commands.",
    no_args_is_help=True,
)

ParametersOption = Annotated[
    Path | None,
    typer.Option(
        "--parameters",
        "-p",
        help="Parameters file (default: parameters/main.parameters.json)",
    ),
]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@azure_app.command()
@with_error_handling
def render(
    ctx: typer.Context,
    parameters_file: ParametersOption = None,
    resource_group: Annotated[
        str | None,
        typer.Option(
            "--resource-group",
            "-g",
            help="Target resource group; resource names match what `up` deploys",
        ),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option(
            "--output-dir",
            "-o",
            help="Directory for main.json and main.parameters.json (default: .deploy)",
        ),
    ] = None,
) -> None:
    """Compose the resource graph and write the ARM template.

    The generated parameters file contains secrets and is written with
    owner-only permissions. Do not commit it.

    Examples:
        sonar-deploy azure render
        sonar-deploy azure render -g rg-sonarqube
        sonar-deploy azure render -p parameters/prod.yaml -o build/
    """
    console.print_header("Rendering ARM Template")

    deployer = _get_deployer(ctx)
    subscription_id = None
    if resource_group:
        subscription_id = deployer.check_prerequisites().subscription_id
    else:
        console.warn(
            "No resource group given: unless uniqueSuffix is set, resource names "
            "will differ from those `up` deploys."
        )
    config, graph = deployer.build(
        _resolve_parameters_file(ctx, parameters_file), resource_group, subscription_id
    )

    template_file = output_dir / "main.json" if output_dir else None
    params_file = output_dir / "main.parameters.json" if output_dir else None
    template_path, parameters_path = deployer.render(
        config, graph, template_file, params_file
    )

    console.ok(f"Composed {len(graph.declared)} resources")
    console.info(f"Template:   {template_path}")
    console.info(f"Parameters: {parameters_path}")
    console.warn("The parameters file contains secrets; do not commit it.")


@azure_app.command()
@with_error_handling
def check(
    ctx: typer.Context,
    parameters_file: ParametersOption = None,
) -> None:
    """Compose and validate every combination of the feature toggles.

    Every reference in every variant must resolve to a resource that exists
    whenever the referring resource exists.

    Examples:
        sonar-deploy azure check
    """
    console.print_header("Checking Deployment Variants")

    deployer = _get_deployer(ctx)
    config, _ = deployer.build(_resolve_parameters_file(ctx, parameters_file))
    variants = check_all_variants(config, deployer.constants)

    table = Table(title="Composed Variants")
    for flag in FLAG_NAMES:
        table.add_column(flag.replace("_", " "), justify="center")
    table.add_column("Resources", justify="right")
    table.add_column("Outputs", style="dim")

    for key, graph in variants.items():
        flags = dict(key)
        table.add_row(
            *("✓" if flags[name] else "·" for name in FLAG_NAMES),
            str(len(graph.declared)),
            ", ".join(
                output.name
                for output in graph.outputs
                if output.condition.holds_for(graph.flags)
            ),
        )

    console.print(table)
    console.ok(f"All {len(variants)} variants composed without dangling references")


@azure_app.command()
@with_error_handling
def up(
    ctx: typer.Context,
    resource_group: Annotated[
        str,
        typer.Option(
            "--resource-group",
            "-g",
            help="Target resource group (created if missing)",
        ),
    ],
    location: Annotated[
        str | None,
        typer.Option(
            "--location",
            "-l",
            help="Region for a new resource group (default: parameters location)",
        ),
    ] = None,
    parameters_file: ParametersOption = None,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip the confirmation prompt",
        ),
    ] = False,
) -> None:
    """Deploy SonarQube to Azure.

    This command:
    - Checks the Azure CLI is installed and logged in
    - Composes and renders the ARM template
    - Creates the resource group if needed
    - Validates, then submits the deployment
    - Prints the SonarQube URL and other outputs

    Examples:
        sonar-deploy azure up -g rg-sonarqube
        sonar-deploy azure up -g rg-sonarqube -l westeurope -y
    """
    console.print_header("Deploying SonarQube to Azure")

    if not console.confirm_action(
        f"Deploy SonarQube into resource group '{resource_group}'",
        "Resources in the template will be created or updated in place.",
        force=yes,
    ):
        console.print("[dim]Operation cancelled[/dim]")
        raise typer.Exit(0)

    deployer = _get_deployer(ctx)
    deployer.deploy(
        resource_group=resource_group,
        parameters_file=_resolve_parameters_file(ctx, parameters_file),
        location=location,
    )


@azure_app.command("upload-config")
@with_error_handling
def upload_config(
    ctx: typer.Context,
    resource_group: Annotated[
        str,
        typer.Option(
            "--resource-group",
            "-g",
            help="Resource group of the deployment",
        ),
    ],
    storage_account: Annotated[
        str,
        typer.Option(
            "--storage-account",
            "-s",
            help="Storage account holding the file shares",
        ),
    ],
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--file",
            "-f",
            help="sonar.properties file to upload (default: ./sonar.properties)",
        ),
    ] = None,
    container_group: Annotated[
        str | None,
        typer.Option(
            "--container-group",
            "-c",
            help="Container group name, shown in the restart hint",
        ),
    ] = None,
) -> None:
    """Upload sonar.properties to the deployment's config file share.

    Examples:
        sonar-deploy azure upload-config -g rg-sonarqube -s sonarqubeab12cd34
    """
    from src.cli.deployment.azure_deployer import ConfigUploader

    console.print_header("Uploading SonarQube Configuration")

    cli_ctx = get_cli_context(ctx)
    uploader = ConfigUploader(cli_ctx.commands, cli_ctx.console.console, cli_ctx.constants)
    uploader.upload(
        resource_group,
        storage_account,
        config_file or cli_ctx.paths.sonar_properties,
        container_group=container_group,
    )
