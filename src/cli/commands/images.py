"""Image promotion commands.

Copies the SonarQube and reverse proxy images from a public registry into
an Azure Container Registry, so the container group never pulls from
Docker Hub at runtime.
"""

from typing import Annotated

import typer

from src.cli.context import get_cli_context
from src.cli.shared.console import console, with_error_handling
from src.infra.azure import ProxyKind
from src.infra.images import DOCKER_HUB, build_image_specs, registry_login_server

# ---------------------------------------------------------------------------
# Typer App
# ---------------------------------------------------------------------------

images_app = typer.Typer(
    name="images",
    help="Container image promotion commands.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@images_app.command()
@with_error_handling
def promote(
    ctx: typer.Context,
    registry: Annotated[
        str,
        typer.Option(
            "--registry",
            "-r",
            envvar="ACR_NAME",
            help="Destination Azure Container Registry name (not the login server)",
        ),
    ],
    sonarqube_version: Annotated[
        str,
        typer.Option(
            "--sonarqube-version",
            help="SonarQube image tag",
        ),
    ] = "community",
    proxy: Annotated[
        ProxyKind,
        typer.Option(
            "--proxy",
            help="Reverse proxy image to promote",
        ),
    ] = ProxyKind.NGINX,
    proxy_version: Annotated[
        str | None,
        typer.Option(
            "--proxy-version",
            help="Proxy image tag (default: alpine for nginx, 2-alpine for caddy)",
        ),
    ] = None,
    source_registry: Annotated[
        str,
        typer.Option(
            "--source-registry",
            help="Public registry to pull from",
        ),
    ] = DOCKER_HUB,
    source_username: Annotated[
        str | None,
        typer.Option(
            "--source-username",
            envvar="DOCKERHUB_USERNAME",
            help="Source registry user (anonymous pulls when omitted)",
        ),
    ] = None,
    source_password: Annotated[
        str | None,
        typer.Option(
            "--source-password",
            envvar="DOCKERHUB_TOKEN",
            help="Source registry password or access token",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            help="Re-transfer images whose tag already exists in the registry",
        ),
    ] = False,
) -> None:
    """Promote public images into a private Azure Container Registry.

    Images already present in the registry are skipped, so the command can
    be re-run safely. A failure on one image does not stop the others; the
    exit code is 1 if any image failed.

    Examples:
        sonar-deploy images promote --registry mysonaracr
        sonar-deploy images promote -r mysonaracr --proxy caddy --force
        DOCKERHUB_TOKEN=... sonar-deploy images promote -r mysonaracr --source-username me
    """
    from src.cli.deployment.azure_deployer import ImagePromoter, RegistryCredentials

    console.print_header("Promoting Images to Azure Container Registry")

    if bool(source_username) != bool(source_password):
        console.handle_error(
            "Source credentials are incomplete",
            "Provide both --source-username and --source-password (or DOCKERHUB_TOKEN).",
        )

    credentials = None
    if source_username and source_password:
        credentials = RegistryCredentials(source_username, source_password)

    images = build_image_specs(
        destination=registry_login_server(registry),
        sonarqube_version=sonarqube_version,
        proxy=proxy.value,
        proxy_image_version=proxy_version,
        source_registry=source_registry,
    )

    cli_ctx = get_cli_context(ctx)
    promoter = ImagePromoter(
        cli_ctx.commands,
        cli_ctx.console.console,
        registry,
        images,
        source_registry=source_registry,
        source_credentials=credentials,
        force=force,
    )
    report = promoter.promote()

    if not report.succeeded:
        console.error("One or more images failed to promote")
    raise typer.Exit(report.exit_code)
