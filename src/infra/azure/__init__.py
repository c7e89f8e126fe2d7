"""Azure resource composition for the SonarQube deployment.

Example:
    from src.infra.azure import compose, load_deployment_config, render_template

    config = load_deployment_config(Path("parameters/main.parameters.json"))
    graph = compose(config)
    template = render_template(graph)
"""

from .composer import (
    FLAG_NAMES,
    ResourceNames,
    check_all_variants,
    check_configuration,
    compose,
    parameter_values,
)
from .config import DeploymentConfig, ProxyKind, RestartPolicy, load_deployment_config
from .resources import (
    Condition,
    OutputDescriptor,
    Ref,
    ResourceDescriptor,
    ResourceGraph,
)
from .template import render_parameters, render_template, write_deployment_files
from .validation import GraphIssue, GraphValidationResult, check_graph, validate_graph

__all__ = [
    # Configuration
    "DeploymentConfig",
    "ProxyKind",
    "RestartPolicy",
    "load_deployment_config",
    # Graph model
    "Condition",
    "OutputDescriptor",
    "Ref",
    "ResourceDescriptor",
    "ResourceGraph",
    # Composition
    "FLAG_NAMES",
    "ResourceNames",
    "check_all_variants",
    "check_configuration",
    "compose",
    "parameter_values",
    # Validation
    "GraphIssue",
    "GraphValidationResult",
    "check_graph",
    "validate_graph",
    # Rendering
    "render_parameters",
    "render_template",
    "write_deployment_files",
]
