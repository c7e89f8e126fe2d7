"""Render a ResourceGraph as an ARM deployment template.

The graph is already resolved for one configuration, so the template is
concrete: it contains no ``condition`` expressions, only the resources that
exist. Existing resources are addressed with ``resourceId()`` and never
emitted. Secrets are declared as ``securestring`` parameters and written to
a separate parameters document.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import SecretStr

from src.infra.constants import DEFAULT_CONSTANTS, DeploymentConstants

from .resources import (
    Concat,
    OutputDescriptor,
    Parameter,
    Ref,
    RefKind,
    ResourceDescriptor,
    ResourceGraph,
)


class TemplateRenderer:
    """Turns descriptors and references into ARM JSON."""

    def __init__(
        self, graph: ResourceGraph, constants: DeploymentConstants = DEFAULT_CONSTANTS
    ) -> None:
        self.graph = graph
        self.constants = constants

    def render(self) -> dict[str, Any]:
        """Render the complete template document."""
        parameters = {
            p.name: {"type": "securestring" if p.secure else "string"}
            for p in self._collect_parameters()
        }
        resources = [
            self._render_resource(d) for d in self.graph.ordered() if not d.existing
        ]
        outputs = {o.name: self._render_output(o) for o in self.graph.outputs}
        return {
            "$schema": self.constants.TEMPLATE_SCHEMA,
            "contentVersion": "1.0.0.0",
            "parameters": parameters,
            "resources": resources,
            "outputs": outputs,
        }

    # =========================================================================
    # Resources
    # =========================================================================

    def _render_resource(self, descriptor: ResourceDescriptor) -> dict[str, Any]:
        rendered: dict[str, Any] = {
            "type": descriptor.type,
            "apiVersion": descriptor.api_version,
            "name": descriptor.name,
        }
        if descriptor.scope is not None:
            target = self.graph[descriptor.scope.target]
            rendered["scope"] = f"{target.type}/{target.name}"
        if descriptor.location is not None:
            rendered["location"] = descriptor.location
        if descriptor.kind is not None:
            rendered["kind"] = descriptor.kind
        if descriptor.sku is not None:
            rendered["sku"] = self.value(descriptor.sku)
        if descriptor.identity is not None:
            rendered["identity"] = self.value(descriptor.identity)
        if descriptor.tags:
            rendered["tags"] = dict(descriptor.tags)
        if descriptor.properties:
            rendered["properties"] = self.value(descriptor.properties)

        depends_on = [
            f"[{self.resource_id_expr(self.graph[symbol])}]"
            for symbol in descriptor.dependencies()
            if not self.graph[symbol].existing
        ]
        if depends_on:
            rendered["dependsOn"] = depends_on
        return rendered

    def _render_output(self, output: OutputDescriptor) -> dict[str, Any]:
        return {"type": output.type, "value": self.value(output.value)}

    # =========================================================================
    # Values and expressions
    # =========================================================================

    def value(self, value: Any) -> Any:
        """Render a property value, turning references into expressions."""
        if isinstance(value, (Ref, Concat, Parameter)):
            return f"[{self.expr(value)}]"
        if isinstance(value, dict):
            return {self._key(k): self.value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.value(item) for item in value]
        return value

    def _key(self, key: Any) -> str:
        if isinstance(key, (Ref, Concat, Parameter)):
            return f"[{self.expr(key)}]"
        return str(key)

    def expr(self, value: Any) -> str:
        """Render ``value`` as an expression fragment (without brackets)."""
        if isinstance(value, Parameter):
            return f"parameters('{value.name}')"
        if isinstance(value, Concat):
            return f"concat({', '.join(self.expr(part) for part in value.parts)})"
        if isinstance(value, Ref):
            return self._ref_expr(value)
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            return f"'{escaped}'"
        return json.dumps(value)

    def resource_id_expr(self, descriptor: ResourceDescriptor) -> str:
        segments = ", ".join(f"'{s}'" for s in descriptor.name_segments)
        return f"resourceId('{descriptor.type}', {segments})"

    def _ref_expr(self, ref: Ref) -> str:
        target = self.graph[ref.target]
        rid = self.resource_id_expr(target)
        if ref.kind is RefKind.ID:
            base = rid
        elif ref.kind is RefKind.PROPERTIES:
            base = f"reference({rid}, '{target.api_version}')"
        else:
            base = f"listKeys({rid}, '{target.api_version}')"
        return base + "".join(f"[{p}]" if p.isdigit() else f".{p}" for p in ref.path)

    def _collect_parameters(self) -> list[Parameter]:
        found: dict[str, Parameter] = {}

        def walk(value: Any) -> None:
            if isinstance(value, Parameter):
                found.setdefault(value.name, value)
            elif isinstance(value, Concat):
                for part in value.parts:
                    walk(part)
            elif isinstance(value, dict):
                for key, item in value.items():
                    walk(key)
                    walk(item)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    walk(item)

        for descriptor in self.graph.declared:
            walk(descriptor.properties)
        for output in self.graph.outputs:
            walk(output.value)
        return list(found.values())


def render_template(
    graph: ResourceGraph, constants: DeploymentConstants = DEFAULT_CONSTANTS
) -> dict[str, Any]:
    """Render ``graph`` as an ARM template document."""
    return TemplateRenderer(graph, constants).render()


def render_parameters(
    template: dict[str, Any],
    values: dict[str, SecretStr],
    constants: DeploymentConstants = DEFAULT_CONSTANTS,
) -> dict[str, Any]:
    """Build the parameters document for the parameters ``template`` declares.

    Raises:
        KeyError: If the template declares a parameter without a value
    """
    return {
        "$schema": constants.PARAMETERS_SCHEMA,
        "contentVersion": "1.0.0.0",
        "parameters": {
            name: {"value": values[name].get_secret_value()}
            for name in template["parameters"]
        },
    }


def write_deployment_files(
    template: dict[str, Any],
    parameters: dict[str, Any],
    template_file: Path,
    parameters_file: Path,
) -> None:
    """Write the template and its parameters to disk.

    The parameters file holds secrets and is created readable by the owner only.
    """
    template_file.parent.mkdir(parents=True, exist_ok=True)
    parameters_file.parent.mkdir(parents=True, exist_ok=True)

    template_file.write_text(json.dumps(template, indent=2) + "\n", encoding="utf-8")

    fd = os.open(parameters_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(json.dumps(parameters, indent=2) + "\n")

    logger.info(f"Wrote template to {template_file}")
    logger.debug(f"Wrote parameters for {sorted(parameters['parameters'])} to {parameters_file}")
