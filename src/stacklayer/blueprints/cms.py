"""Composition root for the WordPress CMS deployment."""

from __future__ import annotations

from stacklayer.blueprints.compute import declare_compute
from stacklayer.blueprints.database import declare_database
from stacklayer.blueprints.edge import declare_edge
from stacklayer.blueprints.governance import declare_governance
from stacklayer.blueprints.network import declare_network
from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.orchestration.context import DeploymentContext


def build_cms_blueprint(context: DeploymentContext) -> Blueprint:
    """
    Declare the five CMS units.

    Governance -> Network -> Database -> Compute -> Edge. Network waits on
    Governance and Edge on Compute explicitly; every other edge comes from an
    imported export. Edge lives in the edge region and reads the compute
    hostname through a replicated parameter.
    """
    blueprint = Blueprint(context)
    governance = declare_governance(blueprint)
    network = declare_network(blueprint, governance)
    database = declare_database(blueprint, network)
    compute = declare_compute(blueprint, network, database)
    declare_edge(blueprint, compute)
    return blueprint
