"""Unit blueprints for the WordPress CMS deployment."""

from stacklayer.blueprints.cms import build_cms_blueprint
from stacklayer.blueprints.compute import declare_compute
from stacklayer.blueprints.database import declare_database
from stacklayer.blueprints.edge import declare_edge
from stacklayer.blueprints.governance import declare_governance
from stacklayer.blueprints.network import declare_network

__all__ = [
    "build_cms_blueprint",
    "declare_compute",
    "declare_database",
    "declare_edge",
    "declare_governance",
    "declare_network",
]
