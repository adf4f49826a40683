"""HTTP API blueprints.

Endpoints are organized by concern: build lifecycle, manifest catalog and
the provisioning artifacts fetched by booting machines.
"""

from .builds import builds_bp
from .catalog import catalog_bp
from .provisioning import provisioning_bp

__all__ = ["builds_bp", "catalog_bp", "provisioning_bp"]
