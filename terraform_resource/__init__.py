"""
Terraform Resource - provision per-environment infrastructure from a pipeline.

A Concourse resource whose `out` step applies or destroys a Terraform
configuration for a named environment, whose `in` step fetches the
environment's outputs, and whose `check` step reports its current version.

State lives either in the configured Terraform backend (one workspace per
environment) or as a state file in S3 or a local directory.
"""

from .errors import TerraformResourceError
from .runner import CheckRunner, InRunner, OutRunner
from .settings import ResourceSettings, get_settings, reload_settings

__version__ = "0.1.0"
__all__ = [
    "CheckRunner",
    "InRunner",
    "OutRunner",
    "ResourceSettings",
    "TerraformResourceError",
    "get_settings",
    "reload_settings",
]
