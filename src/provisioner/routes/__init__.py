"""HTTP routes for the provisioning host surface."""

from .provisioning import create_provisioning_router

__all__ = ['create_provisioning_router']
