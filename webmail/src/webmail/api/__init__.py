"""HTTP surface: REST routes under ``/api`` and RPC procedures under ``/api/trpc``.

Interfaces:
  ``create_app``, ``Services``, ``build_services`` and ``run_maintenance``.
"""

from .app import create_app
from .services import Services, build_services, run_maintenance

__all__ = ["create_app", "Services", "build_services", "run_maintenance"]
