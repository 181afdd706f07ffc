"""mysqlrelay: provision an Ubuntu VM as a MySQL traffic forwarder.

Core design goals:
- Checkpointed and resumable
- Idempotent steps verified against live system state
- Two backends: Nginx TCP stream proxy or Cloudflare Tunnel
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
