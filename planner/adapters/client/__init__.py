"""Client facade used by the desktop shell to reach the RPC services."""
