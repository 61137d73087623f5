"""Services - discovery, convergent deletion, constraint lifecycle and the orchestrator."""
