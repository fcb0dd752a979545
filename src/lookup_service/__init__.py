"""HTTP service and admin console for the lookup orchestrator."""
