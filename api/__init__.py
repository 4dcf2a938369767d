"""HTTP and WebSocket adapters for the gateway."""
