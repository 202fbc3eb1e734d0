"""HTTP and WebSocket surface for AccessHub."""
