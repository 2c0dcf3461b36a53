"""Live signal service: storage, periodic loops and the HTTP/WebSocket API."""
