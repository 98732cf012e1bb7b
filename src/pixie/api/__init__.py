"""Pixie network layer and local bridge.

Modules
-------
client
    Async HTTP client for the remote Pixie API.
models
    Pydantic models for API and bridge request/response bodies.
main
    FastAPI bridge application and the ``main()`` CLI entry point.
"""
