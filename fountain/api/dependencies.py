"""Route Dependencies — hand the lifespan-built ServiceContainer to route handlers."""

from fastapi import Request

from fountain.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container
