"""
Dependency Injection for Gateway API.

Manage request handler dependencies using FastAPI Depends.
"""

from typing import Annotated

from fastapi import Depends, Request

from ..config import GatewayConfig
from ..services.function_registry import FunctionRegistry
from ..services.invoker import FunctionInvoker
from ..services.loader import FunctionLoader


def get_gateway_config(request: Request) -> GatewayConfig:
    return request.app.state.config


def get_function_registry(request: Request) -> FunctionRegistry:
    return request.app.state.function_registry


def get_function_loader(request: Request) -> FunctionLoader:
    return request.app.state.function_loader


def get_function_invoker(request: Request) -> FunctionInvoker:
    return request.app.state.function_invoker


# Service Dependency Type Aliases
GatewayConfigDep = Annotated[GatewayConfig, Depends(get_gateway_config)]
FunctionRegistryDep = Annotated[FunctionRegistry, Depends(get_function_registry)]
FunctionLoaderDep = Annotated[FunctionLoader, Depends(get_function_loader)]
FunctionInvokerDep = Annotated[FunctionInvoker, Depends(get_function_invoker)]
