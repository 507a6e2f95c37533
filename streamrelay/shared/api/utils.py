import inspect
from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from .errors import E_INTERNAL, E_INVALID_PARAMS


def format_error(ex: BaseException) -> str:
    try:
        from traceback import TracebackException
        return ''.join(TracebackException.from_exception(ex).format())
    except Exception:
        import traceback
        return ''.join(traceback.format_exception(type(ex), ex, ex.__traceback__))


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get('BUILD_COMMIT', 'dev'))


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    errcode: str = E_INTERNAL
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])
    errmesg: str = 'We are sorry, an error occurred.'


def api_failure(errcode: str | None = None, errmesg: Exception | str | None = None, *, trace: Any = None):
    if not errcode:
        errcode = ApiFailure.model_fields['errcode'].default

    if isinstance(errmesg, Exception):
        errmesg = format_error(errmesg)

    if not errmesg:
        errmesg = ApiFailure.model_fields['errmesg'].default

    failure = ApiFailure(errcode=errcode, errmesg=errmesg)

    caller_frame = inspect.stack()[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(
        f'{failure.errcode} {failure.erresid}\n{failure.errmesg} '
        f'caller={caller_info} trace={trace}'
    )

    return failure


def check_error(results: ApiFailure | dict) -> tuple[bool, bool]:
    if isinstance(results, ApiFailure):
        return True, results.errcode == E_INTERNAL

    if isinstance(results, dict) and 'errcode' in results:
        return True, results['errcode'] == E_INTERNAL

    return False, False


def make_response(results, *, status_code: int | None = None):
    if isinstance(results, Exception):
        response = api_failure(errmesg=format_error(results))
        if status_code is None:
            status_code = 500
    else:
        response = results
        is_error, is_internal = check_error(results)
        if status_code is None:
            if is_error:
                status_code = 500 if is_internal else 400
            else:
                status_code = 200

    return ORJSONResponse(
        status_code=status_code,
        content=response.model_dump() if hasattr(response, 'model_dump') else response
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path, request.method, errors
    )

    failure = api_failure(E_INVALID_PARAMS, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


def load_routes(app: FastAPI, prefix: str = ''):
    """Include the `router` of every module under streamrelay/api/*/routers."""
    from ..config import config
    disabled_routes = [x.strip() for x in config.get('API_DISABLED', '').split(',') if x.strip()]
    logger.debug('disabled routes: {}', disabled_routes)

    package_root = Path(__file__).parent.parent.parent
    for x in sorted((package_root / 'api').rglob('routers/*.py')):
        if x.name == '__init__.py':
            continue

        relative_path = x.relative_to(package_root.parent)
        name = '.'.join(relative_path.with_suffix('').parts)
        if any(f'.{disabled_route}' in name for disabled_route in disabled_routes):
            logger.warning('disabled route module {}', name)
            continue

        module = import_module(name)
        if hasattr(module, 'router'):
            app.include_router(module.router, prefix=prefix)
            logger.info('Added routes in {}', name)

    for route_info in get_all_routes_info(app):
        methods = ','.join(sorted(route_info['methods']))
        logger.info('Loaded route: {:<12} {:<40} {}', methods, route_info['path'], route_info['endpoint'])


def get_all_routes_info(app: FastAPI):
    routes_info = []

    for route in app.routes:
        endpoint = getattr(route, 'endpoint', None)
        if endpoint is None:
            continue
        routes_info.append(
            {
                "methods": sorted(getattr(route, 'methods', None) or {'WS'}),
                "path": route.path,
                "name": route.name,
                "endpoint": getattr(endpoint, '__name__', str(endpoint)),
            }
        )

    return routes_info


@lru_cache
def get_worker_info():
    project_root = Path(__file__).parent.parent.parent.parent
    worker_name = environ.get('WORKER_NAME', project_root.name)

    parts = environ.get('BUILD_COMMIT', '').split('-')
    commit_id = parts[1] if len(parts) > 1 else 'dev'

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger():
    import sys
    import logging
    from ..config import config

    for name in ('websockets', 'websockets.client', 'websockets.server', 'uvicorn.error', 'granian'):
        logging.getLogger(name).setLevel(logging.ERROR)

    logger.remove()

    worker_name, commit_id, _ = get_worker_info()

    if config.get_bool('DEBUG'):
        logger_level = 'DEBUG'
        logger_format = (
            f'<yellow>{worker_name}:{commit_id}</yellow> | '
            '<green>{time:MM-DD HH:mm:ss.SSS}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | '
            '<level>{message}</level>'
        )
    else:
        logger_level = 'INFO'
        logger_format = (
            f'{worker_name}:{commit_id} | '
            '{time:MM-DD HH:mm:ss.SSS} | '
            '{level: <8} | '
            '{name}:{function}:{line} | '
            '{message}'
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)


def mask_secret(value: str | None, visible: int = 5) -> str:
    """Mask a secret for logging, keeping only the first few characters."""
    if not value:
        return "<empty>"
    return f"{value[:visible]}..."
