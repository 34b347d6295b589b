#!/usr/bin/env python3
"""
Block Relay Service
Receives block confirmations from the node, republishes them to the owning
wallet over MQTT and provisions broker credentials for new accounts.
"""

import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional
from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from redis.exceptions import RedisError
from common.error_handling import BusinessLogicError, ErrorCodes, ServiceError, add_error_handlers
from common.mqtt import BlockPublisher, ControlChannel, get_client
from common.rainode import RaiNodeClient
from common.redis_client import AccountDirectory
from common.schemas import CreateAccount, RpcAction, UpdateServerMap
from common.settings import settings
from common.tracing import relay_tracer, tracing_middleware
from relay_service.db import make_engine, make_session_factory
from relay_service.models import Base
from relay_service.provisioner import AccountProvisioner
from relay_service.router import BlockRouter

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

@dataclass
class RelayServices:
    """Client handles the endpoints work with; built at startup or injected"""
    router: BlockRouter
    provisioner: AccountProvisioner
    directory: AccountDirectory
    node: RaiNodeClient

def build_services():
    """Connect the real backing services. Returns the services and a cleanup callable."""
    engine = make_engine()
    if settings.init_db:
        Base.metadata.create_all(bind=engine)
        logger.info("Created vmq_auth_acl table")

    directory = AccountDirectory.from_url(settings.redis_url)
    control = ControlChannel(get_client())
    control.connect()
    node = RaiNodeClient()

    services = RelayServices(
        router=BlockRouter(directory, BlockPublisher(control.client)),
        provisioner=AccountProvisioner(
            make_session_factory(engine),
            settings.acl_publish,
            settings.acl_subscribe,
            settings.acl_mountpoint,
        ),
        directory=directory,
        node=node,
    )

    async def cleanup():
        logger.info("Cleaning up...")
        control.disconnect()
        await directory.close()
        node.close()
        engine.dispose()

    return services, cleanup

def create_app(services: Optional[RelayServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cleanup = None
        if services is None:
            app.state.services, cleanup = build_services()
        else:
            app.state.services = services
        logger.info(f"Relay service started on port {settings.server_port}")
        yield
        if cleanup is not None:
            await cleanup()

    app = FastAPI(title="Block Relay Service", version="1.0.0", lifespan=lifespan)
    add_error_handlers(app)

    @app.middleware("http")
    async def add_tracing(request: Request, call_next):
        return await tracing_middleware(request, call_next, relay_tracer)

    @app.post("/callback")
    async def callback(request: Request, background_tasks: BackgroundTasks):
        """Node callback entry point; always acknowledged straight away"""
        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError as e:
            logger.error(f"Callback body is not JSON: {e}")
            return {}
        background_tasks.add_task(
            request.app.state.services.router.route, body, getattr(request.state, "trace_id", None)
        )
        return {}

    @app.post("/rpc")
    async def rpc(request: Request):
        """The RPC actions offered to wallets"""
        try:
            params = await request.json()
        except ValueError:
            raise BusinessLogicError(ErrorCodes.INVALID_INPUT, "body is not JSON")
        if not isinstance(params, dict):
            raise BusinessLogicError(ErrorCodes.INVALID_INPUT, "body is not a JSON object")

        logger.debug(f"RPC action {params.get('action')}")
        try:
            action = RpcAction(params.get("action"))
        except ValueError:
            raise BusinessLogicError(ErrorCodes.UNKNOWN_ACTION, "unknown action")
        return await RPC_HANDLERS[action](request.app.state.services, params)

    @app.get("/health")
    async def health():
        return {"ok": True, "service": "relay"}

    return app

def _parse(model, params: Dict[str, Any]):
    try:
        return model.model_validate(params)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(loc) for loc in first.get("loc", []))
        raise BusinessLogicError(ErrorCodes.INVALID_INPUT, f"invalid {field}: {first.get('msg')}", field=field)

async def create_account(services: RelayServices, params: Dict[str, Any]):
    req = _parse(CreateAccount, params)
    await run_in_threadpool(services.provisioner.create_account, req.token, req.tokenpass)
    return {}

async def available_supply(services: RelayServices, params: Dict[str, Any]):
    return await run_in_threadpool(services.node.call, params)

def read_server_status(path: str) -> Dict[str, Any]:
    # Lets operators put up a message for wallets whose calls are failing
    if os.path.exists(path):
        try:
            with open(path) as f:
                return json.load(f)
        except ValueError as e:
            logger.error(f"Ignoring malformed status file {path}: {e}")
    return {"status": "ok"}

async def canoe_server_status(services: RelayServices, params: Dict[str, Any]):
    return await run_in_threadpool(read_server_status, settings.status_file)

async def quota_full(services: RelayServices, params: Dict[str, Any]):
    return {"full": False}

async def update_server_map(services: RelayServices, params: Dict[str, Any]):
    req = _parse(UpdateServerMap, params)
    try:
        await services.directory.register_accounts(req.wallet, req.accounts)
    except RedisError as e:
        raise ServiceError(ErrorCodes.SERVICE_UNAVAILABLE, "account directory unavailable", e) from e
    return {"status": "ok"}

RPC_HANDLERS: Dict[RpcAction, Callable[[RelayServices, Dict[str, Any]], Awaitable[Any]]] = {
    RpcAction.CREATE_ACCOUNT: create_account,
    RpcAction.AVAILABLE_SUPPLY: available_supply,
    RpcAction.CANOE_SERVER_STATUS: canoe_server_status,
    RpcAction.QUOTA_FULL: quota_full,
    RpcAction.UPDATE_SERVER_MAP: update_server_map,
}

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.server_port)
