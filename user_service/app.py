import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Optional, TypeVar

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from starlette.requests import ClientDisconnect

from config import load_settings
from errors import ClientDisconnected, MalformedInput, StoreError
from records import build_record, parse_payload, storage_key
from store import UserStore, create_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Non-standard status used by proxies for "client closed request"
CLIENT_CLOSED_REQUEST = 499

router = APIRouter()


async def _wait_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def until_disconnect(request: Request, call: Awaitable[T]) -> T:
    """Await a store call, cancelling it if the client goes away first."""
    store_task = asyncio.ensure_future(call)
    watcher = asyncio.ensure_future(_wait_disconnect(request))
    try:
        done, _ = await asyncio.wait(
            {store_task, watcher}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (store_task, watcher):
            if not task.done():
                task.cancel()
    if store_task not in done:
        raise ClientDisconnected() from watcher.exception()
    return store_task.result()


def get_store(request: Request) -> UserStore:
    return request.app.state.store


@router.post("/users/", status_code=201)
async def create_user(request: Request, store: UserStore = Depends(get_store)):
    try:
        raw = await request.body()
    except ClientDisconnect:
        raise HTTPException(status_code=400, detail="request body could not be read")

    try:
        user_id, fields = build_record(parse_payload(raw))
    except MalformedInput as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        await until_disconnect(request, store.write_hash(storage_key(user_id), fields))
    except StoreError as e:
        logger.warning("failed to store user %s: %s", user_id, e)
        raise HTTPException(status_code=500, detail=str(e))

    logger.debug("stored user %s (%d fields)", user_id, len(fields))
    return Response(status_code=201)


@router.get("/users/{userid}")
async def get_user(userid: str, request: Request, store: UserStore = Depends(get_store)):
    try:
        info = await until_disconnect(request, store.read_hash(storage_key(userid)))
    except StoreError as e:
        logger.warning("failed to read user %s: %s", userid, e)
        raise HTTPException(status_code=500, detail=str(e))

    if not info:
        return Response(status_code=404)

    # Encode up front so a failure never ships a JSON content type
    try:
        body = json.dumps(info)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=500, detail=str(e))
    return Response(content=body, media_type="application/json")


@router.get("/health")
async def health(request: Request, store: UserStore = Depends(get_store)):
    try:
        await until_disconnect(request, store.ping())
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "ok"}


async def _client_disconnected(request: Request, exc: ClientDisconnected) -> Response:
    logger.info("client disconnected during %s %s", request.method, request.url.path)
    return Response(status_code=CLIENT_CLOSED_REQUEST)


def create_app(store: Optional[UserStore] = None) -> FastAPI:
    """Build the service. Without a store, one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        user_store = store if store is not None else create_store(load_settings())
        try:
            await user_store.ping()
        except StoreError as e:
            logger.error("failed to connect to user store - %s", e)
            raise
        logger.info("connected to user store")
        app.state.store = user_store
        try:
            yield
        finally:
            try:
                await user_store.close()
                logger.info("user store closed")
            except StoreError as e:
                logger.warning("failed to close user store: %s", e)

    app = FastAPI(lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(ClientDisconnected, _client_disconnected)
    return app


app = create_app()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    # uvicorn owns SIGINT/SIGTERM: it drains requests, then the lifespan closes the store
    uvicorn.run(create_app(create_store(settings)), host="0.0.0.0", port=settings.port)
    logger.info("application stopped")


if __name__ == "__main__":
    main()
