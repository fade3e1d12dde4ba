"""Resource router: EC2 and CloudFormation listings over session credentials.

Endpoints:
    POST /resources/instances  - List EC2 instances in a region
    POST /resources/regions    - List EC2 regions
    POST /stacks               - List CloudFormation stacks in a region
    POST /stacks/details       - Describe one CloudFormation stack
"""
import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.config import get_config
from app.errors import (
    NotAuthenticatedError,
    ResourceQueryError,
    SessionNotFoundError,
    StackNotFoundError,
)
from app.sessions import SessionStore, get_session_store

from .schemas import RegionRequest, RegionsRequest, StackDetailsRequest
from .service import ResourceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["resources"])


def _service(store: SessionStore) -> ResourceService:
    return ResourceService(store, default_region=get_config().resources.default_region)


async def _query(key: str, fn, *args) -> JSONResponse:
    """Run one blocking query and wrap its result under *key*."""
    try:
        result = await asyncio.get_event_loop().run_in_executor(None, fn, *args)
    except (SessionNotFoundError, NotAuthenticatedError):
        return JSONResponse({"error": "Not authenticated or no credentials"}, status_code=401)
    except StackNotFoundError:
        return JSONResponse({"error": "Stack not found"}, status_code=404)
    except ResourceQueryError as e:
        logger.error("Resource query failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    # boto3 returns datetimes for launch/creation times
    return JSONResponse(jsonable_encoder({key: result}))


@router.post("/resources/instances")
async def list_instances(
    request: RegionRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """List EC2 instances, one flat record per instance."""
    return await _query("instances", _service(store).list_instances, request.session_id, request.region)


@router.post("/resources/regions")
async def list_regions(
    request: RegionsRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    return await _query("regions", _service(store).list_regions, request.session_id)


@router.post("/stacks")
async def list_stacks(
    request: RegionRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """List CloudFormation stacks in every non-deleted status."""
    return await _query("stacks", _service(store).list_stacks, request.session_id, request.region)


@router.post("/stacks/details")
async def stack_details(
    request: StackDetailsRequest,
    store: SessionStore = Depends(get_session_store),
) -> JSONResponse:
    """Describe one stack: parameters, outputs, tags, capabilities and more."""
    return await _query(
        "stack",
        _service(store).get_stack_details,
        request.session_id,
        request.region,
        request.stack_name,
    )
