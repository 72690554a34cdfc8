"""
Admin API - customer mappings and sync operations.
Protected by X-Admin-Key when ADMIN_API_KEY is configured.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from paybridge.api.deps import get_services, require_admin_key
from paybridge.schemas.api_responses import (
    MappingCreate,
    MappingResponse,
    SplynxCustomerSyncResponse,
    SyncStartedResponse,
)
from paybridge.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin_key)])


# ---------------------------------------------------------------------------
# Customer mappings
# ---------------------------------------------------------------------------

@router.get("/mappings")
async def list_mappings(services: Services = Depends(get_services)):
    mappings = await services.ledger.list_mappings()
    return {
        "success": True,
        "data": [m.to_dict() for m in mappings],
        "count": len(mappings),
    }


@router.get("/mappings/{splynx_customer_id}")
async def get_mapping(
    splynx_customer_id: str,
    services: Services = Depends(get_services),
):
    mapping = await services.ledger.get_mapping(splynx_customer_id)
    if not mapping:
        raise HTTPException(
            status_code=404,
            detail=f"No UISP client ID found for Splynx customer {splynx_customer_id}",
        )
    return {"success": True, "data": MappingResponse(**mapping.to_dict()).model_dump()}


@router.post("/mappings")
async def save_mapping(
    payload: MappingCreate,
    services: Services = Depends(get_services),
):
    """Create or update a mapping."""
    mapping = await services.ledger.upsert_mapping(
        payload.splynx_customer_id, payload.uisp_client_id, payload.notes
    )
    return {
        "success": True,
        "message": "Customer mapping saved successfully",
        "data": MappingResponse(**mapping.to_dict()).model_dump(),
    }


@router.delete("/mappings/{splynx_customer_id}")
async def delete_mapping(
    splynx_customer_id: str,
    services: Services = Depends(get_services),
):
    deleted = await services.ledger.delete_mapping(splynx_customer_id)
    if not deleted:
        raise HTTPException(
            status_code=404,
            detail=f"No mapping found for Splynx customer {splynx_customer_id}",
        )
    logger.info("Customer mapping deleted for Splynx customer %s", splynx_customer_id)
    return {"success": True, "message": "Customer mapping deleted successfully"}


# ---------------------------------------------------------------------------
# Client sync
# ---------------------------------------------------------------------------

@router.post("/clients/sync", response_model=SyncStartedResponse)
async def start_client_sync(services: Services = Depends(get_services)):
    """Kick off a full UISP client sync in the background."""
    logger.info("Client sync requested")
    services.runner.submit("client_sync:full", services.client_sync.sync_all_clients())
    return SyncStartedResponse(message="Client sync started in background")


@router.post("/clients/sync/wait")
async def run_client_sync(services: Services = Depends(get_services)):
    logger.info("Synchronous client sync requested")
    try:
        result = await services.client_sync.sync_all_clients()
    except Exception as e:
        logger.error("Client sync failed: %s", str(e), exc_info=True)
        raise HTTPException(status_code=500, detail=f"Client sync failed: {str(e)}")
    return {"success": True, "message": "Client sync completed", "data": result.to_dict()}


@router.post("/clients/{client_id}/sync")
async def sync_client(
    client_id: int,
    services: Services = Depends(get_services),
):
    try:
        record = await services.client_sync.sync_single_client(client_id)
    except Exception as e:
        logger.error("Error syncing client %s: %s", client_id, str(e))
        raise HTTPException(status_code=500, detail=f"Failed to sync client: {str(e)}")
    record.pop("uisp_data", None)
    return {"success": True, "message": "Client synced successfully", "data": record}


@router.get("/sync/logs")
async def sync_logs(
    limit: int = Query(default=10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    logs = await services.ledger.recent_sync_logs(limit)
    return {"success": True, "data": [log.to_dict() for log in logs]}


# ---------------------------------------------------------------------------
# Splynx customers -> Convex
# ---------------------------------------------------------------------------

@router.post("/splynx/customers/sync", response_model=SplynxCustomerSyncResponse)
async def sync_splynx_customers(services: Services = Depends(get_services)):
    """Fetch every Splynx customer and push the batch to the Convex mirror."""
    if not services.mirror.enabled:
        raise HTTPException(status_code=503, detail="Convex mirror not configured")
    try:
        count = await services.client_sync.sync_source_customers()
    except Exception as e:
        logger.error("Splynx customer sync failed: %s", str(e), exc_info=True)
        raise HTTPException(status_code=500, detail=f"Splynx customer sync failed: {str(e)}")
    return SplynxCustomerSyncResponse(
        message="Splynx customers fetched; mirror upsert submitted", count=count
    )
