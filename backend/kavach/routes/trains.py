# kavach/routes/trains.py
# ------------------------------------------------------------
# Trains & cameras API
#
# Returns the latest in-memory fleet state.
# Used by:
# - dashboard train list / status card
# - map markers
# ------------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException

from ..runtime import Runtime
from ._common import dump_items, get_runtime

router = APIRouter(tags=["trains"])


@router.get("/api/trains")
def list_trains(rt: Runtime = Depends(get_runtime)):
    """
    List trains in bootstrap order, plus when the fleet last changed.
    """
    out = dump_items(rt.fleet.trains)
    out["last_updated"] = rt.fleet.last_updated.isoformat() if rt.fleet.last_updated else None
    out["error"] = rt.fleet.error
    return out


@router.get("/api/trains/{train_number}")
def get_train(train_number: str, rt: Runtime = Depends(get_runtime)):
    train = rt.fleet.find_train(train_number)
    if train is None:
        raise HTTPException(status_code=404, detail="Train not found")

    related = [a for a in rt.aggregator.alerts if a.affects(train.train_id)]
    return {
        "train": train.model_dump(mode="json"),
        "active_alerts": sum(1 for a in related if a.status == "active"),
        "alerts": [a.model_dump(mode="json") for a in related],
    }


@router.get("/api/cameras")
def list_cameras(rt: Runtime = Depends(get_runtime)):
    return dump_items(rt.fleet.cameras)
