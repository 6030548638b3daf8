# kavach/routes/admin.py
# ------------------------------------------------------------
# Public admin controls (demo mode)
#
# No token. Instead:
# - Global cooldown to prevent spam
# - SSE notice broadcast so all clients understand what happened
#
# Scenarios change the polling cadence of the running loops.
# ------------------------------------------------------------

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from typing import Dict, Literal
import time
import hashlib

from ..runtime import Runtime
from ._common import get_runtime

router = APIRouter(tags=["admin"])

ScenarioName = Literal["normal", "stress", "incident"]

SCENARIO_PRESETS: Dict[str, Dict[str, float]] = {
    "normal": {"fleet": 5, "detection": 30},
    "stress": {"fleet": 1, "detection": 5},
    "incident": {"fleet": 2, "detection": 10},
}


class ScenarioSetRequest(BaseModel):
    scenario: ScenarioName


def _actor_id(req: Request) -> str:
    # best-effort identity (demo-grade): IP + UA -> short hash
    ip = req.headers.get("x-forwarded-for") or (req.client.host if req.client else "unknown")
    ua = req.headers.get("user-agent", "")
    raw = f"{ip}|{ua}".encode("utf-8", errors="ignore")
    return hashlib.sha1(raw).hexdigest()[:6]


def _cooldown_remaining(rt: Runtime) -> int:
    return max(0, int(rt.admin_cooldown_until - time.time()))


def _check_cooldown(rt: Runtime) -> None:
    rem = _cooldown_remaining(rt)
    if rem > 0:
        raise HTTPException(status_code=429, detail=f"Cooldown active. Try again in {rem}s.")


def _set_cooldown(rt: Runtime) -> None:
    rt.admin_cooldown_until = time.time() + rt.settings.admin_cooldown_sec


def _announce(rt: Runtime, kind: str, data: Dict, actor: str) -> None:
    rt.feed.push(
        "admin_notice",
        {
            "kind": kind,
            "actor": actor,
            "ts": int(time.time()),
            "cooldown_sec": rt.settings.admin_cooldown_sec,
            "data": data,
        },
    )


@router.get("/api/admin/state")
def admin_state(rt: Runtime = Depends(get_runtime)):
    return {
        "scenario": rt.scenario,
        "rates": SCENARIO_PRESETS[rt.scenario],
        "producer_mode": rt.settings.producer_mode,
        "detection_window_sec": rt.aggregator.window_sec,
        "controllers": rt.controllers(),
        "cooldown_remaining": _cooldown_remaining(rt),
    }


@router.post("/api/admin/scenario")
async def set_scenario(body: ScenarioSetRequest, request: Request, rt: Runtime = Depends(get_runtime)):
    _check_cooldown(rt)

    preset = SCENARIO_PRESETS[body.scenario]
    rt.scenario = body.scenario

    if rt.fleet.controller.running:
        rt.fleet.controller.stop()
        rt.fleet.start(preset["fleet"])
    rt.set_detection_rate(preset["detection"])
    if rt.detection.camera_active:
        rt.detection.deactivate()
        rt.detection.activate(rt.detection_rate_sec(), rt.settings.detection_initial_delay_sec)
    _set_cooldown(rt)

    _announce(rt, "scenario_changed", {"scenario": body.scenario, "rates": preset}, _actor_id(request))
    return {"ok": True, "scenario": body.scenario, "rates": preset, "cooldown_sec": rt.settings.admin_cooldown_sec}


@router.post("/api/admin/reset")
async def reset_simulation(request: Request, rt: Runtime = Depends(get_runtime)):
    _check_cooldown(rt)

    deleted = {
        "alerts": len(rt.aggregator.alerts),
        "counters": len(rt.aggregator.counters),
        "events": len(rt.detection.events),
    }
    rt.reset()
    _set_cooldown(rt)

    _announce(rt, "simulation_reset", {"rebootstrapped_fleet": True}, _actor_id(request))
    return {"ok": True, "deleted": deleted, "cooldown_sec": rt.settings.admin_cooldown_sec}
