"""Admin routes for bot registration and activation."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from botpay.services.api.dependencies import get_registry, require_admin
from botpay.services.registry.schemas import BotRegisterRequest, BotSummary
from botpay.services.registry.service import BotRegistry

router = APIRouter(prefix="/api/bots", tags=["bots"])


def _summary(bot) -> dict:
    return BotSummary.model_validate(bot).model_dump(mode="json", by_alias=True)


@router.post("/register", status_code=201)
def register_bot(
    req: BotRegisterRequest,
    admin_id: str = Depends(require_admin),
    bots: BotRegistry = Depends(get_registry),
):
    """Register a bot with its gateway credentials."""

    bot = bots.register(req, registered_by=admin_id)
    return {"success": True, "data": _summary(bot)}


@router.get("")
def list_bots(_: str = Depends(require_admin), bots: BotRegistry = Depends(get_registry)):
    """List bots without tokens or secrets."""

    return {"success": True, "data": [_summary(bot) for bot in bots.list_bots()]}


def _set_active(name: str, active: bool, bots: BotRegistry):
    bot = bots.set_active(name, active)
    if bot is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "Bot not found"})
    return {"success": True, "data": {"name": bot.name, "isActive": bot.is_active}}


@router.post("/{name}/activate")
def activate_bot(name: str, _: str = Depends(require_admin), bots: BotRegistry = Depends(get_registry)):
    return _set_active(name, True, bots)


@router.post("/{name}/deactivate")
def deactivate_bot(name: str, _: str = Depends(require_admin), bots: BotRegistry = Depends(get_registry)):
    return _set_active(name, False, bots)
