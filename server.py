import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from raid_engine.config import Settings
from raid_engine.errors import RaidError
from raid_engine.registry import RaidRegistry
from raid_engine.scheduler import ThreadingScheduler


logger = logging.getLogger("raid_engine.server")


class CreateRaidRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId")
    raid_id: Optional[str] = Field(None, alias="raidId")
    config: Dict[str, Any] = Field(default_factory=dict)
    player_data: Optional[Dict[str, Any]] = Field(None, alias="playerData")


class ActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId")
    action: Dict[str, Any]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(registry: Optional[RaidRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
    if registry is None:
        registry = RaidRegistry(ThreadingScheduler(), settings)

    app = FastAPI(title="Raid Engine")
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/raids")
    def list_raids():
        return registry.list_raids()

    @app.post("/raids")
    def create_raid(req: CreateRaidRequest):
        payload: Dict[str, Any] = {"type": "createRaid", "config": req.config}
        if req.player_data is not None:
            payload["playerData"] = req.player_data
        return registry.handle(req.raid_id, req.player_id, payload)

    @app.post("/raids/{raid_id}/actions")
    def raid_action(raid_id: str, req: ActionRequest):
        return registry.handle(raid_id, req.player_id, req.action)

    @app.get("/raids/{raid_id}")
    def raid_state(raid_id: str):
        try:
            return registry.snapshot(raid_id)
        except RaidError as e:
            return {"ok": False, "error": e.to_payload()}

    @app.post("/raids/{raid_id}/events")
    def raid_events(raid_id: str):
        return registry.drain_events(raid_id)

    return app


settings = Settings.from_env()
configure_logging(settings)
app = create_app(settings=settings)


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting raid server")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
