"""
Inbound actions: a closed, `type`-tagged union validated once at the boundary.

Handlers downstream receive typed models and never re-check field presence.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from raid_engine.config import RaidConfig
from raid_engine.errors import InvalidAction, UnknownActionType


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AttackData(_Model):
    name: str
    damage: int = Field(0, ge=0)


class CardData(_Model):
    name: Optional[str] = None
    type: Optional[str] = None
    max_hp: Optional[int] = Field(None, alias="maxHP", ge=1)
    attacks: List[AttackData] = Field(default_factory=list)


class PlayerData(_Model):
    username: str = "Anonymous"
    active_card: Optional[CardData] = Field(
        None, alias="activeCard", validation_alias=AliasChoices("activeCard", "activePokemon", "active_card")
    )
    bench_card: Optional[CardData] = Field(
        None, alias="benchCard", validation_alias=AliasChoices("benchCard", "benchPokemon", "bench_card")
    )

    def to_data(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ----- lifecycle -----

class CreateRaid(_Model):
    type: Literal["createRaid"]
    config: RaidConfig = Field(default_factory=RaidConfig)
    player_data: Optional[PlayerData] = Field(None, alias="playerData")


class JoinRaid(_Model):
    type: Literal["joinRaid"]
    player_data: PlayerData = Field(default_factory=PlayerData, alias="playerData")


class LeaveRaid(_Model):
    type: Literal["leaveRaid"]


class EndRaid(_Model):
    type: Literal["endRaid"]


# ----- combat -----

class PlayerAttack(_Model):
    type: Literal["playerAttack"]
    attack_name: Optional[str] = Field(None, alias="attackName")
    damage: Optional[int] = Field(None, ge=0)


class PlayerRetreat(_Model):
    type: Literal["playerRetreat"]


class CheerCardAction(_Model):
    type: Literal["cheerCard"]
    card_number: int = Field(alias="cardNumber")
    target_player_id: Optional[str] = Field(None, alias="targetPlayerId")


class KOTest(_Model):
    type: Literal["testKO"]
    card_slot: Literal["active", "bench"] = Field("active", alias="cardSlot")


class SwitchLayout(_Model):
    type: Literal["switchLayout"]
    layout: Literal["versus", "circular"]


# ----- debug -----

class DebugSetHP(_Model):
    type: Literal["debugSetHP"]
    target: str = "boss"
    slot: Literal["active", "bench"] = "active"
    value: int = Field(ge=0)


class DebugKillPlayer(_Model):
    type: Literal["debugKillPlayer"]
    target_player_id: str = Field(alias="targetPlayerId")


class DebugResurrectPlayer(_Model):
    type: Literal["debugResurrectPlayer"]
    target_player_id: str = Field(alias="targetPlayerId")


class DebugSkipTurn(_Model):
    type: Literal["debugSkipTurn"]


class DebugForceBossTurn(_Model):
    type: Literal["debugForceBossTurn"]


class DebugResetRaid(_Model):
    type: Literal["debugResetRaid"]


class ToggleDebugMode(_Model):
    type: Literal["toggleDebugMode"]
    enabled: Optional[bool] = None


RaidAction = Annotated[
    Union[
        CreateRaid,
        JoinRaid,
        LeaveRaid,
        EndRaid,
        PlayerAttack,
        PlayerRetreat,
        CheerCardAction,
        KOTest,
        SwitchLayout,
        DebugSetHP,
        DebugKillPlayer,
        DebugResurrectPlayer,
        DebugSkipTurn,
        DebugForceBossTurn,
        DebugResetRaid,
        ToggleDebugMode,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES = (
    "createRaid",
    "joinRaid",
    "leaveRaid",
    "endRaid",
    "playerAttack",
    "playerRetreat",
    "cheerCard",
    "testKO",
    "switchLayout",
    "debugSetHP",
    "debugKillPlayer",
    "debugResurrectPlayer",
    "debugSkipTurn",
    "debugForceBossTurn",
    "debugResetRaid",
    "toggleDebugMode",
)

DEBUG_ACTION_TYPES = tuple(t for t in ACTION_TYPES if t.startswith("debug"))

_adapter: TypeAdapter = TypeAdapter(RaidAction)


def _describe_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "-", "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def parse_action(payload: Any):
    """Validate a raw payload into one action model, raising RaidError subclasses on failure."""
    if not isinstance(payload, dict):
        raise InvalidAction("Action must be a JSON object")
    kind = payload.get("type")
    if kind not in ACTION_TYPES:
        raise UnknownActionType(f"Unknown action type: {kind}", actionType=kind)
    try:
        return _adapter.validate_python(payload)
    except ValidationError as exc:
        raise InvalidAction(f"Invalid {kind} action", actionType=kind, errors=_describe_errors(exc)) from exc
