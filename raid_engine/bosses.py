import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from raid_engine.errors import InvalidAction
from raid_engine.models import AOE, Boss, BossAttack


logger = logging.getLogger(__name__)

BOSS_DATA_PATH = Path(__file__).resolve().parent / "data" / "bosses.json"


@lru_cache(maxsize=1)
def load_boss_catalog(path: Path = BOSS_DATA_PATH) -> Dict[str, Dict[str, Any]]:
    """
    Load boss templates keyed by id.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    catalog = {}
    for entry in data.get("bosses", []):
        if not isinstance(entry, dict) or not entry.get("id"):
            continue
        catalog[entry["id"]] = entry
    logger.debug("Loaded %d boss templates from %s", len(catalog), path)
    return catalog


def _parse_targets(raw: Any) -> Any:
    if raw == AOE:
        return AOE
    try:
        return max(1, int(raw))
    except (TypeError, ValueError):
        return 1


def build_boss(template_id: str, level: Optional[int] = None) -> Boss:
    catalog = load_boss_catalog()
    template = catalog.get(template_id)
    if template is None:
        raise InvalidAction(f"Unknown boss template: {template_id}", boss=template_id)
    attacks = [
        BossAttack(
            name=str(a.get("name")),
            damage=int(a.get("damage", 0) or 0),
            targets=_parse_targets(a.get("targets", 1)),
            cooldown=int(a.get("cooldown", 0) or 0),
            heal=int(a.get("heal", 0) or 0),
            type=a.get("type") or template.get("type"),
        )
        for a in template.get("attacks", [])
        if isinstance(a, dict) and a.get("name")
    ]
    max_hp = int(template.get("maxHP", 1000))
    return Boss(
        name=str(template.get("name", template_id)),
        max_hp=max_hp,
        current_hp=max_hp,
        attacks=attacks,
        level=int(level or template.get("level", 1)),
        attacks_per_turn=max(1, int(template.get("attacksPerTurn", 1) or 1)),
    )
