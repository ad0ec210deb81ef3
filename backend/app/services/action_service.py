"""Action service - the server-authoritative table of run actions.

The table lives in ``app/data/actions.yaml`` and maps an action type to its
score / energy / hp effect. Unknown action types fall back to ``default``.
"""

from pathlib import Path

import yaml

from app.config import settings
from app.models.run import CustomGameRunPlayer
from app.schemas.run import ActionRule, ActionTable


class ActionService:
    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.ACTION_TABLE_PATH)
        self._table: ActionTable | None = None

    def load_table(self) -> ActionTable:
        """Load (once) and validate the YAML action table."""
        if self._table is not None:
            return self._table

        if not self.path.exists():
            raise FileNotFoundError(f"Action table not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        self._table = ActionTable(**raw)
        return self._table

    def get_rule(self, action_type: str) -> ActionRule:
        table = self.load_table()
        return table.actions.get(action_type, table.default)

    def list_action_types(self) -> list[str]:
        return sorted(self.load_table().actions)

    @staticmethod
    def apply(player: CustomGameRunPlayer, rule: ActionRule) -> None:
        """Apply a rule to a player in place; hp and energy floor at 0."""
        player.score = player.score + rule.score_delta
        player.energy = max(0, player.energy - rule.energy_cost)
        player.hp = max(0, player.hp + rule.hp_delta)
        player.alive = player.hp > 0

    @staticmethod
    def describe(rule: ActionRule, name: str, action_type: str) -> str:
        return rule.message.format(name=name, action=action_type, score=rule.score_delta)


action_service = ActionService()
