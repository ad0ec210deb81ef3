"""The calling identity, as resolved by the identity provider."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    id: int
    name: str = ""
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.name or f"U{self.id}"


def can_control(run, actor: Actor) -> bool:
    """Admins and the run's creator may steer a run (stages, map, scores, end)."""
    return actor.is_admin or actor.id == run.creator_user_id
