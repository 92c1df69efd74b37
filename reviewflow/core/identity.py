"""Acting-party model and step access rules.

Authentication happens outside the engine; by the time an action reaches
the controller the identity layer has resolved an ``Actor``.
"""

from dataclasses import dataclass
from typing import Optional


TEAM_MEMBER = "team_member"
CLIENT_CONTACT = "client_contact"
ACTOR_TYPES = (TEAM_MEMBER, CLIENT_CONTACT)

# Step approver type naming one actor by id rather than a kind of actor
SPECIFIC_USER = "specific_user"


@dataclass(frozen=True)
class Actor:
    """Who is acting: an internal team member or an external client contact."""
    id: str
    actor_type: str = TEAM_MEMBER
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


class AccessPolicy:
    """
    Decides whether an actor may act on a step.

    A step's ``approver_type`` names the kind of actor allowed to resolve
    or sign it; ``any`` admits everyone. A ``specific_user`` step admits
    only the actor whose id is the step's ``approver_id``.
    """

    def can_act(self, actor: Actor, step) -> bool:
        approver_type = step.approver_type or "any"
        if approver_type == "any":
            return True
        if approver_type == SPECIFIC_USER:
            return step.approver_id is not None and actor.id == step.approver_id
        return actor.actor_type == approver_type

    def describe(self, step) -> str:
        """Who may act on ``step``, for refusal messages."""
        if step.approver_type == SPECIFIC_USER:
            return step.approver_name or step.approver_id
        return f"a {step.approver_type}"
