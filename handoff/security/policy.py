"""Decides whether a user may act on an active step."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel

from ..config import EngineConfig
from ..graph import GraphView
from ..models import WorkflowNode
from ..persistence.models import (
    WorkflowActiveStep,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from .directory import Directory

logger = logging.getLogger(__name__)

ROLE_GATED = ("role", "approval")


class AccessDecision(BaseModel):
    allowed: bool
    reason: str
    rule: str
    is_pipeline: bool = False
    pipeline_step_name: Optional[str] = None


class AccessEvaluator:
    """Applies the access rules in order; the first matching rule wins.

    Project membership is required in every case except for superadmins.
    """

    def __init__(self, directory: Directory, config: Optional[EngineConfig] = None) -> None:
        self.directory = directory
        self.config = config or EngineConfig()

    async def can_act(
        self,
        user_id: str,
        instance: WorkflowInstance,
        step: WorkflowActiveStep,
        graph: GraphView,
        node_assignments: Iterable[WorkflowNodeAssignment] = (),
        open_node_ids: Iterable[str] = (),
    ) -> AccessDecision:
        if await self.directory.is_superadmin(user_id):
            return AccessDecision(allowed=True, reason="Superadmin access", rule="superadmin")

        if self.config.require_project_assignment:
            projects = await self.directory.user_project_ids(user_id)
            if instance.project_id not in projects:
                return AccessDecision(
                    allowed=False,
                    reason="You are not assigned to this project",
                    rule="project",
                )

        node = graph.node(step.node_id)
        mine = [a for a in node_assignments if a.user_id == user_id]
        if any(a.node_id == node.id for a in mine):
            return AccessDecision(
                allowed=True, reason="Assigned to this step", rule="node_assignment"
            )
        if step.assigned_user_id and step.assigned_user_id == user_id:
            return AccessDecision(
                allowed=True, reason="Assigned to this step", rule="assigned_user"
            )

        entity = node.entity_ref
        if entity is None:
            return AccessDecision(allowed=True, reason="Project member", rule="open_node")

        if node.node_type in ROLE_GATED:
            if await self.directory.user_has_role(user_id, entity):
                return AccessDecision(allowed=True, reason="Holds the required role", rule="role")
            return self._entity_denied(
                user_id, node, graph, mine, open_node_ids, "You do not have the required role"
            )

        if node.node_type == "department":
            if entity in await self.directory.user_department_ids(user_id):
                return AccessDecision(
                    allowed=True, reason="Member of the department", rule="department"
                )
            return self._entity_denied(
                user_id,
                node,
                graph,
                mine,
                open_node_ids,
                "You are not in the required department",
            )

        return AccessDecision(allowed=True, reason="Project member", rule="project")

    def _entity_denied(
        self,
        user_id: str,
        node: WorkflowNode,
        graph: GraphView,
        assignments: List[WorkflowNodeAssignment],
        open_node_ids: Iterable[str],
        reason: str,
    ) -> AccessDecision:
        open_ids = set(open_node_ids)
        for assignment in assignments:
            if assignment.node_id == node.id or assignment.node_id in open_ids:
                continue
            upcoming = graph.get(assignment.node_id)
            if upcoming is None:
                continue
            logger.debug(
                f"User {user_id} is pipelined for node {upcoming.id}, not {node.id}"
            )
            return AccessDecision(
                allowed=False,
                reason=f"You are assigned to an upcoming step: {upcoming.display_name}",
                rule="pipeline",
                is_pipeline=True,
                pipeline_step_name=upcoming.display_name,
            )
        return AccessDecision(allowed=False, reason=reason, rule="entity")

    async def eligible_users(self, node: WorkflowNode) -> Optional[List[str]]:
        """Users able to act on ``node``, or ``None`` if it is not entity-gated."""
        entity = node.entity_ref
        if entity is None:
            return None
        if node.node_type in ROLE_GATED:
            return await self.directory.users_with_role(entity)
        if node.node_type == "department":
            return await self.directory.users_in_department(entity)
        return None


__all__ = ["AccessDecision", "AccessEvaluator"]
