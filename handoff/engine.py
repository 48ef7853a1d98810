"""Workflow engine: starts instances and moves them through their graph."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from .branches import BranchCorrelator, BranchId, next_fork_token
from .config import EngineConfig
from .constants import REJECTED
from .contracts import (
    ActionableView,
    NextNodePreview,
    ProgressAction,
    ProgressResult,
    RequiredAssignment,
)
from .db.store import TemplateStore
from .errors import (
    AmbiguousRoutingError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    WorkflowError,
)
from .forms import (
    build_form_note,
    ensure_valid_submission,
    find_carried_form,
    latest_form_responses,
)
from .graph import GraphView
from .models import WorkflowNode, utcnow
from .persistence import WorkflowRepository, get_repository
from .persistence.models import (
    StepClosure,
    Transition,
    WorkflowActiveStep,
    WorkflowApproval,
    WorkflowHistory,
    WorkflowInstance,
    WorkflowNodeAssignment,
)
from .routing import Route, allowed_decisions, initial_edges, resolve_routes
from .security import AccessEvaluator, Directory
from .snapshot import capture_snapshot, load_graph

logger = logging.getLogger(__name__)


def _next_version(previous: datetime, now: datetime) -> datetime:
    floor = previous + timedelta(microseconds=1)
    return now if now > floor else floor


class _Handoff(BaseModel):
    """What the submitter hands over along with the token."""

    action: ProgressAction
    fan_out: bool = False
    decision: Optional[str] = None
    notes: Optional[str] = None
    assignee: Optional[str] = None

    def assignee_for(self, node_id: str) -> Optional[str]:
        if self.assignee:
            return self.assignee
        if self.fan_out:
            return self.action.assignments.get(node_id)
        return self.action.assignee_for(node_id)


class _Plan:
    """Accumulates the writes of one transition against a working view."""

    def __init__(
        self,
        instance: WorkflowInstance,
        steps: Iterable[WorkflowActiveStep],
        approvals: Iterable[WorkflowApproval],
        now: datetime,
        actor: Optional[str],
    ) -> None:
        self.instance = instance
        self.now = now
        self.actor = actor
        self._view: Dict[str, WorkflowActiveStep] = {
            s.id: s.model_copy() for s in steps
        }
        self.approvals: List[WorkflowApproval] = list(approvals)
        self.closures: List[StepClosure] = []
        self.new_steps: List[WorkflowActiveStep] = []
        self.new_approvals: List[WorkflowApproval] = []
        self.history: List[WorkflowHistory] = []
        self.assignments: List[WorkflowNodeAssignment] = []
        self.end_node_id: Optional[str] = None
        self.parked = False

    def steps(self) -> List[WorkflowActiveStep]:
        return list(self._view.values())

    def close(self, step: WorkflowActiveStep, status: str = "completed") -> None:
        working = self._view[step.id]
        if any(s.id == step.id for s in self.new_steps):
            working.status = status
            working.completed_at = self.now
            return
        self.closures.append(
            StepClosure(
                step_id=step.id,
                expected_status=working.status,
                status=status,
                completed_at=self.now,
            )
        )
        working.status = status
        working.completed_at = self.now

    def add_step(
        self,
        node_id: str,
        branch: BranchId,
        status: str = "active",
        assigned_user_id: Optional[str] = None,
    ) -> WorkflowActiveStep:
        step = WorkflowActiveStep(
            workflow_instance_id=self.instance.id,
            node_id=node_id,
            branch_id=branch.format(),
            status=status,
            assigned_user_id=assigned_user_id,
            activated_at=self.now,
            completed_at=self.now if status == "completed" else None,
        )
        self.new_steps.append(step)
        self._view[step.id] = step
        return step

    def approve(self, step: WorkflowActiveStep, decision: str, feedback: Optional[str]) -> None:
        approval = WorkflowApproval(
            workflow_instance_id=self.instance.id,
            node_id=step.node_id,
            decision=decision,
            approver_user_id=self.actor,
            feedback=feedback,
            branch_id=step.branch_id,
            active_step_id=step.id,
            created_at=self.now,
        )
        self.new_approvals.append(approval)
        self.approvals.append(approval)

    def log(
        self,
        from_node_id: Optional[str],
        to_node_id: Optional[str],
        branch: BranchId,
        **fields,
    ) -> None:
        self.history.append(
            WorkflowHistory(
                workflow_instance_id=self.instance.id,
                from_node_id=from_node_id,
                to_node_id=to_node_id,
                handed_off_at=self.now,
                handed_off_by=self.actor,
                branch_id=branch.format(),
                **fields,
            )
        )

    def reserve(self, node_id: str, user_id: str) -> None:
        self.assignments.append(
            WorkflowNodeAssignment(
                workflow_instance_id=self.instance.id,
                node_id=node_id,
                user_id=user_id,
                assigned_by=self.actor,
                assigned_at=self.now,
            )
        )

    def to_transition(self, expected_updated_at: datetime) -> Transition:
        open_steps = [s for s in self._view.values() if s.is_open]
        if self.end_node_id and not open_steps:
            status, completed_at, current = "completed", self.now, self.end_node_id
        else:
            active = [s for s in open_steps if s.status == "active"]
            status, completed_at = "active", None
            if len(active) == 1:
                current = active[0].node_id
            elif active:
                current = None
            else:
                current = self.instance.current_node_id
        return Transition(
            instance_id=self.instance.id,
            expected_updated_at=expected_updated_at,
            updated_at=self.now,
            status=status,
            current_node_id=current,
            completed_at=completed_at,
            close_steps=self.closures,
            new_steps=self.new_steps,
            approvals=self.new_approvals,
            history=self.history,
            node_assignments=self.assignments,
        )


class WorkflowEngine:
    """Runs workflow instances against a repository and a template store."""

    def __init__(
        self,
        directory: Directory,
        repository: WorkflowRepository | None = None,
        templates: TemplateStore | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.directory = directory
        self.repository = repository or get_repository()
        self.templates = templates
        self.access = AccessEvaluator(directory, self.config)
        self.correlator = BranchCorrelator()

    # ------------------------------------------------------------------
    # Loading
    async def _instance(self, instance_id: str) -> WorkflowInstance:
        instance = await self.repository.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("Workflow instance not found")
        return instance

    async def _graph(self, instance: WorkflowInstance) -> GraphView:
        return await load_graph(instance, self.templates)

    # ------------------------------------------------------------------
    # Assignments
    async def _requirements(
        self, routes: List[Route], decision: Optional[str] = None
    ) -> List[RequiredAssignment]:
        required: List[RequiredAssignment] = []
        for route in routes:
            target = route.target
            if target.node_type == "sync":
                eligible: Optional[List[str]] = []
            else:
                eligible = await self.access.eligible_users(target)
                if eligible is None:
                    continue
            required.append(
                RequiredAssignment(
                    node_id=target.id,
                    label=target.display_name,
                    node_type=target.node_type,
                    eligible_user_ids=eligible,
                    decision=decision or route.decision,
                )
            )
        return required

    @staticmethod
    def _demands_assignee(req: RequiredAssignment) -> bool:
        """Whether progressing must name who takes over ``req``."""
        if req.node_type == "sync":
            return True
        return req.node_type == "role" and bool(req.eligible_user_ids)

    def _check_assignments(
        self,
        required: List[RequiredAssignment],
        handoff: _Handoff,
        demand: bool = True,
    ) -> None:
        errors: Dict[str, str] = {}
        for req in required:
            assignee = handoff.assignee_for(req.node_id)
            if req.node_type == "sync":
                if demand and not assignee:
                    errors[req.node_id] = f"Select who will lead '{req.label}'"
                continue
            if not req.eligible_user_ids:
                if not assignee:
                    errors[req.node_id] = f"No users are available to handle '{req.label}'"
                continue
            if assignee and assignee not in req.eligible_user_ids:
                errors[req.node_id] = f"Selected user cannot handle '{req.label}'"
            elif demand and not assignee and self._demands_assignee(req):
                errors[req.node_id] = f"Select who will handle '{req.label}'"
        if errors:
            raise ValidationError(next(iter(errors.values())), field_errors=errors)

    # ------------------------------------------------------------------
    # Routing outcomes
    def _enter(
        self,
        plan: _Plan,
        graph: GraphView,
        from_node: WorkflowNode,
        route: Route,
        branch: BranchId,
        handoff: _Handoff,
        force_park: bool = False,
    ) -> None:
        target = route.target
        hops = [from_node, *route.via, target]
        plan.log(
            hops[0].id,
            hops[1].id,
            branch,
            decision=handoff.decision,
            feedback=handoff.action.feedback,
            notes=handoff.notes,
            form_response_id=handoff.action.form_response_id,
        )
        for hop_from, hop_to in zip(hops[1:-1], hops[2:]):
            plan.log(hop_from.id, hop_to.id, branch, notes="Routed by condition")

        assignee = handoff.assignee_for(target.id)
        if target.node_type == "end":
            plan.add_step(target.id, branch, status="completed", assigned_user_id=assignee)
            plan.end_node_id = target.id
        elif target.node_type == "sync":
            self._arrive_at_sync(plan, graph, target, branch, assignee, handoff, force_park)
        else:
            plan.add_step(target.id, branch, assigned_user_id=assignee)

    def _fan_out(
        self,
        plan: _Plan,
        graph: GraphView,
        from_node: WorkflowNode,
        routes: List[Route],
        branch: BranchId,
        handoff: _Handoff,
    ) -> None:
        if len(routes) == 1:
            self._enter(plan, graph, from_node, routes[0], branch, handoff)
            return
        token = next_fork_token(branch, plan.steps(), plan.now)
        children = [(route, branch.child(i, token)) for i, route in enumerate(routes)]
        logger.debug(f"Forking {from_node.id} into {len(children)} branches with token {token}")
        # syncs last so their sibling check sees every branch of this fork
        plain = [c for c in children if c[0].target.node_type != "sync"]
        syncs = [c for c in children if c[0].target.node_type == "sync"]
        for route, child in plain:
            self._enter(plan, graph, from_node, route, child, handoff)
        for i, (route, child) in enumerate(syncs):
            self._enter(
                plan, graph, from_node, route, child, handoff, force_park=i < len(syncs) - 1
            )

    def _arrive_at_sync(
        self,
        plan: _Plan,
        graph: GraphView,
        sync: WorkflowNode,
        branch: BranchId,
        assignee: Optional[str],
        handoff: _Handoff,
        force_park: bool,
    ) -> None:
        marker = plan.add_step(sync.id, branch, status="waiting", assigned_user_id=assignee)

        def leads_here(node_id: str) -> bool:
            return sync.id in graph.reachable(
                node_id, stop_at_sync=False, follow_rejections=False
            )

        if force_park or not self.correlator.all_siblings_completed(
            marker, plan.steps(), can_reach=leads_here
        ):
            plan.parked = True
            if assignee:
                for edge in graph.outgoing(sync.id):
                    plan.reserve(edge.to_node_id, assignee)
            logger.debug(f"Branch {branch} parked at sync {sync.id}")
            return

        # the join collapses the outermost fork that has another branch parked here
        fork = self.correlator.joined_fork(marker, plan.steps())
        if fork is None and branch.is_fork:
            fork = branch
        aggregate = self.correlator.aggregate_decision(
            marker, plan.steps(), plan.approvals, fork=fork
        )
        if fork is not None:
            for other in self.correlator.fork_steps(marker, plan.steps(), fork=fork):
                if other.status == "waiting" and other.node_id == sync.id:
                    plan.close(other)
        plan.close(marker)
        base = BranchId.parse(fork.base) if fork is not None else branch
        logger.info(f"Sync {sync.id} released onto {base} with outcome {aggregate}")

        routes = resolve_routes(
            graph,
            sync,
            decision=None,
            form_data=handoff.action.form_data or {},
            aggregate=aggregate,
            max_hops=self.config.max_conditional_hops,
        )
        release = _Handoff(
            action=handoff.action,
            fan_out=len(routes) > 1,
            decision=aggregate,
            notes=f"Sync released: {aggregate}",
            assignee=assignee if len(routes) == 1 else None,
        )
        self._fan_out(plan, graph, sync, routes, base, release)

    def _rejection_reset_branch(
        self,
        plan: _Plan,
        graph: GraphView,
        step: WorkflowActiveStep,
        routes: List[Route],
    ) -> Optional[BranchId]:
        """Collapse the fork when a rejection leaves the rejecting branch."""
        branch = step.branch
        if not branch.is_fork or len(routes) != 1:
            return None
        own = [s for s in plan.steps() if s.branch_id == step.branch_id]
        first = min(own, key=lambda s: s.activated_at)
        region = graph.reachable(first.node_id, stop_at_sync=True, follow_rejections=False)
        if routes[0].target.id in region:
            return None
        for other in self.correlator.fork_steps(step, plan.steps()):
            if other.is_open:
                plan.close(other, status="cancelled")
        base = BranchId.parse(branch.base)
        logger.info(f"Rejection on {branch} collapsed its fork back onto {base}")
        return base

    # ------------------------------------------------------------------
    # Commit
    async def _commit(
        self, plan: _Plan, graph: GraphView, expected: datetime, create: bool = False
    ) -> Transition:
        transition = plan.to_transition(expected)
        if create:
            await self.repository.create_instance(plan.instance, transition)
        else:
            await self.repository.apply_transition(transition)
        await self._grow_project_roster(plan, graph)
        return transition

    async def _grow_project_roster(self, plan: _Plan, graph: GraphView) -> None:
        project_id = plan.instance.project_id
        users = set()
        for step in plan.new_steps:
            if step.status != "active":
                continue
            if step.assigned_user_id:
                users.add(step.assigned_user_id)
                continue
            node = graph.get(step.node_id)
            if node is not None:
                users.update(await self.access.eligible_users(node) or [])
        for assignment in plan.assignments:
            users.add(assignment.user_id)
        for user_id in sorted(users):
            await self.directory.assign_to_project(user_id, project_id)

    @staticmethod
    def _after(instance: WorkflowInstance, transition: Transition) -> WorkflowInstance:
        return instance.model_copy(
            update={
                "status": transition.status,
                "current_node_id": transition.current_node_id,
                "completed_at": transition.completed_at,
                "updated_at": transition.updated_at,
            }
        )

    # ------------------------------------------------------------------
    # Public API
    async def start_instance(
        self,
        template_id: str,
        project_id: str,
        started_by: Optional[str] = None,
        node_assignments: Optional[Dict[str, str]] = None,
    ) -> WorkflowInstance:
        """Launch a template against a project and advance past its start node."""

        if self.templates is None:
            raise NotFoundError("Workflow template not found")
        template, snapshot = await capture_snapshot(self.templates, template_id)
        graph = GraphView.from_snapshot(snapshot)
        start = graph.start_node()

        now = utcnow()
        instance = WorkflowInstance(
            template_id=template.id,
            project_id=project_id,
            current_node_id=start.id,
            started_snapshot=snapshot,
            started_by=started_by,
            started_at=now,
            updated_at=now,
        )
        plan = _Plan(instance, [], [], now, started_by)
        root = BranchId.root(self.config.root_branch)
        start_step = plan.add_step(start.id, root, status="completed")

        for node_id, user_id in (node_assignments or {}).items():
            graph.node(node_id)
            plan.reserve(node_id, user_id)

        routes = resolve_routes(graph, start, max_hops=self.config.max_conditional_hops)
        action = ProgressAction(assignments=dict(node_assignments or {}))
        handoff = _Handoff(
            action=action, fan_out=len(routes) > 1, notes="Workflow started"
        )
        self._check_assignments(await self._requirements(routes), handoff, demand=False)
        self._fan_out(plan, graph, start, routes, start_step.branch, handoff)

        transition = await self._commit(plan, graph, now, create=True)
        logger.info(
            f"Started instance {instance.id} of template {template.id} for project {project_id}"
        )
        return self._after(instance, transition)

    async def load_actionable(self, instance_id: str, user_id: str) -> ActionableView:
        """What ``user_id`` can do on the instance right now."""

        instance = await self._instance(instance_id)
        if not instance.is_active:
            return ActionableView(
                instance=instance, reason=f"Workflow is {instance.status}"
            )
        graph = await self._graph(instance)
        steps = await self.repository.list_steps(instance_id)
        assignments = await self.repository.list_node_assignments(instance_id)
        active = [s for s in steps if s.status == "active"]
        if not active:
            return ActionableView(instance=instance, reason="Waiting for parallel branches")

        open_ids = [s.node_id for s in steps if s.is_open]
        chosen = None
        fallback = None
        for step in active:
            decision = await self.access.can_act(
                user_id, instance, step, graph, assignments, open_ids
            )
            if decision.allowed:
                chosen = (step, decision)
                break
            if fallback is None or (decision.is_pipeline and not fallback[1].is_pipeline):
                fallback = (step, decision)
        step, decision = chosen or fallback

        node = graph.node(step.node_id)
        approvals = await self.repository.list_approvals(instance_id)
        history = await self.repository.list_history(instance_id)
        decisions = allowed_decisions(graph, node)

        previews: List[NextNodePreview] = []
        required: List[RequiredAssignment] = []
        routing_data = latest_form_responses(history)
        for choice in decisions or [None]:
            try:
                routes = resolve_routes(
                    graph,
                    node,
                    decision=choice,
                    form_data=routing_data,
                    max_hops=self.config.max_conditional_hops,
                )
            except AmbiguousRoutingError as exc:
                # the submission itself may decide the route; show the first hop only
                logger.debug(f"No preview past node {node.id} for {choice}: {exc.message}")
                for edge in initial_edges(graph, node, decision=choice):
                    target = graph.node(edge.to_node_id)
                    previews.append(
                        NextNodePreview(
                            node_id=target.id,
                            label=target.display_name,
                            node_type=target.node_type,
                            decision=choice,
                        )
                    )
                continue
            needed = {}
            for req in await self._requirements(routes, decision=choice):
                required.append(req)
                needed[req.node_id] = self._demands_assignee(req)
            for route in routes:
                target = route.target
                previews.append(
                    NextNodePreview(
                        node_id=target.id,
                        label=target.display_name,
                        node_type=target.node_type,
                        decision=choice,
                        requires_assignment=needed.get(target.id, False),
                    )
                )

        return ActionableView(
            instance=instance,
            active_step=step,
            node=node,
            can_act=decision.allowed,
            reason=decision.reason,
            allowed_decisions=decisions,
            next_node_preview=previews,
            required_assignments=required,
            is_pipeline=decision.is_pipeline,
            pipeline_step_name=decision.pipeline_step_name,
            carried_form=find_carried_form(node, history, graph),
            siblings=self.correlator.sibling_statuses(step, steps, approvals),
        )

    async def progress(
        self,
        instance_id: str,
        active_step_id: str,
        user_id: str,
        action: ProgressAction,
    ) -> ProgressResult:
        """Submit ``action`` on an active step and commit the resulting handoff."""

        instance = await self._instance(instance_id)
        step = await self.repository.get_step(active_step_id)
        if step is None or step.workflow_instance_id != instance.id:
            raise NotFoundError("Active step not found")

        if (
            action.expected_updated_at is not None
            and action.expected_updated_at != instance.updated_at
        ):
            raise ConflictError()
        if not instance.is_active:
            raise ConflictError(f"Workflow is already {instance.status}")
        if step.status != "active":
            raise ConflictError("This step has already been completed, reload and retry")

        graph = await self._graph(instance)
        node = graph.node(step.node_id)
        steps = await self.repository.list_steps(instance_id)
        assignments = await self.repository.list_node_assignments(instance_id)
        access = await self.access.can_act(
            user_id,
            instance,
            step,
            graph,
            assignments,
            [s.node_id for s in steps if s.is_open],
        )
        if not access.allowed:
            raise PermissionDeniedError(access.reason)

        decision: Optional[str] = None
        if node.node_type == "approval":
            decisions = allowed_decisions(graph, node)
            if not action.decision:
                raise ValidationError(
                    "A decision is required", field_errors={"decision": "required"}
                )
            if action.decision not in decisions:
                raise ValidationError(
                    f"Decision must be one of: {', '.join(decisions)}",
                    field_errors={"decision": "invalid"},
                )
            decision = action.decision

        notes = action.feedback
        if node.node_type == "form":
            ensure_valid_submission(node, action.form_data)
            notes = build_form_note(node, action.form_data or {})
        elif action.form_data:
            raise ValidationError("This step does not accept form data")

        history = await self.repository.list_history(instance_id)
        routing_data = action.form_data or latest_form_responses(history)
        routes = resolve_routes(
            graph,
            node,
            decision=decision,
            form_data=routing_data,
            max_hops=self.config.max_conditional_hops,
        )
        handoff = _Handoff(
            action=action, fan_out=len(routes) > 1, decision=decision, notes=notes
        )
        self._check_assignments(await self._requirements(routes), handoff)

        now = _next_version(instance.updated_at, utcnow())
        approvals = await self.repository.list_approvals(instance_id)
        plan = _Plan(instance, steps, approvals, now, user_id)
        plan.close(step)
        if decision is not None:
            plan.approve(step, decision, action.feedback)

        branch = step.branch
        if decision == REJECTED:
            branch = self._rejection_reset_branch(plan, graph, step, routes) or branch
        self._fan_out(plan, graph, node, routes, branch, handoff)

        transition = await self._commit(plan, graph, instance.updated_at)
        updated = self._after(instance, transition)
        logger.info(
            f"Instance {instance.id}: {user_id} completed {node.node_type} node {node.id} "
            f"({len(transition.new_steps)} new step(s), status {updated.status})"
        )
        new_active = [s for s in transition.new_steps if s.status == "active"]
        return ProgressResult(
            success=True,
            instance=updated,
            new_steps=transition.new_steps,
            waiting_at_sync=plan.parked and not new_active,
            completed=updated.status == "completed",
        )

    async def try_progress(
        self,
        instance_id: str,
        active_step_id: str,
        user_id: str,
        action: ProgressAction,
    ) -> ProgressResult:
        """Like :meth:`progress` but reports engine errors in the result."""
        try:
            return await self.progress(instance_id, active_step_id, user_id, action)
        except WorkflowError as exc:
            return ProgressResult(success=False, error=exc.message, error_code=exc.code)

    async def history(self, instance_id: str) -> List[WorkflowHistory]:
        await self._instance(instance_id)
        return await self.repository.list_history(instance_id)

    async def list_active_steps(self, instance_id: str) -> List[WorkflowActiveStep]:
        await self._instance(instance_id)
        return [s for s in await self.repository.list_steps(instance_id) if s.is_open]

    async def cancel_instance(
        self,
        instance_id: str,
        user_id: str,
        reason: Optional[str] = None,
        expected_updated_at: Optional[datetime] = None,
    ) -> WorkflowInstance:
        """Stop an active instance; open steps are cancelled."""

        instance = await self._instance(instance_id)
        if expected_updated_at is not None and expected_updated_at != instance.updated_at:
            raise ConflictError()
        if not instance.is_active:
            raise ConflictError(f"Workflow is already {instance.status}")
        if instance.started_by != user_id and not await self.directory.is_superadmin(user_id):
            raise PermissionDeniedError("You cannot cancel this workflow")

        now = _next_version(instance.updated_at, utcnow())
        steps = await self.repository.list_steps(instance_id)
        plan = _Plan(instance, steps, [], now, user_id)
        for step in steps:
            if step.is_open:
                plan.close(step, status="cancelled")
        plan.log(
            instance.current_node_id,
            None,
            BranchId.root(self.config.root_branch),
            notes=f"Workflow cancelled: {reason}" if reason else "Workflow cancelled",
        )
        transition = plan.to_transition(instance.updated_at).model_copy(
            update={"status": "cancelled", "completed_at": now}
        )
        await self.repository.apply_transition(transition)
        logger.info(f"Instance {instance_id} cancelled by {user_id}")
        return self._after(instance, transition)

    async def assign_node(
        self,
        instance_id: str,
        node_id: str,
        user_id: str,
        assigned_by: Optional[str] = None,
    ) -> WorkflowNodeAssignment:
        """Reserve ``user_id`` for a node of the instance ahead of time."""

        instance = await self._instance(instance_id)
        graph = await self._graph(instance)
        graph.node(node_id)
        assignment = WorkflowNodeAssignment(
            workflow_instance_id=instance_id,
            node_id=node_id,
            user_id=user_id,
            assigned_by=assigned_by,
        )
        await self.repository.add_node_assignment(assignment)
        await self.directory.assign_to_project(user_id, instance.project_id)
        return assignment

    async def delete_instance(self, instance_id: str) -> None:
        if not await self.repository.delete_instance(instance_id):
            raise NotFoundError("Workflow instance not found")
        logger.info(f"Deleted instance {instance_id}")


__all__ = ["WorkflowEngine"]
