from typing import Callable, Iterable, Optional

import structlog

from audit.models import AuditEntryType, RuleAuditEntry, WinningRuleSummary
from audit.service import AuditLog
from common.config import settings
from common.storage import InMemoryStorage, default_id_factory, utc_now

from .conditions import DefinitionError
from .models import (
    CreateRuleRequest,
    EvaluationResponse,
    RuleInputs,
    RuleScopeIn,
    UpdateRuleRequest,
)
from .rule_engine import (
    InsuranceGroup,
    Rule,
    RuleAction,
    RuleDecision,
    RuleScope,
    format_rule_code,
    max_rule_number,
    parse_rule_code,
    pick_winning_rule,
)

logger = structlog.get_logger()


class RuleServiceError(Exception):
    pass


class GroupNotFoundError(RuleServiceError):
    pass


class RuleNotFoundError(RuleServiceError):
    pass


class DuplicateGroupError(RuleServiceError):
    pass


class DuplicateRuleCodeError(RuleServiceError):
    pass


def _scope_from_request(scope: RuleScopeIn) -> RuleScope:
    return RuleScope(
        insurance_name=scope.insurance_name, plan_type=scope.plan_type,
        network_status=scope.network_status, clinic_name=scope.clinic_name,
        group_id=scope.group_id, policy_id=scope.policy_id,
    )


class RuleService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        audit_log: Optional[AuditLog] = None,
        id_factory: Callable[[], str] = default_id_factory,
        clock: Callable = utc_now,
        rule_code_prefix: str = settings.rule_code_prefix,
        rule_code_width: int = settings.rule_code_width,
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.audit_log = audit_log if audit_log is not None else AuditLog(id_factory=id_factory, clock=clock)
        self._id_factory = id_factory
        self._clock = clock
        self._code_prefix = rule_code_prefix
        self._code_width = rule_code_width
        existing = max_rule_number((r.rule_code for r in self.storage.rules.list()), rule_code_prefix)
        self.storage.reserve_rule_number(existing)

    # Insurance groups

    def create_group(self, name: str) -> InsuranceGroup:
        trimmed = (name or "").strip()
        if len(trimmed) < 2:
            raise RuleServiceError("Insurance group name must be at least 2 characters")
        if self.find_group_by_name(trimmed):
            raise DuplicateGroupError(f"Insurance group '{trimmed}' already exists")

        group = InsuranceGroup(id=self._id_factory(), name=trimmed, updated_at=self._clock())
        self.storage.groups.create(group)
        logger.info("insurance_group_created", group_id=group.id, name=group.name)
        return group

    def get_group(self, group_id: str) -> InsuranceGroup:
        group = self.storage.groups.get(group_id)
        if not group:
            raise GroupNotFoundError(f"Insurance group {group_id} not found")
        return group

    def find_group_by_name(self, name: str) -> Optional[InsuranceGroup]:
        wanted = name.strip().lower()
        return next((g for g in self.storage.groups.list() if g.name.lower() == wanted), None)

    def list_groups(self, search: Optional[str] = None) -> list[InsuranceGroup]:
        groups = self.storage.groups.list()
        q = (search or "").strip().lower()
        if q:
            groups = [g for g in groups if q in g.name.lower()]
        return groups

    # Rules

    def create_rule(self, request: CreateRuleRequest) -> Rule:
        group = self.get_group(request.insurance_group_id)
        now = self._clock()
        try:
            scope = _scope_from_request(request.scope)
            action = RuleAction(status_to_set=request.status_to_set)
        except DefinitionError as e:
            raise RuleServiceError(str(e)) from e

        rule = Rule(
            id=self._id_factory(),
            rule_code=self._next_rule_code(),
            insurance_group_id=group.id,
            scope=scope,
            action=action,
            created_at=now,
            updated_at=now,
            policy_match_type=request.policy_match_type,
        )
        self.storage.rules.create(rule)
        self.storage.groups.update(group.id, updated_at=now)
        logger.info(
            "rule_created", rule_code=rule.rule_code, group=group.name,
            scope_level=rule.scope_level.value, status_to_set=action.status_to_set,
        )
        return rule

    def get_rule(self, rule_id: str) -> Rule:
        rule = self.storage.rules.get(rule_id)
        if not rule:
            raise RuleNotFoundError(f"Rule {rule_id} not found")
        return rule

    def list_rules(self, group_id: Optional[str] = None, include_inactive: bool = True) -> list[Rule]:
        rules = self.storage.rules.list()
        if group_id:
            rules = [r for r in rules if r.insurance_group_id == group_id]
        if not include_inactive:
            rules = [r for r in rules if r.is_active]
        rules.sort(key=lambda r: r.created_at, reverse=True)
        return rules

    def update_rule(self, rule_id: str, request: UpdateRuleRequest) -> Rule:
        rule = self.get_rule(rule_id)
        changes = {"updated_at": self._clock()}
        try:
            if request.scope is not None:
                changes["scope"] = _scope_from_request(request.scope)
            if request.status_to_set is not None:
                changes["action"] = RuleAction(status_to_set=request.status_to_set)
        except DefinitionError as e:
            raise RuleServiceError(str(e)) from e
        if request.policy_match_type is not None:
            changes["policy_match_type"] = request.policy_match_type

        updated = self.storage.rules.update(rule.id, **changes)
        logger.info("rule_updated", rule_code=updated.rule_code, fields=sorted(changes))
        return updated

    def toggle_rule_active(self, rule_id: str) -> Rule:
        rule = self.get_rule(rule_id)
        updated = self.storage.rules.update(rule.id, is_active=not rule.is_active, updated_at=self._clock())
        logger.info("rule_toggled", rule_code=updated.rule_code, is_active=updated.is_active)
        return updated

    def set_group_rules_active(self, group_id: str, is_active: bool) -> list[Rule]:
        self.get_group(group_id)
        ids = [r.id for r in self.list_rules(group_id)]
        updated = self.storage.rules.update_many(ids, is_active=is_active, updated_at=self._clock())
        logger.info("group_rules_set_active", group_id=group_id, is_active=is_active, count=len(updated))
        return updated

    # Evaluation

    def evaluate(self, inputs: RuleInputs, insurance_group_id: Optional[str] = None) -> EvaluationResponse:
        group = self.get_group(insurance_group_id) if insurance_group_id else None
        rules = self.list_rules(group.id) if group else self.storage.rules.list()
        decision = pick_winning_rule(rules, inputs.model_dump())

        notes = "Evaluation completed." if decision.winner else "No matching rule found."
        if decision.tied:
            notes += f" Tie with {', '.join(r.rule_code for r in decision.tied)} broken by most recent update."
            logger.warning(
                "rule_precedence_tie", winner=decision.winner.rule_code,
                scope_level=decision.scope_level.value, tied=[r.rule_code for r in decision.tied],
            )

        entry = self._record_decision(AuditEntryType.EVALUATE, inputs, group, decision, notes)
        logger.info(
            "rule_evaluated", winner=decision.winner.rule_code if decision.winner else None,
            candidates=decision.candidate_count, status_to_set=decision.status_to_set,
        )
        return EvaluationResponse.from_decision(decision, audit_entry_id=entry.id)

    def batch_re_evaluate(self, group_id: str, inputs: Optional[RuleInputs] = None) -> RuleAuditEntry:
        group = self.get_group(group_id)
        entry = self.audit_log.record_rule_event(
            AuditEntryType.BATCH_EVALUATE,
            inputs=(inputs or RuleInputs()).model_dump(),
            insurance_group_name=group.name,
            notes="Batch re-evaluate requested; records are re-evaluated by the scheduled backend job.",
        )
        logger.info("batch_re_evaluate_requested", group_id=group.id, entry_id=entry.id)
        return entry

    # Import / export

    def export_rules(self, group_id: Optional[str] = None) -> list[dict]:
        return [r.to_dict() for r in self.list_rules(group_id)]

    def import_rules(self, payloads: Iterable[dict]) -> list[Rule]:
        """Import a batch of rules. Nothing is stored unless every payload is valid."""
        taken = {r.rule_code for r in self.storage.rules.list()}
        parsed = []
        for data in payloads:
            if not data.get("insuranceGroupId") or data["insuranceGroupId"] not in self.storage.groups:
                raise GroupNotFoundError(f"Insurance group {data.get('insuranceGroupId')} not found")
            try:
                rule = Rule.from_dict(data, id=self._id_factory(), created_at=self._clock())
            except DefinitionError as e:
                raise RuleServiceError(str(e)) from e
            if rule.rule_code in taken:
                raise DuplicateRuleCodeError(f"Rule code {rule.rule_code} already exists")
            taken.add(rule.rule_code)
            parsed.append(rule)

        for rule in parsed:
            number = parse_rule_code(rule.rule_code, self._code_prefix)
            if number is not None:
                self.storage.reserve_rule_number(number)
            self.storage.rules.create(rule)
        logger.info("rules_imported", count=len(parsed))
        return parsed

    def _next_rule_code(self) -> str:
        return format_rule_code(self.storage.next_rule_number(), self._code_prefix, self._code_width)

    def _record_decision(
        self,
        entry_type: AuditEntryType,
        inputs: RuleInputs,
        group: Optional[InsuranceGroup],
        decision: RuleDecision,
        notes: str,
    ) -> RuleAuditEntry:
        winning = None
        if decision.winner:
            winning = WinningRuleSummary(
                rule_id=decision.winner.rule_code,
                scope_level=decision.scope_level.value,
                precedence_reason=decision.reason,
                status_to_set=decision.status_to_set,
            )
        return self.audit_log.record_rule_event(
            entry_type,
            inputs=inputs.model_dump(),
            insurance_group_name=group.name if group else None,
            winning_rule=winning,
            notes=notes,
        )
