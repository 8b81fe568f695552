"""Access-rule structures carried by storage modules.

Rules are parsed into typed values so modules can be inspected and merged,
but nothing here evaluates them; a rule engine consumes ``to_dict()``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple, Union


ACCESS_TYPES = ("list", "read", "create", "update", "delete")
BINARY_OPS = ("or", "and", "eq", "ne", "gt", "ge", "lt", "le")
PREPARATION_OPERATIONS = ("findObject", "countObjects")


@dataclass(frozen=True)
class RuleBinaryOp:
    op: str
    operands: Tuple["RuleLogic", ...]


@dataclass(frozen=True)
class RuleExists:
    path: str


@dataclass(frozen=True)
class RuleNot:
    rule: "RuleLogic"


RuleValue = Union[str, int, float, bool, None]
RuleLogic = Union[RuleValue, RuleBinaryOp, RuleExists, RuleNot]


@dataclass(frozen=True)
class FindObjectPreparation:
    placeholder: str
    collection: str
    where: Dict[str, Any]
    operation: str = "findObject"


@dataclass(frozen=True)
class CountObjectsPreparation:
    placeholder: str
    collection: str
    where: Dict[str, Any]
    operation: str = "countObjects"


RulePreparation = Union[FindObjectPreparation, CountObjectsPreparation]


@dataclass(frozen=True)
class OwnershipRule:
    field: str
    access: Union[str, Tuple[str, ...]] = "full"


@dataclass(frozen=True)
class PermissionRule:
    rule: RuleLogic
    group: str | None = None
    prepare: Tuple[RulePreparation, ...] = ()


@dataclass(frozen=True)
class ValidationRule:
    field: str
    rule: RuleLogic


@dataclass(frozen=True)
class ConstraintRule:
    rule: RuleLogic
    prepare: Tuple[RulePreparation, ...] = ()


@dataclass(frozen=True)
class AccessRules:
    ownership: Dict[str, OwnershipRule] = field(default_factory=dict)
    permissions: Dict[str, Dict[str, PermissionRule]] = field(default_factory=dict)
    validation: Dict[str, Tuple[ValidationRule, ...]] = field(default_factory=dict)
    constraints: Tuple[ConstraintRule, ...] = ()

    def is_empty(self) -> bool:
        return not (self.ownership or self.permissions or self.validation or self.constraints)

    def to_dict(self) -> dict:
        out: dict = {}
        if self.ownership:
            out["ownership"] = {
                name: {
                    "field": rule.field,
                    "access": rule.access if isinstance(rule.access, str) else list(rule.access),
                }
                for name, rule in self.ownership.items()
            }
        if self.permissions:
            out["permissions"] = {
                name: {access: _permission_to_dict(rule) for access, rule in by_type.items()}
                for name, by_type in self.permissions.items()
            }
        if self.validation:
            out["validation"] = {
                name: [{"field": rule.field, "rule": rule_to_dict(rule.rule)} for rule in rules]
                for name, rules in self.validation.items()
            }
        if self.constraints:
            out["constraints"] = [_constraint_to_dict(rule) for rule in self.constraints]
        return out


def parse_rule(raw: Any, path: str = "rule") -> RuleLogic:
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return raw
    if isinstance(raw, (RuleBinaryOp, RuleExists, RuleNot)):
        return raw
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ValueError(f"{path}: rule must be a value or a single-key object")
    (key, value), = raw.items()
    if key in BINARY_OPS:
        if not isinstance(value, list):
            raise ValueError(f"{path}.{key}: operands must be a list")
        return RuleBinaryOp(op=key, operands=tuple(parse_rule(item, f"{path}.{key}[{idx}]") for idx, item in enumerate(value)))
    if key == "exists":
        if not isinstance(value, str):
            raise ValueError(f"{path}.exists: must be a string")
        return RuleExists(path=value)
    if key == "not":
        return RuleNot(rule=parse_rule(value, f"{path}.not"))
    raise ValueError(f"{path}: unknown rule operator {key!r}")


def rule_to_dict(rule: RuleLogic) -> Any:
    if isinstance(rule, RuleBinaryOp):
        return {rule.op: [rule_to_dict(item) for item in rule.operands]}
    if isinstance(rule, RuleExists):
        return {"exists": rule.path}
    if isinstance(rule, RuleNot):
        return {"not": rule_to_dict(rule.rule)}
    return rule


def _parse_preparation(raw: Any, path: str) -> RulePreparation:
    if isinstance(raw, (FindObjectPreparation, CountObjectsPreparation)):
        return raw
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: preparation must be an object")
    operation = raw.get("operation")
    if operation not in PREPARATION_OPERATIONS:
        raise ValueError(f"{path}.operation: must be one of {', '.join(PREPARATION_OPERATIONS)}")
    placeholder = raw.get("placeholder")
    collection = raw.get("collection")
    where = raw.get("where") or {}
    if not isinstance(placeholder, str) or not isinstance(collection, str) or not isinstance(where, dict):
        raise ValueError(f"{path}: placeholder, collection and where are required")
    cls = FindObjectPreparation if operation == "findObject" else CountObjectsPreparation
    return cls(placeholder=placeholder, collection=collection, where=copy.deepcopy(where))


def _parse_prepare(raw: Any, path: str) -> Tuple[RulePreparation, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError(f"{path}: prepare must be a list")
    return tuple(_parse_preparation(item, f"{path}[{idx}]") for idx, item in enumerate(raw))


def _preparation_to_dict(prep: RulePreparation) -> dict:
    return {
        "placeholder": prep.placeholder,
        "operation": prep.operation,
        "collection": prep.collection,
        "where": copy.deepcopy(prep.where),
    }


def _permission_to_dict(rule: PermissionRule) -> dict:
    out: dict = {"rule": rule_to_dict(rule.rule)}
    if rule.group:
        out["group"] = rule.group
    if rule.prepare:
        out["prepare"] = [_preparation_to_dict(prep) for prep in rule.prepare]
    return out


def _constraint_to_dict(rule: ConstraintRule) -> dict:
    out: dict = {"rule": rule_to_dict(rule.rule)}
    if rule.prepare:
        out["prepare"] = [_preparation_to_dict(prep) for prep in rule.prepare]
    return out


def _parse_ownership(raw: Any) -> Dict[str, OwnershipRule]:
    out: Dict[str, OwnershipRule] = {}
    for name, rule in (raw or {}).items():
        if not isinstance(rule, dict) or not isinstance(rule.get("field"), str):
            raise ValueError(f"ownership.{name}: field is required")
        access = rule.get("access", "full")
        if isinstance(access, list):
            unknown = [a for a in access if a not in ACCESS_TYPES]
            if unknown:
                raise ValueError(f"ownership.{name}.access: unknown access types {unknown}")
            access = tuple(access)
        elif access != "full":
            raise ValueError(f"ownership.{name}.access: must be 'full' or a list of access types")
        out[name] = OwnershipRule(field=rule["field"], access=access)
    return out


def _parse_permissions(raw: Any) -> Dict[str, Dict[str, PermissionRule]]:
    out: Dict[str, Dict[str, PermissionRule]] = {}
    for name, by_type in (raw or {}).items():
        # Modules under construction declare placeholders like ``sharedList: []``.
        if not by_type:
            out[name] = {}
            continue
        if not isinstance(by_type, dict):
            raise ValueError(f"permissions.{name}: must be an object keyed by access type")
        rules: Dict[str, PermissionRule] = {}
        for access, rule in by_type.items():
            path = f"permissions.{name}.{access}"
            if access not in ACCESS_TYPES:
                raise ValueError(f"{path}: unknown access type")
            if not isinstance(rule, dict) or "rule" not in rule:
                raise ValueError(f"{path}: rule is required")
            rules[access] = PermissionRule(
                rule=parse_rule(rule["rule"], f"{path}.rule"),
                group=rule.get("group"),
                prepare=_parse_prepare(rule.get("prepare"), f"{path}.prepare"),
            )
        out[name] = rules
    return out


def _parse_validation(raw: Any) -> Dict[str, Tuple[ValidationRule, ...]]:
    out: Dict[str, Tuple[ValidationRule, ...]] = {}
    for name, rules in (raw or {}).items():
        if not isinstance(rules, list):
            raise ValueError(f"validation.{name}: must be a list")
        parsed: List[ValidationRule] = []
        for idx, rule in enumerate(rules):
            path = f"validation.{name}[{idx}]"
            if not isinstance(rule, dict) or not isinstance(rule.get("field"), str) or "rule" not in rule:
                raise ValueError(f"{path}: field and rule are required")
            parsed.append(ValidationRule(field=rule["field"], rule=parse_rule(rule["rule"], f"{path}.rule")))
        out[name] = tuple(parsed)
    return out


def _parse_constraints(raw: Any) -> Tuple[ConstraintRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValueError("constraints: must be a list")
    parsed: List[ConstraintRule] = []
    for idx, rule in enumerate(raw):
        path = f"constraints[{idx}]"
        if not isinstance(rule, dict) or "rule" not in rule:
            raise ValueError(f"{path}: rule is required")
        parsed.append(
            ConstraintRule(
                rule=parse_rule(rule["rule"], f"{path}.rule"),
                prepare=_parse_prepare(rule.get("prepare"), f"{path}.prepare"),
            )
        )
    return tuple(parsed)


def parse_access_rules(raw: Any) -> AccessRules:
    if isinstance(raw, AccessRules):
        return raw
    if raw is None:
        return AccessRules()
    if not isinstance(raw, dict):
        raise TypeError("accessRules must be an object")
    for key in ("ownership", "permissions", "validation"):
        if raw.get(key) is not None and not isinstance(raw.get(key), dict):
            raise ValueError(f"{key}: must be an object keyed by collection")
    return AccessRules(
        ownership=_parse_ownership(raw.get("ownership")),
        permissions=_parse_permissions(raw.get("permissions")),
        validation=_parse_validation(raw.get("validation")),
        constraints=_parse_constraints(raw.get("constraints")),
    )


def merge_access_rules(rule_sets: List[AccessRules]) -> AccessRules:
    """Combine per-module rules.

    Ownership and per-type permissions from later modules win; validation
    and constraints accumulate.
    """
    ownership: Dict[str, OwnershipRule] = {}
    permissions: Dict[str, Dict[str, PermissionRule]] = {}
    validation: Dict[str, Tuple[ValidationRule, ...]] = {}
    constraints: List[ConstraintRule] = []
    for rules in rule_sets:
        ownership.update(rules.ownership)
        for name, by_type in rules.permissions.items():
            permissions.setdefault(name, {}).update(by_type)
        for name, items in rules.validation.items():
            validation[name] = validation.get(name, ()) + items
        constraints.extend(rules.constraints)
    return AccessRules(
        ownership=ownership,
        permissions=permissions,
        validation=validation,
        constraints=tuple(constraints),
    )
