from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.audit_service.checks.rules import RULES, Rule
from services.audit_service.db.models import CheckDefinition
from config.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeterministicStrategy:
    rule: Rule

    kind = "deterministic"


@dataclass(frozen=True)
class AIStrategy:
    instructions: Optional[str] = None

    kind = "ai"


Strategy = Union[DeterministicStrategy, AIStrategy]


class CheckRegistry:
    """Read-only lookup from check key to the strategy that executes it."""

    def __init__(self, strategies: Mapping[str, Strategy]):
        self._strategies = MappingProxyType(dict(strategies))

    def strategy_for(self, key: str) -> Optional[Strategy]:
        return self._strategies.get(key)

    def keys(self) -> Iterator[str]:
        return iter(self._strategies)

    def __contains__(self, key: object) -> bool:
        return key in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)

    @classmethod
    def build(
        cls,
        ai_checks: Optional[Mapping[str, Optional[str]]] = None,
        rules: Optional[Mapping[str, Rule]] = None,
    ) -> "CheckRegistry":
        rules = RULES if rules is None else rules
        strategies: Dict[str, Strategy] = {
            key: DeterministicStrategy(rule) for key, rule in rules.items()
        }
        for key, instructions in (ai_checks or {}).items():
            if key in strategies:
                continue
            strategies[key] = AIStrategy(instructions)
        return cls(strategies)


def load_registry(session: Session, extra_rules: Optional[Mapping[str, Rule]] = None) -> CheckRegistry:
    """
    Build the registry for this process.

    Every deterministic rule is registered under its key. Check definitions that
    carry instructions and have no rule become AI-mediated checks.
    """
    rules: Dict[str, Rule] = dict(RULES)
    rules.update(extra_rules or {})

    ai_checks = {
        key: instructions
        for key, instructions in session.execute(
            select(CheckDefinition.key, CheckDefinition.instructions)
        )
        if key not in rules and instructions
    }
    registry = CheckRegistry.build(ai_checks=ai_checks, rules=rules)
    logger.info(
        "Check registry loaded",
        extra={"deterministic": len(rules), "ai": len(ai_checks)},
    )
    return registry


def unregistered(registry: CheckRegistry, keys: Iterable[str]) -> list:
    return [key for key in keys if key not in registry]
