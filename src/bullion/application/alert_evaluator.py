# src/bullion/application/alert_evaluator.py
"""
Alert Evaluator - Threshold Crossing Detection

Runs once per refresh cycle, after the writer. Every active rule is compared
against the latest stored USD price of its instrument, whatever currency the
rule was created in:

- above: triggered when current >= target
- below: triggered when current <= target

A trigger stamps the rule's triggered_at and then appends an
AlertTriggerEvent to the history table (with notification_sent = False;
delivery is someone else's job). If the history insert fails the stamp is
undone, so a rule is never left stamped without its event.

Re-trigger policy:
- "edge" (default): a rule fires only while armed (triggered_at is null).
  While the price stays past the threshold the rule is suppressed; once the
  price is seen back on the other side, triggered_at is cleared and the
  rule re-arms. One event per crossing.
- "level": the rule fires on every evaluation while the condition holds.

Per-rule failures are logged and skipped.

Files that USE this module:
- bullion.application.refresh_service (evaluate_alerts after each write cycle)
- tests.test_alert_evaluator (unit tests)

Files that this module USES:
- bullion.adapters.persistence.row_store (rules, prices and history tables)
- bullion.domain.models (AlertRule, AlertTriggerEvent, StoredPriceRow)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Literal

from bullion.adapters.persistence.row_store import (
    ALERT_HISTORY_TABLE,
    ALERTS_TABLE,
    PRICES_TABLE,
    RowStore,
)
from bullion.domain.errors import PersistenceError, PriceDataMissingError
from bullion.domain.models import (
    AlertRule,
    AlertTriggerEvent,
    Currency,
    StoredPriceRow,
    utc_now,
)

log = logging.getLogger(__name__)

RetriggerMode = Literal["edge", "level"]


@dataclass
class AlertEvaluationResult:
    """Outcome of one evaluation pass."""
    evaluated: int = 0
    triggered: List[AlertTriggerEvent] = field(default_factory=list)
    suppressed: List[int] = field(default_factory=list)  # crossed, already notified
    rearmed: List[int] = field(default_factory=list)
    skipped: Dict[int, str] = field(default_factory=dict)


class AlertEvaluator:
    """Evaluates active alert rules against the newest stored prices."""

    def __init__(
        self,
        store: RowStore,
        retrigger_mode: RetriggerMode = "edge",
        clock: Callable[[], datetime] = utc_now,
    ):
        if retrigger_mode not in ("edge", "level"):
            raise ValueError(f"Unknown retrigger mode: {retrigger_mode!r}")
        self.store = store
        self.retrigger_mode = retrigger_mode
        self._clock = clock

    def load_active_rules(self) -> List[AlertRule]:
        """
        Load every active rule; malformed rows are logged and ignored.

        Raises:
            PersistenceError: If the rules cannot be read at all
        """
        try:
            rows = self.store.select_where(ALERTS_TABLE, is_active=True)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load alert rules: {e}") from e

        rules = []
        for row in rows:
            try:
                rules.append(AlertRule.from_row(row))
            except (KeyError, ValueError, TypeError) as e:
                log.error("Skipping malformed alert rule %s: %s", row.get("id"), e)
        return rules

    def current_price(self, rule: AlertRule) -> float:
        """
        Latest stored USD price for the rule's instrument.

        Raises:
            PriceDataMissingError: If nothing is stored for the instrument
        """
        row = self.store.select_latest(PRICES_TABLE, "metal_type", rule.instrument.value)
        if row is None:
            raise PriceDataMissingError(f"No stored price for {rule.instrument.value}")
        price = StoredPriceRow.from_row(row).price_in(Currency.USD)
        if price is None:
            raise PriceDataMissingError(f"No USD price stored for {rule.instrument.value}")
        return price

    def evaluate_alerts(self) -> AlertEvaluationResult:
        """
        Evaluate all active rules once.

        Returns:
            AlertEvaluationResult describing triggers, suppressions and skips

        Raises:
            PersistenceError: If the active rules cannot be loaded
        """
        result = AlertEvaluationResult()
        rules = self.load_active_rules()
        for rule in rules:
            result.evaluated += 1
            try:
                self._evaluate_rule(rule, result)
            except Exception as e:
                log.error("Alert %s (%s %s %s) skipped: %s",
                          rule.id, rule.instrument.value, rule.condition.value, rule.target_price, e)
                result.skipped[rule.id] = str(e)

        if result.triggered:
            log.info("Alerts: %d evaluated, %d triggered", result.evaluated, len(result.triggered))
        return result

    def _evaluate_rule(self, rule: AlertRule, result: AlertEvaluationResult) -> None:
        price = self.current_price(rule)

        if not rule.is_crossed(price):
            if self.retrigger_mode == "edge" and not rule.is_armed:
                self.store.update(ALERTS_TABLE, rule.id, {"triggered_at": None})
                result.rearmed.append(rule.id)
                log.debug("Alert %s re-armed at %.2f", rule.id, price)
            return

        if self.retrigger_mode == "edge" and not rule.is_armed:
            result.suppressed.append(rule.id)
            return

        now = self._clock()
        event = AlertTriggerEvent(alert_id=rule.id, triggered_price=price, triggered_at=now)
        self.store.update(ALERTS_TABLE, rule.id, {"triggered_at": now.isoformat()})
        try:
            self.store.insert(ALERT_HISTORY_TABLE, event.to_row())
        except Exception:
            previous = rule.triggered_at.isoformat() if rule.triggered_at else None
            self.store.update(ALERTS_TABLE, rule.id, {"triggered_at": previous})
            raise
        result.triggered.append(event)
        log.info("Alert triggered for user %s: %s %s %s USD (current %.2f USD)",
                 rule.user_id, rule.instrument.value, rule.condition.value,
                 rule.target_price, price)
