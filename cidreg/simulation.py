"""
Scenario replay against in-memory collaborators.

A scenario is a YAML document naming funded accounts and a list of steps.
It is validated against ``schemas/scenario.schema.json`` and replayed on a
fresh registry driven by a ``ManualClock``:

    name: renewal window
    base_price: 10
    accounts:
      alice: 1000
    steps:
      - register: {caller: alice, cid: 1234}
      - advance: {months: 19}
      - renew: {caller: alice, cid: 1234, expect: not_renewable}
      - advance: {months: 1}
      - renew: {caller: alice, cid: 1234}

Accounts are derived deterministically from their labels, so the same
scenario always produces the same addresses. A step may carry ``expect``:
``ok`` or the ``error_code`` it should fail with. Rejected steps never
stop the replay.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import pathlib
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import Draft202012Validator

from cidreg.accounts import Account
from cidreg.activation import activate
from cidreg.config import SCHEMA_DIR, ConfigManager, SettingsStore, schema_validator
from cidreg.duration import months_to_seconds
from cidreg.errors import RegistryError
from cidreg.genesis import ManualClock
from cidreg.issuer import InMemoryAssetIssuer
from cidreg.ledger import InMemoryLedger
from cidreg.registry import RegistryEngine

SCENARIO_SCHEMA_PATH = SCHEMA_DIR / "scenario.schema.json"

DEFAULT_TREASURY = "treasury"
DEFAULT_ADMIN = "admin"


class ScenarioError(Exception):
    """Scenario file is unreadable or does not match the schema."""


@lru_cache(maxsize=1)
def scenario_validator() -> Draft202012Validator:
    return schema_validator(SCENARIO_SCHEMA_PATH)


def load_scenario(path: Union[str, pathlib.Path]) -> Dict[str, Any]:
    path = pathlib.Path(path)
    if not path.exists():
        raise ScenarioError(f"scenario not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    errors = sorted(scenario_validator().iter_errors(data), key=lambda e: e.json_path)
    if errors:
        raise ScenarioError(f"invalid scenario {path}: {errors[0].json_path}: {errors[0].message}")
    return data


@dataclass
class StepOutcome:
    index: int
    op: str
    ok: bool
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    expect: Optional[str] = None

    @property
    def as_expected(self) -> bool:
        if self.expect is None:
            return True
        if self.expect == "ok":
            return self.ok
        return not self.ok and self.error is not None and self.error["error_code"] == self.expect

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"step": self.index, "op": self.op, "ok": self.ok}
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        if self.expect is not None:
            data["expect"] = self.expect
            data["as_expected"] = self.as_expected
        return data


@dataclass
class SimulationResult:
    name: str
    outcomes: List[StepOutcome] = field(default_factory=list)
    registry: Dict[str, Any] = field(default_factory=dict)
    balances: Dict[str, int] = field(default_factory=dict)

    @property
    def expectations_met(self) -> bool:
        return all(o.as_expected for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "expectations_met": self.expectations_met,
            "steps": [o.to_dict() for o in self.outcomes],
            "balances": self.balances,
            "registry": self.registry,
        }


class ScenarioRunner:
    """Replays one scenario document on a fresh registry."""

    def __init__(self, scenario: Dict[str, Any]):
        self.scenario = scenario
        self.clock = ManualClock(scenario.get("start_time", 0))
        self.ledger = InMemoryLedger()
        self.issuer = InMemoryAssetIssuer()
        self._accounts: Dict[str, Account] = {}

        treasury = self.account(scenario.get("treasury", DEFAULT_TREASURY))
        admin = self.account(scenario.get("admin", DEFAULT_ADMIN))

        manager = ConfigManager()
        manager.set("accounts.treasury_address", treasury.address)
        manager.set("accounts.admin_address", admin.address)
        if "base_price" in scenario:
            manager.set("registration.base_price", scenario["base_price"])
        self.settings = SettingsStore(manager)

        for label, funds in scenario.get("accounts", {}).items():
            self.ledger.deposit(self.account(label).address, funds)

        self.engine: RegistryEngine = activate(
            self.settings,
            self.ledger,
            self.issuer,
            clock=self.clock,
            authority_account=Account.from_label("authority"),
        )

    def account(self, label: str) -> Account:
        if label not in self._accounts:
            self._accounts[label] = Account.from_label(label)
        return self._accounts[label]

    def _address(self, value: str) -> str:
        # Raw addresses pass through; anything else names an account
        return value if value.startswith("0x") else self.account(value).address

    def run(self) -> SimulationResult:
        result = SimulationResult(name=self.scenario.get("name", "scenario"))
        for index, step in enumerate(self.scenario.get("steps", []), start=1):
            (op, args), = step.items()
            args = dict(args)
            expect = args.pop("expect", None)
            try:
                value = getattr(self, f"_step_{op}")(args)
                outcome = StepOutcome(index=index, op=op, ok=True, result=value, expect=expect)
            except RegistryError as e:
                outcome = StepOutcome(index=index, op=op, ok=False, error=e.to_dict(), expect=expect)
            result.outcomes.append(outcome)

        result.registry = self.engine.export_registry()
        result.balances = {
            label: self.ledger.balance_of(account.address)
            for label, account in sorted(self._accounts.items())
        }
        return result

    # Steps

    def _step_register(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.engine.register(self.account(args["caller"]), args["cid"]).to_dict()

    def _step_renew(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.engine.renew(self.account(args["caller"]), args["cid"]).to_dict()

    def _step_set_address(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.engine.set_address(
            self.account(args["caller"]), args["cid"], self._address(args["address"])
        ).to_dict()

    def _step_clear_address(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return self.engine.clear_address(self.account(args["caller"]), args["cid"]).to_dict()

    def _step_resolve(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {"cid": args["cid"], "target_address": self.engine.resolve(args["cid"])}

    def _step_advance(self, args: Dict[str, Any]) -> Dict[str, Any]:
        seconds = args.get("seconds", 0) + months_to_seconds(args.get("months", 0))
        return {"now": self.clock.advance(seconds)}

    def _step_set_enabled(self, args: Dict[str, Any]) -> Dict[str, Any]:
        self.settings.set_enabled(self.account(args["caller"]), args["enabled"])
        return {"enabled": self.settings.is_enabled()}


def run_scenario(path: Union[str, pathlib.Path]) -> SimulationResult:
    return ScenarioRunner(load_scenario(path)).run()
