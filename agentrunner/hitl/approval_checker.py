"""Rule-based approval checks for tool execution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml

LOGGER = logging.getLogger(__name__)

RISK_LEVELS_ORDER = ["critical", "high", "medium", "low"]


@dataclass(frozen=True)
class ApprovalCheck:
    """Approval verdict for one tool call. Truthy when approval is required."""

    needs_approval: bool
    reason: str = ""
    risk_level: str = "low"  # low, medium, high, critical

    def __bool__(self) -> bool:
        return self.needs_approval


class ApprovalChecker:
    """Decides from configured rules whether a tool call needs human approval.

    Three rule layers, highest priority first:
    1. Custom per-tool checkers (code)
    2. Global risk patterns (match any argument of any tool)
    3. Per-tool patterns from the config file

    Config layout (YAML)::

        global:
          risk_patterns:
            high:
              patterns: ["password", "api[_-]?key"]
              reason: "Possible credential leak"
        tools:
          transfer_funds:
            enabled: true
            patterns:
              high: ["\\\\d{4,}"]
            actions:
              high: require_approval
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None, rules: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_path: Approval rules YAML file (optional)
            rules: Already-parsed rules; take precedence over config_path
        """
        self.config_path = Path(config_path) if config_path else None
        if rules is not None:
            self.rules = rules
        else:
            self.rules = self._load_config() if self.config_path else {}
        self.custom_checkers: Dict[str, Callable[[Dict[str, Any]], ApprovalCheck]] = {}
        self.global_patterns = self._load_global_patterns()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path or not self.config_path.exists():
            LOGGER.warning(f"Approval config not found: {self.config_path}")
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            LOGGER.warning(f"Failed to load approval config {self.config_path}: {e}")
            return {}

    def _load_global_patterns(self) -> Dict[str, Dict[str, Any]]:
        global_config = self.rules.get("global", {}) or {}
        risk_patterns = global_config.get("risk_patterns", {}) or {}

        patterns_by_level = {}
        for level, pattern_config in risk_patterns.items():
            if isinstance(pattern_config, dict):
                patterns_by_level[level] = {
                    "patterns": pattern_config.get("patterns", []),
                    "action": pattern_config.get("action", "require_approval"),
                    "reason": pattern_config.get("reason", f"Matches global {level} risk pattern"),
                }

        return patterns_by_level

    def register_checker(self, tool_name: str, checker: Callable[[Dict[str, Any]], ApprovalCheck]) -> None:
        """Register a custom checker for one tool.

        Args:
            tool_name: Tool name
            checker: Receives the call arguments, returns an ApprovalCheck
        """
        self.custom_checkers[tool_name] = checker

    def check(self, tool_name: str, args: Dict[str, Any]) -> ApprovalCheck:
        """Check whether a tool call needs approval."""
        if tool_name in self.custom_checkers:
            return self.custom_checkers[tool_name](args)

        global_check = self._check_global_patterns(args)
        if global_check.needs_approval:
            return global_check

        if tool_name in (self.rules.get("tools") or {}):
            return self._check_config_rules(tool_name, args)

        return ApprovalCheck(needs_approval=False)

    def predicate_for(self, tool_name: str) -> Callable[[Any, Dict[str, Any], str], ApprovalCheck]:
        """Build a Tool.needs_approval predicate backed by these rules."""

        def _predicate(context: Any, args: Dict[str, Any], call_id: str) -> ApprovalCheck:
            return self.check(tool_name, args)

        return _predicate

    def _check_global_patterns(self, args: Dict[str, Any]) -> ApprovalCheck:
        if not self.global_patterns:
            return ApprovalCheck(needs_approval=False)

        args_str = _flatten_args(args)

        for risk_level in RISK_LEVELS_ORDER:
            if risk_level not in self.global_patterns:
                continue

            pattern_config = self.global_patterns[risk_level]
            if pattern_config["action"] != "require_approval":
                continue

            for pattern in pattern_config["patterns"]:
                if re.search(pattern, args_str, re.IGNORECASE):
                    return ApprovalCheck(
                        needs_approval=True,
                        reason=pattern_config["reason"],
                        risk_level=risk_level,
                    )

        return ApprovalCheck(needs_approval=False)

    def _check_config_rules(self, tool_name: str, args: Dict[str, Any]) -> ApprovalCheck:
        tool_config = self.rules["tools"][tool_name] or {}

        if not tool_config.get("enabled", True):
            return ApprovalCheck(needs_approval=False)

        args_str = _flatten_args(args)
        patterns = tool_config.get("patterns", {}) or {}

        for risk_level, pattern_list in patterns.items():
            action = (tool_config.get("actions") or {}).get(risk_level, "require_approval")
            if action != "require_approval":
                continue
            for pattern in pattern_list:
                if re.search(pattern, args_str, re.IGNORECASE):
                    return ApprovalCheck(
                        needs_approval=True,
                        reason=f"Matches {risk_level} risk pattern: {pattern}",
                        risk_level=risk_level,
                    )

        return ApprovalCheck(needs_approval=False)


def _flatten_args(args: Dict[str, Any]) -> str:
    return " ".join(str(v) for v in args.values())
