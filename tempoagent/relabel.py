"""Label rewriting rules applied to discovered targets."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_WORD = "[A-Za-z0-9_]"
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_REF = rf"\$(?:\{{{_WORD}+\}}|{_WORD}+)"
_TARGET_RE = re.compile(rf"(?:[a-zA-Z_]|{_REF})(?:{_WORD}|{_REF})*")
_EXPAND_RE = re.compile(rf"\$(?:\$|\{{({_WORD}+)\}}|({_WORD}+))")
_FIELDS = {"source_labels", "separator", "regex", "modulus", "target_label", "replacement", "action"}


class RelabelAction(str, Enum):
    """What a relabel rule does with the labels it matches."""

    REPLACE = "replace"
    KEEP = "keep"
    DROP = "drop"
    HASHMOD = "hashmod"
    LABELMAP = "labelmap"
    LABELDROP = "labeldrop"
    LABELKEEP = "labelkeep"


_TARGET_CHECKS = {RelabelAction.REPLACE: _TARGET_RE, RelabelAction.HASHMOD: _LABEL_NAME_RE}


@dataclass
class RelabelConfig:
    """One relabeling rule."""

    source_labels: tuple[str, ...] = ()
    separator: str = ";"
    regex: str = "(.*)"
    modulus: int = 0
    target_label: str = ""
    replacement: str = "$1"
    action: RelabelAction = RelabelAction.REPLACE
    _pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.source_labels = tuple(self.source_labels)
        try:
            self.action = RelabelAction(str(getattr(self.action, "value", self.action)).lower())
        except ValueError:
            raise ValueError(f"unknown relabel action {self.action!r}") from None
        try:
            self._pattern = re.compile(f"(?:{self.regex})")
        except re.error as exc:
            raise ValueError(f"invalid relabel regex {self.regex!r}: {exc}") from exc

        action = self.action
        if action is RelabelAction.HASHMOD and not self.modulus:
            raise ValueError("relabel configuration for hashmod requires non-zero modulus")
        if action in _TARGET_CHECKS:
            if not self.target_label:
                raise ValueError(
                    f"relabel configuration for {action.value} action requires 'target_label' value"
                )
            if not _TARGET_CHECKS[action].fullmatch(self.target_label):
                raise ValueError(f"{self.target_label!r} is invalid 'target_label' for {action.value} action")
        if action in (RelabelAction.LABELDROP, RelabelAction.LABELKEEP) and (
            self.source_labels or self.target_label or self.modulus
            or self.separator != ";" or self.replacement != "$1"
        ):
            raise ValueError(f"{action.value} action requires only 'regex', and no other fields")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelabelConfig:
        """Build a rule from its configuration mapping."""
        if not isinstance(data, Mapping):
            raise ValueError("relabel config must be a mapping")
        unknown = set(data) - _FIELDS
        if unknown:
            raise ValueError(f"unknown relabel config fields: {', '.join(sorted(map(str, unknown)))}")
        source_labels = data.get("source_labels") or ()
        if isinstance(source_labels, str) or not isinstance(source_labels, Iterable):
            raise ValueError("source_labels must be a list of label names")
        return cls(
            source_labels=tuple(map(str, source_labels)),
            separator=str(data.get("separator", ";")),
            regex=str(data.get("regex", "(.*)")),
            modulus=int(data.get("modulus") or 0),
            target_label=str(data.get("target_label") or ""),
            replacement=str(data.get("replacement", "$1")),
            action=data.get("action", RelabelAction.REPLACE.value),
        )

    def match(self, value: str) -> re.Match | None:
        """Match ``value`` against the whole anchored regex."""
        return self._pattern.fullmatch(value)


def _expand(template: str, match: re.Match) -> str:
    """Substitute ``$1``, ``${name}`` and ``$$`` references in ``template``."""

    def substitute(ref: re.Match) -> str:
        if ref.group(0) == "$$":
            return "$"
        name = ref.group(1) or ref.group(2)
        if name.isdigit():
            return (match.group(int(name)) or "") if int(name) <= match.re.groups else ""
        return (match.group(name) or "") if name in match.re.groupindex else ""

    return _EXPAND_RE.sub(substitute, template)


def _set(labels: dict[str, str], name: str, value: str) -> None:
    if value:
        labels[name] = value
    else:
        labels.pop(name, None)


def _relabel(labels: dict[str, str], cfg: RelabelConfig) -> dict[str, str] | None:
    result = dict(labels)
    value = cfg.separator.join(labels.get(name, "") for name in cfg.source_labels)
    action = cfg.action

    if action is RelabelAction.DROP:
        return None if cfg.match(value) else result
    if action is RelabelAction.KEEP:
        return result if cfg.match(value) else None
    if action is RelabelAction.REPLACE:
        found = cfg.match(value)
        if found is not None:
            target = _expand(cfg.target_label, found)
            replaced = _expand(cfg.replacement, found)
            if _LABEL_NAME_RE.fullmatch(target) and replaced:
                result[target] = replaced
            else:
                result.pop(cfg.target_label, None)
    elif action is RelabelAction.HASHMOD:
        digest = hashlib.md5(value.encode()).digest()
        _set(result, cfg.target_label, str(int.from_bytes(digest[8:], "big") % cfg.modulus))
    elif action is RelabelAction.LABELMAP:
        for name, label_value in labels.items():
            found = cfg.match(name)
            if found is not None:
                _set(result, _expand(cfg.replacement, found), label_value)
    else:
        keep = action is RelabelAction.LABELKEEP
        for name in labels:
            if bool(cfg.match(name)) != keep:
                result.pop(name, None)
    return result


def process(labels: Mapping[str, str], configs: Iterable[RelabelConfig]) -> dict[str, str] | None:
    """Apply ``configs`` in order; return the new labels, or None if dropped."""
    result: dict[str, str] | None = dict(labels)
    for cfg in configs:
        result = _relabel(result, cfg)
        if result is None:
            return None
    return result