"""
Keyword command classifier.

Maps the final (back-translated) text of an utterance to an Intent by
substring matching against an ordered keyword table. First match wins, no
match gives Intent.UNKNOWN. classify() is pure: same text and command set,
same intent.

Keyword tables are command sets stored as YAML under command_sets/.
PyYAML's safe_load also parses pure JSON, so .json sets work too.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from .models import Intent, UNKNOWN_COMMAND_RESPONSE


@dataclass(frozen=True)
class CommandRule:
    """Keywords that select one intent, and the response its execution reports."""

    intent: Intent
    keywords: Tuple[str, ...]
    response: str


@dataclass(frozen=True)
class CommandSet:
    """An ordered keyword table for one language."""

    name: str
    language: str
    rules: Tuple[CommandRule, ...]
    case_sensitive: bool = True
    unknown_response: str = UNKNOWN_COMMAND_RESPONSE

    def response_for(self, intent: Intent) -> str:
        for rule in self.rules:
            if rule.intent is intent:
                return rule.response
        return self.unknown_response


DEFAULT_COMMAND_SET = CommandSet(
    name="default",
    language="pt",
    rules=(
        CommandRule(Intent.ANALYZE_DATA, ("analisar dados",), "Análise de dados executada"),
        CommandRule(Intent.QUERY_HISTORY, ("consultar histórico",), "Histórico consultado"),
        CommandRule(Intent.GENERATE_REPORT, ("gerar relatório",), "Relatório gerado"),
        CommandRule(Intent.UPDATE_DATA, ("atualizar dados",), "Dados atualizados"),
    ),
)


def classify(text: str, command_set: CommandSet = DEFAULT_COMMAND_SET) -> Intent:
    """Return the intent of the first rule with a keyword contained in text."""
    if not text:
        return Intent.UNKNOWN

    haystack = text if command_set.case_sensitive else text.casefold()
    for rule in command_set.rules:
        for keyword in rule.keywords:
            needle = keyword if command_set.case_sensitive else keyword.casefold()
            if needle and needle in haystack:
                return rule.intent
    return Intent.UNKNOWN


def _get_command_sets_dir() -> Path:
    """Get the command sets directory path."""
    return Path(__file__).parent / "command_sets"


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Command set file {path} must contain a mapping at top-level")
        return data


def _parse_rules(raw_commands: Iterable[Dict[str, Any]], source: str) -> Tuple[CommandRule, ...]:
    rules = []
    for entry in raw_commands:
        try:
            intent = Intent(entry["intent"])
        except (KeyError, ValueError):
            raise ValueError(f"Command set {source}: invalid intent in {entry!r}")
        if intent is Intent.UNKNOWN:
            raise ValueError(f"Command set {source}: 'unknown' cannot be matched by keywords")

        keywords = entry.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [keywords]
        keywords = tuple(str(k) for k in keywords if str(k).strip())
        if not keywords:
            raise ValueError(f"Command set {source}: intent {intent.value} has no keywords")

        rules.append(CommandRule(intent=intent, keywords=keywords, response=str(entry.get("response", ""))))
    return tuple(rules)


def parse_command_set(data: Dict[str, Any], source: str = "<memory>") -> CommandSet:
    """Build a CommandSet from a loaded YAML/JSON mapping."""
    return CommandSet(
        name=str(data.get("name", source)),
        language=str(data.get("language", "pt")),
        rules=_parse_rules(data.get("commands") or [], source),
        case_sensitive=bool(data.get("case_sensitive", True)),
        unknown_response=str(data.get("unknown_response", UNKNOWN_COMMAND_RESPONSE)),
    )


def load_command_set(name: str) -> CommandSet:
    """
    Load a command set by name.

    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) default.yaml / default.yml / default.json
    3) hardcoded DEFAULT_COMMAND_SET
    """
    sets_dir = _get_command_sets_dir()

    for candidate_name in (name, "default"):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = sets_dir / f"{candidate_name}{suffix}"
            if candidate.exists():
                return parse_command_set(_load_file(candidate), source=candidate.name)

    return DEFAULT_COMMAND_SET


def get_command_set(name: Optional[str] = None) -> CommandSet:
    """
    Get the command set to classify with.

    Priority:
    1. name parameter (from job metadata)
    2. COMMAND_SET environment variable
    3. "default"
    """
    return load_command_set(name or os.getenv("COMMAND_SET", "default"))
