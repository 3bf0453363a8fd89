"""Directive tag parsing for model output.

Recognised tags (keyword matching is case-insensitive)::

    [ACTION: <type> | KEY: value | KEY: value]
    [REMEMBER: <fact text>]
    [GOAL: <goal text> | DEADLINE: <date text>]
    [DONE: <search text>]

Parsing is pure: each function returns the extracted directives together with
the text with exactly those matched substrings removed.
"""

import re
from dataclasses import dataclass, field
from typing import List, Tuple

from assistant_relay.domain.models import MemoryIntent, ParsedAction

_ACTION_RE = re.compile(r"\[ACTION:\s*([^\]|\n]+?)(?:\s*\|([^\]\n]+?))?\]", re.IGNORECASE)
_REMEMBER_RE = re.compile(r"\[REMEMBER:\s*([^\]\n]+?)\]", re.IGNORECASE)
_GOAL_RE = re.compile(r"\[GOAL:\s*([^\]\n]+?)(?:\s*\|\s*DEADLINE:\s*([^\]\n]+?))?\]", re.IGNORECASE)
_DONE_RE = re.compile(r"\[DONE:\s*([^\]\n]+?)\]", re.IGNORECASE)


@dataclass
class ActionParse:
    cleaned: str
    actions: List[ParsedAction] = field(default_factory=list)


@dataclass
class IntentParse:
    cleaned: str
    intents: List[MemoryIntent] = field(default_factory=list)


def _remove_spans(text: str, spans: List[Tuple[int, int]]) -> str:
    """Cut the given (start, end) spans out of ``text``.

    A tag sitting between two spaces leaves a single space behind.
    """
    if not spans:
        return text
    out = text[:spans[0][0]]
    for i, (_, end) in enumerate(spans):
        next_start = spans[i + 1][0] if i + 1 < len(spans) else len(text)
        segment = text[end:next_start]
        if out.endswith((" ", "\t")) and segment.startswith((" ", "\t")):
            segment = segment.lstrip(" \t")
        out += segment
    return out


def _parse_fields(raw: str) -> dict:
    fields = {}
    for pair in raw.split("|"):
        key, sep, value = pair.partition(":")
        if not sep:
            continue
        fields[key.strip().lower()] = value.strip()
    return fields


def extract_actions(response: str) -> ActionParse:
    """Pull every ``[ACTION: ...]`` tag out of ``response``, left to right."""
    actions: List[ParsedAction] = []
    spans: List[Tuple[int, int]] = []
    for match in _ACTION_RE.finditer(response):
        fields = _parse_fields(match.group(2)) if match.group(2) else {}
        actions.append(ParsedAction(type=match.group(1).strip().lower(), fields=fields))
        spans.append(match.span())
    return ActionParse(cleaned=_remove_spans(response, spans).strip(), actions=actions)


def extract_intents(response: str) -> IntentParse:
    """Pull REMEMBER, GOAL and DONE tags out of ``response``.

    Intents are returned grouped by kind (all REMEMBER, then GOAL, then DONE),
    each group in order of appearance.
    """
    intents: List[MemoryIntent] = []
    text = response

    for pattern, kind in ((_REMEMBER_RE, "remember"), (_GOAL_RE, "goal"), (_DONE_RE, "done")):
        spans: List[Tuple[int, int]] = []
        for match in pattern.finditer(text):
            deadline = None
            if kind == "goal" and match.group(2):
                deadline = match.group(2).strip()
            intents.append(MemoryIntent(kind=kind, content=match.group(1).strip(), deadline=deadline))
            spans.append(match.span())
        text = _remove_spans(text, spans)

    return IntentParse(cleaned=text.strip(), intents=intents)


def strip_directives(response: str) -> str:
    """Remove every recognised tag without acting on any of them."""
    return extract_intents(extract_actions(response).cleaned).cleaned
