"""Structural merge of a validated fix into the original source.

Degradation chain, each step tagged in the returned :class:`MergeResult`:

  1. Original does not parse             → heuristic text edits, ``failed``.
  2. Whole aggregated fix parses         → AST merge, ``merged``.
  3. Otherwise, per marker-delimited block → AST merge of every block that
     parses; failing blocks are appended as a trailing comment,
     ``partially_merged``. If no block merges, fall through.
  4. Heuristic text edits on the original plus the whole fix appended as a
     trailing comment, ``unmerged``.

The AST merge matches top-level declarations by name. For each matched class
it removes members named in the removal list, removes ``if`` statements whose
condition mentions a domain keyword, and adds fix-side methods missing from
the original. Output is regenerated with ``ast.unparse``, so comments inside
merged code are not preserved.
"""

from __future__ import annotations

import ast
import copy
import re
import tokenize
from dataclasses import dataclass, field

from loguru import logger

from archfix.models import FileVerdict, MergeResult, MergeStatus, SourceUnit
from archfix.refactor.aggregator import split_fix_blocks
from archfix.refactor.parser import ParseError, PythonParser, StructuralParser
from archfix.refactor.validation import comment_block

UNMERGED_BLOCKS_HEADER = "# --- Un-merged snippet blocks (manual review needed) ---"
UNMERGED_FIX_HEADER = "# --- Suggested fix, not merged (manual review needed) ---"

_FuncDef = (ast.FunctionDef, ast.AsyncFunctionDef)
_Decl = (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)


@dataclass
class MergeStrategy:
    """Rules applied to matched declarations (and, textually, to the fallback).

    Attributes:
        removal_list: Member names to delete from matched classes.
        domain_keywords: An ``if`` whose condition mentions any of these
            (case-insensitive) is removed.
    """

    removal_list: list[str] = field(default_factory=list)
    domain_keywords: list[str] = field(default_factory=list)

    def mentions_keyword(self, text: str) -> bool:
        lowered = text.lower()
        return any(k.lower() in lowered for k in self.domain_keywords if k)


# ---------------------------------------------------------------------------
# AST rules
# ---------------------------------------------------------------------------


class _DomainCheckRemover(ast.NodeTransformer):
    def __init__(self, strategy: MergeStrategy) -> None:
        self.strategy = strategy
        self.removed = 0

    def visit_If(self, node: ast.If) -> ast.AST | None:
        if self.strategy.mentions_keyword(ast.unparse(node.test)):
            self.removed += 1
            return None
        return self.generic_visit(node)


def _fill_empty_bodies(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if isinstance(node, ast.Module):
            continue
        body = getattr(node, "body", None)
        if isinstance(body, list) and not body:
            node.body = [ast.Pass()]


def _apply_rules(target: ast.ClassDef | ast.FunctionDef | ast.AsyncFunctionDef, strategy: MergeStrategy) -> int:
    """Apply removal and domain-check rules in place; returns edits made."""
    edits = 0
    if isinstance(target, ast.ClassDef) and strategy.removal_list:
        kept = [
            n for n in target.body
            if not (isinstance(n, _FuncDef) and n.name in strategy.removal_list)
        ]
        edits += len(target.body) - len(kept)
        target.body = kept
    if strategy.domain_keywords:
        remover = _DomainCheckRemover(strategy)
        target.body = [s for s in (remover.visit(stmt) for stmt in target.body) if s is not None]
        edits += remover.removed
    _fill_empty_bodies(target)
    return edits


def _add_missing_methods(target: ast.ClassDef, source: ast.ClassDef, strategy: MergeStrategy) -> int:
    existing = {n.name for n in target.body if isinstance(n, _FuncDef)}
    added = 0
    for node in source.body:
        if isinstance(node, _FuncDef) and node.name not in existing and node.name not in strategy.removal_list:
            target.body.append(copy.deepcopy(node))
            added += 1
    if added:
        target.body = [n for n in target.body if not isinstance(n, ast.Pass)] or [ast.Pass()]
    return added


def _merge_tree(original: ast.Module, fix: ast.Module, strategy: MergeStrategy) -> int:
    """Merge *fix* into *original* in place; returns how many declarations matched."""
    top = {n.name: n for n in original.body if isinstance(n, _Decl)}
    matched = 0
    for node in fix.body:
        if not isinstance(node, _Decl):
            continue
        target = top.get(node.name)
        if isinstance(target, ast.ClassDef) and isinstance(node, ast.ClassDef):
            _apply_rules(target, strategy)
            _add_missing_methods(target, node, strategy)
            matched += 1
        elif isinstance(target, _FuncDef) and isinstance(node, _FuncDef):
            _apply_rules(target, strategy)
            matched += 1
        elif target is None and isinstance(node, _FuncDef):
            # A member-level fix: apply the rules to the class that owns it.
            for owner in original.body:
                if isinstance(owner, ast.ClassDef) and any(
                    isinstance(m, _FuncDef) and m.name == node.name for m in owner.body
                ):
                    _apply_rules(owner, strategy)
                    matched += 1
                    break
    return matched


def _has_declarations(tree: ast.Module) -> bool:
    return any(isinstance(n, _Decl) for n in tree.body)


# ---------------------------------------------------------------------------
# Heuristic text edits
# ---------------------------------------------------------------------------

_DEF_RE = re.compile(r"^(?P<indent>[ \t]*)(?:async[ \t]+)?def[ \t]+(?P<name>\w+)[ \t]*\(")
_IF_RE = re.compile(r"^(?P<indent>[ \t]*)if\b")
_CLAUSE_RE = re.compile(r"^[ \t]*(?:elif|else)\b")


@dataclass
class _Header:
    """Where a compound-statement header ends.

    ``last`` is the index of the line holding the closing colon (or the end
    of an inline body); ``condition`` is the source between the keyword and
    that colon.
    """

    last: int
    condition: str
    inline: bool


def _find_header(lines: list[str], start: int) -> _Header | None:
    """Tokenize from ``lines[start]`` up to the colon that closes its header.

    Colons inside brackets, strings and comments do not count. None when the
    tokenizer rejects the text.
    """
    feed = (lines[j] + "\n" for j in range(start, len(lines)))
    depth = 0
    keyword_end: tuple[int, int] | None = None
    colon: tuple[int, int] | None = None
    inline = False
    try:
        for tok in tokenize.generate_tokens(lambda: next(feed, "")):
            if tok.type in (tokenize.INDENT, tokenize.DEDENT, tokenize.NL, tokenize.COMMENT):
                continue
            if keyword_end is None:
                keyword_end = tok.end
            elif colon is None:
                if tok.type in (tokenize.NEWLINE, tokenize.ENDMARKER):
                    return None
                if tok.type == tokenize.OP:
                    if tok.string in "([{":
                        depth += 1
                    elif tok.string in ")]}":
                        depth -= 1
                    elif tok.string == ":" and depth == 0:
                        colon = tok.start
            elif tok.type in (tokenize.NEWLINE, tokenize.ENDMARKER):
                return _Header(start + tok.start[0] - 1, _between(lines[start:], keyword_end, colon), inline)
            else:
                inline = True
    except (tokenize.TokenError, SyntaxError):
        return None
    return None


def _between(lines: list[str], begin: tuple[int, int], end: tuple[int, int]) -> str:
    """Source between two tokenizer positions (rows are 1-based)."""
    rows = lines[begin[0] - 1 : end[0]]
    if len(rows) == 1:
        return rows[0][begin[1] : end[1]]
    return "\n".join([rows[0][begin[1] :], *rows[1:-1], rows[-1][: end[1]]])


def _block_end(lines: list[str], header: _Header, indent: str) -> int:
    """Index just past the statement whose header is *header*."""
    if header.inline:
        return header.last + 1
    end = header.last + 1
    while end < len(lines):
        line = lines[end]
        if line.strip() and len(line) - len(line.lstrip()) <= len(indent):
            break
        end += 1
    # trailing blank lines belong to whatever follows
    while end - 1 > header.last and not lines[end - 1].strip():
        end -= 1
    return end


def apply_heuristics(text: str, strategy: MergeStrategy) -> tuple[str, int]:
    """Line-based version of the merge rules for code that cannot be merged.

    Removed blocks become ``pass  # removed ...`` so the surrounding body stays
    syntactically complete. If *text* parses and the edited text would not,
    *text* is returned unchanged. Returns the text and the number of edits.
    """
    lines = text.splitlines()
    out: list[str] = []
    edits = 0
    i = 0
    while i < len(lines):
        line = lines[i]

        m = _DEF_RE.match(line)
        header = _find_header(lines, i) if m and m.group("name") in strategy.removal_list else None
        if header is not None:
            indent = m.group("indent")
            while out and out[-1].strip().startswith("@") and out[-1].startswith(indent + "@"):
                out.pop()
            out.append(f"{indent}pass  # removed {m.group('name')} per domain rule")
            i = _block_end(lines, header, indent)
            edits += 1
            continue

        m = _IF_RE.match(line)
        header = _find_header(lines, i) if m else None
        if header is not None and strategy.mentions_keyword(header.condition):
            indent = m.group("indent")
            end = _block_end(lines, header, indent)
            while end < len(lines) and _CLAUSE_RE.match(lines[end]) \
                    and len(lines[end]) - len(lines[end].lstrip()) == len(indent):
                clause = _find_header(lines, end)
                if clause is None:
                    break
                end = _block_end(lines, clause, indent)
            out.append(f"{indent}pass  # removed domain check per domain rule")
            i = end
            edits += 1
            continue

        out.append(line)
        i += 1

    result = "\n".join(out)
    if text.endswith("\n"):
        result += "\n"
    if edits:
        parser = PythonParser()
        if parser.is_valid(text) and not parser.is_valid(result):
            logger.warning("Heuristic edits would break the syntax; leaving the text unchanged")
            return text, 0
    return result, edits


# ---------------------------------------------------------------------------
# Merger
# ---------------------------------------------------------------------------


def _with_annotation(code: str, header: str, body: str) -> str:
    return f"{code.rstrip()}\n\n\n{comment_block(header, body)}\n"


class StructuralMerger:
    def __init__(self, strategy: MergeStrategy | None = None, parser: StructuralParser | None = None) -> None:
        self.strategy = strategy or MergeStrategy()
        self.parser = parser or PythonParser()

    def merge(self, original: SourceUnit, verdict: FileVerdict) -> tuple[str, MergeResult]:
        """Fuse *verdict*'s fix into *original*. Never raises."""
        if not verdict.violation:
            return original.text, MergeResult(MergeStatus.MERGED, detail="no violation")
        try:
            return self._merge(original, verdict)
        except Exception as exc:
            logger.error("Structural merge of {} crashed: {}; using heuristics", original.id, exc)
            return self._heuristic(original, verdict, MergeStatus.FAILED, f"merge error: {exc}")

    def _merge(self, original: SourceUnit, verdict: FileVerdict) -> tuple[str, MergeResult]:
        # Step 1: original
        try:
            tree = self.parser.parse(original.text)
        except ParseError as exc:
            logger.warning("{} does not parse ({}); heuristic merge only", original.id, exc.describe())
            return self._heuristic(original, verdict, MergeStatus.FAILED, f"original unparseable: {exc.describe()}")

        blocks = split_fix_blocks(verdict.fix)

        # Step 2: whole fix (the tree is only mutated when something matches)
        try:
            fix_tree = self.parser.parse(verdict.fix)
        except ParseError:
            fix_tree = None
        if fix_tree is not None and _merge_tree(tree, fix_tree, self.strategy) > 0:
            leftovers = [b for _, b in blocks if not self._mergeable(b)]
            code = ast.unparse(ast.fix_missing_locations(tree)) + "\n"
            if leftovers:
                code = _with_annotation(code, UNMERGED_BLOCKS_HEADER, "\n\n".join(leftovers))
            logger.info("{}: fix merged", original.id)
            return code, MergeResult(MergeStatus.MERGED, leftovers)

        # Step 3: block by block
        merged = 0
        failed: list[str] = []
        for index, block in blocks:
            try:
                block_tree = self.parser.parse(block)
            except ParseError as exc:
                logger.debug("{} block {} does not parse: {}", original.id, index, exc.describe())
                failed.append(block)
                continue
            if _merge_tree(tree, block_tree, self.strategy) > 0:
                merged += 1
            else:
                failed.append(block)

        if merged:
            code = ast.unparse(ast.fix_missing_locations(tree)) + "\n"
            if failed:
                code = _with_annotation(code, UNMERGED_BLOCKS_HEADER, "\n\n".join(failed))
            logger.info("{}: {} block(s) merged, {} left as comments", original.id, merged, len(failed))
            return code, MergeResult(MergeStatus.PARTIALLY_MERGED, failed)

        # Step 4
        logger.warning("{}: no fix block could be merged; heuristic merge", original.id)
        return self._heuristic(original, verdict, MergeStatus.UNMERGED, "no block merged")

    def _mergeable(self, block: str) -> bool:
        try:
            return _has_declarations(self.parser.parse(block))
        except ParseError:
            return False

    def _heuristic(
        self, original: SourceUnit, verdict: FileVerdict, status: MergeStatus, detail: str
    ) -> tuple[str, MergeResult]:
        try:
            code, _ = apply_heuristics(original.text, self.strategy)
        except Exception as exc:
            logger.error("Heuristic edits failed for {}: {}", original.id, exc)
            code = original.text
        text = _with_annotation(code, UNMERGED_FIX_HEADER, verdict.fix) if verdict.fix.strip() else code
        return text, MergeResult(status, [verdict.fix] if verdict.fix.strip() else [], detail)
