"""A parser for POSIX and bash shell scripts producing a small syntax tree."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, Union


class ShellSyntaxError(ValueError):
    """The shell text could not be parsed."""


@dataclass
class Lit:
    value: str


@dataclass
class SglQuoted:
    value: str
    dollar: bool = False


@dataclass
class DblQuoted:
    parts: list = field(default_factory=list)
    dollar: bool = False


@dataclass
class CmdSubst:
    stmts: list = field(default_factory=list)
    backquotes: bool = False


@dataclass
class ProcSubst:
    op: str
    stmts: list = field(default_factory=list)


@dataclass
class _Expansion:
    text: str


@dataclass
class Word:
    parts: list = field(default_factory=list)


@dataclass
class Redirect:
    op: str
    word: Word
    n: str | None = None
    hdoc: Word | None = None


@dataclass
class CallExpr:
    args: list = field(default_factory=list)
    assigns: list = field(default_factory=list)


@dataclass
class BinaryCmd:
    op: str
    x: "Stmt"
    y: "Stmt"


@dataclass
class _Compound:
    kind: str
    text: str
    children: list = field(default_factory=list)


@dataclass
class Stmt:
    cmd: Union[CallExpr, BinaryCmd, _Compound, None] = None
    redirs: list = field(default_factory=list)
    negated: bool = False
    background: bool = False


@dataclass
class File:
    stmts: list = field(default_factory=list)


_WORD_END = frozenset(" \t\r\n;&|()<>")
_ASSIGN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(\[[^\]]*\])?\+?=")
_FUNC_PARENS = re.compile(r"\(\s*\)")
_REDIRECT_OPS = ("&>>", "&>", "<<<", "<<-", "<<", ">>", ">&", "<&", "<>", ">|", ">", "<")
_COMPOUND_WORDS = ("if", "while", "until", "for", "case", "function", "{", "[[")


class _Parser:
    def __init__(self, src: str) -> None:
        self.src = src
        self.pos = 0
        self.heredocs: list[tuple[Redirect, str, bool]] = []

    def _peek(self, n: int = 0) -> str:
        i = self.pos + n
        return self.src[i] if i < len(self.src) else ""

    def _starts(self, s: str) -> bool:
        return self.src.startswith(s, self.pos)

    def _error(self, msg: str) -> ShellSyntaxError:
        line = self.src.count("\n", 0, self.pos) + 1
        return ShellSyntaxError(f"{line}: {msg}")

    def _skip_blanks(self) -> None:
        src = self.src
        while self.pos < len(src):
            c = src[self.pos]
            if c in " \t\r":
                self.pos += 1
            elif self._starts("\\\n"):
                self.pos += 2
            elif c == "#":
                while self.pos < len(src) and src[self.pos] != "\n":
                    self.pos += 1
            else:
                break

    def _skip_space(self) -> None:
        while True:
            self._skip_blanks()
            if self._peek() == "\n":
                self._newline()
            else:
                break

    def _newline(self) -> None:
        self.pos += 1
        pending, self.heredocs = self.heredocs, []
        for redirect, delim, strip in pending:
            self._read_heredoc(redirect, delim, strip)

    def _read_heredoc(self, redirect: Redirect, delim: str, strip: bool) -> None:
        lines = []
        while self.pos < len(self.src):
            end = self.src.find("\n", self.pos)
            if end == -1:
                end = len(self.src)
            line = self.src[self.pos:end]
            self.pos = min(end + 1, len(self.src))
            if (line.lstrip("\t") if strip else line) == delim:
                break
            lines.append(line + "\n")
        redirect.hdoc = Word([Lit("".join(lines))])

    def _peek_word(self) -> str:
        i = self.pos
        while i < len(self.src) and self.src[i] not in _WORD_END and self.src[i] not in "'\"`$\\":
            i += 1
        return self.src[self.pos:i]

    def _at_stop(self, stops: set[str]) -> bool:
        if self.pos >= len(self.src):
            return True
        if self._starts(";;") or self._starts(";&"):
            return ";;" in stops
        if self._peek() == ")":
            return ")" in stops
        return self._peek_word() in stops

    def _expect(self, word: str) -> None:
        self._skip_space()
        if self._peek_word() != word:
            raise self._error(f"expected {word!r}")
        self.pos += len(word)

    def parse_file(self) -> File:
        stmts = self.parse_list(set())
        if self.pos < len(self.src):
            raise self._error(f"unexpected {self._peek()!r}")
        return File(stmts)

    def parse_list(self, stops: set[str]) -> list[Stmt]:
        stmts: list[Stmt] = []
        while True:
            self._skip_space()
            if self._at_stop(stops):
                break
            stmt = self._parse_and_or(stops)
            stmts.append(stmt)
            self._skip_blanks()
            c = self._peek()
            if c == ";" and not (self._starts(";;") or self._starts(";&")):
                self.pos += 1
            elif c == "&" and not (self._starts("&&") or self._starts("&>")):
                self.pos += 1
                stmt.background = True
            elif c in ("\n", "") or self._at_stop(stops):
                pass
            else:
                raise self._error(f"unexpected {c!r}")
        return stmts

    def _parse_and_or(self, stops: set[str]) -> Stmt:
        left = self._parse_pipeline(stops)
        self._skip_blanks()
        if self._starts("&&") or self._starts("||"):
            op = self.src[self.pos:self.pos + 2]
            self.pos += 2
            self._skip_space()
            right = self._parse_and_or(stops)
            return Stmt(cmd=BinaryCmd(op, left, right))
        return left

    def _parse_pipeline(self, stops: set[str]) -> Stmt:
        negated = False
        if self._peek_word() == "!":
            self.pos += 1
            negated = True
            self._skip_blanks()
        left = self._parse_command(stops)
        self._skip_blanks()
        if self._starts("|") and not self._starts("||"):
            op = "|&" if self._starts("|&") else "|"
            self.pos += len(op)
            self._skip_space()
            right = self._parse_pipeline(stops)
            left = Stmt(cmd=BinaryCmd(op, left, right))
        left.negated = left.negated or negated
        return left

    def _parse_command(self, stops: set[str]) -> Stmt:
        self._skip_blanks()
        start = self.pos
        word = self._peek_word()
        if self._starts("(("):
            self._read_parens()
            children: list = []
            kind = "arithm"
        elif self._peek() == "(":
            self.pos += 1
            children = list(self.parse_list({")"}))
            self._skip_space()
            if self._peek() != ")":
                raise self._error("expected ')'")
            self.pos += 1
            kind = "subshell"
        elif word in _COMPOUND_WORDS:
            kind = word
            children = self._parse_compound(word, stops)
        else:
            return self._parse_simple(stops)
        stmt = Stmt(cmd=_Compound(kind, self.src[start:self.pos], children))
        self._parse_trailing_redirects(stmt)
        return stmt

    def _parse_compound(self, word: str, stops: set[str]) -> list:
        children: list = []
        if word == "if":
            self.pos += 2
            children += self.parse_list({"then"})
            self._expect("then")
            children += self.parse_list({"elif", "else", "fi"})
            while True:
                self._skip_space()
                w = self._peek_word()
                if w == "elif":
                    self.pos += 4
                    children += self.parse_list({"then"})
                    self._expect("then")
                    children += self.parse_list({"elif", "else", "fi"})
                elif w == "else":
                    self.pos += 4
                    children += self.parse_list({"fi"})
                    self._expect("fi")
                    break
                elif w == "fi":
                    self.pos += 2
                    break
                else:
                    raise self._error("expected 'fi'")
        elif word in ("while", "until"):
            self.pos += len(word)
            children += self.parse_list({"do"})
            self._expect("do")
            children += self.parse_list({"done"})
            self._expect("done")
        elif word == "for":
            self.pos += 3
            self._skip_blanks()
            if self._starts("(("):
                self._read_parens()
            else:
                children.append(self._parse_word())
                self._skip_blanks()
                if self._peek_word() == "in":
                    self.pos += 2
                    while True:
                        self._skip_blanks()
                        if self._peek() in (";", "\n", ""):
                            break
                        children.append(self._parse_word())
            self._skip_blanks()
            if self._peek() == ";":
                self.pos += 1
            self._expect("do")
            children += self.parse_list({"done"})
            self._expect("done")
        elif word == "case":
            self.pos += 4
            self._skip_blanks()
            children.append(self._parse_word())
            self._expect("in")
            while True:
                self._skip_space()
                if self._peek_word() == "esac":
                    self.pos += 4
                    break
                if self.pos >= len(self.src):
                    raise self._error("expected 'esac'")
                if self._peek() == "(":
                    self.pos += 1
                while True:
                    self._skip_blanks()
                    pattern = self._parse_word()
                    if not pattern.parts:
                        raise self._error("expected case pattern")
                    children.append(pattern)
                    self._skip_blanks()
                    if self._peek() == "|":
                        self.pos += 1
                    elif self._peek() == ")":
                        self.pos += 1
                        break
                    else:
                        raise self._error("expected ')' after case pattern")
                children += self.parse_list({";;", "esac"})
                self._skip_space()
                if self._starts(";;&"):
                    self.pos += 3
                elif self._starts(";;") or self._starts(";&"):
                    self.pos += 2
        elif word == "function":
            self.pos += 8
            self._skip_blanks()
            children.append(self._parse_word())
            self._skip_blanks()
            match = _FUNC_PARENS.match(self.src, self.pos)
            if match:
                self.pos = match.end()
            self._skip_space()
            children.append(self._parse_command(stops))
        elif word == "{":
            self.pos += 1
            children += self.parse_list({"}"})
            self._expect("}")
        else:  # [[
            i = self.pos + 2
            while True:
                idx = self.src.find("]]", i)
                if idx == -1:
                    raise self._error("unclosed '[['")
                after = idx + 2
                if after >= len(self.src) or self.src[after] in _WORD_END:
                    break
                i = after
            self.pos = idx + 2
        return children

    def _at_redirect(self) -> bool:
        if self._starts("<(") or self._starts(">("):
            return False
        if self._starts("&>"):
            return True
        i = self.pos
        while i < len(self.src) and self.src[i].isdigit():
            i += 1
        return i < len(self.src) and self.src[i] in "<>"

    def _parse_redirect(self, stmt: Stmt) -> None:
        i = self.pos
        while i < len(self.src) and self.src[i].isdigit():
            i += 1
        n = self.src[self.pos:i] or None
        self.pos = i
        op = next(o for o in _REDIRECT_OPS if self._starts(o))
        self.pos += len(op)
        self._skip_blanks()
        word = self._parse_word()
        if not word.parts:
            raise self._error(f"{op} must be followed by a word")
        redirect = Redirect(op, word, n)
        if op in ("<<", "<<-"):
            self.heredocs.append((redirect, _word_literal(word), op == "<<-"))
        stmt.redirs.append(redirect)

    def _parse_trailing_redirects(self, stmt: Stmt) -> None:
        while True:
            self._skip_blanks()
            if not self._at_redirect():
                return
            self._parse_redirect(stmt)

    def _parse_simple(self, stops: set[str]) -> Stmt:
        call = CallExpr()
        stmt = Stmt(cmd=call)
        while True:
            self._skip_blanks()
            c = self._peek()
            if c in ("", "\n"):
                break
            if self._starts("<(") or self._starts(">("):
                call.args.append(self._parse_word())
                continue
            if self._at_redirect():
                self._parse_redirect(stmt)
                continue
            if c in ";&|)":
                break
            if c == "(":
                match = _FUNC_PARENS.match(self.src, self.pos)
                if match and len(call.args) == 1 and not call.assigns:
                    start_text = self.src.rfind("\n", 0, self.pos) + 1
                    self.pos = match.end()
                    self._skip_space()
                    body = self._parse_command(stops)
                    text = self.src[start_text:self.pos].strip()
                    stmt.cmd = _Compound("function", text, [call.args[0], body])
                    return stmt
                raise self._error("unexpected '('")
            word = self._parse_word()
            if not call.args and _is_assign(word):
                call.assigns.append(word)
            else:
                call.args.append(word)
        if not call.args and not call.assigns:
            if not stmt.redirs:
                raise self._error(f"expected a command, found {self._peek()!r}")
            stmt.cmd = None
        return stmt

    def _parse_word(self) -> Word:
        parts: list = []
        lit: list[str] = []

        def flush() -> None:
            if lit:
                parts.append(Lit("".join(lit)))
                lit.clear()

        while True:
            c = self._peek()
            if c == "":
                break
            if c == "\\":
                if self._peek(1) == "\n":
                    self.pos += 2
                    continue
                lit.append(self.src[self.pos:self.pos + 2])
                self.pos = min(self.pos + 2, len(self.src))
                continue
            if c in "<>" and self._peek(1) == "(":
                flush()
                parts.append(self._parse_procsubst())
                continue
            if c in _WORD_END:
                if c == "(" and not parts and lit and _ASSIGN.fullmatch("".join(lit)):
                    lit.append(self._read_parens())
                    continue
                break
            if c == "'":
                flush()
                parts.append(SglQuoted(self._read_single()))
            elif c == '"':
                flush()
                parts.append(self._parse_double())
            elif c == "`":
                flush()
                parts.append(self._parse_backquote())
            elif c == "$":
                exp = self._parse_dollar(in_double=False)
                if isinstance(exp, str):
                    lit.append(exp)
                else:
                    flush()
                    parts.append(exp)
            else:
                lit.append(c)
                self.pos += 1
        flush()
        return Word(parts)

    def _read_single(self) -> str:
        self.pos += 1
        end = self.src.find("'", self.pos)
        if end == -1:
            raise self._error("reached EOF without closing quote '")
        value = self.src[self.pos:end]
        self.pos = end + 1
        return value

    def _read_ansi(self) -> str:
        self.pos += 1
        start = self.pos
        while True:
            c = self._peek()
            if c == "":
                raise self._error("reached EOF without closing quote '")
            if c == "\\":
                self.pos += 2
                continue
            if c == "'":
                value = self.src[start:self.pos]
                self.pos += 1
                return value
            self.pos += 1

    def _parse_double(self) -> DblQuoted:
        self.pos += 1
        parts: list = []
        lit: list[str] = []

        def flush() -> None:
            if lit:
                parts.append(Lit("".join(lit)))
                lit.clear()

        while True:
            c = self._peek()
            if c == "":
                raise self._error('reached EOF without closing quote "')
            if c == '"':
                self.pos += 1
                break
            if c == "\\":
                if self._peek(1) == "\n":
                    self.pos += 2
                    continue
                lit.append(self.src[self.pos:self.pos + 2])
                self.pos += 2
            elif c == "$":
                exp = self._parse_dollar(in_double=True)
                if isinstance(exp, str):
                    lit.append(exp)
                else:
                    flush()
                    parts.append(exp)
            elif c == "`":
                flush()
                parts.append(self._parse_backquote())
            else:
                lit.append(c)
                self.pos += 1
        flush()
        return DblQuoted(parts)

    def _read_parens(self) -> str:
        depth = 0
        i = self.pos
        while i < len(self.src):
            ch = self.src[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    text = self.src[self.pos:i + 1]
                    self.pos = i + 1
                    return text
            i += 1
        raise self._error("reached EOF without matching ')'")

    def _parse_dollar(self, in_double: bool):
        n = self._peek(1)
        if self._starts("$(("):
            self.pos += 1
            return _Expansion("$" + self._read_parens())
        if n == "(":
            self.pos += 2
            stmts = self.parse_list({")"})
            self._skip_space()
            if self._peek() != ")":
                raise self._error("reached EOF without matching '$('")
            self.pos += 1
            return CmdSubst(stmts)
        if n == "{":
            depth = 0
            i = self.pos + 1
            while i < len(self.src):
                ch = self.src[i]
                if ch == "\\":
                    i += 2
                    continue
                if ch == "{":
                    depth += 1
                elif ch == "}":
                    depth -= 1
                    if depth == 0:
                        text = self.src[self.pos:i + 1]
                        self.pos = i + 1
                        return _Expansion(text)
                i += 1
            raise self._error("reached EOF without matching '${'")
        if not in_double and n == "'":
            self.pos += 1
            return SglQuoted(self._read_ansi(), dollar=True)
        if not in_double and n == '"':
            self.pos += 1
            quoted = self._parse_double()
            quoted.dollar = True
            return quoted
        if n.isdigit():
            self.pos += 2
            return _Expansion("$" + n)
        if n.isalpha() or n == "_":
            i = self.pos + 1
            while i < len(self.src) and (self.src[i].isalnum() or self.src[i] == "_"):
                i += 1
            text = self.src[self.pos:i]
            self.pos = i
            return _Expansion(text)
        if n and n in "@*#?$!-":
            self.pos += 2
            return _Expansion("$" + n)
        self.pos += 1
        return "$"

    def _parse_backquote(self) -> CmdSubst:
        self.pos += 1
        inner: list[str] = []
        while True:
            c = self._peek()
            if c == "":
                raise self._error("reached EOF without closing quote `")
            if c == "`":
                self.pos += 1
                break
            if c == "\\" and self._peek(1) in ("`", "\\", "$"):
                inner.append(self._peek(1))
                self.pos += 2
                continue
            inner.append(c)
            self.pos += 1
        return CmdSubst(_Parser("".join(inner)).parse_file().stmts, backquotes=True)

    def _parse_procsubst(self) -> ProcSubst:
        op = self.src[self.pos:self.pos + 2]
        self.pos += 2
        stmts = self.parse_list({")"})
        self._skip_space()
        if self._peek() != ")":
            raise self._error(f"reached EOF without matching {op!r}")
        self.pos += 1
        return ProcSubst(op, stmts)


def _is_assign(word: Word) -> bool:
    return bool(word.parts) and isinstance(word.parts[0], Lit) and _ASSIGN.match(word.parts[0].value) is not None


def _word_literal(word: Word) -> str:
    out = []
    for part in word.parts:
        if isinstance(part, Lit):
            out.append(part.value.replace("\\", ""))
        elif isinstance(part, SglQuoted):
            out.append(part.value)
        elif isinstance(part, DblQuoted):
            out.extend(p.value for p in part.parts if isinstance(p, Lit))
    return "".join(out)


def parse(text: str) -> File:
    """Parse shell ``text`` into a File; raises ShellSyntaxError on invalid input."""
    return _Parser(text).parse_file()


def _children(node: object) -> list:
    if isinstance(node, (File, CmdSubst, ProcSubst)):
        return list(node.stmts)
    if isinstance(node, Stmt):
        return ([node.cmd] if node.cmd is not None else []) + list(node.redirs)
    if isinstance(node, CallExpr):
        return list(node.assigns) + list(node.args)
    if isinstance(node, BinaryCmd):
        return [node.x, node.y]
    if isinstance(node, (Word, DblQuoted)):
        return list(node.parts)
    if isinstance(node, Redirect):
        return [node.word] + ([node.hdoc] if node.hdoc is not None else [])
    if isinstance(node, _Compound):
        return list(node.children)
    return []


def walk(node: object) -> Iterator[object]:
    """Yield ``node`` and every node below it, depth first, in source order."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(_children(current)))


def node_to_string(node: object) -> str:
    """Render a node back into shell text."""
    if isinstance(node, Lit):
        return node.value
    if isinstance(node, SglQuoted):
        return ("$" if node.dollar else "") + f"'{node.value}'"
    if isinstance(node, DblQuoted):
        inner = "".join(node_to_string(p) for p in node.parts)
        return ("$" if node.dollar else "") + f'"{inner}"'
    if isinstance(node, _Expansion):
        return node.text
    if isinstance(node, CmdSubst):
        inner = "; ".join(node_to_string(s) for s in node.stmts)
        return f"`{inner}`" if node.backquotes else f"$({inner})"
    if isinstance(node, ProcSubst):
        return node.op + "; ".join(node_to_string(s) for s in node.stmts) + ")"
    if isinstance(node, Word):
        return "".join(node_to_string(p) for p in node.parts)
    if isinstance(node, Redirect):
        return (node.n or "") + node.op + node_to_string(node.word)
    if isinstance(node, CallExpr):
        return " ".join(node_to_string(w) for w in node.assigns + node.args)
    if isinstance(node, BinaryCmd):
        return f"{node_to_string(node.x)} {node.op} {node_to_string(node.y)}"
    if isinstance(node, _Compound):
        return node.text
    if isinstance(node, Stmt):
        pieces = []
        if node.negated:
            pieces.append("!")
        if node.cmd is not None:
            pieces.append(node_to_string(node.cmd))
        pieces.extend(node_to_string(r) for r in node.redirs)
        if node.background:
            pieces.append("&")
        return " ".join(pieces)
    if isinstance(node, File):
        return "\n".join(node_to_string(s) for s in node.stmts)
    raise TypeError(f"unsupported node type {type(node).__name__}")