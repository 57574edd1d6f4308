"""
Parser for the canonical text form of rules.

The text form is what `Rule.repr()` produces, so rules can be written in
YAML policy documents and read back from debug traces:

    owns                          condition
    ~owns                         negation
    all?(a, b, c)                 conjunction
    any?(a, b)                    disjunction
    none?(a, b)                   neither (parsed as ~any?(a, b))
    registration.expired          condition of a delegate
    can?(:drive_vehicle)          another ability

For convenience `a & b`, `a | b` and parentheses are accepted too, with
`~` binding tighter than `&`, and `&` tighter than `|`.

Parsed rules are simplified, so `parse_rule(r.repr())` equals
`r.simplify()` for any rule `r`.
"""

import re

from tollgate.errors import RuleSyntaxError
from tollgate.rule import AbilityRef, ConditionRef, DelegatedConditionRef, Rule, all_of, any_of, none_of

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<call>all\?|any\?|none\?|can\?)
      | (?P<symbol>:[A-Za-z_][A-Za-z0-9_]*)
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
      | (?P<punct>[~&|(),.])
    )
    """,
    re.VERBOSE,
)

_COMBINATORS = {"all?": all_of, "any?": any_of, "none?": none_of}


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens: list[tuple[str, str, int]] = []
        self.index = 0
        self._tokenize()

    def _tokenize(self) -> None:
        position = 0
        text = self.text
        while position < len(text):
            if text[position:].strip() == "":
                break
            match = _TOKEN.match(text, position)
            if match is None or match.end() == position:
                raise RuleSyntaxError(text=text, position=position)
            kind = match.lastgroup or ""
            start = match.start(kind)
            self.tokens.append((kind, match.group(kind), start))
            position = match.end()

    def _peek(self) -> tuple[str, str, int] | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def _position(self) -> int:
        token = self._peek()
        return token[2] if token else len(self.text)

    def _fail(self, message: str) -> RuleSyntaxError:
        position = self._position()
        return RuleSyntaxError(
            message=f"{message} at offset {position}: {self.text!r}",
            text=self.text,
            position=position,
        )

    def _accept(self, value: str) -> bool:
        token = self._peek()
        if token is not None and token[1] == value:
            self.index += 1
            return True
        return False

    def _expect(self, value: str) -> None:
        if not self._accept(value):
            raise self._fail(f"Expected {value!r}")

    def parse(self) -> Rule:
        if not self.tokens:
            raise self._fail("Empty rule")
        rule = self._disjunction()
        if self._peek() is not None:
            raise self._fail("Unexpected token")
        return rule

    def _disjunction(self) -> Rule:
        rules = [self._conjunction()]
        while self._accept("|"):
            rules.append(self._conjunction())
        return rules[0] if len(rules) == 1 else any_of(*rules)

    def _conjunction(self) -> Rule:
        rules = [self._unary()]
        while self._accept("&"):
            rules.append(self._unary())
        return rules[0] if len(rules) == 1 else all_of(*rules)

    def _unary(self) -> Rule:
        if self._accept("~"):
            return ~self._unary()
        return self._primary()

    def _primary(self) -> Rule:
        token = self._peek()
        if token is None:
            raise self._fail("Unexpected end of rule")

        kind, value, _ = token
        if self._accept("("):
            rule = self._disjunction()
            self._expect(")")
            return rule

        if kind == "call":
            self.index += 1
            self._expect("(")
            if value == "can?":
                return self._ability()
            arguments = [self._disjunction()]
            while self._accept(","):
                arguments.append(self._disjunction())
            self._expect(")")
            return _COMBINATORS[value](*arguments)

        if kind == "name":
            self.index += 1
            if self._accept("."):
                condition = self._peek()
                if condition is None or condition[0] != "name":
                    raise self._fail("Expected a condition name")
                self.index += 1
                return DelegatedConditionRef(value, condition[1])
            return ConditionRef(value)

        raise self._fail("Unexpected token")

    def _ability(self) -> Rule:
        token = self._peek()
        if token is None or token[0] not in ("symbol", "name"):
            raise self._fail("Expected an ability name")
        self.index += 1
        self._expect(")")
        return AbilityRef(token[1].lstrip(":"))


def parse_rule(text: str) -> Rule:
    """
    Parse rule text into a simplified Rule.

    Raises:
        RuleSyntaxError: If the text is not a valid rule
    """
    return _Parser(text).parse().simplify()
